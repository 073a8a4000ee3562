from django.conf import settings
from django.http import HttpRequest
from ninja import File, Form, NinjaAPI, UploadedFile
from ninja.responses import codes_4xx, codes_5xx

import cert_hub
from cert_hub.audit import DEFAULT_LIMIT, list_events
from cert_hub.exceptions import BaseApiException, InvalidInputError
from cert_hub.hashing import IdentityHasher
from cert_hub.issuance import IssuanceService
from cert_hub.ledger import get_ledger_client
from cert_hub.models import IssuerRequest
from cert_hub.schema import (
    AuditEventOut,
    CertificateOut,
    ErrorResponse,
    HealthResponse,
    IdentityIn,
    IdentityLookupIn,
    IdentityOut,
    IssuerIn,
    IssuerOut,
    IssuerRequestIn,
    IssuerRequestOut,
    IssuerStatusOut,
    RevokeCertificateIn,
    StatsOut,
    VerificationOut,
    WalletMigrationIn,
)
from cert_hub.validators import validate_wallet
from cert_hub.verification import VerificationEngine

api = NinjaAPI(
    title="CERT-HUB API",
    version=cert_hub.__version__,
    description="Anchor academic credentials on a ledger and verify them",
)

ERRORS = {codes_4xx: ErrorResponse, codes_5xx: ErrorResponse}


@api.exception_handler(BaseApiException)
def handle_api_exception(request, exc):
    # type: (HttpRequest, BaseApiException) -> object
    """
    Handle all BaseApiException and subclasses with appropriate HTTP responses.

    :param request: The incoming HTTP request
    :param exc: The exception instance
    :return: JSON response with error details and appropriate status code
    """
    return api.create_response(
        request,
        exc.to_error_response(),
        status=exc.status_code,
    )


def get_service():
    # type: () -> IssuanceService
    """Engine components bound to the default database and the process ledger client."""
    return IssuanceService(get_ledger_client())


def get_verifier():
    # type: () -> VerificationEngine
    service = get_service()
    return VerificationEngine(service.reconciler, service.store)


# ── Identities ────────────────────────────────────────────────────


@api.post("/identities", response={201: IdentityOut, **ERRORS})
def register_identity(request, payload: IdentityIn):
    # type: (HttpRequest, IdentityIn) -> tuple
    """Register an identity. The raw number is hashed here and then discarded."""
    identity_key, _ = IdentityHasher().derive_pair(payload.identity_number, payload.secondary_id)
    identity = get_service().registry.register(identity_key, payload.name, payload.wallet_address)
    return 201, identity


@api.post("/identities/lookup", response={200: IdentityOut, **ERRORS})
def lookup_identity(request, payload: IdentityLookupIn):
    # type: (HttpRequest, IdentityLookupIn) -> object
    """Lookup by raw identity number, sent in the body to keep it out of URLs and access logs."""
    return get_service().registry.lookup(IdentityHasher().derive(payload.identity_number))


@api.get("/identities/by-wallet/{wallet}", response={200: IdentityOut, **ERRORS})
def lookup_identity_by_wallet(request, wallet: str):
    # type: (HttpRequest, str) -> object
    return get_service().registry.lookup_by_wallet(wallet)


@api.post("/identities/{identity_key}/wallet", response={200: IdentityOut, **ERRORS})
def migrate_wallet(request, identity_key: str, payload: WalletMigrationIn):
    # type: (HttpRequest, str, WalletMigrationIn) -> object
    return get_service().registry.migrate_wallet(identity_key, payload.new_wallet)


# ── Issuers ───────────────────────────────────────────────────────


@api.post("/issuer-requests", response={201: IssuerRequestOut, **ERRORS})
def submit_issuer_request(request, payload: IssuerRequestIn):
    # type: (HttpRequest, IssuerRequestIn) -> tuple
    issuer_request = get_service().issuers.submit_request(
        payload.issuer_name, payload.wallet_address, payload.website
    )
    return 201, issuer_request


@api.get("/issuer-requests", response={200: list[IssuerRequestOut], **ERRORS})
def list_issuer_requests(request, status: str | None = None):
    # type: (HttpRequest, str|None) -> list
    if status and status not in IssuerRequest.Status.values:
        raise InvalidInputError(f"Unknown request status: {status}", field="status")
    return get_service().issuers.list_requests(status)


@api.post("/issuer-requests/{request_id}/approve", response={200: IssuerOut, **ERRORS})
def approve_issuer_request(request, request_id: int, actor: str = "admin"):
    # type: (HttpRequest, int, str) -> object
    return get_service().issuers.approve(request_id, actor=actor)


@api.post("/issuer-requests/{request_id}/reject", response={200: IssuerRequestOut, **ERRORS})
def reject_issuer_request(request, request_id: int, actor: str = "admin"):
    # type: (HttpRequest, int, str) -> object
    return get_service().issuers.reject(request_id, actor=actor)


@api.get("/issuers", response={200: list[IssuerOut], **ERRORS})
def list_issuers(request, active: bool = False):
    # type: (HttpRequest, bool) -> list
    return get_service().issuers.list_issuers(active_only=active)


@api.post("/issuers", response={201: IssuerOut, **ERRORS})
def authorize_issuer(request, payload: IssuerIn):
    # type: (HttpRequest, IssuerIn) -> tuple
    issuer = get_service().issuers.authorize(payload.name, payload.wallet_address, payload.website, actor=payload.actor)
    return 201, issuer


@api.post("/issuers/{wallet}/revoke", response={200: IssuerOut, **ERRORS})
def revoke_issuer(request, wallet: str, actor: str = "admin"):
    # type: (HttpRequest, str, str) -> object
    return get_service().issuers.revoke_issuer(wallet, actor=actor)


@api.get("/issuers/{wallet}/status", response={200: IssuerStatusOut, **ERRORS})
def issuer_status(request, wallet: str):
    # type: (HttpRequest, str) -> dict
    wallet = validate_wallet(wallet)
    return {"wallet_address": wallet, "authorized": get_service().issuers.is_authorized(wallet)}


# ── Certificates ──────────────────────────────────────────────────


def _check_size(document):
    # type: (UploadedFile) -> None
    if document.size is not None and document.size > settings.CERT_HUB_MAX_DOCUMENT_SIZE:
        raise InvalidInputError(
            f"Document exceeds maximum size of {settings.CERT_HUB_MAX_DOCUMENT_SIZE} bytes", field="document"
        )


@api.post("/certificates", response={201: CertificateOut, **ERRORS})
def issue_certificate(
    request,
    document: UploadedFile = File(...),
    subject_identity_key: str = Form(...),
    issuer_wallet: str = Form(...),
    title: str = Form(...),
    content_ref: str = Form(""),
):
    # type: (HttpRequest, UploadedFile, str, str, str, str) -> tuple
    """
    Issue a certificate for an uploaded document.

    The content hash is computed here from the uploaded bytes, clients cannot assert it.
    """
    _check_size(document)
    record = get_service().issue_certificate(
        document,
        subject_identity_key,
        issuer_wallet,
        title,
        filename=document.name or "",
        content_ref=content_ref,
    )
    return 201, record


@api.post("/certificates/{content_hash}/revoke", response={200: CertificateOut, **ERRORS})
def revoke_certificate(request, content_hash: str, payload: RevokeCertificateIn):
    # type: (HttpRequest, str, RevokeCertificateIn) -> object
    return get_service().revoke_certificate(content_hash, payload.actor_wallet)


@api.get("/certificates", response={200: list[CertificateOut], **ERRORS})
def list_certificates(request, wallet: str | None = None):
    # type: (HttpRequest, str|None) -> list
    """Holder view (ISSUED only) when ``wallet`` is given, otherwise the full administrative list."""
    store = get_service().store
    if wallet:
        return store.list_by_subject_wallet(wallet)
    return store.list_all()


# ── Verification ──────────────────────────────────────────────────


@api.get("/verify/{content_hash}", response={200: VerificationOut, **ERRORS})
def verify_hash(request, content_hash: str):
    # type: (HttpRequest, str) -> dict
    return get_verifier().verify(content_hash).as_dict()


@api.post("/verify", response={200: VerificationOut, **ERRORS})
def verify_document(request, document: UploadedFile = File(...)):
    # type: (HttpRequest, UploadedFile) -> dict
    _check_size(document)
    return get_verifier().verify_document(document).as_dict()


# ── Audit & health ────────────────────────────────────────────────


@api.get("/audit-log", response={200: list[AuditEventOut], **ERRORS})
def audit_log(request, limit: int = DEFAULT_LIMIT, kind: str | None = None, subject_ref: str | None = None):
    # type: (HttpRequest, int, str|None, str|None) -> list
    return list_events(limit=limit, kind=kind, subject_ref=subject_ref)


@api.get("/stats", response={200: StatsOut, **ERRORS})
def stats(request):
    # type: (HttpRequest) -> dict
    """Certificate, identity and issuer totals for the operator dashboard."""
    return get_service().stats()


@api.get("/health", response=HealthResponse)
def health(request):
    # type: (HttpRequest) -> dict
    """
    Health check endpoint to verify service status.

    :param request: The incoming HTTP request
    :return: Status, version and a ledger summary
    """
    ledger = get_ledger_client().health()
    available = ledger.get("available", True)

    # Include build metadata
    build_info = {
        "commit": getattr(settings, "BUILD_COMMIT", "unknown"),
        "tag": getattr(settings, "BUILD_TAG", "unknown"),
        "timestamp": getattr(settings, "BUILD_TIMESTAMP", "unknown"),
    }

    return {
        "status": "pass" if available else "warn",
        "version": getattr(settings, "VERSION", cert_hub.__version__),
        "description": "CERT-HUB service is healthy" if available else "CERT-HUB ledger is unreachable",
        "build": build_info,
        "ledger": ledger,
    }
