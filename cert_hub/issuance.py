"""
Certificate issuance and revocation flows.

Ledger first, local second. Nothing is written locally unless the ledger
confirmed the write; a local failure after ledger success leaves an orphan
ledger entry that the reconciliation sweep recovers.
"""

import structlog
from django.db.models import Count, Q

from cert_hub.exceptions import (
    AlreadyRevokedError,
    DuplicateCertificateError,
    UnauthorizedIssuerError,
)
from cert_hub.hashing import content_hash as compute_content_hash
from cert_hub.issuers import IssuerAuthorization
from cert_hub.models import AuthorizedIssuer, CertificateRecord, IssuerRequest
from cert_hub.reconciler import LedgerReconciler
from cert_hub.registry import IdentityRegistry
from cert_hub.store import CertificateStore
from cert_hub.validators import validate_content_hash, validate_title, validate_wallet

logger = structlog.get_logger()


class IssuanceService:
    """Wires the engine components together for one database alias and ledger."""

    def __init__(self, ledger, using="default"):
        # type: (object, str) -> None
        self.ledger = ledger
        self.using = using
        self.registry = IdentityRegistry(using=using)
        self.store = CertificateStore(using=using)
        self.issuers = IssuerAuthorization(ledger, using=using)
        self.reconciler = LedgerReconciler(ledger, self.store)

    def issue_certificate(self, document, subject_identity_key, issuer_wallet, title, filename="", content_ref=""):
        # type: (bytes|object, str, str, str, str, str) -> CertificateRecord
        """
        Anchor a document as a certificate for a registered identity.

        :param document: Document bytes or binary file object, hashed server side
        :param subject_identity_key: Identity key of the holder
        :param issuer_wallet: Wallet of the issuing institution
        :param title: Course or credential title
        :param filename: Original file name, informational
        :param content_ref: Blob store content id, informational
        :raises NotFoundError: If the subject identity is unknown
        :raises UnauthorizedIssuerError: If the issuer does not hold the issuer role
        :raises DuplicateCertificateError: If the document was already anchored
        :raises LedgerError: If anchoring fails; nothing is written locally
        """
        content_hash = compute_content_hash(document)
        issuer_wallet = validate_wallet(issuer_wallet, "issuer_wallet")
        title = validate_title(title)
        log = logger.bind(content_hash=content_hash, issuer_wallet=issuer_wallet)

        subject = self.registry.lookup(subject_identity_key)

        if not self.issuers.is_authorized(issuer_wallet):
            log.warning("issuance_refused_unauthorized")
            raise UnauthorizedIssuerError(f"Wallet is not an authorized issuer: {issuer_wallet}", wallet=issuer_wallet)

        # Cheap local check before spending a ledger transaction
        if self.store.exists(content_hash):
            existing = self.store.find_by_hash(content_hash)
            raise DuplicateCertificateError(
                f"Certificate with this hash already exists: {content_hash}", existing_status=existing.status
            )

        receipt = self.reconciler.anchor(
            content_hash,
            subject_wallet=subject.wallet_address,
            subject_identity_key=subject.identity_key,
            title=title,
            issuer_wallet=issuer_wallet,
            subject_name=subject.display_name,
            content_ref=content_ref,
        )

        try:
            return self.store.issue(
                content_hash,
                subject_identity_key=subject.identity_key,
                subject_wallet=subject.wallet_address,
                issuer_wallet=issuer_wallet,
                title=title,
                issuer_key=self._issuer_name(issuer_wallet),
                subject_name=subject.display_name,
                ledger_tx_ref=receipt.tx_ref,
                ledger_block_ref=receipt.block_ref,
                filename=filename,
                content_ref=content_ref,
            )
        except Exception:
            log.error("orphan_ledger_anchor", tx_ref=receipt.tx_ref, block_ref=receipt.block_ref)
            raise

    def revoke_certificate(self, content_hash, actor_wallet):
        # type: (str, str) -> CertificateRecord
        """
        Revoke a certificate on behalf of its issuer.

        :raises NotFoundError: If no record has this hash
        :raises AlreadyRevokedError: If the record is already revoked
        :raises UnauthorizedIssuerError: If the actor did not issue it or lost the issuer role
        :raises LedgerError: If the ledger revocation fails; the record stays ISSUED
        """
        content_hash = validate_content_hash(content_hash)
        actor_wallet = validate_wallet(actor_wallet, "issuer_wallet")

        record = self.store.find_by_hash(content_hash)
        if record.status == CertificateRecord.Status.REVOKED:
            raise AlreadyRevokedError(f"Certificate already revoked: {content_hash}", field="content_hash")

        if record.issuer_wallet != actor_wallet or not self.issuers.is_authorized(actor_wallet):
            logger.warning("revocation_refused_unauthorized", content_hash=content_hash, actor=actor_wallet)
            raise UnauthorizedIssuerError(f"Wallet may not revoke this certificate: {actor_wallet}", wallet=actor_wallet)

        receipt = self.reconciler.revoke(content_hash, actor_wallet)
        record = self.store.revoke(content_hash, actor=actor_wallet)
        logger.info("certificate_revocation_complete", content_hash=content_hash, tx_ref=receipt.tx_ref)
        return record

    def _issuer_name(self, wallet):
        # type: (str) -> str
        issuer = self.issuers.issuers.filter(wallet_address=wallet).first()  # type: AuthorizedIssuer|None
        return issuer.name if issuer else ""

    def stats(self):
        # type: () -> dict
        """Dashboard totals computed from local records only."""
        totals = self.store.objects.aggregate(
            certificates=Count("pk"),
            issued=Count("pk", filter=Q(status=CertificateRecord.Status.ISSUED)),
            revoked=Count("pk", filter=Q(status=CertificateRecord.Status.REVOKED)),
            needs_attention=Count("pk", filter=Q(needs_attention=True)),
        )
        totals["identities"] = self.registry.objects.count()
        totals["active_issuers"] = self.issuers.issuers.filter(status=AuthorizedIssuer.Status.ACTIVE).count()
        totals["pending_requests"] = self.issuers.requests.filter(status=IssuerRequest.Status.PENDING).count()
        return totals
