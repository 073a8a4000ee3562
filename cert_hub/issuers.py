"""
Issuer authorization state machine.

Requests move PENDING -> APPROVED | REJECTED, issuers move ACTIVE -> REVOKED.
Every transition that changes who may issue is written to the ledger first
and mirrored locally only after finality; a ledger failure leaves local
state exactly as it was.
"""

import structlog
from django.db import IntegrityError, transaction
from django.utils import timezone

from cert_hub.audit import append_event
from cert_hub.exceptions import (
    AlreadyResolvedError,
    AlreadyRevokedError,
    ConflictError,
    DuplicatePendingRequestError,
    LedgerError,
    LedgerUnavailableError,
    NotFoundError,
)
from cert_hub.ledger.base import OP_GRANT_ISSUER_ROLE, OP_REVOKE_ISSUER_ROLE
from cert_hub.models import AuditEvent, AuthorizedIssuer, IssuerRequest
from cert_hub.validators import validate_name, validate_wallet, validate_website

logger = structlog.get_logger()


class IssuerAuthorization:
    """Owner of ``IssuerRequest`` and ``AuthorizedIssuer`` rows."""

    def __init__(self, ledger, using="default"):
        # type: (object, str) -> None
        """
        :param ledger: LedgerClient used for role grants, revocations and checks
        :param using: Database alias (the injected storage handle)
        """
        self.ledger = ledger
        self.using = using

    @property
    def requests(self):
        return IssuerRequest.objects.using(self.using)

    @property
    def issuers(self):
        return AuthorizedIssuer.objects.using(self.using)

    def submit_request(self, name, wallet, website=""):
        # type: (str, str, str) -> IssuerRequest
        """
        File a request to become an authorized issuer.

        :raises DuplicatePendingRequestError: If the wallet already has a PENDING request
        """
        name = validate_name(name, "issuer_name")
        wallet = validate_wallet(wallet)
        website = validate_website(website)

        try:
            with transaction.atomic(using=self.using):
                request = self.requests.create(issuer_name=name, wallet_address=wallet, website=website)
                append_event(
                    AuditEvent.Kind.ISSUER_REQUESTED,
                    str(request.pk),
                    actor=wallet,
                    detail={"issuer_name": name, "wallet_address": wallet, "website": website},
                    using=self.using,
                )
        except IntegrityError as e:
            raise DuplicatePendingRequestError(f"Wallet already has a pending issuer request: {wallet}") from e

        logger.info("issuer_request_submitted", request_id=request.pk, wallet=wallet)
        return request

    def _get_request(self, request_id):
        # type: (int) -> IssuerRequest
        request = self.requests.filter(pk=request_id).first()
        if request is None:
            raise NotFoundError(
                f"Issuer request not found: {request_id}", resource_type="issuer_request", resource_id=str(request_id)
            )
        return request

    def _resolve(self, request_id, status, actor):
        # type: (int, str, str) -> int
        """Move a PENDING request to a terminal status, returning the number of rows changed."""
        return self.requests.filter(pk=request_id, status=IssuerRequest.Status.PENDING).update(
            status=status, resolved_at=timezone.now(), resolved_by=actor
        )

    def _activate(self, wallet, name, website, source_request=None):
        # type: (str, str, str, IssuerRequest|None) -> AuthorizedIssuer
        """Insert or re-activate the issuer row for a wallet."""
        issuer, _ = self.issuers.update_or_create(
            wallet_address=wallet,
            defaults={
                "name": name,
                "website": website,
                "status": AuthorizedIssuer.Status.ACTIVE,
                "source_request": source_request,
                "authorized_at": timezone.now(),
                "revoked_at": None,
            },
        )
        return issuer

    def approve(self, request_id, actor="admin"):
        # type: (int, str) -> AuthorizedIssuer
        """
        Approve a pending request: grant the ledger role, then record it locally.

        :raises NotFoundError: If the request does not exist
        :raises AlreadyResolvedError: If the request is no longer PENDING
        :raises LedgerError: If the role grant fails; the request stays PENDING
        """
        request = self._get_request(request_id)
        if request.status != IssuerRequest.Status.PENDING:
            raise AlreadyResolvedError(f"Issuer request {request_id} is already {request.status}", field="request_id")

        receipt = self.ledger.execute(OP_GRANT_ISSUER_ROLE, {"wallet": request.wallet_address})

        try:
            with transaction.atomic(using=self.using):
                # Re-check under the write lock, a concurrent resolve may have won
                if not self._resolve(request_id, IssuerRequest.Status.APPROVED, actor):
                    raise AlreadyResolvedError(
                        f"Issuer request {request_id} was resolved concurrently", field="request_id"
                    )
                issuer = self._activate(
                    request.wallet_address, request.issuer_name, request.website, source_request=request
                )
                append_event(
                    AuditEvent.Kind.ISSUER_APPROVED,
                    str(request_id),
                    actor=actor,
                    detail={
                        "wallet_address": request.wallet_address,
                        "tx_ref": receipt.tx_ref,
                        "block_ref": receipt.block_ref,
                    },
                    using=self.using,
                )
        except AlreadyResolvedError:
            self._withdraw_grant(request.wallet_address, request_id)
            raise

        logger.info("issuer_request_approved", request_id=request_id, wallet=request.wallet_address, tx_ref=receipt.tx_ref)
        return issuer

    def _withdraw_grant(self, wallet, request_id):
        # type: (str, int) -> None
        """
        Take back a role grant whose approval lost against a concurrent resolve.

        Left alone if the wallet is an active issuer through another path.
        """
        if self.issuers.filter(wallet_address=wallet, status=AuthorizedIssuer.Status.ACTIVE).exists():
            return
        try:
            receipt = self.ledger.execute(OP_REVOKE_ISSUER_ROLE, {"wallet": wallet})
        except LedgerError as e:
            logger.error("issuer_grant_orphaned", request_id=request_id, wallet=wallet, error=str(e))
            return
        logger.warning("issuer_grant_withdrawn", request_id=request_id, wallet=wallet, tx_ref=receipt.tx_ref)

    def reject(self, request_id, actor="admin"):
        # type: (int, str) -> IssuerRequest
        """
        Reject a pending request. Local only, the ledger is never touched.

        :raises NotFoundError: If the request does not exist
        :raises AlreadyResolvedError: If the request is no longer PENDING
        """
        self._get_request(request_id)
        with transaction.atomic(using=self.using):
            if not self._resolve(request_id, IssuerRequest.Status.REJECTED, actor):
                raise AlreadyResolvedError(f"Issuer request {request_id} is already resolved", field="request_id")
            append_event(AuditEvent.Kind.ISSUER_REJECTED, str(request_id), actor=actor, using=self.using)

        logger.info("issuer_request_rejected", request_id=request_id, actor=actor)
        return self._get_request(request_id)

    def authorize(self, name, wallet, website="", actor="admin"):
        # type: (str, str, str, str) -> AuthorizedIssuer
        """
        Directly whitelist an institution wallet without a request.

        :raises ConflictError: If the wallet is already an ACTIVE issuer
        :raises LedgerError: If the role grant fails; nothing is written locally
        """
        name = validate_name(name)
        wallet = validate_wallet(wallet)
        website = validate_website(website)

        if self.issuers.filter(wallet_address=wallet, status=AuthorizedIssuer.Status.ACTIVE).exists():
            raise ConflictError(f"Wallet is already an active issuer: {wallet}", field="wallet_address")

        receipt = self.ledger.execute(OP_GRANT_ISSUER_ROLE, {"wallet": wallet})

        with transaction.atomic(using=self.using):
            issuer = self._activate(wallet, name, website)
            append_event(
                AuditEvent.Kind.ISSUER_AUTHORIZED,
                wallet,
                actor=actor,
                detail={"name": name, "tx_ref": receipt.tx_ref, "block_ref": receipt.block_ref},
                using=self.using,
            )

        logger.info("issuer_authorized", wallet=wallet, actor=actor, tx_ref=receipt.tx_ref)
        return issuer

    def revoke_issuer(self, wallet, actor="admin"):
        # type: (str, str) -> AuthorizedIssuer
        """
        Revoke an issuer's role on the ledger, then locally.

        :raises NotFoundError: If the wallet was never authorized
        :raises AlreadyRevokedError: If the issuer is already REVOKED
        :raises LedgerError: If the role revocation fails; the issuer stays ACTIVE
        """
        wallet = validate_wallet(wallet)
        issuer = self.issuers.filter(wallet_address=wallet).first()
        if issuer is None:
            raise NotFoundError(f"Issuer not found: {wallet}", resource_type="issuer", resource_id=wallet)
        if issuer.status == AuthorizedIssuer.Status.REVOKED:
            raise AlreadyRevokedError(f"Issuer already revoked: {wallet}", field="wallet_address")

        receipt = self.ledger.execute(OP_REVOKE_ISSUER_ROLE, {"wallet": wallet})

        with transaction.atomic(using=self.using):
            updated = self.issuers.filter(wallet_address=wallet, status=AuthorizedIssuer.Status.ACTIVE).update(
                status=AuthorizedIssuer.Status.REVOKED, revoked_at=timezone.now()
            )
            if not updated:
                raise AlreadyRevokedError(f"Issuer already revoked: {wallet}", field="wallet_address")
            append_event(
                AuditEvent.Kind.ISSUER_REVOKED,
                wallet,
                actor=actor,
                detail={"tx_ref": receipt.tx_ref, "block_ref": receipt.block_ref},
                using=self.using,
            )

        logger.info("issuer_revoked", wallet=wallet, actor=actor, tx_ref=receipt.tx_ref)
        return self.issuers.get(wallet_address=wallet)

    def is_authorized(self, wallet):
        # type: (str) -> bool
        """
        Whether ``wallet`` may issue certificates.

        The ledger decides. The local ACTIVE row only answers while the
        ledger is unreachable.
        """
        wallet = validate_wallet(wallet)
        try:
            return self.ledger.has_role(wallet)
        except LedgerUnavailableError:
            cached = self.issuers.filter(wallet_address=wallet, status=AuthorizedIssuer.Status.ACTIVE).exists()
            logger.warning("issuer_check_from_cache", wallet=wallet, authorized=cached)
            return cached

    def list_requests(self, status=None):
        # type: (str|None) -> list[IssuerRequest]
        """Issuer requests, newest first, optionally filtered by status."""
        queryset = self.requests.all()
        if status:
            queryset = queryset.filter(status=status)
        return list(queryset.order_by("-submitted_at", "-pk"))

    def list_issuers(self, active_only=False):
        # type: (bool) -> list[AuthorizedIssuer]
        queryset = self.issuers.all()
        if active_only:
            queryset = queryset.filter(status=AuthorizedIssuer.Status.ACTIVE)
        return list(queryset.order_by("name"))
