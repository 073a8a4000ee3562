"""
Content-addressed certificate store.

The content hash is the table's primary key, so the duplicate check and the
insert are one statement: of two concurrent issuances of the same hash the
storage engine lets exactly one commit and the other gets ``IntegrityError``.
"""

import structlog
from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from cert_hub.audit import append_event
from cert_hub.exceptions import AlreadyRevokedError, DuplicateCertificateError, NotFoundError
from cert_hub.models import AuditEvent, AuthorizedIssuer, CertificateRecord
from cert_hub.validators import (
    MAX_CONTENT_REF_LENGTH,
    MAX_FILENAME_LENGTH,
    validate_content_hash,
    validate_identity_key,
    validate_text,
    validate_title,
    validate_wallet,
)

logger = structlog.get_logger()

Status = CertificateRecord.Status

# Placeholders for fields a ledger may not expose when a record is recovered
UNKNOWN_DIGEST = "0x" + "00" * 32
UNKNOWN_WALLET = "0x" + "00" * 20


class CertificateStore:
    """Exclusive owner of ``CertificateRecord`` writes."""

    def __init__(self, using="default"):
        # type: (str) -> None
        """
        :param using: Database alias (the injected storage handle)
        """
        self.using = using

    @property
    def objects(self):
        return CertificateRecord.objects.using(self.using)

    def issue(
        self,
        content_hash,
        subject_identity_key,
        subject_wallet,
        issuer_wallet,
        title,
        issuer_key="",
        subject_name="",
        ledger_tx_ref=None,
        ledger_block_ref=None,
        filename="",
        content_ref="",
    ):
        # type: (str, str, str, str, str, str, str, str|None, str|None, str, str) -> CertificateRecord
        """
        Insert a new ISSUED certificate record.

        :return: The stored record
        :raises DuplicateCertificateError: If the hash exists, whatever its status
        """
        fields = dict(
            content_hash=validate_content_hash(content_hash),
            subject_identity_key=validate_identity_key(subject_identity_key, "subject_identity_key"),
            subject_wallet=validate_wallet(subject_wallet, "subject_wallet"),
            subject_name=validate_text(subject_name, "subject_name", 200, required=False),
            issuer_wallet=validate_wallet(issuer_wallet, "issuer_wallet"),
            issuer_key=validate_text(issuer_key, "issuer_key", 200, required=False),
            title=validate_title(title),
            filename=validate_text(filename, "filename", MAX_FILENAME_LENGTH, required=False),
            content_ref=validate_text(content_ref, "content_ref", MAX_CONTENT_REF_LENGTH, required=False),
            ledger_tx_ref=ledger_tx_ref or None,
            ledger_block_ref=str(ledger_block_ref) if ledger_block_ref else None,
        )
        record = self._insert(fields, AuditEvent.Kind.CERT_ISSUED, actor=fields["issuer_wallet"])
        logger.info(
            "certificate_issued",
            content_hash=record.content_hash,
            issuer_wallet=record.issuer_wallet,
            tx_ref=record.ledger_tx_ref,
        )
        return record

    def _insert(self, fields, kind, actor):
        # type: (dict, str, str) -> CertificateRecord
        """Insert a record plus its audit event in one transaction."""
        try:
            with transaction.atomic(using=self.using):
                # force_insert: a primary key collision must fail, never update
                record = CertificateRecord(**fields)
                record.save(using=self.using, force_insert=True)
                append_event(
                    kind,
                    record.content_hash,
                    actor=actor,
                    detail={
                        "title": record.title,
                        "subject_wallet": record.subject_wallet,
                        "issuer_wallet": record.issuer_wallet,
                        "ledger_tx_ref": record.ledger_tx_ref,
                        "ledger_block_ref": record.ledger_block_ref,
                    },
                    using=self.using,
                )
        except IntegrityError as e:
            existing = self.objects.filter(content_hash=fields["content_hash"]).values_list("status", flat=True).first()
            raise DuplicateCertificateError(
                f"Certificate with this hash already exists: {fields['content_hash']}", existing_status=existing
            ) from e
        return record

    def exists(self, content_hash):
        # type: (str) -> bool
        """Whether any record (issued or revoked) has this hash."""
        return self.objects.filter(content_hash=validate_content_hash(content_hash)).exists()

    def revoke(self, content_hash, actor=""):
        # type: (str, str) -> CertificateRecord
        """
        Flip a record from ISSUED to REVOKED.

        The update is conditional on the current status, so concurrent
        revocations produce one success and one ``AlreadyRevokedError``.

        :raises NotFoundError: If no record has this hash
        :raises AlreadyRevokedError: If the record is already revoked
        """
        content_hash = validate_content_hash(content_hash)
        now = timezone.now()

        with transaction.atomic(using=self.using):
            updated = self.objects.filter(content_hash=content_hash, status=Status.ISSUED).update(
                status=Status.REVOKED, revoked_at=now
            )
            if not updated:
                if self.objects.filter(content_hash=content_hash).exists():
                    raise AlreadyRevokedError(f"Certificate already revoked: {content_hash}", field="content_hash")
                raise NotFoundError(
                    f"Certificate not found: {content_hash}", resource_type="certificate", resource_id=content_hash
                )
            append_event(AuditEvent.Kind.CERT_REVOKED, content_hash, actor=actor, using=self.using)

        logger.info("certificate_revoked", content_hash=content_hash, actor=actor)
        return self.objects.get(content_hash=content_hash)

    def find_by_hash(self, content_hash):
        # type: (str) -> CertificateRecord
        """
        :raises NotFoundError: If no record has this hash
        """
        content_hash = validate_content_hash(content_hash)
        record = self.objects.filter(content_hash=content_hash).first()
        if record is None:
            raise NotFoundError(
                f"Certificate not found: {content_hash}", resource_type="certificate", resource_id=content_hash
            )
        return record

    def list_by_subject_wallet(self, wallet):
        # type: (str) -> list[CertificateRecord]
        """Certificates visible in a holder's wallet: ISSUED only, newest first."""
        wallet = validate_wallet(wallet)
        return list(self.objects.filter(subject_wallet=wallet, status=Status.ISSUED).order_by("-issued_at"))

    def list_all(self):
        # type: () -> list[CertificateRecord]
        """Administrative view including revoked records, newest first."""
        return list(self.objects.order_by("-issued_at"))

    # ── Reconciliation support ────────────────────────────────────

    def pending_confirmation(self, limit=None):
        # type: (int|None) -> list[CertificateRecord]
        """Records lacking a finality-confirmed ledger reference, oldest first."""
        queryset = self.objects.filter(
            Q(ledger_tx_ref__isnull=True) | Q(ledger_block_ref__isnull=True) | Q(ledger_tx_ref="")
        ).order_by("issued_at")
        if limit:
            queryset = queryset[:limit]
        return list(queryset)

    def confirm(self, content_hash, tx_ref, block_ref):
        # type: (str, str, str) -> CertificateRecord
        """Attach ledger references found by reconciliation and clear any attention flag."""
        content_hash = validate_content_hash(content_hash)
        self.objects.filter(content_hash=content_hash).update(
            ledger_tx_ref=tx_ref or None,
            ledger_block_ref=str(block_ref) if block_ref else None,
            needs_attention=False,
            attention_reason="",
        )
        logger.info("certificate_confirmed", content_hash=content_hash, tx_ref=tx_ref, block_ref=block_ref)
        return self.objects.get(content_hash=content_hash)

    def flag(self, content_hash, reason, actor="reconciler"):
        # type: (str, str, str) -> bool
        """
        Mark a record for administrative resolution. Never deletes.

        :return: True if the flag was newly set, False if it was already set
        """
        content_hash = validate_content_hash(content_hash)
        with transaction.atomic(using=self.using):
            updated = self.objects.filter(content_hash=content_hash, needs_attention=False).update(
                needs_attention=True, attention_reason=reason[:300]
            )
            if updated:
                append_event(
                    AuditEvent.Kind.CERT_FLAGGED, content_hash, actor=actor, detail={"reason": reason}, using=self.using
                )
        if updated:
            logger.warning("certificate_flagged", content_hash=content_hash, reason=reason)
        return bool(updated)

    def recover(self, status):
        # type: (object) -> CertificateRecord
        """
        Recreate a missing local record from authoritative ledger data.

        :param status: ``LedgerStatus`` of an anchored certificate
        :raises DuplicateCertificateError: If a local record appeared in the meantime
        """
        fields = dict(
            content_hash=validate_content_hash(status.content_hash),
            subject_identity_key=validate_identity_key(status.subject_identity_key or UNKNOWN_DIGEST),
            subject_wallet=validate_wallet(status.subject_wallet or UNKNOWN_WALLET, "subject_wallet"),
            subject_name=status.subject_name[:200],
            issuer_wallet=validate_wallet(status.issuer_ref or UNKNOWN_WALLET, "issuer_wallet"),
            title=(status.title or "(recovered from ledger)")[:300],
            content_ref=status.content_ref[:512],
            ledger_tx_ref=status.tx_ref or None,
            ledger_block_ref=status.block_ref or None,
            status=Status.REVOKED if status.revoked else Status.ISSUED,
            issued_at=status.anchored_at or timezone.now(),
            revoked_at=timezone.now() if status.revoked else None,
            recovered=True,
        )
        fields["issuer_key"] = self._issuer_name(fields["issuer_wallet"])
        record = self._insert(fields, AuditEvent.Kind.CERT_RECOVERED, actor="reconciler")
        logger.warning("certificate_recovered_from_ledger", content_hash=record.content_hash, tx_ref=record.ledger_tx_ref)
        return record

    def _issuer_name(self, wallet):
        # type: (str) -> str
        return (
            AuthorizedIssuer.objects.using(self.using).filter(wallet_address=wallet).values_list("name", flat=True).first()
            or ""
        )

    def mark_revoked_from_ledger(self, content_hash):
        # type: (str) -> CertificateRecord|None
        """
        Mirror a ledger-side revocation onto a local ISSUED record.

        :return: The updated record, or None if it was not ISSUED locally
        """
        try:
            return self.revoke(content_hash, actor="reconciler")
        except AlreadyRevokedError:
            return None
