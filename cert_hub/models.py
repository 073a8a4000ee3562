"""
Django models for CERT-HUB.

Uniqueness rules live in the schema (primary keys, unique and conditional
unique constraints) so concurrent writers are serialized by the storage
engine rather than by read-then-write checks in application code.
"""

from django.db import models
from django.db.models import Q
from django.utils import timezone

from cert_hub.fields import DigestField, SequenceField, WalletField


class Identity(models.Model):
    """
    A verified person bound to exactly one wallet.

    Stores only the derived identity key, never the raw identity number.
    """

    identity_key = DigestField(unique=True, help_text="SHA-256 of the raw identity number (0x + 64 hex)")
    display_name = models.CharField(max_length=200, help_text="Name shown to issuers and verifiers")
    wallet_address = WalletField(unique=True, help_text="Wallet currently bound to this identity")
    registered_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "cert_identity"
        verbose_name = "Identity"
        verbose_name_plural = "Identities"

    def __str__(self):
        # type: () -> str
        return f"{self.display_name} ({self.wallet_address})"


class CertificateRecord(models.Model):
    """
    Content-addressed certificate record.

    The content hash is the primary key: a document is either not yet anchored
    or anchored exactly once, whatever its later status.
    """

    class Status(models.TextChoices):
        ISSUED = "ISSUED", "Issued"
        REVOKED = "REVOKED", "Revoked"

    content_hash = DigestField(primary_key=True, help_text="SHA-256 of the document bytes (0x + 64 hex)")

    # Subject
    subject_identity_key = DigestField(db_index=True, help_text="Identity key of the certificate holder")
    subject_wallet = WalletField(db_index=True, help_text="Wallet of the certificate holder at issuance")
    subject_name = models.CharField(max_length=200, blank=True, default="")

    # Issuer
    issuer_key = models.CharField(max_length=200, blank=True, default="", help_text="Issuing institution name")
    issuer_wallet = WalletField(db_index=True, help_text="Wallet that anchored the certificate")

    # Document
    title = models.CharField(max_length=300, help_text="Course or credential title")
    filename = models.CharField(max_length=255, blank=True, default="")
    content_ref = models.CharField(max_length=512, blank=True, default="", help_text="Blob store content id")

    # Ledger annotations
    ledger_tx_ref = models.CharField(max_length=128, null=True, blank=True, help_text="Anchoring transaction")
    ledger_block_ref = models.CharField(max_length=128, null=True, blank=True, help_text="Finalized block")

    status = models.CharField(max_length=8, choices=Status.choices, default=Status.ISSUED, db_index=True)
    issued_at = models.DateTimeField(default=timezone.now, db_index=True)
    revoked_at = models.DateTimeField(null=True, blank=True)

    # Reconciliation
    needs_attention = models.BooleanField(
        default=False, db_index=True, help_text="Ledger confirmation missing, needs administrative resolution"
    )
    attention_reason = models.CharField(max_length=300, blank=True, default="")
    recovered = models.BooleanField(default=False, help_text="Rebuilt from ledger data by reconciliation")

    class Meta:
        db_table = "cert_certificate"
        verbose_name = "Certificate"
        verbose_name_plural = "Certificates"
        indexes = [
            models.Index(fields=["subject_wallet", "status", "-issued_at"]),
            models.Index(fields=["issuer_wallet", "-issued_at"]),
        ]

    def __str__(self):
        # type: () -> str
        return f"{self.title} [{self.status}] {self.content_hash[:18]}..."

    @property
    def is_confirmed(self):
        # type: () -> bool
        """Whether the record carries a finality-confirmed ledger reference."""
        return bool(self.ledger_tx_ref) and bool(self.ledger_block_ref)


class IssuerRequest(models.Model):
    """Self-service request of an institution to become an authorized issuer."""

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        APPROVED = "APPROVED", "Approved"
        REJECTED = "REJECTED", "Rejected"

    issuer_name = models.CharField(max_length=200)
    website = models.URLField(max_length=2048, blank=True, default="")
    wallet_address = WalletField(db_index=True)
    status = models.CharField(max_length=8, choices=Status.choices, default=Status.PENDING, db_index=True)
    submitted_at = models.DateTimeField(auto_now_add=True, db_index=True)
    resolved_at = models.DateTimeField(null=True, blank=True)
    resolved_by = models.CharField(max_length=200, blank=True, default="")

    class Meta:
        db_table = "cert_issuer_request"
        verbose_name = "Issuer request"
        verbose_name_plural = "Issuer requests"
        constraints = [
            models.UniqueConstraint(
                fields=["wallet_address"],
                condition=Q(status="PENDING"),
                name="one_pending_request_per_wallet",
            ),
        ]

    def __str__(self):
        # type: () -> str
        return f"Request #{self.pk}: {self.issuer_name} ({self.status})"

    @property
    def request_id(self):
        # type: () -> int
        return self.pk


class AuthorizedIssuer(models.Model):
    """Institution wallet holding (or having held) the issuer role on the ledger."""

    class Status(models.TextChoices):
        ACTIVE = "ACTIVE", "Active"
        REVOKED = "REVOKED", "Revoked"

    wallet_address = WalletField(unique=True)
    name = models.CharField(max_length=200)
    website = models.URLField(max_length=2048, blank=True, default="")
    status = models.CharField(max_length=8, choices=Status.choices, default=Status.ACTIVE, db_index=True)
    source_request = models.ForeignKey(
        IssuerRequest, null=True, blank=True, on_delete=models.SET_NULL, related_name="issuers"
    )
    authorized_at = models.DateTimeField(default=timezone.now)
    revoked_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "cert_authorized_issuer"
        verbose_name = "Authorized issuer"
        verbose_name_plural = "Authorized issuers"

    def __str__(self):
        # type: () -> str
        return f"{self.name} ({self.status})"


class AuditEvent(models.Model):
    """
    Append-only audit log.

    Every state transition appends exactly one event inside the same database
    transaction as the transition itself. Gapless sequence numbers make
    silent deletions detectable.
    """

    class Kind(models.TextChoices):
        IDENTITY_REGISTERED = "IDENTITY_REGISTERED"
        WALLET_MIGRATED = "WALLET_MIGRATED"
        ISSUER_REQUESTED = "ISSUER_REQUESTED"
        ISSUER_APPROVED = "ISSUER_APPROVED"
        ISSUER_REJECTED = "ISSUER_REJECTED"
        ISSUER_AUTHORIZED = "ISSUER_AUTHORIZED"
        ISSUER_REVOKED = "ISSUER_REVOKED"
        CERT_ISSUED = "CERT_ISSUED"
        CERT_REVOKED = "CERT_REVOKED"
        CERT_RECOVERED = "CERT_RECOVERED"
        CERT_FLAGGED = "CERT_FLAGGED"

    seq = SequenceField(primary_key=True, help_text="Gapless sequence number for events")
    kind = models.CharField(max_length=32, choices=Kind.choices, db_index=True)
    subject_ref = models.CharField(max_length=128, db_index=True, help_text="Hash, wallet or request id")
    actor = models.CharField(max_length=200, blank=True, default="")
    detail = models.JSONField(default=dict)
    timestamp = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = "cert_audit_event"
        verbose_name = "Audit event"
        verbose_name_plural = "Audit events"
        indexes = [
            models.Index(fields=["subject_ref", "seq"]),
        ]

    def __str__(self):
        # type: () -> str
        return f"Event #{self.seq}: {self.kind} {self.subject_ref}"

    @property
    def event_id(self):
        # type: () -> int
        return self.seq
