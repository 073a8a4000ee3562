"""Request and response schemas for the CERT-HUB HTTP API."""

from datetime import datetime

from ninja import Field, Schema


class ErrorDetail(Schema):
    message: str
    code: str
    field: str | None = None


class ErrorResponse(Schema):
    error: ErrorDetail


class HealthResponse(Schema):
    status: str
    version: str
    description: str
    build: dict
    ledger: dict


# Identities


class IdentityIn(Schema):
    identity_number: str = Field(..., description="Raw 12-digit identity number, hashed server side and never stored")
    secondary_id: str | None = Field(None, description="Optional 10-character secondary identifier")
    name: str
    wallet_address: str


class IdentityLookupIn(Schema):
    identity_number: str


class WalletMigrationIn(Schema):
    new_wallet: str


class IdentityOut(Schema):
    identity_key: str
    display_name: str
    wallet_address: str
    registered_at: datetime
    updated_at: datetime


# Issuers


class IssuerRequestIn(Schema):
    issuer_name: str
    wallet_address: str
    website: str = ""


class IssuerRequestOut(Schema):
    request_id: int
    issuer_name: str
    website: str
    wallet_address: str
    status: str
    submitted_at: datetime
    resolved_at: datetime | None = None


class IssuerIn(Schema):
    name: str
    wallet_address: str
    website: str = ""
    actor: str = "admin"


class IssuerOut(Schema):
    wallet_address: str
    name: str
    website: str
    status: str
    authorized_at: datetime
    revoked_at: datetime | None = None


class IssuerStatusOut(Schema):
    wallet_address: str
    authorized: bool


# Certificates


class CertificateOut(Schema):
    content_hash: str
    subject_identity_key: str
    subject_wallet: str
    subject_name: str
    issuer_key: str
    issuer_wallet: str
    title: str
    filename: str
    content_ref: str
    ledger_tx_ref: str | None = None
    ledger_block_ref: str | None = None
    status: str
    issued_at: datetime
    revoked_at: datetime | None = None
    needs_attention: bool
    recovered: bool


class RevokeCertificateIn(Schema):
    actor_wallet: str


class VerificationOut(Schema):
    status: str
    content_hash: str
    metadata: dict
    verify_url: str


# Audit


class AuditEventOut(Schema):
    seq: int
    kind: str
    subject_ref: str
    actor: str
    detail: dict
    timestamp: datetime


# Dashboard


class StatsOut(Schema):
    certificates: int
    issued: int
    revoked: int
    needs_attention: int
    identities: int
    active_issuers: int
    pending_requests: int
