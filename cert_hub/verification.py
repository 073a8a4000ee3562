"""
Public authenticity checks.

The ledger alone decides VALID, REVOKED or UNKNOWN. Local records only add
cosmetic metadata and never turn an unknown hash into a valid one.
"""

from dataclasses import dataclass, field

import structlog
from django.conf import settings

from cert_hub.exceptions import NotFoundError
from cert_hub.hashing import content_hash as compute_content_hash
from cert_hub.links import expand_verify_url
from cert_hub.validators import validate_content_hash

logger = structlog.get_logger()

VALID = "VALID"
REVOKED = "REVOKED"
UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class VerificationResult:
    status: str
    content_hash: str
    metadata: dict = field(default_factory=dict)
    verify_url: str = ""

    @property
    def is_valid(self):
        # type: () -> bool
        return self.status == VALID

    def as_dict(self):
        # type: () -> dict
        return {
            "status": self.status,
            "content_hash": self.content_hash,
            "metadata": self.metadata,
            "verify_url": self.verify_url,
        }


class VerificationEngine:
    """Ledger-first verification of content hashes and documents."""

    def __init__(self, reconciler, store, verify_url=None, domain=None):
        # type: (object, object, str|None, str|None) -> None
        """
        :param reconciler: LedgerReconciler providing the authoritative status
        :param store: CertificateStore providing cosmetic metadata
        :param verify_url: URI template for public links, defaults to ``CERT_HUB_VERIFY_URL``
        :param domain: Public domain, defaults to ``CERT_HUB_DOMAIN``
        """
        self.reconciler = reconciler
        self.store = store
        self.verify_url = verify_url or settings.CERT_HUB_VERIFY_URL
        self.domain = domain or settings.CERT_HUB_DOMAIN

    def link(self, content_hash):
        # type: (str) -> str
        """Public verification URL for a content hash."""
        return expand_verify_url(self.verify_url, self.domain, content_hash)

    def verify(self, content_hash):
        # type: (str) -> VerificationResult
        """
        Verify a content hash against the ledger.

        Idempotent: without intervening writes, repeated calls give equal results.

        :raises InvalidInputError: If the hash is malformed
        :raises LedgerUnavailableError: If the ledger cannot be reached
        """
        content_hash = validate_content_hash(content_hash)
        try:
            status = self.reconciler.query_status(content_hash)
        except NotFoundError:
            # A local-only record is not proof of anything
            logger.info("certificate_verified", content_hash=content_hash, status=UNKNOWN)
            return VerificationResult(status=UNKNOWN, content_hash=content_hash, verify_url=self.link(content_hash))

        metadata = {
            "subject_name": status.subject_name,
            "subject_wallet": status.subject_wallet,
            "issuer_wallet": status.issuer_ref,
            "content_ref": status.content_ref,
            "title": status.title,
            "anchored_at": status.anchored_at.isoformat() if status.anchored_at else None,
            "tx_ref": status.tx_ref or None,
            "block_ref": status.block_ref or None,
        }

        try:
            record = self.store.find_by_hash(content_hash)
        except NotFoundError:
            record = None
        if record is not None:
            metadata["issuer_name"] = record.issuer_key
            metadata["title"] = metadata["title"] or record.title
            metadata["filename"] = record.filename
            metadata["tx_ref"] = metadata["tx_ref"] or record.ledger_tx_ref
            metadata["block_ref"] = metadata["block_ref"] or record.ledger_block_ref

        result = VerificationResult(
            status=REVOKED if status.revoked else VALID,
            content_hash=content_hash,
            metadata=metadata,
            verify_url=self.link(content_hash),
        )
        logger.info("certificate_verified", content_hash=content_hash, status=result.status)
        return result

    def verify_document(self, document):
        # type: (bytes|object) -> VerificationResult
        """Hash a document server side and verify the resulting content hash."""
        return self.verify(compute_content_hash(document))
