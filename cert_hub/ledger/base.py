"""
Abstract interface to the external immutable ledger.

The engine only ever talks to the ledger through ``LedgerClient``. Concrete
clients translate their transport failures into ``LedgerUnavailableError``
(transient) and contract refusals into ``LedgerRejectedError`` (permanent).
"""

import abc
from dataclasses import dataclass, field
from datetime import UTC, datetime

# Contract operations
OP_ISSUE_CERTIFICATE = "issueCertificate"
OP_REVOKE_CERTIFICATE = "revokeCertificate"
OP_GRANT_ISSUER_ROLE = "grantIssuerRole"
OP_REVOKE_ISSUER_ROLE = "revokeIssuerRole"

# Read-only queries
Q_VERIFY_CERTIFICATE = "verifyCertificate"
Q_LIST_ANCHORED = "listAnchored"

WRITE_OPERATIONS = frozenset({OP_ISSUE_CERTIFICATE, OP_REVOKE_CERTIFICATE, OP_GRANT_ISSUER_ROLE, OP_REVOKE_ISSUER_ROLE})
READ_OPERATIONS = frozenset({Q_VERIFY_CERTIFICATE, Q_LIST_ANCHORED})


@dataclass(frozen=True)
class LedgerReceipt:
    """Finality-confirmed result of a ledger write."""

    tx_ref: str
    block_ref: str


@dataclass(frozen=True)
class LedgerStatus:
    """
    Authoritative ledger view of one content hash.

    Only ``exists`` and ``revoked`` decide verification outcomes, the other
    fields are informational and may be empty depending on the ledger.
    """

    content_hash: str
    exists: bool
    revoked: bool = False
    subject_name: str = ""
    subject_wallet: str = ""
    subject_identity_key: str = ""
    title: str = ""
    content_ref: str = ""
    issuer_ref: str = ""
    anchored_at: datetime | None = None
    tx_ref: str = ""
    block_ref: str = ""
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_state(cls, content_hash, state):
        # type: (str, dict) -> LedgerStatus
        """
        Build a status from the plain dict returned by ``query_state(verifyCertificate)``.

        :param content_hash: The queried hash
        :param state: Mapping with at least ``exists``; ``timestamp`` is unix seconds
        """
        timestamp = state.get("timestamp") or 0
        anchored_at = datetime.fromtimestamp(int(timestamp), tz=UTC) if timestamp else None
        return cls(
            content_hash=content_hash,
            exists=bool(state.get("exists")),
            revoked=bool(state.get("revoked")),
            subject_name=state.get("subject_name") or "",
            subject_wallet=(state.get("subject_wallet") or "").lower(),
            subject_identity_key=(state.get("subject_identity_key") or "").lower(),
            title=state.get("title") or "",
            content_ref=state.get("content_ref") or "",
            issuer_ref=(state.get("issuer") or "").lower(),
            anchored_at=anchored_at,
            tx_ref=state.get("tx_ref") or "",
            block_ref=str(state.get("block_ref") or ""),
        )


class LedgerClient(abc.ABC):
    """
    Minimal contract-call surface the engine needs from a ledger.

    Every call must honour ``timeout`` (seconds) and must raise, never return
    a partial success.
    """

    def __init__(self, timeout=30.0):
        # type: (float) -> None
        self.timeout = float(timeout)

    @abc.abstractmethod
    def submit_transaction(self, op, args):
        # type: (str, dict) -> str
        """
        Submit a state-changing contract call.

        :param op: One of ``WRITE_OPERATIONS``
        :param args: Operation arguments
        :return: Transaction reference
        :raises LedgerUnavailableError: On transport failure or timeout
        :raises LedgerRejectedError: If the ledger refuses the call
        """

    @abc.abstractmethod
    def await_finality(self, tx_ref):
        # type: (str) -> str
        """
        Block until the transaction is final.

        :return: Block reference the transaction was finalized in
        """

    @abc.abstractmethod
    def query_state(self, op, args):
        # type: (str, dict) -> object
        """Run a read-only query (``READ_OPERATIONS``) and return plain Python values."""

    @abc.abstractmethod
    def has_role(self, wallet):
        # type: (str) -> bool
        """Whether ``wallet`` currently holds the issuer role."""

    def execute(self, op, args):
        # type: (str, dict) -> LedgerReceipt
        """Submit a transaction and wait for its finality."""
        tx_ref = self.submit_transaction(op, args)
        block_ref = self.await_finality(tx_ref)
        return LedgerReceipt(tx_ref=tx_ref, block_ref=str(block_ref))

    def health(self):
        # type: () -> dict
        """Return a small health summary; implementations may override."""
        return {"backend": type(self).__name__}
