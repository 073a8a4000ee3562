"""
In-process sandbox ledger.

Mimics the CertificateRegistry contract closely enough to develop and test
the engine without a node: issuer role checks, duplicate-hash rejection,
one-way revocation, monotonically growing block numbers. It can be switched
offline, slowed past the timeout, or told to fail the next call to exercise
the engine's failure paths.

NOT an immutable ledger: state lives in memory and dies with the process.
"""

import hashlib
import threading
import time

import jcs
import structlog

from cert_hub.exceptions import LedgerRejectedError, LedgerUnavailableError
from cert_hub.ledger.base import (
    OP_GRANT_ISSUER_ROLE,
    OP_ISSUE_CERTIFICATE,
    OP_REVOKE_CERTIFICATE,
    OP_REVOKE_ISSUER_ROLE,
    Q_LIST_ANCHORED,
    Q_VERIFY_CERTIFICATE,
    LedgerClient,
)

logger = structlog.get_logger()


class SandboxLedger(LedgerClient):
    """Thread-safe in-memory ledger with smart-contract-like execution."""

    def __init__(self, timeout=30.0, admin=None, issuers=()):
        # type: (float, str|None, tuple|list) -> None
        """
        :param timeout: Seconds any call may take before it is reported unavailable
        :param admin: Contract admin wallet, informational only
        :param issuers: Wallets holding the issuer role from genesis
        """
        super().__init__(timeout)
        self.admin = (admin or "").lower()
        self._lock = threading.RLock()
        self._roles = {w.lower() for w in issuers}
        self._certificates = {}  # type: dict[str, dict]
        self._transactions = {}  # type: dict[str, str]
        self._block = 0
        self._nonce = 0
        self._available = True
        self._latency = 0.0
        self._failures = {}  # type: dict[str, Exception]

    # ── Fault injection ───────────────────────────────────────────

    def set_available(self, available):
        # type: (bool) -> None
        """Simulate a ledger outage (every call raises ``LedgerUnavailableError``)."""
        self._available = bool(available)

    def set_latency(self, seconds):
        # type: (float) -> None
        """
        Simulate slow finality.

        When latency reaches the timeout, writes are still applied (the
        transaction lands) but ``await_finality`` reports a timeout.
        """
        self._latency = float(seconds)

    def fail_next(self, op, error):
        # type: (str, Exception) -> None
        """Make the next call of ``op`` raise ``error`` without touching state."""
        with self._lock:
            self._failures[op] = error

    def _check(self, op):
        # type: (str) -> None
        if not self._available:
            raise LedgerUnavailableError("Sandbox ledger is offline", operation=op)
        with self._lock:
            error = self._failures.pop(op, None)
        if error is not None:
            raise error

    # ── LedgerClient ──────────────────────────────────────────────

    def submit_transaction(self, op, args):
        # type: (str, dict) -> str
        self._check(op)
        with self._lock:
            self._apply(op, args)
            self._nonce += 1
            self._block += 1
            payload = jcs.canonicalize({"op": op, "args": args, "nonce": self._nonce})
            tx_ref = "0x" + hashlib.sha256(payload).hexdigest()
            self._transactions[tx_ref] = str(self._block)
            if op == OP_ISSUE_CERTIFICATE:
                entry = self._certificates[args["content_hash"].lower()]
                entry["tx_ref"] = tx_ref
                entry["block_ref"] = str(self._block)
        logger.debug("sandbox_tx_applied", op=op, tx_ref=tx_ref, block=self._block)
        return tx_ref

    def await_finality(self, tx_ref):
        # type: (str) -> str
        self._check("awaitFinality")
        if self._latency >= self.timeout:
            raise LedgerUnavailableError(
                f"Timed out after {self.timeout}s waiting for finality of {tx_ref}", operation="awaitFinality"
            )
        if self._latency:
            time.sleep(self._latency)
        with self._lock:
            block_ref = self._transactions.get(tx_ref)
        if block_ref is None:
            raise LedgerRejectedError(f"Unknown transaction: {tx_ref}", operation="awaitFinality")
        return block_ref

    def query_state(self, op, args):
        # type: (str, dict) -> object
        self._check(op)
        with self._lock:
            if op == Q_VERIFY_CERTIFICATE:
                entry = self._certificates.get(args["content_hash"].lower())
                if entry is None:
                    return {"exists": False}
                return {"exists": True, **entry}
            if op == Q_LIST_ANCHORED:
                offset = int(args.get("offset", 0))
                limit = args.get("limit")
                entries = sorted(self._certificates.values(), key=lambda e: int(e["block_ref"] or 0))
                entries = entries[offset:]
                if limit:
                    entries = entries[: int(limit)]
                return [{"exists": True, **e} for e in entries]
        raise LedgerRejectedError(f"Unsupported query: {op}", operation=op)

    def has_role(self, wallet):
        # type: (str) -> bool
        self._check("hasRole")
        with self._lock:
            return wallet.lower() in self._roles

    def health(self):
        # type: () -> dict
        return {
            "backend": type(self).__name__,
            "available": self._available,
            "block": self._block,
            "certificates": len(self._certificates),
        }

    # ── Contract semantics ────────────────────────────────────────

    def _apply(self, op, args):
        # type: (str, dict) -> None
        """Execute a contract call against in-memory state or revert."""
        if op == OP_GRANT_ISSUER_ROLE:
            self._roles.add(args["wallet"].lower())
            return

        if op == OP_REVOKE_ISSUER_ROLE:
            self._roles.discard(args["wallet"].lower())
            return

        if op == OP_ISSUE_CERTIFICATE:
            issuer = args["issuer"].lower()
            if issuer not in self._roles:
                raise LedgerRejectedError("Not authorized: caller lacks ISSUER_ROLE", operation=op)
            content_hash = args["content_hash"].lower()
            if content_hash in self._certificates:
                raise LedgerRejectedError("Certificate already exists", operation=op)
            if not args.get("subject_wallet"):
                raise LedgerRejectedError("Invalid student wallet", operation=op)
            self._certificates[content_hash] = {
                "content_hash": content_hash,
                "subject_wallet": args["subject_wallet"].lower(),
                "subject_identity_key": args.get("subject_identity_key", "").lower(),
                "subject_name": args.get("subject_name", ""),
                "title": args.get("title", ""),
                "content_ref": args.get("content_ref", ""),
                "issuer": issuer,
                "timestamp": int(time.time()),
                "revoked": False,
                "tx_ref": "",
                "block_ref": "",
            }
            return

        if op == OP_REVOKE_CERTIFICATE:
            issuer = args["issuer"].lower()
            if issuer not in self._roles:
                raise LedgerRejectedError("Not authorized: caller lacks ISSUER_ROLE", operation=op)
            entry = self._certificates.get(args["content_hash"].lower())
            if entry is None:
                raise LedgerRejectedError("Certificate does not exist", operation=op)
            if entry["revoked"]:
                raise LedgerRejectedError("Certificate already revoked", operation=op)
            entry["revoked"] = True
            return

        raise LedgerRejectedError(f"Unsupported operation: {op}", operation=op)
