"""
Bridge between the certificate store and the ledger.

The reconciler owns no state. It talks to the ledger and annotates local
records only through ``CertificateStore`` methods.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field

import structlog

from cert_hub.exceptions import DuplicateCertificateError, LedgerUnavailableError, NotFoundError
from cert_hub.ledger.base import (
    OP_ISSUE_CERTIFICATE,
    OP_REVOKE_CERTIFICATE,
    Q_LIST_ANCHORED,
    Q_VERIFY_CERTIFICATE,
    LedgerReceipt,
    LedgerStatus,
)
from cert_hub.models import CertificateRecord
from cert_hub.validators import validate_content_hash

logger = structlog.get_logger()

PAGE_SIZE = 100

# Receipt returned by anchoring operations
AnchorReceipt = LedgerReceipt


@dataclass
class SweepReport:
    """Outcome counters of one reconciliation sweep."""

    confirmed: list[str] = field(default_factory=list)
    flagged: list[str] = field(default_factory=list)
    recovered: list[str] = field(default_factory=list)
    revoked: list[str] = field(default_factory=list)
    examined: int = 0

    @property
    def changed(self):
        # type: () -> int
        return len(self.confirmed) + len(self.flagged) + len(self.recovered) + len(self.revoked)

    def as_dict(self):
        # type: () -> dict
        return {
            "examined": self.examined,
            "confirmed": len(self.confirmed),
            "flagged": len(self.flagged),
            "recovered": len(self.recovered),
            "revoked": len(self.revoked),
        }


class LedgerReconciler:
    """Anchors and queries certificates on the ledger and heals local divergence."""

    def __init__(self, ledger, store):
        # type: (object, object) -> None
        """
        :param ledger: LedgerClient
        :param store: CertificateStore that receives all local annotations
        """
        self.ledger = ledger
        self.store = store

    def anchor(self, content_hash, subject_wallet, subject_identity_key, title, issuer_wallet, subject_name="", content_ref=""):
        # type: (str, str, str, str, str, str, str) -> AnchorReceipt
        """
        Record a certificate on the ledger and wait for finality.

        :return: Receipt with transaction and block references
        :raises LedgerUnavailableError: On transport failure or timeout (retryable)
        :raises LedgerRejectedError: If the ledger refuses the anchor (permanent)
        """
        args = {
            "content_hash": content_hash,
            "subject_wallet": subject_wallet,
            "subject_identity_key": subject_identity_key,
            "subject_name": subject_name,
            "title": title,
            "content_ref": content_ref,
            "issuer": issuer_wallet,
        }
        try:
            receipt = self.ledger.execute(OP_ISSUE_CERTIFICATE, args)
        except LedgerUnavailableError:
            logger.warning("ledger_anchor_unavailable", content_hash=content_hash)
            raise
        logger.info("ledger_anchor_confirmed", content_hash=content_hash, tx_ref=receipt.tx_ref, block_ref=receipt.block_ref)
        return receipt

    def revoke(self, content_hash, issuer_wallet):
        # type: (str, str) -> AnchorReceipt
        """Record a revocation on the ledger and wait for finality."""
        receipt = self.ledger.execute(OP_REVOKE_CERTIFICATE, {"content_hash": content_hash, "issuer": issuer_wallet})
        logger.info("ledger_revocation_confirmed", content_hash=content_hash, tx_ref=receipt.tx_ref)
        return receipt

    def query_status(self, content_hash):
        # type: (str) -> LedgerStatus
        """
        Authoritative ledger view of a content hash.

        :raises InvalidInputError: If the hash is malformed
        :raises NotFoundError: If the ledger has never seen the hash
        :raises LedgerUnavailableError: If the ledger cannot be reached
        """
        content_hash = validate_content_hash(content_hash)
        state = self.ledger.query_state(Q_VERIFY_CERTIFICATE, {"content_hash": content_hash})
        status = LedgerStatus.from_state(content_hash, state)
        if not status.exists:
            raise NotFoundError(
                f"Certificate not anchored: {content_hash}", resource_type="certificate", resource_id=content_hash
            )
        return status

    def _anchored_pages(self):
        # type: () -> Iterator[list[LedgerStatus]]
        """Yield every anchored certificate the ledger knows, one page at a time."""
        offset = 0
        while True:
            page = self.ledger.query_state(Q_LIST_ANCHORED, {"offset": offset, "limit": PAGE_SIZE})
            if page:
                yield [LedgerStatus.from_state(state["content_hash"].lower(), state) for state in page]
            offset += len(page)
            if len(page) < PAGE_SIZE:
                return

    def _settle(self, content_hash, status, report):
        # type: (str, LedgerStatus, SweepReport) -> None
        """Confirm or flag one unconfirmed local record from its ledger status."""
        if status.tx_ref and status.block_ref:
            self.store.confirm(content_hash, status.tx_ref, status.block_ref)
            report.confirmed.append(content_hash)
        elif self.store.flag(content_hash, "Anchored on ledger without finality references"):
            report.flagged.append(content_hash)

    def sweep(self, limit=None):
        # type: (int|None) -> SweepReport
        """
        Reconcile the local store with the ledger.

        - unconfirmed local records the ledger knows get the ledger references
        - unconfirmed local records the ledger does not know are flagged, never deleted
        - ledger entries without a local record are recovered from ledger data
        - ledger revocations missing locally are mirrored

        The whole anchored range is walked on every sweep, so entries beyond
        ``limit`` are reached by the following sweeps. Committed progress is
        kept if the ledger becomes unavailable mid-sweep.

        :param limit: Upper bound on unconfirmed records examined and on
            ledger entries healed (recovered plus mirrored revocations)
        :raises LedgerUnavailableError: If the ledger cannot be reached
        """
        report = SweepReport()
        log = logger.bind(limit=limit)
        log.info("reconciliation_started")

        def budget_left():
            # type: () -> bool
            return not limit or len(report.recovered) + len(report.revoked) < limit

        try:
            pending = [record.content_hash for record in self.store.pending_confirmation(limit)]
            unsettled = set(pending)
            report.examined += len(pending)

            for page in self._anchored_pages():
                for status in page:
                    if status.content_hash in unsettled:
                        unsettled.discard(status.content_hash)
                        self._settle(status.content_hash, status, report)

                local = self._local_statuses([status.content_hash for status in page])
                for status in page:
                    if not budget_left():
                        break
                    report.examined += 1
                    local_status = local.get(status.content_hash)
                    if local_status is None:
                        try:
                            self.store.recover(status)
                            report.recovered.append(status.content_hash)
                        except DuplicateCertificateError:
                            # Local write landed concurrently
                            continue
                    elif status.revoked and local_status == CertificateRecord.Status.ISSUED:
                        if self.store.mark_revoked_from_ledger(status.content_hash) is not None:
                            report.revoked.append(status.content_hash)

                if not budget_left():
                    break

            # Not seen in the walked range, ask for each hash directly
            for content_hash in pending:
                if content_hash not in unsettled:
                    continue
                try:
                    status = self.query_status(content_hash)
                except NotFoundError:
                    if self.store.flag(content_hash, "Not anchored on ledger"):
                        report.flagged.append(content_hash)
                    continue
                self._settle(content_hash, status, report)

        except LedgerUnavailableError:
            log.error("reconciliation_aborted", **report.as_dict())
            raise

        log.info("reconciliation_finished", **report.as_dict())
        return report

    def _local_statuses(self, hashes):
        # type: (list[str]) -> dict[str, str]
        """Map content hash to local status for the hashes that exist locally."""
        statuses = {}  # type: dict[str, str]
        for i in range(0, len(hashes), PAGE_SIZE):
            batch = hashes[i : i + PAGE_SIZE]
            statuses.update(self.store.objects.filter(content_hash__in=batch).values_list("content_hash", "status"))
        return statuses
