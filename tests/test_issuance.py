"""
Tests for the issuance and revocation flows (ledger first, fail closed).
"""

from io import BytesIO

import pytest

from cert_hub.exceptions import (
    AlreadyRevokedError,
    DuplicateCertificateError,
    LedgerRejectedError,
    LedgerUnavailableError,
    NotFoundError,
    UnauthorizedIssuerError,
)
from cert_hub.hashing import content_hash
from cert_hub.ledger.base import OP_REVOKE_CERTIFICATE, OP_REVOKE_ISSUER_ROLE, Q_VERIFY_CERTIFICATE
from cert_hub.models import AuditEvent, CertificateRecord
from tests.conftest import ISSUER_WALLET, OTHER_ISSUER_WALLET, OTHER_STUDENT_NUMBER


def test_issue_certificate(service, ledger, certificate, document, student):
    assert certificate.content_hash == content_hash(document)
    assert certificate.subject_wallet == student.wallet_address
    assert certificate.subject_name == "Asha Rao"
    assert certificate.issuer_key == "Test University"
    assert certificate.is_confirmed

    state = ledger.query_state(Q_VERIFY_CERTIFICATE, {"content_hash": certificate.content_hash})
    assert state["exists"]
    assert state["tx_ref"] == certificate.ledger_tx_ref


def test_issue_from_stream(service, issuer, student, document):
    record = service.issue_certificate(BytesIO(document), student.identity_key, ISSUER_WALLET, "DS", filename="ds.pdf")
    assert record.content_hash == content_hash(document)
    assert record.filename == "ds.pdf"


def test_issue_unknown_subject(service, issuer, document):
    from cert_hub.hashing import IdentityHasher

    with pytest.raises(NotFoundError):
        service.issue_certificate(document, IdentityHasher().derive(OTHER_STUDENT_NUMBER), ISSUER_WALLET, "DS")


def test_issue_unauthorized_issuer(service, ledger, student, document):
    with pytest.raises(UnauthorizedIssuerError) as exc_info:
        service.issue_certificate(document, student.identity_key, OTHER_ISSUER_WALLET, "DS")
    assert exc_info.value.status_code == 403
    assert not CertificateRecord.objects.exists()
    assert ledger.query_state(Q_VERIFY_CERTIFICATE, {"content_hash": content_hash(document)}) == {"exists": False}


def test_issue_with_role_revoked_on_ledger(service, ledger, issuer, student, document):
    """The ledger role decides, a stale local ACTIVE row does not authorize."""
    ledger.execute(OP_REVOKE_ISSUER_ROLE, {"wallet": ISSUER_WALLET})
    with pytest.raises(UnauthorizedIssuerError):
        service.issue_certificate(document, student.identity_key, ISSUER_WALLET, "DS")


def test_issue_duplicate_document(service, certificate, student, document):
    with pytest.raises(DuplicateCertificateError) as exc_info:
        service.issue_certificate(document, student.identity_key, ISSUER_WALLET, "Again")
    assert exc_info.value.existing_status == "ISSUED"
    assert CertificateRecord.objects.count() == 1


def test_issue_ledger_unavailable_writes_nothing(service, ledger, issuer, student, document):
    # Role check answered from cache while the ledger is down
    ledger.set_available(False)
    with pytest.raises(LedgerUnavailableError):
        service.issue_certificate(document, student.identity_key, ISSUER_WALLET, "DS")
    assert not CertificateRecord.objects.exists()
    assert not AuditEvent.objects.filter(kind=AuditEvent.Kind.CERT_ISSUED).exists()


def test_issue_finality_timeout_writes_nothing(service, ledger, issuer, student, document):
    ledger.set_latency(ledger.timeout)
    with pytest.raises(LedgerUnavailableError):
        service.issue_certificate(document, student.identity_key, ISSUER_WALLET, "DS")
    assert not CertificateRecord.objects.exists()


def test_issue_local_failure_after_anchor_is_recovered(service, ledger, issuer, student, document, monkeypatch):
    """A failing local write leaves a ledger orphan that the sweep recovers."""

    def broken_issue(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(service.store, "issue", broken_issue)
    with pytest.raises(RuntimeError):
        service.issue_certificate(document, student.identity_key, ISSUER_WALLET, "DS")
    monkeypatch.undo()

    assert not CertificateRecord.objects.exists()
    report = service.reconciler.sweep()
    assert report.recovered == [content_hash(document)]
    assert CertificateRecord.objects.get().issuer_key == "Test University"


def test_revoke_certificate(service, ledger, certificate):
    record = service.revoke_certificate(certificate.content_hash, ISSUER_WALLET)
    assert record.status == CertificateRecord.Status.REVOKED
    assert ledger.query_state(Q_VERIFY_CERTIFICATE, {"content_hash": certificate.content_hash})["revoked"]


def test_revoke_certificate_twice(service, certificate):
    service.revoke_certificate(certificate.content_hash, ISSUER_WALLET)
    with pytest.raises(AlreadyRevokedError):
        service.revoke_certificate(certificate.content_hash, ISSUER_WALLET)


def test_revoke_certificate_unknown(service, issuer):
    with pytest.raises(NotFoundError):
        service.revoke_certificate("0x" + "22" * 32, ISSUER_WALLET)


def test_revoke_certificate_by_other_issuer(service, certificate):
    service.issuers.authorize("Other College", OTHER_ISSUER_WALLET)
    with pytest.raises(UnauthorizedIssuerError):
        service.revoke_certificate(certificate.content_hash, OTHER_ISSUER_WALLET)


def test_revoke_certificate_after_issuer_revoked(service, certificate):
    service.issuers.revoke_issuer(ISSUER_WALLET)
    with pytest.raises(UnauthorizedIssuerError):
        service.revoke_certificate(certificate.content_hash, ISSUER_WALLET)


def test_revoke_certificate_ledger_failure_keeps_issued(service, ledger, certificate):
    ledger.fail_next(OP_REVOKE_CERTIFICATE, LedgerRejectedError("reverted", operation=OP_REVOKE_CERTIFICATE))
    with pytest.raises(LedgerRejectedError):
        service.revoke_certificate(certificate.content_hash, ISSUER_WALLET)
    assert CertificateRecord.objects.get().status == CertificateRecord.Status.ISSUED


def test_every_transition_appends_one_event(service, certificate):
    service.revoke_certificate(certificate.content_hash, ISSUER_WALLET)
    kinds = list(AuditEvent.objects.order_by("seq").values_list("kind", flat=True))
    assert kinds == [
        AuditEvent.Kind.ISSUER_AUTHORIZED,
        AuditEvent.Kind.IDENTITY_REGISTERED,
        AuditEvent.Kind.CERT_ISSUED,
        AuditEvent.Kind.CERT_REVOKED,
    ]


def test_stats_counts_local_state(service, certificate):
    service.store.flag(certificate.content_hash, "Not anchored on ledger")
    service.issuers.submit_request("Acme U", "0x" + "c2" * 20)

    totals = service.stats()

    assert totals["certificates"] == totals["issued"] == 1
    assert totals["needs_attention"] == 1
    assert totals["revoked"] == 0
    assert totals["identities"] == 1
    assert totals["active_issuers"] == 1
    assert totals["pending_requests"] == 1
