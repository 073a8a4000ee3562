"""
Tests for ledger-first verification.
"""

import pytest

from cert_hub.exceptions import InvalidInputError, LedgerUnavailableError
from cert_hub.links import expand_verify_url
from cert_hub.verification import REVOKED, UNKNOWN, VALID, VerificationEngine
from tests.conftest import ISSUER_WALLET, STUDENT_WALLET

NEVER_ISSUED = "0x" + "22" * 32


@pytest.fixture
def engine(service):
    return VerificationEngine(service.reconciler, service.store, verify_url="https://{domain}/verify/{content_hash}")


def test_issue_verify_revoke_verify(service, engine, certificate):
    """Issued is VALID, revoked is REVOKED, never issued is UNKNOWN."""
    result = engine.verify(certificate.content_hash)
    assert result.status == VALID
    assert result.is_valid

    service.revoke_certificate(certificate.content_hash, ISSUER_WALLET)
    assert engine.verify(certificate.content_hash).status == REVOKED

    unknown = engine.verify(NEVER_ISSUED)
    assert unknown.status == UNKNOWN
    assert unknown.metadata == {}
    assert unknown.verify_url == f"https://testserver/verify/{NEVER_ISSUED}"


def test_verify_metadata(engine, certificate):
    result = engine.verify(certificate.content_hash)
    assert result.metadata["subject_name"] == "Asha Rao"
    assert result.metadata["subject_wallet"] == STUDENT_WALLET
    assert result.metadata["issuer_wallet"] == ISSUER_WALLET
    assert result.metadata["issuer_name"] == "Test University"
    assert result.metadata["title"] == "Distributed Systems"
    assert result.metadata["tx_ref"] == certificate.ledger_tx_ref
    assert result.metadata["anchored_at"] is not None
    assert result.verify_url == f"https://testserver/verify/{certificate.content_hash}"


def test_verify_is_idempotent(engine, certificate):
    assert engine.verify(certificate.content_hash) == engine.verify(certificate.content_hash)


def test_verify_accepts_uppercase_hash(engine, certificate):
    result = engine.verify(certificate.content_hash.upper().replace("0X", "0x"))
    assert result.status == VALID
    assert result.content_hash == certificate.content_hash


def test_local_only_record_is_unknown(service, engine):
    """A record that exists only locally is never reported as valid."""
    service.store.issue(
        NEVER_ISSUED,
        subject_identity_key="0x" + "5a" * 32,
        subject_wallet=STUDENT_WALLET,
        issuer_wallet=ISSUER_WALLET,
        title="Forged",
    )
    assert engine.verify(NEVER_ISSUED).status == UNKNOWN


def test_local_revocation_does_not_override_ledger(service, engine, certificate):
    """Status comes from the ledger even when the local record disagrees."""
    service.store.revoke(certificate.content_hash)
    assert engine.verify(certificate.content_hash).status == VALID


def test_verify_document(engine, certificate, document):
    assert engine.verify_document(document).status == VALID
    assert engine.verify_document(document + b"tampered").status == UNKNOWN


def test_verify_malformed_hash(engine):
    with pytest.raises(InvalidInputError):
        engine.verify("0xHASH2")


def test_verify_ledger_unavailable_is_not_answered_locally(engine, ledger, certificate):
    ledger.set_available(False)
    with pytest.raises(LedgerUnavailableError):
        engine.verify(certificate.content_hash)


def test_result_as_dict(engine, certificate):
    data = engine.verify(certificate.content_hash).as_dict()
    assert set(data) == {"status", "content_hash", "metadata", "verify_url"}


def test_expand_verify_url_template():
    url = expand_verify_url("https://{domain}/verify/{content_hash}", "certs.example.org", "0xabc")
    assert url == "https://certs.example.org/verify/0xabc"


def test_expand_verify_url_append():
    assert expand_verify_url("https://certs.example.org/v", "ignored", "0xabc") == "https://certs.example.org/v/0xabc"
    assert expand_verify_url("https://certs.example.org/v?h=", "ignored", "0xabc") == "https://certs.example.org/v?h=0xabc"
