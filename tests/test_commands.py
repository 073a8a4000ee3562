"""Tests for the reconcile_ledger management command."""

from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from cert_hub.ledger.base import OP_GRANT_ISSUER_ROLE, OP_ISSUE_CERTIFICATE
from cert_hub.models import CertificateRecord
from tests.conftest import ISSUER_WALLET, STUDENT_WALLET

HASH_1 = "0x" + "11" * 32


@pytest.fixture
def patched_ledger(ledger, monkeypatch):
    monkeypatch.setattr("cert_hub.management.commands.reconcile_ledger.get_ledger_client", lambda: ledger)
    return ledger


def test_reconcile_recovers_and_reports(db, patched_ledger):
    patched_ledger.execute(OP_GRANT_ISSUER_ROLE, {"wallet": ISSUER_WALLET})
    patched_ledger.execute(
        OP_ISSUE_CERTIFICATE,
        {"content_hash": HASH_1, "subject_wallet": STUDENT_WALLET, "issuer": ISSUER_WALLET, "title": "DS"},
    )
    out = StringIO()

    call_command("reconcile_ledger", stdout=out)

    assert "Reconciliation finished" in out.getvalue()
    assert "recovered=1" in out.getvalue()
    assert CertificateRecord.objects.get().recovered


def test_reconcile_reports_flagged(db, patched_ledger):
    CertificateRecord.objects.create(
        content_hash=HASH_1,
        subject_identity_key="0x" + "5a" * 32,
        subject_wallet=STUDENT_WALLET,
        issuer_wallet=ISSUER_WALLET,
        title="DS",
    )
    out = StringIO()

    call_command("reconcile_ledger", "--limit", "10", stdout=out)

    assert f"Needs attention: {HASH_1}" in out.getvalue()


def test_reconcile_ledger_unavailable(db, patched_ledger):
    patched_ledger.set_available(False)
    with pytest.raises(CommandError, match="Ledger unavailable"):
        call_command("reconcile_ledger", stdout=StringIO())
