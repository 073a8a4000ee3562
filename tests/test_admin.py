"""Tests for Django admin configuration."""

from unittest.mock import Mock

import pytest
from django.contrib.admin.sites import site
from django.test import RequestFactory

from cert_hub.admin import AuditEventAdmin, CertificateRecordAdmin, ReadOnlyAdmin
from cert_hub.models import AuditEvent, AuthorizedIssuer, CertificateRecord, Identity, IssuerRequest


@pytest.fixture
def rf():
    # type: () -> RequestFactory
    """Request factory fixture."""
    return RequestFactory()


@pytest.fixture
def certificate_admin():
    # type: () -> CertificateRecordAdmin
    return CertificateRecordAdmin(CertificateRecord, site)


@pytest.mark.parametrize("model", [Identity, CertificateRecord, IssuerRequest, AuthorizedIssuer, AuditEvent])
def test_models_registered_read_only(model):
    # type: (type) -> None
    assert site.is_registered(model)
    assert isinstance(site._registry[model], ReadOnlyAdmin)


def test_no_add_or_delete(rf, certificate_admin):
    request = rf.get("/admin/")
    request.user = Mock()
    assert certificate_admin.has_add_permission(request) is False
    assert certificate_admin.has_delete_permission(request) is False
    assert certificate_admin.has_delete_permission(request, Mock()) is False


def test_change_only_for_viewing(rf, certificate_admin):
    assert certificate_admin.has_change_permission(rf.get("/admin/")) is True
    assert certificate_admin.has_change_permission(rf.post("/admin/")) is False


def test_delete_selected_action_removed(rf, certificate_admin, admin_user):
    request = rf.get("/admin/")
    request.user = admin_user
    assert "delete_selected" not in certificate_admin.get_actions(request)


def test_status_display(certificate_admin):
    issued = CertificateRecord(status=CertificateRecord.Status.ISSUED)
    revoked = CertificateRecord(status=CertificateRecord.Status.REVOKED)
    assert "green" in certificate_admin.status_display(issued)
    assert "red" in certificate_admin.status_display(revoked)


def test_confirmed(certificate_admin):
    assert certificate_admin.confirmed(CertificateRecord(ledger_tx_ref="0xabc", ledger_block_ref="1")) is True
    assert certificate_admin.confirmed(CertificateRecord()) is False


def test_content_hash_short(certificate_admin):
    record = CertificateRecord(content_hash="0x" + "ab" * 32)
    html = certificate_admin.content_hash_short(record)
    assert 'title="0x' in html
    assert "..." in html


def test_audit_detail_formatted():
    event_admin = AuditEventAdmin(AuditEvent, site)
    html = event_admin.detail_formatted(AuditEvent(detail={"reason": "Not anchored on ledger"}))
    assert "<pre" in html
    assert "Not anchored on ledger" in html


def test_admin_changelist_renders(admin_client, certificate):
    response = admin_client.get("/admin/cert_hub/certificaterecord/")
    assert response.status_code == 200
    assert "Distributed Systems" in response.content.decode()
