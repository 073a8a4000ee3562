"""Django admin configuration for CERT-HUB models."""

import json
from typing import Any

from django.contrib import admin
from django.http import HttpRequest
from django.utils.html import format_html
from unfold.admin import ModelAdmin

from cert_hub.models import AuditEvent, AuthorizedIssuer, CertificateRecord, Identity, IssuerRequest


def _short(value, length=18):
    # type: (str|None, int) -> str
    """Truncate a hash or wallet with the full value on hover."""
    if not value:
        return "—"
    if len(value) > length:
        return format_html('<span title="{}">{}</span>', value, value[:length] + "...")
    return value


class ReadOnlyAdmin(ModelAdmin):
    """Rows are owned by engine components, the admin only looks."""

    def has_add_permission(self, request):
        # type: (HttpRequest) -> bool
        return False

    def has_change_permission(self, request, obj=None):
        # type: (HttpRequest, Any) -> bool
        """Allow viewing but not editing."""
        return request.method == "GET"

    def has_delete_permission(self, request, obj=None):
        # type: (HttpRequest, Any) -> bool
        return False

    def get_actions(self, request):
        # type: (HttpRequest) -> dict[str, Any]
        actions = super().get_actions(request)
        if "delete_selected" in actions:
            del actions["delete_selected"]
        return actions


@admin.register(Identity)
class IdentityAdmin(ReadOnlyAdmin):
    list_display = ["display_name", "identity_key_short", "wallet_short", "registered_at"]
    search_fields = ["display_name"]
    readonly_fields = ["identity_key", "display_name", "wallet_address", "registered_at", "updated_at"]
    list_per_page = 50
    date_hierarchy = "registered_at"

    def identity_key_short(self, obj):
        # type: (Identity) -> str
        return _short(obj.identity_key)

    identity_key_short.short_description = "Identity key"

    def wallet_short(self, obj):
        # type: (Identity) -> str
        return _short(obj.wallet_address, 12)

    wallet_short.short_description = "Wallet"


@admin.register(CertificateRecord)
class CertificateRecordAdmin(ReadOnlyAdmin):
    """Certificates, with reconciliation flags up front."""

    list_display = [
        "title",
        "content_hash_short",
        "issuer_key",
        "status_display",
        "confirmed",
        "needs_attention",
        "recovered",
        "issued_at",
    ]

    list_filter = ["status", "needs_attention", "recovered"]
    search_fields = ["title", "issuer_key", "subject_name", "ledger_tx_ref"]

    readonly_fields = [
        "content_hash",
        "subject_identity_key",
        "subject_wallet",
        "subject_name",
        "issuer_key",
        "issuer_wallet",
        "title",
        "filename",
        "content_ref",
        "ledger_tx_ref",
        "ledger_block_ref",
        "status",
        "issued_at",
        "revoked_at",
        "needs_attention",
        "attention_reason",
        "recovered",
    ]

    fieldsets = (
        ("Document", {"fields": ("content_hash", "title", "filename", "content_ref")}),
        ("Subject", {"fields": ("subject_name", "subject_identity_key", "subject_wallet")}),
        ("Issuer", {"fields": ("issuer_key", "issuer_wallet")}),
        ("Ledger", {"fields": ("ledger_tx_ref", "ledger_block_ref")}),
        ("Status", {"fields": ("status", "issued_at", "revoked_at")}),
        ("Reconciliation", {"fields": ("needs_attention", "attention_reason", "recovered")}),
    )

    list_per_page = 50
    date_hierarchy = "issued_at"

    def content_hash_short(self, obj):
        # type: (CertificateRecord) -> str
        return _short(obj.content_hash)

    content_hash_short.short_description = "Content hash"
    content_hash_short.admin_order_field = "content_hash"

    def status_display(self, obj):
        # type: (CertificateRecord) -> str
        color = "green" if obj.status == CertificateRecord.Status.ISSUED else "red"
        return format_html('<span style="color: {}; font-weight: bold;">{}</span>', color, obj.status)

    status_display.short_description = "Status"
    status_display.admin_order_field = "status"

    @admin.display(boolean=True, description="Confirmed")
    def confirmed(self, obj):
        # type: (CertificateRecord) -> bool
        return obj.is_confirmed


@admin.register(IssuerRequest)
class IssuerRequestAdmin(ReadOnlyAdmin):
    list_display = ["pk", "issuer_name", "wallet_short", "status", "submitted_at", "resolved_at", "resolved_by"]
    list_filter = ["status"]
    search_fields = ["issuer_name", "website"]
    readonly_fields = [
        "issuer_name",
        "website",
        "wallet_address",
        "status",
        "submitted_at",
        "resolved_at",
        "resolved_by",
    ]
    list_per_page = 50

    def wallet_short(self, obj):
        # type: (IssuerRequest) -> str
        return _short(obj.wallet_address, 12)

    wallet_short.short_description = "Wallet"


@admin.register(AuthorizedIssuer)
class AuthorizedIssuerAdmin(ReadOnlyAdmin):
    list_display = ["name", "wallet_short", "status", "authorized_at", "revoked_at"]
    list_filter = ["status"]
    search_fields = ["name", "website"]
    readonly_fields = ["name", "website", "wallet_address", "status", "source_request", "authorized_at", "revoked_at"]
    list_per_page = 50

    def wallet_short(self, obj):
        # type: (AuthorizedIssuer) -> str
        return _short(obj.wallet_address, 12)

    wallet_short.short_description = "Wallet"


@admin.register(AuditEvent)
class AuditEventAdmin(ReadOnlyAdmin):
    """Admin interface for the audit log (append-only)."""

    list_display = ["seq", "kind", "subject_short", "actor", "timestamp"]
    list_filter = ["kind"]
    list_filter_sheet = False
    list_filter_submit = False
    search_fields = ["seq", "subject_ref", "actor"]
    readonly_fields = ["seq", "kind", "subject_ref", "actor", "timestamp", "detail_formatted"]

    fieldsets = (
        ("Event Information", {"fields": ("seq", "kind", "subject_ref", "actor", "timestamp")}),
        ("Event Data", {"fields": ("detail_formatted",), "classes": ("wide",)}),
    )

    list_per_page = 100
    date_hierarchy = "timestamp"

    def subject_short(self, obj):
        # type: (AuditEvent) -> str
        return _short(obj.subject_ref, 24)

    subject_short.short_description = "Subject"
    subject_short.admin_order_field = "subject_ref"

    def detail_formatted(self, obj):
        # type: (AuditEvent) -> str
        """Display formatted JSON for the event detail."""
        try:
            formatted = json.dumps(obj.detail, indent=2)
            return format_html(
                '<pre style="background: #f5f5f5; padding: 10px; border-radius: 4px; overflow-x: auto;">{}</pre>',
                formatted,
            )
        except (TypeError, ValueError):
            return str(obj.detail)

    detail_formatted.short_description = "Detail"
