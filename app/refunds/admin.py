"""
Refunds admin configuration.

Refunds change only through reconciliation, so status and gateway
snapshots are read-only here.
"""

from django.contrib import admin

from refunds.models import Payment, Refund, WebhookEvent


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """Mirrored gateway charges and their refund rollup status."""

    list_display = [
        "charge_id",
        "amount",
        "currency",
        "status",
        "customer_email",
        "created_at",
    ]
    list_filter = ["status", "currency", "created_at"]
    search_fields = ["charge_id", "customer_email"]
    readonly_fields = ["id", "created_at", "updated_at", "gateway_response"]
    ordering = ["-created_at"]


@admin.register(Refund)
class RefundAdmin(admin.ModelAdmin):
    """
    Admin configuration for Refund.

    Provides visibility into refund status and history.
    """

    list_display = [
        "refund_id",
        "charge_id",
        "amount",
        "currency",
        "type",
        "status",
        "refunded_at",
        "created_at",
    ]
    list_filter = ["status", "type", "currency", "created_at"]
    search_fields = ["refund_id", "charge_id", "reference"]
    readonly_fields = [
        "id",
        "refund_id",
        "status",
        "refunded_at",
        "gateway_response",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "refund_id", "charge_id", "status"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("amount", "currency", "type"),
            },
        ),
        (
            "Refund Details",
            {
                "fields": ("reason", "description", "reference", "metadata"),
            },
        ),
        (
            "Gateway Snapshot",
            {
                "fields": ("gateway_response",),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("refunded_at", "created_at", "updated_at"),
            },
        ),
    )


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Webhook events are immutable once received.
    """

    list_display = [
        "id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["id", "payload_digest", "event_type"]
    readonly_fields = [
        "id",
        "payload_digest",
        "event_type",
        "payload",
        "processed_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
