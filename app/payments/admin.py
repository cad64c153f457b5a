"""
Payment admin configuration.

This file imports admin configurations from the ledger submodule
and registers payment domain models with the Django admin.

Status changes go through the services; admin actions call them rather
than editing FSM fields.
"""

from django.contrib import admin, messages

from payments.ledger.admin import LedgerEntryAdmin
from payments.models import Payment, ScheduledPayout, SystemSetting, WebhookEvent
from payments.services import PayoutScheduler, get_settings_store

__all__ = [
    "LedgerEntryAdmin",
    "PaymentAdmin",
    "ScheduledPayoutAdmin",
    "SystemSettingAdmin",
    "WebhookEventAdmin",
]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """
    Admin configuration for Payment.

    Read-only view of booking payments and their states.
    """

    list_display = [
        "id",
        "booking",
        "provider",
        "amount_display",
        "status",
        "payment_type",
        "gateway",
        "gateway_type",
        "created_at",
    ]
    list_filter = ["status", "payment_type", "gateway", "gateway_type", "currency", "created_at"]
    search_fields = ["id", "transaction_id", "order_id", "provider__business_name"]
    readonly_fields = [
        "id",
        "booking",
        "provider",
        "amount",
        "platform_fee",
        "processing_fee",
        "processing_fee_payer",
        "provider_amount",
        "refunded_amount",
        "currency",
        "payment_type",
        "gateway",
        "gateway_type",
        "transaction_id",
        "order_id",
        "response_code",
        "card_brand",
        "card_last_four",
        "split_details",
        "status",
        "version",
        "failure_reason",
        "processing_started_at",
        "completed_at",
        "failed_at",
        "refunded_at",
        "metadata",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "booking", "provider", "status", "payment_type"),
            },
        ),
        (
            "Amounts",
            {
                "fields": (
                    "amount",
                    "platform_fee",
                    "processing_fee",
                    "processing_fee_payer",
                    "provider_amount",
                    "refunded_amount",
                    "currency",
                ),
            },
        ),
        (
            "Gateway",
            {
                "fields": (
                    "gateway",
                    "gateway_type",
                    "transaction_id",
                    "order_id",
                    "response_code",
                    "card_brand",
                    "card_last_four",
                    "split_details",
                ),
            },
        ),
        (
            "State Timestamps",
            {
                "fields": ("processing_started_at", "completed_at", "failed_at", "refunded_at"),
                "classes": ("collapse",),
            },
        ),
        (
            "Failure Info",
            {
                "fields": ("failure_reason",),
                "classes": ("collapse",),
            },
        ),
        (
            "Metadata",
            {
                "fields": ("metadata", "version"),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    @admin.display(description="Amount")
    def amount_display(self, obj: Payment) -> str:
        return f"{obj.amount:,.2f} {obj.currency}"

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for payments (audit trail)."""
        return False


@admin.register(ScheduledPayout)
class ScheduledPayoutAdmin(admin.ModelAdmin):
    """
    Admin configuration for ScheduledPayout.

    Failed payouts can be retried and pending/failed ones cancelled
    through the admin actions.
    """

    list_display = [
        "id",
        "provider",
        "amount_display",
        "status",
        "scheduled_for",
        "batch_id",
        "retry_count",
        "failure_kind",
        "next_retry_at",
        "processed_at",
    ]
    list_filter = ["status", "failure_kind", "currency", "scheduled_for"]
    search_fields = ["id", "batch_id", "reference_number", "gateway_reference", "provider__business_name"]
    readonly_fields = [
        "id",
        "provider",
        "amount",
        "currency",
        "scheduled_for",
        "status",
        "payout_method",
        "batch_id",
        "reference_number",
        "gateway_reference",
        "version",
        "retry_count",
        "failure_reason",
        "failure_kind",
        "next_retry_at",
        "processed_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "scheduled_for"
    ordering = ["-scheduled_for"]
    actions = ["retry_payouts", "cancel_payouts"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "provider", "status", "scheduled_for"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("amount", "currency", "payout_method"),
            },
        ),
        (
            "References",
            {
                "fields": ("batch_id", "reference_number", "gateway_reference"),
            },
        ),
        (
            "Retries",
            {
                "fields": ("retry_count", "failure_kind", "failure_reason", "next_retry_at"),
            },
        ),
        (
            "Notes",
            {
                "fields": ("notes", "version"),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("processed_at", "created_at", "updated_at"),
            },
        ),
    )

    @admin.display(description="Amount")
    def amount_display(self, obj: ScheduledPayout) -> str:
        return f"{obj.amount:,.2f} {obj.currency}"

    @admin.action(description="Retry selected failed payouts")
    def retry_payouts(self, request, queryset):
        scheduler = PayoutScheduler()
        retried = sum(1 for payout in queryset if scheduler.retry_payout(payout) is not None)
        self.message_user(request, f"{retried} payout(s) queued for retry.", messages.SUCCESS)

    @admin.action(description="Cancel selected payouts")
    def cancel_payouts(self, request, queryset):
        scheduler = PayoutScheduler()
        reason = f"Cancelled by {request.user} in admin"
        cancelled = sum(1 for payout in queryset if scheduler.cancel_payout(payout, reason))
        self.message_user(request, f"{cancelled} payout(s) cancelled.", messages.SUCCESS)

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for payouts (audit trail)."""
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Provides visibility into webhook processing status.
    Webhook events are immutable once received.
    """

    list_display = [
        "id",
        "gateway",
        "event_id",
        "event_type",
        "status",
        "processed_at",
        "created_at",
    ]
    list_filter = ["gateway", "status", "event_type", "created_at"]
    search_fields = ["id", "event_id", "event_type"]
    readonly_fields = [
        "id",
        "gateway",
        "event_id",
        "event_type",
        "payload",
        "signature_valid",
        "status",
        "error_message",
        "processed_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "gateway", "event_id", "event_type", "status"),
            },
        ),
        (
            "Processing",
            {
                "fields": ("signature_valid", "processed_at"),
            },
        ),
        (
            "Error Info",
            {
                "fields": ("error_message",),
                "classes": ("collapse",),
            },
        ),
        (
            "Payload",
            {
                "fields": ("payload",),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for webhook events (audit trail)."""
        return False

    def has_add_permission(self, request) -> bool:
        """Disable adding webhook events through admin."""
        return False


@admin.register(SystemSetting)
class SystemSettingAdmin(admin.ModelAdmin):
    """
    Admin configuration for SystemSetting.

    Saving or deleting a setting invalidates the in-process settings cache.
    """

    list_display = ["key", "value", "type", "group", "updated_at"]
    list_filter = ["group", "type"]
    search_fields = ["key", "description"]
    ordering = ["group", "key"]

    def save_model(self, request, obj, form, change):
        super().save_model(request, obj, form, change)
        get_settings_store().invalidate(obj.key)

    def delete_model(self, request, obj):
        key = obj.key
        super().delete_model(request, obj)
        get_settings_store().invalidate(key)
