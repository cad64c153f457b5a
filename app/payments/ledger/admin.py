"""
Django admin configuration for the ledger.

Ledger entries are read-only in the admin: no add, change or delete.
Corrections are made through LedgerService with new entries.
"""

from django.contrib import admin

from .models import LedgerEntry


@admin.register(LedgerEntry)
class LedgerEntryAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "created_at",
        "provider",
        "type",
        "amount",
        "balance_after",
        "currency",
        "payout",
    ]
    list_filter = ["type", "currency", "created_at"]
    search_fields = [
        "uuid",
        "idempotency_key",
        "description",
        "provider__business_name",
    ]
    readonly_fields = [
        "id",
        "uuid",
        "created_at",
        "provider",
        "booking",
        "payment",
        "payout",
        "released_hold",
        "type",
        "amount",
        "balance_after",
        "currency",
        "description",
        "metadata",
        "idempotency_key",
    ]
    date_hierarchy = "created_at"
    ordering = ["-id"]

    fieldsets = (
        (
            "Entry Details",
            {
                "fields": ("id", "uuid", "type", "amount", "balance_after", "currency", "created_at"),
            },
        ),
        (
            "Reference",
            {
                "fields": ("provider", "booking", "payment", "payout", "released_hold", "idempotency_key"),
            },
        ),
        (
            "Additional Info",
            {
                "fields": ("description", "metadata"),
            },
        ),
    )

    def has_delete_permission(self, request, obj=None) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_add_permission(self, request) -> bool:
        return False
