"""
Payments app configuration.

This app provides the payments core:
- Fee calculation from the provider's subscription tier
- Gateway abstraction (split and escrow gateways)
- Provider ledger for escrow balances
- Payment lifecycle, refunds and scheduled payouts
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"

    def ready(self):
        """Import signals when the app is ready."""
        from payments import signals  # noqa: F401
