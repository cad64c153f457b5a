"""
Django app configuration for marketplace.
"""

from django.apps import AppConfig


class MarketplaceConfig(AppConfig):
    """Configuration for the marketplace application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "marketplace"
    verbose_name = "Marketplace"

    def ready(self):
        """Import signals when the app is ready."""
        from marketplace import signals  # noqa: F401
