"""
Gateway resolution from the PAYMENT_GATEWAYS registry.

The registry maps a gateway name to the dotted class path of each family
it supports:

    PAYMENT_GATEWAYS = {
        "stripe": {
            "escrow": "payments.gateways.stripe_gateway.StripeGateway",
            "split": "payments.gateways.stripe_gateway.StripeConnectGateway",
        },
    }

Usage:
    gateway = GatewayResolver().for_provider(booking.provider)
"""

from __future__ import annotations

import logging
from typing import Any

from django.conf import settings
from django.utils.module_loading import import_string

from marketplace.states import GatewayType
from payments.exceptions import GatewayConfigurationError
from payments.gateways.base import PaymentGateway

logger = logging.getLogger(__name__)


class GatewayResolver:
    """Instantiate the gateway a provider or webhook should use."""

    def __init__(self, registry: dict[str, dict[str, str]] | None = None):
        self._registry = registry

    @property
    def registry(self) -> dict[str, dict[str, str]]:
        if self._registry is not None:
            return self._registry
        return getattr(settings, "PAYMENT_GATEWAYS", {})

    def default_gateway_name(self) -> str:
        return getattr(settings, "PAYMENT_DEFAULT_GATEWAY", "stripe")

    def get_gateway_type(self, provider) -> str:
        """
        Split only for providers who chose it and hold a verified merchant
        account; everyone else goes through escrow.
        """
        if provider.gateway_type == GatewayType.SPLIT:
            if provider.has_verified_merchant_account():
                return GatewayType.SPLIT
            logger.info(
                "Provider requested split gateway without verified merchant account",
                extra={"provider_id": str(provider.id)},
            )
        return GatewayType.ESCROW

    def for_provider(self, provider, config: dict[str, Any] | None = None) -> PaymentGateway:
        name = provider.gateway_provider or self.default_gateway_name()
        gateway_type = self.get_gateway_type(provider)

        entry = self._get_entry(name)
        if gateway_type not in entry:
            logger.warning(
                "Gateway has no %s implementation, using escrow",
                gateway_type,
                extra={"gateway": name, "provider_id": str(provider.id)},
            )
            gateway_type = GatewayType.ESCROW

        return self._build(name, gateway_type, config)

    def resolve_by_name(
        self,
        name: str,
        gateway_type: str | None = None,
        config: dict[str, Any] | None = None,
    ) -> PaymentGateway:
        """Resolve by registry key (used by webhooks and reconciliation)."""
        entry = self._get_entry(name)
        if gateway_type is None:
            gateway_type = GatewayType.ESCROW if GatewayType.ESCROW in entry else next(iter(entry))
        return self._build(name, gateway_type, config)

    def _get_entry(self, name: str) -> dict[str, str]:
        entry = self.registry.get(name)
        if not entry:
            raise GatewayConfigurationError(
                f"Unknown payment gateway: {name}",
                details={"gateway": name, "available": sorted(self.registry)},
            )
        return entry

    def _build(
        self,
        name: str,
        gateway_type: str,
        config: dict[str, Any] | None,
    ) -> PaymentGateway:
        path = self._get_entry(name).get(gateway_type)
        if not path:
            raise GatewayConfigurationError(
                f"Gateway {name} does not support {gateway_type} payments",
                details={"gateway": name, "gateway_type": gateway_type},
            )
        try:
            gateway_class = import_string(path)
        except ImportError as e:
            raise GatewayConfigurationError(
                f"Cannot import gateway class {path}",
                details={"gateway": name, "error": str(e)},
            ) from e
        return gateway_class(config=config)
