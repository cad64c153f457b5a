"""
Abstract payment gateway contract.

Every gateway implements PaymentGateway. Two capability families exist:

- SplitGateway: divides one charge into platform and provider shares at
  charge time; the split is configured before initialization.
- EscrowGateway: the platform collects the whole charge; the provider's
  share is credited to the ledger and paid out later through ``disburse``.

Gateways never raise for a declined card or a failed disbursement; they
return failure results. Network errors are caught here and returned as
failure results marked ``retryable`` (and ``pending`` for payment calls).
Only missing configuration raises (GatewayConfigurationError).

All gateway logging goes to the ``payments.gateways`` logger and passes
through ``redact_sensitive_data``.

Usage:
    class AcmeEscrowGateway(EscrowGateway):
        provider_name = "acme"

        def initialize_payment(self, payment, return_url, cancel_url):
            ...
"""

from __future__ import annotations

import logging
import secrets
import string
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from django.conf import settings

from marketplace.states import GatewayType

if TYPE_CHECKING:
    from payments.gateways.signatures import SignatureVerifier
    from payments.gateways.types import (
        DisbursementResult,
        PaymentResult,
        RefundResult,
        SplitPaymentData,
        WebhookResult,
    )
    from payments.models import Payment, ScheduledPayout

gateway_logger = logging.getLogger("payments.gateways")

SENSITIVE_KEYS = (
    "password",
    "secret",
    "token",
    "api_key",
    "apikey",
    "authorization",
    "card_number",
    "cvv",
    "cvc",
    "expiry",
    "account_number",
    "signature",
)

REDACTED = "[REDACTED]"
MAX_REDACTION_DEPTH = 5

CURRENCY_NUMERIC_CODES = {
    "JMD": "388",
    "USD": "840",
    "TTD": "780",
    "BBD": "052",
    "XCD": "951",
}


def redact_sensitive_data(data: Any, depth: int = 0) -> Any:
    """
    Return a copy of ``data`` with sensitive keys replaced by [REDACTED].

    Keys match when they contain any SENSITIVE_KEYS entry, case-insensitive.
    Nesting deeper than MAX_REDACTION_DEPTH is returned as is.
    """
    if depth > MAX_REDACTION_DEPTH:
        return data

    if isinstance(data, Mapping):
        redacted = {}
        for key, value in data.items():
            lowered = str(key).lower()
            if any(pattern in lowered for pattern in SENSITIVE_KEYS):
                redacted[key] = REDACTED
            else:
                redacted[key] = redact_sensitive_data(value, depth + 1)
        return redacted

    if isinstance(data, (list, tuple)):
        return [redact_sensitive_data(item, depth + 1) for item in data]

    return data


def generate_correlation_id() -> str:
    alphabet = string.ascii_letters + string.digits
    return "pay_" + "".join(secrets.choice(alphabet) for _ in range(16))


def get_currency_code(currency: str) -> str:
    """ISO 4217 numeric code; unknown currencies fall back to JMD."""
    return CURRENCY_NUMERIC_CODES.get(currency.upper(), CURRENCY_NUMERIC_CODES["JMD"])


class PaymentGateway(ABC):
    """
    Base class for all payment gateways.

    One instance serves one logical operation; ``correlation_id`` ties its
    log lines together.
    """

    provider_name: str = ""
    gateway_type: str = GatewayType.ESCROW
    signature_verifier: SignatureVerifier | None = None

    def __init__(self, config: dict[str, Any] | None = None):
        self.config = config or {}
        self.correlation_id = generate_correlation_id()
        self.timeout = self.config.get(
            "timeout", getattr(settings, "PAYMENT_GATEWAY_TIMEOUT_SECONDS", 10)
        )

    # ==========================================================================
    # Operations
    # ==========================================================================

    @abstractmethod
    def initialize_payment(
        self,
        payment: Payment,
        return_url: str,
        cancel_url: str,
    ) -> PaymentResult:
        """Start a hosted payment; success results carry redirect_url."""

    @abstractmethod
    def complete_payment(
        self,
        payment: Payment,
        callback_data: dict[str, Any],
    ) -> PaymentResult:
        """Verify a callback with the gateway and return the outcome."""

    @abstractmethod
    def refund(self, payment: Payment, amount=None) -> RefundResult:
        """Refund ``amount`` (full remaining amount when None)."""

    @abstractmethod
    def handle_webhook(
        self,
        payload: bytes,
        headers: Mapping[str, str],
    ) -> WebhookResult:
        """Normalize a verified webhook payload."""

    @abstractmethod
    def query_payment(self, payment: Payment) -> PaymentResult:
        """
        Ask the gateway for the definitive outcome of a payment.

        Used by reconciliation for payments left in processing after a
        timeout. ``pending=True`` means the gateway still has no answer.
        """

    def verify_webhook_signature(self, payload: bytes, headers: Mapping[str, str]) -> bool:
        """
        Check webhook authenticity with the configured verifier.

        Gateways without a verifier reject every webhook.
        """
        if self.signature_verifier is None:
            self.log_warning("No signature verifier configured; webhook rejected")
            return False
        return self.signature_verifier.verify(payload, headers)

    def is_available(self) -> bool:
        return True

    def get_supported_currencies(self) -> list[str]:
        return list(getattr(settings, "PAYMENT_SUPPORTED_CURRENCIES", ["JMD", "USD"]))

    def supports_currency(self, currency: str) -> bool:
        return currency.upper() in self.get_supported_currencies()

    # ==========================================================================
    # Logging
    # ==========================================================================

    def _log_context(self, context: dict[str, Any] | None = None) -> dict[str, Any]:
        return {
            "gateway": self.provider_name,
            "correlation_id": self.correlation_id,
            **redact_sensitive_data(context or {}),
        }

    def log(self, message: str, context: dict[str, Any] | None = None) -> None:
        gateway_logger.info(f"[{self.provider_name}] {message}", extra=self._log_context(context))

    def log_warning(self, message: str, context: dict[str, Any] | None = None) -> None:
        gateway_logger.warning(f"[{self.provider_name}] {message}", extra=self._log_context(context))

    def log_error(self, message: str, context: dict[str, Any] | None = None) -> None:
        gateway_logger.error(f"[{self.provider_name}] {message}", extra=self._log_context(context))


class SplitGateway(PaymentGateway):
    """Gateway that splits a charge between platform and provider."""

    gateway_type = GatewayType.SPLIT

    @abstractmethod
    def configure_split(self, payment: Payment, split: SplitPaymentData) -> None:
        """Register the split for ``payment`` before initialization."""

    @abstractmethod
    def get_platform_merchant_id(self) -> str:
        """Merchant id receiving the platform share."""

    @abstractmethod
    def validate_provider_credentials(self, credentials: dict[str, Any]) -> bool:
        """Check a provider's merchant credentials with the gateway."""


class EscrowGateway(PaymentGateway):
    """Gateway where the platform collects everything and pays out later."""

    gateway_type = GatewayType.ESCROW

    @abstractmethod
    def disburse(self, payout: ScheduledPayout) -> DisbursementResult:
        """
        Send ``payout.amount`` to the provider's payout account.

        Returns a failure result (retryable or terminal) instead of raising.
        """
