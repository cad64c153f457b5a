"""
Payment gateway abstraction.

Gateways hide a payment provider behind one interface. Split gateways
divide the charge at payment time; escrow gateways collect everything
and pay providers out later through ``disburse``.

Usage:
    from payments.gateways import GatewayResolver

    gateway = GatewayResolver().for_provider(provider)
    result = gateway.initialize_payment(payment, return_url, cancel_url)
"""

from payments.gateways.base import (
    EscrowGateway,
    PaymentGateway,
    SplitGateway,
    redact_sensitive_data,
)
from payments.gateways.resolver import GatewayResolver
from payments.gateways.signatures import HmacSignatureVerifier, SignatureVerifier
from payments.gateways.types import (
    DisbursementResult,
    PaymentResult,
    RefundResult,
    SplitPaymentData,
    WebhookResult,
)

__all__ = [
    "DisbursementResult",
    "EscrowGateway",
    "GatewayResolver",
    "HmacSignatureVerifier",
    "PaymentGateway",
    "PaymentResult",
    "RefundResult",
    "SignatureVerifier",
    "SplitGateway",
    "SplitPaymentData",
    "WebhookResult",
    "redact_sensitive_data",
]
