"""
Payment adapters for external services.

All Stripe API calls go through StripeAdapter to ensure consistent error
handling, timeouts, idempotency, and logging. Gateways build on top of
the adapter and convert its exceptions into results.

Usage:
    from payments.adapters import StripeAdapter

    session = StripeAdapter.retrieve_checkout_session("cs_test_123")
"""

from payments.adapters.stripe_adapter import (
    CheckoutSessionResult,
    CreateCheckoutSessionParams,
    IdempotencyKeyGenerator,
    StripeAdapter,
    StripeRefundResult,
    TransferResult,
)

__all__ = [
    "CheckoutSessionResult",
    "CreateCheckoutSessionParams",
    "IdempotencyKeyGenerator",
    "StripeAdapter",
    "StripeRefundResult",
    "TransferResult",
]
