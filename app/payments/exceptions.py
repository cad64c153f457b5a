"""
Payment-specific exceptions for payment operations.

This module provides a hierarchy of exceptions for payment operations,
covering payment domain errors, gateway errors and concurrency control.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── PaymentValidationError - Payment validation failures
    └── PaymentProcessingError - Payment processing failures
        └── GatewayError - Base for all gateway errors (has is_retryable, inherits ExternalServiceError)
            ├── GatewayConfigurationError - Missing keys/unknown gateway (permanent)
            ├── GatewayTimeoutError - No response within the timeout (transient)
            └── StripeError - Base for all Stripe errors
                ├── StripeCardDeclinedError - Card declined (permanent)
                ├── StripeInsufficientFundsError - Insufficient funds (permanent)
                ├── StripeInvalidAccountError - Invalid Stripe account (permanent)
                ├── StripeInvalidRequestError - Invalid request params (permanent)
                ├── StripeRateLimitError - Rate limited (transient, retry)
                ├── StripeAPIUnavailableError - API unavailable (transient, retry)
                └── StripeTimeoutError - Request timeout (transient, retry)

    RefundNotAllowedError - Refund refused by payment state (inherits ConflictError)
    InvalidStateTransitionError - FSM transition not allowed (inherits ConflictError)

Gateway errors never leave a gateway implementation: they are converted
into failure results at the gateway boundary. GatewayConfigurationError is
the exception; it signals a programming or deployment error and propagates.

Usage:
    from payments.exceptions import (
        GatewayError,
        InvalidStateTransitionError,
        RefundNotAllowedError,
    )

    # Invalid state transition
    raise InvalidStateTransitionError(
        "Cannot complete payment from 'pending' state",
        details={"current_state": "pending", "target_state": "completed"}
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for all payment operations.

    All payment-specific exceptions inherit from this class,
    which itself inherits from BaseApplicationError for
    consistent error responses.
    """

    default_error_code: str = "PAYMENT_ERROR"


class PaymentValidationError(PaymentError, ValidationError):
    """
    Raised when payment validation fails.

    Use for:
    - Invalid payment amount
    - Unsupported currency
    - Booking without a frozen fee breakdown
    - Deposit requested for a booking with no deposit
    """

    default_error_code: str = "PAYMENT_VALIDATION_ERROR"


class PaymentProcessingError(PaymentError):
    """
    Raised when payment processing fails.

    Use for:
    - Gateway API errors
    - Processing timeouts
    """

    default_error_code: str = "PAYMENT_PROCESSING_ERROR"


# =============================================================================
# Gateway Exceptions
# =============================================================================


class GatewayError(PaymentProcessingError, ExternalServiceError):
    """
    Base exception for all gateway errors.

    is_retryable drives retry behavior:
    - True: transient error (timeout, 5xx, rate limit), safe to retry later
    - False: permanent error (4xx, declined, invalid credentials)

    Attributes:
        response_code: Gateway response/status code if one was returned
    """

    default_error_code: str = "GATEWAY_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        response_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if response_code:
            details["response_code"] = response_code
        super().__init__(message, error_code=error_code, details=details)
        self.response_code = response_code


class GatewayConfigurationError(GatewayError):
    """
    Raised when a gateway is missing configuration or is not registered.

    This is a deployment error and is never converted into a result.

    Example:
        if not settings.STRIPE_SECRET_KEY:
            raise GatewayConfigurationError(
                "STRIPE_SECRET_KEY is not configured",
                details={"gateway": "stripe"},
            )
    """

    default_error_code: str = "GATEWAY_NOT_CONFIGURED"
    is_retryable: bool = False


class GatewayTimeoutError(GatewayError):
    """
    Gateway call did not answer within PAYMENT_GATEWAY_TIMEOUT_SECONDS.

    IMPORTANT: The operation may have succeeded on the gateway's side.
    A payment that times out stays in processing until reconciliation
    queries the gateway for the definitive outcome.
    """

    default_error_code: str = "GATEWAY_TIMEOUT"
    is_retryable: bool = True


# =============================================================================
# Stripe-Specific Exceptions
# =============================================================================


class StripeError(GatewayError):
    """
    Base exception for all Stripe-related errors.

    Provides common attributes for Stripe error handling:
    - stripe_code: Stripe's internal error code
    - decline_code: Card decline code (if applicable)
    - is_retryable: Whether the operation can be retried
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        decline_code: str | None = None,
        http_status: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(
            message,
            error_code=error_code,
            response_code=str(http_status) if http_status else None,
            details=details,
        )
        self.stripe_code = stripe_code
        self.decline_code = decline_code
        self.http_status = http_status


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class StripeCardDeclinedError(StripeError):
    """
    Card was declined by the issuing bank.

    This is a permanent error - do not retry with the same card.
    The decline_code attribute contains the specific reason.
    """

    default_error_code: str = "CARD_DECLINED"
    is_retryable: bool = False


class StripeInsufficientFundsError(StripeError):
    """
    Insufficient funds on the payment method.

    User action is required before a retry can succeed.
    """

    default_error_code: str = "INSUFFICIENT_FUNDS"
    is_retryable: bool = False


class StripeInvalidAccountError(StripeError):
    """
    Invalid Stripe Connect account.

    Raised when the destination account for a transfer is:
    - Not found
    - Disabled or restricted
    - Unable to receive payouts

    Payouts to this account fail terminally until an operator fixes the
    provider's payout details.
    """

    default_error_code: str = "INVALID_STRIPE_ACCOUNT"
    is_retryable: bool = False


class StripeInvalidRequestError(StripeError):
    """
    Invalid request parameters sent to Stripe.

    The request itself is malformed and will never succeed with the same
    parameters (e.g. refund larger than the captured amount).
    """

    default_error_code: str = "INVALID_STRIPE_REQUEST"
    is_retryable: bool = False


# -----------------------------------------------------------------------------
# Transient Errors (safe to retry with backoff)
# -----------------------------------------------------------------------------


class StripeRateLimitError(StripeError):
    """Rate limited by Stripe API."""

    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """
    Stripe API is temporarily unavailable.

    This covers:
    - Network connectivity issues
    - Stripe server errors (5xx)
    - DNS resolution failures
    """

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True


class StripeTimeoutError(StripeError):
    """
    Stripe API call timed out.

    The request was sent but no response was received within
    STRIPE_API_TIMEOUT_SECONDS. The operation may have succeeded, so
    retries reuse the same idempotency key.
    """

    default_error_code: str = "STRIPE_TIMEOUT"
    is_retryable: bool = True


# =============================================================================
# State & Concurrency Exceptions
# =============================================================================


class RefundNotAllowedError(ConflictError):
    """
    Raised when a refund is refused by the payment's state.

    Use for:
    - Payment not completed or partially refunded
    - Requested amount exceeds amount minus refunded_amount
    - Provider balance cannot cover the escrow clawback
    """

    default_error_code: str = "REFUND_NOT_ALLOWED"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a state machine transition is not allowed.

    This exception wraps django-fsm's TransitionNotAllowed to provide
    our standard error format with additional context.

    Example:
        from django_fsm import TransitionNotAllowed

        try:
            payment.complete(transaction_id)
        except TransitionNotAllowed:
            raise InvalidStateTransitionError(
                f"Cannot complete payment from '{payment.status}' state",
                details={
                    "current_state": payment.status,
                    "target_state": "completed",
                    "transition": "complete",
                }
            )
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    # Payment domain
    "PaymentError",
    "PaymentValidationError",
    "PaymentProcessingError",
    # Gateway
    "GatewayError",
    "GatewayConfigurationError",
    "GatewayTimeoutError",
    # Stripe-specific
    "StripeError",
    "StripeCardDeclinedError",
    "StripeInsufficientFundsError",
    "StripeInvalidAccountError",
    "StripeInvalidRequestError",
    "StripeRateLimitError",
    "StripeAPIUnavailableError",
    "StripeTimeoutError",
    # State & concurrency
    "RefundNotAllowedError",
    "InvalidStateTransitionError",
]
