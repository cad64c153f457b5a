"""
Stripe API adapter for payment operations.

This module provides the StripeAdapter class which encapsulates all
Stripe API interactions. All Stripe calls go through this adapter to
ensure consistent error handling, timeouts, idempotency, and logging.

The adapter raises domain Stripe errors (payments.exceptions); the
gateways in payments.gateways.stripe_gateway turn them into results.

Features:
- Configurable timeouts on all API calls
- Automatic error translation to domain exceptions
- Structured logging with timing metrics
- Idempotency support for safe retries

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: Max network retries inside one call (default: 0)

Usage:
    from payments.adapters import StripeAdapter, CreateCheckoutSessionParams

    session = StripeAdapter.create_checkout_session(
        CreateCheckoutSessionParams(
            amount_cents=103000,
            currency="jmd",
            description="Haircut",
            success_url="https://example.com/ok",
            cancel_url="https://example.com/cancel",
            idempotency_key=IdempotencyKeyGenerator.generate("checkout", payment.id),
        )
    )
    session.url  # hosted payment page
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

import stripe
from django.conf import settings

from payments.exceptions import (
    GatewayConfigurationError,
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CreateCheckoutSessionParams:
    """
    Parameters for creating a Stripe Checkout Session.

    Attributes:
        amount_cents: Amount charged for the booking (minor units)
        currency: ISO 4217 currency code
        description: Line item name shown on the hosted page
        success_url: Return URL after payment
        cancel_url: Return URL when the client abandons the page
        idempotency_key: Unique key for idempotent creation
        processing_fee_cents: Processing fee line item when the client pays it
        client_reference_id: Our payment id
        metadata: Key-value pairs attached to session and PaymentIntent
        application_fee_cents: Platform share for destination charges
        destination_account: Connected account for destination charges
    """

    amount_cents: int
    currency: str
    description: str
    success_url: str
    cancel_url: str
    idempotency_key: str
    processing_fee_cents: int = 0
    client_reference_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    application_fee_cents: int | None = None
    destination_account: str | None = None

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        if self.amount_cents <= 0:
            raise ValueError("amount_cents must be positive")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")
        if not self.currency:
            raise ValueError("currency is required")


@dataclass
class CheckoutSessionResult:
    """
    Result from Stripe Checkout Session operations.

    Attributes:
        id: Checkout Session ID (cs_xxx)
        url: Hosted payment page URL (None once the session is complete)
        status: open, complete or expired
        payment_status: paid, unpaid or no_payment_required
        payment_intent_id: PaymentIntent created by the session (pi_xxx)
        card_brand / card_last4: From the latest charge when expanded
        raw_response: Full Stripe response dict
    """

    id: str
    status: str
    payment_status: str
    url: str | None = None
    payment_intent_id: str | None = None
    amount_total_cents: int | None = None
    currency: str | None = None
    card_brand: str | None = None
    card_last4: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class TransferResult:
    """
    Result from Stripe Transfer operations.

    Attributes:
        id: Transfer ID (tr_xxx)
        amount_cents: Amount transferred in cents
        currency: Currency code
        destination_account: Destination Stripe account ID
        raw_response: Full Stripe response dict
    """

    id: str
    amount_cents: int
    currency: str
    destination_account: str
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class StripeRefundResult:
    """
    Result from Stripe Refund operations.

    Attributes:
        id: Refund ID (re_xxx)
        amount_cents: Refunded amount in cents
        status: Refund status (succeeded, pending, failed)
        payment_intent_id: Original PaymentIntent ID
        raw_response: Full Stripe response dict
    """

    id: str
    amount_cents: int
    currency: str
    status: str
    payment_intent_id: str
    raw_response: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    Example:
        key = IdempotencyKeyGenerator.generate(
            operation="disburse",
            entity_id=payout.id,
        )
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


def _card_from_charge(charge: Any) -> tuple[str | None, str | None]:
    try:
        card = charge.payment_method_details.card
        return card.brand, card.last4
    except AttributeError:
        return None, None


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are classmethods - no instance state is maintained.
    Thread-safe for use from Celery workers.
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key and timeout."""
        if not settings.STRIPE_SECRET_KEY:
            raise GatewayConfigurationError(
                "STRIPE_SECRET_KEY is not configured",
                details={"gateway": "stripe"},
            )
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.max_network_retries = getattr(settings, "STRIPE_MAX_RETRIES", 0)
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    def is_configured(cls) -> bool:
        return bool(settings.STRIPE_SECRET_KEY)

    # =========================================================================
    # Checkout
    # =========================================================================

    @classmethod
    def create_checkout_session(
        cls,
        params: CreateCheckoutSessionParams,
        trace_id: str | None = None,
    ) -> CheckoutSessionResult:
        """
        Create a hosted Checkout Session for one payment.

        Raises:
            StripeInvalidRequestError: Invalid parameters
            StripeAPIUnavailableError: Stripe service unavailable
            StripeTimeoutError: No response within the timeout
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_checkout_session",
            "amount_cents": params.amount_cents,
            "currency": params.currency,
            "idempotency_key": params.idempotency_key,
            "trace_id": trace_id,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        line_items = [
            {
                "price_data": {
                    "currency": params.currency,
                    "product_data": {"name": params.description},
                    "unit_amount": params.amount_cents,
                },
                "quantity": 1,
            }
        ]
        if params.processing_fee_cents > 0:
            line_items.append(
                {
                    "price_data": {
                        "currency": params.currency,
                        "product_data": {"name": "Processing fee"},
                        "unit_amount": params.processing_fee_cents,
                    },
                    "quantity": 1,
                }
            )

        payment_intent_data: dict[str, Any] = {"metadata": params.metadata}
        if params.destination_account:
            payment_intent_data["transfer_data"] = {"destination": params.destination_account}
            if params.application_fee_cents is not None:
                payment_intent_data["application_fee_amount"] = params.application_fee_cents

        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                line_items=line_items,
                success_url=params.success_url,
                cancel_url=params.cancel_url,
                client_reference_id=params.client_reference_id,
                metadata=params.metadata,
                payment_intent_data=payment_intent_data,
                idempotency_key=params.idempotency_key,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "session_id": session.id,
                    "duration_ms": duration_ms,
                },
            )

            return cls._session_result(session)

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def retrieve_checkout_session(
        cls,
        session_id: str,
        trace_id: str | None = None,
    ) -> CheckoutSessionResult:
        """Retrieve a Checkout Session with its PaymentIntent and charge."""
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "retrieve_checkout_session",
            "session_id": session_id,
            "trace_id": trace_id,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            session = stripe.checkout.Session.retrieve(
                session_id,
                expand=["payment_intent.latest_charge"],
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "status": session.status,
                    "payment_status": session.payment_status,
                    "duration_ms": duration_ms,
                },
            )

            return cls._session_result(session)

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @staticmethod
    def _session_result(session: Any) -> CheckoutSessionResult:
        intent = getattr(session, "payment_intent", None)
        intent_id = intent if isinstance(intent, str) or intent is None else intent.id
        brand, last4 = (None, None)
        if intent is not None and not isinstance(intent, str):
            brand, last4 = _card_from_charge(getattr(intent, "latest_charge", None))

        return CheckoutSessionResult(
            id=session.id,
            status=session.status,
            payment_status=session.payment_status,
            url=getattr(session, "url", None),
            payment_intent_id=intent_id,
            amount_total_cents=getattr(session, "amount_total", None),
            currency=getattr(session, "currency", None),
            card_brand=brand,
            card_last4=last4,
            metadata=dict(getattr(session, "metadata", None) or {}),
            raw_response=session.to_dict(),
        )

    # =========================================================================
    # Refunds & Transfers
    # =========================================================================

    @classmethod
    def create_refund(
        cls,
        payment_intent_id: str,
        idempotency_key: str,
        amount_cents: int | None = None,
        metadata: dict[str, str] | None = None,
        trace_id: str | None = None,
    ) -> StripeRefundResult:
        """
        Create a refund for a PaymentIntent.

        Raises:
            StripeInvalidRequestError: Refund not possible
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_refund",
            "payment_intent_id": payment_intent_id,
            "amount_cents": amount_cents,
            "idempotency_key": idempotency_key,
            "trace_id": trace_id,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            refund_params: dict[str, Any] = {
                "payment_intent": payment_intent_id,
                "metadata": metadata or {},
            }
            if amount_cents is not None:
                refund_params["amount"] = amount_cents

            refund = stripe.Refund.create(
                idempotency_key=idempotency_key,
                **refund_params,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "refund_id": refund.id,
                    "status": refund.status,
                    "duration_ms": duration_ms,
                },
            )

            return StripeRefundResult(
                id=refund.id,
                amount_cents=refund.amount,
                currency=refund.currency,
                status=refund.status,
                payment_intent_id=refund.payment_intent,
                raw_response=refund.to_dict(),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def create_transfer(
        cls,
        amount_cents: int,
        destination_account: str,
        idempotency_key: str,
        currency: str,
        metadata: dict[str, str] | None = None,
        trace_id: str | None = None,
    ) -> TransferResult:
        """
        Create a transfer to a connected Stripe account.

        Raises:
            StripeInvalidAccountError: Invalid destination account
            StripeInsufficientFundsError: Insufficient platform balance
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_transfer",
            "amount_cents": amount_cents,
            "destination_account": destination_account,
            "idempotency_key": idempotency_key,
            "trace_id": trace_id,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            transfer = stripe.Transfer.create(
                amount=amount_cents,
                currency=currency,
                destination=destination_account,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "transfer_id": transfer.id,
                    "duration_ms": duration_ms,
                },
            )

            return TransferResult(
                id=transfer.id,
                amount_cents=transfer.amount,
                currency=transfer.currency,
                destination_account=transfer.destination,
                metadata=dict(transfer.metadata or {}),
                raw_response=transfer.to_dict(),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def retrieve_account(cls, account_id: str) -> dict[str, Any]:
        """Retrieve a connected account (used to validate merchant credentials)."""
        cls._configure_stripe()
        log_context = {"operation": "retrieve_account", "account_id": account_id}
        start_time = time.time()
        try:
            return stripe.Account.retrieve(account_id).to_dict()
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def construct_webhook_event(
        cls,
        payload: bytes,
        signature: str,
    ) -> dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Raises:
            StripeInvalidRequestError: Invalid signature or payload
        """
        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                settings.STRIPE_WEBHOOK_SECRET,
            )
            return event.to_dict()
        except (stripe.SignatureVerificationError, ValueError) as e:
            raise StripeInvalidRequestError(
                "Invalid webhook signature",
                stripe_code="signature_verification_failed",
                details={"error": str(e)},
            )

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to domain exceptions.

        Raises:
            StripeCardDeclinedError: Card was declined
            StripeInsufficientFundsError: Insufficient funds
            StripeInvalidAccountError: Invalid Connect account
            StripeInvalidRequestError: Invalid request parameters
            StripeRateLimitError: Rate limited
            StripeAPIUnavailableError: API unavailable (5xx)
            StripeTimeoutError: No response; outcome unknown
        """
        if isinstance(error, StripeError | GatewayConfigurationError):
            raise error

        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}
        http_status = getattr(error, "http_status", None)

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )

            if decline_code == "insufficient_funds":
                raise StripeInsufficientFundsError(
                    str(error.user_message or error),
                    stripe_code=error.code,
                    decline_code=decline_code,
                    http_status=http_status,
                )

            raise StripeCardDeclinedError(
                str(error.user_message or error),
                stripe_code=error.code,
                decline_code=decline_code,
                http_status=http_status,
            )

        elif isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )

            if "account" in str(error).lower():
                raise StripeInvalidAccountError(
                    str(error),
                    stripe_code=error.code,
                    http_status=http_status,
                )

            raise StripeInvalidRequestError(
                str(error),
                stripe_code=error.code,
                http_status=http_status,
            )

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
                http_status=http_status or 429,
            )

        elif isinstance(error, stripe.APIConnectionError):
            # The request may have reached Stripe
            logger.error(
                "Connection error to Stripe",
                extra=log_context,
                exc_info=True,
            )
            raise StripeTimeoutError(
                "No response from Stripe. The outcome is unknown.",
                stripe_code="api_connection_error",
            )

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeInvalidRequestError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
                http_status=http_status,
            )

        elif isinstance(error, stripe.APIError):
            logger.error(
                "Stripe API error",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
                http_status=http_status,
            )

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                f"Unexpected Stripe error: {error}",
                stripe_code="unknown_error",
            )
