"""
Stripe-backed payment gateways.

- StripeGateway (escrow): the platform account collects the whole charge
  through a hosted Checkout Session; providers are paid later with a
  Transfer to their connected account (``disburse``).
- StripeConnectGateway (split): a destination charge. The provider's
  connected account receives the charge and Stripe keeps the platform
  share as an application fee.

All Stripe calls go through StripeAdapter; its exceptions are converted
to failure results here.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.conf import settings

from core.money import from_cents, to_cents
from payments.adapters import (
    CheckoutSessionResult,
    CreateCheckoutSessionParams,
    IdempotencyKeyGenerator,
    StripeAdapter,
)
from payments.exceptions import StripeError, StripeInvalidRequestError
from payments.gateways.base import EscrowGateway, PaymentGateway, SplitGateway
from payments.gateways.signatures import SignatureVerifier, get_header
from payments.gateways.types import (
    DisbursementResult,
    PaymentResult,
    RefundResult,
    SplitPaymentData,
    WebhookResult,
)
from payments.state_machines import FeePayer

if TYPE_CHECKING:
    from payments.models import Payment, ScheduledPayout

STRIPE_SIGNATURE_HEADER = "Stripe-Signature"

SUCCEEDED_SESSION_EVENTS = (
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
)
FAILED_SESSION_EVENTS = {
    "checkout.session.async_payment_failed": "Payment failed",
    "checkout.session.expired": "Checkout session expired",
}


class StripeSignatureVerifier(SignatureVerifier):
    """Verifies the Stripe-Signature header with the webhook signing secret."""

    def verify(self, payload: bytes, headers: Mapping[str, str]) -> bool:
        signature = get_header(headers, STRIPE_SIGNATURE_HEADER)
        if not signature or not settings.STRIPE_WEBHOOK_SECRET:
            return False
        try:
            StripeAdapter.construct_webhook_event(payload, signature)
        except StripeInvalidRequestError:
            return False
        return True


class StripeCheckoutMixin(PaymentGateway):
    """Checkout Session flow shared by both Stripe gateway families."""

    provider_name = "stripe"
    signature_verifier = StripeSignatureVerifier()

    adapter = StripeAdapter

    def is_available(self) -> bool:
        return self.adapter.is_configured()

    # ==========================================================================
    # Initialize
    # ==========================================================================

    def _checkout_params(
        self,
        payment: Payment,
        return_url: str,
        cancel_url: str,
    ) -> CreateCheckoutSessionParams:
        processing_fee_cents = 0
        if payment.processing_fee_payer == FeePayer.CLIENT:
            processing_fee_cents = to_cents(payment.processing_fee)

        return CreateCheckoutSessionParams(
            amount_cents=to_cents(payment.amount),
            currency=payment.currency.lower(),
            description=f"Booking {payment.booking_id} ({payment.payment_type})",
            success_url=return_url,
            cancel_url=cancel_url,
            idempotency_key=IdempotencyKeyGenerator.generate("checkout", payment.pk),
            processing_fee_cents=processing_fee_cents,
            client_reference_id=str(payment.pk),
            metadata={
                "payment_id": str(payment.pk),
                "booking_id": str(payment.booking_id),
                "provider_id": str(payment.provider_id),
            },
        )

    def initialize_payment(
        self,
        payment: Payment,
        return_url: str,
        cancel_url: str,
    ) -> PaymentResult:
        params = self._checkout_params(payment, return_url, cancel_url)
        self.log(
            "Initializing payment",
            {"payment_id": str(payment.pk), "amount_cents": params.amount_cents},
        )

        try:
            session = self.adapter.create_checkout_session(params, trace_id=self.correlation_id)
        except StripeError as e:
            self.log_error("Payment initialization failed", {"error": e.message})
            return PaymentResult.failure(
                error=e.message,
                error_code=e.stripe_code or e.error_code,
                response_code=e.response_code,
                retryable=e.is_retryable,
            )

        return PaymentResult.success(
            order_id=session.id,
            redirect_url=session.url,
            response_code=session.status,
            raw_response=session.raw_response,
            split_details=self._split_details(payment),
        )

    def _split_details(self, payment: Payment) -> dict[str, Any] | None:
        return None

    # ==========================================================================
    # Complete / Query
    # ==========================================================================

    def complete_payment(
        self,
        payment: Payment,
        callback_data: dict[str, Any],
    ) -> PaymentResult:
        session_id = callback_data.get("session_id") or payment.order_id
        if not session_id:
            return PaymentResult.failure(
                error="Missing checkout session id",
                error_code="missing_session_id",
            )
        return self._fetch_outcome(session_id)

    def query_payment(self, payment: Payment) -> PaymentResult:
        if not payment.order_id:
            return PaymentResult.failure(
                error="Payment was never sent to Stripe",
                error_code="missing_session_id",
            )
        return self._fetch_outcome(payment.order_id)

    def _fetch_outcome(self, session_id: str) -> PaymentResult:
        try:
            session = self.adapter.retrieve_checkout_session(
                session_id, trace_id=self.correlation_id
            )
        except StripeError as e:
            self.log_warning(
                "Could not verify payment with Stripe",
                {"session_id": session_id, "error": e.message},
            )
            return PaymentResult.failure(
                error=e.message,
                error_code=e.stripe_code or e.error_code,
                response_code=e.response_code,
                order_id=session_id,
                pending=e.is_retryable,
            )
        return self._session_outcome(session)

    def _session_outcome(self, session: CheckoutSessionResult) -> PaymentResult:
        if session.payment_status == "paid":
            card_details = None
            if session.card_brand or session.card_last4:
                card_details = {"brand": session.card_brand, "last_four": session.card_last4}
            return PaymentResult.success(
                transaction_id=session.payment_intent_id,
                order_id=session.id,
                response_code=session.payment_status,
                raw_response=session.raw_response,
                card_details=card_details,
            )

        if session.status == "expired":
            return PaymentResult.failure(
                error="Checkout session expired",
                error_code="session_expired",
                response_code=session.status,
                raw_response=session.raw_response,
                order_id=session.id,
            )

        # Still open, or completed with an asynchronous payment method
        return PaymentResult.failure(
            error="Payment not yet confirmed",
            error_code="payment_pending",
            response_code=session.payment_status,
            raw_response=session.raw_response,
            order_id=session.id,
            pending=True,
        )

    # ==========================================================================
    # Refund
    # ==========================================================================

    def refund(self, payment: Payment, amount: Decimal | None = None) -> RefundResult:
        if not payment.transaction_id:
            return RefundResult.failure(
                error="Payment has no Stripe transaction",
                error_code="missing_transaction_id",
            )

        amount_cents = to_cents(amount) if amount is not None else None
        # One key per claimed refund request
        idempotency_key = IdempotencyKeyGenerator.generate(
            "refund", payment.pk, attempt=payment.refund_attempts
        )

        try:
            refund = self.adapter.create_refund(
                payment_intent_id=payment.transaction_id,
                idempotency_key=idempotency_key,
                amount_cents=amount_cents,
                metadata={"payment_id": str(payment.pk)},
                trace_id=self.correlation_id,
            )
        except StripeError as e:
            self.log_error(
                "Refund failed",
                {"payment_id": str(payment.pk), "error": e.message},
            )
            return RefundResult.failure(
                error=e.message,
                error_code=e.stripe_code or e.error_code,
                response_code=e.response_code,
                retryable=e.is_retryable,
            )

        if refund.status == "failed":
            return RefundResult.failure(
                error="Stripe rejected the refund",
                error_code="refund_failed",
                response_code=refund.status,
                raw_response=refund.raw_response,
            )

        return RefundResult.success(
            refund_id=refund.id,
            amount=from_cents(refund.amount_cents),
            raw_response=refund.raw_response,
        )

    # ==========================================================================
    # Webhooks
    # ==========================================================================

    def handle_webhook(
        self,
        payload: bytes,
        headers: Mapping[str, str],
    ) -> WebhookResult:
        try:
            event = json.loads(payload)
        except (TypeError, ValueError):
            return WebhookResult.failure("Invalid JSON payload")

        event_id = event.get("id")
        event_type = event.get("type", "")
        obj = (event.get("data") or {}).get("object") or {}
        if not event_id:
            return WebhookResult.failure("Missing event id")

        metadata = obj.get("metadata") or {}
        payment_id = metadata.get("payment_id") or obj.get("client_reference_id")

        if event_type in SUCCEEDED_SESSION_EVENTS:
            if obj.get("payment_status") == "paid":
                result = PaymentResult.success(
                    transaction_id=obj.get("payment_intent"),
                    order_id=obj.get("id"),
                    response_code="paid",
                )
            else:
                result = PaymentResult.failure(
                    error="Payment not yet confirmed",
                    error_code="payment_pending",
                    order_id=obj.get("id"),
                    pending=True,
                )
            return WebhookResult.success(event_id, event_type, payment_id, result)

        if event_type in FAILED_SESSION_EVENTS:
            result = PaymentResult.failure(
                error=FAILED_SESSION_EVENTS[event_type],
                error_code=event_type.rsplit(".", 1)[-1],
                order_id=obj.get("id"),
            )
            return WebhookResult.success(event_id, event_type, payment_id, result)

        if event_type == "payment_intent.payment_failed":
            last_error = obj.get("last_payment_error") or {}
            result = PaymentResult.failure(
                error=last_error.get("message") or "Payment failed",
                error_code=last_error.get("decline_code") or last_error.get("code"),
                transaction_id=obj.get("id"),
            )
            return WebhookResult.success(event_id, event_type, payment_id, result)

        return WebhookResult.success(event_id, event_type, payment_id, handled=False)


class StripeGateway(StripeCheckoutMixin, EscrowGateway):
    """Escrow gateway: platform collects, Transfers pay providers out."""

    def disburse(self, payout: ScheduledPayout) -> DisbursementResult:
        destination = payout.provider.payout_account_id
        if not destination:
            return DisbursementResult.failure(
                error="Provider has no payout account",
                error_code="missing_payout_account",
            )

        self.log(
            "Disbursing payout",
            {"payout_id": str(payout.pk), "amount": str(payout.amount)},
        )

        try:
            transfer = self.adapter.create_transfer(
                amount_cents=to_cents(payout.amount),
                destination_account=destination,
                # Same key on every retry so a transfer Stripe already made is not repeated
                idempotency_key=IdempotencyKeyGenerator.generate("disburse", payout.pk),
                currency=payout.currency.lower(),
                metadata={
                    "payout_id": str(payout.pk),
                    "provider_id": str(payout.provider_id),
                    "batch_id": payout.batch_id or "",
                },
                trace_id=self.correlation_id,
            )
        except StripeError as e:
            self.log_error(
                "Disbursement failed",
                {"payout_id": str(payout.pk), "error": e.message, "retryable": e.is_retryable},
            )
            return DisbursementResult.failure(
                error=e.message,
                error_code=e.stripe_code or e.error_code,
                response_code=e.response_code,
                retryable=e.is_retryable,
            )

        return DisbursementResult.success(reference=transfer.id, raw_response=transfer.raw_response)


class StripeConnectGateway(StripeCheckoutMixin, SplitGateway):
    """Split gateway using Stripe Connect destination charges."""

    def __init__(self, config: dict[str, Any] | None = None):
        super().__init__(config)
        self._splits: dict[str, SplitPaymentData] = {}

    def get_platform_merchant_id(self) -> str:
        return self.config.get("platform_account_id") or settings.STRIPE_PLATFORM_ACCOUNT_ID

    def configure_split(self, payment: Payment, split: SplitPaymentData) -> None:
        self._splits[str(payment.pk)] = split

    def _checkout_params(self, payment, return_url, cancel_url) -> CreateCheckoutSessionParams:
        params = super()._checkout_params(payment, return_url, cancel_url)
        split = self._splits.get(str(payment.pk))
        if split is not None:
            params.destination_account = split.provider_merchant_id
            params.application_fee_cents = to_cents(split.platform_amount)
        return params

    def _split_details(self, payment: Payment) -> dict[str, Any] | None:
        split = self._splits.get(str(payment.pk))
        return split.to_dict() if split is not None else None

    def validate_provider_credentials(self, credentials: dict[str, Any]) -> bool:
        account_id = credentials.get("merchant_account_id")
        if not account_id:
            return False
        try:
            account = self.adapter.retrieve_account(account_id)
        except StripeError as e:
            self.log_warning(
                "Merchant account validation failed",
                {"merchant_account_id": account_id, "error": e.message},
            )
            return False
        return bool(account.get("charges_enabled"))
