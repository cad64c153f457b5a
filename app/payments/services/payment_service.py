"""
Payment lifecycle service.

PaymentService drives a booking payment from creation to a definitive
outcome. Every path that can complete a payment (browser callback,
webhook, reconciliation) funnels into ``apply_result`` so completion is
deduplicated in one place.

Gateway calls always run outside database transactions:
1. Create the Payment row (committed)
2. Call the gateway
3. Apply the outcome in a short atomic block with the Payment row locked

Usage:
    from payments.services import PaymentService

    service = PaymentService()
    result = service.initialize_payment(booking, return_url, cancel_url)
    if result.success:
        redirect(result.data.redirect_url)

    # Browser callback
    service.complete_payment(payment, request.GET.dict())
"""

from __future__ import annotations

import json
import uuid
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from core.services import BaseService, ServiceResult
from core.signals import send_on_commit
from marketplace.models import Booking
from marketplace.services import BookingService
from marketplace.states import BookingStatus

from payments.exceptions import GatewayConfigurationError, PaymentValidationError
from payments.fees import FeeCalculationError, FeeCalculator
from payments.gateways import (
    GatewayResolver,
    PaymentResult,
    SplitGateway,
    SplitPaymentData,
    redact_sensitive_data,
)
from payments.ledger import LedgerService, ledger as default_ledger
from payments.models import Payment, WebhookEvent
from payments.signals import payment_completed, payment_failed
from payments.state_machines import (
    PaymentStatus,
    PaymentType,
    WebhookEventStatus,
    run_transition,
)

if TYPE_CHECKING:
    from collections.abc import Mapping
    from typing import Any


# Statuses in which a payment has already been charged successfully
SETTLED_PAYMENT_STATUSES = [
    PaymentStatus.COMPLETED,
    PaymentStatus.PARTIALLY_REFUNDED,
    PaymentStatus.REFUNDED,
]


class PaymentService(BaseService):
    """
    Creates, completes and reconciles booking payments.

    Collaborators are injected for tests; production code uses the
    defaults.
    """

    def __init__(
        self,
        resolver: GatewayResolver | None = None,
        fee_calculator: FeeCalculator | None = None,
        ledger: LedgerService | None = None,
    ):
        self.resolver = resolver or GatewayResolver()
        self.fee_calculator = fee_calculator or FeeCalculator()
        self.ledger = ledger or default_ledger

    # ==========================================================================
    # Initialization
    # ==========================================================================

    def initialize_payment(
        self,
        booking: Booking,
        return_url: str,
        cancel_url: str,
        payment_type: str = PaymentType.FULL,
    ) -> ServiceResult[PaymentResult]:
        """
        Create a Payment for ``booking`` and start it with the gateway.

        Returns:
            ServiceResult whose data is the gateway's PaymentResult; on
            success it carries the hosted page ``redirect_url``.
        """
        log = self.get_logger()

        if BookingStatus(booking.status).is_terminal:
            return ServiceResult.failure(
                f"Booking is {booking.status} and cannot be paid",
                error_code="BOOKING_NOT_PAYABLE",
            )

        if Payment.objects.filter(
            booking=booking,
            payment_type=payment_type,
            status__in=SETTLED_PAYMENT_STATUSES,
        ).exists():
            return ServiceResult.failure(
                f"Booking already has a completed {payment_type} payment",
                error_code="PAYMENT_ALREADY_COMPLETED",
            )

        try:
            fees = self.fee_calculator.calculate_payment_amount(booking, payment_type)
        except FeeCalculationError as e:
            return ServiceResult.from_exception(e)

        provider = booking.provider
        gateway = self.resolver.for_provider(provider)
        currency = getattr(settings, "PAYMENT_DEFAULT_CURRENCY", "JMD")

        if not gateway.supports_currency(currency):
            return ServiceResult.from_exception(
                PaymentValidationError(
                    f"Gateway '{gateway.provider_name}' does not support {currency}",
                    error_code="UNSUPPORTED_CURRENCY",
                    details={"gateway": gateway.provider_name, "currency": currency},
                )
            )

        payment = Payment.objects.create(
            booking=booking,
            provider=provider,
            amount=fees.amount_to_gateway,
            platform_fee=fees.zeen_fee,
            processing_fee=fees.processing_fee,
            processing_fee_payer=fees.fee_payer,
            provider_amount=fees.provider_receives,
            currency=currency,
            payment_type=payment_type,
            gateway=gateway.provider_name,
            gateway_type=gateway.gateway_type,
            metadata={"return_url": return_url, "cancel_url": cancel_url},
        )

        if isinstance(gateway, SplitGateway):
            split = SplitPaymentData(
                provider_merchant_id=provider.merchant_account_id,
                platform_merchant_id=gateway.get_platform_merchant_id(),
                platform_amount=payment.platform_fee + payment.processing_fee,
                provider_amount=payment.provider_amount,
                currency=currency,
            )
            gateway.configure_split(payment, split)
            payment.split_details = split.to_dict()
            payment.save(update_fields=["split_details", "updated_at"])

        log.info(
            f"Initializing payment {payment.id} for booking {booking.id}",
            extra={
                "payment_id": str(payment.id),
                "booking_id": str(booking.id),
                "gateway": payment.gateway,
                "gateway_type": payment.gateway_type,
                "amount": str(payment.amount),
                "payment_type": payment_type,
            },
        )

        result = gateway.initialize_payment(payment, return_url, cancel_url)

        if not result.success:
            self._mark_failed(payment, result)
            return ServiceResult.failure(
                result.error or "Payment could not be started",
                error_code=result.error_code or "PAYMENT_INIT_FAILED",
                data=result,
            )

        with self.atomic():
            locked = Payment.objects.select_for_update().get(pk=payment.pk)
            locked.order_id = result.order_id or ""
            if result.split_details:
                locked.split_details = result.split_details
            if result.redirect_url:
                locked.set_meta("redirect_url", result.redirect_url, save=False)
            if locked.status == PaymentStatus.PENDING:
                run_transition(locked, "start_processing")
            locked.save()

        return ServiceResult.success(result)

    # ==========================================================================
    # Completion
    # ==========================================================================

    def complete_payment(
        self,
        payment: Payment,
        callback_data: dict[str, Any],
    ) -> ServiceResult[Payment]:
        """
        Verify a gateway callback and apply its outcome.

        Calling this again for an already completed payment is a no-op
        success.
        """
        payment = Payment.objects.get(pk=payment.pk)
        if payment.status in SETTLED_PAYMENT_STATUSES:
            self.get_logger().info(
                f"Payment {payment.id} already {payment.status}, callback ignored",
                extra={"payment_id": str(payment.id)},
            )
            return ServiceResult.success(payment)

        gateway = self.resolver.resolve_by_name(payment.gateway, payment.gateway_type)
        result = gateway.complete_payment(payment, callback_data)
        return self.apply_result(payment, result)

    def apply_result(self, payment: Payment, result: PaymentResult) -> ServiceResult[Payment]:
        """
        Apply a definitive gateway outcome to ``payment``.

        Pending (timeout) results leave the payment in processing for
        ``reconcile_stale_payments``.
        """
        if result.success:
            return self._mark_completed(payment, result)

        if result.pending:
            self.get_logger().warning(
                f"Payment {payment.id} outcome unknown, left in processing",
                extra={
                    "payment_id": str(payment.id),
                    "error_code": result.error_code,
                },
            )
            return ServiceResult.failure(
                result.error or "Payment outcome pending",
                error_code="PAYMENT_PENDING",
                data=payment,
            )

        return self._mark_failed(payment, result)

    def _mark_completed(self, payment: Payment, result: PaymentResult) -> ServiceResult[Payment]:
        log = self.get_logger()

        with self.atomic():
            locked = Payment.objects.select_for_update().get(pk=payment.pk)

            if locked.status in SETTLED_PAYMENT_STATUSES:
                log.info(
                    f"Payment {locked.id} already {locked.status}, completion skipped",
                    extra={"payment_id": str(locked.id)},
                )
                return ServiceResult.success(locked)

            if (
                result.transaction_id
                and Payment.objects.filter(transaction_id=result.transaction_id)
                .exclude(pk=locked.pk)
                .exists()
            ):
                log.warning(
                    f"Transaction {result.transaction_id} already recorded on another payment",
                    extra={
                        "payment_id": str(locked.id),
                        "transaction_id": result.transaction_id,
                    },
                )
                return ServiceResult.failure(
                    "Transaction already recorded",
                    error_code="DUPLICATE_TRANSACTION",
                    data=locked,
                )

            if locked.status == PaymentStatus.FAILED:
                log.error(
                    f"Gateway reports success for failed payment {locked.id}",
                    extra={
                        "payment_id": str(locked.id),
                        "transaction_id": result.transaction_id,
                    },
                )
                return ServiceResult.failure(
                    "Payment was already marked failed",
                    error_code="PAYMENT_ALREADY_FAILED",
                    data=locked,
                )

            if locked.status == PaymentStatus.PENDING:
                run_transition(locked, "start_processing")

            run_transition(
                locked,
                "complete",
                transaction_id=result.transaction_id,
                response_code=result.response_code,
                card_brand=result.card_brand,
                card_last_four=result.card_last_four,
            )
            if result.order_id and not locked.order_id:
                locked.order_id = result.order_id
            locked.save()

            booking = Booking.objects.select_for_update().get(pk=locked.booking_id)
            if booking.status == BookingStatus.PENDING:
                BookingService.transition(booking, BookingStatus.CONFIRMED)

            if locked.is_escrow():
                self.ledger.credit_for_payment(locked)

            send_on_commit(payment_completed, sender=Payment, payment=locked)

        log.info(
            f"Payment {locked.id} completed",
            extra={
                "payment_id": str(locked.id),
                "transaction_id": locked.transaction_id,
                "amount": str(locked.amount),
                "gateway_type": locked.gateway_type,
            },
        )
        return ServiceResult.success(locked)

    def _mark_failed(self, payment: Payment, result: PaymentResult) -> ServiceResult[Payment]:
        log = self.get_logger()
        reason = result.error or "Payment failed"

        with self.atomic():
            locked = Payment.objects.select_for_update().get(pk=payment.pk)

            if locked.status == PaymentStatus.FAILED:
                log.info(
                    f"Payment {locked.id} already failed",
                    extra={"payment_id": str(locked.id)},
                )
                return ServiceResult.failure(
                    locked.failure_reason or reason,
                    error_code=result.error_code or "PAYMENT_FAILED",
                    data=locked,
                )

            if locked.status in SETTLED_PAYMENT_STATUSES:
                log.warning(
                    f"Failure reported for {locked.status} payment {locked.id}, ignored",
                    extra={"payment_id": str(locked.id), "error_code": result.error_code},
                )
                return ServiceResult.success(locked)

            run_transition(locked, "fail", reason=reason, response_code=result.response_code)
            locked.save()
            send_on_commit(payment_failed, sender=Payment, payment=locked, reason=reason)

        log.warning(
            f"Payment {locked.id} failed: {reason}",
            extra={
                "payment_id": str(locked.id),
                "error_code": result.error_code,
                "response_code": result.response_code,
            },
        )
        return ServiceResult.failure(
            reason,
            error_code=result.error_code or "PAYMENT_FAILED",
            data=locked,
        )

    # ==========================================================================
    # Webhooks
    # ==========================================================================

    def apply_webhook(
        self,
        gateway_name: str,
        payload: bytes,
        headers: Mapping[str, str],
    ) -> ServiceResult[WebhookEvent]:
        """
        Verify, record and apply a gateway webhook delivery.

        Deliveries with an invalid signature are logged and discarded
        without touching the database. Redeliveries of a processed event
        are acknowledged without being applied again.

        Raises:
            GatewayConfigurationError: Unknown gateway name
        """
        log = self.get_logger()
        gateway = self.resolver.resolve_by_name(gateway_name)

        if not gateway.verify_webhook_signature(payload, headers):
            log.warning(
                f"Discarding {gateway_name} webhook with invalid signature",
                extra={"gateway": gateway_name, "headers": redact_sensitive_data(dict(headers))},
            )
            return ServiceResult.failure(
                "Invalid webhook signature",
                error_code="INVALID_SIGNATURE",
            )

        webhook = gateway.handle_webhook(payload, headers)
        if not webhook.success or not webhook.event_id:
            log.warning(
                f"Unreadable {gateway_name} webhook: {webhook.error}",
                extra={"gateway": gateway_name},
            )
            return ServiceResult.failure(
                webhook.error or "Invalid webhook payload",
                error_code="INVALID_WEBHOOK_PAYLOAD",
            )

        event, created = WebhookEvent.objects.get_or_create(
            gateway=gateway_name,
            event_id=webhook.event_id,
            defaults={
                "event_type": webhook.event_type or "",
                "payload": redact_sensitive_data(_decode_payload(payload)),
                "signature_valid": True,
            },
        )

        if not created and event.status in (WebhookEventStatus.PROCESSED, WebhookEventStatus.IGNORED):
            log.info(
                f"Duplicate webhook {gateway_name}:{webhook.event_id}, skipped",
                extra={"gateway": gateway_name, "event_id": webhook.event_id},
            )
            return ServiceResult.success(event)

        if not webhook.handled or webhook.payment_result is None:
            event.mark_ignored(f"Unhandled event type '{webhook.event_type}'")
            return ServiceResult.success(event)

        payment = self._find_payment(gateway_name, webhook.payment_id, webhook.payment_result)
        if payment is None:
            log.warning(
                f"Webhook {webhook.event_id} references an unknown payment",
                extra={"gateway": gateway_name, "payment_id": webhook.payment_id},
            )
            event.mark_ignored("Unknown payment")
            return ServiceResult.success(event)

        try:
            self.apply_result(payment, webhook.payment_result)
        except Exception as e:
            log.error(
                f"Failed to apply webhook {webhook.event_id}: {e}",
                extra={"gateway": gateway_name, "payment_id": str(payment.id)},
                exc_info=True,
            )
            event.mark_failed(str(e))
            raise

        event.mark_processed()
        log.info(
            f"Webhook {gateway_name}:{webhook.event_id} applied to payment {payment.id}",
            extra={
                "gateway": gateway_name,
                "event_id": webhook.event_id,
                "event_type": webhook.event_type,
                "payment_id": str(payment.id),
            },
        )
        return ServiceResult.success(event)

    @staticmethod
    def _find_payment(
        gateway_name: str,
        payment_id: str | None,
        result: PaymentResult,
    ) -> Payment | None:
        if payment_id:
            try:
                return Payment.objects.get(pk=uuid.UUID(str(payment_id)))
            except (ValueError, Payment.DoesNotExist):
                pass
        if result.order_id:
            return Payment.objects.filter(gateway=gateway_name, order_id=result.order_id).first()
        return None

    # ==========================================================================
    # Reconciliation
    # ==========================================================================

    def reconcile_stale_payments(self, older_than_minutes: int = 30) -> dict[str, int]:
        """
        Resolve payments stuck in processing by querying their gateway.

        Returns:
            Counts: {"checked", "completed", "failed", "pending", "errors"}
        """
        log = self.get_logger()
        cutoff = timezone.now() - timedelta(minutes=older_than_minutes)
        stats = {"checked": 0, "completed": 0, "failed": 0, "pending": 0, "errors": 0}

        stale = Payment.objects.filter(
            status=PaymentStatus.PROCESSING,
            processing_started_at__lt=cutoff,
        ).order_by("processing_started_at")

        for payment in stale:
            stats["checked"] += 1
            try:
                gateway = self.resolver.resolve_by_name(payment.gateway, payment.gateway_type)
            except GatewayConfigurationError as e:
                log.error(
                    f"Cannot reconcile payment {payment.id}: {e}",
                    extra={"payment_id": str(payment.id), "gateway": payment.gateway},
                )
                stats["errors"] += 1
                continue

            result = gateway.query_payment(payment)
            outcome = self.apply_result(payment, result)

            if outcome.success:
                stats["completed"] += 1
            elif outcome.error_code == "PAYMENT_PENDING":
                stats["pending"] += 1
            else:
                stats["failed"] += 1

        log.info("Stale payment reconciliation finished", extra=stats)
        return stats


def _decode_payload(payload: bytes) -> Any:
    try:
        return json.loads(payload)
    except ValueError:
        return {"raw": payload.decode("utf-8", errors="replace")}
