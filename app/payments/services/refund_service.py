"""
Refund service for returning money to clients.

The service implements:
1. Refund eligibility checking based on the Payment state and amount
2. Partial and full refunds, with the status following the refunded total
3. Clawback of the provider's share from the ledger for escrow payments
4. Booking cancellation when a payment is fully refunded

The refund amount is claimed on the locked Payment first. The gateway is
called outside any transaction; the Payment, ledger and booking are
updated together afterwards.

Usage:
    from payments.services import RefundService

    eligibility = RefundService().check_refund_eligibility(payment, amount)

    if eligibility.eligible:
        result = RefundService().refund(payment, Decimal("200.00"), reason="Customer request")
        if not result.success:
            print(f"Refund failed: {result.error}")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from core.money import ZERO, to_cents, to_money
from core.services import BaseService, ServiceResult
from core.signals import send_on_commit
from marketplace.models import Booking
from marketplace.services import BookingService
from marketplace.states import BookingStatus, CancelledBy

from payments.exceptions import RefundNotAllowedError
from payments.gateways import GatewayResolver
from payments.ledger import InsufficientFunds, LedgerService, ledger as default_ledger
from payments.models import Payment
from payments.signals import payment_refunded
from payments.state_machines import PaymentStatus, run_transition

RETRY_KEY_META = "refund_retry_amount"

CLAIM_FIELDS = ["refund_in_flight", "refund_attempts", "metadata", "version", "updated_at"]


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class RefundEligibility:
    """
    Result of a refund eligibility check.

    Attributes:
        eligible: Whether the refund can go ahead
        amount: Amount that would be refunded
        max_refundable: amount - refunded_amount - refund_in_flight
        clawback: Provider share taken back from the ledger (escrow only)
        available_balance: Provider's available ledger balance
        block_reason: Human-readable reason if not eligible
        error_code: Machine-readable reason if not eligible
    """

    eligible: bool
    amount: Decimal = ZERO
    max_refundable: Decimal = ZERO
    clawback: Decimal = ZERO
    available_balance: Decimal | None = None
    block_reason: str | None = None
    error_code: str | None = None


# =============================================================================
# Refund Service
# =============================================================================


class RefundService(BaseService):
    """
    Service for refunding completed payments.

    Eligibility Matrix:
        - PENDING/PROCESSING: Not refundable (no money moved yet)
        - COMPLETED/PARTIALLY_REFUNDED: Refundable up to the remaining amount
        - FAILED: Not refundable
        - REFUNDED: Not refundable (nothing left)

    For escrow payments the provider's share of the refund is clawed back
    in proportion to the refunded fraction. The refund is refused before
    the gateway is called when the provider's available balance cannot
    cover it; once the gateway has refunded, the clawback is recorded even
    if it overdraws the balance.
    """

    def __init__(
        self,
        resolver: GatewayResolver | None = None,
        ledger: LedgerService | None = None,
    ):
        self.resolver = resolver or GatewayResolver()
        self.ledger = ledger or default_ledger

    # =========================================================================
    # Eligibility Checking
    # =========================================================================

    def check_refund_eligibility(
        self,
        payment: Payment,
        amount: Decimal | None = None,
    ) -> RefundEligibility:
        """
        Check whether ``amount`` (default: everything left) can be refunded.
        """
        if payment.status not in (PaymentStatus.COMPLETED, PaymentStatus.PARTIALLY_REFUNDED):
            return RefundEligibility(
                eligible=False,
                block_reason=self._get_non_refundable_reason(payment.status),
                error_code=RefundNotAllowedError.default_error_code,
            )

        max_refundable = payment.refundable_amount
        if max_refundable <= 0:
            return RefundEligibility(
                eligible=False,
                block_reason="No remaining amount to refund",
                error_code=RefundNotAllowedError.default_error_code,
            )

        amount = max_refundable if amount is None else to_money(amount)
        if amount <= 0:
            return RefundEligibility(
                eligible=False,
                amount=amount,
                max_refundable=max_refundable,
                block_reason="Refund amount must be positive",
                error_code="INVALID_REFUND_AMOUNT",
            )

        if amount > max_refundable:
            return RefundEligibility(
                eligible=False,
                amount=amount,
                max_refundable=max_refundable,
                block_reason=f"Refund of {amount} exceeds refundable amount {max_refundable}",
                error_code="REFUND_EXCEEDS_BALANCE",
            )

        in_flight = payment.refund_in_flight
        clawback = self.calculate_clawback(payment, amount, payment.refunded_amount + in_flight)
        available = None
        if clawback > 0:
            # Clawbacks of refunds still at the gateway are not debited yet
            pending = self.calculate_clawback(payment, in_flight)
            available = self.ledger.get_available_balance(payment.provider) - pending
            if available < clawback:
                return RefundEligibility(
                    eligible=False,
                    amount=amount,
                    max_refundable=max_refundable,
                    clawback=clawback,
                    available_balance=available,
                    block_reason=(
                        f"Provider balance {available} cannot cover the refund clawback {clawback}"
                    ),
                    error_code=InsufficientFunds.default_error_code,
                )

        return RefundEligibility(
            eligible=True,
            amount=amount,
            max_refundable=max_refundable,
            clawback=clawback,
            available_balance=available,
        )

    @staticmethod
    def _get_non_refundable_reason(status: str) -> str:
        reasons = {
            PaymentStatus.PENDING: "Cannot refund PENDING payment - no money has been moved",
            PaymentStatus.PROCESSING: "Cannot refund PROCESSING payment - payment is in progress",
            PaymentStatus.FAILED: "Cannot refund FAILED payment",
            PaymentStatus.REFUNDED: "Payment has already been fully refunded",
        }
        return reasons.get(status, f"Cannot refund payment in {status} state")

    @staticmethod
    def calculate_clawback(
        payment: Payment,
        amount: Decimal,
        refunded: Decimal | None = None,
    ) -> Decimal:
        """
        Provider share of refunding ``amount`` more of ``payment``.

        Computed on the cumulative refunded total (``refunded``, default
        ``payment.refunded_amount``) so that a series of partial refunds
        claws back exactly ``provider_amount`` in the end. Split payments
        were never credited to the ledger and claw back 0.
        """
        if not payment.is_escrow() or payment.amount <= 0:
            return ZERO
        if refunded is None:
            refunded = payment.refunded_amount
        before = to_money(payment.provider_amount * refunded / payment.amount)
        after = to_money(payment.provider_amount * (refunded + amount) / payment.amount)
        return after - before

    # =========================================================================
    # Refund Execution
    # =========================================================================

    def refund(
        self,
        payment: Payment,
        amount: Decimal | None = None,
        reason: str | None = None,
    ) -> ServiceResult[Payment]:
        """
        Refund ``amount`` of ``payment`` (everything left when None).

        The amount is claimed on the locked Payment before the gateway is
        called, so concurrent refunds cannot spend the same remainder.
        Each claim gets its own gateway idempotency key; a claim released
        after a retryable gateway failure hands its key to the next request
        for the same amount.

        Returns:
            ServiceResult with the updated Payment, or a failure when the
            refund is not allowed or the gateway refused it.
        """
        log = self.get_logger()

        with self.atomic():
            payment = Payment.objects.select_for_update().get(pk=payment.pk)
            eligibility = self.check_refund_eligibility(payment, amount)
            if eligibility.eligible:
                self._claim(payment, eligibility.amount)

        if not eligibility.eligible:
            log.info(
                f"Refund refused for payment {payment.id}: {eligibility.block_reason}",
                extra={
                    "payment_id": str(payment.id),
                    "requested_amount": str(amount) if amount is not None else None,
                    "error_code": eligibility.error_code,
                },
            )
            return ServiceResult.failure(
                eligibility.block_reason or "Refund not allowed",
                error_code=eligibility.error_code,
                data=payment,
            )

        amount = eligibility.amount
        gateway = self.resolver.resolve_by_name(payment.gateway, payment.gateway_type)

        log.info(
            f"Refunding {amount} of payment {payment.id}",
            extra={
                "payment_id": str(payment.id),
                "amount": str(amount),
                "attempt": payment.refund_attempts,
                "clawback": str(eligibility.clawback),
                "reason": reason,
            },
        )

        result = gateway.refund(payment, amount)
        if not result.success:
            log.warning(
                f"Gateway refused refund for payment {payment.id}: {result.error}",
                extra={
                    "payment_id": str(payment.id),
                    "error_code": result.error_code,
                    "retryable": result.retryable,
                },
            )
            payment = self._release_claim(payment, amount, keep_key=result.retryable)
            return ServiceResult.failure(
                result.error or "Refund failed",
                error_code=result.error_code or "REFUND_FAILED",
                data=payment,
            )

        with self.atomic():
            locked = Payment.objects.select_for_update().get(pk=payment.pk)
            locked.refund_in_flight -= amount
            if amount > locked.refundable_amount:
                raise RefundNotAllowedError(
                    f"Refund of {amount} exceeds refundable amount {locked.refundable_amount}",
                    details={
                        "payment_id": str(locked.id),
                        "refund_id": result.refund_id,
                    },
                )

            clawback = self.calculate_clawback(locked, amount)
            refunded_before = locked.refunded_amount
            full = refunded_before + amount >= locked.amount
            if full:
                run_transition(locked, "refund_fully", amount)
            else:
                run_transition(locked, "refund_partially", amount)
            locked.save()

            if clawback > 0:
                self.ledger.debit_for_refund(
                    locked,
                    clawback,
                    idempotency_key=f"refund-debit:{locked.pk}:{to_cents(refunded_before)}",
                    allow_negative=True,
                )

            if full:
                self._cancel_booking(locked)

            send_on_commit(
                payment_refunded,
                sender=Payment,
                payment=locked,
                amount=amount,
                full=full,
            )

        log.info(
            f"Payment {locked.id} refunded {amount} ({locked.status})",
            extra={
                "payment_id": str(locked.id),
                "refund_id": result.refund_id,
                "refunded_amount": str(locked.refunded_amount),
                "clawback": str(clawback),
            },
        )
        return ServiceResult.success(locked)

    @staticmethod
    def _claim(payment: Payment, amount: Decimal) -> None:
        """Reserve ``amount`` on a locked Payment and pick its attempt number."""
        if payment.metadata.pop(RETRY_KEY_META, None) != str(amount):
            payment.refund_attempts += 1
        payment.refund_in_flight += amount
        payment.save(update_fields=CLAIM_FIELDS)

    def _release_claim(self, payment: Payment, amount: Decimal, keep_key: bool) -> Payment:
        with self.atomic():
            locked = Payment.objects.select_for_update().get(pk=payment.pk)
            locked.refund_in_flight -= amount
            if keep_key:
                # The gateway may have refunded; a retry must reuse this key
                locked.set_meta(RETRY_KEY_META, str(amount), save=False)
            locked.save(update_fields=CLAIM_FIELDS)
        return locked

    def _cancel_booking(self, payment: Payment) -> None:
        booking = Booking.objects.select_for_update().get(pk=payment.booking_id)
        if not booking.can_transition_to(BookingStatus.CANCELLED):
            self.get_logger().info(
                f"Booking {booking.id} is {booking.status}, left unchanged after full refund",
                extra={"booking_id": str(booking.id), "payment_id": str(payment.id)},
            )
            return
        BookingService.transition(
            booking,
            BookingStatus.CANCELLED,
            reason="Payment refunded",
            cancelled_by=CancelledBy.SYSTEM,
        )

