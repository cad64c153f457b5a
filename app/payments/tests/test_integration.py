"""
End-to-end tests: booking payment through to provider payout.

Each scenario walks the calendar with freezegun so the ledger hold period
and the weekly Friday payout day apply exactly as in production.
"""

from decimal import Decimal

import pytest
from freezegun import freeze_time

from marketplace.models import Booking
from marketplace.states import BookingStatus
from marketplace.tests.factories import BookingFactory
from payments.gateways import DisbursementResult
from payments.ledger import LedgerEntry, ledger
from payments.models import Payment, ScheduledPayout
from payments.services import PaymentService, PayoutScheduler, RefundService
from payments.state_machines import (
    LedgerEntryType,
    PaymentStatus,
    ScheduledPayoutStatus,
)
from payments.tests.gateways import SIGNATURE_HEADER, sign, webhook_payload

RETURN_URL = "https://app.example.test/payments/return"
CANCEL_URL = "https://app.example.test/payments/cancel"

# Monday; the hold period ends the following Monday and payouts go out on Fridays
PAID_AT = "2024-01-01 15:00:00"
SCHEDULED_AT = "2024-01-10 15:00:00"
PAYOUT_DAY = "2024-01-12 15:00:00"


@pytest.fixture(autouse=True)
def payout_schedule(settings):
    settings.PAYOUT_SCHEDULE = {
        "frequency": "weekly",
        "day_of_week": "friday",
        "minimum_amount": "1000.00",
        "hold_period_days": 7,
        "max_retries": 3,
        "retry_backoff_hours": 1,
    }


def pay_by_webhook(booking) -> Payment:
    service = PaymentService()
    result = service.initialize_payment(booking, RETURN_URL, CANCEL_URL)
    assert result.success, result.error
    payment = Payment.objects.get(booking=booking)

    payload = webhook_payload(
        f"evt_{payment.pk.hex[:8]}",
        "payment.succeeded",
        payment_id=str(payment.pk),
        transaction_id=f"txn_{payment.pk.hex[:8]}",
    )
    outcome = service.apply_webhook("fake", payload, {SIGNATURE_HEADER: sign(payload)})
    assert outcome.success, outcome.error
    return Payment.objects.get(pk=payment.pk)


class TestBookingToPayout:
    """A paid escrow booking ends as a completed provider payout."""

    def test_full_flow(self, booking, provider, fake_gateway):
        with freeze_time(PAID_AT):
            payment = pay_by_webhook(booking)

        assert payment.status == PaymentStatus.COMPLETED
        assert Booking.objects.get(pk=booking.pk).status == BookingStatus.CONFIRMED
        assert ledger.get_available_balance(provider) == Decimal("1000.00")

        with freeze_time(SCHEDULED_AT):
            assert PayoutScheduler().schedule_payouts() == 1

        payout = ScheduledPayout.objects.get(provider=provider)
        assert payout.amount == Decimal("1000.00")
        assert ledger.get_balance_summary(provider).pending_payout == Decimal("1000.00")

        with freeze_time(PAYOUT_DAY):
            assert PayoutScheduler().process_scheduled_payouts() == 1

        payout = ScheduledPayout.objects.get(pk=payout.pk)
        assert payout.status == ScheduledPayoutStatus.COMPLETED
        assert ledger.get_available_balance(provider) == Decimal("0.00")

        statement = ledger.get_statement(provider)
        assert [entry.type for entry in statement] == [
            LedgerEntryType.DEBIT,
            LedgerEntryType.CREDIT,
        ]
        assert statement[0].payout_id == payout.pk
        assert statement[1].payment_id == payment.pk

    def test_payout_not_scheduled_during_hold_period(self, booking, provider, fake_gateway):
        with freeze_time(PAID_AT):
            pay_by_webhook(booking)

        with freeze_time("2024-01-05 15:00:00"):
            assert PayoutScheduler().schedule_payouts() == 0

    def test_partial_refund_reduces_payout_below_minimum(self, booking, provider, fake_gateway):
        with freeze_time(PAID_AT):
            payment = pay_by_webhook(booking)
            result = RefundService().refund(payment, Decimal("515.00"))

        assert result.success
        assert Payment.objects.get(pk=payment.pk).status == PaymentStatus.PARTIALLY_REFUNDED
        assert ledger.get_available_balance(provider) == Decimal("500.00")

        with freeze_time(SCHEDULED_AT):
            assert PayoutScheduler().schedule_payouts() == 0

    def test_gateway_outage_is_retried_next_run(self, booking, provider, fake_gateway):
        with freeze_time(PAID_AT):
            pay_by_webhook(booking)
        with freeze_time(SCHEDULED_AT):
            PayoutScheduler().schedule_payouts()

        fake_gateway.disburse_results = [
            DisbursementResult.failure("Bank offline", error_code="unavailable", retryable=True)
        ]
        with freeze_time(PAYOUT_DAY):
            assert PayoutScheduler().process_scheduled_payouts() == 0

        payout = ScheduledPayout.objects.get(provider=provider)
        assert payout.status == ScheduledPayoutStatus.FAILED
        assert payout.retry_count == 1
        assert ledger.get_available_balance(provider) == Decimal("1000.00")

        with freeze_time("2024-01-12 18:00:00"):
            assert PayoutScheduler().process_scheduled_payouts() == 1

        assert ScheduledPayout.objects.get(pk=payout.pk).status == ScheduledPayoutStatus.COMPLETED
        assert ledger.get_available_balance(provider) == Decimal("0.00")


class TestSplitBooking:
    """Split providers are paid by the gateway; nothing reaches the ledger."""

    def test_split_flow_has_no_payout(self, split_provider, fake_gateway):
        booking = BookingFactory(provider=split_provider)

        with freeze_time(PAID_AT):
            payment = pay_by_webhook(booking)

        assert payment.status == PaymentStatus.COMPLETED
        assert Decimal(payment.split_details["provider_amount"]) == Decimal("1000.00")
        assert not LedgerEntry.objects.filter(provider=split_provider).exists()

        with freeze_time(SCHEDULED_AT):
            assert PayoutScheduler().schedule_payouts() == 0
