"""
Tests for LedgerService.

This module tests the provider balance ledger: entry recording, balance
validation, holds and releases, idempotency, immutability and the read
helpers used by payouts and provider statements.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from freezegun import freeze_time

from payments.ledger import (
    HoldAlreadyReleased,
    HoldNotFound,
    InsufficientFunds,
    InvalidLedgerAmount,
    LedgerEntry,
    LedgerError,
    ledger,
)
from payments.state_machines import LedgerEntryType, ScheduledPayoutStatus
from payments.tests.factories import PaymentFactory, ScheduledPayoutFactory, fund_provider


class TestRecordCredit:
    """Tests for LedgerService.record_credit()."""

    def test_credit_increases_available_balance(self, provider):
        entry = ledger.record_credit(provider, Decimal("1000.00"), description="Booking paid")

        assert entry.type == LedgerEntryType.CREDIT
        assert entry.amount == Decimal("1000.00")
        assert entry.balance_after == Decimal("1000.00")
        assert ledger.get_available_balance(provider) == Decimal("1000.00")

    def test_balance_after_tracks_running_total(self, provider):
        fund_provider(provider, "300.00")
        second = fund_provider(provider, "200.00")

        assert second.balance_after == Decimal("500.00")

    def test_amount_is_quantized(self, provider):
        entry = ledger.record_credit(provider, Decimal("10.005"))

        assert entry.amount == Decimal("10.01")

    @pytest.mark.parametrize("amount", [Decimal("0.00"), Decimal("-5.00")])
    def test_rejects_non_positive_amount(self, provider, amount):
        with pytest.raises(InvalidLedgerAmount):
            ledger.record_credit(provider, amount)

        assert LedgerEntry.objects.count() == 0

    def test_credit_for_payment_uses_provider_share(self, db):
        payment = PaymentFactory(completed=True)

        entry = ledger.credit_for_payment(payment)

        assert entry.amount == Decimal("1000.00")
        assert entry.payment_id == payment.pk
        assert entry.booking_id == payment.booking_id
        assert entry.idempotency_key == f"payment-credit:{payment.pk}"
        assert entry.metadata["platform_fee"] == "30.00"


class TestIdempotency:
    """Replays with the same idempotency key return the first entry."""

    def test_same_key_returns_existing_entry(self, provider):
        first = fund_provider(provider, "100.00", key="credit-1")
        second = fund_provider(provider, "100.00", key="credit-1")

        assert first.pk == second.pk
        assert ledger.get_available_balance(provider) == Decimal("100.00")

    def test_credit_for_payment_twice_credits_once(self, db):
        payment = PaymentFactory(completed=True)

        ledger.credit_for_payment(payment)
        ledger.credit_for_payment(payment)

        assert LedgerEntry.objects.filter(payment=payment).count() == 1

    def test_different_keys_create_separate_entries(self, provider):
        fund_provider(provider, "100.00", key="a")
        fund_provider(provider, "100.00", key="b")

        assert ledger.get_available_balance(provider) == Decimal("200.00")


class TestRecordDebit:
    """Tests for LedgerService.record_debit()."""

    def test_debit_reduces_balance(self, provider):
        fund_provider(provider, "1000.00")

        entry = ledger.record_debit(provider, Decimal("400.00"), description="Payout")

        assert entry.balance_after == Decimal("600.00")
        assert ledger.get_available_balance(provider) == Decimal("600.00")

    def test_debit_above_balance_writes_nothing(self, provider):
        fund_provider(provider, "100.00")

        with pytest.raises(InsufficientFunds) as exc_info:
            ledger.record_debit(provider, Decimal("150.00"))

        assert exc_info.value.required == Decimal("150.00")
        assert exc_info.value.available == Decimal("100.00")
        assert exc_info.value.error_code == "INSUFFICIENT_FUNDS"
        assert LedgerEntry.objects.filter(type=LedgerEntryType.DEBIT).count() == 0

    def test_allow_negative_overdraws(self, provider):
        fund_provider(provider, "100.00")

        entry = ledger.record_debit(provider, Decimal("150.00"), allow_negative=True)

        assert entry.balance_after == Decimal("-50.00")
        assert ledger.get_available_balance(provider) == Decimal("-50.00")

    def test_debit_for_payout(self, provider):
        fund_provider(provider, "2000.00")
        payout = ScheduledPayoutFactory(provider=provider, amount=Decimal("1500.00"))

        entry = ledger.debit_for_payout(payout)

        assert entry.payout_id == payout.pk
        assert entry.idempotency_key == f"payout-debit:{payout.pk}"
        assert ledger.get_available_balance(provider) == Decimal("500.00")


class TestHolds:
    """Tests for record_hold() and record_release()."""

    def test_hold_moves_funds_out_of_available(self, provider):
        fund_provider(provider, "1000.00")

        ledger.record_hold(provider, Decimal("200.00"), reason="Dispute #12")

        assert ledger.get_available_balance(provider) == Decimal("800.00")
        assert ledger.get_held_amount(provider) == Decimal("200.00")

    def test_hold_above_balance_is_refused(self, provider):
        fund_provider(provider, "100.00")

        with pytest.raises(InsufficientFunds):
            ledger.record_hold(provider, Decimal("200.00"), reason="Dispute")

        assert ledger.get_held_amount(provider) == Decimal("0.00")

    def test_release_restores_balance(self, provider):
        fund_provider(provider, "1000.00")
        hold = ledger.record_hold(provider, Decimal("200.00"), reason="Dispute #12")

        release = ledger.record_release(hold)

        assert release.type == LedgerEntryType.RELEASE
        assert release.released_hold_id == hold.pk
        assert release.description == "Released: Dispute #12"
        assert ledger.get_available_balance(provider) == Decimal("1000.00")
        assert ledger.get_held_amount(provider) == Decimal("0.00")

    def test_release_by_id(self, provider):
        fund_provider(provider, "1000.00")
        hold = ledger.record_hold(provider, Decimal("50.00"), reason="Review")

        ledger.record_release(hold.pk)

        assert ledger.get_held_amount(provider) == Decimal("0.00")

    def test_release_twice_is_refused(self, provider):
        fund_provider(provider, "1000.00")
        hold = ledger.record_hold(provider, Decimal("200.00"), reason="Dispute")
        ledger.record_release(hold)

        with pytest.raises(HoldAlreadyReleased):
            ledger.record_release(hold)

        assert ledger.get_available_balance(provider) == Decimal("1000.00")

    def test_release_of_credit_is_refused(self, provider):
        credit = fund_provider(provider, "1000.00")

        with pytest.raises(HoldNotFound):
            ledger.record_release(credit)

    def test_release_of_missing_entry(self, db):
        with pytest.raises(HoldNotFound):
            ledger.record_release(999999)


class TestImmutability:
    """Ledger entries cannot be changed or removed."""

    def test_save_existing_entry_raises(self, provider):
        entry = fund_provider(provider, "100.00")
        entry.amount = Decimal("1.00")

        with pytest.raises(LedgerError) as exc_info:
            entry.save()

        assert exc_info.value.error_code == "LEDGER_IMMUTABLE"

    def test_delete_entry_raises(self, provider):
        entry = fund_provider(provider, "100.00")

        with pytest.raises(LedgerError):
            entry.delete()

    def test_queryset_update_and_delete_raise(self, provider):
        fund_provider(provider, "100.00")

        with pytest.raises(LedgerError):
            LedgerEntry.objects.filter(provider=provider).update(amount=Decimal("1.00"))
        with pytest.raises(LedgerError):
            LedgerEntry.objects.filter(provider=provider).delete()

        assert ledger.get_available_balance(provider) == Decimal("100.00")


class TestReads:
    """Tests for balance summary, eligible balance, statement and earnings."""

    def test_empty_provider_has_zero_balances(self, provider):
        summary = ledger.get_balance_summary(provider)

        assert summary.total == Decimal("0.00")
        assert summary.available == Decimal("0.00")
        assert summary.held == Decimal("0.00")
        assert summary.pending_payout == Decimal("0.00")

    def test_balance_summary(self, provider):
        fund_provider(provider, "1000.00")
        ledger.record_hold(provider, Decimal("200.00"), reason="Dispute")
        ScheduledPayoutFactory(provider=provider, amount=Decimal("300.00"))

        summary = ledger.get_balance_summary(provider)

        assert summary.available == Decimal("800.00")
        assert summary.held == Decimal("200.00")
        assert summary.total == Decimal("1000.00")
        assert summary.pending_payout == Decimal("300.00")
        assert summary.to_dict()["pending_payout"] == "300.00"

    def test_finished_payouts_are_not_pending(self, provider):
        ScheduledPayoutFactory(
            provider=provider,
            amount=Decimal("300.00"),
            status=ScheduledPayoutStatus.COMPLETED,
        )

        assert ledger.get_balance_summary(provider).pending_payout == Decimal("0.00")

    def test_eligible_balance_excludes_recent_credits(self, provider):
        with freeze_time(timezone.now() - timedelta(days=10)):
            fund_provider(provider, "700.00")
        fund_provider(provider, "300.00")

        assert ledger.get_available_balance(provider) == Decimal("1000.00")
        assert ledger.get_eligible_balance(provider, hold_period_days=7) == Decimal("700.00")
        assert ledger.get_eligible_balance(provider, hold_period_days=0) == Decimal("1000.00")

    def test_eligible_balance_is_never_negative(self, provider):
        with freeze_time(timezone.now() - timedelta(days=10)):
            fund_provider(provider, "100.00")
        fund_provider(provider, "500.00")
        ledger.record_debit(provider, Decimal("550.00"))

        assert ledger.get_eligible_balance(provider, hold_period_days=7) == Decimal("0.00")

    def test_statement_is_newest_first(self, provider):
        first = fund_provider(provider, "100.00")
        second = fund_provider(provider, "200.00")
        third = ledger.record_debit(provider, Decimal("50.00"))

        statement = ledger.get_statement(provider)

        assert [entry.pk for entry in statement] == [third.pk, second.pk, first.pk]

    def test_statement_pagination(self, provider):
        entries = [fund_provider(provider, "10.00") for _ in range(5)]

        page = ledger.get_statement(provider, limit=2, offset=1)

        assert [entry.pk for entry in page] == [entries[3].pk, entries[2].pk]

    def test_earnings_in_range_counts_credits_only(self, provider):
        now = timezone.now()
        with freeze_time(now - timedelta(days=40)):
            fund_provider(provider, "999.00")
        fund_provider(provider, "400.00")
        fund_provider(provider, "100.00")
        ledger.record_debit(provider, Decimal("250.00"))

        earnings = ledger.get_earnings_in_range(
            provider,
            start=now - timedelta(days=30),
            end=now + timedelta(minutes=5),
        )

        assert earnings == Decimal("500.00")

    def test_balances_are_per_provider(self, provider, split_provider):
        fund_provider(provider, "100.00")
        fund_provider(split_provider, "40.00")

        assert ledger.get_available_balance(provider) == Decimal("100.00")
        assert ledger.get_available_balance(split_provider) == Decimal("40.00")
