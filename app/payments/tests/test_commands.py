"""
Tests for the process_payouts management command.
"""

from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import CommandError, call_command
from django.utils import timezone
from freezegun import freeze_time

from marketplace.tests.factories import ProviderFactory
from payments.models import ScheduledPayout
from payments.state_machines import ScheduledPayoutStatus
from payments.tests.factories import ScheduledPayoutFactory, fund_provider


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


def run(*args) -> str:
    out = StringIO()
    call_command("process_payouts", *args, stdout=out)
    return out.getvalue()


def fund_aged(provider, amount):
    with freeze_time(timezone.now() - timedelta(days=10)):
        fund_provider(provider, amount)


class TestProcessPayoutsCommand:
    """Tests for ``manage.py process_payouts``."""

    def test_requires_an_action(self, db):
        with pytest.raises(CommandError, match="Please specify"):
            run()

    def test_schedule(self, provider):
        fund_aged(provider, "1500.00")

        output = run("--schedule")

        assert "Scheduled 1 new payouts." in output
        assert "Scheduled: 1  Processed: 0" in output
        assert ScheduledPayout.objects.get(provider=provider).status == (
            ScheduledPayoutStatus.PENDING
        )

    def test_process(self, provider, fake_gateway):
        fund_provider(provider, "2000.00")
        payout = ScheduledPayoutFactory(provider=provider)

        output = run("--process")

        assert "Processed 1 payouts." in output
        assert ScheduledPayout.objects.get(pk=payout.pk).status == (
            ScheduledPayoutStatus.COMPLETED
        )

    def test_process_with_failures_exits_non_zero(self, provider, fake_gateway):
        fund_provider(provider, "2000.00")
        ok = ScheduledPayoutFactory(provider=provider)
        # Nothing earned, so the disbursement is refused
        unfunded = ScheduledPayoutFactory(provider=ProviderFactory())

        with pytest.raises(CommandError, match="1 payouts failed"):
            run("--process")

        assert ScheduledPayout.objects.get(pk=ok.pk).status == (
            ScheduledPayoutStatus.COMPLETED
        )
        assert ScheduledPayout.objects.get(pk=unfunded.pk).status == (
            ScheduledPayoutStatus.FAILED
        )

    def test_all_schedules_then_processes(self, provider, fake_gateway):
        fund_aged(provider, "1500.00")

        output = run("--all")

        # New payouts are scheduled for the next payout day, so nothing is due yet
        assert "Scheduled: 1  Processed: 0" in output

    def test_batch(self, fake_gateway, db):
        provider = ProviderFactory()
        fund_provider(provider, "2000.00")
        ScheduledPayoutFactory(provider=provider, batch_id="BATCH-CMD")

        output = run("--batch=BATCH-CMD")

        assert "Total: 1" in output
        assert "Batch processed successfully." in output

    def test_batch_with_failures_exits_non_zero(self, fake_gateway, db):
        ScheduledPayoutFactory(provider=ProviderFactory(), batch_id="BATCH-CMD")

        with pytest.raises(CommandError, match="1 payouts failed"):
            run("--batch", "BATCH-CMD")

        payout = ScheduledPayout.objects.get(batch_id="BATCH-CMD")
        assert payout.status == ScheduledPayoutStatus.FAILED
