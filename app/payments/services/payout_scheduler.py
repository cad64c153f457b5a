"""
Payout scheduler for escrow provider balances.

Two phases run as separate jobs:
1. Schedule: create one ScheduledPayout per provider whose balance older
   than the hold period reaches the minimum payout amount
2. Process: disburse due payouts through the provider's escrow gateway,
   debiting the ledger for each completed payout

Each payout is handled with a three-step pattern:
1. Lock the payout, check the balance, move it to PROCESSING, commit
2. Call gateway.disburse OUTSIDE the transaction
3. Record the outcome (ledger debit + COMPLETED, or FAILED) atomically

One provider's failure never stops the rest of a batch.

Usage:
    from payments.services import PayoutScheduler

    scheduler = PayoutScheduler()
    scheduler.schedule_payouts()
    scheduler.process_scheduled_payouts()

    results = scheduler.process_batch("BATCH-20240105-AB12CD")
    # {"total": 3, "processed": 2, "failed": 1}
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.db import IntegrityError
from django.db.models import F
from django.utils import timezone

from core.money import to_money
from core.services import BaseService
from core.signals import send_on_commit
from marketplace.models import Provider

from payments.exceptions import GatewayConfigurationError
from payments.gateways import DisbursementResult, EscrowGateway, GatewayResolver
from payments.ledger import InsufficientFunds, LedgerService, ledger as default_ledger
from payments.models import ScheduledPayout
from payments.signals import payout_completed, payout_failed
from payments.state_machines import (
    ACTIVE_PAYOUT_STATUSES,
    GatewayType,
    PayoutFailureKind,
    ScheduledPayoutStatus,
    run_transition,
)

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime
    from typing import Any


PAYOUT_FREQUENCIES = ("daily", "weekly", "biweekly", "monthly")

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

DEFAULT_PAYOUT_METHOD = "bank_transfer"


# =============================================================================
# Configuration
# =============================================================================


@dataclass(frozen=True)
class PayoutConfig:
    """
    Payout schedule settings.

    Attributes:
        frequency: daily, weekly, biweekly or monthly
        day_of_week: Weekday name used by weekly and biweekly schedules
        minimum_amount: Smallest balance worth paying out
        hold_period_days: Age a credit needs before it can be paid out
        max_retries: Attempts before a retryable failure becomes terminal
        retry_backoff_hours: Base delay, doubled after every failed attempt
        currency: Payout currency
        batch_size: Maximum payouts handled per processing run
    """

    frequency: str = "weekly"
    day_of_week: str = "friday"
    minimum_amount: Decimal = Decimal("1000.00")
    hold_period_days: int = 7
    max_retries: int = 3
    retry_backoff_hours: int = 1
    currency: str = "JMD"
    batch_size: int = 100

    def __post_init__(self) -> None:
        if self.frequency not in PAYOUT_FREQUENCIES:
            raise ImproperlyConfigured(
                f"PAYOUT_SCHEDULE frequency must be one of {PAYOUT_FREQUENCIES}, "
                f"got '{self.frequency}'"
            )
        if self.day_of_week.lower() not in WEEKDAYS:
            raise ImproperlyConfigured(
                f"PAYOUT_SCHEDULE day_of_week must be a weekday name, got '{self.day_of_week}'"
            )
        object.__setattr__(self, "day_of_week", self.day_of_week.lower())
        object.__setattr__(self, "minimum_amount", to_money(self.minimum_amount))

    @classmethod
    def from_settings(cls, overrides: dict[str, Any] | None = None) -> PayoutConfig:
        values = dict(getattr(settings, "PAYOUT_SCHEDULE", {}))
        values.setdefault("currency", getattr(settings, "PAYMENT_DEFAULT_CURRENCY", "JMD"))
        values.update(overrides or {})
        known = cls.__dataclass_fields__
        return cls(**{key: value for key, value in values.items() if key in known})

    def backoff_for(self, attempt: int) -> timedelta:
        """Delay before retry ``attempt`` + 1: base, 2x base, 4x base..."""
        return timedelta(hours=self.retry_backoff_hours * 2 ** max(attempt - 1, 0))


# =============================================================================
# Scheduler
# =============================================================================


class PayoutScheduler(BaseService):
    """
    Schedules and disburses provider payouts from the escrow ledger.

    Failure handling:
        - Retryable (timeout, 5xx, rate limit): FAILED with next_retry_at
          set by exponential backoff; picked up again by
          process_scheduled_payouts until max_retries attempts are used
        - Terminal (4xx, invalid account, insufficient balance): FAILED
          with failure_kind=terminal; only a manual retry_payout revives it

    Every failure increments retry_count.
    """

    def __init__(
        self,
        ledger: LedgerService | None = None,
        resolver: GatewayResolver | None = None,
        config: PayoutConfig | None = None,
    ):
        self.ledger = ledger or default_ledger
        self.resolver = resolver or GatewayResolver()
        self.config = config or PayoutConfig.from_settings()

    # =========================================================================
    # Eligibility
    # =========================================================================

    def get_eligible_providers(self) -> list[Provider]:
        """Escrow providers whose payable balance reaches the minimum."""
        candidates = (
            Provider.objects.filter(ledger_entries__isnull=False).distinct().order_by("created_at")
        )
        eligible = []
        for provider in candidates:
            if self.resolver.get_gateway_type(provider) != GatewayType.ESCROW:
                continue
            if self.calculate_payout_amount(provider) >= self.config.minimum_amount:
                eligible.append(provider)
        return eligible

    def calculate_payout_amount(self, provider: Provider) -> Decimal:
        """Available balance minus credits still inside the hold period."""
        return self.ledger.get_eligible_balance(provider, self.config.hold_period_days)

    def get_next_payout_date(self, now: datetime | None = None) -> datetime:
        """
        Start of the next payout day after ``now``.

        daily: tomorrow
        weekly: next ``day_of_week`` (a week ahead when today is that day)
        biweekly: one week after the next ``day_of_week``
        monthly: first day of next month
        """
        now = timezone.localtime(now or timezone.now())
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)

        if self.config.frequency == "daily":
            return today + timedelta(days=1)

        if self.config.frequency == "monthly":
            if today.month == 12:
                return today.replace(year=today.year + 1, month=1, day=1)
            return today.replace(month=today.month + 1, day=1)

        target = WEEKDAYS.index(self.config.day_of_week)
        days_ahead = (target - today.weekday()) % 7 or 7
        next_day = today + timedelta(days=days_ahead)
        if self.config.frequency == "biweekly":
            next_day += timedelta(weeks=1)
        return next_day

    # =========================================================================
    # Scheduling
    # =========================================================================

    def schedule_payouts(self) -> int:
        """
        Create a pending payout for every eligible provider.

        Providers with an active payout, or a failed payout waiting for its
        automatic retry, are skipped. New payouts share one batch id.

        Returns:
            Number of payouts created
        """
        log = self.get_logger()
        scheduled_for = self.get_next_payout_date()
        created: list[ScheduledPayout] = []

        for provider in self.get_eligible_providers():
            amount = self.calculate_payout_amount(provider)
            if amount < self.config.minimum_amount:
                continue

            if self._has_open_payout(provider):
                log.info(
                    f"Provider {provider.id} already has an open payout, skipped",
                    extra={"provider_id": str(provider.id)},
                )
                continue

            try:
                with self.atomic():
                    payout = ScheduledPayout.objects.create(
                        provider=provider,
                        amount=amount,
                        currency=self.config.currency,
                        scheduled_for=scheduled_for,
                        payout_method=DEFAULT_PAYOUT_METHOD,
                    )
            except IntegrityError:
                log.info(
                    f"Concurrent payout exists for provider {provider.id}, skipped",
                    extra={"provider_id": str(provider.id)},
                )
                continue

            created.append(payout)
            log.info(
                f"Payout scheduled for provider {provider.id}",
                extra={
                    "payout_id": str(payout.id),
                    "provider_id": str(provider.id),
                    "amount": str(amount),
                    "scheduled_for": scheduled_for.isoformat(),
                },
            )

        if created:
            self.create_batch([payout.pk for payout in created])
        return len(created)

    def _has_open_payout(self, provider: Provider) -> bool:
        payouts = ScheduledPayout.objects.filter(provider=provider)
        if payouts.filter(status__in=ACTIVE_PAYOUT_STATUSES).exists():
            return True
        return payouts.filter(
            status=ScheduledPayoutStatus.FAILED,
            next_retry_at__isnull=False,
        ).exists()

    def create_batch(self, payout_ids: Iterable[Any]) -> str:
        """Group pending payouts under a new batch id and return it."""
        batch_id = ScheduledPayout.generate_batch_id()
        count = ScheduledPayout.objects.filter(
            pk__in=list(payout_ids),
            status=ScheduledPayoutStatus.PENDING,
        ).update(batch_id=batch_id, version=F("version") + 1, updated_at=timezone.now())

        self.get_logger().info(
            f"Created payout batch {batch_id}",
            extra={"batch_id": batch_id, "payout_count": count},
        )
        return batch_id

    # =========================================================================
    # Processing
    # =========================================================================

    def process_scheduled_payouts(self) -> int:
        """
        Disburse every due payout.

        Failed retryable payouts whose next_retry_at has passed are moved
        back to pending first.

        Returns:
            Number of payouts completed
        """
        return self.run_scheduled_payouts()["processed"]

    def run_scheduled_payouts(self) -> dict[str, int]:
        """
        Disburse every due payout and report how the run went.

        Returns:
            {"total": due, "processed": ok, "failed": due - ok}
        """
        self._requeue_due_retries()

        due = list(
            ScheduledPayout.objects.filter(
                status=ScheduledPayoutStatus.PENDING,
                scheduled_for__lte=timezone.now(),
            ).order_by("scheduled_for", "created_at")[: self.config.batch_size]
        )
        results = {"total": len(due), "processed": 0, "failed": 0}

        for payout in due:
            if self._process_safely(payout):
                results["processed"] += 1
            else:
                results["failed"] += 1

        self.get_logger().info("Scheduled payout run finished", extra=results)
        return results

    def _requeue_due_retries(self) -> None:
        retries = ScheduledPayout.objects.filter(
            status=ScheduledPayoutStatus.FAILED,
            failure_kind=PayoutFailureKind.RETRYABLE,
            next_retry_at__lte=timezone.now(),
        ).order_by("next_retry_at")[: self.config.batch_size]

        for payout in retries:
            with self.atomic():
                locked = ScheduledPayout.objects.select_for_update().get(pk=payout.pk)
                if not locked.is_retry_scheduled:
                    continue
                run_transition(locked, "retry")
                locked.save()

    def process_batch(self, batch_id: str) -> dict[str, int]:
        """
        Process the pending payouts of a batch.

        Returns:
            {"total": n, "processed": ok, "failed": n - ok}
        """
        payouts = list(
            ScheduledPayout.objects.filter(
                batch_id=batch_id,
                status=ScheduledPayoutStatus.PENDING,
            ).order_by("created_at")
        )
        results = {"total": len(payouts), "processed": 0, "failed": 0}

        for payout in payouts:
            if self._process_safely(payout):
                results["processed"] += 1
            else:
                results["failed"] += 1

        self.get_logger().info(
            f"Payout batch {batch_id} finished",
            extra={"batch_id": batch_id, **results},
        )
        return results

    def _process_safely(self, payout: ScheduledPayout) -> bool:
        try:
            return self.process_payout(payout)
        except Exception as e:
            self.get_logger().exception(
                f"Payout {payout.id} processing raised: {e}",
                extra={"payout_id": str(payout.id)},
            )
            self._fail_payout(payout.pk, str(e), retryable=False)
            return False

    def process_payout(self, payout: ScheduledPayout) -> bool:
        """
        Disburse one pending payout.

        The amount is reduced to the available balance when that still
        meets the minimum; otherwise the payout fails with "Insufficient
        balance".

        Returns:
            True when the payout completed
        """
        log = self.get_logger()

        with self.atomic():
            locked = (
                ScheduledPayout.objects.select_for_update()
                .select_related("provider")
                .get(pk=payout.pk)
            )
            if locked.status != ScheduledPayoutStatus.PENDING:
                log.info(
                    f"Payout {locked.id} is {locked.status}, not processed",
                    extra={"payout_id": str(locked.id)},
                )
                return False

            available = self.ledger.get_available_balance(locked.provider)
            if available < locked.amount:
                if available < self.config.minimum_amount:
                    run_transition(locked, "start_processing")
                    self._record_failure(
                        locked,
                        "Insufficient balance",
                        retryable=False,
                        error_code=InsufficientFunds.default_error_code,
                    )
                    return False
                log.info(
                    f"Payout {locked.id} reduced from {locked.amount} to {available}",
                    extra={"payout_id": str(locked.id)},
                )
                locked.amount = available

            run_transition(locked, "start_processing")
            locked.save()

        try:
            gateway = self._gateway_for(locked.provider)
            result = gateway.disburse(locked)
        except GatewayConfigurationError as e:
            result = DisbursementResult.failure(e.message, error_code=e.error_code)

        if result.success:
            self._complete_payout(locked.pk, result)
            return True

        self._fail_payout(
            locked.pk,
            result.error or "Disbursement failed",
            retryable=result.retryable,
            error_code=result.error_code,
        )
        return False

    def _gateway_for(self, provider: Provider) -> EscrowGateway:
        name = provider.gateway_provider or self.resolver.default_gateway_name()
        gateway = self.resolver.resolve_by_name(name, GatewayType.ESCROW)
        if not isinstance(gateway, EscrowGateway):
            raise GatewayConfigurationError(
                f"Gateway {name} cannot disburse payouts",
                details={"gateway": name},
            )
        return gateway

    def _complete_payout(self, payout_pk: Any, result: DisbursementResult) -> ScheduledPayout:
        log = self.get_logger()

        with self.atomic():
            locked = (
                ScheduledPayout.objects.select_for_update()
                .select_related("provider")
                .get(pk=payout_pk)
            )
            run_transition(
                locked,
                "complete",
                reference_number=ScheduledPayout.generate_reference_number(),
                gateway_reference=result.reference,
            )
            locked.save()

            try:
                self.ledger.debit_for_payout(locked)
            except InsufficientFunds as e:
                log.error(
                    f"Disbursed payout {locked.id} exceeds the balance, recording overdraft",
                    extra={
                        "payout_id": str(locked.id),
                        "required": str(e.required),
                        "available": str(e.available),
                    },
                )
                self.ledger.debit_for_payout(locked, allow_negative=True)

            send_on_commit(payout_completed, sender=ScheduledPayout, payout=locked)

        log.info(
            f"Payout {locked.id} completed",
            extra={
                "payout_id": str(locked.id),
                "provider_id": str(locked.provider_id),
                "amount": str(locked.amount),
                "reference": locked.reference_number,
                "gateway_reference": locked.gateway_reference,
            },
        )
        return locked

    def _fail_payout(
        self,
        payout_pk: Any,
        reason: str,
        retryable: bool,
        error_code: str | None = None,
    ) -> None:
        with self.atomic():
            locked = ScheduledPayout.objects.select_for_update().get(pk=payout_pk)
            if locked.status != ScheduledPayoutStatus.PROCESSING:
                return
            self._record_failure(locked, reason, retryable=retryable, error_code=error_code)

    def _record_failure(
        self,
        payout: ScheduledPayout,
        reason: str,
        retryable: bool,
        error_code: str | None = None,
    ) -> None:
        """Fail a locked PROCESSING payout; call inside a transaction."""
        attempt = payout.retry_count + 1
        will_retry = retryable and attempt < self.config.max_retries
        next_retry_at = timezone.now() + self.config.backoff_for(attempt) if will_retry else None

        run_transition(
            payout,
            "fail",
            reason=reason,
            failure_kind=PayoutFailureKind.RETRYABLE if will_retry else PayoutFailureKind.TERMINAL,
            next_retry_at=next_retry_at,
        )
        payout.save()
        send_on_commit(
            payout_failed,
            sender=ScheduledPayout,
            payout=payout,
            reason=reason,
            retryable=will_retry,
        )

        self.get_logger().warning(
            f"Payout {payout.id} failed: {reason}",
            extra={
                "payout_id": str(payout.id),
                "provider_id": str(payout.provider_id),
                "error_code": error_code,
                "retry_count": payout.retry_count,
                "next_retry_at": next_retry_at.isoformat() if next_retry_at else None,
            },
        )

    # =========================================================================
    # Operator actions
    # =========================================================================

    def cancel_payout(self, payout: ScheduledPayout, reason: str) -> bool:
        """Cancel a pending or failed payout. Returns False otherwise."""
        with self.atomic():
            locked = ScheduledPayout.objects.select_for_update().get(pk=payout.pk)
            if not locked.can_cancel:
                return False
            run_transition(locked, "cancel", reason=reason)
            locked.save()

        self.get_logger().info(
            f"Payout {locked.id} cancelled",
            extra={"payout_id": str(locked.id), "reason": reason},
        )
        return True

    def retry_payout(self, payout: ScheduledPayout) -> ScheduledPayout | None:
        """
        Put a failed payout back in the queue for immediate processing.

        Works for terminal failures too. Returns None when the payout is
        not failed or the provider already has another active payout.
        """
        log = self.get_logger()

        with self.atomic():
            locked = ScheduledPayout.objects.select_for_update().get(pk=payout.pk)
            if not locked.can_retry:
                return None

            if (
                ScheduledPayout.objects.filter(
                    provider_id=locked.provider_id,
                    status__in=ACTIVE_PAYOUT_STATUSES,
                )
                .exclude(pk=locked.pk)
                .exists()
            ):
                log.info(
                    f"Provider {locked.provider_id} has an active payout, retry of {locked.id} refused",
                    extra={"payout_id": str(locked.id)},
                )
                return None

            run_transition(locked, "retry", scheduled_for=timezone.now())
            locked.notes = "\n".join(
                filter(None, [locked.notes, f"Manual retry after: {locked.failure_reason}"])
            )
            locked.save()

        log.info(
            f"Payout {locked.id} queued for retry",
            extra={"payout_id": str(locked.id), "retry_count": locked.retry_count},
        )
        return locked

