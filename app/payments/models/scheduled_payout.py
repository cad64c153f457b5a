"""
ScheduledPayout model for batched provider disbursements.

A ScheduledPayout moves a provider's available escrow balance out of the
platform. The amount is fixed when the payout is scheduled; credits that
arrive afterwards wait for the next run.

Usage:
    from payments.models import ScheduledPayout

    payout.start_processing()
    payout.save()

    payout.complete(reference_number="PAYOUT-20240301-AB12CD34")
    payout.save()
"""

from __future__ import annotations

from django.db import models
from django.db.models import F
from django.utils import timezone
from django.utils.crypto import get_random_string
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import (
    ACTIVE_PAYOUT_STATUSES,
    PayoutFailureKind,
    ScheduledPayoutStatus,
)

REFERENCE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


class ScheduledPayout(UUIDPrimaryKeyMixin, BaseModel):
    """
    One disbursement of a provider's ledger balance.

    State Flow:
        PENDING -> PROCESSING -> COMPLETED
        PROCESSING -> FAILED -> PENDING (retry)
        PENDING/FAILED -> CANCELLED

    At most one PENDING or PROCESSING payout exists per provider
    (partial unique constraint).
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    provider = models.ForeignKey(
        "marketplace.Provider",
        on_delete=models.PROTECT,
        related_name="scheduled_payouts",
        help_text="Provider receiving the payout",
    )

    # ==========================================================================
    # Amount & Schedule
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Amount fixed at scheduling time",
    )

    currency = models.CharField(
        max_length=3,
        default="JMD",
        help_text="ISO 4217 currency code",
    )

    scheduled_for = models.DateTimeField(
        db_index=True,
        help_text="Earliest time the payout may be processed",
    )

    payout_method = models.CharField(
        max_length=30,
        default="bank_transfer",
        help_text="How the money is sent",
    )

    batch_id = models.CharField(
        max_length=50,
        null=True,
        blank=True,
        db_index=True,
        help_text="Batch this payout belongs to (BATCH-YYYYMMDD-XXXXXX)",
    )

    reference_number = models.CharField(
        max_length=50,
        null=True,
        blank=True,
        unique=True,
        help_text="Reference assigned on completion",
    )

    gateway_reference = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Disbursement id returned by the gateway",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=ScheduledPayoutStatus.PENDING,
        choices=ScheduledPayoutStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current payout status (managed by FSM)",
    )

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    # ==========================================================================
    # Failure & Retry
    # ==========================================================================

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of failed disbursement attempts",
    )

    failure_reason = models.TextField(
        blank=True,
        default="",
        help_text="Reason for the last failure or cancellation",
    )

    failure_kind = models.CharField(
        max_length=20,
        choices=PayoutFailureKind.choices,
        null=True,
        blank=True,
        help_text="Retryable (timeout, 5xx) or terminal (4xx, bad details)",
    )

    next_retry_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When a retryable failure may be attempted again",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payout completed",
    )

    notes = models.TextField(
        blank=True,
        default="",
        help_text="Operator notes",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Scheduled Payout"
        verbose_name_plural = "Scheduled Payouts"
        indexes = [
            models.Index(fields=["status", "scheduled_for"], name="payout_status_sched_idx"),
            models.Index(fields=["status", "next_retry_at"], name="payout_status_retry_idx"),
            models.Index(fields=["provider", "status"], name="payout_provider_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="scheduled_payout_amount_positive",
            ),
            models.UniqueConstraint(
                fields=["provider"],
                condition=models.Q(status__in=ACTIVE_PAYOUT_STATUSES),
                name="one_active_payout_per_provider",
            ),
        ]

    def __str__(self) -> str:
        return f"ScheduledPayout({self.id}, {self.status}, {self.amount} {self.currency})"

    def save(self, *args, **kwargs):
        """Save with version auto-increment for optimistic locking."""
        is_update = self.pk and not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    @staticmethod
    def generate_batch_id() -> str:
        return f"BATCH-{timezone.now():%Y%m%d}-{get_random_string(6, REFERENCE_ALPHABET)}"

    @staticmethod
    def generate_reference_number() -> str:
        return f"PAYOUT-{timezone.now():%Y%m%d}-{get_random_string(8, REFERENCE_ALPHABET)}"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=ScheduledPayoutStatus.PENDING,
        target=ScheduledPayoutStatus.PROCESSING,
    )
    def start_processing(self):
        pass

    @transition(
        field=status,
        source=ScheduledPayoutStatus.PROCESSING,
        target=ScheduledPayoutStatus.COMPLETED,
    )
    def complete(self, reference_number: str, gateway_reference: str | None = None):
        self.reference_number = reference_number
        self.gateway_reference = gateway_reference or ""
        self.processed_at = timezone.now()
        self.next_retry_at = None

    @transition(
        field=status,
        source=ScheduledPayoutStatus.PROCESSING,
        target=ScheduledPayoutStatus.FAILED,
    )
    def fail(
        self,
        reason: str,
        failure_kind: str = PayoutFailureKind.TERMINAL,
        next_retry_at=None,
    ):
        """
        Record a failed attempt.

        Every failure counts towards ``retry_count``; ``next_retry_at`` is
        only set for retryable failures that have attempts left.
        """
        self.retry_count += 1
        self.failure_reason = reason
        self.failure_kind = failure_kind
        self.next_retry_at = next_retry_at

    @transition(
        field=status,
        source=ScheduledPayoutStatus.FAILED,
        target=ScheduledPayoutStatus.PENDING,
    )
    def retry(self, scheduled_for=None):
        self.scheduled_for = scheduled_for or timezone.now()
        self.next_retry_at = None

    @transition(
        field=status,
        source=[ScheduledPayoutStatus.PENDING, ScheduledPayoutStatus.FAILED],
        target=ScheduledPayoutStatus.CANCELLED,
    )
    def cancel(self, reason: str | None = None):
        self.failure_reason = reason or ""
        self.next_retry_at = None

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def can_cancel(self) -> bool:
        return self.status in (ScheduledPayoutStatus.PENDING, ScheduledPayoutStatus.FAILED)

    @property
    def can_retry(self) -> bool:
        return self.status == ScheduledPayoutStatus.FAILED

    @property
    def is_retry_scheduled(self) -> bool:
        return self.can_retry and self.next_retry_at is not None
