"""
State enums for payment models.

This module defines all state enums used by payment models with django-fsm.
These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Payment States:
    pending → processing → completed
    pending/processing → failed
    completed → partially_refunded → refunded
    completed → refunded

ScheduledPayout States:
    pending → processing → completed
    pending → processing → failed → pending (retry)
    pending → cancelled

WebhookEvent States:
    pending → processed | ignored | failed
"""

from django.db import models

from marketplace.states import FeePayer, GatewayType


class PaymentStatus(models.TextChoices):
    """
    States for the Payment model lifecycle.

    Terminal states: FAILED, REFUNDED

    State Flow:
        PENDING → PROCESSING → COMPLETED

    Failure Flow:
        PENDING/PROCESSING → FAILED

    Refund Flow:
        COMPLETED → PARTIALLY_REFUNDED → REFUNDED
        COMPLETED → REFUNDED

    Completion is one-way: a completed payment only moves through refunds.
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    PARTIALLY_REFUNDED = "partially_refunded", "Partially Refunded"
    REFUNDED = "refunded", "Refunded"


REFUNDABLE_PAYMENT_STATUSES = [
    PaymentStatus.COMPLETED,
    PaymentStatus.PARTIALLY_REFUNDED,
]


class ScheduledPayoutStatus(models.TextChoices):
    """
    States for the ScheduledPayout model lifecycle.

    Terminal states: COMPLETED, CANCELLED (FAILED can be retried)

    State Flow:
        PENDING → PROCESSING → COMPLETED
        PROCESSING → FAILED → PENDING (retry)
        PENDING → CANCELLED
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    CANCELLED = "cancelled", "Cancelled"


ACTIVE_PAYOUT_STATUSES = [
    ScheduledPayoutStatus.PENDING,
    ScheduledPayoutStatus.PROCESSING,
]


class PayoutFailureKind(models.TextChoices):
    """
    Classification of a failed disbursement.

    - RETRYABLE: timeout, 5xx or rate limit; the scheduler retries later
    - TERMINAL: 4xx or validation error; needs an operator
    """

    RETRYABLE = "retryable", "Retryable"
    TERMINAL = "terminal", "Terminal"


class PaymentType(models.TextChoices):
    """Which part of the booking price a payment covers."""

    FULL = "full", "Full Payment"
    DEPOSIT = "deposit", "Deposit"
    BALANCE = "balance", "Balance"


class LedgerEntryType(models.TextChoices):
    """
    Provider ledger entry types.

    CREDIT and RELEASE increase the available balance; DEBIT and HOLD
    decrease it.
    """

    CREDIT = "credit", "Credit"
    DEBIT = "debit", "Debit"
    HOLD = "hold", "Hold"
    RELEASE = "release", "Release"

    @property
    def increases_balance(self) -> bool:
        return self in (LedgerEntryType.CREDIT, LedgerEntryType.RELEASE)


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    State Flow:
        PENDING → PROCESSED
        PENDING → IGNORED (duplicate, unverified or unknown payment)
        PENDING → FAILED (can retry)
    """

    PENDING = "pending", "Pending"
    PROCESSED = "processed", "Processed"
    IGNORED = "ignored", "Ignored"
    FAILED = "failed", "Failed"


class SettingType(models.TextChoices):
    """Value type of a SystemSetting, used to cast the stored text."""

    STRING = "string", "String"
    INTEGER = "integer", "Integer"
    FLOAT = "float", "Float"
    BOOLEAN = "boolean", "Boolean"
    JSON = "json", "JSON"


__all__ = [
    "ACTIVE_PAYOUT_STATUSES",
    "FeePayer",
    "GatewayType",
    "LedgerEntryType",
    "PaymentStatus",
    "PaymentType",
    "PayoutFailureKind",
    "REFUNDABLE_PAYMENT_STATUSES",
    "ScheduledPayoutStatus",
    "SettingType",
    "WebhookEventStatus",
]
