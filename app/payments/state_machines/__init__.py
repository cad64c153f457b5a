"""
State machine enums and helpers for payment models.

This module defines the state enums used by payment models with django-fsm.
"""

from payments.state_machines.states import (
    ACTIVE_PAYOUT_STATUSES,
    REFUNDABLE_PAYMENT_STATUSES,
    FeePayer,
    GatewayType,
    LedgerEntryType,
    PaymentStatus,
    PaymentType,
    PayoutFailureKind,
    ScheduledPayoutStatus,
    SettingType,
    WebhookEventStatus,
)
from payments.state_machines.transitions import run_transition

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
    "run_transition",
]
