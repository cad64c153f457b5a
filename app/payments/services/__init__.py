"""
Payment services for coordinating payment operations.

This module provides:
- PaymentService: Creates, completes and reconciles booking payments
- RefundService: Refunds completed payments and claws back escrow funds
- PayoutScheduler: Schedules and disburses provider payouts
- SystemSettingsStore: Cached runtime settings used by the fee calculator

Usage:
    from payments.services import PaymentService

    result = PaymentService().initialize_payment(booking, return_url, cancel_url)

    # Refund part of a payment
    from payments.services import RefundService

    result = RefundService().refund(payment, Decimal("200.00"), reason="Customer request")

    # Weekly payout run
    from payments.services import PayoutScheduler

    scheduler = PayoutScheduler()
    scheduler.schedule_payouts()
    scheduler.process_scheduled_payouts()
"""

from payments.services.payment_service import PaymentService
from payments.services.payout_scheduler import PayoutConfig, PayoutScheduler
from payments.services.refund_service import RefundEligibility, RefundService
from payments.services.system_settings import SystemSettingsStore, get_settings_store

__all__ = [
    "PaymentService",
    "PayoutConfig",
    "PayoutScheduler",
    "RefundEligibility",
    "RefundService",
    "SystemSettingsStore",
    "get_settings_store",
]
