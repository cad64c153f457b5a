"""
Payment domain signals.

All of these are sent through ``core.signals.send_on_commit`` so receivers
run once, after the writes they describe are durable.

Receiver kwargs:
    payment_completed: payment
    payment_failed: payment, reason
    payment_refunded: payment, amount, full
    payout_completed: payout
    payout_failed: payout, reason, retryable

Usage:
    from django.dispatch import receiver
    from payments.signals import payment_completed

    @receiver(payment_completed)
    def send_receipt(sender, payment, **kwargs):
        ...
"""

from django.dispatch import Signal

payment_completed = Signal()
payment_failed = Signal()
payment_refunded = Signal()
payout_completed = Signal()
payout_failed = Signal()
