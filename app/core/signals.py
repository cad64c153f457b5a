"""
Signal helpers shared by domain apps.

Domain events (payment completed, booking confirmed) are plain Django
signals sent once the surrounding transaction commits. A rollback sends
nothing, and a failing receiver cannot roll back a financial write.

Usage:
    from core.signals import send_on_commit
    from payments.signals import payment_completed

    with transaction.atomic():
        payment.complete(...)
        payment.save()
        send_on_commit(payment_completed, sender=Payment, payment=payment)
"""

from __future__ import annotations

import logging
from typing import Any

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)


def send_on_commit(signal: Signal, sender: Any, **kwargs: Any) -> None:
    """
    Send ``signal`` after the current transaction commits.

    Outside a transaction the signal is sent immediately. Receiver errors
    are logged and do not propagate.
    """

    def _send() -> None:
        responses = signal.send_robust(sender=sender, **kwargs)
        for receiver, response in responses:
            if isinstance(response, Exception):
                logger.error(
                    f"Signal receiver {getattr(receiver, '__qualname__', receiver)} failed",
                    extra={"sender": getattr(sender, "__name__", str(sender))},
                    exc_info=response,
                )

    transaction.on_commit(_send)
