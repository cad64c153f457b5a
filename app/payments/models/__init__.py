"""
Payment domain models.

- Payment: One gateway charge for a booking
- ScheduledPayout: Batched disbursement of a provider's escrow balance
- LedgerEntry: Append-only provider balance movements (payments.ledger)
- WebhookEvent: Gateway webhook deliveries for idempotent processing
- SystemSetting: Runtime-editable platform settings (fee rates, deposits)
"""

from payments.ledger.models import LedgerEntry
from payments.models.payment import Payment
from payments.models.scheduled_payout import ScheduledPayout
from payments.models.system_setting import SystemSetting
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "LedgerEntry",
    "Payment",
    "ScheduledPayout",
    "SystemSetting",
    "WebhookEvent",
]
