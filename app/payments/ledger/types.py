"""
Data types for ledger operations.

Types:
    RecordEntryParams: Parameters for recording a ledger entry
    BalanceSummary: Snapshot of a provider's balances

Usage:
    from payments.ledger.types import RecordEntryParams

    params = RecordEntryParams(
        provider_id=provider.id,
        entry_type=LedgerEntryType.CREDIT,
        amount=Decimal("1000.00"),
        idempotency_key=f"payment-credit:{payment.id}",
    )
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from core.money import to_money


@dataclass
class RecordEntryParams:
    """
    Parameters for recording a ledger entry.

    Required Attributes:
        provider_id: Provider whose balance moves
        entry_type: credit, debit, hold or release
        amount: Positive amount; the type gives the sign

    Optional Attributes:
        idempotency_key: Unique key; a replay returns the existing entry
        booking_id / payment_id / payout_id: Source records
        released_hold_id: HOLD released by a RELEASE entry
        allow_negative: Skip the available-balance check (refund clawbacks)
    """

    provider_id: uuid.UUID
    entry_type: str
    amount: Decimal
    idempotency_key: str | None = None
    currency: str = "JMD"
    description: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    booking_id: uuid.UUID | None = None
    payment_id: uuid.UUID | None = None
    payout_id: uuid.UUID | None = None
    released_hold_id: int | None = None
    allow_negative: bool = False

    def __post_init__(self) -> None:
        self.amount = to_money(self.amount)


@dataclass(frozen=True)
class BalanceSummary:
    """
    A provider's balances at one point in time.

    total = available + held
    """

    total: Decimal
    available: Decimal
    held: Decimal
    pending_payout: Decimal
    currency: str = "JMD"

    def to_dict(self) -> dict[str, str]:
        return {
            "total": str(self.total),
            "available": str(self.available),
            "held": str(self.held),
            "pending_payout": str(self.pending_payout),
            "currency": self.currency,
        }
