"""
Ledger - append-only provider balances for escrow payments.

Public API:
    Models:
        LedgerEntry - One credit, debit, hold or release

    Service:
        ledger - Singleton instance of LedgerService
        LedgerService - Class with all ledger operations

    Types:
        RecordEntryParams - Parameters for recording entries
        BalanceSummary - total / available / held / pending_payout

    Exceptions:
        LedgerError - Base exception for ledger operations
        InsufficientFunds - Debit or hold above the available balance
        HoldNotFound - Release of a missing or non-hold entry
        HoldAlreadyReleased - Second release of a hold
        InvalidLedgerAmount - Zero or negative amount

Usage:
    from payments.ledger import ledger, InsufficientFunds

    ledger.credit_for_payment(payment)

    try:
        ledger.record_debit(provider, Decimal("5000.00"), payout=payout)
    except InsufficientFunds as e:
        print(f"Need {e.required}, have {e.available}")
"""

from .exceptions import (
    HoldAlreadyReleased,
    HoldNotFound,
    InsufficientFunds,
    InvalidLedgerAmount,
    LedgerError,
)
from .models import LedgerEntry
from .services import LedgerService, ledger
from .types import BalanceSummary, RecordEntryParams

__all__ = [
    # Models
    "LedgerEntry",
    # Service
    "ledger",
    "LedgerService",
    # Types
    "BalanceSummary",
    "RecordEntryParams",
    # Exceptions
    "LedgerError",
    "InsufficientFunds",
    "HoldNotFound",
    "HoldAlreadyReleased",
    "InvalidLedgerAmount",
]
