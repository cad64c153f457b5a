"""
Ledger-specific exceptions for provider balance operations.

Exception Hierarchy:
    LedgerError (base)
    ├── InsufficientFunds - Debit or hold larger than the available balance
    └── HoldNotFound (NotFoundError) - Release of an entry that is not a hold
    HoldAlreadyReleased (ConflictError) - Second release of the same hold
    InvalidLedgerAmount (ValidationError) - Zero or negative amount

Usage:
    from payments.ledger.exceptions import InsufficientFunds

    try:
        ledger.record_debit(provider, amount, payout=payout)
    except InsufficientFunds as e:
        print(f"Need {e.required}, have {e.available}")
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError, NotFoundError, ValidationError

if TYPE_CHECKING:
    import uuid
    from typing import Any


class LedgerError(BaseApplicationError):
    """
    Base exception for all ledger operations.

    Raised directly for attempts to modify or delete an existing entry.
    """

    default_error_code: str = "LEDGER_ERROR"


class InsufficientFunds(LedgerError):
    """
    Raised when a debit or hold would drive the available balance negative.

    No entry is written when this is raised.

    Attributes:
        provider_id: Provider whose balance was checked
        required: Amount requested
        available: Available balance at check time
    """

    default_error_code: str = "INSUFFICIENT_FUNDS"

    def __init__(
        self,
        provider_id: uuid.UUID,
        required: Decimal,
        available: Decimal,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.provider_id = provider_id
        self.required = required
        self.available = available

        message = (
            f"Provider {provider_id} has insufficient balance: "
            f"required {required}, available {available}"
        )

        full_details = {
            "provider_id": str(provider_id),
            "required": str(required),
            "available": str(available),
        }
        if details:
            full_details.update(details)

        super().__init__(
            message=message,
            error_code=error_code,
            details=full_details,
        )


class HoldNotFound(LedgerError, NotFoundError):
    """Raised when releasing an entry that does not exist or is not a HOLD."""

    default_error_code: str = "HOLD_NOT_FOUND"


class HoldAlreadyReleased(ConflictError):
    """Raised when a hold already has a matching release entry."""

    default_error_code: str = "HOLD_ALREADY_RELEASED"


class InvalidLedgerAmount(ValidationError):
    """Raised for zero or negative ledger amounts."""

    default_error_code: str = "INVALID_LEDGER_AMOUNT"
