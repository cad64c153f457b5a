"""
Ledger service layer for provider escrow balances.

All ledger writes go through this service. Every write runs inside
``transaction.atomic()`` and first takes a row lock on the provider, so
concurrent writers for one provider are serialized and the balance
check and the insert see the same state.

Usage:
    from payments.ledger.services import ledger

    entry = ledger.record_credit(provider, Decimal("1000.00"), payment=payment)
    ledger.get_available_balance(provider)  # Decimal("1000.00")

    hold = ledger.record_hold(provider, Decimal("200.00"), reason="Dispute #12")
    ledger.record_release(hold)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.db import IntegrityError, transaction
from django.utils import timezone

from core.money import ZERO, to_money
from marketplace.models import Provider
from payments.state_machines import ACTIVE_PAYOUT_STATUSES, LedgerEntryType

from .exceptions import (
    HoldAlreadyReleased,
    HoldNotFound,
    InsufficientFunds,
    InvalidLedgerAmount,
)
from .models import LedgerEntry
from .types import BalanceSummary, RecordEntryParams

if TYPE_CHECKING:
    from payments.models import Payment, ScheduledPayout

logger = logging.getLogger(__name__)


class LedgerService:
    """
    Service class for ledger operations.

    Key features:
    - Per-provider row lock around every write
    - Idempotency via unique keys (safe to retry)
    - Balance validation before debits and holds; nothing is written
      when validation fails
    - Balances are always derived from entries, never cached

    All methods are static - no instance state is maintained.
    """

    # =========================================================================
    # Writes
    # =========================================================================

    @staticmethod
    def record_entry(params: RecordEntryParams) -> LedgerEntry:
        """
        Record a single ledger entry.

        Idempotent - if an entry with the same idempotency_key exists it is
        returned unchanged.

        Raises:
            InvalidLedgerAmount: amount is zero or negative
            InsufficientFunds: debit/hold larger than the available balance
            HoldNotFound / HoldAlreadyReleased: invalid release
        """
        if params.amount <= ZERO:
            raise InvalidLedgerAmount(
                f"Ledger amount must be positive, got {params.amount}",
                details={"amount": str(params.amount), "type": params.entry_type},
            )

        entry_type = LedgerEntryType(params.entry_type)

        with transaction.atomic():
            # Serializes all writers for this provider
            provider = Provider.objects.select_for_update().get(pk=params.provider_id)

            # Check idempotency before the balance read
            if params.idempotency_key:
                existing = LedgerEntry.objects.filter(
                    idempotency_key=params.idempotency_key
                ).first()
                if existing is not None:
                    logger.info(
                        "Ledger entry already recorded",
                        extra={
                            "idempotency_key": params.idempotency_key,
                            "entry_id": existing.id,
                        },
                    )
                    return existing

            hold = None
            if entry_type == LedgerEntryType.RELEASE:
                hold = LedgerService._get_unreleased_hold(params.released_hold_id)
                if hold.provider_id != provider.pk:
                    raise HoldNotFound(
                        f"Hold {hold.id} belongs to another provider",
                        details={"hold_id": hold.id},
                    )

            available = LedgerEntry.objects.for_provider(provider).available_balance()

            if not entry_type.increases_balance and not params.allow_negative:
                if available < params.amount:
                    logger.warning(
                        "Insufficient ledger balance",
                        extra={
                            "provider_id": str(provider.pk),
                            "required": str(params.amount),
                            "available": str(available),
                            "type": entry_type.value,
                        },
                    )
                    raise InsufficientFunds(
                        provider_id=provider.pk,
                        required=params.amount,
                        available=available,
                    )

            if entry_type.increases_balance:
                balance_after = available + params.amount
            else:
                balance_after = available - params.amount

            try:
                with transaction.atomic():
                    entry = LedgerEntry.objects.create(
                        provider=provider,
                        type=entry_type,
                        amount=params.amount,
                        balance_after=balance_after,
                        currency=params.currency,
                        description=params.description,
                        metadata=params.metadata,
                        idempotency_key=params.idempotency_key,
                        booking_id=params.booking_id,
                        payment_id=params.payment_id,
                        payout_id=params.payout_id,
                        released_hold=hold,
                    )
            except IntegrityError:
                if hold is not None:
                    raise HoldAlreadyReleased(
                        f"Hold {hold.id} has already been released",
                        details={"hold_id": hold.id},
                    )
                if not params.idempotency_key:
                    raise
                # Another writer recorded the same key
                entry = LedgerEntry.objects.get(idempotency_key=params.idempotency_key)

        logger.info(
            "Ledger entry recorded",
            extra={
                "provider_id": str(provider.pk),
                "entry_id": entry.id,
                "type": entry_type.value,
                "amount": str(entry.amount),
                "balance_after": str(entry.balance_after),
            },
        )
        return entry

    @staticmethod
    def _get_unreleased_hold(hold_id: int | None) -> LedgerEntry:
        hold = LedgerEntry.objects.filter(pk=hold_id).first() if hold_id else None
        if hold is None or hold.type != LedgerEntryType.HOLD:
            raise HoldNotFound(
                f"Hold {hold_id} not found",
                details={"hold_id": hold_id},
            )
        if LedgerEntry.objects.filter(released_hold_id=hold.pk).exists():
            raise HoldAlreadyReleased(
                f"Hold {hold.pk} has already been released",
                details={"hold_id": hold.pk},
            )
        return hold

    @staticmethod
    def record_credit(
        provider: Provider,
        amount: Decimal,
        *,
        payment: Payment | None = None,
        booking=None,
        description: str = "",
        idempotency_key: str | None = None,
        metadata: dict[str, Any] | None = None,
        currency: str = "JMD",
    ) -> LedgerEntry:
        """Add ``amount`` to the provider's balance. Never fails on balance."""
        return LedgerService.record_entry(
            RecordEntryParams(
                provider_id=provider.pk,
                entry_type=LedgerEntryType.CREDIT,
                amount=amount,
                idempotency_key=idempotency_key,
                currency=currency,
                description=description,
                metadata=metadata or {},
                booking_id=getattr(booking, "pk", None),
                payment_id=getattr(payment, "pk", None),
            )
        )

    @staticmethod
    def record_hold(
        provider: Provider,
        amount: Decimal,
        reason: str,
        *,
        payment: Payment | None = None,
        booking=None,
        idempotency_key: str | None = None,
        metadata: dict[str, Any] | None = None,
        currency: str = "JMD",
    ) -> LedgerEntry:
        """
        Set aside ``amount`` (e.g. for a dispute) until released.

        Raises:
            InsufficientFunds: available balance is below ``amount``
        """
        return LedgerService.record_entry(
            RecordEntryParams(
                provider_id=provider.pk,
                entry_type=LedgerEntryType.HOLD,
                amount=amount,
                idempotency_key=idempotency_key,
                currency=currency,
                description=reason,
                metadata=metadata or {},
                booking_id=getattr(booking, "pk", None),
                payment_id=getattr(payment, "pk", None),
            )
        )

    @staticmethod
    def record_release(hold: LedgerEntry | int) -> LedgerEntry:
        """
        Return a held amount to the available balance.

        Raises:
            HoldNotFound: ``hold`` does not exist or is not a HOLD entry
            HoldAlreadyReleased: the hold was released before
        """
        hold_id = hold.pk if isinstance(hold, LedgerEntry) else hold
        original = LedgerEntry.objects.filter(pk=hold_id).first()
        if original is None or original.type != LedgerEntryType.HOLD:
            raise HoldNotFound(
                f"Hold {hold_id} not found",
                details={"hold_id": hold_id},
            )

        return LedgerService.record_entry(
            RecordEntryParams(
                provider_id=original.provider_id,
                entry_type=LedgerEntryType.RELEASE,
                amount=original.amount,
                currency=original.currency,
                description=f"Released: {original.description}",
                metadata={"original_hold_id": original.pk},
                booking_id=original.booking_id,
                payment_id=original.payment_id,
                released_hold_id=original.pk,
            )
        )

    @staticmethod
    def record_debit(
        provider: Provider,
        amount: Decimal,
        *,
        payout: ScheduledPayout | None = None,
        payment: Payment | None = None,
        booking=None,
        description: str = "",
        idempotency_key: str | None = None,
        metadata: dict[str, Any] | None = None,
        currency: str = "JMD",
        allow_negative: bool = False,
    ) -> LedgerEntry:
        """
        Remove ``amount`` from the provider's balance.

        ``allow_negative`` is only for recording money that has already
        left the platform (a completed gateway refund).

        Raises:
            InsufficientFunds: available balance is below ``amount``
        """
        return LedgerService.record_entry(
            RecordEntryParams(
                provider_id=provider.pk,
                entry_type=LedgerEntryType.DEBIT,
                amount=amount,
                idempotency_key=idempotency_key,
                currency=currency,
                description=description,
                metadata=metadata or {},
                booking_id=getattr(booking, "pk", None),
                payment_id=getattr(payment, "pk", None),
                payout_id=getattr(payout, "pk", None),
                allow_negative=allow_negative,
            )
        )

    # =========================================================================
    # Domain helpers
    # =========================================================================

    @staticmethod
    def credit_for_payment(payment: Payment) -> LedgerEntry:
        """
        Credit the provider's share of a completed escrow payment.

        Idempotent per payment.
        """
        return LedgerService.record_credit(
            payment.provider,
            payment.provider_amount,
            payment=payment,
            booking=payment.booking,
            description=f"Payment received for booking {payment.booking_id}",
            idempotency_key=f"payment-credit:{payment.pk}",
            currency=payment.currency,
            metadata={
                "total_payment": str(payment.amount),
                "platform_fee": str(payment.platform_fee),
                "processing_fee": str(payment.processing_fee),
                "gateway": payment.gateway,
                "payment_type": payment.payment_type,
            },
        )

    @staticmethod
    def debit_for_refund(
        payment: Payment,
        amount: Decimal,
        *,
        idempotency_key: str | None = None,
        allow_negative: bool = False,
    ) -> LedgerEntry:
        """Claw back the provider's share of a refund."""
        return LedgerService.record_debit(
            payment.provider,
            amount,
            payment=payment,
            booking=payment.booking,
            description=f"Refund processed for booking {payment.booking_id}",
            idempotency_key=idempotency_key,
            currency=payment.currency,
            allow_negative=allow_negative,
            metadata={
                "refund_amount": str(amount),
                "original_payment_amount": str(payment.amount),
            },
        )

    @staticmethod
    def debit_for_payout(payout: ScheduledPayout, *, allow_negative: bool = False) -> LedgerEntry:
        """Record a completed disbursement. Idempotent per payout."""
        return LedgerService.record_debit(
            payout.provider,
            payout.amount,
            payout=payout,
            description=f"Payout processed - {payout.reference_number}",
            idempotency_key=f"payout-debit:{payout.pk}",
            currency=payout.currency,
            allow_negative=allow_negative,
            metadata={
                "payout_method": payout.payout_method,
                "batch_id": payout.batch_id,
            },
        )

    # =========================================================================
    # Reads
    # =========================================================================

    @staticmethod
    def get_available_balance(provider: Provider) -> Decimal:
        return to_money(LedgerEntry.objects.for_provider(provider).available_balance())

    @staticmethod
    def get_held_amount(provider: Provider) -> Decimal:
        entries = LedgerEntry.objects.for_provider(provider)
        held = (
            entries.filter(type=LedgerEntryType.HOLD).sum_amount()
            - entries.filter(type=LedgerEntryType.RELEASE).sum_amount()
        )
        return max(ZERO, to_money(held))

    @staticmethod
    def get_eligible_balance(provider: Provider, hold_period_days: int) -> Decimal:
        """
        Available balance minus credits younger than the hold period.

        Used by the payout scheduler; never negative.
        """
        cutoff = timezone.now() - timedelta(days=hold_period_days)
        recent_credits = (
            LedgerEntry.objects.for_provider(provider)
            .filter(type=LedgerEntryType.CREDIT, created_at__gt=cutoff)
            .sum_amount()
        )
        available = LedgerService.get_available_balance(provider)
        return max(ZERO, to_money(available - recent_credits))

    @staticmethod
    def get_balance_summary(provider: Provider) -> BalanceSummary:
        from payments.models import ScheduledPayout

        available = LedgerService.get_available_balance(provider)
        held = LedgerService.get_held_amount(provider)
        pending_payout = ScheduledPayout.objects.filter(
            provider=provider,
            status__in=ACTIVE_PAYOUT_STATUSES,
        ).values_list("amount", flat=True)

        return BalanceSummary(
            total=available + held,
            available=available,
            held=held,
            pending_payout=to_money(sum(pending_payout, ZERO)),
        )

    @staticmethod
    def get_statement(
        provider: Provider,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LedgerEntry]:
        """Entries newest first."""
        return list(
            LedgerEntry.objects.for_provider(provider).order_by("-id")[offset : offset + limit]
        )

    @staticmethod
    def get_earnings_in_range(
        provider: Provider,
        start: datetime,
        end: datetime,
    ) -> Decimal:
        """Sum of credits recorded between ``start`` and ``end`` inclusive."""
        return to_money(
            LedgerEntry.objects.for_provider(provider)
            .filter(type=LedgerEntryType.CREDIT, created_at__range=(start, end))
            .sum_amount()
        )


# Singleton instance for convenience
# Usage: from payments.ledger.services import ledger
ledger = LedgerService()
