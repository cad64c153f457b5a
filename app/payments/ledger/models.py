"""
Ledger model for provider escrow balances.

Each provider has a single running balance kept as an append-only list
of entries. The balance is never stored on the provider; it is derived
from the entries:

    available = credits + releases - debits - holds
    held      = holds - releases

Usage:
    from payments.ledger.models import LedgerEntry

    LedgerEntry.objects.for_provider(provider).order_by("-id")[:50]
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.db import models
from django.db.models import Case, DecimalField, F, Q, Sum, Value, When
from django.db.models.functions import Coalesce

from payments.ledger.exceptions import LedgerError
from payments.state_machines import LedgerEntryType

ZERO = Decimal("0.00")

MONEY_FIELD = DecimalField(max_digits=14, decimal_places=2)


class LedgerEntryQuerySet(models.QuerySet):
    """Entries are immutable; bulk updates and deletes are refused."""

    def for_provider(self, provider) -> LedgerEntryQuerySet:
        return self.filter(provider=provider)

    def sum_amount(self) -> Decimal:
        return self.aggregate(
            total=Coalesce(Sum("amount"), Value(ZERO), output_field=MONEY_FIELD)
        )["total"]

    def available_balance(self) -> Decimal:
        """Signed sum: credits and releases add, debits and holds subtract."""
        return self.aggregate(
            balance=Coalesce(
                Sum(
                    Case(
                        When(
                            type__in=[LedgerEntryType.CREDIT, LedgerEntryType.RELEASE],
                            then=F("amount"),
                        ),
                        default=-F("amount"),
                        output_field=MONEY_FIELD,
                    )
                ),
                Value(ZERO),
                output_field=MONEY_FIELD,
            )
        )["balance"]

    def update(self, **kwargs):
        raise LedgerError("Ledger entries are append-only", error_code="LEDGER_IMMUTABLE")

    def delete(self):
        raise LedgerError("Ledger entries are append-only", error_code="LEDGER_IMMUTABLE")


class LedgerEntry(models.Model):
    """
    One movement on a provider's escrow balance.

    Entries are immutable once created; corrections are made with new
    entries. The BigAutoField id gives a total order per provider.

    Fields:
        uuid: Public identifier
        provider: Owner of the balance
        booking / payment / payout: Optional source records
        type: credit, debit, hold or release
        amount: Always positive; the type gives the sign
        balance_after: Available balance right after this entry
        idempotency_key: Unique key making retries safe
        released_hold: For RELEASE entries, the HOLD they release

    Constraints:
        - amount must be positive
        - idempotency_key must be unique
        - a hold can be released once (one-to-one)
    """

    id = models.BigAutoField(primary_key=True)

    uuid = models.UUIDField(
        default=uuid.uuid4,
        unique=True,
        editable=False,
        help_text="Public identifier of this entry",
    )

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this entry was recorded",
    )

    # ==========================================================================
    # Relationships
    # ==========================================================================

    provider = models.ForeignKey(
        "marketplace.Provider",
        on_delete=models.PROTECT,
        related_name="ledger_entries",
        help_text="Provider whose balance this entry moves",
    )
    booking = models.ForeignKey(
        "marketplace.Booking",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="ledger_entries",
        help_text="Booking this entry relates to",
    )
    payment = models.ForeignKey(
        "payments.Payment",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="ledger_entries",
        help_text="Payment this entry relates to",
    )
    payout = models.ForeignKey(
        "payments.ScheduledPayout",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="ledger_entries",
        help_text="Payout this entry relates to",
    )
    released_hold = models.OneToOneField(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="release_entry",
        help_text="HOLD entry released by this RELEASE entry",
    )

    # ==========================================================================
    # Amount
    # ==========================================================================

    type = models.CharField(
        max_length=20,
        choices=LedgerEntryType.choices,
        help_text="Entry type",
    )
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Amount (always positive)",
    )
    balance_after = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        help_text="Available balance after this entry",
    )
    currency = models.CharField(
        max_length=3,
        default="JMD",
        help_text="ISO 4217 currency code",
    )

    description = models.TextField(
        blank=True,
        default="",
        help_text="Human-readable description of this entry",
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary JSON data for extensibility",
    )
    idempotency_key = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Unique key to prevent duplicate entries",
    )

    objects = LedgerEntryQuerySet.as_manager()

    class Meta:
        ordering = ["-id"]
        verbose_name = "Ledger Entry"
        verbose_name_plural = "Ledger Entries"
        indexes = [
            models.Index(fields=["provider", "type"], name="ledger_provider_type_idx"),
            models.Index(fields=["provider", "created_at"], name="ledger_provider_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="ledger_entry_amount_positive",
            )
        ]

    def __str__(self) -> str:
        return f"{self.get_type_display()}: {self.amount} {self.currency}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise LedgerError(
                "Ledger entries are append-only",
                error_code="LEDGER_IMMUTABLE",
                details={"entry_id": self.pk},
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise LedgerError(
            "Ledger entries are append-only",
            error_code="LEDGER_IMMUTABLE",
            details={"entry_id": self.pk},
        )

    @property
    def is_hold(self) -> bool:
        return self.type == LedgerEntryType.HOLD

    @property
    def signed_amount(self) -> Decimal:
        if LedgerEntryType(self.type).increases_balance:
            return self.amount
        return -self.amount
