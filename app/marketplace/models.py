"""
Marketplace models consumed by the payments core.

Only the fields the fee, payment and payout code reads are modelled here:
- Provider: tier, fee payer, deposit policy, gateway selection
- Client: the paying party
- Service: price and booking-setting overrides
- Booking: status FSM and the frozen fee breakdown

Usage:
    from marketplace.models import Booking
    from marketplace.states import BookingStatus

    booking.confirm()
    booking.save()
"""

from __future__ import annotations

from typing import Any

from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from marketplace.states import (
    BookingStatus,
    CancelledBy,
    DepositType,
    FeePayer,
    GatewayType,
    SubscriptionTier,
    can_transition,
    sources_for,
)


class Provider(UUIDPrimaryKeyMixin, BaseModel):
    """
    A business selling services on the marketplace.

    The subscription tier is read from this row on every fee calculation;
    nothing else caches it. The provider row is also the lock target that
    serializes ledger writes for the provider.
    """

    # ==========================================================================
    # Identity
    # ==========================================================================

    business_name = models.CharField(
        max_length=255,
        help_text="Public business name",
    )

    email = models.EmailField(
        blank=True,
        default="",
        help_text="Contact email for payout notices",
    )

    # ==========================================================================
    # Subscription & Fees
    # ==========================================================================

    subscription_tier = models.CharField(
        max_length=20,
        choices=SubscriptionTier.choices,
        default=SubscriptionTier.STARTER,
        help_text="Current subscription tier",
    )

    fee_payer = models.CharField(
        max_length=10,
        choices=FeePayer.choices,
        null=True,
        blank=True,
        help_text="Who pays platform and processing fees (null = platform default)",
    )

    founding_fee_waiver = models.BooleanField(
        default=False,
        help_text="Founding members pay no platform fee while this is set",
    )

    # ==========================================================================
    # Deposit Defaults
    # ==========================================================================

    deposit_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Preferred deposit percentage (Premium tier; clamped to tier minimum)",
    )

    default_deposit_type = models.CharField(
        max_length=20,
        choices=DepositType.choices,
        null=True,
        blank=True,
        help_text="Deposit type applied to services that use provider defaults",
    )

    default_deposit_amount = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Deposit percentage applied to services that use provider defaults",
    )

    requires_deposit = models.BooleanField(
        default=True,
        help_text="Enterprise providers may turn deposits off",
    )

    cancellation_policy = models.TextField(
        blank=True,
        default="",
        help_text="Default cancellation policy text",
    )

    # ==========================================================================
    # Gateway & Payouts
    # ==========================================================================

    gateway_type = models.CharField(
        max_length=10,
        choices=GatewayType.choices,
        default=GatewayType.ESCROW,
        help_text="Preferred settlement model (split requires a verified merchant account)",
    )

    gateway_provider = models.CharField(
        max_length=50,
        null=True,
        blank=True,
        help_text="Registered gateway key (null = platform default gateway)",
    )

    merchant_account_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Provider's merchant account on a split-capable gateway",
    )

    merchant_account_verified = models.BooleanField(
        default=False,
        help_text="Whether the merchant account passed gateway verification",
    )

    payout_account_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Destination account for escrow payouts",
    )

    class Meta:
        ordering = ["business_name"]

    def __str__(self) -> str:
        return f"{self.business_name} ({self.subscription_tier})"

    @property
    def tier(self) -> SubscriptionTier:
        return SubscriptionTier(self.subscription_tier)

    def has_founding_fee_waiver(self) -> bool:
        return self.founding_fee_waiver

    def has_verified_merchant_account(self) -> bool:
        return bool(self.merchant_account_id) and self.merchant_account_verified


class Client(UUIDPrimaryKeyMixin, BaseModel):
    """A customer booking services."""

    name = models.CharField(max_length=255, help_text="Client display name")
    email = models.EmailField(help_text="Client email for receipts")

    def __str__(self) -> str:
        return self.name


class Service(UUIDPrimaryKeyMixin, BaseModel):
    """
    A bookable service.

    When ``use_provider_defaults`` is set, booking settings come from the
    provider; otherwise each non-null override on the service wins and null
    fields fall back to the provider.
    """

    provider = models.ForeignKey(
        Provider,
        on_delete=models.CASCADE,
        related_name="services",
        help_text="Provider offering this service",
    )

    name = models.CharField(max_length=255, help_text="Service name")

    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Listed price",
    )

    use_provider_defaults = models.BooleanField(
        default=True,
        help_text="Inherit deposit and cancellation settings from the provider",
    )

    deposit_type = models.CharField(
        max_length=20,
        choices=DepositType.choices,
        null=True,
        blank=True,
        help_text="Deposit type override",
    )

    deposit_amount = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Deposit percentage override",
    )

    cancellation_policy = models.TextField(
        null=True,
        blank=True,
        help_text="Cancellation policy override",
    )

    def __str__(self) -> str:
        return f"{self.name} ({self.price})"

    def get_effective_booking_settings(self) -> dict[str, Any]:
        """Resolve deposit and cancellation settings, most specific first."""
        provider = self.provider
        defaults = {
            "deposit_type": provider.default_deposit_type,
            "deposit_amount": provider.default_deposit_amount,
            "cancellation_policy": provider.cancellation_policy or None,
        }
        if self.use_provider_defaults:
            return defaults

        overrides = {
            "deposit_type": self.deposit_type,
            "deposit_amount": self.deposit_amount,
            "cancellation_policy": self.cancellation_policy,
        }
        return {
            key: overrides[key] if overrides[key] is not None else defaults[key]
            for key in defaults
        }


class Booking(UUIDPrimaryKeyMixin, BaseModel):
    """
    A client's booking of a service.

    The fee columns are a snapshot taken when the booking is created and
    are never recalculated; payments read them back through
    ``FeeResult.from_booking``.

    Status changes go through ``BookingService.transition`` which checks
    ``can_transition_to`` first.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    client = models.ForeignKey(
        Client,
        on_delete=models.PROTECT,
        related_name="bookings",
        help_text="Client who made the booking",
    )

    provider = models.ForeignKey(
        Provider,
        on_delete=models.PROTECT,
        related_name="bookings",
        help_text="Provider delivering the service",
    )

    service = models.ForeignKey(
        Service,
        on_delete=models.PROTECT,
        related_name="bookings",
        help_text="Booked service",
    )

    scheduled_for = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Appointment start time",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=BookingStatus.PENDING,
        choices=BookingStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current booking status (managed by FSM)",
    )

    # ==========================================================================
    # Frozen Fee Breakdown
    # ==========================================================================

    service_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Service price at booking time",
    )

    zeen_fee = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Platform fee at booking time",
    )

    gateway_fee = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Processing fee at booking time",
    )

    gateway_fee_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Processing fee percentage at booking time; deposit and balance fees use it",
    )

    convenience_fee = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
        help_text="Fees shown to the client when the client pays them",
    )

    deposit_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
        help_text="Deposit due at booking time",
    )

    fee_payer = models.CharField(
        max_length=10,
        choices=FeePayer.choices,
        null=True,
        blank=True,
        help_text="Fee payer at booking time",
    )

    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Total the client pays",
    )

    provider_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Amount the provider receives",
    )

    tier_at_booking = models.CharField(
        max_length=20,
        choices=SubscriptionTier.choices,
        null=True,
        blank=True,
        help_text="Provider tier when the fees were frozen",
    )

    # ==========================================================================
    # Cancellation & Timestamps
    # ==========================================================================

    cancellation_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Why the booking was cancelled",
    )

    cancelled_by = models.CharField(
        max_length=10,
        choices=CancelledBy.choices,
        null=True,
        blank=True,
        help_text="Who cancelled the booking",
    )

    confirmed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["provider", "status"], name="booking_provider_status_idx"),
        ]

    def __str__(self) -> str:
        return f"Booking({self.id}, {self.status})"

    def has_stored_fees(self) -> bool:
        return (
            self.zeen_fee is not None
            and self.gateway_fee is not None
            and self.fee_payer is not None
        )

    def can_transition_to(self, target: str) -> bool:
        return can_transition(self.status, target)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=sources_for(BookingStatus.CONFIRMED),
        target=BookingStatus.CONFIRMED,
    )
    def confirm(self):
        """Transition: PENDING -> CONFIRMED"""
        self.confirmed_at = timezone.now()

    @transition(
        field=status,
        source=sources_for(BookingStatus.COMPLETED),
        target=BookingStatus.COMPLETED,
    )
    def complete(self):
        """Transition: CONFIRMED -> COMPLETED"""
        self.completed_at = timezone.now()

    @transition(
        field=status,
        source=sources_for(BookingStatus.CANCELLED),
        target=BookingStatus.CANCELLED,
    )
    def cancel(self, reason: str | None = None, cancelled_by: str = CancelledBy.SYSTEM):
        """Transition: PENDING/CONFIRMED -> CANCELLED"""
        self.cancelled_at = timezone.now()
        self.cancellation_reason = reason
        self.cancelled_by = cancelled_by

    @transition(
        field=status,
        source=sources_for(BookingStatus.NO_SHOW),
        target=BookingStatus.NO_SHOW,
    )
    def mark_no_show(self):
        """Transition: CONFIRMED -> NO_SHOW"""
