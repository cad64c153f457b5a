"""
Enums for marketplace models.

Booking States:
    pending → confirmed → completed
    pending → cancelled
    confirmed → cancelled / no_show
    completed, cancelled, no_show are terminal

The adjacency map BOOKING_TRANSITIONS is the single definition of legal
moves; the django-fsm transitions on Booking are declared from it.
"""

from decimal import Decimal

from django.db import models


class SubscriptionTier(models.TextChoices):
    """
    Provider subscription tiers.

    The tier decides the platform (zeen) fee rate and the deposit policy.
    Default rates can be overridden through SystemSetting keys
    ``zeen_fee_rate_<tier>``.
    """

    STARTER = "starter", "Starter"
    PREMIUM = "premium", "Premium"
    ENTERPRISE = "enterprise", "Enterprise"

    @property
    def default_zeen_fee_rate(self) -> Decimal:
        return TIER_ZEEN_FEE_RATES[self]

    @property
    def can_disable_deposit(self) -> bool:
        return self == SubscriptionTier.ENTERPRISE


TIER_ZEEN_FEE_RATES = {
    SubscriptionTier.STARTER: Decimal("3.00"),
    SubscriptionTier.PREMIUM: Decimal("2.00"),
    SubscriptionTier.ENTERPRISE: Decimal("0.00"),
}


class FeePayer(models.TextChoices):
    """Who absorbs the platform and processing fees."""

    CLIENT = "client", "Client"
    PROVIDER = "provider", "Provider"


class DepositType(models.TextChoices):
    NONE = "none", "No deposit"
    PERCENTAGE = "percentage", "Percentage of price"


class GatewayType(models.TextChoices):
    """
    Settlement model of a payment gateway.

    - SPLIT: platform and provider shares are divided at charge time
    - ESCROW: platform collects the charge and pays the provider out later
    """

    ESCROW = "escrow", "Escrow"
    SPLIT = "split", "Split"


class CancelledBy(models.TextChoices):
    CLIENT = "client", "Client"
    PROVIDER = "provider", "Provider"
    SYSTEM = "system", "System"


class BookingStatus(models.TextChoices):
    """
    States for the Booking lifecycle.

    Terminal states: COMPLETED, CANCELLED, NO_SHOW
    """

    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"
    NO_SHOW = "no_show", "No Show"

    @property
    def is_terminal(self) -> bool:
        return not BOOKING_TRANSITIONS[self]


BOOKING_TRANSITIONS: dict[str, frozenset[str]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset(
        {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
    ),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    """Return True if ``current -> target`` is a legal booking move."""
    return target in BOOKING_TRANSITIONS.get(current, frozenset())


def sources_for(target: str) -> list[str]:
    """States that may move to ``target``; used to declare FSM transitions."""
    return [source for source, targets in BOOKING_TRANSITIONS.items() if target in targets]
