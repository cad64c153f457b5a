"""
Decimal money helpers.

All money in the marketplace is a ``Decimal`` with two places, rounded
half-up. Floats are converted through ``str`` so 0.1 stays 0.1.

Usage:
    from core.money import to_money, percent_of

    to_money("71.195")            # Decimal("71.20")
    percent_of(Decimal("1030"), Decimal("4"))  # Decimal("41.20")
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from core.exceptions import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Decimal | int | float | str | None) -> Decimal:
    """Convert ``value`` to Decimal without rounding."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValidationError(
            f"Invalid monetary value: {value!r}",
            error_code="INVALID_AMOUNT",
        ) from e


def to_money(value: Decimal | int | float | str | None) -> Decimal:
    """Quantize ``value`` to cents using round-half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal | int | float | str, rate: Decimal | int | float | str) -> Decimal:
    """Return ``amount * rate / 100`` rounded to cents."""
    return to_money(to_decimal(amount) * to_decimal(rate) / Decimal("100"))


def to_cents(value: Decimal | int | float | str) -> int:
    """Convert a money amount to integer minor units."""
    return int((to_money(value) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return to_money(Decimal(cents) / Decimal("100"))
