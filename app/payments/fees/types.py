"""
Data types for fee calculation.

Types:
    FeeResult: Fee breakdown for a booking price (fresh or frozen)
    PaymentFeeResult: Amounts for one payment (full, deposit or balance)

Usage:
    from payments.fees.types import FeeResult

    # Rebuild the frozen breakdown of an existing booking
    fees = FeeResult.from_booking(booking)
    fees.client_pays      # Decimal("1071.20")
    fees.gateway_fee_rate # Decimal("4.00"), display only
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from core.money import ZERO, to_money

from marketplace.states import FeePayer

if TYPE_CHECKING:
    from marketplace.models import Booking


def _display_rate(fee: Decimal, base: Decimal) -> Decimal:
    if base <= 0:
        return ZERO
    return to_money(fee / base * Decimal("100"))


@dataclass(frozen=True)
class FeeResult:
    """
    Fee breakdown for a price.

    Client pays:   client_pays = price + convenience_fee
                   provider_receives = price
    Provider pays: client_pays = price
                   provider_receives = price - zeen_fee - gateway_fee

    amount_to_gateway is what the platform submits to the gateway: the
    charge plus the zeen fee when the client pays (the processing fee is
    added on the gateway side), or the charge alone when the provider pays.

    The *_rate fields are percentages. On a result rebuilt with
    ``from_booking`` they are back-derived from stored amounts and are for
    display only.
    """

    service_price: Decimal
    zeen_fee: Decimal
    gateway_fee: Decimal
    convenience_fee: Decimal
    client_pays: Decimal
    provider_receives: Decimal
    amount_to_gateway: Decimal
    processing_base: Decimal
    fee_payer: str
    zeen_fee_rate: Decimal
    gateway_fee_rate: Decimal
    deposit_amount: Decimal = ZERO

    @property
    def total_fees(self) -> Decimal:
        return self.zeen_fee + self.gateway_fee

    @property
    def client_pays_fees(self) -> bool:
        return self.fee_payer == FeePayer.CLIENT

    @classmethod
    def from_booking(cls, booking: Booking) -> FeeResult:
        """
        Rebuild the breakdown from the booking's stored columns.

        Never consults the provider's current tier or rates.
        """
        price = to_money(booking.service_price)
        zeen_fee = to_money(booking.zeen_fee)
        gateway_fee = to_money(booking.gateway_fee)
        fee_payer = booking.fee_payer or FeePayer.CLIENT

        if fee_payer == FeePayer.CLIENT:
            processing_base = price + zeen_fee
            amount_to_gateway = price + zeen_fee
            convenience_fee = to_money(booking.convenience_fee) or zeen_fee + gateway_fee
        else:
            processing_base = price
            amount_to_gateway = price
            convenience_fee = ZERO

        return cls(
            service_price=price,
            zeen_fee=zeen_fee,
            gateway_fee=gateway_fee,
            convenience_fee=convenience_fee,
            client_pays=to_money(booking.total_amount),
            provider_receives=to_money(booking.provider_amount),
            amount_to_gateway=amount_to_gateway,
            processing_base=processing_base,
            fee_payer=fee_payer,
            zeen_fee_rate=_display_rate(zeen_fee, price),
            gateway_fee_rate=(
                to_money(booking.gateway_fee_rate)
                if booking.gateway_fee_rate is not None
                else _display_rate(gateway_fee, processing_base)
            ),
            deposit_amount=to_money(booking.deposit_amount),
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["total_fees"] = self.total_fees
        return {key: str(value) if isinstance(value, Decimal) else value for key, value in data.items()}


@dataclass(frozen=True)
class PaymentFeeResult:
    """
    Amounts for a single payment against a booking.

    Attributes:
        payment_type: full, deposit or balance
        base_amount: portion of the service price this payment covers
        zeen_fee: platform fee collected with this payment
        processing_fee: gateway processing fee for this payment
        convenience_fee: fees added on top for the client (0 if provider pays)
        total_to_charge: what the client is charged
        amount_to_gateway: amount stored on Payment.amount
        provider_receives: provider's share of this payment
    """

    payment_type: str
    base_amount: Decimal
    zeen_fee: Decimal
    processing_fee: Decimal
    convenience_fee: Decimal
    total_to_charge: Decimal
    amount_to_gateway: Decimal
    provider_receives: Decimal
    fee_payer: str

    @property
    def platform_fee(self) -> Decimal:
        return self.zeen_fee
