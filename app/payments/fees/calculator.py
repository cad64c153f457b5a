"""
Fee calculator for booking prices.

Computes the platform (zeen) fee, the gateway processing fee, deposits and
the split between what the client pays and what the provider receives.

Rates:
    zeen fee rate: per subscription tier, overridable by the settings keys
        zeen_fee_rate_starter / _premium / _enterprise; 0 while the
        provider has a founding fee waiver
    gateway fee rate: settings key gateway_fee_rate (default 4.0)

All money is Decimal with two places, rounded half-up. The calculator does
no writes; it only reads the provider row and the settings store.

A booking's frozen breakdown is never recomputed here. Use
``FeeResult.from_booking`` for stored bookings and ``calculate`` only for
fresh quotes and new bookings.

Usage:
    from payments.fees import FeeCalculator

    calculator = FeeCalculator(get_settings_store())
    fees = calculator.calculate(provider, Decimal("1000"))
    fees.zeen_fee        # Decimal("30.00")
    fees.gateway_fee     # Decimal("41.20")
    fees.client_pays     # Decimal("1071.20")
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings

from core.money import ZERO, percent_of, to_decimal, to_money

from marketplace.states import DepositType, FeePayer, SubscriptionTier
from payments.fees.exceptions import FeeCalculationError
from payments.fees.types import FeeResult, PaymentFeeResult
from payments.state_machines import PaymentType

if TYPE_CHECKING:
    from marketplace.models import Booking, Provider, Service
    from payments.services.system_settings import SystemSettingsStore

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY_FEE_RATE = Decimal("4.0")
DEFAULT_FREE_TIER_DEPOSIT_PERCENTAGE = Decimal("20")
DEFAULT_MINIMUM_DEPOSIT_PERCENTAGE = Decimal("15")
HUNDRED = Decimal("100")


class FeeCalculator:
    """
    Computes fee breakdowns from a provider's current tier.

    The settings store is injected; tests pass a fresh store so cached
    values never leak between cases.
    """

    def __init__(self, settings_store: SystemSettingsStore | None = None):
        if settings_store is None:
            from payments.services.system_settings import get_settings_store

            settings_store = get_settings_store()
        self.settings = settings_store

    # ==========================================================================
    # Rates
    # ==========================================================================

    def get_tier(self, provider: Provider) -> SubscriptionTier:
        try:
            return SubscriptionTier(provider.subscription_tier)
        except ValueError:
            raise FeeCalculationError(
                f"Unknown subscription tier '{provider.subscription_tier}'",
                error_code="UNKNOWN_TIER",
                details={"provider_id": str(provider.pk), "tier": provider.subscription_tier},
            )

    def get_zeen_fee_rate(self, provider: Provider) -> Decimal:
        tier = self.get_tier(provider)
        if provider.has_founding_fee_waiver():
            return ZERO
        return to_money(
            self.settings.get_decimal(f"zeen_fee_rate_{tier.value}", tier.default_zeen_fee_rate)
        )

    def get_gateway_fee_rate(self) -> Decimal:
        return to_money(self.settings.get_decimal("gateway_fee_rate", DEFAULT_GATEWAY_FEE_RATE))

    def resolve_fee_payer(self, provider: Provider, fee_payer: str | None = None) -> FeePayer:
        value = fee_payer or provider.fee_payer or settings.PAYMENT_DEFAULT_FEE_PAYER
        try:
            return FeePayer(value)
        except ValueError:
            raise FeeCalculationError(
                f"Unknown fee payer '{value}'",
                error_code="UNKNOWN_FEE_PAYER",
                details={"fee_payer": value},
            )

    # ==========================================================================
    # Fresh Calculation
    # ==========================================================================

    def calculate(
        self,
        provider: Provider,
        price: Decimal | int | str,
        fee_payer: str | None = None,
        charge_amount: Decimal | int | str | None = None,
    ) -> FeeResult:
        """
        Calculate fees for ``price`` at the provider's current tier.

        ``charge_amount`` is the part of the price charged now; it defaults
        to the full price.

        Raises:
            FeeCalculationError: negative price/charge, unknown tier or payer
        """
        price = to_money(price)
        charge = price if charge_amount is None else to_money(charge_amount)
        if price < 0 or charge < 0:
            raise FeeCalculationError(
                "Price cannot be negative",
                error_code="NEGATIVE_PRICE",
                details={"price": str(price), "charge_amount": str(charge)},
            )

        payer = self.resolve_fee_payer(provider, fee_payer)
        zeen_rate = self.get_zeen_fee_rate(provider)
        gateway_rate = self.get_gateway_fee_rate()

        zeen_fee = percent_of(price, zeen_rate)
        processing_base = charge + zeen_fee if payer == FeePayer.CLIENT else charge
        gateway_fee = percent_of(processing_base, gateway_rate)

        if payer == FeePayer.CLIENT:
            convenience_fee = zeen_fee + gateway_fee
            client_pays = price + convenience_fee
            provider_receives = price
            amount_to_gateway = charge + zeen_fee
        else:
            convenience_fee = ZERO
            client_pays = price
            provider_receives = price - zeen_fee - gateway_fee
            amount_to_gateway = charge

        return FeeResult(
            service_price=price,
            zeen_fee=zeen_fee,
            gateway_fee=gateway_fee,
            convenience_fee=convenience_fee,
            client_pays=client_pays,
            provider_receives=provider_receives,
            amount_to_gateway=amount_to_gateway,
            processing_base=processing_base,
            fee_payer=payer.value,
            zeen_fee_rate=zeen_rate,
            gateway_fee_rate=gateway_rate,
        )

    # ==========================================================================
    # Deposits
    # ==========================================================================

    def get_deposit_percentage(self, provider: Provider, service: Service | None = None) -> Decimal:
        """
        Deposit percentage for a booking with this provider (and service).

        Starter: free_tier_deposit_percentage, never lower.
        Premium: provider/service preference, clamped up to
            minimum_deposit_percentage.
        Enterprise: 0 unless the provider opts in with a percentage.

        A service ``deposit_type = none`` only disables the deposit where the
        tier allows it.
        """
        tier = self.get_tier(provider)
        if service is not None:
            booking_settings = service.get_effective_booking_settings()
        else:
            booking_settings = {
                "deposit_type": provider.default_deposit_type,
                "deposit_amount": provider.default_deposit_amount,
            }
        deposit_type = booking_settings["deposit_type"]
        requested = booking_settings["deposit_amount"]
        if deposit_type != DepositType.PERCENTAGE:
            requested = None

        if tier == SubscriptionTier.ENTERPRISE:
            if deposit_type == DepositType.NONE or not provider.requires_deposit:
                return ZERO
            chosen = requested if requested is not None else provider.deposit_percentage
            return min(to_money(chosen), HUNDRED) if chosen is not None else ZERO

        if tier == SubscriptionTier.PREMIUM:
            minimum = self.settings.get_decimal(
                "minimum_deposit_percentage", DEFAULT_MINIMUM_DEPOSIT_PERCENTAGE
            )
            preferred = requested if requested is not None else provider.deposit_percentage
        else:
            minimum = self.settings.get_decimal(
                "free_tier_deposit_percentage", DEFAULT_FREE_TIER_DEPOSIT_PERCENTAGE
            )
            preferred = requested

        percentage = max(to_decimal(preferred), minimum) if preferred is not None else minimum
        return min(to_money(percentage), HUNDRED)

    def calculate_deposit(
        self,
        provider: Provider,
        price: Decimal | int | str,
        service: Service | None = None,
    ) -> Decimal:
        price = to_money(price)
        if price < 0:
            raise FeeCalculationError(
                "Price cannot be negative",
                error_code="NEGATIVE_PRICE",
                details={"price": str(price)},
            )
        return percent_of(price, self.get_deposit_percentage(provider, service))

    # ==========================================================================
    # Per-Payment Amounts
    # ==========================================================================

    def calculate_payment_amount(self, booking: Booking, payment_type: str) -> PaymentFeeResult:
        """
        Amounts for one payment against a booking's frozen breakdown.

        full: the frozen totals as stored
        deposit: deposit plus the whole zeen fee; processing fee on
            (deposit + zeen) when the client pays, on the deposit otherwise
        balance: the rest of the price, no zeen fee, processing fee on the
            balance only

        The deposit and balance processing fees use the gateway rate frozen
        on the booking; nothing here reads the current rates.
        """
        if not booking.has_stored_fees():
            raise FeeCalculationError(
                "Booking has no stored fee breakdown",
                error_code="FEES_NOT_FROZEN",
                details={"booking_id": str(booking.pk)},
            )

        fees = FeeResult.from_booking(booking)

        if payment_type == PaymentType.FULL:
            return PaymentFeeResult(
                payment_type=PaymentType.FULL,
                base_amount=fees.service_price,
                zeen_fee=fees.zeen_fee,
                processing_fee=fees.gateway_fee,
                convenience_fee=fees.convenience_fee,
                total_to_charge=fees.client_pays,
                amount_to_gateway=fees.amount_to_gateway,
                provider_receives=fees.provider_receives,
                fee_payer=fees.fee_payer,
            )

        deposit = to_money(booking.deposit_amount)
        if payment_type == PaymentType.DEPOSIT:
            base_amount = deposit
            zeen_fee = fees.zeen_fee
        elif payment_type == PaymentType.BALANCE:
            base_amount = fees.service_price - deposit
            zeen_fee = ZERO
        else:
            raise FeeCalculationError(
                f"Unknown payment type '{payment_type}'",
                error_code="UNKNOWN_PAYMENT_TYPE",
                details={"payment_type": payment_type},
            )

        if deposit <= 0 or base_amount <= 0:
            raise FeeCalculationError(
                f"Booking has no {payment_type} to pay",
                error_code="NO_DEPOSIT",
                details={
                    "booking_id": str(booking.pk),
                    "deposit_amount": str(deposit),
                    "payment_type": payment_type,
                },
            )

        if booking.gateway_fee_rate is None:
            raise FeeCalculationError(
                "Booking has no stored gateway fee rate",
                error_code="FEES_NOT_FROZEN",
                details={"booking_id": str(booking.pk), "payment_type": payment_type},
            )

        client_pays_fees = fees.client_pays_fees
        processing_base = base_amount + zeen_fee if client_pays_fees else base_amount
        processing_fee = percent_of(processing_base, booking.gateway_fee_rate)

        if client_pays_fees:
            convenience_fee = zeen_fee + processing_fee
            total_to_charge = base_amount + convenience_fee
            amount_to_gateway = base_amount + zeen_fee
            provider_receives = base_amount
        else:
            convenience_fee = ZERO
            total_to_charge = base_amount
            amount_to_gateway = base_amount
            provider_receives = base_amount - zeen_fee - processing_fee

        return PaymentFeeResult(
            payment_type=payment_type,
            base_amount=base_amount,
            zeen_fee=zeen_fee,
            processing_fee=processing_fee,
            convenience_fee=convenience_fee,
            total_to_charge=total_to_charge,
            amount_to_gateway=amount_to_gateway,
            provider_receives=provider_receives,
            fee_payer=fees.fee_payer,
        )
