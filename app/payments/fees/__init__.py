"""
Fee calculation for bookings and payments.

Usage:
    from payments.fees import FeeCalculator, FeeResult

    fees = FeeCalculator().calculate(provider, service.price)
    frozen = FeeResult.from_booking(booking)
"""

from payments.fees.calculator import FeeCalculator
from payments.fees.exceptions import FeeCalculationError
from payments.fees.types import FeeResult, PaymentFeeResult

__all__ = [
    "FeeCalculationError",
    "FeeCalculator",
    "FeeResult",
    "PaymentFeeResult",
]
