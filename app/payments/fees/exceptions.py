"""
Fee calculation exceptions.

Usage:
    from payments.fees.exceptions import FeeCalculationError

    raise FeeCalculationError(
        "Service price cannot be negative",
        error_code="NEGATIVE_PRICE",
        details={"price": "-1.00"},
    )
"""

from core.exceptions import ValidationError


class FeeCalculationError(ValidationError):
    """
    Raised for inputs the fee calculator cannot price.

    Use for:
    - Negative price or charge amount
    - Unknown subscription tier or fee payer
    - Deposit/balance payment on a booking without a deposit
    """

    default_error_code: str = "FEE_CALCULATION_ERROR"
