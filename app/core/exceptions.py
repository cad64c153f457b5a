"""
Base exception classes for application-wide error handling.

Every domain error in the marketplace derives from BaseApplicationError so
that services, tasks and the webhook endpoint can report failures in one
machine-readable shape.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Bad input (negative amount, unknown tier)
    ├── NotFoundError - Record lookup failed
    ├── ConflictError - Current state forbids the operation
    └── ExternalServiceError - Payment gateway or other remote failure

Usage:
    from core.exceptions import ValidationError, ConflictError

    raise ValidationError(
        "Service price cannot be negative",
        error_code="NEGATIVE_PRICE",
        details={"price": "-10.00"},
    )

    try:
        ...
    except BaseApplicationError as e:
        return JsonResponse(e.to_dict(), status=409)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for callers and operators
        details: Additional context (amounts, ids, states)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to a serializable dict.

        Example:
            {
                "error": "Refund exceeds refundable amount",
                "error_code": "REFUND_EXCEEDS_BALANCE",
                "details": {"requested": "600.00", "refundable": "500.00"}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Validation errors are rejected synchronously and nothing is persisted.

    Example:
        if fee_payer not in FeePayer.values:
            raise ValidationError(
                f"Unknown fee payer '{fee_payer}'",
                error_code="INVALID_FEE_PAYER",
            )
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """Raised when a requested record does not exist."""

    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with the current state of a record.

    Use for:
    - Illegal status transitions
    - Refunds on payments that are no longer refundable
    - Releasing a hold twice

    The operation must have had no side effect when this is raised.
    """

    default_error_code: str = "CONFLICT"


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Gateways translate these into failure results at their boundary, so
    callers above the gateway layer normally never see one.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
