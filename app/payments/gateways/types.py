"""
Result and parameter types returned by payment gateways.

Types:
    PaymentResult: outcome of initialize/complete/query
    RefundResult: outcome of a refund
    WebhookResult: normalized webhook payload
    DisbursementResult: outcome of a payout disbursement
    SplitPaymentData: platform/provider split for split gateways

A declined card or a failed disbursement is a failure result, not an
exception. Timeouts produce a failure result with ``pending=True`` (the
charge may still have succeeded) and ``retryable=True``.

Usage:
    result = gateway.complete_payment(payment, callback_data)
    if result.success:
        ...
    elif result.pending:
        # leave the payment in processing for reconciliation
        ...
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class PaymentResult:
    """
    Normalized result of a payment operation.

    Attributes:
        success: Whether the gateway reports a successful outcome
        transaction_id: Gateway transaction id (dedupe key for completion)
        order_id: Gateway order/session id
        redirect_url: Hosted payment page for initialize results
        error: Human-readable reason, safe to show to the payer
        error_code: Machine-readable code
        response_code: Gateway response/status code
        raw_response: Redacted provider payload for audit
        card_details: {"brand": ..., "last_four": ...}
        split_details: Split confirmation returned by split gateways
        pending: Outcome unknown (timeout); do not treat as failure
        retryable: Failure is transient
    """

    success: bool
    transaction_id: str | None = None
    order_id: str | None = None
    redirect_url: str | None = None
    error: str | None = None
    error_code: str | None = None
    response_code: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)
    card_details: dict[str, Any] | None = None
    split_details: dict[str, Any] | None = None
    pending: bool = False
    retryable: bool = False

    @classmethod
    def success(
        cls,
        transaction_id: str | None = None,
        order_id: str | None = None,
        redirect_url: str | None = None,
        response_code: str | None = None,
        raw_response: dict[str, Any] | None = None,
        card_details: dict[str, Any] | None = None,
        split_details: dict[str, Any] | None = None,
    ) -> PaymentResult:
        return cls(
            success=True,
            transaction_id=transaction_id,
            order_id=order_id,
            redirect_url=redirect_url,
            response_code=response_code,
            raw_response=raw_response or {},
            card_details=card_details,
            split_details=split_details,
        )

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        response_code: str | None = None,
        raw_response: dict[str, Any] | None = None,
        transaction_id: str | None = None,
        order_id: str | None = None,
        pending: bool = False,
        retryable: bool = False,
    ) -> PaymentResult:
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            response_code=response_code,
            raw_response=raw_response or {},
            transaction_id=transaction_id,
            order_id=order_id,
            pending=pending,
            retryable=retryable or pending,
        )

    @property
    def card_brand(self) -> str | None:
        return (self.card_details or {}).get("brand")

    @property
    def card_last_four(self) -> str | None:
        return (self.card_details or {}).get("last_four")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RefundResult:
    """Normalized result of a refund call."""

    success: bool
    refund_id: str | None = None
    amount: Decimal | None = None
    error: str | None = None
    error_code: str | None = None
    response_code: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)
    retryable: bool = False

    @classmethod
    def success(
        cls,
        refund_id: str | None,
        amount: Decimal,
        raw_response: dict[str, Any] | None = None,
    ) -> RefundResult:
        return cls(
            success=True,
            refund_id=refund_id,
            amount=amount,
            raw_response=raw_response or {},
        )

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        response_code: str | None = None,
        raw_response: dict[str, Any] | None = None,
        retryable: bool = False,
    ) -> RefundResult:
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            response_code=response_code,
            raw_response=raw_response or {},
            retryable=retryable,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if self.amount is not None:
            data["amount"] = str(self.amount)
        return data


@dataclass(frozen=True)
class WebhookResult:
    """
    A verified webhook normalized to a payment outcome.

    ``event_id`` dedupes deliveries; ``payment_result`` is applied through
    the same completion path as a browser callback. Events that do not
    concern a payment set ``handled=False``.
    """

    success: bool
    event_id: str | None = None
    event_type: str | None = None
    payment_id: str | None = None
    payment_result: PaymentResult | None = None
    handled: bool = True
    error: str | None = None

    @classmethod
    def success(
        cls,
        event_id: str,
        event_type: str,
        payment_id: str | None = None,
        payment_result: PaymentResult | None = None,
        handled: bool = True,
    ) -> WebhookResult:
        return cls(
            success=True,
            event_id=event_id,
            event_type=event_type,
            payment_id=payment_id,
            payment_result=payment_result,
            handled=handled,
        )

    @classmethod
    def failure(cls, error: str, event_id: str | None = None) -> WebhookResult:
        return cls(success=False, error=error, event_id=event_id, handled=False)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DisbursementResult:
    """
    Outcome of sending a payout to a provider.

    ``retryable`` separates transient failures (timeout, 5xx, rate limit)
    from terminal ones (4xx, invalid bank details).
    """

    success: bool
    reference: str | None = None
    error: str | None = None
    error_code: str | None = None
    response_code: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)
    retryable: bool = False

    @classmethod
    def success(
        cls,
        reference: str,
        raw_response: dict[str, Any] | None = None,
    ) -> DisbursementResult:
        return cls(success=True, reference=reference, raw_response=raw_response or {})

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        response_code: str | None = None,
        retryable: bool = False,
        raw_response: dict[str, Any] | None = None,
    ) -> DisbursementResult:
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            response_code=response_code,
            retryable=retryable,
            raw_response=raw_response or {},
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SplitPaymentData:
    """
    Split configuration for a split-capable gateway.

    platform_amount + provider_amount equals what the client is charged.
    """

    provider_merchant_id: str
    platform_merchant_id: str
    platform_amount: Decimal
    provider_amount: Decimal
    currency: str

    @property
    def total(self) -> Decimal:
        return self.platform_amount + self.provider_amount

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider_merchant_id": self.provider_merchant_id,
            "platform_merchant_id": self.platform_merchant_id,
            "platform_amount": str(self.platform_amount),
            "provider_amount": str(self.provider_amount),
            "currency": self.currency,
        }
