"""
Payment model for the booking payment lifecycle.

A Payment is one charge against a booking: the full amount, a deposit,
or the balance after a deposit. Amounts are copied from the booking's
frozen fee breakdown at creation and never recomputed.

Usage:
    from payments.models import Payment

    payment.start_processing()
    payment.save()

    payment.complete(transaction_id="pi_123")
    payment.save()
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.db.models import F
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import (
    REFUNDABLE_PAYMENT_STATUSES,
    FeePayer,
    GatewayType,
    PaymentStatus,
    PaymentType,
)


class Payment(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    A single gateway charge for a booking.

    State Flow:
        PENDING -> PROCESSING -> COMPLETED
        PENDING/PROCESSING -> FAILED

    Refund Flow:
        COMPLETED/PARTIALLY_REFUNDED -> PARTIALLY_REFUNDED | REFUNDED

    ``amount`` is what the gateway is asked to collect; when the client
    pays processing fees the gateway adds ``processing_fee`` on top.
    ``platform_fee + provider_amount`` equals ``amount`` for client-paid
    fees, and ``amount - processing_fee`` for provider-paid fees.

    Note:
        The version field is auto-incremented on save for optimistic
        locking.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    booking = models.ForeignKey(
        "marketplace.Booking",
        on_delete=models.PROTECT,
        related_name="payments",
        help_text="Booking this payment is for",
    )

    provider = models.ForeignKey(
        "marketplace.Provider",
        on_delete=models.PROTECT,
        related_name="payments",
        help_text="Provider receiving the payment",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Amount sent to the gateway",
    )

    platform_fee = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Zeen platform fee included in this payment",
    )

    processing_fee = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Gateway processing fee for this payment",
    )

    processing_fee_payer = models.CharField(
        max_length=20,
        choices=FeePayer.choices,
        default=FeePayer.CLIENT,
        help_text="Who bears the fees on this payment",
    )

    provider_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Provider's share of this payment",
    )

    refunded_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Total refunded so far",
    )

    refund_in_flight = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Refund amount claimed but not yet confirmed by the gateway",
    )

    refund_attempts = models.PositiveIntegerField(
        default=0,
        help_text="Refund requests claimed so far; part of the gateway idempotency key",
    )

    currency = models.CharField(
        max_length=3,
        default="JMD",
        help_text="ISO 4217 currency code",
    )

    payment_type = models.CharField(
        max_length=20,
        choices=PaymentType.choices,
        default=PaymentType.FULL,
        help_text="Full payment, deposit or remaining balance",
    )

    # ==========================================================================
    # Gateway
    # ==========================================================================

    gateway = models.CharField(
        max_length=50,
        help_text="Registry name of the gateway that handled this payment",
    )

    gateway_type = models.CharField(
        max_length=20,
        choices=GatewayType.choices,
        default=GatewayType.ESCROW,
        help_text="Split (paid at charge time) or escrow (paid out later)",
    )

    transaction_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Gateway transaction id; completion dedupes on it",
    )

    order_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Gateway order or checkout session id",
    )

    response_code = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text="Last gateway response code",
    )

    card_brand = models.CharField(
        max_length=30,
        blank=True,
        default="",
        help_text="Card brand reported by the gateway",
    )

    card_last_four = models.CharField(
        max_length=4,
        blank=True,
        default="",
        help_text="Last four digits of the card",
    )

    split_details = models.JSONField(
        null=True,
        blank=True,
        help_text="Split configuration sent to split gateways",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PaymentStatus.PENDING,
        choices=PaymentStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current payment status (managed by FSM)",
    )

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    failure_reason = models.TextField(
        blank=True,
        default="",
        help_text="Gateway reason if the payment failed",
    )

    # ==========================================================================
    # State Timestamps
    # ==========================================================================

    processing_started_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payment was handed to the gateway",
    )

    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the gateway confirmed the payment",
    )

    failed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payment failed",
    )

    refunded_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the last refund was recorded",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["booking", "status"], name="payment_booking_status_idx"),
            models.Index(fields=["provider", "status"], name="payment_provider_status_idx"),
            models.Index(fields=["status", "processing_started_at"], name="payment_status_started_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="payment_amount_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(refunded_amount__gte=0)
                & models.Q(refunded_amount__lte=F("amount")),
                name="payment_refund_within_amount",
            ),
        ]

    def __str__(self) -> str:
        return f"Payment({self.id}, {self.status}, {self.amount} {self.currency})"

    def save(self, *args, **kwargs):
        """Save with version auto-increment for optimistic locking."""
        is_update = self.pk and not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @property
    def refundable_amount(self) -> Decimal:
        return self.amount - self.refunded_amount - self.refund_in_flight

    def is_refundable(self) -> bool:
        return self.status in REFUNDABLE_PAYMENT_STATUSES and self.refundable_amount > 0

    def is_escrow(self) -> bool:
        return self.gateway_type == GatewayType.ESCROW

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.PROCESSING,
    )
    def start_processing(self):
        """Payment handed to the gateway and awaiting its outcome."""
        self.processing_started_at = timezone.now()

    @transition(
        field=status,
        source=PaymentStatus.PROCESSING,
        target=PaymentStatus.COMPLETED,
    )
    def complete(
        self,
        transaction_id: str | None = None,
        response_code: str | None = None,
        card_brand: str | None = None,
        card_last_four: str | None = None,
    ):
        """Gateway confirmed the charge."""
        if transaction_id:
            self.transaction_id = transaction_id
        self.response_code = response_code or self.response_code
        self.card_brand = card_brand or self.card_brand
        self.card_last_four = card_last_four or self.card_last_four
        self.completed_at = timezone.now()

    @transition(
        field=status,
        source=[PaymentStatus.PENDING, PaymentStatus.PROCESSING],
        target=PaymentStatus.FAILED,
    )
    def fail(self, reason: str | None = None, response_code: str | None = None):
        """Gateway declined or the payment could not be started."""
        self.failure_reason = reason or ""
        self.response_code = response_code or self.response_code
        self.failed_at = timezone.now()

    @transition(
        field=status,
        source=REFUNDABLE_PAYMENT_STATUSES,
        target=PaymentStatus.PARTIALLY_REFUNDED,
    )
    def refund_partially(self, amount: Decimal):
        self.refunded_amount += amount
        self.refunded_at = timezone.now()

    @transition(
        field=status,
        source=REFUNDABLE_PAYMENT_STATUSES,
        target=PaymentStatus.REFUNDED,
    )
    def refund_fully(self, amount: Decimal):
        self.refunded_amount += amount
        self.refunded_at = timezone.now()
