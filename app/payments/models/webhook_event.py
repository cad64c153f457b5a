"""
WebhookEvent model for gateway webhook tracking.

Every webhook delivery is stored, including unverified ones, for
idempotent processing and audit. The unique (gateway, event_id)
constraint detects redelivered events.

Usage:
    from payments.models import WebhookEvent

    event, created = WebhookEvent.objects.get_or_create(
        gateway="stripe",
        event_id="evt_123",
        defaults={"event_type": "checkout.session.completed", "payload": payload},
    )
    if not created and event.status == WebhookEventStatus.PROCESSED:
        return  # duplicate delivery
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    A webhook delivery received from a payment gateway.

    Processing Flow:
        1. Verify the signature (unverified deliveries are discarded)
        2. Get or create by (gateway, event_id)
        3. Already PROCESSED -> duplicate, nothing to do
        4. Apply the normalized result to the payment
        5. Mark PROCESSED, IGNORED or FAILED
    """

    gateway = models.CharField(
        max_length=50,
        db_index=True,
        help_text="Registry name of the sending gateway",
    )

    event_id = models.CharField(
        max_length=255,
        help_text="Gateway event id - unique per gateway for idempotency",
    )

    event_type = models.CharField(
        max_length=100,
        blank=True,
        default="",
        db_index=True,
        help_text="Gateway event type",
    )

    payload = models.JSONField(
        default=dict,
        help_text="Redacted webhook payload",
    )

    signature_valid = models.BooleanField(
        default=False,
        help_text="Whether the signature verified",
    )

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Current processing status",
    )

    error_message = models.TextField(
        blank=True,
        default="",
        help_text="Error message if processing failed or was skipped",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When processing finished",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "created_at"], name="webhook_status_created_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["gateway", "event_id"],
                name="unique_webhook_event_per_gateway",
            ),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.gateway}:{self.event_id}, {self.status})"

    def mark_processed(self) -> None:
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.save(update_fields=["status", "processed_at", "updated_at"])

    def mark_ignored(self, reason: str) -> None:
        self.status = WebhookEventStatus.IGNORED
        self.error_message = reason
        self.processed_at = timezone.now()
        self.save(update_fields=["status", "error_message", "processed_at", "updated_at"])

    def mark_failed(self, error: str) -> None:
        self.status = WebhookEventStatus.FAILED
        self.error_message = error
        self.save(update_fields=["status", "error_message", "updated_at"])
