"""
Celery tasks for payment processing.

This module provides async tasks for:
- Scheduling provider payouts (weekly via celery-beat)
- Processing due payouts and retries (hourly)
- Processing a single payout batch
- Reconciling payments stuck in processing after gateway timeouts
- Periodic cleanup of old webhook events

Usage:
    from payments.tasks import process_payout_batch

    # Queue a batch for processing
    process_payout_batch.delay("BATCH-20240105-AB12CD")

    # Schedule payouts now instead of waiting for celery-beat
    from payments.tasks import schedule_payouts
    schedule_payouts.delay()
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.db import OperationalError
from django.utils import timezone

from payments.exceptions import (
    GatewayTimeoutError,
    StripeAPIUnavailableError,
    StripeRateLimitError,
    StripeTimeoutError,
)
from payments.models import WebhookEvent
from payments.services import PaymentService, PayoutScheduler
from payments.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_TASK_RETRIES = 5

# Transient failures worth re-running a whole task for
RETRYABLE_TASK_ERRORS = (
    OperationalError,
    GatewayTimeoutError,
    StripeAPIUnavailableError,
    StripeRateLimitError,
    StripeTimeoutError,
)

STALE_PAYMENT_THRESHOLD_MINUTES = 30


# =============================================================================
# Payout Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=RETRYABLE_TASK_ERRORS,
    retry_backoff=True,
    retry_backoff_max=600,
    retry_kwargs={"max_retries": MAX_TASK_RETRIES},
    acks_late=True,
)
def schedule_payouts(self) -> dict:
    """
    Create pending payouts for every eligible escrow provider.

    Scheduled weekly via celery-beat.

    Returns:
        Dict with the number of payouts scheduled
    """
    scheduled = PayoutScheduler().schedule_payouts()

    logger.info(
        f"Scheduled {scheduled} payouts",
        extra={"scheduled_count": scheduled, "task_id": self.request.id},
    )
    return {"scheduled_count": scheduled}


@shared_task(
    bind=True,
    autoretry_for=RETRYABLE_TASK_ERRORS,
    retry_backoff=True,
    retry_backoff_max=600,
    retry_kwargs={"max_retries": MAX_TASK_RETRIES},
    acks_late=True,
)
def process_scheduled_payouts(self) -> dict:
    """
    Disburse due payouts, including failed payouts whose retry is due.

    Individual payout failures are recorded on the payout and do not fail
    the task.

    Returns:
        Dict with the number of payouts completed
    """
    processed = PayoutScheduler().process_scheduled_payouts()

    logger.info(
        f"Processed {processed} scheduled payouts",
        extra={"processed_count": processed, "task_id": self.request.id},
    )
    return {"processed_count": processed}


@shared_task(
    bind=True,
    autoretry_for=RETRYABLE_TASK_ERRORS,
    retry_backoff=True,
    retry_backoff_max=600,
    retry_kwargs={"max_retries": MAX_TASK_RETRIES},
    acks_late=True,
)
def process_payout_batch(self, batch_id: str) -> dict:
    """
    Process the pending payouts of one batch.

    Args:
        batch_id: Batch id, e.g. "BATCH-20240105-AB12CD"

    Returns:
        Dict with total, processed and failed counts
    """
    results = PayoutScheduler().process_batch(batch_id)

    log = logger.warning if results["failed"] else logger.info
    log(
        f"Payout batch {batch_id}: {results['processed']}/{results['total']} processed",
        extra={"batch_id": batch_id, "task_id": self.request.id, **results},
    )
    return results


# =============================================================================
# Reconciliation Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=RETRYABLE_TASK_ERRORS,
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_TASK_RETRIES},
    acks_late=True,
)
def reconcile_stale_payments(self, older_than_minutes: int = STALE_PAYMENT_THRESHOLD_MINUTES) -> dict:
    """
    Query the gateway for payments left in processing after a timeout.

    Scheduled every 15 minutes via celery-beat.

    Returns:
        Dict with checked/completed/failed/pending/errors counts
    """
    stats = PaymentService().reconcile_stale_payments(older_than_minutes=older_than_minutes)

    if stats["checked"]:
        logger.info(
            f"Reconciled {stats['checked']} stale payments",
            extra={"task_id": self.request.id, **stats},
        )
    return stats


# =============================================================================
# Webhook Maintenance
# =============================================================================


@shared_task
def cleanup_old_webhooks(days: int = 90) -> dict:
    """
    Periodic task to clean up old processed webhook events.

    Failed events are kept for debugging.

    Args:
        days: Delete processed or ignored events older than this many days

    Returns:
        Dict with count of webhooks deleted
    """
    cutoff = timezone.now() - timedelta(days=days)

    deleted_count, _ = WebhookEvent.objects.filter(
        status__in=[WebhookEventStatus.PROCESSED, WebhookEventStatus.IGNORED],
        processed_at__lt=cutoff,
    ).delete()

    if deleted_count > 0:
        logger.info(
            f"Deleted {deleted_count} old webhook events",
            extra={
                "deleted_count": deleted_count,
                "cutoff_date": cutoff.isoformat(),
            },
        )

    return {"deleted_count": deleted_count}
