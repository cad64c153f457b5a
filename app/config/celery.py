"""
Celery configuration for the Django application.

Celery runs the payment background work:
- Payout scheduling and processing (periodic, via django-celery-beat)
- Reconciliation of payments stuck in processing
- Cleanup of old webhook events

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps.

Usage:
    from payments.tasks import process_payout_batch

    process_payout_batch.delay(str(batch_id))

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# The name should match the Django project name
app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Celery will look for a tasks.py module in each installed app
app.autodiscover_tasks()
