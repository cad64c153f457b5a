"""
Tests for the payments app.

This package contains test modules for:
- test_calculator.py: Fee, deposit and per-payment amounts
- test_models.py: Payment, ScheduledPayout and WebhookEvent models
- test_ledger_service.py: Provider ledger writes and balances
- test_payment_service.py: Payment initialization, completion, reconciliation
- test_refund_service.py: Partial/full refunds and ledger clawback
- test_payout_scheduler.py: Payout scheduling, disbursement and retries
- test_webhooks.py: Webhook verification, dedupe and the endpoint
- test_integration.py: Booking-to-payout workflows

Usage:
    pytest payments/tests/
    pytest payments/tests/test_payment_service.py
"""
