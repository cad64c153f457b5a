"""
Tests for webhook handling.

Tests cover:
- Signature verification (invalid deliveries are discarded)
- WebhookEvent creation and idempotency
- Applying webhook outcomes to payments
- Unhandled events and unknown payments
- The HTTP endpoint's status codes
"""

from decimal import Decimal
from unittest.mock import patch

import pytest
from django.test import Client
from django.urls import reverse

from payments.exceptions import GatewayConfigurationError
from payments.ledger import LedgerEntry
from payments.models import Payment, WebhookEvent
from payments.services import PaymentService
from payments.state_machines import PaymentStatus, WebhookEventStatus
from payments.tests.factories import PaymentFactory
from payments.tests.gateways import SIGNATURE_HEADER, sign, webhook_payload


@pytest.fixture
def payment_service():
    return PaymentService()


@pytest.fixture
def payment(db):
    return PaymentFactory()


def signed_headers(payload: bytes) -> dict[str, str]:
    return {SIGNATURE_HEADER: sign(payload)}


def succeeded_event(payment, event_id="evt_1", **fields) -> bytes:
    return webhook_payload(
        event_id,
        "payment.succeeded",
        payment_id=str(payment.pk),
        transaction_id=fields.pop("transaction_id", f"txn_{event_id}"),
        **fields,
    )


# =============================================================================
# Service Tests
# =============================================================================


class TestSignatureVerification:
    """Deliveries without a valid signature never reach the database."""

    def test_invalid_signature_is_discarded(self, payment_service, payment):
        payload = succeeded_event(payment)

        result = payment_service.apply_webhook(
            "fake", payload, {SIGNATURE_HEADER: "not-a-signature"}
        )

        assert not result.success
        assert result.error_code == "INVALID_SIGNATURE"
        assert not WebhookEvent.objects.exists()
        assert Payment.objects.get(pk=payment.pk).status == PaymentStatus.PROCESSING

    def test_missing_signature_is_discarded(self, payment_service, payment):
        result = payment_service.apply_webhook("fake", succeeded_event(payment), {})

        assert result.error_code == "INVALID_SIGNATURE"

    def test_signature_of_other_body_is_rejected(self, payment_service, payment):
        payload = succeeded_event(payment)
        tampered = payload.replace(b"evt_1", b"evt_2")

        result = payment_service.apply_webhook("fake", tampered, signed_headers(payload))

        assert result.error_code == "INVALID_SIGNATURE"

    def test_header_lookup_ignores_case(self, payment_service, payment):
        payload = succeeded_event(payment)

        result = payment_service.apply_webhook(
            "fake", payload, {SIGNATURE_HEADER.lower(): sign(payload)}
        )

        assert result.success

    def test_unknown_gateway_raises(self, payment_service, db):
        with pytest.raises(GatewayConfigurationError):
            payment_service.apply_webhook("nope", b"{}", {})


class TestApplyWebhook:
    """Tests for PaymentService.apply_webhook()."""

    def test_success_event_completes_payment(self, payment_service, payment):
        payload = succeeded_event(payment, transaction_id="txn_hook")

        result = payment_service.apply_webhook("fake", payload, signed_headers(payload))

        assert result.success
        stored = Payment.objects.get(pk=payment.pk)
        assert stored.status == PaymentStatus.COMPLETED
        assert stored.transaction_id == "txn_hook"
        assert LedgerEntry.objects.get(payment=payment).amount == Decimal("1000.00")

        event = WebhookEvent.objects.get(gateway="fake", event_id="evt_1")
        assert event.status == WebhookEventStatus.PROCESSED
        assert event.event_type == "payment.succeeded"
        assert event.signature_valid is True
        assert event.payload["payment_id"] == str(payment.pk)

    def test_failure_event_fails_payment(self, payment_service, payment):
        payload = webhook_payload(
            "evt_fail", "payment.failed", payment_id=str(payment.pk), reason="Card expired"
        )

        payment_service.apply_webhook("fake", payload, signed_headers(payload))

        stored = Payment.objects.get(pk=payment.pk)
        assert stored.status == PaymentStatus.FAILED
        assert stored.failure_reason == "Card expired"
        event = WebhookEvent.objects.get(event_id="evt_fail")
        assert event.status == WebhookEventStatus.PROCESSED

    def test_payment_found_by_order_id(self, payment_service, payment):
        payload = webhook_payload(
            "evt_order", "payment.succeeded", order_id=payment.order_id, transaction_id="txn_o"
        )

        payment_service.apply_webhook("fake", payload, signed_headers(payload))

        assert Payment.objects.get(pk=payment.pk).status == PaymentStatus.COMPLETED

    def test_redelivery_is_applied_once(self, payment_service, payment):
        payload = succeeded_event(payment)

        first = payment_service.apply_webhook("fake", payload, signed_headers(payload))
        second = payment_service.apply_webhook("fake", payload, signed_headers(payload))

        assert first.success
        assert second.success
        assert first.data.pk == second.data.pk
        assert WebhookEvent.objects.count() == 1
        assert LedgerEntry.objects.filter(payment=payment).count() == 1

    def test_webhook_and_callback_complete_once(self, payment_service, payment, fake_gateway):
        payment_service.complete_payment(payment, {"transaction_id": "txn_both"})
        payload = succeeded_event(payment, transaction_id="txn_both")

        result = payment_service.apply_webhook("fake", payload, signed_headers(payload))

        assert result.success
        assert LedgerEntry.objects.filter(payment=payment).count() == 1
        assert WebhookEvent.objects.get(event_id="evt_1").status == WebhookEventStatus.PROCESSED

    def test_unhandled_event_type_is_ignored(self, payment_service, payment):
        payload = webhook_payload("evt_other", "customer.updated")

        result = payment_service.apply_webhook("fake", payload, signed_headers(payload))

        assert result.success
        event = WebhookEvent.objects.get(event_id="evt_other")
        assert event.status == WebhookEventStatus.IGNORED
        assert event.error_message == "Unhandled event type 'customer.updated'"

    def test_unknown_payment_is_ignored(self, payment_service, db):
        payload = webhook_payload(
            "evt_lost", "payment.succeeded", payment_id="not-a-uuid", order_id="order_missing"
        )

        result = payment_service.apply_webhook("fake", payload, signed_headers(payload))

        assert result.success
        event = WebhookEvent.objects.get(event_id="evt_lost")
        assert event.status == WebhookEventStatus.IGNORED
        assert event.error_message == "Unknown payment"

    def test_ignored_event_is_not_reprocessed(self, payment_service, db):
        payload = webhook_payload("evt_other", "customer.updated")
        payment_service.apply_webhook("fake", payload, signed_headers(payload))

        payment_service.apply_webhook("fake", payload, signed_headers(payload))

        assert WebhookEvent.objects.filter(event_id="evt_other").count() == 1

    def test_unreadable_payload(self, payment_service, db):
        payload = b"not json"

        result = payment_service.apply_webhook("fake", payload, signed_headers(payload))

        assert not result.success
        assert result.error_code == "INVALID_WEBHOOK_PAYLOAD"
        assert not WebhookEvent.objects.exists()

    def test_processing_error_marks_event_failed(self, payment_service, payment):
        payload = succeeded_event(payment)

        with patch.object(PaymentService, "apply_result", side_effect=RuntimeError("db down")):
            with pytest.raises(RuntimeError):
                payment_service.apply_webhook("fake", payload, signed_headers(payload))

        event = WebhookEvent.objects.get(event_id="evt_1")
        assert event.status == WebhookEventStatus.FAILED
        assert event.error_message == "db down"

    def test_failed_event_is_retried_on_redelivery(self, payment_service, payment):
        payload = succeeded_event(payment)
        with patch.object(PaymentService, "apply_result", side_effect=RuntimeError("db down")):
            with pytest.raises(RuntimeError):
                payment_service.apply_webhook("fake", payload, signed_headers(payload))

        result = payment_service.apply_webhook("fake", payload, signed_headers(payload))

        assert result.success
        assert WebhookEvent.objects.get(event_id="evt_1").status == WebhookEventStatus.PROCESSED
        assert Payment.objects.get(pk=payment.pk).status == PaymentStatus.COMPLETED

    def test_sensitive_fields_are_redacted(self, payment_service, payment):
        payload = succeeded_event(payment, card_number="4242424242424242")

        payment_service.apply_webhook("fake", payload, signed_headers(payload))

        event = WebhookEvent.objects.get(event_id="evt_1")
        assert event.payload["card_number"] == "[REDACTED]"


# =============================================================================
# View Tests
# =============================================================================


class TestGatewayWebhookView:
    """Tests for the webhook endpoint."""

    def post(self, client, payload: bytes, gateway="fake", headers=None):
        return client.post(
            reverse("payments:gateway_webhook", kwargs={"gateway": gateway}),
            data=payload,
            content_type="application/json",
            headers=signed_headers(payload) if headers is None else headers,
        )

    def test_url(self):
        assert (
            reverse("payments:gateway_webhook", kwargs={"gateway": "stripe"})
            == "/api/v1/payments/webhooks/stripe/"
        )

    def test_accepted_event_returns_200(self, client, payment):
        response = self.post(client, succeeded_event(payment))

        assert response.status_code == 200
        assert Payment.objects.get(pk=payment.pk).status == PaymentStatus.COMPLETED

    def test_duplicate_returns_200(self, client, payment):
        payload = succeeded_event(payment)
        self.post(client, payload)

        response = self.post(client, payload)

        assert response.status_code == 200
        assert WebhookEvent.objects.count() == 1

    def test_ignored_event_returns_200(self, client, db):
        response = self.post(client, webhook_payload("evt_x", "customer.updated"))

        assert response.status_code == 200

    def test_invalid_signature_returns_400(self, client, payment):
        response = self.post(
            client, succeeded_event(payment), headers={SIGNATURE_HEADER: "bad"}
        )

        assert response.status_code == 400
        assert b"Invalid webhook signature" in response.content
        assert not WebhookEvent.objects.exists()

    def test_unknown_gateway_returns_404(self, client, db):
        response = self.post(client, b"{}", gateway="nope")

        assert response.status_code == 404

    def test_get_is_not_allowed(self, client, db):
        response = client.get(reverse("payments:gateway_webhook", kwargs={"gateway": "fake"}))

        assert response.status_code == 405

    def test_processing_error_returns_500(self, client, payment):
        with patch.object(PaymentService, "apply_result", side_effect=RuntimeError("db down")):
            response = self.post(client, succeeded_event(payment))

        assert response.status_code == 500
        assert WebhookEvent.objects.get(event_id="evt_1").status == WebhookEventStatus.FAILED

    def test_csrf_is_not_required(self, payment):
        response = self.post(Client(enforce_csrf_checks=True), succeeded_event(payment))

        assert response.status_code == 200
