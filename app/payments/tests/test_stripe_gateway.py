"""
Tests for the Stripe gateways.

StripeAdapter is patched at the class level, so these tests cover how the
gateways build requests and turn adapter results and errors into
PaymentResult, RefundResult, DisbursementResult and WebhookResult.
"""

import json
from decimal import Decimal
from unittest.mock import patch

import pytest

from payments.adapters import (
    CheckoutSessionResult,
    StripeAdapter,
    StripeRefundResult,
    TransferResult,
)
from payments.exceptions import (
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeTimeoutError,
)
from payments.gateways import SplitPaymentData
from payments.gateways.stripe_gateway import (
    StripeConnectGateway,
    StripeGateway,
    StripeSignatureVerifier,
)
from payments.state_machines import FeePayer
from payments.tests.factories import PaymentFactory, ScheduledPayoutFactory

RETURN_URL = "https://example.com/return"
CANCEL_URL = "https://example.com/cancel"


@pytest.fixture(autouse=True)
def stripe_settings(settings):
    settings.STRIPE_SECRET_KEY = "sk_test_gateway"
    settings.STRIPE_WEBHOOK_SECRET = "whsec_gateway"
    settings.STRIPE_PLATFORM_ACCOUNT_ID = "acct_platform"
    return settings


@pytest.fixture
def gateway():
    return StripeGateway()


@pytest.fixture
def payment(db):
    return PaymentFactory(gateway="stripe", order_id="cs_test_1")


def session(**overrides) -> CheckoutSessionResult:
    values = {
        "id": "cs_test_1",
        "status": "open",
        "payment_status": "unpaid",
        "url": "https://checkout.stripe.com/c/pay/cs_test_1",
        "raw_response": {"id": "cs_test_1"},
    }
    values.update(overrides)
    return CheckoutSessionResult(**values)


def stripe_event(event_type: str, obj: dict, event_id: str = "evt_stripe_1") -> bytes:
    return json.dumps({"id": event_id, "type": event_type, "data": {"object": obj}}).encode()


# =============================================================================
# Signature Verification
# =============================================================================


class TestStripeSignatureVerifier:
    """Tests for StripeSignatureVerifier."""

    def test_valid_signature(self):
        with patch.object(StripeAdapter, "construct_webhook_event", return_value={}) as construct:
            assert StripeSignatureVerifier().verify(b"{}", {"Stripe-Signature": "t=1,v1=abc"})

        construct.assert_called_once_with(b"{}", "t=1,v1=abc")

    def test_invalid_signature(self):
        error = StripeInvalidRequestError("Invalid webhook signature")
        with patch.object(StripeAdapter, "construct_webhook_event", side_effect=error):
            assert not StripeSignatureVerifier().verify(b"{}", {"Stripe-Signature": "bad"})

    def test_missing_header(self):
        assert not StripeSignatureVerifier().verify(b"{}", {})

    def test_missing_secret(self, settings):
        settings.STRIPE_WEBHOOK_SECRET = ""

        assert not StripeSignatureVerifier().verify(b"{}", {"Stripe-Signature": "t=1,v1=abc"})


# =============================================================================
# Initialize
# =============================================================================


class TestInitializePayment:
    """Tests for Checkout Session creation."""

    def test_success_returns_hosted_page(self, gateway, payment):
        with patch.object(
            StripeAdapter, "create_checkout_session", return_value=session()
        ) as create:
            result = gateway.initialize_payment(payment, RETURN_URL, CANCEL_URL)

        assert result.success
        assert result.order_id == "cs_test_1"
        assert result.redirect_url == "https://checkout.stripe.com/c/pay/cs_test_1"
        assert result.split_details is None

        params = create.call_args.args[0]
        assert params.amount_cents == 103000
        assert params.processing_fee_cents == 4120
        assert params.currency == "jmd"
        assert params.success_url == RETURN_URL
        assert params.cancel_url == CANCEL_URL
        assert params.client_reference_id == str(payment.pk)
        assert params.metadata["payment_id"] == str(payment.pk)
        assert params.idempotency_key.startswith(f"checkout:{payment.pk}:1:")
        assert params.destination_account is None

    def test_provider_paid_processing_fee_is_not_charged(self, gateway, db):
        payment = PaymentFactory(gateway="stripe", processing_fee_payer=FeePayer.PROVIDER)

        with patch.object(
            StripeAdapter, "create_checkout_session", return_value=session()
        ) as create:
            gateway.initialize_payment(payment, RETURN_URL, CANCEL_URL)

        assert create.call_args.args[0].processing_fee_cents == 0

    def test_stripe_error_becomes_failure(self, gateway, payment):
        error = StripeAPIUnavailableError("Stripe service error", stripe_code="api_error")
        with patch.object(StripeAdapter, "create_checkout_session", side_effect=error):
            result = gateway.initialize_payment(payment, RETURN_URL, CANCEL_URL)

        assert not result.success
        assert result.error_code == "api_error"
        assert result.retryable is True

    def test_error_without_stripe_code_uses_error_code(self, gateway, payment):
        error = StripeInvalidRequestError("Bad currency")
        with patch.object(StripeAdapter, "create_checkout_session", side_effect=error):
            result = gateway.initialize_payment(payment, RETURN_URL, CANCEL_URL)

        assert result.error_code == error.error_code
        assert result.retryable is False

    def test_is_available_follows_secret_key(self, gateway, settings):
        assert gateway.is_available()

        settings.STRIPE_SECRET_KEY = ""

        assert not gateway.is_available()


# =============================================================================
# Complete / Query
# =============================================================================


class TestSessionOutcome:
    """Tests for complete_payment() and query_payment()."""

    def test_paid_session_succeeds(self, gateway, payment):
        paid = session(
            status="complete",
            payment_status="paid",
            payment_intent_id="pi_test_1",
            card_brand="visa",
            card_last4="4242",
        )
        with patch.object(
            StripeAdapter, "retrieve_checkout_session", return_value=paid
        ) as retrieve:
            result = gateway.complete_payment(payment, {"session_id": "cs_test_1"})

        retrieve.assert_called_once()
        assert retrieve.call_args.args[0] == "cs_test_1"
        assert result.success
        assert result.transaction_id == "pi_test_1"
        assert result.card_brand == "visa"
        assert result.card_last_four == "4242"

    def test_falls_back_to_stored_order_id(self, gateway, payment):
        with patch.object(
            StripeAdapter, "retrieve_checkout_session", return_value=session()
        ) as retrieve:
            gateway.complete_payment(payment, {})

        assert retrieve.call_args.args[0] == "cs_test_1"

    def test_missing_session_id(self, gateway, db):
        payment = PaymentFactory(gateway="stripe", order_id="")

        result = gateway.complete_payment(payment, {})

        assert not result.success
        assert result.error_code == "missing_session_id"

    def test_expired_session_fails(self, gateway, payment):
        with patch.object(
            StripeAdapter, "retrieve_checkout_session", return_value=session(status="expired")
        ):
            result = gateway.query_payment(payment)

        assert not result.success
        assert not result.pending
        assert result.error_code == "session_expired"

    def test_open_session_is_pending(self, gateway, payment):
        with patch.object(StripeAdapter, "retrieve_checkout_session", return_value=session()):
            result = gateway.query_payment(payment)

        assert not result.success
        assert result.pending
        assert result.error_code == "payment_pending"

    def test_timeout_while_verifying_is_pending(self, gateway, payment):
        error = StripeTimeoutError("No response", stripe_code="api_connection_error")
        with patch.object(StripeAdapter, "retrieve_checkout_session", side_effect=error):
            result = gateway.query_payment(payment)

        assert result.pending
        assert result.order_id == "cs_test_1"

    def test_permanent_error_while_verifying_is_not_pending(self, gateway, payment):
        error = StripeInvalidRequestError("No such session", stripe_code="resource_missing")
        with patch.object(StripeAdapter, "retrieve_checkout_session", side_effect=error):
            result = gateway.query_payment(payment)

        assert not result.pending
        assert result.error_code == "resource_missing"


# =============================================================================
# Refund
# =============================================================================


class TestRefund:
    """Tests for StripeCheckoutMixin.refund()."""

    def refund_result(self, **overrides) -> StripeRefundResult:
        values = {
            "id": "re_test_1",
            "amount_cents": 20000,
            "currency": "jmd",
            "status": "succeeded",
            "payment_intent_id": "pi_test_1",
        }
        values.update(overrides)
        return StripeRefundResult(**values)

    def test_partial_refund(self, gateway, db):
        payment = PaymentFactory(
            gateway="stripe", completed=True, transaction_id="pi_test_1", refund_attempts=1
        )

        with patch.object(
            StripeAdapter, "create_refund", return_value=self.refund_result()
        ) as create:
            result = gateway.refund(payment, Decimal("200.00"))

        assert result.success
        assert result.refund_id == "re_test_1"
        assert result.amount == Decimal("200.00")
        kwargs = create.call_args.kwargs
        assert kwargs["payment_intent_id"] == "pi_test_1"
        assert kwargs["amount_cents"] == 20000
        assert kwargs["idempotency_key"].startswith(f"refund:{payment.pk}:1:")

    def test_each_refund_request_uses_its_own_key(self, gateway, db):
        payment = PaymentFactory(gateway="stripe", completed=True, refund_attempts=1)

        with patch.object(
            StripeAdapter, "create_refund", return_value=self.refund_result()
        ) as create:
            gateway.refund(payment, Decimal("200.00"))
            payment.refund_attempts = 2
            gateway.refund(payment, Decimal("200.00"))

        first, second = (call.kwargs["idempotency_key"] for call in create.call_args_list)
        assert first != second
        assert second.startswith(f"refund:{payment.pk}:2:")

    def test_full_refund_sends_no_amount(self, gateway, db):
        payment = PaymentFactory(gateway="stripe", completed=True)

        with patch.object(
            StripeAdapter, "create_refund", return_value=self.refund_result()
        ) as create:
            gateway.refund(payment)

        assert create.call_args.kwargs["amount_cents"] is None

    def test_missing_transaction_id(self, gateway, payment):
        result = gateway.refund(payment)

        assert not result.success
        assert result.error_code == "missing_transaction_id"

    def test_failed_refund_status(self, gateway, db):
        payment = PaymentFactory(gateway="stripe", completed=True)

        with patch.object(
            StripeAdapter, "create_refund", return_value=self.refund_result(status="failed")
        ):
            result = gateway.refund(payment)

        assert not result.success
        assert result.error_code == "refund_failed"

    def test_stripe_error(self, gateway, db):
        payment = PaymentFactory(gateway="stripe", completed=True)
        error = StripeCardDeclinedError(
            "Charge already refunded", stripe_code="charge_already_refunded"
        )

        with patch.object(StripeAdapter, "create_refund", side_effect=error):
            result = gateway.refund(payment)

        assert not result.success
        assert result.error_code == "charge_already_refunded"


# =============================================================================
# Disburse
# =============================================================================


class TestDisburse:
    """Tests for StripeGateway.disburse()."""

    def transfer(self, payout) -> TransferResult:
        return TransferResult(
            id="tr_test_1",
            amount_cents=150000,
            currency="jmd",
            destination_account=payout.provider.payout_account_id,
        )

    def test_success(self, gateway, db):
        payout = ScheduledPayoutFactory(batch_id="BATCH-20240105-ABC123")

        with patch.object(
            StripeAdapter, "create_transfer", return_value=self.transfer(payout)
        ) as create:
            result = gateway.disburse(payout)

        assert result.success
        assert result.reference == "tr_test_1"
        kwargs = create.call_args.kwargs
        assert kwargs["amount_cents"] == 150000
        assert kwargs["destination_account"] == payout.provider.payout_account_id
        assert kwargs["currency"] == "jmd"
        assert kwargs["metadata"]["batch_id"] == "BATCH-20240105-ABC123"
        assert kwargs["idempotency_key"].startswith(f"disburse:{payout.pk}:1:")

    def test_retry_after_timeout_reuses_key(self, gateway, db):
        payout = ScheduledPayoutFactory()
        timeout = StripeTimeoutError("Request to Stripe timed out")

        with patch.object(
            StripeAdapter,
            "create_transfer",
            side_effect=[timeout, self.transfer(payout)],
        ) as create:
            first = gateway.disburse(payout)
            payout.retry_count = 1
            second = gateway.disburse(payout)

        assert first.retryable is True
        assert second.success
        keys = [call.kwargs["idempotency_key"] for call in create.call_args_list]
        assert keys[0] == keys[1]

    def test_missing_payout_account(self, gateway, db):
        payout = ScheduledPayoutFactory(provider__payout_account_id="")

        with patch.object(StripeAdapter, "create_transfer") as create:
            result = gateway.disburse(payout)

        assert not result.success
        assert result.error_code == "missing_payout_account"
        create.assert_not_called()

    def test_retryable_error(self, gateway, db):
        payout = ScheduledPayoutFactory()
        error = StripeAPIUnavailableError("Stripe service error", stripe_code="api_error")

        with patch.object(StripeAdapter, "create_transfer", side_effect=error):
            result = gateway.disburse(payout)

        assert not result.success
        assert result.retryable is True

    def test_invalid_account_is_terminal(self, gateway, db):
        payout = ScheduledPayoutFactory()
        error = StripeInvalidAccountError("No such account", stripe_code="account_invalid")

        with patch.object(StripeAdapter, "create_transfer", side_effect=error):
            result = gateway.disburse(payout)

        assert result.retryable is False
        assert result.error_code == "account_invalid"


# =============================================================================
# Webhooks
# =============================================================================


class TestHandleWebhook:
    """Tests for StripeCheckoutMixin.handle_webhook()."""

    def test_paid_session_completed(self, gateway):
        payload = stripe_event(
            "checkout.session.completed",
            {
                "id": "cs_test_1",
                "payment_status": "paid",
                "payment_intent": "pi_test_1",
                "metadata": {"payment_id": "42"},
            },
        )

        result = gateway.handle_webhook(payload, {})

        assert result.success
        assert result.handled
        assert result.event_id == "evt_stripe_1"
        assert result.payment_id == "42"
        assert result.payment_result.success
        assert result.payment_result.transaction_id == "pi_test_1"
        assert result.payment_result.order_id == "cs_test_1"

    def test_unpaid_session_completed_is_pending(self, gateway):
        payload = stripe_event(
            "checkout.session.completed",
            {"id": "cs_test_1", "payment_status": "unpaid", "client_reference_id": "42"},
        )

        result = gateway.handle_webhook(payload, {})

        assert result.payment_id == "42"
        assert result.payment_result.pending

    def test_async_payment_succeeded(self, gateway):
        payload = stripe_event(
            "checkout.session.async_payment_succeeded",
            {"id": "cs_test_1", "payment_status": "paid", "payment_intent": "pi_test_1"},
        )

        result = gateway.handle_webhook(payload, {})

        assert result.payment_result.success

    @pytest.mark.parametrize(
        "event_type,error_code",
        [
            ("checkout.session.expired", "expired"),
            ("checkout.session.async_payment_failed", "async_payment_failed"),
        ],
    )
    def test_failed_session_events(self, gateway, event_type, error_code):
        payload = stripe_event(event_type, {"id": "cs_test_1", "metadata": {"payment_id": "42"}})

        result = gateway.handle_webhook(payload, {})

        assert result.handled
        assert not result.payment_result.success
        assert not result.payment_result.pending
        assert result.payment_result.error_code == error_code

    def test_payment_intent_failed(self, gateway):
        payload = stripe_event(
            "payment_intent.payment_failed",
            {
                "id": "pi_test_1",
                "metadata": {"payment_id": "42"},
                "last_payment_error": {
                    "message": "Your card was declined.",
                    "code": "card_declined",
                    "decline_code": "stolen_card",
                },
            },
        )

        result = gateway.handle_webhook(payload, {})

        assert result.payment_result.error == "Your card was declined."
        assert result.payment_result.error_code == "stolen_card"
        assert result.payment_result.transaction_id == "pi_test_1"

    def test_unhandled_event(self, gateway):
        result = gateway.handle_webhook(stripe_event("customer.created", {"id": "cus_1"}), {})

        assert result.success
        assert not result.handled
        assert result.payment_result is None

    def test_invalid_json(self, gateway):
        result = gateway.handle_webhook(b"not json", {})

        assert not result.success

    def test_missing_event_id(self, gateway):
        payload = json.dumps({"type": "checkout.session.completed"}).encode()

        result = gateway.handle_webhook(payload, {})

        assert not result.success
        assert result.error == "Missing event id"


# =============================================================================
# Stripe Connect (split)
# =============================================================================


class TestStripeConnectGateway:
    """Tests for destination charges through StripeConnectGateway."""

    @pytest.fixture
    def connect(self):
        return StripeConnectGateway()

    def test_destination_charge_params(self, connect, payment):
        split = SplitPaymentData(
            provider_merchant_id="acct_provider",
            platform_merchant_id="acct_platform",
            platform_amount=Decimal("30.00"),
            provider_amount=Decimal("1000.00"),
            currency="JMD",
        )
        connect.configure_split(payment, split)

        with patch.object(
            StripeAdapter, "create_checkout_session", return_value=session()
        ) as create:
            result = connect.initialize_payment(payment, RETURN_URL, CANCEL_URL)

        params = create.call_args.args[0]
        assert params.destination_account == "acct_provider"
        assert params.application_fee_cents == 3000
        assert result.split_details == split.to_dict()

    def test_without_split_is_plain_checkout(self, connect, payment):
        with patch.object(
            StripeAdapter, "create_checkout_session", return_value=session()
        ) as create:
            result = connect.initialize_payment(payment, RETURN_URL, CANCEL_URL)

        assert create.call_args.args[0].destination_account is None
        assert result.split_details is None

    def test_platform_merchant_id(self, connect):
        assert connect.get_platform_merchant_id() == "acct_platform"
        assert (
            StripeConnectGateway({"platform_account_id": "acct_cfg"}).get_platform_merchant_id()
            == "acct_cfg"
        )

    def test_validate_enabled_account(self, connect):
        with patch.object(
            StripeAdapter, "retrieve_account", return_value={"charges_enabled": True}
        ):
            assert connect.validate_provider_credentials({"merchant_account_id": "acct_1"})

    def test_validate_restricted_account(self, connect):
        with patch.object(
            StripeAdapter, "retrieve_account", return_value={"charges_enabled": False}
        ):
            assert not connect.validate_provider_credentials({"merchant_account_id": "acct_1"})

    def test_validate_missing_account_id(self, connect):
        with patch.object(StripeAdapter, "retrieve_account") as retrieve:
            assert not connect.validate_provider_credentials({})

        retrieve.assert_not_called()

    def test_validate_unknown_account(self, connect):
        error = StripeInvalidAccountError("No such account", stripe_code="resource_missing")
        with patch.object(StripeAdapter, "retrieve_account", side_effect=error):
            assert not connect.validate_provider_credentials({"merchant_account_id": "acct_x"})
