"""
Pytest fixtures for payment tests.

Every test here runs against the in-memory "fake" gateway registered as
the platform default. Cached SystemSetting values are dropped around each
test.

Usage:
    def test_refund(completed_payment, fake_gateway):
        fake_gateway.refund_result = RefundResult.failure("Refund window closed")
        ...
"""

from decimal import Decimal

import pytest

from marketplace.tests.factories import (
    BookingFactory,
    ClientFactory,
    ProviderFactory,
    ServiceFactory,
)
from payments.ledger import ledger
from payments.services.system_settings import get_settings_store
from payments.tests.factories import PaymentFactory
from payments.tests.gateways import fake_state

FAKE_GATEWAYS = {
    "escrow": "payments.tests.gateways.FakeEscrowGateway",
    "split": "payments.tests.gateways.FakeSplitGateway",
}


# =============================================================================
# Environment
# =============================================================================


@pytest.fixture(autouse=True)
def gateway_registry(settings):
    """Register the fake gateway and make it the default."""
    settings.PAYMENT_GATEWAYS = {
        **settings.PAYMENT_GATEWAYS,
        "fake": FAKE_GATEWAYS,
    }
    settings.PAYMENT_DEFAULT_GATEWAY = "fake"
    return settings.PAYMENT_GATEWAYS


@pytest.fixture(autouse=True)
def fresh_settings_store():
    """Drop cached SystemSetting values between tests."""
    get_settings_store().invalidate()
    yield
    get_settings_store().invalidate()


@pytest.fixture
def fake_gateway():
    """Scripted results and call log of the fake gateway."""
    fake_state.reset()
    yield fake_state
    fake_state.reset()


@pytest.fixture
def settings_store(db):
    return get_settings_store()


# =============================================================================
# Marketplace Fixtures
# =============================================================================


@pytest.fixture
def provider(db):
    """Starter escrow provider; client pays fees."""
    return ProviderFactory()


@pytest.fixture
def split_provider(db):
    """Provider with a verified merchant account on the split gateway."""
    return ProviderFactory(split=True)


@pytest.fixture
def client_account(db):
    return ClientFactory()


@pytest.fixture
def service(provider):
    return ServiceFactory(provider=provider, price=Decimal("1000.00"))


@pytest.fixture
def booking(provider, client_account, service):
    """Pending booking with the frozen 1000.00 Starter breakdown."""
    return BookingFactory(provider=provider, client=client_account, service=service)


# =============================================================================
# Payment Fixtures
# =============================================================================


@pytest.fixture
def completed_payment(provider):
    """
    Completed escrow payment of 500.00 with a provider share of 400.00.

    The provider share is already credited to the ledger.
    """
    booking = BookingFactory(provider=provider, status="confirmed")
    payment = PaymentFactory(
        booking=booking,
        completed=True,
        amount=Decimal("500.00"),
        platform_fee=Decimal("100.00"),
        processing_fee=Decimal("20.00"),
        provider_amount=Decimal("400.00"),
    )
    ledger.credit_for_payment(payment)
    return payment

