"""
Tests for BookingService.

Covers booking creation with a frozen fee breakdown and the gated status
changes used by the payment services.
"""

from decimal import Decimal
from unittest.mock import Mock

import pytest

from marketplace.exceptions import InvalidBookingTransition
from marketplace.models import Booking
from marketplace.services import BookingService
from marketplace.signals import booking_status_changed
from marketplace.states import BookingStatus, CancelledBy, FeePayer, SubscriptionTier
from marketplace.tests.factories import (
    BookingFactory,
    ClientFactory,
    ProviderFactory,
    ServiceFactory,
)
from payments.services.system_settings import get_settings_store


@pytest.fixture(autouse=True)
def fresh_settings_store():
    """Drop cached SystemSetting values between tests."""
    get_settings_store().invalidate()
    yield
    get_settings_store().invalidate()


class TestCreateBooking:
    """Tests for BookingService.create_booking()."""

    def test_freezes_fee_breakdown(self, db):
        """A Starter 1000.00 booking stores the client-pays breakdown."""
        service = ServiceFactory(price=Decimal("1000.00"))

        result = BookingService.create_booking(ClientFactory(), service)

        assert result.success
        booking = result.data
        assert booking.status == BookingStatus.PENDING
        assert booking.service_price == Decimal("1000.00")
        assert booking.zeen_fee == Decimal("30.00")
        assert booking.gateway_fee == Decimal("41.20")
        assert booking.gateway_fee_rate == Decimal("4.00")
        assert booking.convenience_fee == Decimal("71.20")
        assert booking.total_amount == Decimal("1071.20")
        assert booking.provider_amount == Decimal("1000.00")
        assert booking.fee_payer == FeePayer.CLIENT
        assert booking.tier_at_booking == SubscriptionTier.STARTER

    def test_stores_starter_deposit(self, db):
        """Starter bookings carry the free-tier deposit of 20%."""
        service = ServiceFactory(price=Decimal("1000.00"))

        booking = BookingService.create_booking(ClientFactory(), service).data

        assert booking.deposit_amount == Decimal("200.00")

    def test_provider_pays_fees(self, db):
        """When the provider pays, the client is charged the list price."""
        provider = ProviderFactory(fee_payer=FeePayer.PROVIDER)
        service = ServiceFactory(provider=provider, price=Decimal("1000.00"))

        booking = BookingService.create_booking(ClientFactory(), service).data

        assert booking.total_amount == Decimal("1000.00")
        assert booking.convenience_fee == Decimal("0.00")
        assert booking.provider_amount == Decimal("930.00")

    def test_negative_price_returns_failure(self, db):
        """An unpriceable service is reported as a failed result."""
        service = ServiceFactory(price=Decimal("-5.00"))

        result = BookingService.create_booking(ClientFactory(), service)

        assert not result.success
        assert result.error_code == "NEGATIVE_PRICE"
        assert Booking.objects.count() == 0

    def test_later_tier_change_does_not_touch_booking(self, db):
        """The stored breakdown survives a tier upgrade."""
        provider = ProviderFactory()
        service = ServiceFactory(provider=provider)
        booking = BookingService.create_booking(ClientFactory(), service).data

        provider.subscription_tier = SubscriptionTier.PREMIUM
        provider.save()

        stored = Booking.objects.get(pk=booking.pk)
        assert stored.zeen_fee == Decimal("30.00")
        assert stored.tier_at_booking == SubscriptionTier.STARTER


class TestTransition:
    """Tests for BookingService.transition()."""

    def test_confirm_pending_booking(self, db):
        """Pending bookings can be confirmed."""
        booking = BookingFactory()

        BookingService.transition(booking, BookingStatus.CONFIRMED)

        stored = Booking.objects.get(pk=booking.pk)
        assert stored.status == BookingStatus.CONFIRMED
        assert stored.confirmed_at is not None

    def test_cancel_records_reason_and_actor(self, db):
        """Cancellation stores who cancelled and why."""
        booking = BookingFactory(status=BookingStatus.CONFIRMED)

        BookingService.transition(
            booking,
            BookingStatus.CANCELLED,
            reason="Client unavailable",
            cancelled_by=CancelledBy.CLIENT,
        )

        stored = Booking.objects.get(pk=booking.pk)
        assert stored.status == BookingStatus.CANCELLED
        assert stored.cancellation_reason == "Client unavailable"
        assert stored.cancelled_by == CancelledBy.CLIENT
        assert stored.cancelled_at is not None

    def test_illegal_move_raises_and_leaves_booking(self, db):
        """Completing a pending booking is refused."""
        booking = BookingFactory()

        with pytest.raises(InvalidBookingTransition) as exc_info:
            BookingService.transition(booking, BookingStatus.COMPLETED)

        assert exc_info.value.error_code == "INVALID_BOOKING_TRANSITION"
        assert exc_info.value.details["current_state"] == BookingStatus.PENDING
        assert Booking.objects.get(pk=booking.pk).status == BookingStatus.PENDING

    def test_terminal_booking_cannot_move(self, db):
        booking = BookingFactory(status=BookingStatus.CANCELLED)

        with pytest.raises(InvalidBookingTransition):
            BookingService.transition(booking, BookingStatus.CONFIRMED)

    def test_signal_sent_after_commit(self, db, django_capture_on_commit_callbacks):
        """booking_status_changed fires once the transaction commits."""
        handler = Mock()
        booking_status_changed.connect(handler)
        booking = BookingFactory()

        try:
            with django_capture_on_commit_callbacks(execute=True) as callbacks:
                BookingService.transition(booking, BookingStatus.CONFIRMED)
        finally:
            booking_status_changed.disconnect(handler)

        assert len(callbacks) == 1
        handler.assert_called_once()
        kwargs = handler.call_args.kwargs
        assert kwargs["previous_status"] == BookingStatus.PENDING
        assert kwargs["new_status"] == BookingStatus.CONFIRMED
