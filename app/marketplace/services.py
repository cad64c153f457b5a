"""
Booking service: creation with frozen fees and gated status changes.

Every booking status change goes through ``BookingService.transition`` so
the adjacency gate runs and ``booking_status_changed`` is sent once, after
the transaction commits. Payment services call it inside their own atomic
block.

Usage:
    from marketplace.services import BookingService

    result = BookingService.create_booking(client, service)
    booking = result.data

    BookingService.transition(booking, BookingStatus.CONFIRMED)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django_fsm import TransitionNotAllowed

from core.services import BaseService, ServiceResult
from core.signals import send_on_commit

from marketplace.exceptions import InvalidBookingTransition
from marketplace.models import Booking
from marketplace.signals import booking_status_changed
from marketplace.states import BookingStatus, CancelledBy

if TYPE_CHECKING:
    from datetime import datetime

    from marketplace.models import Client, Service
    from payments.fees import FeeCalculator


TRANSITION_METHODS = {
    BookingStatus.CONFIRMED: "confirm",
    BookingStatus.COMPLETED: "complete",
    BookingStatus.CANCELLED: "cancel",
    BookingStatus.NO_SHOW: "mark_no_show",
}


class BookingService(BaseService):
    """Booking operations the payments core relies on."""

    @classmethod
    def create_booking(
        cls,
        client: Client,
        service: Service,
        scheduled_for: datetime | None = None,
        fee_calculator: FeeCalculator | None = None,
    ) -> ServiceResult[Booking]:
        """
        Create a pending booking with its fee breakdown frozen.

        The fees are calculated once from the provider's current tier and
        stored on the booking; later tier or rate changes do not affect it.
        """
        from payments.fees import FeeCalculationError, FeeCalculator

        calculator = fee_calculator or FeeCalculator()
        provider = service.provider

        try:
            fees = calculator.calculate(provider, service.price)
            deposit = calculator.calculate_deposit(provider, service.price, service=service)
        except FeeCalculationError as e:
            return ServiceResult.from_exception(e)

        booking = Booking.objects.create(
            client=client,
            provider=provider,
            service=service,
            scheduled_for=scheduled_for,
            service_price=fees.service_price,
            zeen_fee=fees.zeen_fee,
            gateway_fee=fees.gateway_fee,
            gateway_fee_rate=fees.gateway_fee_rate,
            convenience_fee=fees.convenience_fee,
            deposit_amount=deposit,
            fee_payer=fees.fee_payer,
            total_amount=fees.client_pays,
            provider_amount=fees.provider_receives,
            tier_at_booking=provider.subscription_tier,
        )
        cls.get_logger().info(
            f"Booking {booking.id} created",
            extra={
                "booking_id": str(booking.id),
                "provider_id": str(provider.id),
                "total_amount": str(booking.total_amount),
            },
        )
        return ServiceResult.success(booking)

    @classmethod
    def transition(
        cls,
        booking: Booking,
        target: str,
        reason: str | None = None,
        cancelled_by: str = CancelledBy.SYSTEM,
    ) -> Booking:
        """
        Move ``booking`` to ``target`` and save it.

        Raises:
            InvalidBookingTransition: if the move is not allowed
        """
        if not booking.can_transition_to(target):
            raise InvalidBookingTransition(booking, target)

        previous_status = booking.status
        method = getattr(booking, TRANSITION_METHODS[target])
        try:
            if target == BookingStatus.CANCELLED:
                method(reason=reason, cancelled_by=cancelled_by)
            else:
                method()
        except TransitionNotAllowed:
            raise InvalidBookingTransition(booking, target)
        booking.save()

        cls.get_logger().info(
            f"Booking {booking.id} {previous_status} -> {booking.status}",
            extra={"booking_id": str(booking.id), "reason": reason},
        )
        send_on_commit(
            booking_status_changed,
            sender=Booking,
            booking=booking,
            previous_status=previous_status,
            new_status=booking.status,
        )
        return booking
