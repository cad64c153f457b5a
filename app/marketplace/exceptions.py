"""
Marketplace exceptions.

Usage:
    from marketplace.exceptions import InvalidBookingTransition

    raise InvalidBookingTransition(booking, BookingStatus.PENDING)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import ConflictError

if TYPE_CHECKING:
    from marketplace.models import Booking


class InvalidBookingTransition(ConflictError):
    """
    Raised when a booking status change is not in BOOKING_TRANSITIONS.

    The booking is left untouched.
    """

    default_error_code: str = "INVALID_BOOKING_TRANSITION"

    def __init__(self, booking: Booking, target: str):
        self.booking = booking
        self.target = target
        super().__init__(
            f"Booking {booking.pk} cannot move from '{booking.status}' to '{target}'",
            details={
                "booking_id": str(booking.pk),
                "current_state": booking.status,
                "target_state": target,
            },
        )
