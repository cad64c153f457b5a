"""
Marketplace domain signals.

booking_status_changed is sent after commit by BookingService.transition and
by the payment services when they move a booking.

Receiver kwargs:
    booking: Booking instance
    previous_status: status before the change
    new_status: status after the change
"""

from django.dispatch import Signal

booking_status_changed = Signal()
