"""
Marketplace app: providers, clients, services and bookings.

Only the records the payments core reads are modelled here. Booking CRUD,
availability and reviews live elsewhere.

Related apps:
    - payments: fees, payments, ledger and payouts for these bookings

Usage:
    from marketplace.services import BookingService

    result = BookingService.create_booking(client, service)
    BookingService.transition(result.data, BookingStatus.CONFIRMED)
"""
