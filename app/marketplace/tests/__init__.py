"""
Tests for the marketplace app.

- test_states.py: Booking adjacency map and tier enums
- test_services.py: BookingService creation and status changes
"""
