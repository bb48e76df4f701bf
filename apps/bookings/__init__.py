"""Bookings app package.

Reservations of venue time slots: availability computation, the
reservation writer that serialises writes per venue, and the payment
commitment machine (full, advance or pay-at-venue) that moves a
reservation to paid, failed, cancelled or refunded.
"""
