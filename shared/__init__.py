"""
Shared Kernel

Aggregate/event base classes, value objects (Money, TimeRange), the unit of
work and the in-process message bus used by the venues, bookings and
finances apps.
"""
