"""
Booking Domain Events

Published by the unit of work after the transaction that produced them
has committed.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from shared.domain.base import DomainEvent
from shared.domain.value_objects import TimeRange


# ===== Schedule Events =====

@dataclass
class SlotAllocated(DomainEvent):
    """Interval is now committed; availability for the date changed."""
    venue_id: int
    date: date
    reservation_id: int
    interval: TimeRange


@dataclass
class SlotReleased(DomainEvent):
    """Interval is free again (failed, cancelled or refunded reservation)."""
    venue_id: int
    date: date
    reservation_id: int
    interval: TimeRange


# ===== Reservation Events =====

@dataclass
class ReservationCreated(DomainEvent):
    reservation_id: int
    venue_id: int
    requester_id: int
    date: date
    interval: TimeRange
    total_amount: Decimal


@dataclass
class PaymentStateChanged(DomainEvent):
    """
    Any payment-state transition

    Triggers:
    - Availability cache invalidation when the slot is released
    - Audit log line
    """
    reservation_id: int
    venue_id: int
    date: date
    old_state: str
    new_state: str
    amount_committed: Decimal
    reason: str = ''


@dataclass
class PaymentCaptured(DomainEvent):
    """Money reached the platform or was collected at the venue."""
    reservation_id: int
    venue_id: int
    amount: Decimal
    collected_by: str
    ledger_entry_id: int
