"""
Venue Schedule Aggregate

Consistency boundary for one venue on one date. Every new reservation is
allocated through this aggregate while the venue row is locked, so two
concurrent requests for overlapping intervals cannot both succeed.

Allocations come from committed reservations (unpaid, processing,
partially paid, paid, pay-at-venue pending) and manual venue blocks.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

from shared.domain.base import Aggregate
from shared.domain.value_objects import TimeRange

from apps.bookings.domain.availability import SlotCandidate, compute_availability, is_interval_available
from apps.bookings.domain.errors import SlotUnavailableError
from apps.bookings.domain.events import SlotAllocated, SlotReleased


@dataclass(frozen=True)
class Allocation:
    interval: TimeRange
    reservation_id: Optional[int] = None
    block_id: Optional[int] = None

    @property
    def is_block(self) -> bool:
        return self.block_id is not None


@dataclass
class VenueSchedule(Aggregate):
    """
    Committed intervals of a venue for a single date

    Usage:
        with DjangoUnitOfWork() as uow:
            venue = Venue.objects.select_for_update().get(pk=venue_id)
            schedule = load_schedule(venue, on_date)
            schedule.allocate(reservation.pk, interval, now=now)
            uow.collect_events(schedule)
    """

    venue_id: int = None
    date: date = None
    opening: Optional[TimeRange] = None
    allocations: List[Allocation] = field(default_factory=list)

    @property
    def committed_intervals(self) -> List[TimeRange]:
        return [allocation.interval for allocation in self.allocations]

    def conflicts_with(self, interval: TimeRange) -> List[Allocation]:
        return [a for a in self.allocations if a.interval.overlaps_with(interval)]

    def can_allocate(self, interval: TimeRange, now: Optional[datetime] = None) -> bool:
        return is_interval_available(self.opening, self.date, interval, self.committed_intervals, now)

    def allocate(self, reservation_id: int, interval: TimeRange, now: Optional[datetime] = None) -> Allocation:
        """
        Commit ``interval`` for a reservation

        Raises:
            SlotUnavailableError: outside opening hours, in the past, or
                overlapping an existing allocation
        """
        if not self.can_allocate(interval, now):
            conflicts = self.conflicts_with(interval)
            conflicting_id = conflicts[0].reservation_id if conflicts else None
            if conflicts:
                message = f"Slot {interval} on {self.date} is already taken"
            else:
                message = f"Slot {interval} on {self.date} is outside bookable hours"
            raise SlotUnavailableError(message, conflicting_id=conflicting_id)

        allocation = Allocation(interval=interval, reservation_id=reservation_id)
        self.allocations.append(allocation)
        self.add_event(SlotAllocated(
            aggregate_id=self.id,
            venue_id=self.venue_id,
            date=self.date,
            reservation_id=reservation_id,
            interval=interval,
        ))
        return allocation

    def release(self, reservation_id: int) -> Optional[Allocation]:
        """Free the interval held by a reservation; returns ``None`` if it held nothing."""
        allocation = next(
            (a for a in self.allocations if a.reservation_id == reservation_id),
            None,
        )
        if allocation is None:
            return None
        self.allocations.remove(allocation)
        self.add_event(SlotReleased(
            aggregate_id=self.id,
            venue_id=self.venue_id,
            date=self.date,
            reservation_id=reservation_id,
            interval=allocation.interval,
        ))
        return allocation

    def availability(self, duration_minutes: int, now: Optional[datetime] = None) -> List[SlotCandidate]:
        return compute_availability(self.opening, self.date, duration_minutes, self.committed_intervals, now)

    def __str__(self):
        return f"VenueSchedule(venue={self.venue_id}, date={self.date}, allocations={len(self.allocations)})"
