"""
Slot Availability Calculator

Pure functions that turn a venue's opening window and the intervals
already committed for a date into the list of start times a player can
pick for a given duration.

Candidate starts tick every 30 minutes from opening until the last start
that still ends by closing. Overlap uses the half-open test
``a.start < b.end and a.end > b.start``, so a booking may start exactly
when the previous one ends.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, List, Optional

from shared.domain.value_objects import TimeRange, format_hhmm

from apps.bookings.domain.errors import InvalidReservationRequest

SLOT_GRANULARITY_MINUTES = 30
MIN_DURATION_MINUTES = 60
DURATION_OPTIONS = (60, 90, 120, 150, 180)


@dataclass(frozen=True)
class SlotCandidate:
    start: int
    duration: int
    available: bool

    @property
    def interval(self) -> TimeRange:
        return TimeRange.starting_at(self.start, self.duration)

    @property
    def start_time(self) -> str:
        return format_hhmm(self.start)

    @property
    def end_time(self) -> str:
        return format_hhmm(self.start + self.duration)

    def to_dict(self) -> dict:
        return {
            'start_time': self.start_time,
            'end_time': self.end_time,
            'available': self.available,
        }


def validate_duration(duration_minutes: int) -> None:
    if duration_minutes < MIN_DURATION_MINUTES:
        raise InvalidReservationRequest(
            f"Duration must be at least {MIN_DURATION_MINUTES} minutes"
        )
    if duration_minutes % SLOT_GRANULARITY_MINUTES:
        raise InvalidReservationRequest(
            f"Duration must be a multiple of {SLOT_GRANULARITY_MINUTES} minutes"
        )


def is_on_grid(opening: Optional[TimeRange], start: int) -> bool:
    """Start times are offered every 30 minutes counted from opening."""
    return opening is not None and (start - opening.start) % SLOT_GRANULARITY_MINUTES == 0


def is_in_past(on_date: date, start: int, now: Optional[datetime]) -> bool:
    if now is None:
        return False
    if on_date != now.date():
        return on_date < now.date()
    return start < now.hour * 60 + now.minute + (1 if now.second or now.microsecond else 0)


def is_interval_available(
    opening: Optional[TimeRange],
    on_date: date,
    interval: TimeRange,
    committed: Iterable[TimeRange],
    now: Optional[datetime] = None,
) -> bool:
    """Whether ``interval`` can be booked: inside opening hours, not past, no overlap."""
    if opening is None or not opening.contains(interval):
        return False
    if is_in_past(on_date, interval.start, now):
        return False
    return not any(interval.overlaps_with(other) for other in committed)


def compute_availability(
    opening: Optional[TimeRange],
    on_date: date,
    duration_minutes: int,
    committed: Iterable[TimeRange],
    now: Optional[datetime] = None,
) -> List[SlotCandidate]:
    """
    Every 30-minute start from opening to ``closing - duration``

    ``now`` is a naive local datetime; starts earlier than it are
    unavailable. A closed day yields an empty list.
    """
    validate_duration(duration_minutes)
    if opening is None:
        return []

    committed = list(committed)
    candidates = []
    start = opening.start
    while start + duration_minutes <= opening.end:
        interval = TimeRange.starting_at(start, duration_minutes)
        candidates.append(SlotCandidate(
            start=start,
            duration=duration_minutes,
            available=is_interval_available(opening, on_date, interval, committed, now),
        ))
        start += SLOT_GRANULARITY_MINUTES
    return candidates


def recheck_selection(
    opening: Optional[TimeRange],
    on_date: date,
    start: int,
    new_duration: int,
    committed: Iterable[TimeRange],
    now: Optional[datetime] = None,
) -> SlotCandidate:
    """
    Re-validate a tentatively selected start after the duration changed

    An ``available=False`` result means the selection must be dropped.
    """
    validate_duration(new_duration)
    if not is_on_grid(opening, start) or start < 0 or start + new_duration > opening.end:
        return SlotCandidate(start=start, duration=new_duration, available=False)
    interval = TimeRange.starting_at(start, new_duration)
    return SlotCandidate(
        start=start,
        duration=new_duration,
        available=is_interval_available(opening, on_date, interval, committed, now),
    )
