"""Short-lived cache of committed intervals used by availability reads.

Only the read path (``availability_for``) consults it. Reservation writes
always reload the schedule under the venue lock. Entries are dropped
explicitly whenever a slot is allocated, released or blocked.
"""

from __future__ import annotations

from datetime import date
from typing import Callable, List

from django.conf import settings  # type: ignore
from django.core.cache import cache  # type: ignore

from shared.domain.value_objects import TimeRange


def _is_cache_enabled() -> bool:
    return getattr(settings, "AVAILABILITY_CACHE_ENABLED", False)


def _build_cache_key(venue_id: int, on_date: date) -> str:
    prefix = getattr(settings, "AVAILABILITY_CACHE_PREFIX", "availability")
    return f"{prefix}:{venue_id}:{on_date.isoformat()}"


def get_cached_intervals(
    venue_id: int, on_date: date, builder: Callable[[], List[TimeRange]]
) -> List[TimeRange]:
    """Committed intervals for a venue and date, built on a miss."""
    if not _is_cache_enabled():
        return builder()

    key = _build_cache_key(venue_id, on_date)
    cached = cache.get(key)
    if cached is not None:
        return [TimeRange(start, end) for start, end in cached]

    result = builder()
    timeout = getattr(settings, "AVAILABILITY_CACHE_TIMEOUT", 30)
    cache.set(key, [(interval.start, interval.end) for interval in result], timeout)
    return result


def invalidate_intervals(venue_id: int, on_date: date) -> None:
    cache.delete(_build_cache_key(venue_id, on_date))


__all__ = [
    "get_cached_intervals",
    "invalidate_intervals",
]
