"""Availability reads and the reservation writer."""

from __future__ import annotations

import logging
from datetime import date, datetime, time

from django.db import transaction  # type: ignore
from django.utils import timezone  # type: ignore

from apps.venues.models import Venue, VenueBlock
from apps.venues.pricing import calculate_price
from shared.application.uow import DjangoUnitOfWork
from shared.domain.value_objects import TimeRange, minutes_to_time, parse_hhmm

from .cache import get_cached_intervals, invalidate_intervals
from .domain.availability import (
    SlotCandidate,
    compute_availability,
    is_in_past,
    is_on_grid,
    recheck_selection,
    validate_duration,
)
from .domain.commitment import COMMITTED_STATES
from .domain.errors import InvalidReservationRequest, SlotUnavailableError
from .domain.events import ReservationCreated
from .domain.schedule import Allocation, VenueSchedule
from .models import Reservation

logger = logging.getLogger(__name__)


def local_now() -> datetime:
    """Current wall-clock time at the venue, as a naive datetime."""
    return timezone.localtime().replace(tzinfo=None)


def committed_reservations(venue: Venue, on_date: date):
    """Reservations of this venue and date whose interval blocks others."""
    return Reservation.objects.filter(
        venue=venue,
        date=on_date,
        payment_state__in=[state.value for state in COMMITTED_STATES],
    )


def load_schedule(venue: Venue, on_date: date) -> VenueSchedule:
    allocations = [
        Allocation(interval=reservation.interval, reservation_id=reservation.pk)
        for reservation in committed_reservations(venue, on_date).only("id", "start_time", "end_time")
    ]
    allocations += [
        Allocation(interval=block.interval, block_id=block.pk)
        for block in VenueBlock.objects.filter(venue=venue, date=on_date)
    ]
    return VenueSchedule(
        venue_id=venue.pk,
        date=on_date,
        opening=venue.opening_window(on_date),
        allocations=allocations,
    )


def _committed_intervals(venue: Venue, on_date: date) -> list[TimeRange]:
    return get_cached_intervals(
        venue.pk,
        on_date,
        lambda: load_schedule(venue, on_date).committed_intervals,
    )


def availability_for(
    venue: Venue,
    on_date: date,
    duration_minutes: int,
    now: datetime | None = None,
) -> list[SlotCandidate]:
    """Start times for ``duration_minutes`` at ``venue`` on ``on_date``."""
    return compute_availability(
        venue.opening_window(on_date),
        on_date,
        duration_minutes,
        _committed_intervals(venue, on_date),
        now or local_now(),
    )


def recheck_for(
    venue: Venue,
    on_date: date,
    start_time: str | time,
    duration_minutes: int,
    now: datetime | None = None,
) -> SlotCandidate:
    """Is a previously picked start still valid after the duration changed?"""
    return recheck_selection(
        venue.opening_window(on_date),
        on_date,
        parse_hhmm(start_time),
        duration_minutes,
        _committed_intervals(venue, on_date),
        now or local_now(),
    )


def calendar_for(venue: Venue, on_date: date) -> list[dict]:
    """Public calendar read model: committed intervals and their payment state only."""
    return [
        reservation.read_model()
        for reservation in committed_reservations(venue, on_date).order_by("start_time")
    ]


class ReservationWriter:
    """
    Creates reservations so that no two committed reservations of a
    venue ever overlap.

    Availability is re-validated while the venue row is locked
    (``SELECT ... FOR UPDATE``), so the check and the insert are one
    atomic step with respect to every other writer for that venue.
    """

    def create(
        self,
        *,
        venue: Venue,
        requester,
        on_date: date,
        start_time: str | time,
        duration_minutes: int,
        match_reference: str = "",
        now: datetime | None = None,
    ) -> Reservation:
        now = now or local_now()
        validate_duration(duration_minutes)
        if not venue.is_active:
            raise InvalidReservationRequest(f"Venue {venue.pk} is not accepting bookings")

        try:
            start = parse_hhmm(start_time)
        except ValueError as e:
            raise InvalidReservationRequest(str(e)) from e

        opening = venue.opening_window(on_date)
        if opening is None:
            raise InvalidReservationRequest(f"Venue {venue.pk} is closed on {on_date}")
        if not is_on_grid(opening, start):
            raise InvalidReservationRequest("Start time must fall on the 30-minute grid from opening")
        if start < opening.start or start + duration_minutes > opening.end:
            raise InvalidReservationRequest("Requested time is outside opening hours")
        if is_in_past(on_date, start, now):
            raise InvalidReservationRequest("Requested time is in the past")

        interval = TimeRange.starting_at(start, duration_minutes)
        total = calculate_price(venue.price_per_hour, venue.pricing_rules, on_date, start, duration_minutes)

        logger.info(
            f"Reserving venue {venue.pk} on {on_date} {interval} "
            f"for user {getattr(requester, 'pk', requester)}"
        )

        try:
            reservation = self._insert(venue, requester, on_date, interval, duration_minutes, total, match_reference, now)
        except SlotUnavailableError as e:
            logger.warning(f"Slot conflict at venue {venue.pk} on {on_date} {interval}: {e}")
            raise

        logger.info(f"Reservation {reservation.booking_code} created for {total} {reservation.currency}")
        return reservation

    def _insert(self, venue, requester, on_date, interval, duration_minutes, total, match_reference, now) -> Reservation:
        with DjangoUnitOfWork() as uow:
            locked_venue = Venue.objects.select_for_update().get(pk=venue.pk)
            schedule = load_schedule(locked_venue, on_date)

            reservation = Reservation.objects.create(
                venue=locked_venue,
                requester=requester,
                date=on_date,
                start_time=minutes_to_time(interval.start),
                end_time=minutes_to_time(interval.end, closing=True),
                duration_minutes=duration_minutes,
                currency=locked_venue.currency,
                total_amount=total,
                match_reference=match_reference or "",
            )
            # Raises SlotUnavailableError and rolls the insert back.
            schedule.allocate(reservation.pk, interval, now=now)

            uow.collect_events(schedule)
            uow.add_event(ReservationCreated(
                aggregate_id=reservation.pk,
                reservation_id=reservation.pk,
                venue_id=locked_venue.pk,
                requester_id=reservation.requester_id,
                date=on_date,
                interval=interval,
                total_amount=total,
            ))
        return reservation


def block_interval(venue: Venue, on_date: date, start_time: time, end_time: time, reason: str = "", created_by=None) -> VenueBlock:
    """Take an interval off sale; refused while a committed reservation holds it."""
    interval = TimeRange.from_times(start_time, end_time)
    with transaction.atomic():
        locked_venue = Venue.objects.select_for_update().get(pk=venue.pk)
        schedule = load_schedule(locked_venue, on_date)
        conflicts = [a for a in schedule.conflicts_with(interval) if not a.is_block]
        if conflicts:
            raise SlotUnavailableError(
                f"Cannot block {interval} on {on_date}: reservation {conflicts[0].reservation_id} holds it",
                conflicting_id=conflicts[0].reservation_id,
            )
        block = VenueBlock.objects.create(
            venue=locked_venue,
            date=on_date,
            start_time=start_time,
            end_time=end_time,
            reason=reason,
            created_by=created_by,
        )
        transaction.on_commit(lambda: invalidate_intervals(venue.pk, on_date))
    logger.info(f"Venue {venue.pk} blocked {interval} on {on_date}: {reason}")
    return block


def remove_block(block: VenueBlock) -> None:
    venue_id, on_date = block.venue_id, block.date
    with transaction.atomic():
        block.delete()
        transaction.on_commit(lambda: invalidate_intervals(venue_id, on_date))
    logger.info(f"Venue {venue_id} unblocked {on_date}")
