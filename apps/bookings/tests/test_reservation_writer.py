"""Service tests for creating reservations without double booking."""

from __future__ import annotations

import threading
from datetime import time, timedelta
from decimal import Decimal
from unittest import mock, skipUnless

from django.db import connection
from django.db.models import QuerySet
from django.test import TestCase, TransactionTestCase
from django.utils import timezone

from apps.bookings.domain.errors import InvalidReservationRequest, SlotUnavailableError
from apps.bookings.models import Reservation
from apps.bookings.services import ReservationWriter, availability_for, block_interval, calendar_for
from apps.users.models import User
from apps.venues.models import WEEKDAY_KEYS, Venue


class ReservationWriterTests(TestCase):
    def setUp(self) -> None:
        self.owner = User.objects.create_user(
            email="owner@example.com",
            password="OwnerPass123",
            role=User.RoleChoices.VENUE_OWNER,
        )
        self.player = User.objects.create_user(
            email="player@example.com",
            password="PlayerPass123",
            role=User.RoleChoices.PLAYER,
        )
        self.rival = User.objects.create_user(
            email="rival@example.com",
            password="RivalPass123",
            role=User.RoleChoices.PLAYER,
        )
        self.venue = Venue.objects.create(owner=self.owner, name="Riverside Turf", price_per_hour=Decimal("1000"))
        self.on_date = timezone.localdate() + timedelta(days=7)
        self.writer = ReservationWriter()

    def _reserve(self, start: str, duration: int = 60, requester=None) -> Reservation:
        return self.writer.create(
            venue=self.venue,
            requester=requester or self.player,
            on_date=self.on_date,
            start_time=start,
            duration_minutes=duration,
        )

    def test_creates_unpaid_reservation_with_fixed_price(self) -> None:
        reservation = self._reserve("18:00", 90)

        self.assertEqual(reservation.payment_state, Reservation.PaymentState.UNPAID)
        self.assertEqual(reservation.end_time, time(19, 30))
        self.assertEqual(reservation.total_amount, Decimal("1500"))
        self.assertEqual(len(reservation.booking_code), 8)

    def test_overlapping_request_is_rejected(self) -> None:
        first = self._reserve("18:00", 90)

        with self.assertRaises(SlotUnavailableError) as ctx:
            self._reserve("17:30", 60, requester=self.rival)

        self.assertEqual(ctx.exception.conflicting_id, first.pk)
        self.assertEqual(Reservation.objects.count(), 1)

    def test_back_to_back_reservations_allowed(self) -> None:
        self._reserve("18:00", 90)
        self._reserve("17:00", 60, requester=self.rival)
        self._reserve("19:30", 60, requester=self.rival)

        self.assertEqual(Reservation.objects.count(), 3)

    def test_failed_reservation_releases_its_slot(self) -> None:
        first = self._reserve("18:00")
        Reservation.objects.filter(pk=first.pk).update(payment_state=Reservation.PaymentState.FAILED)

        second = self._reserve("18:00", requester=self.rival)

        self.assertEqual(second.payment_state, Reservation.PaymentState.UNPAID)

    def test_identical_request_after_commit_conflicts(self) -> None:
        queryset_lock = QuerySet.select_for_update
        with mock.patch.object(QuerySet, "select_for_update", autospec=True, side_effect=queryset_lock) as lock:
            first = self._reserve("18:00", 90)
            with self.assertRaises(SlotUnavailableError):
                self._reserve("18:00", 90, requester=self.rival)

        self.assertIn(Venue, {call.args[0].model for call in lock.call_args_list})
        self.assertEqual(list(Reservation.objects.values_list("pk", flat=True)), [first.pk])

    def test_reservation_at_another_venue_does_not_block(self) -> None:
        other_venue = Venue.objects.create(owner=self.owner, name="Hilltop Arena", price_per_hour=Decimal("800"))
        self.writer.create(
            venue=other_venue,
            requester=self.rival,
            on_date=self.on_date,
            start_time="18:00",
            duration_minutes=90,
        )

        slots = {slot.start_time: slot.available for slot in availability_for(self.venue, self.on_date, 60)}

        self.assertTrue(slots["18:00"])
        self.assertEqual(self._reserve("18:00", 90).payment_state, Reservation.PaymentState.UNPAID)

    def test_pay_at_venue_reservation_blocks_like_paid(self) -> None:
        pending = self._reserve("18:00")
        paid = self._reserve("20:00")
        Reservation.objects.filter(pk=pending.pk).update(payment_state=Reservation.PaymentState.PAY_AT_VENUE_PENDING)
        Reservation.objects.filter(pk=paid.pk).update(payment_state=Reservation.PaymentState.PAID)

        slots = {slot.start_time: slot.available for slot in availability_for(self.venue, self.on_date, 60)}

        self.assertFalse(slots["18:00"])
        self.assertFalse(slots["20:00"])
        with self.assertRaises(SlotUnavailableError):
            self._reserve("18:00", requester=self.rival)

    def test_cancelled_reservation_frees_availability(self) -> None:
        first = self._reserve("18:00")
        Reservation.objects.filter(pk=first.pk).update(payment_state=Reservation.PaymentState.CANCELLED)

        slots = {slot.start_time: slot.available for slot in availability_for(self.venue, self.on_date, 60)}

        self.assertTrue(slots["18:00"])

    def test_last_hour_before_midnight_can_be_booked(self) -> None:
        self.venue.opening_hours = {day: {"open": True, "start": "06:00", "end": "24:00"} for day in WEEKDAY_KEYS}
        self.venue.save()

        reservation = self._reserve("23:00")

        self.assertEqual(reservation.end_time, time(0, 0))
        self.assertEqual(calendar_for(self.venue, self.on_date)[0]["end_time"], "24:00")
        with self.assertRaises(SlotUnavailableError):
            self._reserve("22:30", requester=self.rival)

    def test_off_grid_start_rejected(self) -> None:
        with self.assertRaises(InvalidReservationRequest):
            self._reserve("18:15")

    def test_outside_opening_hours_rejected(self) -> None:
        with self.assertRaises(InvalidReservationRequest):
            self._reserve("22:30", 60)

    def test_closed_day_rejected(self) -> None:
        self.venue.opening_hours = {WEEKDAY_KEYS[self.on_date.weekday()]: {"open": False}}
        self.venue.save()

        with self.assertRaises(InvalidReservationRequest):
            self._reserve("10:00")

    def test_past_start_rejected(self) -> None:
        with self.assertRaises(InvalidReservationRequest):
            self.writer.create(
                venue=self.venue,
                requester=self.player,
                on_date=timezone.localdate() - timedelta(days=1),
                start_time="10:00",
                duration_minutes=60,
            )

    def test_inactive_venue_rejected(self) -> None:
        self.venue.is_active = False
        self.venue.save()

        with self.assertRaises(InvalidReservationRequest):
            self._reserve("10:00")

    def test_availability_reflects_reservation(self) -> None:
        self._reserve("18:00", 90)

        slots = {slot.start_time: slot.available for slot in availability_for(self.venue, self.on_date, 60)}

        self.assertTrue(slots["17:00"])
        self.assertFalse(slots["17:30"])
        self.assertTrue(slots["19:30"])

    def test_calendar_hides_requester_and_amounts(self) -> None:
        self._reserve("18:00", 90)

        entries = calendar_for(self.venue, self.on_date)

        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0]["start_time"], "18:00")
        self.assertEqual(entries[0]["end_time"], "19:30")
        self.assertNotIn("requester_id", entries[0])
        self.assertNotIn("total_amount", entries[0])

    def test_slot_allocation_drops_cached_availability_after_commit(self) -> None:
        with mock.patch("apps.bookings.handlers.invalidate_intervals") as invalidate:
            with self.captureOnCommitCallbacks(execute=True):
                self._reserve("18:00")

        invalidate.assert_called_once_with(self.venue.pk, self.on_date)


class VenueBlockTests(TestCase):
    def setUp(self) -> None:
        self.owner = User.objects.create_user(
            email="owner@example.com",
            password="OwnerPass123",
            role=User.RoleChoices.VENUE_OWNER,
        )
        self.player = User.objects.create_user(
            email="player@example.com",
            password="PlayerPass123",
        )
        self.venue = Venue.objects.create(owner=self.owner, name="Riverside Turf", price_per_hour=Decimal("1000"))
        self.on_date = timezone.localdate() + timedelta(days=7)

    def test_blocked_interval_cannot_be_reserved(self) -> None:
        block_interval(self.venue, self.on_date, time(12, 0), time(14, 0), "maintenance", created_by=self.owner)

        with self.assertRaises(SlotUnavailableError):
            ReservationWriter().create(
                venue=self.venue,
                requester=self.player,
                on_date=self.on_date,
                start_time="13:00",
                duration_minutes=60,
            )

    def test_block_refused_over_committed_reservation(self) -> None:
        ReservationWriter().create(
            venue=self.venue,
            requester=self.player,
            on_date=self.on_date,
            start_time="13:00",
            duration_minutes=60,
        )

        with self.assertRaises(SlotUnavailableError):
            block_interval(self.venue, self.on_date, time(12, 0), time(14, 0))


@skipUnless(connection.features.has_select_for_update, "row locks need a database that supports SELECT ... FOR UPDATE")
class ConcurrentReservationTests(TransactionTestCase):
    def setUp(self) -> None:
        owner = User.objects.create_user(
            email="owner@example.com",
            password="OwnerPass123",
            role=User.RoleChoices.VENUE_OWNER,
        )
        self.players = [
            User.objects.create_user(email=f"player{n}@example.com", password="PlayerPass123")
            for n in range(2)
        ]
        self.venue = Venue.objects.create(owner=owner, name="Riverside Turf", price_per_hour=Decimal("1000"))
        self.on_date = timezone.localdate() + timedelta(days=7)

    def test_only_one_of_two_simultaneous_requests_commits(self) -> None:
        barrier = threading.Barrier(len(self.players))
        outcomes = []

        def attempt(player) -> None:
            try:
                barrier.wait()
                ReservationWriter().create(
                    venue=self.venue,
                    requester=player,
                    on_date=self.on_date,
                    start_time="18:00",
                    duration_minutes=60,
                )
                outcomes.append("created")
            except SlotUnavailableError:
                outcomes.append("conflict")
            finally:
                connection.close()

        threads = [threading.Thread(target=attempt, args=(player,)) for player in self.players]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        self.assertEqual(sorted(outcomes), ["conflict", "created"])
        self.assertEqual(Reservation.objects.filter(venue=self.venue, date=self.on_date).count(), 1)
