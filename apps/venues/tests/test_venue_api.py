"""Integration tests for venue endpoints: settings, availability, blocks, payout details."""

from __future__ import annotations

from datetime import time, timedelta
from decimal import Decimal

from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.bookings.services import ReservationWriter
from apps.users.models import User
from apps.venues.models import Venue, VenueBlock, VenuePayoutDetails


class VenueAPITests(APITestCase):
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
        self.admin = User.objects.create_user(
            email="admin@example.com",
            password="AdminPass123",
            role=User.RoleChoices.ADMIN,
        )
        self.venue = Venue.objects.create(owner=self.owner, name="Riverside Turf", price_per_hour=Decimal("1000"))
        self.on_date = timezone.localdate() + timedelta(days=5)

    def test_owner_creates_venue(self) -> None:
        self.client.force_authenticate(self.owner)

        response = self.client.post(
            reverse("venue-list"),
            {"name": "Lakeside Courts", "city": "Pune", "price_per_hour": "800.00"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        venue = Venue.objects.get(pk=response.data["id"])
        self.assertEqual(venue.owner, self.owner)
        self.assertIsNone(venue.commission_type)

    def test_player_cannot_create_venue(self) -> None:
        self.client.force_authenticate(self.player)

        response = self.client.post(
            reverse("venue-list"),
            {"name": "Backyard", "price_per_hour": "100.00"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_slot_duration_must_be_an_offered_option(self) -> None:
        self.client.force_authenticate(self.owner)

        response = self.client.patch(
            reverse("venue-detail", args=[self.venue.pk]),
            {"slot_duration_minutes": 75},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_zero_flat_advance_rejected(self) -> None:
        self.client.force_authenticate(self.owner)

        response = self.client.patch(
            reverse("venue-detail", args=[self.venue.pk]),
            {"allows_advance_payment": True, "advance_amount_type": "flat", "advance_amount_value": "0.00"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_block_until_midnight(self) -> None:
        self.venue.opening_hours = {
            day: {"open": True, "start": "06:00", "end": "24:00"} for day in self.venue.opening_hours
        }
        self.venue.save()
        self.client.force_authenticate(self.owner)

        response = self.client.post(
            reverse("venue-blocks", args=[self.venue.pk]),
            {"date": str(self.on_date), "start_time": "23:00", "end_time": "00:00", "reason": "Floodlight service"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        availability = self.client.get(
            reverse("venue-availability", args=[self.venue.pk]),
            {"date": str(self.on_date), "duration": 60},
        )
        slots = {slot["start_time"]: slot["available"] for slot in availability.data["slots"]}
        self.assertTrue(slots["22:00"])
        self.assertFalse(slots["23:00"])

    def test_owner_cannot_change_commission(self) -> None:
        self.client.force_authenticate(self.owner)

        self.client.patch(
            reverse("venue-detail", args=[self.venue.pk]),
            {"commission_type": "flat", "commission_value": "0.00"},
            format="json",
        )
        response = self.client.put(
            reverse("venue-commission", args=[self.venue.pk]),
            {"commission_type": "flat", "commission_value": "0.00"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.venue.refresh_from_db()
        self.assertIsNone(self.venue.commission_type)

    def test_admin_sets_commission_override(self) -> None:
        self.client.force_authenticate(self.admin)

        response = self.client.put(
            reverse("venue-commission", args=[self.venue.pk]),
            {"commission_type": "percentage", "commission_value": "7.50", "payout_frequency": "daily"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.venue.refresh_from_db()
        self.assertEqual(self.venue.commission_value, Decimal("7.50"))
        self.assertEqual(self.venue.effective_payout_frequency, "daily")

    def test_half_commission_pair_rejected(self) -> None:
        self.client.force_authenticate(self.admin)

        response = self.client.patch(
            reverse("venue-commission", args=[self.venue.pk]),
            {"commission_type": "flat"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_public_availability(self) -> None:
        response = self.client.get(
            reverse("venue-availability", args=[self.venue.pk]),
            {"date": str(self.on_date), "duration": 60},
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(len(response.data["slots"]), 33)
        self.assertEqual(response.data["slots"][0], {"start_time": "06:00", "end_time": "07:00", "available": True})

    def test_recheck_invalidates_selection_after_duration_change(self) -> None:
        ReservationWriter().create(
            venue=self.venue,
            requester=self.player,
            on_date=self.on_date,
            start_time="18:00",
            duration_minutes=90,
        )

        response = self.client.get(
            reverse("venue-availability", args=[self.venue.pk]),
            {"date": str(self.on_date), "duration": 90, "start_time": "17:00"},
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertTrue(response.data["invalidate_selection"])

    def test_public_calendar(self) -> None:
        ReservationWriter().create(
            venue=self.venue,
            requester=self.player,
            on_date=self.on_date,
            start_time="18:00",
            duration_minutes=60,
        )

        response = self.client.get(reverse("venue-calendar", args=[self.venue.pk]), {"date": str(self.on_date)})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data[0]["payment_state"], "unpaid")
        self.assertNotIn("requester_id", response.data[0])

    def test_owner_blocks_and_unblocks_interval(self) -> None:
        self.client.force_authenticate(self.owner)

        response = self.client.post(
            reverse("venue-blocks", args=[self.venue.pk]),
            {"date": str(self.on_date), "start_time": "12:00", "end_time": "14:00", "reason": "Resurfacing"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        availability = self.client.get(
            reverse("venue-availability", args=[self.venue.pk]),
            {"date": str(self.on_date), "duration": 60},
        )
        slots = {slot["start_time"]: slot["available"] for slot in availability.data["slots"]}
        self.assertFalse(slots["12:30"])
        self.assertTrue(slots["14:00"])

        delete = self.client.delete(reverse("venue-delete-block", args=[self.venue.pk, response.data["id"]]))

        self.assertEqual(delete.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(VenueBlock.objects.exists())

    def test_block_over_reservation_conflicts(self) -> None:
        ReservationWriter().create(
            venue=self.venue,
            requester=self.player,
            on_date=self.on_date,
            start_time="13:00",
            duration_minutes=60,
        )
        self.client.force_authenticate(self.owner)

        response = self.client.post(
            reverse("venue-blocks", args=[self.venue.pk]),
            {"date": str(self.on_date), "start_time": "12:00", "end_time": "14:00"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT, response.data)

    def test_other_owner_cannot_block(self) -> None:
        other = User.objects.create_user(
            email="other@example.com",
            password="OtherPass123",
            role=User.RoleChoices.VENUE_OWNER,
        )
        self.client.force_authenticate(other)

        response = self.client.post(
            reverse("venue-blocks", args=[self.venue.pk]),
            {"date": str(self.on_date), "start_time": time(12, 0).isoformat(), "end_time": "14:00"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_payout_details_masked(self) -> None:
        self.client.force_authenticate(self.owner)

        response = self.client.put(
            reverse("venue-payout-details", args=[self.venue.pk]),
            {
                "account_name": "Riverside Sports LLP",
                "account_number": "123456789012",
                "ifsc": "hdfc0001234",
                "bank_name": "HDFC Bank",
            },
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertNotIn("account_number", response.data)
        self.assertEqual(response.data["account_number_masked"], "********9012")
        self.assertTrue(response.data["is_complete"])
        details = VenuePayoutDetails.objects.get(venue=self.venue)
        self.assertEqual(details.account_number, "123456789012")
        self.assertEqual(details.ifsc, "HDFC0001234")

    def test_short_ifsc_rejected(self) -> None:
        self.client.force_authenticate(self.owner)

        response = self.client.put(
            reverse("venue-payout-details", args=[self.venue.pk]),
            {"account_name": "Riverside", "account_number": "1234", "ifsc": "HDFC01"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
