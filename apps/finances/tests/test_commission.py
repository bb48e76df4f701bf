"""Unit tests for commission resolution and fee splitting."""

from __future__ import annotations

from decimal import Decimal

from django.test import SimpleTestCase, TestCase

from apps.finances.domain.commission import (
    Commission,
    CommissionOverride,
    CommissionType,
    DefaultCommission,
    resolve,
    rule_from_fields,
)
from apps.finances.domain.errors import CommissionConfigurationError
from apps.finances.services import resolve_commission_for
from apps.users.models import User
from apps.venues.models import PlatformSettings, RateType, Venue


class CommissionSplitTests(SimpleTestCase):
    def test_percentage_split(self) -> None:
        split = Commission(CommissionType.PERCENTAGE, Decimal("10")).split(Decimal("1000"))

        self.assertEqual(split.platform_fee, Decimal("100.00"))
        self.assertEqual(split.venue_amount, Decimal("900.00"))

    def test_percentage_rounds_half_up_to_paise(self) -> None:
        split = Commission("percentage", "12.5").split(Decimal("333"))

        self.assertEqual(split.platform_fee, Decimal("41.63"))
        self.assertEqual(split.venue_amount, Decimal("291.37"))
        self.assertEqual(split.platform_fee + split.venue_amount, split.gross)

    def test_flat_fee_is_capped_at_gross(self) -> None:
        split = Commission(CommissionType.FLAT, Decimal("2000")).split(Decimal("1000"))

        self.assertEqual(split.platform_fee, Decimal("1000.00"))
        self.assertEqual(split.venue_amount, Decimal("0.00"))

    def test_invalid_values_rejected(self) -> None:
        with self.assertRaises(ValueError):
            Commission(CommissionType.PERCENTAGE, Decimal("101"))
        with self.assertRaises(ValueError):
            Commission(CommissionType.FLAT, Decimal("-1"))


class CommissionResolutionTests(SimpleTestCase):
    default = Commission(CommissionType.PERCENTAGE, Decimal("10"))

    def test_override_wins_over_default(self) -> None:
        override = Commission(CommissionType.FLAT, Decimal("50"))

        self.assertEqual(resolve(CommissionOverride(override), self.default), override)

    def test_default_applies_without_override(self) -> None:
        self.assertEqual(resolve(DefaultCommission(), self.default), self.default)

    def test_missing_default_is_a_configuration_error(self) -> None:
        with self.assertRaises(CommissionConfigurationError):
            resolve(DefaultCommission(), None)

    def test_half_set_pair_means_no_override(self) -> None:
        self.assertEqual(rule_from_fields("flat", None), DefaultCommission())
        self.assertEqual(rule_from_fields(None, Decimal("5")), DefaultCommission())


class VenueCommissionTests(TestCase):
    def setUp(self) -> None:
        owner = User.objects.create_user(
            email="owner@example.com",
            password="OwnerPass123",
            role=User.RoleChoices.VENUE_OWNER,
        )
        self.venue = Venue.objects.create(owner=owner, name="Riverside Turf", price_per_hour=Decimal("1000"))

    def test_platform_default_used(self) -> None:
        PlatformSettings.objects.create(default_commission_type=RateType.PERCENTAGE, default_commission_value=Decimal("8"))

        commission = resolve_commission_for(self.venue)

        self.assertEqual(commission, Commission(CommissionType.PERCENTAGE, Decimal("8")))

    def test_venue_override_used(self) -> None:
        PlatformSettings.objects.create(default_commission_type=RateType.PERCENTAGE, default_commission_value=Decimal("8"))
        self.venue.commission_type = RateType.FLAT
        self.venue.commission_value = Decimal("75")
        self.venue.save()

        commission = resolve_commission_for(self.venue)

        self.assertEqual(commission, Commission(CommissionType.FLAT, Decimal("75")))

    def test_no_configuration_raises(self) -> None:
        with self.assertRaises(CommissionConfigurationError):
            resolve_commission_for(self.venue)
