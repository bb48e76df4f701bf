"""Unit tests for banded hourly pricing."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from django.test import SimpleTestCase

from apps.venues.pricing import PricingRuleError, calculate_price, price_range, validate_rules

SATURDAY = date(2030, 3, 9)
MONDAY = date(2030, 3, 11)

WEEKEND_EVENINGS = {
    "rules": [
        {"days": ["Saturday", "Sunday"], "startTime": "18:00", "endTime": "23:00", "pricePerHour": 1500},
    ]
}


class CalculatePriceTests(SimpleTestCase):
    def test_base_price_without_rules(self) -> None:
        self.assertEqual(calculate_price(Decimal("1000"), {}, MONDAY, 18 * 60, 90), Decimal("1500"))

    def test_chunks_straddling_a_rule_boundary(self) -> None:
        # 17:30-18:00 at base, 18:00-19:00 at the weekend rate
        price = calculate_price(Decimal("1000"), WEEKEND_EVENINGS, SATURDAY, 17 * 60 + 30, 90)

        self.assertEqual(price, Decimal("2000"))

    def test_rule_ignored_on_other_days(self) -> None:
        price = calculate_price(Decimal("1000"), WEEKEND_EVENINGS, MONDAY, 17 * 60 + 30, 90)

        self.assertEqual(price, Decimal("1500"))

    def test_total_rounded_half_up(self) -> None:
        self.assertEqual(calculate_price(Decimal("999"), {}, MONDAY, 6 * 60, 90), Decimal("1499"))
        self.assertEqual(calculate_price(Decimal("1001"), {}, MONDAY, 6 * 60, 90), Decimal("1502"))


class PricingRuleValidationTests(SimpleTestCase):
    def test_unknown_day_rejected(self) -> None:
        with self.assertRaises(PricingRuleError):
            validate_rules({"rules": [{"days": ["Funday"], "startTime": "10:00", "endTime": "12:00", "pricePerHour": 1}]})

    def test_reversed_times_rejected(self) -> None:
        with self.assertRaises(PricingRuleError):
            validate_rules({"rules": [{"days": ["Monday"], "startTime": "12:00", "endTime": "10:00", "pricePerHour": 1}]})

    def test_price_range(self) -> None:
        self.assertEqual(price_range(Decimal("1000"), WEEKEND_EVENINGS), (Decimal("1000"), Decimal("1500")))
