"""Banded hourly pricing for venue slots.

Venues may define ``pricing_rules`` such as::

    {"rules": [{"days": ["Saturday", "Sunday"], "startTime": "18:00",
                "endTime": "23:00", "pricePerHour": 1500}]}

A booking is priced in 30-minute chunks: each chunk uses the first rule
covering that day and time, otherwise the venue's base hourly price.
The total is rounded half-up to whole currency units.
"""

from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from shared.domain.value_objects import parse_hhmm, to_decimal

CHUNK_MINUTES = 30
WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


class PricingRuleError(ValueError):
    """Raised when a pricing rule is malformed."""


def _rules(pricing_rules: Any) -> list[dict]:
    if not pricing_rules:
        return []
    if isinstance(pricing_rules, dict):
        return list(pricing_rules.get("rules") or [])
    return list(pricing_rules)


def validate_rules(pricing_rules: Any) -> None:
    """Raise ``PricingRuleError`` for rules that could never be applied."""
    for index, rule in enumerate(_rules(pricing_rules)):
        days = rule.get("days") or []
        unknown = [day for day in days if day not in WEEKDAY_NAMES]
        if not days or unknown:
            raise PricingRuleError(f"Rule {index}: days must be weekday names, got {days}")
        try:
            start = parse_hhmm(rule["startTime"])
            end = parse_hhmm(rule["endTime"])
            price = to_decimal(rule["pricePerHour"])
        except (KeyError, ValueError, ArithmeticError) as exc:
            raise PricingRuleError(f"Rule {index}: {exc}") from exc
        if start >= end:
            raise PricingRuleError(f"Rule {index}: startTime must be before endTime")
        if price < 0:
            raise PricingRuleError(f"Rule {index}: pricePerHour cannot be negative")


def hourly_rate_at(base_price: Decimal, rules: Iterable[dict], day_name: str, minute: int) -> Decimal:
    for rule in rules:
        if day_name not in (rule.get("days") or []):
            continue
        if parse_hhmm(rule["startTime"]) <= minute < parse_hhmm(rule["endTime"]):
            return to_decimal(rule["pricePerHour"])
    return to_decimal(base_price)


def calculate_price(
    base_price: Decimal,
    pricing_rules: Any,
    on_date: date,
    start_minute: int,
    duration_minutes: int,
) -> Decimal:
    """Total price for ``duration_minutes`` starting at ``start_minute`` on ``on_date``."""
    rules = _rules(pricing_rules)
    day_name = WEEKDAY_NAMES[on_date.weekday()]
    total = Decimal("0")
    for chunk_start in range(start_minute, start_minute + duration_minutes, CHUNK_MINUTES):
        rate = hourly_rate_at(base_price, rules, day_name, chunk_start)
        total += rate * CHUNK_MINUTES / 60
    return total.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def price_range(base_price: Decimal, pricing_rules: Any) -> tuple[Decimal, Decimal]:
    """Lowest and highest hourly rate a venue can charge."""
    rates = [to_decimal(base_price)] + [to_decimal(rule["pricePerHour"]) for rule in _rules(pricing_rules)]
    return min(rates), max(rates)
