"""
Commission Resolution

A venue either carries its own commission override or falls back to the
platform default. Type and value always travel together: a half-set
override is treated as no override at all and never mixed with the
default.

The resolved ``Commission`` is frozen into every ledger entry at capture
time, so later edits to venue or platform settings never rewrite history.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional, Union

from shared.domain.base import ValueObject
from shared.domain.value_objects import CENTS, to_decimal

from apps.finances.domain.errors import CommissionConfigurationError


class CommissionType(str, Enum):
    PERCENTAGE = "percentage"
    FLAT = "flat"


@dataclass(frozen=True)
class FeeSplit(ValueObject):
    """Gross amount divided into platform fee and venue share."""
    gross: Decimal
    platform_fee: Decimal
    venue_amount: Decimal


@dataclass(frozen=True)
class Commission(ValueObject):
    """
    Resolved commission: percentage of the gross or a flat amount per booking

    ``split`` guarantees ``platform_fee + venue_amount == gross`` and
    ``platform_fee <= gross``; a flat fee larger than the gross is capped.
    """
    type: CommissionType
    value: Decimal

    def __post_init__(self):
        object.__setattr__(self, 'type', CommissionType(self.type))
        value = to_decimal(self.value)
        object.__setattr__(self, 'value', value)
        if value < 0:
            raise ValueError("Commission value cannot be negative")
        if self.type == CommissionType.PERCENTAGE and value > 100:
            raise ValueError("Percentage commission cannot exceed 100")

    def fee_for(self, gross) -> Decimal:
        gross = to_decimal(gross).quantize(CENTS, rounding=ROUND_HALF_UP)
        if self.type == CommissionType.PERCENTAGE:
            fee = (gross * self.value / Decimal('100')).quantize(CENTS, rounding=ROUND_HALF_UP)
        else:
            fee = self.value.quantize(CENTS, rounding=ROUND_HALF_UP)
        return min(fee, gross)

    def split(self, gross) -> FeeSplit:
        gross = to_decimal(gross).quantize(CENTS, rounding=ROUND_HALF_UP)
        if gross < 0:
            raise ValueError("Gross amount cannot be negative")
        fee = self.fee_for(gross)
        return FeeSplit(gross=gross, platform_fee=fee, venue_amount=gross - fee)

    def __str__(self):
        if self.type == CommissionType.PERCENTAGE:
            return f"{self.value}%"
        return f"{self.value} flat"


@dataclass(frozen=True)
class DefaultCommission(ValueObject):
    """Venue defers to the platform-wide default."""


@dataclass(frozen=True)
class CommissionOverride(ValueObject):
    """Venue-specific commission that replaces the platform default verbatim."""
    commission: Commission


CommissionRule = Union[DefaultCommission, CommissionOverride]


def rule_from_fields(commission_type: Optional[str], commission_value) -> CommissionRule:
    """Build the rule variant from a nullable type/value column pair."""
    if commission_type and commission_value is not None:
        return CommissionOverride(Commission(CommissionType(commission_type), commission_value))
    return DefaultCommission()


def resolve(rule: CommissionRule, platform_default: Optional[Commission]) -> Commission:
    """Return the commission that applies to a venue right now."""
    if isinstance(rule, CommissionOverride):
        return rule.commission
    if platform_default is None:
        raise CommissionConfigurationError(
            "No venue commission override and no platform default commission configured"
        )
    return platform_default
