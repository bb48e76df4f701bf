"""
Common Value Objects

- Money: monetary amount with currency, always quantized to paise
- TimeRange: half-open [start, end) range of minutes within one day
"""

from dataclasses import dataclass
from datetime import time
from decimal import ROUND_HALF_UP, Decimal

from shared.domain.base import ValueObject

MINUTES_PER_DAY = 24 * 60
CENTS = Decimal('0.01')
SUPPORTED_CURRENCIES = ('INR', 'USD', 'EUR')


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class Money(ValueObject):
    """
    Money value object

    Non-negative, quantized to two decimal places (half-up) on creation.
    """
    amount: Decimal
    currency: str = 'INR'

    def __post_init__(self):
        amount = to_decimal(self.amount).quantize(CENTS, rounding=ROUND_HALF_UP)
        object.__setattr__(self, 'amount', amount)
        if amount < 0:
            raise ValueError("Amount cannot be negative")
        if self.currency not in SUPPORTED_CURRENCIES:
            raise ValueError(f"Unsupported currency: {self.currency}")

    @classmethod
    def zero(cls, currency: str = 'INR') -> 'Money':
        return cls(Decimal('0'), currency)

    def _check_currency(self, other: 'Money'):
        if not isinstance(other, Money):
            raise TypeError("Money arithmetic requires Money operands")
        if self.currency != other.currency:
            raise ValueError(f"Currency mismatch: {self.currency} and {other.currency}")

    def __add__(self, other: 'Money') -> 'Money':
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._check_currency(other)
        return Money(self.amount - other.amount, self.currency)

    def __lt__(self, other: 'Money') -> bool:
        self._check_currency(other)
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        self._check_currency(other)
        return self.amount <= other.amount

    def min(self, other: 'Money') -> 'Money':
        return self if self <= other else other

    def __str__(self):
        return f"{self.amount:,.2f} {self.currency}"

    def __repr__(self):
        return f"Money({self.amount}, '{self.currency}')"


def parse_hhmm(value) -> int:
    """Convert "HH:MM" (or a ``time``) into minutes after midnight. "24:00" is end of day."""
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    hours, _, minutes = str(value).partition(':')
    total = int(hours) * 60 + int(minutes or 0)
    if not 0 <= total <= MINUTES_PER_DAY:
        raise ValueError(f"Time of day out of range: {value}")
    return total


def format_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def minutes_to_time(minutes: int, closing: bool = False) -> time:
    """``closing=True`` stores end of day as midnight, the way a TimeField can hold it."""
    if closing and minutes == MINUTES_PER_DAY:
        return time(0, 0)
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"Minutes out of range for a time of day: {minutes}")
    return time(minutes // 60, minutes % 60)


@dataclass(frozen=True)
class TimeRange(ValueObject):
    """
    Half-open range of minutes after midnight: [start, end)

    Adjacent ranges (one ends where the other starts) do not overlap.
    """
    start: int
    end: int

    def __post_init__(self):
        if not 0 <= self.start < self.end <= MINUTES_PER_DAY:
            raise ValueError(f"Invalid time range {self.start}-{self.end}")

    @classmethod
    def from_times(cls, start, end) -> 'TimeRange':
        # Midnight as an end time closes the day.
        return cls(parse_hhmm(start), parse_hhmm(end) or MINUTES_PER_DAY)

    @classmethod
    def starting_at(cls, start: int, duration_minutes: int) -> 'TimeRange':
        return cls(start, start + duration_minutes)

    def overlaps_with(self, other: 'TimeRange') -> bool:
        # start1 < end2 AND end1 > start2
        return self.start < other.end and self.end > other.start

    def contains(self, other: 'TimeRange') -> bool:
        return self.start <= other.start and other.end <= self.end

    @property
    def duration(self) -> int:
        return self.end - self.start

    def __str__(self):
        return f"{format_hhmm(self.start)}-{format_hhmm(self.end)}"

    def __repr__(self):
        return f"TimeRange({format_hhmm(self.start)}, {format_hhmm(self.end)})"
