"""
Payment Commitment Rules

States, the transition table, the closed set of commitment modes and the
advance-payment split. No I/O here: the application layer drives the
gateway and the ledger and asks this module what is allowed.

    unpaid ──► processing ──► paid
      │            │  └─────► partially_paid ──► paid
      │            └─► failed
      └──► pay_at_venue_pending ──► paid

Any non-terminal state may be cancelled; a reservation that already holds
money ends ``refunded`` instead of ``cancelled``.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, FrozenSet, Optional

from shared.domain.base import ValueObject
from shared.domain.value_objects import CENTS, to_decimal

from apps.bookings.domain.errors import CommitmentModeNotAllowed, InvalidPaymentTransition


class PaymentState(str, Enum):
    UNPAID = "unpaid"
    PROCESSING = "processing"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    PAY_AT_VENUE_PENDING = "pay_at_venue_pending"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class CommitmentMode(str, Enum):
    FULL = "full"
    ADVANCE = "advance"
    GROUND = "ground"


class AdvanceType(str, Enum):
    PERCENTAGE = "percentage"
    FLAT = "flat"


TRANSITIONS: Dict[PaymentState, FrozenSet[PaymentState]] = {
    PaymentState.UNPAID: frozenset({
        PaymentState.PROCESSING,
        PaymentState.PAY_AT_VENUE_PENDING,
        PaymentState.FAILED,
        PaymentState.CANCELLED,
    }),
    PaymentState.PROCESSING: frozenset({
        PaymentState.PAID,
        PaymentState.PARTIALLY_PAID,
        PaymentState.FAILED,
        PaymentState.CANCELLED,
    }),
    PaymentState.PARTIALLY_PAID: frozenset({
        PaymentState.PAID,
        PaymentState.REFUNDED,
    }),
    PaymentState.PAY_AT_VENUE_PENDING: frozenset({
        PaymentState.PAID,
        PaymentState.CANCELLED,
    }),
    PaymentState.PAID: frozenset({PaymentState.REFUNDED}),
    PaymentState.FAILED: frozenset(),
    PaymentState.CANCELLED: frozenset(),
    PaymentState.REFUNDED: frozenset(),
}

# States whose interval blocks the slot for everyone else.
COMMITTED_STATES = frozenset({
    PaymentState.UNPAID,
    PaymentState.PROCESSING,
    PaymentState.PARTIALLY_PAID,
    PaymentState.PAID,
    PaymentState.PAY_AT_VENUE_PENDING,
})
RELEASED_STATES = frozenset({
    PaymentState.FAILED,
    PaymentState.CANCELLED,
    PaymentState.REFUNDED,
})
HOLDS_MONEY_STATES = frozenset({PaymentState.PARTIALLY_PAID, PaymentState.PAID})


def can_transition(current, target) -> bool:
    return PaymentState(target) in TRANSITIONS[PaymentState(current)]


def assert_transition(current, target) -> None:
    if not can_transition(current, target):
        raise InvalidPaymentTransition(PaymentState(current).value, PaymentState(target).value)


def is_terminal(state) -> bool:
    return not TRANSITIONS[PaymentState(state)]


def cancellation_target(state) -> PaymentState:
    """Where ``cancel`` lands: money already taken means refunded."""
    if PaymentState(state) in HOLDS_MONEY_STATES:
        return PaymentState.REFUNDED
    return PaymentState.CANCELLED


def state_after_capture(amount_committed, total) -> PaymentState:
    if to_decimal(amount_committed) >= to_decimal(total):
        return PaymentState.PAID
    return PaymentState.PARTIALLY_PAID


@dataclass(frozen=True)
class AdvanceConfig(ValueObject):
    type: AdvanceType
    value: Decimal

    def __post_init__(self):
        object.__setattr__(self, 'type', AdvanceType(self.type))
        object.__setattr__(self, 'value', to_decimal(self.value))


@dataclass(frozen=True)
class PaymentSplit(ValueObject):
    """``advance + remaining == total`` always holds."""
    total: Decimal
    advance: Decimal
    remaining: Decimal


def split_advance(total, config: Optional[AdvanceConfig]) -> PaymentSplit:
    """
    Percentage advances are rounded half-up to whole currency units; flat
    advances are capped at the total; no configuration means the full total.
    """
    total = to_decimal(total).quantize(CENTS, rounding=ROUND_HALF_UP)
    if config is None:
        advance = total
    elif config.type == AdvanceType.PERCENTAGE:
        advance = (total * config.value / Decimal('100')).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
    else:
        advance = config.value
    advance = min(max(advance, Decimal('0')), total).quantize(CENTS)
    return PaymentSplit(total=total, advance=advance, remaining=total - advance)


@dataclass(frozen=True)
class CommitmentPlan(ValueObject):
    """What choosing a mode means for one reservation."""
    mode: CommitmentMode
    amount_due_now: Decimal
    is_advance: bool
    uses_gateway: bool
    next_state: PaymentState


def plan_commitment(
    mode,
    total,
    *,
    allows_advance: bool,
    allows_pay_at_venue: bool,
    advance_config: Optional[AdvanceConfig] = None,
) -> CommitmentPlan:
    """Single dispatch point for the commitment modes."""
    mode = CommitmentMode(mode)
    total = to_decimal(total)

    if mode == CommitmentMode.FULL:
        return CommitmentPlan(
            mode=mode,
            amount_due_now=total,
            is_advance=False,
            uses_gateway=True,
            next_state=PaymentState.PROCESSING,
        )
    if mode == CommitmentMode.ADVANCE:
        if not allows_advance:
            raise CommitmentModeNotAllowed("This venue does not accept advance payments")
        split = split_advance(total, advance_config)
        if split.advance <= 0:
            # Nothing to take up front; checkout collects the whole amount.
            return CommitmentPlan(
                mode=CommitmentMode.FULL,
                amount_due_now=total,
                is_advance=False,
                uses_gateway=True,
                next_state=PaymentState.PROCESSING,
            )
        return CommitmentPlan(
            mode=mode,
            amount_due_now=split.advance,
            is_advance=split.remaining > 0,
            uses_gateway=True,
            next_state=PaymentState.PROCESSING,
        )
    if mode == CommitmentMode.GROUND:
        if not allows_pay_at_venue:
            raise CommitmentModeNotAllowed("This venue does not accept payment at the venue")
        return CommitmentPlan(
            mode=mode,
            amount_due_now=Decimal('0'),
            is_advance=False,
            uses_gateway=False,
            next_state=PaymentState.PAY_AT_VENUE_PENDING,
        )
    raise ValueError(f"Unknown commitment mode: {mode}")
