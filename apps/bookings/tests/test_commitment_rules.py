"""Unit tests for payment states, transitions and the advance split."""

from __future__ import annotations

from decimal import Decimal

from django.test import SimpleTestCase

from apps.bookings.domain.commitment import (
    AdvanceConfig,
    CommitmentMode,
    PaymentState,
    assert_transition,
    can_transition,
    cancellation_target,
    is_terminal,
    plan_commitment,
    split_advance,
    state_after_capture,
)
from apps.bookings.domain.errors import CommitmentModeNotAllowed, InvalidPaymentTransition


class TransitionTableTests(SimpleTestCase):
    def test_happy_paths(self) -> None:
        self.assertTrue(can_transition("unpaid", "processing"))
        self.assertTrue(can_transition("processing", "partially_paid"))
        self.assertTrue(can_transition("partially_paid", "paid"))
        self.assertTrue(can_transition("unpaid", "pay_at_venue_pending"))
        self.assertTrue(can_transition("paid", "refunded"))

    def test_no_way_back(self) -> None:
        self.assertFalse(can_transition("paid", "unpaid"))
        self.assertFalse(can_transition("paid", "cancelled"))
        with self.assertRaises(InvalidPaymentTransition):
            assert_transition("failed", "processing")

    def test_terminal_states(self) -> None:
        for state in (PaymentState.FAILED, PaymentState.CANCELLED, PaymentState.REFUNDED):
            self.assertTrue(is_terminal(state))
        self.assertFalse(is_terminal(PaymentState.PAY_AT_VENUE_PENDING))

    def test_cancellation_refunds_when_money_was_taken(self) -> None:
        self.assertEqual(cancellation_target("paid"), PaymentState.REFUNDED)
        self.assertEqual(cancellation_target("partially_paid"), PaymentState.REFUNDED)
        self.assertEqual(cancellation_target("unpaid"), PaymentState.CANCELLED)

    def test_state_after_capture(self) -> None:
        self.assertEqual(state_after_capture(Decimal("500"), Decimal("1000")), PaymentState.PARTIALLY_PAID)
        self.assertEqual(state_after_capture(Decimal("1000"), Decimal("1000")), PaymentState.PAID)


class AdvanceSplitTests(SimpleTestCase):
    def test_percentage_advance(self) -> None:
        split = split_advance(Decimal("1000"), AdvanceConfig("percentage", Decimal("50")))

        self.assertEqual(split.advance, Decimal("500"))
        self.assertEqual(split.remaining, Decimal("500"))

    def test_percentage_rounds_to_whole_units(self) -> None:
        split = split_advance(Decimal("999"), AdvanceConfig("percentage", Decimal("50")))

        self.assertEqual(split.advance, Decimal("500"))
        self.assertEqual(split.remaining, Decimal("499"))

    def test_flat_advance_capped_at_total(self) -> None:
        split = split_advance(Decimal("1000"), AdvanceConfig("flat", Decimal("1500")))

        self.assertEqual(split.advance, Decimal("1000"))
        self.assertEqual(split.remaining, Decimal("0"))

    def test_no_configuration_means_full_amount(self) -> None:
        split = split_advance(Decimal("1000"), None)

        self.assertEqual(split.advance, Decimal("1000"))


class PlanCommitmentTests(SimpleTestCase):
    def test_full_goes_through_gateway(self) -> None:
        plan = plan_commitment("full", Decimal("1000"), allows_advance=False, allows_pay_at_venue=False)

        self.assertTrue(plan.uses_gateway)
        self.assertEqual(plan.amount_due_now, Decimal("1000"))
        self.assertEqual(plan.next_state, PaymentState.PROCESSING)

    def test_advance_requires_venue_opt_in(self) -> None:
        with self.assertRaises(CommitmentModeNotAllowed):
            plan_commitment("advance", Decimal("1000"), allows_advance=False, allows_pay_at_venue=True)

    def test_ground_requires_venue_opt_in(self) -> None:
        with self.assertRaises(CommitmentModeNotAllowed):
            plan_commitment("ground", Decimal("1000"), allows_advance=True, allows_pay_at_venue=False)

    def test_ground_skips_gateway(self) -> None:
        plan = plan_commitment(CommitmentMode.GROUND, Decimal("1000"), allows_advance=True, allows_pay_at_venue=True)

        self.assertFalse(plan.uses_gateway)
        self.assertEqual(plan.amount_due_now, Decimal("0"))
        self.assertEqual(plan.next_state, PaymentState.PAY_AT_VENUE_PENDING)

    def test_zero_advance_becomes_full_checkout(self) -> None:
        for config in (AdvanceConfig("percentage", Decimal("0")), AdvanceConfig("flat", Decimal("0"))):
            plan = plan_commitment(
                "advance",
                Decimal("1000"),
                allows_advance=True,
                allows_pay_at_venue=False,
                advance_config=config,
            )

            self.assertEqual(plan.mode, CommitmentMode.FULL)
            self.assertEqual(plan.amount_due_now, Decimal("1000"))
            self.assertFalse(plan.is_advance)

    def test_unknown_mode_rejected(self) -> None:
        with self.assertRaises(ValueError):
            plan_commitment("crypto", Decimal("1000"), allows_advance=True, allows_pay_at_venue=True)
