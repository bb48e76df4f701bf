"""
Payment Commitment Machine

Use cases that move a reservation through its payment states. Gateway
I/O always happens outside database transactions; state changes happen
inside a unit of work on the freshly locked reservation row, so a
reservation that changed while the gateway was busy is never overwritten.

Commands:
- ChooseCommitmentMode: full / advance / pay-at-venue
- ConfirmGatewayPayment: signature callback from checkout
- ReportPaymentFailure: checkout failed or was abandoned
- CollectAtVenue: operator records money taken in person
- CancelReservation: player, venue or system cancellation (refunds if needed)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional
import logging

from django.conf import settings
from django.db import DatabaseError
from django.db.models import Q
from django.utils import timezone

from shared.application.uow import DjangoUnitOfWork
from apps.bookings.domain.commitment import (
    AdvanceConfig,
    CommitmentMode,
    PaymentState,
    assert_transition,
    cancellation_target,
    plan_commitment,
    state_after_capture,
)
from apps.bookings.domain.errors import (
    InvalidPaymentTransition,
    InvalidReservationRequest,
    LateCaptureRefunded,
    PaymentError,
    PaymentSetupError,
    PaymentVerificationError,
    RefundError,
)
from apps.bookings.domain.events import PaymentCaptured, PaymentStateChanged
from apps.bookings.models import Reservation
from apps.bookings.services import load_schedule
from apps.finances.domain.errors import FinanceError
from apps.finances.gateway import GatewayError, GatewayOrder, PaymentGateway, get_gateway
from apps.finances.models import PaymentLedgerEntry
from apps.finances.services import mark_entry_refunded, record_capture, resolve_commission_for

logger = logging.getLogger(__name__)

CANCEL_ATTEMPTS = 3


# ===== Commands =====

@dataclass
class ChooseCommitmentMode:
    reservation_id: int
    mode: str


@dataclass
class ConfirmGatewayPayment:
    reservation_id: int
    order_id: str
    payment_id: str
    signature: str


@dataclass
class ReportPaymentFailure:
    reservation_id: int
    reason: str = ''


@dataclass
class CollectAtVenue:
    reservation_id: int
    amount: Optional[Decimal] = None
    reference: str = ''


@dataclass
class CancelReservation:
    reservation_id: int
    reason: str = ''
    cancelled_by: str = Reservation.CancelledBy.PLAYER


@dataclass(frozen=True)
class CheckoutResult:
    reservation: Reservation
    order: Optional[GatewayOrder]

    def to_dict(self) -> dict:
        data = {
            'reservation_id': self.reservation.pk,
            'payment_state': self.reservation.payment_state,
            'commitment_mode': self.reservation.commitment_mode,
        }
        if self.order:
            data.update(self.order.to_dict())
        return data


class _CaptureNoLongerExpected(Exception):
    """Verified payment arrived for a reservation that stopped waiting for it."""


class _LedgerChangedDuringCancel(Exception):
    """A capture was recorded after the cancellation issued its refunds."""


def advance_config_for(venue) -> Optional[AdvanceConfig]:
    if venue.advance_amount_type and venue.advance_amount_value is not None:
        return AdvanceConfig(venue.advance_amount_type, venue.advance_amount_value)
    return None


class PaymentCommitmentMachine:
    """
    Single entry point for payment-state changes

    Usage:
        machine = PaymentCommitmentMachine()
        result = machine.handle(ChooseCommitmentMode(reservation_id=42, mode="advance"))
    """

    def __init__(self, gateway: Optional[PaymentGateway] = None):
        self.gateway = gateway or get_gateway()

    def handle(self, command):
        handlers = {
            ChooseCommitmentMode: self.choose_mode,
            ConfirmGatewayPayment: self.confirm_payment,
            ReportPaymentFailure: self.fail_payment,
            CollectAtVenue: self.collect_at_venue,
            CancelReservation: self.cancel,
        }
        handler = handlers.get(type(command))
        if handler is None:
            raise TypeError(f"No handler for {type(command).__name__}")
        return handler(command)

    # ----- helpers -----

    def _lock(self, reservation_id: int) -> Reservation:
        return Reservation.objects.select_for_update().select_related('venue').get(pk=reservation_id)

    def _transition(self, uow, reservation: Reservation, target: PaymentState, reason: str = '', **changes) -> str:
        """Move to ``target`` and record the events; releases the slot for terminal states."""
        assert_transition(reservation.payment_state, target)
        schedule = None
        if target in (PaymentState.FAILED, PaymentState.CANCELLED, PaymentState.REFUNDED):
            schedule = load_schedule(reservation.venue, reservation.date)
        previous = reservation.move_to(target, **changes)
        if schedule is not None:
            schedule.release(reservation.pk)
            uow.collect_events(schedule)
        uow.add_event(PaymentStateChanged(
            aggregate_id=reservation.pk,
            reservation_id=reservation.pk,
            venue_id=reservation.venue_id,
            date=reservation.date,
            old_state=previous,
            new_state=reservation.payment_state,
            amount_committed=reservation.amount_committed,
            reason=reason,
        ))
        logger.info(
            f"Reservation {reservation.booking_code}: {previous} -> {reservation.payment_state}"
            + (f" ({reason})" if reason else "")
        )
        return previous

    def _capture(self, uow, reservation: Reservation, amount: Decimal, collected_by: str, reference: str) -> PaymentLedgerEntry:
        entry = record_capture(
            reservation,
            amount,
            is_advance=reservation.amount_committed + amount < reservation.total_amount,
            collected_by=collected_by,
            payment_reference=reference,
        )
        uow.add_event(PaymentCaptured(
            aggregate_id=reservation.pk,
            reservation_id=reservation.pk,
            venue_id=reservation.venue_id,
            amount=entry.gross,
            collected_by=collected_by,
            ledger_entry_id=entry.pk,
        ))
        return entry

    # ----- commands -----

    def choose_mode(self, command: ChooseCommitmentMode) -> CheckoutResult:
        reservation = Reservation.objects.select_related('venue').get(pk=command.reservation_id)
        venue = reservation.venue
        plan = plan_commitment(
            command.mode,
            reservation.total_amount,
            allows_advance=venue.allows_advance_payment,
            allows_pay_at_venue=venue.allows_pay_at_venue,
            advance_config=advance_config_for(venue),
        )
        assert_transition(reservation.payment_state, plan.next_state)

        order = None
        if plan.uses_gateway:
            # Fail before any money moves if the capture could not be booked.
            resolve_commission_for(venue)
            try:
                order = self.gateway.create_order(
                    plan.amount_due_now,
                    reservation.currency,
                    receipt=reservation.booking_code,
                    notes={'reservation_id': str(reservation.pk), 'mode': plan.mode.value},
                )
            except GatewayError as e:
                logger.warning(f"Payment setup failed for reservation {reservation.booking_code}: {e}")
                raise PaymentSetupError("Payment could not be started, please try again") from e

        with DjangoUnitOfWork() as uow:
            locked = self._lock(reservation.pk)
            changes = {
                'commitment_mode': plan.mode.value,
                'advance_amount': plan.amount_due_now if plan.mode == CommitmentMode.ADVANCE else None,
                'processing_started_at': timezone.now(),
            }
            if order:
                changes['gateway_order_id'] = order.order_id
            self._transition(uow, locked, plan.next_state, reason=f"mode {plan.mode.value}", **changes)

        return CheckoutResult(locked, order)

    def confirm_payment(self, command: ConfirmGatewayPayment) -> Reservation:
        reservation = Reservation.objects.select_related('venue').get(pk=command.reservation_id)

        if reservation.gateway_payment_id and reservation.gateway_payment_id == command.payment_id:
            logger.info(f"Payment {command.payment_id} already applied to {reservation.booking_code}")
            return reservation

        verified = (
            command.order_id == reservation.gateway_order_id
            and self.gateway.verify_signature(command.order_id, command.payment_id, command.signature)
        )
        if not verified:
            logger.warning(
                f"Payment verification failed for reservation {reservation.booking_code} "
                f"(order {command.order_id}, payment {command.payment_id})"
            )
            with DjangoUnitOfWork() as uow:
                locked = self._lock(reservation.pk)
                if locked.payment_state in (PaymentState.PROCESSING, PaymentState.UNPAID):
                    self._transition(
                        uow, locked, PaymentState.FAILED,
                        reason='signature verification failed',
                        failure_reason='Payment signature verification failed',
                    )
            raise PaymentVerificationError(
                f"Payment could not be verified. Contact support with reference {reservation.booking_code}"
            )

        try:
            with DjangoUnitOfWork() as uow:
                locked = self._lock(reservation.pk)
                if locked.payment_state != PaymentState.PROCESSING or locked.gateway_order_id != command.order_id:
                    raise _CaptureNoLongerExpected(locked.payment_state)

                if locked.commitment_mode == CommitmentMode.ADVANCE and locked.advance_amount is not None:
                    amount = locked.advance_amount
                else:
                    amount = locked.total_amount - locked.amount_committed
                self._capture(uow, locked, amount, PaymentLedgerEntry.CollectedBy.PLATFORM, command.payment_id)

                committed = locked.amount_committed + amount
                target = state_after_capture(committed, locked.total_amount)
                changes = {'amount_committed': committed, 'gateway_payment_id': command.payment_id}
                if target == PaymentState.PAID:
                    changes['paid_at'] = timezone.now()
                self._transition(uow, locked, target, reason=f"captured {amount}", **changes)
        except _CaptureNoLongerExpected as e:
            amount = reservation.advance_amount if reservation.commitment_mode == CommitmentMode.ADVANCE else reservation.total_amount
            self._refund_orphaned_capture(reservation, command.payment_id, amount, f"reservation is {e}")
            raise LateCaptureRefunded(
                f"Reservation {reservation.booking_code} was no longer awaiting payment; "
                f"the payment has been refunded"
            ) from e
        except (DatabaseError, FinanceError) as e:
            logger.error(
                f"Captured payment {command.payment_id} could not be recorded for "
                f"{reservation.booking_code}: {e}",
                exc_info=True,
            )
            self._refund_orphaned_capture(reservation, command.payment_id, reservation.advance_amount or reservation.total_amount, str(e))
            self.fail_payment(ReportPaymentFailure(reservation.pk, reason='capture could not be recorded'))
            raise PaymentError(
                f"Payment for {reservation.booking_code} could not be recorded and has been refunded"
            ) from e

        return locked

    def _refund_orphaned_capture(self, reservation: Reservation, payment_id: str, amount: Decimal, why: str) -> str:
        logger.warning(f"Refunding orphaned capture {payment_id} on {reservation.booking_code}: {why}")
        try:
            return self.gateway.refund(payment_id, amount)
        except GatewayError as e:
            logger.error(
                f"Refund of orphaned capture {payment_id} ({amount}) failed; manual action required",
                exc_info=True,
            )
            raise RefundError(
                f"Payment for {reservation.booking_code} was captured but could not be refunded automatically. "
                f"Contact support."
            ) from e

    def fail_payment(self, command: ReportPaymentFailure) -> Reservation:
        with DjangoUnitOfWork() as uow:
            locked = self._lock(command.reservation_id)
            self._transition(
                uow, locked, PaymentState.FAILED,
                reason=command.reason or 'payment failed',
                failure_reason=(command.reason or 'Payment failed')[:255],
            )
        return locked

    def collect_at_venue(self, command: CollectAtVenue) -> Reservation:
        with DjangoUnitOfWork() as uow:
            locked = self._lock(command.reservation_id)
            if locked.payment_state not in (PaymentState.PARTIALLY_PAID, PaymentState.PAY_AT_VENUE_PENDING):
                raise InvalidPaymentTransition(locked.payment_state, PaymentState.PAID.value)
            remaining = locked.amount_remaining
            amount = remaining if command.amount is None else Decimal(command.amount)
            if amount != remaining:
                raise InvalidReservationRequest(f"Collected amount must equal the remaining {remaining}")

            self._capture(uow, locked, amount, PaymentLedgerEntry.CollectedBy.VENUE, command.reference)
            self._transition(
                uow, locked, PaymentState.PAID,
                reason=f"collected {amount} at venue",
                amount_committed=locked.total_amount,
                paid_at=timezone.now(),
            )
        return locked

    def _paid_entries(self, reservation_id: int) -> list:
        return list(PaymentLedgerEntry.objects.filter(
            reservation_id=reservation_id,
            status=PaymentLedgerEntry.Status.PAID,
        ))

    def _refund_entries(self, entries, refunds: dict) -> None:
        """Refund platform-collected entries at the gateway, once each."""
        for entry in entries:
            if entry.collected_by != PaymentLedgerEntry.CollectedBy.PLATFORM or entry.pk in refunds:
                continue
            try:
                refunds[entry.pk] = self.gateway.refund(entry.payment_reference, entry.gross)
            except GatewayError as e:
                logger.error(f"Refund failed for ledger entry {entry.pk}, cancellation aborted: {e}", exc_info=True)
                self._settle_issued_refunds(refunds)
                raise RefundError("Refund could not be issued; the reservation was not cancelled") from e

    def _settle_issued_refunds(self, refunds: dict) -> None:
        # Entries already refunded at the gateway must not stay marked paid.
        for entry in PaymentLedgerEntry.objects.filter(pk__in=refunds, status=PaymentLedgerEntry.Status.PAID):
            mark_entry_refunded(entry, refunds[entry.pk])

    def cancel(self, command: CancelReservation) -> Reservation:
        refunds = {}
        for _ in range(CANCEL_ATTEMPTS):
            reservation = Reservation.objects.get(pk=command.reservation_id)
            assert_transition(reservation.payment_state, cancellation_target(reservation.payment_state))
            self._refund_entries(self._paid_entries(reservation.pk), refunds)

            try:
                with DjangoUnitOfWork() as uow:
                    locked = self._lock(reservation.pk)
                    target = cancellation_target(locked.payment_state)
                    entries = self._paid_entries(locked.pk)
                    unrefunded = [
                        entry.pk for entry in entries
                        if entry.collected_by == PaymentLedgerEntry.CollectedBy.PLATFORM and entry.pk not in refunds
                    ]
                    if unrefunded:
                        raise _LedgerChangedDuringCancel(unrefunded)
                    for entry in entries:
                        mark_entry_refunded(entry, refunds.get(entry.pk, ''))
                    self._transition(
                        uow, locked, target,
                        reason=command.reason or f"cancelled by {command.cancelled_by}",
                        cancelled_at=timezone.now(),
                        cancelled_by=command.cancelled_by,
                        cancellation_reason=(command.reason or '')[:255],
                    )
                return locked
            except _LedgerChangedDuringCancel as e:
                logger.warning(f"Payment captured on {reservation.booking_code} while cancelling (entries {e}), retrying")

        self._settle_issued_refunds(refunds)
        raise RefundError(
            f"Reservation {reservation.booking_code} kept receiving payments while being cancelled; try again"
        )

    def expire_stale(self, now: Optional[datetime] = None) -> dict:
        """
        Fail reservations stuck before payment and, when a hold is
        configured, cancel pay-at-venue reservations the venue never settled.
        """
        now = now or timezone.now()
        cutoff = now - timedelta(minutes=settings.RESERVATION_PROCESSING_TIMEOUT_MINUTES)
        stale = Reservation.objects.filter(
            Q(payment_state=PaymentState.PROCESSING.value, processing_started_at__lt=cutoff)
            | Q(payment_state=PaymentState.UNPAID.value, created_at__lt=cutoff)
        ).values_list('pk', flat=True)

        failed = 0
        for reservation_id in list(stale):
            try:
                self.fail_payment(ReportPaymentFailure(reservation_id, reason='payment window expired'))
                failed += 1
            except InvalidPaymentTransition:
                logger.info(f"Reservation {reservation_id} changed state before it could expire")

        cancelled = 0
        hold_minutes = getattr(settings, 'PAY_AT_VENUE_HOLD_MINUTES', None)
        if hold_minutes:
            hold_cutoff = now - timedelta(minutes=hold_minutes)
            pending = Reservation.objects.filter(
                payment_state=PaymentState.PAY_AT_VENUE_PENDING.value,
                processing_started_at__lt=hold_cutoff,
            ).values_list('pk', flat=True)
            for reservation_id in list(pending):
                try:
                    self.cancel(CancelReservation(
                        reservation_id,
                        reason='venue did not confirm in time',
                        cancelled_by=Reservation.CancelledBy.SYSTEM,
                    ))
                    cancelled += 1
                except InvalidPaymentTransition:
                    logger.info(f"Reservation {reservation_id} settled before its hold expired")

        if failed or cancelled:
            logger.info(f"Expired {failed} unpaid reservations, cancelled {cancelled} pay-at-venue holds")
        return {'failed': failed, 'cancelled': cancelled}
