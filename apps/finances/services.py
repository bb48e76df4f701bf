"""Ledger and payout services.

Everything that turns captured money into venue payables, platform
commission and payout batches lives here. Batch generation and drift
checks take the venue row lock, so they never run concurrently for the
same venue and cannot double-count a ledger entry.
"""

from __future__ import annotations

import logging
from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable

from django.conf import settings  # type: ignore
from django.db import transaction  # type: ignore
from django.db.models import Sum  # type: ignore
from django.utils import timezone  # type: ignore

from apps.venues.models import PayoutFrequency, PlatformSettings, Venue

from .domain.commission import Commission, resolve
from .domain.errors import PayoutConfigurationError, PayoutError, ReconciliationDriftDetected
from .gateway import GatewayError, PaymentGateway, get_gateway
from .models import PaymentLedgerEntry, PayoutBatch, ReconciliationSnapshot

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def resolve_commission_for(venue: Venue) -> Commission:
    """Commission in force for ``venue`` right now (override or platform default)."""
    platform = PlatformSettings.current()
    default = platform.default_commission if platform else None
    return resolve(venue.commission_rule, default)


def record_capture(
    reservation,
    gross: Decimal,
    *,
    is_advance: bool,
    collected_by: str,
    payment_reference: str = "",
    realized_at: datetime | None = None,
    commission: Commission | None = None,
) -> PaymentLedgerEntry:
    """Write a paid ledger entry with the commission frozen at this instant."""
    commission = commission or resolve_commission_for(reservation.venue)
    split = commission.split(gross)
    entry = PaymentLedgerEntry.objects.create(
        reservation=reservation,
        venue_id=reservation.venue_id,
        currency=reservation.currency,
        gross=split.gross,
        commission_type_used=commission.type.value,
        commission_value_used=commission.value,
        platform_fee=split.platform_fee,
        venue_amount=split.venue_amount,
        is_advance=is_advance,
        collected_by=collected_by,
        payment_reference=payment_reference,
        status=PaymentLedgerEntry.Status.PAID,
        realized_at=realized_at or timezone.now(),
    )
    logger.info(
        f"Ledger entry {entry.pk}: reservation {reservation.pk} gross {split.gross} "
        f"fee {split.platform_fee} ({commission}) collected by {collected_by}"
    )
    return entry


def mark_entry_refunded(entry: PaymentLedgerEntry, refund_reference: str = "", when: datetime | None = None) -> None:
    entry.status = PaymentLedgerEntry.Status.REFUNDED
    entry.refunded_at = when or timezone.now()
    entry.refund_reference = refund_reference
    entry.save(update_fields=["status", "refunded_at", "refund_reference"])
    if entry.payout_batch_id:
        logger.warning(
            f"Refunded ledger entry {entry.pk} was already in payout batch {entry.payout_batch_id}; "
            f"venue {entry.venue_id} will carry a negative outstanding balance"
        )


def _sum(queryset, field: str) -> Decimal:
    return queryset.aggregate(total=Sum(field))["total"] or ZERO


def venue_net(entries) -> Decimal:
    """
    What the platform owes the venue for ``entries``.

    Online captures contribute their venue share; money the venue
    collected in person already sits with the venue, so only the platform
    fee on it is deducted.
    """
    owed = _sum(entries.filter(collected_by=PaymentLedgerEntry.CollectedBy.PLATFORM), "venue_amount")
    withheld = _sum(entries.filter(collected_by=PaymentLedgerEntry.CollectedBy.VENUE), "platform_fee")
    return owed - withheld


@dataclass(frozen=True)
class Reconciliation:
    venue_id: int
    period_start: date | None
    period_end: date | None
    gross_revenue: Decimal
    platform_fees: Decimal
    venue_payable: Decimal
    already_paid_out: Decimal
    outstanding: Decimal
    collected_at_venue: Decimal = ZERO
    net_transferable: Decimal = ZERO

    @property
    def transfer_outstanding(self) -> Decimal:
        """What still has to reach the venue by payout, after cash it kept."""
        return self.net_transferable - self.already_paid_out

    def to_dict(self) -> dict:
        return {
            "venue_id": self.venue_id,
            "period_start": self.period_start.isoformat() if self.period_start else None,
            "period_end": self.period_end.isoformat() if self.period_end else None,
            "gross_revenue": str(self.gross_revenue),
            "platform_fees": str(self.platform_fees),
            "venue_payable": str(self.venue_payable),
            "already_paid_out": str(self.already_paid_out),
            "outstanding": str(self.outstanding),
            "collected_at_venue": str(self.collected_at_venue),
            "net_transferable": str(self.net_transferable),
            "transfer_outstanding": str(self.transfer_outstanding),
        }


def previous_period(frequency: str, today: date) -> tuple[date, date] | None:
    """
    Closed period that becomes payable on ``today``, or ``None`` if
    ``today`` is not a payout day for ``frequency``.
    """
    if frequency == PayoutFrequency.DAILY:
        day = today - timedelta(days=1)
        return day, day
    if frequency == PayoutFrequency.WEEKLY:
        if today.weekday() != 0:
            return None
        return today - timedelta(days=7), today - timedelta(days=1)
    if frequency == PayoutFrequency.MONTHLY:
        if today.day != 1:
            return None
        last = today - timedelta(days=1)
        return last.replace(day=1), last.replace(day=monthrange(last.year, last.month)[1])
    raise ValueError(f"Unknown payout frequency: {frequency}")


class PayoutReconciler:
    """Aggregates ledger entries into payables, payout batches and drift reports."""

    def __init__(self, gateway: PaymentGateway | None = None):
        self.gateway = gateway or get_gateway()

    # ----- reading -----

    def reconcile(self, venue: Venue, period_start: date | None = None, period_end: date | None = None) -> Reconciliation:
        """
        Paid ledger entries within the period against every paid batch
        of the venue (payouts may lag behind the revenue period).

        ``venue_payable`` is the venue share of every paid entry. Cash the
        venue took in person is reported as ``collected_at_venue``;
        ``net_transferable`` is what payout batches actually move.
        """
        entries = PaymentLedgerEntry.objects.filter(venue=venue, status=PaymentLedgerEntry.Status.PAID)
        if period_start:
            entries = entries.filter(realized_at__date__gte=period_start)
        if period_end:
            entries = entries.filter(realized_at__date__lte=period_end)

        payable = _sum(entries, "venue_amount")
        paid_out = _sum(
            PayoutBatch.objects.filter(venue=venue, status=PayoutBatch.Status.PAID),
            "amount_net",
        )
        return Reconciliation(
            venue_id=venue.pk,
            period_start=period_start,
            period_end=period_end,
            gross_revenue=_sum(entries, "gross"),
            platform_fees=_sum(entries, "platform_fee"),
            venue_payable=payable,
            already_paid_out=paid_out,
            outstanding=payable - paid_out,
            collected_at_venue=_sum(entries.filter(collected_by=PaymentLedgerEntry.CollectedBy.VENUE), "gross"),
            net_transferable=venue_net(entries),
        )

    # ----- batches -----

    def generate_batch(self, venue: Venue, period_start: date, period_end: date) -> PayoutBatch | None:
        """
        Gather unbatched paid entries realized up to ``period_end`` into a
        pending batch. Older stragglers are swept in and widen the period.
        Returns ``None`` when there is nothing to pay out.
        """
        if period_end < period_start:
            raise PayoutError("Payout period ends before it starts")

        with transaction.atomic():
            Venue.objects.select_for_update().get(pk=venue.pk)
            entries = PaymentLedgerEntry.objects.select_for_update().filter(
                venue=venue,
                status=PaymentLedgerEntry.Status.PAID,
                payout_batch__isnull=True,
                realized_at__date__lte=period_end,
            )
            entry_ids = list(entries.values_list("pk", flat=True))
            if not entry_ids:
                logger.info(f"No unbatched ledger entries for venue {venue.pk} up to {period_end}")
                return None

            entries = PaymentLedgerEntry.objects.filter(pk__in=entry_ids)
            earliest = min(entry.realized_at for entry in entries)
            batch = PayoutBatch.objects.create(
                venue=venue,
                currency=venue.currency,
                period_start=min(period_start, timezone.localtime(earliest).date()),
                period_end=period_end,
                amount_gross=_sum(entries, "gross"),
                amount_fees=_sum(entries, "platform_fee"),
                amount_net=venue_net(entries),
                status=PayoutBatch.Status.PENDING,
            )
            for entry in entries:
                entry.payout_batch = batch
                entry.save(update_fields=["payout_batch"])

        logger.info(
            f"Payout batch {batch.pk} for venue {venue.pk}: {len(entry_ids)} entries, "
            f"gross {batch.amount_gross}, fees {batch.amount_fees}, net {batch.amount_net}"
        )
        return batch

    def generate_due_batches(self, today: date | None = None) -> list[PayoutBatch]:
        """Create batches for every active venue whose payout day is ``today``."""
        today = today or timezone.localdate()
        batches = []
        for venue in Venue.objects.filter(is_active=True):
            period = previous_period(venue.effective_payout_frequency, today)
            if period is None:
                continue
            try:
                batch = self.generate_batch(venue, *period)
            except PayoutError as e:
                logger.error(f"Payout generation failed for venue {venue.pk}: {e}")
                continue
            if batch:
                batches.append(batch)
        return batches

    def process_batch(self, batch: PayoutBatch) -> PayoutBatch:
        """
        Send a pending batch to the gateway payout API.

        The batch is moved to ``scheduled`` before the transfer is
        requested, so a second call cannot pay it twice. If the gateway
        refuses or is unreachable it stays ``scheduled`` with a
        ``MANUAL_`` reference for an operator to settle.
        """
        details = getattr(batch.venue, "payout_details", None)
        if details is None or not details.is_complete():
            missing = details.missing_fields() if details else ["account_name", "account_number", "ifsc"]
            raise PayoutConfigurationError(
                f"Venue {batch.venue_id} payout details incomplete: missing {', '.join(missing)}"
            )

        with transaction.atomic():
            locked = PayoutBatch.objects.select_for_update().get(pk=batch.pk)
            if locked.status != PayoutBatch.Status.PENDING:
                raise PayoutError(f"Payout batch {batch.pk} is {locked.status}, only pending batches can be processed")
            if locked.amount_net <= 0:
                raise PayoutError(f"Payout batch {batch.pk} has nothing to transfer (net {locked.amount_net})")
            locked.status = PayoutBatch.Status.SCHEDULED
            locked.save(update_fields=["status", "updated_at"])

        reference = f"PAYOUT_{locked.pk}"
        try:
            payout = self.gateway.create_payout(
                locked.amount_net,
                locked.currency,
                {
                    "account_name": details.account_name,
                    "account_number": details.account_number,
                    "ifsc": details.ifsc,
                },
                reference,
            )
        except GatewayError as e:
            locked.external_reference = f"MANUAL_{locked.pk}_{timezone.now():%Y%m%d%H%M%S}"
            locked.failure_reason = str(e)[:255]
            locked.save(update_fields=["external_reference", "failure_reason", "updated_at"])
            logger.warning(f"Payout API failed for batch {locked.pk}, left for manual settlement: {e}")
            return locked

        locked.external_reference = payout.payout_id
        if payout.processed:
            locked.status = PayoutBatch.Status.PAID
            locked.payout_date = timezone.now()
        locked.save(update_fields=["status", "external_reference", "payout_date", "updated_at"])
        logger.info(f"Payout batch {locked.pk} sent as {payout.payout_id} ({payout.status})")
        return locked

    def mark_batch_paid(self, batch: PayoutBatch, reference: str = "", paid_at: datetime | None = None) -> PayoutBatch:
        """Operator confirmation of a transfer made outside the payout API."""
        with transaction.atomic():
            locked = PayoutBatch.objects.select_for_update().get(pk=batch.pk)
            if locked.status not in (PayoutBatch.Status.PENDING, PayoutBatch.Status.SCHEDULED):
                raise PayoutError(f"Payout batch {batch.pk} is {locked.status} and cannot be marked paid")
            locked.status = PayoutBatch.Status.PAID
            locked.payout_date = paid_at or timezone.now()
            if reference:
                locked.external_reference = reference
            locked.save(update_fields=["status", "payout_date", "external_reference", "updated_at"])
        logger.info(f"Payout batch {locked.pk} marked paid ({locked.external_reference})")
        return locked

    # ----- drift -----

    def detect_drift(self, venue: Venue, *, raise_on_drift: bool = False) -> ReconciliationSnapshot:
        """
        Snapshot the all-time balance still to be transferred and flag drift when it
        grew at every one of the last ``RECONCILIATION_DRIFT_WINDOW``
        snapshots. Reported only; nothing is corrected.
        """
        window = getattr(settings, "RECONCILIATION_DRIFT_WINDOW", 3)
        with transaction.atomic():
            Venue.objects.select_for_update().get(pk=venue.pk)
            current = self.reconcile(venue)
            previous = list(
                ReconciliationSnapshot.objects.filter(venue=venue).order_by("-taken_at", "-id")[: window - 1]
            )
            series = [snapshot.transfer_outstanding for snapshot in reversed(previous)] + [current.transfer_outstanding]
            drift = len(series) >= window and all(
                later > earlier for earlier, later in zip(series, series[1:])
            )
            snapshot = ReconciliationSnapshot.objects.create(
                venue=venue,
                gross_revenue=current.gross_revenue,
                venue_payable=current.venue_payable,
                already_paid_out=current.already_paid_out,
                outstanding=current.outstanding,
                transfer_outstanding=current.transfer_outstanding,
                drift_detected=drift,
            )

        if drift:
            error = ReconciliationDriftDetected(venue.pk, current.transfer_outstanding, window)
            logger.warning(str(error))
            if raise_on_drift:
                raise error
        return snapshot

    def detect_drift_for_all(self, venues: Iterable[Venue] | None = None) -> list[ReconciliationSnapshot]:
        venues = venues if venues is not None else Venue.objects.filter(is_active=True)
        return [snapshot for snapshot in (self.detect_drift(v) for v in venues) if snapshot.drift_detected]
