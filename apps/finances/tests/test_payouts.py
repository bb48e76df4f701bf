"""Service tests for reconciliation, payout batches and drift detection."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from decimal import Decimal

from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone

from apps.bookings.models import Reservation
from apps.finances.domain.commission import Commission, CommissionType
from apps.finances.domain.errors import (
    LedgerEntryImmutable,
    PayoutConfigurationError,
    PayoutError,
    ReconciliationDriftDetected,
)
from apps.finances.gateway import GatewayUnavailableError, PaymentGateway
from apps.finances.models import PaymentLedgerEntry, PayoutBatch
from apps.finances.services import PayoutReconciler, previous_period, record_capture
from apps.users.models import User
from apps.venues.models import PayoutFrequency, PlatformSettings, RateType, Venue, VenuePayoutDetails

TEN_PERCENT = Commission(CommissionType.PERCENTAGE, Decimal("10"))


class UnreachablePayouts(PaymentGateway):
    def __init__(self):
        super().__init__(key_id="", key_secret="secret")

    def create_payout(self, amount, currency, bank_account, reference):  # type: ignore
        raise GatewayUnavailableError("payout API timed out")


class PreviousPeriodTests(SimpleTestCase):
    def test_daily(self) -> None:
        self.assertEqual(previous_period("daily", date(2030, 3, 12)), (date(2030, 3, 11), date(2030, 3, 11)))

    def test_weekly_runs_on_monday(self) -> None:
        self.assertEqual(previous_period("weekly", date(2030, 3, 11)), (date(2030, 3, 4), date(2030, 3, 10)))
        self.assertIsNone(previous_period("weekly", date(2030, 3, 12)))

    def test_monthly_runs_on_the_first(self) -> None:
        self.assertEqual(previous_period("monthly", date(2030, 3, 1)), (date(2030, 2, 1), date(2030, 2, 28)))
        self.assertIsNone(previous_period("monthly", date(2030, 3, 2)))


class PayoutReconcilerTests(TestCase):
    def setUp(self) -> None:
        owner = User.objects.create_user(
            email="owner@example.com",
            password="OwnerPass123",
            role=User.RoleChoices.VENUE_OWNER,
        )
        self.player = User.objects.create_user(email="player@example.com", password="PlayerPass123")
        self.venue = Venue.objects.create(owner=owner, name="Riverside Turf", price_per_hour=Decimal("1000"))
        PlatformSettings.objects.create(
            default_commission_type=RateType.PERCENTAGE,
            default_commission_value=Decimal("10"),
        )
        self.today = timezone.localdate()
        self.reconciler = PayoutReconciler(PaymentGateway(key_id="", key_secret="secret"))
        self._slot = 6

    def _capture(self, gross: str, *, days_ago: int = 1, collected_by=PaymentLedgerEntry.CollectedBy.PLATFORM):
        self._slot += 1
        reservation = Reservation.objects.create(
            venue=self.venue,
            requester=self.player,
            date=self.today - timedelta(days=days_ago),
            start_time=time(self._slot, 0),
            end_time=time(self._slot + 1, 0),
            duration_minutes=60,
            total_amount=Decimal(gross),
            amount_committed=Decimal(gross),
            payment_state=Reservation.PaymentState.PAID,
        )
        realized_at = timezone.make_aware(datetime.combine(self.today - timedelta(days=days_ago), time(12, 0)))
        return record_capture(
            reservation,
            Decimal(gross),
            is_advance=False,
            collected_by=collected_by,
            payment_reference=f"pay_{reservation.pk}",
            realized_at=realized_at,
            commission=TEN_PERCENT,
        )

    def _add_payout_details(self) -> None:
        VenuePayoutDetails.objects.create(
            venue=self.venue,
            account_name="Riverside Sports LLP",
            account_number="123456789012",
            ifsc="HDFC0001234",
        )

    def test_reconcile_reports_venue_share_and_cash_held(self) -> None:
        self._capture("1000")
        self._capture("500", collected_by=PaymentLedgerEntry.CollectedBy.VENUE)

        result = self.reconciler.reconcile(self.venue)

        self.assertEqual(result.gross_revenue, Decimal("1500"))
        self.assertEqual(result.platform_fees, Decimal("150"))
        self.assertEqual(result.venue_payable, Decimal("1350"))
        self.assertEqual(result.outstanding, Decimal("1350"))
        self.assertEqual(result.collected_at_venue, Decimal("500"))
        # 900 owed for the online capture, 50 fee withheld from the cash one
        self.assertEqual(result.net_transferable, Decimal("850"))
        self.assertEqual(result.transfer_outstanding, Decimal("850"))

    def test_refunded_entries_excluded(self) -> None:
        entry = self._capture("1000")
        self._capture("400")
        entry.status = PaymentLedgerEntry.Status.REFUNDED
        entry.save()

        self.assertEqual(self.reconciler.reconcile(self.venue).venue_payable, Decimal("360"))

    def test_period_filter(self) -> None:
        self._capture("1000", days_ago=1)
        self._capture("400", days_ago=10)

        result = self.reconciler.reconcile(self.venue, self.today - timedelta(days=3), self.today)

        self.assertEqual(result.gross_revenue, Decimal("1000"))

    def test_generate_batch_collects_unbatched_entries_once(self) -> None:
        self._capture("1000")
        self._capture("500", collected_by=PaymentLedgerEntry.CollectedBy.VENUE)

        batch = self.reconciler.generate_batch(self.venue, self.today - timedelta(days=7), self.today)

        self.assertEqual(batch.status, PayoutBatch.Status.PENDING)
        self.assertEqual(batch.amount_gross, Decimal("1500"))
        self.assertEqual(batch.amount_fees, Decimal("150"))
        self.assertEqual(batch.amount_net, Decimal("850"))
        self.assertEqual(batch.entries.count(), 2)
        self.assertIsNone(self.reconciler.generate_batch(self.venue, self.today - timedelta(days=7), self.today))

    def test_late_entries_widen_the_period(self) -> None:
        self._capture("1000", days_ago=20)

        batch = self.reconciler.generate_batch(self.venue, self.today - timedelta(days=7), self.today)

        self.assertEqual(batch.period_start, self.today - timedelta(days=20))

    def test_batched_entry_cannot_move_to_another_batch(self) -> None:
        entry = self._capture("1000")
        self.reconciler.generate_batch(self.venue, self.today - timedelta(days=7), self.today)
        other = PayoutBatch.objects.create(venue=self.venue, period_start=self.today, period_end=self.today)

        entry = PaymentLedgerEntry.objects.get(pk=entry.pk)
        entry.payout_batch = other
        with self.assertRaises(LedgerEntryImmutable):
            entry.save()

    def test_process_requires_payout_details(self) -> None:
        self._capture("1000")
        batch = self.reconciler.generate_batch(self.venue, self.today - timedelta(days=7), self.today)

        with self.assertRaises(PayoutConfigurationError):
            self.reconciler.process_batch(PayoutBatch.objects.get(pk=batch.pk))

        self.assertEqual(PayoutBatch.objects.get(pk=batch.pk).status, PayoutBatch.Status.PENDING)

    def test_process_pays_out_and_clears_outstanding(self) -> None:
        self._capture("1000")
        self._add_payout_details()
        batch = self.reconciler.generate_batch(self.venue, self.today - timedelta(days=7), self.today)

        batch = self.reconciler.process_batch(PayoutBatch.objects.get(pk=batch.pk))

        self.assertEqual(batch.status, PayoutBatch.Status.PAID)
        self.assertTrue(batch.external_reference.startswith("pout_"))
        self.assertEqual(self.reconciler.reconcile(self.venue).outstanding, Decimal("0"))
        with self.assertRaises(PayoutError):
            self.reconciler.process_batch(PayoutBatch.objects.get(pk=batch.pk))

    def test_payout_api_failure_leaves_batch_for_manual_settlement(self) -> None:
        self._capture("1000")
        self._add_payout_details()
        batch = self.reconciler.generate_batch(self.venue, self.today - timedelta(days=7), self.today)

        batch = PayoutReconciler(UnreachablePayouts()).process_batch(PayoutBatch.objects.get(pk=batch.pk))

        self.assertEqual(batch.status, PayoutBatch.Status.SCHEDULED)
        self.assertTrue(batch.external_reference.startswith(f"MANUAL_{batch.pk}_"))

        batch = self.reconciler.mark_batch_paid(batch, "UTR123456")
        self.assertEqual(batch.status, PayoutBatch.Status.PAID)
        self.assertEqual(batch.external_reference, "UTR123456")

    def test_generate_due_batches_respects_frequency(self) -> None:
        self.venue.payout_frequency = PayoutFrequency.DAILY
        self.venue.save()
        self._capture("1000", days_ago=1)

        batches = self.reconciler.generate_due_batches(self.today)

        self.assertEqual(len(batches), 1)
        self.assertEqual(batches[0].period_end, self.today - timedelta(days=1))

    @override_settings(RECONCILIATION_DRIFT_WINDOW=3)
    def test_drift_reported_when_outstanding_keeps_growing(self) -> None:
        self._capture("1000")
        self.assertFalse(self.reconciler.detect_drift(self.venue).drift_detected)
        self._capture("1000")
        self.assertFalse(self.reconciler.detect_drift(self.venue).drift_detected)
        self._capture("1000")

        with self.assertRaises(ReconciliationDriftDetected) as ctx:
            self.reconciler.detect_drift(self.venue, raise_on_drift=True)

        self.assertEqual(ctx.exception.outstanding, Decimal("2700"))

    @override_settings(RECONCILIATION_DRIFT_WINDOW=3)
    def test_stable_outstanding_is_not_drift(self) -> None:
        self._capture("1000")
        for _ in range(3):
            snapshot = self.reconciler.detect_drift(self.venue)

        self.assertFalse(snapshot.drift_detected)

    @override_settings(RECONCILIATION_DRIFT_WINDOW=3)
    def test_cash_taken_at_venue_is_not_drift(self) -> None:
        for _ in range(3):
            self._capture("1000", collected_by=PaymentLedgerEntry.CollectedBy.VENUE)
            snapshot = self.reconciler.detect_drift(self.venue)

        self.assertFalse(snapshot.drift_detected)
        self.assertEqual(snapshot.outstanding, Decimal("2700"))
        self.assertEqual(snapshot.transfer_outstanding, Decimal("-300"))
