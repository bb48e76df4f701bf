"""Money models for Turfslot: ledger entries, payout batches, reconciliation snapshots."""

from __future__ import annotations

from decimal import Decimal

from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from apps.venues.models import RateType

from .domain.errors import LedgerEntryImmutable


class PaymentLedgerEntry(models.Model):
    """
    One realized payment for a reservation.

    Commission type and value are copied from the rule in force at capture
    time. After creation an entry may only be refunded or assigned to a
    payout batch once.
    """

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        PAID = "paid", _("Paid")
        FAILED = "failed", _("Failed")
        REFUNDED = "refunded", _("Refunded")

    class CollectedBy(models.TextChoices):
        PLATFORM = "platform", _("Platform (online)")
        VENUE = "venue", _("Venue (in person)")

    MUTABLE_FIELDS = ("status", "refunded_at", "refund_reference", "payout_batch")

    reservation = models.ForeignKey(
        "bookings.Reservation",
        on_delete=models.PROTECT,
        related_name="ledger_entries",
    )
    venue = models.ForeignKey(
        "venues.Venue",
        on_delete=models.PROTECT,
        related_name="ledger_entries",
    )
    currency = models.CharField(max_length=3, default="INR")
    gross = models.DecimalField(max_digits=12, decimal_places=2)
    commission_type_used = models.CharField(max_length=20, choices=RateType.choices)
    commission_value_used = models.DecimalField(max_digits=10, decimal_places=2)
    platform_fee = models.DecimalField(max_digits=12, decimal_places=2)
    venue_amount = models.DecimalField(max_digits=12, decimal_places=2)
    is_advance = models.BooleanField(default=False)
    collected_by = models.CharField(
        max_length=16,
        choices=CollectedBy.choices,
        default=CollectedBy.PLATFORM,
    )
    payment_reference = models.CharField(max_length=100, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PAID)
    realized_at = models.DateTimeField()
    refunded_at = models.DateTimeField(null=True, blank=True)
    refund_reference = models.CharField(max_length=100, blank=True)
    payout_batch = models.ForeignKey(
        "finances.PayoutBatch",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="entries",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Ledger entry")
        verbose_name_plural = _("Ledger entries")
        ordering = ["-realized_at"]
        constraints = [
            models.CheckConstraint(
                check=models.Q(platform_fee__gte=0) & models.Q(platform_fee__lte=models.F("gross")),
                name="ledger_fee_within_gross",
            ),
        ]
        indexes = [
            models.Index(fields=["venue", "status", "realized_at"]),
            models.Index(fields=["payout_batch"]),
        ]

    def __str__(self) -> str:
        return f"Ledger {self.pk} {self.gross} {self.currency} for reservation {self.reservation_id}"

    def save(self, *args, **kwargs):  # type: ignore
        if not self._state.adding:
            self._guard_immutable_fields()
        super().save(*args, **kwargs)

    def _guard_immutable_fields(self) -> None:
        stored = type(self).objects.get(pk=self.pk)
        for field in self._meta.concrete_fields:
            if field.primary_key or field.name in self.MUTABLE_FIELDS:
                continue
            if getattr(stored, field.attname) != getattr(self, field.attname):
                raise LedgerEntryImmutable(f"Ledger entry field '{field.name}' cannot change")
        if stored.payout_batch_id and stored.payout_batch_id != self.payout_batch_id:
            raise LedgerEntryImmutable("Ledger entry is already part of a payout batch")
        if stored.status == self.Status.REFUNDED and self.status != self.Status.REFUNDED:
            raise LedgerEntryImmutable("A refunded ledger entry cannot be reinstated")


class PayoutBatch(models.Model):
    """Venue payable for a period, paid out in one transfer."""

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        SCHEDULED = "scheduled", _("Scheduled")
        PAID = "paid", _("Paid")
        FAILED = "failed", _("Failed")

    venue = models.ForeignKey(
        "venues.Venue",
        on_delete=models.PROTECT,
        related_name="payout_batches",
    )
    currency = models.CharField(max_length=3, default="INR")
    period_start = models.DateField()
    period_end = models.DateField()
    amount_gross = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    amount_fees = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    amount_net = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    external_reference = models.CharField(max_length=100, blank=True)
    failure_reason = models.CharField(max_length=255, blank=True)
    payout_date = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Payout batch")
        verbose_name_plural = _("Payout batches")
        ordering = ["-period_end", "-created_at"]
        constraints = [
            models.CheckConstraint(
                check=models.Q(period_end__gte=models.F("period_start")),
                name="payout_valid_period",
            ),
        ]

    def __str__(self) -> str:
        return f"Payout {self.pk} for {self.venue_id} {self.period_start}..{self.period_end} ({self.status})"


class ReconciliationSnapshot(models.Model):
    """Outstanding venue balance recorded by the periodic drift check."""

    venue = models.ForeignKey(
        "venues.Venue",
        on_delete=models.CASCADE,
        related_name="reconciliation_snapshots",
    )
    taken_at = models.DateTimeField(auto_now_add=True)
    gross_revenue = models.DecimalField(max_digits=14, decimal_places=2)
    venue_payable = models.DecimalField(max_digits=14, decimal_places=2)
    already_paid_out = models.DecimalField(max_digits=14, decimal_places=2)
    outstanding = models.DecimalField(max_digits=14, decimal_places=2)
    transfer_outstanding = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    drift_detected = models.BooleanField(default=False)

    class Meta:
        verbose_name = _("Reconciliation snapshot")
        verbose_name_plural = _("Reconciliation snapshots")
        ordering = ["-taken_at", "-id"]

    def __str__(self) -> str:
        return f"Snapshot {self.venue_id} outstanding={self.outstanding}"
