"""Reservation models for Turfslot."""

from __future__ import annotations

import secrets
from datetime import time
from decimal import Decimal

from django.conf import settings  # type: ignore
from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from shared.domain.value_objects import TimeRange, format_hhmm

from .domain.commitment import COMMITTED_STATES, CommitmentMode as DomainCommitmentMode
from .domain.commitment import PaymentState as DomainPaymentState
from .domain.commitment import assert_transition


class Reservation(models.Model):
    """A player's hold on one venue interval and its payment progress."""

    class PaymentState(models.TextChoices):
        UNPAID = DomainPaymentState.UNPAID.value, _("Unpaid")
        PROCESSING = DomainPaymentState.PROCESSING.value, _("Payment in progress")
        PARTIALLY_PAID = DomainPaymentState.PARTIALLY_PAID.value, _("Advance paid")
        PAID = DomainPaymentState.PAID.value, _("Paid")
        PAY_AT_VENUE_PENDING = DomainPaymentState.PAY_AT_VENUE_PENDING.value, _("Pay at venue")
        FAILED = DomainPaymentState.FAILED.value, _("Failed")
        CANCELLED = DomainPaymentState.CANCELLED.value, _("Cancelled")
        REFUNDED = DomainPaymentState.REFUNDED.value, _("Refunded")

    class CommitmentMode(models.TextChoices):
        FULL = DomainCommitmentMode.FULL.value, _("Full payment")
        ADVANCE = DomainCommitmentMode.ADVANCE.value, _("Advance payment")
        GROUND = DomainCommitmentMode.GROUND.value, _("Pay at venue")

    class CancelledBy(models.TextChoices):
        PLAYER = "player", _("Player")
        VENUE = "venue", _("Venue")
        SYSTEM = "system", _("System")

    venue = models.ForeignKey(
        "venues.Venue",
        on_delete=models.PROTECT,
        related_name="reservations",
    )
    requester = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="reservations",
    )
    booking_code = models.CharField(max_length=12, unique=True, editable=False)
    date = models.DateField()
    start_time = models.TimeField()
    end_time = models.TimeField()
    duration_minutes = models.PositiveSmallIntegerField()
    currency = models.CharField(max_length=3, default="INR")
    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text=_("Price fixed when the reservation was created."),
    )
    amount_committed = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    payment_state = models.CharField(
        max_length=24,
        choices=PaymentState.choices,
        default=PaymentState.UNPAID,
    )
    commitment_mode = models.CharField(max_length=16, choices=CommitmentMode.choices, null=True, blank=True)
    advance_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    gateway_order_id = models.CharField(max_length=100, blank=True)
    gateway_payment_id = models.CharField(max_length=100, blank=True)
    match_reference = models.CharField(
        max_length=100,
        blank=True,
        help_text=_("Opaque link to a match or tournament fixture."),
    )
    processing_started_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.CharField(max_length=16, choices=CancelledBy.choices, blank=True)
    cancellation_reason = models.CharField(max_length=255, blank=True)
    failure_reason = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Reservation")
        verbose_name_plural = _("Reservations")
        ordering = ["-date", "start_time"]
        constraints = [
            models.CheckConstraint(
                check=models.Q(end_time__gt=models.F("start_time")) | models.Q(end_time=time(0, 0)),
                name="reservation_valid_times",
            ),
            models.CheckConstraint(
                check=models.Q(duration_minutes__gte=60),
                name="reservation_min_duration",
            ),
            models.CheckConstraint(
                check=models.Q(amount_committed__gte=0)
                & models.Q(amount_committed__lte=models.F("total_amount")),
                name="reservation_committed_within_total",
            ),
        ]
        indexes = [
            models.Index(fields=["venue", "date", "payment_state"]),
            models.Index(fields=["payment_state", "processing_started_at"]),
        ]

    def __str__(self) -> str:
        return f"Reservation #{self.booking_code} at {self.venue_id} on {self.date}"

    def save(self, *args, **kwargs):  # type: ignore
        if self._state.adding and not self.booking_code:
            self.booking_code = self.generate_booking_code()
        super().save(*args, **kwargs)

    @staticmethod
    def generate_booking_code() -> str:
        return secrets.token_hex(4).upper()

    @property
    def interval(self) -> TimeRange:
        return TimeRange.from_times(self.start_time, self.end_time)

    @property
    def is_committed(self) -> bool:
        return DomainPaymentState(self.payment_state) in COMMITTED_STATES

    @property
    def amount_remaining(self) -> Decimal:
        return self.total_amount - self.amount_committed

    def move_to(self, target: str, **changes) -> str:
        """
        Apply a transition from the commitment table and persist it

        Returns the previous state. Extra keyword arguments are model
        fields updated in the same write.
        """
        previous = self.payment_state
        assert_transition(previous, target)
        self.payment_state = DomainPaymentState(target).value
        for name, value in changes.items():
            setattr(self, name, value)
        self.save(update_fields=["payment_state", "updated_at", *changes.keys()])
        return previous

    def read_model(self) -> dict:
        """Public calendar shape: no amounts, no requester."""
        return {
            "venue_id": self.venue_id,
            "date": self.date.isoformat(),
            "start_time": format_hhmm(self.interval.start),
            "end_time": format_hhmm(self.interval.end),
            "payment_state": self.payment_state,
        }
