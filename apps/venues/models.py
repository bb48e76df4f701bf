"""Venue domain models for Turfslot."""

from __future__ import annotations

from datetime import date, time
from decimal import Decimal

from django.conf import settings  # type: ignore
from django.core.exceptions import ValidationError  # type: ignore
from django.core.validators import MinValueValidator  # type: ignore
from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from apps.finances.domain.commission import Commission, CommissionRule, rule_from_fields
from shared.domain.value_objects import TimeRange, parse_hhmm
from shared.infrastructure.fields import EncryptedCharField

from .pricing import PricingRuleError, price_range, validate_rules

WEEKDAY_KEYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def default_opening_hours() -> dict:
    return {day: {"open": True, "start": "06:00", "end": "23:00"} for day in WEEKDAY_KEYS}


class RateType(models.TextChoices):
    PERCENTAGE = "percentage", _("Percentage")
    FLAT = "flat", _("Flat amount")


class PayoutFrequency(models.TextChoices):
    DAILY = "daily", _("Daily")
    WEEKLY = "weekly", _("Weekly")
    MONTHLY = "monthly", _("Monthly")


class Venue(models.Model):
    """Bookable sports venue (turf, court, ground)."""

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="venues",
    )
    name = models.CharField(max_length=255)
    city = models.CharField(max_length=120, blank=True)
    address = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True)
    currency = models.CharField(max_length=3, default="INR")
    price_per_hour = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0"))],
    )
    opening_hours = models.JSONField(
        default=default_opening_hours,
        help_text=_('Per weekday: {"monday": {"open": true, "start": "06:00", "end": "23:00"}}.'),
    )
    slot_duration_minutes = models.PositiveSmallIntegerField(
        default=60,
        help_text=_("Default duration offered to players; must be a multiple of 30."),
    )
    pricing_rules = models.JSONField(default=dict, blank=True)

    commission_type = models.CharField(max_length=20, choices=RateType.choices, null=True, blank=True)
    commission_value = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    payout_frequency = models.CharField(
        max_length=20,
        choices=PayoutFrequency.choices,
        null=True,
        blank=True,
        help_text=_("Empty means the platform default."),
    )

    allows_advance_payment = models.BooleanField(default=True)
    advance_amount_type = models.CharField(max_length=20, choices=RateType.choices, null=True, blank=True)
    advance_amount_value = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    allows_pay_at_venue = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Venue")
        verbose_name_plural = _("Venues")
        ordering = ["name"]
        constraints = [
            models.CheckConstraint(
                check=(
                    models.Q(commission_type__isnull=True, commission_value__isnull=True)
                    | models.Q(commission_type__isnull=False, commission_value__isnull=False)
                ),
                name="venue_commission_pair_complete",
            ),
            models.CheckConstraint(
                check=(
                    models.Q(advance_amount_type__isnull=True, advance_amount_value__isnull=True)
                    | models.Q(advance_amount_type__isnull=False, advance_amount_value__isnull=False)
                ),
                name="venue_advance_pair_complete",
            ),
        ]

    def __str__(self) -> str:
        return self.name

    def clean(self) -> None:
        if self.slot_duration_minutes % 30 or self.slot_duration_minutes < 60:
            raise ValidationError(_("Slot duration must be a multiple of 30 minutes and at least 60."))
        if (self.commission_type is None) != (self.commission_value is None):
            raise ValidationError(_("Commission type and value must be set together."))
        if (self.advance_amount_type is None) != (self.advance_amount_value is None):
            raise ValidationError(_("Advance amount type and value must be set together."))
        if self.commission_type == RateType.PERCENTAGE and self.commission_value > 100:
            raise ValidationError(_("Percentage commission cannot exceed 100."))
        if self.advance_amount_type == RateType.PERCENTAGE and self.advance_amount_value > 100:
            raise ValidationError(_("Advance percentage cannot exceed 100."))
        if self.advance_amount_type and self.advance_amount_value <= 0:
            raise ValidationError(_("Advance amount must be greater than 0."))
        validate_opening_hours(self.opening_hours)
        try:
            validate_rules(self.pricing_rules)
        except PricingRuleError as exc:
            raise ValidationError({"pricing_rules": str(exc)}) from exc

    def opening_window(self, on_date: date) -> TimeRange | None:
        """Opening hours for the weekday of ``on_date``; ``None`` when closed."""
        hours = (self.opening_hours or {}).get(WEEKDAY_KEYS[on_date.weekday()])
        if not hours or not hours.get("open"):
            return None
        start = parse_hhmm(hours["start"])
        end = parse_hhmm(hours["end"])
        if start >= end:
            return None
        return TimeRange(start, end)

    @property
    def commission_rule(self) -> CommissionRule:
        return rule_from_fields(self.commission_type, self.commission_value)

    @property
    def effective_payout_frequency(self) -> str:
        if self.payout_frequency:
            return self.payout_frequency
        platform = PlatformSettings.current()
        return platform.default_payout_frequency if platform else PayoutFrequency.WEEKLY

    @property
    def hourly_price_range(self) -> tuple[Decimal, Decimal]:
        return price_range(self.price_per_hour, self.pricing_rules)


def validate_opening_hours(opening_hours) -> None:
    if not isinstance(opening_hours, dict):
        raise ValidationError({"opening_hours": _("Opening hours must be an object keyed by weekday.")})
    for day, hours in opening_hours.items():
        if day not in WEEKDAY_KEYS:
            raise ValidationError({"opening_hours": _("Unknown weekday: %(day)s") % {"day": day}})
        if not isinstance(hours, dict) or not hours.get("open"):
            continue
        try:
            start = parse_hhmm(hours.get("start"))
            end = parse_hhmm(hours.get("end"))
        except (TypeError, ValueError) as exc:
            raise ValidationError({"opening_hours": f"{day}: {exc}"}) from exc
        if start >= end:
            raise ValidationError({"opening_hours": _("%(day)s: opening must be before closing.") % {"day": day}})


class VenueBlock(models.Model):
    """Interval the owner has taken off sale (maintenance, private event)."""

    venue = models.ForeignKey(Venue, on_delete=models.CASCADE, related_name="blocks")
    date = models.DateField()
    start_time = models.TimeField()
    end_time = models.TimeField()
    reason = models.CharField(max_length=255, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Venue block")
        verbose_name_plural = _("Venue blocks")
        ordering = ["date", "start_time"]
        constraints = [
            models.CheckConstraint(
                check=models.Q(end_time__gt=models.F("start_time")) | models.Q(end_time=time(0, 0)),
                name="venue_block_valid_times",
            ),
        ]
        indexes = [models.Index(fields=["venue", "date"])]

    def __str__(self) -> str:
        return f"{self.venue_id} blocked {self.date} {self.start_time}-{self.end_time}"

    @property
    def interval(self) -> TimeRange:
        return TimeRange.from_times(self.start_time, self.end_time)


class VenuePayoutDetails(models.Model):
    """Bank account a venue is paid out to. The account number is encrypted at rest."""

    venue = models.OneToOneField(Venue, on_delete=models.CASCADE, related_name="payout_details")
    account_name = models.CharField(max_length=255, blank=True)
    account_number = EncryptedCharField(max_length=34, blank=True)
    ifsc = models.CharField(max_length=11, blank=True)
    bank_name = models.CharField(max_length=255, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Venue payout details")
        verbose_name_plural = _("Venue payout details")

    def __str__(self) -> str:
        return f"Payout details for {self.venue_id}"

    def missing_fields(self) -> list[str]:
        return [name for name in ("account_name", "account_number", "ifsc") if not getattr(self, name)]

    def is_complete(self) -> bool:
        return not self.missing_fields()


class PlatformSettings(models.Model):
    """Single row with platform-wide defaults."""

    SINGLETON_ID = 1

    default_commission_type = models.CharField(max_length=20, choices=RateType.choices, null=True, blank=True)
    default_commission_value = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    default_payout_frequency = models.CharField(
        max_length=20,
        choices=PayoutFrequency.choices,
        default=PayoutFrequency.WEEKLY,
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Platform settings")
        verbose_name_plural = _("Platform settings")

    def __str__(self) -> str:
        return "Platform settings"

    def save(self, *args, **kwargs):  # type: ignore
        self.pk = self.SINGLETON_ID
        super().save(*args, **kwargs)

    @classmethod
    def current(cls) -> "PlatformSettings | None":
        return cls.objects.filter(pk=cls.SINGLETON_ID).first()

    @property
    def default_commission(self) -> Commission | None:
        if not self.default_commission_type or self.default_commission_value is None:
            return None
        return Commission(self.default_commission_type, self.default_commission_value)
