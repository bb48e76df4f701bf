"""Serializers for venues, their settings, blocks and availability queries."""

from __future__ import annotations

from django.core.exceptions import ValidationError as DjangoValidationError  # type: ignore
from rest_framework import serializers  # type: ignore

from apps.bookings.domain.availability import DURATION_OPTIONS
from shared.domain.value_objects import TimeRange
from shared.infrastructure.encryption import mask_tail

from .models import RateType, Venue, VenueBlock, VenuePayoutDetails, validate_opening_hours
from .pricing import PricingRuleError, validate_rules


def _pair_is_complete(attrs, instance, type_field: str, value_field: str) -> bool:
    type_value = attrs.get(type_field, getattr(instance, type_field, None))
    value = attrs.get(value_field, getattr(instance, value_field, None))
    return (type_value is None) == (value is None)


class VenueSerializer(serializers.ModelSerializer):
    """Public venue card plus owner-editable settings."""

    owner_id = serializers.ReadOnlyField(source="owner.id")
    min_hourly_price = serializers.SerializerMethodField()
    max_hourly_price = serializers.SerializerMethodField()

    class Meta:
        model = Venue
        fields = [
            "id",
            "owner_id",
            "name",
            "city",
            "address",
            "is_active",
            "currency",
            "price_per_hour",
            "min_hourly_price",
            "max_hourly_price",
            "opening_hours",
            "slot_duration_minutes",
            "pricing_rules",
            "allows_advance_payment",
            "advance_amount_type",
            "advance_amount_value",
            "allows_pay_at_venue",
            "commission_type",
            "commission_value",
            "payout_frequency",
            "created_at",
            "updated_at",
        ]
        read_only_fields = [
            "id",
            "owner_id",
            "commission_type",
            "commission_value",
            "payout_frequency",
            "created_at",
            "updated_at",
        ]

    def get_min_hourly_price(self, obj: Venue) -> str:
        return str(obj.hourly_price_range[0])

    def get_max_hourly_price(self, obj: Venue) -> str:
        return str(obj.hourly_price_range[1])

    def validate_opening_hours(self, value):  # type: ignore
        try:
            validate_opening_hours(value)
        except DjangoValidationError as exc:
            raise serializers.ValidationError(exc.messages) from exc
        return value

    def validate_pricing_rules(self, value):  # type: ignore
        try:
            validate_rules(value)
        except PricingRuleError as exc:
            raise serializers.ValidationError(str(exc)) from exc
        return value

    def validate_slot_duration_minutes(self, value):  # type: ignore
        if value not in DURATION_OPTIONS:
            raise serializers.ValidationError(f"Choose one of {list(DURATION_OPTIONS)}.")
        return value

    def validate(self, attrs):  # type: ignore
        if not _pair_is_complete(attrs, self.instance, "advance_amount_type", "advance_amount_value"):
            raise serializers.ValidationError("Advance amount type and value must be set together.")
        advance_type = attrs.get("advance_amount_type", getattr(self.instance, "advance_amount_type", None))
        advance_value = attrs.get("advance_amount_value", getattr(self.instance, "advance_amount_value", None))
        if advance_type == RateType.PERCENTAGE and advance_value is not None and not 0 < advance_value <= 100:
            raise serializers.ValidationError("Advance percentage must be between 0 and 100.")
        if advance_type == RateType.FLAT and advance_value is not None and advance_value <= 0:
            raise serializers.ValidationError("Flat advance must be greater than 0.")
        return attrs


class VenueCommissionSerializer(serializers.ModelSerializer):
    """Admin-only commission override and payout frequency."""

    class Meta:
        model = Venue
        fields = ["commission_type", "commission_value", "payout_frequency"]

    def validate(self, attrs):  # type: ignore
        if not _pair_is_complete(attrs, self.instance, "commission_type", "commission_value"):
            raise serializers.ValidationError("Commission type and value must be set together.")
        commission_type = attrs.get("commission_type", getattr(self.instance, "commission_type", None))
        value = attrs.get("commission_value", getattr(self.instance, "commission_value", None))
        if value is not None and value < 0:
            raise serializers.ValidationError("Commission cannot be negative.")
        if commission_type == RateType.PERCENTAGE and value is not None and value > 100:
            raise serializers.ValidationError("Percentage commission cannot exceed 100.")
        return attrs


class VenueBlockSerializer(serializers.ModelSerializer):
    class Meta:
        model = VenueBlock
        fields = ["id", "venue", "date", "start_time", "end_time", "reason", "created_at"]
        read_only_fields = ["id", "venue", "created_at"]

    def validate(self, attrs):  # type: ignore
        try:
            TimeRange.from_times(attrs["start_time"], attrs["end_time"])
        except ValueError:
            raise serializers.ValidationError("Block must end after it starts.")
        return attrs


class VenuePayoutDetailsSerializer(serializers.ModelSerializer):
    account_number = serializers.CharField(write_only=True, max_length=34)
    account_number_masked = serializers.SerializerMethodField()
    is_complete = serializers.SerializerMethodField()

    class Meta:
        model = VenuePayoutDetails
        fields = [
            "account_name",
            "account_number",
            "account_number_masked",
            "ifsc",
            "bank_name",
            "is_complete",
            "updated_at",
        ]
        read_only_fields = ["updated_at"]

    def get_account_number_masked(self, obj: VenuePayoutDetails) -> str:
        return mask_tail(obj.account_number)

    def get_is_complete(self, obj: VenuePayoutDetails) -> bool:
        return obj.is_complete()

    def validate_ifsc(self, value: str) -> str:
        value = value.strip().upper()
        if value and len(value) != 11:
            raise serializers.ValidationError("IFSC codes are 11 characters long.")
        return value


class AvailabilityQuerySerializer(serializers.Serializer):
    date = serializers.DateField()
    duration = serializers.IntegerField(required=False, min_value=60)
    start_time = serializers.TimeField(required=False, help_text="Re-check a picked start for the new duration.")
