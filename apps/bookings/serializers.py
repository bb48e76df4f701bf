"""Serializers for the booking domain."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from apps.venues.models import Venue

from .models import Reservation


class ReservationCreateSerializer(serializers.Serializer):
    """Player request for one interval at a venue."""

    venue = serializers.PrimaryKeyRelatedField(queryset=Venue.objects.filter(is_active=True))
    date = serializers.DateField()
    start_time = serializers.TimeField(format="%H:%M")
    duration_minutes = serializers.IntegerField(required=False, min_value=60)
    match_reference = serializers.CharField(required=False, allow_blank=True, max_length=100)


class ReservationSerializer(serializers.ModelSerializer):
    venue_id = serializers.ReadOnlyField(source="venue.id")
    venue_name = serializers.ReadOnlyField(source="venue.name")
    requester_id = serializers.ReadOnlyField(source="requester.id")
    start_time = serializers.TimeField(format="%H:%M", read_only=True)
    end_time = serializers.TimeField(format="%H:%M", read_only=True)
    amount_remaining = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Reservation
        fields = [
            "id",
            "booking_code",
            "venue_id",
            "venue_name",
            "requester_id",
            "date",
            "start_time",
            "end_time",
            "duration_minutes",
            "currency",
            "total_amount",
            "amount_committed",
            "amount_remaining",
            "payment_state",
            "commitment_mode",
            "advance_amount",
            "gateway_order_id",
            "match_reference",
            "paid_at",
            "cancelled_at",
            "cancelled_by",
            "cancellation_reason",
            "failure_reason",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class CheckoutSerializer(serializers.Serializer):
    mode = serializers.ChoiceField(choices=Reservation.CommitmentMode.choices)


class VerifyPaymentSerializer(serializers.Serializer):
    order_id = serializers.CharField(max_length=100)
    payment_id = serializers.CharField(max_length=100)
    signature = serializers.CharField(max_length=256)


class PaymentFailureSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255)


class CollectPaymentSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=0)
    reference = serializers.CharField(required=False, allow_blank=True, max_length=100)


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255)
