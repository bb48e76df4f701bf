"""Serializers for the finance domain: ledger, payouts, reconciliation."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from apps.venues.models import Venue

from .models import PaymentLedgerEntry, PayoutBatch, ReconciliationSnapshot


class PaymentLedgerEntrySerializer(serializers.ModelSerializer):
    booking_code = serializers.ReadOnlyField(source="reservation.booking_code")

    class Meta:
        model = PaymentLedgerEntry
        fields = [
            "id",
            "reservation",
            "booking_code",
            "venue",
            "currency",
            "gross",
            "commission_type_used",
            "commission_value_used",
            "platform_fee",
            "venue_amount",
            "is_advance",
            "collected_by",
            "payment_reference",
            "status",
            "realized_at",
            "refunded_at",
            "payout_batch",
        ]
        read_only_fields = fields


class PayoutBatchSerializer(serializers.ModelSerializer):
    entries_count = serializers.IntegerField(source="entries.count", read_only=True)

    class Meta:
        model = PayoutBatch
        fields = [
            "id",
            "venue",
            "currency",
            "period_start",
            "period_end",
            "amount_gross",
            "amount_fees",
            "amount_net",
            "status",
            "external_reference",
            "failure_reason",
            "payout_date",
            "entries_count",
            "created_at",
        ]
        read_only_fields = fields


class GenerateBatchSerializer(serializers.Serializer):
    venue = serializers.PrimaryKeyRelatedField(queryset=Venue.objects.all())
    period_start = serializers.DateField()
    period_end = serializers.DateField()

    def validate(self, attrs):  # type: ignore
        if attrs["period_end"] < attrs["period_start"]:
            raise serializers.ValidationError("Period end must not be before period start.")
        return attrs


class MarkPaidSerializer(serializers.Serializer):
    reference = serializers.CharField(required=False, allow_blank=True, max_length=100)


class ReconciliationQuerySerializer(serializers.Serializer):
    venue = serializers.PrimaryKeyRelatedField(queryset=Venue.objects.all())
    period_start = serializers.DateField(required=False)
    period_end = serializers.DateField(required=False)


class ReconciliationSnapshotSerializer(serializers.ModelSerializer):
    class Meta:
        model = ReconciliationSnapshot
        fields = [
            "id",
            "venue",
            "taken_at",
            "gross_revenue",
            "venue_payable",
            "already_paid_out",
            "outstanding",
            "transfer_outstanding",
            "drift_detected",
        ]
        read_only_fields = fields
