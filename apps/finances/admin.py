"""Admin registration for ledger and payouts."""

from __future__ import annotations

from django.contrib import admin

from .models import PaymentLedgerEntry, PayoutBatch, ReconciliationSnapshot


@admin.register(PaymentLedgerEntry)
class PaymentLedgerEntryAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "reservation",
        "venue",
        "gross",
        "platform_fee",
        "venue_amount",
        "commission_type_used",
        "commission_value_used",
        "collected_by",
        "status",
        "realized_at",
        "payout_batch",
    )
    list_filter = ("status", "collected_by", "is_advance", "commission_type_used")
    search_fields = ("reservation__booking_code", "payment_reference", "venue__name")

    def has_change_permission(self, request, obj=None):  # type: ignore
        return False

    def has_delete_permission(self, request, obj=None):  # type: ignore
        return False


@admin.register(PayoutBatch)
class PayoutBatchAdmin(admin.ModelAdmin):
    list_display = ("id", "venue", "period_start", "period_end", "amount_net", "status", "external_reference", "payout_date")
    list_filter = ("status",)
    search_fields = ("venue__name", "external_reference")


@admin.register(ReconciliationSnapshot)
class ReconciliationSnapshotAdmin(admin.ModelAdmin):
    list_display = ("venue", "taken_at", "outstanding", "transfer_outstanding", "drift_detected")
    list_filter = ("drift_detected",)
