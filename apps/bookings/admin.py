"""Admin registration for reservations."""

from __future__ import annotations

from django.contrib import admin

from .models import Reservation


@admin.register(Reservation)
class ReservationAdmin(admin.ModelAdmin):
    list_display = (
        "booking_code",
        "venue",
        "requester",
        "date",
        "start_time",
        "end_time",
        "payment_state",
        "commitment_mode",
        "total_amount",
        "amount_committed",
        "created_at",
    )
    list_filter = ("payment_state", "commitment_mode", "date")
    search_fields = ("booking_code", "venue__name", "requester__email", "match_reference")
    readonly_fields = (
        "booking_code",
        "payment_state",
        "amount_committed",
        "total_amount",
        "gateway_order_id",
        "gateway_payment_id",
        "created_at",
        "updated_at",
    )
