"""Admin registration for venues."""

from __future__ import annotations

from django.contrib import admin

from .models import PlatformSettings, Venue, VenueBlock, VenuePayoutDetails


class VenueBlockInline(admin.TabularInline):
    model = VenueBlock
    extra = 0
    fields = ("date", "start_time", "end_time", "reason")


@admin.register(Venue)
class VenueAdmin(admin.ModelAdmin):
    list_display = (
        "name",
        "owner",
        "city",
        "is_active",
        "price_per_hour",
        "commission_type",
        "commission_value",
        "payout_frequency",
    )
    list_filter = ("is_active", "city", "allows_advance_payment", "allows_pay_at_venue", "payout_frequency")
    search_fields = ("name", "city", "owner__email")
    inlines = [VenueBlockInline]


@admin.register(VenuePayoutDetails)
class VenuePayoutDetailsAdmin(admin.ModelAdmin):
    list_display = ("venue", "account_name", "ifsc", "bank_name", "updated_at")
    search_fields = ("venue__name", "account_name", "ifsc")
    exclude = ("account_number",)


@admin.register(PlatformSettings)
class PlatformSettingsAdmin(admin.ModelAdmin):
    list_display = ("default_commission_type", "default_commission_value", "default_payout_frequency", "updated_at")

    def has_add_permission(self, request):  # type: ignore
        return not PlatformSettings.objects.exists()
