"""Admin registration for the price table."""

from __future__ import annotations

from django.contrib import admin

from .models import PriceRule


@admin.register(PriceRule)
class PriceRuleAdmin(admin.ModelAdmin):
    list_display = (
        "vehicle_id",
        "driver_language",
        "duration_hours",
        "start_date",
        "end_date",
        "price",
        "currency",
        "created_at",
    )
    list_filter = ("driver_language", "duration_hours", "vehicle_id")
    search_fields = ("vehicle_id", "note")
    readonly_fields = ("created_at",)
