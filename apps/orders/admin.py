"""Admin registration for orders."""

from __future__ import annotations

from django.contrib import admin

from .models import Order


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        "order_code",
        "vehicle_id",
        "start_date",
        "end_date",
        "total_price",
        "payment_status",
        "fulfillment_status",
        "created_at",
    )
    list_filter = ("payment_status", "fulfillment_status", "vehicle_id", "driver_language")
    search_fields = ("order_code", "contact_name", "contact_phone", "contact_email")
    date_hierarchy = "start_date"
    readonly_fields = (
        "order_code",
        "total_price",
        "deposit_amount",
        "payment_status",
        "paid_at",
        "checkout_session_id",
        "created_at",
        "updated_at",
    )

    def has_delete_permission(self, request, obj=None):
        return False
