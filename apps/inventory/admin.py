"""Admin registration for the availability ledger."""

from __future__ import annotations

from django.contrib import admin

from .models import InventoryCapacity, InventoryConsumption, InventoryHold


@admin.register(InventoryCapacity)
class InventoryCapacityAdmin(admin.ModelAdmin):
    list_display = ("vehicle_id", "date", "remaining", "updated_at")
    list_filter = ("vehicle_id",)
    date_hierarchy = "date"
    search_fields = ("vehicle_id",)


@admin.register(InventoryHold)
class InventoryHoldAdmin(admin.ModelAdmin):
    list_display = ("order_code", "vehicle_id", "date", "expires_at", "is_active")
    list_filter = ("vehicle_id",)
    search_fields = ("order_code",)

    @admin.display(boolean=True)
    def is_active(self, obj):
        return obj.is_active


@admin.register(InventoryConsumption)
class InventoryConsumptionAdmin(admin.ModelAdmin):
    list_display = ("order_code", "vehicle_id", "date", "capacity", "created_at")
    search_fields = ("order_code", "vehicle_id")
    readonly_fields = ("vehicle_id", "date", "order_code", "capacity", "created_at")

    def has_add_permission(self, request):
        return False
