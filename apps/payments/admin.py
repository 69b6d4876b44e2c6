"""Admin registration for payment audit tables."""

from __future__ import annotations

from django.contrib import admin

from .models import PaymentNotification, PaymentRecord


@admin.register(PaymentRecord)
class PaymentRecordAdmin(admin.ModelAdmin):
    list_display = ("external_reference", "order", "amount", "currency", "paid", "created_at")
    search_fields = ("external_reference", "payment_intent", "order__order_code")
    readonly_fields = ("order", "external_reference", "payment_intent", "amount", "currency", "paid", "payload", "created_at")

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(PaymentNotification)
class PaymentNotificationAdmin(admin.ModelAdmin):
    list_display = ("created_at", "event_type", "event_id", "order_code", "status")
    list_filter = ("status", "event_type")
    search_fields = ("event_id", "order_code")
    readonly_fields = ("event_id", "event_type", "order_code", "status", "detail", "payload", "created_at")

    def has_add_permission(self, request):
        return False
