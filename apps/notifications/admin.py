"""Admin registration for the event outbox."""

from __future__ import annotations

from django.contrib import admin

from .models import OutboxEvent
from .services import deliver


@admin.register(OutboxEvent)
class OutboxEventAdmin(admin.ModelAdmin):
    list_display = ("created_at", "event_type", "aggregate_id", "status", "attempts", "delivered_at")
    list_filter = ("status", "event_type")
    search_fields = ("aggregate_id", "event_id")
    readonly_fields = (
        "event_id",
        "event_type",
        "aggregate_id",
        "payload",
        "attempts",
        "last_error",
        "delivered_handlers",
        "created_at",
        "delivered_at",
    )
    actions = ["redeliver"]

    @admin.action(description="Redeliver selected events")
    def redeliver(self, request, queryset):
        delivered = sum(1 for row in queryset if deliver(row.pk))
        self.message_user(request, f"{delivered} of {queryset.count()} event(s) delivered.")
