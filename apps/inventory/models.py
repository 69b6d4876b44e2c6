"""Inventory models for charter vehicles."""

from __future__ import annotations

from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class InventoryCapacity(models.Model):
    """
    Remaining capacity for a vehicle on one calendar day.

    Capacity for a key may be split over several rows (shards); every
    read sums them. Rows are provisioned out of band (admin, fixtures).
    """

    vehicle_id = models.CharField(max_length=64)
    date = models.DateField()
    remaining = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Inventory capacity")
        verbose_name_plural = _("Inventory capacity")
        ordering = ["date", "vehicle_id", "pk"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(remaining__gte=0),
                name="inventory_capacity_non_negative",
            ),
        ]
        indexes = [
            models.Index(fields=["vehicle_id", "date"]),
        ]

    def __str__(self) -> str:
        return f"{self.vehicle_id} @ {self.date}: {self.remaining}"


class HoldQuerySet(models.QuerySet):
    def active(self, now=None):
        return self.filter(expires_at__gt=now or timezone.now())

    def expired(self, now=None):
        return self.filter(expires_at__lte=now or timezone.now())


class InventoryHold(models.Model):
    """Expiring reservation of one unit while the customer is on the payment page."""

    vehicle_id = models.CharField(max_length=64)
    date = models.DateField()
    order_code = models.CharField(max_length=32)
    expires_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    objects = HoldQuerySet.as_manager()

    class Meta:
        verbose_name = _("Inventory hold")
        verbose_name_plural = _("Inventory holds")
        ordering = ["expires_at"]
        constraints = [
            models.UniqueConstraint(fields=["order_code", "date"], name="inventory_hold_unique_order_day"),
        ]
        indexes = [
            models.Index(fields=["vehicle_id", "date", "expires_at"]),
        ]

    def __str__(self) -> str:
        return f"Hold {self.order_code} {self.vehicle_id} @ {self.date} until {self.expires_at:%H:%M}"

    @property
    def is_active(self) -> bool:
        return self.expires_at > timezone.now()


class InventoryConsumption(models.Model):
    """Confirmed decrement for a paid order; at most one per (order, day)."""

    vehicle_id = models.CharField(max_length=64)
    date = models.DateField()
    order_code = models.CharField(max_length=32)
    capacity = models.ForeignKey(
        InventoryCapacity,
        on_delete=models.PROTECT,
        related_name="consumptions",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Inventory consumption")
        verbose_name_plural = _("Inventory consumptions")
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["order_code", "date"], name="inventory_consumption_unique_order_day"),
        ]

    def __str__(self) -> str:
        return f"{self.order_code} consumed {self.vehicle_id} @ {self.date}"
