"""Payment audit models."""

from __future__ import annotations

from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class PaymentRecord(models.Model):
    """Captured deposit for an order. At most one per order and per processor session."""

    order = models.OneToOneField(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="payment_record",
    )
    external_reference = models.CharField(
        max_length=255,
        unique=True,
        help_text=_("Processor checkout session id."),
    )
    payment_intent = models.CharField(max_length=255, blank=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="CNY")
    paid = models.BooleanField(default=True)
    payload = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Payment record")
        verbose_name_plural = _("Payment records")
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.external_reference} for {self.order_id}: {self.amount} {self.currency}"


class PaymentNotification(models.Model):
    """Append-only log of every webhook delivery and what was done with it."""

    class Status(models.TextChoices):
        PAID = "paid", _("Order marked paid")
        DUPLICATE = "duplicate", _("Duplicate delivery")
        IGNORED = "ignored", _("Event type ignored")
        INCOMPLETE = "incomplete", _("Missing correlation fields")
        ORDER_NOT_FOUND = "order_not_found", _("Unknown order")
        OVERBOOKED = "overbooked", _("Paid but inventory exhausted")
        FAILED = "failed", _("Failed")

    event_id = models.CharField(max_length=255, blank=True)
    event_type = models.CharField(max_length=100, blank=True)
    order_code = models.CharField(max_length=32, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices)
    detail = models.CharField(max_length=255, blank=True)
    payload = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Payment notification")
        verbose_name_plural = _("Payment notifications")
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["order_code"]),
            models.Index(fields=["event_id"]),
        ]

    def __str__(self) -> str:
        return f"{self.event_type or 'event'} {self.event_id} -> {self.status}"
