"""Order models for charter bookings."""

from __future__ import annotations

import secrets
from datetime import date
from decimal import Decimal

from django.core.exceptions import ValidationError  # type: ignore
from django.core.validators import MinValueValidator  # type: ignore
from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from shared.domain.value_objects import DateRange, Money


def generate_order_code(prefix: str = "ORD", today: date | None = None) -> str:
    """ORD-YYYYMMDD-NNNNN: creation date plus five random digits."""
    today = today or timezone.localdate()
    return f"{prefix}-{today:%Y%m%d}-{secrets.randbelow(100000):05d}"


class BookingStep(models.IntegerChoices):
    DATES = 1, _("Dates")
    VEHICLE = 2, _("Vehicle and service")
    DETAILS = 3, _("Customer details")
    PAYMENT = 4, _("Deposit payment")
    CONFIRMATION = 5, _("Confirmation")


class Order(models.Model):
    """Charter booking from creation through deposit payment."""

    class PaymentStatus(models.TextChoices):
        UNPAID = "unpaid", _("Unpaid")
        PAID = "paid", _("Paid")

    class FulfillmentStatus(models.TextChoices):
        PENDING = "pending", _("Awaiting deposit")
        CONFIRMED = "confirmed", _("Confirmed")
        COMPLETED = "completed", _("Completed")
        CANCELLED = "cancelled", _("Cancelled")

    order_code = models.CharField(max_length=32, unique=True, editable=False)
    source = models.CharField(
        max_length=20,
        default="web",
        help_text=_("Booking channel (web, api, back office)."),
    )
    start_date = models.DateField()
    end_date = models.DateField()
    pickup_location = models.CharField(max_length=255)
    return_location = models.CharField(max_length=255, blank=True)
    itinerary = models.TextField(blank=True)
    vehicle_id = models.CharField(max_length=64)
    driver_language = models.CharField(max_length=8)
    duration_hours = models.PositiveSmallIntegerField(validators=[MinValueValidator(1)])
    total_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text=_("Fixed at creation; changes only through an explicit re-price."),
    )
    deposit_amount = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, default="CNY")
    passengers = models.PositiveSmallIntegerField(default=1)
    luggage = models.PositiveSmallIntegerField(default=0)
    contact_name = models.CharField(max_length=120)
    contact_phone = models.CharField(max_length=32)
    contact_email = models.EmailField()
    remark = models.TextField(blank=True)
    payment_status = models.CharField(
        max_length=10,
        choices=PaymentStatus.choices,
        default=PaymentStatus.UNPAID,
    )
    fulfillment_status = models.CharField(
        max_length=20,
        choices=FulfillmentStatus.choices,
        default=FulfillmentStatus.PENDING,
    )
    checkout_session_id = models.CharField(max_length=255, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Order")
        verbose_name_plural = _("Orders")
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_date__gte=models.F("start_date")),
                name="order_valid_dates",
            ),
            models.CheckConstraint(
                condition=models.Q(payment_status="unpaid") | models.Q(paid_at__isnull=False),
                name="order_paid_has_timestamp",
            ),
        ]
        indexes = [
            models.Index(fields=["vehicle_id", "start_date"]),
            models.Index(fields=["payment_status"]),
        ]

    def __str__(self) -> str:
        return f"Order {self.order_code} ({self.vehicle_id}, {self.start_date})"

    @property
    def is_paid(self) -> bool:
        return self.payment_status == self.PaymentStatus.PAID

    @property
    def dates(self) -> DateRange:
        return DateRange(self.start_date, self.end_date)

    @property
    def deposit(self) -> Money:
        return Money(self.deposit_amount, self.currency)

    @property
    def total(self) -> Money:
        return Money(self.total_price, self.currency)

    @property
    def balance_due(self) -> Money:
        return self.total.minus_floor_zero(self.deposit)

    def _guard_transitions(self) -> None:
        stored = type(self).objects.filter(pk=self.pk).values("order_code", "payment_status").first()
        if stored is None:
            return
        if stored["order_code"] != self.order_code:
            raise ValidationError(_("Order code cannot be changed."))
        if stored["payment_status"] == self.PaymentStatus.PAID and self.payment_status != self.PaymentStatus.PAID:
            raise ValidationError(_("A paid order cannot return to unpaid."))

    def save(self, *args, **kwargs):  # type: ignore
        if not self._state.adding:
            self._guard_transitions()
        if self.total_price is not None and self.total_price < Decimal("0"):
            raise ValidationError(_("Total price cannot be negative."))
        super().save(*args, **kwargs)
