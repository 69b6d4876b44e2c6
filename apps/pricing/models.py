"""Price table for charter services."""

from __future__ import annotations

from decimal import Decimal

from django.core.validators import MinValueValidator  # type: ignore
from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore

from shared.domain.value_objects import SUPPORTED_CURRENCIES


class PriceRule(models.Model):
    """Price for a vehicle/driver language/duration, optionally bound to a date window."""

    vehicle_id = models.CharField(max_length=64)
    driver_language = models.CharField(max_length=8)
    duration_hours = models.PositiveSmallIntegerField(validators=[MinValueValidator(1)])
    start_date = models.DateField(
        null=True,
        blank=True,
        help_text=_("Start of the validity window. Empty on both ends means a standing rule."),
    )
    end_date = models.DateField(null=True, blank=True)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(
        max_length=3,
        default="CNY",
        choices=[(code, code) for code in SUPPORTED_CURRENCIES],
        help_text=_("Must match BOOKING_CURRENCY; rules in other currencies are not quoted."),
    )
    note = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Price rule")
        verbose_name_plural = _("Price rules")
        ordering = ["vehicle_id", "driver_language", "duration_hours", "-start_date"]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(start_date__isnull=True, end_date__isnull=True)
                    | models.Q(start_date__isnull=False, end_date__isnull=False)
                ),
                name="price_rule_window_complete",
            ),
            models.CheckConstraint(
                condition=models.Q(start_date__isnull=True) | models.Q(end_date__gte=models.F("start_date")),
                name="price_rule_valid_window",
            ),
            models.CheckConstraint(
                condition=models.Q(price__gte=Decimal("0")),
                name="price_rule_non_negative_price",
            ),
        ]
        indexes = [
            models.Index(fields=["vehicle_id", "driver_language", "duration_hours"]),
        ]

    def __str__(self) -> str:
        window = f"{self.start_date} - {self.end_date}" if self.is_date_bound else "standing"
        return f"{self.vehicle_id}/{self.driver_language}/{self.duration_hours}h [{window}]: {self.price}"

    @property
    def is_date_bound(self) -> bool:
        return self.start_date is not None
