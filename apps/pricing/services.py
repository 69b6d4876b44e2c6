"""Price resolution for charter quotes and orders."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from django.db import DatabaseError  # type: ignore
from django.db.models import F, Q  # type: ignore

from shared.application.config import BookingConfig
from shared.domain.value_objects import DateRange, Money

from .models import PriceRule

logger = logging.getLogger(__name__)


class InvalidPriceQuery(ValueError):
    """Raised when the lookup key itself is malformed."""


class PriceNotFound(Exception):
    """Raised when no rule applies. Never conflated with a zero price."""


class PricingUnavailable(Exception):
    """Raised when the price table cannot be read."""


class PriceResolver:
    """
    Picks one price rule per lookup.

    Selection order for a (vehicle, language, duration) key:
    1. date-bound rules whose window contains the reference date,
       latest window start first, then most recently created;
    2. the standing rule (no window), most recently created.
    Without a reference date only standing rules are considered.
    """

    def __init__(self, config: BookingConfig, rules=None):
        self.config = config
        self._rules = rules

    @property
    def rules(self):
        return self._rules if self._rules is not None else PriceRule.objects.all()

    def _validate(self, vehicle_id: str, language: str, duration_hours) -> tuple[str, str, int]:
        vehicle_id = (vehicle_id or "").strip()
        if not vehicle_id:
            raise InvalidPriceQuery("Vehicle is required.")
        if not self.config.is_known_vehicle(vehicle_id):
            raise InvalidPriceQuery(f"Unknown vehicle: {vehicle_id}")
        try:
            language = self.config.normalize_language(language)
        except ValueError as exc:
            raise InvalidPriceQuery(str(exc)) from exc
        try:
            hours = int(duration_hours)
        except (TypeError, ValueError):
            raise InvalidPriceQuery("Duration must be a whole number of hours.") from None
        if hours <= 0:
            raise InvalidPriceQuery("Duration must be positive.")
        return vehicle_id, language, hours

    def find_rule(
        self,
        vehicle_id: str,
        language: str,
        duration_hours: int,
        reference_date: date | None = None,
    ) -> PriceRule:
        vehicle_id, language, hours = self._validate(vehicle_id, language, duration_hours)

        qs = self.rules.filter(
            vehicle_id=vehicle_id,
            driver_language=language,
            duration_hours=hours,
        )
        if reference_date is not None:
            qs = qs.filter(
                Q(start_date__lte=reference_date, end_date__gte=reference_date)
                | Q(start_date__isnull=True, end_date__isnull=True)
            )
        else:
            qs = qs.filter(start_date__isnull=True, end_date__isnull=True)

        # NULL start (standing) sorts last, so date-bound matches win
        qs = qs.order_by(F("start_date").desc(nulls_last=True), "-created_at", "-pk")

        try:
            rule = qs.first()
        except DatabaseError as exc:
            logger.error(f"Price table lookup failed for {vehicle_id}/{language}/{hours}h: {exc}")
            raise PricingUnavailable("Price table is temporarily unavailable.") from exc

        if rule is None:
            raise PriceNotFound(
                f"No price for vehicle {vehicle_id}, language {language}, "
                f"{hours}h on {reference_date or 'standing rate'}"
            )
        return rule

    def resolve(
        self,
        vehicle_id: str,
        language: str,
        duration_hours: int,
        reference_date: date | None = None,
    ) -> Money:
        rule = self.find_rule(vehicle_id, language, duration_hours, reference_date)
        if rule.currency != self.config.currency:
            logger.error(
                f"Price rule {rule.pk} for {rule.vehicle_id}/{rule.driver_language}/{rule.duration_hours}h "
                f"is in {rule.currency}, bookings are priced in {self.config.currency}"
            )
            raise PricingUnavailable("Price table is misconfigured for this service.")
        return Money(rule.price, rule.currency)

    def quote_range(self, vehicle_id: str, language: str, duration_hours: int, dates: DateRange) -> Money:
        """Total for a multi-day charter: each day priced on its own date."""
        total = Money(Decimal("0"), self.config.currency)
        for day in dates.days():
            total = total + self.resolve(vehicle_id, language, duration_hours, day)
        return total
