"""Tests for price rule selection."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

from django.db import DatabaseError
from django.test import TestCase

from apps.pricing.models import PriceRule
from apps.pricing.services import (
    InvalidPriceQuery,
    PriceNotFound,
    PriceResolver,
    PricingUnavailable,
)
from shared.application.config import BookingConfig
from shared.domain.value_objects import DateRange, Money


class PriceResolverTests(TestCase):
    def setUp(self) -> None:
        self.config = BookingConfig(vehicles={"V1": "Alphard", "V2": "Hiace"})
        self.resolver = PriceResolver(self.config)

    def _rule(self, price, start=None, end=None, **overrides) -> PriceRule:
        data = {
            "vehicle_id": "V1",
            "driver_language": "zh",
            "duration_hours": 8,
            "start_date": start,
            "end_date": end,
            "price": Decimal(price),
        }
        data.update(overrides)
        return PriceRule.objects.create(**data)

    def test_date_bound_rule_beats_standing_rule(self) -> None:
        self._rule("2500.00")
        self._rule("3000.00", date(2025, 6, 1), date(2025, 6, 30))

        price = self.resolver.resolve("V1", "zh", 8, date(2025, 6, 10))

        self.assertEqual(price, Money(Decimal("3000.00"), "CNY"))

    def test_standing_rule_applies_outside_window(self) -> None:
        self._rule("2500.00")
        self._rule("3000.00", date(2025, 6, 1), date(2025, 6, 30))

        price = self.resolver.resolve("V1", "zh", 8, date(2025, 7, 1))

        self.assertEqual(price.amount, Decimal("2500.00"))

    def test_window_bounds_are_inclusive(self) -> None:
        self._rule("3000.00", date(2025, 6, 1), date(2025, 6, 30))

        self.assertEqual(self.resolver.resolve("V1", "zh", 8, date(2025, 6, 1)).amount, Decimal("3000.00"))
        self.assertEqual(self.resolver.resolve("V1", "zh", 8, date(2025, 6, 30)).amount, Decimal("3000.00"))

    def test_latest_window_start_wins_among_overlapping_rules(self) -> None:
        self._rule("3000.00", date(2025, 6, 1), date(2025, 6, 30))
        self._rule("3500.00", date(2025, 6, 8), date(2025, 6, 15))

        price = self.resolver.resolve("V1", "zh", 8, date(2025, 6, 10))

        self.assertEqual(price.amount, Decimal("3500.00"))

    def test_most_recent_standing_rule_wins(self) -> None:
        self._rule("2400.00")
        self._rule("2600.00")

        self.assertEqual(self.resolver.resolve("V1", "zh", 8).amount, Decimal("2600.00"))

    def test_without_date_only_standing_rules_apply(self) -> None:
        self._rule("3000.00", date(2025, 6, 1), date(2025, 6, 30))

        with self.assertRaises(PriceNotFound):
            self.resolver.resolve("V1", "zh", 8)

    def test_missing_price_is_not_zero(self) -> None:
        self._rule("2500.00", driver_language="jp")

        with self.assertRaises(PriceNotFound):
            self.resolver.resolve("V1", "zh", 8, date(2025, 6, 10))

    def test_language_is_case_insensitive(self) -> None:
        self._rule("2500.00")

        self.assertEqual(self.resolver.resolve("V1", "ZH", 8).amount, Decimal("2500.00"))

    def test_invalid_keys_are_rejected(self) -> None:
        with self.assertRaises(InvalidPriceQuery):
            self.resolver.resolve("V9", "zh", 8)
        with self.assertRaises(InvalidPriceQuery):
            self.resolver.resolve("V1", "fr", 8)
        with self.assertRaises(InvalidPriceQuery):
            self.resolver.resolve("V1", "zh", 0)

    def test_database_error_reports_unavailable(self) -> None:
        rules = MagicMock()
        rules.filter.return_value.filter.return_value.order_by.return_value.first.side_effect = DatabaseError(
            "connection lost"
        )
        resolver = PriceResolver(self.config, rules=rules)

        with self.assertRaises(PricingUnavailable):
            resolver.resolve("V1", "zh", 8, date(2025, 6, 10))

    def test_quote_range_prices_each_day(self) -> None:
        self._rule("2500.00")
        self._rule("3000.00", date(2025, 6, 1), date(2025, 6, 30))

        total = self.resolver.quote_range("V1", "zh", 8, DateRange(date(2025, 6, 29), date(2025, 7, 1)))

        self.assertEqual(total.amount, Decimal("8500.00"))

    def test_quote_range_fails_when_any_day_has_no_price(self) -> None:
        self._rule("3000.00", date(2025, 6, 1), date(2025, 6, 30))

        with self.assertRaises(PriceNotFound):
            self.resolver.quote_range("V1", "zh", 8, DateRange(date(2025, 6, 30), date(2025, 7, 1)))

    def test_rule_in_another_currency_is_not_quoted(self) -> None:
        self._rule("2500.00")
        self._rule("60000.00", date(2025, 6, 1), date(2025, 6, 30), currency="JPY")

        with self.assertLogs("apps.pricing.services", level="ERROR"):
            with self.assertRaises(PricingUnavailable):
                self.resolver.resolve("V1", "zh", 8, date(2025, 6, 10))
        with self.assertRaises(PricingUnavailable):
            self.resolver.quote_range("V1", "zh", 8, DateRange(date(2025, 5, 31), date(2025, 6, 1)))

        self.assertEqual(self.resolver.resolve("V1", "zh", 8, date(2025, 7, 1)).currency, "CNY")

    def test_rules_follow_the_configured_currency(self) -> None:
        self._rule("60000.00", currency="JPY")
        resolver = PriceResolver(BookingConfig(currency="JPY", deposit_amount=Decimal("10000.00")))

        total = resolver.quote_range("V1", "zh", 8, DateRange(date(2025, 6, 1), date(2025, 6, 2)))

        self.assertEqual(total, Money(Decimal("120000.00"), "JPY"))
