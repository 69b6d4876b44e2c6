"""FilterSet definitions for the price table listing."""

from __future__ import annotations

import django_filters  # type: ignore

from .models import PriceRule


class PriceRuleFilterSet(django_filters.FilterSet):
    """Back-office filters: key fields, standing-only and "active on date"."""

    vehicle_id = django_filters.CharFilter(field_name="vehicle_id", lookup_expr="exact")
    driver_language = django_filters.CharFilter(field_name="driver_language", lookup_expr="iexact")
    duration_hours = django_filters.NumberFilter(field_name="duration_hours", lookup_expr="exact")
    standing = django_filters.BooleanFilter(field_name="start_date", lookup_expr="isnull")
    active_on = django_filters.DateFilter(method="filter_active_on")

    class Meta:
        model = PriceRule
        fields = ["vehicle_id", "driver_language", "duration_hours"]

    def filter_active_on(self, queryset, name, value):  # type: ignore
        if not value:
            return queryset
        return queryset.filter(start_date__lte=value, end_date__gte=value)
