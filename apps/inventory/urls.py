"""URL routing for availability checks."""

from __future__ import annotations

from django.urls import path  # type: ignore

from .views import AvailabilityCheckView, RangeAvailabilityView

urlpatterns = [
    path("check/", AvailabilityCheckView.as_view(), name="inventory-check"),
    path("check-range/", RangeAvailabilityView.as_view(), name="inventory-check-range"),
]
