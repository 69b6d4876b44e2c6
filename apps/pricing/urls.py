"""URL routing for the pricing domain."""

from __future__ import annotations

from django.urls import path  # type: ignore

from .views import PriceQuoteView, PriceRuleListView

urlpatterns = [
    path("quote/", PriceQuoteView.as_view(), name="price-quote"),
    path("rules/", PriceRuleListView.as_view(), name="price-rule-list"),
]
