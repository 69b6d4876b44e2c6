"""URL routing for payments."""

from __future__ import annotations

from django.urls import path  # type: ignore

from .views import CheckoutView, payment_webhook

urlpatterns = [
    path("checkout/", CheckoutView.as_view(), name="payment-checkout"),
    path("webhook/", payment_webhook, name="payment-webhook"),
]
