"""Serializers for deposit checkout."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore


class CheckoutRequestSerializer(serializers.Serializer):
    order_code = serializers.CharField(max_length=32)
