"""Serializers for the pricing domain."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .models import PriceRule


class PriceQuoteRequestSerializer(serializers.Serializer):
    """Price lookup submitted by the vehicle/service step."""

    vehicle_id = serializers.CharField(max_length=64)
    driver_language = serializers.CharField(max_length=8)
    duration_hours = serializers.IntegerField(min_value=1)
    date = serializers.DateField(required=False, allow_null=True)


class PriceRuleSerializer(serializers.ModelSerializer):
    class Meta:
        model = PriceRule
        fields = [
            "id",
            "vehicle_id",
            "driver_language",
            "duration_hours",
            "start_date",
            "end_date",
            "price",
            "currency",
            "note",
            "created_at",
        ]
        read_only_fields = fields
