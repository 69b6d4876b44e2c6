"""Serializers for availability checks."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from shared.domain.value_objects import DateRange

MAX_RANGE_DAYS = 62


class AvailabilityCheckSerializer(serializers.Serializer):
    vehicle_id = serializers.CharField(max_length=64)
    date = serializers.DateField()


class RangeAvailabilitySerializer(serializers.Serializer):
    vehicle_id = serializers.CharField(max_length=64)
    start_date = serializers.DateField()
    end_date = serializers.DateField()

    def validate(self, attrs):
        if attrs["end_date"] < attrs["start_date"]:
            raise serializers.ValidationError({"end_date": "End date must not be before start date."})
        dates = DateRange(attrs["start_date"], attrs["end_date"])
        if len(dates) > MAX_RANGE_DAYS:
            raise serializers.ValidationError({"end_date": f"Range is limited to {MAX_RANGE_DAYS} days."})
        attrs["dates"] = dates
        return attrs
