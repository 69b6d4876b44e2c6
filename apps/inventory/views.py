"""API views for advisory availability checks."""

from __future__ import annotations

from rest_framework import permissions  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from .serializers import AvailabilityCheckSerializer, RangeAvailabilitySerializer
from .services import check_range, is_available


class AvailabilityCheckView(APIView):
    """Single-day advisory check. Never reserves anything."""

    permission_classes = [permissions.AllowAny]

    def post(self, request, *args, **kwargs):  # type: ignore
        serializer = AvailabilityCheckSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        available = is_available(data["vehicle_id"], data["date"])
        return Response(
            {
                "vehicle_id": data["vehicle_id"],
                "date": data["date"].isoformat(),
                "available": available,
            }
        )


class RangeAvailabilityView(APIView):
    """Per-day advisory availability for an inclusive date range."""

    permission_classes = [permissions.AllowAny]

    def post(self, request, *args, **kwargs):  # type: ignore
        serializer = RangeAvailabilitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        days = check_range(data["vehicle_id"], data["dates"])
        return Response(
            {
                "vehicle_id": data["vehicle_id"],
                "available": all(day.available for day in days),
                "days": [day.as_dict() for day in days],
            }
        )
