"""API views for price quotes."""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend  # type: ignore
from rest_framework import generics, permissions, status  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from shared.application.config import BookingConfig

from .filters import PriceRuleFilterSet
from .models import PriceRule
from .serializers import PriceQuoteRequestSerializer, PriceRuleSerializer
from .services import InvalidPriceQuery, PriceNotFound, PriceResolver, PricingUnavailable


class PriceQuoteView(APIView):
    """Returns the applicable price for the selected vehicle/service."""

    permission_classes = [permissions.AllowAny]

    def post(self, request, *args, **kwargs):  # type: ignore
        serializer = PriceQuoteRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        resolver = PriceResolver(BookingConfig.from_settings())
        try:
            price = resolver.resolve(
                data["vehicle_id"],
                data["driver_language"],
                data["duration_hours"],
                data.get("date"),
            )
        except InvalidPriceQuery as exc:
            return Response({"ok": False, "detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except PriceNotFound:
            return Response({"ok": False, "detail": "Price not found."}, status=status.HTTP_404_NOT_FOUND)
        except PricingUnavailable:
            return Response(
                {"ok": False, "detail": "Pricing is temporarily unavailable, please try again."},
                status=status.HTTP_503_SERVICE_UNAVAILABLE,
            )

        return Response({"ok": True, "price": str(price.amount), "currency": price.currency})


class PriceRuleListView(generics.ListAPIView):
    """Read-only price table for staff."""

    queryset = PriceRule.objects.all()
    serializer_class = PriceRuleSerializer
    permission_classes = [permissions.IsAdminUser]
    filter_backends = [DjangoFilterBackend]
    filterset_class = PriceRuleFilterSet
