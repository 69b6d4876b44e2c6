"""API views for the order record store."""

from __future__ import annotations

from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.inventory.services import release_holds
from apps.pricing.services import InvalidPriceQuery, PriceNotFound, PriceResolver, PricingUnavailable
from shared.application.config import BookingConfig

from .models import Order
from .serializers import OrderCreateSerializer, OrderSerializer
from .services import OrderCodeCollision, OrderRepriceError, create_order, reprice_order, resolve_resume_step


def _pricing_error_response(exc: Exception) -> Response:
    if isinstance(exc, InvalidPriceQuery):
        return Response({"vehicle": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
    if isinstance(exc, PriceNotFound):
        return Response(
            {"detail": "No price is available for the selected service."},
            status=status.HTTP_404_NOT_FOUND,
        )
    return Response(
        {"detail": "Pricing is temporarily unavailable, please try again."},
        status=status.HTTP_503_SERVICE_UNAVAILABLE,
    )


class OrderViewSet(mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Orders are addressed by their public order code.

    The confirmation page always re-reads the order from here instead of
    trusting state carried in the redirect URL.
    """

    queryset = Order.objects.all()
    serializer_class = OrderSerializer
    permission_classes = [permissions.AllowAny]
    lookup_field = "order_code"
    lookup_value_regex = r"[A-Za-z0-9\-]+"

    def get_serializer_context(self):  # type: ignore
        context = super().get_serializer_context()
        context["config"] = self.config
        return context

    @property
    def config(self) -> BookingConfig:
        if not hasattr(self, "_config"):
            self._config = BookingConfig.from_settings()
        return self._config

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = OrderCreateSerializer(data=request.data, context=self.get_serializer_context())
        serializer.is_valid(raise_exception=True)

        try:
            order = create_order(serializer.to_draft(), PriceResolver(self.config), self.config)
        except (InvalidPriceQuery, PriceNotFound, PricingUnavailable) as exc:
            return _pricing_error_response(exc)
        except OrderCodeCollision:
            return Response(
                {"detail": "Could not allocate an order code, please try again."},
                status=status.HTTP_503_SERVICE_UNAVAILABLE,
            )

        data = OrderSerializer(order, context=self.get_serializer_context()).data
        return Response(data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"])
    def resume(self, request, order_code=None):  # type: ignore
        order: Order = self.get_object()  # type: ignore
        try:
            requested = int(request.query_params["step"])
        except (KeyError, ValueError):
            requested = None
        cancelled = request.query_params.get("cancel") in ("1", "true")

        token = resolve_resume_step(order, requested, cancelled=cancelled)
        return Response(token.as_dict())

    @action(detail=True, methods=["post"])
    def reprice(self, request, order_code=None):  # type: ignore
        order: Order = self.get_object()  # type: ignore
        try:
            order = reprice_order(order.order_code, PriceResolver(self.config))
        except OrderRepriceError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
        except (InvalidPriceQuery, PriceNotFound, PricingUnavailable) as exc:
            return _pricing_error_response(exc)
        return Response(OrderSerializer(order, context=self.get_serializer_context()).data)

    @action(detail=True, methods=["post"], url_path="release-hold")
    def release_hold(self, request, order_code=None):  # type: ignore
        order: Order = self.get_object()  # type: ignore
        if order.is_paid:
            return Response({"detail": "The order is already paid."}, status=status.HTTP_409_CONFLICT)
        released = release_holds(order.order_code)
        return Response({"order_code": order.order_code, "released": released})
