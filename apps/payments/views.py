"""API views for deposit checkout and the processor webhook."""

from __future__ import annotations

import logging

from django.conf import settings  # type: ignore
from django.http import JsonResponse  # type: ignore
from django.views.decorators.csrf import csrf_exempt  # type: ignore
from django.views.decorators.http import require_POST  # type: ignore
from rest_framework import permissions, status  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from apps.inventory.services import InventoryExhausted
from apps.orders.services import OrderAlreadyPaid, OrderNotFound
from shared.application.config import BookingConfig

from .gateway import PaymentGatewayError
from .serializers import CheckoutRequestSerializer
from .services import Outcome, PaymentReconciliationHandler, create_checkout_session

logger = logging.getLogger(__name__)


class CheckoutView(APIView):
    """
    Opens the hosted deposit payment page for an order.

    Availability is re-checked with a hard hold here; the advisory check
    the customer saw earlier is not trusted.
    """

    permission_classes = [permissions.AllowAny]

    def post(self, request, *args, **kwargs):  # type: ignore
        serializer = CheckoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order_code = serializer.validated_data["order_code"]

        try:
            session = create_checkout_session(order_code, BookingConfig.from_settings())
        except OrderNotFound:
            return Response({"detail": "Order not found."}, status=status.HTTP_404_NOT_FOUND)
        except OrderAlreadyPaid:
            return Response({"detail": "This order is already paid."}, status=status.HTTP_409_CONFLICT)
        except InventoryExhausted as exc:
            return Response(
                {
                    "detail": "The vehicle is no longer available for the selected dates.",
                    "dates": [day.isoformat() for day in exc.days],
                },
                status=status.HTTP_409_CONFLICT,
            )
        except PaymentGatewayError:
            return Response(
                {"detail": "The payment service is unavailable, please try again."},
                status=status.HTTP_502_BAD_GATEWAY,
            )

        return Response(
            {
                "order_code": session.order_code,
                "session_id": session.session_id,
                "checkout_url": session.checkout_url,
            }
        )


@csrf_exempt
@require_POST
def payment_webhook(request):
    """
    Processor callback for completed checkouts.

    Acknowledged with 200 whenever retrying would not help; 503 only for
    database outages so the processor redelivers later.
    """
    handler = PaymentReconciliationHandler(BookingConfig.from_settings())
    header = getattr(settings, "PAYMENT_SIGNATURE_HEADER", "Stripe-Signature")
    result = handler.handle(request.body, request.headers.get(header))

    if result.outcome is Outcome.REJECTED:
        logger.warning(
            f"Payment webhook signature rejected from {request.META.get('REMOTE_ADDR', 'unknown')}: {result.detail}"
        )

    body = {"status": result.outcome.value}
    if result.order_code:
        body["order_code"] = result.order_code
    return JsonResponse(body, status=result.http_status)
