"""Order record store: creation, lookup and guarded state transitions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from django.db import IntegrityError, transaction  # type: ignore
from django.utils import timezone  # type: ignore

from apps.pricing.services import PriceResolver
from shared.application.config import BookingConfig
from shared.domain.value_objects import DateRange

from .models import BookingStep, Order, generate_order_code

logger = logging.getLogger(__name__)


class OrderNotFound(Exception):
    """Raised when no order carries the given code."""


class OrderCodeCollision(Exception):
    """Raised by the store when a generated order code is already taken."""


class OrderAlreadyPaid(Exception):
    """Raised when an operation needs an unpaid order."""


class OrderRepriceError(Exception):
    """Raised when a paid order is asked to change its price."""


@dataclass(frozen=True)
class OrderDraft:
    start_date: date
    end_date: date
    vehicle_id: str
    driver_language: str
    duration_hours: int
    pickup_location: str
    contact_name: str
    contact_phone: str
    contact_email: str
    return_location: str = ""
    itinerary: str = ""
    passengers: int = 1
    luggage: int = 0
    remark: str = ""
    source: str = "web"

    @property
    def dates(self) -> DateRange:
        return DateRange(self.start_date, self.end_date)


@dataclass(frozen=True)
class ResumeToken:
    """Server-validated step to resume the booking flow at."""

    order_code: str
    step: int
    paid: bool
    cancelled: bool = False

    def as_dict(self) -> dict:
        return {
            "order_code": self.order_code,
            "step": self.step,
            "paid": self.paid,
            "cancelled": self.cancelled,
        }


def insert_order(order_code: str, **fields) -> Order:
    """Persist a new order; a taken code surfaces as OrderCodeCollision."""
    try:
        with transaction.atomic():
            return Order.objects.create(order_code=order_code, **fields)
    except IntegrityError as exc:
        if Order.objects.filter(order_code=order_code).exists():
            raise OrderCodeCollision(order_code) from exc
        raise


def create_order(draft: OrderDraft, resolver: PriceResolver, config: BookingConfig) -> Order:
    """
    Price the draft and store it as an unpaid order.

    The total is the sum of the per-day prices over the inclusive range.
    Pricing errors (PriceNotFound, PricingUnavailable, InvalidPriceQuery)
    propagate unchanged.
    """
    language = (draft.driver_language or "").strip().lower()
    total = resolver.quote_range(draft.vehicle_id, language, draft.duration_hours, draft.dates)

    fields = {
        "source": draft.source,
        "start_date": draft.start_date,
        "end_date": draft.end_date,
        "pickup_location": draft.pickup_location,
        "return_location": draft.return_location,
        "itinerary": draft.itinerary,
        "vehicle_id": draft.vehicle_id,
        "driver_language": language,
        "duration_hours": draft.duration_hours,
        "total_price": total.amount,
        "deposit_amount": config.deposit_amount,
        "currency": total.currency,
        "passengers": draft.passengers,
        "luggage": draft.luggage,
        "contact_name": draft.contact_name,
        "contact_phone": draft.contact_phone,
        "contact_email": draft.contact_email,
        "remark": draft.remark,
    }

    for attempt in range(1, config.order_code_attempts + 1):
        code = generate_order_code(config.order_code_prefix)
        try:
            order = insert_order(code, **fields)
        except OrderCodeCollision:
            logger.warning(f"Order code collision on {code} (attempt {attempt}/{config.order_code_attempts})")
            continue
        logger.info(f"Order {order.order_code} created for {order.vehicle_id} {order.dates}, total {total}")
        return order

    raise OrderCodeCollision(f"No free order code after {config.order_code_attempts} attempts")


def get_order(order_code: str) -> Order:
    try:
        return Order.objects.get(order_code=order_code)
    except Order.DoesNotExist:
        raise OrderNotFound(order_code) from None


def mark_paid(order_code: str, paid_at: Optional[datetime] = None) -> bool:
    """
    Guarded unpaid -> paid transition.

    Returns True when this call performed the transition and False when
    the order was already paid. Raises OrderNotFound for unknown codes.
    """
    paid_at = paid_at or timezone.now()
    updated = Order.objects.filter(
        order_code=order_code,
        payment_status=Order.PaymentStatus.UNPAID,
    ).update(
        payment_status=Order.PaymentStatus.PAID,
        fulfillment_status=Order.FulfillmentStatus.CONFIRMED,
        paid_at=paid_at,
        updated_at=timezone.now(),
    )
    if updated:
        logger.info(f"Order {order_code} marked paid at {paid_at.isoformat()}")
        return True
    if not Order.objects.filter(order_code=order_code).exists():
        raise OrderNotFound(order_code)
    return False


@transaction.atomic
def reprice_order(order_code: str, resolver: PriceResolver) -> Order:
    """Explicit re-price of an unpaid order against the current price table."""
    try:
        order = Order.objects.select_for_update().get(order_code=order_code)
    except Order.DoesNotExist:
        raise OrderNotFound(order_code) from None

    if order.is_paid:
        raise OrderRepriceError(f"Order {order_code} is paid; its price is final.")

    total = resolver.quote_range(order.vehicle_id, order.driver_language, order.duration_hours, order.dates)
    if total.amount != order.total_price or total.currency != order.currency:
        logger.info(f"Order {order_code} re-priced from {order.total} to {total}")
        order.total_price = total.amount
        order.currency = total.currency
        order.save(update_fields=["total_price", "currency", "updated_at"])
    return order


def resolve_resume_step(order: Order, requested_step: Optional[int] = None, cancelled: bool = False) -> ResumeToken:
    """
    Validate a client-requested step against the stored order status.

    Paid orders always resume at confirmation. Unpaid orders may revisit
    any step up to payment but never skip to confirmation.
    """
    if order.is_paid:
        return ResumeToken(order.order_code, int(BookingStep.CONFIRMATION), paid=True)

    step = BookingStep.PAYMENT
    if requested_step is not None and BookingStep.DATES <= requested_step < BookingStep.PAYMENT:
        step = BookingStep(requested_step)
    return ResumeToken(order.order_code, int(step), paid=False, cancelled=cancelled)
