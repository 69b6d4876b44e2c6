"""
Deposit checkout and payment reconciliation.

The reconciliation handler is the only place where money, inventory and
order state meet. Deliveries are at-least-once, so every step is guarded:

1. signature verified before anything is read or written;
2. malformed or incomplete events are acknowledged without mutation;
3. an already-paid order acknowledges without a second record or decrement;
4. mark paid, payment record, events and inventory decrement share one
   transaction (outbox rows included).

Payment captured without inventory to honour it is an overbooking: the
order stays paid, a CRITICAL log line and an OverbookingDetected event
are emitted for manual reconciliation.
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from django.db import DatabaseError, IntegrityError  # type: ignore
from django.utils import timezone  # type: ignore

from apps.inventory.services import (
    InventoryExhausted,
    check_range,
    commit_range_consumption,
    lock_range_for_payment,
    release_holds,
)
from apps.orders.domain.events import OrderPaid, OverbookingDetected
from apps.orders.models import BookingStep, Order
from apps.orders.services import OrderAlreadyPaid, get_order, mark_paid
from shared.application.config import BookingConfig
from shared.application.uow import DjangoUnitOfWork
from shared.domain.value_objects import Money

from . import gateway
from .gateway import PaymentGatewayError, SignatureVerificationError
from .models import PaymentNotification, PaymentRecord

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


@dataclass(frozen=True)
class CheckoutSession:
    order_code: str
    session_id: str
    checkout_url: str


def create_checkout_session(order_code: str, config: BookingConfig) -> CheckoutSession:
    """
    Hold inventory and open a hosted deposit checkout for an unpaid order.

    Raises:
        OrderNotFound, OrderAlreadyPaid, InventoryExhausted, PaymentGatewayError
    """
    order = get_order(order_code)
    if order.is_paid:
        raise OrderAlreadyPaid(f"Order {order_code} is already paid.")

    if not lock_range_for_payment(order.vehicle_id, order.dates, order.order_code, config.hold_ttl):
        gone = [day.date for day in check_range(order.vehicle_id, order.dates) if not day.available]
        raise InventoryExhausted(order.vehicle_id, gone or list(order.dates.days()))

    metadata = {
        "order_code": order.order_code,
        "vehicle_id": order.vehicle_id,
        "start_date": order.start_date.isoformat(),
        "end_date": order.end_date.isoformat(),
        "type": "deposit",
    }
    try:
        session = gateway.open_checkout_session(
            order_code=order.order_code,
            amount=config.deposit,
            description=f"Charter deposit {order.order_code} ({config.vehicle_name(order.vehicle_id)})",
            metadata=metadata,
            success_url=config.booking_url(order.order_code, int(BookingStep.CONFIRMATION)),
            cancel_url=config.booking_url(order.order_code, int(BookingStep.PAYMENT), cancel=1),
            customer_email=order.contact_email,
        )
    except PaymentGatewayError:
        release_holds(order.order_code)
        raise

    Order.objects.filter(pk=order.pk).update(checkout_session_id=session["session_id"], updated_at=timezone.now())
    return CheckoutSession(order.order_code, session["session_id"], session["checkout_url"])


class Outcome(str, enum.Enum):
    PAID = "paid"
    OVERBOOKED = "overbooked"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    INCOMPLETE = "incomplete"
    ORDER_NOT_FOUND = "order_not_found"
    FAILED = "failed"
    REJECTED = "rejected"
    MALFORMED = "malformed"
    RETRY = "retry"

    @property
    def http_status(self) -> int:
        return {
            Outcome.REJECTED: 403,
            Outcome.MALFORMED: 400,
            Outcome.RETRY: 503,
        }.get(self, 200)


@dataclass
class ReconciliationResult:
    outcome: Outcome
    order_code: str = ""
    detail: str = ""
    failed_days: List[date] = field(default_factory=list)

    @property
    def http_status(self) -> int:
        return self.outcome.http_status


class PaymentReconciliationHandler:
    """Turns a verified "checkout completed" notification into a paid order and consumed inventory."""

    def __init__(
        self,
        config: BookingConfig,
        uow_factory: Callable[[], DjangoUnitOfWork] = DjangoUnitOfWork,
        commit_consumption: Callable = commit_range_consumption,
    ):
        self.config = config
        self.uow_factory = uow_factory
        self.commit_consumption = commit_consumption

    def handle(self, payload: bytes, signature_header: Optional[str]) -> ReconciliationResult:
        try:
            gateway.verify_webhook_signature(
                payload,
                signature_header,
                self.config.webhook_secret,
                self.config.webhook_tolerance_seconds,
            )
        except SignatureVerificationError as exc:
            logger.warning(f"Rejected payment webhook: {exc}")
            return ReconciliationResult(Outcome.REJECTED, detail=str(exc))

        try:
            event = json.loads(payload)
        except ValueError:
            logger.error("Payment webhook body is not valid JSON")
            return ReconciliationResult(Outcome.MALFORMED, detail="Invalid JSON")
        if not isinstance(event, dict):
            return ReconciliationResult(Outcome.MALFORMED, detail="Event must be a JSON object")

        try:
            return self._reconcile(event)
        except DatabaseError as exc:
            logger.error(f"Database error while reconciling payment event {event.get('id')}: {exc}", exc_info=True)
            return ReconciliationResult(Outcome.RETRY, detail="Database unavailable")

    # ------------------------------------------------------------------

    def _reconcile(self, event: Dict[str, Any]) -> ReconciliationResult:
        event_id = str(event.get("id") or "")
        event_type = str(event.get("type") or "")
        data = event.get("data")
        session = data.get("object") if isinstance(data, dict) else None
        if not isinstance(session, dict):
            session = {}

        def finish(result: ReconciliationResult) -> ReconciliationResult:
            self._record_notification(event_id, event_type, result, session)
            return result

        if event_type != CHECKOUT_COMPLETED:
            logger.info(f"Ignoring payment event {event_id} of type {event_type or '<none>'}")
            return finish(ReconciliationResult(Outcome.IGNORED, detail=f"Unhandled event type {event_type}"))

        metadata = session.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}
        order_code = _text(metadata.get("order_code")) or _text(session.get("client_reference_id"))
        vehicle_id = _text(metadata.get("vehicle_id"))
        start_raw = metadata.get("start_date") or ""
        missing = [name for name, value in (
            ("order_code", order_code),
            ("vehicle_id", vehicle_id),
            ("start_date", start_raw),
        ) if not value]
        if missing:
            logger.error(f"Payment event {event_id} lacks {', '.join(missing)}; acknowledged without changes")
            return finish(ReconciliationResult(Outcome.INCOMPLETE, order_code, f"Missing {', '.join(missing)}"))

        try:
            start_date = date.fromisoformat(start_raw)
        except (TypeError, ValueError):
            logger.error(f"Payment event {event_id} has an invalid start_date {start_raw!r}")
            return finish(ReconciliationResult(Outcome.INCOMPLETE, order_code, "Invalid start_date"))

        if session.get("payment_status") not in (None, "paid"):
            logger.info(f"Checkout {session.get('id')} completed without capture ({session.get('payment_status')})")
            return finish(ReconciliationResult(Outcome.IGNORED, order_code, "Payment not captured"))

        order = Order.objects.filter(order_code=order_code).first()
        if order is None:
            logger.error(f"Payment event {event_id} references unknown order {order_code}")
            return finish(ReconciliationResult(Outcome.ORDER_NOT_FOUND, order_code))

        if order.is_paid:
            logger.info(f"Order {order_code} already paid; duplicate delivery {event_id} ignored")
            return finish(ReconciliationResult(Outcome.DUPLICATE, order_code))

        if order.vehicle_id != vehicle_id or order.start_date != start_date:
            logger.warning(
                f"Payment metadata for {order_code} ({vehicle_id}, {start_date}) differs from the order "
                f"({order.vehicle_id}, {order.start_date}); using the stored order"
            )

        try:
            result = self._apply_payment(order, session)
        except IntegrityError as exc:
            logger.error(f"Could not record payment for {order_code}: {exc}")
            return finish(ReconciliationResult(Outcome.FAILED, order_code, "Payment record conflict"))
        return finish(result)

    def _apply_payment(self, order: Order, session: Dict[str, Any]) -> ReconciliationResult:
        session_id = str(session.get("id") or "")
        paid_at = timezone.now()
        amount = self._captured_amount(order, session)

        with self.uow_factory() as uow:
            if not mark_paid(order.order_code, paid_at):
                return ReconciliationResult(Outcome.DUPLICATE, order.order_code)

            PaymentRecord.objects.create(
                order=order,
                external_reference=session_id or f"unknown-{order.order_code}",
                payment_intent=str(session.get("payment_intent") or ""),
                amount=amount.amount,
                currency=amount.currency,
                paid=True,
                payload=session,
            )

            uow.add_event(self._order_paid_event(order, session_id, paid_at))

            outcomes = self.commit_consumption(order.vehicle_id, order.dates, order.order_code)
            failed = [day for day, outcome in outcomes.items() if not outcome.succeeded]
            if failed:
                days = [day.isoformat() for day in failed]
                reasons = sorted({outcomes[day].value for day in failed})
                logger.critical(
                    f"OVERBOOKING: order {order.order_code} paid ({session_id}) but {order.vehicle_id} "
                    f"has no capacity on {', '.join(days)} ({', '.join(reasons)}); manual reconciliation needed"
                )
                uow.add_event(
                    OverbookingDetected(
                        aggregate_id=order.order_code,
                        order_code=order.order_code,
                        vehicle_id=order.vehicle_id,
                        days=days,
                        reason=", ".join(reasons),
                        external_reference=session_id,
                    )
                )
                return ReconciliationResult(Outcome.OVERBOOKED, order.order_code, "Inventory exhausted", failed)

        logger.info(f"Order {order.order_code} paid via {session_id}")
        return ReconciliationResult(Outcome.PAID, order.order_code)

    def _captured_amount(self, order: Order, session: Dict[str, Any]) -> Money:
        """Amount the processor reports; the order deposit when absent or unreadable."""
        deposit = Money(order.deposit_amount, order.currency)
        amount_total = session.get("amount_total")
        if amount_total is None:
            return deposit
        currency = session.get("currency") or order.currency
        try:
            return Money.from_minor_units(int(amount_total), str(currency))
        except (TypeError, ValueError) as exc:
            logger.warning(
                f"Checkout {session.get('id')} for {order.order_code} reports an unusable amount "
                f"{amount_total!r} {currency!r} ({exc}); recording the deposit {deposit}"
            )
            return deposit

    def _order_paid_event(self, order: Order, session_id: str, paid_at) -> OrderPaid:
        deposit = Money(order.deposit_amount, order.currency)
        return OrderPaid(
            aggregate_id=order.order_code,
            order_code=order.order_code,
            vehicle_id=order.vehicle_id,
            vehicle_name=self.config.vehicle_name(order.vehicle_id),
            driver_language=order.driver_language,
            start_date=order.start_date.isoformat(),
            end_date=order.end_date.isoformat(),
            pickup_location=order.pickup_location,
            return_location=order.return_location,
            total_price=str(order.total_price),
            deposit=str(deposit.amount),
            balance_due=str(order.total.minus_floor_zero(deposit).amount),
            currency=order.currency,
            contact_name=order.contact_name,
            contact_phone=order.contact_phone,
            contact_email=order.contact_email,
            external_reference=session_id,
            paid_at=paid_at.isoformat(),
        )

    def _record_notification(
        self,
        event_id: str,
        event_type: str,
        result: ReconciliationResult,
        session: Dict[str, Any],
    ) -> None:
        try:
            PaymentNotification.objects.create(
                event_id=event_id,
                event_type=event_type,
                order_code=result.order_code,
                status=result.outcome.value,
                detail=result.detail[:255],
                payload=session if isinstance(session, dict) else {},
            )
        except DatabaseError as exc:
            logger.error(f"Could not log payment notification {event_id}: {exc}")
