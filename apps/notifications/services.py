"""Outbox writing, delivery and the subscribers that notify the outside world."""

from __future__ import annotations

import logging
from typing import List, Optional

import requests
from django.conf import settings  # type: ignore
from django.core.mail import send_mail  # type: ignore

from shared.application.message_bus import MessageBus, message_bus
from shared.domain.base import DomainEvent

from .models import OutboxEvent

logger = logging.getLogger(__name__)


# ============================================================================
# OUTBOX
# ============================================================================

def record_events(events: List[DomainEvent]) -> List[int]:
    """Insert outbox rows for ``events``; call inside the producing transaction."""
    ids = []
    for event in events:
        row = OutboxEvent.objects.create(
            event_id=event.event_id,
            event_type=event.event_type,
            aggregate_id=event.aggregate_id or "",
            payload=event.to_dict(),
        )
        ids.append(row.pk)
    return ids


def rebuild_event(row: OutboxEvent, bus: MessageBus = message_bus) -> DomainEvent:
    event_class = bus.resolve_event_type(row.event_type)
    return event_class.from_dict(row.payload)


def deliver(outbox_id: int, bus: MessageBus = message_bus) -> bool:
    """
    Publish one outbox row through the message bus.

    Returns True once the row is delivered (now or earlier). A handler
    failure leaves the row FAILED for the periodic dispatcher, which only
    re-runs the subscribers that have not succeeded yet.
    """
    try:
        row = OutboxEvent.objects.get(pk=outbox_id)
    except OutboxEvent.DoesNotExist:
        logger.warning(f"Outbox event {outbox_id} not found")
        return False

    if row.status == OutboxEvent.Status.DELIVERED:
        return True

    try:
        event = rebuild_event(row, bus)
    except (LookupError, KeyError, TypeError, ValueError) as e:
        logger.error(f"Cannot rebuild outbox event {row.event_id} ({row.event_type}): {e}")
        row.mark_failed(f"Cannot rebuild event: {e}")
        return False

    handled, failures = bus.publish_event(event, skip=row.delivered_handlers)
    row.record_handled(handled)
    if failures:
        row.mark_failed(f"{failures} subscriber(s) failed")
        return False

    row.mark_delivered()
    return True


def pending_events(max_attempts: int, limit: int = 100):
    return OutboxEvent.objects.filter(
        status__in=[OutboxEvent.Status.PENDING, OutboxEvent.Status.FAILED],
        attempts__lt=max_attempts,
    ).order_by('created_at')[:limit]


# ============================================================================
# SUBSCRIBERS
# ============================================================================

def forward_event_to_webhook(event: DomainEvent) -> None:
    """
    POST the event envelope to the external notifier.

    The notifier formats and sends the customer confirmation and staff
    alerts. Raises on HTTP failure so the outbox row is retried.
    """
    url = getattr(settings, "ORDER_EVENTS_WEBHOOK_URL", "")
    if not url:
        logger.debug(f"ORDER_EVENTS_WEBHOOK_URL not set; {event.event_type} {event.event_id} not forwarded")
        return

    headers = {"X-Event-Type": event.event_type, "X-Event-Id": str(event.event_id)}
    token = getattr(settings, "ORDER_EVENTS_WEBHOOK_TOKEN", "")
    if token:
        headers["Authorization"] = f"Bearer {token}"

    response = requests.post(
        url,
        json=event.to_dict(),
        headers=headers,
        timeout=getattr(settings, "ORDER_EVENTS_WEBHOOK_TIMEOUT", 10),
    )
    response.raise_for_status()
    logger.info(f"Forwarded {event.event_type} for {event.aggregate_id} to notifier")


def email_staff_overbooking_alert(event: DomainEvent) -> Optional[bool]:
    """Plain-text alert to operations staff for a paid order without inventory."""
    recipients = list(getattr(settings, "BOOKING_STAFF_EMAILS", []))
    if not recipients:
        return None

    payload = event.payload()
    days = ", ".join(payload.get("days", []))
    send_mail(
        subject=f"[Overbooking] Order {payload.get('order_code')} needs manual handling",
        message=(
            f"Order {payload.get('order_code')} was paid ({payload.get('external_reference')}) "
            f"but vehicle {payload.get('vehicle_id')} has no capacity on {days}.\n"
            f"Reason: {payload.get('reason')}\n"
        ),
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=recipients,
        fail_silently=False,
    )
    logger.info(f"Overbooking alert for {payload.get('order_code')} emailed to {len(recipients)} recipient(s)")
    return True


def register_subscribers(bus: MessageBus) -> None:
    from apps.orders.domain.events import OrderPaid, OverbookingDetected

    bus.register_event_handler(OrderPaid, forward_event_to_webhook)
    bus.register_event_handler(OverbookingDetected, forward_event_to_webhook)
    bus.register_event_handler(OverbookingDetected, email_staff_overbooking_alert)
