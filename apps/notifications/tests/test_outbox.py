"""Tests for the event outbox and notifier delivery."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import requests
from django.core import mail
from django.test import override_settings

from apps.notifications.models import OutboxEvent
from apps.notifications.services import deliver, forward_event_to_webhook, record_events
from apps.notifications.tasks import dispatch_pending_events
from apps.orders.domain.events import OrderPaid, OverbookingDetected
from shared.application.message_bus import MessageBus
from shared.application.uow import DjangoUnitOfWork


def _order_paid(code="ORD-20250601-00001") -> OrderPaid:
    return OrderPaid(
        aggregate_id=code,
        order_code=code,
        vehicle_id="V1",
        start_date="2025-06-10",
        end_date="2025-06-10",
        total_price="3000.00",
        deposit="500.00",
        balance_due="2500.00",
    )


@pytest.mark.django_db
def test_unit_of_work_writes_outbox_rows_with_the_transaction():
    with DjangoUnitOfWork() as uow:
        uow.add_event(_order_paid())

    row = OutboxEvent.objects.get()
    assert row.event_type == "OrderPaid"
    assert row.status == OutboxEvent.Status.PENDING
    assert row.payload["payload"]["order_code"] == "ORD-20250601-00001"


@pytest.mark.django_db
def test_rolled_back_unit_of_work_leaves_no_events():
    with pytest.raises(RuntimeError):
        with DjangoUnitOfWork() as uow:
            uow.add_event(_order_paid())
            raise RuntimeError("boom")

    assert OutboxEvent.objects.count() == 0


@pytest.mark.django_db
def test_deliver_rebuilds_event_and_marks_delivered():
    received = []
    bus = MessageBus()
    bus.register_event_handler(OrderPaid, received.append)
    event = _order_paid()
    [outbox_id] = record_events([event])

    assert deliver(outbox_id, bus) is True

    assert received[0].order_code == event.order_code
    assert received[0].event_id == event.event_id
    row = OutboxEvent.objects.get(pk=outbox_id)
    assert row.status == OutboxEvent.Status.DELIVERED
    assert row.delivered_at is not None
    assert deliver(outbox_id, bus) is True
    assert len(received) == 1


@pytest.mark.django_db
def test_subscriber_failure_leaves_row_for_retry():
    bus = MessageBus()

    def broken(event):
        raise ConnectionError("notifier down")

    bus.register_event_handler(OrderPaid, broken)
    [outbox_id] = record_events([_order_paid()])

    assert deliver(outbox_id, bus) is False

    row = OutboxEvent.objects.get(pk=outbox_id)
    assert row.status == OutboxEvent.Status.FAILED
    assert row.attempts == 1
    assert "1 subscriber" in row.last_error


@pytest.mark.django_db
@override_settings(ORDER_EVENTS_WEBHOOK_URL="")
def test_dispatcher_delivers_pending_rows():
    record_events([_order_paid("ORD-20250601-00001"), _order_paid("ORD-20250601-00002")])

    result = dispatch_pending_events()

    assert result == {"delivered": 2, "failed": 0}
    assert OutboxEvent.objects.filter(status=OutboxEvent.Status.DELIVERED).count() == 2


@pytest.mark.django_db
@override_settings(OUTBOX_MAX_ATTEMPTS=3)
def test_dispatcher_skips_rows_past_max_attempts():
    [outbox_id] = record_events([_order_paid()])
    OutboxEvent.objects.filter(pk=outbox_id).update(status=OutboxEvent.Status.FAILED, attempts=3)

    assert dispatch_pending_events() == {"delivered": 0, "failed": 0}


@override_settings(ORDER_EVENTS_WEBHOOK_URL="https://notifier.example.test/events", ORDER_EVENTS_WEBHOOK_TOKEN="tok")
def test_forwarder_posts_event_envelope():
    event = _order_paid()
    response = MagicMock()
    with patch("apps.notifications.services.requests.post", return_value=response) as post:
        forward_event_to_webhook(event)

    args, kwargs = post.call_args
    assert args[0] == "https://notifier.example.test/events"
    assert kwargs["json"]["event_type"] == "OrderPaid"
    assert kwargs["json"]["payload"]["balance_due"] == "2500.00"
    assert kwargs["headers"]["Authorization"] == "Bearer tok"
    response.raise_for_status.assert_called_once()


@override_settings(ORDER_EVENTS_WEBHOOK_URL="https://notifier.example.test/events")
def test_forwarder_raises_on_http_failure():
    response = MagicMock()
    response.raise_for_status.side_effect = requests.exceptions.HTTPError("500")
    with patch("apps.notifications.services.requests.post", return_value=response):
        with pytest.raises(requests.exceptions.HTTPError):
            forward_event_to_webhook(_order_paid())


@pytest.mark.django_db
@override_settings(ORDER_EVENTS_WEBHOOK_URL="", BOOKING_STAFF_EMAILS=["ops@example.com"])
def test_overbooking_event_emails_staff():
    [outbox_id] = record_events(
        [OverbookingDetected(aggregate_id="ORD-1", order_code="ORD-1", vehicle_id="V1", days=["2025-06-10"])]
    )

    assert deliver(outbox_id) is True

    assert len(mail.outbox) == 1
    assert "ORD-1" in mail.outbox[0].subject
    assert "2025-06-10" in mail.outbox[0].body


@pytest.mark.django_db
@override_settings(
    ORDER_EVENTS_WEBHOOK_URL="https://notifier.example.test/events",
    BOOKING_STAFF_EMAILS=["ops@example.com"],
    OUTBOX_MAX_ATTEMPTS=5,
)
def test_staff_email_sent_once_while_notifier_keeps_failing():
    [outbox_id] = record_events(
        [OverbookingDetected(aggregate_id="ORD-2", order_code="ORD-2", vehicle_id="V1", days=["2025-06-10"])]
    )
    response = MagicMock()
    response.raise_for_status.side_effect = requests.exceptions.HTTPError("502")

    with patch("apps.notifications.services.requests.post", return_value=response) as post:
        assert deliver(outbox_id) is False
        dispatch_pending_events()
        dispatch_pending_events()

    assert post.call_count == 3
    assert len(mail.outbox) == 1
    row = OutboxEvent.objects.get(pk=outbox_id)
    assert row.status == OutboxEvent.Status.FAILED
    assert row.attempts == 3
    assert row.delivered_handlers == ["apps.notifications.services.email_staff_overbooking_alert"]

    response.raise_for_status.side_effect = None
    with patch("apps.notifications.services.requests.post", return_value=response):
        assert deliver(outbox_id) is True

    assert len(mail.outbox) == 1
    assert OutboxEvent.objects.get(pk=outbox_id).status == OutboxEvent.Status.DELIVERED


def test_message_bus_skips_handlers_that_already_ran():
    calls = []
    bus = MessageBus()

    def first(event):
        calls.append("first")

    def second(event):
        calls.append("second")

    bus.register_event_handler(OrderPaid, first)
    bus.register_event_handler(OrderPaid, second)

    handled, failures = bus.publish_event(_order_paid(), skip=[MessageBus.handler_name(first)])

    assert calls == ["second"]
    assert failures == 0
    assert handled == [MessageBus.handler_name(second)]
    assert len(bus.handlers_for(OrderPaid)) == 2
