"""Tests for payment webhook reconciliation."""

from __future__ import annotations

import json
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import patch

from django.db import OperationalError
from django.db.models import Sum
from django.test import override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.inventory.models import InventoryCapacity, InventoryConsumption
from apps.notifications.models import OutboxEvent
from apps.orders.models import Order
from apps.payments.gateway import build_signature_header
from apps.payments.models import PaymentNotification, PaymentRecord
from apps.payments.services import Outcome, PaymentReconciliationHandler
from shared.application.config import BookingConfig

SECRET = "whsec_test_secret"
DAY = date(2025, 6, 10)


def _database_down(*args, **kwargs):
    raise OperationalError("db down")


@override_settings(PAYMENT_WEBHOOK_SECRET=SECRET)
class PaymentWebhookTests(APITestCase):
    def setUp(self) -> None:
        self.url = reverse("payment-webhook")
        self.order = self._order("ORD-20250601-00001")

    def _order(self, code: str, **overrides) -> Order:
        data = {
            "order_code": code,
            "start_date": DAY,
            "end_date": DAY,
            "pickup_location": "Kansai Airport T1",
            "vehicle_id": "V1",
            "driver_language": "zh",
            "duration_hours": 8,
            "total_price": Decimal("3000.00"),
            "deposit_amount": Decimal("500.00"),
            "contact_name": "Li Wei",
            "contact_phone": "+8613800000000",
            "contact_email": "li.wei@example.com",
        }
        data.update(overrides)
        return Order.objects.create(**data)

    def _event(self, order: Order | None = None, session_id: str = "cs_test_1", **metadata_overrides) -> dict:
        order = order or self.order
        metadata = {
            "order_code": order.order_code,
            "vehicle_id": order.vehicle_id,
            "start_date": order.start_date.isoformat(),
            "end_date": order.end_date.isoformat(),
            "type": "deposit",
        }
        metadata.update(metadata_overrides)
        metadata = {key: value for key, value in metadata.items() if value is not None}
        return {
            "id": f"evt_{session_id}",
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": session_id,
                    "client_reference_id": order.order_code,
                    "payment_intent": f"pi_{session_id}",
                    "payment_status": "paid",
                    "amount_total": 50000,
                    "currency": "cny",
                    "metadata": metadata,
                }
            },
        }

    def _post(self, event, *, secret: str = SECRET, raw: bytes | None = None):
        body = raw if raw is not None else json.dumps(event).encode()
        return self.client.post(
            self.url,
            data=body,
            content_type="application/json",
            HTTP_STRIPE_SIGNATURE=build_signature_header(body, secret),
        )

    def _remaining(self) -> int:
        return InventoryCapacity.objects.filter(vehicle_id="V1", date=DAY).aggregate(t=Sum("remaining"))["t"] or 0

    def test_paid_notification_marks_order_and_consumes_inventory(self) -> None:
        InventoryCapacity.objects.create(vehicle_id="V1", date=DAY, remaining=2)

        response = self._post(self._event())

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()["status"], Outcome.PAID.value)
        self.order.refresh_from_db()
        self.assertTrue(self.order.is_paid)
        self.assertEqual(self.order.fulfillment_status, Order.FulfillmentStatus.CONFIRMED)
        record = PaymentRecord.objects.get(order=self.order)
        self.assertEqual(record.external_reference, "cs_test_1")
        self.assertEqual(record.amount, Decimal("500.00"))
        self.assertEqual(self._remaining(), 1)
        event = OutboxEvent.objects.get(event_type="OrderPaid")
        self.assertEqual(event.aggregate_id, self.order.order_code)
        self.assertEqual(event.payload["payload"]["balance_due"], "2500.00")

    def test_duplicate_delivery_is_applied_once(self) -> None:
        InventoryCapacity.objects.create(vehicle_id="V1", date=DAY, remaining=2)
        event = self._event()

        first = self._post(event)
        second = self._post(event)

        self.assertEqual(first.json()["status"], Outcome.PAID.value)
        self.assertEqual(second.status_code, status.HTTP_200_OK)
        self.assertEqual(second.json()["status"], Outcome.DUPLICATE.value)
        self.assertEqual(Order.objects.filter(payment_status=Order.PaymentStatus.PAID).count(), 1)
        self.assertEqual(PaymentRecord.objects.count(), 1)
        self.assertEqual(InventoryConsumption.objects.count(), 1)
        self.assertEqual(self._remaining(), 1)
        self.assertEqual(OutboxEvent.objects.filter(event_type="OrderPaid").count(), 1)

    def test_bad_signature_is_rejected_without_side_effects(self) -> None:
        InventoryCapacity.objects.create(vehicle_id="V1", date=DAY, remaining=1)

        with self.assertLogs("apps.payments", level="WARNING"):
            response = self._post(self._event(), secret="whsec_wrong")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.order.refresh_from_db()
        self.assertFalse(self.order.is_paid)
        self.assertEqual(self._remaining(), 1)
        self.assertEqual(PaymentNotification.objects.count(), 0)

    def test_missing_signature_is_rejected(self) -> None:
        body = json.dumps(self._event()).encode()
        response = self.client.post(self.url, data=body, content_type="application/json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_invalid_json_is_bad_request(self) -> None:
        response = self._post(None, raw=b"{not json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_other_event_types_are_acknowledged_and_ignored(self) -> None:
        event = self._event()
        event["type"] = "checkout.session.expired"

        response = self._post(event)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()["status"], Outcome.IGNORED.value)
        self.order.refresh_from_db()
        self.assertFalse(self.order.is_paid)

    def test_missing_correlation_fields_are_acknowledged_without_changes(self) -> None:
        InventoryCapacity.objects.create(vehicle_id="V1", date=DAY, remaining=1)

        response = self._post(self._event(vehicle_id=None))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()["status"], Outcome.INCOMPLETE.value)
        self.order.refresh_from_db()
        self.assertFalse(self.order.is_paid)
        self.assertEqual(self._remaining(), 1)
        notification = PaymentNotification.objects.get()
        self.assertEqual(notification.status, PaymentNotification.Status.INCOMPLETE)

    def test_order_code_falls_back_to_client_reference(self) -> None:
        InventoryCapacity.objects.create(vehicle_id="V1", date=DAY, remaining=1)

        response = self._post(self._event(order_code=None))

        self.assertEqual(response.json()["status"], Outcome.PAID.value)

    def test_unknown_order_is_acknowledged(self) -> None:
        response = self._post(self._event(order_code="ORD-20000101-00000"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()["status"], Outcome.ORDER_NOT_FOUND.value)

    def test_overbooking_keeps_payment_and_raises_alert(self) -> None:
        InventoryCapacity.objects.create(vehicle_id="V1", date=DAY, remaining=0)

        with self.assertLogs("apps.payments.services", level="CRITICAL"):
            response = self._post(self._event())

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()["status"], Outcome.OVERBOOKED.value)
        self.order.refresh_from_db()
        self.assertTrue(self.order.is_paid)
        self.assertEqual(PaymentRecord.objects.count(), 1)
        alert = OutboxEvent.objects.get(event_type="OverbookingDetected")
        self.assertEqual(alert.payload["payload"]["days"], [DAY.isoformat()])

    def test_missing_inventory_row_is_an_overbooking(self) -> None:
        with self.assertLogs("apps.payments.services", level="CRITICAL"):
            response = self._post(self._event())
        self.assertEqual(response.json()["status"], Outcome.OVERBOOKED.value)

    def test_last_unit_scenario(self) -> None:
        InventoryCapacity.objects.create(vehicle_id="V1", date=DAY, remaining=1)
        other = self._order("ORD-20250601-00002")

        first = self._post(self._event(session_id="cs_first"))
        with self.assertLogs("apps.payments.services", level="CRITICAL"):
            second = self._post(self._event(other, session_id="cs_second"))
        replay = self._post(self._event(session_id="cs_first"))

        self.assertEqual(first.json()["status"], Outcome.PAID.value)
        self.assertEqual(second.json()["status"], Outcome.OVERBOOKED.value)
        self.assertEqual(replay.json()["status"], Outcome.DUPLICATE.value)
        self.assertEqual(self._remaining(), 0)
        self.assertEqual(InventoryConsumption.objects.count(), 1)

    def test_multi_day_order_consumes_every_day(self) -> None:
        order = self._order("ORD-20250601-00003", end_date=DAY + timedelta(days=1))
        InventoryCapacity.objects.create(vehicle_id="V1", date=DAY, remaining=1)
        InventoryCapacity.objects.create(vehicle_id="V1", date=DAY + timedelta(days=1), remaining=1)

        response = self._post(self._event(order, session_id="cs_multi"))

        self.assertEqual(response.json()["status"], Outcome.PAID.value)
        self.assertEqual(InventoryConsumption.objects.filter(order_code=order.order_code).count(), 2)

    def test_database_outage_asks_for_redelivery_and_rolls_back(self) -> None:
        InventoryCapacity.objects.create(vehicle_id="V1", date=DAY, remaining=1)
        handler = PaymentReconciliationHandler(
            BookingConfig(webhook_secret=SECRET),
            commit_consumption=_database_down,
        )
        body = json.dumps(self._event()).encode()

        result = handler.handle(body, build_signature_header(body, SECRET))

        self.assertEqual(result.outcome, Outcome.RETRY)
        self.assertEqual(result.http_status, 503)
        self.order.refresh_from_db()
        self.assertFalse(self.order.is_paid)
        self.assertEqual(PaymentRecord.objects.count(), 0)
        self.assertEqual(OutboxEvent.objects.count(), 0)

    def test_uncaptured_payment_is_ignored(self) -> None:
        event = self._event()
        event["data"]["object"]["payment_status"] = "unpaid"

        response = self._post(event)

        self.assertEqual(response.json()["status"], Outcome.IGNORED.value)
        self.order.refresh_from_db()
        self.assertFalse(self.order.is_paid)

    def test_stale_signature_is_rejected(self) -> None:
        body = json.dumps(self._event()).encode()
        header = build_signature_header(body, SECRET, timestamp=int(timezone.now().timestamp()) - 3600)
        response = self.client.post(self.url, data=body, content_type="application/json", HTTP_STRIPE_SIGNATURE=header)
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_signed_events_of_the_wrong_shape_are_acknowledged(self) -> None:
        InventoryCapacity.objects.create(vehicle_id="V1", date=DAY, remaining=1)
        completed = "checkout.session.completed"
        cases = [
            {"type": completed, "data": "oops"},
            {"type": completed, "data": {"object": ["cs_test_1"]}},
            {"type": completed, "data": {"object": {"id": "cs_test_1", "metadata": ["x"]}}},
            self._event(start_date=20250610),
            self._event(start_date=["2025-06-10"]),
            self._event(order_code=12345, vehicle_id={"id": "V1"}),
        ]
        for index, event in enumerate(cases):
            event["id"] = f"evt_shape_{index}"
            with self.subTest(event=event):
                response = self._post(event)

                self.assertEqual(response.status_code, status.HTTP_200_OK)
                self.assertEqual(response.json()["status"], Outcome.INCOMPLETE.value)

        self.order.refresh_from_db()
        self.assertFalse(self.order.is_paid)
        self.assertEqual(self._remaining(), 1)
        self.assertEqual(
            PaymentNotification.objects.filter(status=PaymentNotification.Status.INCOMPLETE).count(),
            len(cases),
        )

    def test_unreadable_amount_still_marks_order_paid(self) -> None:
        InventoryCapacity.objects.create(vehicle_id="V1", date=DAY, remaining=1)
        event = self._event()
        event["data"]["object"]["amount_total"] = "fifty"

        with self.assertLogs("apps.payments.services", level="WARNING") as logs:
            response = self._post(event)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json()["status"], Outcome.PAID.value)
        self.assertTrue(any("unusable amount" in line for line in logs.output))
        self.order.refresh_from_db()
        self.assertTrue(self.order.is_paid)
        record = PaymentRecord.objects.get(order=self.order)
        self.assertEqual(record.amount, Decimal("500.00"))
        self.assertEqual(record.currency, "CNY")
        self.assertEqual(self._remaining(), 0)

    def test_unsupported_currency_falls_back_to_deposit(self) -> None:
        InventoryCapacity.objects.create(vehicle_id="V1", date=DAY, remaining=1)
        event = self._event()
        event["data"]["object"]["currency"] = "eur"

        response = self._post(event)

        self.assertEqual(response.json()["status"], Outcome.PAID.value)
        record = PaymentRecord.objects.get(order=self.order)
        self.assertEqual((record.amount, record.currency), (Decimal("500.00"), "CNY"))
