"""Tests for the availability check API."""

from __future__ import annotations

from datetime import date

from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from apps.inventory.models import InventoryCapacity


class AvailabilityAPITests(APITestCase):
    def setUp(self) -> None:
        InventoryCapacity.objects.create(vehicle_id="V1", date=date(2025, 6, 10), remaining=1)
        InventoryCapacity.objects.create(vehicle_id="V1", date=date(2025, 6, 11), remaining=0)

    def test_single_day_check(self) -> None:
        response = self.client.post(
            reverse("inventory-check"),
            {"vehicle_id": "V1", "date": "2025-06-10"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertTrue(response.data["available"])

    def test_range_check_lists_every_day(self) -> None:
        response = self.client.post(
            reverse("inventory-check-range"),
            {"vehicle_id": "V1", "start_date": "2025-06-10", "end_date": "2025-06-12"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertFalse(response.data["available"])
        self.assertEqual([d["remaining"] for d in response.data["days"]], [1, 0, 0])

    def test_reversed_range_is_rejected(self) -> None:
        response = self.client.post(
            reverse("inventory-check-range"),
            {"vehicle_id": "V1", "start_date": "2025-06-12", "end_date": "2025-06-10"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("end_date", response.data)
