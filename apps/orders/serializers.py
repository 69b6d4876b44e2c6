"""Serializers for the order record store."""

from __future__ import annotations

from django.utils import timezone  # type: ignore
from rest_framework import serializers  # type: ignore

from shared.application.config import BookingConfig

from .models import Order
from .services import OrderDraft


class OrderCreateSerializer(serializers.Serializer):
    """
    Draft submitted at the end of the customer-details step.

    Missing input is reported per category (dates, vehicle, contact) so
    the UI can send the customer back to the right step.
    """

    start_date = serializers.DateField(required=False, allow_null=True)
    end_date = serializers.DateField(required=False, allow_null=True)
    vehicle_id = serializers.CharField(max_length=64, required=False, allow_blank=True)
    driver_language = serializers.CharField(max_length=8, required=False, allow_blank=True)
    duration_hours = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    pickup_location = serializers.CharField(max_length=255)
    return_location = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    itinerary = serializers.CharField(required=False, allow_blank=True, default="")
    passengers = serializers.IntegerField(min_value=1, max_value=50, default=1)
    luggage = serializers.IntegerField(min_value=0, max_value=50, default=0)
    contact_name = serializers.CharField(max_length=120, required=False, allow_blank=True)
    contact_phone = serializers.CharField(max_length=32, required=False, allow_blank=True)
    contact_email = serializers.EmailField(required=False, allow_blank=True)
    remark = serializers.CharField(required=False, allow_blank=True, default="")
    source = serializers.CharField(max_length=20, required=False, default="web")

    def _config(self) -> BookingConfig:
        return self.context.get("config") or BookingConfig.from_settings()

    def validate(self, attrs):
        config = self._config()
        errors = {}

        start, end = attrs.get("start_date"), attrs.get("end_date")
        if not start or not end:
            errors["dates"] = "Please select the start and end dates of your charter."
        elif end < start:
            errors["dates"] = "The end date cannot be before the start date."
        elif start <= timezone.localdate():
            errors["dates"] = "Same-day bookings are not accepted; please choose tomorrow or later."

        vehicle_id = (attrs.get("vehicle_id") or "").strip()
        language = (attrs.get("driver_language") or "").strip().lower()
        if not vehicle_id or not language or not attrs.get("duration_hours"):
            errors["vehicle"] = "Please choose a vehicle, driver language and service duration."
        elif not config.is_known_vehicle(vehicle_id):
            errors["vehicle"] = "The selected vehicle is not offered."
        elif language not in config.driver_languages:
            errors["vehicle"] = "The selected driver language is not offered."

        contact = [(attrs.get(key) or "").strip() for key in ("contact_name", "contact_phone", "contact_email")]
        if not all(contact):
            errors["contact"] = "Please fill in your contact name, phone and email."

        if errors:
            raise serializers.ValidationError(errors)

        attrs["vehicle_id"] = vehicle_id
        attrs["driver_language"] = language
        return attrs

    def to_draft(self) -> OrderDraft:
        data = self.validated_data
        return OrderDraft(
            start_date=data["start_date"],
            end_date=data["end_date"],
            vehicle_id=data["vehicle_id"],
            driver_language=data["driver_language"],
            duration_hours=data["duration_hours"],
            pickup_location=data["pickup_location"],
            return_location=data.get("return_location", ""),
            itinerary=data.get("itinerary", ""),
            passengers=data.get("passengers", 1),
            luggage=data.get("luggage", 0),
            contact_name=data["contact_name"].strip(),
            contact_phone=data["contact_phone"].strip(),
            contact_email=data["contact_email"].strip(),
            remark=data.get("remark", ""),
            source=data.get("source", "web"),
        )


class OrderSerializer(serializers.ModelSerializer):
    balance_due = serializers.SerializerMethodField()
    vehicle_name = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "order_code",
            "source",
            "start_date",
            "end_date",
            "pickup_location",
            "return_location",
            "itinerary",
            "vehicle_id",
            "vehicle_name",
            "driver_language",
            "duration_hours",
            "total_price",
            "deposit_amount",
            "balance_due",
            "currency",
            "passengers",
            "luggage",
            "contact_name",
            "contact_phone",
            "contact_email",
            "remark",
            "payment_status",
            "fulfillment_status",
            "paid_at",
            "created_at",
        ]
        read_only_fields = fields

    def get_balance_due(self, obj: Order) -> str:
        return str(obj.balance_due.amount)

    def get_vehicle_name(self, obj: Order) -> str:
        config = self.context.get("config") or BookingConfig.from_settings()
        return config.vehicle_name(obj.vehicle_id)
