"""
Booking configuration

Values that used to be scattered module constants (deposit, vehicle id
mapping, redirect base URL, hold lifetime) gathered into one immutable
object. Services receive it at construction time; production code builds
it from Django settings, tests build it directly.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Dict, Tuple
from urllib.parse import urlencode

from shared.domain.value_objects import Money


@dataclass(frozen=True)
class BookingConfig:
    deposit_amount: Decimal = Decimal('500.00')
    currency: str = 'CNY'
    vehicles: Dict[str, str] = field(default_factory=dict)
    driver_languages: Tuple[str, ...] = ('zh', 'jp')
    hold_ttl: timedelta = timedelta(minutes=15)
    frontend_url: str = 'http://localhost:3000'
    webhook_secret: str = ''
    webhook_tolerance_seconds: int = 300
    order_code_prefix: str = 'ORD'
    order_code_attempts: int = 5

    @classmethod
    def from_settings(cls, settings=None) -> 'BookingConfig':
        """Build the config from Django settings (BOOKING_* and PAYMENT_*)"""
        if settings is None:
            from django.conf import settings

        return cls(
            deposit_amount=Decimal(str(getattr(settings, 'BOOKING_DEPOSIT_AMOUNT', '500.00'))),
            currency=getattr(settings, 'BOOKING_CURRENCY', 'CNY'),
            vehicles=dict(getattr(settings, 'BOOKING_VEHICLES', {})),
            driver_languages=tuple(getattr(settings, 'BOOKING_DRIVER_LANGUAGES', ('zh', 'jp'))),
            hold_ttl=timedelta(minutes=int(getattr(settings, 'BOOKING_HOLD_TTL_MINUTES', 15))),
            frontend_url=getattr(settings, 'BOOKING_FRONTEND_URL', 'http://localhost:3000'),
            webhook_secret=getattr(settings, 'PAYMENT_WEBHOOK_SECRET', ''),
            webhook_tolerance_seconds=int(getattr(settings, 'PAYMENT_WEBHOOK_TOLERANCE_SECONDS', 300)),
            order_code_prefix=getattr(settings, 'BOOKING_ORDER_CODE_PREFIX', 'ORD'),
            order_code_attempts=int(getattr(settings, 'BOOKING_ORDER_CODE_ATTEMPTS', 5)),
        )

    @property
    def deposit(self) -> Money:
        return Money(self.deposit_amount, self.currency)

    def normalize_language(self, value: str) -> str:
        """Lower-case a driver language code; raises ValueError if unsupported"""
        language = (value or '').strip().lower()
        if language not in self.driver_languages:
            raise ValueError(f"Unsupported driver language: {value!r}")
        return language

    def is_known_vehicle(self, vehicle_id: str) -> bool:
        # An empty mapping means "accept any vehicle id" (fixtures, back office)
        return not self.vehicles or vehicle_id in self.vehicles

    def vehicle_name(self, vehicle_id: str) -> str:
        return self.vehicles.get(vehicle_id, vehicle_id)

    def booking_url(self, order_code: str, step: int, **extra) -> str:
        """Frontend URL resuming the booking flow at ``step`` for an order"""
        query = {'step': step, 'order_id': order_code}
        query.update(extra)
        return f"{self.frontend_url.rstrip('/')}/booking?{urlencode(query)}"
