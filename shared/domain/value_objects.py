"""
Common Value Objects

Value objects used across the booking apps:
- Money: Represents monetary amounts with currency
- DateRange: Represents an inclusive range of charter days
"""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterator

from shared.domain.base import ValueObject

SUPPORTED_CURRENCIES = ('CNY', 'JPY', 'USD')


@dataclass(frozen=True)
class Money(ValueObject):
    """
    Money value object

    Represents a monetary amount with currency.
    Immutable and supports the arithmetic the booking flow needs.
    """
    amount: Decimal
    currency: str = 'CNY'

    def __post_init__(self):
        if self.amount < 0:
            raise ValueError("Amount cannot be negative")
        if not self.currency:
            raise ValueError("Currency is required")
        if self.currency not in SUPPORTED_CURRENCIES:
            raise ValueError(f"Unsupported currency: {self.currency}")

    def __add__(self, other: 'Money') -> 'Money':
        """Add two money objects"""
        if not isinstance(other, Money):
            raise TypeError("Can only add Money to Money")
        if self.currency != other.currency:
            raise ValueError(f"Cannot add different currencies: {self.currency} and {other.currency}")
        return Money(self.amount + other.amount, self.currency)

    def minus_floor_zero(self, other: 'Money') -> 'Money':
        """Subtract, clamping at zero (balance due after a deposit)"""
        if self.currency != other.currency:
            raise ValueError(f"Cannot subtract different currencies: {self.currency} and {other.currency}")
        return Money(max(self.amount - other.amount, Decimal('0')), self.currency)

    @property
    def minor_units(self) -> int:
        """Amount in the smallest currency unit (fen/cents), as processors expect"""
        return int((self.amount * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))

    @classmethod
    def from_minor_units(cls, value: int, currency: str) -> 'Money':
        return cls(Decimal(value) / Decimal(100), currency.upper())

    def __str__(self):
        return f"{self.amount:,.2f} {self.currency}"

    def __repr__(self):
        return f"Money({self.amount}, '{self.currency}')"


@dataclass(frozen=True)
class DateRange(ValueObject):
    """
    Date range value object

    Represents charter days from start_date to end_date, both inclusive.
    A single-day charter has start_date == end_date.
    """
    start_date: date
    end_date: date

    def __post_init__(self):
        if self.end_date < self.start_date:
            raise ValueError(f"End date ({self.end_date}) must not be before start date ({self.start_date})")

    def days(self) -> Iterator[date]:
        """Iterate every calendar day in the range"""
        current = self.start_date
        while current <= self.end_date:
            yield current
            current += timedelta(days=1)

    def __len__(self) -> int:
        """Number of charter days"""
        return (self.end_date - self.start_date).days + 1

    def __str__(self):
        if self.start_date == self.end_date:
            return self.start_date.isoformat()
        return f"{self.start_date.isoformat()} - {self.end_date.isoformat()}"

    def __repr__(self):
        return f"DateRange({self.start_date}, {self.end_date})"
