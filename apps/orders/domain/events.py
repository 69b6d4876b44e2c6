"""
Order Domain Events

Written to the outbox together with the state change that produced them
and delivered to subscribers after commit. Fields are plain strings and
numbers so the payload survives a JSON round trip.
"""

from dataclasses import dataclass, field
from typing import List

from shared.domain.base import DomainEvent


@dataclass
class OrderPaid(DomainEvent):
    """
    Event: deposit captured, order moved unpaid -> paid

    Triggers:
    - Customer confirmation (external notifier)
    - Staff alert for dispatch
    """
    order_code: str = ''
    vehicle_id: str = ''
    vehicle_name: str = ''
    driver_language: str = ''
    start_date: str = ''
    end_date: str = ''
    pickup_location: str = ''
    return_location: str = ''
    total_price: str = '0.00'
    deposit: str = '0.00'
    balance_due: str = '0.00'
    currency: str = 'CNY'
    contact_name: str = ''
    contact_phone: str = ''
    contact_email: str = ''
    external_reference: str = ''
    paid_at: str = ''


@dataclass
class OverbookingDetected(DomainEvent):
    """
    Event: payment succeeded but capacity could not be consumed

    Needs manual reconciliation (refund or alternative vehicle).
    """
    order_code: str = ''
    vehicle_id: str = ''
    days: List[str] = field(default_factory=list)
    reason: str = ''
    external_reference: str = ''
