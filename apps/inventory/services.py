"""
Availability ledger.

Two tiers:
- advisory checks (``is_available``, ``check_range``) that never mutate;
- payment-time operations (``lock_for_payment`` holds, and
  ``commit_consumption`` decrements) that serialise on the capacity
  shard rows of the (vehicle, day) key.

Effective availability of a key is the sum of ``remaining`` over its
shards minus the active holds of other orders.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from django.db import DatabaseError, IntegrityError, NotSupportedError, transaction  # type: ignore
from django.db.models import F, Sum  # type: ignore
from django.utils import timezone  # type: ignore

from shared.domain.value_objects import DateRange

from .models import InventoryCapacity, InventoryConsumption, InventoryHold

logger = logging.getLogger(__name__)


class InventoryExhausted(Exception):
    """Raised when capacity is gone at payment-session time."""

    def __init__(self, vehicle_id: str, days: List[date]):
        self.vehicle_id = vehicle_id
        self.days = days
        listed = ", ".join(day.isoformat() for day in days)
        super().__init__(f"Vehicle {vehicle_id} is no longer available on {listed}.")


class CommitOutcome(str, enum.Enum):
    COMMITTED = "committed"
    ALREADY_APPLIED = "already_applied"
    OUT_OF_STOCK = "out_of_stock"
    NO_CAPACITY = "no_capacity"

    @property
    def succeeded(self) -> bool:
        return self in (CommitOutcome.COMMITTED, CommitOutcome.ALREADY_APPLIED)


@dataclass(frozen=True)
class DayAvailability:
    date: date
    remaining: int

    @property
    def available(self) -> bool:
        return self.remaining > 0

    def as_dict(self) -> dict:
        return {"date": self.date.isoformat(), "remaining": self.remaining, "available": self.available}


def _lock_queryset_if_possible(queryset):
    """Apply select_for_update when inside transaction.atomic()."""

    if not transaction.get_connection().in_atomic_block:
        return queryset

    try:
        return queryset.select_for_update()
    except NotSupportedError:
        return queryset


def _shard_total(vehicle_id: str, day: date) -> int:
    total = InventoryCapacity.objects.filter(vehicle_id=vehicle_id, date=day).aggregate(
        total=Sum("remaining")
    )["total"]
    return total or 0


def _held_by_others(vehicle_id: str, day: date, order_code: Optional[str], now: datetime) -> int:
    holds = InventoryHold.objects.active(now).filter(vehicle_id=vehicle_id, date=day)
    if order_code:
        holds = holds.exclude(order_code=order_code)
    return holds.count()


def remaining_capacity(vehicle_id: str, day: date, order_code: Optional[str] = None) -> int:
    """Units still bookable for ``order_code`` (or anyone, when omitted)."""
    now = timezone.now()
    return max(_shard_total(vehicle_id, day) - _held_by_others(vehicle_id, day, order_code, now), 0)


def is_available(vehicle_id: str, day: date) -> bool:
    """Advisory check for a single day. Unreachable store reads as unavailable."""
    try:
        return remaining_capacity(vehicle_id, day) > 0
    except DatabaseError as exc:
        logger.error(f"Availability check failed for {vehicle_id} @ {day}: {exc}")
        return False


def check_range(vehicle_id: str, dates: DateRange) -> List[DayAvailability]:
    """Advisory per-day availability for an inclusive range; a day without rows is zero."""
    days = list(dates.days())
    now = timezone.now()
    try:
        totals: Dict[date, int] = {
            row["date"]: row["total"] or 0
            for row in InventoryCapacity.objects.filter(
                vehicle_id=vehicle_id,
                date__gte=dates.start_date,
                date__lte=dates.end_date,
            )
            .values("date")
            .annotate(total=Sum("remaining"))
        }
        held: Dict[date, int] = {}
        for hold_date in (
            InventoryHold.objects.active(now)
            .filter(vehicle_id=vehicle_id, date__gte=dates.start_date, date__lte=dates.end_date)
            .values_list("date", flat=True)
        ):
            held[hold_date] = held.get(hold_date, 0) + 1
    except DatabaseError as exc:
        logger.error(f"Range availability check failed for {vehicle_id} {dates}: {exc}")
        return [DayAvailability(day, 0) for day in days]

    return [DayAvailability(day, max(totals.get(day, 0) - held.get(day, 0), 0)) for day in days]


def _hold_day(vehicle_id: str, day: date, order_code: str, expires_at: datetime, now: datetime) -> bool:
    shards = list(_lock_queryset_if_possible(InventoryCapacity.objects.filter(vehicle_id=vehicle_id, date=day)))
    total = sum(shard.remaining for shard in shards)
    if total - _held_by_others(vehicle_id, day, order_code, now) <= 0:
        return False

    InventoryHold.objects.update_or_create(
        order_code=order_code,
        date=day,
        defaults={"vehicle_id": vehicle_id, "expires_at": expires_at},
    )
    return True


def lock_for_payment(vehicle_id: str, day: date, order_code: str, ttl: timedelta) -> bool:
    """Create or refresh the order's hold on one day. False when nothing is left or the store fails."""
    return lock_range_for_payment(vehicle_id, DateRange(day, day), order_code, ttl)


def lock_range_for_payment(vehicle_id: str, dates: DateRange, order_code: str, ttl: timedelta) -> bool:
    """Hold every day of the range for the order, all or nothing."""
    now = timezone.now()
    expires_at = now + ttl
    try:
        with transaction.atomic():
            for day in dates.days():
                if not _hold_day(vehicle_id, day, order_code, expires_at, now):
                    logger.info(f"No capacity to hold {vehicle_id} @ {day} for {order_code}")
                    # roll back holds taken for earlier days
                    transaction.set_rollback(True)
                    return False
    except DatabaseError as exc:
        logger.error(f"Could not hold {vehicle_id} {dates} for {order_code}: {exc}")
        return False

    logger.info(f"Held {vehicle_id} {dates} for {order_code} until {expires_at.isoformat()}")
    return True


def release_holds(order_code: str) -> int:
    """Drop every hold of an order (cancelled checkout). Returns the number removed."""
    deleted, _ = InventoryHold.objects.filter(order_code=order_code).delete()
    if deleted:
        logger.info(f"Released {deleted} hold(s) for {order_code}")
    return deleted


def purge_expired_holds(now: Optional[datetime] = None) -> int:
    deleted, _ = InventoryHold.objects.expired(now).delete()
    return deleted


def commit_consumption(vehicle_id: str, day: date, order_code: str) -> CommitOutcome:
    """
    Authoritative decrement of one unit for a paid order.

    Idempotent per (order, day): a replay returns ALREADY_APPLIED without
    touching capacity. Database errors propagate so the caller can retry.
    """
    try:
        with transaction.atomic():
            if InventoryConsumption.objects.filter(order_code=order_code, date=day).exists():
                return CommitOutcome.ALREADY_APPLIED

            shards = list(
                _lock_queryset_if_possible(
                    InventoryCapacity.objects.filter(vehicle_id=vehicle_id, date=day).order_by("-remaining", "pk")
                )
            )
            if not shards:
                logger.warning(f"No capacity rows for {vehicle_id} @ {day} (order {order_code})")
                return CommitOutcome.NO_CAPACITY

            for shard in shards:
                updated = InventoryCapacity.objects.filter(pk=shard.pk, remaining__gt=0).update(
                    remaining=F("remaining") - 1,
                    updated_at=timezone.now(),
                )
                if not updated:
                    continue
                InventoryConsumption.objects.create(
                    vehicle_id=vehicle_id,
                    date=day,
                    order_code=order_code,
                    capacity=shard,
                )
                InventoryHold.objects.filter(order_code=order_code, date=day).delete()
                logger.info(f"Consumed {vehicle_id} @ {day} for {order_code} (shard {shard.pk})")
                return CommitOutcome.COMMITTED

            logger.warning(f"Out of stock: {vehicle_id} @ {day} (order {order_code})")
            return CommitOutcome.OUT_OF_STOCK
    except IntegrityError:
        # a concurrent delivery for the same order won the insert
        return CommitOutcome.ALREADY_APPLIED


def commit_range_consumption(vehicle_id: str, dates: DateRange, order_code: str) -> Dict[date, CommitOutcome]:
    """Decrement every day of the range; each day is committed on its own."""
    return {day: commit_consumption(vehicle_id, day, order_code) for day in dates.days()}
