"""
Unit of Work Pattern

Manages database transactions and ensures that domain events are
written to the outbox in the same transaction as the state change
that produced them, and handed to the dispatcher only after commit.
"""

from abc import ABC, abstractmethod
from typing import List
import logging
import sys

from django.db import transaction

from shared.domain.base import DomainEvent

logger = logging.getLogger(__name__)


class AbstractUnitOfWork(ABC):
    """Abstract Unit of Work pattern"""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.commit()
        else:
            self.rollback()

    @abstractmethod
    def commit(self):
        """Commit the transaction"""
        pass

    @abstractmethod
    def rollback(self):
        """Rollback the transaction"""
        pass

    @abstractmethod
    def add_event(self, event: DomainEvent):
        """Register an event produced inside this unit of work"""
        pass


class DjangoUnitOfWork(AbstractUnitOfWork):
    """
    Django implementation of Unit of Work

    Usage:
        with DjangoUnitOfWork() as uow:
            transitioned = mark_paid(order_code, paid_at)
            if transitioned:
                uow.add_event(OrderPaid(...))
            # Transaction commits here, outbox rows included
        # Dispatch is scheduled after commit
    """

    def __init__(self):
        self._events: List[DomainEvent] = []
        self._transaction = None

    def __enter__(self):
        """Start database transaction"""
        self._transaction = transaction.atomic()
        self._transaction.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Complete or rollback transaction"""
        try:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        except Exception:
            # Outbox write failed: roll the whole unit back
            self._transaction.__exit__(*sys.exc_info())
            raise
        self._transaction.__exit__(exc_type, exc_val, exc_tb)

    def add_event(self, event: DomainEvent):
        self._events.append(event)

    def commit(self):
        """
        Write events to the outbox and schedule their dispatch

        The outbox rows are inserted while the transaction is still open,
        so they commit (or roll back) together with the state change.
        Dispatch uses transaction.on_commit() so subscribers never see
        events from a rolled-back transaction.
        """
        logger.debug(f"Committing transaction with {len(self._events)} events")

        events = self._events.copy()
        self._events.clear()

        if not events:
            return

        from apps.notifications.services import record_events

        outbox_ids = record_events(events)
        transaction.on_commit(lambda: self._publish_events(outbox_ids))

    def rollback(self):
        """Rollback changes and discard events"""
        if self._events:
            logger.warning(f"Rolling back transaction, discarding {len(self._events)} events")
        self._events.clear()

    def _publish_events(self, outbox_ids: List[int]):
        """
        Hand committed outbox rows to the dispatcher

        Called after successful transaction commit. If the broker is down
        the rows stay pending and the periodic dispatcher picks them up.
        """
        from apps.notifications.tasks import deliver_outbox_event

        logger.info(f"Dispatching {len(outbox_ids)} outbox events after commit")

        for outbox_id in outbox_ids:
            try:
                deliver_outbox_event.delay(outbox_id)
            except Exception as e:
                logger.error(f"Error scheduling outbox event {outbox_id}: {e}", exc_info=True)
