"""Celery tasks for outbox delivery."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore
from django.conf import settings  # type: ignore

from .services import deliver, pending_events

logger = logging.getLogger(__name__)


@shared_task(name="notifications.deliver_outbox_event")
def deliver_outbox_event(outbox_id: int) -> bool:
    """Delivers one committed event; scheduled by the unit of work after commit."""
    return deliver(outbox_id)


# ============================================================================
# PERIODIC TASKS (Celery Beat)
# ============================================================================

@shared_task(name="notifications.dispatch_pending_events")
def dispatch_pending_events() -> dict[str, int]:
    """
    Retries outbox rows that were never delivered.

    Covers a broker outage at commit time and subscriber failures.
    Rows past OUTBOX_MAX_ATTEMPTS are left for manual inspection.

    Returns:
        dict: {"delivered": ..., "failed": ...}
    """
    max_attempts = getattr(settings, "OUTBOX_MAX_ATTEMPTS", 10)
    delivered = failed = 0
    for row in pending_events(max_attempts):
        if deliver(row.pk):
            delivered += 1
        else:
            failed += 1

    if delivered or failed:
        logger.info(f"Outbox dispatch: {delivered} delivered, {failed} failed")
    return {"delivered": delivered, "failed": failed}
