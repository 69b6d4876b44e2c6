"""Celery tasks for the availability ledger."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore

from .services import purge_expired_holds as purge_holds

logger = logging.getLogger(__name__)


# ============================================================================
# PERIODIC TASKS (Celery Beat)
# ============================================================================

@shared_task(name="inventory.purge_expired_holds")
def purge_expired_holds() -> dict[str, int]:
    """
    Deletes payment holds whose lifetime has lapsed.

    Expired holds are already ignored by every availability read; this
    only keeps the table small. Runs every minute.
    """
    purged = purge_holds()
    if purged:
        logger.info(f"Purged {purged} expired inventory hold(s)")
    return {"purged": purged}
