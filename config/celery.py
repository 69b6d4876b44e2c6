import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

app = Celery("charter_booking")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


# ============================================================================
# CELERY BEAT SCHEDULE (Periodic Tasks)
# ============================================================================

app.conf.beat_schedule = {
    # Retry outbox events that were not delivered after commit - every minute
    "dispatch-pending-events": {
        "task": "notifications.dispatch_pending_events",
        "schedule": 60.0,
        "options": {"expires": 50},
    },
    # Drop lapsed payment holds - every minute
    "purge-expired-holds": {
        "task": "inventory.purge_expired_holds",
        "schedule": 60.0,
        "options": {"expires": 50},
    },
}
