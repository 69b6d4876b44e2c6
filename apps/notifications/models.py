"""Outbox model.

Domain events are written here in the same transaction as the state
change that produced them (see ``DjangoUnitOfWork``) and delivered to
subscribers by Celery after commit. Rows that fail delivery stay in the
table and are retried by the periodic dispatcher; subscribers that
already succeeded are recorded on the row and not called again.
"""

from __future__ import annotations

from django.db import models  # type: ignore
from django.utils import timezone  # type: ignore


class OutboxEvent(models.Model):
    """A committed domain event awaiting (or done with) delivery."""

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        DELIVERED = "delivered", "Delivered"
        FAILED = "failed", "Failed"

    event_id = models.UUIDField(unique=True)
    event_type = models.CharField(max_length=100)
    aggregate_id = models.CharField(max_length=64, blank=True)
    payload = models.JSONField(default=dict)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)
    delivered_handlers = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['created_at']
        indexes = [
            models.Index(fields=['status', 'created_at']),
            models.Index(fields=['aggregate_id']),
        ]

    def __str__(self) -> str:
        return f"{self.event_type} {self.event_id} ({self.status})"

    def mark_delivered(self) -> None:
        self.status = self.Status.DELIVERED
        self.delivered_at = timezone.now()
        self.attempts += 1
        self.last_error = ""
        self.save(update_fields=['status', 'delivered_at', 'attempts', 'last_error'])

    def record_handled(self, names) -> None:
        """Remember subscribers that already received this event"""
        if not names:
            return
        self.delivered_handlers = [*self.delivered_handlers, *names]
        self.save(update_fields=['delivered_handlers'])

    def mark_failed(self, error: str) -> None:
        self.status = self.Status.FAILED
        self.attempts += 1
        self.last_error = error
        self.save(update_fields=['status', 'attempts', 'last_error'])
