"""
Base Domain Classes

This module provides the foundational building blocks shared by the
booking apps:
- ValueObject: Immutable objects compared by value
- DomainEvent: Events that represent something that happened

Events are persisted to the outbox inside the same transaction that
produced them and delivered to subscribers after commit.
"""

from abc import ABC
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Dict
from uuid import UUID, uuid4


@dataclass(frozen=True)
class ValueObject(ABC):
    """
    Base class for value objects

    Value objects are immutable and have no identity.
    Two value objects are equal if all their attributes are equal.
    """
    pass


@dataclass
class DomainEvent:
    """
    Base class for domain events

    Subclasses declare their payload as plain (JSON-friendly) fields so the
    event can be written to the outbox and rebuilt later by
    ``from_dict``.
    """
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=datetime.now)
    aggregate_id: str = ''

    @property
    def event_type(self) -> str:
        return self.__class__.__name__

    def payload(self) -> Dict[str, Any]:
        """Event-specific fields (everything except the envelope)"""
        envelope = {'event_id', 'occurred_at', 'aggregate_id'}
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name not in envelope
        }

    def to_dict(self) -> dict:
        """Convert event to dictionary for serialization"""
        return {
            'event_id': str(self.event_id),
            'event_type': self.event_type,
            'occurred_at': self.occurred_at.isoformat(),
            'aggregate_id': self.aggregate_id or None,
            'payload': self.payload(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'DomainEvent':
        """Rebuild an event from the output of ``to_dict``"""
        return cls(
            event_id=UUID(data['event_id']),
            occurred_at=datetime.fromisoformat(data['occurred_at']),
            aggregate_id=data.get('aggregate_id') or '',
            **data.get('payload', {}),
        )
