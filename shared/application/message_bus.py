"""
Message Bus

Central hub for routing domain events to their subscribers.
Subscribers are registered at app start-up (see the notifications app
config) and invoked by the outbox dispatcher after the producing
transaction has committed.
"""

from typing import Callable, Dict, Iterable, List, Tuple, Type
import logging

from shared.domain.base import DomainEvent

logger = logging.getLogger(__name__)


class MessageBus:
    """
    Message bus for domain events

    Events: Multiple handlers per event (1:N)
    """

    def __init__(self):
        self._event_handlers: Dict[Type[DomainEvent], List[Callable]] = {}
        self._event_types: Dict[str, Type[DomainEvent]] = {}

    def register_event_type(self, event_type: Type[DomainEvent]):
        """Make an event class resolvable by name (used to rebuild outbox rows)"""
        self._event_types[event_type.__name__] = event_type

    def register_event_handler(
        self,
        event_type: Type[DomainEvent],
        handler: Callable[[DomainEvent], None]
    ):
        """
        Register an event handler

        Multiple handlers can be registered for the same event type.
        Registering the same handler twice is a no-op.
        """
        self.register_event_type(event_type)
        handlers = self._event_handlers.setdefault(event_type, [])
        if handler in handlers:
            return
        handlers.append(handler)
        logger.debug(f"Registered event handler for {event_type.__name__}")

    def resolve_event_type(self, name: str) -> Type[DomainEvent]:
        try:
            return self._event_types[name]
        except KeyError:
            raise LookupError(f"Unknown event type: {name}") from None

    def handlers_for(self, event_type: Type[DomainEvent]) -> List[Callable]:
        return list(self._event_handlers.get(event_type, []))

    @staticmethod
    def handler_name(handler: Callable) -> str:
        """Stable name used to remember which subscribers already ran"""
        return f"{handler.__module__}.{getattr(handler, '__qualname__', repr(handler))}"

    def publish_event(self, event: DomainEvent, skip: Iterable[str] = ()) -> Tuple[List[str], int]:
        """
        Publish one domain event

        All registered handlers for the event type are called, except those
        whose name is in ``skip``. Errors in handlers are logged but don't
        stop other handlers.

        Returns (names of handlers that succeeded, number that failed).
        """
        event_type = type(event)
        handlers = self.handlers_for(event_type)

        if not handlers:
            logger.warning(f"No handlers registered for event {event_type.__name__}")
            return [], 0

        logger.info(f"Publishing event: {event_type.__name__} (ID: {event.event_id})")

        skipped = set(skip)
        handled: List[str] = []
        failures = 0
        for handler in handlers:
            name = self.handler_name(handler)
            if name in skipped:
                continue
            try:
                handler(event)
                handled.append(name)
                logger.debug(f"Event {event_type.__name__} handled by {name}")
            except Exception as e:
                failures += 1
                logger.error(
                    f"Error in event handler {name} "
                    f"for event {event_type.__name__}: {e}",
                    exc_info=True
                )
                # Don't raise - other handlers should still run
        return handled, failures


# Global message bus instance
message_bus = MessageBus()
