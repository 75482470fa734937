"""
Event bus implementation for domain event publishing and subscription.

Handlers subscribe to an event class and also receive its subclasses, so a
handler registered for ``JobEvent`` sees every job event. Handler failures are
logged and counted; they never reach the publisher.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Callable

from jobflow.core.observability import EVENT_HANDLER_FAILURES, EVENTS_PUBLISHED
from jobflow.domain.shared.base import DomainEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], None]


class EventBusInterface(ABC):
    """
    Abstract interface for event bus implementations.

    Defines the contract for publishing events and subscribing to event types.
    """

    @abstractmethod
    def publish(self, event: DomainEvent) -> None:
        """
        Publish a domain event to all registered handlers.

        Args:
            event: Domain event to publish
        """
        pass

    @abstractmethod
    def subscribe(self, event_type: type[DomainEvent], handler: EventHandler) -> None:
        """
        Subscribe a handler to an event type and its subclasses.

        Args:
            event_type: Type of event to subscribe to
            handler: Handler function to call when event is published
        """
        pass

    @abstractmethod
    def unsubscribe(self, event_type: type[DomainEvent], handler: EventHandler) -> None:
        pass

    @abstractmethod
    def clear_handlers(self, event_type: type[DomainEvent] | None = None) -> None:
        """
        Clear event handlers.

        Args:
            event_type: Optional event type to clear handlers for. If None, clears all.
        """
        pass


class InMemoryEventBus(EventBusInterface):
    """
    In-memory, synchronous implementation of the event bus.

    Events are dispatched in the order they are published; a bounded history
    is kept for inspection.
    """

    def __init__(self, max_history_size: int = 1000):
        self._handlers: dict[type[DomainEvent], list[EventHandler]] = defaultdict(list)
        self._event_history: list[DomainEvent] = []
        self._max_history_size = max_history_size
        self._lock = threading.Lock()

    def publish(self, event: DomainEvent) -> None:
        self._add_to_history(event)
        EVENTS_PUBLISHED.labels(event_type=event.event_name).inc()

        handlers = self._handlers_for(type(event))
        if not handlers:
            logger.debug(f"No handlers registered for event type: {event.event_name}")
            return

        logger.debug(f"Publishing event {event.event_name} to {len(handlers)} handlers")

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                EVENT_HANDLER_FAILURES.labels(event_type=event.event_name).inc()
                logger.error(
                    f"Error handling event {event.event_name} with {handler}: {str(e)}",
                    exc_info=True,
                )
                # Continue with other handlers even if one fails

    def subscribe(self, event_type: type[DomainEvent], handler: EventHandler) -> None:
        with self._lock:
            if handler in self._handlers[event_type]:
                logger.warning(
                    f"Handler {handler} already subscribed to {event_type.__name__}"
                )
                return
            self._handlers[event_type].append(handler)
        logger.debug(f"Subscribed handler {handler} to event type {event_type.__name__}")

    def unsubscribe(self, event_type: type[DomainEvent], handler: EventHandler) -> None:
        with self._lock:
            if handler in self._handlers.get(event_type, []):
                self._handlers[event_type].remove(handler)

    def clear_handlers(self, event_type: type[DomainEvent] | None = None) -> None:
        with self._lock:
            if event_type is None:
                self._handlers.clear()
            else:
                self._handlers.pop(event_type, None)

    def get_event_history(self) -> list[DomainEvent]:
        with self._lock:
            return list(self._event_history)

    def clear_history(self) -> None:
        with self._lock:
            self._event_history.clear()

    def _handlers_for(self, event_type: type[DomainEvent]) -> list[EventHandler]:
        with self._lock:
            handlers: list[EventHandler] = []
            for cls in event_type.__mro__:
                for handler in self._handlers.get(cls, []):
                    if handler not in handlers:
                        handlers.append(handler)
            return handlers

    def _add_to_history(self, event: DomainEvent) -> None:
        with self._lock:
            self._event_history.append(event)
            if len(self._event_history) > self._max_history_size:
                del self._event_history[: -self._max_history_size]
