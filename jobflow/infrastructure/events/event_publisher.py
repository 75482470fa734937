"""
Domain event publisher implementation.

Publishes the events a unit of work collected, strictly after its commit.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable

from jobflow.domain.shared.base import AggregateRoot, DomainEvent

from .event_bus import EventBusInterface, InMemoryEventBus

logger = logging.getLogger(__name__)


class EventPublisherInterface(ABC):
    """Contract for publishing domain events."""

    @abstractmethod
    def publish_event(self, event: DomainEvent) -> None:
        pass

    @abstractmethod
    def publish_all(self, events: Iterable[DomainEvent]) -> None:
        pass

    def publish_events(self, aggregate: AggregateRoot) -> None:
        """Publish and clear all pending domain events of an aggregate."""
        self.publish_all(aggregate.get_domain_events())
        aggregate.clear_domain_events()


class DomainEventPublisher(EventPublisherInterface):
    """
    Domain event publisher that publishes events to an event bus.

    A failing publish is logged and the remaining events still go out; the
    committed state is never affected.
    """

    def __init__(self, event_bus: EventBusInterface | None = None):
        self._event_bus = event_bus or InMemoryEventBus()

    @property
    def event_bus(self) -> EventBusInterface:
        return self._event_bus

    def publish_event(self, event: DomainEvent) -> None:
        try:
            self._event_bus.publish(event)
            logger.debug(f"Published event {event.event_name}")
        except Exception as e:
            logger.error(f"Failed to publish event {event.event_name}: {str(e)}")

    def publish_all(self, events: Iterable[DomainEvent]) -> None:
        events = list(events)
        if not events:
            return
        logger.debug(f"Publishing {len(events)} domain events")
        for event in events:
            self.publish_event(event)
