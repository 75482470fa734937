"""Event bus, publisher and notification delivery."""

from .event_bus import EventBusInterface, InMemoryEventBus
from .event_publisher import DomainEventPublisher, EventPublisherInterface
from .notifications import (
    InMemoryNotificationGateway,
    LoggingNotificationGateway,
    Notification,
    NotificationDispatcher,
    NotificationGateway,
    NotificationKind,
    NotificationPriority,
)

__all__ = [
    "DomainEventPublisher",
    "EventBusInterface",
    "EventPublisherInterface",
    "InMemoryEventBus",
    "InMemoryNotificationGateway",
    "LoggingNotificationGateway",
    "Notification",
    "NotificationDispatcher",
    "NotificationGateway",
    "NotificationKind",
    "NotificationPriority",
]
