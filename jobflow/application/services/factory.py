"""
Service wiring.

All services of one engine share a lock registry and an event publisher, so
intents on the same job serialize no matter which service receives them.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from jobflow.application.sync import JobSnapshotCache, JobSnapshotFeed
from jobflow.core.config import Settings
from jobflow.core.config import settings as default_settings
from jobflow.core.locking import JobLockRegistry
from jobflow.domain.shared.base import utcnow
from jobflow.infrastructure.events import (
    DomainEventPublisher,
    EventBusInterface,
    InMemoryEventBus,
    LoggingNotificationGateway,
    NotificationDispatcher,
    NotificationGateway,
)
from jobflow.infrastructure.persistence import (
    InMemoryStore,
    RecordStore,
    SQLModelStore,
    store_uow_factory,
)

from .base_service import UnitOfWorkFactory
from .confirmation_service import ConfirmationService
from .hourmeter_service import HourmeterService
from .job_service import JobLifecycleService
from .request_service import RequestService
from .sla_service import SLAQueryService


@dataclass
class Services:
    jobs: JobLifecycleService
    hourmeter: HourmeterService
    confirmations: ConfirmationService
    requests: RequestService
    sla: SLAQueryService
    event_bus: EventBusInterface
    locks: JobLockRegistry
    notifications: NotificationDispatcher
    snapshots: JobSnapshotCache


def create_store(config: Settings | None = None) -> RecordStore:
    """Build the record store selected by ``STORAGE_BACKEND``."""
    config = config or default_settings
    if config.STORAGE_BACKEND == "sql":
        return SQLModelStore.from_url(config.DATABASE_URL, echo=config.LOG_SQL)
    return InMemoryStore()


def build_services(
    uow_factory: UnitOfWorkFactory | None = None,
    config: Settings | None = None,
    event_bus: EventBusInterface | None = None,
    notification_gateway: NotificationGateway | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> Services:
    """
    Wire every application service around one unit-of-work factory.

    Args:
        uow_factory: Defaults to a store built from ``config``
        config: Engine settings
        event_bus: Receives committed events; in-memory bus by default
        notification_gateway: Where notifications go; logged by default
        clock: Source of ``now`` for intents that do not pass one

    Committed job records are pushed into ``Services.snapshots``.
    """
    config = config or default_settings
    uow_factory = uow_factory or store_uow_factory(create_store(config))
    event_bus = event_bus or InMemoryEventBus()
    locks = JobLockRegistry(config.JOB_LOCK_TIMEOUT_SECONDS)

    dispatcher = NotificationDispatcher(notification_gateway or LoggingNotificationGateway())
    dispatcher.register(event_bus)
    snapshots = JobSnapshotCache()
    JobSnapshotFeed(snapshots, uow_factory).register(event_bus)

    shared = {
        "locks": locks,
        "event_publisher": DomainEventPublisher(event_bus),
        "config": config,
        "clock": clock,
    }
    return Services(
        jobs=JobLifecycleService(uow_factory, **shared),
        hourmeter=HourmeterService(uow_factory, **shared),
        confirmations=ConfirmationService(uow_factory, **shared),
        requests=RequestService(uow_factory, **shared),
        sla=SLAQueryService(uow_factory, **shared),
        event_bus=event_bus,
        locks=locks,
        notifications=dispatcher,
        snapshots=snapshots,
    )
