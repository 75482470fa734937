"""
Base application service providing common functionality.

Every write intent runs through ``_execute``: snapshot the job version,
take the per-job lock, re-read inside a fresh unit of work, verify the
version, let the aggregate apply the intent, commit, and only then publish
the collected domain events.
"""

from abc import ABC
from collections.abc import Callable
from datetime import datetime
from typing import TypeVar
from uuid import UUID

from jobflow.core.config import Settings
from jobflow.core.config import settings as default_settings
from jobflow.core.locking import JobLockRegistry
from jobflow.core.observability import (
    get_logger,
    record_hourmeter_flags,
    record_intent,
    record_transition,
)
from jobflow.domain.jobs.entities import Job
from jobflow.domain.jobs.events import HourmeterFlagged, JobStatusChanged
from jobflow.domain.jobs.repositories import UnitOfWork
from jobflow.domain.jobs.value_objects import Actor
from jobflow.domain.shared.base import DomainEvent, utcnow
from jobflow.domain.shared.exceptions import ConflictError, DomainError
from jobflow.infrastructure.events import DomainEventPublisher, EventPublisherInterface

T = TypeVar("T")

UnitOfWorkFactory = Callable[[], UnitOfWork]
JobAction = Callable[[UnitOfWork, Job], T]


class ApplicationServiceBase(ABC):
    """
    Base class for application services.

    Provides per-job serialization, the optimistic version check, metrics and
    post-commit event publishing shared by all write intents.
    """

    def __init__(
        self,
        unit_of_work_factory: UnitOfWorkFactory,
        locks: JobLockRegistry | None = None,
        event_publisher: EventPublisherInterface | None = None,
        config: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize the application service.

        Args:
            unit_of_work_factory: Factory for creating unit of work instances
            locks: Per-job lock registry shared by every service of the engine
            event_publisher: Receives committed domain events
            config: Engine settings
            clock: Source of ``now`` when an intent does not pass one
        """
        self._uow_factory = unit_of_work_factory
        self._settings = config or default_settings
        self._locks = locks or JobLockRegistry(self._settings.JOB_LOCK_TIMEOUT_SECONDS)
        self._event_publisher = event_publisher or DomainEventPublisher()
        self._clock = clock
        self._log = get_logger(type(self).__module__)

    def _now(self, now: datetime | None) -> datetime:
        return now or self._clock()

    def _snapshot_version(self, job_id: UUID) -> int:
        with self._uow_factory() as uow:
            return uow.jobs.require(job_id).version

    def _execute(
        self,
        intent: str,
        job_id: UUID,
        actor: Actor | None,
        action: JobAction[T],
        expected_version: int | None = None,
    ) -> T:
        """
        Run ``action`` against a freshly loaded job under its lock.

        Args:
            intent: Name used for logs and metrics
            job_id: Job the intent is keyed by
            actor: Acting user, ``None`` for system sweeps
            action: Applies the intent and stages every changed record
            expected_version: Caller's snapshot; read fresh when omitted

        Returns:
            Whatever ``action`` returns

        Raises:
            ConflictError: If the job changed since the snapshot, the lock
                timed out or the store refused the commit
            DomainError: Whatever the aggregate raised; nothing is persisted
        """
        log = self._log.bind(
            intent=intent,
            job_id=str(job_id),
            actor_id=actor.id if actor else "system",
        )
        try:
            snapshot = (
                expected_version
                if expected_version is not None
                else self._snapshot_version(job_id)
            )
            with self._locks.hold(job_id):
                with self._uow_factory() as uow:
                    job = uow.jobs.require(job_id)
                    if job.version != snapshot:
                        raise ConflictError(
                            f"Job {job_id} was modified concurrently",
                            {
                                "job_id": str(job_id),
                                "expected_version": snapshot,
                                "actual_version": job.version,
                            },
                        )
                    result = action(uow, job)
                events = list(uow.collected_events)
        except DomainError as e:
            record_intent(intent, e.error_type.value)
            log.info("intent_refused", error_type=e.error_type.value, error=e.message)
            raise

        record_intent(intent, "ok")
        log.info("intent_applied", events=[event.event_name for event in events])
        self._publish(events)
        return result

    def _publish(self, events: list[DomainEvent]) -> None:
        for event in events:
            if isinstance(event, JobStatusChanged):
                record_transition(event.old_status.value, event.new_status.value)
            elif isinstance(event, HourmeterFlagged):
                record_hourmeter_flags([r.value for r in event.flag_reasons])
        self._event_publisher.publish_all(events)
