"""
Client-side cache of job records fed by the push channel.

Out-of-band changes arrive as whole records. A newer record replaces the
cached one wholesale; fields are never merged, and a record no newer than the
cached version is ignored.
"""

import logging
import threading
from collections.abc import Callable, Iterable
from uuid import UUID

from jobflow.domain.jobs.entities import Job
from jobflow.domain.jobs.events import JobEvent
from jobflow.domain.jobs.repositories import UnitOfWork
from jobflow.infrastructure.events import EventBusInterface

logger = logging.getLogger(__name__)

Listener = Callable[[Job], None]


class JobSnapshotCache:
    """Thread-safe map of job id to the latest known record."""

    def __init__(self) -> None:
        self._jobs: dict[UUID, Job] = {}
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def reconcile(self, job: Job) -> bool:
        """
        Apply a pushed record.

        Returns:
            True if ``job`` replaced the cached record; False if it was stale
        """
        snapshot = job.model_copy(deep=True)
        with self._lock:
            cached = self._jobs.get(job.id)
            if cached is not None and cached.version >= job.version:
                logger.debug(
                    f"Ignoring record for job {job.id} "
                    f"(v{job.version}, cached v{cached.version})"
                )
                return False
            self._jobs[job.id] = snapshot
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Snapshot listener failed for job {job.id}: {str(e)}")
        return True

    def reconcile_all(self, jobs: Iterable[Job]) -> int:
        return sum(1 for job in jobs if self.reconcile(job))

    def get(self, job_id: UUID) -> Job | None:
        with self._lock:
            cached = self._jobs.get(job_id)
        return cached.model_copy(deep=True) if cached is not None else None

    def evict(self, job_id: UUID) -> None:
        with self._lock:
            self._jobs.pop(job_id, None)

    def subscribe(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)


class JobSnapshotFeed:
    """
    Push channel from committed events into a ``JobSnapshotCache``.

    Events only carry the job id, so every event re-reads the committed job
    and hands the whole record to the cache.
    """

    def __init__(
        self, cache: JobSnapshotCache, unit_of_work_factory: Callable[[], UnitOfWork]
    ) -> None:
        self.cache = cache
        self._uow_factory = unit_of_work_factory

    def register(self, event_bus: EventBusInterface) -> None:
        event_bus.subscribe(JobEvent, self.handle)

    def handle(self, event: JobEvent) -> None:
        with self._uow_factory() as uow:
            job = uow.jobs.get(event.job_id)
        if job is None:
            logger.warning(f"Job {event.job_id} vanished before it could be pushed")
            return
        self.cache.reconcile(job)
