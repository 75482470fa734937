"""Per-job serialization of intents."""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import UUID

from jobflow.domain.shared.exceptions import ConflictError

logger = logging.getLogger(__name__)


class JobLockRegistry:
    """
    One re-entrant lock per job id.

    Intents on different jobs never contend; intents on the same job run one
    at a time. Waiting longer than the timeout raises ``ConflictError``.
    A job's lock is dropped once no thread holds or waits for it.
    """

    def __init__(self, timeout_seconds: float = 10.0) -> None:
        self._timeout = timeout_seconds
        self._locks: dict[UUID, threading.RLock] = {}
        self._users: dict[UUID, int] = {}
        self._guard = threading.Lock()

    def _checkout(self, job_id: UUID) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(job_id)
            if lock is None:
                lock = self._locks[job_id] = threading.RLock()
            self._users[job_id] = self._users.get(job_id, 0) + 1
            return lock

    def _checkin(self, job_id: UUID) -> None:
        with self._guard:
            remaining = self._users[job_id] - 1
            if remaining:
                self._users[job_id] = remaining
            else:
                del self._users[job_id]
                del self._locks[job_id]

    @contextmanager
    def hold(self, job_id: UUID, timeout: float | None = None) -> Iterator[None]:
        lock = self._checkout(job_id)
        wait = self._timeout if timeout is None else timeout
        try:
            if not lock.acquire(timeout=wait):
                logger.warning(
                    f"Timed out after {wait}s waiting for lock on job {job_id}"
                )
                raise ConflictError(
                    f"Job {job_id} is busy; try again",
                    {"job_id": str(job_id), "timeout_seconds": wait},
                )
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(job_id)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
