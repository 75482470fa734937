"""
Record store contract shared by the in-memory and SQL backends.

Records are opaque JSON documents plus a version and a couple of indexed
columns. ``apply`` writes a batch atomically: either every write's version
check passes and all land, or ``ConflictError`` is raised and none do.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID

JOBS = "jobs"
JOB_REQUESTS = "job_requests"
AMENDMENTS = "hourmeter_amendments"
FORKLIFTS = "forklifts"

TABLES = (JOBS, JOB_REQUESTS, AMENDMENTS, FORKLIFTS)


@dataclass(frozen=True)
class StoredRecord:
    record_id: UUID
    version: int
    payload: str
    status: str | None = None
    job_id: UUID | None = None


@dataclass(frozen=True)
class StagedWrite:
    """One record write. ``expected_version`` is ``None`` for inserts."""

    table: str
    record_id: UUID
    payload: str
    new_version: int
    expected_version: int | None = None
    status: str | None = None
    job_id: UUID | None = None

    @property
    def is_insert(self) -> bool:
        return self.expected_version is None


class RecordStore(ABC):
    """Persistent store of versioned JSON records."""

    @abstractmethod
    def read(self, table: str, record_id: UUID) -> StoredRecord | None:
        """
        Raises:
            RepositoryError: If the backend fails
        """

    @abstractmethod
    def scan(
        self, table: str, status: str | None = None, job_id: UUID | None = None
    ) -> list[StoredRecord]:
        """Return records of ``table`` matching the indexed filters."""

    @abstractmethod
    def apply(self, writes: Sequence[StagedWrite]) -> None:
        """
        Apply all writes or none.

        Raises:
            ConflictError: If an insert collides or an update's stored
                version differs from ``expected_version``
            RepositoryError: If the backend fails
        """
