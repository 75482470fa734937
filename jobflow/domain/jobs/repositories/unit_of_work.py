"""Unit of work contract: one atomic commit across job-related records."""

from abc import ABC, abstractmethod
from types import TracebackType

from ...shared.base import DomainEvent
from .job_repository import (
    AmendmentRepository,
    ForkliftRepository,
    JobRepository,
    JobRequestRepository,
)


class UnitOfWork(ABC):
    """
    Transaction boundary for one intent.

    Used as a context manager: a clean exit commits every staged record
    atomically, an exception rolls everything back. Domain events of the
    committed aggregates are available from ``collected_events`` afterwards.
    """

    jobs: JobRepository
    requests: JobRequestRepository
    amendments: AmendmentRepository
    forklifts: ForkliftRepository

    def __init__(self) -> None:
        self.collected_events: list[DomainEvent] = []

    def __enter__(self) -> "UnitOfWork":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            self.rollback()
            return
        self.commit()

    @abstractmethod
    def commit(self) -> None:
        """
        Apply all staged writes or none.

        Raises:
            ConflictError: If any record's stored version moved
            RepositoryError: If the store fails
        """

    @abstractmethod
    def rollback(self) -> None:
        """Discard all staged writes."""
