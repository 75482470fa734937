"""
Repository Interfaces

Contracts the infrastructure layer implements for job records and their
satellites. Writes are staged on the owning unit of work and applied together
at commit; a version mismatch at commit raises ``ConflictError``.
"""

from abc import ABC, abstractmethod
from uuid import UUID

from ...shared.exceptions import NotFoundError
from ..entities import Forklift, HourmeterAmendment, Job, JobRequest
from ..value_objects import AmendmentStatus, JobStatus, RequestStatus


class JobRepository(ABC):
    """Abstract repository interface for Job aggregates."""

    @abstractmethod
    def get(self, job_id: UUID) -> Job | None:
        """
        Retrieve a job by its ID.

        Returns:
            A fresh copy of the stored job, or None if not found

        Raises:
            RepositoryError: If retrieval operation fails
        """

    @abstractmethod
    def add(self, job: Job) -> None:
        """Stage a new job for insertion."""

    @abstractmethod
    def save(self, job: Job) -> None:
        """
        Stage an update of a job loaded in this unit of work.

        The job's ``version`` is the version it was loaded at; commit fails
        with ``ConflictError`` if the stored version moved since.
        """

    @abstractmethod
    def find(
        self,
        status: JobStatus | None = None,
        technician_id: str | None = None,
        include_deleted: bool = False,
    ) -> list[Job]:
        """Retrieve jobs, optionally filtered by status or assigned technician."""

    def require(self, job_id: UUID) -> Job:
        job = self.get(job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        return job


class JobRequestRepository(ABC):
    """Abstract repository interface for mid-job requests."""

    @abstractmethod
    def get(self, request_id: UUID) -> JobRequest | None:
        pass

    @abstractmethod
    def add(self, request: JobRequest) -> None:
        pass

    @abstractmethod
    def save(self, request: JobRequest) -> None:
        pass

    @abstractmethod
    def find(
        self, job_id: UUID | None = None, status: RequestStatus | None = None
    ) -> list[JobRequest]:
        pass

    def require(self, request_id: UUID) -> JobRequest:
        request = self.get(request_id)
        if request is None:
            raise NotFoundError("JobRequest", request_id)
        return request


class AmendmentRepository(ABC):
    """Abstract repository interface for hourmeter amendments."""

    @abstractmethod
    def get(self, amendment_id: UUID) -> HourmeterAmendment | None:
        pass

    @abstractmethod
    def add(self, amendment: HourmeterAmendment) -> None:
        pass

    @abstractmethod
    def save(self, amendment: HourmeterAmendment) -> None:
        pass

    @abstractmethod
    def find(
        self, job_id: UUID | None = None, status: AmendmentStatus | None = None
    ) -> list[HourmeterAmendment]:
        pass

    def find_pending_for_job(self, job_id: UUID) -> HourmeterAmendment | None:
        pending = self.find(job_id=job_id, status=AmendmentStatus.PENDING)
        return pending[0] if pending else None

    def require(self, amendment_id: UUID) -> HourmeterAmendment:
        amendment = self.get(amendment_id)
        if amendment is None:
            raise NotFoundError("HourmeterAmendment", amendment_id)
        return amendment


class ForkliftRepository(ABC):
    """Abstract repository interface for equipment records."""

    @abstractmethod
    def get(self, forklift_id: UUID) -> Forklift | None:
        pass

    @abstractmethod
    def add(self, forklift: Forklift) -> None:
        pass

    @abstractmethod
    def save(self, forklift: Forklift) -> None:
        pass

    def require(self, forklift_id: UUID) -> Forklift:
        forklift = self.get(forklift_id)
        if forklift is None:
            raise NotFoundError("Forklift", forklift_id)
        return forklift
