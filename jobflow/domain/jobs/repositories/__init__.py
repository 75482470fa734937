"""Repository interfaces for the job domain."""

from .job_repository import (
    AmendmentRepository,
    ForkliftRepository,
    JobRepository,
    JobRequestRepository,
)
from .unit_of_work import UnitOfWork

__all__ = [
    "AmendmentRepository",
    "ForkliftRepository",
    "JobRepository",
    "JobRequestRepository",
    "UnitOfWork",
]
