"""Job domain entities."""

from .forklift import Forklift, HourmeterHistoryEntry
from .hourmeter_amendment import HourmeterAmendment
from .job import MUTABLE_FIELDS, Job
from .job_request import APPROVER_ROLES, JobRequest

__all__ = [
    "APPROVER_ROLES",
    "Forklift",
    "HourmeterAmendment",
    "HourmeterHistoryEntry",
    "Job",
    "JobRequest",
    "MUTABLE_FIELDS",
]
