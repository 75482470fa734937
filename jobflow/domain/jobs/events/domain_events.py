"""
Domain Events

Events raised by the job aggregate and its satellites. Every event carries the
``job_id`` plus enough payload for a listener to decide whether to re-fetch.
"""

from datetime import datetime
from uuid import UUID

from ...shared.base import DomainEvent
from ..value_objects.enums import (
    ConfirmationGate,
    HourmeterFlagReason,
    JobPriority,
    JobStatus,
    JobType,
    RequestStatus,
    RequestType,
)


class JobEvent(DomainEvent):
    """Base for events keyed by a job."""

    job_id: UUID
    actor_id: str | None = None


class JobCreated(JobEvent):
    job_type: JobType
    priority: JobPriority


class JobAssigned(JobEvent):
    technician_id: str
    previous_technician_id: str | None = None
    response_deadline: datetime | None = None


class JobAccepted(JobEvent):
    technician_id: str


class JobRejectedByTechnician(JobEvent):
    """The assigned technician declined; supervisors must reassign."""

    technician_id: str
    reason: str


class JobStatusChanged(JobEvent):
    old_status: JobStatus
    new_status: JobStatus
    reason: str | None = None


class JobDeleted(JobEvent):
    reason: str
    previous_status: JobStatus


class HourmeterFlagged(JobEvent):
    forklift_id: UUID | None
    reading: int
    flag_reasons: list[HourmeterFlagReason]


class AmendmentProposed(JobEvent):
    amendment_id: UUID
    original_reading: int | None
    amended_reading: int


class AmendmentResolved(JobEvent):
    amendment_id: UUID
    approved: bool
    requested_by_id: str


class PartsConfirmed(JobEvent):
    skipped: bool = False


class JobConfirmed(JobEvent):
    completed: bool


class ConfirmationRejected(JobEvent):
    gate: ConfirmationGate
    reason: str
    technician_id: str | None = None


class RequestCreated(JobEvent):
    request_id: UUID
    request_type: RequestType
    description: str


class RequestResolved(JobEvent):
    request_id: UUID
    request_type: RequestType
    status: RequestStatus
    requested_by_id: str
    notes: str | None = None


class SlotInAcknowledged(JobEvent):
    sla_met: bool
    elapsed_seconds: float


class TechnicianResponseOverdue(JobEvent):
    technician_id: str | None
    deadline: datetime


class JobEscalated(JobEvent):
    hours_elapsed: float
    technician_id: str | None = None
