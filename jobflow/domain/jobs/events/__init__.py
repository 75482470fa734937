"""Job domain events."""

from .domain_events import (
    AmendmentProposed,
    AmendmentResolved,
    ConfirmationRejected,
    HourmeterFlagged,
    JobAccepted,
    JobAssigned,
    JobConfirmed,
    JobCreated,
    JobDeleted,
    JobEscalated,
    JobEvent,
    JobRejectedByTechnician,
    JobStatusChanged,
    PartsConfirmed,
    RequestCreated,
    RequestResolved,
    SlotInAcknowledged,
    TechnicianResponseOverdue,
)

__all__ = [
    "AmendmentProposed",
    "AmendmentResolved",
    "ConfirmationRejected",
    "HourmeterFlagged",
    "JobAccepted",
    "JobAssigned",
    "JobConfirmed",
    "JobCreated",
    "JobDeleted",
    "JobEscalated",
    "JobEvent",
    "JobRejectedByTechnician",
    "JobStatusChanged",
    "PartsConfirmed",
    "RequestCreated",
    "RequestResolved",
    "SlotInAcknowledged",
    "TechnicianResponseOverdue",
]
