"""
User-facing notifications derived from committed domain events.

The dispatcher subscribes to the event bus and hands ``Notification`` records
to a gateway. Delivery is fire-and-forget: failures are logged and counted.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import Field, model_validator

from jobflow.core.observability import NOTIFICATIONS_SENT, get_logger
from jobflow.domain.jobs.events import (
    AmendmentProposed,
    AmendmentResolved,
    ConfirmationRejected,
    HourmeterFlagged,
    JobAccepted,
    JobAssigned,
    JobEscalated,
    JobEvent,
    JobRejectedByTechnician,
    JobStatusChanged,
    RequestCreated,
    RequestResolved,
    TechnicianResponseOverdue,
)
from jobflow.domain.jobs.entities.job_request import APPROVER_ROLES
from jobflow.domain.jobs.value_objects import (
    AMENDMENT_APPROVER_ROLES,
    SERVICE_CONFIRMER_ROLES,
    STORE_CONFIRMER_ROLES,
    SUPERVISOR_ROLES,
    JobStatus,
    RequestStatus,
    UserRole,
)
from jobflow.domain.shared.base import DomainEvent, ValueObject, utcnow

from .event_bus import EventBusInterface

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    JOB_ASSIGNED = "job_assigned"
    JOB_ACCEPTED = "job_accepted"
    JOB_REJECTED = "job_rejected"
    NO_RESPONSE = "no_response"
    JOB_PENDING_CONFIRMATION = "job_pending_confirmation"
    CONFIRMATION_REJECTED = "confirmation_rejected"
    REQUEST_CREATED = "request_created"
    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"
    HOURMETER_FLAGGED = "hourmeter_flagged"
    AMENDMENT_REQUESTED = "hourmeter_amendment_requested"
    AMENDMENT_APPROVED = "hourmeter_amendment_approved"
    AMENDMENT_REJECTED = "hourmeter_amendment_rejected"
    JOB_ESCALATED = "job_escalated"


class NotificationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class Notification(ValueObject):
    """A message for one user, or for every holder of the given roles."""

    kind: NotificationKind
    title: str
    message: str
    job_id: UUID | None = None
    recipient_user_id: str | None = None
    recipient_roles: tuple[UserRole, ...] = ()
    priority: NotificationPriority = NotificationPriority.NORMAL
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _has_recipient(self) -> "Notification":
        if not self.recipient_user_id and not self.recipient_roles:
            raise ValueError("Notification needs a recipient user or role")
        return self


class NotificationGateway(ABC):
    """Outbound notification surface."""

    @abstractmethod
    def send(self, notification: Notification) -> None:
        pass


class LoggingNotificationGateway(NotificationGateway):
    """Writes notifications to the structured log."""

    def __init__(self) -> None:
        self._log = get_logger("jobflow.notifications")

    def send(self, notification: Notification) -> None:
        self._log.info(
            "notification",
            kind=notification.kind.value,
            title=notification.title,
            message=notification.message,
            job_id=str(notification.job_id) if notification.job_id else None,
            user=notification.recipient_user_id,
            roles=[r.value for r in notification.recipient_roles],
            priority=notification.priority.value,
        )


class InMemoryNotificationGateway(NotificationGateway):
    """Keeps sent notifications in a list."""

    def __init__(self) -> None:
        self._sent: list[Notification] = []
        self._lock = threading.Lock()

    def send(self, notification: Notification) -> None:
        with self._lock:
            self._sent.append(notification)

    @property
    def sent(self) -> list[Notification]:
        with self._lock:
            return list(self._sent)

    def for_user(self, user_id: str) -> list[Notification]:
        return [n for n in self.sent if n.recipient_user_id == user_id]

    def for_role(self, role: UserRole) -> list[Notification]:
        return [n for n in self.sent if role in n.recipient_roles]

    def clear(self) -> None:
        with self._lock:
            self._sent.clear()


def _roles(*groups: tuple[UserRole, ...]) -> tuple[UserRole, ...]:
    return tuple(dict.fromkeys(role for group in groups for role in group))


def _label(value: str) -> str:
    return value.replace("_", " ")


class NotificationDispatcher:
    """Maps job events to notifications and hands them to a gateway."""

    def __init__(self, gateway: NotificationGateway) -> None:
        self._gateway = gateway
        self._builders: dict[type[JobEvent], Callable[[JobEvent], list[Notification]]] = {
            JobAssigned: self._on_assigned,
            JobAccepted: self._on_accepted,
            JobRejectedByTechnician: self._on_rejected_by_technician,
            TechnicianResponseOverdue: self._on_response_overdue,
            JobStatusChanged: self._on_status_changed,
            ConfirmationRejected: self._on_confirmation_rejected,
            RequestCreated: self._on_request_created,
            RequestResolved: self._on_request_resolved,
            HourmeterFlagged: self._on_hourmeter_flagged,
            AmendmentProposed: self._on_amendment_proposed,
            AmendmentResolved: self._on_amendment_resolved,
            JobEscalated: self._on_escalated,
        }

    def register(self, event_bus: EventBusInterface) -> None:
        for event_type in self._builders:
            event_bus.subscribe(event_type, self.handle)

    def handle(self, event: DomainEvent) -> None:
        builder = self._builders.get(type(event))
        if builder is None:
            return
        for notification in builder(event):
            try:
                self._gateway.send(notification)
                NOTIFICATIONS_SENT.labels(kind=notification.kind.value, outcome="sent").inc()
            except Exception as e:
                NOTIFICATIONS_SENT.labels(kind=notification.kind.value, outcome="failed").inc()
                logger.error(
                    f"Notification {notification.kind.value} for job "
                    f"{notification.job_id} failed: {str(e)}"
                )

    def _on_assigned(self, event: JobAssigned) -> list[Notification]:
        reassigned = event.previous_technician_id is not None
        return [
            Notification(
                kind=NotificationKind.JOB_ASSIGNED,
                title="Job Reassigned to You" if reassigned else "New Job Assigned",
                message=f"You have been assigned job {event.job_id}. "
                "Accept or reject it before the response window closes.",
                job_id=event.job_id,
                recipient_user_id=event.technician_id,
                priority=NotificationPriority.HIGH,
            )
        ]

    def _on_accepted(self, event: JobAccepted) -> list[Notification]:
        return [
            Notification(
                kind=NotificationKind.JOB_ACCEPTED,
                title="Job Accepted",
                message=f"Technician {event.technician_id} accepted job {event.job_id}.",
                job_id=event.job_id,
                recipient_roles=SUPERVISOR_ROLES,
            )
        ]

    def _on_rejected_by_technician(
        self, event: JobRejectedByTechnician
    ) -> list[Notification]:
        return [
            Notification(
                kind=NotificationKind.JOB_REJECTED,
                title="Job Rejected - Needs Reassignment",
                message=f"{event.technician_id} rejected job {event.job_id}. "
                f"Reason: {event.reason}",
                job_id=event.job_id,
                recipient_roles=SUPERVISOR_ROLES,
                priority=NotificationPriority.HIGH,
            )
        ]

    def _on_response_overdue(self, event: TechnicianResponseOverdue) -> list[Notification]:
        return [
            Notification(
                kind=NotificationKind.NO_RESPONSE,
                title="No Response - Job Acceptance Expired",
                message=f"{event.technician_id} did not respond to job {event.job_id} "
                "in time. Consider reassigning.",
                job_id=event.job_id,
                recipient_roles=SUPERVISOR_ROLES,
                priority=NotificationPriority.URGENT,
            )
        ]

    def _on_status_changed(self, event: JobStatusChanged) -> list[Notification]:
        if event.new_status != JobStatus.AWAITING_FINALIZATION:
            return []
        return [
            Notification(
                kind=NotificationKind.JOB_PENDING_CONFIRMATION,
                title="Job Pending Confirmation",
                message=f"Job {event.job_id} is complete on site and awaits "
                "parts and job confirmation.",
                job_id=event.job_id,
                recipient_roles=_roles(STORE_CONFIRMER_ROLES, SERVICE_CONFIRMER_ROLES),
            )
        ]

    def _on_confirmation_rejected(self, event: ConfirmationRejected) -> list[Notification]:
        if not event.technician_id:
            return []
        return [
            Notification(
                kind=NotificationKind.CONFIRMATION_REJECTED,
                title=f"{event.gate.value.capitalize()} Confirmation Rejected",
                message=f"Job {event.job_id} was sent back: {event.reason}",
                job_id=event.job_id,
                recipient_user_id=event.technician_id,
                priority=NotificationPriority.HIGH,
            )
        ]

    def _on_request_created(self, event: RequestCreated) -> list[Notification]:
        description = event.description
        if len(description) > 100:
            description = description[:100] + "..."
        return [
            Notification(
                kind=NotificationKind.REQUEST_CREATED,
                title=f"{_label(event.request_type.value).title()} Request",
                message=f"{event.actor_id} requests {_label(event.request_type.value)}: "
                f"{description}",
                job_id=event.job_id,
                recipient_roles=APPROVER_ROLES[event.request_type],
                priority=NotificationPriority.HIGH,
            )
        ]

    def _on_request_resolved(self, event: RequestResolved) -> list[Notification]:
        approved = event.status == RequestStatus.APPROVED
        label = _label(event.request_type.value)
        if approved:
            message = f"Your {label} request has been approved."
            if event.notes:
                message += f" Note: {event.notes}"
        else:
            message = f"Your {label} request was rejected. Reason: {event.notes}"
        return [
            Notification(
                kind=(
                    NotificationKind.REQUEST_APPROVED
                    if approved
                    else NotificationKind.REQUEST_REJECTED
                ),
                title="Request Approved" if approved else "Request Rejected",
                message=message,
                job_id=event.job_id,
                recipient_user_id=event.requested_by_id,
                priority=NotificationPriority.HIGH,
            )
        ]

    def _on_hourmeter_flagged(self, event: HourmeterFlagged) -> list[Notification]:
        reasons = ", ".join(_label(r.value) for r in event.flag_reasons)
        return [
            Notification(
                kind=NotificationKind.HOURMETER_FLAGGED,
                title="Hourmeter Reading Flagged",
                message=f"Reading {event.reading} on job {event.job_id} was flagged "
                f"({reasons}).",
                job_id=event.job_id,
                recipient_roles=AMENDMENT_APPROVER_ROLES,
            )
        ]

    def _on_amendment_proposed(self, event: AmendmentProposed) -> list[Notification]:
        return [
            Notification(
                kind=NotificationKind.AMENDMENT_REQUESTED,
                title="Hourmeter Amendment Requested",
                message=f"Amendment from {event.original_reading} to "
                f"{event.amended_reading} requested on job {event.job_id}.",
                job_id=event.job_id,
                recipient_roles=AMENDMENT_APPROVER_ROLES,
                priority=NotificationPriority.HIGH,
            )
        ]

    def _on_amendment_resolved(self, event: AmendmentResolved) -> list[Notification]:
        return [
            Notification(
                kind=(
                    NotificationKind.AMENDMENT_APPROVED
                    if event.approved
                    else NotificationKind.AMENDMENT_REJECTED
                ),
                title=(
                    "Hourmeter Amendment Approved"
                    if event.approved
                    else "Hourmeter Amendment Rejected"
                ),
                message=f"Your hourmeter amendment on job {event.job_id} was "
                f"{'approved' if event.approved else 'rejected'}.",
                job_id=event.job_id,
                recipient_user_id=event.requested_by_id,
            )
        ]

    def _on_escalated(self, event: JobEscalated) -> list[Notification]:
        return [
            Notification(
                kind=NotificationKind.JOB_ESCALATED,
                title="Job Overdue - Escalated",
                message=f"Job {event.job_id} has been in progress for "
                f"{event.hours_elapsed:.1f} hours.",
                job_id=event.job_id,
                recipient_roles=SUPERVISOR_ROLES,
                priority=NotificationPriority.URGENT,
            )
        ]
