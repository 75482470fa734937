"""Domain enums for the job lifecycle."""

from enum import Enum


class JobStatus(str, Enum):
    """Job status enumeration."""

    NEW = "new"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    AWAITING_FINALIZATION = "awaiting_finalization"
    COMPLETED = "completed"
    COMPLETED_AWAITING_ACK = "completed_awaiting_ack"
    DISPUTED = "disputed"
    INCOMPLETE_CONTINUING = "incomplete_continuing"
    INCOMPLETE_REASSIGNED = "incomplete_reassigned"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Check if job status is terminal (cannot transition further)."""
        return self in {JobStatus.COMPLETED, JobStatus.CANCELLED}

    @property
    def is_active_work(self) -> bool:
        """Check if a technician is actively working the job."""
        return self in {JobStatus.IN_PROGRESS, JobStatus.INCOMPLETE_CONTINUING}

    def can_transition_to(self, target_status: "JobStatus") -> bool:
        """Check if job can transition from current status to target status."""
        return target_status in _VALID_TRANSITIONS.get(self, frozenset())

    def allowed_targets(self) -> frozenset["JobStatus"]:
        return _VALID_TRANSITIONS.get(self, frozenset())


_VALID_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.NEW: frozenset({JobStatus.ASSIGNED, JobStatus.CANCELLED}),
    JobStatus.ASSIGNED: frozenset(
        {
            JobStatus.IN_PROGRESS,
            JobStatus.NEW,  # technician rejected the assignment
            JobStatus.ASSIGNED,  # admin reassignment
            JobStatus.CANCELLED,
        }
    ),
    JobStatus.IN_PROGRESS: frozenset(
        {
            JobStatus.AWAITING_FINALIZATION,
            JobStatus.INCOMPLETE_CONTINUING,
            JobStatus.INCOMPLETE_REASSIGNED,
            JobStatus.CANCELLED,
        }
    ),
    JobStatus.INCOMPLETE_CONTINUING: frozenset(
        {JobStatus.IN_PROGRESS, JobStatus.CANCELLED}
    ),
    JobStatus.INCOMPLETE_REASSIGNED: frozenset(
        {JobStatus.ASSIGNED, JobStatus.CANCELLED}
    ),
    JobStatus.AWAITING_FINALIZATION: frozenset(
        {
            JobStatus.COMPLETED,
            JobStatus.COMPLETED_AWAITING_ACK,
            JobStatus.CANCELLED,
        }
    ),
    JobStatus.COMPLETED_AWAITING_ACK: frozenset(
        {JobStatus.COMPLETED, JobStatus.DISPUTED, JobStatus.CANCELLED}
    ),
    JobStatus.DISPUTED: frozenset(
        {
            JobStatus.COMPLETED,
            JobStatus.COMPLETED_AWAITING_ACK,
            JobStatus.CANCELLED,
        }
    ),
    JobStatus.COMPLETED: frozenset(),  # Terminal state
    JobStatus.CANCELLED: frozenset(),  # Terminal state
}


class JobType(str, Enum):
    """Job type classification."""

    SERVICE = "service"
    FULL_SERVICE = "full_service"
    MINOR_SERVICE = "minor_service"
    REPAIR = "repair"
    CHECKING = "checking"
    SLOT_IN = "slot_in"
    COURIER = "courier"

    @property
    def has_acknowledgement_sla(self) -> bool:
        """Only Slot-In jobs run the acknowledgement clock."""
        return self == JobType.SLOT_IN


class JobPriority(str, Enum):
    """Priority level enumeration."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EMERGENCY = "emergency"

    @property
    def numeric_value(self) -> int:
        return {
            JobPriority.LOW: 1,
            JobPriority.MEDIUM: 2,
            JobPriority.HIGH: 3,
            JobPriority.EMERGENCY: 4,
        }[self]

    def is_higher_than(self, other: "JobPriority") -> bool:
        return self.numeric_value > other.numeric_value


class UserRole(str, Enum):
    """Roles supplied by the identity provider."""

    ADMIN = "admin"
    ADMIN_SERVICE = "admin_service"  # service operations, job confirmation, hourmeter approval
    ADMIN_STORE = "admin_store"  # parts and inventory confirmation
    SUPERVISOR = "supervisor"
    TECHNICIAN = "technician"
    ACCOUNTANT = "accountant"


class HourmeterFlagReason(str, Enum):
    """Why a meter reading was flagged."""

    LOWER_THAN_PREVIOUS = "lower_than_previous"
    EXCESSIVE_JUMP = "excessive_jump"
    NO_HISTORY = "no_history"  # informational, never invalidates a reading
    MANUAL_FLAG = "manual_flag"

    @property
    def is_failure(self) -> bool:
        return self != HourmeterFlagReason.NO_HISTORY


class HourmeterSource(str, Enum):
    JOB_START = "job_start"
    READING_UPDATE = "reading_update"
    AMENDMENT = "amendment"


class AmendmentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_resolved(self) -> bool:
        return self != AmendmentStatus.PENDING


class RequestType(str, Enum):
    """Mid-job request kinds raised by technicians."""

    SPARE_PART = "spare_part"
    ASSISTANCE = "assistance"  # helper technician
    SKILLFUL_TECHNICIAN = "skillful_technician"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_resolved(self) -> bool:
        return self != RequestStatus.PENDING


class UrgencyBand(str, Enum):
    """Display urgency for a running deadline."""

    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"


class SLAStatus(str, Enum):
    """Acknowledgement SLA state for Slot-In jobs."""

    ON_TRACK = "on_track"
    WARNING = "warning"
    CRITICAL = "critical"
    BREACHED = "breached"
    MET = "met"


class VerificationType(str, Enum):
    SIGNED_ONSITE = "signed_onsite"
    DEFERRED = "deferred"
    DISPUTED = "disputed"


class ConfirmationGate(str, Enum):
    PARTS = "parts"
    JOB = "job"
