"""Value objects and enumerations of the job domain."""

from .actor import (
    AMENDMENT_APPROVER_ROLES,
    SERVICE_CONFIRMER_ROLES,
    STORE_CONFIRMER_ROLES,
    SUPERVISOR_ROLES,
    Actor,
)
from .checklist import (
    CHECKLIST_VERSION,
    MANDATORY_CHECKLIST_ITEMS,
    ChecklistItem,
    ChecklistState,
    ConditionChecklist,
)
from .enums import (
    AmendmentStatus,
    ConfirmationGate,
    HourmeterFlagReason,
    HourmeterSource,
    JobPriority,
    JobStatus,
    JobType,
    RequestStatus,
    RequestType,
    SLAStatus,
    UrgencyBand,
    UserRole,
    VerificationType,
)
from .work import ExtraCharge, JobNote, PartUsage, Signature

__all__ = [
    "Actor",
    "AMENDMENT_APPROVER_ROLES",
    "SERVICE_CONFIRMER_ROLES",
    "STORE_CONFIRMER_ROLES",
    "SUPERVISOR_ROLES",
    "CHECKLIST_VERSION",
    "MANDATORY_CHECKLIST_ITEMS",
    "ChecklistItem",
    "ChecklistState",
    "ConditionChecklist",
    "AmendmentStatus",
    "ConfirmationGate",
    "HourmeterFlagReason",
    "HourmeterSource",
    "JobPriority",
    "JobStatus",
    "JobType",
    "RequestStatus",
    "RequestType",
    "SLAStatus",
    "UrgencyBand",
    "UserRole",
    "VerificationType",
    "ExtraCharge",
    "JobNote",
    "PartUsage",
    "Signature",
]
