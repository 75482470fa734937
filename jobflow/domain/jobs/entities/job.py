"""Job aggregate root for the field-service lifecycle."""

from collections.abc import Mapping
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import Field, PrivateAttr, field_validator
from pydantic import ValidationError as PydanticValidationError

from ...shared.base import AggregateRoot, utcnow
from ...shared.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from ...shared.validation import BusinessRuleValidators, DataSanitizer
from ..events import (
    ConfirmationRejected,
    HourmeterFlagged,
    JobAccepted,
    JobAssigned,
    JobConfirmed,
    JobCreated,
    JobDeleted,
    JobEscalated,
    JobRejectedByTechnician,
    JobStatusChanged,
    PartsConfirmed,
    SlotInAcknowledged,
    TechnicianResponseOverdue,
)
from ..value_objects import (
    SERVICE_CONFIRMER_ROLES,
    STORE_CONFIRMER_ROLES,
    SUPERVISOR_ROLES,
    Actor,
    ConditionChecklist,
    ConfirmationGate,
    ExtraCharge,
    HourmeterFlagReason,
    JobNote,
    JobPriority,
    JobStatus,
    JobType,
    PartUsage,
    Signature,
    VerificationType,
)
from ..value_objects.hourmeter import HourmeterValidation

DEFAULT_SLOT_IN_SLA_MINUTES = 15

# Fields callers may change through ``mutate``. Everything else is lifecycle
# state owned by the intent methods below.
MUTABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "priority",
        "scheduled_date",
        "labor_cost",
        "job_carried_out",
        "recommendation",
        "customer_id",
        "forklift_id",
        "sla_target_minutes",
    }
)
TECHNICIAN_MUTABLE_FIELDS = frozenset({"job_carried_out", "recommendation"})

PART_EDITOR_ROLES = tuple(dict.fromkeys(SUPERVISOR_ROLES + STORE_CONFIRMER_ROLES))

_PART_EDITABLE_STATUSES = frozenset(
    {
        JobStatus.NEW,
        JobStatus.ASSIGNED,
        JobStatus.IN_PROGRESS,
        JobStatus.INCOMPLETE_CONTINUING,
        JobStatus.INCOMPLETE_REASSIGNED,
        JobStatus.AWAITING_FINALIZATION,
    }
)
_CHECKLIST_EDITABLE_STATUSES = frozenset(
    {JobStatus.ASSIGNED, JobStatus.IN_PROGRESS, JobStatus.INCOMPLETE_CONTINUING}
)
_READING_EDITABLE_STATUSES = frozenset(
    {
        JobStatus.IN_PROGRESS,
        JobStatus.INCOMPLETE_CONTINUING,
        JobStatus.AWAITING_FINALIZATION,
    }
)


class Job(AggregateRoot):
    """
    A service job on a customer's forklift.

    The status field is owned by the state machine: every change goes through
    ``_transition`` and a direct assignment raises ``InvalidTransitionError``.
    Intent methods either raise a typed ``DomainError`` before touching any
    field or apply their whole effect and record domain events.
    """

    job_number: str | None = Field(None, max_length=50)
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    job_type: JobType = JobType.SERVICE
    priority: JobPriority = JobPriority.MEDIUM
    customer_id: str | None = None
    scheduled_date: datetime | None = None
    job_carried_out: str | None = None
    recommendation: str | None = None
    created_by_id: str | None = None

    status: JobStatus = JobStatus.NEW

    # Assignment
    assigned_technician_id: str | None = None
    assigned_at: datetime | None = None
    assigned_by_id: str | None = None
    technician_accepted_at: datetime | None = None
    technician_rejected_at: datetime | None = None
    technician_rejection_reason: str | None = None
    technician_response_deadline: datetime | None = None
    no_response_alerted_at: datetime | None = None
    helper_technician_id: str | None = None

    # Acknowledgement SLA (Slot-In only)
    sla_target_minutes: int | None = Field(None, gt=0)
    acknowledged_at: datetime | None = None
    acknowledged_by_id: str | None = None
    sla_met: bool | None = None

    # Work timing
    started_at: datetime | None = None
    started_by_id: str | None = None
    completed_at: datetime | None = None
    completed_by_id: str | None = None
    cutoff_time: datetime | None = None
    escalation_triggered_at: datetime | None = None

    # Equipment
    forklift_id: UUID | None = None
    hourmeter_reading: int | None = Field(None, ge=0)
    hourmeter_previous: int | None = None
    hourmeter_flagged: bool = False
    hourmeter_flag_reasons: list[HourmeterFlagReason] = Field(default_factory=list)
    hourmeter_amendment_id: UUID | None = None
    first_hourmeter_recorded_by_id: str | None = None
    first_hourmeter_recorded_at: datetime | None = None
    hourmeter_invalidated: bool = False
    hourmeter_before_delete: int | None = None

    # Work content
    parts_used: list[PartUsage] = Field(default_factory=list)
    labor_cost: Decimal | None = Field(None, ge=0)
    extra_charges: list[ExtraCharge] = Field(default_factory=list)
    notes: list[JobNote] = Field(default_factory=list)
    condition_checklist: ConditionChecklist = Field(default_factory=ConditionChecklist)
    technician_signature: Signature | None = None
    customer_signature: Signature | None = None

    # Dual confirmation
    parts_confirmed_at: datetime | None = None
    parts_confirmed_by_id: str | None = None
    parts_confirmation_notes: str | None = None
    parts_confirmation_skipped: bool = False
    parts_rejected_at: datetime | None = None
    parts_rejected_by_id: str | None = None
    parts_rejection_reason: str | None = None
    job_confirmed_at: datetime | None = None
    job_confirmed_by_id: str | None = None
    job_confirmation_notes: str | None = None
    job_rejected_at: datetime | None = None
    job_rejected_by_id: str | None = None
    job_rejection_reason: str | None = None

    # Deferred customer acknowledgement
    verification_type: VerificationType | None = None
    deferred_reason: str | None = None
    customer_acknowledged_at: datetime | None = None
    disputed_at: datetime | None = None
    dispute_notes: str | None = None
    dispute_resolved_at: datetime | None = None
    dispute_resolution: str | None = None

    # Soft delete
    deleted_at: datetime | None = None
    deleted_by_id: str | None = None
    deletion_reason: str | None = None

    _status_unlocked: bool = PrivateAttr(default=False)

    @field_validator("title")
    @classmethod
    def sanitize_title(cls, v: str) -> str:
        try:
            return DataSanitizer.sanitize_string(
                v, field_name="title", max_length=200, allow_empty=False
            )
        except ValidationError as e:
            raise ValueError(e.message)

    @field_validator("hourmeter_flag_reasons")
    @classmethod
    def dedupe_flag_reasons(
        cls, v: list[HourmeterFlagReason]
    ) -> list[HourmeterFlagReason]:
        return sorted(set(v), key=lambda reason: reason.value)

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "status" and not self._status_unlocked:
            raise InvalidTransitionError(self.status, value, self.id)
        super().__setattr__(name, value)

    @classmethod
    def create(
        cls,
        title: str,
        actor: Actor,
        job_type: JobType = JobType.SERVICE,
        priority: JobPriority = JobPriority.MEDIUM,
        description: str = "",
        customer_id: str | None = None,
        forklift_id: UUID | None = None,
        scheduled_date: datetime | None = None,
        job_number: str | None = None,
        sla_target_minutes: int | None = None,
        now: datetime | None = None,
    ) -> "Job":
        """
        Factory method to create a new job in status ``NEW``.

        ``sla_target_minutes`` is only kept for Slot-In jobs and defaults to
        ``DEFAULT_SLOT_IN_SLA_MINUTES`` there.
        """
        now = now or utcnow()
        if job_type.has_acknowledgement_sla:
            if sla_target_minutes is None:
                sla_target_minutes = DEFAULT_SLOT_IN_SLA_MINUTES
        else:
            sla_target_minutes = None
        try:
            job = cls(
                title=title,
                description=description,
                job_type=job_type,
                priority=priority,
                customer_id=customer_id,
                forklift_id=forklift_id,
                scheduled_date=scheduled_date,
                job_number=job_number,
                created_by_id=actor.id,
                sla_target_minutes=sla_target_minutes,
                created_at=now,
            )
        except PydanticValidationError as e:
            raise _as_domain_validation_error(e)

        job.add_domain_event(
            JobCreated(
                aggregate_id=job.id,
                job_id=job.id,
                actor_id=actor.id,
                occurred_at=now,
                job_type=job.job_type,
                priority=job.priority,
            )
        )
        return job

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def slot_in_target_minutes(self) -> int:
        return self.sla_target_minutes or DEFAULT_SLOT_IN_SLA_MINUTES

    @property
    def has_responded(self) -> bool:
        """True once the assigned technician accepted or rejected."""
        return (
            self.technician_accepted_at is not None
            or self.technician_rejected_at is not None
        )

    @property
    def parts_gate_satisfied(self) -> bool:
        """The parts gate is confirmed, skipped, or not applicable."""
        return (
            not self.parts_used
            or self.parts_confirmation_skipped
            or self.parts_confirmed_at is not None
        )

    @property
    def has_outstanding_rejection(self) -> bool:
        return self.parts_rejected_at is not None or self.job_rejected_at is not None

    @property
    def parts_total(self) -> Decimal:
        return sum((part.line_total for part in self.parts_used), Decimal("0"))

    @property
    def extra_charges_total(self) -> Decimal:
        return sum((c.amount for c in self.extra_charges), Decimal("0"))

    def is_worker(self, actor: Actor) -> bool:
        """True if the actor is the assigned or the helper technician."""
        return actor.id is not None and actor.id in {
            self.assigned_technician_id,
            self.helper_technician_id,
        }

    # ------------------------------------------------------------------
    # Assignment
    # ------------------------------------------------------------------

    def assign(
        self,
        technician_id: str,
        actor: Actor,
        response_window: timedelta,
        now: datetime | None = None,
    ) -> None:
        """
        Assign a technician and open the response window.

        Args:
            technician_id: Technician receiving the job
            actor: Supervisor or admin issuing the assignment
            response_window: Time the technician has to accept or reject
            now: Clock override

        Raises:
            ValidationError: If ``technician_id`` is blank
            AuthorizationError: If the actor is not a supervisor/admin
            InvalidTransitionError: If the job is not New or IncompleteReassigned
        """
        technician_id = BusinessRuleValidators.require_identifier(
            "technician_id", technician_id
        )
        if self.status not in {JobStatus.NEW, JobStatus.INCOMPLETE_REASSIGNED}:
            raise InvalidTransitionError(self.status, JobStatus.ASSIGNED, self.id)
        actor.require_role(SUPERVISOR_ROLES, "assign jobs")
        self._open_assignment(technician_id, actor, response_window, now or utcnow())

    def reassign(
        self,
        technician_id: str,
        actor: Actor,
        response_window: timedelta,
        now: datetime | None = None,
    ) -> None:
        """Hand an Assigned job to another technician with a fresh window."""
        technician_id = BusinessRuleValidators.require_identifier(
            "technician_id", technician_id
        )
        if self.status != JobStatus.ASSIGNED:
            raise InvalidTransitionError(self.status, JobStatus.ASSIGNED, self.id)
        actor.require_role(SUPERVISOR_ROLES, "reassign jobs")
        self._open_assignment(technician_id, actor, response_window, now or utcnow())

    def _open_assignment(
        self,
        technician_id: str,
        actor: Actor,
        response_window: timedelta,
        now: datetime,
    ) -> None:
        previous = self.assigned_technician_id
        self.assigned_technician_id = technician_id
        self.assigned_at = now
        self.assigned_by_id = actor.id
        self.technician_accepted_at = None
        self.technician_rejected_at = None
        self.technician_rejection_reason = None
        self.no_response_alerted_at = None
        self.technician_response_deadline = now + response_window
        self._transition(JobStatus.ASSIGNED, actor, now)

        self.add_domain_event(
            JobAssigned(
                aggregate_id=self.id,
                job_id=self.id,
                actor_id=actor.id,
                occurred_at=now,
                technician_id=technician_id,
                previous_technician_id=previous,
                response_deadline=self.technician_response_deadline,
            )
        )

    def accept(self, actor: Actor, now: datetime | None = None) -> None:
        """
        Record the assigned technician's acceptance and stop the window.

        Raises:
            PreconditionError: If the job is not awaiting a response
            AuthorizationError: If the actor is not the assigned technician
            ConflictError: If a response was already recorded
        """
        now = now or utcnow()
        if self.status != JobStatus.ASSIGNED:
            raise PreconditionError(
                f"Job {self.id} is not awaiting acceptance (status {self.status.value})"
            )
        self._require_assigned_technician(actor, "accept this job")
        if self.has_responded:
            raise ConflictError(
                "Technician already responded to this assignment",
                {"job_id": str(self.id)},
            )

        self.technician_accepted_at = now
        self.technician_response_deadline = None
        self.mark_updated(now)
        self.add_domain_event(
            JobAccepted(
                aggregate_id=self.id,
                job_id=self.id,
                actor_id=actor.id,
                occurred_at=now,
                technician_id=actor.id,
            )
        )

    def reject_assignment(
        self, reason: str, actor: Actor, now: datetime | None = None
    ) -> None:
        """
        Technician declines the job; it goes back to New for reassignment.

        Raises:
            ValidationError: If ``reason`` is empty
            InvalidTransitionError: If the job is not Assigned
            AuthorizationError: If the actor is not the assigned technician
        """
        reason = BusinessRuleValidators.require_text("reason", reason)
        now = now or utcnow()
        if not self.status.can_transition_to(JobStatus.NEW):
            raise InvalidTransitionError(self.status, JobStatus.NEW, self.id)
        self._require_assigned_technician(actor, "reject this job")

        technician_id = self.assigned_technician_id
        self.assigned_technician_id = None
        self.assigned_at = None
        self.assigned_by_id = None
        self.technician_accepted_at = None
        self.technician_response_deadline = None
        self.technician_rejected_at = now
        self.technician_rejection_reason = reason
        self._append_note(f"Assignment rejected: {reason}", actor, now, kind="rejection")
        self._transition(JobStatus.NEW, actor, now, reason=reason)

        self.add_domain_event(
            JobRejectedByTechnician(
                aggregate_id=self.id,
                job_id=self.id,
                actor_id=actor.id,
                occurred_at=now,
                technician_id=technician_id,
                reason=reason,
            )
        )

    def mark_response_overdue(self, now: datetime | None = None) -> bool:
        """
        Stamp an expired response window once and alert supervisors.

        The job stays Assigned. Returns ``False`` when nothing was due.
        """
        now = now or utcnow()
        if (
            self.status != JobStatus.ASSIGNED
            or self.has_responded
            or self.no_response_alerted_at is not None
            or self.technician_response_deadline is None
            or self.technician_response_deadline > now
        ):
            return False

        deadline = self.technician_response_deadline
        self.no_response_alerted_at = now
        self.technician_response_deadline = None
        self.mark_updated(now)
        self.add_domain_event(
            TechnicianResponseOverdue(
                aggregate_id=self.id,
                job_id=self.id,
                occurred_at=now,
                technician_id=self.assigned_technician_id,
                deadline=deadline,
            )
        )
        return True

    # ------------------------------------------------------------------
    # Work
    # ------------------------------------------------------------------

    def start(
        self,
        actor: Actor,
        reading: HourmeterValidation | None = None,
        checklist: Mapping[str, str] | None = None,
        now: datetime | None = None,
    ) -> None:
        """
        Begin work on an accepted job.

        Args:
            actor: Must be the assigned technician
            reading: Validated meter reading, required when a forklift is linked
            checklist: Optional initial checklist states
            now: Clock override

        Raises:
            InvalidTransitionError: If the job is not Assigned
            AuthorizationError: If the actor is not the assigned technician
            PreconditionError: If the assignment was not accepted
            ValidationError: If a forklift is linked and no reading is given
        """
        now = now or utcnow()
        if self.status != JobStatus.ASSIGNED:
            raise InvalidTransitionError(self.status, JobStatus.IN_PROGRESS, self.id)
        self._require_assigned_technician(actor, "start this job")
        if self.technician_accepted_at is None:
            raise PreconditionError(
                "Job must be accepted before it can be started",
                missing_items=["technician_accepted_at"],
            )
        if self.forklift_id is not None and reading is None:
            raise ValidationError(
                "hourmeter_reading",
                None,
                "A meter reading is required to start work on linked equipment",
                "REQUIRED",
            )
        updated_checklist = self._merged_checklist(checklist) if checklist else None

        if updated_checklist is not None:
            self.condition_checklist = updated_checklist
        if reading is not None:
            self._store_reading(reading, actor, now)
        self.started_at = self.started_at or now
        self.started_by_id = self.started_by_id or actor.id
        self._transition(JobStatus.IN_PROGRESS, actor, now)

    def record_meter_reading(
        self, reading: HourmeterValidation, actor: Actor, now: datetime | None = None
    ) -> None:
        """Replace the job's meter reading with a freshly validated one."""
        now = now or utcnow()
        if self.forklift_id is None:
            raise PreconditionError("Job has no linked equipment to read")
        if self.status not in _READING_EDITABLE_STATUSES or self.job_confirmed_at:
            raise PreconditionError(
                f"Meter readings cannot be changed in status {self.status.value}"
            )
        self._require_worker_or_supervisor(actor, "record meter readings")
        self._store_reading(reading, actor, now)
        self.mark_updated(now)

    def flag_hourmeter(
        self, reason: str, actor: Actor, now: datetime | None = None
    ) -> None:
        """Manually flag the current reading so it can be amended."""
        reason = BusinessRuleValidators.require_text("reason", reason)
        now = now or utcnow()
        actor.require_role(SUPERVISOR_ROLES, "flag meter readings")
        if self.hourmeter_reading is None:
            raise PreconditionError(
                "Job has no meter reading to flag", missing_items=["hourmeter_reading"]
            )
        self.hourmeter_flag_reasons = [
            *self.hourmeter_flag_reasons,
            HourmeterFlagReason.MANUAL_FLAG,
        ]
        self.hourmeter_flagged = True
        self._append_note(f"Meter reading flagged: {reason}", actor, now, kind="hourmeter")
        self.mark_updated(now)
        self._emit_hourmeter_flagged(actor, now)

    def apply_amended_reading(
        self, amendment_id: UUID, amended_reading: int, actor: Actor, now: datetime
    ) -> None:
        """
        Overwrite the reading with an approved amendment and clear the flag.

        Raises:
            PreconditionError: If the job is cancelled or its reading invalidated
        """
        if self.status == JobStatus.CANCELLED or self.hourmeter_invalidated:
            raise PreconditionError(
                "A cancelled job's meter reading cannot be amended",
                details={"job_id": str(self.id)},
            )
        self.hourmeter_reading = amended_reading
        self.hourmeter_flagged = False
        self.hourmeter_flag_reasons = []
        self.hourmeter_amendment_id = amendment_id
        self._append_note(
            f"Meter reading amended to {amended_reading}", actor, now, kind="hourmeter"
        )
        self.mark_updated(now)

    def _store_reading(
        self, reading: HourmeterValidation, actor: Actor, now: datetime
    ) -> None:
        failures = reading.failure_flags
        self.hourmeter_previous = reading.previous_reading
        self.hourmeter_reading = reading.reading
        self.hourmeter_flag_reasons = failures
        self.hourmeter_flagged = bool(failures)
        if self.first_hourmeter_recorded_at is None:
            self.first_hourmeter_recorded_at = now
            self.first_hourmeter_recorded_by_id = actor.id
        if failures:
            self._emit_hourmeter_flagged(actor, now)

    def _emit_hourmeter_flagged(self, actor: Actor, now: datetime) -> None:
        self.add_domain_event(
            HourmeterFlagged(
                aggregate_id=self.id,
                job_id=self.id,
                actor_id=actor.id,
                occurred_at=now,
                forklift_id=self.forklift_id,
                reading=self.hourmeter_reading,
                flag_reasons=list(self.hourmeter_flag_reasons),
            )
        )

    def continue_tomorrow(
        self, reason: str, actor: Actor, now: datetime | None = None
    ) -> None:
        """Pause multi-day work at the end of the day."""
        reason = BusinessRuleValidators.require_text("reason", reason)
        now = now or utcnow()
        self._check_transition(JobStatus.INCOMPLETE_CONTINUING)
        self._require_worker_or_supervisor(actor, "pause this job")

        self.cutoff_time = now
        self._append_note(f"Continuing tomorrow: {reason}", actor, now, kind="status")
        self._transition(JobStatus.INCOMPLETE_CONTINUING, actor, now, reason=reason)

    def resume(self, actor: Actor, now: datetime | None = None) -> None:
        now = now or utcnow()
        if self.status != JobStatus.INCOMPLETE_CONTINUING:
            raise InvalidTransitionError(self.status, JobStatus.IN_PROGRESS, self.id)
        self._require_worker_or_supervisor(actor, "resume this job")
        self._transition(JobStatus.IN_PROGRESS, actor, now, reason="resumed")

    def mark_incomplete_reassigned(
        self, reason: str, actor: Actor, now: datetime | None = None
    ) -> None:
        """Pull the job from its technician so another one can finish it."""
        reason = BusinessRuleValidators.require_text("reason", reason)
        now = now or utcnow()
        self._check_transition(JobStatus.INCOMPLETE_REASSIGNED)
        actor.require_role(SUPERVISOR_ROLES, "reassign jobs in progress")

        self._append_note(
            f"Reassignment needed (was {self.assigned_technician_id}): {reason}",
            actor,
            now,
            kind="status",
        )
        self.assigned_technician_id = None
        self.assigned_at = None
        self.assigned_by_id = None
        self.technician_accepted_at = None
        self.technician_response_deadline = None
        self.helper_technician_id = None
        self._transition(JobStatus.INCOMPLETE_REASSIGNED, actor, now, reason=reason)

    def assign_helper(
        self, helper_id: str, actor: Actor, now: datetime | None = None
    ) -> None:
        """Attach a helper technician to a job in active work."""
        helper_id = BusinessRuleValidators.require_identifier("helper_id", helper_id)
        now = now or utcnow()
        if not self.status.is_active_work:
            raise PreconditionError(
                f"Helpers can only join active work (job is {self.status.value})"
            )
        actor.require_role(SUPERVISOR_ROLES, "assign helpers")
        if helper_id == self.assigned_technician_id:
            raise ValidationError(
                "helper_id", helper_id, "Helper must differ from the assigned technician"
            )
        self.helper_technician_id = helper_id
        self._append_note(f"Helper {helper_id} assigned", actor, now, kind="assignment")
        self.mark_updated(now)

    def complete_work(
        self,
        actor: Actor,
        require_signatures: bool = False,
        now: datetime | None = None,
    ) -> None:
        """
        Finish on-site work and hand the job to the confirmation pipeline.

        Gates are checked in order: mandatory checklist items, then the meter
        reading for linked equipment, then signatures when required.

        Raises:
            InvalidTransitionError: If the job is not InProgress
            AuthorizationError: If the actor is neither worker nor supervisor
            PreconditionError: With ``missing_items`` for the first failing gate
        """
        now = now or utcnow()
        self._check_transition(JobStatus.AWAITING_FINALIZATION)
        self._require_worker_or_supervisor(actor, "complete this job")

        missing = self.condition_checklist.missing_mandatory_items()
        if missing:
            raise PreconditionError(
                "Mandatory checklist items are not set",
                missing_items=[item.value for item in missing],
            )
        if self.forklift_id is not None and self.hourmeter_reading is None:
            raise PreconditionError(
                "A meter reading is required before completion",
                missing_items=["hourmeter_reading"],
            )
        if require_signatures:
            missing_signatures = [
                name
                for name in ("technician_signature", "customer_signature")
                if getattr(self, name) is None
            ]
            if missing_signatures:
                raise PreconditionError(
                    "Signatures are required before completion",
                    missing_items=missing_signatures,
                )

        self.completed_at = now
        self.completed_by_id = actor.id
        if self.customer_signature is not None:
            self.verification_type = VerificationType.SIGNED_ONSITE
        self._transition(JobStatus.AWAITING_FINALIZATION, actor, now)

    # ------------------------------------------------------------------
    # Deferred acknowledgement
    # ------------------------------------------------------------------

    def defer_completion(
        self, reason: str, actor: Actor, now: datetime | None = None
    ) -> None:
        """Close on site without the customer's signature."""
        reason = BusinessRuleValidators.require_text("reason", reason)
        now = now or utcnow()
        self._check_transition(JobStatus.COMPLETED_AWAITING_ACK)
        self._require_worker_or_supervisor(actor, "defer completion")
        if not self.parts_gate_satisfied:
            raise PreconditionError(
                "Parts must be confirmed before deferring completion",
                missing_items=["parts_confirmation"],
            )

        self.verification_type = VerificationType.DEFERRED
        self.deferred_reason = reason
        self._append_note(f"Customer sign-off deferred: {reason}", actor, now)
        self._transition(JobStatus.COMPLETED_AWAITING_ACK, actor, now, reason=reason)

    def acknowledge_completion(self, actor: Actor, now: datetime | None = None) -> None:
        """
        Record the customer's acknowledgement of a deferred job.

        Completes the job when it is already confirmed; otherwise completion
        waits for ``confirm_job``.
        """
        now = now or utcnow()
        if self.status != JobStatus.COMPLETED_AWAITING_ACK:
            raise InvalidTransitionError(self.status, JobStatus.COMPLETED, self.id)
        actor.require_role(SUPERVISOR_ROLES, "record customer acknowledgement")
        if self.customer_acknowledged_at is not None:
            raise ConflictError("Customer acknowledgement already recorded")

        self.customer_acknowledged_at = now
        self.mark_updated(now)
        if self.job_confirmed_at is not None:
            self._transition(JobStatus.COMPLETED, actor, now, reason="acknowledged")

    def dispute_completion(
        self, notes: str, actor: Actor, now: datetime | None = None
    ) -> None:
        notes = BusinessRuleValidators.require_text("notes", notes)
        now = now or utcnow()
        self._check_transition(JobStatus.DISPUTED)
        actor.require_role(SUPERVISOR_ROLES, "record a dispute")

        self.disputed_at = now
        self.dispute_notes = notes
        self.verification_type = VerificationType.DISPUTED
        self._append_note(f"Customer disputed completion: {notes}", actor, now)
        self._transition(JobStatus.DISPUTED, actor, now, reason=notes)

    def resolve_dispute(
        self, resolution: str, actor: Actor, now: datetime | None = None
    ) -> None:
        """Settle a dispute; completes the job if it is already confirmed."""
        resolution = BusinessRuleValidators.require_text("resolution", resolution)
        now = now or utcnow()
        if self.status != JobStatus.DISPUTED:
            raise InvalidTransitionError(self.status, JobStatus.COMPLETED, self.id)
        actor.require_role(SUPERVISOR_ROLES, "resolve disputes")

        self.dispute_resolved_at = now
        self.dispute_resolution = resolution
        self.customer_acknowledged_at = now
        self._append_note(f"Dispute resolved: {resolution}", actor, now)
        target = (
            JobStatus.COMPLETED
            if self.job_confirmed_at is not None
            else JobStatus.COMPLETED_AWAITING_ACK
        )
        self._transition(target, actor, now, reason=resolution)

    # ------------------------------------------------------------------
    # Dual confirmation
    # ------------------------------------------------------------------

    def confirm_parts(
        self, actor: Actor, notes: str | None = None, now: datetime | None = None
    ) -> None:
        """
        Store-side confirmation of the parts used.

        Raises:
            AuthorizationError: If the actor is not a store confirmer
            PreconditionError: If not AwaitingFinalization or there are no parts
            ConflictError: If parts are already confirmed
        """
        now = now or utcnow()
        actor.require_role(STORE_CONFIRMER_ROLES, "confirm parts")
        self._require_awaiting_finalization("confirm parts")
        if not self.parts_used:
            raise PreconditionError(
                "Job has no parts to confirm; skip the parts confirmation instead"
            )
        if self.parts_confirmed_at is not None:
            raise ConflictError(
                "Parts are already confirmed", {"job_id": str(self.id)}
            )

        self.parts_confirmed_at = now
        self.parts_confirmed_by_id = actor.id
        self.parts_confirmation_notes = _optional_text("notes", notes)
        self.parts_rejected_at = None
        self.parts_rejected_by_id = None
        self.parts_rejection_reason = None
        self.mark_updated(now)
        self.add_domain_event(
            PartsConfirmed(
                aggregate_id=self.id, job_id=self.id, actor_id=actor.id, occurred_at=now
            )
        )

    def skip_parts_confirmation(self, actor: Actor, now: datetime | None = None) -> None:
        """Mark the parts gate as not applicable for a job with no parts."""
        now = now or utcnow()
        actor.require_role(STORE_CONFIRMER_ROLES, "skip parts confirmation")
        self._require_awaiting_finalization("skip parts confirmation")
        if self.parts_used:
            raise PreconditionError(
                "Parts confirmation can only be skipped when no parts were used"
            )
        if self.parts_confirmation_skipped:
            raise ConflictError("Parts confirmation already skipped")

        self.parts_confirmation_skipped = True
        self.mark_updated(now)
        self.add_domain_event(
            PartsConfirmed(
                aggregate_id=self.id,
                job_id=self.id,
                actor_id=actor.id,
                occurred_at=now,
                skipped=True,
            )
        )

    def confirm_job(
        self, actor: Actor, notes: str | None = None, now: datetime | None = None
    ) -> None:
        """
        Service-side confirmation; closes the job when nothing else is pending.

        Raises:
            AuthorizationError: If the actor is not a service confirmer
            InvalidTransitionError: If the job is not awaiting confirmation
            PreconditionError: If the parts gate is not satisfied
            ConflictError: If the job is already confirmed
        """
        now = now or utcnow()
        actor.require_role(SERVICE_CONFIRMER_ROLES, "confirm jobs")
        if self.status not in {
            JobStatus.AWAITING_FINALIZATION,
            JobStatus.COMPLETED_AWAITING_ACK,
            JobStatus.DISPUTED,
        }:
            raise InvalidTransitionError(self.status, JobStatus.COMPLETED, self.id)
        if self.job_confirmed_at is not None:
            raise ConflictError("Job is already confirmed", {"job_id": str(self.id)})
        if not self.parts_gate_satisfied:
            raise PreconditionError(
                "Parts must be confirmed before the job can be confirmed",
                missing_items=["parts_confirmation"],
            )

        self.job_confirmed_at = now
        self.job_confirmed_by_id = actor.id
        self.job_confirmation_notes = _optional_text("notes", notes)
        self.job_rejected_at = None
        self.job_rejected_by_id = None
        self.job_rejection_reason = None
        self.mark_updated(now)

        completes = self.status == JobStatus.AWAITING_FINALIZATION or (
            self.status == JobStatus.COMPLETED_AWAITING_ACK
            and self.customer_acknowledged_at is not None
        )
        if completes:
            self._transition(JobStatus.COMPLETED, actor, now, reason="confirmed")
        self.add_domain_event(
            JobConfirmed(
                aggregate_id=self.id,
                job_id=self.id,
                actor_id=actor.id,
                occurred_at=now,
                completed=completes,
            )
        )

    def reject_confirmation(
        self,
        gate: ConfirmationGate,
        reason: str,
        actor: Actor,
        now: datetime | None = None,
    ) -> None:
        """
        Send the job back to the technician for fixes without changing status.

        The other gate's state is left untouched.
        """
        reason = BusinessRuleValidators.require_text("reason", reason)
        now = now or utcnow()
        gate = ConfirmationGate(gate)
        if gate == ConfirmationGate.PARTS:
            actor.require_role(STORE_CONFIRMER_ROLES, "reject parts")
            self._require_awaiting_finalization("reject parts")
            if self.parts_confirmed_at is not None:
                raise ConflictError("Parts are already confirmed")
            self.parts_rejected_at = now
            self.parts_rejected_by_id = actor.id
            self.parts_rejection_reason = reason
        else:
            actor.require_role(SERVICE_CONFIRMER_ROLES, "reject jobs")
            self._require_awaiting_finalization("reject the job")
            if self.job_confirmed_at is not None:
                raise ConflictError("Job is already confirmed")
            self.job_rejected_at = now
            self.job_rejected_by_id = actor.id
            self.job_rejection_reason = reason

        self._append_note(
            f"{gate.value.capitalize()} confirmation rejected: {reason}",
            actor,
            now,
            kind="rejection",
        )
        self.mark_updated(now)
        self.add_domain_event(
            ConfirmationRejected(
                aggregate_id=self.id,
                job_id=self.id,
                actor_id=actor.id,
                occurred_at=now,
                gate=gate,
                reason=reason,
                technician_id=self.assigned_technician_id,
            )
        )

    def resubmit_for_confirmation(
        self, actor: Actor, notes: str | None = None, now: datetime | None = None
    ) -> None:
        """Clear outstanding rejections after the technician fixed the job."""
        now = now or utcnow()
        self._require_awaiting_finalization("resubmit")
        self._require_worker_or_supervisor(actor, "resubmit this job")
        if not self.has_outstanding_rejection:
            raise PreconditionError("Job has no outstanding confirmation rejection")

        self.parts_rejected_at = None
        self.parts_rejected_by_id = None
        self.parts_rejection_reason = None
        self.job_rejected_at = None
        self.job_rejected_by_id = None
        self.job_rejection_reason = None
        message = "Resubmitted for confirmation"
        if notes:
            message = f"{message}: {_optional_text('notes', notes)}"
        self._append_note(message, actor, now)
        self.mark_updated(now)

    # ------------------------------------------------------------------
    # Cancellation, SLA and escalation
    # ------------------------------------------------------------------

    def cancel(self, reason: str, actor: Actor, now: datetime | None = None) -> None:
        """
        Soft-delete the job. Irreversible.

        A recorded meter reading is kept as ``hourmeter_before_delete`` and
        marked invalidated; the caller invalidates the equipment history.
        """
        reason = BusinessRuleValidators.require_text("reason", reason)
        now = now or utcnow()
        self._check_transition(JobStatus.CANCELLED)
        actor.require_role(SUPERVISOR_ROLES, "cancel jobs")

        previous_status = self.status
        self.deleted_at = now
        self.deleted_by_id = actor.id
        self.deletion_reason = reason
        self.technician_response_deadline = None
        if self.hourmeter_reading is not None:
            self.hourmeter_before_delete = self.hourmeter_reading
            self.hourmeter_invalidated = True
        self._transition(JobStatus.CANCELLED, actor, now, reason=reason)

        self.add_domain_event(
            JobDeleted(
                aggregate_id=self.id,
                job_id=self.id,
                actor_id=actor.id,
                occurred_at=now,
                reason=reason,
                previous_status=previous_status,
            )
        )

    def acknowledge_slot_in(self, actor: Actor, now: datetime | None = None) -> None:
        """Stop the Slot-In acknowledgement clock and record whether it was met."""
        now = now or utcnow()
        if not self.job_type.has_acknowledgement_sla:
            raise PreconditionError(
                f"Only slot-in jobs have an acknowledgement SLA (got {self.job_type.value})"
            )
        if self.status.is_terminal:
            raise PreconditionError(f"Job is {self.status.value}")
        if self.acknowledged_at is not None:
            raise ConflictError("Job is already acknowledged", {"job_id": str(self.id)})
        if not (self.is_worker(actor) or actor.has_role(*SUPERVISOR_ROLES)):
            raise AuthorizationError(
                f"Actor {actor.id} may not acknowledge this job", actor_id=actor.id
            )

        elapsed = (now - self.created_at).total_seconds()
        target_seconds = self.slot_in_target_minutes * 60
        self.acknowledged_at = now
        self.acknowledged_by_id = actor.id
        self.sla_met = elapsed <= target_seconds
        self.mark_updated(now)
        self.add_domain_event(
            SlotInAcknowledged(
                aggregate_id=self.id,
                job_id=self.id,
                actor_id=actor.id,
                occurred_at=now,
                sla_met=self.sla_met,
                elapsed_seconds=elapsed,
            )
        )

    def mark_escalated(self, hours_elapsed: float, now: datetime | None = None) -> bool:
        """Stamp a long-running job once. Returns ``False`` if already escalated."""
        now = now or utcnow()
        if self.escalation_triggered_at is not None or not self.status.is_active_work:
            return False
        self.escalation_triggered_at = now
        self.mark_updated(now)
        self.add_domain_event(
            JobEscalated(
                aggregate_id=self.id,
                job_id=self.id,
                occurred_at=now,
                hours_elapsed=hours_elapsed,
                technician_id=self.assigned_technician_id,
            )
        )
        return True

    # ------------------------------------------------------------------
    # Record edits
    # ------------------------------------------------------------------

    def mutate(
        self, changes: Mapping[str, Any], actor: Actor, now: datetime | None = None
    ) -> None:
        """
        Change descriptive fields.

        Raises:
            ValidationError: For lifecycle fields or invalid values
            AuthorizationError: If a technician edits a supervisor-only field
            PreconditionError: If the job is terminal, or equipment is relinked
                after work started
        """
        now = now or utcnow()
        unknown = sorted(set(changes) - MUTABLE_FIELDS)
        if unknown:
            raise ValidationError(
                unknown[0], changes[unknown[0]], "Field cannot be changed directly",
                "IMMUTABLE_FIELD",
            )
        if self.status.is_terminal:
            raise PreconditionError(f"Job is {self.status.value} and can no longer change")
        if not actor.has_role(*SUPERVISOR_ROLES):
            if not (self.is_worker(actor) and set(changes) <= TECHNICIAN_MUTABLE_FIELDS):
                raise AuthorizationError(
                    f"Actor {actor.id} may not edit these fields",
                    actor_id=actor.id,
                    required_roles=[role.value for role in SUPERVISOR_ROLES],
                )
        if "forklift_id" in changes and (
            self.status not in {JobStatus.NEW, JobStatus.ASSIGNED}
            or self.hourmeter_reading is not None
        ):
            raise PreconditionError(
                "Equipment can only be changed before work starts"
            )
        if "sla_target_minutes" in changes and (
            not self.job_type.has_acknowledgement_sla or self.acknowledged_at is not None
        ):
            raise PreconditionError(
                "The acknowledgement target applies to unacknowledged Slot-In jobs only"
            )

        try:
            candidate = self.model_validate({**self.model_dump(), **changes})
        except PydanticValidationError as e:
            raise _as_domain_validation_error(e)
        for name in changes:
            super().__setattr__(name, getattr(candidate, name))
        self.mark_updated(now)

    def append_note(self, text: str, actor: Actor, now: datetime | None = None) -> JobNote:
        text = BusinessRuleValidators.require_text("text", text)
        note = self._append_note(text, actor, now or utcnow())
        self.mark_updated(note.created_at)
        return note

    def _append_note(
        self, text: str, actor: Actor | None, now: datetime, kind: str = "note"
    ) -> JobNote:
        note = JobNote(
            text=text, author_id=actor.id if actor else None, created_at=now, kind=kind
        )
        self.notes = [*self.notes, note]
        return note

    def add_part(
        self,
        part_id: str,
        part_name: str,
        quantity: int,
        unit_price: Decimal | int | float | str,
        actor: Actor,
        request_id: UUID | None = None,
        now: datetime | None = None,
    ) -> PartUsage:
        """
        Append a part priced at ``unit_price``; the price is never recalculated.

        Raises:
            ValidationError: On negative quantity or price
            PreconditionError: Once parts are confirmed or the job is closed
        """
        now = now or utcnow()
        part_id = BusinessRuleValidators.require_identifier("part_id", part_id)
        part_name = BusinessRuleValidators.require_text("part_name", part_name, 200)
        BusinessRuleValidators.require_non_negative("quantity", quantity)
        price = _to_decimal("unit_price", unit_price)
        BusinessRuleValidators.require_non_negative("unit_price", price)
        self._require_parts_editable()
        self._require_part_editor(actor)

        part = PartUsage(
            part_id=part_id,
            part_name=part_name,
            quantity=quantity,
            unit_price_at_time=price,
            added_by_id=actor.id,
            added_at=now,
            request_id=request_id,
        )
        self.parts_used = [*self.parts_used, part]
        self.mark_updated(now)
        return part

    def remove_part(
        self, part_usage_id: UUID, actor: Actor, now: datetime | None = None
    ) -> PartUsage:
        part = self._find_part(part_usage_id)
        self._require_parts_editable()
        self._require_part_editor(actor)
        self.parts_used = [p for p in self.parts_used if p.id != part.id]
        self.mark_updated(now)
        return part

    def update_part_price(
        self,
        part_usage_id: UUID,
        unit_price: Decimal | int | float | str,
        actor: Actor,
        now: datetime | None = None,
    ) -> PartUsage:
        """Correct the captured price of a single part line."""
        price = _to_decimal("unit_price", unit_price)
        BusinessRuleValidators.require_non_negative("unit_price", price)
        part = self._find_part(part_usage_id)
        self._require_parts_editable()
        actor.require_role(PART_EDITOR_ROLES, "change part prices")

        updated = part.model_copy(update={"unit_price_at_time": price})
        self.parts_used = [updated if p.id == part.id else p for p in self.parts_used]
        self.mark_updated(now)
        return updated

    def add_extra_charge(
        self,
        name: str,
        amount: Decimal | int | float | str,
        actor: Actor,
        description: str = "",
        now: datetime | None = None,
    ) -> ExtraCharge:
        now = now or utcnow()
        name = BusinessRuleValidators.require_text("name", name, 200)
        amount = _to_decimal("amount", amount)
        BusinessRuleValidators.require_non_negative("amount", amount)
        self._require_charges_editable()
        self._require_worker_or_supervisor(actor, "add charges")

        charge = ExtraCharge(
            name=name,
            description=DataSanitizer.sanitize_string(description, "description", 2000),
            amount=amount,
            created_at=now,
        )
        self.extra_charges = [*self.extra_charges, charge]
        self.mark_updated(now)
        return charge

    def remove_extra_charge(
        self, charge_id: UUID, actor: Actor, now: datetime | None = None
    ) -> ExtraCharge:
        charge = next((c for c in self.extra_charges if c.id == charge_id), None)
        if charge is None:
            raise NotFoundError("ExtraCharge", charge_id)
        self._require_charges_editable()
        self._require_worker_or_supervisor(actor, "remove charges")
        self.extra_charges = [c for c in self.extra_charges if c.id != charge_id]
        self.mark_updated(now)
        return charge

    def update_checklist(
        self, updates: Mapping[str, str], actor: Actor, now: datetime | None = None
    ) -> ConditionChecklist:
        if self.status not in _CHECKLIST_EDITABLE_STATUSES:
            raise PreconditionError(
                f"Checklist cannot be changed in status {self.status.value}"
            )
        self._require_worker_or_supervisor(actor, "update the checklist")
        self.condition_checklist = self._merged_checklist(updates)
        self.mark_updated(now)
        return self.condition_checklist

    def record_signature(
        self,
        signer_role: str,
        signer_name: str,
        actor: Actor,
        signature_url: str | None = None,
        now: datetime | None = None,
    ) -> Signature:
        """Capture the technician's or the customer's signature."""
        now = now or utcnow()
        if signer_role not in ("technician", "customer"):
            raise ValidationError(
                "signer_role", signer_role, "Must be 'technician' or 'customer'"
            )
        signer_name = BusinessRuleValidators.require_text("signer_name", signer_name, 200)
        if self.status not in _READING_EDITABLE_STATUSES:
            raise PreconditionError(
                f"Signatures cannot be recorded in status {self.status.value}"
            )
        self._require_worker_or_supervisor(actor, "record signatures")

        signature = Signature(
            signer_name=signer_name,
            signed_at=now,
            signature_url=signature_url,
            signer_id=actor.id,
        )
        if signer_role == "technician":
            self.technician_signature = signature
        else:
            self.customer_signature = signature
        self.mark_updated(now)
        return signature

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_transition(self, target: JobStatus) -> None:
        if not self.status.can_transition_to(target):
            raise InvalidTransitionError(self.status, target, self.id)

    def _transition(
        self,
        target: JobStatus,
        actor: Actor | None,
        now: datetime,
        reason: str | None = None,
    ) -> None:
        """The only place that writes ``status``."""
        self._check_transition(target)
        old_status = self.status
        self._status_unlocked = True
        try:
            self.status = target
        finally:
            self._status_unlocked = False
        self.mark_updated(now)

        if old_status != target:
            self.add_domain_event(
                JobStatusChanged(
                    aggregate_id=self.id,
                    job_id=self.id,
                    actor_id=actor.id if actor else None,
                    occurred_at=now,
                    old_status=old_status,
                    new_status=target,
                    reason=reason,
                )
            )

    def _require_assigned_technician(self, actor: Actor, action: str) -> None:
        if actor.id != self.assigned_technician_id:
            raise AuthorizationError(
                f"Only the assigned technician may {action}", actor_id=actor.id
            )

    def _require_worker_or_supervisor(self, actor: Actor, action: str) -> None:
        if self.is_worker(actor) or actor.has_role(*SUPERVISOR_ROLES):
            return
        raise AuthorizationError(
            f"Actor {actor.id} may not {action}",
            actor_id=actor.id,
            required_roles=[role.value for role in SUPERVISOR_ROLES],
        )

    def _require_part_editor(self, actor: Actor) -> None:
        if self.is_worker(actor) or actor.has_role(*PART_EDITOR_ROLES):
            return
        raise AuthorizationError(
            f"Actor {actor.id} may not edit parts on this job",
            actor_id=actor.id,
            required_roles=[role.value for role in PART_EDITOR_ROLES],
        )

    def _require_awaiting_finalization(self, action: str) -> None:
        if self.status != JobStatus.AWAITING_FINALIZATION:
            raise PreconditionError(
                f"Cannot {action} while job is {self.status.value}; "
                "job must be awaiting finalization"
            )

    def _require_parts_editable(self) -> None:
        if self.status not in _PART_EDITABLE_STATUSES:
            raise PreconditionError(
                f"Parts cannot be changed while job is {self.status.value}"
            )
        if self.parts_confirmed_at is not None or self.parts_confirmation_skipped:
            raise PreconditionError("Parts cannot be changed after confirmation")

    def _require_charges_editable(self) -> None:
        if self.status.is_terminal or self.job_confirmed_at is not None:
            raise PreconditionError(
                f"Charges cannot be changed while job is {self.status.value}"
            )

    def _find_part(self, part_usage_id: UUID) -> PartUsage:
        for part in self.parts_used:
            if part.id == part_usage_id:
                return part
        raise NotFoundError("PartUsage", part_usage_id)

    def _merged_checklist(self, updates: Mapping[str, str]) -> ConditionChecklist:
        try:
            return self.condition_checklist.with_states(updates)
        except ValueError as e:
            raise ValidationError("condition_checklist", dict(updates), str(e))


def _to_decimal(field_name: str, value: Decimal | int | float | str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except ArithmeticError:
        raise ValidationError(field_name, value, "Not a valid amount", "INVALID_AMOUNT")
    if not amount.is_finite():
        raise ValidationError(field_name, value, "Not a valid amount", "INVALID_AMOUNT")
    return amount


def _optional_text(field_name: str, value: str | None) -> str | None:
    if value is None:
        return None
    return DataSanitizer.sanitize_string(value, field_name=field_name, max_length=2000) or None


def _as_domain_validation_error(error: PydanticValidationError) -> ValidationError:
    first = error.errors()[0]
    field_name = ".".join(str(part) for part in first.get("loc", ())) or "input"
    return ValidationError(field_name, first.get("input"), first.get("msg", str(error)))
