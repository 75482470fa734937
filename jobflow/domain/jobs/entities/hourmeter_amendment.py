"""Proposed correction of a flagged meter reading."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from ...shared.base import AggregateRoot, utcnow
from ...shared.exceptions import AuthorizationError, ConflictError, PreconditionError
from ...shared.validation import BusinessRuleValidators, DataSanitizer
from ..events import AmendmentProposed, AmendmentResolved
from ..value_objects import (
    AMENDMENT_APPROVER_ROLES,
    SUPERVISOR_ROLES,
    Actor,
    AmendmentStatus,
    HourmeterFlagReason,
    JobStatus,
)
from .job import Job


class HourmeterAmendment(AggregateRoot):
    """
    An amendment request for one job's meter reading.

    Approved and rejected amendments are immutable; a second review raises
    ``ConflictError``.
    """

    job_id: UUID
    forklift_id: UUID | None = None
    original_reading: int | None = None
    amended_reading: int = Field(ge=0)
    reason: str = Field(min_length=1, max_length=2000)
    flag_reasons_at_time: list[HourmeterFlagReason] = Field(default_factory=list)
    requested_by_id: str
    requested_at: datetime = Field(default_factory=utcnow)
    status: AmendmentStatus = AmendmentStatus.PENDING
    reviewed_by_id: str | None = None
    reviewed_at: datetime | None = None
    review_notes: str | None = None
    archived_at: datetime | None = None

    @classmethod
    def propose(
        cls,
        job: Job,
        amended_reading: int,
        reason: str,
        actor: Actor,
        now: datetime | None = None,
    ) -> "HourmeterAmendment":
        """
        Create a pending amendment against a flagged job.

        Raises:
            ValidationError: On a negative reading or empty reason
            PreconditionError: If the job's reading is not flagged, or the job
                is cancelled
            AuthorizationError: If the actor neither worked nor supervises the job
        """
        now = now or utcnow()
        BusinessRuleValidators.require_non_negative("amended_reading", amended_reading)
        reason = BusinessRuleValidators.require_text("reason", reason)
        if job.status == JobStatus.CANCELLED:
            raise PreconditionError(
                "A cancelled job's meter reading cannot be amended",
                details={"job_id": str(job.id)},
            )
        if not job.hourmeter_flagged:
            raise PreconditionError(
                "Only a flagged meter reading can be amended",
                details={"job_id": str(job.id)},
            )
        if not (job.is_worker(actor) or actor.has_role(*SUPERVISOR_ROLES)):
            raise AuthorizationError(
                f"Actor {actor.id} may not amend readings on this job",
                actor_id=actor.id,
            )

        amendment = cls(
            job_id=job.id,
            forklift_id=job.forklift_id,
            original_reading=job.hourmeter_reading,
            amended_reading=amended_reading,
            reason=reason,
            flag_reasons_at_time=list(job.hourmeter_flag_reasons),
            requested_by_id=actor.id,
            requested_at=now,
            created_at=now,
        )
        amendment.add_domain_event(
            AmendmentProposed(
                aggregate_id=amendment.id,
                job_id=job.id,
                actor_id=actor.id,
                occurred_at=now,
                amendment_id=amendment.id,
                original_reading=amendment.original_reading,
                amended_reading=amended_reading,
            )
        )
        return amendment

    def approve(
        self, actor: Actor, notes: str | None = None, now: datetime | None = None
    ) -> None:
        self._review(AmendmentStatus.APPROVED, actor, notes, now or utcnow())

    def reject(self, actor: Actor, notes: str, now: datetime | None = None) -> None:
        notes = BusinessRuleValidators.require_text("notes", notes)
        self._review(AmendmentStatus.REJECTED, actor, notes, now or utcnow())

    def withdraw(self, reason: str, actor: Actor, now: datetime | None = None) -> None:
        """Close a pending amendment because its job was cancelled."""
        if self.status.is_resolved:
            return
        self._resolve(
            AmendmentStatus.REJECTED, actor, f"Job cancelled: {reason}", now or utcnow()
        )

    def _review(
        self,
        outcome: AmendmentStatus,
        actor: Actor,
        notes: str | None,
        now: datetime,
    ) -> None:
        actor.require_role(AMENDMENT_APPROVER_ROLES, "review meter amendments")
        if self.status.is_resolved:
            raise ConflictError(
                f"Amendment {self.id} is already {self.status.value}",
                {"amendment_id": str(self.id)},
            )
        self._resolve(outcome, actor, notes, now)

    def _resolve(
        self,
        outcome: AmendmentStatus,
        actor: Actor,
        notes: str | None,
        now: datetime,
    ) -> None:
        self.status = outcome
        self.reviewed_by_id = actor.id
        self.reviewed_at = now
        self.archived_at = now
        if notes:
            self.review_notes = DataSanitizer.sanitize_string(notes, "notes", 2000) or None
        self.mark_updated(now)
        self.add_domain_event(
            AmendmentResolved(
                aggregate_id=self.id,
                job_id=self.job_id,
                actor_id=actor.id,
                occurred_at=now,
                amendment_id=self.id,
                approved=outcome == AmendmentStatus.APPROVED,
                requested_by_id=self.requested_by_id,
            )
        )
