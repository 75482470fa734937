"""
Job application service for coordinating job lifecycle use cases.

This service orchestrates the status state machine and the job record edits,
serializing every intent on the job's lock and committing the job together
with any forklift history it touches.
"""

from collections.abc import Callable, Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from jobflow.core.config import Settings
from jobflow.core.observability import record_intent
from jobflow.domain.jobs.entities import Forklift, Job
from jobflow.domain.jobs.repositories import UnitOfWork
from jobflow.domain.jobs.services import HourmeterRules, HourmeterValidator
from jobflow.domain.jobs.value_objects import (
    SUPERVISOR_ROLES,
    Actor,
    ConditionChecklist,
    ExtraCharge,
    HourmeterSource,
    JobNote,
    JobPriority,
    JobStatus,
    JobType,
    PartUsage,
    Signature,
)
from jobflow.domain.jobs.value_objects.hourmeter import HourmeterValidation
from jobflow.domain.shared.exceptions import InvalidTransitionError, PreconditionError

from .base_service import ApplicationServiceBase


def hourmeter_validator_for(config: Settings) -> HourmeterValidator:
    return HourmeterValidator(
        HourmeterRules(
            jump_threshold_hours=config.HOURMETER_JUMP_THRESHOLD_HOURS,
            jump_window_days=config.HOURMETER_JUMP_WINDOW_DAYS,
        )
    )


def capture_reading(
    validator: HourmeterValidator,
    uow: UnitOfWork,
    job: Job,
    reading: int | None,
) -> tuple[Forklift | None, HourmeterValidation | None]:
    """
    Validate ``reading`` against the job's forklift.

    Returns ``(None, None)`` when no reading was given.

    Raises:
        PreconditionError: If a reading is given for a job without equipment
        NotFoundError: If the linked forklift does not exist
        ValidationError: If the reading is negative
    """
    if reading is None:
        return None, None
    if job.forklift_id is None:
        raise PreconditionError("Job has no linked equipment to read")
    forklift = uow.forklifts.require(job.forklift_id)
    return forklift, validator.validate_reading(forklift, reading)


def log_reading(
    uow: UnitOfWork,
    forklift: Forklift,
    validation: HourmeterValidation,
    job: Job,
    actor: Actor,
    source: HourmeterSource,
    now: datetime,
) -> None:
    """Append the job's reading to the forklift history and stage the forklift."""
    forklift.record_reading(
        validation.reading,
        actor,
        job_id=job.id,
        source=source,
        flag_reasons=validation.flags,
        now=now,
    )
    uow.forklifts.save(forklift)


class JobLifecycleService(ApplicationServiceBase):
    """
    Application service for job lifecycle operations.

    Every write intent takes the acting user explicitly and an optional
    ``expected_version`` the caller read the job at.
    """

    def __init__(self, unit_of_work_factory, **kwargs):
        super().__init__(unit_of_work_factory, **kwargs)
        self._validator = hourmeter_validator_for(self._settings)

    # ------------------------------------------------------------------
    # Creation and queries
    # ------------------------------------------------------------------

    def create_job(
        self,
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
    ) -> Job:
        """
        Create a new job in status ``new``.

        Args:
            title: Short description shown in job lists
            actor: Must hold a supervisor role
            job_type: Slot-In jobs start the acknowledgement clock
            forklift_id: Equipment the job is carried out on
            sla_target_minutes: Slot-In acknowledgement target; defaults to
                ``SLOT_IN_SLA_MINUTES``

        Returns:
            The stored job

        Raises:
            AuthorizationError: If the actor may not create jobs
            ValidationError: If a field is malformed
            NotFoundError: If ``forklift_id`` is unknown
        """
        now = self._now(now)
        log = self._log.bind(intent="create_job", actor_id=actor.id)
        actor.require_role(SUPERVISOR_ROLES, "create jobs")
        job_type = JobType(job_type)
        if sla_target_minutes is None:
            sla_target_minutes = self._settings.SLOT_IN_SLA_MINUTES

        with self._uow_factory() as uow:
            if forklift_id is not None:
                uow.forklifts.require(forklift_id)
            job = Job.create(
                title=title,
                actor=actor,
                job_type=job_type,
                priority=JobPriority(priority),
                description=description,
                customer_id=customer_id,
                forklift_id=forklift_id,
                scheduled_date=scheduled_date,
                job_number=job_number,
                sla_target_minutes=sla_target_minutes,
                now=now,
            )
            uow.jobs.add(job)
        events = list(uow.collected_events)

        record_intent("create_job", "ok")
        log.info("job_created", job_id=str(job.id), job_type=job.job_type.value)
        self._publish(events)
        return job

    def get_job(self, job_id: UUID) -> Job:
        """
        Raises:
            NotFoundError: If the job does not exist
        """
        with self._uow_factory() as uow:
            return uow.jobs.require(job_id)

    def list_jobs(
        self,
        status: JobStatus | None = None,
        technician_id: str | None = None,
        include_deleted: bool = False,
    ) -> list[Job]:
        with self._uow_factory() as uow:
            return uow.jobs.find(
                status=status,
                technician_id=technician_id,
                include_deleted=include_deleted,
            )

    # ------------------------------------------------------------------
    # Assignment
    # ------------------------------------------------------------------

    def assign_job(
        self,
        job_id: UUID,
        technician_id: str,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        now = self._now(now)
        window = self._settings.technician_response_window

        def action(uow: UnitOfWork, job: Job) -> Job:
            job.assign(technician_id, actor, window, now)
            uow.jobs.save(job)
            return job

        return self._execute("assign_job", job_id, actor, action, expected_version)

    def reassign_job(
        self,
        job_id: UUID,
        technician_id: str,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        now = self._now(now)
        window = self._settings.technician_response_window

        def action(uow: UnitOfWork, job: Job) -> Job:
            job.reassign(technician_id, actor, window, now)
            uow.jobs.save(job)
            return job

        return self._execute("reassign_job", job_id, actor, action, expected_version)

    def accept_job(
        self,
        job_id: UUID,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        return self._apply(
            "accept_job",
            job_id,
            actor,
            expected_version,
            lambda job: job.accept(actor, self._now(now)),
        )

    def reject_job(
        self,
        job_id: UUID,
        reason: str,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        """The assigned technician declines; the job returns to ``new``."""
        return self._apply(
            "reject_job",
            job_id,
            actor,
            expected_version,
            lambda job: job.reject_assignment(reason, actor, self._now(now)),
        )

    # ------------------------------------------------------------------
    # Work
    # ------------------------------------------------------------------

    def start_job(
        self,
        job_id: UUID,
        actor: Actor,
        hourmeter_reading: int | None = None,
        checklist: Mapping[str, str] | None = None,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        """
        Start work on an accepted job.

        The meter reading is validated against the forklift history; a
        flagged reading is stored on the job and the forklift all the same.

        Raises:
            InvalidTransitionError: If the job is not Assigned
            AuthorizationError: If the actor is not the assigned technician
            PreconditionError: If the assignment was not accepted
            ValidationError: If a forklift is linked and no reading is given
        """
        now = self._now(now)

        def action(uow: UnitOfWork, job: Job) -> Job:
            forklift, validation = capture_reading(
                self._validator, uow, job, hourmeter_reading
            )
            job.start(actor, reading=validation, checklist=checklist, now=now)
            uow.jobs.save(job)
            if forklift is not None and validation is not None:
                log_reading(
                    uow, forklift, validation, job, actor, HourmeterSource.JOB_START, now
                )
            return job

        return self._execute("start_job", job_id, actor, action, expected_version)

    def continue_tomorrow(
        self,
        job_id: UUID,
        reason: str,
        actor: Actor,
        hourmeter_reading: int | None = None,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        """Pause multi-day work, optionally recording today's closing reading."""
        now = self._now(now)

        def action(uow: UnitOfWork, job: Job) -> Job:
            forklift, validation = capture_reading(
                self._validator, uow, job, hourmeter_reading
            )
            if validation is not None:
                job.record_meter_reading(validation, actor, now)
            job.continue_tomorrow(reason, actor, now)
            uow.jobs.save(job)
            if forklift is not None and validation is not None:
                log_reading(
                    uow,
                    forklift,
                    validation,
                    job,
                    actor,
                    HourmeterSource.READING_UPDATE,
                    now,
                )
            return job

        return self._execute("continue_tomorrow", job_id, actor, action, expected_version)

    def resume_job(
        self,
        job_id: UUID,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        return self._apply(
            "resume_job",
            job_id,
            actor,
            expected_version,
            lambda job: job.resume(actor, self._now(now)),
        )

    def mark_incomplete_reassigned(
        self,
        job_id: UUID,
        reason: str,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        return self._apply(
            "mark_incomplete_reassigned",
            job_id,
            actor,
            expected_version,
            lambda job: job.mark_incomplete_reassigned(reason, actor, self._now(now)),
        )

    def complete_work(
        self,
        job_id: UUID,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        """
        Move the job to ``awaiting_finalization``.

        Raises:
            PreconditionError: With the ordered ``missing_items`` of the first
                unmet gate (checklist, meter reading, signatures)
        """
        require_signatures = self._settings.REQUIRE_SIGNATURES_FOR_COMPLETION
        return self._apply(
            "complete_work",
            job_id,
            actor,
            expected_version,
            lambda job: job.complete_work(actor, require_signatures, self._now(now)),
        )

    # ------------------------------------------------------------------
    # Deferred customer acknowledgement
    # ------------------------------------------------------------------

    def defer_completion(
        self,
        job_id: UUID,
        reason: str,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        return self._apply(
            "defer_completion",
            job_id,
            actor,
            expected_version,
            lambda job: job.defer_completion(reason, actor, self._now(now)),
        )

    def acknowledge_completion(
        self,
        job_id: UUID,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        return self._apply(
            "acknowledge_completion",
            job_id,
            actor,
            expected_version,
            lambda job: job.acknowledge_completion(actor, self._now(now)),
        )

    def dispute_completion(
        self,
        job_id: UUID,
        notes: str,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        return self._apply(
            "dispute_completion",
            job_id,
            actor,
            expected_version,
            lambda job: job.dispute_completion(notes, actor, self._now(now)),
        )

    def resolve_dispute(
        self,
        job_id: UUID,
        resolution: str,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        return self._apply(
            "resolve_dispute",
            job_id,
            actor,
            expected_version,
            lambda job: job.resolve_dispute(resolution, actor, self._now(now)),
        )

    # ------------------------------------------------------------------
    # Generic status change and cancellation
    # ------------------------------------------------------------------

    def change_status(
        self,
        job_id: UUID,
        target: JobStatus,
        actor: Actor,
        reason: str | None = None,
        technician_id: str | None = None,
        hourmeter_reading: int | None = None,
        checklist: Mapping[str, str] | None = None,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        """
        Dispatch a requested target status to the intent that owns it.

        Targets are resolved against the job's current status, so ``assigned``
        from ``assigned`` is a reassignment and ``in_progress`` from
        ``incomplete_continuing`` is a resume.

        Raises:
            InvalidTransitionError: If no intent drives the job to ``target``
                from its current status
        """
        target = JobStatus(target)
        current = self.get_job(job_id)
        handler = self._status_handler(
            current, target, actor, reason, technician_id, hourmeter_reading, checklist
        )
        if handler is None:
            raise InvalidTransitionError(current.status, target, job_id)
        version = current.version if expected_version is None else expected_version
        return handler(version, now)

    def _status_handler(
        self,
        job: Job,
        target: JobStatus,
        actor: Actor,
        reason: str | None,
        technician_id: str | None,
        hourmeter_reading: int | None,
        checklist: Mapping[str, str] | None,
    ) -> Callable[[int, datetime | None], Job] | None:
        job_id = job.id
        text = reason or ""
        current = job.status

        if target == JobStatus.ASSIGNED and current == JobStatus.ASSIGNED:
            return lambda v, now: self.reassign_job(job_id, technician_id, actor, v, now)
        if target == JobStatus.ASSIGNED:
            return lambda v, now: self.assign_job(job_id, technician_id, actor, v, now)
        if target == JobStatus.NEW and current == JobStatus.ASSIGNED:
            return lambda v, now: self.reject_job(job_id, text, actor, v, now)
        if target == JobStatus.IN_PROGRESS and current == JobStatus.INCOMPLETE_CONTINUING:
            return lambda v, now: self.resume_job(job_id, actor, v, now)
        if target == JobStatus.IN_PROGRESS:
            return lambda v, now: self.start_job(
                job_id, actor, hourmeter_reading, checklist, v, now
            )
        if target == JobStatus.INCOMPLETE_CONTINUING:
            return lambda v, now: self.continue_tomorrow(
                job_id, text, actor, hourmeter_reading, v, now
            )
        if target == JobStatus.INCOMPLETE_REASSIGNED:
            return lambda v, now: self.mark_incomplete_reassigned(
                job_id, text, actor, v, now
            )
        if target == JobStatus.AWAITING_FINALIZATION:
            return lambda v, now: self.complete_work(job_id, actor, v, now)
        if target == JobStatus.COMPLETED_AWAITING_ACK and current == JobStatus.DISPUTED:
            return lambda v, now: self.resolve_dispute(job_id, text, actor, v, now)
        if target == JobStatus.COMPLETED_AWAITING_ACK:
            return lambda v, now: self.defer_completion(job_id, text, actor, v, now)
        if target == JobStatus.DISPUTED:
            return lambda v, now: self.dispute_completion(job_id, text, actor, v, now)
        if target == JobStatus.COMPLETED and current == JobStatus.DISPUTED:
            return lambda v, now: self.resolve_dispute(job_id, text, actor, v, now)
        if target == JobStatus.COMPLETED and current == JobStatus.COMPLETED_AWAITING_ACK:
            return lambda v, now: self.acknowledge_completion(job_id, actor, v, now)
        if target == JobStatus.CANCELLED:
            return lambda v, now: self.cancel_job(job_id, text, actor, v, now)
        if target == JobStatus.COMPLETED and current == JobStatus.AWAITING_FINALIZATION:
            return lambda v, now: self._apply(
                "confirm_job",
                job_id,
                actor,
                v,
                lambda j: j.confirm_job(actor, reason, self._now(now)),
            )
        return None

    def cancel_job(
        self,
        job_id: UUID,
        reason: str,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        """
        Soft-delete the job.

        A recorded meter reading is invalidated, not removed, on both the job
        and the forklift history. A pending amendment is closed as rejected.
        """
        now = self._now(now)

        def action(uow: UnitOfWork, job: Job) -> Job:
            job.cancel(reason, actor, now)
            uow.jobs.save(job)
            pending = uow.amendments.find_pending_for_job(job.id)
            if pending is not None:
                pending.withdraw(reason, actor, now)
                uow.amendments.save(pending)
            if job.forklift_id is not None and job.hourmeter_before_delete is not None:
                forklift = uow.forklifts.get(job.forklift_id)
                if forklift is not None and forklift.invalidate_job_readings(job.id, now):
                    uow.forklifts.save(forklift)
            return job

        return self._execute("cancel_job", job_id, actor, action, expected_version)

    def acknowledge_slot_in(
        self,
        job_id: UUID,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        """Stop a Slot-In job's acknowledgement clock."""
        return self._apply(
            "acknowledge_slot_in",
            job_id,
            actor,
            expected_version,
            lambda job: job.acknowledge_slot_in(actor, self._now(now)),
        )

    # ------------------------------------------------------------------
    # Record edits
    # ------------------------------------------------------------------

    def mutate_job(
        self,
        job_id: UUID,
        changes: Mapping[str, Any],
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        now = self._now(now)

        def action(uow: UnitOfWork, job: Job) -> Job:
            forklift_id = changes.get("forklift_id")
            if forklift_id is not None:
                uow.forklifts.require(UUID(str(forklift_id)))
            job.mutate(changes, actor, now)
            uow.jobs.save(job)
            return job

        return self._execute("mutate_job", job_id, actor, action, expected_version)

    def append_note(
        self,
        job_id: UUID,
        text: str,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> JobNote:
        return self._apply(
            "append_note",
            job_id,
            actor,
            expected_version,
            lambda job: job.append_note(text, actor, self._now(now)),
        )

    def add_part(
        self,
        job_id: UUID,
        part_id: str,
        part_name: str,
        quantity: int,
        unit_price: Decimal | int | float | str,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> PartUsage:
        return self._apply(
            "add_part",
            job_id,
            actor,
            expected_version,
            lambda job: job.add_part(
                part_id, part_name, quantity, unit_price, actor, now=self._now(now)
            ),
        )

    def remove_part(
        self,
        job_id: UUID,
        part_usage_id: UUID,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> PartUsage:
        return self._apply(
            "remove_part",
            job_id,
            actor,
            expected_version,
            lambda job: job.remove_part(part_usage_id, actor, self._now(now)),
        )

    def update_part_price(
        self,
        job_id: UUID,
        part_usage_id: UUID,
        unit_price: Decimal | int | float | str,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> PartUsage:
        return self._apply(
            "update_part_price",
            job_id,
            actor,
            expected_version,
            lambda job: job.update_part_price(
                part_usage_id, unit_price, actor, self._now(now)
            ),
        )

    def add_extra_charge(
        self,
        job_id: UUID,
        name: str,
        amount: Decimal | int | float | str,
        actor: Actor,
        description: str = "",
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> ExtraCharge:
        return self._apply(
            "add_extra_charge",
            job_id,
            actor,
            expected_version,
            lambda job: job.add_extra_charge(
                name, amount, actor, description, self._now(now)
            ),
        )

    def remove_extra_charge(
        self,
        job_id: UUID,
        charge_id: UUID,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> ExtraCharge:
        return self._apply(
            "remove_extra_charge",
            job_id,
            actor,
            expected_version,
            lambda job: job.remove_extra_charge(charge_id, actor, self._now(now)),
        )

    def update_checklist(
        self,
        job_id: UUID,
        updates: Mapping[str, str],
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> ConditionChecklist:
        return self._apply(
            "update_checklist",
            job_id,
            actor,
            expected_version,
            lambda job: job.update_checklist(updates, actor, self._now(now)),
        )

    def record_signature(
        self,
        job_id: UUID,
        signer_role: str,
        signer_name: str,
        actor: Actor,
        signature_url: str | None = None,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Signature:
        return self._apply(
            "record_signature",
            job_id,
            actor,
            expected_version,
            lambda job: job.record_signature(
                signer_role, signer_name, actor, signature_url, self._now(now)
            ),
        )

    def _apply(
        self,
        intent: str,
        job_id: UUID,
        actor: Actor,
        expected_version: int | None,
        change: Callable[[Job], Any],
    ) -> Any:
        """Run a job-only intent; returns the job unless ``change`` returns a value."""

        def action(uow: UnitOfWork, job: Job) -> Any:
            result = change(job)
            uow.jobs.save(job)
            return job if result is None else result

        return self._execute(intent, job_id, actor, action, expected_version)

