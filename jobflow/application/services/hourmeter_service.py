"""
Hourmeter application service.

Meter readings on active jobs, manual flags and the amendment approval
sub-flow. Every write is keyed by the job so it serializes with the other
intents on that job.
"""

from datetime import datetime
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from jobflow.domain.jobs.entities import Forklift, HourmeterAmendment, Job
from jobflow.domain.jobs.repositories import UnitOfWork
from jobflow.domain.jobs.value_objects import (
    SUPERVISOR_ROLES,
    Actor,
    AmendmentStatus,
    HourmeterSource,
)
from jobflow.domain.jobs.value_objects.hourmeter import HourmeterValidation
from jobflow.domain.shared.exceptions import ConflictError, ValidationError

from .base_service import ApplicationServiceBase
from .job_service import capture_reading, hourmeter_validator_for, log_reading


class HourmeterService(ApplicationServiceBase):
    """Application service for equipment meter readings and amendments."""

    def __init__(self, unit_of_work_factory, **kwargs):
        super().__init__(unit_of_work_factory, **kwargs)
        self._validator = hourmeter_validator_for(self._settings)

    # ------------------------------------------------------------------
    # Equipment
    # ------------------------------------------------------------------

    def register_forklift(
        self,
        serial_number: str,
        actor: Actor,
        customer_id: str | None = None,
        hourmeter: int | None = None,
        avg_daily_usage_hours: float | None = None,
    ) -> Forklift:
        """
        Register equipment that jobs can be linked to.

        Raises:
            AuthorizationError: If the actor is not a supervisor
            ValidationError: If a field is malformed
        """
        actor.require_role(SUPERVISOR_ROLES, "register equipment")
        try:
            forklift = Forklift(
                serial_number=serial_number,
                customer_id=customer_id,
                hourmeter=hourmeter,
                avg_daily_usage_hours=(
                    avg_daily_usage_hours or self._settings.DEFAULT_AVG_DAILY_USAGE_HOURS
                ),
            )
        except PydanticValidationError as e:
            error = e.errors()[0]
            field_name = ".".join(str(part) for part in error["loc"]) or "forklift"
            raise ValidationError(field_name, error.get("input"), error["msg"])

        with self._uow_factory() as uow:
            uow.forklifts.add(forklift)
        self._log.info(
            "forklift_registered", forklift_id=str(forklift.id), actor_id=actor.id
        )
        return forklift

    def get_forklift(self, forklift_id: UUID) -> Forklift:
        with self._uow_factory() as uow:
            return uow.forklifts.require(forklift_id)

    def validate_reading(self, forklift_id: UUID, reading: int) -> HourmeterValidation:
        """Dry-run validation of a reading, nothing is stored."""
        return self._validator.validate_reading(self.get_forklift(forklift_id), reading)

    # ------------------------------------------------------------------
    # Readings
    # ------------------------------------------------------------------

    def record_meter_reading(
        self,
        job_id: UUID,
        reading: int,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        """
        Re-validate and store a new reading on a job in active work.

        Raises:
            ConflictError: While an amendment of the current reading is pending
            PreconditionError: If the job has no equipment or is past the point
                where readings may change
        """
        now = self._now(now)

        def action(uow: UnitOfWork, job: Job) -> Job:
            if uow.amendments.find_pending_for_job(job.id) is not None:
                raise ConflictError(
                    "A meter amendment is pending for this job",
                    {"job_id": str(job.id)},
                )
            forklift, validation = capture_reading(self._validator, uow, job, reading)
            job.record_meter_reading(validation, actor, now)
            uow.jobs.save(job)
            log_reading(
                uow, forklift, validation, job, actor, HourmeterSource.READING_UPDATE, now
            )
            return job

        return self._execute(
            "record_meter_reading", job_id, actor, action, expected_version
        )

    def flag_hourmeter(
        self,
        job_id: UUID,
        reason: str,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        now = self._now(now)

        def action(uow: UnitOfWork, job: Job) -> Job:
            job.flag_hourmeter(reason, actor, now)
            uow.jobs.save(job)
            return job

        return self._execute("flag_hourmeter", job_id, actor, action, expected_version)

    # ------------------------------------------------------------------
    # Amendments
    # ------------------------------------------------------------------

    def propose_amendment(
        self,
        job_id: UUID,
        amended_reading: int,
        reason: str,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> HourmeterAmendment:
        """
        Propose a correction of a flagged reading.

        Raises:
            ConflictError: If an amendment is already pending for the job
            PreconditionError: If the job's reading is not flagged
            ValidationError: On a negative reading or empty reason
        """
        now = self._now(now)

        def action(uow: UnitOfWork, job: Job) -> HourmeterAmendment:
            pending = uow.amendments.find_pending_for_job(job.id)
            if pending is not None:
                raise ConflictError(
                    "An amendment is already pending for this job",
                    {"job_id": str(job.id), "amendment_id": str(pending.id)},
                )
            amendment = HourmeterAmendment.propose(
                job, amended_reading, reason, actor, now
            )
            uow.amendments.add(amendment)
            # Job version guards the one-pending-amendment rule
            job.mark_updated(now)
            uow.jobs.save(job)
            return amendment

        return self._execute("propose_amendment", job_id, actor, action, expected_version)

    def approve_amendment(
        self,
        amendment_id: UUID,
        actor: Actor,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> HourmeterAmendment:
        """
        Approve an amendment and apply it.

        The job reading, the forklift hourmeter and history, and the archived
        amendment commit together.
        """
        now = self._now(now)
        job_id = self._job_of(amendment_id)

        def action(uow: UnitOfWork, job: Job) -> HourmeterAmendment:
            amendment = uow.amendments.require(amendment_id)
            amendment.approve(actor, notes, now)
            job.apply_amended_reading(amendment.id, amendment.amended_reading, actor, now)
            uow.amendments.save(amendment)
            uow.jobs.save(job)
            if job.forklift_id is not None:
                forklift = uow.forklifts.require(job.forklift_id)
                forklift.record_reading(
                    amendment.amended_reading,
                    actor,
                    job_id=job.id,
                    source=HourmeterSource.AMENDMENT,
                    now=now,
                )
                uow.forklifts.save(forklift)
            return amendment

        return self._execute("approve_amendment", job_id, actor, action)

    def reject_amendment(
        self,
        amendment_id: UUID,
        notes: str,
        actor: Actor,
        now: datetime | None = None,
    ) -> HourmeterAmendment:
        """Reject an amendment; the flagged reading stays on the job."""
        now = self._now(now)
        job_id = self._job_of(amendment_id)

        def action(uow: UnitOfWork, job: Job) -> HourmeterAmendment:
            amendment = uow.amendments.require(amendment_id)
            amendment.reject(actor, notes, now)
            uow.amendments.save(amendment)
            return amendment

        return self._execute("reject_amendment", job_id, actor, action)

    def get_amendment(self, amendment_id: UUID) -> HourmeterAmendment:
        with self._uow_factory() as uow:
            return uow.amendments.require(amendment_id)

    def list_amendments(
        self, job_id: UUID | None = None, status: AmendmentStatus | None = None
    ) -> list[HourmeterAmendment]:
        with self._uow_factory() as uow:
            return uow.amendments.find(job_id=job_id, status=status)

    def pending_amendments(self) -> list[HourmeterAmendment]:
        return self.list_amendments(status=AmendmentStatus.PENDING)

    def _job_of(self, amendment_id: UUID) -> UUID:
        return self.get_amendment(amendment_id).job_id
