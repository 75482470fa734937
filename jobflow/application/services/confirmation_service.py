"""
Dual confirmation pipeline.

Store admins confirm (or skip) the parts gate, then service admins confirm the
job. Rejections record stamps and a note without moving the job.
"""

from datetime import datetime
from uuid import UUID

from jobflow.domain.jobs.entities import Job
from jobflow.domain.jobs.value_objects import Actor, ConfirmationGate, JobStatus

from .base_service import ApplicationServiceBase


class ConfirmationService(ApplicationServiceBase):
    """Application service for the parts and job confirmation gates."""

    def confirm_parts(
        self,
        job_id: UUID,
        actor: Actor,
        notes: str | None = None,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        """
        Confirm the parts used on a job awaiting finalization.

        Raises:
            AuthorizationError: If the actor is not a store confirmer
            PreconditionError: If the job is not awaiting finalization or has
                no parts
            ConflictError: If the parts were already confirmed
        """
        return self._gate(
            "confirm_parts",
            job_id,
            actor,
            expected_version,
            lambda job: job.confirm_parts(actor, notes, self._now(now)),
        )

    def skip_parts_confirmation(
        self,
        job_id: UUID,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        return self._gate(
            "skip_parts_confirmation",
            job_id,
            actor,
            expected_version,
            lambda job: job.skip_parts_confirmation(actor, self._now(now)),
        )

    def confirm_job(
        self,
        job_id: UUID,
        actor: Actor,
        notes: str | None = None,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        """
        Confirm the job; completes it when nothing else is outstanding.

        Raises:
            PreconditionError: With ``missing_items=["parts_confirmation"]``
                while the parts gate is open
        """
        return self._gate(
            "confirm_job",
            job_id,
            actor,
            expected_version,
            lambda job: job.confirm_job(actor, notes, self._now(now)),
        )

    def reject_parts(
        self,
        job_id: UUID,
        reason: str,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        return self._gate(
            "reject_parts",
            job_id,
            actor,
            expected_version,
            lambda job: job.reject_confirmation(
                ConfirmationGate.PARTS, reason, actor, self._now(now)
            ),
        )

    def reject_job(
        self,
        job_id: UUID,
        reason: str,
        actor: Actor,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        return self._gate(
            "reject_job_confirmation",
            job_id,
            actor,
            expected_version,
            lambda job: job.reject_confirmation(
                ConfirmationGate.JOB, reason, actor, self._now(now)
            ),
        )

    def resubmit_for_confirmation(
        self,
        job_id: UUID,
        actor: Actor,
        notes: str | None = None,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Job:
        return self._gate(
            "resubmit_for_confirmation",
            job_id,
            actor,
            expected_version,
            lambda job: job.resubmit_for_confirmation(actor, notes, self._now(now)),
        )

    # Queues

    def pending_parts_confirmations(self) -> list[Job]:
        """Jobs awaiting finalization whose parts gate is still open."""
        return [
            job
            for job in self._awaiting_finalization()
            if not job.parts_gate_satisfied and job.parts_rejected_at is None
        ]

    def pending_job_confirmations(self) -> list[Job]:
        """Jobs ready for service-side confirmation."""
        return [
            job
            for job in self._awaiting_finalization()
            if job.parts_gate_satisfied
            and job.job_confirmed_at is None
            and job.job_rejected_at is None
        ]

    def rejected_confirmations(self) -> list[Job]:
        """Jobs sent back to their technician and not yet resubmitted."""
        return [job for job in self._awaiting_finalization() if job.has_outstanding_rejection]

    def _awaiting_finalization(self) -> list[Job]:
        with self._uow_factory() as uow:
            return uow.jobs.find(status=JobStatus.AWAITING_FINALIZATION)

    def _gate(self, intent, job_id, actor, expected_version, change) -> Job:
        def action(uow, job: Job) -> Job:
            change(job)
            uow.jobs.save(job)
            return job

        return self._execute(intent, job_id, actor, action, expected_version)
