"""
SLA queries and sweeps.

Deadlines are evaluated on demand against an injected ``now``; nothing runs on
a timer. The sweeps are idempotent: each job is stamped at most once.
"""

from datetime import datetime
from uuid import UUID

from jobflow.domain.jobs.entities import Job
from jobflow.domain.jobs.repositories import UnitOfWork
from jobflow.domain.jobs.services import (
    OverdueWork,
    ResponseWindowState,
    SLATracker,
    SlotInSLAState,
    UrgencyBands,
)
from jobflow.domain.jobs.value_objects import JobStatus
from jobflow.domain.shared.exceptions import ConflictError

from .base_service import ApplicationServiceBase


class SLAQueryService(ApplicationServiceBase):
    """Response windows, Slot-In acknowledgement SLAs and escalation."""

    def __init__(self, unit_of_work_factory, **kwargs):
        super().__init__(unit_of_work_factory, **kwargs)
        self._tracker = SLATracker(
            bands=UrgencyBands(
                warning_minutes=self._settings.URGENCY_WARNING_MINUTES,
                critical_minutes=self._settings.URGENCY_CRITICAL_MINUTES,
            ),
            escalation_hours=self._settings.ESCALATION_HOURS,
        )

    @property
    def tracker(self) -> SLATracker:
        return self._tracker

    # Queries

    def response_window(
        self, job_id: UUID, now: datetime | None = None
    ) -> ResponseWindowState | None:
        return self._tracker.response_window(self._job(job_id), self._now(now))

    def pending_responses(self, now: datetime | None = None) -> list[ResponseWindowState]:
        """Assigned jobs still waiting for their technician, most urgent first."""
        now = self._now(now)
        states = [
            self._tracker.response_window(job, now)
            for job in self._jobs(JobStatus.ASSIGNED)
        ]
        return sorted(
            (s for s in states if s is not None),
            key=lambda s: (s.remaining, str(s.job_id)),
        )

    def slot_in_status(
        self, job_id: UUID, now: datetime | None = None
    ) -> SlotInSLAState | None:
        return self._tracker.slot_in_state(self._job(job_id), self._now(now))

    def urgent_queue(self, now: datetime | None = None) -> list[SlotInSLAState]:
        return self._tracker.urgent_queue(self._jobs(), self._now(now))

    def find_overdue_in_progress(self, now: datetime | None = None) -> list[OverdueWork]:
        return self._tracker.find_overdue_in_progress(self._jobs(), self._now(now))

    # Sweeps

    def handle_expired_responses(self, now: datetime | None = None) -> list[UUID]:
        """
        Alert supervisors about every lapsed response window not yet alerted.

        Jobs stay Assigned. Returns the ids that were stamped by this call.
        """
        now = self._now(now)
        expired = self._tracker.find_expired_responses(self._jobs(JobStatus.ASSIGNED), now)

        def action(uow: UnitOfWork, job: Job) -> bool:
            if not job.mark_response_overdue(now):
                return False
            uow.jobs.save(job)
            return True

        return self._sweep("handle_expired_responses", [job.id for job in expired], action)

    def escalate_overdue_jobs(self, now: datetime | None = None) -> list[UUID]:
        """Escalate long-running jobs once each; returns the newly escalated ids."""
        now = self._now(now)
        overdue = {
            item.job_id: item.hours_elapsed
            for item in self.find_overdue_in_progress(now)
        }

        def action(uow: UnitOfWork, job: Job) -> bool:
            if not job.mark_escalated(overdue[job.id], now):
                return False
            uow.jobs.save(job)
            return True

        return self._sweep("escalate_overdue_jobs", list(overdue), action)

    def _sweep(self, intent: str, job_ids: list[UUID], action) -> list[UUID]:
        stamped = []
        for job_id in job_ids:
            try:
                if self._execute(intent, job_id, None, action):
                    stamped.append(job_id)
            except ConflictError:
                # Picked up again by the next sweep
                self._log.warning("sweep_conflict", intent=intent, job_id=str(job_id))
        self._log.info("sweep_finished", intent=intent, stamped=len(stamped))
        return stamped

    def _job(self, job_id: UUID) -> Job:
        with self._uow_factory() as uow:
            return uow.jobs.require(job_id)

    def _jobs(self, status: JobStatus | None = None) -> list[Job]:
        with self._uow_factory() as uow:
            return uow.jobs.find(status=status)
