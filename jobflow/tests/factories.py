"""
Test data builders.

``JobFactory`` drives a bare ``Job`` aggregate to a lifecycle status through
its own intent methods. ``Workflow`` does the same through the application
services so the records are persisted.
"""

from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

from jobflow.application.services import Services
from jobflow.domain.jobs.entities import Job
from jobflow.domain.jobs.value_objects import (
    MANDATORY_CHECKLIST_ITEMS,
    Actor,
    ChecklistState,
    HourmeterFlagReason,
    JobStatus,
    JobType,
    UserRole,
)
from jobflow.domain.jobs.value_objects.hourmeter import HourmeterValidation

NOW = datetime(2025, 3, 3, 8, 0, tzinfo=timezone.utc)
RESPONSE_WINDOW = timedelta(minutes=15)

ADMIN = Actor.of("admin-1", UserRole.ADMIN, name="Dina Admin")
SUPERVISOR = Actor.of("sup-1", UserRole.SUPERVISOR)
TECHNICIAN = Actor.of("tech-1", UserRole.TECHNICIAN)
OTHER_TECHNICIAN = Actor.of("tech-2", UserRole.TECHNICIAN)
STORE_ADMIN = Actor.of("store-1", UserRole.ADMIN_STORE)
SERVICE_ADMIN = Actor.of("service-1", UserRole.ADMIN_SERVICE)
ACCOUNTANT = Actor.of("acct-1", UserRole.ACCOUNTANT)

FULL_CHECKLIST = {item.value: ChecklistState.OK.value for item in MANDATORY_CHECKLIST_ITEMS}


def headers_for(actor: Actor) -> dict[str, str]:
    """Identity headers the API expects for ``actor``."""
    return {
        "X-Actor-Id": actor.id,
        "X-Actor-Roles": ",".join(sorted(role.value for role in actor.roles)),
    }


Step = Callable[[Job, datetime], None]


def _assign(job: Job, now: datetime) -> None:
    job.assign(TECHNICIAN.id, SUPERVISOR, RESPONSE_WINDOW, now)


def _accept(job: Job, now: datetime) -> None:
    job.accept(TECHNICIAN, now)


def _start(job: Job, now: datetime) -> None:
    job.start(TECHNICIAN, checklist=FULL_CHECKLIST, now=now)


def _continue(job: Job, now: datetime) -> None:
    job.continue_tomorrow("Waiting on a replacement pump", TECHNICIAN, now)


def _pull(job: Job, now: datetime) -> None:
    job.mark_incomplete_reassigned("Technician off sick", SUPERVISOR, now)


def _complete(job: Job, now: datetime) -> None:
    job.complete_work(TECHNICIAN, now=now)


def _skip_parts(job: Job, now: datetime) -> None:
    job.skip_parts_confirmation(STORE_ADMIN, now)


def _confirm(job: Job, now: datetime) -> None:
    job.confirm_job(SERVICE_ADMIN, now=now)


def _defer(job: Job, now: datetime) -> None:
    job.defer_completion("Customer not on site", TECHNICIAN, now)


def _dispute(job: Job, now: datetime) -> None:
    job.dispute_completion("Mast still leaking", SUPERVISOR, now)


def _cancel(job: Job, now: datetime) -> None:
    job.cancel("Duplicate booking", SUPERVISOR, now)


_IN_PROGRESS: list[Step] = [_assign, _accept, _start]
_AWAITING_FINALIZATION: list[Step] = [*_IN_PROGRESS, _complete]
_AWAITING_ACK: list[Step] = [*_AWAITING_FINALIZATION, _skip_parts, _defer]

PATHS: dict[JobStatus, list[Step]] = {
    JobStatus.NEW: [],
    JobStatus.ASSIGNED: [_assign],
    JobStatus.IN_PROGRESS: _IN_PROGRESS,
    JobStatus.INCOMPLETE_CONTINUING: [*_IN_PROGRESS, _continue],
    JobStatus.INCOMPLETE_REASSIGNED: [*_IN_PROGRESS, _pull],
    JobStatus.AWAITING_FINALIZATION: _AWAITING_FINALIZATION,
    JobStatus.COMPLETED: [*_AWAITING_FINALIZATION, _skip_parts, _confirm],
    JobStatus.COMPLETED_AWAITING_ACK: _AWAITING_ACK,
    JobStatus.DISPUTED: [*_AWAITING_ACK, _dispute],
    JobStatus.CANCELLED: [_cancel],
}


class JobFactory:
    """Factory for in-memory job aggregates."""

    @staticmethod
    def create(
        status: JobStatus = JobStatus.NEW,
        job_type: JobType = JobType.SERVICE,
        now: datetime = NOW,
        title: str = "Quarterly service",
        sla_target_minutes: int = 15,
        **kwargs,
    ) -> Job:
        job = Job.create(
            title=title,
            actor=SUPERVISOR,
            job_type=job_type,
            sla_target_minutes=sla_target_minutes,
            now=now,
            **kwargs,
        )
        JobFactory.advance(job, status, now)
        job.clear_domain_events()
        return job

    @staticmethod
    def advance(job: Job, status: JobStatus, now: datetime = NOW) -> Job:
        for step in PATHS[status]:
            step(job, now)
        return job

    @staticmethod
    def flagged(forklift_id: UUID, reading: int = 900, previous: int = 1000) -> Job:
        """An in-progress job whose start reading went backwards."""
        job = JobFactory.create(JobStatus.ASSIGNED, forklift_id=forklift_id)
        job.accept(TECHNICIAN, NOW)
        job.start(
            TECHNICIAN,
            reading=HourmeterValidation(
                forklift_id=forklift_id,
                reading=reading,
                previous_reading=previous,
                flags=(HourmeterFlagReason.LOWER_THAN_PREVIOUS,),
            ),
            checklist=FULL_CHECKLIST,
            now=NOW,
        )
        job.clear_domain_events()
        return job


class Workflow:
    """Drives persisted jobs through the services."""

    def __init__(self, services: Services) -> None:
        self.services = services

    def create(
        self,
        job_type: JobType = JobType.SERVICE,
        forklift_id: UUID | None = None,
        title: str = "Quarterly service",
    ) -> Job:
        return self.services.jobs.create_job(
            title, SUPERVISOR, job_type=job_type, forklift_id=forklift_id
        )

    def assigned(self, **kwargs) -> Job:
        job = self.create(**kwargs)
        return self.services.jobs.assign_job(job.id, TECHNICIAN.id, SUPERVISOR)

    def accepted(self, **kwargs) -> Job:
        job = self.assigned(**kwargs)
        return self.services.jobs.accept_job(job.id, TECHNICIAN)

    def in_progress(self, reading: int | None = None, **kwargs) -> Job:
        job = self.accepted(**kwargs)
        return self.services.jobs.start_job(
            job.id, TECHNICIAN, hourmeter_reading=reading, checklist=FULL_CHECKLIST
        )

    def awaiting_finalization(
        self,
        parts: Iterable[tuple[str, int, Decimal | str]] = (),
        reading: int | None = None,
        **kwargs,
    ) -> Job:
        job = self.in_progress(reading=reading, **kwargs)
        for part_id, quantity, price in parts:
            self.services.jobs.add_part(
                job.id, part_id, f"Part {part_id}", quantity, price, TECHNICIAN
            )
        return self.services.jobs.complete_work(job.id, TECHNICIAN)
