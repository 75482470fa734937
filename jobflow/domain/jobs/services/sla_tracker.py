"""
SLA Tracker

Pure computations over stored timestamps: technician response windows,
Slot-In acknowledgement SLAs and long-running work. Nothing here schedules or
changes state; callers pass ``now`` and act on the result.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from ..entities.job import Job
from ..value_objects import JobStatus, SLAStatus, UrgencyBand


@dataclass(frozen=True)
class UrgencyBands:
    """Minutes of remaining time at which a deadline turns warning / critical."""

    warning_minutes: int = 10
    critical_minutes: int = 5

    def band_for(self, remaining: timedelta) -> UrgencyBand:
        if remaining > timedelta(minutes=self.warning_minutes):
            return UrgencyBand.OK
        if remaining >= timedelta(minutes=self.critical_minutes):
            return UrgencyBand.WARNING
        return UrgencyBand.CRITICAL


@dataclass(frozen=True)
class ResponseWindowState:
    job_id: UUID
    technician_id: str | None
    deadline: datetime
    remaining: timedelta
    urgency: UrgencyBand
    is_expired: bool
    alerted: bool


@dataclass(frozen=True)
class SlotInSLAState:
    job_id: UUID
    deadline: datetime
    remaining: timedelta
    status: SLAStatus
    urgency: UrgencyBand
    is_expired: bool
    acknowledged_at: datetime | None = None
    sla_met: bool | None = None

    @property
    def remaining_seconds(self) -> float:
        return self.remaining.total_seconds()


@dataclass(frozen=True)
class OverdueWork:
    job_id: UUID
    technician_id: str | None
    started_at: datetime
    hours_elapsed: float


class SLATracker:
    """Computes deadline state for jobs at an injected ``now``."""

    def __init__(
        self,
        bands: UrgencyBands | None = None,
        escalation_hours: int = 24,
    ) -> None:
        self.bands = bands or UrgencyBands()
        self.escalation_hours = escalation_hours

    # Technician response window

    def response_window(self, job: Job, now: datetime) -> ResponseWindowState | None:
        """
        Remaining time for the assigned technician to respond.

        Returns ``None`` when no window applies. After the expiry sweep has
        cleared the deadline the job reads as critical until someone responds.
        """
        if job.status != JobStatus.ASSIGNED or job.has_responded:
            return None

        if job.technician_response_deadline is None:
            if job.no_response_alerted_at is None:
                return None
            return ResponseWindowState(
                job_id=job.id,
                technician_id=job.assigned_technician_id,
                deadline=job.no_response_alerted_at,
                remaining=job.no_response_alerted_at - now,
                urgency=UrgencyBand.CRITICAL,
                is_expired=True,
                alerted=True,
            )

        remaining = job.technician_response_deadline - now
        return ResponseWindowState(
            job_id=job.id,
            technician_id=job.assigned_technician_id,
            deadline=job.technician_response_deadline,
            remaining=remaining,
            urgency=self.bands.band_for(remaining),
            is_expired=remaining <= timedelta(0),
            alerted=job.no_response_alerted_at is not None,
        )

    def find_expired_responses(self, jobs: Iterable[Job], now: datetime) -> list[Job]:
        """Assigned jobs whose window lapsed and that were not yet alerted."""
        return [
            job
            for job in jobs
            if job.status == JobStatus.ASSIGNED
            and not job.has_responded
            and job.no_response_alerted_at is None
            and job.technician_response_deadline is not None
            and job.technician_response_deadline <= now
        ]

    # Slot-In acknowledgement

    def slot_in_state(self, job: Job, now: datetime) -> SlotInSLAState | None:
        if not job.job_type.has_acknowledgement_sla:
            return None

        deadline = job.created_at + timedelta(minutes=job.slot_in_target_minutes)

        if job.acknowledged_at is not None:
            # Clock stopped for good at acknowledgement.
            return SlotInSLAState(
                job_id=job.id,
                deadline=deadline,
                remaining=deadline - job.acknowledged_at,
                status=SLAStatus.MET if job.sla_met else SLAStatus.BREACHED,
                urgency=UrgencyBand.OK,
                is_expired=False,
                acknowledged_at=job.acknowledged_at,
                sla_met=job.sla_met,
            )

        remaining = deadline - now
        urgency = self.bands.band_for(remaining)
        if remaining <= timedelta(0):
            status = SLAStatus.BREACHED
        elif urgency == UrgencyBand.CRITICAL:
            status = SLAStatus.CRITICAL
        elif urgency == UrgencyBand.WARNING:
            status = SLAStatus.WARNING
        else:
            status = SLAStatus.ON_TRACK

        return SlotInSLAState(
            job_id=job.id,
            deadline=deadline,
            remaining=remaining,
            status=status,
            urgency=urgency,
            is_expired=remaining <= timedelta(0),
        )

    def urgent_queue(self, jobs: Iterable[Job], now: datetime) -> list[SlotInSLAState]:
        """Unacknowledged open Slot-In jobs, most time-critical first."""
        states = [
            self.slot_in_state(job, now)
            for job in jobs
            if job.job_type.has_acknowledgement_sla
            and job.acknowledged_at is None
            and not job.status.is_terminal
        ]
        return sorted(
            (s for s in states if s is not None),
            key=lambda s: (s.remaining, str(s.job_id)),
        )

    # Long-running work

    def find_overdue_in_progress(
        self, jobs: Iterable[Job], now: datetime
    ) -> list[OverdueWork]:
        """Jobs in active work for longer than the escalation window."""
        limit = timedelta(hours=self.escalation_hours)
        overdue = []
        for job in jobs:
            if not job.status.is_active_work or job.started_at is None:
                continue
            elapsed = now - job.started_at
            if elapsed > limit:
                overdue.append(
                    OverdueWork(
                        job_id=job.id,
                        technician_id=job.assigned_technician_id,
                        started_at=job.started_at,
                        hours_elapsed=round(elapsed.total_seconds() / 3600, 2),
                    )
                )
        return sorted(overdue, key=lambda o: o.started_at)
