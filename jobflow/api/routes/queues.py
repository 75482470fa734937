"""Deadline queues and the supervisor-triggered sweeps."""

from fastapi import APIRouter

from jobflow.api.deps import CurrentActor, ServicesDep
from jobflow.domain.jobs.value_objects import SUPERVISOR_ROLES

router = APIRouter(tags=["queues"])


@router.get("/queues/urgent", summary="Unacknowledged Slot-In jobs, most urgent first")
def urgent_queue(services: ServicesDep):
    return services.sla.urgent_queue()


@router.get("/queues/responses", summary="Assignments awaiting a technician response")
def pending_responses(services: ServicesDep):
    return services.sla.pending_responses()


@router.get("/queues/overdue", summary="Jobs in active work past the escalation window")
def overdue_in_progress(services: ServicesDep):
    return services.sla.find_overdue_in_progress()


@router.post("/sweeps/expired-responses", summary="Alert on lapsed response windows")
def handle_expired_responses(services: ServicesDep, actor: CurrentActor) -> dict:
    actor.require_role(SUPERVISOR_ROLES, "run deadline sweeps")
    return {"alerted": services.sla.handle_expired_responses()}


@router.post("/sweeps/escalations", summary="Escalate long-running jobs")
def escalate_overdue_jobs(services: ServicesDep, actor: CurrentActor) -> dict:
    actor.require_role(SUPERVISOR_ROLES, "run deadline sweeps")
    return {"escalated": services.sla.escalate_overdue_jobs()}
