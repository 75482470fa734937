"""
Job lifecycle API routes.

One endpoint per intent. Every write takes the acting user from the identity
headers and an optional ``expected_version`` query parameter.
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from jobflow.api.deps import CurrentActor, ExpectedVersion, ServicesDep
from jobflow.api.schemas import (
    AddExtraChargeRequest,
    AddPartRequest,
    AppendNoteRequest,
    AssignJobRequest,
    ChangeStatusRequest,
    ContinueTomorrowRequest,
    CreateJobRequest,
    MutateJobRequest,
    NotesRequest,
    ReasonRequest,
    RecordSignatureRequest,
    ResolutionRequest,
    StartJobRequest,
    UpdateChecklistRequest,
    UpdatePartPriceRequest,
)
from jobflow.domain.jobs.entities import Job
from jobflow.domain.jobs.value_objects import (
    ConditionChecklist,
    ExtraCharge,
    JobNote,
    JobStatus,
    PartUsage,
    Signature,
)

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post(
    "",
    summary="Create job",
    response_model=Job,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"description": "Insufficient permissions"}},
)
def create_job(body: CreateJobRequest, services: ServicesDep, actor: CurrentActor) -> Job:
    return services.jobs.create_job(actor=actor, **body.model_dump())


@router.get("", summary="List jobs", response_model=list[Job])
def list_jobs(
    services: ServicesDep,
    status_filter: JobStatus | None = Query(None, alias="status"),
    technician_id: str | None = None,
    include_deleted: bool = False,
) -> list[Job]:
    return services.jobs.list_jobs(status_filter, technician_id, include_deleted)


@router.get(
    "/{job_id}",
    summary="Get job",
    response_model=Job,
    responses={404: {"description": "Job not found"}},
)
def get_job(job_id: UUID, services: ServicesDep) -> Job:
    return services.jobs.get_job(job_id)


@router.patch("/{job_id}", summary="Edit descriptive fields", response_model=Job)
def mutate_job(
    job_id: UUID,
    body: MutateJobRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.jobs.mutate_job(job_id, body.changes, actor, expected_version)


# Assignment


@router.post("/{job_id}/assign", summary="Assign technician", response_model=Job)
def assign_job(
    job_id: UUID,
    body: AssignJobRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.jobs.assign_job(job_id, body.technician_id, actor, expected_version)


@router.post("/{job_id}/reassign", summary="Reassign technician", response_model=Job)
def reassign_job(
    job_id: UUID,
    body: AssignJobRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.jobs.reassign_job(job_id, body.technician_id, actor, expected_version)


@router.post("/{job_id}/accept", summary="Accept assignment", response_model=Job)
def accept_job(
    job_id: UUID,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.jobs.accept_job(job_id, actor, expected_version)


@router.post("/{job_id}/reject", summary="Reject assignment", response_model=Job)
def reject_job(
    job_id: UUID,
    body: ReasonRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.jobs.reject_job(job_id, body.reason, actor, expected_version)


# Work


@router.post("/{job_id}/start", summary="Start work", response_model=Job)
def start_job(
    job_id: UUID,
    body: StartJobRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.jobs.start_job(
        job_id, actor, body.hourmeter_reading, body.checklist, expected_version
    )


@router.post(
    "/{job_id}/continue-tomorrow", summary="Pause until tomorrow", response_model=Job
)
def continue_tomorrow(
    job_id: UUID,
    body: ContinueTomorrowRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.jobs.continue_tomorrow(
        job_id, body.reason, actor, body.hourmeter_reading, expected_version
    )


@router.post("/{job_id}/resume", summary="Resume paused work", response_model=Job)
def resume_job(
    job_id: UUID,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.jobs.resume_job(job_id, actor, expected_version)


@router.post(
    "/{job_id}/incomplete-reassigned",
    summary="Pull job from its technician",
    response_model=Job,
)
def mark_incomplete_reassigned(
    job_id: UUID,
    body: ReasonRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.jobs.mark_incomplete_reassigned(
        job_id, body.reason, actor, expected_version
    )


@router.post(
    "/{job_id}/complete",
    summary="Complete on-site work",
    response_model=Job,
    responses={400: {"description": "Checklist, reading or signatures missing"}},
)
def complete_work(
    job_id: UUID,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.jobs.complete_work(job_id, actor, expected_version)


# Deferred customer acknowledgement


@router.post("/{job_id}/defer", summary="Defer customer sign-off", response_model=Job)
def defer_completion(
    job_id: UUID,
    body: ReasonRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.jobs.defer_completion(job_id, body.reason, actor, expected_version)


@router.post(
    "/{job_id}/acknowledge", summary="Record customer sign-off", response_model=Job
)
def acknowledge_completion(
    job_id: UUID,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.jobs.acknowledge_completion(job_id, actor, expected_version)


@router.post("/{job_id}/dispute", summary="Record customer dispute", response_model=Job)
def dispute_completion(
    job_id: UUID,
    body: NotesRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.jobs.dispute_completion(job_id, body.notes, actor, expected_version)


@router.post("/{job_id}/resolve-dispute", summary="Resolve dispute", response_model=Job)
def resolve_dispute(
    job_id: UUID,
    body: ResolutionRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.jobs.resolve_dispute(job_id, body.resolution, actor, expected_version)


# Generic status change, cancellation and SLA


@router.post(
    "/{job_id}/status",
    summary="Change status",
    description="Dispatches the requested target status to the intent that owns it.",
    response_model=Job,
    responses={409: {"description": "Illegal transition or stale version"}},
)
def change_status(
    job_id: UUID,
    body: ChangeStatusRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.jobs.change_status(
        job_id,
        body.target,
        actor,
        reason=body.reason,
        technician_id=body.technician_id,
        hourmeter_reading=body.hourmeter_reading,
        checklist=body.checklist,
        expected_version=expected_version,
    )


@router.post("/{job_id}/cancel", summary="Cancel (soft delete) job", response_model=Job)
def cancel_job(
    job_id: UUID,
    body: ReasonRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.jobs.cancel_job(job_id, body.reason, actor, expected_version)


@router.post(
    "/{job_id}/acknowledge-slot-in",
    summary="Acknowledge Slot-In job",
    response_model=Job,
)
def acknowledge_slot_in(
    job_id: UUID,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.jobs.acknowledge_slot_in(job_id, actor, expected_version)


@router.get("/{job_id}/response-window", summary="Technician response window")
def response_window(job_id: UUID, services: ServicesDep):
    return services.sla.response_window(job_id)


@router.get("/{job_id}/sla", summary="Slot-In acknowledgement SLA")
def slot_in_status(job_id: UUID, services: ServicesDep):
    return services.sla.slot_in_status(job_id)


# Record edits


@router.post(
    "/{job_id}/notes",
    summary="Append note",
    response_model=JobNote,
    status_code=status.HTTP_201_CREATED,
)
def append_note(
    job_id: UUID,
    body: AppendNoteRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> JobNote:
    return services.jobs.append_note(job_id, body.text, actor, expected_version)


@router.post(
    "/{job_id}/parts",
    summary="Add part",
    response_model=PartUsage,
    status_code=status.HTTP_201_CREATED,
)
def add_part(
    job_id: UUID,
    body: AddPartRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> PartUsage:
    return services.jobs.add_part(
        job_id,
        body.part_id,
        body.part_name,
        body.quantity,
        body.unit_price,
        actor,
        expected_version,
    )


@router.delete("/{job_id}/parts/{part_usage_id}", summary="Remove part", response_model=PartUsage)
def remove_part(
    job_id: UUID,
    part_usage_id: UUID,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> PartUsage:
    return services.jobs.remove_part(job_id, part_usage_id, actor, expected_version)


@router.patch(
    "/{job_id}/parts/{part_usage_id}", summary="Update part price", response_model=PartUsage
)
def update_part_price(
    job_id: UUID,
    part_usage_id: UUID,
    body: UpdatePartPriceRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> PartUsage:
    return services.jobs.update_part_price(
        job_id, part_usage_id, body.unit_price, actor, expected_version
    )


@router.post(
    "/{job_id}/charges",
    summary="Add extra charge",
    response_model=ExtraCharge,
    status_code=status.HTTP_201_CREATED,
)
def add_extra_charge(
    job_id: UUID,
    body: AddExtraChargeRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> ExtraCharge:
    return services.jobs.add_extra_charge(
        job_id, body.name, body.amount, actor, body.description, expected_version
    )


@router.delete(
    "/{job_id}/charges/{charge_id}", summary="Remove extra charge", response_model=ExtraCharge
)
def remove_extra_charge(
    job_id: UUID,
    charge_id: UUID,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> ExtraCharge:
    return services.jobs.remove_extra_charge(job_id, charge_id, actor, expected_version)


@router.put(
    "/{job_id}/checklist", summary="Update condition checklist", response_model=ConditionChecklist
)
def update_checklist(
    job_id: UUID,
    body: UpdateChecklistRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> ConditionChecklist:
    return services.jobs.update_checklist(job_id, body.items, actor, expected_version)


@router.post(
    "/{job_id}/signatures",
    summary="Record signature",
    response_model=Signature,
    status_code=status.HTTP_201_CREATED,
)
def record_signature(
    job_id: UUID,
    body: RecordSignatureRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Signature:
    return services.jobs.record_signature(
        job_id,
        body.signer_role,
        body.signer_name,
        actor,
        body.signature_url,
        expected_version,
    )
