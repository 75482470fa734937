"""Equipment, meter reading and amendment API routes."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from jobflow.api.deps import CurrentActor, ExpectedVersion, ServicesDep
from jobflow.api.schemas import (
    MeterReadingRequest,
    NotesRequest,
    OptionalNotesRequest,
    ProposeAmendmentRequest,
    ReasonRequest,
    RegisterForkliftRequest,
)
from jobflow.domain.jobs.entities import Forklift, HourmeterAmendment, Job
from jobflow.domain.jobs.value_objects import AmendmentStatus
from jobflow.domain.jobs.value_objects.hourmeter import HourmeterValidation

router = APIRouter(tags=["hourmeter"])


@router.post(
    "/forklifts",
    summary="Register forklift",
    response_model=Forklift,
    status_code=status.HTTP_201_CREATED,
)
def register_forklift(
    body: RegisterForkliftRequest, services: ServicesDep, actor: CurrentActor
) -> Forklift:
    return services.hourmeter.register_forklift(actor=actor, **body.model_dump())


@router.get("/forklifts/{forklift_id}", summary="Get forklift", response_model=Forklift)
def get_forklift(forklift_id: UUID, services: ServicesDep) -> Forklift:
    return services.hourmeter.get_forklift(forklift_id)


@router.get(
    "/forklifts/{forklift_id}/validate",
    summary="Dry-run a meter reading",
    response_model=HourmeterValidation,
)
def validate_reading(
    forklift_id: UUID, services: ServicesDep, reading: int = Query(...)
) -> HourmeterValidation:
    return services.hourmeter.validate_reading(forklift_id, reading)


@router.post("/jobs/{job_id}/hourmeter", summary="Record meter reading", response_model=Job)
def record_meter_reading(
    job_id: UUID,
    body: MeterReadingRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.hourmeter.record_meter_reading(
        job_id, body.reading, actor, expected_version
    )


@router.post("/jobs/{job_id}/hourmeter/flag", summary="Flag meter reading", response_model=Job)
def flag_hourmeter(
    job_id: UUID,
    body: ReasonRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.hourmeter.flag_hourmeter(job_id, body.reason, actor, expected_version)


@router.post(
    "/jobs/{job_id}/amendments",
    summary="Propose meter amendment",
    response_model=HourmeterAmendment,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "An amendment is already pending"}},
)
def propose_amendment(
    job_id: UUID,
    body: ProposeAmendmentRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> HourmeterAmendment:
    return services.hourmeter.propose_amendment(
        job_id, body.amended_reading, body.reason, actor, expected_version
    )


@router.get("/amendments", summary="List amendments", response_model=list[HourmeterAmendment])
def list_amendments(
    services: ServicesDep,
    job_id: UUID | None = None,
    status_filter: AmendmentStatus | None = Query(None, alias="status"),
) -> list[HourmeterAmendment]:
    return services.hourmeter.list_amendments(job_id=job_id, status=status_filter)


@router.post(
    "/amendments/{amendment_id}/approve",
    summary="Approve amendment",
    response_model=HourmeterAmendment,
)
def approve_amendment(
    amendment_id: UUID,
    body: OptionalNotesRequest,
    services: ServicesDep,
    actor: CurrentActor,
) -> HourmeterAmendment:
    return services.hourmeter.approve_amendment(amendment_id, actor, body.notes)


@router.post(
    "/amendments/{amendment_id}/reject",
    summary="Reject amendment",
    response_model=HourmeterAmendment,
)
def reject_amendment(
    amendment_id: UUID,
    body: NotesRequest,
    services: ServicesDep,
    actor: CurrentActor,
) -> HourmeterAmendment:
    return services.hourmeter.reject_amendment(amendment_id, body.notes, actor)
