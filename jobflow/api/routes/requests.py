"""Mid-job request API routes."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from jobflow.api.deps import CurrentActor, ServicesDep
from jobflow.api.schemas import (
    ApproveJobRequestRequest,
    CreateJobRequestRequest,
    NotesRequest,
    UpdateJobRequestRequest,
)
from jobflow.domain.jobs.entities import JobRequest
from jobflow.domain.jobs.value_objects import RequestStatus

router = APIRouter(tags=["requests"])


@router.post(
    "/jobs/{job_id}/requests",
    summary="Raise request",
    response_model=JobRequest,
    status_code=status.HTTP_201_CREATED,
)
def create_request(
    job_id: UUID,
    body: CreateJobRequestRequest,
    services: ServicesDep,
    actor: CurrentActor,
) -> JobRequest:
    return services.requests.create_request(
        job_id, body.request_type, body.description, actor, body.photo_url
    )


@router.get("/requests", summary="List requests", response_model=list[JobRequest])
def list_requests(
    services: ServicesDep,
    job_id: UUID | None = None,
    status_filter: RequestStatus | None = Query(None, alias="status"),
) -> list[JobRequest]:
    return services.requests.list_requests(job_id=job_id, status=status_filter)


@router.get(
    "/requests/pending",
    summary="Pending requests the caller may resolve",
    response_model=list[JobRequest],
)
def pending_requests(services: ServicesDep, actor: CurrentActor) -> list[JobRequest]:
    return services.requests.pending_requests(actor)


@router.patch("/requests/{request_id}", summary="Edit request", response_model=JobRequest)
def update_request(
    request_id: UUID,
    body: UpdateJobRequestRequest,
    services: ServicesDep,
    actor: CurrentActor,
) -> JobRequest:
    return services.requests.update_request(
        request_id, actor, body.description, body.photo_url
    )


@router.post(
    "/requests/{request_id}/approve", summary="Approve request", response_model=JobRequest
)
def approve_request(
    request_id: UUID,
    body: ApproveJobRequestRequest,
    services: ServicesDep,
    actor: CurrentActor,
) -> JobRequest:
    return services.requests.approve_request(request_id, actor, **body.model_dump())


@router.post(
    "/requests/{request_id}/reject", summary="Reject request", response_model=JobRequest
)
def reject_request(
    request_id: UUID,
    body: NotesRequest,
    services: ServicesDep,
    actor: CurrentActor,
) -> JobRequest:
    return services.requests.reject_request(request_id, body.notes, actor)
