"""Dual confirmation API routes."""

from uuid import UUID

from fastapi import APIRouter

from jobflow.api.deps import CurrentActor, ExpectedVersion, ServicesDep
from jobflow.api.schemas import OptionalNotesRequest, ReasonRequest
from jobflow.domain.jobs.entities import Job

router = APIRouter(tags=["confirmations"])


@router.post(
    "/jobs/{job_id}/confirm-parts",
    summary="Confirm parts",
    response_model=Job,
    responses={409: {"description": "Parts already confirmed"}},
)
def confirm_parts(
    job_id: UUID,
    body: OptionalNotesRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.confirmations.confirm_parts(
        job_id, actor, body.notes, expected_version
    )


@router.post(
    "/jobs/{job_id}/skip-parts-confirmation",
    summary="Skip parts confirmation",
    response_model=Job,
)
def skip_parts_confirmation(
    job_id: UUID,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.confirmations.skip_parts_confirmation(job_id, actor, expected_version)


@router.post(
    "/jobs/{job_id}/confirm",
    summary="Confirm job",
    response_model=Job,
    responses={400: {"description": "Parts gate not satisfied"}},
)
def confirm_job(
    job_id: UUID,
    body: OptionalNotesRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.confirmations.confirm_job(job_id, actor, body.notes, expected_version)


@router.post("/jobs/{job_id}/reject-parts", summary="Reject parts", response_model=Job)
def reject_parts(
    job_id: UUID,
    body: ReasonRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.confirmations.reject_parts(
        job_id, body.reason, actor, expected_version
    )


@router.post(
    "/jobs/{job_id}/reject-confirmation",
    summary="Reject job confirmation",
    response_model=Job,
)
def reject_job_confirmation(
    job_id: UUID,
    body: ReasonRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.confirmations.reject_job(job_id, body.reason, actor, expected_version)


@router.post(
    "/jobs/{job_id}/resubmit", summary="Resubmit for confirmation", response_model=Job
)
def resubmit_for_confirmation(
    job_id: UUID,
    body: OptionalNotesRequest,
    services: ServicesDep,
    actor: CurrentActor,
    expected_version: ExpectedVersion = None,
) -> Job:
    return services.confirmations.resubmit_for_confirmation(
        job_id, actor, body.notes, expected_version
    )


@router.get(
    "/confirmations/parts", summary="Jobs awaiting parts confirmation", response_model=list[Job]
)
def pending_parts_confirmations(services: ServicesDep) -> list[Job]:
    return services.confirmations.pending_parts_confirmations()


@router.get(
    "/confirmations/jobs", summary="Jobs awaiting job confirmation", response_model=list[Job]
)
def pending_job_confirmations(services: ServicesDep) -> list[Job]:
    return services.confirmations.pending_job_confirmations()


@router.get(
    "/confirmations/rejected",
    summary="Jobs sent back to their technician",
    response_model=list[Job],
)
def rejected_confirmations(services: ServicesDep) -> list[Job]:
    return services.confirmations.rejected_confirmations()
