"""
Mid-job request/approval pipeline.

Technicians raise spare-part, assistance or specialist requests while a job is
worked; approvers resolve them. An approval's effect on the job (part line,
helper technician) commits in the same unit of work as the resolution.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from jobflow.domain.jobs.entities import Job, JobRequest
from jobflow.domain.jobs.repositories import UnitOfWork
from jobflow.domain.jobs.value_objects import Actor, RequestStatus, RequestType
from jobflow.domain.shared.exceptions import AuthorizationError, PreconditionError
from jobflow.domain.shared.validation import BusinessRuleValidators

from .base_service import ApplicationServiceBase


class RequestService(ApplicationServiceBase):
    """Application service for job requests."""

    def create_request(
        self,
        job_id: UUID,
        request_type: RequestType,
        description: str,
        actor: Actor,
        photo_url: str | None = None,
        now: datetime | None = None,
    ) -> JobRequest:
        """
        Raise a request on a job in active work.

        Raises:
            PreconditionError: If the job is not InProgress or IncompleteContinuing
            AuthorizationError: If the actor is neither the assigned nor the
                helper technician
            ValidationError: If the description is empty
        """
        now = self._now(now)

        def action(uow: UnitOfWork, job: Job) -> JobRequest:
            if not job.status.is_active_work:
                raise PreconditionError(
                    f"Requests can only be raised on active work (job is {job.status.value})",
                    details={"job_id": str(job.id), "status": job.status.value},
                )
            if not job.is_worker(actor):
                raise AuthorizationError(
                    "Only the technicians working the job may raise requests",
                    actor_id=actor.id,
                )
            request = JobRequest.create(
                job.id, RequestType(request_type), description, actor, photo_url, now
            )
            uow.requests.add(request)
            return request

        return self._execute("create_request", job_id, actor, action)

    def update_request(
        self,
        request_id: UUID,
        actor: Actor,
        description: str | None = None,
        photo_url: str | None = None,
        now: datetime | None = None,
    ) -> JobRequest:
        """
        Raises:
            AuthorizationError: If the actor is not the requester or the
                request is already resolved
        """
        now = self._now(now)
        job_id = self.get_request(request_id).job_id

        def action(uow: UnitOfWork, job: Job) -> JobRequest:
            request = uow.requests.require(request_id)
            request.update(actor, description, photo_url, now)
            uow.requests.save(request)
            return request

        return self._execute("update_request", job_id, actor, action)

    def approve_request(
        self,
        request_id: UUID,
        actor: Actor,
        notes: str | None = None,
        part_id: str | None = None,
        part_name: str | None = None,
        quantity: int | None = None,
        unit_price: Decimal | int | float | str | None = None,
        helper_id: str | None = None,
        now: datetime | None = None,
    ) -> JobRequest:
        """
        Approve a request and apply its effect to the job.

        Args:
            part_id, part_name, quantity, unit_price: Required for spare parts;
                the part is appended to the job
            helper_id: Required for assistance; optional for a specialist,
                recorded on the job as helper technician

        Raises:
            AuthorizationError: If the actor may not approve this request type
            ConflictError: If the request is already resolved
            ValidationError: If the resolution misses a required field
            PreconditionError: If the job no longer accepts the effect
        """
        now = self._now(now)
        job_id = self.get_request(request_id).job_id

        def action(uow: UnitOfWork, job: Job) -> JobRequest:
            request = uow.requests.require(request_id)
            if request.request_type == RequestType.SPARE_PART:
                part_id_ = BusinessRuleValidators.require_identifier("part_id", part_id)
                BusinessRuleValidators.require_non_negative("quantity", quantity)
                request.approve(actor, notes, part_id=part_id_, quantity=quantity, now=now)
                job.add_part(
                    part_id_,
                    part_name,
                    quantity,
                    unit_price,
                    actor,
                    request_id=request.id,
                    now=now,
                )
            elif request.request_type == RequestType.ASSISTANCE or helper_id:
                helper = BusinessRuleValidators.require_identifier("helper_id", helper_id)
                request.approve(actor, notes, helper_id=helper, now=now)
                job.assign_helper(helper, actor, now)
            else:
                request.approve(actor, notes, now=now)

            uow.requests.save(request)
            uow.jobs.save(job)
            return request

        return self._execute("approve_request", job_id, actor, action)

    def reject_request(
        self,
        request_id: UUID,
        notes: str,
        actor: Actor,
        now: datetime | None = None,
    ) -> JobRequest:
        now = self._now(now)
        job_id = self.get_request(request_id).job_id

        def action(uow: UnitOfWork, job: Job) -> JobRequest:
            request = uow.requests.require(request_id)
            request.reject(actor, notes, now)
            uow.requests.save(request)
            return request

        return self._execute("reject_request", job_id, actor, action)

    def get_request(self, request_id: UUID) -> JobRequest:
        with self._uow_factory() as uow:
            return uow.requests.require(request_id)

    def list_requests(
        self, job_id: UUID | None = None, status: RequestStatus | None = None
    ) -> list[JobRequest]:
        with self._uow_factory() as uow:
            return uow.requests.find(job_id=job_id, status=status)

    def pending_requests(self, actor: Actor | None = None) -> list[JobRequest]:
        """Pending requests, narrowed to the ones ``actor`` may resolve."""
        pending = self.list_requests(status=RequestStatus.PENDING)
        if actor is None:
            return pending
        return [r for r in pending if actor.has_role(*r.approver_roles)]
