"""Mid-job requests raised by technicians: spare parts, helpers, specialists."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from ...shared.base import AggregateRoot, utcnow
from ...shared.exceptions import AuthorizationError, ConflictError
from ...shared.validation import BusinessRuleValidators, DataSanitizer
from ..events import RequestCreated, RequestResolved
from ..value_objects import Actor, RequestStatus, RequestType, UserRole

APPROVER_ROLES: dict[RequestType, tuple[UserRole, ...]] = {
    RequestType.SPARE_PART: (UserRole.ADMIN, UserRole.ADMIN_STORE),
    RequestType.ASSISTANCE: (UserRole.ADMIN, UserRole.ADMIN_SERVICE, UserRole.SUPERVISOR),
    RequestType.SKILLFUL_TECHNICIAN: (
        UserRole.ADMIN,
        UserRole.ADMIN_SERVICE,
        UserRole.SUPERVISOR,
    ),
}


class JobRequest(AggregateRoot):
    """
    A request for help raised while a job is being worked.

    Resolution is one-way: once approved or rejected the request is frozen.
    """

    job_id: UUID
    request_type: RequestType
    requested_by_id: str
    description: str = Field(min_length=1, max_length=2000)
    photo_url: str | None = None
    status: RequestStatus = RequestStatus.PENDING

    resolved_by_id: str | None = None
    resolved_at: datetime | None = None
    resolution_notes: str | None = None
    response_part_id: str | None = None
    response_quantity: int | None = Field(None, ge=0)
    response_helper_id: str | None = None

    @classmethod
    def create(
        cls,
        job_id: UUID,
        request_type: RequestType,
        description: str,
        actor: Actor,
        photo_url: str | None = None,
        now: datetime | None = None,
    ) -> "JobRequest":
        now = now or utcnow()
        description = BusinessRuleValidators.require_text("description", description)
        request = cls(
            job_id=job_id,
            request_type=RequestType(request_type),
            requested_by_id=actor.id,
            description=description,
            photo_url=photo_url,
            created_at=now,
        )
        request.add_domain_event(
            RequestCreated(
                aggregate_id=request.id,
                job_id=job_id,
                actor_id=actor.id,
                occurred_at=now,
                request_id=request.id,
                request_type=request.request_type,
                description=description,
            )
        )
        return request

    @property
    def approver_roles(self) -> tuple[UserRole, ...]:
        return APPROVER_ROLES[self.request_type]

    def update(
        self,
        actor: Actor,
        description: str | None = None,
        photo_url: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """
        Edit a pending request.

        Raises:
            AuthorizationError: If the actor is not the requester or the
                request is already resolved
        """
        if actor.id != self.requested_by_id:
            raise AuthorizationError(
                "Only the requester may edit this request", actor_id=actor.id
            )
        if self.status.is_resolved:
            raise AuthorizationError(
                f"Request is {self.status.value} and can no longer be edited",
                actor_id=actor.id,
            )
        if description is not None:
            self.description = BusinessRuleValidators.require_text(
                "description", description
            )
        if photo_url is not None:
            self.photo_url = photo_url or None
        self.mark_updated(now)

    def approve(
        self,
        actor: Actor,
        notes: str | None = None,
        part_id: str | None = None,
        quantity: int | None = None,
        helper_id: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Approve the request; the caller applies the effect to the job."""
        now = now or utcnow()
        actor.require_role(self.approver_roles, f"approve {self.request_type.value} requests")
        self._require_pending()

        self.status = RequestStatus.APPROVED
        self.response_part_id = part_id
        self.response_quantity = quantity
        self.response_helper_id = helper_id
        self._resolve(actor, notes, now)

    def reject(self, actor: Actor, notes: str, now: datetime | None = None) -> None:
        notes = BusinessRuleValidators.require_text("notes", notes)
        now = now or utcnow()
        actor.require_role(self.approver_roles, f"reject {self.request_type.value} requests")
        self._require_pending()

        self.status = RequestStatus.REJECTED
        self._resolve(actor, notes, now)

    def _require_pending(self) -> None:
        if self.status.is_resolved:
            raise ConflictError(
                f"Request {self.id} is already {self.status.value}",
                {"request_id": str(self.id), "status": self.status.value},
            )

    def _resolve(self, actor: Actor, notes: str | None, now: datetime) -> None:
        self.resolved_by_id = actor.id
        self.resolved_at = now
        if notes is not None:
            self.resolution_notes = (
                DataSanitizer.sanitize_string(notes, "notes", max_length=2000) or None
            )
        self.mark_updated(now)
        self.add_domain_event(
            RequestResolved(
                aggregate_id=self.id,
                job_id=self.job_id,
                actor_id=actor.id,
                occurred_at=now,
                request_id=self.id,
                request_type=self.request_type,
                status=self.status,
                requested_by_id=self.requested_by_id,
                notes=self.resolution_notes,
            )
        )
