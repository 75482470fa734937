"""
Domain Exceptions

Typed errors for every per-intent outcome of the job workflow engine. Each
error carries an ``ErrorType`` discriminator so the HTTP layer (or any other
caller) can map it without string matching. None of these are fatal to the
process.
"""

from enum import Enum
from typing import Any
from uuid import UUID

DetailValue = str | int | float | bool | list[str] | None


class ErrorType(str, Enum):
    """Error type enumeration for discriminated unions."""

    VALIDATION = "validation"
    PRECONDITION = "precondition"
    INVALID_TRANSITION = "invalid_transition"
    CONFLICT = "conflict"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    REPOSITORY = "repository"


class DomainError(Exception):
    """Base class for all domain errors with type discrimination."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType,
        details: dict[str, DetailValue] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "type": self.error_type.value,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(DomainError):
    """Raised when input is malformed (negative quantity, empty reason, ...)."""

    def __init__(
        self,
        field_name: str,
        value: Any,
        message: str,
        error_code: str | None = None,
    ) -> None:
        self.field_name = field_name
        self.value = value
        self.error_code = error_code or "VALIDATION_ERROR"
        details: dict[str, DetailValue] = {
            "field": field_name,
            "value": str(value) if value is not None else None,
            "error_code": self.error_code,
        }
        super().__init__(
            f"Validation failed for field '{field_name}': {message}",
            ErrorType.VALIDATION,
            details,
        )


class PreconditionError(DomainError):
    """Raised when a transition is legal but a required condition is unmet."""

    def __init__(
        self,
        message: str,
        missing_items: list[str] | None = None,
        details: dict[str, DetailValue] | None = None,
    ) -> None:
        self.missing_items = list(missing_items or [])
        details = dict(details or {})
        if self.missing_items:
            details["missing_items"] = list(self.missing_items)
        super().__init__(message, ErrorType.PRECONDITION, details)


class InvalidTransitionError(DomainError):
    """Raised when a status change is not legal from the current state."""

    def __init__(self, from_status: Any, to_status: Any, job_id: UUID | None = None):
        self.from_status = from_status
        self.to_status = to_status
        from_value = getattr(from_status, "value", from_status)
        to_value = getattr(to_status, "value", to_status)
        super().__init__(
            f"Cannot transition job from {from_value} to {to_value}",
            ErrorType.INVALID_TRANSITION,
            {
                "from": from_value,
                "to": to_value,
                "job_id": str(job_id) if job_id else None,
            },
        )


class ConflictError(DomainError):
    """Raised on a lost concurrent write or a duplicate pending resource."""

    def __init__(self, message: str, details: dict[str, DetailValue] | None = None):
        super().__init__(message, ErrorType.CONFLICT, details)


class AuthorizationError(DomainError):
    """Raised when the acting user lacks the role or identity for an action."""

    def __init__(
        self,
        message: str,
        actor_id: str | None = None,
        required_roles: list[str] | None = None,
    ) -> None:
        self.actor_id = actor_id
        self.required_roles = list(required_roles or [])
        super().__init__(
            message,
            ErrorType.AUTHORIZATION,
            {"actor_id": actor_id, "required_roles": self.required_roles or None},
        )


class NotFoundError(DomainError):
    """Raised when a referenced record does not exist."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"{entity_type} not found: {entity_id}",
            ErrorType.NOT_FOUND,
            {"entity_type": entity_type, "entity_id": str(entity_id)},
        )


class RepositoryError(DomainError):
    """Raised when the record store fails for reasons other than a conflict."""

    def __init__(self, message: str, details: dict[str, DetailValue] | None = None):
        super().__init__(message, ErrorType.REPOSITORY, details)
