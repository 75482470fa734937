"""The acting user, passed explicitly into every intent."""

from collections.abc import Iterable

from pydantic import Field, field_validator

from ...shared.base import ValueObject
from ...shared.exceptions import AuthorizationError
from .enums import UserRole


class Actor(ValueObject):
    """
    Identity and role set of whoever issues an intent.

    Built by the identity provider seam (HTTP headers, session, tests) and
    never read from ambient state.
    """

    id: str = Field(min_length=1)
    roles: frozenset[UserRole] = Field(default_factory=frozenset)
    name: str | None = None

    @field_validator("id")
    @classmethod
    def strip_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Actor id cannot be blank")
        return v

    def has_role(self, *roles: UserRole) -> bool:
        return any(role in self.roles for role in roles)

    def require_role(self, roles: Iterable[UserRole], action: str) -> None:
        """
        Raises:
            AuthorizationError: If the actor holds none of ``roles``
        """
        roles = tuple(roles)
        if not self.has_role(*roles):
            raise AuthorizationError(
                f"Actor {self.id} may not {action}",
                actor_id=self.id,
                required_roles=[role.value for role in roles],
            )

    @classmethod
    def of(cls, actor_id: str, *roles: UserRole | str, name: str | None = None) -> "Actor":
        return cls(id=actor_id, roles=frozenset(UserRole(r) for r in roles), name=name)


# Role groups used across the services
SUPERVISOR_ROLES = (UserRole.ADMIN, UserRole.ADMIN_SERVICE, UserRole.SUPERVISOR)
STORE_CONFIRMER_ROLES = (UserRole.ADMIN, UserRole.ADMIN_STORE)
SERVICE_CONFIRMER_ROLES = (UserRole.ADMIN, UserRole.ADMIN_SERVICE)
AMENDMENT_APPROVER_ROLES = (UserRole.ADMIN, UserRole.ADMIN_SERVICE)
