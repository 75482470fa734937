"""
FastAPI dependencies: the engine's services and the acting user.

The actor comes from the ``X-Actor-Id`` and ``X-Actor-Roles`` headers, set by
whatever identity provider fronts the API.
"""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Query, Request, status

from jobflow.application.services import Services
from jobflow.core.observability import set_actor_id
from jobflow.domain.jobs.value_objects import Actor, UserRole


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_actor(
    x_actor_id: Annotated[str | None, Header()] = None,
    x_actor_roles: Annotated[str, Header()] = "",
) -> Actor:
    """Build the acting user from identity headers."""
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Actor-Id header is required",
        )
    roles = [role.strip() for role in x_actor_roles.split(",") if role.strip()]
    try:
        actor = Actor.of(x_actor_id, *roles)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown role in X-Actor-Roles; expected any of "
            f"{', '.join(role.value for role in UserRole)}",
        )
    set_actor_id(actor.id)
    return actor


ServicesDep = Annotated[Services, Depends(get_services)]
CurrentActor = Annotated[Actor, Depends(get_actor)]
ExpectedVersion = Annotated[
    int | None,
    Query(ge=0, description="Job version the caller read; stale versions get 409"),
]
