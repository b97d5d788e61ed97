"""
Shared API Dependencies
=======================

FastAPI dependencies used by every router: the service container, the
calling actor and the cron secret check.
"""

import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from campusdesk.config import Role
from campusdesk.tickets.domain.entities import Actor


def get_container(request: Request):
    """
    Services built at startup.

    When the lifespan did not run (serverless adapter with lifespan off)
    the container is built on first use.
    """
    container = getattr(request.app.state, "container", None)
    if container is None:
        from campusdesk.bootstrap import build_container
        from campusdesk.config import get_settings

        settings = getattr(request.app.state, "settings", None) or get_settings()
        container = build_container(settings)
        request.app.state.container = container
    return container


def get_actor(
    x_actor_id: Optional[str] = Header(None, description="Caller ID from the identity service"),
    x_actor_role: Optional[str] = Header(None, description="Caller role from the identity service"),
) -> Actor:
    """The identity collaborator sets these headers; they are trusted as-is."""
    if not x_actor_id or not x_actor_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Actor-Id and X-Actor-Role headers are required"
        )
    try:
        role = Role(x_actor_role.strip().lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown role '{x_actor_role}'"
        )
    return Actor(id=x_actor_id.strip(), role=role)


def verify_cron_secret(
    authorization: Optional[str] = Header(None),
    container=Depends(get_container),
) -> None:
    """Require ``Authorization: Bearer <CRON_SECRET>`` when a secret is configured."""
    expected = container.settings.cron_secret
    if not expected:
        return
    if not authorization or not secrets.compare_digest(authorization, f"Bearer {expected}"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
