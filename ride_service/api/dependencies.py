"""FastAPI dependency injection helpers."""

from __future__ import annotations

from typing import Optional

from fastapi import Header, Request

from ride_service.api.errors import NotAuthenticated
from ride_service.domain.access import Actor
from ride_service.domain.enums import Role
from ride_service.services.container import ServiceContainer
from ride_service.services.presence import DriverPresenceService
from ride_service.services.rides import RideLifecycle


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_rides(request: Request) -> RideLifecycle:
    return get_container(request).rides


def get_presence(request: Request) -> DriverPresenceService:
    return get_container(request).presence


async def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
) -> Actor:
    """Resolve the caller from the headers set by the auth gateway."""
    if not x_actor_id or not x_actor_role:
        raise NotAuthenticated("X-Actor-Id and X-Actor-Role headers are required")
    try:
        return Actor(id=int(x_actor_id), role=Role(x_actor_role.lower()))
    except ValueError:
        raise NotAuthenticated(
            f"Unrecognised actor {x_actor_id!r} with role {x_actor_role!r}"
        ) from None
