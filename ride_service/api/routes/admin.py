"""
Admin / observability endpoints
===============================

GET  /api/v1/admin/health         -- liveness plus store and Redis reachability
POST /api/v1/admin/geo/rebuild    -- rebuild the geo index now (staff only)
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text

from ride_service.api.dependencies import get_actor, get_container
from ride_service.api.middleware import RATE_LIMIT, limiter
from ride_service.api.schemas import HealthResponse
from ride_service.domain.access import Actor, check_role
from ride_service.domain.enums import Role
from ride_service.infrastructure.redis_client import ping
from ride_service.services.container import ServiceContainer
from ride_service.workers.geo_sync import run_sync_cycle

router = APIRouter(prefix="/admin", tags=["admin"])

_STAFF = frozenset({Role.ADMIN, Role.MODERATOR})


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health(container: ServiceContainer = Depends(get_container)):
    async with container.engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    if container.redis is not None and not await ping(container.redis):
        return HealthResponse(status="degraded")
    return HealthResponse()


@router.post("/geo/rebuild", summary="Rebuild the driver geo index")
@limiter.limit(RATE_LIMIT)
async def rebuild_geo_index(
    request: Request,
    actor: Actor = Depends(get_actor),
    container: ServiceContainer = Depends(get_container),
):
    check_role(actor, _STAFF)
    entries = await run_sync_cycle(container)
    return {"rebuilt": entries is not None, "entries": entries or 0}
