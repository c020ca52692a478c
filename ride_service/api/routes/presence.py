"""
Driver presence endpoints
=========================

POST /api/v1/line/activate             -- driver goes on line at a position
POST /api/v1/line/deactivate           -- driver goes off line
POST /api/v1/rides/parking/activate    -- driver parks and becomes discoverable
POST /api/v1/rides/parking/deactivate  -- driver leaves parking mode
GET  /api/v1/rides/parking             -- passenger searches parked drivers nearby
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ride_service.api.dependencies import get_actor, get_presence
from ride_service.api.middleware import RATE_LIMIT, limiter
from ride_service.api.schemas import (
    NearbyDriverResponse,
    PositionRequest,
    PresenceResponse,
)
from ride_service.domain.access import Actor
from ride_service.domain.entities import DriverPresence, Location
from ride_service.services.presence import DriverPresenceService

router = APIRouter(tags=["presence"])


def _presence_or_offline(actor: Actor, presence: Optional[DriverPresence]):
    # a driver that was never on line is reported as off line
    if presence is None:
        return PresenceResponse(
            driver_id=actor.id, on_line=False, parking_mode=False, busy=False
        )
    return presence


@router.post("/line/activate", response_model=PresenceResponse, summary="Go on line")
@limiter.limit(RATE_LIMIT)
async def activate_line(
    request: Request,
    body: PositionRequest,
    actor: Actor = Depends(get_actor),
    presence: DriverPresenceService = Depends(get_presence),
):
    return await presence.activate_line(actor, body.to_location())


@router.post("/line/deactivate", response_model=PresenceResponse, summary="Go off line")
@limiter.limit(RATE_LIMIT)
async def deactivate_line(
    request: Request,
    actor: Actor = Depends(get_actor),
    presence: DriverPresenceService = Depends(get_presence),
):
    return _presence_or_offline(actor, await presence.deactivate_line(actor))


@router.post(
    "/rides/parking/activate",
    response_model=PresenceResponse,
    summary="Enter parking mode",
    description="The driver must be on line and not carrying a ride.",
)
@limiter.limit(RATE_LIMIT)
async def activate_parking(
    request: Request,
    body: PositionRequest,
    actor: Actor = Depends(get_actor),
    presence: DriverPresenceService = Depends(get_presence),
):
    return await presence.activate_parking(actor, body.to_location())


@router.post(
    "/rides/parking/deactivate",
    response_model=PresenceResponse,
    summary="Leave parking mode",
)
@limiter.limit(RATE_LIMIT)
async def deactivate_parking(
    request: Request,
    actor: Actor = Depends(get_actor),
    presence: DriverPresenceService = Depends(get_presence),
):
    return _presence_or_offline(actor, await presence.deactivate_parking(actor))


@router.get(
    "/rides/parking",
    response_model=list[NearbyDriverResponse],
    summary="Find parked drivers nearby",
    description="Nearest first; ties are broken by driver id.",
)
@limiter.limit(RATE_LIMIT)
async def get_nearby_parked_drivers(
    request: Request,
    latitude: float = Query(...),
    longitude: float = Query(...),
    radius: Optional[float] = Query(None, description="Search radius in km"),
    actor: Actor = Depends(get_actor),
    presence: DriverPresenceService = Depends(get_presence),
):
    return await presence.get_nearby_parked_drivers(
        actor, Location(latitude, longitude), radius
    )
