"""
Driver and passenger lookups
============================

GET /api/v1/ride/{ride_id}        -- ride details (alias of /rides/{ride_id})
GET /api/v1/driver/rides/my       -- the calling driver's rides
GET /api/v1/user/rides/my         -- the calling passenger's rides
GET /api/v1/driver/{driver_id}    -- driver profile
GET /api/v1/driver/{driver_id}/rides -- a driver's rides (staff)
GET /api/v1/user/{user_id}/rides  -- a passenger's rides (staff)

Ride lists hold active rides unless ``include_history`` is set, and an
empty list is answered with 404.
"""

from fastapi import APIRouter, Depends, Query, Request

from ride_service.api.dependencies import get_actor, get_rides
from ride_service.api.middleware import RATE_LIMIT, limiter
from ride_service.api.schemas import DriverDetailsResponse, RideResponse
from ride_service.domain.access import Actor
from ride_service.domain.entities import Ride
from ride_service.domain.errors import NotFound
from ride_service.services.rides import RideLifecycle

router = APIRouter(tags=["accounts"])


def _non_empty(rides: list[Ride]) -> list[Ride]:
    if not rides:
        raise NotFound("No rides found")
    return rides


@router.get("/ride/{ride_id}", response_model=RideResponse, summary="Get ride details")
@limiter.limit(RATE_LIMIT)
async def get_ride(
    request: Request,
    ride_id: int,
    actor: Actor = Depends(get_actor),
    rides: RideLifecycle = Depends(get_rides),
):
    return await rides.get_ride_details(actor, ride_id)


@router.get("/driver/rides/my", response_model=list[RideResponse], summary="My rides as a driver")
@limiter.limit(RATE_LIMIT)
async def get_my_driver_rides(
    request: Request,
    include_history: bool = Query(False),
    actor: Actor = Depends(get_actor),
    rides: RideLifecycle = Depends(get_rides),
):
    return _non_empty(await rides.get_driver_rides(actor, actor.id, include_history))


@router.get("/user/rides/my", response_model=list[RideResponse], summary="My rides as a passenger")
@limiter.limit(RATE_LIMIT)
async def get_my_user_rides(
    request: Request,
    include_history: bool = Query(False),
    actor: Actor = Depends(get_actor),
    rides: RideLifecycle = Depends(get_rides),
):
    return _non_empty(await rides.get_user_rides(actor, actor.id, include_history))


@router.get(
    "/driver/{driver_id}",
    response_model=DriverDetailsResponse,
    summary="Get a driver's profile",
)
@limiter.limit(RATE_LIMIT)
async def get_driver_details(
    request: Request,
    driver_id: int,
    actor: Actor = Depends(get_actor),
    rides: RideLifecycle = Depends(get_rides),
):
    return await rides.get_driver_details(driver_id)


@router.get(
    "/driver/{driver_id}/rides",
    response_model=list[RideResponse],
    summary="A driver's rides",
)
@limiter.limit(RATE_LIMIT)
async def get_driver_rides(
    request: Request,
    driver_id: int,
    include_history: bool = Query(False),
    actor: Actor = Depends(get_actor),
    rides: RideLifecycle = Depends(get_rides),
):
    return _non_empty(await rides.get_driver_rides(actor, driver_id, include_history))


@router.get(
    "/user/{user_id}/rides",
    response_model=list[RideResponse],
    summary="A passenger's rides",
)
@limiter.limit(RATE_LIMIT)
async def get_user_rides(
    request: Request,
    user_id: int,
    include_history: bool = Query(False),
    actor: Actor = Depends(get_actor),
    rides: RideLifecycle = Depends(get_rides),
):
    return _non_empty(await rides.get_user_rides(actor, user_id, include_history))
