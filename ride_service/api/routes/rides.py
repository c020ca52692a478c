"""
Ride endpoints
==============

POST /api/v1/rides/request              -- passenger requests a ride (201)
POST /api/v1/rides/without-passenger    -- driver opens a ride with no passenger (201)
POST /api/v1/rides/start-by-qr          -- passenger boards a scanned driver (201)
POST /api/v1/rides/accept               -- driver takes a pending ride
POST /api/v1/rides/{ride_id}/start      -- assigned driver starts the trip
POST /api/v1/rides/{ride_id}/onsite     -- assigned driver is at the pickup
POST /api/v1/rides/{ride_id}/complete   -- assigned driver finishes the trip
POST /api/v1/rides/{ride_id}/cancel     -- participant cancels with a reason
PUT  /api/v1/rides/update-status        -- generic status change
POST /api/v1/rides/price                -- distance and price estimate
GET  /api/v1/rides/{ride_id}            -- ride details
GET  /api/v1/rides/{ride_id}/candidates -- parked drivers near the origin
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ride_service.api.dependencies import get_actor, get_rides
from ride_service.api.middleware import RATE_LIMIT, limiter
from ride_service.api.schemas import (
    AcceptRideRequest,
    CancelRideRequest,
    NearbyDriverResponse,
    QrRideRequest,
    RideCreateRequest,
    RideInfoRequest,
    RideInfoResponse,
    RideResponse,
    UpdateStatusRequest,
)
from ride_service.domain.access import Actor
from ride_service.services.rides import RideLifecycle

router = APIRouter(prefix="/rides", tags=["rides"])


# ── Creation ──────────────────────────────────────────────────────────


@router.post(
    "/request",
    status_code=201,
    response_model=RideResponse,
    summary="Request a ride as a passenger",
)
@limiter.limit(RATE_LIMIT)
async def request_ride(
    request: Request,
    body: RideCreateRequest,
    actor: Actor = Depends(get_actor),
    rides: RideLifecycle = Depends(get_rides),
):
    return await rides.request_ride(
        actor,
        body.origin.to_location(),
        body.destination.to_location(),
        payment_type=body.payment_type,
        origin_name=body.origin_name,
        destination_name=body.destination_name,
        city=body.city,
    )


@router.post(
    "/without-passenger",
    status_code=201,
    response_model=RideResponse,
    summary="Open a ride as a driver, without a passenger",
)
@limiter.limit(RATE_LIMIT)
async def create_ride_without_passenger(
    request: Request,
    body: RideCreateRequest,
    actor: Actor = Depends(get_actor),
    rides: RideLifecycle = Depends(get_rides),
):
    return await rides.create_ride_without_passenger(
        actor,
        body.origin.to_location(),
        body.destination.to_location(),
        payment_type=body.payment_type,
        origin_name=body.origin_name,
        destination_name=body.destination_name,
        city=body.city,
    )


@router.post(
    "/start-by-qr",
    status_code=201,
    response_model=RideResponse,
    summary="Board a driver directly by scanning their QR code",
    description=(
        "Creates the ride already assigned to the scanned driver, who must "
        "be on line and free."
    ),
)
@limiter.limit(RATE_LIMIT)
async def start_ride_by_qr(
    request: Request,
    body: QrRideRequest,
    actor: Actor = Depends(get_actor),
    rides: RideLifecycle = Depends(get_rides),
):
    return await rides.start_ride_by_qr(
        actor,
        body.driver_id,
        body.origin.to_location(),
        body.destination.to_location(),
        payment_type=body.payment_type,
        origin_name=body.origin_name,
        destination_name=body.destination_name,
        city=body.city,
    )


@router.post("/price", response_model=RideInfoResponse, summary="Estimate distance and price")
@limiter.limit(RATE_LIMIT)
async def compute_ride_info(
    request: Request,
    body: RideInfoRequest,
    actor: Actor = Depends(get_actor),
    rides: RideLifecycle = Depends(get_rides),
):
    return rides.compute_ride_info(body.origin.to_location(), body.destination.to_location())


# ── Transitions ───────────────────────────────────────────────────────


@router.post(
    "/accept",
    response_model=RideResponse,
    summary="Accept a pending ride",
    description="Exactly one of several drivers racing for the same ride wins.",
)
@limiter.limit(RATE_LIMIT)
async def accept_ride(
    request: Request,
    body: AcceptRideRequest,
    actor: Actor = Depends(get_actor),
    rides: RideLifecycle = Depends(get_rides),
):
    return await rides.accept_ride(actor, body.ride_id)


@router.put("/update-status", response_model=RideResponse, summary="Change a ride's status")
@limiter.limit(RATE_LIMIT)
async def update_ride_status(
    request: Request,
    body: UpdateStatusRequest,
    actor: Actor = Depends(get_actor),
    rides: RideLifecycle = Depends(get_rides),
):
    return await rides.update_ride_status(
        actor, body.ride_id, body.status, body.cancellation_reason
    )


@router.post("/{ride_id}/start", response_model=RideResponse, summary="Start the trip")
@limiter.limit(RATE_LIMIT)
async def start_ride(
    request: Request,
    ride_id: int,
    actor: Actor = Depends(get_actor),
    rides: RideLifecycle = Depends(get_rides),
):
    return await rides.start_ride(actor, ride_id)


@router.post("/{ride_id}/onsite", response_model=RideResponse, summary="Driver is on site")
@limiter.limit(RATE_LIMIT)
async def onsite_ride(
    request: Request,
    ride_id: int,
    actor: Actor = Depends(get_actor),
    rides: RideLifecycle = Depends(get_rides),
):
    return await rides.onsite_ride(actor, ride_id)


@router.post("/{ride_id}/complete", response_model=RideResponse, summary="Complete the trip")
@limiter.limit(RATE_LIMIT)
async def complete_ride(
    request: Request,
    ride_id: int,
    actor: Actor = Depends(get_actor),
    rides: RideLifecycle = Depends(get_rides),
):
    return await rides.complete_ride(actor, ride_id)


@router.post(
    "/{ride_id}/cancel",
    response_model=RideResponse,
    summary="Cancel a ride",
    description="Any non-terminal ride can be cancelled; a reason is required.",
)
@limiter.limit(RATE_LIMIT)
async def cancel_ride(
    request: Request,
    ride_id: int,
    body: CancelRideRequest,
    actor: Actor = Depends(get_actor),
    rides: RideLifecycle = Depends(get_rides),
):
    return await rides.cancel_ride(actor, ride_id, body.cancellation_reason)


# ── Reads ─────────────────────────────────────────────────────────────


@router.get("/{ride_id}", response_model=RideResponse, summary="Get ride details")
@limiter.limit(RATE_LIMIT)
async def get_ride(
    request: Request,
    ride_id: int,
    actor: Actor = Depends(get_actor),
    rides: RideLifecycle = Depends(get_rides),
):
    return await rides.get_ride_details(actor, ride_id)


@router.get(
    "/{ride_id}/candidates",
    response_model=list[NearbyDriverResponse],
    summary="Parked drivers around the ride's origin",
)
@limiter.limit(RATE_LIMIT)
async def get_ride_candidates(
    request: Request,
    ride_id: int,
    radius: Optional[float] = Query(None, description="Search radius in km"),
    actor: Actor = Depends(get_actor),
    rides: RideLifecycle = Depends(get_rides),
):
    return await rides.get_ride_candidates(actor, ride_id, radius)
