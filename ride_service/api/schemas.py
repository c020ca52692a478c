"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ride_service.domain.entities import Location
from ride_service.domain.enums import PaymentType, RideStatus


# ── Requests ──────────────────────────────────────────────────────────
# Coordinate ranges are checked by the core so that a bad point is an
# ``invalid_coordinate`` error rather than a schema error.


class CoordinatesIn(BaseModel):
    lat: float
    lng: float

    def to_location(self) -> Location:
        return Location(self.lat, self.lng)


class PositionRequest(BaseModel):
    latitude: float
    longitude: float

    def to_location(self) -> Location:
        return Location(self.latitude, self.longitude)


class RideInfoRequest(BaseModel):
    origin: CoordinatesIn
    destination: CoordinatesIn


class RideCreateRequest(RideInfoRequest):
    payment_type: PaymentType = PaymentType.CASH
    origin_name: Optional[str] = Field(None, max_length=255)
    destination_name: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=120)


class QrRideRequest(RideCreateRequest):
    driver_id: int


class AcceptRideRequest(BaseModel):
    ride_id: int


class CancelRideRequest(BaseModel):
    cancellation_reason: Optional[str] = Field(None, max_length=500)


class UpdateStatusRequest(BaseModel):
    ride_id: int
    status: RideStatus
    cancellation_reason: Optional[str] = Field(None, max_length=500)


# ── Responses ─────────────────────────────────────────────────────────


class CoordinatesOut(BaseModel):
    latitude: float
    longitude: float

    model_config = {"from_attributes": True}


class RideResponse(BaseModel):
    id: int
    passenger_id: Optional[int] = None
    driver_id: Optional[int] = None
    origin: CoordinatesOut
    destination: CoordinatesOut
    origin_name: Optional[str] = None
    destination_name: Optional[str] = None
    city: Optional[str] = None
    distance: Optional[float] = None
    price: Optional[float] = None
    payment_type: PaymentType
    status: RideStatus
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RideInfoResponse(BaseModel):
    distance: float
    price: float

    model_config = {"from_attributes": True}


class NearbyDriverResponse(BaseModel):
    driver_id: int
    distance: float
    coordinates: CoordinatesOut

    model_config = {"from_attributes": True}


class PresenceResponse(BaseModel):
    driver_id: int
    on_line: bool
    parking_mode: bool
    busy: bool
    location: Optional[CoordinatesOut] = None

    model_config = {"from_attributes": True}


class DriverDetailsResponse(BaseModel):
    id: int
    name: str
    phone: Optional[str] = None
    rating: float
    review_count: int

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorBody(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    error: ErrorBody
