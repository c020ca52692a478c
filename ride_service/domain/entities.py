"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Ride``: enforces valid lifecycle transitions
  (PENDING -> DRIVER_ASSIGNED -> IN_PROGRESS -> ON_SITE -> COMPLETED,
  CANCELLED from any non-terminal status).
- ``DriverPresence`` guards the parking invariant: a driver is parked only
  while on line and not busy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .enums import (
    ACTIVE_STATUSES,
    RIDE_TRANSITIONS,
    TERMINAL_STATUSES,
    PaymentType,
    RideStatus,
)
from .errors import InvalidRequest, InvalidTransition, NotEligible


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class RideInfo:
    distance: float
    price: float


@dataclass(frozen=True)
class NearbyDriver:
    driver_id: int
    distance: float
    coordinates: Location


@dataclass(frozen=True)
class DriverProfile:
    id: int
    name: str
    phone: Optional[str] = None
    rating: float = 5.0
    review_count: int = 0


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Ride:
    id: Optional[int] = None
    passenger_id: Optional[int] = None
    driver_id: Optional[int] = None
    created_by_driver_id: Optional[int] = None
    origin: Location = field(default_factory=lambda: Location(0, 0))
    destination: Location = field(default_factory=lambda: Location(0, 0))
    origin_name: Optional[str] = None
    destination_name: Optional[str] = None
    city: Optional[str] = None
    distance: Optional[float] = None
    price: Optional[float] = None
    payment_type: PaymentType = PaymentType.CASH
    status: RideStatus = RideStatus.PENDING
    cancellation_reason: Optional[str] = None
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def can_transition_to(self, new_status: RideStatus) -> bool:
        return new_status in RIDE_TRANSITIONS.get(self.status, set())

    def transition_to(self, new_status: RideStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        if not self.can_transition_to(new_status):
            raise InvalidTransition(
                f"Cannot transition from {self.status.value} to {new_status.value}"
            )
        self.status = new_status

    def assign_driver(self, driver_id: int) -> None:
        self.transition_to(RideStatus.DRIVER_ASSIGNED)
        self.driver_id = driver_id

    def cancel(self, reason: Optional[str]) -> None:
        if not self.can_transition_to(RideStatus.CANCELLED):
            raise InvalidTransition(f"Cannot cancel a {self.status.value} ride")
        if not reason or not reason.strip():
            raise InvalidRequest("cancellation_reason is required")
        self.status = RideStatus.CANCELLED
        self.cancellation_reason = reason.strip()


@dataclass
class DriverPresence:
    driver_id: int
    on_line: bool = False
    parking_mode: bool = False
    busy: bool = False
    location: Optional[Location] = None
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def can_park(self) -> bool:
        return self.on_line and not self.busy

    @property
    def can_take_ride(self) -> bool:
        return self.on_line and not self.busy

    def activate_line(self, location: Location) -> None:
        self.on_line = True
        self.location = location

    def deactivate_line(self) -> None:
        self.on_line = False
        self.parking_mode = False

    def activate_parking(self, location: Location) -> None:
        if not self.on_line:
            raise NotEligible("Driver must be on line to enter parking mode")
        if self.busy:
            raise NotEligible("Driver is on a ride and cannot enter parking mode")
        self.parking_mode = True
        self.location = location

    def mark_busy(self) -> None:
        """A driver on a ride is never discoverable."""
        self.busy = True
        self.parking_mode = False

    def release(self) -> None:
        # parking_mode stays off; the driver re-activates it explicitly
        self.busy = False
