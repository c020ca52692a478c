"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and speaks in
domain entities.  Writes to existing rows are compare-and-swap on the
``version`` column; a write that matches no row raises ``StaleWrite`` and
the caller's transaction is rolled back.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import DriverPresenceModel, DriverProfileModel, RideModel, utcnow
from ride_service.domain.entities import (
    DriverPresence,
    DriverProfile,
    Location,
    Ride,
)
from ride_service.domain.enums import TERMINAL_STATUSES


class StaleWrite(Exception):
    """A versioned update lost the race to a concurrent writer."""


# ── Rides ─────────────────────────────────────────────────────────────


def _ride_from_model(m: RideModel) -> Ride:
    return Ride(
        id=m.id,
        passenger_id=m.passenger_id,
        driver_id=m.driver_id,
        created_by_driver_id=m.created_by_driver_id,
        origin=Location(m.origin_lat, m.origin_lng),
        destination=Location(m.destination_lat, m.destination_lng),
        origin_name=m.origin_name,
        destination_name=m.destination_name,
        city=m.city,
        distance=m.distance,
        price=m.price,
        payment_type=m.payment_type,
        status=m.status,
        cancellation_reason=m.cancellation_reason,
        version=m.version,
        created_at=m.created_at,
        updated_at=m.updated_at,
    )


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, ride: Ride) -> Ride:
        now = utcnow()
        model = RideModel(
            passenger_id=ride.passenger_id,
            driver_id=ride.driver_id,
            created_by_driver_id=ride.created_by_driver_id,
            origin_lat=ride.origin.latitude,
            origin_lng=ride.origin.longitude,
            destination_lat=ride.destination.latitude,
            destination_lng=ride.destination.longitude,
            origin_name=ride.origin_name,
            destination_name=ride.destination_name,
            city=ride.city,
            distance=ride.distance,
            price=ride.price,
            payment_type=ride.payment_type,
            status=ride.status,
            version=1,
            created_at=now,
            updated_at=now,
        )
        self.session.add(model)
        await self.session.flush()
        return _ride_from_model(model)

    async def get(self, ride_id: int) -> Optional[Ride]:
        model = await self.session.get(RideModel, ride_id)
        return _ride_from_model(model) if model else None

    async def save(self, ride: Ride, expected_version: int) -> Ride:
        """Persist the mutable fields if nobody wrote since *expected_version*."""
        now = utcnow()
        result = await self.session.execute(
            update(RideModel)
            .where(RideModel.id == ride.id, RideModel.version == expected_version)
            .values(
                driver_id=ride.driver_id,
                status=ride.status,
                cancellation_reason=ride.cancellation_reason,
                version=expected_version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StaleWrite(f"ride {ride.id} changed after version {expected_version}")
        ride.version = expected_version + 1
        ride.updated_at = now
        return ride

    async def _list(self, *criteria, include_history: bool) -> list[Ride]:
        query = select(RideModel).where(*criteria)
        if not include_history:
            query = query.where(RideModel.status.not_in(TERMINAL_STATUSES))
        query = query.order_by(RideModel.created_at.desc(), RideModel.id.desc())
        result = await self.session.execute(query)
        return [_ride_from_model(m) for m in result.scalars().all()]

    async def list_for_driver(
        self, driver_id: int, include_history: bool = False
    ) -> list[Ride]:
        return await self._list(
            RideModel.driver_id == driver_id, include_history=include_history
        )

    async def list_for_passenger(
        self, passenger_id: int, include_history: bool = False
    ) -> list[Ride]:
        return await self._list(
            RideModel.passenger_id == passenger_id, include_history=include_history
        )


# ── Driver presence ───────────────────────────────────────────────────


def _presence_from_model(m: DriverPresenceModel) -> DriverPresence:
    location = None
    if m.latitude is not None and m.longitude is not None:
        location = Location(m.latitude, m.longitude)
    return DriverPresence(
        driver_id=m.driver_id,
        on_line=m.on_line,
        parking_mode=m.parking_mode,
        busy=m.busy,
        location=location,
        version=m.version,
        created_at=m.created_at,
        updated_at=m.updated_at,
    )


class DriverPresenceRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, driver_id: int) -> Optional[DriverPresence]:
        model = await self.session.get(DriverPresenceModel, driver_id)
        return _presence_from_model(model) if model else None

    async def add(self, presence: DriverPresence) -> DriverPresence:
        now = utcnow()
        model = DriverPresenceModel(
            driver_id=presence.driver_id,
            on_line=presence.on_line,
            parking_mode=presence.parking_mode,
            busy=presence.busy,
            latitude=presence.location.latitude if presence.location else None,
            longitude=presence.location.longitude if presence.location else None,
            version=1,
            created_at=now,
            updated_at=now,
        )
        self.session.add(model)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            # a concurrent first activation inserted the row
            raise StaleWrite(f"presence {presence.driver_id} already exists") from exc
        return _presence_from_model(model)

    async def save(self, presence: DriverPresence, expected_version: int) -> DriverPresence:
        now = utcnow()
        location = presence.location
        result = await self.session.execute(
            update(DriverPresenceModel)
            .where(
                DriverPresenceModel.driver_id == presence.driver_id,
                DriverPresenceModel.version == expected_version,
            )
            .values(
                on_line=presence.on_line,
                parking_mode=presence.parking_mode,
                busy=presence.busy,
                latitude=location.latitude if location else None,
                longitude=location.longitude if location else None,
                version=expected_version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StaleWrite(
                f"presence {presence.driver_id} changed after version {expected_version}"
            )
        presence.version = expected_version + 1
        presence.updated_at = now
        return presence

    async def list_all(self) -> list[DriverPresence]:
        result = await self.session.execute(
            select(DriverPresenceModel).order_by(DriverPresenceModel.driver_id)
        )
        return [_presence_from_model(m) for m in result.scalars().all()]


# ── Driver profiles ───────────────────────────────────────────────────


class DriverProfileRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, driver_id: int) -> Optional[DriverProfile]:
        model = await self.session.get(DriverProfileModel, driver_id)
        if model is None:
            return None
        return DriverProfile(
            id=model.id,
            name=model.name,
            phone=model.phone,
            rating=model.rating,
            review_count=model.review_count,
        )

    async def add(self, profile: DriverProfile) -> DriverProfile:
        model = DriverProfileModel(
            id=profile.id,
            name=profile.name,
            phone=profile.phone,
            rating=profile.rating,
            review_count=profile.review_count,
        )
        self.session.add(model)
        await self.session.flush()
        return profile
