"""
Ride lifecycle
==============

Every mutation follows the same shape inside one transaction:

1. Load the ride (``NotFound``).
2. Check ownership (``Unauthorized``).
3. Apply the transition on the entity (``InvalidTransition``).
4. Compare-and-swap the ride row on its version.
5. If the ride entered or left the active set, flip the driver's
   ``busy`` flag with a compare-and-swap on the presence row.

Steps 4 and 5 commit together, so a driver is never busy without a ride or
on a ride while parked.  After commit the geo index is told about the new
presence row.

Concurrency
-----------
Two drivers accepting the same ride both read version *v*; the first
``UPDATE ... WHERE version = v`` wins.  The loser's update matches no row,
its transaction rolls back and the retry re-reads the ride, now
``driver_assigned``, and fails with ``AlreadyAssigned``.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .presence import DriverPresenceService
from ride_service.domain.access import Actor, requires_role
from ride_service.domain.entities import (
    DriverPresence,
    DriverProfile,
    Location,
    NearbyDriver,
    Ride,
    RideInfo,
)
from ride_service.domain.enums import ACTIVE_STATUSES, PaymentType, RideStatus, Role
from ride_service.domain.errors import (
    AlreadyAssigned,
    InvalidRequest,
    InvalidTransition,
    NotEligible,
    NotFound,
    Unauthorized,
)
from ride_service.domain.pricing import PricingEngine
from ride_service.infrastructure.repositories import (
    DriverPresenceRepository,
    DriverProfileRepository,
    RideRepository,
)
from ride_service.infrastructure.unit_of_work import run_transaction

logger = logging.getLogger(__name__)

_ANY_ROLE = tuple(Role)


class RideLifecycle:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        pricing: PricingEngine,
        presence: DriverPresenceService,
        *,
        store_timeout: float = 5.0,
    ):
        self.session_factory = session_factory
        self.pricing = pricing
        self.presence = presence
        self.store_timeout = store_timeout

    async def _run(self, op_name: str, work):
        return await run_transaction(
            self.session_factory, work, timeout=self.store_timeout, op_name=op_name
        )

    # ── Helpers ───────────────────────────────────────────────────────

    @staticmethod
    async def _load(rides: RideRepository, ride_id: int) -> Ride:
        ride = await rides.get(ride_id)
        if ride is None:
            raise NotFound(f"Ride {ride_id} not found")
        return ride

    @staticmethod
    def _require_assigned_driver(actor: Actor, ride: Ride) -> None:
        if ride.driver_id != actor.id:
            raise Unauthorized(f"Driver {actor.id} is not assigned to ride {ride.id}")

    @staticmethod
    def _is_participant(actor: Actor, ride: Ride) -> bool:
        if actor.role == Role.PASSENGER:
            return ride.passenger_id == actor.id
        if actor.role == Role.DRIVER:
            if ride.driver_id is not None:
                return ride.driver_id == actor.id
            return ride.created_by_driver_id == actor.id
        return False

    def _can_view(self, actor: Actor, ride: Ride) -> bool:
        if actor.is_staff or self._is_participant(actor, ride):
            return True
        # a ride still open for acceptance is visible to every driver
        return (
            actor.role == Role.DRIVER
            and ride.status == RideStatus.PENDING
            and ride.driver_id is None
        )

    async def _fetch(self, op_name: str, ride_id: int) -> Ride:
        async def work(session):
            return await self._load(RideRepository(session), ride_id)

        return await self._run(op_name, work)

    async def _commit(
        self, session: AsyncSession, ride: Ride, expected_version: int, was_active: bool
    ) -> tuple[Ride, Optional[DriverPresence]]:
        ride = await RideRepository(session).save(ride, expected_version)
        if ride.driver_id is None or was_active == ride.is_active:
            return ride, None
        presences = DriverPresenceRepository(session)
        presence = await presences.get(ride.driver_id)
        if presence is None:
            return ride, None
        expected = presence.version
        if ride.is_active:
            presence.mark_busy()
        else:
            presence.release()
        return ride, await presences.save(presence, expected)

    async def _transition(
        self, op_name: str, actor: Actor, ride_id: int, target: RideStatus
    ) -> Ride:
        """Run a driver-only forward transition on an assigned ride."""

        async def work(session):
            ride = await self._load(RideRepository(session), ride_id)
            self._require_assigned_driver(actor, ride)
            expected, was_active = ride.version, ride.is_active
            ride.transition_to(target)
            return await self._commit(session, ride, expected, was_active)

        ride, presence = await self._run(op_name, work)
        logger.info("Ride %s -> %s by driver %s", ride.id, ride.status.value, actor.id)
        await self.presence.sync_index(presence)
        return ride

    def _new_ride(
        self,
        origin: Location,
        destination: Location,
        payment_type: PaymentType,
        **fields,
    ) -> Ride:
        info = self.pricing.compute_ride_info(origin, destination)
        return Ride(
            origin=origin,
            destination=destination,
            distance=info.distance,
            price=info.price,
            payment_type=PaymentType(payment_type),
            **fields,
        )

    # ── Pricing ───────────────────────────────────────────────────────

    def compute_ride_info(self, origin: Location, destination: Location) -> RideInfo:
        return self.pricing.compute_ride_info(origin, destination)

    # ── Creation ──────────────────────────────────────────────────────

    @requires_role(Role.PASSENGER)
    async def request_ride(
        self,
        actor: Actor,
        origin: Location,
        destination: Location,
        *,
        payment_type: PaymentType = PaymentType.CASH,
        origin_name: Optional[str] = None,
        destination_name: Optional[str] = None,
        city: Optional[str] = None,
    ) -> Ride:
        draft = self._new_ride(
            origin,
            destination,
            payment_type,
            passenger_id=actor.id,
            origin_name=origin_name,
            destination_name=destination_name,
            city=city,
        )

        async def work(session):
            return await RideRepository(session).add(draft)

        ride = await self._run("request_ride", work)
        logger.info(
            "Ride %s requested by passenger %s (%.4f km, price %.2f)",
            ride.id,
            actor.id,
            ride.distance,
            ride.price,
        )
        return ride

    @requires_role(Role.DRIVER)
    async def create_ride_without_passenger(
        self,
        actor: Actor,
        origin: Location,
        destination: Location,
        *,
        payment_type: PaymentType = PaymentType.CASH,
        origin_name: Optional[str] = None,
        destination_name: Optional[str] = None,
        city: Optional[str] = None,
    ) -> Ride:
        draft = self._new_ride(
            origin,
            destination,
            payment_type,
            created_by_driver_id=actor.id,
            origin_name=origin_name,
            destination_name=destination_name,
            city=city,
        )

        async def work(session):
            return await RideRepository(session).add(draft)

        ride = await self._run("create_ride_without_passenger", work)
        logger.info("Ride %s created by driver %s without passenger", ride.id, actor.id)
        return ride

    @requires_role(Role.PASSENGER)
    async def start_ride_by_qr(
        self,
        actor: Actor,
        driver_id: int,
        origin: Location,
        destination: Location,
        *,
        payment_type: PaymentType = PaymentType.CASH,
        origin_name: Optional[str] = None,
        destination_name: Optional[str] = None,
        city: Optional[str] = None,
    ) -> Ride:
        draft = self._new_ride(
            origin,
            destination,
            payment_type,
            passenger_id=actor.id,
            driver_id=driver_id,
            status=RideStatus.DRIVER_ASSIGNED,
            origin_name=origin_name,
            destination_name=destination_name,
            city=city,
        )

        async def work(session):
            if await DriverProfileRepository(session).get(driver_id) is None:
                raise NotFound(f"Driver {driver_id} not found")
            presences = DriverPresenceRepository(session)
            presence = await presences.get(driver_id)
            if presence is None or not presence.can_take_ride:
                raise NotEligible(f"Driver {driver_id} is not available for a ride")
            ride = await RideRepository(session).add(draft)
            expected = presence.version
            presence.mark_busy()
            return ride, await presences.save(presence, expected)

        ride, presence = await self._run("start_ride_by_qr", work)
        logger.info(
            "Ride %s started by QR: passenger %s with driver %s",
            ride.id,
            actor.id,
            driver_id,
        )
        await self.presence.sync_index(presence)
        return ride

    # ── Transitions ───────────────────────────────────────────────────

    @requires_role(Role.DRIVER)
    async def accept_ride(self, actor: Actor, ride_id: int) -> Ride:
        async def work(session):
            rides = RideRepository(session)
            ride = await self._load(rides, ride_id)
            if ride.status in ACTIVE_STATUSES:
                raise AlreadyAssigned(f"Ride {ride_id} already has a driver")
            if ride.status != RideStatus.PENDING:
                raise InvalidTransition(f"Cannot accept a {ride.status.value} ride")
            presence = await DriverPresenceRepository(session).get(actor.id)
            if presence is None or not presence.can_take_ride:
                raise NotEligible("Driver must be on line and free to accept a ride")
            expected = ride.version
            ride.assign_driver(actor.id)
            return await self._commit(session, ride, expected, was_active=False)

        ride, presence = await self._run("accept_ride", work)
        logger.info("Ride %s accepted by driver %s", ride.id, actor.id)
        await self.presence.sync_index(presence)
        return ride

    @requires_role(Role.DRIVER)
    async def start_ride(self, actor: Actor, ride_id: int) -> Ride:
        return await self._transition("start_ride", actor, ride_id, RideStatus.IN_PROGRESS)

    @requires_role(Role.DRIVER)
    async def onsite_ride(self, actor: Actor, ride_id: int) -> Ride:
        return await self._transition("onsite_ride", actor, ride_id, RideStatus.ON_SITE)

    @requires_role(Role.DRIVER)
    async def complete_ride(self, actor: Actor, ride_id: int) -> Ride:
        return await self._transition("complete_ride", actor, ride_id, RideStatus.COMPLETED)

    @requires_role(Role.PASSENGER, Role.DRIVER)
    async def cancel_ride(
        self, actor: Actor, ride_id: int, cancellation_reason: Optional[str]
    ) -> Ride:
        async def work(session):
            ride = await self._load(RideRepository(session), ride_id)
            if not self._is_participant(actor, ride):
                raise Unauthorized(f"Actor {actor.id} is not part of ride {ride_id}")
            expected, was_active = ride.version, ride.is_active
            ride.cancel(cancellation_reason)
            return await self._commit(session, ride, expected, was_active)

        ride, presence = await self._run("cancel_ride", work)
        logger.info(
            "Ride %s cancelled by %s %s: %s",
            ride.id,
            actor.role.value,
            actor.id,
            ride.cancellation_reason,
        )
        await self.presence.sync_index(presence)
        return ride

    @requires_role(Role.PASSENGER, Role.DRIVER)
    async def update_ride_status(
        self,
        actor: Actor,
        ride_id: int,
        status: RideStatus,
        cancellation_reason: Optional[str] = None,
    ) -> Ride:
        """Generic entry point dispatching to the matching transition.

        The ride's current status is checked before the target's own role
        rules, so a participant asking for a move the ride can no longer
        make gets ``InvalidTransition`` whoever the move would belong to.
        """
        try:
            target = RideStatus(status)
        except ValueError:
            raise InvalidRequest(f"Unknown ride status: {status}") from None

        ride = await self._fetch("update_ride_status", ride_id)
        may_accept = target == RideStatus.DRIVER_ASSIGNED and actor.role == Role.DRIVER
        if not (may_accept or self._is_participant(actor, ride)):
            raise Unauthorized(f"Actor {actor.id} is not part of ride {ride_id}")
        if not ride.can_transition_to(target):
            raise InvalidTransition(
                f"Cannot transition from {ride.status.value} to {target.value}"
            )

        if target == RideStatus.DRIVER_ASSIGNED:
            return await self.accept_ride(actor, ride_id)
        if target == RideStatus.IN_PROGRESS:
            return await self.start_ride(actor, ride_id)
        if target == RideStatus.ON_SITE:
            return await self.onsite_ride(actor, ride_id)
        if target == RideStatus.COMPLETED:
            return await self.complete_ride(actor, ride_id)
        if target == RideStatus.CANCELLED:
            return await self.cancel_ride(actor, ride_id, cancellation_reason)

    # ── Reads ─────────────────────────────────────────────────────────

    @requires_role(*_ANY_ROLE)
    async def get_ride_details(self, actor: Actor, ride_id: int) -> Ride:
        """A ride as seen by its participants, staff, or drivers while it is open."""
        ride = await self._fetch("get_ride_details", ride_id)
        if not self._can_view(actor, ride):
            raise Unauthorized(f"Actor {actor.id} may not view ride {ride_id}")
        return ride

    @requires_role(Role.DRIVER, Role.ADMIN, Role.MODERATOR)
    async def get_driver_rides(
        self, actor: Actor, driver_id: int, include_history: bool = False
    ) -> list[Ride]:
        if actor.role == Role.DRIVER and actor.id != driver_id:
            raise Unauthorized("Drivers may only list their own rides")

        async def work(session):
            return await RideRepository(session).list_for_driver(driver_id, include_history)

        return await self._run("get_driver_rides", work)

    @requires_role(Role.PASSENGER, Role.ADMIN, Role.MODERATOR)
    async def get_user_rides(
        self, actor: Actor, passenger_id: int, include_history: bool = False
    ) -> list[Ride]:
        if actor.role == Role.PASSENGER and actor.id != passenger_id:
            raise Unauthorized("Passengers may only list their own rides")

        async def work(session):
            return await RideRepository(session).list_for_passenger(
                passenger_id, include_history
            )

        return await self._run("get_user_rides", work)

    async def get_driver_details(self, driver_id: int) -> DriverProfile:
        async def work(session):
            return await DriverProfileRepository(session).get(driver_id)

        profile = await self._run("get_driver_details", work)
        if profile is None:
            raise NotFound(f"Driver {driver_id} not found")
        return profile

    @requires_role(*_ANY_ROLE)
    async def get_ride_candidates(
        self, actor: Actor, ride_id: int, radius_km: Optional[float] = None
    ) -> list[NearbyDriver]:
        """Parked drivers around a ride's origin, nearest first."""
        ride = await self.get_ride_details(actor, ride_id)
        return await self.presence.nearby_parked(ride.origin, radius_km)
