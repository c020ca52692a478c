"""
Driver presence: line, parking and busy state.

The ``driver_presence`` row is the system of record.  Every committed
change is pushed to the geo index afterwards, tagged with the row version,
so the index only ever moves forward.  If the push fails the committed
operation still stands and the sync worker repairs the index.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ride_service.domain.access import Actor, requires_role
from ride_service.domain.distance import validate_coordinates
from ride_service.domain.entities import DriverPresence, Location, NearbyDriver
from ride_service.domain.enums import Role
from ride_service.domain.errors import NotEligible, NotFound
from ride_service.domain.geo_index import GeoEntry, GeoIndex
from ride_service.infrastructure.repositories import DriverPresenceRepository
from ride_service.infrastructure.unit_of_work import run_transaction

logger = logging.getLogger(__name__)


class DriverPresenceService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        geo_index: GeoIndex,
        *,
        store_timeout: float = 5.0,
        default_radius_km: float = 5.0,
    ):
        self.session_factory = session_factory
        self.geo_index = geo_index
        self.store_timeout = store_timeout
        self.default_radius_km = default_radius_km

    async def _run(self, op_name: str, work):
        return await run_transaction(
            self.session_factory, work, timeout=self.store_timeout, op_name=op_name
        )

    async def sync_index(self, presence: Optional[DriverPresence]) -> None:
        """Mirror a committed presence row into the geo index."""
        if presence is None:
            return
        try:
            if presence.on_line and presence.location is not None:
                await self.geo_index.upsert(
                    presence.driver_id,
                    presence.location,
                    parking_mode=presence.parking_mode,
                    on_line=presence.on_line,
                    version=presence.version,
                )
            else:
                await self.geo_index.remove(presence.driver_id, version=presence.version)
        except Exception:
            logger.exception(
                "Geo index update failed for driver=%s; sync worker will repair it",
                presence.driver_id,
            )

    # ── Line ──────────────────────────────────────────────────────────

    @requires_role(Role.DRIVER)
    async def activate_line(self, actor: Actor, location: Location) -> DriverPresence:
        validate_coordinates(location.latitude, location.longitude)

        async def work(session):
            repo = DriverPresenceRepository(session)
            presence = await repo.get(actor.id)
            if presence is None:
                created = DriverPresence(driver_id=actor.id, on_line=True, location=location)
                return await repo.add(created), True
            if presence.on_line and presence.location == location:
                return presence, False
            expected = presence.version
            presence.activate_line(location)
            return await repo.save(presence, expected), True

        presence, changed = await self._run("activate_line", work)
        if changed:
            logger.info(
                "Driver %s on line at (%s, %s)",
                actor.id,
                location.latitude,
                location.longitude,
            )
        await self.sync_index(presence)
        return presence

    @requires_role(Role.DRIVER)
    async def deactivate_line(self, actor: Actor) -> Optional[DriverPresence]:
        async def work(session):
            repo = DriverPresenceRepository(session)
            presence = await repo.get(actor.id)
            if presence is None or not presence.on_line:
                return presence, False
            expected = presence.version
            presence.deactivate_line()
            return await repo.save(presence, expected), True

        presence, changed = await self._run("deactivate_line", work)
        if changed:
            logger.info("Driver %s off line", actor.id)
        else:
            logger.debug("Driver %s already off line", actor.id)
        await self.sync_index(presence)
        return presence

    # ── Parking ───────────────────────────────────────────────────────

    @requires_role(Role.DRIVER)
    async def activate_parking(self, actor: Actor, location: Location) -> DriverPresence:
        validate_coordinates(location.latitude, location.longitude)

        async def work(session):
            repo = DriverPresenceRepository(session)
            presence = await repo.get(actor.id)
            if presence is None:
                raise NotEligible("Driver must be on line to enter parking mode")
            if presence.parking_mode and presence.location == location:
                return presence, False
            expected = presence.version
            presence.activate_parking(location)
            return await repo.save(presence, expected), True

        presence, changed = await self._run("activate_parking", work)
        if changed:
            logger.info("Driver %s parked", actor.id)
        await self.sync_index(presence)
        return presence

    @requires_role(Role.DRIVER)
    async def deactivate_parking(self, actor: Actor) -> Optional[DriverPresence]:
        async def work(session):
            repo = DriverPresenceRepository(session)
            presence = await repo.get(actor.id)
            if presence is None or not presence.parking_mode:
                return presence, False
            expected = presence.version
            presence.parking_mode = False
            return await repo.save(presence, expected), True

        presence, changed = await self._run("deactivate_parking", work)
        if changed:
            logger.info("Driver %s left parking mode", actor.id)
        await self.sync_index(presence)
        return presence

    # ── Reads ─────────────────────────────────────────────────────────

    async def get_presence(self, driver_id: int) -> DriverPresence:
        async def work(session):
            return await DriverPresenceRepository(session).get(driver_id)

        presence = await self._run("get_presence", work)
        if presence is None:
            raise NotFound(f"Driver {driver_id} has never been on line")
        return presence

    async def nearby_parked(
        self, center: Location, radius_km: Optional[float] = None
    ) -> list[NearbyDriver]:
        radius = self.default_radius_km if radius_km is None else radius_km
        return await self.geo_index.query_nearby_parked(center, radius)

    @requires_role(Role.PASSENGER)
    async def get_nearby_parked_drivers(
        self, actor: Actor, center: Location, radius_km: Optional[float] = None
    ) -> list[NearbyDriver]:
        return await self.nearby_parked(center, radius_km)

    # ── Index maintenance ─────────────────────────────────────────────

    async def rebuild_index(self) -> int:
        """Merge the presence table into the geo index.

        On-line drivers become entries and every other row a versioned
        removal, so the index drops drivers that went off line without it
        hearing about it, while writes newer than this read are kept.
        """

        async def work(session):
            return await DriverPresenceRepository(session).list_all()

        presences = await self._run("rebuild_index", work)
        entries = [
            GeoEntry(
                driver_id=p.driver_id,
                location=p.location,
                parking_mode=p.parking_mode,
                on_line=p.on_line,
                version=p.version,
            )
            for p in presences
            if p.on_line and p.location is not None
        ]
        listed = {e.driver_id for e in entries}
        removed = {p.driver_id: p.version for p in presences if p.driver_id not in listed}
        return await self.geo_index.rebuild(entries, removed)
