"""
Redis-backed geo index, shared by every API process.

Layout
------
* ``rides:geo:drivers`` -- hash ``driver_id -> entry JSON``; a removed
  driver keeps a tombstone holding its last version.
* ``rides:geo:parked``  -- GEO set with only parked, on-line drivers.

Writes run one Lua script that compares versions, then updates the GEO set
and the hash together, so a reader never sees one without the other.
Queries use ``GEOSEARCH`` for candidates and re-check flags and the exact
haversine distance, so results match the in-memory backend.

A rebuild pushes every snapshot row through the same script, so it merges
under the same version rule instead of replacing the keys.
"""

from __future__ import annotations

import json
import logging
from typing import Iterable, Mapping, Optional

import redis.asyncio as aioredis

from ride_service.domain.distance import validate_coordinates
from ride_service.domain.entities import Location, NearbyDriver
from ride_service.domain.errors import InvalidCoordinate
from ride_service.domain.geo_index import GeoEntry, GeoIndex, rank_nearby

logger = logging.getLogger(__name__)

ENTRIES_KEY = "rides:geo:drivers"
PARKED_KEY = "rides:geo:parked"

# Redis GEO cannot store points closer to the poles than this
MAX_GEO_LATITUDE = 85.05112878

# Redis measures with a slightly larger Earth radius; widen the candidate
# search so boundary drivers are not lost before the exact check.
SEARCH_SLACK = 1.01

_WRITE_LUA = """
local current = redis.call('HGET', KEYS[1], ARGV[1])
if current then
    local stored = cjson.decode(current)
    if tonumber(stored['version']) > tonumber(ARGV[2]) then
        return 0
    end
end
if ARGV[4] == '1' then
    redis.call('GEOADD', KEYS[2], ARGV[5], ARGV[6], ARGV[1])
else
    redis.call('ZREM', KEYS[2], ARGV[1])
end
redis.call('HSET', KEYS[1], ARGV[1], ARGV[3])
return 1
"""


def _encode(entry: GeoEntry) -> str:
    return json.dumps(
        {
            "driver_id": entry.driver_id,
            "lat": entry.location.latitude,
            "lng": entry.location.longitude,
            "parking_mode": entry.parking_mode,
            "on_line": entry.on_line,
            "version": entry.version,
        }
    )


def _tombstone(driver_id: int, version: int) -> str:
    return json.dumps({"driver_id": driver_id, "version": version, "removed": True})


def _decode(raw: str) -> Optional[GeoEntry]:
    data = json.loads(raw)
    if data.get("removed"):
        return None
    return GeoEntry(
        driver_id=int(data["driver_id"]),
        location=Location(float(data["lat"]), float(data["lng"])),
        parking_mode=bool(data["parking_mode"]),
        on_line=bool(data["on_line"]),
        version=int(data["version"]),
    )


class RedisGeoIndex(GeoIndex):
    shared = True

    def __init__(self, client: aioredis.Redis, precision: int = 4):
        self.redis = client
        self.precision = precision

    @staticmethod
    def _script_args(
        driver_id: int,
        version: int,
        payload: str,
        location: Optional[Location],
    ) -> tuple:
        geo_args = ["1", location.longitude, location.latitude] if location else ["0", 0, 0]
        return (
            _WRITE_LUA,
            2,
            ENTRIES_KEY,
            PARKED_KEY,
            str(driver_id),
            version,
            payload,
            *geo_args,
        )

    async def _write(
        self,
        driver_id: int,
        version: int,
        payload: str,
        location: Optional[Location],
    ) -> bool:
        applied = await self.redis.eval(
            *self._script_args(driver_id, version, payload, location)
        )
        if not applied:
            logger.debug("Dropped stale geo write driver=%s version=%s", driver_id, version)
        return bool(applied)

    async def upsert(
        self,
        driver_id: int,
        location: Location,
        parking_mode: bool,
        on_line: bool,
        version: int = 0,
    ) -> bool:
        validate_coordinates(location.latitude, location.longitude)
        entry = GeoEntry(driver_id, location, parking_mode, on_line, version)
        if entry.discoverable and abs(location.latitude) > MAX_GEO_LATITUDE:
            raise InvalidCoordinate(
                f"Latitude {location.latitude} cannot be stored in the shared index"
            )
        return await self._write(
            driver_id,
            version,
            _encode(entry),
            location if entry.discoverable else None,
        )

    async def remove(self, driver_id: int, version: int = 0) -> bool:
        return await self._write(driver_id, version, _tombstone(driver_id, version), None)

    async def query_nearby_parked(
        self, center: Location, radius_km: float = 5.0
    ) -> list[NearbyDriver]:
        validate_coordinates(center.latitude, center.longitude)
        if radius_km <= 0:
            return []
        members = await self.redis.geosearch(
            PARKED_KEY,
            longitude=center.longitude,
            latitude=center.latitude,
            radius=radius_km * SEARCH_SLACK,
            unit="km",
            sort="ASC",
        )
        if not members:
            return []
        raw_entries = await self.redis.hmget(ENTRIES_KEY, members)
        entries = [e for e in (_decode(r) for r in raw_entries if r) if e is not None]
        return rank_nearby(center, entries, radius_km, self.precision)

    async def rebuild(
        self,
        entries: Iterable[GeoEntry],
        removed: Optional[Mapping[int, int]] = None,
    ) -> int:
        entries = list(entries)
        removed = dict(removed or {})
        async with self.redis.pipeline(transaction=False) as pipe:
            for e in entries:
                # polar parked drivers keep their hash entry but stay out of the GEO set
                parked = e.discoverable and abs(e.location.latitude) <= MAX_GEO_LATITUDE
                pipe.eval(
                    *self._script_args(
                        e.driver_id, e.version, _encode(e), e.location if parked else None
                    )
                )
            for driver_id, version in removed.items():
                pipe.eval(
                    *self._script_args(
                        driver_id, version, _tombstone(driver_id, version), None
                    )
                )
            results = await pipe.execute()
        applied = sum(1 for r in results[: len(entries)] if r)
        logger.info(
            "Shared geo index rebuilt: %d of %d snapshot entries applied, %d removals",
            applied,
            len(entries),
            len(removed),
        )
        return applied
