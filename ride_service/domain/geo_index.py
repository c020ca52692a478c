"""
Driver Geo Index
================

A derived, rebuildable cache of driver presence used only for proximity
search.  The presence table stays the system of record.

1. **Spatial Binning** -- H3 hexagons at resolution 7 (~1.2 km edge).
   Each entry lives in the bucket of the cell containing its location.
2. **Ring Walk** -- a radius query expands ``grid_disk`` rings around the
   centre cell until they cover the radius, then checks the exact
   haversine distance of every candidate.
3. **Versioned Writes** -- every write carries the presence row version;
   a write older than what the index has seen is dropped, so updates
   arriving out of order cannot resurrect stale state.
4. **Rebuild Merge** -- a rebuild is a versioned write of every row in a
   store snapshot.  Anything the index saw at a newer version while the
   snapshot was being read survives, and drivers the snapshot does not
   mention are left alone.

Complexity
----------
* upsert / remove:  O(b)          -- b = entries in the touched bucket
* query:            O(k^2 + m)    -- k rings, m candidates in those rings
* Fallback:         O(N)          -- when k exceeds ``max_rings``

Readers never take the write lock: entries are immutable and buckets are
replaced, never mutated, so a query sees either the old or the new entry.
"""

from __future__ import annotations

import logging
import math
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

import h3

from .distance import haversine_km, validate_coordinates
from .entities import Location, NearbyDriver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeoEntry:
    driver_id: int
    location: Location
    parking_mode: bool
    on_line: bool
    version: int = 0

    @property
    def discoverable(self) -> bool:
        return self.parking_mode and self.on_line


def rank_nearby(
    center: Location,
    entries: Iterable[GeoEntry],
    radius_km: float,
    precision: int = 4,
) -> list[NearbyDriver]:
    """Keep discoverable entries within *radius_km*, nearest first."""
    found: list[NearbyDriver] = []
    for entry in entries:
        if not entry.discoverable:
            continue
        distance = haversine_km(
            center.latitude,
            center.longitude,
            entry.location.latitude,
            entry.location.longitude,
        )
        if distance > radius_km:
            continue
        found.append(
            NearbyDriver(
                driver_id=entry.driver_id,
                distance=round(distance, precision),
                coordinates=entry.location,
            )
        )
    found.sort(key=lambda d: (d.distance, d.driver_id))
    return found


class GeoIndex(ABC):
    """Backend-neutral interface used by the presence service."""

    # True when several processes read and write the same index
    shared: bool = False

    @abstractmethod
    async def upsert(
        self,
        driver_id: int,
        location: Location,
        parking_mode: bool,
        on_line: bool,
        version: int = 0,
    ) -> bool: ...

    @abstractmethod
    async def remove(self, driver_id: int, version: int = 0) -> bool: ...

    @abstractmethod
    async def query_nearby_parked(
        self, center: Location, radius_km: float = 5.0
    ) -> list[NearbyDriver]: ...

    @abstractmethod
    async def rebuild(
        self,
        entries: Iterable[GeoEntry],
        removed: Optional[Mapping[int, int]] = None,
    ) -> int:
        """Merge a snapshot: *entries* for on-line drivers, *removed* mapping
        every other known driver to its row version.  Returns the number of
        entries applied."""


class InMemoryGeoIndex(GeoIndex):
    def __init__(self, resolution: int = 7, max_rings: int = 50, precision: int = 4):
        self.resolution = resolution
        self.max_rings = max_rings
        self.precision = precision
        self._edge_km = h3.average_hexagon_edge_length(resolution, unit="km")
        self._lock = threading.Lock()
        self._entries: dict[int, GeoEntry] = {}
        self._cells: dict[str, frozenset[int]] = {}
        self._entry_cell: dict[int, str] = {}
        # highest version applied per driver, removals included
        self._versions: dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, driver_id: int) -> Optional[GeoEntry]:
        return self._entries.get(driver_id)

    def _cell_of(self, location: Location) -> str:
        return h3.latlng_to_cell(location.latitude, location.longitude, self.resolution)

    def _is_stale(self, driver_id: int, version: int) -> bool:
        return version < self._versions.get(driver_id, 0)

    def _unbucket(self, driver_id: int) -> None:
        cell = self._entry_cell.pop(driver_id, None)
        if cell is None:
            return
        remaining = self._cells.get(cell, frozenset()) - {driver_id}
        if remaining:
            self._cells[cell] = remaining
        else:
            self._cells.pop(cell, None)

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
        cell = self._cell_of(location)
        with self._lock:
            if self._is_stale(driver_id, version):
                logger.debug(
                    "Dropped stale geo upsert driver=%s version=%s", driver_id, version
                )
                return False
            self._versions[driver_id] = version
            if self._entry_cell.get(driver_id) != cell:
                self._unbucket(driver_id)
                self._cells[cell] = self._cells.get(cell, frozenset()) | {driver_id}
                self._entry_cell[driver_id] = cell
            self._entries[driver_id] = entry
        return True

    async def remove(self, driver_id: int, version: int = 0) -> bool:
        with self._lock:
            if self._is_stale(driver_id, version):
                return False
            self._versions[driver_id] = version
            self._entries.pop(driver_id, None)
            self._unbucket(driver_id)
        return True

    def _rings_for(self, radius_km: float) -> int:
        # +3 absorbs cell size distortion and the offset of both points
        # from their cell centres
        return math.ceil(radius_km / self._edge_km) + 3

    def _candidates(self, center: Location, radius_km: float) -> Iterable[GeoEntry]:
        rings = self._rings_for(radius_km)
        if rings > self.max_rings:
            return list(self._entries.values())
        seen: dict[int, GeoEntry] = {}
        for cell in h3.grid_disk(self._cell_of(center), rings):
            for driver_id in self._cells.get(cell, ()):
                entry = self._entries.get(driver_id)
                if entry is not None:
                    seen[driver_id] = entry
        return seen.values()

    async def query_nearby_parked(
        self, center: Location, radius_km: float = 5.0
    ) -> list[NearbyDriver]:
        validate_coordinates(center.latitude, center.longitude)
        if radius_km <= 0:
            return []
        return rank_nearby(
            center, self._candidates(center, radius_km), radius_km, self.precision
        )

    async def rebuild(
        self,
        entries: Iterable[GeoEntry],
        removed: Optional[Mapping[int, int]] = None,
    ) -> int:
        snapshot = {entry.driver_id: entry for entry in entries}
        cells = {d: self._cell_of(e.location) for d, e in snapshot.items()}
        with self._lock:
            new_entries = dict(self._entries)
            new_entry_cell = dict(self._entry_cell)
            new_versions = dict(self._versions)
            applied = 0
            for driver_id, entry in snapshot.items():
                if entry.version < new_versions.get(driver_id, 0):
                    continue
                new_entries[driver_id] = entry
                new_entry_cell[driver_id] = cells[driver_id]
                new_versions[driver_id] = entry.version
                applied += 1
            for driver_id, version in (removed or {}).items():
                if version < new_versions.get(driver_id, 0):
                    continue
                new_entries.pop(driver_id, None)
                new_entry_cell.pop(driver_id, None)
                new_versions[driver_id] = version

            new_cells: dict[str, set[int]] = {}
            for driver_id, cell in new_entry_cell.items():
                new_cells.setdefault(cell, set()).add(driver_id)
            self._entries = new_entries
            self._cells = {c: frozenset(ids) for c, ids in new_cells.items()}
            self._entry_cell = new_entry_cell
            self._versions = new_versions
        logger.info(
            "Geo index rebuilt: %d of %d snapshot entries applied, %d live",
            applied,
            len(snapshot),
            len(new_entries),
        )
        return applied
