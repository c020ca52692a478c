"""
Background Geo Index Sync Worker
================================

Runs every ``GEO_SYNC_INTERVAL_SECONDS`` (default 60 s).

The geo index is a cache of the ``driver_presence`` table.  Services push
every committed change into it, but a crash between commit and push, or a
Redis outage, leaves it behind.  Each cycle rebuilds the index from the
table so drift never outlives one interval.

Concurrency safety
------------------
* A **shared** (Redis) index is rebuilt by one process at a time under a
  Redis distributed lock; the others skip the cycle.
* An **in-memory** index belongs to its process and is rebuilt without a
  lock.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ride_service.infrastructure.locks import DistributedLock, LockNotAcquired
from ride_service.services.container import ServiceContainer

logger = logging.getLogger(__name__)

REBUILD_LOCK = "geo_index_rebuild"
# a crashed holder's lock expires after this
LOCK_TTL_SECONDS = 60

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_sync_loop(container: ServiceContainer, interval_seconds: int) -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop(container, interval_seconds))
    logger.info("Geo sync worker started (interval=%ds)", interval_seconds)


async def stop_sync_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Geo sync worker stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop(container: ServiceContainer, interval_seconds: int) -> None:
    """Periodic loop: run a sync cycle then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_sync_cycle(container)
        except Exception:
            logger.exception("Unhandled error in geo sync cycle")
        # Wait for the interval or until stop is signalled
        try:
            await asyncio.wait_for(_stop_event.wait(), timeout=interval_seconds)
            break
        except asyncio.TimeoutError:
            pass  # next cycle


async def run_sync_cycle(container: ServiceContainer) -> Optional[int]:
    """Rebuild the geo index once.  Returns the entry count, or None if skipped."""
    if not container.geo_index.shared:
        return await container.presence.rebuild_index()

    lock = DistributedLock(container.redis, REBUILD_LOCK, ttl_seconds=LOCK_TTL_SECONDS)
    try:
        async with lock:
            return await container.presence.rebuild_index()
    except LockNotAcquired:
        logger.debug("Rebuild lock held by another process, skipping cycle")
        return None
