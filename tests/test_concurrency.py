"""
Concurrency safety tests.

Demonstrates:
1. Two drivers racing to accept one ride: exactly one wins.
2. Stale writes are retried once, then surface as ``Conflict``.
3. A slow store surfaces as ``StoreTimeout``.
4. Distributed lock prevents simultaneous rebuilds of a shared index.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from ride_service.domain.enums import RideStatus
from ride_service.domain.errors import AlreadyAssigned, Conflict, StoreTimeout
from ride_service.infrastructure.locks import DistributedLock, LockNotAcquired
from ride_service.infrastructure.repositories import StaleWrite
from ride_service.infrastructure.unit_of_work import run_transaction
from ride_service.workers.geo_sync import run_sync_cycle
from tests.conftest import DESTINATION, DRIVER_A, DRIVER_B, ORIGIN, PASSENGER


class TestAcceptRace:
    @pytest.mark.asyncio
    async def test_exactly_one_driver_wins(self, lifecycle, presence_service, drivers_on_line):
        ride = await lifecycle.request_ride(PASSENGER, ORIGIN, DESTINATION)

        results = await asyncio.gather(
            lifecycle.accept_ride(DRIVER_A, ride.id),
            lifecycle.accept_ride(DRIVER_B, ride.id),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], AlreadyAssigned)

        stored = await lifecycle.get_ride_details(PASSENGER, ride.id)
        assert stored.status == RideStatus.DRIVER_ASSIGNED
        assert stored.driver_id == winners[0].driver_id

        busy = [
            (await presence_service.get_presence(d.id)).busy for d in (DRIVER_A, DRIVER_B)
        ]
        assert sorted(busy) == [False, True]


class TestRunTransaction:
    @pytest.mark.asyncio
    async def test_stale_write_retried_once(self, session_factory):
        calls = []

        async def work(session):
            calls.append(1)
            if len(calls) == 1:
                raise StaleWrite("lost the race")
            return "ok"

        result = await run_transaction(session_factory, work, timeout=1.0, op_name="test")
        assert result == "ok"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_second_stale_write_is_conflict(self, session_factory):
        async def work(session):
            raise StaleWrite("lost again")

        with pytest.raises(Conflict):
            await run_transaction(session_factory, work, timeout=1.0, op_name="test")

    @pytest.mark.asyncio
    async def test_slow_store_times_out(self, session_factory):
        async def work(session):
            await asyncio.sleep(1.0)

        with pytest.raises(StoreTimeout):
            await run_transaction(session_factory, work, timeout=0.05, op_name="test")


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_awaited_once_with(
            "rides:lock:test-key", lock.token, nx=True, ex=10
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=None)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_release_checks_token(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        await lock.acquire()
        assert await lock.release() is True

        args = mock_redis.eval.call_args.args
        assert args[1:] == (1, "rides:lock:test-key", lock.token)

    @pytest.mark.asyncio
    async def test_context_manager_acquire_fail_raises(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        with pytest.raises(LockNotAcquired, match="Could not acquire lock"):
            async with lock:
                pass


class TestGeoSyncCycle:
    @pytest.mark.asyncio
    async def test_local_index_rebuilt_without_lock(self):
        container = MagicMock()
        container.geo_index.shared = False
        container.presence.rebuild_index = AsyncMock(return_value=3)

        assert await run_sync_cycle(container) == 3
        container.redis.set.assert_not_called()

    @pytest.mark.asyncio
    async def test_shared_index_skipped_when_lock_held(self):
        container = MagicMock()
        container.geo_index.shared = True
        container.redis = AsyncMock()
        container.redis.set = AsyncMock(return_value=False)
        container.presence.rebuild_index = AsyncMock(return_value=3)

        assert await run_sync_cycle(container) is None
        container.presence.rebuild_index.assert_not_called()

    @pytest.mark.asyncio
    async def test_shared_index_rebuilt_under_lock(self):
        container = MagicMock()
        container.geo_index.shared = True
        container.redis = AsyncMock()
        container.redis.set = AsyncMock(return_value=True)
        container.redis.eval = AsyncMock(return_value=1)
        container.presence.rebuild_index = AsyncMock(return_value=5)

        assert await run_sync_cycle(container) == 5
        container.redis.eval.assert_awaited_once()
