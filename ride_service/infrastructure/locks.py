"""
Redis-based distributed lock.

Used by the geo sync worker so that only one process rebuilds a shared
(Redis-backed) geo index at a time.  Processes using the in-memory index
each own their copy and never take it.

Implementation uses SET NX EX for acquire and a Lua script for
atomic check-and-delete on release.
"""

from __future__ import annotations

import uuid

import redis.asyncio as aioredis

_RELEASE_LUA = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class LockNotAcquired(RuntimeError):
    """Another holder owns the lock."""


class DistributedLock:
    def __init__(
        self, client: aioredis.Redis, key: str, ttl_seconds: int = 30
    ):
        self.redis = client
        self.key = f"rides:lock:{key}"
        self.ttl = ttl_seconds
        self.token = str(uuid.uuid4())

    async def acquire(self) -> bool:
        """Try to acquire. Returns True on success."""
        return bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )

    async def release(self) -> bool:
        """Release only if we still own the lock (atomic via Lua)."""
        return bool(await self.redis.eval(_RELEASE_LUA, 1, self.key, self.token))

    async def __aenter__(self):
        if not await self.acquire():
            raise LockNotAcquired(f"Could not acquire lock: {self.key}")
        return self

    async def __aexit__(self, *args):
        await self.release()
