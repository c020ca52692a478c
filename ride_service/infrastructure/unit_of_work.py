"""
Transactional unit of work with bounded time and a single retry.

``run_transaction`` opens a session, runs *work* inside ``session.begin()``
(commit on success, rollback on error) and bounds the whole attempt with
``asyncio.wait_for``.  A ``StaleWrite`` is retried once from a fresh
session; a second one surfaces as ``Conflict`` so two writers racing on
the same key cannot livelock.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import TimeoutError as PoolTimeout
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .repositories import StaleWrite
from ride_service.domain.errors import Conflict, StoreTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ATTEMPTS = 2


async def _attempt(
    session_factory: async_sessionmaker[AsyncSession],
    work: Callable[[AsyncSession], Awaitable[T]],
) -> T:
    async with session_factory() as session:
        async with session.begin():
            return await work(session)


async def run_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    timeout: float,
    op_name: str,
) -> T:
    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            return await asyncio.wait_for(
                _attempt(session_factory, work), timeout=timeout
            )
        except StaleWrite as exc:
            logger.warning("%s: stale write on attempt %d (%s)", op_name, attempt, exc)
        except (asyncio.TimeoutError, PoolTimeout) as exc:
            logger.warning("%s: store did not answer within %.1fs", op_name, timeout)
            raise StoreTimeout(f"{op_name} timed out; retry later") from exc
    raise Conflict(f"{op_name} kept conflicting with concurrent updates")
