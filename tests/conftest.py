"""
Shared test fixtures.

Uses a SQLite database file (via aiosqlite) under ``tmp_path`` so tests run
without Docker / PostgreSQL / Redis.  A file rather than ``:memory:`` lets
concurrent sessions open separate connections and race on the same rows.
The geo index is the in-memory backend; Redis is mocked where needed.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

from ride_service.domain.access import Actor
from ride_service.domain.entities import DriverProfile, Location
from ride_service.domain.enums import Role
from ride_service.domain.geo_index import InMemoryGeoIndex
from ride_service.domain.pricing import PricingEngine
from ride_service.infrastructure.database import (
    Base,
    build_engine,
    build_session_factory,
)
from ride_service.infrastructure.repositories import DriverProfileRepository
from ride_service.services.presence import DriverPresenceService
from ride_service.services.rides import RideLifecycle

# ── Actors ────────────────────────────────────────────────────────────

PASSENGER = Actor(id=100, role=Role.PASSENGER)
OTHER_PASSENGER = Actor(id=101, role=Role.PASSENGER)
DRIVER_A = Actor(id=1, role=Role.DRIVER)
DRIVER_B = Actor(id=2, role=Role.DRIVER)
DRIVER_C = Actor(id=3, role=Role.DRIVER)
ADMIN = Actor(id=900, role=Role.ADMIN)

# Almaty
ORIGIN = Location(43.2025, 76.8921)
DESTINATION = Location(43.20917, 76.76028)


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create tables in a fresh database file, then dispose of the engine."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'rides.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def geo_index():
    return InMemoryGeoIndex(resolution=7)


@pytest.fixture
def pricing():
    return PricingEngine(base_fare=50.0, rate_per_km=15.0)


@pytest.fixture
def presence_service(session_factory, geo_index):
    return DriverPresenceService(session_factory, geo_index, store_timeout=5.0)


@pytest.fixture
def lifecycle(session_factory, pricing, presence_service):
    return RideLifecycle(session_factory, pricing, presence_service, store_timeout=5.0)


@pytest_asyncio.fixture
async def driver_profiles(session_factory):
    """Profiles for DRIVER_A, DRIVER_B and DRIVER_C."""
    profiles = [
        DriverProfile(id=1, name="Aidar", phone="+77010000001", rating=4.9, review_count=12),
        DriverProfile(id=2, name="Dana", phone="+77010000002", rating=4.7, review_count=3),
        DriverProfile(id=3, name="Yerlan", rating=4.5),
    ]
    async with session_factory() as session:
        async with session.begin():
            repo = DriverProfileRepository(session)
            for profile in profiles:
                await repo.add(profile)
    return profiles


@pytest_asyncio.fixture
async def drivers_on_line(presence_service, driver_profiles):
    """DRIVER_A and DRIVER_B on line next to the origin."""
    await presence_service.activate_line(DRIVER_A, ORIGIN)
    await presence_service.activate_line(DRIVER_B, Location(43.2030, 76.8930))
    return [DRIVER_A, DRIVER_B]
