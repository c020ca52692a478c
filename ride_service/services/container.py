"""Wires settings into the store, geo index and services."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncEngine

from .presence import DriverPresenceService
from .rides import RideLifecycle
from ride_service.config import Settings
from ride_service.domain.geo_index import GeoIndex, InMemoryGeoIndex
from ride_service.domain.pricing import PricingEngine
from ride_service.infrastructure.database import build_engine, build_session_factory
from ride_service.infrastructure.redis_client import build_redis
from ride_service.infrastructure.redis_geo_index import RedisGeoIndex

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    engine: AsyncEngine
    geo_index: GeoIndex
    presence: DriverPresenceService
    rides: RideLifecycle
    redis: Optional[aioredis.Redis] = None

    async def close(self) -> None:
        if self.redis is not None:
            await self.redis.aclose()
        await self.engine.dispose()


def build_geo_index(settings: Settings, redis: Optional[aioredis.Redis]) -> GeoIndex:
    if settings.geo_index_backend == "redis":
        if redis is None:
            raise ValueError("The redis geo index backend needs a Redis client")
        return RedisGeoIndex(redis, precision=settings.distance_precision)
    if settings.geo_index_backend != "memory":
        raise ValueError(f"Unknown geo index backend: {settings.geo_index_backend}")
    return InMemoryGeoIndex(
        resolution=settings.h3_resolution,
        max_rings=settings.geo_max_rings,
        precision=settings.distance_precision,
    )


def build_container(settings: Settings, redis: Optional[aioredis.Redis] = None) -> ServiceContainer:
    engine = build_engine(settings.database_url, pool_timeout=settings.store_timeout_seconds)
    session_factory = build_session_factory(engine)
    if redis is None and settings.geo_index_backend == "redis":
        redis = build_redis(settings.redis_url)

    geo_index = build_geo_index(settings, redis)
    pricing = PricingEngine(
        base_fare=settings.base_fare,
        rate_per_km=settings.rate_per_km,
        precision=settings.distance_precision,
    )
    presence = DriverPresenceService(
        session_factory,
        geo_index,
        store_timeout=settings.store_timeout_seconds,
        default_radius_km=settings.default_search_radius_km,
    )
    rides = RideLifecycle(
        session_factory,
        pricing,
        presence,
        store_timeout=settings.store_timeout_seconds,
    )
    logger.info("Services built with %s geo index", settings.geo_index_backend)
    return ServiceContainer(
        engine=engine, geo_index=geo_index, presence=presence, rides=rides, redis=redis
    )
