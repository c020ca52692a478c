"""
FastAPI application factory.

* Registers routes for rides, presence, accounts and admin.
* Builds the service container, warms the geo index and starts / stops
  the background sync worker via lifespan events.
* Maps typed core failures to JSON error bodies.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from ride_service.api.errors import register_error_handlers
from ride_service.api.middleware import limiter
from ride_service.api.routes import accounts, admin, presence, rides
from ride_service.config import settings
from ride_service.services.container import build_container
from ride_service.workers import geo_sync as _geo_sync

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build services and warm the geo index on startup; tear down on shutdown."""
    container = getattr(app.state, "container", None)
    owns_container = container is None
    if owns_container:
        container = build_container(settings)
        app.state.container = container
    try:
        await _geo_sync.run_sync_cycle(container)
    except Exception:
        # the worker retries on its next cycle
        logger.exception("Initial geo index build failed")
    await _geo_sync.start_sync_loop(container, settings.geo_sync_interval_seconds)
    yield
    await _geo_sync.stop_sync_loop()
    if owns_container:
        await container.close()


def create_app() -> FastAPI:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = FastAPI(
        title="Ride Dispatch API",
        description=(
            "Ride lifecycle and driver presence for a ride-hailing backend. "
            "Drivers go on line and park; passengers find parked drivers "
            "nearby, request rides or board a driver by QR code."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    register_error_handlers(app)

    # Routers; presence goes first so /rides/parking is not read as a ride id
    app.include_router(presence.router, prefix="/api/v1")
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(accounts.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
