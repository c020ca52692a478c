"""
Maps typed core failures onto HTTP responses.

Every error body has the shape ``{"error": {"code": ..., "message": ...}}``.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from ride_service.domain.errors import (
    AlreadyAssigned,
    Conflict,
    InvalidCoordinate,
    InvalidRequest,
    InvalidTransition,
    NotEligible,
    NotFound,
    RideServiceError,
    StoreTimeout,
    Unauthorized,
)

logger = logging.getLogger(__name__)


class NotAuthenticated(Unauthorized):
    """Actor headers are missing or malformed."""


# Looked up along the MRO, so subclasses inherit their parent's status
STATUS_BY_ERROR: dict[type[RideServiceError], int] = {
    InvalidCoordinate: 400,
    InvalidRequest: 400,
    InvalidTransition: 400,
    AlreadyAssigned: 400,
    NotEligible: 400,
    NotAuthenticated: 401,
    Unauthorized: 403,
    NotFound: 404,
    Conflict: 409,
    StoreTimeout: 503,
}


def status_for(exc: RideServiceError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return 500


def error_body(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


async def ride_service_error_handler(request: Request, exc: RideServiceError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status, content=error_body(exc.code, exc.message))


async def store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(
        "Unexpected store failure on %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(
        status_code=500, content=error_body("internal_error", "Internal server error")
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RideServiceError, ride_service_error_handler)
    app.add_exception_handler(SQLAlchemyError, store_error_handler)
