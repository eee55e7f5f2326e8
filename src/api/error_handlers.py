# This file defines consistent API error payloads and exception handlers.
# It exists so every endpoint returns the same error shape with request trace fields.
# The handlers translate validation, persistence, HTTP, and unexpected failures into safe client messages.
# Centralized error handling prevents stack traces from leaking in production responses.

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.data.errors import (
    ConcurrencyConflict,
    ConnectivityError,
    ConstraintViolation,
    FormatError,
    PersistenceError,
)

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Domain error type with structured API details."""

    def __init__(
        self,
        *,
        status_code: int,
        error_code: str,
        message: str,
        details: Any | None = None,
    ) -> None:
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.details = details
        super().__init__(message)


# (exception type, status code, error code, client message, expose exception text as details)
_PERSISTENCE_ERRORS: tuple[tuple[type[PersistenceError], int, str, str, bool], ...] = (
    (ConstraintViolation, 409, "CONSTRAINT_VIOLATION", "The change was rejected by the store.", True),
    (ConcurrencyConflict, 409, "CONCURRENCY_CONFLICT", "The record was changed or removed meanwhile.", True),
    (ConnectivityError, 503, "STORE_UNAVAILABLE", "The data store is currently unavailable.", False),
    (FormatError, 500, "STORED_VALUE_CORRUPT", "A stored value could not be decoded.", False),
)


def _request_id(request: Request) -> str:
    return str(getattr(request.state, "request_id", "unknown"))


def _error_body(
    *, request: Request, error_code: str, message: str, details: Any | None = None
) -> dict[str, Any]:
    return {
        "error_code": error_code,
        "message": message,
        "details": details,
        "request_id": _request_id(request),
        "timestamp": datetime.now(tz=UTC).isoformat(),
    }


def _persistence_handler(
    status_code: int, error_code: str, message: str, expose_details: bool
) -> Callable[[Request, Exception], Awaitable[JSONResponse]]:
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        if status_code >= 500:
            logger.error("%s on %s %s: %s", error_code, request.method, request.url.path, exc)
        else:
            logger.warning("%s on %s %s: %s", error_code, request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status_code,
            content=_error_body(
                request=request,
                error_code=error_code,
                message=message,
                details=str(exc) if expose_details else None,
            ),
        )

    return handler


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(
                request=request,
                error_code=exc.error_code,
                message=exc.message,
                details=exc.details,
            ),
        )

    for error_type, status_code, error_code, message, expose_details in _PERSISTENCE_ERRORS:
        app.add_exception_handler(
            error_type, _persistence_handler(status_code, error_code, message, expose_details)
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content=_error_body(
                request=request,
                error_code="VALIDATION_ERROR",
                message="Invalid request parameters.",
                details=jsonable_encoder(exc.errors()),
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(
                request=request,
                error_code="HTTP_ERROR",
                message=str(exc.detail),
            ),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                request=request,
                error_code="INTERNAL_SERVER_ERROR",
                message="The server encountered an unexpected error.",
            ),
        )
