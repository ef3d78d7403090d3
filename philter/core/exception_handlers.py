"""Global exception handlers.

Domain errors are rendered as ``{"error": {"code", "message", "request_id",
"details"?}}`` with a status chosen by error type; anything else becomes a
generic 500 that does not echo the exception message. Requests over a rate
limit get the 429 envelope built by ``philter.core.rate_limit``.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from philter.core.errors import AppError, RateLimitAppError, StorageAppError, ValidationAppError
from philter.core.logging import get_request_id
from philter.core.rate_limit import RateLimitExceeded, rate_limit_exceeded_handler

logger = logging.getLogger(__name__)

# Most specific first; unknown AppError subclasses are client errors.
_STATUS_BY_ERROR: tuple[tuple[type[AppError], int], ...] = (
    (ValidationAppError, status.HTTP_400_BAD_REQUEST),
    (StorageAppError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (RateLimitAppError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_for(exc: AppError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


def error_response(status_code: int, code: str, message: str, details: Any = None) -> JSONResponse:
    content: dict[str, Any] = {"code": code, "message": message, "request_id": get_request_id()}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content={"error": content})


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render an ``AppError`` raised by a route or dependency."""

    status_code = status_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "status_code": status_code,
            "request_path": request.url.path,
            "storage_key": (exc.details or {}).get("key"),
        },
    )
    return error_response(status_code, exc.code, exc.message, exc.details)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler: log the failure, answer with a generic 500."""

    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "internal_server_error",
        "An unexpected error occurred. Please try again later.",
    )


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, general_exception_handler)
