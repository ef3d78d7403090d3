"""Request correlation middleware.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import re
import time
import uuid

from fastapi import Request, Response

from philter.core.config import settings
from philter.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)

# Incoming ids are echoed back in headers and logs
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


def resolve_request_id(incoming: str | None) -> str:
    """Return ``incoming`` when it is a safe token, otherwise a fresh UUID4."""

    if incoming and _VALID_REQUEST_ID.match(incoming):
        return incoming
    return str(uuid.uuid4())


async def request_id_middleware(request: Request, call_next) -> Response:
    """Bind a request id to the context for the lifetime of the request.

    The id comes from the configured header (``LOG_REQUEST_ID_HEADER``,
    default ``X-Request-ID``) or is generated. It is returned in the same
    header along with ``X-Request-Duration-ms``, and each request is logged
    once as ``http.request`` at DEBUG.
    """

    header_name = settings.log.request_id_header
    request_id = resolve_request_id(request.headers.get(header_name))
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            "http.request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
    finally:
        clear_request_id()

    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
