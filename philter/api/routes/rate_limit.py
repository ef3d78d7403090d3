from __future__ import annotations

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from philter.adapters.rate_limit.in_memory import InMemoryRateLimiter
from philter.core.rate_limit import RATE_LIMITS, get_rate_limiter, with_rate_limit

router = APIRouter(tags=["Rate limit"])


@router.get("/rate-limit/stats")
@with_rate_limit(RATE_LIMITS.standard)
async def rate_limit_stats(request: Request) -> Response:
    """Counter statistics for monitoring.

    Only the in-process backend can enumerate its entries; the remote backend
    reports its name only.
    """
    limiter = get_rate_limiter()
    if isinstance(limiter, InMemoryRateLimiter):
        return JSONResponse({"backend": "in_memory", **limiter.stats()})
    return JSONResponse({"backend": "remote"})
