"""Rate limiting for HTTP endpoints.

This module wires the rate limiting backends into the HTTP layer.

Design goals:
- Minimal coupling: routes use either the ``with_rate_limit`` wrapper or the
  ``rate_limit_dependency`` FastAPI dependency.
- Swap-friendly: the counter backend (in-process or remote) is hidden behind
  ``AbstractRateLimiter``.
- Available over strict: the remote backend fails open.

Strategy:
- Fixed window per ``{identifier}:{client}`` where the client is the first
  forwarded-for address (then real-IP, then CDN header, then "unknown").
"""

from __future__ import annotations

import functools
import hashlib
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Protocol

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from philter.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from philter.adapters.rate_limit.factory import create_rate_limiter
from philter.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "Too many requests. Please try again later."

_UNSAFE_CLIENT_CHARS = re.compile(r"[^A-Za-z0-9.:]")


class HasHeaders(Protocol):
    @property
    def headers(self) -> Mapping[str, str]: ...


class RateLimitConfig(BaseModel):
    """Limit applied to one class of endpoints."""

    model_config = ConfigDict(frozen=True)

    limit: int = Field(..., gt=0, description="Maximum requests per window")
    window_ms: int = Field(..., gt=0, description="Window length in milliseconds")
    identifier: str = Field("default", min_length=1, description="Key prefix for this policy")
    message: str | None = Field(None, description="Client-facing message when limited")


@dataclass(frozen=True)
class RateLimitPresets:
    auth: RateLimitConfig
    invitation: RateLimitConfig
    strict: RateLimitConfig
    standard: RateLimitConfig
    upload: RateLimitConfig


RATE_LIMITS = RateLimitPresets(
    # Brute force protection on login/signup
    auth=RateLimitConfig(
        limit=5,
        window_ms=60 * 1000,
        identifier="auth",
        message="Too many authentication attempts. Please wait a minute before trying again.",
    ),
    invitation=RateLimitConfig(
        limit=10,
        window_ms=60 * 1000,
        identifier="invitation",
        message="Too many invitation requests. Please wait before sending more invitations.",
    ),
    # Password reset, account deletion, destructive writes
    strict=RateLimitConfig(
        limit=3,
        window_ms=60 * 1000,
        identifier="strict",
        message="This action is rate limited. Please wait before trying again.",
    ),
    standard=RateLimitConfig(
        limit=100,
        window_ms=60 * 1000,
        identifier="api",
        message="Rate limit exceeded. Please slow down your requests.",
    ),
    upload=RateLimitConfig(
        limit=20,
        window_ms=5 * 60 * 1000,
        identifier="upload",
        message="Too many file uploads. Please wait before uploading more files.",
    ),
)


_limiter: AbstractRateLimiter | None = None
_limiter_config: tuple[str | None, str | None] | None = None


def get_rate_limiter() -> AbstractRateLimiter:
    """Return a process-wide rate limiter instance.

    The instance is cached in-module to preserve counters across requests.
    If the remote store configuration changes (primarily in tests), the
    limiter is rebuilt.
    """

    global _limiter, _limiter_config

    config = (settings.rate_limit.remote_url, settings.rate_limit.remote_token)

    if _limiter is None or _limiter_config != config:
        _limiter = create_rate_limiter(settings.rate_limit)
        _limiter_config = config

    return _limiter


def reset_rate_limiter() -> None:
    """Forget the cached limiter so the next call builds a fresh one."""

    global _limiter, _limiter_config
    _limiter = None
    _limiter_config = None


def get_client_identifier(request: HasHeaders) -> str:
    """Derive the sanitized client identity from proxy headers.

    Args:
        request: Anything with a case-insensitive ``headers`` mapping.

    Returns:
        str: Client address restricted to ``[A-Za-z0-9.:]``.
    """

    headers = request.headers
    forwarded_for = headers.get("x-forwarded-for")
    first_forwarded = forwarded_for.split(",")[0].strip() if forwarded_for else ""

    client = (
        first_forwarded
        or headers.get("x-real-ip")
        or headers.get("cf-connecting-ip")
        or "unknown"
    )
    return _UNSAFE_CLIENT_CHARS.sub("", client)


def build_rate_limit_key(request: HasHeaders, config: RateLimitConfig) -> str:
    """Build the namespaced limiter key ``{identifier}:{client}``."""

    return f"{config.identifier}:{get_client_identifier(request)}"


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing client addresses."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


async def check_rate_limit(
    request: HasHeaders,
    config: RateLimitConfig,
    limiter: AbstractRateLimiter | None = None,
) -> RateLimitResult:
    """Count this request against ``config`` and report the outcome.

    Being limited is a normal outcome, not an error: the caller decides how
    to answer the client.

    Args:
        request: Incoming request (only its headers are read).
        config: Policy to apply.
        limiter: Backend override; defaults to the process-wide limiter.

    Returns:
        RateLimitResult with is_limited, remaining and reset_time.
    """

    backend = limiter or get_rate_limiter()
    key = build_rate_limit_key(request, config)
    result = await backend.consume(key, limit=config.limit, window_ms=config.window_ms)

    log_extra = {
        "identifier": config.identifier,
        "key_hash": _hash_limiter_key(key),
        "limit": result.limit,
        "remaining": result.remaining,
        "window_ms": config.window_ms,
    }
    if result.is_limited:
        logger.warning(
            "rate_limit.exceeded",
            extra={**log_extra, "retry_after_s": result.retry_after_seconds},
        )
    else:
        logger.debug("rate_limit.allowed", extra=log_extra)

    return result


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """X-RateLimit-* metadata headers for ``result``."""

    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_epoch_seconds),
    }


def rate_limited_response(
    result: RateLimitResult, config: RateLimitConfig, *, include_headers: bool = True
) -> JSONResponse:
    """Build the 429 response for a limited request.

    ``Retry-After`` is always sent; the X-RateLimit-* headers only when
    ``include_headers`` is set.
    """

    retry_after = result.retry_after_seconds or 0
    headers = rate_limit_headers(result) if include_headers else {}
    headers["Retry-After"] = str(retry_after)
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "error": {
                "message": config.message or DEFAULT_MESSAGE,
                "code": "RATE_LIMIT_EXCEEDED",
                "retry_after": retry_after,
            }
        },
        headers=headers,
    )


class RateLimitExceeded(Exception):
    """Raised by ``rate_limit_dependency`` when a request is over its limit."""

    def __init__(self, result: RateLimitResult, config: RateLimitConfig) -> None:
        super().__init__(config.message or DEFAULT_MESSAGE)
        self.result = result
        self.config = config


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return rate_limited_response(
        exc.result, exc.config, include_headers=settings.rate_limit.include_headers
    )


Handler = Callable[..., Awaitable[Response]]


def with_rate_limit(config: RateLimitConfig, handler: Handler | None = None) -> Any:
    """Wrap an async handler whose first parameter is ``request``.

    The check runs before the handler. When limited, the handler is skipped
    and a 429 JSON response with ``Retry-After`` is returned; otherwise the
    handler's response gets the X-RateLimit-* headers.

    Usable directly (``with_rate_limit(config, handler)``) or as a decorator
    (``@with_rate_limit(config)``).

    Example:
        >>> @router.get("/v1/things")
        ... @with_rate_limit(RATE_LIMITS.standard)
        ... async def list_things(request: Request) -> Response:
        ...     return JSONResponse({"things": []})
    """

    def decorate(func: Handler) -> Handler:
        @functools.wraps(func)
        async def wrapper(request: Request, *args: Any, **kwargs: Any) -> Response:
            if not settings.rate_limit.enabled:
                return await func(request, *args, **kwargs)

            result = await check_rate_limit(request, config)
            if result.is_limited:
                return rate_limited_response(
                    result, config, include_headers=settings.rate_limit.include_headers
                )

            response = await func(request, *args, **kwargs)
            if settings.rate_limit.include_headers:
                response.headers.update(rate_limit_headers(result))
            return response

        return wrapper

    if handler is not None:
        return decorate(handler)
    return decorate


def rate_limit_dependency(config: RateLimitConfig) -> Callable[[Request, Response], Awaitable[None]]:
    """Build a FastAPI dependency enforcing ``config``.

    Usage:
        @router.put("/x", dependencies=[Depends(rate_limit_dependency(RATE_LIMITS.strict))])

    Raises (from the dependency):
        RateLimitExceeded: rendered as the same 429 envelope ``with_rate_limit``
            returns, once ``rate_limit_exceeded_handler`` is registered.
    """

    async def enforce_rate_limit(request: Request, response: Response) -> None:
        if not settings.rate_limit.enabled:
            return

        result = await check_rate_limit(request, config)
        if result.is_limited:
            raise RateLimitExceeded(result, config)
        if settings.rate_limit.include_headers:
            response.headers.update(rate_limit_headers(result))

    return enforce_rate_limit
