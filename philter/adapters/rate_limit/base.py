"""Rate limiter interfaces.

The HTTP layer depends on this abstraction (not the concrete backend) so the
in-process map and the remote counter store are interchangeable.

Both backends implement the same fixed-window counter: the first request for
a key opens a window of ``window_ms``; requests inside it increment the
counter; the first request after it closes starts a new window at count 1.
A request is limited iff the counter strictly exceeds ``limit``.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit consume operation.

    Attributes:
        is_limited: Whether the request must be rejected.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when limited).
        reset_time: UNIX epoch milliseconds when the current window ends.
        retry_after_seconds: Suggested wait time in seconds when limited.
    """

    is_limited: bool
    limit: int
    remaining: int
    reset_time: int
    retry_after_seconds: int | None

    @property
    def reset_epoch_seconds(self) -> int:
        return math.ceil(self.reset_time / 1000)


def build_result(*, count: int, window_start: int, limit: int, window_ms: int, now_ms: int) -> RateLimitResult:
    """Derive the public result from a window's counter state."""
    reset_time = window_start + window_ms
    is_limited = count > limit
    retry_after = max(0, math.ceil((reset_time - now_ms) / 1000)) if is_limited else None
    return RateLimitResult(
        is_limited=is_limited,
        limit=limit,
        remaining=max(0, limit - count),
        reset_time=reset_time,
        retry_after_seconds=retry_after,
    )


def allowed_result(*, limit: int, window_ms: int, now_ms: int) -> RateLimitResult:
    """Result used when the limiter fails open."""
    return RateLimitResult(
        is_limited=False,
        limit=limit,
        remaining=limit,
        reset_time=now_ms + window_ms,
        retry_after_seconds=None,
    )


class AbstractRateLimiter(ABC):
    """Interface for rate limiter backends."""

    @abstractmethod
    async def consume(self, key: str, *, limit: int, window_ms: int) -> RateLimitResult:
        """Count one request against ``key``.

        Args:
            key: Composite key, ``{identifier}:{client}``.
            limit: Maximum requests per window.
            window_ms: Window length in milliseconds.

        Returns:
            RateLimitResult describing whether the request is limited.
        """
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release backend resources (no-op by default)."""
