"""In-process fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
- Never suspends; ``consume`` is async only to share the backend interface.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from philter.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult, build_result


@dataclass
class RateLimitEntry:
    count: int
    first_request_ms: int
    last_request_ms: int
    window_ms: int


class InMemoryRateLimiter(AbstractRateLimiter):
    """Rate limiter keeping one counter per key in a dictionary.

    Entries whose window started more than twice their window length ago are
    swept at most once per ``sweep_interval_ms`` (defaulting to the shortest
    window seen so far).
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        sweep_interval_ms: int | None = None,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            clock: Time source function returning UNIX time in seconds.
            sweep_interval_ms: Minimum delay between sweeps of stale entries.

        Raises:
            ValueError: If sweep_interval_ms is invalid.
        """
        if sweep_interval_ms is not None and sweep_interval_ms < 1:
            raise ValueError("sweep_interval_ms must be >= 1")

        self._clock = clock
        self._sweep_interval_ms = sweep_interval_ms
        self._last_sweep_ms: int | None = None
        self._min_window_ms: int | None = None
        self._lock = threading.RLock()
        self._entries: dict[str, RateLimitEntry] = {}

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _maybe_sweep_locked(self, now_ms: int, window_ms: int) -> None:
        if self._min_window_ms is None or window_ms < self._min_window_ms:
            self._min_window_ms = window_ms
        interval = self._sweep_interval_ms or self._min_window_ms

        if self._last_sweep_ms is None:
            self._last_sweep_ms = now_ms
            return
        if now_ms - self._last_sweep_ms < interval:
            return

        self._last_sweep_ms = now_ms
        self.sweep(now_ms)

    def sweep(self, now_ms: int | None = None) -> int:
        """Drop entries older than twice their window; returns how many."""
        now = self._now_ms() if now_ms is None else now_ms
        with self._lock:
            stale = [
                key
                for key, entry in self._entries.items()
                if now - entry.first_request_ms > entry.window_ms * 2
            ]
            for key in stale:
                del self._entries[key]
            return len(stale)

    async def consume(self, key: str, *, limit: int, window_ms: int) -> RateLimitResult:
        """Count one request for ``key``.

        Raises:
            ValueError: If key is empty or limit/window_ms are invalid.
        """
        if not key:
            raise ValueError("key must be a non-empty string")
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")

        now = self._now_ms()
        with self._lock:
            self._maybe_sweep_locked(now, window_ms)

            entry = self._entries.get(key)
            if entry is None or now - entry.first_request_ms > window_ms:
                entry = RateLimitEntry(
                    count=1,
                    first_request_ms=now,
                    last_request_ms=now,
                    window_ms=window_ms,
                )
                self._entries[key] = entry
            else:
                entry.count += 1
                entry.last_request_ms = now

            return build_result(
                count=entry.count,
                window_start=entry.first_request_ms,
                limit=limit,
                window_ms=window_ms,
                now_ms=now,
            )

    def get_entry(self, key: str) -> RateLimitEntry | None:
        with self._lock:
            return self._entries.get(key)

    def stats(self) -> dict[str, object]:
        """Return entry counts overall and per identifier prefix."""
        with self._lock:
            by_prefix: dict[str, int] = {}
            for key in self._entries:
                prefix = key.split(":", 1)[0]
                by_prefix[prefix] = by_prefix.get(prefix, 0) + 1
            return {"total_entries": len(self._entries), "entries_by_prefix": by_prefix}

    def clear(self) -> None:
        """Remove every entry."""
        with self._lock:
            self._entries.clear()
            self._last_sweep_ms = None
