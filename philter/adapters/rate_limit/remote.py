"""Rate limiter backed by a remote counter store over HTTP.

The store speaks a Redis-style REST protocol: a command is POSTed as a JSON
array (``["INCR", "key"]``) to the base URL, several commands as an array of
arrays to ``/pipeline``; each reply is ``{"result": ...}`` or
``{"error": "..."}``. Requests carry ``Authorization: Bearer <token>``.

The limiter fails open: if the store cannot be reached or answers with
something unexpected, the request is allowed and the error is logged.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Callable

import httpx

from philter.adapters.rate_limit.base import (
    AbstractRateLimiter,
    RateLimitResult,
    allowed_result,
    build_result,
)
from philter.core.errors import RateLimitAppError

logger = logging.getLogger(__name__)

KEY_PREFIX = "ratelimit:"


class RemoteCounterClient:
    """Minimal async client for the remote counter store."""

    def __init__(
        self,
        *,
        base_url: str,
        token: str,
        timeout_seconds: float = 2.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout_seconds)
        self._headers = {"Authorization": f"Bearer {token}"}

    @staticmethod
    def _unwrap(reply: Any) -> Any:
        if not isinstance(reply, dict):
            raise RateLimitAppError(
                code="remote_counter_bad_reply",
                message=f"unexpected reply type {type(reply).__name__}",
            )
        if "error" in reply:
            raise RateLimitAppError(code="remote_counter_error", message=str(reply["error"]))
        return reply.get("result")

    async def command(self, *args: str | int) -> Any:
        response = await self._client.post(
            self._base_url, json=[str(a) for a in args], headers=self._headers
        )
        response.raise_for_status()
        return self._unwrap(response.json())

    async def pipeline(self, commands: list[list[str | int]]) -> list[Any]:
        response = await self._client.post(
            f"{self._base_url}/pipeline",
            json=[[str(a) for a in cmd] for cmd in commands],
            headers=self._headers,
        )
        response.raise_for_status()
        replies = response.json()
        if not isinstance(replies, list) or len(replies) != len(commands):
            raise RateLimitAppError(
                code="remote_counter_bad_reply",
                message="pipeline reply does not match the commands sent",
            )
        return [self._unwrap(reply) for reply in replies]

    async def get(self, key: str) -> Any:
        return await self.command("GET", key)

    async def set(self, key: str, value: str, *, ex_seconds: int | None = None) -> Any:
        if ex_seconds is None:
            return await self.command("SET", key, value)
        return await self.command("SET", key, value, "EX", ex_seconds)

    async def incr(self, key: str) -> int:
        return int(await self.command("INCR", key))

    async def expire(self, key: str, seconds: int) -> bool:
        return bool(await self.command("EXPIRE", key, seconds))

    async def ttl(self, key: str) -> int:
        return int(await self.command("TTL", key))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class RemoteRateLimiter(AbstractRateLimiter):
    """Fixed-window limiter using INCR + EXPIRE on the remote store.

    The counter key expires when the window ends, so the store itself resets
    the window; the window start is derived from the remaining TTL.
    """

    def __init__(
        self,
        client: RemoteCounterClient,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._clock = clock

    async def consume(self, key: str, *, limit: int, window_ms: int) -> RateLimitResult:
        if not key:
            raise ValueError("key must be a non-empty string")
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")

        now = int(self._clock() * 1000)
        counter_key = f"{KEY_PREFIX}{key}"
        window_seconds = max(1, math.ceil(window_ms / 1000))

        try:
            count_reply, ttl_reply = await self._client.pipeline(
                [["INCR", counter_key], ["TTL", counter_key]]
            )
            count = int(count_reply)
            ttl = int(ttl_reply)
            if count == 1 or ttl < 0:
                await self._client.expire(counter_key, window_seconds)
                ttl = window_seconds
        except (httpx.HTTPError, RateLimitAppError, TypeError, ValueError) as exc:
            logger.error(
                "rate_limit.remote_failed",
                extra={
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                    "fail_open": True,
                },
            )
            return allowed_result(limit=limit, window_ms=window_ms, now_ms=now)

        reset_time = now + ttl * 1000
        return build_result(
            count=count,
            window_start=reset_time - window_ms,
            limit=limit,
            window_ms=window_ms,
            now_ms=now,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
