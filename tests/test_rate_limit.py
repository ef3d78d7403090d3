"""Tests for the HTTP-facing rate limiting helpers."""

from types import SimpleNamespace

import pytest
from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient
from pydantic import ValidationError
from starlette.datastructures import Headers

from philter.adapters.rate_limit.in_memory import InMemoryRateLimiter
from philter.core.config import settings
from philter.core.exception_handlers import setup_exception_handlers
from philter.core.rate_limit import (
    RATE_LIMITS,
    RateLimitConfig,
    build_rate_limit_key,
    check_rate_limit,
    get_client_identifier,
    get_rate_limiter,
    rate_limit_dependency,
    with_rate_limit,
)

TEST_LIMIT = RateLimitConfig(limit=2, window_ms=60_000, identifier="test", message="Slow down.")


def _request(headers: dict[str, str]) -> SimpleNamespace:
    return SimpleNamespace(headers=Headers(headers))


class TestClientIdentifier:
    def test_uses_first_forwarded_for_address(self) -> None:
        request = _request({"X-Forwarded-For": " 203.0.113.7 , 10.0.0.1", "X-Real-IP": "10.0.0.2"})

        assert get_client_identifier(request) == "203.0.113.7"

    def test_falls_back_to_real_ip_then_cdn_header(self) -> None:
        assert get_client_identifier(_request({"X-Real-IP": "10.0.0.2", "CF-Connecting-IP": "1.1.1.1"})) == "10.0.0.2"
        assert get_client_identifier(_request({"CF-Connecting-IP": "2001:db8::1"})) == "2001:db8::1"

    def test_unknown_when_no_header(self) -> None:
        assert get_client_identifier(_request({})) == "unknown"

    def test_strips_unsafe_characters(self) -> None:
        request = _request({"X-Forwarded-For": "1.2.3.4; DROP<script>"})

        assert get_client_identifier(request) == "1.2.3.4DROPscript"

    def test_composite_key(self) -> None:
        request = _request({"X-Real-IP": "10.0.0.2"})

        assert build_rate_limit_key(request, RATE_LIMITS.auth) == "auth:10.0.0.2"


class TestPresets:
    @pytest.mark.parametrize(
        ("name", "limit", "window_ms", "identifier"),
        [
            ("auth", 5, 60_000, "auth"),
            ("invitation", 10, 60_000, "invitation"),
            ("strict", 3, 60_000, "strict"),
            ("standard", 100, 60_000, "api"),
            ("upload", 20, 300_000, "upload"),
        ],
    )
    def test_preset_values(self, name: str, limit: int, window_ms: int, identifier: str) -> None:
        config = getattr(RATE_LIMITS, name)

        assert (config.limit, config.window_ms, config.identifier) == (limit, window_ms, identifier)
        assert config.message

    @pytest.mark.parametrize("kwargs", [{"limit": 0, "window_ms": 1}, {"limit": 1, "window_ms": 0}])
    def test_config_validation(self, kwargs: dict) -> None:
        with pytest.raises(ValidationError):
            RateLimitConfig(identifier="x", **kwargs)


class TestCheckRateLimit:
    @pytest.mark.asyncio
    async def test_limits_after_config_limit(self, clock) -> None:
        limiter = InMemoryRateLimiter(clock=clock)
        request = _request({"X-Real-IP": "10.0.0.2"})

        results = [await check_rate_limit(request, RATE_LIMITS.auth, limiter) for _ in range(6)]

        assert [r.is_limited for r in results] == [False] * 5 + [True]
        assert results[-1].reset_time == 1_000_000 + 60_000

    @pytest.mark.asyncio
    async def test_clients_are_isolated(self, clock) -> None:
        limiter = InMemoryRateLimiter(clock=clock)
        alice = _request({"X-Forwarded-For": "10.0.0.1"})
        bob = _request({"X-Forwarded-For": "10.0.0.2"})

        for _ in range(4):
            await check_rate_limit(alice, RATE_LIMITS.strict, limiter)
        bob_result = await check_rate_limit(bob, RATE_LIMITS.strict, limiter)

        assert bob_result.is_limited is False
        assert bob_result.remaining == 2

    @pytest.mark.asyncio
    async def test_uses_process_wide_limiter_by_default(self) -> None:
        request = _request({"X-Real-IP": "10.0.0.9"})

        await check_rate_limit(request, TEST_LIMIT)

        limiter = get_rate_limiter()
        assert isinstance(limiter, InMemoryRateLimiter)
        assert limiter.get_entry("test:10.0.0.9") is not None


def _wrapped_app() -> FastAPI:
    app = FastAPI()
    setup_exception_handlers(app)

    @app.get("/wrapped")
    @with_rate_limit(TEST_LIMIT)
    async def wrapped(request: Request) -> Response:
        return JSONResponse({"ok": True})

    @app.get("/dependency", dependencies=[Depends(rate_limit_dependency(TEST_LIMIT))])
    async def dependency() -> dict:
        return {"ok": True}

    return app


class TestWithRateLimit:
    def test_stamps_headers_then_short_circuits(self) -> None:
        client = TestClient(_wrapped_app())
        headers = {"X-Forwarded-For": "198.51.100.1"}

        first = client.get("/wrapped", headers=headers)
        second = client.get("/wrapped", headers=headers)
        third = client.get("/wrapped", headers=headers)

        assert first.status_code == 200
        assert first.json() == {"ok": True}
        assert first.headers["X-RateLimit-Limit"] == "2"
        assert first.headers["X-RateLimit-Remaining"] == "1"
        assert second.headers["X-RateLimit-Remaining"] == "0"

        assert third.status_code == 429
        body = third.json()["error"]
        assert body["code"] == "RATE_LIMIT_EXCEEDED"
        assert body["message"] == "Slow down."
        assert int(third.headers["Retry-After"]) > 0
        assert body["retry_after"] == int(third.headers["Retry-After"])
        assert third.headers["X-RateLimit-Remaining"] == "0"
        assert "X-RateLimit-Reset" in third.headers

    @pytest.mark.asyncio
    async def test_direct_wrapping_form(self) -> None:
        calls = []

        async def handler(request: Request) -> Response:
            calls.append(request)
            return Response("done")

        guarded = with_rate_limit(RateLimitConfig(limit=1, window_ms=1_000, identifier="direct"), handler)
        request = Request({"type": "http", "headers": [(b"x-real-ip", b"192.0.2.5")]})

        allowed = await guarded(request)
        limited = await guarded(request)

        assert allowed.status_code == 200
        assert limited.status_code == 429
        assert len(calls) == 1

    def test_disabled_rate_limiting_skips_check(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings.rate_limit, "enabled", False)
        client = TestClient(_wrapped_app())

        responses = [client.get("/wrapped") for _ in range(5)]

        assert all(r.status_code == 200 for r in responses)
        assert "X-RateLimit-Limit" not in responses[0].headers


class TestRateLimitDependency:
    def test_sets_headers_and_raises_429(self) -> None:
        client = TestClient(_wrapped_app())
        headers = {"X-Real-IP": "198.51.100.2"}

        ok = client.get("/dependency", headers=headers)
        client.get("/dependency", headers=headers)
        limited = client.get("/dependency", headers=headers)

        assert ok.status_code == 200
        assert ok.headers["X-RateLimit-Remaining"] == "1"
        assert limited.status_code == 429
        assert limited.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
        assert limited.json()["error"]["message"] == "Slow down."
        assert int(limited.headers["Retry-After"]) > 0
        assert limited.headers["X-RateLimit-Remaining"] == "0"

    def test_headers_can_be_disabled(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings.rate_limit, "include_headers", False)
        client = TestClient(_wrapped_app())

        response = client.get("/dependency", headers={"X-Real-IP": "198.51.100.3"})

        assert response.status_code == 200
        assert "X-RateLimit-Limit" not in response.headers

    def test_same_envelope_as_wrapper(self) -> None:
        client = TestClient(_wrapped_app())
        for path in ("/wrapped", "/dependency"):
            for _ in range(2):
                client.get(path, headers={"X-Real-IP": "198.51.100.4"})

        wrapped = client.get("/wrapped", headers={"X-Real-IP": "198.51.100.4"})
        dependency = client.get("/dependency", headers={"X-Real-IP": "198.51.100.4"})

        assert wrapped.status_code == dependency.status_code == 429
        assert wrapped.json().keys() == dependency.json().keys() == {"error"}
        assert wrapped.json()["error"].keys() == dependency.json()["error"].keys()
