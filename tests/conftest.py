"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment variables are set before any import that might build settings.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")
os.environ.pop("RATE_LIMIT_REMOTE_URL", None)
os.environ.pop("RATE_LIMIT_REMOTE_TOKEN", None)
os.environ.pop("UPSTASH_REDIS_REST_URL", None)
os.environ.pop("UPSTASH_REDIS_REST_TOKEN", None)

from unittest.mock import Mock

import pytest

from philter.adapters.storage.json_adapter import JsonStorageAdapter
from philter.adapters.storage.substrates import MemorySubstrate
from philter.core.rate_limit import reset_rate_limiter
from philter.services.storage_service import StorageService


class FakeClock:
    """Deterministic clock returning UNIX seconds."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture(autouse=True)
def _fresh_rate_limiter():
    """Every test starts with empty process-wide rate limit counters."""
    reset_rate_limiter()
    yield
    reset_rate_limiter()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def substrate() -> MemorySubstrate:
    return MemorySubstrate()


@pytest.fixture
def substrate_spy(substrate: MemorySubstrate) -> Mock:
    """Substrate wrapped in a Mock so calls can be counted."""
    return Mock(wraps=substrate)


@pytest.fixture
def adapter(substrate_spy: Mock) -> JsonStorageAdapter:
    return JsonStorageAdapter(substrate_spy)


@pytest.fixture
def service(adapter: JsonStorageAdapter) -> StorageService:
    return StorageService(adapter)
