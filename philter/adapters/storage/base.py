"""Storage substrate interface and internal result type.

A substrate is the raw, synchronous string key-value store the storage adapter
writes to (the server-side stand-in for browser local storage). Substrates are
allowed to raise; the adapter converts every failure into a ``StorageResult``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from philter.core.errors import StorageAppError

T = TypeVar("T")


class QuotaExceededError(Exception):
    """Raised by a substrate when a write would exceed its capacity."""


class AbstractSubstrate(ABC):
    """Minimal string key-value interface the storage adapter depends on."""

    @abstractmethod
    def get_item(self, key: str) -> str | None:
        """Return the raw string stored under ``key`` or None when absent."""
        raise NotImplementedError

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``.

        Raises:
            QuotaExceededError: If the substrate has no room for the value.
        """
        raise NotImplementedError

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Delete ``key``; absent keys are ignored."""
        raise NotImplementedError

    @abstractmethod
    def keys(self) -> list[str]:
        """Return all stored keys."""
        raise NotImplementedError


@dataclass(frozen=True)
class StorageResult(Generic[T]):
    """Outcome of a single adapter operation.

    Attributes:
        ok: Whether the operation succeeded.
        value: Decoded value on a successful read (None for misses and writes).
        found: Whether a read located a stored value.
        error: Failure description when ``ok`` is False.
    """

    ok: bool
    value: T | None = None
    found: bool = False
    error: StorageAppError | None = None

    @classmethod
    def success(cls, value: Any = None, *, found: bool = False) -> "StorageResult[Any]":
        return cls(ok=True, value=value, found=found)

    @classmethod
    def missing(cls) -> "StorageResult[Any]":
        return cls(ok=True, value=None, found=False)

    @classmethod
    def failure(cls, code: str, message: str, *, key: str, operation: str) -> "StorageResult[Any]":
        return cls(
            ok=False,
            error=StorageAppError(
                code=code,
                message=message,
                details={"key": key, "operation": operation},
            ),
        )

    def unwrap_or(self, default: T) -> T:
        """Return the read value, or ``default`` for misses and failures."""
        if self.ok and self.found:
            return self.value  # type: ignore[return-value]
        return default
