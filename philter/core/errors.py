"""Application-level exception types.

Routes raise these and the global handlers render them; the storage layer
only carries ``StorageAppError`` inside a failed ``StorageResult``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Optional structured context attached to an error."""

    hint: str
    key: str
    operation: str
    backend: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def log_fields(self) -> dict[str, Any]:
        """Flat ``extra`` mapping for structured log calls."""
        details = self.details or {}
        return {
            "error_code": self.code,
            "error_msg": self.message,
            "storage_key": details.get("key"),
            "operation": details.get("operation"),
        }


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class StorageAppError(AppError):
    """A failed substrate operation (quota, corrupt payload, I/O)."""


class RateLimitAppError(AppError):
    """Raised when the remote counter store cannot be used."""
