"""JSON storage adapter over a string substrate.

The adapter is fail-soft: its public ``get``/``set``/``remove`` never raise.
Each of them delegates to a ``read``/``write``/``delete`` counterpart that
returns a ``StorageResult``, and failures are logged at that boundary.

Large payloads are compressed (zlib + base64, tagged with a prefix so plain
JSON still reads back) and split across chunk entries so a single substrate
value stays small:

    {key}            -> payload (single chunk)
    {key}#chunks     -> number of chunks
    {key}#chunk{i}   -> i-th slice of the payload

External keys may not contain "#", so chunk entries never overlap them.
"""

from __future__ import annotations

import base64
import json
import logging
import math
import zlib
from typing import Any, TypeVar

from philter.adapters.storage.base import AbstractSubstrate, QuotaExceededError, StorageResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

# JSON text never starts with "~", so tagged payloads cannot be confused with it.
COMPRESSED_PREFIX = "~z1:"

DEFAULT_COMPRESSION_THRESHOLD = 1000
DEFAULT_CHUNK_SIZE = 50_000

CHUNK_SEPARATOR = "#"


def _chunk_count_key(key: str) -> str:
    return f"{key}{CHUNK_SEPARATOR}chunks"


def _chunk_key(key: str, index: int) -> str:
    return f"{key}{CHUNK_SEPARATOR}chunk{index}"


def compress(data: str, threshold: int = DEFAULT_COMPRESSION_THRESHOLD) -> str:
    """Compress ``data`` when it is longer than ``threshold`` characters."""
    if len(data) <= threshold:
        return data
    packed = zlib.compress(data.encode("utf-8"))
    return COMPRESSED_PREFIX + base64.b64encode(packed).decode("ascii")


def decompress(data: str) -> str:
    """Reverse ``compress``; untagged data is returned unchanged.

    Raises:
        ValueError: If tagged data cannot be decoded.
    """
    if not data.startswith(COMPRESSED_PREFIX):
        return data
    try:
        packed = base64.b64decode(data[len(COMPRESSED_PREFIX):], validate=True)
        return zlib.decompress(packed).decode("utf-8")
    except (zlib.error, UnicodeDecodeError) as exc:
        raise ValueError(f"corrupt compressed payload: {exc}") from exc


class JsonStorageAdapter:
    """Fail-soft JSON codec in front of a substrate.

    Args:
        substrate: Backing string store, or None when no store is available
            (every read then returns the caller's default).
        compression_threshold: Compress payloads longer than this.
        chunk_size: Maximum characters per substrate entry.
    """

    def __init__(
        self,
        substrate: AbstractSubstrate | None,
        *,
        compression_threshold: int = DEFAULT_COMPRESSION_THRESHOLD,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        if compression_threshold < 1:
            raise ValueError("compression_threshold must be >= 1")
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")

        self._substrate = substrate
        self._compression_threshold = compression_threshold
        self._chunk_size = chunk_size

    @property
    def substrate(self) -> AbstractSubstrate | None:
        return self._substrate

    # ------------------------------------------------------------------
    # Result-returning operations
    # ------------------------------------------------------------------

    def read(self, key: str) -> StorageResult[Any]:
        """Read and decode the value stored under ``key``."""
        if self._substrate is None:
            return StorageResult.missing()

        try:
            raw = self._read_joined(self._substrate, key)
        except LookupError as exc:
            return StorageResult.failure("storage_missing_chunk", str(exc), key=key, operation="read")
        except Exception as exc:  # substrate failures are not the caller's problem
            return StorageResult.failure("storage_unavailable", str(exc), key=key, operation="read")

        if raw is None:
            return StorageResult.missing()

        try:
            return StorageResult.success(json.loads(decompress(raw)), found=True)
        except ValueError as exc:
            return StorageResult.failure(
                "storage_malformed_value", str(exc), key=key, operation="read"
            )

    def write(self, key: str, value: Any) -> StorageResult[None]:
        """Encode ``value`` and store it under ``key``."""
        if self._substrate is None:
            return StorageResult.failure(
                "storage_unavailable", "no substrate configured", key=key, operation="write"
            )

        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as exc:
            return StorageResult.failure(
                "storage_unserializable", str(exc), key=key, operation="write"
            )

        packed = compress(encoded, self._compression_threshold)
        try:
            self._write_chunked(self._substrate, key, packed)
            return StorageResult.success()
        except Exception as exc:
            if packed == encoded:
                return self._write_failure(key, exc)
            logger.warning(
                "storage.compressed_write_failed",
                extra={"storage_key": key, "error_type": type(exc).__name__},
            )

        try:
            self._write_chunked(self._substrate, key, encoded)
            return StorageResult.success()
        except Exception as exc:
            return self._write_failure(key, exc)

    def delete(self, key: str) -> StorageResult[None]:
        """Delete ``key`` together with any chunk entries."""
        if self._substrate is None:
            return StorageResult.success()

        try:
            self._substrate.remove_item(key)
            self._substrate.remove_item(_chunk_count_key(key))
            self._remove_chunks_from(self._substrate, key, 0)
        except Exception as exc:
            return StorageResult.failure("storage_unavailable", str(exc), key=key, operation="delete")
        return StorageResult.success()

    # ------------------------------------------------------------------
    # Fail-soft public API
    # ------------------------------------------------------------------

    def get(self, key: str, default: T) -> T:
        result = self.read(key)
        if not result.ok:
            self._log_failure(result)
        return result.unwrap_or(default)

    def set(self, key: str, value: Any) -> None:
        result = self.write(key, value)
        if not result.ok:
            self._log_failure(result)

    def remove(self, key: str) -> None:
        result = self.delete(key)
        if not result.ok:
            self._log_failure(result)

    # ------------------------------------------------------------------
    # Chunk handling
    # ------------------------------------------------------------------

    @staticmethod
    def _read_joined(substrate: AbstractSubstrate, key: str) -> str | None:
        count_raw = substrate.get_item(_chunk_count_key(key))
        if count_raw is None:
            return substrate.get_item(key)

        try:
            count = int(count_raw)
        except ValueError as exc:
            raise LookupError(f"invalid chunk count {count_raw!r}") from exc

        parts: list[str] = []
        for index in range(count):
            part = substrate.get_item(_chunk_key(key, index))
            if part is None:
                raise LookupError(f"missing chunk {index} of {count}")
            parts.append(part)
        return "".join(parts)

    def _write_chunked(self, substrate: AbstractSubstrate, key: str, data: str) -> None:
        chunks = max(1, math.ceil(len(data) / self._chunk_size))

        if chunks == 1:
            substrate.set_item(key, data)
            substrate.remove_item(_chunk_count_key(key))
            self._remove_chunks_from(substrate, key, 0)
            return

        for index in range(chunks):
            start = index * self._chunk_size
            substrate.set_item(_chunk_key(key, index), data[start:start + self._chunk_size])
        substrate.set_item(_chunk_count_key(key), str(chunks))
        self._remove_chunks_from(substrate, key, chunks)
        substrate.remove_item(key)

    @staticmethod
    def _remove_chunks_from(substrate: AbstractSubstrate, key: str, start: int) -> None:
        index = start
        while substrate.get_item(_chunk_key(key, index)) is not None:
            substrate.remove_item(_chunk_key(key, index))
            index += 1

    def _write_failure(self, key: str, exc: Exception) -> StorageResult[None]:
        code = "storage_quota_exceeded" if isinstance(exc, QuotaExceededError) else "storage_write_failed"
        return StorageResult.failure(code, str(exc), key=key, operation="write")

    @staticmethod
    def _log_failure(result: StorageResult[Any]) -> None:
        error = result.error
        if error is None:
            return
        fields = error.log_fields()
        logger.warning(f"storage.{fields['operation'] or 'op'}_failed", extra=fields)
