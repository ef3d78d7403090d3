"""Concrete storage substrates.

Notes:
- ``MemorySubstrate`` is per-process, like one browser tab's local storage.
- ``JsonFileSubstrate`` persists to a single JSON document and rewrites it on
  every mutation; it offers no locking between processes (last writer wins).
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path

from philter.adapters.storage.base import AbstractSubstrate, QuotaExceededError

logger = logging.getLogger(__name__)


class MemorySubstrate(AbstractSubstrate):
    """Dictionary-backed substrate with an optional character quota."""

    def __init__(self, *, quota_chars: int | None = None) -> None:
        if quota_chars is not None and quota_chars < 1:
            raise ValueError("quota_chars must be >= 1")
        self._quota = quota_chars
        self._items: dict[str, str] = {}
        self._lock = threading.RLock()

    def _size_with(self, key: str, value: str) -> int:
        size = sum(len(k) + len(v) for k, v in self._items.items() if k != key)
        return size + len(key) + len(value)

    def get_item(self, key: str) -> str | None:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            if self._quota is not None and self._size_with(key, value) > self._quota:
                raise QuotaExceededError(
                    f"writing {len(value)} chars to '{key}' exceeds quota of {self._quota}"
                )
            self._items[key] = value

    def remove_item(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._items)


class JsonFileSubstrate(AbstractSubstrate):
    """Substrate persisted as one JSON object on disk.

    The document is loaded lazily on first access and written through on
    every ``set_item``/``remove_item``. A corrupt document is logged and
    treated as empty.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._items: dict[str, str] | None = None
        self._lock = threading.RLock()

    def _load(self) -> dict[str, str]:
        if self._items is not None:
            return self._items

        items: dict[str, str] = {}
        if self._path.is_file():
            try:
                raw = json.loads(self._path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                logger.error(
                    "storage.file_load_failed",
                    extra={"path": str(self._path), "error_type": type(exc).__name__},
                )
            else:
                if isinstance(raw, dict):
                    items = {str(k): str(v) for k, v in raw.items()}
        self._items = items
        return items

    def _flush(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._items), encoding="utf-8")
        tmp_path.replace(self._path)

    def get_item(self, key: str) -> str | None:
        with self._lock:
            return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            items = self._load()
            previous = items.get(key)
            items[key] = value
            try:
                self._flush()
            except OSError:
                # Keep memory in line with what is on disk
                if previous is None:
                    items.pop(key, None)
                else:
                    items[key] = previous
                raise

    def remove_item(self, key: str) -> None:
        with self._lock:
            items = self._load()
            if key not in items:
                return
            items.pop(key)
            self._flush()

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._load())
