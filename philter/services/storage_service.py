"""Reactive key-value storage service.

Wraps the JSON storage adapter with:
- an in-memory read cache (coherent with every write made through this
  instance; may be stale relative to other processes until invalidated),
- a per-key listener registry notified synchronously on ``set``/``remove``,
- ``batch`` to coalesce notifications for a group of writes.

There is no cross-instance concurrency control: two services sharing one
substrate are last-writer-wins. ``update`` is only atomic for synchronous
updaters.
"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Any, Callable, Iterable, TypeVar

from philter.adapters.storage.factory import create_storage_adapter
from philter.adapters.storage.json_adapter import JsonStorageAdapter
from philter.core.config import StorageSettings, settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[Any], None]

# Value delivered to listeners when a key is removed.
REMOVED: None = None


class Subscription:
    """Handle returned by ``StorageService.subscribe``.

    Calling the handle (or leaving its ``with`` block) removes exactly the
    listener it was created for. Repeated calls are no-ops.
    """

    def __init__(self, service: "StorageService", key: str, listener_id: int) -> None:
        self._service = service
        self._key = key
        self._listener_id = listener_id
        self._active = True

    @property
    def key(self) -> str:
        return self._key

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._service._remove_listener(self._key, self._listener_id)

    def __call__(self) -> None:
        self.unsubscribe()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unsubscribe()


class StorageService:
    """Cached, observable facade over ``JsonStorageAdapter``.

    Args:
        adapter: Fail-soft JSON adapter used for every substrate access.
        cache_enabled: Whether reads are served from the in-memory cache.
    """

    def __init__(self, adapter: JsonStorageAdapter, *, cache_enabled: bool = True) -> None:
        self._adapter = adapter
        self._cache: dict[str, Any] = {}
        self._cache_enabled = cache_enabled
        self._listeners: dict[str, dict[int, Listener]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.RLock()
        # Per-thread: only the thread running ``batch`` defers its notifications.
        self._batch_state = threading.local()

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"StorageService(cache_enabled={self._cache_enabled}, "
            f"cached={len(self._cache)}, listener_keys={len(self._listeners)})"
        )

    @property
    def cache_enabled(self) -> bool:
        return self._cache_enabled

    # ------------------------------------------------------------------
    # Reads and writes
    # ------------------------------------------------------------------

    def get(self, key: str, default: T) -> T:
        """Return the value for ``key``, or ``default`` when nothing is stored.

        With caching enabled, the first read populates the cache and later
        reads never touch the substrate until the entry is invalidated.
        """
        with self._lock:
            if self._cache_enabled and key in self._cache:
                logger.debug("storage.cache_hit", extra={"storage_key": key})
                return self._cache[key]

            value = self._adapter.get(key, default)
            if self._cache_enabled:
                self._cache[key] = value
            logger.debug(
                "storage.cache_miss",
                extra={"storage_key": key, "cache_enabled": self._cache_enabled},
            )
            return value

    def set(self, key: str, value: Any) -> None:
        """Write ``value`` through the adapter and notify ``key``'s listeners.

        The cache is updated even if the write to the substrate was dropped,
        so this instance keeps reading back what it last wrote.
        """
        with self._lock:
            self._write(key, value)
        self._notify(key, value)

    def update(self, key: str, default: T, updater: Callable[[T], T]) -> None:
        """Apply ``updater`` to the current value and store the result.

        Read, update and write happen under the lock; listeners run after it
        is released.
        """
        with self._lock:
            value = updater(self.get(key, default))
            self._write(key, value)
        self._notify(key, value)

    def _write(self, key: str, value: Any) -> None:
        self._adapter.set(key, value)
        if self._cache_enabled:
            self._cache[key] = value

    def remove(self, key: str) -> None:
        """Delete ``key`` and notify listeners with ``REMOVED``."""
        with self._lock:
            self._adapter.remove(key)
            self._cache.pop(key, None)
        self._notify(key, REMOVED)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, key: str, listener: Listener) -> Subscription:
        """Register ``listener`` for changes to ``key``.

        Returns:
            Subscription: callable handle that removes this registration.
        """
        with self._lock:
            listener_id = next(self._ids)
            self._listeners.setdefault(key, {})[listener_id] = listener
        return Subscription(self, key, listener_id)

    def _remove_listener(self, key: str, listener_id: int) -> None:
        with self._lock:
            key_listeners = self._listeners.get(key)
            if key_listeners is None:
                return
            key_listeners.pop(listener_id, None)
            if not key_listeners:
                del self._listeners[key]

    def listener_count(self, key: str) -> int:
        with self._lock:
            return len(self._listeners.get(key, {}))

    def _notify(self, key: str, value: Any) -> None:
        pending = getattr(self._batch_state, "pending", None)
        if pending is not None:
            pending[key] = value
            return

        with self._lock:
            listeners = list(self._listeners.get(key, {}).values())

        for listener in listeners:
            try:
                listener(value)
            except Exception:
                logger.exception("storage.listener_failed", extra={"storage_key": key})

    # ------------------------------------------------------------------
    # Cache control
    # ------------------------------------------------------------------

    def clear_cache(self) -> None:
        """Drop every cache entry without touching the substrate."""
        with self._lock:
            self._cache.clear()

    def invalidate(self, key: str) -> None:
        """Drop the cache entry for ``key`` only."""
        with self._lock:
            self._cache.pop(key, None)

    def set_cache_enabled(self, enabled: bool) -> None:
        """Toggle caching; disabling also clears the cache."""
        with self._lock:
            self._cache_enabled = enabled
            if not enabled:
                self._cache.clear()

    def cache_stats(self) -> dict[str, Any]:
        """Return cache size, cached keys and the number of observed keys."""
        with self._lock:
            return {
                "enabled": self._cache_enabled,
                "size": len(self._cache),
                "keys": sorted(self._cache),
                "listener_count": len(self._listeners),
            }

    # ------------------------------------------------------------------
    # Batching
    # ------------------------------------------------------------------

    def batch(self, operations: Iterable[Callable[[], None]]) -> None:
        """Run ``operations`` and notify each changed key once afterwards.

        Notifications raised inside the batch are held back and deduplicated
        per key, so listeners receive only the final value (``REMOVED`` if the
        key ended up deleted). Nested batches flush when the outermost one
        finishes. If an operation raises, the changes made before it are
        still flushed and the exception propagates.

        Only notifications from the calling thread are deferred; writes made
        by other threads meanwhile notify as usual.
        """
        state = self._batch_state
        outermost = getattr(state, "pending", None) is None
        if outermost:
            state.pending = {}

        try:
            for operation in operations:
                operation()
        finally:
            if outermost:
                pending, state.pending = state.pending, None
                for key, value in pending.items():
                    self._notify(key, value)


def create_storage_service(storage_settings: StorageSettings | None = None) -> StorageService:
    """Build a storage service wired to the configured substrate."""
    cfg = storage_settings or settings.storage
    return StorageService(create_storage_adapter(cfg), cache_enabled=cfg.cache_enabled)
