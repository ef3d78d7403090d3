"""Reactive binding of local state to a storage key.

A ``StorageBinding`` is the server-side equivalent of a UI hook: it holds the
last value seen for one key, re-evaluates its consumer through ``on_change``
whenever the key changes, and releases its subscription on teardown.

Usage:
    with use_storage(service, keys.THEME, "light", on_change=render) as theme:
        theme.set_value("dark")  # render("dark") runs via the notification
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Generic, Iterator, TypeVar

from philter.services.storage_service import StorageService, Subscription

T = TypeVar("T")


class StorageBinding(Generic[T]):
    """Two-way binding between a consumer and one storage key.

    Args:
        service: Storage service the key lives in.
        key: Key to bind.
        default: Value used when nothing is stored.
        on_change: Called with the new value each time the bound value changes.
    """

    def __init__(
        self,
        service: StorageService,
        key: str,
        default: T,
        on_change: Callable[[T | None], None] | None = None,
    ) -> None:
        self._service = service
        self._key = key
        self._default = default
        self._on_change = on_change
        self._value: T | None = service.get(key, default)
        self._subscription: Subscription | None = None

    @property
    def key(self) -> str:
        return self._key

    @property
    def value(self) -> T | None:
        return self._value

    @property
    def mounted(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def mount(self) -> "StorageBinding[T]":
        """Subscribe to the key and reconcile with its current value."""
        if self.mounted:
            return self
        self._subscription = self._service.subscribe(self._key, self._receive)
        # The value may have changed between the initial read and subscribing.
        self._receive(self._service.get(self._key, self._default))
        return self

    def unmount(self) -> None:
        """Release the subscription; safe to call more than once."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def set_value(self, value: T) -> None:
        """Write through the service; local state follows the notification."""
        self._service.set(self._key, value)

    def _receive(self, value: Any) -> None:
        if value == self._value:
            return
        self._value = value
        if self._on_change is not None:
            self._on_change(value)

    def __enter__(self) -> "StorageBinding[T]":
        return self.mount()

    def __exit__(self, *exc_info: object) -> None:
        self.unmount()


@contextmanager
def use_storage(
    service: StorageService,
    key: str,
    default: T,
    *,
    on_change: Callable[[T | None], None] | None = None,
) -> Iterator[StorageBinding[T]]:
    """Mount a binding for the duration of a ``with`` block."""
    binding = StorageBinding(service, key, default, on_change)
    binding.mount()
    try:
        yield binding
    finally:
        binding.unmount()
