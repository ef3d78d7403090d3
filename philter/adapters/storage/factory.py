"""Factory for the storage adapter and its substrate."""

from __future__ import annotations

from pathlib import Path

from philter.adapters.storage.base import AbstractSubstrate
from philter.adapters.storage.json_adapter import JsonStorageAdapter
from philter.adapters.storage.substrates import JsonFileSubstrate, MemorySubstrate
from philter.core.config import PROJECT_ROOT, StorageSettings, settings
from philter.core.errors import ValidationAppError


def create_substrate(storage_settings: StorageSettings | None = None) -> AbstractSubstrate:
    """Instantiate the substrate named by ``STORAGE_BACKEND``.

    Raises:
        ValidationAppError: If the backend name is unknown.
    """
    cfg = storage_settings or settings.storage
    backend = cfg.backend.lower()

    if backend == "memory":
        return MemorySubstrate(quota_chars=cfg.quota_chars)

    if backend == "file":
        path = Path(cfg.file_path)
        resolved = path if path.is_absolute() else PROJECT_ROOT / path
        return JsonFileSubstrate(resolved)

    raise ValidationAppError(
        code="storage_unknown_backend",
        message=f"Unknown storage backend: '{backend}'. Supported backends: memory, file",
    )


def create_storage_adapter(storage_settings: StorageSettings | None = None) -> JsonStorageAdapter:
    """Build the JSON adapter over the configured substrate."""
    cfg = storage_settings or settings.storage
    return JsonStorageAdapter(
        create_substrate(cfg),
        compression_threshold=cfg.compression_threshold,
        chunk_size=cfg.chunk_size,
    )
