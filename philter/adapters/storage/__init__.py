"""Storage adapters.

The storage service depends on ``JsonStorageAdapter`` only; the substrate
behind it (process memory, a JSON file) is chosen from settings by
``create_storage_adapter``.
"""

from philter.adapters.storage.base import AbstractSubstrate, QuotaExceededError, StorageResult
from philter.adapters.storage.factory import create_storage_adapter
from philter.adapters.storage.json_adapter import JsonStorageAdapter
from philter.adapters.storage.substrates import JsonFileSubstrate, MemorySubstrate

__all__ = [
    "AbstractSubstrate",
    "JsonFileSubstrate",
    "JsonStorageAdapter",
    "MemorySubstrate",
    "QuotaExceededError",
    "StorageResult",
    "create_storage_adapter",
]
