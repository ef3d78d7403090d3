from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status

from philter.api.dependencies import get_storage_service
from philter.core.errors import ValidationAppError
from philter.core.rate_limit import RATE_LIMITS, rate_limit_dependency
from philter.schemas.storage import CacheStats, StorageEntry, StorageWriteRequest
from philter.services.storage_keys import is_valid_key
from philter.services.storage_service import StorageService

router = APIRouter(tags=["Storage"])

_standard_limit = Depends(rate_limit_dependency(RATE_LIMITS.standard))
_strict_limit = Depends(rate_limit_dependency(RATE_LIMITS.strict))

Service = Annotated[StorageService, Depends(get_storage_service)]


def _validated_key(key: str) -> str:
    if not is_valid_key(key):
        raise ValidationAppError(
            code="storage_invalid_key",
            message="Storage keys must be 1-200 characters of letters, digits, '_', '.', ':' or '-'",
            details={"hint": "Use the key builders for composed keys"},
        )
    return key


@router.get("/storage/{key}", response_model=StorageEntry, dependencies=[_standard_limit])
def read_value(key: str, service: Service) -> StorageEntry:
    """Read a stored value.

    Missing keys and unreadable values both come back as ``null``.
    """
    key = _validated_key(key)
    return StorageEntry(key=key, value=service.get(key, None))


@router.put("/storage/{key}", response_model=StorageEntry, dependencies=[_standard_limit])
def write_value(key: str, payload: StorageWriteRequest, service: Service) -> StorageEntry:
    """Store a value and notify subscribers of the key."""
    key = _validated_key(key)
    service.set(key, payload.value)
    return StorageEntry(key=key, value=payload.value)


@router.delete(
    "/storage/{key}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[_standard_limit, _strict_limit],
)
def delete_value(key: str, service: Service) -> None:
    """Remove a key; removing an absent key is not an error.

    Returns nothing so the rate limit headers set by the dependencies are
    kept on the 204 response.
    """
    service.remove(_validated_key(key))


@router.get("/storage-stats", response_model=CacheStats, dependencies=[_standard_limit])
def cache_stats(service: Service) -> CacheStats:
    return CacheStats(**service.cache_stats())
