"""Request-scoped accessors for objects wired at application startup."""

from __future__ import annotations

from fastapi import Request

from philter.services.persistence import ApplicationPersistence
from philter.services.storage_service import StorageService


def get_storage_service(request: Request) -> StorageService:
    """Return the storage service created by the app factory."""
    return request.app.state.storage


def get_persistence(request: Request) -> ApplicationPersistence:
    return ApplicationPersistence(get_storage_service(request))
