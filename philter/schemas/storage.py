"""Pydantic schemas for the storage and application endpoints."""

from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, Field


class StorageWriteRequest(BaseModel):
    """Body of a storage write."""

    value: Any = Field(..., description="Any JSON value to store under the key.")


class StorageEntry(BaseModel):
    """A key with its current value (null when nothing is stored)."""

    key: str = Field(..., description="Storage key.")
    value: Any = Field(None, description="Stored JSON value, or null.")


class CacheStats(BaseModel):
    """Snapshot of the storage service cache."""

    enabled: bool
    size: int = Field(..., description="Number of cached keys.")
    keys: List[str] = Field(default_factory=list)
    listener_count: int = Field(..., description="Number of keys with subscribers.")


class ApplicationUpdateRequest(BaseModel):
    """Partial update merged into a locally persisted application."""

    updates: Dict[str, Any] = Field(
        ..., description="Fields to merge; 'id' is always forced to the path id."
    )


class ApplicationStatusRequest(BaseModel):
    status: str = Field(..., min_length=1, description="New application status.")


class ApplicationRecord(BaseModel):
    """Locally persisted view of an application."""

    id: str
    data: Dict[str, Any] = Field(default_factory=dict)


class SyncResponse(BaseModel):
    application_id: str
    synced: bool = Field(..., description="Whether any drafted section was found.")
