from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Path

from philter.api.dependencies import get_persistence
from philter.core.rate_limit import RATE_LIMITS, rate_limit_dependency
from philter.schemas.storage import (
    ApplicationRecord,
    ApplicationStatusRequest,
    ApplicationUpdateRequest,
    SyncResponse,
)
from philter.services.persistence import ApplicationPersistence

router = APIRouter(
    tags=["Applications"],
    dependencies=[Depends(rate_limit_dependency(RATE_LIMITS.standard))],
)

ApplicationId = Annotated[str, Path(pattern=r"^[A-Za-z0-9-]+$", max_length=64)]
Persistence = Annotated[ApplicationPersistence, Depends(get_persistence)]


def _record(persistence: ApplicationPersistence, application_id: str) -> ApplicationRecord:
    merged = persistence.get_application(application_id, [{"id": application_id}]) or {}
    data = {k: v for k, v in merged.items() if k != "id"}
    return ApplicationRecord(id=application_id, data=data)


@router.get("/applications/{application_id}", response_model=ApplicationRecord)
def read_application(application_id: ApplicationId, persistence: Persistence) -> ApplicationRecord:
    """Return the locally persisted fields of an application."""
    return _record(persistence, application_id)


@router.patch("/applications/{application_id}", response_model=ApplicationRecord)
def update_application(
    application_id: ApplicationId,
    payload: ApplicationUpdateRequest,
    persistence: Persistence,
) -> ApplicationRecord:
    """Merge fields into the persisted application."""
    persistence.update_application(application_id, payload.updates)
    return _record(persistence, application_id)


@router.post("/applications/{application_id}/status", response_model=ApplicationRecord)
def update_application_status(
    application_id: ApplicationId,
    payload: ApplicationStatusRequest,
    persistence: Persistence,
) -> ApplicationRecord:
    persistence.update_application_status(application_id, payload.status)
    return _record(persistence, application_id)


@router.post("/applications/{application_id}/sync", response_model=SyncResponse)
def sync_form_data(application_id: ApplicationId, persistence: Persistence) -> SyncResponse:
    """Fold drafted form sections into the application's sections."""
    synced = persistence.sync_form_data_to_application(application_id)
    return SyncResponse(application_id=application_id, synced=synced)
