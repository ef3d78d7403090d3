from __future__ import annotations

from fastapi import APIRouter

from philter.core.config import settings

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check used by load balancers and monitoring.

    Returns:
        dict: ``status`` plus the configured storage and rate limit backends.
    """

    remote = bool(settings.rate_limit.remote_url and settings.rate_limit.remote_token)
    return {
        "status": "ok",
        "storage_backend": settings.storage.backend,
        "rate_limit_backend": "remote" if remote else "in_memory",
    }
