from __future__ import annotations

from philter.api.routes.applications import router as applications_router
from philter.api.routes.health import router as health_router
from philter.api.routes.rate_limit import router as rate_limit_router
from philter.api.routes.storage import router as storage_router

__all__ = ["applications_router", "health_router", "rate_limit_router", "storage_router"]
