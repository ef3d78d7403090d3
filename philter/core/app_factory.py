"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers and
the storage service instance) so tests can build isolated apps.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from philter.api.routes import applications_router, health_router, rate_limit_router, storage_router
from philter.core.config import settings
from philter.core.exception_handlers import setup_exception_handlers
from philter.core.logging import configure_logging
from philter.core.middleware import request_id_middleware
from philter.core.rate_limit import get_rate_limiter, reset_rate_limiter
from philter.services.storage_service import StorageService, create_storage_service


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    # Close the remote counter client (if any) on shutdown
    await get_rate_limiter().aclose()
    reset_rate_limiter()


def create_app(storage: StorageService | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        storage: Storage service to serve; built from settings when omitted.
            Exactly one instance is shared by every request of the app.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Philter Storage API",
        description=(
            "Reactive key-value storage for co-op/condo board application drafts, "
            "with per-client rate limiting on every endpoint."
        ),
        version="0.1.0",
        lifespan=_lifespan,
    )
    app.state.storage = storage or create_storage_service(settings.storage)

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(storage_router, prefix="/v1")
    app.include_router(applications_router, prefix="/v1")
    app.include_router(rate_limit_router, prefix="/v1")
    app.include_router(health_router)

    return app
