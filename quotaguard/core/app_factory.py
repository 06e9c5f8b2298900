"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) to
improve testability and separation of concerns compared to a monolithic main.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from quotaguard.api.routes import admin_router, health_router, quota_router
from quotaguard.core.config import settings
from quotaguard.core.exception_handlers import setup_exception_handlers
from quotaguard.core.logging import configure_logging
from quotaguard.core.middleware import request_id_middleware
from quotaguard.core.openapi import apply_openapi_customizations
from quotaguard.core.rate_limit import close_quota_store


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    close_quota_store()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="QuotaGuard",
        description=(
            "Distributed per-caller quota enforcement. Fixed-window quotas with "
            "optional hard blocks, kept in a shared transactional store so limits "
            "hold across any number of instances. Fails open when the store is "
            "unreachable."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(quota_router, prefix="/v1")
    app.include_router(admin_router)
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags)
    apply_openapi_customizations(app)

    return app
