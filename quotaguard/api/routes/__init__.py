from __future__ import annotations

from quotaguard.api.routes.admin import router as admin_router
from quotaguard.api.routes.health import router as health_router
from quotaguard.api.routes.quota import router as quota_router

__all__ = ["admin_router", "health_router", "quota_router"]
