from __future__ import annotations

from fastapi import APIRouter

from quotaguard.core.config import settings

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check.

    Deliberately does not touch the quota store: an unreachable store only
    degrades enforcement (requests fail open), it does not make the service
    unhealthy.

    Returns:
        dict: ``status`` plus the configured quota store backend.
    """

    return {"status": "ok", "rate_limit_backend": settings.rate_limit.backend}
