from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, HTTPException, Request, Response

from quotaguard.core.errors import UnknownPolicyError
from quotaguard.core.rate_limit import apply_rate_limit, get_quota_limiter
from quotaguard.schemas.rate_limit import ConsumeResponse

router = APIRouter(tags=["Quota"])


@router.post("/rate-limits/{limit_type}/consume", response_model=ConsumeResponse)
async def consume(limit_type: str, request: Request, response: Response) -> ConsumeResponse:
    """Consume one unit of the ``limit_type`` quota for the calling identity.

    Lets services that cannot embed the dependency delegate their quota check.
    A denied call is answered with 429 by the rate limit exception handler.

    Raises:
        HTTPException: 404 for an unknown limit type.
    """
    try:
        policy = get_quota_limiter().registry.resolve(limit_type)
        decision = await apply_rate_limit(request, response, limit_type)
    except UnknownPolicyError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc

    if decision is None:
        # Enforcement disabled or the adapter failed open
        return ConsumeResponse(
            allowed=True,
            limit_type=limit_type,
            limit=policy.quota,
            remaining=policy.quota,
            reset_at=datetime.now(timezone.utc) + timedelta(seconds=policy.window_seconds),
            degraded=True,
        )

    return ConsumeResponse(
        allowed=decision.allowed,
        limit_type=limit_type,
        limit=decision.limit,
        remaining=decision.remaining,
        reset_at=decision.reset_at,
        degraded=decision.degraded,
    )
