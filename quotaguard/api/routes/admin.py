"""Administrative quota endpoints.

Plain ``def`` handlers: FastAPI runs them in its threadpool, so blocking
store calls do not stall the event loop.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from quotaguard.core.auth import verify_admin_api_key
from quotaguard.core.errors import UnknownPolicyError
from quotaguard.core.rate_limit import (
    cleanup_expired_rate_limits,
    get_quota_limiter,
    reset_rate_limit,
)
from quotaguard.schemas.rate_limit import (
    CleanupResponse,
    PolicyResponse,
    RateLimitStatusResponse,
    ResetRateLimitRequest,
    ResetRateLimitResponse,
)

router = APIRouter(
    prefix="/admin/rate-limits",
    tags=["Admin"],
    dependencies=[Depends(verify_admin_api_key)],
)


def _unknown_policy(exc: UnknownPolicyError) -> HTTPException:
    return HTTPException(status_code=404, detail=exc.message)


@router.post("/reset", response_model=ResetRateLimitResponse)
def reset(payload: ResetRateLimitRequest) -> ResetRateLimitResponse:
    """Delete the quota entry for one key. Idempotent.

    Raises:
        HTTPException: 404 for an unknown limit type.
    """
    try:
        reset_rate_limit(payload.identifier, payload.limit_type)
    except UnknownPolicyError as exc:
        raise _unknown_policy(exc) from exc
    return ResetRateLimitResponse(identifier=payload.identifier, limit_type=payload.limit_type)


@router.post("/cleanup", response_model=CleanupResponse)
def cleanup() -> CleanupResponse:
    """Remove one batch of entries older than the retention horizon."""
    return CleanupResponse(removed=cleanup_expired_rate_limits())


@router.get("/status", response_model=RateLimitStatusResponse)
def status(
    identifier: str = Query(..., min_length=1),
    limit_type: str = Query(..., min_length=1),
) -> RateLimitStatusResponse:
    """Report a key's quota state without consuming any quota."""
    try:
        current = get_quota_limiter().status(identifier, limit_type)
    except UnknownPolicyError as exc:
        raise _unknown_policy(exc) from exc
    return RateLimitStatusResponse(
        identifier=identifier,
        limit_type=limit_type,
        limit=current.limit,
        remaining=current.remaining,
        reset_at=current.reset_at,
        blocked=current.blocked,
    )


@router.get("/policies", response_model=list[PolicyResponse])
def policies() -> list[PolicyResponse]:
    """List registered policies."""
    return [
        PolicyResponse(
            limit_type=limit_type,
            quota=policy.quota,
            window_seconds=policy.window_seconds,
            block_seconds=policy.block_seconds,
            fail_closed=policy.fail_closed,
        )
        for limit_type, policy in get_quota_limiter().registry.items()
    ]
