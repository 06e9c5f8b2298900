"""Rate limiting dependency for FastAPI routes.

This module wires the quota limiter into the HTTP layer.

Design goals:
- Minimal coupling: API routes depend on a dependency function only.
- Swap-friendly: the quota store (memory or Redis) sits behind an abstract
  interface; the limiter itself keeps no per-key state.
- Availability first: store failures and unexpected adapter errors let the
  request through; only a genuinely exhausted quota produces a 429.

Rate limiting strategy:
- Fixed-window quota per (limit type, caller).
- Authenticated callers are keyed by user id, anonymous ones by hashed IP.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from fastapi import Request, Response

from quotaguard.adapters.quota_store.base import AbstractQuotaStore
from quotaguard.adapters.quota_store.factory import create_quota_store
from quotaguard.core.config import settings
from quotaguard.core.errors import AdapterInternalError, RateLimitExceededError
from quotaguard.core.identity import caller_from_request, resolve_identifier
from quotaguard.core.messages import rate_limit_message
from quotaguard.core.policies import PolicyRegistry, RateLimitPolicy, get_policy_registry
from quotaguard.services.limiter import QuotaLimiter, RateLimitDecision, RateLimitKey
from quotaguard.services.maintenance import QuotaMaintenance

logger = logging.getLogger(__name__)

IdentifierResolver = Callable[[Request], str]

_store: AbstractQuotaStore | None = None
_limiter: QuotaLimiter | None = None
_maintenance: QuotaMaintenance | None = None


def get_quota_store() -> AbstractQuotaStore:
    """Return the process-wide quota store (a connection handle, not a cache)."""

    global _store

    if _store is None:
        _store = create_quota_store(settings.rate_limit)
    return _store


def get_quota_limiter() -> QuotaLimiter:
    """Return the process-wide limiter bound to the configured store."""

    global _limiter

    if _limiter is None:
        _limiter = QuotaLimiter(get_quota_store(), registry=get_policy_registry())
    return _limiter


def get_quota_maintenance() -> QuotaMaintenance:
    """Return the cleanup job bound to the configured store."""

    global _maintenance

    if _maintenance is None:
        _maintenance = QuotaMaintenance(
            get_quota_store(),
            retention_seconds=settings.rate_limit.retention_hours * 3600,
            batch_size=settings.rate_limit.cleanup_batch_size,
        )
    return _maintenance


def use_quota_store(
    store: AbstractQuotaStore,
    *,
    registry: PolicyRegistry | None = None,
    clock: Callable[[], float] | None = None,
) -> QuotaLimiter:
    """Bind the module-level limiter and cleanup job to ``store``.

    Used by tests and embedding applications that build their own store.
    """

    global _store, _limiter, _maintenance

    clock_kwargs = {"clock": clock} if clock is not None else {}
    _store = store
    _limiter = QuotaLimiter(store, registry=registry or get_policy_registry(), **clock_kwargs)
    _maintenance = QuotaMaintenance(
        store,
        retention_seconds=settings.rate_limit.retention_hours * 3600,
        batch_size=settings.rate_limit.cleanup_batch_size,
        **clock_kwargs,
    )
    return _limiter


def close_quota_store() -> None:
    """Close the store and forget module-level instances."""

    global _store, _limiter, _maintenance

    if _store is not None:
        _store.close()
    _store = None
    _limiter = None
    _maintenance = None


def reset_rate_limit(identifier: str, limit_type: str) -> None:
    """Administrative reset: delete the entry for (identifier, limit type)."""

    get_quota_limiter().reset(identifier, limit_type)


def cleanup_expired_rate_limits() -> int:
    """Remove one batch of entries older than the retention horizon."""

    return get_quota_maintenance().cleanup()


def _decide(
    request: Request,
    limiter: QuotaLimiter,
    limit_type: str,
    policy: RateLimitPolicy,
    identifier_resolver: IdentifierResolver | None,
) -> tuple[str, RateLimitDecision]:
    try:
        if identifier_resolver is not None:
            identifier = identifier_resolver(request)
        else:
            identifier = resolve_identifier(
                caller_from_request(request),
                secret=settings.rate_limit.identity_hash_secret,
            )
        return identifier, limiter.check_and_consume(RateLimitKey(limit_type, identifier), policy)
    except Exception as exc:
        raise AdapterInternalError(
            code="adapter_internal_error",
            message="Rate limit decision failed",
            details={"limit_type": limit_type, "context": {"error_type": type(exc).__name__}},
        ) from exc


async def apply_rate_limit(
    request: Request,
    response: Response,
    limit_type: str | None = None,
    *,
    identifier_resolver: IdentifierResolver | None = None,
) -> RateLimitDecision | None:
    """Consume one unit of quota for the current request.

    Sets X-RateLimit-* headers on ``response`` when allowed.

    Args:
        request: FastAPI request.
        response: Response whose headers are merged into the final response.
        limit_type: Policy name; defaults to the configured default policy.
        identifier_resolver: Optional override of the identity resolver.

    Returns:
        The decision, or None when rate limiting is disabled or the adapter
        failed open.

    Raises:
        RateLimitExceededError: When the quota is exhausted (rendered as 429).
        UnknownPolicyError: When ``limit_type`` is not registered.
    """

    if not settings.rate_limit.enabled:
        return None

    limit_type = limit_type or settings.rate_limit.default_limit_type
    limiter = get_quota_limiter()
    policy = limiter.registry.resolve(limit_type)

    loop = asyncio.get_running_loop()
    try:
        identifier, decision = await loop.run_in_executor(
            None, _decide, request, limiter, limit_type, policy, identifier_resolver
        )
    except AdapterInternalError as exc:
        logger.error(
            "rate_limit.adapter_error",
            extra={
                "limit_type": limit_type,
                "error_code": exc.code,
                "error_type": type(exc.__cause__).__name__,
                "request_path": request.url.path,
            },
        )
        return None

    headers = decision.to_headers() if settings.rate_limit.include_headers else {}

    if decision.allowed:
        logger.info(
            "rate_limit.allowed",
            extra={
                "key": identifier,
                "limit_type": limit_type,
                "limit": decision.limit,
                "remaining": decision.remaining,
                "degraded": decision.degraded,
            },
        )
        response.headers.update(headers)
        return decision

    retry_after = decision.retry_after_seconds or policy.window_seconds
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key": identifier,
            "limit_type": limit_type,
            "limit": decision.limit,
            "retry_after_s": retry_after,
            "degraded": decision.degraded,
        },
    )

    headers["Retry-After"] = str(retry_after)
    raise RateLimitExceededError(
        message=rate_limit_message(limit_type, retry_after, settings.rate_limit.locale),
        limit=decision.limit,
        retry_after=retry_after,
        reset_at=decision.reset_at.isoformat(),
        headers=headers,
    )


def rate_limited(
    limit_type: str | None = None,
    *,
    identifier_resolver: IdentifierResolver | None = None,
) -> Callable[[Request, Response], Awaitable[None]]:
    """Build a FastAPI dependency enforcing the ``limit_type`` policy.

    Usage:
        @router.post("/login", dependencies=[Depends(rate_limited("login"))])
        async def login(): ...

    Raises:
        UnknownPolicyError: Immediately, if ``limit_type`` is not registered.
    """

    if limit_type is not None:
        get_policy_registry().resolve(limit_type)

    async def enforce(request: Request, response: Response) -> None:
        await apply_rate_limit(
            request,
            response,
            limit_type,
            identifier_resolver=identifier_resolver,
        )

    return enforce


enforce_rate_limit = rate_limited()
