"""Distributed fixed-window quota limiter.

The limiter is a stateless function over the quota store: every decision is
computed inside a single store transaction and nothing about a key's usage is
remembered between calls. It handles:
- Hard blocks that outlive the window once a quota is exceeded
- Fixed-window resets (the window restarts wholesale once elapsed)
- Fail-open (or per-policy fail-closed) fallback on store failures
- Read-only status and administrative reset
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from quotaguard.adapters.quota_store.base import AbstractQuotaStore, RateLimitEntry
from quotaguard.core.errors import QuotaStoreError
from quotaguard.core.policies import PolicyRegistry, RateLimitPolicy, get_policy_registry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitKey:
    """Identity of a quota counter: one per (limit type, caller)."""

    limit_type: str
    identifier: str

    @property
    def storage_key(self) -> str:
        return f"{self.limit_type}:{self.identifier}"


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a check-and-consume call.

    Attributes:
        allowed: Whether the call may proceed.
        limit: Policy quota.
        remaining: Calls left in the current window (0 when denied).
        reset_at: When the window or block ends (UTC).
        retry_after_seconds: Suggested wait when denied.
        degraded: True when the store failed and a fallback was returned.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime
    retry_after_seconds: int | None = None
    degraded: bool = False

    def to_headers(self) -> dict[str, str]:
        """Generate X-RateLimit-* headers (plus Retry-After when denied)."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": self.reset_at.isoformat(),
        }
        if not self.allowed and self.retry_after_seconds is not None:
            headers["Retry-After"] = str(self.retry_after_seconds)
        return headers


@dataclass(frozen=True)
class RateLimitStatus:
    """Read-only view of a key's quota state."""

    limit: int
    remaining: int
    reset_at: datetime | None
    blocked: bool


def _to_datetime(epoch_seconds: float) -> datetime:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)


def _seconds_until(target: float, now: float) -> int:
    return max(1, math.ceil(target - now))


def evaluate(
    entry: RateLimitEntry | None,
    policy: RateLimitPolicy,
    now: float,
) -> tuple[RateLimitEntry | None, RateLimitDecision]:
    """Pure quota transition for one call.

    Args:
        entry: Current stored entry, or None for a never-seen key.
        policy: Policy governing the key.
        now: Current UNIX time in seconds.

    Returns:
        Tuple of (entry to write or None for no write, decision).
    """

    # 1. Hard block wins over everything else
    if entry is not None and entry.blocked_until is not None and entry.blocked_until > now:
        return None, RateLimitDecision(
            allowed=False,
            limit=policy.quota,
            remaining=0,
            reset_at=_to_datetime(entry.blocked_until),
            retry_after_seconds=_seconds_until(entry.blocked_until, now),
        )

    # 2. New (or first) window: replace the entry wholesale
    if entry is None or entry.window_start < now - policy.window_seconds:
        return RateLimitEntry(count=1, window_start=now), RateLimitDecision(
            allowed=True,
            limit=policy.quota,
            remaining=policy.quota - 1,
            reset_at=_to_datetime(now + policy.window_seconds),
        )

    window_reset = entry.window_start + policy.window_seconds

    # 3. Quota exhausted in this window
    if entry.count >= policy.quota:
        if policy.block_seconds:
            blocked_until = now + policy.block_seconds
            blocked = RateLimitEntry(
                count=entry.count,
                window_start=entry.window_start,
                blocked_until=blocked_until,
            )
            return blocked, RateLimitDecision(
                allowed=False,
                limit=policy.quota,
                remaining=0,
                reset_at=_to_datetime(blocked_until),
                retry_after_seconds=policy.block_seconds,
            )
        return None, RateLimitDecision(
            allowed=False,
            limit=policy.quota,
            remaining=0,
            reset_at=_to_datetime(window_reset),
            retry_after_seconds=_seconds_until(window_reset, now),
        )

    # 4. Consume one unit
    consumed = RateLimitEntry(
        count=entry.count + 1,
        window_start=entry.window_start,
        blocked_until=entry.blocked_until,
    )
    return consumed, RateLimitDecision(
        allowed=True,
        limit=policy.quota,
        remaining=policy.quota - entry.count - 1,
        reset_at=_to_datetime(window_reset),
    )


class QuotaLimiter:
    """Check-and-consume quota enforcement over a shared store.

    Example:
        >>> from quotaguard.adapters.quota_store.in_memory import InMemoryQuotaStore
        >>> limiter = QuotaLimiter(InMemoryQuotaStore())
        >>> limiter.consume("user:42", "login").remaining
        4
    """

    def __init__(
        self,
        store: AbstractQuotaStore,
        *,
        registry: PolicyRegistry | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._registry = registry or get_policy_registry()
        self._clock = clock

    @property
    def store(self) -> AbstractQuotaStore:
        return self._store

    @property
    def registry(self) -> PolicyRegistry:
        return self._registry

    def _fallback(self, policy: RateLimitPolicy, now: float) -> RateLimitDecision:
        reset_at = _to_datetime(now + policy.window_seconds)
        if policy.fail_closed:
            return RateLimitDecision(
                allowed=False,
                limit=policy.quota,
                remaining=0,
                reset_at=reset_at,
                retry_after_seconds=policy.window_seconds,
                degraded=True,
            )
        return RateLimitDecision(
            allowed=True,
            limit=policy.quota,
            remaining=policy.quota,
            reset_at=reset_at,
            degraded=True,
        )

    def check_and_consume(self, key: RateLimitKey, policy: RateLimitPolicy) -> RateLimitDecision:
        """Atomically evaluate and consume one unit of quota for ``key``.

        Store failures never propagate: they are logged and converted into an
        allow decision (or a deny for ``fail_closed`` policies).
        """

        now = self._clock()
        try:
            return self._store.run_transaction(
                key.storage_key,
                lambda entry: evaluate(entry, policy, now),
            )
        except QuotaStoreError as exc:
            logger.error(
                "rate_limit.store_error",
                extra={
                    "key": key.identifier,
                    "limit_type": key.limit_type,
                    "error_code": exc.code,
                    "error_type": type(exc).__name__,
                    "fail_closed": policy.fail_closed,
                },
            )
            return self._fallback(policy, now)

    def consume(self, identifier: str, limit_type: str) -> RateLimitDecision:
        """Resolve the policy for ``limit_type`` and consume one unit.

        Raises:
            UnknownPolicyError: If ``limit_type`` is not registered.
        """
        policy = self._registry.resolve(limit_type)
        return self.check_and_consume(RateLimitKey(limit_type, identifier), policy)

    def status(self, identifier: str, limit_type: str) -> RateLimitStatus:
        """Report a key's quota state without consuming.

        Raises:
            UnknownPolicyError: If ``limit_type`` is not registered.
        """
        policy = self._registry.resolve(limit_type)
        key = RateLimitKey(limit_type, identifier)
        fresh = RateLimitStatus(limit=policy.quota, remaining=policy.quota, reset_at=None, blocked=False)

        try:
            entry = self._store.read(key.storage_key)
        except QuotaStoreError as exc:
            logger.error(
                "rate_limit.status_error",
                extra={
                    "key": identifier,
                    "limit_type": limit_type,
                    "error_code": exc.code,
                    "error_type": type(exc).__name__,
                },
            )
            return fresh

        if entry is None:
            return fresh

        now = self._clock()
        if entry.blocked_until is not None and entry.blocked_until > now:
            return RateLimitStatus(
                limit=policy.quota,
                remaining=0,
                reset_at=_to_datetime(entry.blocked_until),
                blocked=True,
            )
        if entry.window_start < now - policy.window_seconds:
            return fresh

        return RateLimitStatus(
            limit=policy.quota,
            remaining=max(0, policy.quota - entry.count),
            reset_at=_to_datetime(entry.window_start + policy.window_seconds),
            blocked=False,
        )

    def reset(self, identifier: str, limit_type: str) -> None:
        """Delete the entry for a key (administrative override).

        Idempotent. Store failures propagate so operators see them.

        Raises:
            UnknownPolicyError: If ``limit_type`` is not registered.
            QuotaStoreError: If the store fails.
        """
        self._registry.resolve(limit_type)
        key = RateLimitKey(limit_type, identifier)
        try:
            self._store.delete(key.storage_key)
        except QuotaStoreError as exc:
            logger.error(
                "rate_limit.reset_failed",
                extra={"key": identifier, "limit_type": limit_type, "error_code": exc.code},
            )
            raise
        logger.info("rate_limit.reset", extra={"key": identifier, "limit_type": limit_type})
