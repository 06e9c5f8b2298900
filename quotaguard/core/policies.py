"""Rate limit policy registry.

Maps a limit type (e.g. ``"login"``) to an immutable policy describing the
quota, the fixed window length and the optional hard-block escalation.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from quotaguard.core.config import PolicyOverride, settings
from quotaguard.core.errors import UnknownPolicyError


@dataclass(frozen=True)
class RateLimitPolicy:
    """Quota configuration for a single limit type.

    Attributes:
        quota: Calls allowed per window.
        window_seconds: Fixed window length.
        block_seconds: When set, exceeding the quota blocks the key for this
            long instead of waiting for the window to end.
        fail_closed: Deny (rather than allow) when the quota store fails.
    """

    quota: int
    window_seconds: int
    block_seconds: int | None = None
    fail_closed: bool = False

    def __post_init__(self) -> None:
        if self.quota < 1:
            raise ValueError("quota must be >= 1")
        if self.window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")
        if self.block_seconds is not None and self.block_seconds < 1:
            raise ValueError("block_seconds must be >= 1 when set")


DEFAULT_POLICIES: Mapping[str, RateLimitPolicy] = MappingProxyType(
    {
        "ai-generation": RateLimitPolicy(quota=10, window_seconds=60, block_seconds=60),
        "chat": RateLimitPolicy(quota=30, window_seconds=60),
        "general": RateLimitPolicy(quota=100, window_seconds=60),
        # Expensive operation: hourly window, 5 minute block once exceeded
        "grading": RateLimitPolicy(quota=20, window_seconds=3600, block_seconds=300),
        # Anti brute-force
        "login": RateLimitPolicy(quota=5, window_seconds=60, block_seconds=300),
        "wizdi-api": RateLimitPolicy(quota=50, window_seconds=60),
    }
)


class PolicyRegistry:
    """Read-only lookup table of rate limit policies."""

    def __init__(self, policies: Mapping[str, RateLimitPolicy]) -> None:
        self._policies = MappingProxyType(dict(policies))

    @classmethod
    def from_overrides(
        cls,
        overrides: Mapping[str, PolicyOverride] | None = None,
        *,
        base: Mapping[str, RateLimitPolicy] = DEFAULT_POLICIES,
    ) -> "PolicyRegistry":
        """Build a registry from the defaults plus configured overrides."""
        policies = dict(base)
        for limit_type, override in (overrides or {}).items():
            policies[limit_type] = RateLimitPolicy(
                quota=override.quota,
                window_seconds=override.window_seconds,
                block_seconds=override.block_seconds,
                fail_closed=override.fail_closed,
            )
        return cls(policies)

    def resolve(self, limit_type: str) -> RateLimitPolicy:
        """Return the policy registered for ``limit_type``.

        Raises:
            UnknownPolicyError: If the limit type is not registered.
        """
        try:
            return self._policies[limit_type]
        except KeyError:
            raise UnknownPolicyError(
                code="unknown_rate_limit_type",
                message=f"Unknown rate limit type: {limit_type}",
                details={"limit_type": limit_type},
            ) from None

    def limit_types(self) -> list[str]:
        return sorted(self._policies)

    def items(self) -> list[tuple[str, RateLimitPolicy]]:
        return sorted(self._policies.items())

    def __contains__(self, limit_type: object) -> bool:
        return limit_type in self._policies


_registry: PolicyRegistry | None = None


def get_policy_registry() -> PolicyRegistry:
    """Return the process-wide registry built from settings."""

    global _registry

    if _registry is None:
        _registry = PolicyRegistry.from_overrides(settings.rate_limit.policies)
    return _registry


def resolve(limit_type: str) -> RateLimitPolicy:
    """Resolve a policy from the process-wide registry."""
    return get_policy_registry().resolve(limit_type)
