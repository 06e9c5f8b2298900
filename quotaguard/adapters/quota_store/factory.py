"""Factory for creating the configured quota store."""

from __future__ import annotations

import logging

from quotaguard.adapters.quota_store.base import AbstractQuotaStore
from quotaguard.adapters.quota_store.in_memory import InMemoryQuotaStore
from quotaguard.core.config import RateLimitSettings, settings
from quotaguard.core.errors import ValidationAppError

logger = logging.getLogger(__name__)


def create_quota_store(rate_limit_settings: RateLimitSettings | None = None) -> AbstractQuotaStore:
    """Create a quota store from configuration.

    Args:
        rate_limit_settings: Optional settings; defaults to global settings.

    Returns:
        AbstractQuotaStore: Configured store instance.

    Raises:
        ValidationAppError: If the backend is unsupported or misconfigured.
    """

    cfg = rate_limit_settings or settings.rate_limit
    backend = cfg.backend.lower()

    if backend == "memory":
        logger.warning(
            "quota_store.memory_backend",
            extra={"reason": "per_process_state", "hint": "use backend=redis across instances"},
        )
        return InMemoryQuotaStore(
            max_retries=cfg.max_transaction_retries,
            timeout_seconds=cfg.transaction_timeout_seconds,
        )

    if backend == "redis":
        if not cfg.redis_url:
            raise ValidationAppError(
                code="redis_url_missing",
                message="RATE_LIMIT_REDIS_URL is required when RATE_LIMIT_BACKEND=redis",
                details={"backend": backend},
            )
        from quotaguard.adapters.quota_store.redis import RedisQuotaStore

        return RedisQuotaStore.from_url(
            cfg.redis_url,
            socket_timeout=cfg.redis_timeout_seconds,
            key_prefix=cfg.redis_key_prefix,
            max_retries=cfg.max_transaction_retries,
            timeout_seconds=cfg.transaction_timeout_seconds,
        )

    raise ValidationAppError(
        code="unsupported_store_backend",
        message=f"Unsupported quota store backend: {cfg.backend}",
        details={"backend": cfg.backend},
    )
