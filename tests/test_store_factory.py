"""Tests for building the configured quota store."""

import pytest

from quotaguard.adapters.quota_store.factory import create_quota_store
from quotaguard.adapters.quota_store.in_memory import InMemoryQuotaStore
from quotaguard.adapters.quota_store.redis import RedisQuotaStore
from quotaguard.core.config import RateLimitSettings
from quotaguard.core.errors import ValidationAppError


def test_memory_backend() -> None:
    store = create_quota_store(RateLimitSettings.model_construct(backend="memory"))

    assert isinstance(store, InMemoryQuotaStore)


def test_redis_backend_builds_client_without_connecting() -> None:
    cfg = RateLimitSettings.model_construct(backend="redis", redis_url="redis://localhost:6379/15")

    store = create_quota_store(cfg)

    assert isinstance(store, RedisQuotaStore)
    store.close()


def test_redis_backend_requires_url() -> None:
    cfg = RateLimitSettings.model_construct(backend="redis", redis_url=None)

    with pytest.raises(ValidationAppError) as exc_info:
        create_quota_store(cfg)

    assert exc_info.value.code == "redis_url_missing"


def test_unsupported_backend() -> None:
    # Bypasses validation, as a hand-built settings object would
    cfg = RateLimitSettings.model_construct(backend="sqlite")

    with pytest.raises(ValidationAppError) as exc_info:
        create_quota_store(cfg)

    assert exc_info.value.code == "unsupported_store_backend"
    assert exc_info.value.details == {"backend": "sqlite"}


def test_settings_reject_redis_without_url() -> None:
    with pytest.raises(ValueError):
        RateLimitSettings(backend="redis", redis_url=None)
