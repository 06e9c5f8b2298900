"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets environment variables before any settings are imported so the
suite never depends on a developer's .env file or a running Redis.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"

# Set default env vars that all tests might need
os.environ.setdefault("APP_ADMIN_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_ADMIN_API_KEYS", "test-admin-key-123,test-admin-key-456")
os.environ.setdefault("LOG_FORMAT", "plain")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("RATE_LIMIT_LOCALE", "en")

import pytest

from quotaguard.adapters.quota_store.in_memory import InMemoryQuotaStore
from quotaguard.core.policies import DEFAULT_POLICIES, PolicyRegistry
from quotaguard.core.rate_limit import close_quota_store, use_quota_store
from quotaguard.services.limiter import QuotaLimiter

START = 1_700_000_000.0


class FakeClock:
    """Deterministic clock used to drive window and block expiry."""

    def __init__(self, start: float = START) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryQuotaStore:
    return InMemoryQuotaStore()


@pytest.fixture
def registry() -> PolicyRegistry:
    return PolicyRegistry(DEFAULT_POLICIES)


@pytest.fixture
def limiter(store: InMemoryQuotaStore, registry: PolicyRegistry, clock: FakeClock) -> QuotaLimiter:
    return QuotaLimiter(store, registry=registry, clock=clock)


@pytest.fixture
def bound_store(store: InMemoryQuotaStore, clock: FakeClock):
    """Bind the module-level limiter used by HTTP routes to a fresh store."""
    use_quota_store(store, clock=clock)
    yield store
    close_quota_store()
