"""Quota store adapters.

This package provides a small abstraction layer over any store offering
atomic single-key transactions and range deletes, so the limiter stays a
stateless function over shared state. The in-memory store suits tests and
single-process development; Redis is the shared store for multi-instance
deployments.
"""

from quotaguard.adapters.quota_store.base import AbstractQuotaStore, RateLimitEntry
from quotaguard.adapters.quota_store.factory import create_quota_store

__all__ = ["AbstractQuotaStore", "RateLimitEntry", "create_quota_store"]
