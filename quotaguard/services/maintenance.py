"""Periodic removal of stale quota entries.

Only the retention horizon is considered: an entry is stale once its window
started more than ``retention_seconds`` ago. Window and block expiry are the
limiter's business and are never evaluated here.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from quotaguard.adapters.quota_store.base import AbstractQuotaStore
from quotaguard.core.errors import QuotaStoreError

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 24 * 60 * 60
DEFAULT_BATCH_SIZE = 500


class QuotaMaintenance:
    """Batch cleanup of entries older than the retention horizon."""

    def __init__(
        self,
        store: AbstractQuotaStore,
        *,
        retention_seconds: int = DEFAULT_RETENTION_SECONDS,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if retention_seconds < 1:
            raise ValueError("retention_seconds must be >= 1")
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")

        self._store = store
        self._retention_seconds = retention_seconds
        self._batch_size = batch_size
        self._clock = clock

    def cleanup(self) -> int:
        """Remove one batch of stale entries.

        Safe to run concurrently with itself and with live traffic.

        Returns:
            Number of entries removed (0 once none remain).

        Raises:
            QuotaStoreError: If the store fails.
        """

        cutoff = self._clock() - self._retention_seconds
        try:
            removed = self._store.delete_older_than(cutoff, self._batch_size)
        except QuotaStoreError as exc:
            logger.error(
                "rate_limit.cleanup_failed",
                extra={"error_code": exc.code, "error_type": type(exc).__name__},
            )
            raise

        if removed:
            logger.info(
                "rate_limit.cleanup",
                extra={"removed": removed, "batch_size": self._batch_size},
            )
        return removed

    def cleanup_all(self, max_batches: int | None = None) -> int:
        """Run batches until a batch removes nothing (or ``max_batches`` ran)."""

        total = 0
        batches = 0
        while max_batches is None or batches < max_batches:
            removed = self.cleanup()
            batches += 1
            total += removed
            if removed < self._batch_size:
                break
        return total
