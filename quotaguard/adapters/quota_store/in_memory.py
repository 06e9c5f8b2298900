"""In-memory quota store with optimistic compare-and-swap transactions.

Notes:
- Per-process only: running multiple workers or instances multiplies the
  effective limit. Use the Redis store for shared state.
- Thread-safe: the lock guards only snapshot and swap; transition functions
  run outside it and are retried on version conflicts.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from typing import Callable

from quotaguard.adapters.quota_store.base import AbstractQuotaStore, RateLimitEntry, T, TransactionFn
from quotaguard.core.errors import TransactionAbortedError, TransactionTimeoutError

logger = logging.getLogger(__name__)

_ABSENT_VERSION = 0


class InMemoryQuotaStore(AbstractQuotaStore):
    """Quota store keeping versioned entries in a process-local dict.

    Every successful write stamps the entry with a fresh version drawn from a
    global counter, so a version observed once is never reused (no ABA).
    """

    def __init__(
        self,
        *,
        max_retries: int = 10,
        timeout_seconds: float = 2.0,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the in-memory store.

        Args:
            max_retries: Compare-and-swap attempts before aborting.
            timeout_seconds: Deadline for one transaction.
            monotonic: Monotonic time source used for the deadline.

        Raises:
            ValueError: If max_retries or timeout_seconds are invalid.
        """
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")

        self._max_retries = max_retries
        self._timeout_seconds = timeout_seconds
        self._monotonic = monotonic
        self._lock = threading.Lock()
        self._versions = itertools.count(1)
        self._entries: dict[str, tuple[int, RateLimitEntry]] = {}

    def _snapshot(self, key: str) -> tuple[int, RateLimitEntry | None]:
        with self._lock:
            stored = self._entries.get(key)
        if stored is None:
            return _ABSENT_VERSION, None
        return stored

    def _compare_and_swap(self, key: str, expected_version: int, entry: RateLimitEntry) -> bool:
        with self._lock:
            stored = self._entries.get(key)
            current_version = stored[0] if stored else _ABSENT_VERSION
            if current_version != expected_version:
                return False
            self._entries[key] = (next(self._versions), entry)
            return True

    def run_transaction(self, key: str, apply: TransactionFn[T]) -> T:
        deadline = self._monotonic() + self._timeout_seconds

        for attempt in range(1, self._max_retries + 1):
            if self._monotonic() > deadline:
                raise TransactionTimeoutError(
                    code="transaction_timeout",
                    message="Quota store transaction exceeded its deadline",
                    details={"key": key, "backend": "memory"},
                )

            version, current = self._snapshot(key)
            new_entry, result = apply(current)
            if new_entry is None:
                return result
            if self._compare_and_swap(key, version, new_entry):
                return result

            logger.debug(
                "quota_store.cas_conflict",
                extra={"backend": "memory", "attempt": attempt},
            )

        raise TransactionAbortedError(
            code="transaction_aborted",
            message="Quota store contention persisted past the retry bound",
            details={"key": key, "backend": "memory"},
        )

    def read(self, key: str) -> RateLimitEntry | None:
        return self._snapshot(key)[1]

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def delete_older_than(self, cutoff: float, limit: int) -> int:
        if limit < 1:
            raise ValueError("limit must be >= 1")

        with self._lock:
            stale = [
                key
                for key, (_, entry) in self._entries.items()
                if entry.window_start < cutoff
            ][:limit]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
