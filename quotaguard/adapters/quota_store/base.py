"""Quota store interfaces.

The limiter depends on this abstraction (not the concrete implementation)
so storage backends can be swapped without touching the algorithm.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class RateLimitEntry:
    """Persisted quota state for a single key.

    Attributes:
        count: Calls counted in the current window.
        window_start: UNIX epoch seconds when the current window began.
        blocked_until: UNIX epoch seconds until which the key is hard-blocked.
    """

    count: int
    window_start: float
    blocked_until: float | None = None


# Given the current entry (or None), return the entry to write (None leaves
# the store untouched) and the value to hand back to the caller.
TransactionFn = Callable[[RateLimitEntry | None], tuple[RateLimitEntry | None, T]]


class AbstractQuotaStore(ABC):
    """Interface for quota stores.

    Implementations must raise a ``QuotaStoreError`` subclass for genuine
    store failures and treat a missing entry as ``None`` / a no-op.
    """

    @abstractmethod
    def run_transaction(self, key: str, apply: TransactionFn[T]) -> T:
        """Atomically read the entry for ``key`` and apply a conditional write.

        ``apply`` may be invoked more than once when a concurrent writer wins
        the race; it must be a pure function of the entry it receives.

        Args:
            key: Storage key (``<limitType>:<identifier>``).
            apply: Pure transition function.

        Returns:
            The result produced by the successful invocation of ``apply``.

        Raises:
            StoreUnavailableError: Store unreachable or retries exhausted.
            TransactionTimeoutError: Transaction exceeded its deadline.
        """
        raise NotImplementedError

    @abstractmethod
    def read(self, key: str) -> RateLimitEntry | None:
        """Return the entry for ``key`` or None when absent."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete the entry for ``key``; deleting a missing key is not an error."""
        raise NotImplementedError

    @abstractmethod
    def delete_older_than(self, cutoff: float, limit: int) -> int:
        """Delete up to ``limit`` entries whose window started before ``cutoff``.

        Returns:
            Number of entries removed.
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release connections held by the store."""
        return None
