"""Redis-backed quota store for multi-instance deployments.

Each entry is a hash ``<prefix><key>`` with ``count``, ``window_start`` and
``blocked_until`` fields. A sorted set ``<prefix>index`` scores every key by
its window start so stale entries can be found without scanning the keyspace.

Transactions use WATCH/MULTI/EXEC: the entry is read under WATCH, the
transition is computed client-side and the write is committed only if no
other client touched the key in between. Conflicts are retried a bounded
number of times.

The cleanup script touches keys derived from index members, so it is not
Redis Cluster safe; run against a single primary.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable
from urllib.parse import urlparse

import redis
from redis.exceptions import RedisError, TimeoutError as RedisTimeoutError, WatchError

from quotaguard.adapters.quota_store.base import AbstractQuotaStore, RateLimitEntry, T, TransactionFn
from quotaguard.core.errors import (
    StoreUnavailableError,
    TransactionAbortedError,
    TransactionTimeoutError,
)

logger = logging.getLogger(__name__)

# KEYS[1] = index, ARGV = cutoff, batch limit, key prefix.
# Candidates are re-checked against the hash so an entry whose window was
# restarted after the index read is kept.
_CLEANUP_SCRIPT = """
local index = KEYS[1]
local cutoff = tonumber(ARGV[1])
local candidates = redis.call('ZRANGEBYSCORE', index, '-inf', '(' .. ARGV[1], 'LIMIT', 0, tonumber(ARGV[2]))
local removed = 0
for _, member in ipairs(candidates) do
    local name = ARGV[3] .. member
    local window_start = redis.call('HGET', name, 'window_start')
    if not window_start then
        redis.call('ZREM', index, member)
    elseif tonumber(window_start) < cutoff then
        redis.call('DEL', name)
        redis.call('ZREM', index, member)
        removed = removed + 1
    else
        redis.call('ZADD', index, tonumber(window_start), member)
    end
end
return removed
"""


def sanitize_url(url: str) -> str:
    """Remove credentials from a Redis URL for safe logging."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return "redis://***"
    if parsed.username or parsed.password:
        safe_host = parsed.hostname or "localhost"
        safe_port = f":{parsed.port}" if parsed.port else ""
        return f"{parsed.scheme}://{safe_host}{safe_port}{parsed.path}"
    return url


class RedisQuotaStore(AbstractQuotaStore):
    """Quota store on a shared Redis primary.

    Example:
        >>> store = RedisQuotaStore.from_url("redis://localhost:6379/0")
        >>> store.read("login:user:42") is None
        True
    """

    def __init__(
        self,
        client: redis.Redis,
        *,
        key_prefix: str = "quotaguard:rl:",
        max_retries: int = 10,
        timeout_seconds: float = 2.0,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the store around an existing client.

        Args:
            client: Redis client created with ``decode_responses=True``.
            key_prefix: Prefix for every key written by the store.
            max_retries: WATCH conflicts tolerated before aborting.
            timeout_seconds: Deadline for one transaction.
            monotonic: Monotonic time source used for the deadline.
        """
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")

        self._client = client
        self._prefix = key_prefix
        self._index = f"{key_prefix}index"
        self._max_retries = max_retries
        self._timeout_seconds = timeout_seconds
        self._monotonic = monotonic
        self._cleanup = client.register_script(_CLEANUP_SCRIPT)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        socket_timeout: float = 1.0,
        **kwargs: Any,
    ) -> "RedisQuotaStore":
        """Create a store with its own connection pool."""
        client = redis.Redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            decode_responses=True,
        )
        logger.info("quota_store.redis_configured", extra={"redis_url": sanitize_url(url)})
        return cls(client, **kwargs)

    def _name(self, key: str) -> str:
        return f"{self._prefix}{key}"

    @staticmethod
    def _decode(raw: dict[str, str] | None) -> RateLimitEntry | None:
        if not raw:
            return None
        blocked_until = raw.get("blocked_until")
        return RateLimitEntry(
            count=int(raw["count"]),
            window_start=float(raw["window_start"]),
            blocked_until=float(blocked_until) if blocked_until else None,
        )

    @staticmethod
    def _encode(entry: RateLimitEntry) -> dict[str, str]:
        # Entries are replaced wholesale; an empty blocked_until clears a block.
        return {
            "count": str(entry.count),
            "window_start": repr(entry.window_start),
            "blocked_until": "" if entry.blocked_until is None else repr(entry.blocked_until),
        }

    def _store_error(self, exc: RedisError, operation: str, key: str | None = None) -> Exception:
        details: dict[str, Any] = {"backend": "redis", "context": {"operation": operation}}
        if key is not None:
            details["key"] = key
        if isinstance(exc, RedisTimeoutError):
            return TransactionTimeoutError(
                code="transaction_timeout",
                message=f"Redis {operation} timed out",
                details=details,  # type: ignore[arg-type]
            )
        return StoreUnavailableError(
            code="store_unavailable",
            message=f"Redis {operation} failed: {type(exc).__name__}",
            details=details,  # type: ignore[arg-type]
        )

    def run_transaction(self, key: str, apply: TransactionFn[T]) -> T:
        name = self._name(key)
        deadline = self._monotonic() + self._timeout_seconds

        try:
            with self._client.pipeline() as pipe:
                for attempt in range(1, self._max_retries + 1):
                    if self._monotonic() > deadline:
                        raise TransactionTimeoutError(
                            code="transaction_timeout",
                            message="Quota store transaction exceeded its deadline",
                            details={"key": key, "backend": "redis"},
                        )
                    try:
                        pipe.watch(name)
                        current = self._decode(pipe.hgetall(name))
                        new_entry, result = apply(current)
                        if new_entry is None:
                            pipe.reset()
                            return result
                        pipe.multi()
                        pipe.hset(name, mapping=self._encode(new_entry))
                        pipe.zadd(self._index, {key: new_entry.window_start})
                        pipe.execute()
                        return result
                    except WatchError:
                        logger.debug(
                            "quota_store.cas_conflict",
                            extra={"backend": "redis", "attempt": attempt},
                        )
        except RedisError as exc:
            raise self._store_error(exc, "transaction", key) from exc

        raise TransactionAbortedError(
            code="transaction_aborted",
            message="Quota store contention persisted past the retry bound",
            details={"key": key, "backend": "redis"},
        )

    def read(self, key: str) -> RateLimitEntry | None:
        try:
            raw = self._client.hgetall(self._name(key))
        except RedisError as exc:
            raise self._store_error(exc, "read", key) from exc
        return self._decode(raw)

    def delete(self, key: str) -> None:
        try:
            with self._client.pipeline(transaction=True) as pipe:
                pipe.delete(self._name(key))
                pipe.zrem(self._index, key)
                pipe.execute()
        except RedisError as exc:
            raise self._store_error(exc, "delete", key) from exc

    def delete_older_than(self, cutoff: float, limit: int) -> int:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        try:
            removed = self._cleanup(keys=[self._index], args=[repr(cutoff), limit, self._prefix])
        except RedisError as exc:
            raise self._store_error(exc, "cleanup") from exc
        return int(removed)

    def close(self) -> None:
        try:
            self._client.close()
        except RedisError as exc:
            logger.warning("quota_store.close_failed", extra={"error_type": type(exc).__name__})
