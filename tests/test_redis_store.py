"""Tests for the Redis quota store against a mocked client."""

from unittest.mock import MagicMock, call

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.exceptions import WatchError

from quotaguard.adapters.quota_store.base import RateLimitEntry
from quotaguard.adapters.quota_store.redis import RedisQuotaStore, sanitize_url
from quotaguard.core.errors import (
    StoreUnavailableError,
    TransactionAbortedError,
    TransactionTimeoutError,
)

PREFIX = "test:rl:"


@pytest.fixture
def client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def pipe(client: MagicMock) -> MagicMock:
    return client.pipeline.return_value.__enter__.return_value


@pytest.fixture
def store(client: MagicMock) -> RedisQuotaStore:
    return RedisQuotaStore(client, key_prefix=PREFIX, max_retries=3)


def _bump(entry):
    count = entry.count + 1 if entry else 1
    return RateLimitEntry(count=count, window_start=100.0), count


class TestRunTransaction:
    def test_writes_hash_and_index_inside_multi(self, store, pipe) -> None:
        pipe.hgetall.return_value = {}

        assert store.run_transaction("login:user:42", _bump) == 1

        pipe.watch.assert_called_once_with("test:rl:login:user:42")
        pipe.multi.assert_called_once()
        pipe.hset.assert_called_once_with(
            "test:rl:login:user:42",
            mapping={"count": "1", "window_start": "100.0", "blocked_until": ""},
        )
        pipe.zadd.assert_called_once_with("test:rl:index", {"login:user:42": 100.0})
        pipe.execute.assert_called_once()

    def test_decodes_existing_entry(self, store, pipe) -> None:
        pipe.hgetall.return_value = {"count": "4", "window_start": "100.0", "blocked_until": "160.5"}
        seen = []

        def capture(entry):
            seen.append(entry)
            return None, "ok"

        store.run_transaction("k", capture)

        assert seen == [RateLimitEntry(count=4, window_start=100.0, blocked_until=160.5)]

    def test_read_only_transition_skips_multi(self, store, pipe) -> None:
        pipe.hgetall.return_value = {}

        assert store.run_transaction("k", lambda entry: (None, "denied")) == "denied"

        pipe.reset.assert_called_once()
        pipe.multi.assert_not_called()
        pipe.execute.assert_not_called()

    def test_watch_conflict_is_retried(self, store, pipe) -> None:
        pipe.hgetall.side_effect = [
            {},
            {"count": "1", "window_start": "100.0", "blocked_until": ""},
        ]
        pipe.execute.side_effect = [WatchError("changed"), [1, 1]]

        assert store.run_transaction("k", _bump) == 2
        assert pipe.watch.call_count == 2

    def test_persistent_conflict_aborts(self, store, pipe) -> None:
        pipe.hgetall.return_value = {}
        pipe.execute.side_effect = WatchError("changed")

        with pytest.raises(TransactionAbortedError):
            store.run_transaction("k", _bump)

        assert pipe.execute.call_count == 3

    def test_connection_error_becomes_store_unavailable(self, store, pipe) -> None:
        pipe.watch.side_effect = RedisConnectionError("refused")

        with pytest.raises(StoreUnavailableError) as exc_info:
            store.run_transaction("k", _bump)

        assert exc_info.value.code == "store_unavailable"
        assert not isinstance(exc_info.value, TransactionAbortedError)

    def test_socket_timeout_becomes_transaction_timeout(self, store, pipe) -> None:
        pipe.hgetall.side_effect = RedisTimeoutError("timed out")

        with pytest.raises(TransactionTimeoutError):
            store.run_transaction("k", _bump)

    def test_deadline_is_enforced_between_attempts(self, client, pipe) -> None:
        ticks = iter([0.0, 0.0, 5.0])
        store = RedisQuotaStore(
            client,
            key_prefix=PREFIX,
            max_retries=10,
            timeout_seconds=1.0,
            monotonic=lambda: next(ticks),
        )
        pipe.hgetall.return_value = {}
        pipe.execute.side_effect = WatchError("changed")

        with pytest.raises(TransactionTimeoutError):
            store.run_transaction("k", _bump)

        assert pipe.execute.call_count == 1


class TestOtherOperations:
    def test_read_missing_key(self, store, client) -> None:
        client.hgetall.return_value = {}

        assert store.read("k") is None
        client.hgetall.assert_called_once_with("test:rl:k")

    def test_read_error_is_translated(self, store, client) -> None:
        client.hgetall.side_effect = RedisConnectionError("refused")

        with pytest.raises(StoreUnavailableError):
            store.read("k")

    def test_delete_removes_hash_and_index_member(self, store, pipe) -> None:
        store.delete("login:user:42")

        assert pipe.mock_calls[:3] == [
            call.delete("test:rl:login:user:42"),
            call.zrem("test:rl:index", "login:user:42"),
            call.execute(),
        ]

    def test_delete_older_than_runs_cleanup_script(self, store, client) -> None:
        script = client.register_script.return_value
        script.return_value = 7

        assert store.delete_older_than(1000.0, limit=50) == 7
        script.assert_called_once_with(keys=["test:rl:index"], args=["1000.0", 50, PREFIX])

    def test_delete_older_than_rejects_invalid_limit(self, store) -> None:
        with pytest.raises(ValueError):
            store.delete_older_than(1000.0, limit=0)

    def test_close_swallows_driver_errors(self, store, client) -> None:
        client.close.side_effect = RedisConnectionError("gone")

        store.close()

        client.close.assert_called_once()


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("redis://localhost:6379/0", "redis://localhost:6379/0"),
        ("redis://:secret@cache:6380/1", "redis://cache:6380/1"),
        ("rediss://user:pw@cache/0", "rediss://cache/0"),
    ],
)
def test_sanitize_url(url: str, expected: str) -> None:
    assert sanitize_url(url) == expected
