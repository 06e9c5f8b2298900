"""HTTP tests for the quota and admin endpoints of the service."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from quotaguard.adapters.quota_store.base import RateLimitEntry
from quotaguard.core.errors import StoreUnavailableError
from quotaguard.core.rate_limit import use_quota_store
from quotaguard.main import app

from conftest import START, FakeClock

ADMIN_HEADERS = {"X-API-Key": "test-admin-key-123"}


@pytest.fixture
def client(bound_store) -> TestClient:
    return TestClient(app)


def _exhaust_login(client: TestClient, user: str = "198.51.100.1") -> None:
    for _ in range(6):
        client.post("/v1/rate-limits/login/consume", headers={"X-Forwarded-For": user})


class TestConsume:
    def test_consume_allowed(self, client: TestClient) -> None:
        response = client.post("/v1/rate-limits/chat/consume")

        assert response.status_code == 200
        body = response.json()
        assert body["allowed"] is True
        assert body["limit_type"] == "chat"
        assert body["limit"] == 30
        assert body["remaining"] == 29
        assert body["degraded"] is False
        assert response.headers["X-RateLimit-Remaining"] == "29"
        assert "X-Request-ID" in response.headers

    def test_consume_denied(self, client: TestClient) -> None:
        for _ in range(5):
            client.post("/v1/rate-limits/login/consume")

        response = client.post("/v1/rate-limits/login/consume")

        assert response.status_code == 429
        assert response.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
        assert response.json()["error"]["request_id"] == response.headers["X-Request-ID"]

    def test_consume_unknown_limit_type(self, client: TestClient) -> None:
        response = client.post("/v1/rate-limits/uploads/consume")

        assert response.status_code == 404

    def test_consume_with_store_down_is_degraded(self, client: TestClient, clock: FakeClock) -> None:
        failing = MagicMock()
        failing.run_transaction.side_effect = StoreUnavailableError(code="store_unavailable", message="down")
        use_quota_store(failing, clock=clock)

        response = client.post("/v1/rate-limits/login/consume")

        assert response.status_code == 200
        assert response.json()["degraded"] is True
        assert response.json()["remaining"] == 5


class TestAdminAuth:
    @pytest.mark.parametrize("headers", [{}, {"X-API-Key": "wrong"}])
    def test_admin_routes_require_key(self, client: TestClient, headers: dict) -> None:
        response = client.get("/admin/rate-limits/policies", headers=headers)

        assert response.status_code == 403

    def test_second_configured_key_is_accepted(self, client: TestClient) -> None:
        response = client.get("/admin/rate-limits/policies", headers={"X-API-Key": "test-admin-key-456"})

        assert response.status_code == 200


class TestAdminOperations:
    def test_reset_unblocks_caller(self, client: TestClient, bound_store) -> None:
        _exhaust_login(client)
        identifier = next(key for key in bound_store._entries).split(":", 1)[1]

        response = client.post(
            "/admin/rate-limits/reset",
            json={"identifier": identifier, "limit_type": "login"},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 200
        assert response.json() == {"identifier": identifier, "limit_type": "login", "reset": True}
        retry = client.post("/v1/rate-limits/login/consume", headers={"X-Forwarded-For": "198.51.100.1"})
        assert retry.status_code == 200
        assert retry.json()["remaining"] == 4

    def test_reset_unknown_key_is_noop(self, client: TestClient) -> None:
        response = client.post(
            "/admin/rate-limits/reset",
            json={"identifier": "user:nobody", "limit_type": "login"},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 200

    def test_reset_unknown_limit_type(self, client: TestClient) -> None:
        response = client.post(
            "/admin/rate-limits/reset",
            json={"identifier": "user:1", "limit_type": "uploads"},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 404

    def test_reset_validates_payload(self, client: TestClient) -> None:
        response = client.post(
            "/admin/rate-limits/reset",
            json={"identifier": "", "limit_type": "login"},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 422

    def test_reset_with_store_down_returns_503(self, client: TestClient, clock: FakeClock) -> None:
        failing = MagicMock()
        failing.delete.side_effect = StoreUnavailableError(code="store_unavailable", message="down")
        use_quota_store(failing, clock=clock)

        response = client.post(
            "/admin/rate-limits/reset",
            json={"identifier": "user:1", "limit_type": "login"},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "store_unavailable"

    def test_status_of_unknown_key(self, client: TestClient) -> None:
        identifier = "user:42"

        response = client.get(
            "/admin/rate-limits/status",
            params={"identifier": identifier, "limit_type": "chat"},
            headers=ADMIN_HEADERS,
        )

        assert response.status_code == 200
        assert response.json() == {
            "identifier": identifier,
            "limit_type": "chat",
            "limit": 30,
            "remaining": 30,
            "reset_at": None,
            "blocked": False,
        }

    def test_status_of_blocked_caller(self, client: TestClient, bound_store) -> None:
        _exhaust_login(client)
        identifier = next(key for key in bound_store._entries).split(":", 1)[1]

        body = client.get(
            "/admin/rate-limits/status",
            params={"identifier": identifier, "limit_type": "login"},
            headers=ADMIN_HEADERS,
        ).json()

        assert body["blocked"] is True
        assert body["remaining"] == 0

    def test_cleanup(self, client: TestClient, bound_store) -> None:
        bound_store.run_transaction(
            "chat:user:old",
            lambda _: (RateLimitEntry(count=1, window_start=START - 2 * 24 * 3600), None),
        )

        response = client.post("/admin/rate-limits/cleanup", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert response.json() == {"removed": 1}
        assert bound_store.read("chat:user:old") is None

    def test_policies(self, client: TestClient) -> None:
        response = client.get("/admin/rate-limits/policies", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        policies = {p["limit_type"]: p for p in response.json()}
        assert policies["login"] == {
            "limit_type": "login",
            "quota": 5,
            "window_seconds": 60,
            "block_seconds": 300,
            "fail_closed": False,
        }
        assert set(policies) == {"ai-generation", "chat", "general", "grading", "login", "wizdi-api"}


def test_health_does_not_touch_store(bound_store) -> None:
    response = TestClient(app).get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "rate_limit_backend": "memory"}
