"""Summary: API integration tests.

Importance: Validates FastAPI endpoints against registration and dispatch workflows.
Alternatives: Use manual curl testing only.
"""

from __future__ import annotations

from pathlib import Path

from fastapi.testclient import TestClient

from spendwiser.api import create_app
from spendwiser.config import AppConfig
from spendwiser.transport import FailureKind, MockPushTransport

SUBSCRIPTION = {
    "endpoint": "https://push.example.com/user-1",
    "keys": {"p256dh": "p256dh-key", "auth": "auth-key"},
}
SETTINGS = {"enabled": True, "frequency": "daily", "time": "09:00"}


def _build_config(db_path: str, api_key: str = "") -> AppConfig:
    """Summary: Build an AppConfig for API tests.

    Importance: Ensures tests use isolated storage.
    Alternatives: Load AppConfig from environment variables.
    """

    return AppConfig(db_path=db_path, api_host="127.0.0.1", api_port=8000, api_key=api_key)


def _client(tmp_path: Path, transport: MockPushTransport | None = None, api_key: str = "") -> TestClient:
    config = _build_config(str(tmp_path / "test.db"), api_key=api_key)
    return TestClient(create_app(config, transport=transport or MockPushTransport()))


def test_register_and_read_settings(tmp_path: Path) -> None:
    """Summary: Verify a subscription registration stores the settings.

    Importance: Confirms the HTTP layer wires into the registry.
    Alternatives: Validate only the service layer.
    """

    client = _client(tmp_path)
    response = client.post(
        "/push-subscriptions",
        json={
            "userId": "user-1",
            "subscription": SUBSCRIPTION,
            "settings": SETTINGS,
            "timezone": "Asia/Kolkata",
        },
    )
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Push subscription saved successfully"}

    settings = client.get("/notification-settings/user-1")
    assert settings.status_code == 200
    assert settings.json()["settings"]["timezone"] == "Asia/Kolkata"
    assert settings.json()["settings"]["time"] == "09:00"
    assert client.get("/notification-settings/nobody").status_code == 404


def test_missing_fields_return_400(tmp_path: Path) -> None:
    client = _client(tmp_path)
    response = client.post("/push-subscriptions", json={"userId": "user-1"})
    assert response.status_code == 400
    assert "error" in response.json()
    assert client.post("/notification-settings", json={"settings": SETTINGS}).status_code == 400


def test_invalid_settings_return_400(tmp_path: Path) -> None:
    client = _client(tmp_path)
    response = client.post(
        "/push-subscriptions",
        json={
            "userId": "user-1",
            "subscription": SUBSCRIPTION,
            "settings": SETTINGS,
            "timezone": "Atlantis/Capital",
        },
    )
    assert response.status_code == 400
    assert "Unknown timezone" in response.json()["error"]


def test_wrong_method_returns_405(tmp_path: Path) -> None:
    client = _client(tmp_path)
    assert client.get("/push-subscriptions").status_code == 405
    assert client.get("/reminders/dispatch").status_code == 405


def test_update_settings_endpoint(tmp_path: Path) -> None:
    client = _client(tmp_path)
    response = client.post(
        "/notification-settings",
        json={"userId": "user-2", "settings": {**SETTINGS, "frequency": "weekends"}, "timezone": "UTC"},
    )
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert client.get("/notification-settings/user-2").json()["settings"]["frequency"] == "weekends"


def test_dispatch_endpoint_reports_partial_failure(tmp_path: Path) -> None:
    """Summary: Verify a manual tick returns counts and failure reasons.

    Importance: Cron callers need the failures without digging through logs.
    Alternatives: Return only a success flag.
    """

    transport = MockPushTransport(
        failures={"https://push.example.com/user-1": FailureKind.NETWORK_ERROR}
    )
    client = _client(tmp_path, transport=transport)
    for user_id in ("user-1", "user-2"):
        client.post(
            "/push-subscriptions",
            json={
                "userId": user_id,
                "subscription": {**SUBSCRIPTION, "endpoint": f"https://push.example.com/{user_id}"},
                "settings": SETTINGS,
                "timezone": "UTC",
            },
        )
    response = client.post("/reminders/dispatch", json={"now": "2024-06-03T09:02:00Z"})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert (body["attempted"], body["sent"], body["failed"]) == (2, 1, 1)
    assert body["failures"] == [{"userId": "user-1", "reason": "NetworkError"}]
    assert body["timestamp"] == "2024-06-03T09:02:00.000Z"


def test_dispatch_without_body_uses_server_clock(tmp_path: Path) -> None:
    response = _client(tmp_path).post("/reminders/dispatch")
    assert response.status_code == 200
    assert response.json()["attempted"] == 0


def test_dispatch_rejects_naive_instant(tmp_path: Path) -> None:
    response = _client(tmp_path).post("/reminders/dispatch", json={"now": "2024-06-03T09:02:00"})
    assert response.status_code == 400


def test_unregister_subscription(tmp_path: Path) -> None:
    client = _client(tmp_path)
    client.post(
        "/push-subscriptions",
        json={"userId": "user-1", "subscription": SUBSCRIPTION, "settings": SETTINGS, "timezone": "UTC"},
    )
    assert client.delete("/push-subscriptions/user-1").status_code == 200
    assert client.delete("/push-subscriptions/user-1").status_code == 404


def test_api_key_is_enforced_when_configured(tmp_path: Path) -> None:
    client = _client(tmp_path, api_key="secret")
    assert client.post("/reminders/dispatch").status_code == 401
    assert client.post("/reminders/dispatch", headers={"X-API-Key": "secret"}).status_code == 200
    assert client.get("/health").status_code == 200
