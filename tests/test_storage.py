"""Summary: Tests for the SQLite recipient registry.

Importance: Ensures subscriptions and settings persist the way ticks read them.
Alternatives: Rely on manual testing for storage operations.
"""

from __future__ import annotations

import sqlite3
from datetime import date
from pathlib import Path

from spendwiser.models import ReminderSettings, Subscription, SubscriptionKeys
from spendwiser.storage.sqlite_store import SqliteStore


def _store(tmp_path: Path) -> SqliteStore:
    store = SqliteStore(str(tmp_path / "test.db"))
    store.initialize()
    return store


def _subscription(endpoint: str) -> Subscription:
    return Subscription(endpoint=endpoint, keys=SubscriptionKeys(p256dh="p", auth="a"))


def _settings(**overrides: object) -> ReminderSettings:
    data = {"enabled": True, "frequency": "daily", "time": "09:00", "timezone": "UTC"}
    data.update(overrides)
    return ReminderSettings.from_dict(data)


def test_latest_subscription_wins(tmp_path: Path) -> None:
    """Summary: Verify re-registration replaces the previous device.

    Importance: One subscription per user; the newest endpoint receives pushes.
    Alternatives: Keep every device subscription.
    """

    store = _store(tmp_path)
    store.save_subscription("user-1", _subscription("https://push.example.com/old"), _settings())
    first = store.get_subscription("user-1")
    store.save_subscription("user-1", _subscription("https://push.example.com/new"))
    stored = store.get_subscription("user-1")
    assert stored is not None
    assert stored.subscription.endpoint == "https://push.example.com/new"
    assert stored.created_at == first.created_at
    assert [entry.subscription.endpoint for entry in store.list_active_subscribers()] == [
        "https://push.example.com/new"
    ]


def test_settings_round_trip(tmp_path: Path) -> None:
    store = _store(tmp_path)
    settings = _settings(frequency="custom", customDays=[1, 3], reminderText="Log it")
    store.save_settings("user-1", settings)
    assert store.get_settings("user-1") == settings
    assert store.get_settings("missing") is None


def test_list_active_subscribers_filters_rows(tmp_path: Path) -> None:
    """Summary: Verify the snapshot skips users who cannot receive pushes.

    Importance: Users without settings, with push disabled, or with corrupt records are excluded.
    Alternatives: Let the orchestrator filter every row.
    """

    store = _store(tmp_path)
    store.save_subscription("active", _subscription("https://push.example.com/a"), _settings())
    store.save_subscription(
        "muted", _subscription("https://push.example.com/m"), _settings(pushEnabled=False)
    )
    store.save_subscription("no-settings", _subscription("https://push.example.com/n"))
    store.save_subscription("corrupt", _subscription("https://push.example.com/c"), _settings())
    with sqlite3.connect(tmp_path / "test.db") as connection:
        connection.execute(
            "UPDATE notification_settings SET settings_json = 'not json' WHERE user_id = 'corrupt'"
        )
    store.save_settings("settings-only", _settings())
    assert [entry.user_id for entry in store.list_active_subscribers()] == ["active"]


def test_disabled_reminders_stay_in_snapshot(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save_subscription(
        "paused", _subscription("https://push.example.com/p"), _settings(enabled=False)
    )
    (entry,) = store.list_active_subscribers()
    assert entry.settings.enabled is False


def test_mark_notified_and_delete(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save_subscription("user-1", _subscription("https://push.example.com/1"), _settings())
    store.mark_notified("user-1", date(2024, 6, 3))
    assert store.get_settings("user-1").last_notified == date(2024, 6, 3)
    store.mark_notified("ghost", date(2024, 6, 3))
    assert store.get_settings("ghost") is None
    assert store.delete_subscription("user-1") is True
    assert store.delete_subscription("user-1") is False
    assert store.list_active_subscribers() == []
