"""Summary: SQLite recipient registry for SpendWiser reminders.

Importance: Provides a local-first key-value store of subscriptions and settings keyed by user ID.
Alternatives: Use an ORM or an external database immediately.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterator

from spendwiser.models import RegistryEntry, ReminderSettings, Subscription, SubscriptionKeys

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredSubscription:
    """Summary: Subscription record with audit timestamps.

    Importance: Exposes when a device last re-registered.
    Alternatives: Store only the subscription itself.
    """

    user_id: str
    subscription: Subscription
    created_at: str
    updated_at: str


class SqliteStore:
    """Summary: SQLite-backed registry of push subscriptions and reminder settings.

    Importance: Enables local-first persistence with minimal dependencies.
    Alternatives: Use Postgres and SQLAlchemy from day one.
    """

    def __init__(self, db_path: str) -> None:
        """Summary: Initialize the storage with a database path.

        Importance: Allows configurable database location per environment.
        Alternatives: Hardcode a default path in the class.
        """

        self._db_path = Path(db_path)

    def initialize(self) -> None:
        """Summary: Create tables if they do not exist.

        Importance: Ensures the registry is ready for registration and ticks.
        Alternatives: Run migrations using a dedicated migration tool.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS subscriptions (
                    user_id TEXT PRIMARY KEY,
                    endpoint TEXT NOT NULL,
                    p256dh TEXT NOT NULL,
                    auth TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS notification_settings (
                    user_id TEXT PRIMARY KEY,
                    settings_json TEXT NOT NULL,
                    timezone TEXT,
                    updated_at TEXT NOT NULL
                )
                """
            )
            connection.commit()

    def save_subscription(
        self,
        user_id: str,
        subscription: Subscription,
        settings: ReminderSettings | None = None,
    ) -> None:
        """Summary: Register a subscription, replacing any previous one for the user.

        Importance: One subscription per user; the latest registration wins.
        Alternatives: Keep every device subscription and fan out.
        """

        now = _utcnow_iso()
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO subscriptions (user_id, endpoint, p256dh, auth, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    endpoint = excluded.endpoint,
                    p256dh = excluded.p256dh,
                    auth = excluded.auth,
                    updated_at = excluded.updated_at
                """,
                (
                    user_id,
                    subscription.endpoint,
                    subscription.keys.p256dh,
                    subscription.keys.auth,
                    now,
                    now,
                ),
            )
            connection.commit()
        if settings is not None:
            self.save_settings(user_id, settings)

    def save_settings(self, user_id: str, settings: ReminderSettings) -> None:
        """Summary: Store reminder settings for a user, replacing the previous record.

        Importance: Settings are read whole by every tick; no partial merge.
        Alternatives: Store each field in its own column.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                INSERT INTO notification_settings (user_id, settings_json, timezone, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    settings_json = excluded.settings_json,
                    timezone = excluded.timezone,
                    updated_at = excluded.updated_at
                """,
                (
                    user_id,
                    json.dumps(settings.to_dict(), ensure_ascii=False),
                    settings.timezone,
                    _utcnow_iso(),
                ),
            )
            connection.commit()

    def get_settings(self, user_id: str) -> ReminderSettings | None:
        """Summary: Fetch reminder settings for a user.

        Importance: Supports settings reads for the editing UI.
        Alternatives: Return raw JSON to callers.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                "SELECT settings_json, timezone FROM notification_settings WHERE user_id = ?",
                (user_id,),
            )
            row = cursor.fetchone()
        if not row:
            return None
        return _settings_from_row(row[0], row[1])

    def get_subscription(self, user_id: str) -> StoredSubscription | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT user_id, endpoint, p256dh, auth, created_at, updated_at
                FROM subscriptions WHERE user_id = ?
                """,
                (user_id,),
            )
            row = cursor.fetchone()
        if not row:
            return None
        return StoredSubscription(
            user_id=row[0],
            subscription=Subscription(
                endpoint=row[1], keys=SubscriptionKeys(p256dh=row[2], auth=row[3])
            ),
            created_at=row[4],
            updated_at=row[5],
        )

    def delete_subscription(self, user_id: str) -> bool:
        """Summary: Remove a user's subscription.

        Importance: Expired endpoints should not be retried forever.
        Alternatives: Flag subscriptions inactive instead of deleting.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute("DELETE FROM subscriptions WHERE user_id = ?", (user_id,))
            deleted = cursor.rowcount > 0
            connection.commit()
        return deleted

    def list_active_subscribers(self) -> list[RegistryEntry]:
        """Summary: Snapshot every user with a subscription and push-enabled settings.

        Importance: Feeds the dispatch orchestrator one consistent read per tick.
        Alternatives: Stream rows lazily during the tick.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT s.user_id, s.endpoint, s.p256dh, s.auth, n.settings_json, n.timezone
                FROM subscriptions AS s
                JOIN notification_settings AS n ON n.user_id = s.user_id
                ORDER BY s.user_id
                """
            )
            rows = cursor.fetchall()
        entries: list[RegistryEntry] = []
        for user_id, endpoint, p256dh, auth, settings_json, timezone_name in rows:
            settings = _settings_from_row(settings_json, timezone_name)
            if settings is None:
                logger.warning("Skipping user %s: unreadable notification settings", user_id)
                continue
            if not settings.push_enabled:
                continue
            entries.append(
                RegistryEntry(
                    user_id=user_id,
                    subscription=Subscription(
                        endpoint=endpoint, keys=SubscriptionKeys(p256dh=p256dh, auth=auth)
                    ),
                    settings=settings,
                )
            )
        return entries

    def mark_notified(self, user_id: str, day: date) -> None:
        """Summary: Record the local date a user was last reminded.

        Importance: Backs per-day de-duplication across ticks.
        Alternatives: Keep a separate delivery log table.
        """

        settings = self.get_settings(user_id)
        if settings is None:
            return
        self.save_settings(user_id, replace(settings, last_notified=day))

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Summary: Context manager for SQLite connections.

        Importance: Ensures connections are closed cleanly after use.
        Alternatives: Keep a single long-lived connection.
        """

        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
        finally:
            connection.close()


def _settings_from_row(settings_json: str, timezone_name: str | None) -> ReminderSettings | None:
    try:
        data = json.loads(settings_json)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    return ReminderSettings.from_dict(data, timezone=timezone_name or None)


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

