"""Summary: Device-local cache of reminder settings for the periodic check.

Importance: Lets the recipient agent decide on its own when pushes are missed or offline.
Alternatives: Query the server registry from the device on every wake.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import date
from pathlib import Path

from spendwiser.models import ReminderSettings

logger = logging.getLogger(__name__)


class SettingsCache(ABC):
    """Summary: Abstract store for the settings of the user signed in on this device.

    Importance: The agent reads cached settings, never the server registry.
    Alternatives: Pass settings into every periodic wake event.
    """

    @abstractmethod
    def load(self) -> tuple[str, ReminderSettings] | None:
        """Return the cached (user_id, settings) pair, or None when nothing is cached."""

    @abstractmethod
    def save(self, user_id: str, settings: ReminderSettings) -> None:
        """Replace the cached settings."""

    def mark_notified(self, user_id: str, day: date) -> None:
        """Summary: Record the local date a reminder was last shown.

        Importance: Keeps the periodic check to one reminder per local day.
        Alternatives: Track shown reminders in a separate log.
        """

        cached = self.load()
        if cached is None or cached[0] != user_id:
            return
        self.save(user_id, replace(cached[1], last_notified=day))


class MemorySettingsCache(SettingsCache):
    """Summary: In-memory settings cache for tests and simulations."""

    def __init__(self, user_id: str | None = None, settings: ReminderSettings | None = None) -> None:
        self._entry = (user_id, settings) if user_id and settings else None

    def load(self) -> tuple[str, ReminderSettings] | None:
        return self._entry

    def save(self, user_id: str, settings: ReminderSettings) -> None:
        self._entry = (user_id, settings)


class JsonSettingsCache(SettingsCache):
    """Summary: Settings cache persisted as a small JSON file.

    Importance: Survives agent restarts on the device.
    Alternatives: Use an embedded key-value database.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    def load(self) -> tuple[str, ReminderSettings] | None:
        """Summary: Read the cached record.

        Importance: A corrupt file behaves like an empty cache instead of crashing the agent.
        Alternatives: Raise and let the host restart the agent.
        """

        if not self._path.exists():
            return None
        try:
            record = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Unreadable settings cache at %s", self._path, exc_info=True)
            return None
        if not isinstance(record, dict) or not record.get("userId"):
            return None
        settings = record.get("settings")
        if not isinstance(settings, dict):
            return None
        return str(record["userId"]), ReminderSettings.from_dict(settings)

    def save(self, user_id: str, settings: ReminderSettings) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        record = {"userId": user_id, "settings": settings.to_dict()}
        self._path.write_text(json.dumps(record, ensure_ascii=False), encoding="utf-8")
