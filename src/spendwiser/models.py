"""Summary: Domain model dataclasses for SpendWiser reminders.

Importance: Defines the core entities shared across dispatch, storage, and the recipient agent.
Alternatives: Use Pydantic models or ORM classes directly.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

DEFAULT_SNOOZE_MINUTES = 120


class Frequency(str, Enum):
    """Summary: Known reminder frequency tags.

    Importance: Names the day patterns the eligibility evaluator understands.
    Alternatives: Store a seven-bit weekday mask for every user.
    """

    DAILY = "daily"
    WEEKDAYS = "weekdays"
    WEEKENDS = "weekends"
    CUSTOM = "custom"


@dataclass(frozen=True)
class ReminderTime:
    """Summary: Target local wall-clock time for a reminder.

    Importance: Keeps hour/minute validation in one place.
    Alternatives: Store minutes since midnight as a bare integer.
    """

    hour: int
    minute: int

    def __post_init__(self) -> None:
        if not 0 <= self.hour <= 23 or not 0 <= self.minute <= 59:
            raise ValueError(f"Invalid reminder time {self.hour}:{self.minute}")

    @staticmethod
    def parse(value: str) -> "ReminderTime":
        """Summary: Parse a 24-hour "HH:MM" string.

        Importance: Settings arrive from the editing UI as strings.
        Alternatives: Accept datetime.time objects only.
        """

        if not isinstance(value, str) or ":" not in value:
            raise ValueError(f"Invalid reminder time: {value!r}")
        hour_text, minute_text = value.strip().split(":", 1)
        if not hour_text.isdigit() or not minute_text.isdigit():
            raise ValueError(f"Invalid reminder time: {value!r}")
        return ReminderTime(hour=int(hour_text), minute=int(minute_text))

    def format(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    @property
    def minutes_of_day(self) -> int:
        return self.hour * 60 + self.minute


@dataclass(frozen=True)
class ReminderSettings:
    """Summary: Per-user reminder configuration read from the registry.

    Importance: Drives the eligibility decision for every tick and periodic check.
    Alternatives: Store a cron expression per user.
    """

    enabled: bool
    time: ReminderTime | None
    frequency: str
    timezone: str
    custom_days: frozenset[int] = frozenset()
    reminder_text: str | None = None
    push_enabled: bool = True
    snooze_minutes: int = DEFAULT_SNOOZE_MINUTES
    last_notified: date | None = None

    @staticmethod
    def from_dict(data: dict[str, Any], timezone: str | None = None) -> "ReminderSettings":
        """Summary: Build settings from the camelCase JSON record.

        Importance: Malformed fields degrade to values the evaluator rejects instead of raising.
        Alternatives: Validate strictly and reject the whole record.
        """

        raw_time = data.get("time")
        try:
            reminder_time = ReminderTime.parse(raw_time) if raw_time else None
        except ValueError:
            reminder_time = None
        raw_days = data.get("customDays") or []
        custom_days = (
            frozenset(
                day
                for day in raw_days
                if isinstance(day, int) and not isinstance(day, bool) and 0 <= day <= 6
            )
            if isinstance(raw_days, (list, tuple, set, frozenset))
            else frozenset()
        )
        raw_text = data.get("reminderText")
        raw_snooze = data.get("snoozeMinutes")
        snooze_minutes = (
            raw_snooze
            if isinstance(raw_snooze, int) and not isinstance(raw_snooze, bool) and raw_snooze > 0
            else DEFAULT_SNOOZE_MINUTES
        )
        raw_frequency = data.get("frequency")
        return ReminderSettings(
            enabled=data.get("enabled") is True,
            time=reminder_time,
            frequency=raw_frequency if isinstance(raw_frequency, str) else "",
            timezone=timezone or data.get("timezone") or "",
            custom_days=custom_days,
            reminder_text=raw_text if isinstance(raw_text, str) else None,
            push_enabled=data.get("pushEnabled", True) is not False,
            snooze_minutes=snooze_minutes,
            last_notified=_parse_date(data.get("lastNotified")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Summary: Serialize settings to the camelCase JSON record.

        Importance: Keeps storage and the local cache on the same wire format.
        Alternatives: Persist each field as its own column.
        """

        return {
            "enabled": self.enabled,
            "time": self.time.format() if self.time else None,
            "frequency": self.frequency,
            "customDays": sorted(self.custom_days),
            "reminderText": self.reminder_text,
            "timezone": self.timezone,
            "pushEnabled": self.push_enabled,
            "snoozeMinutes": self.snooze_minutes,
            "lastNotified": self.last_notified.isoformat() if self.last_notified else None,
        }


def _parse_date(value: Any) -> date | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


@dataclass(frozen=True)
class SubscriptionKeys:
    """Summary: Client keys bundled with a push subscription.

    Importance: Passed through untouched to the transport for payload encryption.
    Alternatives: Store keys as an opaque JSON blob.
    """

    p256dh: str
    auth: str


@dataclass(frozen=True)
class Subscription:
    """Summary: Push endpoint registered by a user's device.

    Importance: Opaque to the core except as a transport argument.
    Alternatives: Store raw subscription JSON from the browser.
    """

    endpoint: str
    keys: SubscriptionKeys

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Subscription":
        endpoint = data.get("endpoint")
        keys = data.get("keys") or {}
        if not isinstance(endpoint, str) or not endpoint:
            raise ValueError("Subscription endpoint is required")
        if not isinstance(keys, dict) or not keys.get("p256dh") or not keys.get("auth"):
            raise ValueError("Subscription keys p256dh and auth are required")
        return Subscription(
            endpoint=endpoint,
            keys=SubscriptionKeys(p256dh=str(keys["p256dh"]), auth=str(keys["auth"])),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "keys": {"p256dh": self.keys.p256dh, "auth": self.keys.auth},
        }


@dataclass(frozen=True)
class RegistryEntry:
    """Summary: One recipient row of a registry snapshot.

    Importance: Bundles everything a tick needs for a single recipient.
    Alternatives: Join subscription and settings inside the orchestrator.
    """

    user_id: str
    subscription: Subscription
    settings: ReminderSettings


@dataclass(frozen=True)
class NotificationAction:
    """Summary: Action button shown on a notification."""

    action: str
    title: str


@dataclass(frozen=True)
class NotificationData:
    """Summary: Data block carried with a notification.

    Importance: Lets click handlers recover the user and target view.
    Alternatives: Encode the user in the notification tag.
    """

    type: str
    timestamp: str
    url: str = "/"
    user_id: str | None = None
    snooze_minutes: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type,
            "timestamp": self.timestamp,
            "userId": self.user_id,
            "url": self.url,
        }
        if self.snooze_minutes is not None:
            data["snoozeMinutes"] = self.snooze_minutes
        return data

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "NotificationData":
        user_id = data.get("userId")
        snooze_minutes = data.get("snoozeMinutes")
        return NotificationData(
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            url=str(data.get("url") or "/"),
            user_id=str(user_id) if user_id is not None else None,
            snooze_minutes=(
                snooze_minutes
                if isinstance(snooze_minutes, int) and not isinstance(snooze_minutes, bool)
                else None
            ),
        )


@dataclass(frozen=True)
class NotificationPayload:
    """Summary: Push payload shown by the recipient agent.

    Importance: Wire contract between the dispatcher and the recipient device.
    Alternatives: Send only a reminder ID and let the device build the text.
    """

    title: str
    body: str
    icon: str
    badge: str
    tag: str
    require_interaction: bool
    actions: tuple[NotificationAction, ...]
    data: NotificationData

    def to_dict(self) -> dict[str, Any]:
        """Summary: Serialize to the camelCase wire schema.

        Importance: Devices parse exactly these keys.
        Alternatives: Use a generic dataclass-to-dict conversion.
        """

        return {
            "title": self.title,
            "body": self.body,
            "icon": self.icon,
            "badge": self.badge,
            "tag": self.tag,
            "requireInteraction": self.require_interaction,
            "actions": [{"action": item.action, "title": item.title} for item in self.actions],
            "data": self.data.to_dict(),
        }

    def to_json_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), ensure_ascii=False).encode("utf-8")

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "NotificationPayload":
        """Summary: Parse the wire schema back into a payload.

        Importance: Used by the agent to rebuild payloads from push data.
        Alternatives: Keep payloads as dicts on the recipient side.
        """

        actions = data.get("actions") or []
        if not isinstance(actions, list):
            raise ValueError("actions must be a list")
        if not isinstance(data.get("data"), dict):
            raise ValueError("data must be an object")
        return NotificationPayload(
            title=str(data["title"]),
            body=str(data["body"]),
            icon=str(data["icon"]),
            badge=str(data["badge"]),
            tag=str(data["tag"]),
            require_interaction=bool(data.get("requireInteraction", False)),
            actions=tuple(
                NotificationAction(action=str(item["action"]), title=str(item["title"]))
                for item in actions
            ),
            data=NotificationData.from_dict(data["data"]),
        )


@dataclass(frozen=True)
class DispatchFailure:
    """Summary: Failed delivery for one recipient within a tick."""

    user_id: str
    reason: str


@dataclass(frozen=True)
class DispatchResult:
    """Summary: Aggregate outcome of one dispatch tick.

    Importance: Reports partial failures without hiding their reasons.
    Alternatives: Log outcomes and return only a boolean.
    """

    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    failures: tuple[DispatchFailure, ...] = ()
    delivered: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failures": [
                {"userId": failure.user_id, "reason": failure.reason} for failure in self.failures
            ],
        }


@dataclass(frozen=True)
class SnoozeRequest:
    """Summary: Request to re-display a reminder later.

    Importance: Must outlive the click handler that created it.
    Alternatives: Persist snoozes server-side as scheduled jobs.
    """

    user_id: str | None
    fire_at: datetime
    message: str
    # Distinguishes snoozes that share a user, time, and message.
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(frozen=True)
class NotificationInstance:
    """Summary: Notification currently shown by the recipient agent."""

    tag: str
    payload: NotificationPayload
    created_at: datetime = field(compare=False)
