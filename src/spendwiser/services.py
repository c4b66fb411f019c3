"""Summary: Core application services for SpendWiser reminders.

Importance: Orchestrates registration, settings updates, and dispatch ticks over the registry.
Alternatives: Build a full service layer with dependency injection framework.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from spendwiser.dispatch import DispatchOrchestrator
from spendwiser.eligibility import already_notified_today, local_date, resolve_timezone
from spendwiser.models import DispatchResult, Frequency, ReminderSettings, ReminderTime, Subscription
from spendwiser.storage.sqlite_store import SqliteStore
from spendwiser.transport import FailureKind

logger = logging.getLogger(__name__)

KNOWN_FREQUENCIES = {item.value for item in Frequency}


def parse_settings(data: Any, timezone: str | None) -> ReminderSettings:
    """Summary: Validate and build reminder settings submitted by a client.

    Importance: Rejects settings that could never fire before they reach the registry.
    Alternatives: Store anything and let the evaluator fail closed on every tick.
    """

    if not isinstance(data, dict):
        raise ValueError("settings must be an object")
    raw_time = data.get("time")
    if raw_time:
        ReminderTime.parse(raw_time)
    elif data.get("enabled") is True:
        raise ValueError("settings.time is required when reminders are enabled")
    frequency = data.get("frequency")
    if frequency not in KNOWN_FREQUENCIES:
        raise ValueError(f"Unsupported frequency: {frequency!r}")
    zone_name = timezone or data.get("timezone")
    if not zone_name or resolve_timezone(zone_name) is None:
        raise ValueError(f"Unknown timezone: {zone_name!r}")
    settings = ReminderSettings.from_dict(data, timezone=zone_name)
    if settings.frequency == Frequency.CUSTOM.value and not settings.custom_days:
        logger.warning("Custom frequency without days will never fire")
    return settings


@dataclass(frozen=True)
class RegistryService:
    """Summary: Write surface for subscriptions and reminder settings.

    Importance: Keeps validation out of the HTTP and CLI layers.
    Alternatives: Write to storage directly from request handlers.
    """

    store: SqliteStore

    def register_subscription(
        self,
        user_id: str,
        subscription: dict[str, Any],
        settings: dict[str, Any],
        timezone: str | None = None,
    ) -> None:
        """Summary: Register a device subscription with its reminder settings.

        Importance: Last write wins; a new device replaces the previous one.
        Alternatives: Merge keys from older registrations.
        """

        if not user_id:
            raise ValueError("userId is required")
        parsed_subscription = Subscription.from_dict(subscription or {})
        parsed_settings = parse_settings(settings, timezone)
        self.store.save_subscription(user_id, parsed_subscription, parsed_settings)
        logger.info("Push subscription registered for user: %s", user_id)

    def update_settings(
        self, user_id: str, settings: dict[str, Any], timezone: str | None = None
    ) -> ReminderSettings:
        """Summary: Replace a user's reminder settings.

        Importance: Keeps the last notified date so an edit does not re-fire today.
        Alternatives: Reset delivery history on every edit.
        """

        if not user_id:
            raise ValueError("userId is required")
        parsed = parse_settings(settings, timezone)
        previous = self.store.get_settings(user_id)
        if parsed.last_notified is None and previous is not None:
            parsed = replace(parsed, last_notified=previous.last_notified)
        self.store.save_settings(user_id, parsed)
        logger.info("Notification settings updated for user: %s", user_id)
        return parsed

    def get_settings(self, user_id: str) -> ReminderSettings | None:
        return self.store.get_settings(user_id)

    def unregister(self, user_id: str) -> bool:
        return self.store.delete_subscription(user_id)


@dataclass(frozen=True)
class DispatchService:
    """Summary: Runs dispatch ticks against the registry.

    Importance: Adds per-day de-duplication and expired-subscription cleanup around the orchestrator.
    Alternatives: Let the orchestrator read and write the registry itself.
    """

    store: SqliteStore
    orchestrator: DispatchOrchestrator
    dedupe_per_day: bool = True
    prune_expired_subscriptions: bool = True

    async def run_tick(self, now: datetime) -> DispatchResult:
        """Summary: Snapshot the registry and dispatch one tick at the given instant.

        Importance: Delivered users are recorded so dense ticks do not double-fire.
        Alternatives: Require callers to guarantee one tick per window.
        """

        snapshot = await asyncio.to_thread(self.store.list_active_subscribers)
        if self.dedupe_per_day:
            snapshot = [
                entry for entry in snapshot if not already_notified_today(entry.settings, now)
            ]
        result = await self.orchestrator.run_tick(snapshot, now)

        settings_by_user = {entry.user_id: entry.settings for entry in snapshot}
        for user_id in result.delivered:
            day = local_date(settings_by_user[user_id], now)
            if day is not None:
                await asyncio.to_thread(self.store.mark_notified, user_id, day)
        if self.prune_expired_subscriptions:
            for failure in result.failures:
                if failure.reason == FailureKind.EXPIRED.value:
                    await asyncio.to_thread(self.store.delete_subscription, failure.user_id)
                    logger.info("Removed expired subscription for user %s", failure.user_id)
        return result
