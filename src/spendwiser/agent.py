"""Summary: Recipient-side notification state machine.

Importance: Turns inbound pushes, clicks, timers, and periodic wakes into displayed reminders.
Alternatives: Handle each platform event ad hoc without tracked state.

Snoozes the agent schedules itself live only as long as the host keeps the agent
alive. A host that reclaims the idle agent drops them without notice.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable

from spendwiser.eligibility import (
    DEFAULT_WINDOW_MINUTES,
    already_notified_today,
    is_eligible,
    local_date,
)
from spendwiser.host import AgentHost
from spendwiser.messages import SCHEDULE_NOTIFICATION, build_schedule_snooze
from spendwiser.models import (
    DEFAULT_SNOOZE_MINUTES,
    NotificationData,
    NotificationInstance,
    NotificationPayload,
    SnoozeRequest,
)
from spendwiser.payloads import (
    ACTION_ADD_TRANSACTION,
    ACTION_DISMISS,
    ACTION_SNOOZE,
    ADD_TRANSACTION_URL,
    APP_URL,
    ICON,
    SNOOZED_BODY,
    build_reminder_payload,
    default_payload,
    iso_timestamp,
    snoozed_payload,
)
from spendwiser.settings_cache import SettingsCache

logger = logging.getLogger(__name__)

SCHEDULED_TAG = "scheduled-reminder"


class NotificationState(str, Enum):
    """Summary: Lifecycle states of a notification tag."""

    IDLE = "idle"
    DISPLAYED = "displayed"
    DISMISSED = "dismissed"
    APP_OPENED = "app_opened"
    SNOOZED = "snoozed"


# A resolved tag may be displayed again by a later push or snooze.
TRANSITIONS: dict[NotificationState, frozenset[NotificationState]] = {
    NotificationState.IDLE: frozenset({NotificationState.DISPLAYED}),
    NotificationState.DISPLAYED: frozenset(
        {
            NotificationState.DISPLAYED,
            NotificationState.DISMISSED,
            NotificationState.APP_OPENED,
            NotificationState.SNOOZED,
        }
    ),
    NotificationState.DISMISSED: frozenset({NotificationState.DISPLAYED}),
    NotificationState.APP_OPENED: frozenset({NotificationState.DISPLAYED}),
    NotificationState.SNOOZED: frozenset({NotificationState.DISPLAYED}),
}


class InvalidTransitionError(RuntimeError):
    """Raised when an event does not apply to a tag's current state."""

    def __init__(self, tag: str, current: NotificationState, target: NotificationState) -> None:
        super().__init__(f"{tag}: cannot move from {current.value} to {target.value}")
        self.tag = tag
        self.current = current
        self.target = target


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationAgent:
    """Summary: Background agent reacting to platform events for one device.

    Importance: Owns display, click handling, and snooze rescheduling on the recipient side.
    Alternatives: Let the foreground app handle every notification event.
    """

    def __init__(
        self,
        host: AgentHost,
        settings_cache: SettingsCache | None = None,
        default_snooze_minutes: int = DEFAULT_SNOOZE_MINUTES,
        window_minutes: int = DEFAULT_WINDOW_MINUTES,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._host = host
        self._settings_cache = settings_cache
        self._default_snooze_minutes = default_snooze_minutes
        self._window_minutes = window_minutes
        self._clock = clock
        self._states: dict[str, NotificationState] = {}
        self._instances: dict[str, NotificationInstance] = {}
        # Snooze request -> (tag it snoozed, timer handle).
        self._pending_snoozes: dict[SnoozeRequest, tuple[str, Any]] = {}

    @property
    def instances(self) -> dict[str, NotificationInstance]:
        return dict(self._instances)

    @property
    def pending_snoozes(self) -> list[SnoozeRequest]:
        return list(self._pending_snoozes)

    def state_of(self, tag: str) -> NotificationState:
        return self._states.get(tag, NotificationState.IDLE)

    def _transition(self, tag: str, target: NotificationState) -> None:
        current = self.state_of(tag)
        if target not in TRANSITIONS[current]:
            raise InvalidTransitionError(tag, current, target)
        self._states[tag] = target
        logger.debug("Notification %s: %s -> %s", tag, current.value, target.value)

    async def _display(self, payload: NotificationPayload) -> None:
        """Summary: Show a payload while holding the host's keep-alive.

        Importance: Without the hold the host may reclaim the agent mid-display.
        Alternatives: Fire-and-forget the display call.
        """

        async with self._host.keep_alive():
            await self._host.show_notification(payload)
        self._instances[payload.tag] = NotificationInstance(
            tag=payload.tag, payload=payload, created_at=self._clock()
        )
        self._transition(payload.tag, NotificationState.DISPLAYED)

    async def on_push(self, raw: bytes | str | None) -> NotificationPayload:
        """Summary: Handle an inbound push event (Idle -> Displayed).

        Importance: A push that cannot be parsed still shows the default reminder.
        Alternatives: Drop pushes with invalid payloads.
        """

        now = self._clock()
        fallback = default_payload(now)
        payload = fallback
        if raw:
            try:
                parsed = json.loads(raw)
                if not isinstance(parsed, dict):
                    raise ValueError("push payload is not a JSON object")
                merged = {**fallback.to_dict(), **parsed}
                if isinstance(parsed.get("data"), dict):
                    merged["data"] = {**fallback.data.to_dict(), **parsed["data"]}
                payload = NotificationPayload.from_dict(merged)
            except (ValueError, KeyError, TypeError) as exc:
                logger.warning("Error parsing push data, showing default reminder: %s", exc)
                payload = fallback
        await self._display(payload)
        return payload

    async def on_notification_click(
        self, tag: str, action: str | None, data: dict[str, Any] | None = None
    ) -> NotificationState | None:
        """Summary: Handle a click on a displayed notification or one of its actions.

        Importance: Routes to dismissal, app opening, or snooze.
        Alternatives: Open the app for every click.
        """

        notification_data = self._click_data(tag, data)
        if action == ACTION_SNOOZE:
            target = NotificationState.SNOOZED
        elif action == ACTION_ADD_TRANSACTION or not action:
            target = NotificationState.APP_OPENED
        else:
            target = NotificationState.DISMISSED

        # Clicks arriving after an agent restart refer to tags shown by an earlier instance.
        self._states.setdefault(tag, NotificationState.DISPLAYED)
        try:
            self._transition(tag, target)
        except InvalidTransitionError as exc:
            logger.warning("Ignoring click: %s", exc)
            return None

        await self._host.close_notification(tag)
        self._instances.pop(tag, None)

        if target is NotificationState.APP_OPENED:
            url = ADD_TRANSACTION_URL if action == ACTION_ADD_TRANSACTION else APP_URL
            async with self._host.keep_alive():
                await self._host.focus_or_open(url)
        elif target is NotificationState.SNOOZED:
            await self._snooze(tag, notification_data)
        elif action == ACTION_DISMISS:
            logger.info("Notification %s dismissed", tag)
        else:
            logger.info("Notification %s closed by unrecognized action %r", tag, action)
        return target

    def _click_data(self, tag: str, data: dict[str, Any] | None) -> dict[str, Any]:
        if data:
            return data
        instance = self._instances.get(tag)
        return instance.payload.data.to_dict() if instance else {}

    async def _snooze(self, tag: str, data: dict[str, Any]) -> SnoozeRequest:
        """Summary: Hand the snooze to a foreground window or schedule it locally.

        Importance: A foreground window has a reliable timer; the agent's own timer does not.
        Alternatives: Always schedule the snooze inside the agent.
        """

        minutes = data.get("snoozeMinutes")
        if not isinstance(minutes, int) or isinstance(minutes, bool) or minutes <= 0:
            minutes = self._default_snooze_minutes
        user_id = data.get("userId")
        request = SnoozeRequest(
            user_id=str(user_id) if user_id is not None else None,
            fire_at=self._clock() + timedelta(minutes=minutes),
            message=SNOOZED_BODY,
        )
        async with self._host.keep_alive():
            delegated = await self._delegate(request)
        if delegated:
            logger.info("Snooze for user %s handed to foreground app", request.user_id)
            return request

        async def fire() -> None:
            await self.on_snooze_elapsed(request)

        self._pending_snoozes[request] = (tag, self._host.schedule(minutes * 60, fire))
        logger.info("Snooze for user %s scheduled in agent for %s", request.user_id, request.fire_at)
        return request

    async def _delegate(self, request: SnoozeRequest) -> bool:
        message = build_schedule_snooze(request)
        for client in await self._host.match_clients():
            try:
                if await client.post_message(message):
                    return True
            except Exception:
                logger.warning("Foreground client rejected snooze message", exc_info=True)
        return False

    async def on_snooze_elapsed(self, request: SnoozeRequest) -> NotificationPayload | None:
        """Summary: Re-display a snoozed reminder (Snoozed -> Displayed).

        Importance: Each snooze request is consumed exactly once.
        Alternatives: Let repeated timers show duplicate reminders.
        """

        pending = self._pending_snoozes.pop(request, None)
        if pending is None:
            logger.debug("Snooze for user %s already fired", request.user_id)
            return None
        origin_tag, _timer = pending
        if self.state_of(origin_tag) is NotificationState.SNOOZED:
            self._states[origin_tag] = NotificationState.IDLE
        payload = snoozed_payload(request, self._clock())
        await self._display(payload)
        return payload

    async def on_periodic_check(self) -> bool:
        """Summary: Show the daily reminder from cached settings when no push arrived.

        Importance: Uses the same eligibility rule as the server so both paths agree.
        Alternatives: Rely only on server pushes.
        """

        if self._settings_cache is None:
            return False
        now = self._clock()
        try:
            cached = self._settings_cache.load()
            if cached is None:
                return False
            user_id, settings = cached
            if not is_eligible(settings, now, self._window_minutes):
                return False
            if already_notified_today(settings, now):
                return False
            await self._display(build_reminder_payload(user_id, settings, now))
            today = local_date(settings, now)
            if today is not None:
                self._settings_cache.mark_notified(user_id, today)
        except Exception:
            logger.exception("Error in periodic reminder check")
            return False
        return True

    async def on_message(self, message: dict[str, Any]) -> bool:
        """Summary: Handle a SCHEDULE_NOTIFICATION message from the foreground app.

        Importance: Lets the app queue a one-off reminder in the agent.
        Alternatives: Have the app display the reminder itself.
        """

        if not isinstance(message, dict) or message.get("type") != SCHEDULE_NOTIFICATION:
            return False
        delay_ms = message.get("delay")
        if not isinstance(delay_ms, (int, float)) or isinstance(delay_ms, bool) or delay_ms < 0:
            logger.warning("Ignoring SCHEDULE_NOTIFICATION without a valid delay")
            return False
        title = str(message.get("title") or "")
        body = str(message.get("body") or "")

        async def fire() -> None:
            await self._display(
                NotificationPayload(
                    title=title,
                    body=body,
                    icon=ICON,
                    badge=ICON,
                    tag=SCHEDULED_TAG,
                    require_interaction=False,
                    actions=(),
                    data=NotificationData(
                        type=SCHEDULED_TAG, timestamp=iso_timestamp(self._clock())
                    ),
                )
            )

        self._host.schedule(delay_ms / 1000, fire)
        return True
