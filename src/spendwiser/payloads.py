"""Summary: Notification payload builders shared by dispatch and the recipient agent.

Importance: Keeps titles, tags, and actions identical on both sides of the push channel.
Alternatives: Duplicate payload literals in each component.
"""

from __future__ import annotations

from datetime import datetime, timezone

from spendwiser.models import (
    DEFAULT_SNOOZE_MINUTES,
    NotificationAction,
    NotificationData,
    NotificationPayload,
    ReminderSettings,
    SnoozeRequest,
)

REMINDER_TITLE = "💰 SpendWiser Reminder"
SNOOZED_TITLE = "💰 SpendWiser Reminder (Snoozed)"
DEFAULT_REMINDER_BODY = "Don't forget to log your transactions for today!"
SNOOZED_BODY = "Time to log your transactions!"
ICON = "/icon-money.svg"

REMINDER_TAG = "daily-reminder"
SNOOZED_TAG = f"{REMINDER_TAG}-snoozed"
REMINDER_TYPE = "daily-reminder"
SNOOZED_TYPE = "snoozed-reminder"

ACTION_ADD_TRANSACTION = "add-transaction"
ACTION_SNOOZE = "snooze"
ACTION_DISMISS = "dismiss"

APP_URL = "/"
ADD_TRANSACTION_URL = "/?action=add-transaction"

REMINDER_ACTIONS = (
    NotificationAction(action=ACTION_ADD_TRANSACTION, title="💳 Add Transaction"),
    NotificationAction(action=ACTION_SNOOZE, title="⏰ Remind Later"),
    NotificationAction(action=ACTION_DISMISS, title="✖️ Dismiss"),
)


def iso_timestamp(moment: datetime) -> str:
    """Format an aware instant as a UTC ISO-8601 string with millisecond precision."""

    utc = moment.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def reminder_body(reminder_text: object) -> str:
    """Summary: Pick the reminder body, falling back to the default text.

    Importance: A missing or blank custom text must never produce an empty notification.
    Alternatives: Reject settings without text at registration time.
    """

    if isinstance(reminder_text, str) and reminder_text.strip():
        return reminder_text
    return DEFAULT_REMINDER_BODY


def build_reminder_payload(
    user_id: str | None, settings: ReminderSettings | None, now: datetime
) -> NotificationPayload:
    """Summary: Build the daily reminder payload for one recipient.

    Importance: Single definition for server-pushed and locally shown reminders.
    Alternatives: Let each caller assemble its own payload dict.
    """

    return NotificationPayload(
        title=REMINDER_TITLE,
        body=reminder_body(settings.reminder_text if settings else None),
        icon=ICON,
        badge=ICON,
        tag=REMINDER_TAG,
        require_interaction=True,
        actions=REMINDER_ACTIONS,
        data=NotificationData(
            type=REMINDER_TYPE,
            timestamp=iso_timestamp(now),
            url=ADD_TRANSACTION_URL,
            user_id=user_id,
            snooze_minutes=settings.snooze_minutes if settings else DEFAULT_SNOOZE_MINUTES,
        ),
    )


def default_payload(now: datetime) -> NotificationPayload:
    """Summary: Payload shown when an inbound push carries no usable data.

    Importance: Display must still happen when the push body is missing or corrupt.
    Alternatives: Drop pushes that cannot be parsed.
    """

    return NotificationPayload(
        title=REMINDER_TITLE,
        body=DEFAULT_REMINDER_BODY,
        icon=ICON,
        badge=ICON,
        tag=REMINDER_TAG,
        require_interaction=True,
        actions=REMINDER_ACTIONS,
        data=NotificationData(type=REMINDER_TYPE, timestamp=iso_timestamp(now), url=APP_URL),
    )


def snoozed_payload(request: SnoozeRequest, now: datetime) -> NotificationPayload:
    """Summary: Payload re-displayed after a snooze elapses.

    Importance: Uses its own tag so it coexists with a fresh daily reminder.
    Alternatives: Reuse the daily tag and replace the original.
    """

    return NotificationPayload(
        title=SNOOZED_TITLE,
        body=request.message or SNOOZED_BODY,
        icon=ICON,
        badge=ICON,
        tag=SNOOZED_TAG,
        require_interaction=True,
        actions=(),
        data=NotificationData(
            type=SNOOZED_TYPE,
            timestamp=iso_timestamp(now),
            url=ADD_TRANSACTION_URL,
            user_id=request.user_id,
        ),
    )
