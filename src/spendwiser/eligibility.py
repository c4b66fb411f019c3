"""Summary: Eligibility evaluation for reminder delivery.

Importance: One pure decision shared by server ticks and the on-device periodic check.
Alternatives: Precompute next fire times and store them per user.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from spendwiser.models import Frequency, ReminderSettings, ReminderTime

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_MINUTES = 5
WEEKDAYS = frozenset({1, 2, 3, 4, 5})
WEEKENDS = frozenset({0, 6})


def resolve_timezone(name: str) -> ZoneInfo | None:
    """Summary: Resolve an IANA zone name, returning None when unknown.

    Importance: Unknown zones are configuration errors that must fail closed.
    Alternatives: Fall back to UTC for unknown zones.
    """

    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def local_weekday(moment: datetime) -> int:
    """Return the weekday of a local datetime with 0=Sunday..6=Saturday."""

    return moment.isoweekday() % 7


def is_day_eligible(frequency: str, custom_days: Iterable[int] | None, weekday: int) -> bool:
    """Summary: Match a weekday index against a frequency pattern.

    Importance: Unknown patterns and empty custom sets never fire.
    Alternatives: Treat unknown patterns as daily.
    """

    if frequency == Frequency.DAILY.value:
        return True
    if frequency == Frequency.WEEKDAYS.value:
        return weekday in WEEKDAYS
    if frequency == Frequency.WEEKENDS.value:
        return weekday in WEEKENDS
    if frequency == Frequency.CUSTOM.value:
        return weekday in set(custom_days or ())
    return False


def is_time_eligible(
    target: ReminderTime, local_now: datetime, window_minutes: int = DEFAULT_WINDOW_MINUTES
) -> bool:
    """Summary: Check whether local wall-clock time is inside the window around the target.

    Importance: The window makes the check robust to tick jitter.
    Alternatives: Fire only on an exact minute match.
    """

    current = local_now.hour * 60 + local_now.minute
    return abs(current - target.minutes_of_day) <= window_minutes


def to_local(settings: ReminderSettings, now: datetime) -> datetime | None:
    """Summary: Convert an aware instant to the recipient's local time.

    Importance: Both day and time checks happen on the recipient's clock.
    Alternatives: Store settings in UTC and skip conversion.
    """

    if now.tzinfo is None or now.utcoffset() is None:
        raise ValueError("now must be a timezone-aware datetime")
    zone = resolve_timezone(settings.timezone)
    if zone is None:
        return None
    return now.astimezone(zone)


def local_date(settings: ReminderSettings, now: datetime) -> date | None:
    """Return the recipient's local calendar date, or None for an unknown zone."""

    local_now = to_local(settings, now)
    return local_now.date() if local_now else None


def is_eligible(
    settings: ReminderSettings,
    now: datetime,
    window_minutes: int = DEFAULT_WINDOW_MINUTES,
) -> bool:
    """Summary: Decide whether a reminder should fire for these settings right now.

    Importance: Shared by the dispatch orchestrator and the recipient agent.
    Alternatives: Keep separate server and client implementations.
    """

    if not settings.enabled:
        return False
    if settings.time is None:
        logger.warning("Reminder settings without a valid time; treating as ineligible")
        return False
    local_now = to_local(settings, now)
    if local_now is None:
        logger.warning("Unknown timezone %r; treating as ineligible", settings.timezone)
        return False
    if not is_day_eligible(settings.frequency, settings.custom_days, local_weekday(local_now)):
        return False
    return is_time_eligible(settings.time, local_now, window_minutes)


def already_notified_today(settings: ReminderSettings, now: datetime) -> bool:
    """Summary: Check whether the recipient was reminded on their current local date.

    Importance: Prevents double-firing when ticks are denser than the window.
    Alternatives: Track the last fired instant and compare against the window.
    """

    if settings.last_notified is None:
        return False
    today = local_date(settings, now)
    return today is not None and settings.last_notified == today
