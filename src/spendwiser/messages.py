"""Summary: Cross-context messages exchanged between the background agent and foreground app.

Importance: Fixes the wire shape used to hand a snooze over to an open app window.
Alternatives: Share state through a common key-value store instead of messages.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from spendwiser.models import SnoozeRequest

SCHEDULE_SNOOZE = "SCHEDULE_SNOOZE"
SCHEDULE_NOTIFICATION = "SCHEDULE_NOTIFICATION"


def to_epoch_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def from_epoch_millis(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def build_schedule_snooze(request: SnoozeRequest) -> dict[str, Any]:
    """Summary: Encode a snooze request as a SCHEDULE_SNOOZE message.

    Importance: The foreground app only understands this exact schema.
    Alternatives: Post the dataclass fields with Python naming.
    """

    return {
        "type": SCHEDULE_SNOOZE,
        "data": {
            "userId": request.user_id,
            "snoozeTime": to_epoch_millis(request.fire_at),
            "message": request.message,
        },
    }


def parse_schedule_snooze(message: Any) -> SnoozeRequest:
    """Summary: Decode a SCHEDULE_SNOOZE message.

    Importance: Rejects malformed messages before they reach a timer.
    Alternatives: Trust every message posted by the agent.
    """

    if not isinstance(message, dict) or message.get("type") != SCHEDULE_SNOOZE:
        raise ValueError("Not a SCHEDULE_SNOOZE message")
    data = message.get("data")
    if not isinstance(data, dict):
        raise ValueError("SCHEDULE_SNOOZE message has no data")
    snooze_time = data.get("snoozeTime")
    if not isinstance(snooze_time, (int, float)) or isinstance(snooze_time, bool):
        raise ValueError("snoozeTime must be epoch milliseconds")
    user_id = data.get("userId")
    return SnoozeRequest(
        user_id=str(user_id) if user_id is not None else None,
        fire_at=from_epoch_millis(int(snooze_time)),
        message=str(data.get("message") or ""),
    )
