"""Summary: Foreground counterpart that takes over snoozes from the background agent.

Importance: An open app window can keep timers the background agent cannot.
Alternatives: Keep every snooze inside the background agent.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from spendwiser.host import ForegroundClient
from spendwiser.messages import SCHEDULE_SNOOZE, parse_schedule_snooze
from spendwiser.models import SnoozeRequest

logger = logging.getLogger(__name__)


class ForegroundSnoozeScheduler(ForegroundClient):
    """Summary: Accepts SCHEDULE_SNOOZE messages and releases each request once it is due.

    Importance: Acknowledging a message transfers ownership of the snooze to this window.
    Alternatives: Re-post the snooze back to the agent when it is due.
    """

    def __init__(self) -> None:
        self._pending: list[SnoozeRequest] = []

    @property
    def pending(self) -> list[SnoozeRequest]:
        return list(self._pending)

    async def post_message(self, message: dict[str, Any]) -> bool:
        """Summary: Receive a message from the background agent.

        Importance: Only a well-formed snooze is acknowledged.
        Alternatives: Acknowledge every message and validate later.
        """

        if not isinstance(message, dict) or message.get("type") != SCHEDULE_SNOOZE:
            return False
        try:
            request = parse_schedule_snooze(message)
        except ValueError as exc:
            logger.warning("Rejecting malformed snooze message: %s", exc)
            return False
        self._pending.append(request)
        logger.info("Foreground scheduled snooze for user %s at %s", request.user_id, request.fire_at)
        return True

    def pop_due(self, now: datetime) -> list[SnoozeRequest]:
        """Summary: Remove and return every request whose fire time has passed.

        Importance: A returned request is never returned again.
        Alternatives: Mark requests as fired and keep them in the list.
        """

        due = [request for request in self._pending if request.fire_at <= now]
        self._pending = [request for request in self._pending if request.fire_at > now]
        return due
