"""Summary: Periodic tick driver for the dispatch service.

Importance: Runs one dispatch tick per interval for as long as the process lives.
Alternatives: Trigger ticks from cron via the run-tick CLI command.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable

from spendwiser.models import DispatchResult
from spendwiser.services import DispatchService

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TickScheduler:
    """Background loop that dispatches reminders every interval.

    A failing tick is logged and the loop keeps running.
    """

    def __init__(
        self,
        dispatch: DispatchService,
        interval_seconds: float = 60,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._dispatch = dispatch
        self._interval_seconds = interval_seconds
        self._clock = clock
        self._running = False
        self._task: asyncio.Task | None = None
        self.ticks = 0
        self.last_result: DispatchResult | None = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start the scheduler as a background task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Reminder scheduler started (interval=%ss)", self._interval_seconds)

    def stop(self) -> None:
        """Stop the scheduler."""
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None
        logger.info("Reminder scheduler stopped")

    async def tick(self) -> DispatchResult | None:
        """Run a single tick at the clock's current instant."""
        try:
            self.last_result = await self._dispatch.run_tick(self._clock())
        except Exception as exc:
            logger.error("Scheduler tick error: %s", exc, exc_info=True)
            return None
        finally:
            self.ticks += 1
        return self.last_result

    async def _loop(self) -> None:
        while self._running:
            await self.tick()
            await asyncio.sleep(self._interval_seconds)

    async def run_forever(self) -> None:
        """Run the loop in the foreground until cancelled."""
        self._running = True
        logger.info("Reminder scheduler running (interval=%ss)", self._interval_seconds)
        try:
            await self._loop()
        finally:
            self._running = False
