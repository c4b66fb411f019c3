"""Summary: Host platform interfaces seen by the recipient-side agent.

Importance: Separates notification logic from the platform that displays and schedules.
Alternatives: Call platform APIs directly from the state machine.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable

from spendwiser.models import NotificationPayload

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class ForegroundClient(ABC):
    """Summary: An open foreground window of the application.

    Importance: Receives snooze hand-offs it can schedule with its own timer.
    Alternatives: Broadcast snoozes without acknowledgement.
    """

    @abstractmethod
    async def post_message(self, message: dict[str, Any]) -> bool:
        """Deliver a message and return True when the client acknowledges it."""


class AgentHost(ABC):
    """Summary: Capabilities the host grants the background agent.

    Importance: Keeps the agent testable without a real device platform.
    Alternatives: Inject individual callables for each capability.
    """

    @abstractmethod
    def keep_alive(self) -> Any:
        """Return an async context manager that stops the host reclaiming the agent."""

    @abstractmethod
    async def show_notification(self, payload: NotificationPayload) -> None:
        """Display a notification; same-tag notifications replace each other."""

    @abstractmethod
    async def close_notification(self, tag: str) -> None:
        """Close the notification with this tag."""

    @abstractmethod
    async def focus_or_open(self, url: str) -> None:
        """Focus an open app window at url, or open a new one."""

    @abstractmethod
    async def match_clients(self) -> list[ForegroundClient]:
        """Return the currently open foreground windows."""

    @abstractmethod
    def schedule(self, delay_seconds: float, callback: TimerCallback) -> Any:
        """Run callback after a delay; not guaranteed to survive agent termination."""


@dataclass
class ScheduledTimer:
    """Summary: Pending non-durable timer owned by the local host."""

    delay_seconds: float
    callback: TimerCallback
    handle: asyncio.TimerHandle | None = field(default=None, repr=False)


class LocalAgentHost(AgentHost):
    """Summary: In-process host driven by the asyncio event loop.

    Importance: Simulates the device platform for tests and the CLI.
    Alternatives: Run the agent inside a headless browser.
    """

    def __init__(self, clients: list[ForegroundClient] | None = None) -> None:
        self.clients: list[ForegroundClient] = list(clients or [])
        self.shown: list[NotificationPayload] = []
        self.closed: list[str] = []
        self.opened: list[str] = []
        self.active_holds = 0
        self.holds_acquired = 0
        self.timers: list[ScheduledTimer] = []
        self._tasks: set[asyncio.Task] = set()

    @asynccontextmanager
    async def keep_alive(self) -> AsyncIterator[None]:
        self.active_holds += 1
        self.holds_acquired += 1
        try:
            yield
        finally:
            self.active_holds -= 1

    async def show_notification(self, payload: NotificationPayload) -> None:
        self.shown.append(payload)

    async def close_notification(self, tag: str) -> None:
        self.closed.append(tag)

    async def focus_or_open(self, url: str) -> None:
        self.opened.append(url)

    async def match_clients(self) -> list[ForegroundClient]:
        return list(self.clients)

    def schedule(self, delay_seconds: float, callback: TimerCallback) -> ScheduledTimer:
        """Summary: Schedule a callback on the running event loop.

        Importance: Mirrors a platform timer that dies with the agent.
        Alternatives: Persist timers to disk and reload them on start.
        """

        timer = ScheduledTimer(delay_seconds=delay_seconds, callback=callback)
        loop = asyncio.get_running_loop()
        timer.handle = loop.call_later(delay_seconds, self._fire, timer)
        self.timers.append(timer)
        return timer

    def _fire(self, timer: ScheduledTimer) -> None:
        if timer in self.timers:
            self.timers.remove(timer)
        task = asyncio.ensure_future(timer.callback())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def flush_timers(self) -> int:
        """Summary: Run every pending timer immediately, in scheduling order.

        Importance: Lets simulations skip ahead without waiting hours.
        Alternatives: Patch the event loop clock.
        """

        pending, self.timers = self.timers, []
        for timer in pending:
            if timer.handle is not None:
                timer.handle.cancel()
            await timer.callback()
        return len(pending)

    def terminate(self) -> None:
        """Summary: Reclaim the idle agent, dropping every pending timer.

        Importance: Models the platform discarding an agent that holds no keep-alive.
        Alternatives: Refuse to terminate while timers are pending.
        """

        logger.debug("Agent terminated with %d pending timers", len(self.timers))
        for timer in self.timers:
            if timer.handle is not None:
                timer.handle.cancel()
        self.timers = []
