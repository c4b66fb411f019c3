"""Summary: Dispatch orchestrator for one reminder tick.

Importance: Fans out deliveries concurrently so one recipient's failure never affects another.
Alternatives: Iterate recipients sequentially and stop at the first error.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable

from spendwiser.eligibility import DEFAULT_WINDOW_MINUTES, is_eligible
from spendwiser.models import (
    DispatchFailure,
    DispatchResult,
    NotificationPayload,
    RegistryEntry,
    ReminderSettings,
)
from spendwiser.payloads import build_reminder_payload
from spendwiser.transport import FailureKind, PushTransport, TransportError

logger = logging.getLogger(__name__)

PayloadBuilder = Callable[[str, ReminderSettings, datetime], NotificationPayload]


@dataclass(frozen=True)
class DeliveryOutcome:
    """Summary: Result slot written by exactly one delivery task.

    Importance: Tasks never touch a shared accumulator; the join step reduces slots.
    Alternatives: Guard shared counters with a lock.
    """

    user_id: str
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.reason is None


class DispatchOrchestrator:
    """Summary: Evaluates a registry snapshot and delivers reminders to eligible recipients.

    Importance: Core of the server-side reminder engine.
    Alternatives: Queue one background job per recipient in a task broker.
    """

    def __init__(
        self,
        transport: PushTransport,
        timeout_seconds: float = 10.0,
        max_concurrency: int = 20,
        window_minutes: int = DEFAULT_WINDOW_MINUTES,
        payload_builder: PayloadBuilder = build_reminder_payload,
    ) -> None:
        """Summary: Initialize the orchestrator.

        Importance: Timeout and concurrency bound how long one slow endpoint holds a tick.
        Alternatives: Read limits from global configuration at call time.
        """

        self._transport = transport
        self._timeout_seconds = timeout_seconds
        self._max_concurrency = max_concurrency
        self._window_minutes = window_minutes
        self._payload_builder = payload_builder

    async def run_tick(self, snapshot: Iterable[RegistryEntry], now: datetime) -> DispatchResult:
        """Summary: Run one tick over a registry snapshot at the given instant.

        Importance: Ineligible recipients are skipped silently; failures are recorded per recipient.
        Alternatives: Read the registry and clock inside the orchestrator.
        """

        entries = tuple(snapshot)
        semaphore = asyncio.Semaphore(self._max_concurrency)
        tasks = []
        for entry in entries:
            try:
                eligible = is_eligible(entry.settings, now, self._window_minutes)
            except Exception:
                logger.exception("Eligibility check failed for user %s", _user_id_of(entry))
                tasks.append(_failed(_user_id_of(entry), FailureKind.UNKNOWN.value))
                continue
            if eligible:
                tasks.append(self._deliver(entry, now, semaphore))
            else:
                logger.debug("Skipping user %s: not eligible", entry.user_id)

        outcomes: list[DeliveryOutcome] = list(await asyncio.gather(*tasks))
        result = summarize(outcomes)
        logger.info(
            "Dispatch tick at %s: %d attempted, %d succeeded, %d failed (%d recipients)",
            now.isoformat(),
            result.attempted,
            result.succeeded,
            result.failed,
            len(entries),
        )
        return result

    async def _deliver(
        self, entry: RegistryEntry, now: datetime, semaphore: asyncio.Semaphore
    ) -> DeliveryOutcome:
        """Summary: Deliver one reminder and capture its outcome.

        Importance: Every exception stays inside this recipient's result slot.
        Alternatives: Let gather propagate the first exception.
        """

        user_id = _user_id_of(entry)
        async with semaphore:
            try:
                payload = self._payload_builder(user_id, entry.settings, now).to_json_bytes()
                await asyncio.wait_for(
                    asyncio.to_thread(
                        self._transport.send,
                        entry.subscription.endpoint,
                        entry.subscription.keys,
                        payload,
                    ),
                    timeout=self._timeout_seconds,
                )
            except TransportError as exc:
                logger.warning("Push to user %s failed: %s", user_id, exc)
                return DeliveryOutcome(user_id=user_id, reason=exc.kind.value)
            except asyncio.TimeoutError:
                logger.warning(
                    "Push to user %s timed out after %.1fs", user_id, self._timeout_seconds
                )
                return DeliveryOutcome(user_id=user_id, reason=FailureKind.NETWORK_ERROR.value)
            except Exception:
                logger.exception("Unexpected error delivering to user %s", user_id)
                return DeliveryOutcome(user_id=user_id, reason=FailureKind.UNKNOWN.value)
        logger.info("Reminder delivered to user %s", user_id)
        return DeliveryOutcome(user_id=user_id)

    def run_tick_sync(self, snapshot: Iterable[RegistryEntry], now: datetime) -> DispatchResult:
        """Run a tick from synchronous code such as the CLI."""

        return asyncio.run(self.run_tick(snapshot, now))


async def _failed(user_id: str, reason: str) -> DeliveryOutcome:
    return DeliveryOutcome(user_id=user_id, reason=reason)


def _user_id_of(entry: object) -> str:
    return str(getattr(entry, "user_id", "<unknown>"))


def summarize(outcomes: Iterable[DeliveryOutcome]) -> DispatchResult:
    """Summary: Reduce per-recipient outcomes into a tick summary.

    Importance: Aggregation happens once, after every task has joined.
    Alternatives: Increment counters from inside each task.
    """

    collected = list(outcomes)
    failures = tuple(
        DispatchFailure(user_id=outcome.user_id, reason=outcome.reason)
        for outcome in collected
        if outcome.reason is not None
    )
    delivered = tuple(outcome.user_id for outcome in collected if outcome.ok)
    return DispatchResult(
        attempted=len(collected),
        succeeded=len(delivered),
        failed=len(failures),
        failures=failures,
        delivered=delivered,
    )
