"""Summary: Tests for registry and dispatch services.

Importance: Confirms validation, per-day de-duplication, and expired-subscription cleanup.
Alternatives: Exercise services only through the API.
"""

from __future__ import annotations

import asyncio
import threading
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

from spendwiser.dispatch import DispatchOrchestrator
from spendwiser.scheduler import TickScheduler
from spendwiser.services import DispatchService, RegistryService
from spendwiser.storage.sqlite_store import SqliteStore
from spendwiser.transport import FailureKind, MockPushTransport

NOW = datetime(2024, 6, 3, 9, 2, tzinfo=timezone.utc)
SETTINGS = {"enabled": True, "frequency": "daily", "time": "09:00"}


def _subscription(user_id: str) -> dict:
    return {
        "endpoint": f"https://push.example.com/{user_id}",
        "keys": {"p256dh": "p256dh-key", "auth": "auth-key"},
    }


def _services(
    tmp_path: Path, transport: MockPushTransport, **options: bool
) -> tuple[RegistryService, DispatchService]:
    store = SqliteStore(str(tmp_path / "test.db"))
    store.initialize()
    dispatch = DispatchService(
        store=store, orchestrator=DispatchOrchestrator(transport), **options
    )
    return RegistryService(store=store), dispatch


def test_register_rejects_invalid_input(tmp_path: Path) -> None:
    """Summary: Verify registration validates before writing.

    Importance: Invalid records would silently never fire.
    Alternatives: Accept everything and fail closed at tick time.
    """

    registry, _ = _services(tmp_path, MockPushTransport())
    with pytest.raises(ValueError):
        registry.register_subscription("", _subscription("u"), SETTINGS, "UTC")
    with pytest.raises(ValueError):
        registry.register_subscription("u", {"endpoint": "https://x"}, SETTINGS, "UTC")
    with pytest.raises(ValueError):
        registry.register_subscription("u", _subscription("u"), SETTINGS, "Not/AZone")
    with pytest.raises(ValueError):
        registry.register_subscription("u", _subscription("u"), {**SETTINGS, "time": "9am"}, "UTC")
    with pytest.raises(ValueError):
        registry.register_subscription(
            "u", _subscription("u"), {**SETTINGS, "frequency": "hourly"}, "UTC"
        )
    with pytest.raises(ValueError):
        registry.register_subscription(
            "u", _subscription("u"), {"enabled": True, "frequency": "daily"}, "UTC"
        )
    assert registry.get_settings("u") is None


def test_disabled_settings_may_omit_time(tmp_path: Path) -> None:
    registry, _ = _services(tmp_path, MockPushTransport())
    registry.register_subscription(
        "u", _subscription("u"), {"enabled": False, "frequency": "daily"}, "UTC"
    )
    assert registry.get_settings("u").enabled is False


def test_update_settings_keeps_last_notified(tmp_path: Path) -> None:
    registry, dispatch = _services(tmp_path, MockPushTransport())
    registry.register_subscription("u", _subscription("u"), SETTINGS, "UTC")
    asyncio.run(dispatch.run_tick(NOW))
    updated = registry.update_settings("u", {**SETTINGS, "reminderText": "New"}, "UTC")
    assert updated.reminder_text == "New"
    assert updated.last_notified == date(2024, 6, 3)


def test_dense_ticks_notify_once_per_local_day(tmp_path: Path) -> None:
    """Summary: Verify one-minute ticks inside the window deliver a single reminder.

    Importance: The window spans several ticks; without de-duplication every tick would fire.
    Alternatives: Require tick cadence at least as wide as the window.
    """

    transport = MockPushTransport()
    registry, dispatch = _services(tmp_path, transport)
    registry.register_subscription("u", _subscription("u"), SETTINGS, "UTC")
    results = [
        asyncio.run(dispatch.run_tick(NOW + timedelta(minutes=offset))) for offset in range(4)
    ]
    assert [result.succeeded for result in results] == [1, 0, 0, 0]
    assert len(transport.sent) == 1
    next_day = asyncio.run(dispatch.run_tick(NOW + timedelta(days=1)))
    assert next_day.succeeded == 1


def test_dedupe_can_be_disabled(tmp_path: Path) -> None:
    transport = MockPushTransport()
    registry, dispatch = _services(tmp_path, transport, dedupe_per_day=False)
    registry.register_subscription("u", _subscription("u"), SETTINGS, "UTC")
    asyncio.run(dispatch.run_tick(NOW))
    asyncio.run(dispatch.run_tick(NOW + timedelta(minutes=1)))
    assert len(transport.sent) == 2


def test_failed_delivery_is_not_marked_notified(tmp_path: Path) -> None:
    transport = MockPushTransport(
        failures={"https://push.example.com/u": FailureKind.RATE_LIMITED}
    )
    registry, dispatch = _services(tmp_path, transport)
    registry.register_subscription("u", _subscription("u"), SETTINGS, "UTC")
    result = asyncio.run(dispatch.run_tick(NOW))
    assert result.failures[0].reason == "RateLimited"
    assert registry.get_settings("u").last_notified is None


def test_expired_subscription_is_pruned(tmp_path: Path) -> None:
    """Summary: Verify subscriptions reported gone by the push service are removed.

    Importance: Expired endpoints would fail on every later tick.
    Alternatives: Keep retrying until an operator cleans up.
    """

    transport = MockPushTransport(failures={"https://push.example.com/gone": FailureKind.EXPIRED})
    registry, dispatch = _services(tmp_path, transport)
    registry.register_subscription("gone", _subscription("gone"), SETTINGS, "UTC")
    registry.register_subscription("kept", _subscription("kept"), SETTINGS, "UTC")
    result = asyncio.run(dispatch.run_tick(NOW))
    assert (result.succeeded, result.failed) == (1, 1)
    assert [entry.user_id for entry in dispatch.store.list_active_subscribers()] == ["kept"]
    assert registry.unregister("gone") is False


class ThreadRecordingStore(SqliteStore):
    """Registry that records which thread served each tick-time call."""

    def __init__(self, db_path: str) -> None:
        super().__init__(db_path)
        self.calls: list[tuple[str, int]] = []

    def list_active_subscribers(self):
        self.calls.append(("list_active_subscribers", threading.get_ident()))
        return super().list_active_subscribers()

    def mark_notified(self, user_id: str, day: date) -> None:
        self.calls.append(("mark_notified", threading.get_ident()))
        super().mark_notified(user_id, day)

    def delete_subscription(self, user_id: str) -> bool:
        self.calls.append(("delete_subscription", threading.get_ident()))
        return super().delete_subscription(user_id)


def test_tick_keeps_registry_io_off_the_event_loop(tmp_path: Path) -> None:
    """Summary: Verify blocking registry calls made during a tick run in worker threads.

    Importance: The dispatch route shares the event loop with every other request.
    Alternatives: Accept short SQLite stalls on the loop.
    """

    store = ThreadRecordingStore(str(tmp_path / "test.db"))
    store.initialize()
    transport = MockPushTransport(failures={"https://push.example.com/gone": FailureKind.EXPIRED})
    registry = RegistryService(store=store)
    registry.register_subscription("gone", _subscription("gone"), SETTINGS, "UTC")
    registry.register_subscription("kept", _subscription("kept"), SETTINGS, "UTC")
    store.calls.clear()
    dispatch = DispatchService(store=store, orchestrator=DispatchOrchestrator(transport))
    asyncio.run(dispatch.run_tick(NOW))
    names = {name for name, _ in store.calls}
    assert names == {"list_active_subscribers", "mark_notified", "delete_subscription"}
    assert all(ident != threading.get_ident() for _, ident in store.calls)


def test_tick_scheduler_survives_failing_tick(tmp_path: Path) -> None:
    """Summary: Verify a tick error is logged and the scheduler keeps counting ticks.

    Importance: One bad tick must not stop reminders for the rest of the day.
    Alternatives: Crash the process and rely on a supervisor.
    """

    _, dispatch = _services(tmp_path, MockPushTransport())
    calls: list[int] = []

    def clock() -> datetime:
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("clock unavailable")
        return NOW

    scheduler = TickScheduler(dispatch, interval_seconds=60, clock=clock)

    async def scenario() -> None:
        assert await scheduler.tick() is None
        assert await scheduler.tick() is not None

    asyncio.run(scenario())
    assert scheduler.ticks == 2


def test_tick_scheduler_start_and_stop(tmp_path: Path) -> None:
    _, dispatch = _services(tmp_path, MockPushTransport())
    scheduler = TickScheduler(dispatch, interval_seconds=60, clock=lambda: NOW)

    async def scenario() -> None:
        scheduler.start()
        assert scheduler.running
        await asyncio.sleep(0.05)
        scheduler.stop()

    asyncio.run(scenario())
    assert scheduler.ticks == 1
    assert not scheduler.running
    assert scheduler.last_result is not None
