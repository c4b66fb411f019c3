"""Summary: Application factory wiring core services.

Importance: Centralizes dependency creation for the CLI and API layers.
Alternatives: Instantiate services manually in each entrypoint.
"""

from __future__ import annotations

from dataclasses import dataclass

from spendwiser.config import AppConfig
from spendwiser.dispatch import DispatchOrchestrator
from spendwiser.scheduler import TickScheduler
from spendwiser.services import DispatchService, RegistryService
from spendwiser.storage.sqlite_store import SqliteStore
from spendwiser.transport import PushTransport, PushTransportFactory


@dataclass(frozen=True)
class AppContext:
    """Summary: Shared application context for the reminder engine.

    Importance: Reuses storage and transport across requests and ticks.
    Alternatives: Rebuild dependencies for every request.
    """

    store: SqliteStore
    transport: PushTransport
    registry: RegistryService
    dispatch: DispatchService
    config: AppConfig

    def build_scheduler(self) -> TickScheduler:
        return TickScheduler(self.dispatch, interval_seconds=self.config.tick_interval_seconds)


def build_context(config: AppConfig, transport: PushTransport | None = None) -> AppContext:
    """Summary: Build shared context from configuration.

    Importance: Provides a single construction path for the application.
    Alternatives: Construct dependencies separately per entrypoint.
    """

    store = SqliteStore(config.db_path)
    store.initialize()
    if transport is None:
        transport = PushTransportFactory(config).build()
    orchestrator = DispatchOrchestrator(
        transport,
        timeout_seconds=config.push_timeout_seconds,
        max_concurrency=config.max_concurrency,
        window_minutes=config.eligibility_window_minutes,
    )
    dispatch = DispatchService(
        store=store,
        orchestrator=orchestrator,
        dedupe_per_day=config.dedupe_per_day,
        prune_expired_subscriptions=config.prune_expired_subscriptions,
    )
    return AppContext(
        store=store,
        transport=transport,
        registry=RegistryService(store=store),
        dispatch=dispatch,
        config=config,
    )
