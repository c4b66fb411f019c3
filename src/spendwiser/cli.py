"""Summary: Command-line interface for SpendWiser reminders.

Importance: Provides a local entry point for serving, ticking, registry inspection, and device simulation.
Alternatives: Drive everything through the HTTP API.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from spendwiser.agent import NotificationAgent
from spendwiser.app import build_context
from spendwiser.config import AppConfig
from spendwiser.eligibility import is_eligible, to_local
from spendwiser.host import LocalAgentHost
from spendwiser.settings_cache import JsonSettingsCache


def _parse_now(value: str | None) -> datetime:
    """Summary: Parse an ISO-8601 instant from the command line.

    Importance: Ticks are deterministic when the instant is pinned.
    Alternatives: Always use the system clock.
    """

    if not value:
        return datetime.now(timezone.utc)
    moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if moment.tzinfo is None:
        raise ValueError("--now must include a UTC offset")
    return moment


def _load_json(value: str) -> dict:
    """Read a JSON object from an inline string or an @path reference."""
    text = Path(value[1:]).read_text(encoding="utf-8") if value.startswith("@") else value
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object")
    return data


async def _simulate_agent(
    config: AppConfig, event: str, payload: str | None, action: str | None, now: datetime
) -> LocalAgentHost:
    """Summary: Drive one event through a device agent backed by the local settings cache.

    Importance: Lets operators see what a device would show without a browser.
    Alternatives: Inspect agent behaviour only through tests.
    """

    host = LocalAgentHost()
    agent = NotificationAgent(
        host,
        JsonSettingsCache(Path(config.settings_cache_path)),
        default_snooze_minutes=config.default_snooze_minutes,
        window_minutes=config.eligibility_window_minutes,
        clock=lambda: now,
    )
    if event == "periodic":
        if not await agent.on_periodic_check():
            print("No reminder due.")
    else:
        raw = json.dumps(_load_json(payload)) if payload else None
        shown = await agent.on_push(raw)
        if action:
            await agent.on_notification_click(
                shown.tag, None if action == "body" else action, shown.data.to_dict()
            )
    # Snoozes elapse immediately in a simulation.
    await host.flush_timers()
    return host


def build_parser() -> argparse.ArgumentParser:
    """Summary: Build the CLI argument parser.

    Importance: Defines supported commands for local operation.
    Alternatives: Use a CLI framework like Typer or Click.
    """

    parser = argparse.ArgumentParser(description="SpendWiser reminders CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", type=str, default=None)
    serve.add_argument("--port", type=int, default=None)

    run_tick = subparsers.add_parser("run-tick", help="Run one dispatch tick")
    run_tick.add_argument("--now", type=str, default=None)

    subparsers.add_parser("run-scheduler", help="Dispatch ticks every interval until stopped")

    register = subparsers.add_parser("register", help="Register a push subscription")
    register.add_argument("user_id", type=str)
    register.add_argument("subscription", type=str, help="JSON object or @file")
    register.add_argument("settings", type=str, help="JSON object or @file")
    register.add_argument("--timezone", type=str, default=None)

    update_settings = subparsers.add_parser("update-settings", help="Replace reminder settings")
    update_settings.add_argument("user_id", type=str)
    update_settings.add_argument("settings", type=str, help="JSON object or @file")
    update_settings.add_argument("--timezone", type=str, default=None)

    subparsers.add_parser("list-subscribers", help="List active subscribers")

    check = subparsers.add_parser("check-eligibility", help="Evaluate one user at an instant")
    check.add_argument("user_id", type=str)
    check.add_argument("--now", type=str, default=None)

    cache = subparsers.add_parser(
        "cache-settings", help="Copy a user's settings into the device settings cache"
    )
    cache.add_argument("user_id", type=str)

    simulate = subparsers.add_parser("simulate-agent", help="Run one event through a device agent")
    simulate.add_argument("event", choices=["push", "periodic"])
    simulate.add_argument("--payload", type=str, default=None, help="JSON object or @file")
    simulate.add_argument(
        "--action", choices=["body", "add-transaction", "snooze", "dismiss"], default=None
    )
    simulate.add_argument("--now", type=str, default=None)

    return parser


def run_cli(argv: list[str] | None = None) -> None:
    """Summary: Execute CLI commands based on arguments.

    Importance: Drives server operation without a separate process manager.
    Alternatives: Invoke services via the HTTP API.
    """

    parser = build_parser()
    args = parser.parse_args(argv)
    config = AppConfig.from_env()
    logging.basicConfig(level=config.log_level, format="%(levelname)s %(name)s: %(message)s")

    if args.command == "serve":
        import uvicorn

        from spendwiser.api import create_app

        uvicorn.run(
            create_app(config),
            host=args.host or config.api_host,
            port=args.port or config.api_port,
        )
        return

    context = build_context(config)

    if args.command == "run-tick":
        result = asyncio.run(context.dispatch.run_tick(_parse_now(args.now)))
        print(json.dumps(result.to_dict(), indent=2))
        return

    if args.command == "run-scheduler":
        scheduler = context.build_scheduler()
        try:
            asyncio.run(scheduler.run_forever())
        except KeyboardInterrupt:
            print(f"Scheduler stopped after {scheduler.ticks} ticks.")
        return

    if args.command == "register":
        context.registry.register_subscription(
            args.user_id, _load_json(args.subscription), _load_json(args.settings), args.timezone
        )
        print(f"Registered subscription for {args.user_id}.")
        return

    if args.command == "update-settings":
        settings = context.registry.update_settings(
            args.user_id, _load_json(args.settings), args.timezone
        )
        print(json.dumps(settings.to_dict(), indent=2))
        return

    if args.command == "list-subscribers":
        for entry in context.store.list_active_subscribers():
            settings = entry.settings
            when = settings.time.format() if settings.time else "--:--"
            state = "on" if settings.enabled else "off"
            print(f"{entry.user_id}: {when} {settings.frequency} {settings.timezone} [{state}]")
        return

    if args.command == "check-eligibility":
        settings = context.registry.get_settings(args.user_id)
        if settings is None:
            print(f"No settings for {args.user_id}.")
            return
        now = _parse_now(args.now)
        local = to_local(settings, now)
        eligible = is_eligible(settings, now, config.eligibility_window_minutes)
        print(f"{args.user_id}: local time {local.isoformat() if local else 'unknown'}")
        print(f"eligible: {'yes' if eligible else 'no'}")
        return

    if args.command == "cache-settings":
        settings = context.registry.get_settings(args.user_id)
        if settings is None:
            print(f"No settings for {args.user_id}.")
            return
        JsonSettingsCache(Path(config.settings_cache_path)).save(args.user_id, settings)
        print(f"Cached settings for {args.user_id} in {config.settings_cache_path}.")
        return

    if args.command == "simulate-agent":
        host = asyncio.run(
            _simulate_agent(config, args.event, args.payload, args.action, _parse_now(args.now))
        )
        for payload in host.shown:
            print(f"shown {payload.tag}: {payload.title} | {payload.body}")
        for url in host.opened:
            print(f"opened {url}")
        return


if __name__ == "__main__":
    run_cli()
