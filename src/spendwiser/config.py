"""Summary: Application configuration for SpendWiser reminders.

Importance: Centralizes environment, .env, and config defaults for consistent behavior.
Alternatives: Use a dedicated settings library like Pydantic Settings.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from dataclasses import dataclass

TRANSPORTS = ("mock", "webpush")
URGENCIES = ("very-low", "low", "normal", "high")


@dataclass(frozen=True)
class AppConfig:
    """Summary: Holds configuration values for dispatch, transport, and storage.

    Importance: Ensures all services derive settings from a single source of truth.
    Alternatives: Store settings in a shared config file and parse at startup.
    """

    db_path: str
    api_host: str
    api_port: int
    api_key: str
    transport: str = "mock"
    push_timeout_seconds: float = 10.0
    push_ttl_seconds: int = 86400
    push_urgency: str = "normal"
    vapid_private_key: str = ""
    vapid_subject: str = "mailto:reminders@spendwiser.app"
    max_concurrency: int = 20
    tick_interval_seconds: int = 60
    eligibility_window_minutes: int = 5
    default_snooze_minutes: int = 120
    dedupe_per_day: bool = True
    prune_expired_subscriptions: bool = True
    settings_cache_path: str = "notification_settings_cache.json"
    log_level: str = "INFO"

    @staticmethod
    def from_env() -> "AppConfig":
        """Summary: Build configuration from defaults, .env, and environment.

        Importance: Keeps all variables defined in config defaults while allowing overrides.
        Alternatives: Parse only environment variables without a defaults file.
        """

        defaults = load_defaults(Path("config") / "defaults.json")
        load_dotenv(Path(".env"))
        config = AppConfig(
            db_path=os.getenv("SPENDWISER_DB_PATH", defaults["db_path"]),
            api_host=os.getenv("SPENDWISER_API_HOST", defaults["api_host"]),
            api_port=int(os.getenv("SPENDWISER_API_PORT", defaults["api_port"])),
            api_key=os.getenv("SPENDWISER_API_KEY", defaults["api_key"]),
            transport=os.getenv("SPENDWISER_TRANSPORT", defaults["transport"]),
            push_timeout_seconds=float(
                os.getenv("SPENDWISER_PUSH_TIMEOUT_SECONDS", defaults["push_timeout_seconds"])
            ),
            push_ttl_seconds=int(
                os.getenv("SPENDWISER_PUSH_TTL_SECONDS", defaults["push_ttl_seconds"])
            ),
            push_urgency=os.getenv("SPENDWISER_PUSH_URGENCY", defaults["push_urgency"]),
            vapid_private_key=os.getenv(
                "SPENDWISER_VAPID_PRIVATE_KEY", defaults["vapid_private_key"]
            ),
            vapid_subject=os.getenv("SPENDWISER_VAPID_SUBJECT", defaults["vapid_subject"]),
            max_concurrency=int(
                os.getenv("SPENDWISER_MAX_CONCURRENCY", defaults["max_concurrency"])
            ),
            tick_interval_seconds=int(
                os.getenv("SPENDWISER_TICK_INTERVAL_SECONDS", defaults["tick_interval_seconds"])
            ),
            eligibility_window_minutes=int(
                os.getenv(
                    "SPENDWISER_ELIGIBILITY_WINDOW_MINUTES",
                    defaults["eligibility_window_minutes"],
                )
            ),
            default_snooze_minutes=int(
                os.getenv("SPENDWISER_DEFAULT_SNOOZE_MINUTES", defaults["default_snooze_minutes"])
            ),
            dedupe_per_day=parse_bool(
                os.getenv("SPENDWISER_DEDUPE_PER_DAY", defaults["dedupe_per_day"])
            ),
            prune_expired_subscriptions=parse_bool(
                os.getenv(
                    "SPENDWISER_PRUNE_EXPIRED_SUBSCRIPTIONS",
                    defaults["prune_expired_subscriptions"],
                )
            ),
            settings_cache_path=os.getenv(
                "SPENDWISER_SETTINGS_CACHE_PATH", defaults["settings_cache_path"]
            ),
            log_level=os.getenv("SPENDWISER_LOG_LEVEL", defaults["log_level"]).upper(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Summary: Reject configuration values the dispatcher cannot honor.

        Importance: A tick cadence wider than the eligibility window silently skips recipients.
        Alternatives: Clamp values to their allowed ranges and log a warning.
        """

        if self.transport not in TRANSPORTS:
            raise ValueError(f"Unsupported transport: {self.transport}")
        if self.transport == "webpush" and not self.vapid_private_key:
            raise ValueError("vapid_private_key is required for the webpush transport")
        if self.push_urgency not in URGENCIES:
            raise ValueError(f"Unsupported push urgency: {self.push_urgency}")
        if self.eligibility_window_minutes < 0:
            raise ValueError("eligibility_window_minutes must not be negative")
        if self.tick_interval_seconds <= 0:
            raise ValueError("tick_interval_seconds must be positive")
        if self.tick_interval_seconds > self.eligibility_window_minutes * 60:
            raise ValueError(
                "tick_interval_seconds must not exceed the eligibility window "
                f"({self.eligibility_window_minutes} minutes)"
            )
        if self.push_timeout_seconds <= 0:
            raise ValueError("push_timeout_seconds must be positive")
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if self.default_snooze_minutes < 1:
            raise ValueError("default_snooze_minutes must be at least 1")


def load_defaults(path: Path) -> dict[str, str]:
    """Summary: Load configuration defaults from JSON.

    Importance: Ensures all variables exist in a single config file.
    Alternatives: Inline defaults in the AppConfig initializer.
    """

    if not path.exists():
        raise FileNotFoundError(f"Defaults file not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def load_dotenv(path: Path) -> None:
    """Summary: Load key-value pairs from a .env file into the environment.

    Importance: Keeps secrets out of code while supporting local workflows.
    Alternatives: Use python-dotenv or OS-specific secret stores.
    """

    if not path.exists():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


def parse_bool(value: str | bool) -> bool:
    """Interpret common truthy strings from env files."""

    if isinstance(value, bool):
        return value
    return value.strip().lower() in {"1", "true", "yes", "on"}
