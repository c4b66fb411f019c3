"""Summary: Push transport abstraction and implementations.

Importance: Isolates the unreliable third-party delivery channel behind one call.
Alternatives: Call a push SDK directly from the dispatch loop.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

import requests
from pywebpush import WebPushException, webpush

from spendwiser.config import AppConfig
from spendwiser.models import SubscriptionKeys


class FailureKind(str, Enum):
    """Summary: Typed reasons a push delivery can fail.

    Importance: Reasons are surfaced verbatim in dispatch results.
    Alternatives: Surface raw HTTP status codes.
    """

    EXPIRED = "Expired"
    NETWORK_ERROR = "NetworkError"
    PAYLOAD_TOO_LARGE = "PayloadTooLarge"
    RATE_LIMITED = "RateLimited"
    UNKNOWN = "Unknown"


class TransportError(Exception):
    """Summary: Raised when a push delivery fails.

    Importance: Carries a typed failure kind for aggregation.
    Alternatives: Return (ok, reason) tuples from send.
    """

    def __init__(self, kind: FailureKind, detail: str = "") -> None:
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)
        self.kind = kind
        self.detail = detail


class PushTransport(ABC):
    """Summary: Abstract interface for delivering a payload to a push endpoint.

    Importance: Allows switching between web push and mocked delivery without refactors.
    Alternatives: Bind the dispatcher to a single push vendor.
    """

    @abstractmethod
    def send(self, endpoint: str, keys: SubscriptionKeys, payload: bytes) -> None:
        """Summary: Deliver a payload, raising TransportError on failure.

        Importance: Standardizes delivery outcomes across transports.
        Alternatives: Return provider-specific response objects directly.
        """


class MockPushTransport(PushTransport):
    """Summary: In-memory transport for local runs and tests.

    Importance: Enables offline workflows and repeatable failure injection.
    Alternatives: Run a local push service emulator.
    """

    def __init__(
        self,
        failures: dict[str, FailureKind] | None = None,
        errors: dict[str, Exception] | None = None,
        delay_seconds: float = 0.0,
    ) -> None:
        """Summary: Initialize the mock transport.

        Importance: Lets tests choose which endpoints fail and how.
        Alternatives: Randomize failures with a fixed seed.
        """

        self._failures = dict(failures or {})
        self._errors = dict(errors or {})
        self._delay_seconds = delay_seconds
        self._lock = threading.Lock()
        self.sent: list[tuple[str, bytes]] = []

    def send(self, endpoint: str, keys: SubscriptionKeys, payload: bytes) -> None:
        if self._delay_seconds:
            time.sleep(self._delay_seconds)
        if endpoint in self._errors:
            raise self._errors[endpoint]
        if endpoint in self._failures:
            raise TransportError(self._failures[endpoint], f"mock failure for {endpoint}")
        with self._lock:
            self.sent.append((endpoint, payload))


@dataclass
class WebPushTransport(PushTransport):
    """Summary: Delivers encrypted, VAPID-signed payloads through pywebpush.

    Importance: Provides real-world delivery for browser push subscriptions.
    Alternatives: Use a vendor SDK such as Firebase Admin.
    """

    vapid_private_key: str
    vapid_subject: str
    timeout_seconds: float = 10.0
    ttl_seconds: int = 86400
    urgency: str = "normal"

    def send(self, endpoint: str, keys: SubscriptionKeys, payload: bytes) -> None:
        """Summary: Push the payload and map the push service response to a failure kind.

        Importance: Lets the dispatcher distinguish expired subscriptions from transient errors.
        Alternatives: Treat any non-2xx as a generic failure.
        """

        try:
            webpush(
                subscription_info={
                    "endpoint": endpoint,
                    "keys": {"p256dh": keys.p256dh, "auth": keys.auth},
                },
                data=payload.decode("utf-8"),
                vapid_private_key=self.vapid_private_key,
                # pywebpush adds aud/exp to the claims it is given
                vapid_claims={"sub": self.vapid_subject},
                ttl=self.ttl_seconds,
                headers={"Urgency": self.urgency},
                timeout=self.timeout_seconds,
            )
        except WebPushException as exc:
            response = getattr(exc, "response", None)
            if response is None:
                raise TransportError(FailureKind.UNKNOWN, str(exc)) from exc
            status = response.status_code
            raise TransportError(classify_status(status), f"HTTP {status}") from exc
        except (requests.exceptions.RequestException, TimeoutError, ConnectionError) as exc:
            raise TransportError(FailureKind.NETWORK_ERROR, str(exc)) from exc


def classify_status(status: int) -> FailureKind:
    """Summary: Map a push service HTTP status to a failure kind.

    Importance: 404/410 mean the subscription is gone and should not be retried.
    Alternatives: Parse vendor-specific error bodies.
    """

    if status in (404, 410):
        return FailureKind.EXPIRED
    if status == 413:
        return FailureKind.PAYLOAD_TOO_LARGE
    if status == 429:
        return FailureKind.RATE_LIMITED
    return FailureKind.UNKNOWN


@dataclass(frozen=True)
class PushTransportFactory:
    """Summary: Factory for selecting push transports from configuration.

    Importance: Keeps transport selection logic centralized.
    Alternatives: Wire transports manually at the application entrypoint.
    """

    config: AppConfig

    def build(self) -> PushTransport:
        """Summary: Construct the configured push transport.

        Importance: Ensures consistent transport selection across CLI and API.
        Alternatives: Use dependency injection frameworks.
        """

        if self.config.transport == "webpush":
            return WebPushTransport(
                vapid_private_key=self.config.vapid_private_key,
                vapid_subject=self.config.vapid_subject,
                timeout_seconds=self.config.push_timeout_seconds,
                ttl_seconds=self.config.push_ttl_seconds,
                urgency=self.config.push_urgency,
            )
        return MockPushTransport()
