"""Summary: FastAPI application for SpendWiser reminders.

Importance: Exposes registration, settings, and dispatch endpoints to the web app and cron.
Alternatives: Use a CLI-only workflow or a different web framework.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from spendwiser.app import build_context
from spendwiser.config import AppConfig
from spendwiser.payloads import iso_timestamp
from spendwiser.transport import PushTransport

logger = logging.getLogger(__name__)


class PushSubscriptionRequest(BaseModel):
    """Summary: Request payload for registering a push subscription.

    Importance: Carries the device subscription together with the user's reminder settings.
    Alternatives: Register the subscription and settings in separate calls.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    subscription: dict[str, Any]
    settings: dict[str, Any]
    timezone: str | None = None


class NotificationSettingsRequest(BaseModel):
    """Summary: Request payload for replacing reminder settings."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    settings: dict[str, Any]
    timezone: str | None = None


class DispatchRequest(BaseModel):
    """Summary: Request payload for a manual dispatch tick.

    Importance: Lets cron or tests pin the tick instant.
    Alternatives: Always use the server clock.
    """

    now: datetime | None = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(config: AppConfig, transport: PushTransport | None = None) -> FastAPI:
    """Summary: Create a FastAPI app wired to the reminder services.

    Importance: Ensures the API layer shares the same configuration and storage.
    Alternatives: Instantiate services globally outside the factory.
    """

    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=config.log_level, format="%(levelname)s %(name)s: %(message)s"
        )
    app = FastAPI(title="SpendWiser Reminders API", version="0.1.0")
    context = build_context(config, transport=transport)
    app.state.context = context

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.errors())
        return _error(400, "Missing or invalid fields")

    def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
        """Summary: Enforce API key authentication when configured.

        Importance: The dispatch endpoint must not be callable by anyone.
        Alternatives: Use OAuth or session-based authentication.
        """

        if not config.api_key:
            return
        if x_api_key != config.api_key:
            raise HTTPException(status_code=401, detail="Invalid API key")

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/push-subscriptions", dependencies=[Depends(require_api_key)])
    def register_subscription(payload: PushSubscriptionRequest) -> Any:
        """Summary: Store a push subscription with the user's reminder settings.

        Importance: Registration is the only way a device starts receiving reminders.
        Alternatives: Require settings to be saved before subscribing.
        """

        try:
            context.registry.register_subscription(
                payload.user_id, payload.subscription, payload.settings, payload.timezone
            )
        except ValueError as exc:
            return _error(400, str(exc))
        except Exception:
            logger.exception("Error saving push subscription")
            return _error(500, "Failed to save push subscription")
        return {"success": True, "message": "Push subscription saved successfully"}

    @app.delete("/push-subscriptions/{user_id}", dependencies=[Depends(require_api_key)])
    def unregister_subscription(user_id: str) -> Any:
        if not context.registry.unregister(user_id):
            return _error(404, "Subscription not found")
        return {"success": True, "message": "Push subscription removed"}

    @app.post("/notification-settings", dependencies=[Depends(require_api_key)])
    def update_settings(payload: NotificationSettingsRequest) -> Any:
        """Summary: Replace a user's reminder settings.

        Importance: Settings edits take effect on the next tick.
        Alternatives: Patch individual fields.
        """

        try:
            context.registry.update_settings(payload.user_id, payload.settings, payload.timezone)
        except ValueError as exc:
            return _error(400, str(exc))
        except Exception:
            logger.exception("Error updating notification settings")
            return _error(500, "Failed to update notification settings")
        return {"success": True, "message": "Notification settings updated successfully"}

    @app.get("/notification-settings/{user_id}", dependencies=[Depends(require_api_key)])
    def get_settings(user_id: str) -> Any:
        settings = context.registry.get_settings(user_id)
        if settings is None:
            return _error(404, "Settings not found")
        return {"userId": user_id, "settings": settings.to_dict()}

    @app.post("/reminders/dispatch", dependencies=[Depends(require_api_key)])
    async def dispatch(payload: DispatchRequest | None = None) -> Any:
        """Summary: Run one dispatch tick.

        Importance: Entry point for an external cron trigger.
        Alternatives: Rely only on the in-process scheduler.
        """

        now = payload.now if payload and payload.now else datetime.now(timezone.utc)
        if now.tzinfo is None:
            return _error(400, "now must include a UTC offset")
        try:
            result = await context.dispatch.run_tick(now)
        except Exception:
            logger.exception("Error in reminder dispatch")
            return _error(500, "Failed to send notifications")
        return {
            "success": True,
            "attempted": result.attempted,
            "sent": result.succeeded,
            "failed": result.failed,
            "failures": result.to_dict()["failures"],
            "timestamp": iso_timestamp(now),
        }

    return app
