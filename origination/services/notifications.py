from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Protocol

from redis.exceptions import RedisError

from origination.core.settings import settings
from origination.utils.redis_client import get_redis_client, redis_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StatusChangedEvent:
    tenant_id: str
    application_id: str
    from_status: str | None
    to_status: str
    actor_id: str | None
    actor_kind: str
    occurred_at: datetime
    notes: str | None = None

    def to_payload(self) -> dict:
        payload = asdict(self)
        payload["occurred_at"] = self.occurred_at.isoformat()
        payload["event"] = "application.status_changed"
        return payload


class StatusChangeDispatcher(Protocol):
    async def dispatch(self, event: StatusChangedEvent) -> None: ...


class LoggingDispatcher:
    """Default dispatcher: writes the event to the application log."""

    async def dispatch(self, event: StatusChangedEvent) -> None:
        logger.info("Application status changed", extra={"status_event": event.to_payload()})


def channel_for_tenant(tenant_id: str) -> str:
    return redis_key(settings.status_event_channel_prefix, tenant_id)


class RedisDispatcher:
    """Publishes events on a per-tenant Redis channel for webhook workers to fan out."""

    async def dispatch(self, event: StatusChangedEvent) -> None:
        redis = get_redis_client()
        try:
            await redis.publish(channel_for_tenant(event.tenant_id), json.dumps(event.to_payload()))
        except RedisError as exc:
            logger.warning("Status event publish failed: %s", exc)
            raise


def build_dispatcher() -> StatusChangeDispatcher:
    if settings.status_event_dispatcher == "redis":
        return RedisDispatcher()
    return LoggingDispatcher()


async def dispatch_safely(dispatcher: StatusChangeDispatcher, event: StatusChangedEvent) -> bool:
    """Deliver ``event``; failures are logged and never reach the caller's transaction."""
    try:
        await dispatcher.dispatch(event)
    except Exception:
        logger.exception(
            "Status change dispatch failed",
            extra={"application_id": event.application_id, "to_status": event.to_status},
        )
        return False
    return True
