"""
Live alert events — Redis pub/sub publisher.

Connected clients (owner app, responder dashboards) subscribe to
``emergency-{alert_id}`` and receive JSON messages of the form::

    {"event": "responder-joined", "alert_id": "...", "data": {...}, "sent_at": "..."}

Events: alert-created, responder-joined, alert-resolved, escalation-requested.

Publishing is best effort. If Redis is down the event is dropped and a
warning is logged; the alert lifecycle never depends on it.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

from sereno.app.core.config import settings

logger = logging.getLogger(__name__)


def alert_channel(alert_id: str) -> str:
    return f"emergency-{alert_id}"


class EventBroadcaster(Protocol):
    async def publish(self, alert_id: str, event: str, data: Dict[str, Any]) -> bool: ...

    async def close(self) -> None: ...


class RedisEventBroadcaster:
    """Publishes alert events on per-alert Redis channels."""

    def __init__(self, url: Optional[str] = None, *, enabled: bool = True):
        self._url = url or settings.REDIS_URL
        self._enabled = enabled
        self._client = None

    async def _get_redis(self):
        """Get or create async Redis client."""
        if self._client is None:
            try:
                import redis.asyncio as aioredis
                self._client = aioredis.from_url(
                    self._url,
                    encoding="utf-8",
                    decode_responses=True,
                )
                logger.info("Redis connected: %s", self._url.split("@")[-1])
            except Exception as e:
                logger.warning("Redis unavailable: %s — live events disabled", e)
                return None
        return self._client

    async def publish(self, alert_id: str, event: str, data: Dict[str, Any]) -> bool:
        if not self._enabled:
            return False
        client = await self._get_redis()
        if not client:
            return False
        message = json.dumps(
            {
                "event": event,
                "alert_id": alert_id,
                "data": data,
                "sent_at": datetime.now(timezone.utc).isoformat(),
            },
            default=str,
        )
        try:
            receivers = await client.publish(alert_channel(alert_id), message)
            logger.debug("Event %s for alert %s → %d listeners", event, alert_id, receivers)
            return True
        except Exception as e:
            logger.warning("Event publish error for %s/%s: %s", alert_id, event, e)
            return False

    async def ping(self) -> bool:
        client = await self._get_redis()
        if not client:
            return False
        return bool(await client.ping())

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Redis connection closed")
