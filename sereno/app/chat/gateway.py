"""
Chat service gateway.

The chat service owns message storage and moderation. The emergency flow
only needs four calls:

    create_or_join_channel(alert_id, member_ids)  → channel id
    share_context(channel_id, context)
    archive_channel(channel_id, reason)
    send_escalation_notice(channel_id, escalation_type, requested_by)

HttpChatGateway talks to the chat service over HTTP (httpx). When
CHAT_SERVICE_URL is not set, LoggingChatGateway records the calls in the
log and returns deterministic channel ids.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from sereno.app.core.config import settings
from sereno.app.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)


class ChatGateway(Protocol):
    async def create_or_join_channel(self, alert_id: str, member_ids: Sequence[str]) -> str: ...

    async def share_context(self, channel_id: str, context: Dict[str, Any]) -> None: ...

    async def archive_channel(self, channel_id: str, reason: str) -> None: ...

    async def send_escalation_notice(
        self, channel_id: str, escalation_type: str, requested_by: str
    ) -> None: ...

    async def close(self) -> None: ...


class HttpChatGateway:
    """Chat service client."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: Optional[float] = None,
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout or settings.CHAT_SERVICE_TIMEOUT,
            headers=headers,
        )

    async def _request(self, method: str, path: str, json: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ExternalServiceError(
                "chat", f"HTTP {exc.response.status_code}", path=path,
            ) from exc
        except httpx.HTTPError as exc:
            raise ExternalServiceError("chat", str(exc), path=path) from exc
        return response.json() if response.content else {}

    async def create_or_join_channel(self, alert_id: str, member_ids: Sequence[str]) -> str:
        body = await self._request(
            "POST",
            "/channels/emergency",
            {"alert_id": alert_id, "member_ids": list(member_ids)},
        )
        channel_id = body.get("channel_id") or body.get("id")
        if not channel_id:
            raise ExternalServiceError("chat", "response has no channel id", alert_id=alert_id)
        logger.info("[CHAT] Channel %s bound to alert %s", channel_id, alert_id)
        return str(channel_id)

    async def share_context(self, channel_id: str, context: Dict[str, Any]) -> None:
        await self._request(
            "POST", f"/channels/{channel_id}/system-messages",
            {"kind": "emergency_context", "content": context},
        )

    async def archive_channel(self, channel_id: str, reason: str) -> None:
        await self._request("POST", f"/channels/{channel_id}/archive", {"reason": reason})
        logger.info("[CHAT] Channel %s archived (%s)", channel_id, reason)

    async def send_escalation_notice(
        self, channel_id: str, escalation_type: str, requested_by: str
    ) -> None:
        await self._request(
            "POST", f"/channels/{channel_id}/system-messages",
            {
                "kind": "escalation",
                "content": {"type": escalation_type, "requested_by": requested_by},
            },
        )

    async def close(self) -> None:
        await self._client.aclose()


class LoggingChatGateway:
    """Development stand-in: logs every call and remembers channels."""

    def __init__(self):
        self.channels: Dict[str, List[str]] = {}
        self.archived: List[str] = []

    async def create_or_join_channel(self, alert_id: str, member_ids: Sequence[str]) -> str:
        channel_id = f"emergency-{alert_id}"
        members = self.channels.setdefault(channel_id, [])
        for member in member_ids:
            if member not in members:
                members.append(member)
        logger.info("[CHAT] (simulated) %s members=%s", channel_id, members)
        return channel_id

    async def share_context(self, channel_id: str, context: Dict[str, Any]) -> None:
        logger.info("[CHAT] (simulated) context shared in %s: %s", channel_id, sorted(context))

    async def archive_channel(self, channel_id: str, reason: str) -> None:
        self.archived.append(channel_id)
        logger.info("[CHAT] (simulated) %s archived (%s)", channel_id, reason)

    async def send_escalation_notice(
        self, channel_id: str, escalation_type: str, requested_by: str
    ) -> None:
        logger.info(
            "[CHAT] (simulated) escalation %s in %s by %s",
            escalation_type, channel_id, requested_by,
        )

    async def close(self) -> None:
        return None


def build_chat_gateway() -> ChatGateway:
    if settings.CHAT_SERVICE_URL:
        return HttpChatGateway(
            settings.CHAT_SERVICE_URL,
            token=settings.CHAT_SERVICE_TOKEN,
        )
    logger.warning("CHAT_SERVICE_URL not set — chat calls are simulated")
    return LoggingChatGateway()
