"""
Recording fakes for external collaborators and small data helpers.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sereno.app.container import ServiceContainer
from sereno.app.core.security import Principal, Role, create_access_token
from sereno.app.emergency.models import UserAccount
from sereno.app.notifications.channels import DeliveryError, SubscriptionGoneError
from sereno.app.notifications.models import PushSubscription


# ═══════════════════════════════════════════════════════════════════════════
# Fakes
# ═══════════════════════════════════════════════════════════════════════════

class FakeTransport:
    """Push transport that records calls; failures are scripted per endpoint."""

    def __init__(self, name: str = "web_push", *, available: bool = True):
        self.name = name
        self._available = available
        self.sent: List[Tuple[str, Dict[str, Any]]] = []
        self.attempts: List[str] = []
        self.failures: Dict[str, Exception] = {}

    @property
    def available(self) -> bool:
        return self._available

    def fail(self, endpoint: str, exc: Exception) -> None:
        self.failures[endpoint] = exc

    def gone(self, endpoint: str) -> None:
        self.failures[endpoint] = SubscriptionGoneError("410 Gone", status_code=410)

    def reject(self, endpoint: str) -> None:
        self.failures[endpoint] = DeliveryError("429 Too Many Requests", status_code=429)

    async def send(self, subscription: PushSubscription, wire: Dict[str, Any]) -> Dict[str, Any]:
        self.attempts.append(subscription.endpoint)
        exc = self.failures.get(subscription.endpoint)
        if exc is not None:
            raise exc
        self.sent.append((subscription.user_id, wire))
        return {"mode": "fake"}

    def recipients(self) -> List[str]:
        return [user_id for user_id, _ in self.sent]

    def categories_for(self, user_id: str) -> List[str]:
        return [wire["tag"] for uid, wire in self.sent if uid == user_id]


class FakeChat:
    def __init__(self):
        self.created: List[Tuple[str, List[str]]] = []
        self.contexts: List[Tuple[str, Dict[str, Any]]] = []
        self.archived: List[str] = []
        self.escalations: List[Tuple[str, str, str]] = []
        self.fail_share = False
        self.fail_archive = False
        self.join_delay = 0.0

    async def create_or_join_channel(self, alert_id: str, member_ids: Sequence[str]) -> str:
        if self.join_delay:
            await asyncio.sleep(self.join_delay)
        self.created.append((alert_id, list(member_ids)))
        return f"chan-{alert_id}"

    async def share_context(self, channel_id: str, context: Dict[str, Any]) -> None:
        if self.fail_share:
            raise RuntimeError("chat service down")
        self.contexts.append((channel_id, context))

    async def archive_channel(self, channel_id: str, reason: str) -> None:
        if self.fail_archive:
            raise RuntimeError("chat service down")
        self.archived.append(channel_id)

    async def send_escalation_notice(
        self, channel_id: str, escalation_type: str, requested_by: str
    ) -> None:
        self.escalations.append((channel_id, escalation_type, requested_by))

    async def close(self) -> None:
        return None


class RecordingBroadcaster:
    def __init__(self):
        self.events: List[Tuple[str, str, Dict[str, Any]]] = []

    async def publish(self, alert_id: str, event: str, data: Dict[str, Any]) -> bool:
        self.events.append((alert_id, event, data))
        return True

    def names(self, alert_id: Optional[str] = None) -> List[str]:
        return [e for a, e, _ in self.events if alert_id is None or a == alert_id]

    async def close(self) -> None:
        return None


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

def make_user(user_id: str = "owner-1", country: str = "MX", name: str = "Ana") -> Principal:
    return Principal(id=user_id, role=Role.USER, country=country, first_name=name)


def make_responder(user_id: str = "sereno-1", country: str = "MX", name: str = "Luis") -> Principal:
    return Principal(id=user_id, role=Role.RESPONDER, country=country, first_name=name)


def auth_headers(principal: Principal) -> Dict[str, str]:
    token = create_access_token(
        principal.id,
        role=principal.role.value,
        country=principal.country,
        first_name=principal.first_name,
    )
    return {"Authorization": f"Bearer {token}"}


async def add_responders(container: ServiceContainer, *ids: str, country: str = "MX") -> None:
    async with container.sessions() as session:
        for rid in ids:
            session.add(UserAccount(id=rid, role="responder", country=country, first_name=rid))
        await session.commit()


async def add_subscription(
    container: ServiceContainer,
    user_id: str,
    endpoint: Optional[str] = None,
    fcm_token: Optional[str] = None,
) -> PushSubscription:
    return await container.subscriptions.subscribe(
        user_id,
        endpoint=endpoint or f"https://push.example.com/{user_id}",
        p256dh="BPubKey",
        auth="authsecret",
        fcm_token=fcm_token,
    )


