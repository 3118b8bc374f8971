"""
channels — Push delivery transports.

Each transport exposes:
    available                      → bool
    async send(subscription, wire) → provider response dict

and raises:
    SubscriptionGoneError  — the push service says the endpoint/token is dead
    DeliveryError          — any other provider-side rejection

Transports are stateless per call. Concurrency limits, logging to the
notification log and subscription pruning live in the dispatcher.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

from sereno.app.notifications.models import PushSubscription


class DeliveryError(Exception):
    """Push provider rejected or failed the message."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SubscriptionGoneError(DeliveryError):
    """Endpoint or device token is no longer valid and should be deleted."""


class PushTransport(Protocol):
    name: str

    @property
    def available(self) -> bool: ...

    async def send(self, subscription: PushSubscription, wire: Dict[str, Any]) -> Dict[str, Any]: ...
