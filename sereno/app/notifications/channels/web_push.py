"""
web_push.py — Web Push (RFC 8030) transport with VAPID authentication.

Delivery mechanism:
    • pywebpush encrypts the JSON payload with the subscription's
      p256dh/auth keys and POSTs it to the browser vendor's push endpoint
    • The service worker on the client renders title/body/actions

Invalid subscriptions:
    404 / 410 from the push service (or a pywebpush "invalid subscription"
    message) mean the browser dropped the subscription. These raise
    SubscriptionGoneError so the dispatcher deletes the row.

When PUSH_SIMULATION_MODE is on, or VAPID keys are missing, the transport
logs the notification and returns a simulated receipt instead of calling
the push service.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from pywebpush import WebPushException, webpush

from sereno.app.core.config import settings
from sereno.app.notifications.channels import DeliveryError, SubscriptionGoneError
from sereno.app.notifications.models import PushSubscription

logger = logging.getLogger(__name__)

GONE_STATUS_CODES = (404, 410)


def _is_gone(status_code: Optional[int], message: str) -> bool:
    if status_code in GONE_STATUS_CODES:
        return True
    return "invalid subscription" in message.lower()


class WebPushTransport:
    name = "web_push"

    def __init__(
        self,
        *,
        public_key: Optional[str] = None,
        private_key: Optional[str] = None,
        subject: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
        simulate: Optional[bool] = None,
    ):
        self.public_key = public_key if public_key is not None else settings.VAPID_PUBLIC_KEY
        self.private_key = private_key if private_key is not None else settings.VAPID_PRIVATE_KEY
        self.subject = subject or settings.VAPID_SUBJECT
        self.ttl_seconds = ttl_seconds or settings.PUSH_TTL_SECONDS
        self.simulate = settings.PUSH_SIMULATION_MODE if simulate is None else simulate

        if not self.simulate and not (self.public_key and self.private_key):
            logger.warning("[WEB_PUSH] VAPID keys not configured — simulating delivery")
            self.simulate = True

    @property
    def available(self) -> bool:
        return True

    def _subscription_info(self, subscription: PushSubscription) -> Dict[str, Any]:
        return {
            "endpoint": subscription.endpoint,
            "keys": {"p256dh": subscription.p256dh, "auth": subscription.auth},
        }

    def _send_sync(self, subscription: PushSubscription, data: str) -> Dict[str, Any]:
        try:
            response = webpush(
                subscription_info=self._subscription_info(subscription),
                data=data,
                vapid_private_key=self.private_key,
                vapid_claims={"sub": self.subject},
                ttl=self.ttl_seconds,
                timeout=settings.PUSH_DELIVERY_TIMEOUT_SECONDS,
            )
        except WebPushException as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            message = str(exc)
            if _is_gone(status_code, message):
                raise SubscriptionGoneError(message, status_code=status_code) from exc
            raise DeliveryError(message, status_code=status_code) from exc

        return {"mode": "live", "status_code": getattr(response, "status_code", None)}

    async def send(self, subscription: PushSubscription, wire: Dict[str, Any]) -> Dict[str, Any]:
        data = json.dumps(wire, default=str)

        if self.simulate:
            logger.info(
                "[WEB_PUSH] (simulated) %s → %s: %s",
                wire.get("tag"), subscription.user_id, wire.get("title"),
            )
            return {
                "mode": "simulated",
                "push_payload_size": len(data),
                "endpoint_prefix": subscription.endpoint[:32] + "...",
            }

        # pywebpush is blocking (requests)
        receipt = await asyncio.to_thread(self._send_sync, subscription, data)
        logger.info(
            "[WEB_PUSH] %s → %s: %s", wire.get("tag"), subscription.user_id, wire.get("title"),
        )
        return receipt
