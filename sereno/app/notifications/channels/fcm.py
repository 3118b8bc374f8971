"""
fcm.py — Firebase Cloud Messaging transport for device tokens.

Used in preference to Web Push when a subscription carries an FCM token
and the Firebase Admin SDK is initialised (FIREBASE_CREDENTIALS points at a
service-account JSON file, or holds the JSON itself).

Dead tokens (unregistered, not found, rejected as an invalid registration
token) raise SubscriptionGoneError. Any other INVALID_ARGUMENT is a plain
DeliveryError.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import firebase_admin
from firebase_admin import credentials, exceptions, messaging

from sereno.app.core.config import settings
from sereno.app.notifications.channels import DeliveryError, SubscriptionGoneError
from sereno.app.notifications.models import PushSubscription

logger = logging.getLogger(__name__)

_APP_NAME = "sereno-push"

GONE_ERRORS = (
    messaging.UnregisteredError,
    messaging.SenderIdMismatchError,
    exceptions.NotFoundError,
)


def _is_bad_token(exc: exceptions.InvalidArgumentError) -> bool:
    # INVALID_ARGUMENT also covers oversized or malformed messages
    return "registration token" in str(exc).lower()


def _initialise_app(raw: str) -> firebase_admin.App:
    try:
        return firebase_admin.get_app(_APP_NAME)
    except ValueError:
        pass
    if raw.strip().startswith("{"):
        cred = credentials.Certificate(json.loads(raw))
    else:
        cred = credentials.Certificate(raw)
    return firebase_admin.initialize_app(cred, name=_APP_NAME)


def _to_string_map(data: Dict[str, Any]) -> Dict[str, str]:
    """FCM data values must be strings."""
    return {
        str(k): v if isinstance(v, str) else json.dumps(v, default=str)
        for k, v in data.items()
        if v is not None
    }


class FcmTransport:
    name = "fcm"

    def __init__(self, credentials_source: Optional[str] = None, *, app: Optional[firebase_admin.App] = None):
        self._app = app
        source = credentials_source if credentials_source is not None else settings.FIREBASE_CREDENTIALS
        if self._app is None and source:
            try:
                self._app = _initialise_app(source)
                logger.info("[FCM] Firebase Admin SDK initialised")
            except Exception as e:
                logger.warning("[FCM] Firebase unavailable: %s — using web push only", e)
                self._app = None

    @property
    def available(self) -> bool:
        return self._app is not None

    def build_message(self, token: str, wire: Dict[str, Any]) -> messaging.Message:
        return messaging.Message(
            token=token,
            notification=messaging.Notification(
                title=wire.get("title"),
                body=wire.get("body"),
            ),
            data=_to_string_map(wire.get("data", {})),
            android=messaging.AndroidConfig(
                priority="high" if wire.get("requireInteraction") else "normal",
                ttl=settings.PUSH_TTL_SECONDS,
            ),
            webpush=messaging.WebpushConfig(
                notification=messaging.WebpushNotification(
                    tag=wire.get("tag"),
                    icon=wire.get("icon"),
                    badge=wire.get("badge"),
                    require_interaction=wire.get("requireInteraction"),
                ),
            ),
        )

    def _send_sync(self, message: messaging.Message) -> str:
        try:
            return messaging.send(message, app=self._app)
        except GONE_ERRORS as exc:
            raise SubscriptionGoneError(str(exc)) from exc
        except exceptions.InvalidArgumentError as exc:
            if _is_bad_token(exc):
                raise SubscriptionGoneError(str(exc)) from exc
            raise DeliveryError(str(exc)) from exc
        except exceptions.FirebaseError as exc:
            raise DeliveryError(str(exc)) from exc

    async def send(self, subscription: PushSubscription, wire: Dict[str, Any]) -> Dict[str, Any]:
        if not self.available:
            raise DeliveryError("FCM is not configured")
        if not subscription.fcm_token:
            raise SubscriptionGoneError("Subscription has no FCM token")

        message = self.build_message(subscription.fcm_token, wire)
        message_id = await asyncio.to_thread(self._send_sync, message)
        logger.info("[FCM] %s → %s: %s", wire.get("tag"), subscription.user_id, message_id)
        return {"mode": "live", "message_id": message_id}
