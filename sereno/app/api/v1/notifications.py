"""
FastAPI routes: push subscriptions and notification preferences.

    POST   /api/v1/notifications/subscribe     — register a browser / device
    DELETE /api/v1/notifications/unsubscribe   — remove it
    GET    /api/v1/notifications/preferences   — effective preferences
    PUT    /api/v1/notifications/preferences   — partial update
    POST   /api/v1/notifications/test          — send a test notification to myself
    GET    /api/v1/notifications/vapid-key     — public key for the service worker
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, status

from sereno.app.api.deps import get_dispatcher, get_subscriptions
from sereno.app.api.schemas import (
    PreferencesUpdate,
    SampleNotificationRequest,
    SubscribeRequest,
    UnsubscribeRequest,
)
from sereno.app.core.config import settings
from sereno.app.core.errors import ConfigurationError, ValidationError
from sereno.app.core.security import Principal, get_current_principal
from sereno.app.notifications import templates
from sereno.app.notifications.dispatcher import NotificationDispatcher
from sereno.app.notifications.subscriptions import SubscriptionService

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


@router.post(
    "/subscribe",
    status_code=status.HTTP_201_CREATED,
    summary="Register a push subscription",
)
async def subscribe(
    request: SubscribeRequest,
    principal: Principal = Depends(get_current_principal),
    subscriptions: SubscriptionService = Depends(get_subscriptions),
) -> Dict[str, Any]:
    subscription = await subscriptions.subscribe(
        principal.id,
        endpoint=request.endpoint,
        p256dh=request.keys.p256dh,
        auth=request.keys.auth,
        fcm_token=request.fcm_token,
        device_info=request.device_info,
    )
    return {"message": "Subscribed to push notifications", "subscription": subscription.to_dict()}


@router.delete(
    "/unsubscribe",
    summary="Remove a push subscription",
)
async def unsubscribe(
    request: UnsubscribeRequest,
    principal: Principal = Depends(get_current_principal),
    subscriptions: SubscriptionService = Depends(get_subscriptions),
) -> Dict[str, Any]:
    removed = await subscriptions.unsubscribe(principal.id, request.endpoint)
    return {"message": "Unsubscribed from push notifications", "removed": removed}


@router.get(
    "/preferences",
    summary="Get notification preferences",
)
async def get_preferences(
    principal: Principal = Depends(get_current_principal),
    subscriptions: SubscriptionService = Depends(get_subscriptions),
) -> Dict[str, Any]:
    preferences = await subscriptions.get_preferences(principal.id)
    return {"preferences": preferences.to_dict()}


@router.put(
    "/preferences",
    summary="Update notification preferences",
)
async def update_preferences(
    request: PreferencesUpdate,
    principal: Principal = Depends(get_current_principal),
    subscriptions: SubscriptionService = Depends(get_subscriptions),
) -> Dict[str, Any]:
    changes = request.changes()
    if not changes:
        raise ValidationError("No preference fields supplied")
    preferences = await subscriptions.update_preferences(principal.id, changes)
    return {"message": "Preferences updated", "preferences": preferences.to_dict()}


@router.post(
    "/test",
    summary="Send a test notification to the caller",
)
async def send_test_notification(
    request: Optional[SampleNotificationRequest] = Body(None),
    principal: Principal = Depends(get_current_principal),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> Dict[str, Any]:
    payload = templates.test_message(
        request.title if request else None,
        request.body if request else None,
    )
    summary = await dispatcher.send_to_user(principal.id, payload)
    return {"message": "Test notification processed", "delivery": summary.to_dict()}


@router.get(
    "/vapid-key",
    summary="Public VAPID key",
)
async def vapid_key() -> Dict[str, str]:
    if not settings.VAPID_PUBLIC_KEY:
        raise ConfigurationError("VAPID_PUBLIC_KEY", "VAPID public key not configured")
    return {"public_key": settings.VAPID_PUBLIC_KEY}
