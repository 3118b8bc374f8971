"""
Subscription and preference management.

subscribe      — insert, or refresh keys/token when the same endpoint
                 re-subscribes (one row per user + endpoint)
unsubscribe    — delete by endpoint; deleting a missing row is a no-op
preferences    — read with defaults, partial update (upsert)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sereno.app.core.database import utcnow
from sereno.app.notifications.models import (
    NotificationPreferences,
    PreferenceSettings,
    PushSubscription,
)

logger = logging.getLogger(__name__)

PREFERENCE_FIELDS = tuple(PreferenceSettings().to_dict())


class SubscriptionService:
    def __init__(self, sessions: async_sessionmaker[AsyncSession]):
        self._sessions = sessions

    async def subscribe(
        self,
        user_id: str,
        *,
        endpoint: str,
        p256dh: str,
        auth: str,
        fcm_token: Optional[str] = None,
        device_info: Optional[Dict[str, Any]] = None,
    ) -> PushSubscription:
        async with self._sessions() as session:
            existing = await session.scalar(
                select(PushSubscription).where(
                    PushSubscription.user_id == user_id,
                    PushSubscription.endpoint == endpoint,
                )
            )
            if existing is not None:
                existing.p256dh = p256dh
                existing.auth = auth
                existing.fcm_token = fcm_token
                existing.device_info = device_info or {}
                existing.updated_at = utcnow()
                subscription = existing
                created = False
            else:
                subscription = PushSubscription(
                    user_id=user_id,
                    endpoint=endpoint,
                    p256dh=p256dh,
                    auth=auth,
                    fcm_token=fcm_token,
                    device_info=device_info or {},
                )
                session.add(subscription)
                created = True
            await session.commit()

        logger.info(
            "Push subscription %s for user %s",
            "created" if created else "refreshed", user_id,
            extra={"user_id": user_id, "subscription_id": subscription.id},
        )
        return subscription

    async def unsubscribe(self, user_id: str, endpoint: str) -> bool:
        async with self._sessions() as session:
            result = await session.execute(
                delete(PushSubscription).where(
                    PushSubscription.user_id == user_id,
                    PushSubscription.endpoint == endpoint,
                )
            )
            await session.commit()
        removed = (result.rowcount or 0) > 0
        logger.info("Unsubscribe for user %s: removed=%s", user_id, removed)
        return removed

    async def count_subscriptions(self, user_id: str) -> int:
        async with self._sessions() as session:
            result = await session.execute(
                select(PushSubscription.id).where(PushSubscription.user_id == user_id)
            )
            return len(result.all())

    async def get_preferences(self, user_id: str) -> PreferenceSettings:
        async with self._sessions() as session:
            row = await session.get(NotificationPreferences, user_id)
            return PreferenceSettings.from_row(row)

    async def update_preferences(self, user_id: str, changes: Dict[str, bool]) -> PreferenceSettings:
        unknown = set(changes) - set(PREFERENCE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown preference fields: {sorted(unknown)}")

        async with self._sessions() as session:
            row = await session.get(NotificationPreferences, user_id)
            if row is None:
                row = NotificationPreferences(user_id=user_id, **PreferenceSettings().to_dict())
                session.add(row)
            for name, value in changes.items():
                setattr(row, name, bool(value))
            await session.commit()
            return PreferenceSettings.from_row(row)
