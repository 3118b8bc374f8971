"""
Push notification dispatcher — per-user fan-out across every subscription.

═══════════════════════════════════════════════════════════════════════════
DELIVERY RULES
═══════════════════════════════════════════════════════════════════════════

    1. Preferences gate everything. ``push_enabled = false`` silences the
       user; otherwise the category's flag (CATEGORY_PREFERENCES) decides.
       No preferences row means all defaults (on).

    2. Transport choice per subscription:
         FCM token present and Firebase configured  →  FCM
         otherwise                                  →  Web Push (VAPID)

    3. Attempts are independent. One failing endpoint never stops the
       others. Every attempt writes a NotificationLog row:
         SENT    — provider accepted the message
         FAILED  — provider rejected it (or timed out)
         ERROR   — unexpected failure on our side

    4. Self-healing: a "subscription gone" answer (404/410, unregistered
       FCM token) deletes the subscription. Deleting twice is harmless.

    5. Never raises. Callers get a DispatchSummary; the alert lifecycle
       succeeds even if every notification fails.

═══════════════════════════════════════════════════════════════════════════
CONCURRENCY
═══════════════════════════════════════════════════════════════════════════

    A dispatcher-wide semaphore caps simultaneous transport calls and each
    call is bounded by PUSH_DELIVERY_TIMEOUT_SECONDS. Fan-out awaits all
    attempts and collects their results.

    Daily reminders go out in batches of REMINDER_BATCH_SIZE users with a
    REMINDER_BATCH_PAUSE_SECONDS pause between batches.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sereno.app.core.config import settings
from sereno.app.notifications import templates
from sereno.app.notifications.channels import (
    DeliveryError,
    PushTransport,
    SubscriptionGoneError,
)
from sereno.app.notifications.models import (
    DeliveryResult,
    DeliveryStatus,
    DispatchSummary,
    NotificationLog,
    NotificationPreferences,
    PreferenceSettings,
    PushPayload,
    PushSubscription,
    Transport,
)

logger = logging.getLogger(__name__)


@dataclass
class BatchReport:
    """Outcome of a batched broadcast (daily reminders)."""
    eligible_users: int = 0
    batches: int = 0
    users_reached: int = 0
    summaries: List[DispatchSummary] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eligible_users": self.eligible_users,
            "batches": self.batches,
            "users_reached": self.users_reached,
        }


class NotificationDispatcher:
    """
    Delivers PushPayloads to users.

    Usage:
        dispatcher = NotificationDispatcher(sessions, web_push=WebPushTransport(), fcm=FcmTransport())
        summary = await dispatcher.send_to_user("user-1", templates.daily_reminder())
    """

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        *,
        web_push: PushTransport,
        fcm: Optional[PushTransport] = None,
        max_concurrency: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        batch_size: Optional[int] = None,
        batch_pause_seconds: Optional[float] = None,
    ):
        self._sessions = sessions
        self._web_push = web_push
        self._fcm = fcm
        self._semaphore = asyncio.Semaphore(max_concurrency or settings.PUSH_MAX_CONCURRENCY)
        self._timeout = timeout_seconds or settings.PUSH_DELIVERY_TIMEOUT_SECONDS
        self.batch_size = batch_size or settings.REMINDER_BATCH_SIZE
        self.batch_pause_seconds = (
            settings.REMINDER_BATCH_PAUSE_SECONDS
            if batch_pause_seconds is None else batch_pause_seconds
        )

    # ─────────────────────────────────────────────────────────────────────
    # Core
    # ─────────────────────────────────────────────────────────────────────

    async def send_to_user(self, user_id: str, payload: PushPayload) -> DispatchSummary:
        summary = DispatchSummary(user_id=user_id, category=payload.category)

        try:
            preferences, subscriptions = await self._load_targets(user_id)
        except Exception as exc:
            logger.error("Could not load push targets for %s: %s", user_id, exc)
            summary.skipped_reason = "lookup_failed"
            return summary

        if not preferences.push_enabled:
            summary.skipped_reason = "push_disabled"
            return summary
        if not preferences.allows(payload.category):
            summary.skipped_reason = "category_disabled"
            logger.debug("User %s opted out of %s", user_id, payload.category.value)
            return summary
        if not subscriptions:
            summary.skipped_reason = "no_subscriptions"
            return summary

        wire = payload.to_wire()
        outcomes = await asyncio.gather(
            *(self._deliver(sub, wire) for sub in subscriptions),
            return_exceptions=True,
        )

        for sub, outcome in zip(subscriptions, outcomes):
            if isinstance(outcome, BaseException):
                outcome = DeliveryResult(
                    subscription_id=sub.id,
                    transport=self._transport_for(sub)[0],
                    status=DeliveryStatus.ERROR,
                    error=str(outcome),
                )
            summary.results.append(outcome)

        await self._record(user_id, payload, wire, summary.results)

        logger.info(
            "Notification %s → %s: %d sent, %d failed, %d pruned",
            payload.category.value, user_id, summary.sent, summary.failed, summary.removed,
            extra={"user_id": user_id, "category": payload.category.value},
        )
        return summary

    async def send_to_many(
        self, user_ids: Iterable[str], payload: PushPayload
    ) -> List[DispatchSummary]:
        unique_ids = list(dict.fromkeys(user_ids))
        if not unique_ids:
            return []
        return list(
            await asyncio.gather(*(self.send_to_user(uid, payload) for uid in unique_ids))
        )

    # ─────────────────────────────────────────────────────────────────────
    # Domain helpers
    # ─────────────────────────────────────────────────────────────────────

    async def send_emergency_alert_to_responders(
        self,
        alert_id: str,
        responder_ids: Sequence[str],
        location: Optional[Dict[str, Any]] = None,
    ) -> List[DispatchSummary]:
        summaries = await self.send_to_many(
            responder_ids, templates.emergency_alert(alert_id, location)
        )
        logger.info(
            "Emergency alert %s fanned out to %d responders",
            alert_id, len(summaries),
            extra={"alert_id": alert_id, "recipient_count": len(summaries)},
        )
        return summaries

    async def send_responder_response(
        self, owner_id: str, responder_name: str, alert_id: str
    ) -> DispatchSummary:
        return await self.send_to_user(
            owner_id, templates.responder_on_the_way(alert_id, responder_name)
        )

    async def send_emergency_resolved(
        self, responder_ids: Sequence[str], alert_id: str
    ) -> List[DispatchSummary]:
        return await self.send_to_many(responder_ids, templates.emergency_resolved(alert_id))

    async def send_daily_reminder(self, user_id: str) -> DispatchSummary:
        return await self.send_to_user(user_id, templates.daily_reminder())

    async def send_activity_notification(
        self, user_id: str, activity_title: str, activity_id: str, kind: str = "new_activity"
    ) -> DispatchSummary:
        return await self.send_to_user(
            user_id, templates.activity(activity_title, activity_id, kind)
        )

    async def send_daily_reminders_to_all_users(self) -> BatchReport:
        report = BatchReport()
        user_ids = await self._reminder_recipients()
        report.eligible_users = len(user_ids)

        for start in range(0, len(user_ids), self.batch_size):
            if start:
                await asyncio.sleep(self.batch_pause_seconds)
            batch = user_ids[start:start + self.batch_size]
            summaries = await self.send_to_many(batch, templates.daily_reminder())
            report.batches += 1
            report.summaries.extend(summaries)
            report.users_reached += sum(1 for s in summaries if s.sent)

        logger.info(
            "Daily reminders: %d eligible users, %d reached in %d batches",
            report.eligible_users, report.users_reached, report.batches,
        )
        return report

    # ─────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────

    async def _load_targets(
        self, user_id: str
    ) -> Tuple[PreferenceSettings, List[PushSubscription]]:
        async with self._sessions() as session:
            prefs_row = await session.get(NotificationPreferences, user_id)
            result = await session.execute(
                select(PushSubscription)
                .where(PushSubscription.user_id == user_id)
                .order_by(PushSubscription.created_at)
            )
            return PreferenceSettings.from_row(prefs_row), list(result.scalars().all())

    async def _reminder_recipients(self) -> List[str]:
        """Users with at least one subscription whose preferences allow reminders."""
        stmt = (
            select(PushSubscription.user_id)
            .outerjoin(
                NotificationPreferences,
                NotificationPreferences.user_id == PushSubscription.user_id,
            )
            .where(
                or_(
                    NotificationPreferences.user_id.is_(None),
                    (NotificationPreferences.daily_reminders.is_(True))
                    & (NotificationPreferences.push_enabled.is_(True)),
                )
            )
            .distinct()
            .order_by(PushSubscription.user_id)
        )
        async with self._sessions() as session:
            result = await session.execute(stmt)
            return [row[0] for row in result.all()]

    def _transport_for(self, subscription: PushSubscription) -> Tuple[Transport, PushTransport]:
        if subscription.fcm_token and self._fcm is not None and self._fcm.available:
            return Transport.FCM, self._fcm
        return Transport.WEB_PUSH, self._web_push

    async def _deliver(self, subscription: PushSubscription, wire: Dict[str, Any]) -> DeliveryResult:
        kind, transport = self._transport_for(subscription)
        result = DeliveryResult(
            subscription_id=subscription.id,
            transport=kind,
            status=DeliveryStatus.SENT,
        )

        try:
            async with self._semaphore:
                result.provider_response = await asyncio.wait_for(
                    transport.send(subscription, wire), timeout=self._timeout
                )
        except SubscriptionGoneError as exc:
            result.status = DeliveryStatus.FAILED
            result.error = str(exc)
            result.subscription_removed = await self._remove_subscription(subscription)
        except DeliveryError as exc:
            result.status = DeliveryStatus.FAILED
            result.error = str(exc)
        except asyncio.TimeoutError:
            result.status = DeliveryStatus.FAILED
            result.error = f"Timed out after {self._timeout:.1f}s"
        except Exception as exc:
            logger.exception("Unexpected %s delivery error for %s", kind.value, subscription.id)
            result.status = DeliveryStatus.ERROR
            result.error = str(exc)

        if result.status is not DeliveryStatus.SENT:
            logger.warning(
                "[%s] Delivery to subscription %s failed: %s",
                kind.value.upper(), subscription.id, result.error,
                extra={"subscription_id": subscription.id, "channel": kind.value},
            )
        return result

    async def _remove_subscription(self, subscription: PushSubscription) -> bool:
        try:
            async with self._sessions() as session:
                await session.execute(
                    delete(PushSubscription).where(PushSubscription.id == subscription.id)
                )
                await session.commit()
        except Exception as exc:
            logger.error("Could not prune subscription %s: %s", subscription.id, exc)
            return False
        logger.info(
            "Removed invalid subscription %s for user %s",
            subscription.id, subscription.user_id,
        )
        return True

    async def _record(
        self,
        user_id: str,
        payload: PushPayload,
        wire: Dict[str, Any],
        results: List[DeliveryResult],
    ) -> None:
        try:
            async with self._sessions() as session:
                session.add_all([
                    NotificationLog(
                        user_id=user_id,
                        notification_type=payload.category.value,
                        title=payload.title,
                        body=payload.body,
                        status=r.status.value,
                        transport=r.transport.value,
                        error=r.error,
                        payload=wire,
                    )
                    for r in results
                ])
                await session.commit()
        except Exception as exc:
            logger.error("Could not write notification log for %s: %s", user_id, exc)
