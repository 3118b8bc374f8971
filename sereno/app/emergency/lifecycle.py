"""
Emergency alert lifecycle — activation, response, resolution.

═══════════════════════════════════════════════════════════════════════════
STATE MACHINE
═══════════════════════════════════════════════════════════════════════════

    ACTIVE ──first respond──▶ RESPONDED ──resolve──▶ RESOLVED
      └──────────────────resolve─────────────────────────▲

    • At most one ACTIVE alert per owner. Activation is a plain INSERT
      guarded by the partial unique index; a duplicate surfaces as
      IntegrityError → ALREADY_ACTIVE. Two racing panic requests therefore
      yield exactly one alert.
    • ACTIVE → RESPONDED is a conditional UPDATE (… WHERE status='ACTIVE'),
      so only the first responder performs it.
    • Responders are a set: membership rows are inserted with
      ON CONFLICT DO NOTHING. Repeating respond changes nothing.
    • RESOLVED is terminal. Resolving twice is a successful no-op.

═══════════════════════════════════════════════════════════════════════════
SIDE EFFECTS
═══════════════════════════════════════════════════════════════════════════

    Every operation returns once its state change is committed. Follow-up
    work runs on the BackgroundTaskRunner:

    activate  → official contacts, responder fan-out, "alert-created"
    respond   → chat channel create/join, owner notification,
                "responder-joined"
    resolve   → channel archive, responder notifications, "alert-resolved"

    Delivery failures never undo or fail a committed transition.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sereno.app.core.broadcast import EventBroadcaster
from sereno.app.core.config import settings
from sereno.app.core.database import insert_ignore, utcnow
from sereno.app.core.errors import (
    AlertNotActiveError,
    AlreadyActiveError,
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from sereno.app.core.security import Principal
from sereno.app.core.tasks import BackgroundTaskRunner
from sereno.app.emergency.accounts import AccountDirectory
from sereno.app.emergency.channel_binder import ChannelBinder
from sereno.app.emergency.escalation import EscalationCoordinator
from sereno.app.emergency.matching import ResponderMatcher
from sereno.app.emergency.models import (
    AlertResponder,
    AlertStatus,
    AlertView,
    EmergencyAlert,
    GeoLocation,
    UserAccount,
)
from sereno.app.notifications.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

DEFAULT_RESPONDER_NAME = "Un SERENO"


def validate_location(location: Optional[GeoLocation]) -> None:
    if location is None:
        return
    for name, value, low, high in (
        ("latitude", location.latitude, -90.0, 90.0),
        ("longitude", location.longitude, -180.0, 180.0),
    ):
        if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
            raise ValidationError(f"{name} must be a number", field=f"location.{name}")
        if not low <= value <= high:
            raise ValidationError(
                f"{name} must be between {low:g} and {high:g}",
                field=f"location.{name}", value=value,
            )
    accuracy = location.accuracy
    if accuracy is not None:
        if isinstance(accuracy, bool) or not isinstance(accuracy, (int, float)) or math.isnan(accuracy):
            raise ValidationError("accuracy must be a number", field="location.accuracy")
        if accuracy < 0:
            raise ValidationError(
                "accuracy must not be negative", field="location.accuracy", value=accuracy,
            )


class AlertLifecycleManager:

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        *,
        accounts: AccountDirectory,
        matcher: ResponderMatcher,
        dispatcher: NotificationDispatcher,
        escalation: EscalationCoordinator,
        binder: ChannelBinder,
        broadcaster: EventBroadcaster,
        runner: BackgroundTaskRunner,
        history_limit: Optional[int] = None,
    ):
        self._sessions = sessions
        self._accounts = accounts
        self._matcher = matcher
        self._dispatcher = dispatcher
        self._escalation = escalation
        self._binder = binder
        self._broadcaster = broadcaster
        self._runner = runner
        self.history_limit = history_limit or settings.ALERT_HISTORY_LIMIT

    # ─────────────────────────────────────────────────────────────────────
    # Activate
    # ─────────────────────────────────────────────────────────────────────

    async def activate(
        self, owner: Principal, location: Optional[GeoLocation] = None
    ) -> AlertView:
        validate_location(location)
        account = await self._accounts.sync(owner)
        country = owner.country or account.country

        alert = EmergencyAlert(
            owner_user_id=owner.id,
            owner_country=country,
            latitude=location.latitude if location else None,
            longitude=location.longitude if location else None,
            address=location.address if location else None,
            accuracy=location.accuracy if location else None,
            status=AlertStatus.ACTIVE,
            official_contacts_notified=[],
            created_at=utcnow(),
        )
        async with self._sessions() as session:
            session.add(alert)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.info("Panic rejected: user %s already has an active alert", owner.id)
                raise AlreadyActiveError(owner.id) from None

        view = AlertView.from_row(alert, [], owner=account)
        logger.warning(
            "Emergency alert %s activated by %s (%s)",
            alert.id, owner.id, country or "no country",
            extra={"alert_id": alert.id, "user_id": owner.id},
        )

        self._runner.spawn(
            self._escalation.notify_official_contacts(alert.id, country),
            name=f"official-contacts-{alert.id}",
        )
        self._runner.spawn(
            self._page_responders(alert.id, owner.id, country, location),
            name=f"page-responders-{alert.id}",
        )
        self._runner.spawn(
            self._broadcaster.publish(alert.id, "alert-created", view.to_dict()),
            name=f"event-created-{alert.id}",
        )
        return view

    async def _page_responders(
        self,
        alert_id: str,
        owner_id: str,
        country: Optional[str],
        location: Optional[GeoLocation],
    ) -> int:
        candidates = await self._matcher.find_candidates(country, location, exclude=[owner_id])
        if not candidates:
            logger.warning("No responders available for alert %s", alert_id, extra={"alert_id": alert_id})
            return 0
        await self._dispatcher.send_emergency_alert_to_responders(
            alert_id, candidates, location.to_dict() if location else None,
        )
        return len(candidates)

    # ─────────────────────────────────────────────────────────────────────
    # Respond
    # ─────────────────────────────────────────────────────────────────────

    async def respond(self, alert_id: str, responder: Principal) -> AlertView:
        async with self._sessions() as session:
            async with session.begin():
                transition = await session.execute(
                    update(EmergencyAlert)
                    .where(
                        EmergencyAlert.id == alert_id,
                        EmergencyAlert.status == AlertStatus.ACTIVE,
                    )
                    .values(status=AlertStatus.RESPONDED)
                    .execution_options(synchronize_session=False)
                )
                first_responder = transition.rowcount == 1

                alert = await session.scalar(
                    select(EmergencyAlert)
                    .where(EmergencyAlert.id == alert_id)
                    .with_for_update()
                )
                if alert is None:
                    raise NotFoundError("Emergency alert", error_code="ALERT_NOT_FOUND", alert_id=alert_id)
                if alert.status == AlertStatus.RESOLVED:
                    raise AlertNotActiveError(alert_id)

                joined = await session.execute(
                    insert_ignore(
                        session,
                        AlertResponder.__table__,
                        {"alert_id": alert_id, "responder_id": responder.id, "joined_at": utcnow()},
                        index_elements=["alert_id", "responder_id"],
                    )
                )
                newly_joined = joined.rowcount == 1
                responders = await self._responder_ids(session, alert_id)
                owner = await session.get(UserAccount, alert.owner_user_id)

        view = AlertView.from_row(alert, responders, owner=owner)

        if newly_joined:
            logger.info(
                "Responder %s joined alert %s%s",
                responder.id, alert_id, " (first)" if first_responder else "",
                extra={"alert_id": alert_id, "responder_id": responder.id},
            )
            self._runner.spawn(
                self._owner_notification(view, responder),
                name=f"notify-owner-{alert_id}",
            )
            self._runner.spawn(
                self._broadcaster.publish(
                    alert_id, "responder-joined",
                    {"responder_id": responder.id, "status": view.status.value},
                ),
                name=f"event-joined-{alert_id}",
            )
        else:
            logger.info("Responder %s re-joined alert %s", responder.id, alert_id)

        # idempotent, so re-run on repeats to recover a failed earlier join
        self._runner.spawn(
            self._binder.on_responder_joins(
                alert_id, view.owner_user_id, responder.id, self._channel_context(view),
            ),
            name=f"channel-join-{alert_id}",
        )
        return view

    async def _owner_notification(self, view: AlertView, responder: Principal) -> None:
        name = responder.first_name
        if not name:
            account = await self._accounts.get(responder.id)
            name = account.first_name if account else None
        await self._dispatcher.send_responder_response(
            view.owner_user_id, name or DEFAULT_RESPONDER_NAME, view.id,
        )

    @staticmethod
    def _channel_context(view: AlertView) -> Dict[str, Any]:
        return {
            "alert_id": view.id,
            "created_at": view.created_at.isoformat() if view.created_at else None,
            "location": view.location.to_dict() if view.location else None,
            "user": {
                "first_name": view.owner_first_name,
                "flagged_conditions": view.owner_conditions,
            },
        }

    # ─────────────────────────────────────────────────────────────────────
    # Resolve
    # ─────────────────────────────────────────────────────────────────────

    async def resolve(self, alert_id: str, requester_id: str) -> AlertView:
        async with self._sessions() as session:
            async with session.begin():
                transition = await session.execute(
                    update(EmergencyAlert)
                    .where(
                        EmergencyAlert.id == alert_id,
                        EmergencyAlert.owner_user_id == requester_id,
                        EmergencyAlert.status != AlertStatus.RESOLVED,
                    )
                    .values(
                        status=AlertStatus.RESOLVED,
                        resolved_at=utcnow(),
                        resolved_by=requester_id,
                    )
                    .execution_options(synchronize_session=False)
                )
                alert = await session.get(EmergencyAlert, alert_id)
                if alert is None:
                    raise NotFoundError("Emergency alert", error_code="ALERT_NOT_FOUND", alert_id=alert_id)
                if alert.owner_user_id != requester_id:
                    raise AuthorizationError(
                        "Only the alert owner can resolve it",
                        error_code="UNAUTHORIZED",
                        alert_id=alert_id,
                    )
                responders = await self._responder_ids(session, alert_id)

        view = AlertView.from_row(alert, responders)
        if transition.rowcount != 1:
            logger.info("Alert %s already resolved", alert_id)
            return view

        logger.info("Emergency alert %s resolved", alert_id, extra={"alert_id": alert_id})
        self._runner.spawn(
            self._binder.on_resolve(alert_id, requester_id),
            name=f"channel-archive-{alert_id}",
        )
        if responders:
            self._runner.spawn(
                self._dispatcher.send_emergency_resolved(responders, alert_id),
                name=f"notify-resolved-{alert_id}",
            )
        self._runner.spawn(
            self._broadcaster.publish(alert_id, "alert-resolved", {"resolved_by": requester_id}),
            name=f"event-resolved-{alert_id}",
        )
        return view

    # ─────────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────────

    async def get_alert(self, alert_id: str, requester: Principal) -> AlertView:
        async with self._sessions() as session:
            alert = await session.get(EmergencyAlert, alert_id)
            if alert is None:
                raise NotFoundError("Emergency alert", error_code="ALERT_NOT_FOUND", alert_id=alert_id)
            responders = await self._responder_ids(session, alert_id)
            allowed = (
                alert.owner_user_id == requester.id
                or requester.id in responders
                or requester.is_responder
            )
            if not allowed:
                raise AuthorizationError(
                    "Access denied to this emergency alert",
                    error_code="ACCESS_DENIED",
                    alert_id=alert_id,
                )
            owner = await session.get(UserAccount, alert.owner_user_id)
        return AlertView.from_row(alert, responders, owner=owner)

    async def get_active_for_owner(self, owner_id: str) -> Optional[AlertView]:
        async with self._sessions() as session:
            alert = await session.scalar(
                select(EmergencyAlert).where(
                    EmergencyAlert.owner_user_id == owner_id,
                    EmergencyAlert.status == AlertStatus.ACTIVE,
                )
            )
            if alert is None:
                return None
            responders = await self._responder_ids(session, alert.id)
        return AlertView.from_row(alert, responders)

    async def list_active(self, country: Optional[str]) -> List[AlertView]:
        if not country:
            return []
        async with self._sessions() as session:
            result = await session.execute(
                select(EmergencyAlert, UserAccount)
                .outerjoin(UserAccount, UserAccount.id == EmergencyAlert.owner_user_id)
                .where(
                    EmergencyAlert.status == AlertStatus.ACTIVE,
                    EmergencyAlert.owner_country == country.upper(),
                )
                .order_by(EmergencyAlert.created_at.desc())
            )
            rows = result.all()
            responders = await self._responders_by_alert(session, [a.id for a, _ in rows])
        return [AlertView.from_row(a, responders.get(a.id, []), owner=o) for a, o in rows]

    async def history(self, owner_id: str) -> List[AlertView]:
        async with self._sessions() as session:
            result = await session.execute(
                select(EmergencyAlert)
                .where(EmergencyAlert.owner_user_id == owner_id)
                .order_by(EmergencyAlert.created_at.desc())
                .limit(self.history_limit)
            )
            alerts = list(result.scalars())
            responders = await self._responders_by_alert(session, [a.id for a in alerts])
        return [AlertView.from_row(a, responders.get(a.id, [])) for a in alerts]

    # ─────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────

    @staticmethod
    async def _responder_ids(session: AsyncSession, alert_id: str) -> List[str]:
        result = await session.execute(
            select(AlertResponder.responder_id)
            .where(AlertResponder.alert_id == alert_id)
            .order_by(AlertResponder.joined_at, AlertResponder.responder_id)
        )
        return [row[0] for row in result.all()]

    @staticmethod
    async def _responders_by_alert(
        session: AsyncSession, alert_ids: List[str]
    ) -> Dict[str, List[str]]:
        if not alert_ids:
            return {}
        result = await session.execute(
            select(AlertResponder.alert_id, AlertResponder.responder_id)
            .where(AlertResponder.alert_id.in_(alert_ids))
            .order_by(AlertResponder.joined_at, AlertResponder.responder_id)
        )
        grouped: Dict[str, List[str]] = {}
        for alert_id, responder_id in result.all():
            grouped.setdefault(alert_id, []).append(responder_id)
        return grouped
