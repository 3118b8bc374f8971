"""
Escalation to official services.

escalate()                  — a responder on the alert asks for medical,
                              police or crisis-center help; the request is
                              posted into the alert's chat channel and
                              published as a live event
notify_official_contacts()  — on activation, every auto-contact number for
                              the owner's country gets an outbound
                              notification attempt; the ids that succeed
                              are stored on the alert

Real telephony is not wired up. OfficialContactChannel is the seam for it;
LoggingOfficialContactChannel records the attempt in the log.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sereno.app.chat.gateway import ChatGateway
from sereno.app.core.broadcast import EventBroadcaster
from sereno.app.core.errors import (
    AlertNotActiveError,
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from sereno.app.core.tasks import BackgroundTaskRunner
from sereno.app.emergency.contacts import ContactDirectory
from sereno.app.emergency.models import (
    AlertResponder,
    AlertStatus,
    ContactInfo,
    EmergencyAlert,
    EmergencyChannelBinding,
    EscalationType,
)

logger = logging.getLogger(__name__)


class OfficialContactChannel(Protocol):
    async def notify(self, contact: ContactInfo, alert_id: str) -> bool: ...


class LoggingOfficialContactChannel:

    async def notify(self, contact: ContactInfo, alert_id: str) -> bool:
        logger.warning(
            "[OFFICIAL_CONTACT] Alert %s → %s (%s, %s)",
            alert_id, contact.name, contact.phone_number, contact.type.value,
            extra={"alert_id": alert_id, "channel": "official_contact"},
        )
        return True


def parse_escalation_type(raw: str) -> EscalationType:
    try:
        return EscalationType(str(raw).strip().lower())
    except ValueError:
        raise ValidationError(
            f"Invalid escalation type '{raw}'. "
            f"Must be one of: {[t.value for t in EscalationType]}",
            field="type",
        ) from None


class EscalationCoordinator:

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        contacts: ContactDirectory,
        chat: ChatGateway,
        broadcaster: EventBroadcaster,
        runner: BackgroundTaskRunner,
        official_channel: Optional[OfficialContactChannel] = None,
    ):
        self._sessions = sessions
        self._contacts = contacts
        self._chat = chat
        self._broadcaster = broadcaster
        self._runner = runner
        self._official_channel = official_channel or LoggingOfficialContactChannel()

    async def escalate(
        self, alert_id: str, escalation_type: str, requested_by: str
    ) -> Dict[str, Any]:
        kind = parse_escalation_type(escalation_type)

        async with self._sessions() as session:
            alert = await session.get(EmergencyAlert, alert_id)
            if alert is None:
                raise NotFoundError("Emergency alert", error_code="ALERT_NOT_FOUND", alert_id=alert_id)
            if alert.status == AlertStatus.RESOLVED:
                raise AlertNotActiveError(alert_id)
            member = await session.scalar(
                select(AlertResponder.responder_id).where(
                    AlertResponder.alert_id == alert_id,
                    AlertResponder.responder_id == requested_by,
                )
            )
            if member is None:
                raise AuthorizationError(
                    "Only a SERENO responding to this alert can escalate it",
                    error_code="ACCESS_DENIED",
                    alert_id=alert_id,
                )

        logger.warning(
            "Escalation %s requested for alert %s by %s",
            kind.value, alert_id, requested_by,
            extra={"alert_id": alert_id},
        )
        self._runner.spawn(
            self._carry_out(alert_id, kind, requested_by),
            name=f"escalate-{alert_id}",
        )
        return {"alert_id": alert_id, "type": kind.value, "status": "requested"}

    async def _carry_out(self, alert_id: str, kind: EscalationType, requested_by: str) -> None:
        async with self._sessions() as session:
            binding = await session.get(EmergencyChannelBinding, alert_id)

        if binding is not None and binding.archived_at is None:
            await self._chat.send_escalation_notice(binding.channel_id, kind.value, requested_by)
        else:
            logger.info("Alert %s has no open channel — escalation notice not posted", alert_id)

        await self._broadcaster.publish(
            alert_id, "escalation-requested",
            {"type": kind.value, "requested_by": requested_by},
        )

    async def notify_official_contacts(self, alert_id: str, owner_country: Optional[str]) -> List[str]:
        if not owner_country:
            return []

        notified: List[str] = []
        for contact in await self._contacts.auto_contacts(owner_country):
            try:
                if await self._official_channel.notify(contact, alert_id):
                    notified.append(contact.id)
            except Exception as exc:
                logger.error(
                    "Official contact %s failed for alert %s: %s",
                    contact.id, alert_id, exc,
                )

        if notified:
            async with self._sessions() as session:
                alert = await session.get(EmergencyAlert, alert_id)
                if alert is not None:
                    merged = list(dict.fromkeys([*(alert.official_contacts_notified or []), *notified]))
                    alert.official_contacts_notified = merged
                    await session.commit()

        return notified
