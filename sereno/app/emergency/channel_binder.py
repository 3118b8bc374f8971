"""
Binds each emergency alert to one private chat channel.

First responder:   create channel (owner + responder), record the binding,
                   post the emergency context once
Later responders:  join the existing channel
Resolution:        archive the channel; a join that lands after resolve
                   archives it itself

The binding row (emergency_channels) is inserted with ON CONFLICT DO
NOTHING and the context is claimed with a false→true update of
``context_shared``, so concurrent joins share the context exactly once.
Archival is claimed the same way on ``archived_at``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sereno.app.chat.gateway import ChatGateway
from sereno.app.core.database import insert_ignore, utcnow
from sereno.app.emergency.models import AlertStatus, EmergencyAlert, EmergencyChannelBinding

logger = logging.getLogger(__name__)


class ChannelBinder:

    def __init__(self, sessions: async_sessionmaker[AsyncSession], chat: ChatGateway):
        self._sessions = sessions
        self._chat = chat

    async def get_binding(self, alert_id: str) -> Optional[EmergencyChannelBinding]:
        async with self._sessions() as session:
            return await session.get(EmergencyChannelBinding, alert_id)

    async def on_responder_joins(
        self,
        alert_id: str,
        owner_id: str,
        responder_id: str,
        context: Dict[str, Any],
    ) -> str:
        """Create or join the alert's channel; returns the channel id."""
        binding = await self.get_binding(alert_id)

        if binding is not None:
            channel_id = await self._chat.create_or_join_channel(alert_id, [responder_id])
            logger.info(
                "Responder %s joined channel %s", responder_id, channel_id,
                extra={"alert_id": alert_id, "responder_id": responder_id},
            )
        else:
            channel_id = await self._chat.create_or_join_channel(
                alert_id, [owner_id, responder_id]
            )
            async with self._sessions() as session:
                await session.execute(
                    insert_ignore(
                        session,
                        EmergencyChannelBinding.__table__,
                        {
                            "alert_id": alert_id,
                            "channel_id": channel_id,
                            "context_shared": False,
                            "created_at": utcnow(),
                        },
                        index_elements=["alert_id"],
                    )
                )
                await session.commit()

        resolved_by = await self._resolved_by(alert_id)
        if resolved_by is not None:
            await self._archive_once(alert_id, channel_id, resolved_by)
            return channel_id

        await self._share_context_once(alert_id, channel_id, context)
        return channel_id

    async def _share_context_once(
        self, alert_id: str, channel_id: str, context: Dict[str, Any]
    ) -> bool:
        async with self._sessions() as session:
            claimed = await session.execute(
                update(EmergencyChannelBinding)
                .where(
                    EmergencyChannelBinding.alert_id == alert_id,
                    EmergencyChannelBinding.context_shared.is_(False),
                )
                .values(context_shared=True)
            )
            await session.commit()
        if claimed.rowcount != 1:
            return False

        try:
            await self._chat.share_context(channel_id, context)
        except Exception:
            # release the claim so the next join retries
            async with self._sessions() as session:
                await session.execute(
                    update(EmergencyChannelBinding)
                    .where(EmergencyChannelBinding.alert_id == alert_id)
                    .values(context_shared=False)
                )
                await session.commit()
            raise

        logger.info("Emergency context shared in %s", channel_id, extra={"alert_id": alert_id})
        return True

    async def on_resolve(self, alert_id: str, resolved_by: str) -> bool:
        """Archive the alert's channel. Returns False when there is nothing to archive."""
        binding = await self.get_binding(alert_id)
        if binding is None:
            # a join still in flight archives once its binding lands
            return False
        return await self._archive_once(alert_id, binding.channel_id, resolved_by)

    async def _resolved_by(self, alert_id: str) -> Optional[str]:
        async with self._sessions() as session:
            row = (await session.execute(
                select(EmergencyAlert.status, EmergencyAlert.resolved_by)
                .where(EmergencyAlert.id == alert_id)
            )).first()
        if row is None or row.status != AlertStatus.RESOLVED:
            return None
        return row.resolved_by or "unknown"

    async def _archive_once(self, alert_id: str, channel_id: str, resolved_by: str) -> bool:
        async with self._sessions() as session:
            claimed = await session.execute(
                update(EmergencyChannelBinding)
                .where(
                    EmergencyChannelBinding.alert_id == alert_id,
                    EmergencyChannelBinding.archived_at.is_(None),
                )
                .values(archived_at=utcnow())
            )
            await session.commit()
        if claimed.rowcount != 1:
            return False

        try:
            await self._chat.archive_channel(channel_id, reason=f"resolved_by:{resolved_by}")
        except Exception:
            async with self._sessions() as session:
                await session.execute(
                    update(EmergencyChannelBinding)
                    .where(EmergencyChannelBinding.alert_id == alert_id)
                    .values(archived_at=None)
                )
                await session.commit()
            raise

        logger.info("Channel %s archived", channel_id, extra={"alert_id": alert_id})
        return True
