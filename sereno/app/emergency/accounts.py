"""
Local mirror of identity data (role, country, first name).

Refreshed from verified tokens whenever a user activates an alert or a
responder updates their profile, so matching and the chat context can be
answered from our own database. The mirror never downgrades a responder:
only registration grants the role, and stale "user" tokens do not remove it.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sereno.app.core.database import insert_ignore, utcnow
from sereno.app.core.security import Principal, Role
from sereno.app.emergency.models import UserAccount

logger = logging.getLogger(__name__)


class AccountDirectory:

    def __init__(self, sessions: async_sessionmaker[AsyncSession]):
        self._sessions = sessions

    async def sync(self, principal: Principal, *, grant_responder: bool = False) -> UserAccount:
        is_responder = grant_responder or principal.is_responder
        async with self._sessions() as session:
            await session.execute(
                insert_ignore(
                    session,
                    UserAccount.__table__,
                    {
                        "id": principal.id,
                        "role": Role.RESPONDER.value if is_responder else Role.USER.value,
                        "country": principal.country,
                        "first_name": principal.first_name,
                        "flagged_conditions": [],
                        "created_at": utcnow(),
                        "updated_at": utcnow(),
                    },
                    index_elements=["id"],
                )
            )
            changes: Dict[str, object] = {"updated_at": utcnow()}
            if principal.country:
                changes["country"] = principal.country
            if principal.first_name:
                changes["first_name"] = principal.first_name
            if is_responder:
                changes["role"] = Role.RESPONDER.value
            await session.execute(
                update(UserAccount).where(UserAccount.id == principal.id).values(**changes)
            )
            await session.commit()
            account = await session.get(UserAccount, principal.id, populate_existing=True)
        return account

    async def get(self, user_id: str) -> Optional[UserAccount]:
        async with self._sessions() as session:
            return await session.get(UserAccount, user_id)

    async def get_many(self, user_ids: Iterable[str]) -> Dict[str, UserAccount]:
        ids = list(user_ids)
        if not ids:
            return {}
        async with self._sessions() as session:
            result = await session.execute(select(UserAccount).where(UserAccount.id.in_(ids)))
            return {a.id: a for a in result.scalars()}

    async def set_conditions(self, user_id: str, conditions: Iterable[str]) -> None:
        async with self._sessions() as session:
            await session.execute(
                update(UserAccount)
                .where(UserAccount.id == user_id)
                .values(flagged_conditions=list(conditions), updated_at=utcnow())
            )
            await session.commit()
