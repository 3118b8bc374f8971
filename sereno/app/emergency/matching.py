"""
Responder matching — who gets paged when a panic alert is raised.

Policies (RESPONDER_MATCH_POLICY):

    country    — every responder in the owner's country, ordered by id.
                 Location is ignored. This is the default.
    proximity  — same country filter, then responders with a known
                 location nearest-first (Haversine); responders without a
                 location follow, ordered by id. Responders who switched
                 themselves unavailable are left out.

Both are capped at RESPONDER_MATCH_LIMIT (10) and never include the alert
owner.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sereno.app.core.config import settings
from sereno.app.core.security import Role
from sereno.app.emergency.models import GeoLocation, ResponderAvailability, UserAccount
from sereno.app.spatial.geo import Coordinate, haversine

logger = logging.getLogger(__name__)


class MatchPolicy(Protocol):
    name: str

    async def candidates(
        self,
        session: AsyncSession,
        country: str,
        location: Optional[GeoLocation],
        exclude: List[str],
        limit: int,
    ) -> List[str]: ...


def _responders_in_country(country: str, exclude: List[str]):
    stmt = select(UserAccount.id).where(
        UserAccount.role == Role.RESPONDER.value,
        UserAccount.country == country,
    )
    if exclude:
        stmt = stmt.where(UserAccount.id.not_in(exclude))
    return stmt


class CountryMatchPolicy:
    name = "country"

    async def candidates(self, session, country, location, exclude, limit):
        stmt = _responders_in_country(country, exclude).order_by(UserAccount.id).limit(limit)
        result = await session.execute(stmt)
        return [row[0] for row in result.all()]


class ProximityRankedPolicy:
    name = "proximity"

    async def candidates(self, session, country, location, exclude, limit):
        stmt = (
            select(
                UserAccount.id,
                ResponderAvailability.is_available,
                ResponderAvailability.latitude,
                ResponderAvailability.longitude,
            )
            .select_from(UserAccount)
            .outerjoin(ResponderAvailability, ResponderAvailability.user_id == UserAccount.id)
            .where(
                UserAccount.role == Role.RESPONDER.value,
                UserAccount.country == country,
            )
            .order_by(UserAccount.id)
        )
        if exclude:
            stmt = stmt.where(UserAccount.id.not_in(exclude))
        rows = (await session.execute(stmt)).all()

        origin = Coordinate(location.latitude, location.longitude) if location else None
        ranked = []
        for user_id, is_available, lat, lon in rows:
            if is_available is False:
                continue
            distance = None
            if origin is not None and lat is not None and lon is not None:
                distance = haversine(origin, Coordinate(lat, lon))
            # known distances first, then unknown; ties by id
            ranked.append((distance is None, distance or 0.0, user_id))

        ranked.sort()
        return [user_id for _, _, user_id in ranked[:limit]]


POLICIES = {
    CountryMatchPolicy.name: CountryMatchPolicy,
    ProximityRankedPolicy.name: ProximityRankedPolicy,
}


def build_policy(name: Optional[str] = None) -> MatchPolicy:
    name = (name or settings.RESPONDER_MATCH_POLICY).lower()
    try:
        return POLICIES[name]()
    except KeyError:
        raise ValueError(
            f"Unknown responder match policy '{name}'. Must be one of: {sorted(POLICIES)}"
        ) from None


class ResponderMatcher:

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        policy: Optional[MatchPolicy] = None,
        *,
        limit: Optional[int] = None,
    ):
        self._sessions = sessions
        self.policy = policy or build_policy()
        self.limit = limit or settings.RESPONDER_MATCH_LIMIT

    async def find_candidates(
        self,
        country: Optional[str],
        location: Optional[GeoLocation] = None,
        exclude: Iterable[str] = (),
    ) -> List[str]:
        if not country:
            logger.warning("Alert owner has no country — no responders matched")
            return []
        async with self._sessions() as session:
            candidates = await self.policy.candidates(
                session, country.upper(), location, list(exclude), self.limit,
            )
        logger.info(
            "Matched %d responders in %s (policy=%s)",
            len(candidates), country, self.policy.name,
            extra={"recipient_count": len(candidates)},
        )
        return candidates
