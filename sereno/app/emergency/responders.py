"""
SERENO responder profiles — registration, availability, statistics.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sereno.app.core.database import utcnow
from sereno.app.core.errors import NotFoundError, ValidationError
from sereno.app.core.security import Principal
from sereno.app.emergency.accounts import AccountDirectory
from sereno.app.emergency.lifecycle import validate_location
from sereno.app.emergency.models import (
    AlertResponder,
    AlertStatus,
    EmergencyAlert,
    GeoLocation,
    ResponderAvailability,
    ResponderProfile,
    VerificationStatus,
)

logger = logging.getLogger(__name__)

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


@dataclass
class ResponderStats:
    total_responses: int
    resolved_responses: int
    success_rate: float  # percent, 2 decimals
    average_response_time_seconds: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_responses": self.total_responses,
            "resolved_responses": self.resolved_responses,
            "success_rate": self.success_rate,
            "average_response_time_seconds": self.average_response_time_seconds,
        }


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class ResponderService:

    def __init__(self, sessions: async_sessionmaker[AsyncSession], accounts: AccountDirectory):
        self._sessions = sessions
        self._accounts = accounts

    async def register(
        self,
        principal: Principal,
        *,
        specializations: List[str],
        availability_start: str = "09:00",
        availability_end: str = "21:00",
        max_response_distance_km: float = 10.0,
    ) -> Dict[str, Any]:
        for name, value in (("availability_start", availability_start), ("availability_end", availability_end)):
            if not _HHMM.match(value):
                raise ValidationError(f"{name} must be HH:MM", field=name, value=value)
        if max_response_distance_km <= 0:
            raise ValidationError(
                "max_response_distance_km must be positive", field="max_response_distance_km",
            )

        await self._accounts.sync(principal, grant_responder=True)

        async with self._sessions() as session:
            profile = await session.get(ResponderProfile, principal.id)
            if profile is None:
                profile = ResponderProfile(user_id=principal.id)
                session.add(profile)
            profile.specializations = list(specializations)
            profile.availability_start = availability_start
            profile.availability_end = availability_end
            profile.max_response_distance_km = max_response_distance_km
            profile.verification_status = VerificationStatus.PENDING.value

            availability = await session.get(ResponderAvailability, principal.id)
            if availability is None:
                session.add(
                    ResponderAvailability(
                        user_id=principal.id,
                        is_available=False,
                        country=principal.country,
                    )
                )
            await session.commit()

        logger.info("Responder %s registered (pending verification)", principal.id)
        return {
            "user_id": principal.id,
            "specializations": list(specializations),
            "availability_hours": {"start": availability_start, "end": availability_end},
            "max_response_distance_km": max_response_distance_km,
            "verification_status": VerificationStatus.PENDING.value,
            "is_available": False,
        }

    async def update_availability(
        self,
        principal: Principal,
        is_available: bool,
        location: Optional[GeoLocation] = None,
    ) -> Dict[str, Any]:
        validate_location(location)
        async with self._sessions() as session:
            profile = await session.get(ResponderProfile, principal.id)
            if profile is None:
                raise NotFoundError("Responder profile", user_id=principal.id)

            availability = await session.get(ResponderAvailability, principal.id)
            if availability is None:
                availability = ResponderAvailability(user_id=principal.id)
                session.add(availability)
            availability.is_available = is_available
            if principal.country:
                availability.country = principal.country
            if location is not None:
                availability.latitude = location.latitude
                availability.longitude = location.longitude
                availability.last_location_update = utcnow()
            await session.commit()

        logger.info("Responder %s availability → %s", principal.id, is_available)
        return {
            "user_id": principal.id,
            "is_available": is_available,
            "location": location.to_dict() if location else None,
        }

    async def stats(self, responder_id: str) -> ResponderStats:
        async with self._sessions() as session:
            result = await session.execute(
                select(EmergencyAlert.status, EmergencyAlert.created_at, AlertResponder.joined_at)
                .join(AlertResponder, AlertResponder.alert_id == EmergencyAlert.id)
                .where(AlertResponder.responder_id == responder_id)
            )
            rows = result.all()

        total = len(rows)
        resolved = sum(1 for status, _, _ in rows if status == AlertStatus.RESOLVED)
        delays = [
            (_as_utc(joined) - _as_utc(created)).total_seconds()
            for _, created, joined in rows
            if created is not None and joined is not None
        ]
        return ResponderStats(
            total_responses=total,
            resolved_responses=resolved,
            success_rate=round(resolved / total * 100, 2) if total else 0.0,
            average_response_time_seconds=(
                round(sum(delays) / len(delays), 1) if delays else None
            ),
        )
