"""
Emergency contact directory.

Lookup order for a country:
    1. rows in ``emergency_contacts``
    2. built-in defaults (DEFAULT_CONTACTS)
    3. a synthesized generic ``emergency_services`` entry

so the result is never empty. ``seed_defaults()`` copies the built-in
defaults into the table at startup (skipping numbers already present).
"""

from __future__ import annotations

import logging
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sereno.app.core.errors import ValidationError
from sereno.app.emergency.models import ContactInfo, ContactType, EmergencyContact

logger = logging.getLogger(__name__)

_HOTLINE = ContactType.CRISIS_HOTLINE
_SERVICES = ContactType.EMERGENCY_SERVICES

DEFAULT_CONTACTS: Dict[str, List[ContactInfo]] = {
    "US": [
        ContactInfo(
            "us-988", "Suicide & Crisis Lifeline", "988", _HOTLINE, "US",
            auto_contact=True,
            description="National suicide prevention lifeline",
            website="https://suicidepreventionlifeline.org",
        ),
        ContactInfo(
            "us-911", "Emergency Services", "911", _SERVICES, "US",
            description="Emergency services for immediate danger",
        ),
    ],
    "MX": [
        ContactInfo(
            "mx-saptel", "SAPTEL", "55 5259 8121", _HOTLINE, "MX",
            auto_contact=True,
            description=(
                "Sistema Nacional de Apoyo, Consejo Psicológico e "
                "Intervención en Crisis por Teléfono"
            ),
            website="https://saptel.org.mx",
        ),
        ContactInfo(
            "mx-911", "Servicios de Emergencia", "911", _SERVICES, "MX",
            description="Servicios de emergencia para peligro inmediato",
        ),
    ],
    "ES": [
        ContactInfo(
            "es-telefono-esperanza", "Teléfono de la Esperanza", "717 003 717", _HOTLINE, "ES",
            auto_contact=True,
            description="Teléfono de ayuda para crisis emocionales",
            website="https://telefonodelaesperanza.org",
        ),
        ContactInfo(
            "es-112", "Emergencias", "112", _SERVICES, "ES",
            description="Número único de emergencias europeo",
        ),
    ],
    "AR": [
        ContactInfo(
            "ar-centro-asistencia", "Centro de Asistencia al Suicida", "135", _HOTLINE, "AR",
            auto_contact=True,
            description="Línea de prevención del suicidio",
            website="https://www.casbuenosaires.com.ar",
        ),
        ContactInfo(
            "ar-911", "Emergencias", "911", _SERVICES, "AR",
            description="Servicios de emergencia",
        ),
    ],
    "CO": [
        ContactInfo(
            "co-linea-106", "Línea 106", "106", _HOTLINE, "CO",
            auto_contact=True,
            description="Línea de atención psicológica y apoyo en crisis",
            website="https://www.minsalud.gov.co",
        ),
        ContactInfo(
            "co-123", "Emergencias", "123", _SERVICES, "CO",
            description="Línea única de emergencias",
        ),
    ],
}


def normalize_country(country: str) -> str:
    code = (country or "").strip().upper()
    if len(code) != 2 or not code.isalpha():
        raise ValidationError(
            "Country code must be a 2-letter ISO code", field="country", value=country,
        )
    return code


def generic_contact(country: str) -> ContactInfo:
    return ContactInfo(
        id=f"{country.lower()}-generic",
        name="Servicios de Emergencia",
        phone_number="911",
        type=ContactType.EMERGENCY_SERVICES,
        country=country.upper(),
        available_24h=True,
        auto_contact=False,
        description="Servicios de emergencia locales",
    )


class ContactDirectory:

    def __init__(self, sessions: async_sessionmaker[AsyncSession]):
        self._sessions = sessions

    async def get_contacts(self, country: str) -> List[ContactInfo]:
        code = normalize_country(country)
        try:
            async with self._sessions() as session:
                result = await session.execute(
                    select(EmergencyContact)
                    .where(EmergencyContact.country == code)
                    .order_by(EmergencyContact.auto_contact.desc(), EmergencyContact.id)
                )
                rows = result.scalars().all()
        except Exception:
            logger.exception("Emergency contact lookup failed for %s — using defaults", code)
            rows = []

        if rows:
            return [ContactInfo.from_row(r) for r in rows]
        return list(DEFAULT_CONTACTS.get(code) or [generic_contact(code)])

    async def auto_contacts(self, country: str) -> List[ContactInfo]:
        return [c for c in await self.get_contacts(country) if c.auto_contact]

    async def add_contact(self, contact: ContactInfo) -> ContactInfo:
        async with self._sessions() as session:
            session.add(
                EmergencyContact(
                    id=contact.id,
                    country=normalize_country(contact.country),
                    name=contact.name,
                    phone_number=contact.phone_number,
                    contact_type=contact.type.value,
                    available_24h=contact.available_24h,
                    auto_contact=contact.auto_contact,
                    description=contact.description,
                    website=contact.website,
                )
            )
            await session.commit()
        return contact

    async def seed_defaults(self) -> int:
        """Insert built-in defaults whose (country, phone) pair is missing."""
        added = 0
        async with self._sessions() as session:
            rows = (await session.execute(select(EmergencyContact))).scalars().all()
            existing = {(row.country, row.phone_number) for row in rows}
            existing_ids = {row.id for row in rows}
            for contacts in DEFAULT_CONTACTS.values():
                for c in contacts:
                    if c.id in existing_ids or (c.country, c.phone_number) in existing:
                        continue
                    session.add(
                        EmergencyContact(
                            id=c.id,
                            country=c.country,
                            name=c.name,
                            phone_number=c.phone_number,
                            contact_type=c.type.value,
                            available_24h=c.available_24h,
                            auto_contact=c.auto_contact,
                            description=c.description,
                            website=c.website,
                        )
                    )
                    added += 1
            await session.commit()
        logger.info("Default emergency contacts seeded (%d new)", added)
        return added
