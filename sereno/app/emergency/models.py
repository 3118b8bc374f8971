"""
Tables and value objects for the emergency alert lifecycle.

Alert state machine:

    ACTIVE ──respond──▶ RESPONDED ──resolve──▶ RESOLVED
      │                                          ▲
      └────────────────resolve───────────────────┘

At most one ACTIVE alert per owner. The partial unique index
``uq_emergency_alerts_owner_active`` enforces it in the database, so two
concurrent panic requests produce exactly one row.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from sereno.app.core.database import Base, new_id, utcnow


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class AlertStatus(str, Enum):
    ACTIVE = "ACTIVE"
    RESPONDED = "RESPONDED"
    RESOLVED = "RESOLVED"


class EscalationType(str, Enum):
    MEDICAL = "medical"
    POLICE = "police"
    CRISIS_CENTER = "crisis_center"


class ContactType(str, Enum):
    CRISIS_HOTLINE = "crisis_hotline"
    EMERGENCY_SERVICES = "emergency_services"
    MENTAL_HEALTH_FACILITY = "mental_health_facility"


class VerificationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


_STATUS_TYPE = SAEnum(
    AlertStatus,
    native_enum=False,
    length=16,
    values_callable=lambda e: [m.value for m in e],
)


# ═══════════════════════════════════════════════════════════════════════════
# Tables
# ═══════════════════════════════════════════════════════════════════════════

class UserAccount(Base):
    """Local mirror of identity data the emergency flow reads."""
    __tablename__ = "user_accounts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    role: Mapped[str] = mapped_column(String(16), default="user", index=True)
    country: Mapped[Optional[str]] = mapped_column(String(2), nullable=True, index=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    flagged_conditions: Mapped[List[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class EmergencyAlert(Base):
    __tablename__ = "emergency_alerts"
    __table_args__ = (
        Index(
            "uq_emergency_alerts_owner_active",
            "owner_user_id",
            unique=True,
            sqlite_where=text("status = 'ACTIVE'"),
            postgresql_where=text("status = 'ACTIVE'"),
        ),
        Index("ix_emergency_alerts_country_status", "owner_country", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    owner_user_id: Mapped[str] = mapped_column(String(64), index=True)
    owner_country: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    accuracy: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    status: Mapped[AlertStatus] = mapped_column(_STATUS_TYPE, default=AlertStatus.ACTIVE)
    official_contacts_notified: Mapped[List[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)


class AlertResponder(Base):
    """Append-only membership: one row per (alert, responder)."""
    __tablename__ = "alert_responders"

    alert_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("emergency_alerts.id"), primary_key=True
    )
    responder_id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class EmergencyChannelBinding(Base):
    __tablename__ = "emergency_channels"

    alert_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("emergency_alerts.id"), primary_key=True
    )
    channel_id: Mapped[str] = mapped_column(String(128))
    context_shared: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class ResponderAvailability(Base):
    __tablename__ = "responder_availability"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    country: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    last_location_update: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class ResponderProfile(Base):
    __tablename__ = "responder_profiles"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    specializations: Mapped[List[str]] = mapped_column(JSON, default=list)
    availability_start: Mapped[str] = mapped_column(String(5), default="09:00")
    availability_end: Mapped[str] = mapped_column(String(5), default="21:00")
    max_response_distance_km: Mapped[float] = mapped_column(Float, default=10.0)
    verification_status: Mapped[str] = mapped_column(
        String(16), default=VerificationStatus.PENDING.value
    )
    registered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class EmergencyContact(Base):
    __tablename__ = "emergency_contacts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    country: Mapped[str] = mapped_column(String(2), index=True)
    name: Mapped[str] = mapped_column(String(200))
    phone_number: Mapped[str] = mapped_column(String(32))
    contact_type: Mapped[str] = mapped_column(String(32))
    available_24h: Mapped[bool] = mapped_column(Boolean, default=True)
    auto_contact: Mapped[bool] = mapped_column(Boolean, default=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    website: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)


# ═══════════════════════════════════════════════════════════════════════════
# Value objects
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class GeoLocation:
    latitude: float
    longitude: float
    address: Optional[str] = None
    accuracy: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"latitude": self.latitude, "longitude": self.longitude}
        if self.address:
            d["address"] = self.address
        if self.accuracy is not None:
            d["accuracy"] = self.accuracy
        return d


@dataclass
class ContactInfo:
    id: str
    name: str
    phone_number: str
    type: ContactType
    country: str
    available_24h: bool = True
    auto_contact: bool = False
    description: Optional[str] = None
    website: Optional[str] = None

    @classmethod
    def from_row(cls, row: EmergencyContact) -> "ContactInfo":
        return cls(
            id=row.id,
            name=row.name,
            phone_number=row.phone_number,
            type=ContactType(row.contact_type),
            country=row.country,
            available_24h=row.available_24h,
            auto_contact=row.auto_contact,
            description=row.description,
            website=row.website,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "phone_number": self.phone_number,
            "type": self.type.value,
            "country": self.country,
            "available_24h": self.available_24h,
            "auto_contact": self.auto_contact,
            "description": self.description,
            "website": self.website,
        }


@dataclass
class AlertView:
    """Read model returned by the lifecycle manager."""
    id: str
    owner_user_id: str
    owner_country: Optional[str]
    status: AlertStatus
    created_at: datetime
    location: Optional[GeoLocation] = None
    resolved_at: Optional[datetime] = None
    responding_responders: List[str] = field(default_factory=list)
    official_contacts_notified: List[str] = field(default_factory=list)
    owner_first_name: Optional[str] = None
    owner_conditions: List[str] = field(default_factory=list)

    @classmethod
    def from_row(
        cls,
        alert: EmergencyAlert,
        responders: Optional[List[str]] = None,
        *,
        owner: Optional[UserAccount] = None,
    ) -> "AlertView":
        location = None
        if alert.latitude is not None and alert.longitude is not None:
            location = GeoLocation(
                latitude=alert.latitude,
                longitude=alert.longitude,
                address=alert.address,
                accuracy=alert.accuracy,
            )
        return cls(
            id=alert.id,
            owner_user_id=alert.owner_user_id,
            owner_country=alert.owner_country,
            status=AlertStatus(alert.status),
            created_at=alert.created_at,
            location=location,
            resolved_at=alert.resolved_at,
            responding_responders=list(responders or []),
            official_contacts_notified=list(alert.official_contacts_notified or []),
            owner_first_name=owner.first_name if owner else None,
            owner_conditions=list(owner.flagged_conditions or []) if owner else [],
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "alert_id": self.id,
            "user_id": self.owner_user_id,
            "country": self.owner_country,
            "status": self.status.value,
            "location": self.location.to_dict() if self.location else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "responding_responders": self.responding_responders,
            "official_contacts_notified": self.official_contacts_notified,
        }
        if self.owner_first_name or self.owner_conditions:
            d["user"] = {
                "first_name": self.owner_first_name,
                "flagged_conditions": self.owner_conditions,
            }
        return d
