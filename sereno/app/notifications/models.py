"""
Data structures for push notification delivery.

Enums
    NotificationCategory  — what a notification is about (payload ``data.type``)
    PreferenceFlag        — which user preference gates it
    DeliveryStatus        — outcome recorded in the notification log

Mapping
    CATEGORY_PREFERENCES  — exhaustive NotificationCategory → PreferenceFlag

Tables
    PushSubscription, NotificationPreferences, NotificationLog

Value objects
    PushPayload, DeliveryResult, DispatchSummary
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
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from sereno.app.core.database import Base, new_id, utcnow


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class NotificationCategory(str, Enum):
    EMERGENCY_ALERT = "emergency_alert"        # responder: someone needs help
    SERENO_RESPONSE = "sereno_response"        # owner: a responder is coming
    EMERGENCY_RESOLVED = "emergency_resolved"  # responder: incident closed
    DAILY_REMINDER = "daily_reminder"
    ACTIVITY_UPDATE = "activity_update"
    SERENO_RESPONDED = "sereno_responded"
    TEST = "test"
    GENERAL = "general"


class PreferenceFlag(str, Enum):
    EMERGENCY_ALERTS = "emergency_alerts"
    DAILY_REMINDERS = "daily_reminders"
    ACTIVITY_UPDATES = "activity_updates"
    SERENO_RESPONSES = "sereno_responses"
    PUSH_ENABLED = "push_enabled"


CATEGORY_PREFERENCES: Dict[NotificationCategory, PreferenceFlag] = {
    NotificationCategory.EMERGENCY_ALERT: PreferenceFlag.EMERGENCY_ALERTS,
    NotificationCategory.SERENO_RESPONSE: PreferenceFlag.EMERGENCY_ALERTS,
    NotificationCategory.EMERGENCY_RESOLVED: PreferenceFlag.EMERGENCY_ALERTS,
    NotificationCategory.DAILY_REMINDER: PreferenceFlag.DAILY_REMINDERS,
    NotificationCategory.ACTIVITY_UPDATE: PreferenceFlag.ACTIVITY_UPDATES,
    NotificationCategory.SERENO_RESPONDED: PreferenceFlag.SERENO_RESPONSES,
    NotificationCategory.TEST: PreferenceFlag.PUSH_ENABLED,
    NotificationCategory.GENERAL: PreferenceFlag.PUSH_ENABLED,
}


class DeliveryStatus(str, Enum):
    SENT = "SENT"
    FAILED = "FAILED"  # provider rejected the message
    ERROR = "ERROR"    # unexpected failure on our side


class Transport(str, Enum):
    FCM = "fcm"
    WEB_PUSH = "web_push"


# ═══════════════════════════════════════════════════════════════════════════
# Tables
# ═══════════════════════════════════════════════════════════════════════════

class PushSubscription(Base):
    __tablename__ = "push_subscriptions"
    __table_args__ = (
        UniqueConstraint("user_id", "endpoint", name="uq_push_subscriptions_user_endpoint"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    endpoint: Mapped[str] = mapped_column(String(1024))
    p256dh: Mapped[str] = mapped_column(String(255))
    auth: Mapped[str] = mapped_column(String(255))
    fcm_token: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    device_info: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "endpoint": self.endpoint,
            "has_fcm_token": bool(self.fcm_token),
            "device_info": self.device_info or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class NotificationPreferences(Base):
    __tablename__ = "notification_preferences"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    emergency_alerts: Mapped[bool] = mapped_column(Boolean, default=True)
    daily_reminders: Mapped[bool] = mapped_column(Boolean, default=True)
    activity_updates: Mapped[bool] = mapped_column(Boolean, default=True)
    sereno_responses: Mapped[bool] = mapped_column(Boolean, default=True)
    push_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    email_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class NotificationLog(Base):
    __tablename__ = "notification_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    notification_type: Mapped[str] = mapped_column(String(32))
    title: Mapped[str] = mapped_column(String(255))
    body: Mapped[str] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(16))
    transport: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


# ═══════════════════════════════════════════════════════════════════════════
# Value objects
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PreferenceSettings:
    """Effective preferences for one user (defaults when no row exists)."""
    emergency_alerts: bool = True
    daily_reminders: bool = True
    activity_updates: bool = True
    sereno_responses: bool = True
    push_enabled: bool = True
    email_enabled: bool = False

    @classmethod
    def from_row(cls, row: Optional[NotificationPreferences]) -> "PreferenceSettings":
        if row is None:
            return cls()
        return cls(
            emergency_alerts=row.emergency_alerts,
            daily_reminders=row.daily_reminders,
            activity_updates=row.activity_updates,
            sereno_responses=row.sereno_responses,
            push_enabled=row.push_enabled,
            email_enabled=row.email_enabled,
        )

    def allows(self, category: NotificationCategory) -> bool:
        if not self.push_enabled:
            return False
        return bool(getattr(self, CATEGORY_PREFERENCES[category].value))

    def to_dict(self) -> Dict[str, bool]:
        return {
            "emergency_alerts": self.emergency_alerts,
            "daily_reminders": self.daily_reminders,
            "activity_updates": self.activity_updates,
            "sereno_responses": self.sereno_responses,
            "push_enabled": self.push_enabled,
            "email_enabled": self.email_enabled,
        }


@dataclass(frozen=True)
class NotificationAction:
    action: str
    title: str
    icon: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        d = {"action": self.action, "title": self.title}
        if self.icon:
            d["icon"] = self.icon
        return d


@dataclass
class PushPayload:
    """A notification as delivered to the client's service worker."""
    category: NotificationCategory
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)
    actions: List[NotificationAction] = field(default_factory=list)
    icon: Optional[str] = None
    badge: Optional[str] = None

    @property
    def require_interaction(self) -> bool:
        return self.category is NotificationCategory.EMERGENCY_ALERT

    def to_wire(self) -> Dict[str, Any]:
        wire: Dict[str, Any] = {
            "title": self.title,
            "body": self.body,
            "tag": self.category.value,
            "requireInteraction": self.require_interaction,
            "data": {**self.data, "type": self.category.value},
            "actions": [a.to_dict() for a in self.actions],
        }
        if self.icon:
            wire["icon"] = self.icon
        if self.badge:
            wire["badge"] = self.badge
        return wire


@dataclass
class DeliveryResult:
    """Outcome of one delivery attempt to one subscription."""
    subscription_id: str
    transport: Transport
    status: DeliveryStatus
    error: Optional[str] = None
    subscription_removed: bool = False
    provider_response: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subscription_id": self.subscription_id,
            "transport": self.transport.value,
            "status": self.status.value,
            "error": self.error,
            "subscription_removed": self.subscription_removed,
        }


@dataclass
class DispatchSummary:
    """What happened when notifying one user."""
    user_id: str
    category: NotificationCategory
    skipped_reason: Optional[str] = None
    results: List[DeliveryResult] = field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(1 for r in self.results if r.status is DeliveryStatus.SENT)

    @property
    def failed(self) -> int:
        return len(self.results) - self.sent

    @property
    def removed(self) -> int:
        return sum(1 for r in self.results if r.subscription_removed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "category": self.category.value,
            "skipped_reason": self.skipped_reason,
            "sent": self.sent,
            "failed": self.failed,
            "subscriptions_removed": self.removed,
            "results": [r.to_dict() for r in self.results],
        }
