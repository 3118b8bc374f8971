"""
Notification copy for every category the platform sends.

User-facing text is Spanish (the product's launch markets). Builders only
assemble :class:`PushPayload` objects; they never touch the database.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from sereno.app.core.config import settings
from sereno.app.notifications.models import (
    NotificationAction,
    NotificationCategory,
    PushPayload,
)

ACTIVITY_MESSAGES = {
    "new_activity": (
        "🎯 Nueva Actividad Disponible",
        "Se ha publicado una nueva actividad: {title}",
    ),
    "activity_reminder": (
        "⏰ Recordatorio de Actividad",
        'Tu actividad "{title}" comienza pronto',
    ),
    "activity_update": (
        "📝 Actualización de Actividad",
        "Hay cambios en la actividad: {title}",
    ),
}


def _payload(category: NotificationCategory, title: str, body: str, **kwargs: Any) -> PushPayload:
    return PushPayload(
        category=category,
        title=title,
        body=body,
        icon=settings.NOTIFICATION_ICON,
        badge=settings.NOTIFICATION_BADGE,
        **kwargs,
    )


def emergency_alert(
    alert_id: str,
    location: Optional[Dict[str, Any]] = None,
) -> PushPayload:
    data: Dict[str, Any] = {
        "alert_id": alert_id,
        "action": "respond_emergency",
        "url": f"/emergency/{alert_id}",
    }
    if location:
        data["location"] = location
    return _payload(
        NotificationCategory.EMERGENCY_ALERT,
        "🚨 Alerta de Emergencia",
        "Un usuario necesita ayuda inmediata en tu área. ¿Puedes responder?",
        data=data,
        actions=[
            NotificationAction("respond", "Responder Ahora"),
            NotificationAction("view_location", "Ver Ubicación"),
        ],
    )


def responder_on_the_way(alert_id: str, responder_name: str) -> PushPayload:
    return _payload(
        NotificationCategory.SERENO_RESPONSE,
        "💙 SERENO Respondiendo",
        f"{responder_name} está respondiendo a tu emergencia. Te contactará pronto.",
        data={"alert_id": alert_id, "action": "open_chat"},
        actions=[
            NotificationAction("open_chat", "Abrir Chat"),
            NotificationAction("view_help", "Ver Ayuda"),
        ],
    )


def emergency_resolved(alert_id: str) -> PushPayload:
    return _payload(
        NotificationCategory.EMERGENCY_RESOLVED,
        "✅ Emergencia Resuelta",
        "La persona que ayudabas ha marcado su emergencia como resuelta. Gracias por responder.",
        data={"alert_id": alert_id},
    )


def daily_reminder() -> PushPayload:
    return _payload(
        NotificationCategory.DAILY_REMINDER,
        "🌟 SERENITO te recuerda",
        "¿Cómo te sientes hoy? Registra tu estado de ánimo y bienestar",
        data={"action": "mood_assessment"},
        actions=[
            NotificationAction("open_mood", "Registrar Estado"),
            NotificationAction("open_tracking", "Seguimiento Diario"),
        ],
    )


def activity(activity_title: str, activity_id: str, kind: str) -> PushPayload:
    if kind not in ACTIVITY_MESSAGES:
        raise ValueError(
            f"Unknown activity notification '{kind}'. "
            f"Must be one of: {sorted(ACTIVITY_MESSAGES)}"
        )
    title, body = ACTIVITY_MESSAGES[kind]
    return _payload(
        NotificationCategory.ACTIVITY_UPDATE,
        title,
        body.format(title=activity_title),
        data={"activity_id": activity_id, "kind": kind, "action": "view_activity"},
        actions=[
            NotificationAction("view_activity", "Ver Actividad"),
            NotificationAction("view_board", "Ver Todas"),
        ],
    )


def test_message(title: Optional[str] = None, body: Optional[str] = None) -> PushPayload:
    return _payload(
        NotificationCategory.TEST,
        title or "🔔 Notificación de prueba",
        body or "Las notificaciones push están funcionando correctamente.",
        data={"test": True},
    )
