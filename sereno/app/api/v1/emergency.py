"""
FastAPI routes: panic alerts and the SERENO response flow.

    POST /api/v1/emergency/panic                    — activate an alert
    PUT  /api/v1/emergency/alert/{id}/respond       — responder claims it
    PUT  /api/v1/emergency/alert/{id}/resolve       — owner closes it
    GET  /api/v1/emergency/alert/{id}               — alert details
    POST /api/v1/emergency/alert/{id}/escalate      — medical / police / crisis center
    GET  /api/v1/emergency/active                   — open alerts in my country
    GET  /api/v1/emergency/history                  — my recent alerts
    GET  /api/v1/emergency/contacts/{country}       — hotlines and emergency numbers
    POST /api/v1/emergency/responder/register       — become a SERENO
    PUT  /api/v1/emergency/responder/availability   — go on / off duty
    GET  /api/v1/emergency/responder/stats          — my response record
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, status

from sereno.app.api.deps import (
    get_container,
    get_contacts,
    get_escalation,
    get_lifecycle,
    get_responders,
)
from sereno.app.api.schemas import (
    AlertResponse,
    AvailabilityRequest,
    EscalateRequest,
    PanicRequest,
    ResponderRegistrationRequest,
)
from sereno.app.container import ServiceContainer
from sereno.app.core.security import Principal, get_current_principal, require_responder
from sereno.app.emergency.contacts import ContactDirectory
from sereno.app.emergency.escalation import EscalationCoordinator
from sereno.app.emergency.lifecycle import AlertLifecycleManager
from sereno.app.emergency.responders import ResponderService

router = APIRouter(prefix="/api/v1/emergency", tags=["emergency"])


# ---------------------------------------------------------------------------
# Alert lifecycle
# ---------------------------------------------------------------------------

@router.post(
    "/panic",
    status_code=status.HTTP_201_CREATED,
    response_model=AlertResponse,
    summary="Activate the panic button",
    description=(
        "Creates an ACTIVE alert for the caller. Responders are paged and "
        "official contacts notified in the background."
    ),
)
async def activate_panic(
    request: Optional[PanicRequest] = Body(None),
    principal: Principal = Depends(get_current_principal),
    lifecycle: AlertLifecycleManager = Depends(get_lifecycle),
):
    location = request.location.to_location() if request and request.location else None
    view = await lifecycle.activate(principal, location)
    return view.to_dict()


@router.put(
    "/alert/{alert_id}/respond",
    response_model=AlertResponse,
    summary="Respond to an emergency alert",
)
async def respond_to_alert(
    alert_id: str,
    principal: Principal = Depends(require_responder),
    lifecycle: AlertLifecycleManager = Depends(get_lifecycle),
):
    view = await lifecycle.respond(alert_id, principal)
    return view.to_dict()


@router.put(
    "/alert/{alert_id}/resolve",
    response_model=AlertResponse,
    summary="Resolve an emergency alert",
)
async def resolve_alert(
    alert_id: str,
    principal: Principal = Depends(get_current_principal),
    lifecycle: AlertLifecycleManager = Depends(get_lifecycle),
):
    view = await lifecycle.resolve(alert_id, principal.id)
    return view.to_dict()


@router.get(
    "/alert/{alert_id}",
    response_model=AlertResponse,
    summary="Get an emergency alert",
)
async def get_alert(
    alert_id: str,
    principal: Principal = Depends(get_current_principal),
    lifecycle: AlertLifecycleManager = Depends(get_lifecycle),
):
    view = await lifecycle.get_alert(alert_id, principal)
    return view.to_dict()


@router.post(
    "/alert/{alert_id}/escalate",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Escalate to official services",
)
async def escalate_alert(
    alert_id: str,
    request: EscalateRequest,
    principal: Principal = Depends(require_responder),
    escalation: EscalationCoordinator = Depends(get_escalation),
) -> Dict[str, Any]:
    return await escalation.escalate(alert_id, request.type, principal.id)


@router.get(
    "/active",
    response_model=List[AlertResponse],
    summary="Active alerts in the responder's country",
)
async def list_active_alerts(
    principal: Principal = Depends(require_responder),
    container: ServiceContainer = Depends(get_container),
):
    country = principal.country
    if not country:
        account = await container.accounts.get(principal.id)
        country = account.country if account else None
    views = await container.lifecycle.list_active(country)
    return [v.to_dict() for v in views]


@router.get(
    "/history",
    response_model=List[AlertResponse],
    summary="The caller's most recent alerts",
)
async def alert_history(
    principal: Principal = Depends(get_current_principal),
    lifecycle: AlertLifecycleManager = Depends(get_lifecycle),
):
    return [v.to_dict() for v in await lifecycle.history(principal.id)]


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------

@router.get(
    "/contacts/{country}",
    summary="Emergency contacts for a country",
    description="Never empty: unknown countries get a generic emergency services entry.",
)
async def emergency_contacts(
    country: str,
    contacts: ContactDirectory = Depends(get_contacts),
) -> Dict[str, Any]:
    found = await contacts.get_contacts(country)
    return {
        "country": country.upper(),
        "contacts": [c.to_dict() for c in found],
    }


# ---------------------------------------------------------------------------
# Responders
# ---------------------------------------------------------------------------

@router.post(
    "/responder/register",
    status_code=status.HTTP_201_CREATED,
    summary="Register as a SERENO responder",
)
async def register_responder(
    request: ResponderRegistrationRequest,
    principal: Principal = Depends(get_current_principal),
    responders: ResponderService = Depends(get_responders),
) -> Dict[str, Any]:
    return await responders.register(
        principal,
        specializations=request.specializations,
        availability_start=request.availability_start,
        availability_end=request.availability_end,
        max_response_distance_km=request.max_response_distance_km,
    )


@router.put(
    "/responder/availability",
    summary="Update responder availability",
)
async def update_availability(
    request: AvailabilityRequest,
    principal: Principal = Depends(require_responder),
    responders: ResponderService = Depends(get_responders),
) -> Dict[str, Any]:
    location = request.location.to_location() if request.location else None
    return await responders.update_availability(principal, request.is_available, location)


@router.get(
    "/responder/stats",
    summary="Responder statistics",
)
async def responder_stats(
    principal: Principal = Depends(require_responder),
    responders: ResponderService = Depends(get_responders),
) -> Dict[str, Any]:
    stats = await responders.stats(principal.id)
    return stats.to_dict()
