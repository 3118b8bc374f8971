"""
Shared request / response schemas for the v1 API.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sereno.app.emergency.models import GeoLocation


# ---------------------------------------------------------------------------
# Emergency
# ---------------------------------------------------------------------------

class LocationInput(BaseModel):
    """Where the panic button was pressed."""
    model_config = ConfigDict(strict=True)

    latitude: float = Field(..., ge=-90, le=90, examples=[19.4326])
    longitude: float = Field(..., ge=-180, le=180, examples=[-99.1332])
    address: Optional[str] = Field(None, max_length=500, examples=["Av. Reforma 222, CDMX"])
    accuracy: Optional[float] = Field(None, ge=0, examples=[12.5], description="Meters")

    def to_location(self) -> GeoLocation:
        return GeoLocation(
            latitude=self.latitude,
            longitude=self.longitude,
            address=self.address,
            accuracy=self.accuracy,
        )


class PanicRequest(BaseModel):
    location: Optional[LocationInput] = None


class EscalateRequest(BaseModel):
    type: str = Field(..., examples=["medical"], description="medical / police / crisis_center")


class ResponderRegistrationRequest(BaseModel):
    specializations: List[str] = Field(default_factory=list, examples=[["anxiety", "grief"]])
    availability_start: str = Field("09:00", examples=["09:00"])
    availability_end: str = Field("21:00", examples=["21:00"])
    max_response_distance_km: float = Field(10.0, gt=0, le=500, examples=[15.0])


class AvailabilityRequest(BaseModel):
    is_available: bool
    location: Optional[LocationInput] = None


class AlertResponse(BaseModel):
    alert_id: str
    user_id: str
    country: Optional[str]
    status: str
    location: Optional[Dict[str, Any]]
    created_at: Optional[str]
    resolved_at: Optional[str]
    responding_responders: List[str]
    official_contacts_notified: List[str]
    user: Optional[Dict[str, Any]] = None


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

class SubscriptionKeys(BaseModel):
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class SubscribeRequest(BaseModel):
    endpoint: str = Field(..., min_length=1, examples=["https://fcm.googleapis.com/fcm/send/abc"])
    keys: SubscriptionKeys
    fcm_token: Optional[str] = None
    device_info: Optional[Dict[str, Any]] = None

    @field_validator("endpoint")
    @classmethod
    def _https_endpoint(cls, value: str) -> str:
        if not value.startswith(("https://", "http://")):
            raise ValueError("endpoint must be an http(s) URL")
        return value


class UnsubscribeRequest(BaseModel):
    endpoint: str = Field(..., min_length=1)


class PreferencesUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    emergency_alerts: Optional[bool] = None
    daily_reminders: Optional[bool] = None
    activity_updates: Optional[bool] = None
    sereno_responses: Optional[bool] = None
    push_enabled: Optional[bool] = None
    email_enabled: Optional[bool] = None

    def changes(self) -> Dict[str, bool]:
        return self.model_dump(exclude_none=True)


class SampleNotificationRequest(BaseModel):
    title: Optional[str] = Field(None, max_length=120)
    body: Optional[str] = Field(None, max_length=500)
