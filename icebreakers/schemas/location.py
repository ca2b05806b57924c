from typing import Any, List, Literal, Optional

from pydantic import AliasChoices, Field, StrictBool, field_validator

from icebreakers.core.location_config import ALLOWED_PLATFORMS
from icebreakers.schemas.base import CamelSchema
from icebreakers.services.push_gateway import is_expo_token

PermissionStatus = Literal["always", "while_in_use", "denied", "unknown"]


# ---------- push token ----------
class RegisterPushTokenRequest(CamelSchema):
    device_id: str
    platform: str
    # "expoPushToken" is the older client spelling
    push_token: str = Field(validation_alias=AliasChoices("pushToken", "expoPushToken"))

    @field_validator("device_id", "push_token")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("is required")
        return value

    @field_validator("platform")
    @classmethod
    def known_platform(cls, value: str) -> str:
        if value not in ALLOWED_PLATFORMS:
            raise ValueError(f"must be one of {', '.join(ALLOWED_PLATFORMS)}")
        return value

    @field_validator("push_token")
    @classmethod
    def must_be_expo_token(cls, value: str) -> str:
        if not is_expo_token(value):
            raise ValueError("must be an Expo push token")
        return value


class OkResponse(CamelSchema):
    ok: bool = True


# ---------- sharing ----------
class SetSharingRequest(CamelSchema):
    sharing_enabled: StrictBool
    permission_status: PermissionStatus


class SetSharingResponse(CamelSchema):
    sharing_enabled: bool
    last_location_at: Optional[str] = None


class ControlStatusResponse(CamelSchema):
    sharing_enabled: bool = True
    permission_status: PermissionStatus = "unknown"
    last_location_at: Optional[str] = None
    last_accuracy_meters: Optional[float] = None


# ---------- ping ----------
class PingResponse(CamelSchema):
    accepted: bool
    reason: Optional[Literal["paused", "throttled", "invalid"]] = None
    next_ping_after_sec: Optional[int] = None


# ---------- nearby ----------
class NearbyRequest(CamelSchema):
    # anything unusable falls back to the default radius
    radius_ft: Optional[Any] = None


class NearbyUser(CamelSchema):
    id: str
    display_name: str
    field_of_study: str
    hobbies: str
    photo_ref: str
    ice_breaker_one: str
    ice_breaker_two: str
    ice_breaker_three: str
    distance_ft: int


class NearbyResponse(CamelSchema):
    users: List[NearbyUser]
    crowd_count: int
    as_of: str
