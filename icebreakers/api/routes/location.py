from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends
from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from icebreakers.core.auth import Caller, get_current_caller
from icebreakers.core.clock import to_iso, utcnow
from icebreakers.core.db import get_db, get_session_factory
from icebreakers.schemas.location import (
    ControlStatusResponse,
    NearbyRequest,
    NearbyResponse,
    OkResponse,
    PingResponse,
    RegisterPushTokenRequest,
    SetSharingRequest,
    SetSharingResponse,
)
from icebreakers.services import presence_store, profile_store
from icebreakers.services.nearby_query import get_nearby
from icebreakers.services.ping_pipeline import alert_fanout_task, submit_ping
from icebreakers.services.push_gateway import get_push_gateway, register_device

router = APIRouter()


# ------------------------------------------------------------------
# PUSH TOKEN
# ------------------------------------------------------------------

@router.post("/push-token", response_model=OkResponse)
def register_push_token(
    payload: RegisterPushTokenRequest,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    register_device(
        db,
        caller.user_id,
        payload.device_id,
        payload.platform,
        payload.push_token,
    )
    return OkResponse(ok=True)


# ------------------------------------------------------------------
# SHARING
# ------------------------------------------------------------------

@router.post("/sharing", response_model=SetSharingResponse)
def set_sharing(
    payload: SetSharingRequest,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    now = utcnow()

    profile = profile_store.get_or_create_profile(db, caller.user_id)
    profile.sharing_enabled = payload.sharing_enabled
    profile.permission_status = payload.permission_status
    profile.control_updated_at = now

    # live location goes away the moment sharing is off
    if not payload.sharing_enabled:
        presence_store.delete(db, caller.user_id)

    db.commit()
    logger.info(
        f"Sharing updated | user={caller.user_id} enabled={payload.sharing_enabled} "
        f"permission={payload.permission_status}"
    )

    return SetSharingResponse(
        sharing_enabled=payload.sharing_enabled,
        last_location_at=to_iso(profile.last_location_at),
    )


@router.get("/status", response_model=ControlStatusResponse)
def get_control_status(
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    profile = profile_store.get_profile(db, caller.user_id)
    if profile is None:
        return ControlStatusResponse()

    return ControlStatusResponse(
        sharing_enabled=profile.sharing_enabled is not False,
        permission_status=profile_store.normalize_permission_status(profile.permission_status),
        last_location_at=to_iso(profile.last_location_at),
        last_accuracy_meters=profile.last_accuracy_m,
    )


# ------------------------------------------------------------------
# PING
# ------------------------------------------------------------------

@router.post("/ping", response_model=PingResponse, response_model_exclude_none=True)
def upsert_ping(
    background_tasks: BackgroundTasks,
    payload: Any = Body(default=None),
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
    session_factory: sessionmaker = Depends(get_session_factory),
    gateway=Depends(get_push_gateway),
):
    # body is taken raw: malformed pings are a "rejected" value, not a 400
    result = submit_ping(db, caller, payload)

    if result.accepted:
        lat, lng = result.point
        background_tasks.add_task(
            alert_fanout_task, session_factory, gateway, caller.user_id, lat, lng
        )

    return PingResponse(
        accepted=result.accepted,
        reason=result.reason,
        next_ping_after_sec=result.next_ping_after_sec,
    )


# ------------------------------------------------------------------
# NEARBY
# ------------------------------------------------------------------

@router.post("/nearby", response_model=NearbyResponse)
def nearby(
    payload: Optional[NearbyRequest] = None,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    radius_ft = payload.radius_ft if payload else None
    result = get_nearby(db, caller.user_id, radius_ft, utcnow())
    logger.debug(f"Nearby served | user={caller.user_id} count={result['crowd_count']}")
    return result
