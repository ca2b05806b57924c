"""
Ping pipeline: validate -> sharing check -> throttle -> commit -> alert fanout.

Every outcome is terminal. Policy rejections (invalid / paused / throttled)
are returned as values; only infrastructure failures raise.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional, Tuple

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from icebreakers.core.auth import Caller
from icebreakers.core.clock import utcnow
from icebreakers.core.errors import FailedPrecondition
from icebreakers.core.location_config import (
    ALLOWED_SOURCES,
    COOLDOWN_SECONDS,
    CROWD_ALERT_MIN_USERS,
    DEFAULT_RADIUS_FT,
    FRESHNESS_SECONDS,
    IMPACTED_LIMIT,
    MAX_ACCURACY_M,
    THROTTLE_DISTANCE_M,
    THROTTLE_SECONDS,
)
from icebreakers.models.presence import Presence
from icebreakers.services import geo_index, presence_store, profile_store
from icebreakers.services.crowd_alerts import maybe_send_crowd_alert
from icebreakers.services.nearby_query import find_nearby_presence, is_finite_number


@dataclass
class PingInput:
    lat: float
    lng: float
    accuracy_m: float
    source: str
    recorded_at_ms: float


@dataclass
class PingResult:
    accepted: bool
    reason: Optional[str] = None
    next_ping_after_sec: Optional[int] = None
    # accepted position, seeds the alert fanout
    point: Optional[Tuple[float, float]] = None

    @classmethod
    def reject(cls, reason: str, next_ping_after_sec: Optional[int] = None) -> "PingResult":
        return cls(accepted=False, reason=reason, next_ping_after_sec=next_ping_after_sec)


@dataclass
class ImpactedUser:
    user_id: str
    lat: float
    lng: float


# ------------------------------------------------------------------
# Steps
# ------------------------------------------------------------------

def validate_ping_input(data: Any) -> Optional[PingInput]:
    payload = data if isinstance(data, dict) else {}

    lat = payload.get("lat")
    lng = payload.get("lng")
    # "accuracyM" is the older client spelling
    accuracy_m = payload.get("accuracyMeters", payload.get("accuracyM"))
    source = payload.get("source")
    recorded_at_ms = payload.get("recordedAtMs")

    if not is_finite_number(lat) or not is_finite_number(lng):
        return None
    if not -90 <= lat <= 90 or not -180 <= lng <= 180:
        return None
    if not is_finite_number(accuracy_m) or accuracy_m < 0 or accuracy_m > MAX_ACCURACY_M:
        return None
    if source not in ALLOWED_SOURCES:
        return None
    if not is_finite_number(recorded_at_ms):
        return None

    return PingInput(
        lat=float(lat),
        lng=float(lng),
        accuracy_m=float(accuracy_m),
        source=source,
        recorded_at_ms=recorded_at_ms,
    )


def get_throttle_seconds(
    previous: Optional[Presence],
    point: Tuple[float, float],
    now: datetime,
    throttle_seconds: int = THROTTLE_SECONDS,
    throttle_distance_m: float = THROTTLE_DISTANCE_M,
) -> Optional[int]:
    """Seconds the client must wait, or None when the ping may be written."""
    if previous is None or previous.updated_at is None:
        return None

    elapsed_ms = (now - previous.updated_at).total_seconds() * 1000
    window_ms = throttle_seconds * 1000
    if elapsed_ms >= window_ms:
        return None

    # distance from the last accepted point, not the last raw ping
    moved = geo_index.distance_m((previous.lat, previous.lng), point)
    if moved >= throttle_distance_m:
        return None

    return math.ceil((window_ms - elapsed_ms) / 1000)


def submit_ping(
    db: Session,
    caller: Caller,
    data: Any,
    now: Optional[datetime] = None,
    throttle_seconds: int = THROTTLE_SECONDS,
    throttle_distance_m: float = THROTTLE_DISTANCE_M,
    freshness_seconds: int = FRESHNESS_SECONDS,
) -> PingResult:
    """Validate and commit one ping for the authenticated caller. No fanout."""
    user_id = caller.user_id

    ping = validate_ping_input(data)
    if ping is None:
        logger.info(f"Ping rejected | user={user_id} reason=invalid")
        return PingResult.reject("invalid")

    profile = profile_store.get_profile(db, user_id)
    if profile is None:
        raise FailedPrecondition("User profile is missing.")

    if not profile.sharing_enabled:
        logger.info(f"Ping rejected | user={user_id} reason=paused")
        return PingResult.reject("paused")

    now = now or utcnow()

    previous = presence_store.get(db, user_id)
    wait = get_throttle_seconds(
        previous,
        (ping.lat, ping.lng),
        now,
        throttle_seconds=throttle_seconds,
        throttle_distance_m=throttle_distance_m,
    )
    if wait is not None:
        logger.debug(f"Ping rejected | user={user_id} reason=throttled wait={wait}s")
        return PingResult.reject("throttled", wait)

    presence_store.upsert(
        db,
        user_id,
        ping.lat,
        ping.lng,
        ping.accuracy_m,
        ping.source,
        now,
        freshness_seconds=freshness_seconds,
    )
    profile_store.record_location_status(db, profile, ping.accuracy_m, ping.source, now)
    db.commit()

    logger.info(f"Ping accepted | user={user_id} source={ping.source} accuracy={ping.accuracy_m}")
    return PingResult(accepted=True, point=(ping.lat, ping.lng))


# ------------------------------------------------------------------
# Alert fanout
# ------------------------------------------------------------------

def neighbors_for_subject(
    subject: ImpactedUser,
    people: List[ImpactedUser],
    radius_m: float,
) -> List[ImpactedUser]:
    return [
        person
        for person in people
        if person.user_id != subject.user_id
        and geo_index.distance_m((subject.lat, subject.lng), (person.lat, person.lng)) <= radius_m
    ]


def run_alert_fanout(
    db: Session,
    gateway,
    user_id: str,
    lat: float,
    lng: float,
    now: Optional[datetime] = None,
    impacted_limit: int = IMPACTED_LIMIT,
    min_users: int = CROWD_ALERT_MIN_USERS,
    cooldown_seconds: int = COOLDOWN_SECONDS,
) -> int:
    """
    Evaluate crowd alerts for the sender and the users around them.

    Neighbor sets come from one shared snapshot (the impacted users), not a
    query per subject, so a subject's set excludes people near the subject
    but outside the sender's radius. Each subject is isolated: one failing
    evaluation is logged and the rest continue. Returns alerts sent.
    """
    now = now or utcnow()
    radius_m = geo_index.feet_to_meters(DEFAULT_RADIUS_FT)

    around_sender = find_nearby_presence(db, (lat, lng), radius_m, now)
    others = [
        ImpactedUser(record.user_id, record.lat, record.lng)
        for record, _ in around_sender
        if record.user_id != user_id
    ]
    impacted = [ImpactedUser(user_id, lat, lng)] + others[:impacted_limit]

    sent = 0
    for subject in impacted:
        neighbors = neighbors_for_subject(subject, impacted, radius_m)
        try:
            if maybe_send_crowd_alert(
                db,
                gateway,
                subject.user_id,
                [n.user_id for n in neighbors],
                now,
                min_users=min_users,
                cooldown_seconds=cooldown_seconds,
            ):
                sent += 1
        except Exception:
            db.rollback()
            logger.exception(f"Crowd alert evaluation failed | subject={subject.user_id} sender={user_id}")

    return sent


def alert_fanout_task(
    session_factory: sessionmaker,
    gateway,
    user_id: str,
    lat: float,
    lng: float,
) -> None:
    """Background entry point; the ping was already accepted, so nothing raises."""
    db = session_factory()
    try:
        sent = run_alert_fanout(db, gateway, user_id, lat, lng)
        logger.debug(f"Alert fanout done | sender={user_id} alerts={sent}")
    except Exception:
        logger.exception(f"Alert fanout failed | sender={user_id}")
    finally:
        db.close()
