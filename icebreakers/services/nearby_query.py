import math
from datetime import datetime
from typing import Any, Dict, List, Tuple

from sqlalchemy.orm import Session

from icebreakers.core.clock import to_iso
from icebreakers.core.location_config import (
    DEFAULT_RADIUS_FT,
    MAX_RADIUS_FT,
    PROFILE_BATCH_LIMIT,
    RANGE_SCAN_LIMIT,
)
from icebreakers.models.presence import Presence
from icebreakers.models.profile import Profile
from icebreakers.services import geo_index, presence_store
from icebreakers.services.profile_store import get_profiles_by_ids


def is_finite_number(value: Any) -> bool:
    # bool is an int subclass; it is never a valid number here
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def parse_radius_ft(value: Any) -> float:
    if not is_finite_number(value):
        return DEFAULT_RADIUS_FT
    return max(1, min(MAX_RADIUS_FT, value))


def find_nearby_presence(
    db: Session,
    center: Tuple[float, float],
    radius_m: float,
    now: datetime,
    limit_per_range: int = RANGE_SCAN_LIMIT,
) -> List[Tuple[Presence, float]]:
    """Fresh records within `radius_m` of `center`, with their distance, nearest first."""
    bounds = geo_index.query_bounds(center, radius_m)
    candidates = presence_store.query_by_geohash_ranges(db, bounds, limit_per_range)

    results: List[Tuple[Presence, float]] = []
    for record in candidates:
        if not presence_store.is_fresh(record, now):
            continue
        meters = geo_index.distance_m(center, (record.lat, record.lng))
        if meters <= radius_m:
            results.append((record, meters))

    results.sort(key=lambda pair: pair[1])
    return results


def build_nearby_user(profile: Profile, meters: float) -> Dict[str, Any]:
    # deliberately narrow: no coordinates, no contact info
    return {
        "id": profile.user_id,
        "display_name": profile.display_name or "",
        "field_of_study": profile.field_of_study or "",
        "hobbies": profile.hobbies or "",
        "photo_ref": profile.photo_ref or "",
        "ice_breaker_one": profile.ice_breaker_one or "",
        "ice_breaker_two": profile.ice_breaker_two or "",
        "ice_breaker_three": profile.ice_breaker_three or "",
        "distance_ft": geo_index.round_distance_feet(meters),
    }


def empty_nearby_response(now: datetime) -> Dict[str, Any]:
    return {"users": [], "crowd_count": 0, "as_of": to_iso(now)}


def get_nearby(
    db: Session,
    user_id: str,
    radius_ft: Any,
    now: datetime,
    batch_size: int = PROFILE_BATCH_LIMIT,
) -> Dict[str, Any]:
    radius_m = geo_index.feet_to_meters(parse_radius_ft(radius_ft))

    # an absent or stale requester cannot be a query center
    me = presence_store.get(db, user_id)
    if not presence_store.is_fresh(me, now):
        return empty_nearby_response(now)

    nearby = [
        (record, meters)
        for record, meters in find_nearby_presence(db, (me.lat, me.lng), radius_m, now)
        if record.user_id != user_id
    ]

    profiles = get_profiles_by_ids(db, [r.user_id for r, _ in nearby], batch_size=batch_size)

    users = [
        build_nearby_user(profiles[record.user_id], meters)
        for record, meters in nearby
        if record.user_id in profiles
    ]
    users.sort(key=lambda u: u["distance_ft"])

    return {"users": users, "crowd_count": len(users), "as_of": to_iso(now)}
