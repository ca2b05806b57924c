from datetime import datetime
from typing import Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from icebreakers.core.db import upsert_insert
from icebreakers.core.location_config import (
    ALLOWED_PERMISSION_STATUS,
    PROFILE_BATCH_LIMIT,
)
from icebreakers.models.profile import Profile


def normalize_permission_status(value) -> str:
    if value in ALLOWED_PERMISSION_STATUS:
        return value
    return "unknown"


def get_profile(db: Session, user_id: str) -> Optional[Profile]:
    return db.get(Profile, user_id)


def get_or_create_profile(db: Session, user_id: str) -> Profile:
    row = db.get(Profile, user_id)
    if row is not None:
        return row

    # a concurrent creator may win; either way the row exists afterwards
    stmt = upsert_insert(db, Profile).values(
        user_id=user_id,
        sharing_enabled=True,
        permission_status="unknown",
    )
    db.execute(stmt.on_conflict_do_nothing(index_elements=[Profile.user_id]))

    return db.execute(
        select(Profile)
        .where(Profile.user_id == user_id)
        .execution_options(populate_existing=True)
    ).scalar_one()


def get_profiles_by_ids(
    db: Session,
    user_ids: Iterable[str],
    batch_size: int = PROFILE_BATCH_LIMIT,
) -> Dict[str, Profile]:
    """
    Bulk lookup by id, split into chunks of `batch_size`.
    Missing ids are simply absent from the result.
    """
    unique_ids = list(dict.fromkeys(user_ids))
    profiles: Dict[str, Profile] = {}

    for i in range(0, len(unique_ids), batch_size):
        chunk = unique_ids[i:i + batch_size]
        rows = db.execute(
            select(Profile).where(Profile.user_id.in_(chunk))
        ).scalars().all()
        for row in rows:
            profiles[row.user_id] = row

    return profiles


def record_location_status(
    db: Session,
    profile: Profile,
    accuracy_m: float,
    source: str,
    now: datetime,
) -> None:
    profile.last_location_at = now
    profile.last_accuracy_m = accuracy_m
    profile.last_source = source

    profile.sharing_enabled = True
    profile.permission_status = normalize_permission_status(profile.permission_status)
    profile.control_updated_at = now
    db.flush()
