"""
Read/write contract for live presence records.

Freshness is NOT applied here: "now" belongs to the caller, so every
reader decides staleness with `is_fresh`.
"""
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete as sql_delete, select
from sqlalchemy.orm import Session

from icebreakers.core.db import upsert_insert
from icebreakers.core.location_config import FRESHNESS_SECONDS, RANGE_SCAN_LIMIT
from icebreakers.models.presence import Presence
from icebreakers.services import geo_index


def get(db: Session, user_id: str) -> Optional[Presence]:
    return db.get(Presence, user_id)


def upsert(
    db: Session,
    user_id: str,
    lat: float,
    lng: float,
    accuracy_m: Optional[float],
    source: Optional[str],
    now: datetime,
    freshness_seconds: int = FRESHNESS_SECONDS,
) -> Presence:
    """
    Overwrite-merge; geohash and both timestamps are always rewritten.

    Single INSERT ... ON CONFLICT so two first pings for the same user
    resolve as last-write-wins instead of a duplicate key.
    """
    values = {
        "lat": lat,
        "lng": lng,
        "geohash": geo_index.encode(lat, lng),
        "accuracy_m": accuracy_m,
        "source": source,
        "updated_at": now,
        "expires_at": now + timedelta(seconds=freshness_seconds),
    }

    stmt = upsert_insert(db, Presence).values(user_id=user_id, **values)
    db.execute(stmt.on_conflict_do_update(index_elements=[Presence.user_id], set_=values))

    return db.execute(
        select(Presence)
        .where(Presence.user_id == user_id)
        .execution_options(populate_existing=True)
    ).scalar_one()


def delete(db: Session, user_id: str) -> None:
    # no-op when absent
    db.execute(sql_delete(Presence).where(Presence.user_id == user_id))


def query_by_geohash_ranges(
    db: Session,
    ranges: Iterable[Tuple[str, str]],
    limit_per_range: int = RANGE_SCAN_LIMIT,
) -> List[Presence]:
    """One ordered scan per range; union de-duplicated by user id, first seen wins."""
    by_user: Dict[str, Presence] = {}

    for start, end in ranges:
        rows = db.execute(
            select(Presence)
            .where(Presence.geohash >= start, Presence.geohash <= end)
            .order_by(Presence.geohash)
            .limit(limit_per_range)
        ).scalars().all()

        for row in rows:
            if row.user_id not in by_user:
                by_user[row.user_id] = row

    return list(by_user.values())


def is_fresh(record: Optional[Presence], now: datetime) -> bool:
    if record is None or record.expires_at is None:
        return False
    return now <= record.expires_at
