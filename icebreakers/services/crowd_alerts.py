"""
Crowd nearby alerts.

A subject is alerted when at least CROWD_ALERT_MIN_USERS people are around
them. Two independent gates suppress repeats, both over COOLDOWN_SECONDS:
  - time since the last crowd alert to this subject
  - same neighbor fingerprint as the last alert of any kind

The cooldown row is claimed with a compare-and-swap on `version` before
dispatch, so concurrent pings from one neighborhood cannot all pass the
gate for the same subject.
"""
from datetime import datetime, timedelta
from typing import Iterable, Optional

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from icebreakers.core.location_config import (
    COOLDOWN_SECONDS,
    CROWD_ALERT_MIN_USERS,
    DEFAULT_RADIUS_FT,
    FINGERPRINT_SAMPLE_SIZE,
)
from icebreakers.models.notification_state import NotificationState
from icebreakers.services.push_gateway import get_push_tokens

CROWD_ALERT_TITLE = "Crowd nearby"


def crowd_alert_body(crowd_count: int) -> str:
    return f"There are {crowd_count} people within {DEFAULT_RADIUS_FT} ft of you."


def make_alert_fingerprint(
    subject_id: str,
    neighbor_ids: Iterable[str],
    sample_size: int = FINGERPRINT_SAMPLE_SIZE,
) -> str:
    sample = sorted(neighbor_ids)[:sample_size]
    return f"crowd:{subject_id}:{'|'.join(sample)}"


def _within(last: Optional[datetime], now: datetime, window: timedelta) -> bool:
    return last is not None and now - last < window


def claim_crowd_alert(
    db: Session,
    user_id: str,
    fingerprint: str,
    now: datetime,
    cooldown_seconds: int = COOLDOWN_SECONDS,
) -> bool:
    """
    Check both suppression gates and, if they pass, record the alert.

    Returns False when suppressed or when another writer updated the
    cooldown row between our read and our write.
    """
    window = timedelta(seconds=cooldown_seconds)

    state = db.execute(
        select(NotificationState)
        .where(NotificationState.user_id == user_id)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()

    if state is not None:
        in_cooldown = _within(state.last_crowd_at, now, window)
        same_fingerprint = (
            state.last_fingerprint == fingerprint
            and _within(state.last_any_at, now, window)
        )
        if in_cooldown or same_fingerprint:
            logger.debug(
                f"Crowd alert suppressed | user={user_id} "
                f"cooldown={in_cooldown} same_fingerprint={same_fingerprint}"
            )
            return False

    if state is None:
        db.add(
            NotificationState(
                user_id=user_id,
                last_crowd_at=now,
                last_any_at=now,
                last_fingerprint=fingerprint,
                version=1,
            )
        )
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info(f"Crowd alert claim lost (insert race) | user={user_id}")
            return False
        return True

    result = db.execute(
        update(NotificationState)
        .where(
            NotificationState.user_id == user_id,
            NotificationState.version == state.version,
        )
        .values(
            last_crowd_at=now,
            last_any_at=now,
            last_fingerprint=fingerprint,
            version=state.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        logger.info(f"Crowd alert claim lost (version changed) | user={user_id}")
        return False

    db.commit()
    return True


def maybe_send_crowd_alert(
    db: Session,
    gateway,
    subject_id: str,
    neighbor_ids: list[str],
    now: datetime,
    min_users: int = CROWD_ALERT_MIN_USERS,
    cooldown_seconds: int = COOLDOWN_SECONDS,
) -> bool:
    """Returns True when a push was handed to the gateway."""
    crowd_count = len(neighbor_ids)
    if crowd_count < min_users:
        return False

    tokens = get_push_tokens(db, subject_id)
    if not tokens:
        return False

    fingerprint = make_alert_fingerprint(subject_id, neighbor_ids)
    if not claim_crowd_alert(db, subject_id, fingerprint, now, cooldown_seconds):
        return False

    results = gateway.send(
        tokens,
        CROWD_ALERT_TITLE,
        crowd_alert_body(crowd_count),
        {"type": "crowd", "crowdCount": crowd_count},
    )
    if not all(results):
        logger.warning(f"Crowd alert delivery failed | user={subject_id} batches={results}")
    else:
        logger.info(f"Crowd alert sent | user={subject_id} crowd={crowd_count} tokens={len(tokens)}")

    return True
