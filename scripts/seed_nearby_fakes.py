#!/usr/bin/env python3
"""
Seed fake nearby users around a point.

Creates N profiles plus fresh presence records so the nearby screen and
crowd alerts can be exercised without N real phones.

Usage:
    python scripts/seed_nearby_fakes.py --lat 43.0722 --lng -87.8852

    # 12 users on a ring ~30 ft out, visible for 2 hours:
    python scripts/seed_nearby_fakes.py --lat 43.0722 --lng -87.8852 \\
        --count 12 --spread-ft 30 --ttl-minutes 120
"""
import argparse
import math
import sys
from datetime import timedelta
from typing import List

from loguru import logger

from icebreakers.core.clock import utcnow
from icebreakers.core.db import SessionLocal
from icebreakers.core.init_db import init_db
from icebreakers.core.logging import setup_logging
from icebreakers.services import geo_index, presence_store, profile_store

FIELDS_OF_STUDY = [
    "computer science", "business", "nursing", "psychology",
    "engineering", "marketing", "biology", "finance",
]

HOBBIES = [
    "coffee, music, gym",
    "hiking, gaming, photography",
    "basketball, movies, food",
    "reading, travel, cooking",
    "running, music, coding",
    "fashion, art, volleyball",
    "anime, lifting, tacos",
    "soccer, podcasts, boba",
]

BREAKER_ONE = [
    "what is your go-to comfort food",
    "what song are you replaying this week",
    "what is your favorite off-campus spot",
    "what hobby did you pick up recently",
]

BREAKER_TWO = [
    "what is your ideal friday night",
    "what show can you rewatch forever",
    "what is your dream travel destination",
    "what is your favorite local restaurant",
]

BREAKER_THREE = [
    "what is one skill you want to learn",
    "what is your favorite way to relax",
    "what is your best study tip",
    "what is your favorite thing about campus",
]


def seed(
    lat: float,
    lng: float,
    count: int = 8,
    ttl_minutes: int = 60,
    spread_ft: float = 0,
    prefix: str = "fake",
    session_factory=SessionLocal,
) -> List[str]:
    now = utcnow()
    spread_m = geo_index.feet_to_meters(spread_ft)
    created = []

    db = session_factory()
    try:
        for i in range(count):
            user_id = f"{prefix}_{i + 1:02d}"

            # ring around the base point when a spread is given
            angle = 2 * math.pi * i / count
            distance = spread_m * (0.6 + (i % 3) * 0.2) if spread_m > 0 else 0
            point_lat, point_lng = geo_index.offset_point(lat, lng, distance, angle)

            profile = profile_store.get_or_create_profile(db, user_id)
            profile.display_name = f"test{i + 1}"
            profile.field_of_study = FIELDS_OF_STUDY[i % len(FIELDS_OF_STUDY)]
            profile.hobbies = HOBBIES[i % len(HOBBIES)]
            profile.photo_ref = ""
            profile.ice_breaker_one = BREAKER_ONE[i % len(BREAKER_ONE)]
            profile.ice_breaker_two = BREAKER_TWO[i % len(BREAKER_TWO)]
            profile.ice_breaker_three = BREAKER_THREE[i % len(BREAKER_THREE)]

            presence_store.upsert(
                db,
                user_id,
                point_lat,
                point_lng,
                8,
                "foreground",
                now,
                freshness_seconds=int(timedelta(minutes=ttl_minutes).total_seconds()),
            )
            created.append(user_id)

        db.commit()
    finally:
        db.close()

    return created


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Seed fake nearby users around a point")
    parser.add_argument("--lat", type=float, required=True, help="Base latitude")
    parser.add_argument("--lng", type=float, required=True, help="Base longitude")
    parser.add_argument("--count", type=int, default=8, help="Number of fake users")
    parser.add_argument("--ttl-minutes", type=int, default=60, help="Presence TTL in minutes")
    parser.add_argument("--spread-ft", type=float, default=0, help="Ring radius around the base point")
    parser.add_argument("--prefix", default="fake", help="User id prefix")
    args = parser.parse_args(argv)

    if abs(args.lat) > 90 or abs(args.lng) > 180:
        parser.error("lat/lng values are out of range")

    setup_logging()
    init_db()

    created = seed(
        args.lat,
        args.lng,
        count=max(1, args.count),
        ttl_minutes=max(1, args.ttl_minutes),
        spread_ft=max(0.0, args.spread_ft),
        prefix=args.prefix.strip() or "fake",
    )

    logger.info(f"Seeded {len(created)} fake users around ({args.lat}, {args.lng})")
    for user_id in created:
        print(user_id)
    return 0


if __name__ == "__main__":
    sys.exit(main())
