from datetime import datetime, timedelta

from sqlalchemy import event

from icebreakers.models.presence import Presence
from icebreakers.services import geo_index, presence_store
from icebreakers.services.profile_store import get_or_create_profile, get_profiles_by_ids

from conftest import make_profile

NOW = datetime(2026, 3, 2, 12, 0, 0)


def test_upsert_creates_and_overwrites(db):
    first = presence_store.upsert(db, "u1", 43.0722, -87.8852, 8, "foreground", NOW)
    db.commit()
    assert first.geohash == geo_index.encode(43.0722, -87.8852)
    assert first.expires_at == NOW + timedelta(minutes=10)

    later = NOW + timedelta(minutes=3)
    presence_store.upsert(db, "u1", 43.0730, -87.8860, 12, "background", later, freshness_seconds=60)
    db.commit()

    row = presence_store.get(db, "u1")
    assert row.lat == 43.0730
    assert row.source == "background"
    assert row.geohash == geo_index.encode(43.0730, -87.8860)
    assert row.updated_at == later
    assert row.expires_at == later + timedelta(seconds=60)
    assert db.query(Presence).count() == 1


def test_delete_is_idempotent(db):
    presence_store.upsert(db, "u1", 1.0, 1.0, 5, "foreground", NOW)
    db.commit()

    presence_store.delete(db, "u1")
    presence_store.delete(db, "u1")
    presence_store.delete(db, "never-existed")
    db.commit()

    assert presence_store.get(db, "u1") is None


def test_is_fresh():
    record = Presence(user_id="u1", expires_at=NOW)
    assert presence_store.is_fresh(record, NOW - timedelta(seconds=1))
    assert presence_store.is_fresh(record, NOW)
    assert not presence_store.is_fresh(record, NOW + timedelta(seconds=1))
    assert not presence_store.is_fresh(None, NOW)


def test_range_query_returns_union_without_duplicates(db):
    presence_store.upsert(db, "near", 43.07220, -87.88520, 5, "foreground", NOW)
    presence_store.upsert(db, "also-near", 43.07225, -87.88515, 5, "foreground", NOW)
    presence_store.upsert(db, "far", 40.7128, -74.0060, 5, "foreground", NOW)
    db.commit()

    bounds = geo_index.query_bounds((43.07220, -87.88520), 15.24)
    # the same range twice must not duplicate rows
    rows = presence_store.query_by_geohash_ranges(db, bounds + bounds)

    ids = [r.user_id for r in rows]
    assert sorted(ids) == ["also-near", "near"]


def test_range_query_does_not_filter_stale(db):
    presence_store.upsert(db, "old", 10.0, 10.0, 5, "foreground", NOW - timedelta(hours=2))
    db.commit()

    rows = presence_store.query_by_geohash_ranges(db, geo_index.query_bounds((10.0, 10.0), 30))
    assert [r.user_id for r in rows] == ["old"]


def test_range_query_respects_limit(db):
    for i in range(5):
        presence_store.upsert(db, f"u{i}", 10.0, 10.0 + i * 1e-6, 5, "foreground", NOW)
    db.commit()

    rows = presence_store.query_by_geohash_ranges(db, [("s", "t")], limit_per_range=3)
    assert len(rows) == 3


def test_profile_lookup_is_chunked_and_complete(db, engine):
    ids = [f"user-{i:02d}" for i in range(25)]
    for user_id in ids:
        make_profile(db, user_id)

    statements = []

    def _count(conn, cursor, statement, parameters, context, executemany):
        if "FROM profile" in statement:
            statements.append(statement)

    event.listen(engine, "before_cursor_execute", _count)
    try:
        profiles = get_profiles_by_ids(db, ids + ids[:5] + ["missing"], batch_size=10)
    finally:
        event.remove(engine, "before_cursor_execute", _count)

    assert sorted(profiles) == ids
    assert len(statements) == 3


def test_racing_first_writes_resolve_last_write_wins(session_factory):
    first, second = session_factory(), session_factory()
    try:
        # both writers see no row yet
        assert presence_store.get(first, "u1") is None
        assert presence_store.get(second, "u1") is None

        presence_store.upsert(second, "u1", 1.0, 1.0, 5, "foreground", NOW)
        second.commit()

        later = NOW + timedelta(seconds=1)
        presence_store.upsert(first, "u1", 2.0, 2.0, 9, "background", later)
        first.commit()
    finally:
        first.close()
        second.close()

    check = session_factory()
    try:
        row = presence_store.get(check, "u1")
        assert (row.lat, row.lng, row.source) == (2.0, 2.0, "background")
        assert row.geohash == geo_index.encode(2.0, 2.0)
        assert check.query(Presence).count() == 1
    finally:
        check.close()


def test_racing_profile_creation_returns_existing_row(session_factory, monkeypatch):
    first, second = session_factory(), session_factory()
    try:
        # first writer read before the row existed
        monkeypatch.setattr(first, "get", lambda *args, **kwargs: None)

        created = get_or_create_profile(second, "u1")
        created.permission_status = "always"
        second.commit()

        profile = get_or_create_profile(first, "u1")
        assert profile.permission_status == "always"
        assert profile.sharing_enabled is True
        first.commit()
    finally:
        first.close()
        second.close()
