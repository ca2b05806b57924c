from datetime import datetime, timedelta

from sqlalchemy import update

from icebreakers.models.notification_state import NotificationState
from icebreakers.services import crowd_alerts
from icebreakers.services.crowd_alerts import (
    claim_crowd_alert,
    make_alert_fingerprint,
    maybe_send_crowd_alert,
)
from icebreakers.services.push_gateway import register_device

from conftest import RecordingGateway

NOW = datetime(2026, 3, 2, 12, 0, 0)
NEIGHBORS = [f"n{i}" for i in range(8)]
TOKEN = "ExponentPushToken[alice]"


def _register(db, user_id="alice", token=TOKEN):
    register_device(db, user_id, "dev-1", "ios", token)


def _seed_state(db, fingerprint, last_crowd_at, last_any_at=None):
    db.add(
        NotificationState(
            user_id="alice",
            last_crowd_at=last_crowd_at,
            last_any_at=last_any_at or last_crowd_at,
            last_fingerprint=fingerprint,
            version=1,
        )
    )
    db.commit()


def test_fingerprint_ignores_order_and_caps_sample():
    ids = [f"u{i:02d}" for i in range(15)]
    a = make_alert_fingerprint("alice", ids)
    b = make_alert_fingerprint("alice", list(reversed(ids)))
    assert a == b
    assert a == "crowd:alice:" + "|".join(ids[:10])
    # churn beyond the sample does not change it
    assert make_alert_fingerprint("alice", ids[:10] + ["zz"]) == a
    assert make_alert_fingerprint("alice", ["00"] + ids) != a


def test_below_threshold_is_noop(db):
    gateway = RecordingGateway()
    _register(db)
    assert maybe_send_crowd_alert(db, gateway, "alice", NEIGHBORS[:7], NOW) is False
    assert gateway.sent == []
    assert db.get(NotificationState, "alice") is None


def test_no_tokens_is_noop(db):
    gateway = RecordingGateway()
    assert maybe_send_crowd_alert(db, gateway, "alice", NEIGHBORS, NOW) is False
    assert gateway.sent == []


def test_disabled_or_foreign_tokens_are_ignored(db):
    gateway = RecordingGateway()
    _register(db, token="fcm:not-expo")
    assert maybe_send_crowd_alert(db, gateway, "alice", NEIGHBORS, NOW) is False


def test_first_alert_is_sent_and_recorded(db):
    gateway = RecordingGateway()
    _register(db)

    assert maybe_send_crowd_alert(db, gateway, "alice", NEIGHBORS, NOW) is True

    assert gateway.sent == [
        {
            "tokens": [TOKEN],
            "title": "Crowd nearby",
            "body": "There are 8 people within 50 ft of you.",
            "data": {"type": "crowd", "crowdCount": 8},
        }
    ]
    state = db.get(NotificationState, "alice")
    assert state.last_crowd_at == NOW
    assert state.last_fingerprint == make_alert_fingerprint("alice", NEIGHBORS)
    assert state.version == 1


def test_same_fingerprint_within_cooldown_then_after(db):
    gateway = RecordingGateway()
    _register(db)
    fingerprint = make_alert_fingerprint("alice", NEIGHBORS)
    _seed_state(db, fingerprint, NOW - timedelta(minutes=2))

    assert maybe_send_crowd_alert(db, gateway, "alice", NEIGHBORS, NOW) is False
    assert gateway.sent == []

    later = NOW + timedelta(minutes=29)
    assert maybe_send_crowd_alert(db, gateway, "alice", NEIGHBORS, later) is True
    assert len(gateway.sent) == 1


def test_cooldown_applies_even_with_new_fingerprint(db):
    gateway = RecordingGateway()
    _register(db)
    _seed_state(db, "crowd:alice:someone-else", NOW - timedelta(minutes=10))

    assert maybe_send_crowd_alert(db, gateway, "alice", NEIGHBORS, NOW) is False


def test_same_fingerprint_gate_is_independent_of_cooldown(db):
    gateway = RecordingGateway()
    _register(db)
    fingerprint = make_alert_fingerprint("alice", NEIGHBORS)
    # crowd cooldown long over, but the same set fired recently on another path
    _seed_state(db, fingerprint, NOW - timedelta(hours=2), last_any_at=NOW - timedelta(minutes=5))

    assert maybe_send_crowd_alert(db, gateway, "alice", NEIGHBORS, NOW) is False


def test_lost_compare_and_swap_skips_alert(db, monkeypatch):
    _seed_state(db, "crowd:alice:old", NOW - timedelta(hours=2))

    real_within = crowd_alerts._within
    raced = []

    def racing_within(last, now, window):
        # another writer claims the row between our read and our write
        if not raced:
            raced.append(True)
            db.execute(
                update(NotificationState)
                .where(NotificationState.user_id == "alice")
                .values(version=NotificationState.version + 1)
                .execution_options(synchronize_session=False)
            )
        return real_within(last, now, window)

    monkeypatch.setattr(crowd_alerts, "_within", racing_within)

    assert claim_crowd_alert(db, "alice", "crowd:alice:new", NOW) is False

    db.expire_all()
    state = db.get(NotificationState, "alice")
    assert state.last_fingerprint == "crowd:alice:old"


def test_delivery_failure_is_not_raised(db):
    gateway = RecordingGateway(ok=False)
    _register(db)
    assert maybe_send_crowd_alert(db, gateway, "alice", NEIGHBORS, NOW) is True
