from datetime import datetime, timezone


def utcnow() -> datetime:
    # naive UTC; every DateTime column in this app stores naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc).isoformat().replace("+00:00", "Z")
