from datetime import datetime, timezone


def utcnow() -> datetime:
    """
    Naive UTC wall-clock time. Every timestamp persisted or compared by the
    service is naive UTC, since SQLite drops the tzinfo on the way back.
    Model columns declare plain DateTime (no timezone) to match.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_timestamp(dt: datetime) -> int:
    return int(dt.replace(tzinfo=timezone.utc).timestamp())


def from_timestamp(ts: int | float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)
