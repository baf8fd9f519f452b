from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC now; naive UTC is what the DateTime columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
