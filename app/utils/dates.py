# app/utils/dates.py
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    #sqlite zwraca naive datetime
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
