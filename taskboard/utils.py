import uuid
from datetime import datetime, timezone
from typing import Optional


def new_uuid() -> str:
    return str(uuid.uuid4())


def now_utc() -> datetime:
    return datetime.now(tz=timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize ``value`` to an aware UTC datetime.

    Naive values are taken to already be UTC, which is how SQLite hands
    them back.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))
