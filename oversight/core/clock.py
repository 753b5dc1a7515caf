from datetime import datetime, timezone
from typing import Optional

def utcnow() -> datetime:
    """
    Current UTC time as a naive datetime, matching how timestamps are stored.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)

def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values are assumed to be UTC already."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
