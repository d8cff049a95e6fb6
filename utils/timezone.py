"""UTC-everywhere time handling. Eliminates timezone bugs at the source."""

import math
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere. Components that make
    time-based decisions take a Clock defaulting to this function.
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 datetime string to UTC datetime.

    Raises ValueError if string has no timezone info.
    """
    dt = datetime.fromisoformat(iso_string)
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot parse naive datetime string. "
            "Include timezone offset (e.g., 'Z' or '+00:00')."
        )
    return to_utc(dt)


def seconds_until(moment: datetime, now: datetime) -> int:
    """
    Whole seconds remaining until moment, rounded up.

    Returns 0 once the moment has passed. Rounding up keeps a countdown from
    showing 0 while the wait is still in effect.
    """
    remaining = (moment - now).total_seconds()
    if remaining <= 0:
        return 0
    return math.ceil(remaining)
