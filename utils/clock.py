"""
Wall-clock helpers.

All timestamps in the system are timezone-aware UTC. Components accept a
``clock`` callable so rate-limit windows and expiry can be exercised in tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def start_of_day(moment: datetime) -> datetime:
    """Midnight (UTC) of the calendar day containing ``moment``."""
    return moment.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


def seconds_until_next_day(moment: datetime) -> int:
    """Whole seconds until the next UTC midnight, never less than one."""
    tomorrow = start_of_day(moment) + timedelta(days=1)
    return max(1, int((tomorrow - moment).total_seconds()))


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO timestamp, assuming UTC when no offset is present."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
