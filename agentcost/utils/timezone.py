"""
Clock and timezone utilities for the local agent
All day/month bucketing and persisted timestamps go through a Clock so
boundaries are deterministic under test
"""

import pytz
from datetime import datetime, timezone
from typing import Callable, Optional


def resolve_timezone(name: Optional[str]):
    """
    Resolve an IANA timezone name

    Args:
        name: Timezone string (e.g., 'America/New_York') or None for the host's local zone

    Returns:
        A pytz timezone, or None meaning "host local"

    Raises:
        ValueError: If the timezone name is unknown
    """
    if not name:
        return None
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        raise ValueError(f"Unknown timezone: {name}")


class Clock:
    """Wall clock bound to a timezone"""

    def __init__(
        self,
        tz_name: Optional[str] = None,
        now_fn: Optional[Callable[[], datetime]] = None
    ):
        self.tz = resolve_timezone(tz_name)
        self._now_fn = now_fn or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        """Current time as an aware datetime in the clock's timezone"""
        current = self._now_fn()
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        if self.tz is None:
            return current.astimezone()
        return current.astimezone(self.tz)

    def timestamp(self) -> str:
        return self.now().isoformat()

    def today(self) -> str:
        """Local calendar date as YYYY-MM-DD"""
        return self.now().strftime("%Y-%m-%d")

    def month_prefix(self) -> str:
        """Local calendar month as YYYY-MM"""
        return self.now().strftime("%Y-%m")

    def first_of_next_month(self) -> datetime:
        """First instant (local midnight) of the next calendar month"""
        current = self.now()
        if current.month == 12:
            naive = datetime(current.year + 1, 1, 1)
        else:
            naive = datetime(current.year, current.month + 1, 1)
        return self._localize(naive)

    def _localize(self, naive: datetime) -> datetime:
        if self.tz is None:
            return naive.astimezone()
        return self.tz.localize(naive)
