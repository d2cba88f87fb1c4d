"""
Clock -- injectable time source and project-local time helpers.

Responsibility:
    Services never call ``datetime.now()`` or ``date.today()`` directly.
    They receive a Clock and resolve "now" and "today" in the project's
    own timezone through ``local_now()`` / ``local_today()``, because
    cutoff checks, week buckets and compensation days are all
    project-local.

Architecture position:
    Kernel > Domain -- pure functional core.  SystemClock is the one
    sanctioned I/O boundary for time.

Failure modes:
    - ZoneInfoNotFoundError for an unknown timezone name.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - ``now()`` returns a timezone-aware ``datetime``.
        - ``now_utc()`` returns the same instant normalized to UTC.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    def now_utc(self) -> datetime:
        """Get the current UTC time."""
        return self.now().astimezone(timezone.utc)


class SystemClock(Clock):
    """Production clock returning actual system time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value until ``advance()`` or
          ``set_time()`` is called.
        - Naive datetimes passed in are treated as UTC.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = _aware(
            fixed_time or datetime(2025, 1, 1, 6, 0, 0, tzinfo=timezone.utc)
        )
        self._offset = timedelta(0)

    def now(self) -> datetime:
        return self._fixed_time + self._offset

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific instant."""
        self._fixed_time = _aware(time)
        self._offset = timedelta(0)

    def set_local(self, local: datetime, tz_name: str) -> None:
        """Set the clock so that project-local wall time equals ``local``."""
        self.set_time(local.replace(tzinfo=get_zone(tz_name)))

    def advance(self, seconds: int = 1) -> None:
        """Advance the clock by the given number of seconds."""
        self._offset += timedelta(seconds=seconds)

    def advance_days(self, days: int = 1) -> None:
        self._offset += timedelta(days=days)


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@lru_cache(maxsize=64)
def get_zone(tz_name: str) -> ZoneInfo:
    """Resolve an IANA timezone name (cached)."""
    return ZoneInfo(tz_name)


def local_now(clock: Clock, tz_name: str) -> datetime:
    """Current wall-clock time in the given timezone."""
    return clock.now().astimezone(get_zone(tz_name))


def local_today(clock: Clock, tz_name: str) -> date:
    """Current calendar date in the given timezone."""
    return local_now(clock, tz_name).date()
