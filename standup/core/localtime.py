"""Local time as an (epoch, offset) value, plus the cached offset resolver.

No I/O in ``LocalTime``: every conversion is a pure function of the two
integers, so scheduling decisions never depend on the host's locale or
timezone.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable

from standup.config import WEEKDAY_CODES

if TYPE_CHECKING:
    from standup.data.db import TimezoneCacheDB
    from standup.ports.timezone_port import TimezonePort

logger = logging.getLogger(__name__)

CACHE_TTL = timedelta(hours=24)

NowProvider = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_hhmm(value: str) -> int:
    """Convert "HH:MM" to minutes from midnight. Raises ValueError."""
    hour, minute = map(int, value.split(":"))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Hour/minute out of range: {value!r}")
    return hour * 60 + minute


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def weekday_code(day: date) -> str:
    """Three-letter weekday code ("sun" .. "sat") of a calendar date."""
    # date.weekday(): Monday == 0; codes start at Sunday
    return WEEKDAY_CODES[(day.weekday() + 1) % 7]


@dataclass(frozen=True)
class LocalTime:
    """An instant seen from a fixed UTC offset."""

    epoch_seconds: int
    offset_seconds: int

    @classmethod
    def from_datetime(cls, instant: datetime, offset_seconds: int) -> LocalTime:
        if instant.tzinfo is None:
            raise ValueError("instant must be timezone-aware")
        return cls(int(instant.timestamp()), offset_seconds)

    @property
    def wall_clock(self) -> datetime:
        tz = timezone(timedelta(seconds=self.offset_seconds))
        return datetime.fromtimestamp(self.epoch_seconds, tz=tz)

    @property
    def date(self) -> date:
        return self.wall_clock.date()

    @property
    def minutes_of_day(self) -> int:
        wall = self.wall_clock
        return wall.hour * 60 + wall.minute

    @property
    def weekday_code(self) -> str:
        return weekday_code(self.date)


class TimezoneResolver:
    """Offset lookups through a persisted 24h cache.

    A cache hit younger than ``CACHE_TTL`` never touches the directory. On a
    miss or a stale entry the directory is asked and the answer stored. The
    directory's own failures propagate to the caller.
    """

    def __init__(
        self,
        directory: TimezonePort,
        cache: TimezoneCacheDB,
        ttl: timedelta = CACHE_TTL,
    ) -> None:
        self._directory = directory
        self._cache = cache
        self._ttl = ttl

    async def get_offset(self, user_id: int, now: datetime) -> int | None:
        cached = self._cache.get(user_id)
        if cached is not None:
            offset, fetched_at = cached
            if now - fetched_at < self._ttl:
                return offset

        offset = await self._directory.get_timezone_offset(user_id, now)
        if offset is None:
            logger.warning("No timezone offset available for user %d", user_id)
            return None

        self._cache.put(user_id, offset, now)
        return offset

    async def local_time(self, user_id: int, now: datetime) -> LocalTime | None:
        offset = await self.get_offset(user_id, now)
        if offset is None:
            return None
        return LocalTime.from_datetime(now, offset)
