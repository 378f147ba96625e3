"""Tests for standup.core.localtime and the profile timezone adapter."""

from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from standup.adapters.profile_timezone import ProfileTimezoneDirectory, is_valid_timezone
from standup.core.localtime import (
    LocalTime,
    TimezoneResolver,
    format_minutes,
    parse_hhmm,
    weekday_code,
)
from standup.ports.timezone_port import TimezoneLookupError

from conftest import utc


class TestParseHHMM:
    def test_parse(self):
        assert parse_hhmm("00:00") == 0
        assert parse_hhmm("09:30") == 570
        assert parse_hhmm("23:59") == 1439

    def test_out_of_range(self):
        with pytest.raises(ValueError):
            parse_hhmm("25:00")

    def test_format_round_trip(self):
        assert format_minutes(570) == "09:30"


class TestLocalTime:
    def test_offset_moves_wall_clock(self):
        local = LocalTime.from_datetime(utc(2026, 10, 18, 8, 30), 7200)
        assert local.minutes_of_day == 10 * 60 + 30
        assert local.date == date(2026, 10, 18)
        assert local.weekday_code == "sun"

    def test_offset_crosses_midnight(self):
        local = LocalTime.from_datetime(utc(2026, 10, 18, 23, 30), 3 * 3600)
        assert local.date == date(2026, 10, 19)
        assert local.weekday_code == "mon"
        assert local.minutes_of_day == 2 * 60 + 30

    def test_negative_offset(self):
        local = LocalTime.from_datetime(utc(2026, 10, 18, 2, 0), -5 * 3600)
        assert local.date == date(2026, 10, 17)
        assert local.weekday_code == "sat"

    def test_naive_datetime_rejected(self):
        with pytest.raises(ValueError):
            LocalTime.from_datetime(datetime(2026, 10, 18, 8, 30), 0)

    def test_weekday_codes(self):
        assert weekday_code(date(2026, 10, 18)) == "sun"
        assert weekday_code(date(2026, 10, 23)) == "fri"


class TestTimezoneResolver:
    @pytest.mark.asyncio
    async def test_miss_fetches_and_caches(self, timezone_cache):
        directory = AsyncMock()
        directory.get_timezone_offset = AsyncMock(return_value=7200)
        resolver = TimezoneResolver(directory, timezone_cache)
        now = utc(2026, 10, 18, 8, 0)

        assert await resolver.get_offset(1, now) == 7200
        assert timezone_cache.get(1) == (7200, now)

    @pytest.mark.asyncio
    async def test_fresh_hit_skips_directory(self, timezone_cache):
        directory = AsyncMock()
        directory.get_timezone_offset = AsyncMock(return_value=0)
        timezone_cache.put(1, 7200, utc(2026, 10, 18, 8, 0))
        resolver = TimezoneResolver(directory, timezone_cache)

        offset = await resolver.get_offset(1, utc(2026, 10, 19, 7, 59))
        assert offset == 7200
        directory.get_timezone_offset.assert_not_called()

    @pytest.mark.asyncio
    async def test_stale_entry_refetched(self, timezone_cache):
        directory = AsyncMock()
        directory.get_timezone_offset = AsyncMock(return_value=10800)
        timezone_cache.put(1, 7200, utc(2026, 10, 18, 8, 0))
        resolver = TimezoneResolver(directory, timezone_cache)
        now = utc(2026, 10, 18, 8, 0) + timedelta(hours=24)

        assert await resolver.get_offset(1, now) == 10800
        assert timezone_cache.get(1) == (10800, now)

    @pytest.mark.asyncio
    async def test_none_is_not_cached(self, timezone_cache):
        directory = AsyncMock()
        directory.get_timezone_offset = AsyncMock(return_value=None)
        resolver = TimezoneResolver(directory, timezone_cache)

        assert await resolver.local_time(1, utc(2026, 10, 18, 8, 0)) is None
        assert timezone_cache.get(1) is None

    @pytest.mark.asyncio
    async def test_directory_errors_propagate(self, timezone_cache):
        directory = AsyncMock()
        directory.get_timezone_offset = AsyncMock(side_effect=TimezoneLookupError("down"))
        resolver = TimezoneResolver(directory, timezone_cache)

        with pytest.raises(TimezoneLookupError):
            await resolver.get_offset(1, utc(2026, 10, 18, 8, 0))


class TestProfileTimezoneDirectory:
    def test_is_valid_timezone(self):
        assert is_valid_timezone("Asia/Jerusalem")
        assert not is_valid_timezone("Mars/Olympus")

    @pytest.mark.asyncio
    async def test_uses_profile_zone(self, user_db):
        user_db.set_timezone(1, "Asia/Tokyo")
        directory = ProfileTimezoneDirectory(user_db, "UTC")
        assert await directory.get_timezone_offset(1, utc(2026, 10, 18, 8, 0)) == 9 * 3600

    @pytest.mark.asyncio
    async def test_falls_back_to_default(self, user_db):
        directory = ProfileTimezoneDirectory(user_db, "Asia/Tokyo")
        assert await directory.get_timezone_offset(1, utc(2026, 10, 18, 8, 0)) == 9 * 3600

    @pytest.mark.asyncio
    async def test_dst_aware(self, user_db):
        user_db.set_timezone(1, "Europe/London")
        directory = ProfileTimezoneDirectory(user_db, "UTC")
        assert await directory.get_timezone_offset(1, utc(2026, 7, 1, 12, 0)) == 3600
        assert await directory.get_timezone_offset(1, utc(2026, 12, 1, 12, 0)) == 0
