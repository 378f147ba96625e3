"""Tests for standup.core.scheduled_poster: delivering tomorrow-mode updates."""

from datetime import date
from unittest.mock import AsyncMock

import pytest

from standup.core.localtime import LocalTime
from standup.core.scheduled_poster import PostOutcome, ScheduledPoster, is_due
from standup.core.standup_service import StandupService

from conftest import FakeClock, fixed_offset_timezones, utc

DAILY = "daily-il"


def _pending(submission_db, user_id=1, day="2026-10-19", plans=("D",)):
    return submission_db.save_submission(
        user_id, DAILY, day, [], [], [], [], list(plans), "", {}, posted=False,
    )


@pytest.fixture
def clock():
    # Monday 2026-10-19, 08:30 local at UTC+2
    return FakeClock(utc(2026, 10, 19, 6, 30))


@pytest.fixture
def service(submission_db, prompt_db, work_item_db, user_db, notifier):
    return StandupService(submission_db, prompt_db, work_item_db, user_db, notifier)


@pytest.fixture
def make_poster(standup_config, submission_db, participant_db, ooo_db, service, clock):
    def _make(offset=7200):
        return ScheduledPoster(
            standup_config, submission_db, participant_db, ooo_db,
            fixed_offset_timezones(offset), service, now=clock,
        )
    return _make


@pytest.fixture(autouse=True)
def participant(participant_db):
    return participant_db.add_participant(1, DAILY, "il-week")


class TestIsDue:
    def test_earlier_date_is_overdue(self):
        local = LocalTime.from_datetime(utc(2026, 10, 19, 0, 0), 0)
        assert is_due(date(2026, 10, 17), "09:00", local)

    def test_future_date_not_due(self):
        local = LocalTime.from_datetime(utc(2026, 10, 19, 23, 0), 0)
        assert not is_due(date(2026, 10, 20), "09:00", local)

    def test_same_day_waits_for_time(self):
        assert not is_due(date(2026, 10, 19), "09:00", LocalTime.from_datetime(utc(2026, 10, 19, 8, 59), 0))
        assert is_due(date(2026, 10, 19), "09:00", LocalTime.from_datetime(utc(2026, 10, 19, 9, 0), 0))


class TestProcess:
    @pytest.mark.asyncio
    async def test_not_yet_due(self, make_poster, submission_db, notifier):
        pending = _pending(submission_db)
        assert await make_poster().process(pending) is PostOutcome.SKIPPED
        notifier.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_due_posts_and_tracks(
        self, make_poster, submission_db, work_item_db, notifier, clock,
    ):
        pending = _pending(submission_db)
        clock.now = utc(2026, 10, 19, 7, 0)  # 09:00 local

        assert await make_poster().process(pending) is PostOutcome.POSTED
        assert notifier.send_message.await_args.args[0] == "-100123"
        assert submission_db.get_unposted() == []
        assert [i.text for i in work_item_db.get_open_items(1, DAILY)] == ["D"]

    @pytest.mark.asyncio
    async def test_time_override_respected(
        self, make_poster, submission_db, participant_db, clock,
    ):
        participant_db.add_participant(1, DAILY, "il-week", "10:00")
        pending = _pending(submission_db)
        clock.now = utc(2026, 10, 19, 7, 30)  # 09:30 local
        assert await make_poster().process(pending) is PostOutcome.SKIPPED
        clock.now = utc(2026, 10, 19, 8, 0)  # 10:00 local
        assert await make_poster().process(pending) is PostOutcome.POSTED

    @pytest.mark.asyncio
    async def test_held_while_out_of_office(self, make_poster, submission_db, ooo_db, clock):
        ooo_db.add_ooo(1, DAILY, "2026-10-19", "2026-10-21")
        pending = _pending(submission_db)
        clock.now = utc(2026, 10, 19, 9, 0)
        assert await make_poster().process(pending) is PostOutcome.SKIPPED

    @pytest.mark.asyncio
    async def test_update_dated_inside_absence_posts_once_back(
        self, make_poster, submission_db, ooo_db, work_item_db, notifier, clock,
    ):
        ooo_db.add_ooo(1, DAILY, "2026-10-20", "2026-10-20")
        _pending(submission_db, day="2026-10-20", plans=("B",))
        poster = make_poster()

        clock.now = utc(2026, 10, 20, 9, 0)
        assert (await poster.run_sweep()).posted == 0

        clock.now = utc(2026, 10, 21, 7, 0)
        stats = await poster.run_sweep()
        assert stats.posted == 1
        assert submission_db.get_unposted() == []
        assert notifier.send_message.await_count == 1
        assert [i.created_date for i in work_item_db.get_open_items(1, DAILY)] == ["2026-10-20"]

    @pytest.mark.asyncio
    async def test_overdue_update_held_while_author_is_away(
        self, make_poster, submission_db, ooo_db, clock,
    ):
        ooo_db.add_ooo(1, DAILY, "2026-10-20", "2026-10-22")
        pending = _pending(submission_db, day="2026-10-19")
        clock.now = utc(2026, 10, 20, 9, 0)
        assert await make_poster().process(pending) is PostOutcome.SKIPPED

    @pytest.mark.asyncio
    async def test_unknown_daily_skipped(self, make_poster, submission_db):
        pending = submission_db.save_submission(
            1, "gone", "2026-10-19", [], [], [], [], ["D"], "", {}, posted=False,
        )
        assert await make_poster().process(pending) is PostOutcome.SKIPPED

    @pytest.mark.asyncio
    async def test_timezone_unknown_is_error(self, make_poster, submission_db):
        assert await make_poster(offset=None).process(_pending(submission_db)) is PostOutcome.ERROR

    @pytest.mark.asyncio
    async def test_send_failure_stays_pending(
        self, make_poster, submission_db, work_item_db, notifier, clock,
    ):
        notifier.send_message = AsyncMock(side_effect=RuntimeError("down"))
        pending = _pending(submission_db)
        clock.now = utc(2026, 10, 19, 9, 0)
        assert await make_poster().process(pending) is PostOutcome.ERROR
        assert len(submission_db.get_unposted()) == 1
        assert work_item_db.get_open_items(1, DAILY) == []


class TestRunSweep:
    @pytest.mark.asyncio
    async def test_mixed_batch(self, make_poster, submission_db, participant_db, notifier, clock):
        participant_db.add_participant(2, DAILY, "il-week")
        _pending(submission_db, user_id=1, day="2026-10-18")   # overdue
        _pending(submission_db, user_id=2, day="2026-10-20")   # future
        notifier.send_message = AsyncMock(side_effect=["1"])

        stats = await make_poster().run_sweep()
        assert (stats.posted, stats.skipped, stats.errors) == (1, 1, 0)

    @pytest.mark.asyncio
    async def test_second_sweep_does_not_double_post(
        self, make_poster, submission_db, notifier, clock,
    ):
        _pending(submission_db)
        clock.now = utc(2026, 10, 19, 9, 0)
        poster = make_poster()
        await poster.run_sweep()
        stats = await poster.run_sweep()
        assert stats.posted == 0
        assert notifier.send_message.await_count == 1
