"""Tests for standup.core.bottlenecks: carried items and drop rates."""

from datetime import date, timedelta

import pytest

from standup.core.bottlenecks import compute_drop_stats, get_bottlenecks, get_drop_stats, snooze
from standup.data.models import STATUS_DONE, STATUS_DROPPED, STATUS_PENDING, WorkItem

DAILY = "daily-il"


def _carry(work_item_db, user_id, text, times, start=date(2026, 10, 1)):
    for n in range(times):
        day = (start + timedelta(days=n + 1)).isoformat()
        work_item_db.increment_carry(user_id, DAILY, [text], day)


def _item(user_id, status, n):
    return WorkItem(
        id=n, user_id=user_id, daily_name=DAILY, text=f"t{n}", status=status,
        carry_count=0, created_date="2026-10-01",
    )


class TestBottlenecks:
    def test_threshold(self, work_item_db):
        work_item_db.create_items(1, DAILY, ["stuck", "fine"], "2026-10-01")
        _carry(work_item_db, 1, "stuck", 3)
        _carry(work_item_db, 1, "fine", 2)
        items = get_bottlenecks(work_item_db, DAILY, 3, date(2026, 10, 10))
        assert [i.text for i in items] == ["stuck"]

    def test_default_limit_is_five(self, work_item_db):
        texts = [f"item{n}" for n in range(7)]
        work_item_db.create_items(1, DAILY, texts, "2026-10-01")
        for text in texts:
            _carry(work_item_db, 1, text, 3)
        assert len(get_bottlenecks(work_item_db, DAILY, 3, date(2026, 10, 10))) == 5

    def test_closed_items_excluded(self, work_item_db):
        work_item_db.create_items(1, DAILY, ["stuck"], "2026-10-01")
        _carry(work_item_db, 1, "stuck", 4)
        work_item_db.mark_done(1, DAILY, ["stuck"], "2026-10-09")
        assert get_bottlenecks(work_item_db, DAILY, 3, date(2026, 10, 10)) == []


class TestSnooze:
    def test_hidden_until_snooze_passes_then_reappears_unchanged(self, work_item_db):
        work_item_db.create_items(1, DAILY, ["stuck"], "2026-10-01")
        _carry(work_item_db, 1, "stuck", 3)
        item = get_bottlenecks(work_item_db, DAILY, 3, date(2026, 10, 10))[0]

        assert snooze(work_item_db, item.id, date(2026, 10, 10), days=7) is True

        assert get_bottlenecks(work_item_db, DAILY, 3, date(2026, 10, 10)) == []
        assert get_bottlenecks(work_item_db, DAILY, 3, date(2026, 10, 17)) == []

        back = get_bottlenecks(work_item_db, DAILY, 3, date(2026, 10, 18))
        assert [i.id for i in back] == [item.id]
        assert back[0].carry_count == item.carry_count
        assert back[0].status == item.status

    def test_snooze_missing_item(self, work_item_db):
        assert snooze(work_item_db, 999, date(2026, 10, 10)) is False

    def test_days_must_be_positive(self, work_item_db):
        with pytest.raises(ValueError):
            snooze(work_item_db, 1, date(2026, 10, 10), days=0)


class TestDropStats:
    def test_flags_users_strictly_above_threshold(self):
        items = (
            # user 1: 1 of 2 dropped = 50%
            [_item(1, STATUS_DROPPED, 1), _item(1, STATUS_DONE, 2)]
            # user 2: 3 of 10 dropped = 30%, not above
            + [_item(2, STATUS_DROPPED, n) for n in range(10, 13)]
            + [_item(2, STATUS_DONE, n) for n in range(13, 20)]
            # user 3: 2 of 3 = 67%
            + [_item(3, STATUS_DROPPED, 30), _item(3, STATUS_DROPPED, 31), _item(3, STATUS_PENDING, 32)]
        )
        stats = compute_drop_stats(items, 30)
        assert [(s.user_id, s.drop_rate) for s in stats] == [(3, 67), (1, 50)]
        assert (stats[0].dropped, stats[0].total) == (2, 3)

    def test_no_items(self):
        assert compute_drop_stats([], 30) == []

    def test_from_store_by_created_date(self, work_item_db):
        work_item_db.create_items(1, DAILY, ["A", "B"], "2026-10-05")
        work_item_db.create_items(1, DAILY, ["C"], "2026-09-01")
        work_item_db.mark_dropped(1, DAILY, ["A", "C"])
        stats = get_drop_stats(work_item_db, DAILY, date(2026, 10, 1), date(2026, 10, 31))
        assert [(s.user_id, s.drop_rate) for s in stats] == [(1, 50)]
