"""
Standup Bot: Bottleneck & Drop-Rate Analyzer.

Bottlenecks are open items that keep getting carried. A reviewer can snooze
one: it disappears from the report until the snooze date passes, while its
carry state stays exactly as it was.

Drop rate flags users who abandon an unusual share of what they plan.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from typing import TYPE_CHECKING

from standup.core.trends import round_half_up
from standup.data.models import STATUS_DROPPED

if TYPE_CHECKING:
    from standup.data.db import WorkItemDB
    from standup.data.models import WorkItem

logger = logging.getLogger(__name__)

DEFAULT_BOTTLENECK_LIMIT = 5
DEFAULT_SNOOZE_DAYS = 7
DEFAULT_DROP_THRESHOLD_PCT = 30


@dataclass
class DropStat:
    """One user's drop rate over a range."""

    user_id: int
    total: int
    dropped: int
    drop_rate: int  # percent


def get_bottlenecks(
    work_item_db: WorkItemDB,
    daily_name: str,
    threshold: int,
    today: date,
    limit: int = DEFAULT_BOTTLENECK_LIMIT,
) -> list[WorkItem]:
    """Open, un-snoozed items with ``carry_count >= threshold``.

    Most-carried first, then oldest first; capped at ``limit``.
    """
    return work_item_db.get_bottleneck_items(daily_name, threshold, today.isoformat(), limit)


def snooze(
    work_item_db: WorkItemDB,
    item_id: int,
    today: date,
    days: int = DEFAULT_SNOOZE_DAYS,
) -> bool:
    """Hide an item from bottleneck reports for ``days`` days.

    Returns False if the item does not exist.
    """
    if days < 1:
        raise ValueError("days must be at least 1")
    until = (today + timedelta(days=days)).isoformat()
    snoozed = work_item_db.snooze(item_id, until)
    if snoozed:
        logger.info("Work item %d snoozed until %s", item_id, until)
    return snoozed


def compute_drop_stats(
    items: list[WorkItem],
    threshold_pct: int = DEFAULT_DROP_THRESHOLD_PCT,
) -> list[DropStat]:
    """Per-user ``dropped / created`` for users strictly above ``threshold_pct``."""
    totals: dict[int, int] = defaultdict(int)
    drops: dict[int, int] = defaultdict(int)
    for item in items:
        totals[item.user_id] += 1
        if item.status == STATUS_DROPPED:
            drops[item.user_id] += 1

    flagged = []
    for user_id, total in totals.items():
        rate = round_half_up(drops[user_id] * 100 / total)
        if rate > threshold_pct:
            flagged.append(DropStat(user_id, total, drops[user_id], rate))

    flagged.sort(key=lambda s: s.drop_rate, reverse=True)
    return flagged


def get_drop_stats(
    work_item_db: WorkItemDB,
    daily_name: str,
    start: date,
    end: date,
    threshold_pct: int = DEFAULT_DROP_THRESHOLD_PCT,
) -> list[DropStat]:
    """Drop stats over items created between ``start`` and ``end`` inclusive."""
    items = work_item_db.get_items_in_range(daily_name, start.isoformat(), end.isoformat())
    return compute_drop_stats(items, threshold_pct)
