"""
Standup Bot: Period Trend & Ranking Engine.

Team metrics for a date range, compared against the range immediately
before it, plus a per-user score used to rank contributors.

    participation  submissions / (workdays * participants)
    completion     done / (done + dropped), 100 when nothing was planned
    blocker rate   submissions with blockers / submissions

All rates are integer percents.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Iterable

from standup.core.localtime import weekday_code
from standup.data.models import STATUS_CARRIED, STATUS_DONE, STATUS_DROPPED

if TYPE_CHECKING:
    from standup.data.db import ParticipantDB, SubmissionDB, WorkItemDB
    from standup.data.models import Submission, WorkItem

logger = logging.getLogger(__name__)

STABLE_THRESHOLD = 0.05
DROP_PENALTY_THRESHOLD_PCT = 30

# Metric name -> True when a higher value is better
HIGHER_IS_BETTER = {
    "participation_rate": True,
    "completion_rate": True,
    "blocker_rate": False,
}


def round_half_up(value: float) -> int:
    """Round to the nearest integer; halves round up."""
    return int(math.floor(value + 0.5))


def round_one_decimal(value: float) -> float:
    # round(..., 9) absorbs float noise such as 547.4999999999999
    return math.floor(round(value * 10, 9) + 0.5) / 10


def percent(numerator: int, denominator: int) -> int:
    """Integer percent, 0 when the denominator is 0."""
    if denominator <= 0:
        return 0
    return round_half_up(numerator * 100 / denominator)


# ---------------------------------------------------------------------------
# Periods
# ---------------------------------------------------------------------------


def count_workdays(schedule_days: Iterable[str], start: date, end: date) -> int:
    """Number of dates in ``[start, end]`` whose weekday is a schedule day."""
    days = set(schedule_days)
    count = 0
    current = start
    while current <= end:
        if weekday_code(current) in days:
            count += 1
        current += timedelta(days=1)
    return count


def previous_period(start: date, end: date) -> tuple[date, date]:
    """The range of equal length ending the day before ``start``."""
    length = (end - start).days + 1
    prev_end = start - timedelta(days=1)
    return prev_end - timedelta(days=length - 1), prev_end


# ---------------------------------------------------------------------------
# Team stats
# ---------------------------------------------------------------------------


@dataclass
class PeriodStats:
    start: date
    end: date
    participant_count: int
    total_workdays: int
    submissions: int
    submissions_with_blockers: int
    items_done: int
    items_dropped: int
    items_carried: int
    participation_rate: int
    completion_rate: int
    blocker_rate: int


def compute_period_stats(
    submissions: list[Submission],
    items: list[WorkItem],
    participant_count: int,
    total_workdays: int,
    start: date,
    end: date,
) -> PeriodStats:
    done = sum(1 for item in items if item.status == STATUS_DONE)
    dropped = sum(1 for item in items if item.status == STATUS_DROPPED)
    carried = sum(1 for item in items if item.status == STATUS_CARRIED)
    with_blockers = sum(1 for s in submissions if s.has_blocker)

    completion = percent(done, done + dropped) if done + dropped else 100

    return PeriodStats(
        start=start,
        end=end,
        participant_count=participant_count,
        total_workdays=total_workdays,
        submissions=len(submissions),
        submissions_with_blockers=with_blockers,
        items_done=done,
        items_dropped=dropped,
        items_carried=carried,
        participation_rate=percent(len(submissions), total_workdays * participant_count),
        completion_rate=completion,
        blocker_rate=percent(with_blockers, len(submissions)),
    )


def get_period_stats(
    submission_db: SubmissionDB,
    work_item_db: WorkItemDB,
    participant_db: ParticipantDB,
    daily_name: str,
    start: date,
    end: date,
    total_workdays: int,
) -> PeriodStats:
    """Load one daily's posted submissions and work items and compute stats."""
    submissions = submission_db.get_submissions_in_range(
        daily_name, start.isoformat(), end.isoformat(),
    )
    items = work_item_db.get_items_in_range(daily_name, start.isoformat(), end.isoformat())
    participants = participant_db.get_participants(daily_name)
    return compute_period_stats(
        submissions, items, len(participants), total_workdays, start, end,
    )


# ---------------------------------------------------------------------------
# Trends
# ---------------------------------------------------------------------------


class Trend(str, Enum):
    IMPROVED = "improved"
    DECLINED = "declined"
    STABLE = "stable"


@dataclass
class MetricTrend:
    metric: str
    current: int
    previous: int
    trend: Trend

    @property
    def delta(self) -> int:
        return self.current - self.previous


def compare_metric(metric: str, current: float, previous: float) -> Trend:
    """Classify the change of one metric between two periods.

    A relative change under 5% is stable. From a previous value of 0 the
    metric is stable only if it is still 0.
    """
    if previous == 0:
        if current == 0:
            return Trend.STABLE
    elif abs(current - previous) / previous < STABLE_THRESHOLD:
        return Trend.STABLE

    went_up = current > previous
    if went_up == HIGHER_IS_BETTER[metric]:
        return Trend.IMPROVED
    return Trend.DECLINED


def compute_trends(current: PeriodStats, previous: PeriodStats) -> list[MetricTrend]:
    trends = []
    for metric in HIGHER_IS_BETTER:
        cur = getattr(current, metric)
        prev = getattr(previous, metric)
        trends.append(MetricTrend(metric, cur, prev, compare_metric(metric, cur, prev)))
    return trends


# ---------------------------------------------------------------------------
# Per-user ranking
# ---------------------------------------------------------------------------


@dataclass
class UserPeriodStats:
    user_id: int
    participation_rate: int
    completion_rate: int
    items_done: int
    avg_carry_days: float
    drop_rate: int
    blocker_days: int
    submissions: int = 0


@dataclass
class RankedUser:
    rank: int
    score: float
    stats: UserPeriodStats

    @property
    def user_id(self) -> int:
        return self.stats.user_id


def ranking_score(stats: UserPeriodStats) -> float:
    score = (
        0.30 * stats.participation_rate
        + 0.25 * stats.completion_rate
        + 0.5 * stats.items_done
        - 5 * stats.avg_carry_days
        - 2 * stats.blocker_days
    )
    if stats.drop_rate > DROP_PENALTY_THRESHOLD_PCT:
        score -= 10
    return round_one_decimal(score)


def rank_users(stats: list[UserPeriodStats]) -> list[RankedUser]:
    """Rank by descending score; equal scores keep their input order."""
    scored = [(ranking_score(s), s) for s in stats]
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [
        RankedUser(rank=i, score=score, stats=s)
        for i, (score, s) in enumerate(scored, start=1)
    ]


def compute_user_stats(
    user_ids: list[int],
    submissions: list[Submission],
    items: list[WorkItem],
    total_workdays: int,
) -> list[UserPeriodStats]:
    """Per-user stats for ranking, in ``user_ids`` order.

    Completion here counts carried items in the denominator, so a user who
    keeps pushing work forward scores lower than one who closes it.
    """
    result = []
    for user_id in user_ids:
        user_subs = [s for s in submissions if s.user_id == user_id]
        user_items = [i for i in items if i.user_id == user_id]

        done = sum(1 for i in user_items if i.status == STATUS_DONE)
        dropped = sum(1 for i in user_items if i.status == STATUS_DROPPED)
        carried = sum(1 for i in user_items if i.status == STATUS_CARRIED)
        closed_or_carried = done + dropped + carried

        avg_carry = (
            sum(i.carry_count for i in user_items) / len(user_items) if user_items else 0.0
        )

        result.append(UserPeriodStats(
            user_id=user_id,
            participation_rate=percent(len(user_subs), total_workdays),
            completion_rate=percent(done, closed_or_carried) if closed_or_carried else 100,
            items_done=done,
            avg_carry_days=avg_carry,
            drop_rate=percent(dropped, len(user_items)),
            blocker_days=sum(1 for s in user_subs if s.has_blocker),
            submissions=len(user_subs),
        ))
    return result
