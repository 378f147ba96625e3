"""
Standup Bot: Manager digest.

Collects period stats, trends against the previous period, rankings,
bottlenecks and drop-rate flags for one daily and renders them as a plain
text message for managers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import TYPE_CHECKING

from standup.core.bottlenecks import DropStat, compute_drop_stats, get_bottlenecks
from standup.core.trends import (
    MetricTrend,
    PeriodStats,
    RankedUser,
    Trend,
    compute_period_stats,
    compute_trends,
    compute_user_stats,
    count_workdays,
    previous_period,
    rank_users,
)

if TYPE_CHECKING:
    from standup.config import Daily, StandupConfig
    from standup.data.db import OOODB, ParticipantDB, SubmissionDB, UserDB, WorkItemDB
    from standup.data.models import WorkItem

logger = logging.getLogger(__name__)

# Period name -> length in days, ending on the digest date
DIGEST_PERIODS = {
    "daily": 1,
    "weekly": 7,
    "4-week": 28,
}

_PERIOD_TITLES = {
    "daily": "Daily Digest",
    "weekly": "Weekly Digest",
    "4-week": "4-Week Digest",
}

_TREND_MARKS = {
    Trend.IMPROVED: "improved",
    Trend.DECLINED: "declined",
    Trend.STABLE: "stable",
}

_METRIC_LABELS = {
    "participation_rate": "Participation",
    "completion_rate": "Completion",
    "blocker_rate": "Blocker rate",
}


def period_range(period: str, today: date) -> tuple[date, date]:
    """The ``[start, end]`` range for a digest period ending ``today``."""
    if period not in DIGEST_PERIODS:
        raise ValueError(f"Unknown period {period!r}; use one of: {', '.join(DIGEST_PERIODS)}")
    return today - timedelta(days=DIGEST_PERIODS[period] - 1), today


@dataclass
class DigestReport:
    daily_name: str
    period: str
    stats: PeriodStats
    trends: list[MetricTrend]
    rankings: list[RankedUser]
    bottlenecks: list[WorkItem]
    drop_stats: list[DropStat]
    missing: list[int] = field(default_factory=list)
    names: dict[int, str] = field(default_factory=dict)

    def name_of(self, user_id: int) -> str:
        return self.names.get(user_id, str(user_id))


class DigestService:
    """Builds digests from the stores."""

    def __init__(
        self,
        config: StandupConfig,
        submission_db: SubmissionDB,
        work_item_db: WorkItemDB,
        participant_db: ParticipantDB,
        user_db: UserDB,
        ooo_db: OOODB,
    ) -> None:
        self._config = config
        self._submission_db = submission_db
        self._work_item_db = work_item_db
        self._participant_db = participant_db
        self._user_db = user_db
        self._ooo_db = ooo_db

    def _collect(self, daily: Daily, start: date, end: date, participant_count: int):
        schedule = self._config.get_schedule(daily.schedule)
        workdays = count_workdays(schedule.days if schedule else (), start, end)
        submissions = self._submission_db.get_submissions_in_range(
            daily.name, start.isoformat(), end.isoformat(),
        )
        items = self._work_item_db.get_items_in_range(
            daily.name, start.isoformat(), end.isoformat(),
        )
        stats = compute_period_stats(submissions, items, participant_count, workdays, start, end)
        return stats, submissions, items

    def build_digest(self, daily: Daily, period: str, today: date) -> DigestReport:
        start, end = period_range(period, today)
        participants = self._participant_db.get_participants(daily.name)
        user_ids = [p.user_id for p in participants]

        stats, submissions, items = self._collect(daily, start, end, len(user_ids))
        prev_start, prev_end = previous_period(start, end)
        prev_stats, _, _ = self._collect(daily, prev_start, prev_end, len(user_ids))

        user_stats = compute_user_stats(user_ids, submissions, items, stats.total_workdays)

        missing: list[int] = []
        if period == "daily":
            submitted = {s.user_id for s in submissions if s.date == today.isoformat()}
            missing = [
                uid for uid in user_ids
                if uid not in submitted
                and self._ooo_db.get_active_ooo(uid, daily.name, today) is None
            ]

        report = DigestReport(
            daily_name=daily.name,
            period=period,
            stats=stats,
            trends=compute_trends(stats, prev_stats),
            rankings=rank_users(user_stats),
            bottlenecks=get_bottlenecks(
                self._work_item_db, daily.name, daily.bottleneck_threshold, today,
            ),
            drop_stats=compute_drop_stats(items, daily.drop_rate_threshold),
            missing=missing,
            names=self._user_db.display_names(),
        )
        logger.info(
            "Built %s digest for '%s' (%s to %s): %d submissions",
            period, daily.name, start, end, stats.submissions,
        )
        return report


def format_digest(report: DigestReport, today: date | None = None) -> str:
    """Render a digest as plain text."""
    stats = report.stats
    title = _PERIOD_TITLES.get(report.period, "Digest")
    if stats.start == stats.end:
        span = stats.start.isoformat()
    else:
        span = f"{stats.start.isoformat()} to {stats.end.isoformat()}"

    lines = [f"{title}: {report.daily_name}", span, ""]

    submitters = sum(1 for r in report.rankings if r.stats.submissions > 0)
    lines.append("Summary")
    lines.append(
        f"{stats.submissions} submissions, "
        f"{submitters}/{stats.participant_count} team members, "
        f"{stats.total_workdays} workdays"
    )
    lines.append(
        f"Items: {stats.items_done} done, {stats.items_dropped} dropped, "
        f"{stats.items_carried} carried"
    )
    if stats.submissions_with_blockers:
        lines.append(f"Blockers reported: {stats.submissions_with_blockers}")

    lines.append("")
    lines.append("Trends vs previous period")
    for t in report.trends:
        sign = "+" if t.delta > 0 else ""
        lines.append(
            f"{_METRIC_LABELS[t.metric]}: {t.current}% ({sign}{t.delta}) {_TREND_MARKS[t.trend]}"
        )

    if report.missing:
        lines.append("")
        lines.append("Not yet submitted")
        lines.extend(f"- {report.name_of(uid)}" for uid in report.missing)

    if report.rankings:
        lines.append("")
        lines.append("Team Performance")
        for ranked in report.rankings:
            s = ranked.stats
            lines.append(
                f"{ranked.rank}. {report.name_of(s.user_id)}: {ranked.score} pts, "
                f"{s.submissions}/{stats.total_workdays} days, {s.items_done} done, "
                f"{s.completion_rate}% completion"
            )

    if report.bottlenecks:
        lines.append("")
        lines.append("Bottlenecks")
        for item in report.bottlenecks:
            age = f", {item.age_days(today)}d old" if today else ""
            lines.append(
                f"#{item.id} {item.text} ({report.name_of(item.user_id)}, "
                f"carried {item.carry_count}x{age})"
            )

    if report.drop_stats:
        lines.append("")
        lines.append("High drop rate")
        for drop in report.drop_stats:
            lines.append(
                f"{report.name_of(drop.user_id)}: {drop.dropped}/{drop.total} "
                f"dropped ({drop.drop_rate}%)"
            )

    return "\n".join(lines)
