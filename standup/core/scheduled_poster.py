"""
Standup Bot: Scheduled-Post Poster.

Tomorrow-mode submissions sit unposted until their date arrives and the
author's local clock passes their scheduled time. Each sweep walks every
unposted submission, posts the due ones to the daily's channel, and then
tracks their work items. One bad submission never stops the sweep.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import TYPE_CHECKING

from standup.core.localtime import LocalTime, NowProvider, parse_hhmm, utc_now
from standup.core.ooo import is_out_of_office

if TYPE_CHECKING:
    from standup.config import StandupConfig
    from standup.core.localtime import TimezoneResolver
    from standup.core.standup_service import StandupService
    from standup.data.db import OOODB, ParticipantDB, SubmissionDB
    from standup.data.models import Submission

logger = logging.getLogger(__name__)


class PostOutcome(str, Enum):
    POSTED = "posted"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class PostStats:
    """Tally of one scheduled-post sweep."""

    posted: int = 0
    skipped: int = 0
    errors: int = 0

    def record(self, outcome: PostOutcome) -> None:
        if outcome is PostOutcome.POSTED:
            self.posted += 1
        elif outcome is PostOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.errors += 1


def is_due(submission_date: date, scheduled_time: str, local: LocalTime) -> bool:
    """A submission is due once its date and local scheduled time have arrived.

    Anything dated before the author's local today is overdue and due now.
    """
    if submission_date < local.date:
        return True
    if submission_date > local.date:
        return False
    return local.minutes_of_day >= parse_hhmm(scheduled_time)


class ScheduledPoster:
    """Delivers pending scheduled submissions."""

    def __init__(
        self,
        config: StandupConfig,
        submission_db: SubmissionDB,
        participant_db: ParticipantDB,
        ooo_db: OOODB,
        timezones: TimezoneResolver,
        service: StandupService,
        now: NowProvider = utc_now,
    ) -> None:
        self._config = config
        self._submission_db = submission_db
        self._participant_db = participant_db
        self._ooo_db = ooo_db
        self._timezones = timezones
        self._service = service
        self._now = now

    def _scheduled_time(self, submission: Submission, schedule_name: str) -> str | None:
        participant = self._participant_db.get_participant(
            submission.user_id, submission.daily_name,
        )
        if participant is not None:
            if participant.time_override:
                return participant.time_override
            schedule_name = participant.schedule_name
        schedule = self._config.get_schedule(schedule_name)
        return schedule.default_time if schedule else None

    async def process(self, submission: Submission) -> PostOutcome:
        daily = self._config.get_daily(submission.daily_name)
        if daily is None:
            logger.warning(
                "Daily '%s' not found for scheduled submission %d",
                submission.daily_name, submission.id,
            )
            return PostOutcome.SKIPPED

        scheduled_time = self._scheduled_time(submission, daily.schedule)
        if scheduled_time is None:
            logger.warning("No schedule for scheduled submission %d", submission.id)
            return PostOutcome.SKIPPED

        now = self._now()
        try:
            local = await self._timezones.local_time(submission.user_id, now)
        except Exception as exc:
            logger.error("Timezone lookup failed for %d: %s", submission.user_id, exc)
            return PostOutcome.ERROR
        if local is None:
            return PostOutcome.ERROR

        submission_date = date.fromisoformat(submission.date)
        if not is_due(submission_date, scheduled_time, local):
            return PostOutcome.SKIPPED

        # Held while the author is away today, whatever date the update carries
        records = self._ooo_db.list_ooo(submission.user_id, submission.daily_name)
        if is_out_of_office(records, submission.user_id, submission.daily_name, local.date):
            logger.info(
                "Holding submission %d: user %d is out of office on %s",
                submission.id, submission.user_id, local.date,
            )
            return PostOutcome.SKIPPED

        try:
            await self._service.publish(submission, daily)
        except Exception as exc:
            logger.error("Failed to post scheduled submission %d: %s", submission.id, exc)
            return PostOutcome.ERROR

        logger.info(
            "Posted scheduled submission %d for %d '%s' %s",
            submission.id, submission.user_id, submission.daily_name, submission.date,
        )
        return PostOutcome.POSTED

    async def run_sweep(self) -> PostStats:
        """Process every unposted submission. Never raises."""
        stats = PostStats()
        try:
            pending = self._submission_db.get_unposted()
        except Exception as exc:
            logger.error("Scheduled-post sweep could not load submissions: %s", exc)
            return stats

        for submission in pending:
            try:
                outcome = await self.process(submission)
            except Exception as exc:
                logger.error("Error processing scheduled submission %d: %s", submission.id, exc)
                outcome = PostOutcome.ERROR
            stats.record(outcome)

        if pending:
            logger.info(
                "Scheduled-post sweep complete: %d posted, %d skipped, %d errors",
                stats.posted, stats.skipped, stats.errors,
            )
        return stats
