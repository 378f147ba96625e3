"""
Standup Bot: Prompt Scheduler.

Runs every sweep interval over all participants and decides, for each one
independently, whether now is the moment to DM a standup reminder:

- only on the schedule's workdays, in the user's own timezone;
- never while the user is out of office;
- only inside the prompt window [scheduled time, scheduled time + 2h];
- never after the day's update was submitted;
- at most once per 30 minutes.

Failures stay inside one participant. A failed timezone lookup or send is
reported as ERROR and simply retried on the next sweep; nothing about the
failure is persisted.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from standup.core.localtime import LocalTime, NowProvider, parse_hhmm, utc_now
from standup.core.messages import reminder_text

if TYPE_CHECKING:
    from standup.config import StandupConfig
    from standup.core.localtime import TimezoneResolver
    from standup.data.db import OOODB, ParticipantDB, PromptDB
    from standup.data.models import Participant
    from standup.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

# Prompts may be sent from the scheduled time until this many minutes after
PROMPT_WINDOW_MINUTES = 120

# Minimum gap between two reminders for the same day
REPROMPT_INTERVAL_MINUTES = 30


class PromptOutcome(str, Enum):
    PROMPTED = "prompted"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class SweepStats:
    """Tally of one reminder sweep."""

    prompted: int = 0
    skipped: int = 0
    errors: int = 0

    def record(self, outcome: PromptOutcome) -> None:
        if outcome is PromptOutcome.PROMPTED:
            self.prompted += 1
        elif outcome is PromptOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.errors += 1


# ---------------------------------------------------------------------------
# Pure decision helpers
# ---------------------------------------------------------------------------


def is_workday(schedule_days: tuple[str, ...] | list[str], local: LocalTime) -> bool:
    """Check the local date's weekday code against the schedule's days."""
    return local.weekday_code in {d.lower() for d in schedule_days}


def is_within_prompt_window(schedule_time: str, local: LocalTime) -> bool:
    """True from ``schedule_time`` through ``schedule_time + 120min``, inclusive."""
    window_start = parse_hhmm(schedule_time)
    window_end = window_start + PROMPT_WINDOW_MINUTES
    return window_start <= local.minutes_of_day <= window_end


def should_reprompt(last_prompted_at: str | None, now: datetime) -> bool:
    """True if the user was never prompted or the last prompt is old enough."""
    if not last_prompted_at:
        return True
    elapsed = now - datetime.fromisoformat(last_prompted_at)
    return elapsed >= timedelta(minutes=REPROMPT_INTERVAL_MINUTES)


def minutes_late(schedule_time: str, local: LocalTime) -> int:
    return max(0, local.minutes_of_day - parse_hhmm(schedule_time))


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class PromptScheduler:
    """Evaluates participants against the schedule and sends reminders."""

    def __init__(
        self,
        config: StandupConfig,
        participant_db: ParticipantDB,
        prompt_db: PromptDB,
        ooo_db: OOODB,
        timezones: TimezoneResolver,
        notifier: NotificationPort,
        now: NowProvider = utc_now,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config
        self._participant_db = participant_db
        self._prompt_db = prompt_db
        self._ooo_db = ooo_db
        self._timezones = timezones
        self._notifier = notifier
        self._now = now
        self._rng = rng

    async def evaluate(self, participant: Participant, force: bool = False) -> PromptOutcome:
        """Decide and, if due, send one participant's reminder.

        Args:
            participant: The (user, daily) binding to evaluate.
            force: Manual-testing override. Skips the workday, OOO, window
                and throttle checks, and falls back to UTC when the
                timezone cannot be resolved.
        """
        user_id = participant.user_id
        daily_name = participant.daily_name

        # 1. Config lookups: stale participants are skipped, not errors
        schedule = self._config.get_schedule(participant.schedule_name)
        if schedule is None:
            logger.warning(
                "Schedule '%s' not found for participant %d", participant.schedule_name, user_id,
            )
            return PromptOutcome.SKIPPED
        if self._config.get_daily(daily_name) is None:
            logger.warning("Daily '%s' not found for participant %d", daily_name, user_id)
            return PromptOutcome.SKIPPED

        # 2. Local date/time
        now = self._now()
        try:
            offset = await self._timezones.get_offset(user_id, now)
        except Exception as exc:
            logger.error("Timezone lookup failed for %d: %s", user_id, exc)
            offset = None
        if offset is None:
            if not force:
                return PromptOutcome.ERROR
            offset = 0
        local = LocalTime.from_datetime(now, offset)
        today = local.date
        today_str = today.isoformat()

        prompt_time = participant.time_override or schedule.default_time

        if not force:
            # 3. Workday
            if not is_workday(schedule.days, local):
                logger.debug("Skipping %d: %s is not a workday", user_id, local.weekday_code)
                return PromptOutcome.SKIPPED

            # 4. Out of office
            if self._ooo_db.get_active_ooo(user_id, daily_name, today) is not None:
                logger.info("Skipping %d: out of office on %s", user_id, today_str)
                return PromptOutcome.SKIPPED

            # 5. Prompt window
            if not is_within_prompt_window(prompt_time, local):
                logger.debug(
                    "Skipping %d: outside prompt window (schedule %s, local %s)",
                    user_id, prompt_time, local.wall_clock.strftime("%H:%M"),
                )
                return PromptOutcome.SKIPPED

        # 6. Today's prompt row
        prompt = self._prompt_db.get_or_create_prompt(user_id, daily_name, today_str)
        if prompt.submitted:
            logger.debug("Skipping %d: already submitted for %s", user_id, today_str)
            return PromptOutcome.SKIPPED

        # 7. Reprompt throttle
        if not force and not should_reprompt(prompt.last_prompted_at, now):
            logger.debug("Skipping %d: prompted recently", user_id)
            return PromptOutcome.SKIPPED

        # 8. Send
        late = minutes_late(prompt_time, local)
        text = reminder_text(daily_name, late, self._rng)
        try:
            await self._notifier.send_message(user_id, text)
        except Exception as exc:
            logger.error("Failed to send reminder to %d: %s", user_id, exc)
            return PromptOutcome.ERROR

        self._prompt_db.mark_prompted(user_id, daily_name, today_str, now)
        logger.info("Prompted %d for '%s' (%d min late)", user_id, daily_name, late)
        return PromptOutcome.PROMPTED

    async def run_sweep(self, force: bool = False) -> SweepStats:
        """Evaluate every participant. Never raises."""
        stats = SweepStats()
        try:
            participants = self._participant_db.get_all_participants()
        except Exception as exc:
            logger.error("Prompt sweep could not load participants: %s", exc)
            return stats

        logger.info("Checking %d participants for prompting (force=%s)", len(participants), force)
        for participant in participants:
            try:
                outcome = await self.evaluate(participant, force=force)
            except Exception as exc:
                logger.error(
                    "Error processing participant %d for '%s': %s",
                    participant.user_id, participant.daily_name, exc,
                )
                outcome = PromptOutcome.ERROR
            stats.record(outcome)

        logger.info(
            "Prompt sweep complete: %d prompted, %d skipped, %d errors",
            stats.prompted, stats.skipped, stats.errors,
        )
        return stats
