"""
Standup Bot: Submission flow.

Opening a form: pick today or tomorrow mode and build the pre-fill.
Submitting: save the update, mark the day's prompt submitted, and for a
live (today) update track work items and post it to the daily's channel.
A tomorrow-mode update is saved unposted; the scheduled poster delivers it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from standup.core.carry_chain import (
    Disposition,
    build_carry_chain,
    resolve_dispositions,
    track_work_items,
)

if TYPE_CHECKING:
    from standup.config import Daily
    from standup.data.db import PromptDB, SubmissionDB, UserDB, WorkItemDB
    from standup.data.models import Submission
    from standup.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


class StandupMode(str, Enum):
    TODAY = "today"
    TOMORROW = "tomorrow"


@dataclass
class StandupForm:
    """What the conversation needs to open a form."""

    daily_name: str
    mode: StandupMode
    target_date: date
    prefilled: list[str]
    existing: Submission | None = None


@dataclass
class StandupDraft:
    """A filled-in form, before it is saved."""

    user_id: int
    daily_name: str
    target_date: date
    mode: StandupMode
    prefilled: list[str] = field(default_factory=list)
    selections: dict[int, str] = field(default_factory=dict)
    unplanned: list[str] = field(default_factory=list)
    today_plans: list[str] = field(default_factory=list)
    blockers: str = ""
    custom_answers: dict[str, str] = field(default_factory=dict)


def parse_lines(text: str | None) -> list[str]:
    """Split free text into trimmed, non-empty lines."""
    if not text:
        return []
    return [line.strip() for line in text.splitlines() if line.strip()]


def format_submission(submission: Submission, author: str) -> str:
    """Plain-text channel post for a submission."""
    lines = [f"{author} - {submission.daily_name} standup ({submission.date})"]

    yesterday = [f"[x] {item}" for item in submission.yesterday_completed]
    yesterday += [f"[x] {item} (unplanned)" for item in submission.unplanned]
    if yesterday:
        lines.append("")
        lines.append("Yesterday:")
        lines.extend(yesterday)

    today = [f"[ ] {item} (carried over)" for item in submission.yesterday_incomplete]
    today += [f"[ ] {item}" for item in submission.today_plans]
    if today:
        lines.append("")
        lines.append("Today:")
        lines.extend(today)

    if submission.has_blocker:
        lines.append("")
        lines.append("Blockers:")
        lines.append(submission.blockers.strip())

    for question, answer in submission.custom_answers.items():
        if answer and answer.strip():
            lines.append("")
            lines.append(question)
            lines.append(answer.strip())

    return "\n".join(lines)


class StandupService:
    """Opens, saves and publishes standup submissions."""

    def __init__(
        self,
        submission_db: SubmissionDB,
        prompt_db: PromptDB,
        work_item_db: WorkItemDB,
        user_db: UserDB,
        notifier: NotificationPort,
    ) -> None:
        self._submission_db = submission_db
        self._prompt_db = prompt_db
        self._work_item_db = work_item_db
        self._user_db = user_db
        self._notifier = notifier

    def open_form(self, user_id: int, daily_name: str, today: date) -> StandupForm:
        """Build the form for the user's next standup.

        Today's update already exists -> tomorrow mode, pre-filled from
        today's update. Otherwise today mode, pre-filled from the most
        recent earlier update however old it is.
        """
        today_str = today.isoformat()
        todays = self._submission_db.get_submission(user_id, daily_name, today_str)

        if todays is None:
            previous = self._submission_db.get_previous_submission(user_id, daily_name, today_str)
            if previous is not None and not previous.posted:
                # Overdue but still held; its plans must exist before they carry
                logger.info(
                    "Tracking held submission %d before pre-filling %s", previous.id, today_str,
                )
                track_work_items(self._work_item_db, previous)
            return StandupForm(
                daily_name=daily_name,
                mode=StandupMode.TODAY,
                target_date=today,
                prefilled=build_carry_chain(previous),
            )

        tomorrow = today + timedelta(days=1)
        existing = self._submission_db.get_submission(user_id, daily_name, tomorrow.isoformat())
        return StandupForm(
            daily_name=daily_name,
            mode=StandupMode.TOMORROW,
            target_date=tomorrow,
            prefilled=build_carry_chain(todays),
            existing=existing,
        )

    def start_draft(self, user_id: int, form: StandupForm) -> StandupDraft:
        """A draft for ``form``, seeded from the stored update when editing one."""
        draft = StandupDraft(
            user_id=user_id,
            daily_name=form.daily_name,
            target_date=form.target_date,
            mode=form.mode,
            prefilled=list(form.prefilled),
        )
        existing = form.existing
        if existing is None:
            return draft

        completed = set(existing.yesterday_completed)
        dropped = set(existing.yesterday_dropped)
        for index, text in enumerate(draft.prefilled):
            if text in completed:
                draft.selections[index] = Disposition.DONE.value
            elif text in dropped:
                draft.selections[index] = Disposition.DROP.value
        draft.unplanned = list(existing.unplanned)
        draft.today_plans = list(existing.today_plans)
        draft.blockers = existing.blockers
        draft.custom_answers = dict(existing.custom_answers)
        return draft

    def _author(self, user_id: int) -> str:
        user = self._user_db.get_user(user_id)
        return user.display_name if user else str(user_id)

    async def submit(self, draft: StandupDraft, daily: Daily) -> Submission:
        """Save a draft; a today-mode draft is also tracked and posted."""
        resolution = resolve_dispositions(draft.prefilled, draft.selections)
        is_live = draft.mode is StandupMode.TODAY
        day = draft.target_date.isoformat()

        submission = self._submission_db.save_submission(
            user_id=draft.user_id,
            daily_name=draft.daily_name,
            day=day,
            yesterday_completed=resolution.completed,
            yesterday_incomplete=resolution.continued,
            yesterday_dropped=resolution.dropped,
            unplanned=draft.unplanned,
            today_plans=draft.today_plans,
            blockers=draft.blockers,
            custom_answers=draft.custom_answers,
            posted=is_live,
        )
        self._prompt_db.mark_submitted(draft.user_id, draft.daily_name, day)

        if not is_live:
            logger.info(
                "Scheduled %d '%s' for %s", draft.user_id, draft.daily_name, day,
            )
            return submission

        track_work_items(self._work_item_db, submission)
        try:
            message_id = await self._notifier.send_message(
                daily.channel, format_submission(submission, self._author(draft.user_id)),
            )
        except Exception as exc:
            # Leave it for the scheduled poster to retry
            logger.error("Failed to post standup %d to %s: %s", submission.id, daily.channel, exc)
            self._submission_db.mark_unposted(submission.id)
            submission.posted = False
            return submission

        self._submission_db.mark_posted(submission.id, message_id)
        submission.message_id = message_id
        return submission

    async def publish(self, submission: Submission, daily: Daily) -> str | None:
        """Post a scheduled submission, mark it posted, then track its items.

        Send failures propagate so the caller can count them.
        """
        message_id = await self._notifier.send_message(
            daily.channel, format_submission(submission, self._author(submission.user_id)),
        )
        self._submission_db.mark_posted(submission.id, message_id)
        track_work_items(self._work_item_db, submission)
        return message_id
