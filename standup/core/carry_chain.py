"""
Standup Bot: Work-Item Carry Chain.

Every plan line becomes a work item. The next day's form shows the still
open lines again, and the user gives each one a disposition:

    done      -> item closed, completion date stamped
    continue  -> carry_count + 1, status "carried", shown again tomorrow
    drop      -> item closed for good, counted toward the drop rate

Unanswered items default to ``continue``. Carry never creates a new row:
the same row is updated and only its text reappears in the next pre-fill.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Mapping

if TYPE_CHECKING:
    from standup.data.db import WorkItemDB
    from standup.data.models import Submission

logger = logging.getLogger(__name__)


class Disposition(str, Enum):
    DONE = "done"
    CONTINUE = "continue"
    DROP = "drop"

    @classmethod
    def parse(cls, value: str | Disposition | None) -> Disposition:
        """Map a form value to a disposition.

        No answer means the item is still being worked on. This default is
        intentional; an unknown value is logged and treated the same way.
        """
        if value is None or value == "":
            return cls.CONTINUE
        if isinstance(value, Disposition):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            logger.warning("Unknown disposition %r, treating as continue", value)
            return cls.CONTINUE


@dataclass
class CarryResolution:
    """Pre-filled items split by disposition, in pre-fill order."""

    completed: list[str] = field(default_factory=list)
    continued: list[str] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)


def build_carry_chain(previous: Submission | None) -> list[str]:
    """Items to pre-fill from the previous submission.

    Still-open carried items come first (they are older), then the plans
    that were new that day. A text listed twice is one logical item and is
    kept at its first position.
    """
    if previous is None:
        return []

    chain: list[str] = []
    seen: set[str] = set()
    for text in previous.planned_items:
        if text in seen:
            continue
        seen.add(text)
        chain.append(text)
    return chain


def resolve_dispositions(
    prefilled: list[str],
    selections: Mapping[int, str | Disposition | None],
) -> CarryResolution:
    """Apply per-item selections (keyed by pre-fill index) to the pre-fill."""
    resolution = CarryResolution()
    for index, text in enumerate(prefilled):
        disposition = Disposition.parse(selections.get(index))
        if disposition is Disposition.DONE:
            resolution.completed.append(text)
        elif disposition is Disposition.DROP:
            resolution.dropped.append(text)
        else:
            resolution.continued.append(text)
    return resolution


def track_work_items(work_item_db: WorkItemDB, submission: Submission) -> bool:
    """Update work-item rows from a submission that went live.

    Best effort: work items only feed analytics, so a failure is logged and
    reported as False instead of failing the submission. Every step is
    idempotent, so tracking the same submission twice changes nothing.
    """
    user_id = submission.user_id
    daily_name = submission.daily_name
    day = submission.date

    try:
        done = work_item_db.mark_done(user_id, daily_name, submission.yesterday_completed, day)
        dropped = work_item_db.mark_dropped(user_id, daily_name, submission.yesterday_dropped)
        carried = work_item_db.increment_carry(
            user_id, daily_name, submission.yesterday_incomplete, day,
        )
        created = work_item_db.create_items(
            user_id, daily_name, submission.today_plans, day, submission.id,
        )
    except Exception as exc:
        logger.error(
            "Failed to track work items for %d '%s' %s: %s", user_id, daily_name, day, exc,
        )
        return False

    logger.info(
        "Work items for %d '%s' %s: %d done, %d dropped, %d carried, %d new",
        user_id, daily_name, day, done, dropped, carried, created,
    )
    return True
