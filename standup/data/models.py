"""
Standup Bot: Data Models.

Rows persisted in SQLite. Dates are ISO strings (YYYY-MM-DD) and
timestamps are UTC ISO datetimes, matching what the stores write.
List columns are already normalized to ``list[str]`` by the store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

STATUS_PENDING = "pending"
STATUS_DONE = "done"
STATUS_DROPPED = "dropped"
STATUS_CARRIED = "carried"

OPEN_STATUSES = (STATUS_PENDING, STATUS_CARRIED)


@dataclass
class UserProfile:
    """A user who has talked to the bot."""

    user_id: int
    display_name: str
    timezone: str | None = None   # IANA name, e.g. "Asia/Jerusalem"
    created_at: str = ""


@dataclass
class Participant:
    """Who owes an update to which daily, and on what cadence."""

    id: int
    user_id: int
    daily_name: str
    schedule_name: str
    time_override: str | None = None  # HH:MM, None = schedule default
    created_at: str = ""


@dataclass
class Prompt:
    """Reminder bookkeeping for one (user, daily, date)."""

    id: int
    user_id: int
    daily_name: str
    date: str
    last_prompted_at: str | None = None
    submitted: bool = False


@dataclass
class Submission:
    """One structured standup update.

    ``posted`` is False for a "tomorrow mode" submission still waiting for
    its scheduled post time.
    """

    id: int
    user_id: int
    daily_name: str
    date: str
    yesterday_completed: list[str] = field(default_factory=list)
    yesterday_incomplete: list[str] = field(default_factory=list)
    yesterday_dropped: list[str] = field(default_factory=list)
    unplanned: list[str] = field(default_factory=list)
    today_plans: list[str] = field(default_factory=list)
    blockers: str = ""
    custom_answers: dict[str, str] = field(default_factory=dict)
    posted: bool = True
    message_id: str | None = None
    submitted_at: str = ""

    @property
    def planned_items(self) -> list[str]:
        """Everything the user committed to for this date, carried first."""
        return [*self.yesterday_incomplete, *self.today_plans]

    @property
    def has_blocker(self) -> bool:
        return bool(self.blockers and self.blockers.strip())


@dataclass
class WorkItem:
    """A single plan line tracked across days."""

    id: int
    user_id: int
    daily_name: str
    text: str
    status: str
    carry_count: int
    created_date: str
    completed_date: str | None = None
    snoozed_until: str | None = None
    last_carried_on: str | None = None
    submission_id: int | None = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def age_days(self, today: date) -> int:
        """Days since the item was first planned."""
        return (today - date.fromisoformat(self.created_date)).days


@dataclass
class OOORecord:
    """An out-of-office range, inclusive on both ends."""

    id: int
    user_id: int
    daily_name: str
    start_date: str
    end_date: str

    def covers(self, on_date: date) -> bool:
        return self.start_date <= on_date.isoformat() <= self.end_date
