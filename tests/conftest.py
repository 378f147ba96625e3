"""Shared test fixtures and configuration.

Sets up fake environment variables so standup.config doesn't sys.exit(),
and provides temp-file SQLite stores and a small dailies config.
"""

import os

# Patch env vars BEFORE any standup imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "UTC")

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

ADMIN_ID = 900
MANAGER_ID = 901

CONFIG_DICT = {
    "admins": [ADMIN_ID],
    "schedules": [
        {"name": "il-week", "days": ["sun", "mon", "tue", "wed", "thu"], "default_time": "09:00"},
    ],
    "dailies": [
        {
            "name": "daily-il",
            "channel": "-100123",
            "schedule": "il-week",
            "managers": [MANAGER_ID],
            "weekly_digest_day": "thu",
        },
    ],
}


class FakeClock:
    """Mutable ``now`` provider for the sweeps."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def db_path(tmp_path):
    """Return a temporary SQLite DB path shared by every store."""
    return str(tmp_path / "standup.db")


@pytest.fixture
def user_db(db_path):
    from standup.data.db import UserDB
    return UserDB(db_path=db_path)


@pytest.fixture
def timezone_cache(db_path):
    from standup.data.db import TimezoneCacheDB
    return TimezoneCacheDB(db_path=db_path)


@pytest.fixture
def participant_db(db_path):
    from standup.data.db import ParticipantDB
    return ParticipantDB(db_path=db_path)


@pytest.fixture
def prompt_db(db_path):
    from standup.data.db import PromptDB
    return PromptDB(db_path=db_path)


@pytest.fixture
def submission_db(db_path):
    from standup.data.db import SubmissionDB
    return SubmissionDB(db_path=db_path)


@pytest.fixture
def work_item_db(db_path):
    from standup.data.db import WorkItemDB
    return WorkItemDB(db_path=db_path)


@pytest.fixture
def ooo_db(db_path):
    from standup.data.db import OOODB
    return OOODB(db_path=db_path)


@pytest.fixture
def standup_config():
    from standup.config import parse_standup_config
    return parse_standup_config(CONFIG_DICT)


@pytest.fixture
def notifier():
    """A NotificationPort double whose sends succeed."""
    mock = AsyncMock()
    mock.send_message = AsyncMock(return_value="42")
    return mock


def fixed_offset_timezones(offset_seconds: int | None):
    """A TimezoneResolver double that always answers ``offset_seconds``."""
    from standup.core.localtime import LocalTime

    resolver = AsyncMock()
    resolver.get_offset = AsyncMock(return_value=offset_seconds)

    async def _local_time(user_id, now):
        if offset_seconds is None:
            return None
        return LocalTime.from_datetime(now, offset_seconds)

    resolver.local_time = AsyncMock(side_effect=_local_time)
    return resolver
