"""
Standup Bot: Centralized configuration.

Two layers:

- ``settings``: process settings loaded from .env / the environment.
- ``StandupConfig``: the dailies and schedules document. It is validated
  once at startup by ``load_standup_config`` and handed to the engine as an
  immutable object.
"""

from __future__ import annotations

import json
import os
import re
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

# Load .env from project root (one level up from standup/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

WEEKDAY_CODES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")
_HHMM_RE = re.compile(r"^\d{2}:\d{2}$")


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # SQLite
    DATABASE_PATH: str = "data/standup.db"

    # Dailies / schedules document
    STANDUP_CONFIG_PATH: str = "config.json"

    # Fallback zone for users who never ran /timezone
    TIMEZONE: str = "UTC"

    # Digest job hour (UTC)
    DIGEST_HOUR: int = 14

    # Prompt/submission retention
    RETENTION_DAYS: int = 28

    # Reminder and scheduled-post sweep cadence
    SWEEP_INTERVAL_MINUTES: int = 30

    @field_validator("DIGEST_HOUR", "RETENTION_DAYS", "SWEEP_INTERVAL_MINUTES", mode="before")
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/standup.db"),
        STANDUP_CONFIG_PATH=os.getenv("STANDUP_CONFIG_PATH", "config.json"),
        TIMEZONE=os.getenv("TIMEZONE", "UTC"),
        DIGEST_HOUR=os.getenv("DIGEST_HOUR", "14"),
        RETENTION_DAYS=os.getenv("RETENTION_DAYS", "28"),
        SWEEP_INTERVAL_MINUTES=os.getenv("SWEEP_INTERVAL_MINUTES", "30"),
    )


# Singleton, imported by other modules as:
#   from standup.config import settings
settings = _load_settings()


# ---------------------------------------------------------------------------
# Dailies / schedules
# ---------------------------------------------------------------------------


class ConfigError(Exception):
    """Raised when the dailies/schedules document cannot be loaded."""


def _check_hhmm(value: str) -> str:
    if not _HHMM_RE.match(value):
        raise ValueError("must be in HH:MM format")
    hour, minute = map(int, value.split(":"))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"hour/minute out of range: {value}")
    return value


def _check_day(value: str) -> str:
    day = value.strip().lower()
    if day not in WEEKDAY_CODES:
        raise ValueError(f"must be one of: {', '.join(WEEKDAY_CODES)}")
    return day


class Question(BaseModel):
    """A custom question appended to a daily's form."""

    model_config = ConfigDict(frozen=True)

    text: str
    required: bool = False

    @field_validator("text")
    @classmethod
    def non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("question text cannot be empty")
        return v


class Schedule(BaseModel):
    """Named weekday set + default local prompt time."""

    model_config = ConfigDict(frozen=True)

    name: str
    days: tuple[str, ...]
    default_time: str

    @field_validator("days", mode="before")
    @classmethod
    def parse_days(cls, v: list[str] | tuple[str, ...]) -> tuple[str, ...]:
        days = tuple(_check_day(d) for d in v)
        if not days:
            raise ValueError("schedule must have at least one day")
        return days

    @field_validator("default_time")
    @classmethod
    def parse_time(cls, v: str) -> str:
        return _check_hhmm(v)


class Daily(BaseModel):
    """A configured standup: where it posts, on which schedule, who reads it."""

    model_config = ConfigDict(frozen=True)

    name: str
    channel: str
    schedule: str
    managers: tuple[int, ...] = ()
    weekly_digest_day: str = "fri"
    bottleneck_threshold: int = 3
    drop_rate_threshold: int = 30
    questions: tuple[Question, ...] = ()

    @field_validator("channel", mode="before")
    @classmethod
    def parse_channel(cls, v: str | int) -> str:
        v = str(v).strip()
        if not v:
            raise ValueError("channel cannot be empty")
        return v

    @field_validator("weekly_digest_day")
    @classmethod
    def parse_digest_day(cls, v: str) -> str:
        return _check_day(v)

    @field_validator("bottleneck_threshold")
    @classmethod
    def parse_threshold(cls, v: int) -> int:
        if v < 1:
            raise ValueError("bottleneck_threshold must be at least 1")
        return v


class StandupConfig(BaseModel):
    """Immutable, validated dailies/schedules document."""

    model_config = ConfigDict(frozen=True)

    dailies: tuple[Daily, ...]
    schedules: tuple[Schedule, ...]
    admins: tuple[int, ...] = ()

    @model_validator(mode="after")
    def check_references(self) -> StandupConfig:
        names = {s.name for s in self.schedules}
        for daily in self.dailies:
            if daily.schedule not in names:
                raise ValueError(
                    f'Daily "{daily.name}" references unknown schedule "{daily.schedule}"'
                )
        return self

    def get_daily(self, name: str) -> Daily | None:
        for daily in self.dailies:
            if daily.name == name:
                return daily
        return None

    def get_schedule(self, name: str) -> Schedule | None:
        for schedule in self.schedules:
            if schedule.name == name:
                return schedule
        return None

    def is_admin(self, user_id: int) -> bool:
        return user_id in self.admins


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        path = ".".join(str(p) for p in err["loc"])
        parts.append(f"{path}: {err['msg']}" if path else err["msg"])
    return "; ".join(parts)


def parse_standup_config(raw: dict) -> StandupConfig:
    """Validate an already-decoded config document."""
    try:
        return StandupConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(_format_validation_error(exc)) from exc


def load_standup_config(path: str | None = None) -> StandupConfig:
    """Read and validate the dailies/schedules JSON file.

    Raises ConfigError on a missing file, malformed JSON or invalid content.
    """
    if path is None:
        path = settings.STANDUP_CONFIG_PATH

    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file is not valid JSON: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError("Config root must be an object")
    return parse_standup_config(raw)
