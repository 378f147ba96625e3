"""
Standup Bot: SQLite storage.

One store class per table, all sharing the same database file. Writes keyed
by natural identity (user x daily x date) are upserts, so a job that runs
twice cannot duplicate a row.

JSON list/dict columns are normalized here and nowhere else: a legacy row
holding a malformed value reads back as an empty collection.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path

from standup.data.models import (
    OPEN_STATUSES,
    STATUS_CARRIED,
    STATUS_DONE,
    STATUS_DROPPED,
    STATUS_PENDING,
    OOORecord,
    Participant,
    Prompt,
    Submission,
    UserProfile,
    WorkItem,
)

logger = logging.getLogger(__name__)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_json_list(value: object) -> list[str]:
    """Normalize a stored list column (JSON text, list, or NULL)."""
    if value is None or value == "":
        return []
    if isinstance(value, list):
        return [str(v) for v in value]
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError):
        logger.warning("Malformed list column, treating as empty: %r", value)
        return []
    if not isinstance(parsed, list):
        return []
    return [str(v) for v in parsed]


def _parse_json_dict(value: object) -> dict[str, str]:
    if value is None or value == "":
        return {}
    if isinstance(value, dict):
        return {str(k): str(v) for k, v in value.items()}
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError):
        logger.warning("Malformed dict column, treating as empty: %r", value)
        return {}
    if not isinstance(parsed, dict):
        return {}
    return {str(k): str(v) for k, v in parsed.items()}


def _placeholders(values: list) -> str:
    return ", ".join("?" for _ in values)


class _SQLiteStore:
    """Connection handling shared by every store."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from standup.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        raise NotImplementedError

    @staticmethod
    def _existing_columns(conn: sqlite3.Connection, table: str) -> set[str]:
        return {row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}


# ---------------------------------------------------------------------------
# Users and timezone cache
# ---------------------------------------------------------------------------


class UserDB(_SQLiteStore):
    """Users who have talked to the bot, with their IANA timezone."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    user_id       INTEGER PRIMARY KEY,
                    display_name  TEXT NOT NULL,
                    timezone      TEXT,
                    created_at    TEXT NOT NULL
                )
            """)
        logger.debug("Users table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> UserProfile:
        return UserProfile(
            user_id=row["user_id"],
            display_name=row["display_name"],
            timezone=row["timezone"],
            created_at=row["created_at"],
        )

    def upsert_user(self, user_id: int, display_name: str) -> UserProfile:
        """Register a user, or refresh their display name."""
        now = _utc_now_iso()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO users (user_id, display_name, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT (user_id) DO UPDATE SET display_name = excluded.display_name
                """,
                (user_id, display_name, now),
            )
        return self.get_user(user_id)

    def get_user(self, user_id: int) -> UserProfile | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE user_id = ?", (user_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def set_timezone(self, user_id: int, tz_name: str) -> None:
        """Store a user's IANA timezone, creating the row if needed."""
        now = _utc_now_iso()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO users (user_id, display_name, timezone, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (user_id) DO UPDATE SET timezone = excluded.timezone
                """,
                (user_id, str(user_id), tz_name, now),
            )
        logger.info("Timezone for user %d set to %s", user_id, tz_name)

    def display_names(self) -> dict[int, str]:
        with self._connect() as conn:
            rows = conn.execute("SELECT user_id, display_name FROM users").fetchall()
        return {r["user_id"]: r["display_name"] for r in rows}


class TimezoneCacheDB(_SQLiteStore):
    """Last known UTC offset per user, with the time it was fetched."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS timezone_cache (
                    user_id         INTEGER PRIMARY KEY,
                    offset_seconds  INTEGER NOT NULL,
                    fetched_at      TEXT NOT NULL
                )
            """)

    def get(self, user_id: int) -> tuple[int, datetime] | None:
        """Return (offset_seconds, fetched_at) or None on a miss."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT offset_seconds, fetched_at FROM timezone_cache WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        return row["offset_seconds"], datetime.fromisoformat(row["fetched_at"])

    def put(self, user_id: int, offset_seconds: int, fetched_at: datetime) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO timezone_cache (user_id, offset_seconds, fetched_at)
                VALUES (?, ?, ?)
                ON CONFLICT (user_id) DO UPDATE SET
                    offset_seconds = excluded.offset_seconds,
                    fetched_at = excluded.fetched_at
                """,
                (user_id, offset_seconds, fetched_at.isoformat()),
            )

    def invalidate(self, user_id: int) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM timezone_cache WHERE user_id = ?", (user_id,))


# ---------------------------------------------------------------------------
# Participants
# ---------------------------------------------------------------------------


class ParticipantDB(_SQLiteStore):
    """Users assigned to dailies."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS participants (
                    id             INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id        INTEGER NOT NULL,
                    daily_name     TEXT    NOT NULL,
                    schedule_name  TEXT    NOT NULL,
                    time_override  TEXT,
                    created_at     TEXT    NOT NULL,
                    UNIQUE (user_id, daily_name)
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_participants_daily ON participants(daily_name)"
            )
        logger.debug("Participants table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_participant(row: sqlite3.Row) -> Participant:
        return Participant(
            id=row["id"],
            user_id=row["user_id"],
            daily_name=row["daily_name"],
            schedule_name=row["schedule_name"],
            time_override=row["time_override"],
            created_at=row["created_at"],
        )

    def add_participant(
        self,
        user_id: int,
        daily_name: str,
        schedule_name: str,
        time_override: str | None = None,
    ) -> Participant:
        """Add a user to a daily. Re-adding re-binds schedule and override."""
        now = _utc_now_iso()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO participants
                    (user_id, daily_name, schedule_name, time_override, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (user_id, daily_name) DO UPDATE SET
                    schedule_name = excluded.schedule_name,
                    time_override = excluded.time_override
                """,
                (user_id, daily_name, schedule_name, time_override, now),
            )
            row = conn.execute(
                "SELECT * FROM participants WHERE user_id = ? AND daily_name = ?",
                (user_id, daily_name),
            ).fetchone()
        logger.info("Participant %d added to '%s' (%s)", user_id, daily_name, schedule_name)
        return self._row_to_participant(row)

    def remove_participant(self, user_id: int, daily_name: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM participants WHERE user_id = ? AND daily_name = ?",
                (user_id, daily_name),
            )
        removed = cursor.rowcount > 0
        if removed:
            logger.info("Participant %d removed from '%s'", user_id, daily_name)
        return removed

    def get_participant(self, user_id: int, daily_name: str) -> Participant | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM participants WHERE user_id = ? AND daily_name = ?",
                (user_id, daily_name),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_participant(row)

    def get_participants(self, daily_name: str) -> list[Participant]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM participants WHERE daily_name = ? ORDER BY created_at, id",
                (daily_name,),
            ).fetchall()
        return [self._row_to_participant(r) for r in rows]

    def get_user_dailies(self, user_id: int) -> list[Participant]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM participants WHERE user_id = ? ORDER BY daily_name",
                (user_id,),
            ).fetchall()
        return [self._row_to_participant(r) for r in rows]

    def get_all_participants(self) -> list[Participant]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM participants ORDER BY daily_name, created_at, id"
            ).fetchall()
        return [self._row_to_participant(r) for r in rows]


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


class PromptDB(_SQLiteStore):
    """Per-day reminder status."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS prompts (
                    id                INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id           INTEGER NOT NULL,
                    daily_name        TEXT    NOT NULL,
                    date              TEXT    NOT NULL,
                    last_prompted_at  TEXT,
                    submitted         INTEGER NOT NULL DEFAULT 0,
                    UNIQUE (user_id, daily_name, date)
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_prompts_date ON prompts(date)")
        logger.debug("Prompts table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_prompt(row: sqlite3.Row) -> Prompt:
        return Prompt(
            id=row["id"],
            user_id=row["user_id"],
            daily_name=row["daily_name"],
            date=row["date"],
            last_prompted_at=row["last_prompted_at"],
            submitted=bool(row["submitted"]),
        )

    def get_or_create_prompt(self, user_id: int, daily_name: str, day: str) -> Prompt:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO prompts (user_id, daily_name, date) VALUES (?, ?, ?)
                ON CONFLICT (user_id, daily_name, date) DO NOTHING
                """,
                (user_id, daily_name, day),
            )
            row = conn.execute(
                "SELECT * FROM prompts WHERE user_id = ? AND daily_name = ? AND date = ?",
                (user_id, daily_name, day),
            ).fetchone()
        return self._row_to_prompt(row)

    def mark_prompted(
        self, user_id: int, daily_name: str, day: str, prompted_at: datetime,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO prompts (user_id, daily_name, date, last_prompted_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (user_id, daily_name, date) DO UPDATE SET
                    last_prompted_at = excluded.last_prompted_at
                """,
                (user_id, daily_name, day, prompted_at.isoformat()),
            )

    def mark_submitted(self, user_id: int, daily_name: str, day: str) -> None:
        """Flag the day as submitted; creates the row for future dates."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO prompts (user_id, daily_name, date, submitted)
                VALUES (?, ?, ?, 1)
                ON CONFLICT (user_id, daily_name, date) DO UPDATE SET submitted = 1
                """,
                (user_id, daily_name, day),
            )

    def delete_before(self, day: str) -> int:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM prompts WHERE date < ?", (day,))
        return cursor.rowcount


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------


class SubmissionDB(_SQLiteStore):
    """Structured standup updates, one per (user, daily, date)."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS submissions (
                    id                    INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id               INTEGER NOT NULL,
                    daily_name            TEXT    NOT NULL,
                    date                  TEXT    NOT NULL,
                    yesterday_completed   TEXT,
                    yesterday_incomplete  TEXT,
                    unplanned             TEXT,
                    today_plans           TEXT,
                    blockers              TEXT,
                    custom_answers        TEXT,
                    yesterday_dropped     TEXT,
                    posted                INTEGER NOT NULL DEFAULT 1,
                    message_id            TEXT,
                    submitted_at          TEXT    NOT NULL,
                    UNIQUE (user_id, daily_name, date)
                )
            """)
            # Migrate existing DBs: add new columns if missing
            existing_cols = self._existing_columns(conn, "submissions")
            if "posted" not in existing_cols:
                # Rows written before scheduled posting existed were all live
                conn.execute(
                    "ALTER TABLE submissions ADD COLUMN posted INTEGER NOT NULL DEFAULT 1"
                )
            if "yesterday_dropped" not in existing_cols:
                conn.execute("ALTER TABLE submissions ADD COLUMN yesterday_dropped TEXT")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_submissions_daily_date "
                "ON submissions(daily_name, date)"
            )
        logger.debug("Submissions table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_submission(row: sqlite3.Row) -> Submission:
        return Submission(
            id=row["id"],
            user_id=row["user_id"],
            daily_name=row["daily_name"],
            date=row["date"],
            yesterday_completed=_parse_json_list(row["yesterday_completed"]),
            yesterday_incomplete=_parse_json_list(row["yesterday_incomplete"]),
            yesterday_dropped=_parse_json_list(row["yesterday_dropped"]),
            unplanned=_parse_json_list(row["unplanned"]),
            today_plans=_parse_json_list(row["today_plans"]),
            blockers=row["blockers"] or "",
            custom_answers=_parse_json_dict(row["custom_answers"]),
            posted=bool(row["posted"]),
            message_id=row["message_id"],
            submitted_at=row["submitted_at"],
        )

    def save_submission(
        self,
        user_id: int,
        daily_name: str,
        day: str,
        yesterday_completed: list[str],
        yesterday_incomplete: list[str],
        yesterday_dropped: list[str],
        unplanned: list[str],
        today_plans: list[str],
        blockers: str,
        custom_answers: dict[str, str],
        posted: bool = True,
    ) -> Submission:
        """Insert or replace the (user, daily, date) submission."""
        now = _utc_now_iso()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO submissions (
                    user_id, daily_name, date,
                    yesterday_completed, yesterday_incomplete, yesterday_dropped,
                    unplanned, today_plans, blockers, custom_answers,
                    posted, submitted_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (user_id, daily_name, date) DO UPDATE SET
                    yesterday_completed = excluded.yesterday_completed,
                    yesterday_incomplete = excluded.yesterday_incomplete,
                    yesterday_dropped = excluded.yesterday_dropped,
                    unplanned = excluded.unplanned,
                    today_plans = excluded.today_plans,
                    blockers = excluded.blockers,
                    custom_answers = excluded.custom_answers,
                    posted = excluded.posted,
                    submitted_at = excluded.submitted_at
                """,
                (
                    user_id, daily_name, day,
                    json.dumps(yesterday_completed),
                    json.dumps(yesterday_incomplete),
                    json.dumps(yesterday_dropped),
                    json.dumps(unplanned),
                    json.dumps(today_plans),
                    blockers,
                    json.dumps(custom_answers),
                    int(posted),
                    now,
                ),
            )
            row = conn.execute(
                "SELECT * FROM submissions WHERE user_id = ? AND daily_name = ? AND date = ?",
                (user_id, daily_name, day),
            ).fetchone()
        logger.info(
            "Submission saved: user %d '%s' %s (posted=%s)", user_id, daily_name, day, posted,
        )
        return self._row_to_submission(row)

    def get_submission(self, user_id: int, daily_name: str, day: str) -> Submission | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM submissions WHERE user_id = ? AND daily_name = ? AND date = ?",
                (user_id, daily_name, day),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_submission(row)

    def get_previous_submission(
        self, user_id: int, daily_name: str, before: str,
    ) -> Submission | None:
        """Most recent submission strictly before ``before``, however old."""
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM submissions
                WHERE user_id = ? AND daily_name = ? AND date < ?
                ORDER BY date DESC
                LIMIT 1
                """,
                (user_id, daily_name, before),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_submission(row)

    def get_unposted(self) -> list[Submission]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM submissions WHERE posted = 0 ORDER BY date, id"
            ).fetchall()
        return [self._row_to_submission(r) for r in rows]

    def mark_posted(self, submission_id: int, message_id: str | None = None) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE submissions SET posted = 1, message_id = ? WHERE id = ?",
                (message_id, submission_id),
            )

    def mark_unposted(self, submission_id: int) -> None:
        with self._connect() as conn:
            conn.execute("UPDATE submissions SET posted = 0 WHERE id = ?", (submission_id,))

    def get_submissions_in_range(
        self, daily_name: str, start: str, end: str,
    ) -> list[Submission]:
        """Posted submissions with start <= date <= end."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM submissions
                WHERE daily_name = ? AND date >= ? AND date <= ? AND posted = 1
                ORDER BY date DESC, submitted_at ASC
                """,
                (daily_name, start, end),
            ).fetchall()
        return [self._row_to_submission(r) for r in rows]

    def delete_before(self, day: str) -> int:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM submissions WHERE date < ?", (day,))
        return cursor.rowcount


# ---------------------------------------------------------------------------
# Work items
# ---------------------------------------------------------------------------


class WorkItemDB(_SQLiteStore):
    """Individual plan lines and their carry state."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS work_items (
                    id              INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id         INTEGER NOT NULL,
                    daily_name      TEXT    NOT NULL,
                    text            TEXT    NOT NULL,
                    status          TEXT    NOT NULL DEFAULT 'pending',
                    carry_count     INTEGER NOT NULL DEFAULT 0,
                    created_date    TEXT    NOT NULL,
                    completed_date  TEXT,
                    snoozed_until   TEXT,
                    last_carried_on TEXT,
                    submission_id   INTEGER,
                    UNIQUE (user_id, daily_name, text, created_date)
                )
            """)
            existing_cols = self._existing_columns(conn, "work_items")
            if "snoozed_until" not in existing_cols:
                conn.execute("ALTER TABLE work_items ADD COLUMN snoozed_until TEXT")
            if "last_carried_on" not in existing_cols:
                conn.execute("ALTER TABLE work_items ADD COLUMN last_carried_on TEXT")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_work_items_lookup "
                "ON work_items(user_id, daily_name, status)"
            )
        logger.debug("Work items table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> WorkItem:
        return WorkItem(
            id=row["id"],
            user_id=row["user_id"],
            daily_name=row["daily_name"],
            text=row["text"],
            status=row["status"],
            carry_count=row["carry_count"],
            created_date=row["created_date"],
            completed_date=row["completed_date"],
            snoozed_until=row["snoozed_until"],
            last_carried_on=row["last_carried_on"],
            submission_id=row["submission_id"],
        )

    def create_items(
        self,
        user_id: int,
        daily_name: str,
        texts: list[str],
        day: str,
        submission_id: int | None = None,
    ) -> int:
        """Create pending rows for new plans. Returns how many were created.

        A text that already has an open row is the same logical item and is
        not duplicated.
        """
        open_statuses = list(OPEN_STATUSES)
        created = 0
        with self._connect() as conn:
            for text in texts:
                existing = conn.execute(
                    f"""
                    SELECT 1 FROM work_items
                    WHERE user_id = ? AND daily_name = ? AND text = ?
                      AND status IN ({_placeholders(open_statuses)})
                    """,
                    (user_id, daily_name, text, *open_statuses),
                ).fetchone()
                if existing is not None:
                    continue
                cursor = conn.execute(
                    """
                    INSERT INTO work_items
                        (user_id, daily_name, text, status, carry_count,
                         created_date, submission_id)
                    VALUES (?, ?, ?, ?, 0, ?, ?)
                    ON CONFLICT (user_id, daily_name, text, created_date) DO NOTHING
                    """,
                    (user_id, daily_name, text, STATUS_PENDING, day, submission_id),
                )
                created += cursor.rowcount
        return created

    def _resolve_open(
        self,
        user_id: int,
        daily_name: str,
        texts: list[str],
        set_clause: str,
        set_params: tuple,
    ) -> int:
        if not texts:
            return 0
        open_statuses = list(OPEN_STATUSES)
        with self._connect() as conn:
            cursor = conn.execute(
                f"""
                UPDATE work_items SET {set_clause}
                WHERE user_id = ? AND daily_name = ?
                  AND text IN ({_placeholders(texts)})
                  AND status IN ({_placeholders(open_statuses)})
                """,
                (*set_params, user_id, daily_name, *texts, *open_statuses),
            )
        return cursor.rowcount

    def mark_done(self, user_id: int, daily_name: str, texts: list[str], day: str) -> int:
        return self._resolve_open(
            user_id, daily_name, texts,
            "status = ?, completed_date = ?", (STATUS_DONE, day),
        )

    def mark_dropped(self, user_id: int, daily_name: str, texts: list[str]) -> int:
        return self._resolve_open(
            user_id, daily_name, texts, "status = ?", (STATUS_DROPPED,),
        )

    def increment_carry(
        self, user_id: int, daily_name: str, texts: list[str], day: str,
    ) -> int:
        """Count one more carried day, at most once per ``day``.

        Days older than the last counted one are ignored, so a late replay of
        an earlier update never counts twice.
        """
        if not texts:
            return 0
        open_statuses = list(OPEN_STATUSES)
        with self._connect() as conn:
            cursor = conn.execute(
                f"""
                UPDATE work_items
                SET carry_count = carry_count + 1, status = ?, last_carried_on = ?
                WHERE user_id = ? AND daily_name = ?
                  AND text IN ({_placeholders(texts)})
                  AND status IN ({_placeholders(open_statuses)})
                  AND (last_carried_on IS NULL OR last_carried_on < ?)
                """,
                (STATUS_CARRIED, day, user_id, daily_name, *texts, *open_statuses, day),
            )
        return cursor.rowcount

    def get_item(self, item_id: int) -> WorkItem | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM work_items WHERE id = ?", (item_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_item(row)

    def get_open_items(self, user_id: int, daily_name: str) -> list[WorkItem]:
        open_statuses = list(OPEN_STATUSES)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM work_items
                WHERE user_id = ? AND daily_name = ?
                  AND status IN ({_placeholders(open_statuses)})
                ORDER BY created_date, id
                """,
                (user_id, daily_name, *open_statuses),
            ).fetchall()
        return [self._row_to_item(r) for r in rows]

    def get_bottleneck_items(
        self, daily_name: str, threshold: int, today: str, limit: int,
    ) -> list[WorkItem]:
        """Open, un-snoozed items carried at least ``threshold`` times."""
        open_statuses = list(OPEN_STATUSES)
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM work_items
                WHERE daily_name = ?
                  AND carry_count >= ?
                  AND status IN ({_placeholders(open_statuses)})
                  AND (snoozed_until IS NULL OR snoozed_until < ?)
                ORDER BY carry_count DESC, created_date ASC, id ASC
                LIMIT ?
                """,
                (daily_name, threshold, *open_statuses, today, limit),
            ).fetchall()
        return [self._row_to_item(r) for r in rows]

    def snooze(self, item_id: int, until: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE work_items SET snoozed_until = ? WHERE id = ?", (until, item_id),
            )
        return cursor.rowcount > 0

    def get_items_in_range(self, daily_name: str, start: str, end: str) -> list[WorkItem]:
        """Items created with start <= created_date <= end."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM work_items
                WHERE daily_name = ? AND created_date >= ? AND created_date <= ?
                ORDER BY created_date, id
                """,
                (daily_name, start, end),
            ).fetchall()
        return [self._row_to_item(r) for r in rows]


# ---------------------------------------------------------------------------
# Out of office
# ---------------------------------------------------------------------------


class OOODB(_SQLiteStore):
    """Out-of-office ranges."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS ooo (
                    id          INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id     INTEGER NOT NULL,
                    daily_name  TEXT    NOT NULL,
                    start_date  TEXT    NOT NULL,
                    end_date    TEXT    NOT NULL,
                    created_at  TEXT    NOT NULL,
                    UNIQUE (user_id, daily_name, start_date, end_date)
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_ooo_lookup "
                "ON ooo(user_id, daily_name, start_date, end_date)"
            )

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> OOORecord:
        return OOORecord(
            id=row["id"],
            user_id=row["user_id"],
            daily_name=row["daily_name"],
            start_date=row["start_date"],
            end_date=row["end_date"],
        )

    def add_ooo(self, user_id: int, daily_name: str, start: str, end: str) -> OOORecord:
        if end < start:
            raise ValueError(f"OOO end {end} is before start {start}")
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO ooo (user_id, daily_name, start_date, end_date, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (user_id, daily_name, start_date, end_date) DO NOTHING
                """,
                (user_id, daily_name, start, end, _utc_now_iso()),
            )
            row = conn.execute(
                """
                SELECT * FROM ooo
                WHERE user_id = ? AND daily_name = ? AND start_date = ? AND end_date = ?
                """,
                (user_id, daily_name, start, end),
            ).fetchone()
        logger.info("OOO set for user %d '%s': %s..%s", user_id, daily_name, start, end)
        return self._row_to_record(row)

    def get_active_ooo(self, user_id: int, daily_name: str, on_date: date) -> OOORecord | None:
        """The record covering ``on_date`` (inclusive), if any."""
        day = on_date.isoformat()
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM ooo
                WHERE user_id = ? AND daily_name = ? AND start_date <= ? AND end_date >= ?
                ORDER BY start_date
                LIMIT 1
                """,
                (user_id, daily_name, day, day),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    def list_ooo(self, user_id: int, daily_name: str) -> list[OOORecord]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM ooo WHERE user_id = ? AND daily_name = ? ORDER BY start_date",
                (user_id, daily_name),
            ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def clear_ooo(self, user_id: int, daily_name: str, from_date: date) -> int:
        """Drop every range that has not ended before ``from_date``."""
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM ooo WHERE user_id = ? AND daily_name = ? AND end_date >= ?",
                (user_id, daily_name, from_date.isoformat()),
            )
        return cursor.rowcount
