"""Profile-backed timezone directory: implements TimezonePort.

Telegram does not expose a user's timezone, so users declare their IANA
zone with /timezone. Users who never did fall back to the configured
default zone.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from standup.ports.timezone_port import TimezoneLookupError

if TYPE_CHECKING:
    from standup.data.db import UserDB

logger = logging.getLogger(__name__)


def is_valid_timezone(tz_name: str) -> bool:
    """Check that ``tz_name`` names a zone in the IANA database."""
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


class ProfileTimezoneDirectory:
    """Resolves offsets from the zone stored on the user's profile."""

    def __init__(self, user_db: UserDB, default_timezone: str = "UTC") -> None:
        self._user_db = user_db
        self._default_timezone = default_timezone

    async def get_timezone_offset(self, user_id: int, at: datetime) -> int | None:
        try:
            user = self._user_db.get_user(user_id)
        except Exception as exc:
            raise TimezoneLookupError(f"profile lookup failed for {user_id}: {exc}") from exc

        tz_name = (user.timezone if user else None) or self._default_timezone
        try:
            tz = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone '%s' for user %d", tz_name, user_id)
            return None

        offset = at.astimezone(tz).utcoffset()
        if offset is None:
            return None
        return int(offset.total_seconds())
