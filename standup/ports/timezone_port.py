"""Timezone port: where a user's UTC offset comes from.

The engine only needs a number of seconds east of UTC; how a provider
knows it (a profile setting, a directory API) is its own business.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class TimezoneLookupError(Exception):
    """Raised when a provider cannot be reached or answers garbage."""


class TimezonePort(Protocol):
    """Abstract timezone directory used by core modules."""

    async def get_timezone_offset(self, user_id: int, at: datetime) -> int | None:
        """Offset in seconds for ``user_id`` at instant ``at``, or None if unknown."""
        ...
