"""Out-of-office filter.

Pure predicate over already-loaded records. The scheduled poster holds
updates through it; ``OOODB.get_active_ooo`` answers the same question in
SQL where only one date is checked.
"""

from __future__ import annotations

from datetime import date
from typing import Iterable

from standup.data.models import OOORecord


def is_out_of_office(
    records: Iterable[OOORecord],
    user_id: int,
    daily_name: str,
    on_date: date,
) -> bool:
    """True if any record excuses ``user_id`` from ``daily_name`` on ``on_date``.

    Both ends of a range are inclusive.
    """
    return any(
        r.user_id == user_id and r.daily_name == daily_name and r.covers(on_date)
        for r in records
    )
