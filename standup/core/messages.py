"""Reminder message text.

Kept apart from the scheduler: the choice of wording is cosmetic and takes
an injected random source so tests get deterministic output.
"""

from __future__ import annotations

import random

ON_TIME_TEMPLATES = (
    "Time for your {daily} standup! Send /standup {daily} to fill it in.",
    "Good morning! Your {daily} standup is waiting: /standup {daily}",
    "Hey! It's standup time for {daily}. Reply with /standup {daily}.",
)

LATE_TEMPLATES = (
    "You're {minutes} minutes late for your {daily} standup. /standup {daily}",
    "Friendly nudge: {daily} standup started {minutes} minutes ago. /standup {daily}",
    "Still waiting on your {daily} update ({minutes} min late). /standup {daily}",
)

# Below this many minutes a reminder still reads as on time
LATE_THRESHOLD_MINUTES = 5


def reminder_text(
    daily_name: str,
    minutes_late: int,
    rng: random.Random | None = None,
) -> str:
    """Pick a reminder wording for ``daily_name``.

    Args:
        daily_name: The daily being prompted.
        minutes_late: Local minutes past the scheduled time (0 if on time).
        rng: Random source; an unseeded generator when omitted.
    """
    if rng is None:
        rng = random.Random()

    if minutes_late >= LATE_THRESHOLD_MINUTES:
        template = rng.choice(LATE_TEMPLATES)
    else:
        template = rng.choice(ON_TIME_TEMPLATES)
    return template.format(daily=daily_name, minutes=minutes_late)
