"""
Standup Bot: Retention.

Prompt and submission rows older than the retention window are deleted by
a daily job. Work items are kept: bottleneck and trend reports need them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from standup.data.db import PromptDB, SubmissionDB

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 28


@dataclass
class PurgeResult:
    cutoff: date
    prompts: int = 0
    submissions: int = 0


def purge_expired(
    prompt_db: PromptDB,
    submission_db: SubmissionDB,
    today: date,
    retention_days: int = DEFAULT_RETENTION_DAYS,
) -> PurgeResult:
    """Delete prompts and submissions dated before ``today - retention_days``."""
    if retention_days < 1:
        raise ValueError("retention_days must be at least 1")

    cutoff = today - timedelta(days=retention_days)
    result = PurgeResult(cutoff=cutoff)
    result.prompts = prompt_db.delete_before(cutoff.isoformat())
    result.submissions = submission_db.delete_before(cutoff.isoformat())

    logger.info(
        "Retention purge before %s: %d prompts, %d submissions",
        cutoff, result.prompts, result.submissions,
    )
    return result
