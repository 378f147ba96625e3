"""Tests for standup.core.messages."""

import random

from standup.core.messages import LATE_TEMPLATES, ON_TIME_TEMPLATES, reminder_text


def _expected(templates, rng_seed, **fmt):
    return random.Random(rng_seed).choice(templates).format(**fmt)


def test_on_time_wording():
    text = reminder_text("daily-il", 0, rng=random.Random(3))
    assert text == _expected(ON_TIME_TEMPLATES, 3, daily="daily-il", minutes=0)
    assert "/standup daily-il" in text


def test_just_under_threshold_is_on_time():
    text = reminder_text("daily-il", 4, rng=random.Random(3))
    assert text == _expected(ON_TIME_TEMPLATES, 3, daily="daily-il", minutes=4)


def test_late_wording_mentions_minutes():
    text = reminder_text("daily-il", 35, rng=random.Random(7))
    assert text == _expected(LATE_TEMPLATES, 7, daily="daily-il", minutes=35)
    assert "35" in text


def test_without_rng():
    text = reminder_text("daily-il", 10)
    assert text in {t.format(daily="daily-il", minutes=10) for t in LATE_TEMPLATES}
