"""Engagement streaks over journal entry timestamps.

All functions are pure. Entry timestamps are naive local time (the models
convert aware values on the way in), and each counts on its calendar date.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, timedelta

from echojournal.journal.models import JournalEntry, to_local_naive

MILESTONES: tuple[int, ...] = (1, 3, 7, 10, 14, 21, 30, 50, 100)


def distinct_days(timestamps: Iterable[datetime]) -> list[date]:
    """Distinct calendar days, newest first."""
    return sorted({ts.date() for ts in timestamps}, reverse=True)


def current_streak(timestamps: Iterable[datetime], today: date | None = None) -> int:
    """Count consecutive journaling days ending today or yesterday.

    Returns 0 when the most recent entry day is neither today nor
    yesterday. Otherwise walks back from that day and stops at the
    first missing day.
    """
    days = distinct_days(timestamps)
    if not days:
        return 0

    today = today or date.today()
    latest = days[0]
    if latest != today and latest != today - timedelta(days=1):
        return 0

    streak = 1
    expected = latest - timedelta(days=1)
    for day in days[1:]:
        if day != expected:
            break
        streak += 1
        expected -= timedelta(days=1)
    return streak


def overall_highest_streak(entries: Iterable[JournalEntry]) -> int:
    """Highest streak carried on the most recently created entry."""
    latest = max(entries, key=lambda e: e.created_at, default=None)
    if latest is None:
        return 0
    return latest.highest_streak


def next_milestone(streak: int) -> int:
    """Smallest milestone strictly above ``streak``, capped at the last one."""
    for milestone in MILESTONES:
        if milestone > streak:
            return milestone
    return MILESTONES[-1]


def streaks_for_new_entry(
    prior_entries: list[JournalEntry],
    created_at: datetime,
    today: date | None = None,
) -> tuple[int, int]:
    """Return ``(current, highest)`` for an entry about to be created."""
    created_at = to_local_naive(created_at)
    timestamps = [e.created_at for e in prior_entries] + [created_at]
    current = current_streak(timestamps, today=today or created_at.date())
    highest = max(current, overall_highest_streak(prior_entries))
    return current, highest
