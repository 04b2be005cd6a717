"""Aggregate insights across journal entries."""

from __future__ import annotations

from collections import Counter
from datetime import date, datetime, timedelta
from uuid import UUID

from pydantic import BaseModel, Field

from echojournal.journal.models import (
    FeelingCategory,
    IdentifiedFeeling,
    JournalEntry,
    overall_feeling,
)
from echojournal.journal.store import JournalStore


class JournalInsights(BaseModel):
    """Weekly activity plus the most frequent feelings and tags."""

    weekly_entry_count: int = 0
    top_feelings: list[FeelingCategory] = Field(default_factory=list)
    common_tags: list[str] = Field(default_factory=list)


def compute_insights(
    entries: list[JournalEntry],
    feelings_by_entry: dict[UUID, list[IdentifiedFeeling]],
    *,
    now: datetime | None = None,
    top_feelings: int = 3,
    top_tags: int = 7,
) -> JournalInsights:
    """Summarize recent activity and recurring feelings/tags.

    Args:
        entries: All journal entries.
        feelings_by_entry: Identified feelings keyed by entry id.
        now: Reference time for the 7-day window; defaults to now.
        top_feelings: How many feeling categories to return.
        top_tags: How many tags to return.
    """
    now = now or datetime.now()
    week_ago = now - timedelta(days=7)

    feeling_counts: Counter[FeelingCategory] = Counter()
    tag_counts: Counter[str] = Counter()
    weekly = 0
    for entry in entries:
        if entry.created_at >= week_ago:
            weekly += 1
        category = overall_feeling(entry, feelings_by_entry.get(entry.id, []))
        if category is not None:
            feeling_counts[category] += 1
        tag_counts.update(entry.tags)

    return JournalInsights(
        weekly_entry_count=weekly,
        top_feelings=[c for c, _ in feeling_counts.most_common(top_feelings)],
        common_tags=[t for t, _ in tag_counts.most_common(top_tags)],
    )


def insights_from_store(store: JournalStore, *, now: datetime | None = None) -> JournalInsights:
    entries = store.list_entries()
    feelings = {e.id: store.feelings_for(e.id) for e in entries}
    return compute_insights(entries, feelings, now=now)


def entry_days_for_month(
    entries: list[JournalEntry], year: int, month: int
) -> dict[date, JournalEntry]:
    """Map each day of the month that has entries to its first entry."""
    days: dict[date, JournalEntry] = {}
    for entry in sorted(entries, key=lambda e: e.created_at):
        day = entry.created_at.date()
        if day.year == year and day.month == month and day not in days:
            days[day] = entry
    return days
