"""Entry creation and streak maintenance.

Streak fields are computed before the insert so the entry and its
streak land in the store as a single write.
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from echojournal.journal.models import JournalEntry, to_local_naive
from echojournal.journal.store import JournalStore
from echojournal.journal.streaks import current_streak, streaks_for_new_entry

logger = logging.getLogger(__name__)


def create_journal_entry(
    store: JournalStore,
    transcript: str,
    *,
    audio_ref: str | None = None,
    created_at: datetime | None = None,
    today: date | None = None,
) -> JournalEntry:
    """Create an entry with its current and highest streak filled in.

    Args:
        store: Journal store to insert into.
        transcript: Raw transcript text of the recording.
        audio_ref: Optional reference to the stored audio.
        created_at: Creation time; defaults to now.
        today: Reference day for the streak; defaults to the creation day.

    Returns:
        The created entry.

    Raises:
        ValueError: If the transcript is empty.
        PersistenceError: If the store write fails.
    """
    if not transcript.strip():
        raise ValueError("Cannot create a journal entry with an empty transcript")

    created_at = to_local_naive(created_at) if created_at is not None else datetime.now()
    prior = store.list_entries()
    current, highest = streaks_for_new_entry(prior, created_at, today=today)

    entry = JournalEntry(
        transcript=transcript.strip(),
        audio_ref=audio_ref,
        created_at=created_at,
        current_streak=current,
        highest_streak=highest,
    )
    store.create_entry(entry)
    logger.info(
        "Created entry %s (streak %d, highest %d)", entry.id, current, highest
    )
    return entry


def recalculate_streaks(store: JournalStore) -> int:
    """Replay all entries oldest-first and rewrite their streak fields.

    Each entry's current streak is evaluated as of its own creation day;
    the highest streak is carried forward as a running maximum.

    Returns:
        Number of entries whose streak fields changed.
    """
    entries = store.list_entries()
    changed = 0
    highest = 0
    for i, entry in enumerate(entries):
        timestamps = [e.created_at for e in entries[: i + 1]]
        current = current_streak(timestamps, today=entry.created_at.date())
        highest = max(highest, current)
        if (entry.current_streak, entry.highest_streak) != (current, highest):
            store.update_entry_streak(entry.id, current, highest)
            changed += 1
    if changed:
        logger.info("Recalculated streaks for %d entries", changed)
    return changed
