"""JSON-backed journal store.

Persists entries, follow-up turns, conversation messages and identified
feelings in a single JSON file. Every public write runs inside
:meth:`JournalStore._transaction`: mutations apply to a deep copy, the
copy is written to a temp file and ``os.replace``d over the store file,
and only then becomes the live state. A failed write leaves both the
file and the in-memory state untouched.

Constructed without a directory the store is purely in-memory.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from uuid import UUID

from pydantic import BaseModel, Field

from echojournal.errors import (
    AnswerAlreadyRecordedError,
    EntryNotFoundError,
    PersistenceError,
)
from echojournal.journal.models import (
    ConversationMessage,
    FeelingCategory,
    FollowUpTurn,
    IdentifiedFeeling,
    JournalEntry,
    MessageRole,
    join_tags,
    normalize_tags,
    to_local_naive,
)

logger = logging.getLogger(__name__)

STORE_FILENAME = "journal.json"


class _StoreData(BaseModel):
    """Internal wrapper for JSON serialization."""

    entries: list[JournalEntry] = Field(default_factory=list)
    turns: list[FollowUpTurn] = Field(default_factory=list)
    messages: list[ConversationMessage] = Field(default_factory=list)
    feelings: list[IdentifiedFeeling] = Field(default_factory=list)


def _find_entry(data: _StoreData, entry_id: UUID) -> JournalEntry:
    for entry in data.entries:
        if entry.id == entry_id:
            return entry
    raise EntryNotFoundError(str(entry_id))


def _next_timestamp(data: _StoreData, entry_id: UUID, at: datetime | None) -> datetime:
    """Keep message timestamps monotonic per entry."""
    ts = to_local_naive(at) if at is not None else datetime.now()
    existing = [m.timestamp for m in data.messages if m.entry_id == entry_id]
    if existing:
        latest = max(existing)
        if ts < latest:
            ts = latest
    return ts


class JournalStore:
    """Typed repository over the journal's JSON file."""

    def __init__(self, directory: Path | None = None) -> None:
        self._path = directory / STORE_FILENAME if directory is not None else None
        self._data = self._load()

    @property
    def path(self) -> Path | None:
        return self._path

    # ── Private helpers ──────────────────────────────────────────

    def _load(self) -> _StoreData:
        if self._path is None or not self._path.exists():
            return _StoreData()
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            return _StoreData.model_validate(raw)
        except (json.JSONDecodeError, ValueError, KeyError):
            backup = self._path.with_suffix(".json.corrupt")
            logger.warning("Corrupt journal store at %s, moved to %s", self._path, backup)
            os.replace(self._path, backup)
            return _StoreData()

    def _write(self, data: _StoreData) -> None:
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=".journal-", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(data.model_dump_json(indent=2))
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise PersistenceError(f"Failed to write journal store {self._path}: {exc}") from exc

    @contextmanager
    def _transaction(self) -> Iterator[_StoreData]:
        working = self._data.model_copy(deep=True)
        yield working
        self._write(working)
        self._data = working

    # ── Entries ──────────────────────────────────────────────────

    def create_entry(self, entry: JournalEntry) -> JournalEntry:
        """Insert a new entry. Raises PersistenceError on a duplicate id."""
        with self._transaction() as data:
            if any(e.id == entry.id for e in data.entries):
                raise PersistenceError(f"Entry {entry.id} already exists")
            data.entries.append(entry.model_copy(deep=True))
        logger.debug("Created entry %s", entry.id)
        return entry

    def get_entry(self, entry_id: UUID) -> JournalEntry | None:
        """Return a copy of the entry, or None if not found."""
        for entry in self._data.entries:
            if entry.id == entry_id:
                return entry.model_copy(deep=True)
        return None

    def require_entry(self, entry_id: UUID) -> JournalEntry:
        entry = self.get_entry(entry_id)
        if entry is None:
            raise EntryNotFoundError(str(entry_id))
        return entry

    def list_entries(self) -> list[JournalEntry]:
        """Return all entries, oldest first."""
        entries = sorted(self._data.entries, key=lambda e: e.created_at)
        return [e.model_copy(deep=True) for e in entries]

    def update_entry_tags(
        self, entry_id: UUID, tags: list[str], headline: str | None
    ) -> JournalEntry:
        """Replace tags and headline together."""
        with self._transaction() as data:
            entry = _find_entry(data, entry_id)
            entry.keywords = join_tags(tags)
            entry.headline = headline
        return self.require_entry(entry_id)

    def update_entry_summary(self, entry_id: UUID, summary: str) -> JournalEntry:
        with self._transaction() as data:
            entry = _find_entry(data, entry_id)
            entry.summary = summary
        return self.require_entry(entry_id)

    def update_entry_streak(
        self, entry_id: UUID, current_streak: int, highest_streak: int
    ) -> JournalEntry:
        with self._transaction() as data:
            entry = _find_entry(data, entry_id)
            entry.current_streak = current_streak
            entry.highest_streak = highest_streak
        return self.require_entry(entry_id)

    def add_tag(self, entry_id: UUID, tag: str) -> list[str]:
        """Append a user tag.

        Raises ValueError for an empty tag or one already present
        (case-insensitive).
        """
        cleaned = normalize_tags([tag])
        if not cleaned:
            raise ValueError("Tag must not be empty")
        with self._transaction() as data:
            entry = _find_entry(data, entry_id)
            current = entry.tags
            if cleaned[0] in current:
                raise ValueError(f"Tag already exists: {cleaned[0]!r}")
            entry.keywords = join_tags(current + cleaned)
        return self.require_entry(entry_id).tags

    def remove_tag(self, entry_id: UUID, tag: str) -> list[str]:
        """Remove a tag (case-insensitive). Missing tags are ignored."""
        target = tag.strip().lower()
        with self._transaction() as data:
            entry = _find_entry(data, entry_id)
            entry.keywords = join_tags([t for t in entry.tags if t != target])
        return self.require_entry(entry_id).tags

    def set_user_feeling(
        self, entry_id: UUID, category: FeelingCategory | None
    ) -> JournalEntry:
        """Set (or clear) the user's overall feeling override."""
        with self._transaction() as data:
            entry = _find_entry(data, entry_id)
            entry.user_feeling = category
        return self.require_entry(entry_id)

    # ── Conversation ─────────────────────────────────────────────

    def record_question(
        self, entry_id: UUID, question: str, *, at: datetime | None = None
    ) -> FollowUpTurn:
        """Persist a question turn and its assistant message as one unit."""
        with self._transaction() as data:
            _find_entry(data, entry_id)
            ts = _next_timestamp(data, entry_id, at)
            turn = FollowUpTurn(entry_id=entry_id, question=question, created_at=ts)
            data.turns.append(turn)
            data.messages.append(
                ConversationMessage(
                    entry_id=entry_id, text=question, role=MessageRole.ASSISTANT, timestamp=ts
                )
            )
        return turn.model_copy(deep=True)

    def record_answer(
        self, turn_id: UUID, answer: str, *, at: datetime | None = None
    ) -> FollowUpTurn:
        """Set a turn's answer and append the user message as one unit.

        Raises:
            PersistenceError: If the turn does not exist.
            AnswerAlreadyRecordedError: If the turn was already answered.
        """
        with self._transaction() as data:
            turn = next((t for t in data.turns if t.id == turn_id), None)
            if turn is None:
                raise PersistenceError(f"Follow-up turn {turn_id} not found")
            if turn.is_answered:
                raise AnswerAlreadyRecordedError(str(turn_id))
            ts = _next_timestamp(data, turn.entry_id, at)
            turn.answer = answer
            turn.answered_at = ts
            data.messages.append(
                ConversationMessage(
                    entry_id=turn.entry_id, text=answer, role=MessageRole.USER, timestamp=ts
                )
            )
            result = turn.model_copy(deep=True)
        return result

    def turns_for(self, entry_id: UUID) -> list[FollowUpTurn]:
        turns = [t for t in self._data.turns if t.entry_id == entry_id]
        turns.sort(key=lambda t: t.created_at)
        return [t.model_copy(deep=True) for t in turns]

    def messages_for(self, entry_id: UUID) -> list[ConversationMessage]:
        """Return the entry's conversation log in timestamp order."""
        # sort is stable, so equal timestamps keep append order
        messages = [m for m in self._data.messages if m.entry_id == entry_id]
        messages.sort(key=lambda m: m.timestamp)
        return [m.model_copy(deep=True) for m in messages]

    # ── Feelings ─────────────────────────────────────────────────

    def replace_feelings(
        self,
        entry_id: UUID,
        feelings: list[tuple[str, FeelingCategory]],
        *,
        at: datetime | None = None,
    ) -> list[IdentifiedFeeling]:
        """Delete all of the entry's feelings and insert the new set."""
        ts = at or datetime.now()
        new = [
            IdentifiedFeeling(entry_id=entry_id, name=name, category=category, timestamp=ts)
            for name, category in feelings
        ]
        with self._transaction() as data:
            _find_entry(data, entry_id)
            data.feelings = [f for f in data.feelings if f.entry_id != entry_id]
            data.feelings.extend(new)
        return [f.model_copy(deep=True) for f in new]

    def feelings_for(self, entry_id: UUID) -> list[IdentifiedFeeling]:
        return [f.model_copy(deep=True) for f in self._data.feelings if f.entry_id == entry_id]
