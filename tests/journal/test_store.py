"""Tests for echojournal.journal.store: JSON-backed journal store."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch
from uuid import uuid4

import pytest

from echojournal.errors import (
    AnswerAlreadyRecordedError,
    EntryNotFoundError,
    PersistenceError,
)
from echojournal.journal.models import FeelingCategory, JournalEntry, MessageRole
from echojournal.journal.store import STORE_FILENAME, JournalStore


@pytest.fixture
def store(tmp_path: Path) -> JournalStore:
    return JournalStore(tmp_path)


@pytest.fixture
def entry(store: JournalStore) -> JournalEntry:
    return store.create_entry(
        JournalEntry(transcript="I had a good day", created_at=datetime(2024, 3, 15, 9))
    )


class TestEntries:
    def test_create_and_get(self, store, entry):
        loaded = store.get_entry(entry.id)
        assert loaded is not None
        assert loaded.transcript == "I had a good day"

    def test_get_missing_returns_none(self, store):
        assert store.get_entry(uuid4()) is None

    def test_require_missing_raises(self, store):
        with pytest.raises(EntryNotFoundError):
            store.require_entry(uuid4())

    def test_duplicate_id_rejected(self, store, entry):
        with pytest.raises(PersistenceError):
            store.create_entry(entry)
        assert len(store.list_entries()) == 1

    def test_list_oldest_first(self, store):
        late = store.create_entry(JournalEntry(transcript="b", created_at=datetime(2024, 3, 2)))
        early = store.create_entry(JournalEntry(transcript="a", created_at=datetime(2024, 3, 1)))
        assert [e.id for e in store.list_entries()] == [early.id, late.id]

    def test_returned_entries_are_copies(self, store, entry):
        loaded = store.require_entry(entry.id)
        loaded.transcript = "mutated"
        assert store.require_entry(entry.id).transcript == "I had a good day"

    def test_update_tags_sets_headline_together(self, store, entry):
        updated = store.update_entry_tags(entry.id, ["Family", "#work"], "A Good Day")
        assert updated.tags == ["family", "work"]
        assert updated.keywords == "family, work"
        assert updated.headline == "A Good Day"

    def test_update_summary_and_streak(self, store, entry):
        store.update_entry_summary(entry.id, "Reflective day.")
        store.update_entry_streak(entry.id, 4, 7)
        loaded = store.require_entry(entry.id)
        assert loaded.summary == "Reflective day."
        assert (loaded.current_streak, loaded.highest_streak) == (4, 7)

    def test_update_missing_entry_raises(self, store):
        with pytest.raises(EntryNotFoundError):
            store.update_entry_summary(uuid4(), "x")


class TestUserEdits:
    def test_add_tag(self, store, entry):
        assert store.add_tag(entry.id, " Hiking ") == ["hiking"]
        assert store.add_tag(entry.id, "#family") == ["hiking", "family"]

    def test_add_duplicate_tag_rejected(self, store, entry):
        store.add_tag(entry.id, "hiking")
        with pytest.raises(ValueError, match="already exists"):
            store.add_tag(entry.id, "HIKING")

    def test_add_empty_tag_rejected(self, store, entry):
        with pytest.raises(ValueError):
            store.add_tag(entry.id, "  # ")

    def test_remove_tag(self, store, entry):
        store.update_entry_tags(entry.id, ["family", "work"], None)
        assert store.remove_tag(entry.id, "Work") == ["family"]
        assert store.remove_tag(entry.id, "missing") == ["family"]

    def test_set_and_clear_user_feeling(self, store, entry):
        assert store.set_user_feeling(entry.id, FeelingCategory.GREAT).user_feeling is FeelingCategory.GREAT
        assert store.set_user_feeling(entry.id, None).user_feeling is None


class TestConversation:
    def test_record_question_writes_turn_and_message(self, store, entry):
        turn = store.record_question(entry.id, "What made it good?")
        assert not turn.is_answered
        assert [t.id for t in store.turns_for(entry.id)] == [turn.id]
        messages = store.messages_for(entry.id)
        assert len(messages) == 1
        assert messages[0].role is MessageRole.ASSISTANT
        assert messages[0].text == "What made it good?"

    def test_record_answer_writes_answer_and_message(self, store, entry):
        turn = store.record_question(entry.id, "What made it good?")
        answered = store.record_answer(turn.id, "Time with family")
        assert answered.is_answered
        assert answered.answer == "Time with family"
        roles = [m.role for m in store.messages_for(entry.id)]
        assert roles == [MessageRole.ASSISTANT, MessageRole.USER]

    def test_answer_is_set_once(self, store, entry):
        turn = store.record_question(entry.id, "Q?")
        store.record_answer(turn.id, "first")
        with pytest.raises(AnswerAlreadyRecordedError):
            store.record_answer(turn.id, "second")
        assert store.turns_for(entry.id)[0].answer == "first"
        assert len(store.messages_for(entry.id)) == 2

    def test_answer_unknown_turn_raises(self, store):
        with pytest.raises(PersistenceError):
            store.record_answer(uuid4(), "hello")

    def test_question_for_unknown_entry_raises(self, store):
        with pytest.raises(EntryNotFoundError):
            store.record_question(uuid4(), "Q?")
        assert store.messages_for(uuid4()) == []

    def test_timestamps_stay_monotonic(self, store, entry):
        now = datetime(2024, 3, 15, 10)
        store.record_question(entry.id, "Q1", at=now)
        turn = store.record_question(entry.id, "Q2", at=now - timedelta(minutes=5))
        assert turn.created_at == now
        stamps = [m.timestamp for m in store.messages_for(entry.id)]
        assert stamps == sorted(stamps)
        assert [m.text for m in store.messages_for(entry.id)] == ["Q1", "Q2"]

    def test_aware_timestamp_after_naive(self, store, entry):
        store.record_question(entry.id, "Q1", at=datetime(2024, 3, 15, 10))
        turn = store.record_question(
            entry.id, "Q2", at=datetime(2030, 1, 1, 12, tzinfo=timezone.utc)
        )
        assert turn.created_at.tzinfo is None
        assert all(m.timestamp.tzinfo is None for m in store.messages_for(entry.id))


class TestFeelings:
    def test_replace_feelings_overwrites(self, store, entry):
        store.replace_feelings(entry.id, [("Happy", FeelingCategory.GOOD)])
        store.replace_feelings(
            entry.id, [("Grateful", FeelingCategory.GREAT), ("Tired", FeelingCategory.FINE)]
        )
        names = [f.name for f in store.feelings_for(entry.id)]
        assert names == ["Grateful", "Tired"]

    def test_replace_with_empty_clears(self, store, entry):
        store.replace_feelings(entry.id, [("Happy", FeelingCategory.GOOD)])
        store.replace_feelings(entry.id, [])
        assert store.feelings_for(entry.id) == []


class TestPersistence:
    def test_reload_from_disk(self, tmp_path, entry):
        store = JournalStore(tmp_path)
        turn = store.record_question(entry.id, "Q?")
        store.record_answer(turn.id, "A")
        store.replace_feelings(entry.id, [("Calm", FeelingCategory.GOOD)])

        reloaded = JournalStore(tmp_path)
        assert reloaded.require_entry(entry.id).transcript == "I had a good day"
        assert reloaded.turns_for(entry.id)[0].answer == "A"
        assert [m.text for m in reloaded.messages_for(entry.id)] == ["Q?", "A"]
        assert reloaded.feelings_for(entry.id)[0].name == "Calm"

    def test_file_is_json(self, tmp_path, entry):
        data = json.loads((tmp_path / STORE_FILENAME).read_text())
        assert data["entries"][0]["transcript"] == "I had a good day"

    def test_in_memory_store_writes_nothing(self, tmp_path):
        store = JournalStore()
        store.create_entry(JournalEntry(transcript="x"))
        assert store.path is None
        assert list(tmp_path.iterdir()) == []

    def test_corrupt_file_moved_aside(self, tmp_path):
        (tmp_path / STORE_FILENAME).write_text("{not json")
        store = JournalStore(tmp_path)
        assert store.list_entries() == []
        assert (tmp_path / "journal.json.corrupt").exists()

    def test_failed_write_leaves_state_untouched(self, store, entry):
        with patch("echojournal.journal.store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(PersistenceError, match="disk full"):
                store.record_question(entry.id, "Q?")
        assert store.turns_for(entry.id) == []
        assert store.messages_for(entry.id) == []
        assert JournalStore(store.path.parent).turns_for(entry.id) == []

    def test_failed_write_cleans_temp_file(self, store, entry, tmp_path):
        with patch("echojournal.journal.store.os.replace", side_effect=OSError("nope")):
            with pytest.raises(PersistenceError):
                store.update_entry_summary(entry.id, "x")
        assert [p.name for p in tmp_path.iterdir()] == [STORE_FILENAME]
