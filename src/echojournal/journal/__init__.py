"""Journal entries, their conversation log, feelings and streaks."""

from echojournal.journal.models import (
    FEELING_TAXONOMY,
    ConversationMessage,
    FeelingCategory,
    FollowUpTurn,
    IdentifiedFeeling,
    JournalEntry,
    MessageRole,
    overall_feeling,
)
from echojournal.journal.services import create_journal_entry, recalculate_streaks
from echojournal.journal.store import JournalStore
from echojournal.journal.streaks import (
    MILESTONES,
    current_streak,
    next_milestone,
    overall_highest_streak,
    streaks_for_new_entry,
)

__all__ = [
    "FEELING_TAXONOMY",
    "MILESTONES",
    "ConversationMessage",
    "FeelingCategory",
    "FollowUpTurn",
    "IdentifiedFeeling",
    "JournalEntry",
    "JournalStore",
    "MessageRole",
    "create_journal_entry",
    "current_streak",
    "next_milestone",
    "overall_feeling",
    "overall_highest_streak",
    "recalculate_streaks",
    "streaks_for_new_entry",
]
