"""Journal domain models: pure Pydantic v2 data types, no I/O."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator


class FeelingCategory(StrEnum):
    """Five-level overall feeling scale."""

    GREAT = "Great"
    GOOD = "Good"
    FINE = "Fine"
    BAD = "Bad"
    TERRIBLE = "Terrible"


class MessageRole(StrEnum):
    """Sender of a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"


FEELING_TAXONOMY: dict[FeelingCategory, list[str]] = {
    FeelingCategory.GREAT: [
        "Joyful", "Excited", "Grateful", "Proud", "Inspired",
        "Loved", "Confident", "Energized", "Accomplished", "Hopeful",
    ],
    FeelingCategory.GOOD: [
        "Happy", "Content", "Calm", "Relaxed", "Optimistic",
        "Motivated", "Connected", "Relieved", "Curious", "Satisfied",
    ],
    FeelingCategory.FINE: [
        "Okay", "Neutral", "Tired", "Bored", "Reflective",
        "Indifferent", "Distracted", "Uncertain", "Nostalgic", "Pensive",
    ],
    FeelingCategory.BAD: [
        "Sad", "Anxious", "Stressed", "Frustrated", "Lonely",
        "Disappointed", "Irritated", "Overwhelmed", "Insecure", "Worried",
    ],
    FeelingCategory.TERRIBLE: [
        "Depressed", "Hopeless", "Angry", "Devastated", "Panicked",
        "Ashamed", "Heartbroken", "Exhausted", "Miserable", "Terrified",
    ],
}


def match_feeling(name: str, category: str) -> tuple[str, FeelingCategory] | None:
    """Resolve a (name, category) pair against the taxonomy.

    Matching is case-insensitive on both parts. Returns the canonical
    spelling, or None when the pair is not in the closed taxonomy.
    """
    wanted_category = category.strip().lower()
    wanted_name = name.strip().lower()
    for cat, names in FEELING_TAXONOMY.items():
        if cat.value.lower() != wanted_category:
            continue
        for candidate in names:
            if candidate.lower() == wanted_name:
                return candidate, cat
    return None


def parse_category(value: str) -> FeelingCategory:
    """Parse a category name case-insensitively.

    Raises ValueError for anything outside the five-level scale.
    """
    for cat in FeelingCategory:
        if cat.value.lower() == value.strip().lower():
            return cat
    raise ValueError(f"Unknown feeling category: {value!r}")


def normalize_tags(tags: list[str], limit: int | None = None) -> list[str]:
    """Trim, lowercase and de-duplicate tags, preserving order."""
    seen: list[str] = []
    for tag in tags:
        cleaned = tag.strip().strip("#").strip().lower()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    if limit is not None:
        seen = seen[:limit]
    return seen


def join_tags(tags: list[str]) -> str:
    return ", ".join(normalize_tags(tags))


def split_tags(keywords: str) -> list[str]:
    if not keywords:
        return []
    return normalize_tags(keywords.split(","))


def to_local_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive local time; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


class JournalEntry(BaseModel):
    """A recorded journal entry."""

    id: UUID = Field(default_factory=uuid4)
    transcript: str
    audio_ref: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    keywords: str = ""
    headline: str | None = None
    summary: str | None = None
    user_feeling: FeelingCategory | None = None
    current_streak: int = 0
    highest_streak: int = 0

    @field_validator("created_at")
    @classmethod
    def _naive_created_at(cls, value: datetime) -> datetime:
        return to_local_naive(value)

    @property
    def tags(self) -> list[str]:
        return split_tags(self.keywords)

    @property
    def title(self) -> str:
        """Headline, falling back to the tag list, then the creation date."""
        if self.headline:
            return self.headline
        if self.tags:
            return ", ".join(self.tags)
        return self.created_at.strftime("%B %d, %Y")


class FollowUpTurn(BaseModel):
    """One question/answer unit of a follow-up session."""

    id: UUID = Field(default_factory=uuid4)
    entry_id: UUID
    question: str
    created_at: datetime = Field(default_factory=datetime.now)
    answer: str | None = None
    answered_at: datetime | None = None

    @field_validator("created_at", "answered_at")
    @classmethod
    def _naive_times(cls, value: datetime | None) -> datetime | None:
        return to_local_naive(value) if value is not None else None

    @property
    def is_answered(self) -> bool:
        return self.answered_at is not None


class ConversationMessage(BaseModel):
    """An append-only message in an entry's conversation log."""

    id: UUID = Field(default_factory=uuid4)
    entry_id: UUID
    text: str
    role: MessageRole
    timestamp: datetime = Field(default_factory=datetime.now)

    @field_validator("timestamp")
    @classmethod
    def _naive_timestamp(cls, value: datetime) -> datetime:
        return to_local_naive(value)


class IdentifiedFeeling(BaseModel):
    """A specific emotion identified in an entry's conversation."""

    id: UUID = Field(default_factory=uuid4)
    entry_id: UUID
    name: str
    category: FeelingCategory
    timestamp: datetime = Field(default_factory=datetime.now)

    @field_validator("timestamp")
    @classmethod
    def _naive_timestamp(cls, value: datetime) -> datetime:
        return to_local_naive(value)


def overall_feeling(
    entry: JournalEntry, feelings: list[IdentifiedFeeling]
) -> FeelingCategory | None:
    """User override if set, else the first identified feeling's category."""
    if entry.user_feeling is not None:
        return entry.user_feeling
    if feelings:
        return feelings[0].category
    return None
