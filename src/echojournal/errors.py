"""Error taxonomy and per-run error reporting.

Every failure the engine can observe maps onto one of the exception
classes below. The interactive loop converts them into terminal
``error`` states; the analysis pipeline records them on a
:class:`PipelineReport` and keeps going.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class EchoJournalError(Exception):
    """Base class for all echojournal errors."""


class ConnectivityError(EchoJournalError):
    """Raised when the network is unavailable."""


class TranscriptionError(EchoJournalError):
    """Raised when speech-to-text fails (corrupt audio, upstream failure)."""


class GenerationError(EchoJournalError):
    """Raised when the text-generation service fails."""


class MalformedResponseError(EchoJournalError):
    """Raised when a collaborator returns an empty or unparseable response."""


class PersistenceError(EchoJournalError):
    """Raised when the journal store cannot apply a write."""


class EntryNotFoundError(PersistenceError):
    """Raised when an entry id is unknown to the store."""


class AnswerAlreadyRecordedError(PersistenceError):
    """Raised when a follow-up turn already has an answer."""


class StageError(BaseModel):
    """A single failure recorded during a pipeline run."""

    stage: str
    message: str
    source: str = ""
    error_type: str = "error"
    recorded_at: datetime = Field(default_factory=datetime.now)


class PipelineReport(BaseModel):
    """Outcome of one analysis pipeline run."""

    completed: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    errors: list[StageError] = Field(default_factory=list)

    def add_error(
        self,
        stage: str,
        message: str,
        *,
        source: str = "",
        error_type: str = "error",
    ) -> None:
        self.errors.append(
            StageError(stage=str(stage), message=message, source=source, error_type=error_type)
        )

    def mark_completed(self, stage: str) -> None:
        self.completed.append(str(stage))

    def mark_skipped(self, stage: str) -> None:
        self.skipped.append(str(stage))

    @property
    def ok(self) -> bool:
        """True when no stage recorded an error."""
        return not self.errors

    def errors_for(self, stage: str) -> list[StageError]:
        return [e for e in self.errors if e.stage == str(stage)]
