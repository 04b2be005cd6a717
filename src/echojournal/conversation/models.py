"""Conversation loop models: session state and exchange context."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from echojournal.journal.models import MessageRole


class LoopPhase(StrEnum):
    """Phases of a follow-up session."""

    IDLE = "idle"
    THINKING = "thinking"
    SHOWING_QUESTION = "showing_question"
    LISTENING = "listening"
    PROCESSING_ANSWER = "processing_answer"
    FINISHED = "finished"
    ERROR = "error"


TERMINAL_PHASES = frozenset({LoopPhase.FINISHED, LoopPhase.ERROR})


class LoopState(BaseModel):
    """Tagged session state; ``message`` is set only for ``error``."""

    model_config = ConfigDict(frozen=True)

    phase: LoopPhase
    message: str | None = None

    @classmethod
    def of(cls, phase: LoopPhase) -> LoopState:
        if phase is LoopPhase.ERROR:
            raise ValueError("Use LoopState.error(message) for the error phase")
        return cls(phase=phase)

    @classmethod
    def error(cls, message: str) -> LoopState:
        return cls(phase=LoopPhase.ERROR, message=message)

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def __str__(self) -> str:
        if self.phase is LoopPhase.ERROR:
            return f"error({self.message})"
        return self.phase.value


class ChatMessage(BaseModel):
    """One role-tagged message of the exchange context."""

    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str
