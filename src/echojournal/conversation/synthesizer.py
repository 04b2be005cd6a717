"""Claude-backed generation service.

Implements :class:`~echojournal.conversation.collaborators.GenerationService`
on top of :func:`echojournal.shared.llm.call_claude`. The blocking call
runs in a worker thread so the session's event loop stays responsive.
"""

from __future__ import annotations

import asyncio
import json
import logging

from echojournal.config import GenerationConfig
from echojournal.conversation.models import ChatMessage
from echojournal.conversation.prompts import (
    EMOTIONS_SYSTEM_PROMPT,
    FOLLOW_UP_SYSTEM_PROMPT,
    HEADLINE_SYSTEM_PROMPT,
    SUMMARY_SYSTEM_PROMPT,
    TAGS_SYSTEM_PROMPT,
    render_taxonomy,
)
from echojournal.errors import GenerationError, MalformedResponseError
from echojournal.journal.models import FeelingCategory, MessageRole
from echojournal.shared.llm import LLMError, call_claude, strip_json_fences

logger = logging.getLogger(__name__)


def render_history(history: list[ChatMessage]) -> str:
    """Render the exchange context as a labelled transcript."""
    lines: list[str] = []
    for i, message in enumerate(history):
        if i == 0 and message.role is MessageRole.USER:
            label = "Journal entry"
        elif message.role is MessageRole.USER:
            label = "Me"
        else:
            label = "You asked"
        lines.append(f"{label}: {message.content}")
    return "\n\n".join(lines)


def _strip_quotes(text: str) -> str:
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        return text[1:-1].strip()
    return text


class ClaudeGenerationService:
    """Generation service that asks Claude for every operation."""

    def __init__(self, config: GenerationConfig | None = None) -> None:
        self._config = config or GenerationConfig()

    async def _call(self, system_prompt: str, user_prompt: str, label: str) -> str:
        try:
            return await asyncio.to_thread(
                call_claude,
                system_prompt,
                user_prompt,
                model=self._config.model,
                timeout=self._config.timeout,
                label=label,
            )
        except LLMError as exc:
            raise GenerationError(str(exc)) from exc

    async def _call_json(self, system_prompt: str, user_prompt: str, label: str) -> object:
        raw = await self._call(system_prompt, user_prompt, label)
        try:
            return json.loads(strip_json_fences(raw))
        except json.JSONDecodeError as exc:
            raise MalformedResponseError(f"{label} returned invalid JSON: {exc}") from exc

    async def next_question(self, history: list[ChatMessage]) -> str:
        question = _strip_quotes(
            await self._call(FOLLOW_UP_SYSTEM_PROMPT, render_history(history), "follow-up")
        )
        if not question:
            raise MalformedResponseError("Follow-up question was empty")
        return question

    async def extract_tags(self, text: str, max_count: int) -> list[str]:
        data = await self._call_json(
            TAGS_SYSTEM_PROMPT.format(max_count=max_count), text, "tags"
        )
        if not isinstance(data, list):
            raise MalformedResponseError("Tag extraction did not return a JSON array")
        return [str(t) for t in data if isinstance(t, str) and t.strip()][:max_count]

    async def generate_headline(self, tags: list[str]) -> str | None:
        headline = _strip_quotes(
            await self._call(HEADLINE_SYSTEM_PROMPT, ", ".join(tags), "headline")
        )
        return headline or None

    async def classify_emotions(
        self, text: str, taxonomy: dict[FeelingCategory, list[str]]
    ) -> list[tuple[str, str]]:
        data = await self._call_json(
            EMOTIONS_SYSTEM_PROMPT.format(taxonomy=render_taxonomy(taxonomy)), text, "emotions"
        )
        if not isinstance(data, list):
            raise MalformedResponseError("Emotion classification did not return a JSON array")
        pairs: list[tuple[str, str]] = []
        for item in data:
            if not isinstance(item, dict):
                logger.debug("Skipping non-object emotion item: %r", item)
                continue
            name = item.get("name")
            category = item.get("category")
            if isinstance(name, str) and isinstance(category, str):
                pairs.append((name, category))
        return pairs

    async def summarize(self, text: str) -> str:
        return (await self._call(SUMMARY_SYSTEM_PROMPT, text, "summary")).strip()
