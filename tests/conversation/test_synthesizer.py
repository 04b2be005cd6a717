"""Tests for echojournal.conversation.synthesizer: ClaudeGenerationService."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from echojournal.config import GenerationConfig
from echojournal.conversation.models import ChatMessage
from echojournal.conversation.synthesizer import ClaudeGenerationService, render_history
from echojournal.errors import GenerationError, MalformedResponseError
from echojournal.journal.models import FEELING_TAXONOMY, MessageRole
from echojournal.shared.llm import LLMError

PATCH_TARGET = "echojournal.conversation.synthesizer.call_claude"


def _history() -> list[ChatMessage]:
    return [
        ChatMessage(role=MessageRole.USER, content="I had a good day"),
        ChatMessage(role=MessageRole.ASSISTANT, content="What made it good?"),
        ChatMessage(role=MessageRole.USER, content="Time with family"),
    ]


class TestRenderHistory:
    def test_labels(self):
        rendered = render_history(_history())
        assert rendered == (
            "Journal entry: I had a good day\n\n"
            "You asked: What made it good?\n\n"
            "Me: Time with family"
        )


class TestNextQuestion:
    @patch(PATCH_TARGET)
    def test_returns_question(self, mock_call: MagicMock) -> None:
        mock_call.return_value = '"What did you do together?"'
        service = ClaudeGenerationService()
        assert asyncio.run(service.next_question(_history())) == "What did you do together?"
        assert "Me: Time with family" in mock_call.call_args[0][1]

    @patch(PATCH_TARGET)
    def test_passes_model_and_timeout(self, mock_call: MagicMock) -> None:
        mock_call.return_value = "Q?"
        service = ClaudeGenerationService(GenerationConfig(model="haiku", timeout=30))
        asyncio.run(service.next_question(_history()))
        assert mock_call.call_args.kwargs["model"] == "haiku"
        assert mock_call.call_args.kwargs["timeout"] == 30
        assert mock_call.call_args.kwargs["label"] == "follow-up"

    @patch(PATCH_TARGET)
    def test_llm_error_becomes_generation_error(self, mock_call: MagicMock) -> None:
        mock_call.side_effect = LLMError("CLI timed out")
        with pytest.raises(GenerationError, match="timed out"):
            asyncio.run(ClaudeGenerationService().next_question(_history()))

    @patch(PATCH_TARGET)
    def test_empty_question_is_malformed(self, mock_call: MagicMock) -> None:
        mock_call.return_value = '""'
        with pytest.raises(MalformedResponseError):
            asyncio.run(ClaudeGenerationService().next_question(_history()))


class TestExtractTags:
    @patch(PATCH_TARGET)
    def test_parses_fenced_array(self, mock_call: MagicMock) -> None:
        mock_call.return_value = '```json\n["family", "cooking", "park", "dogs"]\n```'
        tags = asyncio.run(ClaudeGenerationService().extract_tags("text", 3))
        assert tags == ["family", "cooking", "park"]
        assert "at most 3" in mock_call.call_args[0][0]

    @patch(PATCH_TARGET)
    def test_drops_non_strings(self, mock_call: MagicMock) -> None:
        mock_call.return_value = '["family", 3, "", null]'
        assert asyncio.run(ClaudeGenerationService().extract_tags("text", 3)) == ["family"]

    @patch(PATCH_TARGET)
    def test_invalid_json_is_malformed(self, mock_call: MagicMock) -> None:
        mock_call.return_value = "family, cooking"
        with pytest.raises(MalformedResponseError):
            asyncio.run(ClaudeGenerationService().extract_tags("text", 3))

    @patch(PATCH_TARGET)
    def test_object_is_malformed(self, mock_call: MagicMock) -> None:
        mock_call.return_value = '{"tags": ["family"]}'
        with pytest.raises(MalformedResponseError):
            asyncio.run(ClaudeGenerationService().extract_tags("text", 3))


class TestHeadline:
    @patch(PATCH_TARGET)
    def test_strips_quotes(self, mock_call: MagicMock) -> None:
        mock_call.return_value = "'Sunday With Family'"
        assert asyncio.run(ClaudeGenerationService().generate_headline(["family"])) == (
            "Sunday With Family"
        )
        assert mock_call.call_args[0][1] == "family"


class TestClassifyEmotions:
    @patch(PATCH_TARGET)
    def test_parses_pairs(self, mock_call: MagicMock) -> None:
        mock_call.return_value = (
            '[{"name": "Grateful", "category": "Great"}, "junk", {"name": "Calm"}]'
        )
        pairs = asyncio.run(ClaudeGenerationService().classify_emotions("t", FEELING_TAXONOMY))
        assert pairs == [("Grateful", "Great")]
        assert "- Great: Joyful" in mock_call.call_args[0][0]

    @patch(PATCH_TARGET)
    def test_non_list_is_malformed(self, mock_call: MagicMock) -> None:
        mock_call.return_value = '{"name": "Grateful"}'
        with pytest.raises(MalformedResponseError):
            asyncio.run(ClaudeGenerationService().classify_emotions("t", FEELING_TAXONOMY))


class TestSummarize:
    @patch(PATCH_TARGET)
    def test_returns_summary(self, mock_call: MagicMock) -> None:
        mock_call.return_value = "  You enjoyed the park.  "
        assert asyncio.run(ClaudeGenerationService().summarize("t")) == "You enjoyed the park."
