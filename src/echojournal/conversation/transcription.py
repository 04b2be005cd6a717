"""Speech-to-text adapters."""

from __future__ import annotations

import asyncio
import io
import logging
from typing import Any

from echojournal.config import TranscriptionConfig
from echojournal.errors import TranscriptionError

logger = logging.getLogger(__name__)


class WhisperTranscriptionService:
    """Local Whisper transcription via faster-whisper.

    The model is loaded on first use and reused for the lifetime of the
    service. Requires the ``voice`` extra.
    """

    def __init__(self, config: TranscriptionConfig | None = None) -> None:
        self._config = config or TranscriptionConfig()
        self._model: Any = None

    def _get_model(self) -> Any:
        if self._model is None:
            try:
                from faster_whisper import WhisperModel
            except ImportError as exc:
                raise TranscriptionError(
                    "faster-whisper is not installed; install echojournal[voice]"
                ) from exc
            logger.info("Loading Whisper model %r", self._config.model_size)
            self._model = WhisperModel(
                self._config.model_size, compute_type=self._config.compute_type
            )
        return self._model

    def _transcribe_sync(self, audio: bytes) -> str:
        model = self._get_model()
        try:
            segments, _info = model.transcribe(io.BytesIO(audio), language=self._config.language)
            return " ".join(segment.text.strip() for segment in segments).strip()
        except Exception as exc:
            raise TranscriptionError(f"Whisper failed to transcribe audio: {exc}") from exc

    async def transcribe(self, audio: bytes) -> str:
        if not audio:
            raise TranscriptionError("No audio captured")
        return await asyncio.to_thread(self._transcribe_sync, audio)


class PlainTextTranscriptionService:
    """Treats the captured bytes as UTF-8 text (typed answers)."""

    async def transcribe(self, audio: bytes) -> str:
        try:
            return audio.decode("utf-8").strip()
        except UnicodeDecodeError as exc:
            raise TranscriptionError(f"Answer is not valid UTF-8: {exc}") from exc
