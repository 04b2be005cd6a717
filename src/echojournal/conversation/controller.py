"""Follow-up loop controller: the session state machine.

Drives one follow-up session for a journal entry::

    idle → thinking → showing_question → listening → processing_answer
                ↑                                          │
                └──────────────────────────────────────────┘
    any non-terminal state → finished | error(message)

``finished`` and ``error`` are sticky: once reached, later results and
error signals are ignored. The controller never raises past its public
methods; collaborator failures become ``error`` states. Entering
``finished`` runs the analysis pipeline exactly once.

Each session carries a token; results from an abandoned session are
dropped, and a restart from ``error`` is refused until its call returns.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from echojournal.analysis.pipeline import AnalysisPipeline
from echojournal.config import ConversationConfig
from echojournal.conversation.collaborators import (
    AudioCapture,
    ConnectivityMonitor,
    GenerationService,
    TranscriptionService,
)
from echojournal.conversation.latency import LatencyMonitor
from echojournal.conversation.models import ChatMessage, LoopPhase, LoopState
from echojournal.errors import EchoJournalError, PersistenceError, PipelineReport
from echojournal.journal.models import FollowUpTurn, JournalEntry, MessageRole
from echojournal.journal.store import JournalStore

logger = logging.getLogger(__name__)

StateListener = Callable[[LoopState], None]


class FollowUpLoopController:
    """Runs a question/answer session and hands off to analysis."""

    def __init__(
        self,
        *,
        store: JournalStore,
        generation: GenerationService,
        transcription: TranscriptionService,
        capture: AudioCapture,
        connectivity: ConnectivityMonitor,
        config: ConversationConfig | None = None,
        latency: LatencyMonitor | None = None,
        pipeline: AnalysisPipeline | None = None,
    ) -> None:
        self._store = store
        self._generation = generation
        self._transcription = transcription
        self._capture = capture
        self._connectivity = connectivity
        self._config = config or ConversationConfig()
        self._latency = latency or LatencyMonitor()
        self._pipeline = pipeline or AnalysisPipeline(store, generation)

        self._state = LoopState.of(LoopPhase.IDLE)
        self._listeners: list[StateListener] = []
        self._entry: JournalEntry | None = None
        self._current_turn: FollowUpTurn | None = None
        self._exchange: list[ChatMessage] = []
        self._capture_handle: Any = None
        self._in_flight = False
        # Bumped on every start and terminal transition; results carrying
        # an older token belong to an abandoned session.
        self._session = 0
        self._analysis_started = False
        self._background: set[asyncio.Task[None]] = set()

        self.current_question = ""
        self.show_capture_affordance = False
        self.last_report: PipelineReport | None = None

        self._unsubscribe_connectivity = connectivity.subscribe(self._on_connectivity_change)

    # ── Observable state ─────────────────────────────────────────

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._capture_handle is not None

    @property
    def is_experiencing_high_latency(self) -> bool:
        return self._latency.is_degraded

    @property
    def exchange(self) -> list[ChatMessage]:
        return list(self._exchange)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener`` on every state change; returns an unsubscriber."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def is_stop_phrase(self, text: str) -> bool:
        lowered = text.lower()
        return any(phrase in lowered for phrase in self._config.stop_phrases)

    # ── Public contract ──────────────────────────────────────────

    async def start(self, entry: JournalEntry) -> None:
        """Begin a session for ``entry`` and request the first question.

        Allowed from ``idle``, or from ``error`` to start over.
        """
        if self._state.phase not in (LoopPhase.IDLE, LoopPhase.ERROR):
            logger.warning("start() ignored in state %s", self._state)
            return
        if self._in_flight:
            logger.warning("start() refused: previous session still has a call in flight")
            self._set_state(LoopState.error("Previous follow-up request is still running."))
            return
        if not self._connectivity.is_connected:
            self._set_state(LoopState.error("Cannot start follow-up loop offline."))
            return
        if not entry.transcript.strip():
            self._set_state(LoopState.error("Cannot start follow-up for an empty entry."))
            return

        logger.info("Starting follow-up session for entry %s", entry.id)
        self._session += 1
        self._entry = entry
        self._current_turn = None
        self.current_question = ""
        self._exchange = [ChatMessage(role=MessageRole.USER, content=entry.transcript)]
        self._set_state(LoopState.of(LoopPhase.THINKING))
        await self._generate_next_question()

    async def begin_answer_capture(self) -> None:
        """Move from the shown question to listening, with a short beat."""
        if self._state.phase is not LoopPhase.SHOWING_QUESTION:
            logger.debug("begin_answer_capture() ignored in state %s", self._state)
            return
        await asyncio.sleep(self._config.listen_delay_seconds)
        if self._state.phase is not LoopPhase.SHOWING_QUESTION:
            return
        self._set_state(LoopState.of(LoopPhase.LISTENING))
        await asyncio.sleep(self._config.affordance_delay_seconds)
        if self._state.phase is LoopPhase.LISTENING:
            self.show_capture_affordance = True

    async def begin_recording(self) -> None:
        if self._state.phase is not LoopPhase.LISTENING or self._capture_handle is not None:
            logger.debug("begin_recording() ignored in state %s", self._state)
            return
        try:
            handle = await self._capture.start()
        except Exception as exc:
            logger.warning("Audio capture failed to start", exc_info=True)
            self._fail(f"Failed to start recording: {exc}")
            return
        if self._state.phase is not LoopPhase.LISTENING:
            await self._cancel_handle(handle)
            return
        self._capture_handle = handle

    async def cancel_recording(self) -> None:
        """Release an open capture and discard its audio."""
        handle, self._capture_handle = self._capture_handle, None
        if handle is not None:
            await self._cancel_handle(handle)

    async def end_recording_and_process(self) -> None:
        """Stop capture, transcribe the answer, persist it, ask again."""
        if self._state.phase is not LoopPhase.LISTENING or self._capture_handle is None:
            logger.debug("end_recording_and_process() ignored in state %s", self._state)
            return
        turn = self._current_turn
        session = self._session
        handle, self._capture_handle = self._capture_handle, None
        try:
            audio = await self._capture.stop(handle)
        except Exception as exc:
            logger.warning("Audio capture failed to stop", exc_info=True)
            if session == self._session:
                self._fail(f"Failed to stop recording: {exc}")
            return
        if session != self._session or self._state.is_terminal:
            return
        if turn is None:
            self._fail("No follow-up question to answer.")
            return

        self.show_capture_affordance = False
        self._set_state(LoopState.of(LoopPhase.PROCESSING_ANSWER))

        answer = await self._transcribe(audio)
        if answer is None:
            return

        try:
            self._store.record_answer(turn.id, answer)
        except PersistenceError as exc:
            self._fail(f"Failed to save answer: {exc}")
            return

        self._exchange.append(ChatMessage(role=MessageRole.USER, content=answer))
        self._current_turn = None
        await self._generate_next_question()

    async def end_externally(self) -> None:
        """Abandon the session: finish now and run analysis once."""
        if self._state.is_terminal:
            logger.debug("end_externally() ignored in state %s", self._state)
            return
        logger.info("Follow-up session ended externally in state %s", self._state)
        await self._finish()

    async def aclose(self) -> None:
        """Detach from connectivity and release anything still held."""
        self._unsubscribe_connectivity()
        await self.cancel_recording()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # ── Internal steps ───────────────────────────────────────────

    async def _generate_next_question(self) -> None:
        if self._state.is_terminal or self._entry is None:
            return
        if not self._connectivity.is_connected:
            self._fail("Cannot generate follow-up offline.")
            return
        if self._in_flight:
            logger.warning("Question request refused: another call is in flight")
            return

        self._set_state(LoopState.of(LoopPhase.THINKING))
        self.show_capture_affordance = False
        session = self._session
        self._in_flight = True
        try:
            question = (await self._generation.next_question(list(self._exchange))).strip()
        except Exception as exc:
            if session != self._session:
                logger.info("Ignoring generation failure from an ended session: %s", exc)
            elif isinstance(exc, EchoJournalError):
                self._fail(f"Failed to generate follow-up: {exc}")
            else:
                logger.exception("Unexpected error from generation service")
                self._fail(f"Failed to generate follow-up: {exc}")
            return
        finally:
            self._in_flight = False

        if session != self._session or self._state.is_terminal:
            logger.info("Ignoring follow-up question received after session ended")
            return
        if not question:
            self._fail("Failed to generate follow-up: empty response.")
            return
        if self.is_stop_phrase(question):
            logger.info("Generation signalled end of conversation")
            await self._finish()
            return

        try:
            turn = self._store.record_question(self._entry.id, question)
        except PersistenceError as exc:
            self._fail(f"Failed to save follow-up: {exc}")
            return

        self._current_turn = turn
        self.current_question = question
        self._exchange.append(ChatMessage(role=MessageRole.ASSISTANT, content=question))
        self._set_state(LoopState.of(LoopPhase.SHOWING_QUESTION))

    async def _transcribe(self, audio: bytes) -> str | None:
        if self._in_flight:
            logger.warning("Transcription refused: another call is in flight")
            return None
        session = self._session
        self._in_flight = True
        started = self._latency.start()
        try:
            text = await self._transcription.transcribe(audio)
        except Exception as exc:
            if session != self._session:
                logger.info("Ignoring transcription failure from an ended session: %s", exc)
            elif isinstance(exc, EchoJournalError):
                self._fail(f"Transcription failed: {exc}")
            else:
                logger.exception("Unexpected error from transcription service")
                self._fail(f"Transcription failed: {exc}")
            return None
        finally:
            self._latency.finish(started)
            self._in_flight = False

        if session != self._session or self._state.is_terminal:
            logger.info("Ignoring transcription received after session ended")
            return None
        text = text.strip()
        if not text:
            self._fail("Transcription failed: no speech recognized.")
            return None
        return text

    async def _finish(self) -> None:
        if self._state.is_terminal:
            return
        self._session += 1
        self.show_capture_affordance = False
        self._set_state(LoopState.of(LoopPhase.FINISHED))
        await self.cancel_recording()
        await self._run_analysis_once()

    async def _run_analysis_once(self) -> None:
        if self._analysis_started or self._entry is None:
            return
        self._analysis_started = True
        try:
            self.last_report = await self._pipeline.run(self._entry.id)
        except Exception:
            logger.exception("Analysis pipeline failed for entry %s", self._entry.id)

    async def _cancel_handle(self, handle: Any) -> None:
        try:
            await self._capture.cancel(handle)
        except Exception:
            logger.warning("Failed to release audio capture", exc_info=True)

    def _set_state(self, state: LoopState) -> None:
        if state == self._state:
            return
        logger.debug("State %s -> %s", self._state, state)
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    def _fail(self, message: str) -> None:
        if self._state.is_terminal:
            logger.debug("Suppressed error after terminal state: %s", message)
            return
        logger.error("Follow-up session error: %s", message)
        self._session += 1
        self.show_capture_affordance = False
        self._set_state(LoopState.error(message))
        handle, self._capture_handle = self._capture_handle, None
        if handle is not None:
            self._schedule(self._cancel_handle(handle))

    def _schedule(self, coro: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("No running event loop; audio capture left open")
            return
        task = loop.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _on_connectivity_change(self, connected: bool) -> None:
        if connected:
            return
        if self._state.phase is LoopPhase.IDLE or self._state.is_terminal:
            return
        self._fail("No internet connection.")
