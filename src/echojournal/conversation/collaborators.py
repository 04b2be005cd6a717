"""Contracts for the services a follow-up session depends on.

Everything here is injected into the controller at construction time;
the shipped adapters live in ``synthesizer``, ``transcription`` and
``capture``.
"""

from __future__ import annotations

import logging
import socket
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from echojournal.conversation.models import ChatMessage
from echojournal.journal.models import FeelingCategory

logger = logging.getLogger(__name__)


@runtime_checkable
class TranscriptionService(Protocol):
    """Speech-to-text. Raises TranscriptionError on failure."""

    async def transcribe(self, audio: bytes) -> str: ...


@runtime_checkable
class GenerationService(Protocol):
    """Text generation. Raises GenerationError or MalformedResponseError."""

    async def next_question(self, history: list[ChatMessage]) -> str: ...

    async def extract_tags(self, text: str, max_count: int) -> list[str]: ...

    async def generate_headline(self, tags: list[str]) -> str | None: ...

    async def classify_emotions(
        self, text: str, taxonomy: dict[FeelingCategory, list[str]]
    ) -> list[tuple[str, str]]: ...

    async def summarize(self, text: str) -> str: ...


@runtime_checkable
class AudioCapture(Protocol):
    """Scoped audio capture.

    Every handle from ``start`` is released exactly once, by ``stop``
    (keeping the audio) or ``cancel`` (discarding it).
    """

    async def start(self) -> Any: ...

    async def stop(self, handle: Any) -> bytes: ...

    async def cancel(self, handle: Any) -> None: ...


ConnectivityListener = Callable[[bool], None]


class ConnectivityMonitor:
    """Observable connected/disconnected flag.

    Listeners are called synchronously on every change with the new
    value. The flag is pushed in by whatever watches the network;
    :meth:`probe` offers a simple TCP reachability check for callers
    without a platform monitor.
    """

    def __init__(self, connected: bool = True) -> None:
        self._connected = connected
        self._listeners: list[ConnectivityListener] = []

    @property
    def is_connected(self) -> bool:
        return self._connected

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def set_connected(self, connected: bool) -> None:
        if connected == self._connected:
            return
        self._connected = connected
        logger.info("Network status changed: %s", "connected" if connected else "disconnected")
        for listener in list(self._listeners):
            listener(connected)

    def probe(self, host: str = "1.1.1.1", port: int = 53, timeout: float = 2.0) -> bool:
        """Check reachability of ``host:port`` and update the flag."""
        try:
            with socket.create_connection((host, port), timeout=timeout):
                reachable = True
        except OSError:
            reachable = False
        self.set_connected(reachable)
        return reachable
