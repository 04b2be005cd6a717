"""Audio capture adapter for text-mode sessions."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from itertools import count


class TypedAnswerCapture:
    """Capture that "records" by reading a typed answer.

    ``start`` opens a handle; ``stop`` prompts for the answer and returns
    it as UTF-8 bytes. Pair with ``PlainTextTranscriptionService``.
    """

    def __init__(self, read_answer: Callable[[], str]) -> None:
        self._read_answer = read_answer
        self._ids = count(1)
        self._open: set[int] = set()

    @property
    def open_handles(self) -> int:
        return len(self._open)

    async def start(self) -> int:
        handle = next(self._ids)
        self._open.add(handle)
        return handle

    async def stop(self, handle: int) -> bytes:
        if handle not in self._open:
            raise ValueError(f"Capture handle {handle} is not open")
        self._open.discard(handle)
        answer = await asyncio.to_thread(self._read_answer)
        return answer.encode("utf-8")

    async def cancel(self, handle: int) -> None:
        self._open.discard(handle)
