"""Sliding-window latency tracking for transcription calls.

Purely observational: the degraded flag feeds a slow-network hint and
never changes how a session progresses.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable

logger = logging.getLogger(__name__)


class LatencyMonitor:
    """Track transcription call timings and flag degraded performance.

    Keeps the last ``window_size`` completion timestamps. Once the window
    is full, the average interval between completions is compared to the
    threshold; before that, the latest call duration is.
    """

    def __init__(
        self,
        *,
        window_size: int = 3,
        threshold_seconds: float = 4.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if window_size < 1:
            raise ValueError("window_size must be at least 1")
        self._window_size = window_size
        self._threshold = threshold_seconds
        self._clock = clock
        self._completions: deque[float] = deque(maxlen=window_size)
        self._last_duration: float | None = None
        self._degraded = False

    @property
    def is_degraded(self) -> bool:
        return self._degraded

    @property
    def last_duration(self) -> float | None:
        return self._last_duration

    def start(self) -> float:
        """Return a start mark for a call about to be issued."""
        return self._clock()

    def finish(self, started_at: float) -> bool:
        """Record a call that began at ``started_at``; return the new flag."""
        now = self._clock()
        return self.record(now - started_at, completed_at=now)

    def record(self, duration: float, *, completed_at: float | None = None) -> bool:
        """Record one call's duration and re-evaluate the degraded flag."""
        self._last_duration = duration
        self._completions.append(completed_at if completed_at is not None else self._clock())

        if len(self._completions) >= self._window_size and self._window_size > 1:
            span = self._completions[-1] - self._completions[0]
            measured = span / (len(self._completions) - 1)
        else:
            measured = duration

        was_degraded = self._degraded
        self._degraded = measured > self._threshold
        if self._degraded != was_degraded:
            logger.info(
                "Transcription latency %s (%.2fs vs %.2fs threshold)",
                "degraded" if self._degraded else "recovered",
                measured,
                self._threshold,
            )
        return self._degraded

    def reset(self) -> None:
        self._completions.clear()
        self._last_duration = None
        self._degraded = False
