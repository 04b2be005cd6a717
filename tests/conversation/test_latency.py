"""Tests for echojournal.conversation.latency."""

import pytest

from echojournal.conversation.latency import LatencyMonitor


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestLatencyMonitor:
    def test_starts_healthy(self):
        monitor = LatencyMonitor()
        assert not monitor.is_degraded
        assert monitor.last_duration is None

    def test_rejects_empty_window(self):
        with pytest.raises(ValueError):
            LatencyMonitor(window_size=0)

    def test_single_slow_call_before_window_fills(self):
        monitor = LatencyMonitor(threshold_seconds=4.0)
        assert monitor.record(5.0, completed_at=5.0) is True
        assert monitor.is_degraded

    def test_threshold_is_exclusive(self):
        monitor = LatencyMonitor(threshold_seconds=4.0)
        assert monitor.record(4.0, completed_at=4.0) is False

    def test_full_window_uses_average_interval(self):
        monitor = LatencyMonitor(window_size=3, threshold_seconds=4.0)
        monitor.record(1.0, completed_at=0.0)
        monitor.record(1.0, completed_at=10.0)
        # Window full: intervals 10s and 10s average to 10s even though calls were fast
        assert monitor.record(1.0, completed_at=20.0) is True

    def test_full_window_recovers_when_calls_are_frequent(self):
        monitor = LatencyMonitor(window_size=3, threshold_seconds=4.0)
        monitor.record(9.0, completed_at=0.0)
        assert monitor.is_degraded
        monitor.record(1.0, completed_at=2.0)
        assert monitor.record(1.0, completed_at=4.0) is False

    def test_window_of_one_uses_duration(self):
        monitor = LatencyMonitor(window_size=1, threshold_seconds=1.0)
        assert monitor.record(0.5, completed_at=100.0) is False
        assert monitor.record(2.0, completed_at=200.0) is True

    def test_start_finish_uses_clock(self):
        clock = FakeClock()
        monitor = LatencyMonitor(threshold_seconds=4.0, clock=clock)
        started = monitor.start()
        clock.now = 6.0
        assert monitor.finish(started) is True
        assert monitor.last_duration == 6.0

    def test_reset(self):
        monitor = LatencyMonitor()
        monitor.record(10.0, completed_at=10.0)
        monitor.reset()
        assert not monitor.is_degraded
        assert monitor.last_duration is None
