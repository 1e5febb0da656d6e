# tests/test_metrics.py
"""Test sync run counters and phase timings"""

import threading

import pytest

from playlist_cleaner.sync.metrics import PhaseTimer, SyncMetrics


class TestPhaseTimer:
    """Test per-phase timing"""

    def test_phases_start_at_zero(self, fake_clock):
        assert PhaseTimer(fake_clock).timings_ms == {"fetch": 0, "match": 0, "add": 0, "remove": 0}

    def test_phase_accumulates(self, fake_clock):
        timer = PhaseTimer(fake_clock)

        with timer.phase("match"):
            fake_clock.advance(1.5)
        with timer.phase("match"):
            fake_clock.advance(0.25)

        assert timer.timings_ms["match"] == 1750
        assert timer.summary() == "fetch 0ms, match 1750ms, add 0ms, remove 0ms"

    def test_phase_timed_when_it_raises(self, fake_clock):
        timer = PhaseTimer(fake_clock)

        with pytest.raises(RuntimeError):
            with timer.phase("add"):
                fake_clock.advance(2)
                raise RuntimeError("Server error")

        assert timer.timings_ms["add"] == 2000


class TestSyncMetrics:
    """Test run counters"""

    def test_completed_and_failed_runs(self):
        metrics = SyncMetrics()
        metrics.record_started()
        metrics.record_completed(800, tracks_added=3, tracks_removed=1)
        metrics.record_started()
        metrics.record_failed(45_000, "SpotifyError", tracks_added=2)

        assert (metrics.started, metrics.completed, metrics.failed) == (2, 1, 1)
        assert (metrics.tracks_added, metrics.tracks_removed) == (5, 1)
        assert metrics.failures_by_type == {"SpotifyError": 1}
        assert metrics.average_duration_ms == 22_900
        assert metrics.summary() == "2 started, 1 completed, 1 failed; +5 / -1 tracks, 0 matched"

    def test_duration_histogram(self):
        metrics = SyncMetrics()
        for duration in (1_000, 1_001, 700_000):
            metrics.record_completed(duration, 0, 0)

        histogram = metrics.snapshot()["duration_histogram"]
        assert histogram["1000"] == 1
        assert histogram["5000"] == 1
        assert histogram["inf"] == 1

    def test_entitlement_checks(self):
        metrics = SyncMetrics()
        metrics.record_entitlement_check(True)
        metrics.record_entitlement_check(False)

        snapshot = metrics.snapshot()
        assert snapshot["entitlement_checks"] == 2
        assert snapshot["entitlement_denied"] == 1

    def test_average_without_runs(self):
        assert SyncMetrics().average_duration_ms == 0

    def test_concurrent_updates(self):
        metrics = SyncMetrics()

        def work():
            for _ in range(500):
                metrics.record_tracks_processed(1)

        threads = [threading.Thread(target=work) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert metrics.tracks_processed == 2000

    def test_snapshot_is_a_copy(self):
        metrics = SyncMetrics()
        snapshot = metrics.snapshot()
        metrics.record_failed(10, "SyncError")

        assert snapshot["failed"] == 0
        assert snapshot["failures_by_type"] == {}
