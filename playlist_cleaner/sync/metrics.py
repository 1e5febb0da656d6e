"""
In-process counters and phase timings for sync runs.

SyncMetrics aggregates over every run an orchestrator performs during the
lifetime of the process (one CLI invocation, or a long-running
scheduler). Durable per-run numbers live in sync_history; these counters
answer "what did this process do".

PhaseTimer measures the phases of a single run:

    timer = PhaseTimer(clock)
    with timer.phase("fetch"):
        ...
    timer.timings_ms  # {"fetch": 120, ...}
"""

import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator


# Upper bounds (inclusive, milliseconds) of the run duration histogram
DURATION_BUCKETS_MS = (1_000, 5_000, 30_000, 120_000, 600_000)

SYNC_PHASES = ("fetch", "match", "add", "remove")


class PhaseTimer:
    """Accumulates elapsed milliseconds per named phase."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self.timings_ms: dict[str, int] = {name: 0 for name in SYNC_PHASES}

    @contextmanager
    def phase(self, name: str) -> Iterator[None]:
        started = self._clock()
        try:
            yield
        finally:
            elapsed = max(0, int((self._clock() - started) * 1000))
            self.timings_ms[name] = self.timings_ms.get(name, 0) + elapsed

    def summary(self) -> str:
        return ", ".join(f"{name} {ms}ms" for name, ms in self.timings_ms.items())


class SyncMetrics:
    """
    Thread-safe counters over the sync runs of this process.

    Attributes:
        started: Runs begun.
        completed: Runs that completed.
        failed: Runs that failed, for any reason.
        failures_by_type: Failed runs per exception class name.
        tracks_processed: Source tracks resolved by the matcher.
        tracks_added: Tracks added to clean copies.
        tracks_removed: Tracks removed from clean copies.
        duration_histogram: Run count per DURATION_BUCKETS_MS bucket, plus
            an "inf" bucket for longer runs.
        entitlement_checks: Entitlement checks performed, and how many failed.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.started = 0
        self.completed = 0
        self.failed = 0
        self.failures_by_type: dict[str, int] = {}
        self.tracks_processed = 0
        self.tracks_added = 0
        self.tracks_removed = 0
        self.total_duration_ms = 0
        self.duration_histogram: dict[str, int] = {
            **{str(bound): 0 for bound in DURATION_BUCKETS_MS}, "inf": 0
        }
        self.entitlement_checks = 0
        self.entitlement_denied = 0

    def record_started(self) -> None:
        with self._lock:
            self.started += 1

    def record_entitlement_check(self, allowed: bool) -> None:
        with self._lock:
            self.entitlement_checks += 1
            if not allowed:
                self.entitlement_denied += 1

    def record_tracks_processed(self, count: int) -> None:
        with self._lock:
            self.tracks_processed += count

    def record_completed(self, duration_ms: int, tracks_added: int, tracks_removed: int) -> None:
        with self._lock:
            self.completed += 1
            self.tracks_added += tracks_added
            self.tracks_removed += tracks_removed
            self._observe_duration(duration_ms)

    def record_failed(self, duration_ms: int, error_type: str, tracks_added: int = 0, tracks_removed: int = 0) -> None:
        # Mutations sent before the failure stay applied, so they count too
        with self._lock:
            self.failed += 1
            self.failures_by_type[error_type] = self.failures_by_type.get(error_type, 0) + 1
            self.tracks_added += tracks_added
            self.tracks_removed += tracks_removed
            self._observe_duration(duration_ms)

    def _observe_duration(self, duration_ms: int) -> None:
        self.total_duration_ms += duration_ms
        for bound in DURATION_BUCKETS_MS:
            if duration_ms <= bound:
                self.duration_histogram[str(bound)] += 1
                return
        self.duration_histogram["inf"] += 1

    @property
    def average_duration_ms(self) -> int:
        finished = self.completed + self.failed
        return self.total_duration_ms // finished if finished else 0

    def snapshot(self) -> dict[str, Any]:
        """Copy of every counter, safe to log or serialize."""
        with self._lock:
            return {
                "started": self.started,
                "completed": self.completed,
                "failed": self.failed,
                "failures_by_type": dict(self.failures_by_type),
                "tracks_processed": self.tracks_processed,
                "tracks_added": self.tracks_added,
                "tracks_removed": self.tracks_removed,
                "average_duration_ms": self.average_duration_ms,
                "duration_histogram": dict(self.duration_histogram),
                "entitlement_checks": self.entitlement_checks,
                "entitlement_denied": self.entitlement_denied,
            }

    def summary(self) -> str:
        return (
            f"{self.started} started, {self.completed} completed, {self.failed} failed; "
            f"+{self.tracks_added} / -{self.tracks_removed} tracks, "
            f"{self.tracks_processed} matched"
        )
