"""
Adaptive progress reporting for batch jobs.

ProgressTracker decides, for a job of N tracks, when a progress snapshot
should be broadcast (cheap, ephemeral) and when it should be persisted
(durable write, batched more coarsely). Report frequency scales with the
playlist size, so a 10-track and a 10,000-track playlist both produce
about 20 updates.

Batching:
    batch_size = max(1, ceil(N * report_threshold_percent / 100))

    With the default 5% threshold this is N/20 rounded up, which bounds
    batch-boundary reports to at most 20 for every N. Index i (number of
    processed tracks) belongs to batch 0 when i == 0, else (i - 1) // batch_size.

Reporting:
    A report is due at the start (i == 0), at the end (i == N), whenever i
    enters a batch not reported yet, or when more than max_report_interval
    seconds passed since the last report.

Persisting:
    A persist is due at the end, or when the percentage moved by at least
    persist_threshold_percent since the last persist.

Usage:
    tracker = ProgressTracker(total_tracks=120)

    for i, track in enumerate(tracks, start=1):
        ...
        if tracker.should_report_progress(i):
            sink.broadcast(job_id, tracker.create_update(i, track.name))
        if tracker.should_persist_progress(i):
            database.save_job_progress(...)
            tracker.mark_persisted(i)
"""

import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable


DEFAULT_REPORT_THRESHOLD_PERCENT = 5
DEFAULT_PERSIST_THRESHOLD_PERCENT = 10

# Longest silence between two reports, in seconds
DEFAULT_MAX_REPORT_INTERVAL = 10.0


@dataclass(frozen=True)
class ProgressUpdate:
    """
    Snapshot of a job's progress, as broadcast to progress sinks.

    Attributes:
        percent: 0 at the start, floor(processed * 100 / total) afterwards.
        processed: Tracks processed so far.
        total: Unique tracks in the job.
        current_batch: Human-readable batch label, e.g. "Processing tracks 41-60".
        message: Contextual message, e.g. "Processing: HUMBLE.".
        timestamp: When the snapshot was created (UTC).
    """
    percent: int
    processed: int
    total: int
    current_batch: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ProgressTracker:
    """
    Decides when to report and persist the progress of one job.

    Instances are not thread-safe; the pipeline drives them from the single
    thread that applies results in source order.

    Attributes:
        total_tracks: Number of tracks in the job (>= 1).
        batch_size: Tracks per reporting batch.
        total_batches: Number of reporting batches.
    """

    def __init__(
        self,
        total_tracks: int,
        report_threshold_percent: int = DEFAULT_REPORT_THRESHOLD_PERCENT,
        persist_threshold_percent: int = DEFAULT_PERSIST_THRESHOLD_PERCENT,
        max_report_interval: float = DEFAULT_MAX_REPORT_INTERVAL,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        """
        Raises:
            ValueError: If total_tracks <= 0, a threshold is outside (0, 100],
                        or the persist threshold is finer than the report one.
        """
        if total_tracks <= 0:
            raise ValueError(f"total_tracks must be positive, got {total_tracks}")
        for name, value in (
            ("report_threshold_percent", report_threshold_percent),
            ("persist_threshold_percent", persist_threshold_percent),
        ):
            if not 0 < value <= 100:
                raise ValueError(f"{name} must be in (0, 100], got {value}")
        if persist_threshold_percent < report_threshold_percent:
            raise ValueError(
                "persist_threshold_percent must be >= report_threshold_percent "
                f"({persist_threshold_percent} < {report_threshold_percent})"
            )

        self.total_tracks = total_tracks
        self.report_threshold_percent = report_threshold_percent
        self.persist_threshold_percent = persist_threshold_percent
        self.max_report_interval = max_report_interval
        self._clock = clock

        self.batch_size = max(1, math.ceil(total_tracks * report_threshold_percent / 100))
        self.total_batches = math.ceil(total_tracks / self.batch_size)

        self._last_reported_batch = -1
        self._last_report_time = clock()
        self._last_persisted_percent: int | None = None

    @property
    def expected_update_count(self) -> int:
        """Batch-boundary reports over a full run, the start report included."""
        return self.total_batches + 1

    def _check_index(self, current_index: int) -> None:
        if not 0 <= current_index <= self.total_tracks:
            raise ValueError(
                f"current_index must be in [0, {self.total_tracks}], got {current_index}"
            )

    def batch_index(self, current_index: int) -> int:
        self._check_index(current_index)
        if current_index == 0:
            return 0
        return (current_index - 1) // self.batch_size

    def percent(self, current_index: int) -> int:
        self._check_index(current_index)
        if current_index == 0:
            return 0
        return current_index * 100 // self.total_tracks

    def should_report_progress(self, current_index: int) -> bool:
        """
        Whether a snapshot should be broadcast after current_index tracks.

        Pure query: call create_update() to record the report.

        Raises:
            ValueError: If current_index is outside [0, total_tracks].
        """
        self._check_index(current_index)
        if current_index == 0 or current_index == self.total_tracks:
            return True
        if self.batch_index(current_index) > self._last_reported_batch:
            return True
        return self._clock() - self._last_report_time > self.max_report_interval

    def should_persist_progress(self, current_index: int) -> bool:
        """
        Whether progress should be written to the database after current_index tracks.

        Raises:
            ValueError: If current_index is outside [0, total_tracks].
        """
        self._check_index(current_index)
        if current_index == self.total_tracks or self._last_persisted_percent is None:
            return True
        delta = self.percent(current_index) - self._last_persisted_percent
        return delta >= self.persist_threshold_percent

    def mark_persisted(self, current_index: int) -> None:
        self._last_persisted_percent = self.percent(current_index)

    def batch_label(self, current_index: int) -> str:
        """Label of the batch current_index falls in, e.g. "Processing tracks 41-60"."""
        batch = self.batch_index(current_index)
        first = batch * self.batch_size + 1
        last = min((batch + 1) * self.batch_size, self.total_tracks)
        return f"Processing tracks {first}-{last}"

    def create_update(self, current_index: int, track_name: str | None = None) -> ProgressUpdate:
        """
        Build the snapshot for current_index and record it as reported.

        Raises:
            ValueError: If current_index is outside [0, total_tracks].
        """
        batch = self.batch_index(current_index)

        if current_index == 0:
            message = "Initializing playlist processing..."
            label = "Starting batch 1"
        elif current_index == self.total_tracks:
            message = "Finalizing playlist creation..."
            label = f"Completed all {self.total_batches} batches"
        elif track_name:
            message = f"Processing: {track_name}"
            label = self.batch_label(current_index)
        else:
            message = f"Processing batch {batch + 1} of {self.total_batches}"
            label = self.batch_label(current_index)

        self._last_reported_batch = max(self._last_reported_batch, batch)
        self._last_report_time = self._clock()

        return ProgressUpdate(
            percent=self.percent(current_index),
            processed=current_index,
            total=self.total_tracks,
            current_batch=label,
            message=message,
        )
