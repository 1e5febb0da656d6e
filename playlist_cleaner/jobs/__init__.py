"""
Batch jobs: create a clean copy of a playlist.

    - pipeline: JobPipeline state machine (create, process, retry, progress)
    - tracker: ProgressTracker deciding when to report and persist progress
    - sinks: Where progress snapshots go (log, progress bar, nowhere)
"""

from playlist_cleaner.jobs.pipeline import JobPipeline
from playlist_cleaner.jobs.sinks import (
    LoggingProgressSink,
    NullProgressSink,
    ProgressBarSink,
    ProgressSink,
)
from playlist_cleaner.jobs.tracker import ProgressTracker, ProgressUpdate

__all__ = [
    "JobPipeline",
    "ProgressSink",
    "NullProgressSink",
    "LoggingProgressSink",
    "ProgressBarSink",
    "ProgressTracker",
    "ProgressUpdate",
]
