"""
Recurring synchronization of clean copies.

    - delta: Pure diff between a source playlist and its clean copy
    - schedule: Next-run computation per sync frequency
    - metrics: In-process run counters and per-phase timings
    - orchestrator: SyncOrchestrator (run, enable, disable, history)
    - scheduler: SyncScheduler polling due configs
"""

from playlist_cleaner.sync.delta import PlaylistDelta, compute_delta
from playlist_cleaner.sync.metrics import PhaseTimer, SyncMetrics
from playlist_cleaner.sync.orchestrator import SyncOrchestrator, SyncResult, plan_insertions
from playlist_cleaner.sync.schedule import next_run_time, parse_frequency
from playlist_cleaner.sync.scheduler import SyncScheduler

__all__ = [
    "PlaylistDelta",
    "compute_delta",
    "next_run_time",
    "parse_frequency",
    "PhaseTimer",
    "plan_insertions",
    "SyncOrchestrator",
    "SyncMetrics",
    "SyncResult",
    "SyncScheduler",
]
