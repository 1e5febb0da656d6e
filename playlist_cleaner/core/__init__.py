"""
Core module for playlist-cleaner.

This module provides the foundational components used throughout the application:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading and validation
    - models: Persisted entities (Job, TrackMapping, SyncConfig, SyncHistory)
    - database: Thread-safe SQLite store
    - logger: Logging system with multiple outputs

Usage:
    from playlist_cleaner.core import (
        Config, load_config,
        Database,
        setup_logging, get_logger,
        PlaylistCleanerError, ConfigError, DatabaseError
    )
"""

from playlist_cleaner.core.config import (
    Config,
    JobsConfig,
    MatchingConfig,
    OutputConfig,
    SchedulerConfig,
    SpotifyConfig,
    load_config,
)
from playlist_cleaner.core.database import Database
from playlist_cleaner.core.exceptions import (
    ConfigError,
    DatabaseError,
    JobError,
    OperationCancelledError,
    PlaylistCleanerError,
    SpotifyError,
    SyncError,
)
from playlist_cleaner.core.logger import (
    get_logger,
    log_unmatched_track,
    setup_logging,
    shutdown_logging,
)
from playlist_cleaner.core.models import (
    Job,
    JobStatus,
    SyncConfig,
    SyncFrequency,
    SyncHistory,
    SyncHistorySummary,
    SyncStatus,
    TrackMapping,
)

__all__ = [
    # Config
    "Config",
    "SpotifyConfig",
    "OutputConfig",
    "MatchingConfig",
    "JobsConfig",
    "SchedulerConfig",
    "load_config",
    # Database
    "Database",
    # Models
    "Job",
    "JobStatus",
    "TrackMapping",
    "SyncConfig",
    "SyncFrequency",
    "SyncHistory",
    "SyncHistorySummary",
    "SyncStatus",
    # Exceptions
    "PlaylistCleanerError",
    "ConfigError",
    "DatabaseError",
    "SpotifyError",
    "JobError",
    "SyncError",
    "OperationCancelledError",
    # Logger
    "setup_logging",
    "get_logger",
    "log_unmatched_track",
    "shutdown_logging",
]
