"""
Persisted domain models for playlist-cleaner.

This module defines the four entities stored by the Database:

    Job:          One playlist transformation run (source -> clean copy)
    TrackMapping: Resolution of one source track within a job
    SyncConfig:   Recurring synchronization between a source and its clean copy
    SyncHistory:  Append-only record of one sync attempt

Design Decisions:
    - All dataclasses are frozen; updates go through the Database, which
      returns fresh instances (read-modify-write against the store)
    - Timestamps are timezone-aware UTC datetimes in Python and ISO 8601
      strings in SQLite
    - Status and frequency values are str enums so they compare equal to
      the raw strings stored in the database
"""

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class JobStatus(str, Enum):
    """Job lifecycle: Pending -> Processing -> {Completed, Failed}."""
    PENDING = "Pending"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    FAILED = "Failed"


class SyncFrequency(str, Enum):
    """How often a sync config runs. MANUAL configs are never scheduled."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MANUAL = "manual"


class SyncStatus(str, Enum):
    """Status of a sync run (history rows and SyncConfig.last_sync_status)."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO 8601 string from the database, or pass None through."""
    if value is None:
        return None
    return datetime.fromisoformat(value)


def format_timestamp(value: datetime | None) -> str | None:
    """
    Format a datetime for storage, or pass None through.

    Always UTC with microseconds, so stored values compare correctly as
    strings (the due-sync query relies on this). Naive datetimes are
    taken to be UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


@dataclass(frozen=True)
class Job:
    """
    Immutable snapshot of one transformation run.

    Attributes:
        id: Database identifier.
        user_id: Owning user (Spotify user id).
        source_playlist_id: Spotify id of the playlist being cleaned.
        source_playlist_name: Display name of the source playlist.
        target_playlist_id: Spotify id of the clean copy, None until created.
        target_playlist_name: Name used when creating the clean copy.
        status: Current JobStatus.
        error_message: Failure message when status is Failed.
        total_tracks: Unique tracks in the source playlist.
        processed_tracks: Tracks resolved and persisted so far.
        matched_tracks: Tracks that will appear in the clean copy.
        current_batch: Human-readable batch label from the last persisted snapshot.
        created_at: Creation time (UTC).
        updated_at: Last modification time (UTC).
    """
    id: int
    user_id: str
    source_playlist_id: str
    source_playlist_name: str
    target_playlist_id: str | None
    target_playlist_name: str
    status: JobStatus
    error_message: str | None
    total_tracks: int
    processed_tracks: int
    matched_tracks: int
    current_batch: str | None
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Job":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            source_playlist_id=row["source_playlist_id"],
            source_playlist_name=row["source_playlist_name"] or "",
            target_playlist_id=row["target_playlist_id"],
            target_playlist_name=row["target_playlist_name"] or "",
            status=JobStatus(row["status"]),
            error_message=row["error_message"],
            total_tracks=row["total_tracks"],
            processed_tracks=row["processed_tracks"],
            matched_tracks=row["matched_tracks"],
            current_batch=row["current_batch"],
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )


@dataclass(frozen=True)
class TrackMapping:
    """
    Resolution of one source track.

    Exactly one mapping exists per (job, source track). For a track that
    is not explicit, has_clean_match is True and the target fields mirror
    the source. For an explicit track without a clean alternative,
    has_clean_match is False and the target fields are None.

    Attributes:
        job_id: Owning job. None until the mapping is persisted.
        source_track_id: Spotify id of the source track.
        source_track_name: Title of the source track.
        source_artist: Comma-separated artist names of the source track.
        is_explicit: Whether the source track is flagged explicit.
        target_track_id: Spotify id of the track placed in the clean copy.
        target_track_name: Title of the target track.
        target_artist: Comma-separated artist names of the target track.
        has_clean_match: Whether the track ends up in the clean copy.
        position: 0-based index in the source playlist when resolved.
        created_at: Creation time (UTC), None until persisted.
    """
    source_track_id: str
    source_track_name: str
    source_artist: str
    is_explicit: bool
    has_clean_match: bool
    target_track_id: str | None = None
    target_track_name: str | None = None
    target_artist: str | None = None
    position: int | None = None
    job_id: int | None = None
    created_at: datetime | None = None

    @property
    def was_replaced(self) -> bool:
        """True if an explicit track was swapped for a different clean track."""
        return (
            self.is_explicit
            and self.has_clean_match
            and self.target_track_id is not None
            and self.target_track_id != self.source_track_id
        )

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "TrackMapping":
        return cls(
            job_id=row["job_id"],
            source_track_id=row["source_track_id"],
            source_track_name=row["source_track_name"] or "",
            source_artist=row["source_artist"] or "",
            is_explicit=bool(row["is_explicit"]),
            target_track_id=row["target_track_id"],
            target_track_name=row["target_track_name"],
            target_artist=row["target_artist"],
            has_clean_match=bool(row["has_clean_match"]),
            position=row["position"],
            created_at=parse_timestamp(row["created_at"]),
        )


@dataclass(frozen=True)
class SyncConfig:
    """
    An enabled recurring synchronization between a source and a clean copy.

    Attributes:
        id: Database identifier.
        user_id: Owning user.
        original_job_id: Job that created the clean copy; its mappings are
                         the "already resolved" set for every sync run.
        source_playlist_id: Spotify id of the source playlist.
        source_playlist_name: Display name of the source playlist.
        target_playlist_id: Spotify id of the clean copy.
        target_playlist_name: Display name of the clean copy.
        is_active: False once disabled by the user or on lost entitlement.
        sync_frequency: SyncFrequency of automatic runs.
        last_synced_at: End time of the most recent run.
        last_sync_status: SyncStatus of the most recent run.
        last_sync_error: Error message of the most recent failed run.
        next_scheduled_sync: When the scheduler should run this config next.
        sync_stats: Counts from the most recent run.
        created_at: Creation time (UTC).
        updated_at: Last modification time (UTC).
    """
    id: int
    user_id: str
    original_job_id: int
    source_playlist_id: str
    source_playlist_name: str
    target_playlist_id: str
    target_playlist_name: str
    is_active: bool
    sync_frequency: SyncFrequency
    last_synced_at: datetime | None
    last_sync_status: SyncStatus | None
    last_sync_error: str | None
    next_scheduled_sync: datetime | None
    sync_stats: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "SyncConfig":
        stats = row["sync_stats"]
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            original_job_id=row["original_job_id"],
            source_playlist_id=row["source_playlist_id"],
            source_playlist_name=row["source_playlist_name"] or "",
            target_playlist_id=row["target_playlist_id"],
            target_playlist_name=row["target_playlist_name"] or "",
            is_active=bool(row["is_active"]),
            sync_frequency=SyncFrequency(row["sync_frequency"]),
            last_synced_at=parse_timestamp(row["last_synced_at"]),
            last_sync_status=SyncStatus(row["last_sync_status"]) if row["last_sync_status"] else None,
            last_sync_error=row["last_sync_error"],
            next_scheduled_sync=parse_timestamp(row["next_scheduled_sync"]),
            sync_stats=json.loads(stats) if stats else {},
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )


@dataclass(frozen=True)
class SyncHistory:
    """
    One sync attempt. Created as running, finalized once, never changed after.
    """
    id: int
    sync_config_id: int
    started_at: datetime
    completed_at: datetime | None
    status: SyncStatus
    tracks_added: int
    tracks_removed: int
    tracks_unchanged: int
    error_message: str | None
    execution_time_ms: int
    created_at: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "SyncHistory":
        return cls(
            id=row["id"],
            sync_config_id=row["sync_config_id"],
            started_at=parse_timestamp(row["started_at"]),
            completed_at=parse_timestamp(row["completed_at"]),
            status=SyncStatus(row["status"]),
            tracks_added=row["tracks_added"],
            tracks_removed=row["tracks_removed"],
            tracks_unchanged=row["tracks_unchanged"],
            error_message=row["error_message"],
            execution_time_ms=row["execution_time_ms"],
            created_at=parse_timestamp(row["created_at"]),
        )


@dataclass(frozen=True)
class SyncHistorySummary:
    """Aggregate over every finished run of a config."""
    runs: int = 0
    completed: int = 0
    failed: int = 0
    tracks_added: int = 0
    tracks_removed: int = 0
    average_execution_time_ms: int = 0

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "SyncHistorySummary":
        return cls(
            runs=row["runs"] or 0,
            completed=row["completed"] or 0,
            failed=row["failed"] or 0,
            tracks_added=row["tracks_added"] or 0,
            tracks_removed=row["tracks_removed"] or 0,
            average_execution_time_ms=int(row["average_execution_time_ms"] or 0),
        )
