"""
Thread-safe SQLite database for playlist-cleaner.

This module is the persistence collaborator of the engine. It stores the
four entities of core/models.py and offers the indexed lookups the job
pipeline, sync orchestrator and scheduler need.

Schema:
    jobs:            One row per transformation run (status, counters, batch label)
    track_mappings:  One row per (job, source track), UNIQUE(job_id, source_track_id)
    sync_configs:    One row per (user, originating job), UNIQUE(user_id, original_job_id)
    sync_history:    Append-only log of sync attempts

Transactions:
    save_job_progress() writes a batch of mappings and the job counters in
    a single transaction, so persisted progress never runs ahead of (or
    behind) the persisted mappings.

Usage:
    db = Database(output_dir / "database.db")

    job = db.create_job(user_id, playlist_id, "Road Trip", "Clean - Road Trip")
    db.claim_job(job.id)
    db.save_job_progress(job.id, mappings, processed=20, matched=18, current_batch="...")
    db.complete_job(job.id, target_playlist_id, processed=40, matched=37)

    for config in db.get_due_sync_configs(datetime.now(timezone.utc)):
        ...
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator, Iterable

from playlist_cleaner.core.exceptions import DatabaseError
from playlist_cleaner.core.models import (
    Job,
    JobStatus,
    SyncConfig,
    SyncFrequency,
    SyncHistory,
    SyncHistorySummary,
    SyncStatus,
    TrackMapping,
    format_timestamp,
)


DATABASE_VERSION = 1


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS jobs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    source_playlist_id TEXT NOT NULL,
    source_playlist_name TEXT,
    target_playlist_id TEXT,
    target_playlist_name TEXT,
    status TEXT NOT NULL DEFAULT 'Pending',
    error_message TEXT,
    total_tracks INTEGER NOT NULL DEFAULT 0,
    processed_tracks INTEGER NOT NULL DEFAULT 0,
    matched_tracks INTEGER NOT NULL DEFAULT 0,
    current_batch TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS track_mappings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id INTEGER NOT NULL,
    source_track_id TEXT NOT NULL,
    source_track_name TEXT,
    source_artist TEXT,
    is_explicit INTEGER NOT NULL DEFAULT 0,
    target_track_id TEXT,
    target_track_name TEXT,
    target_artist TEXT,
    has_clean_match INTEGER NOT NULL DEFAULT 0,
    position INTEGER,
    created_at TEXT NOT NULL,
    FOREIGN KEY (job_id) REFERENCES jobs(id) ON DELETE CASCADE,
    UNIQUE(job_id, source_track_id)
);

CREATE TABLE IF NOT EXISTS sync_configs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    original_job_id INTEGER NOT NULL,
    source_playlist_id TEXT NOT NULL,
    source_playlist_name TEXT,
    target_playlist_id TEXT NOT NULL,
    target_playlist_name TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    sync_frequency TEXT NOT NULL DEFAULT 'daily',
    last_synced_at TEXT,
    last_sync_status TEXT,
    last_sync_error TEXT,
    next_scheduled_sync TEXT,
    sync_stats TEXT,  -- JSON object with the last run's counts
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (original_job_id) REFERENCES jobs(id),
    UNIQUE(user_id, original_job_id)
);

CREATE TABLE IF NOT EXISTS sync_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    sync_config_id INTEGER NOT NULL,
    started_at TEXT NOT NULL,
    completed_at TEXT,
    status TEXT NOT NULL,
    tracks_added INTEGER NOT NULL DEFAULT 0,
    tracks_removed INTEGER NOT NULL DEFAULT 0,
    tracks_unchanged INTEGER NOT NULL DEFAULT 0,
    error_message TEXT,
    execution_time_ms INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    FOREIGN KEY (sync_config_id) REFERENCES sync_configs(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status);
CREATE INDEX IF NOT EXISTS idx_jobs_user ON jobs(user_id);
CREATE INDEX IF NOT EXISTS idx_track_mappings_job ON track_mappings(job_id);
CREATE INDEX IF NOT EXISTS idx_sync_configs_user ON sync_configs(user_id);
CREATE INDEX IF NOT EXISTS idx_sync_configs_next ON sync_configs(next_scheduled_sync);
CREATE INDEX IF NOT EXISTS idx_sync_history_config ON sync_history(sync_config_id, started_at);
"""


class Database:
    """
    Thread-safe SQLite store for jobs, mappings, sync configs and history.

    Uses a single persistent connection with thread locking for safety.
    All public methods acquire self._lock before executing, and every
    sqlite3 error is re-raised as DatabaseError.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

        if not db_path.parent.exists():
            raise DatabaseError(
                f"Parent directory does not exist: {db_path.parent}",
                details={"path": str(db_path.parent)}
            )

        try:
            self._init_database()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to initialize database: {e}",
                details={"path": str(db_path)}
            ) from e

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get the persistent database connection as a context manager.

        The connection is created once and reused for all operations.
        sqlite3 errors raised inside the block are rolled back and
        wrapped in DatabaseError.
        """
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=30.0,
                check_same_thread=False  # We handle thread safety with _lock
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.execute("PRAGMA journal_mode = WAL")
        try:
            yield self._conn
        except sqlite3.Error as e:
            self._conn.rollback()
            raise DatabaseError(
                f"Database operation failed: {e}",
                details={"path": str(self.db_path), "original_error": str(e)}
            ) from e

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _init_database(self) -> None:
        with self._get_connection() as conn:
            conn.executescript(_SCHEMA_SQL)

            cursor = conn.execute("SELECT version FROM schema_version LIMIT 1")
            row = cursor.fetchone()

            if row is None:
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (DATABASE_VERSION,))
            elif row[0] != DATABASE_VERSION:
                raise DatabaseError(
                    f"Database version mismatch: expected {DATABASE_VERSION}, got {row[0]}",
                    details={"expected": DATABASE_VERSION, "actual": row[0]}
                )
            conn.commit()

    def _now_iso(self) -> str:
        return format_timestamp(datetime.now(timezone.utc))

    def _fetch_job(self, conn: sqlite3.Connection, job_id: int) -> Job | None:
        row = conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
        return Job.from_row(row) if row else None

    def _fetch_sync_config(self, conn: sqlite3.Connection, config_id: int) -> SyncConfig | None:
        row = conn.execute("SELECT * FROM sync_configs WHERE id = ?", (config_id,)).fetchone()
        return SyncConfig.from_row(row) if row else None

    def _require_job(self, conn: sqlite3.Connection, job_id: int) -> Job:
        job = self._fetch_job(conn, job_id)
        if job is None:
            raise DatabaseError(f"Job not found: {job_id}", details={"job_id": job_id})
        return job

    def _require_sync_config(self, conn: sqlite3.Connection, config_id: int) -> SyncConfig:
        config = self._fetch_sync_config(conn, config_id)
        if config is None:
            raise DatabaseError(
                f"Sync config not found: {config_id}", details={"sync_config_id": config_id}
            )
        return config

    # =========================================================================
    # Job Operations
    # =========================================================================

    def create_job(
        self,
        user_id: str,
        source_playlist_id: str,
        source_playlist_name: str,
        target_playlist_name: str,
        total_tracks: int = 0
    ) -> Job:
        """Insert a new Pending job and return it."""
        with self._lock:
            with self._get_connection() as conn:
                now = self._now_iso()
                cursor = conn.execute("""
                    INSERT INTO jobs (
                        user_id, source_playlist_id, source_playlist_name,
                        target_playlist_name, status, total_tracks,
                        created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    user_id, source_playlist_id, source_playlist_name,
                    target_playlist_name, JobStatus.PENDING.value, total_tracks,
                    now, now
                ))
                conn.commit()
                return self._require_job(conn, cursor.lastrowid)

    def get_job(self, job_id: int) -> Job | None:
        with self._lock:
            with self._get_connection() as conn:
                return self._fetch_job(conn, job_id)

    def get_jobs_by_status(self, status: JobStatus) -> list[Job]:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "SELECT * FROM jobs WHERE status = ? ORDER BY created_at, id",
                    (JobStatus(status).value,)
                )
                return [Job.from_row(row) for row in cursor.fetchall()]

    def get_user_jobs(self, user_id: str) -> list[Job]:
        """Get all jobs of a user, newest first."""
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "SELECT * FROM jobs WHERE user_id = ? ORDER BY created_at DESC, id DESC",
                    (user_id,)
                )
                return [Job.from_row(row) for row in cursor.fetchall()]

    def claim_job(self, job_id: int, current_batch: str = "Starting") -> Job | None:
        """
        Move a Pending (or stale Processing) job to Processing.

        Counters are reset and mappings from any earlier attempt are
        deleted, so every run starts from track 0.

        Returns:
            The claimed job, or None if the job does not exist or is in
            a status that cannot be claimed (Completed, Failed).
        """
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    UPDATE jobs
                    SET status = ?, processed_tracks = 0, matched_tracks = 0,
                        current_batch = ?, error_message = NULL, updated_at = ?
                    WHERE id = ? AND status IN (?, ?)
                """, (
                    JobStatus.PROCESSING.value, current_batch, self._now_iso(), job_id,
                    JobStatus.PENDING.value, JobStatus.PROCESSING.value
                ))
                if cursor.rowcount == 0:
                    conn.rollback()
                    return None
                conn.execute("DELETE FROM track_mappings WHERE job_id = ?", (job_id,))
                conn.commit()
                return self._fetch_job(conn, job_id)

    def update_job_total(self, job_id: int, total_tracks: int) -> None:
        """Record the number of unique source tracks once they are fetched."""
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "UPDATE jobs SET total_tracks = ?, updated_at = ? WHERE id = ?",
                    (total_tracks, self._now_iso(), job_id)
                )
                if cursor.rowcount == 0:
                    raise DatabaseError(f"Job not found: {job_id}", details={"job_id": job_id})
                conn.commit()

    def save_job_progress(
        self,
        job_id: int,
        mappings: Iterable[TrackMapping],
        processed_tracks: int,
        matched_tracks: int,
        current_batch: str | None
    ) -> int:
        """
        Persist a batch of mappings and the job counters in one transaction.

        Args:
            job_id: Job the mappings belong to.
            mappings: Mappings resolved since the last save. A mapping for a
                      source track that already has one is ignored.
            processed_tracks: Counter value after this batch.
            matched_tracks: Counter value after this batch.
            current_batch: Label of the batch being reported.

        Returns:
            Number of mappings inserted.

        Raises:
            DatabaseError: If the job does not exist or the write fails.
                           Nothing from the batch is committed in that case.
        """
        with self._lock:
            with self._get_connection() as conn:
                inserted = self._insert_mappings(conn, job_id, mappings)
                cursor = conn.execute("""
                    UPDATE jobs
                    SET processed_tracks = ?, matched_tracks = ?, current_batch = ?, updated_at = ?
                    WHERE id = ?
                """, (processed_tracks, matched_tracks, current_batch, self._now_iso(), job_id))
                if cursor.rowcount == 0:
                    conn.rollback()
                    raise DatabaseError(f"Job not found: {job_id}", details={"job_id": job_id})
                conn.commit()
                return inserted

    def set_job_target_playlist(self, job_id: int, target_playlist_id: str) -> None:
        """Record the clean copy as soon as it is created, before tracks are added."""
        with self._lock:
            with self._get_connection() as conn:
                conn.execute(
                    "UPDATE jobs SET target_playlist_id = ?, updated_at = ? WHERE id = ?",
                    (target_playlist_id, self._now_iso(), job_id)
                )
                conn.commit()

    def complete_job(
        self,
        job_id: int,
        target_playlist_id: str,
        processed_tracks: int,
        matched_tracks: int
    ) -> Job:
        with self._lock:
            with self._get_connection() as conn:
                conn.execute("""
                    UPDATE jobs
                    SET status = ?, target_playlist_id = ?, processed_tracks = ?,
                        matched_tracks = ?, current_batch = 'Completed',
                        error_message = NULL, updated_at = ?
                    WHERE id = ?
                """, (
                    JobStatus.COMPLETED.value, target_playlist_id, processed_tracks,
                    matched_tracks, self._now_iso(), job_id
                ))
                conn.commit()
                return self._require_job(conn, job_id)

    def fail_job(self, job_id: int, error_message: str) -> Job:
        with self._lock:
            with self._get_connection() as conn:
                conn.execute("""
                    UPDATE jobs SET status = ?, error_message = ?, updated_at = ?
                    WHERE id = ?
                """, (JobStatus.FAILED.value, error_message, self._now_iso(), job_id))
                conn.commit()
                return self._require_job(conn, job_id)

    def reset_job(self, job_id: int) -> Job | None:
        """
        Move a Failed job back to Pending so it can be processed from zero.

        Returns:
            The reset job, or None if the job does not exist or is not Failed.
        """
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    UPDATE jobs
                    SET status = ?, error_message = NULL, processed_tracks = 0,
                        matched_tracks = 0, current_batch = NULL, updated_at = ?
                    WHERE id = ? AND status = ?
                """, (JobStatus.PENDING.value, self._now_iso(), job_id, JobStatus.FAILED.value))
                if cursor.rowcount == 0:
                    conn.rollback()
                    return None
                conn.execute("DELETE FROM track_mappings WHERE job_id = ?", (job_id,))
                conn.commit()
                return self._fetch_job(conn, job_id)

    # =========================================================================
    # Track Mappings
    # =========================================================================

    def _insert_mappings(
        self,
        conn: sqlite3.Connection,
        job_id: int,
        mappings: Iterable[TrackMapping]
    ) -> int:
        now = self._now_iso()
        inserted = 0
        for mapping in mappings:
            cursor = conn.execute("""
                INSERT INTO track_mappings (
                    job_id, source_track_id, source_track_name, source_artist,
                    is_explicit, target_track_id, target_track_name, target_artist,
                    has_clean_match, position, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(job_id, source_track_id) DO NOTHING
            """, (
                job_id, mapping.source_track_id, mapping.source_track_name,
                mapping.source_artist, 1 if mapping.is_explicit else 0,
                mapping.target_track_id, mapping.target_track_name, mapping.target_artist,
                1 if mapping.has_clean_match else 0, mapping.position, now
            ))
            inserted += cursor.rowcount
        return inserted

    def add_track_mappings(self, job_id: int, mappings: Iterable[TrackMapping]) -> int:
        """
        Insert mappings for a job, ignoring source tracks that already have one.

        Returns:
            Number of mappings inserted.
        """
        with self._lock:
            with self._get_connection() as conn:
                inserted = self._insert_mappings(conn, job_id, mappings)
                conn.commit()
                return inserted

    def get_track_mappings(self, job_id: int) -> list[TrackMapping]:
        """Get all mappings of a job in source-playlist order."""
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    SELECT * FROM track_mappings WHERE job_id = ?
                    ORDER BY position IS NULL, position, id
                """, (job_id,))
                return [TrackMapping.from_row(row) for row in cursor.fetchall()]

    def delete_track_mappings(self, job_id: int) -> int:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("DELETE FROM track_mappings WHERE job_id = ?", (job_id,))
                conn.commit()
                return cursor.rowcount

    # =========================================================================
    # Sync Configs
    # =========================================================================

    def create_sync_config(
        self,
        user_id: str,
        job: Job,
        frequency: SyncFrequency,
        next_scheduled_sync: datetime | None
    ) -> SyncConfig:
        """
        Create an active sync config for a completed job.

        Raises:
            DatabaseError: If a config already exists for (user, job).
        """
        with self._lock:
            with self._get_connection() as conn:
                now = self._now_iso()
                cursor = conn.execute("""
                    INSERT INTO sync_configs (
                        user_id, original_job_id, source_playlist_id, source_playlist_name,
                        target_playlist_id, target_playlist_name, is_active, sync_frequency,
                        next_scheduled_sync, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, 1, ?, ?, ?, ?)
                """, (
                    user_id, job.id, job.source_playlist_id, job.source_playlist_name,
                    job.target_playlist_id, job.target_playlist_name,
                    SyncFrequency(frequency).value, format_timestamp(next_scheduled_sync),
                    now, now
                ))
                conn.commit()
                return self._require_sync_config(conn, cursor.lastrowid)

    def get_sync_config(self, config_id: int) -> SyncConfig | None:
        with self._lock:
            with self._get_connection() as conn:
                return self._fetch_sync_config(conn, config_id)

    def get_sync_config_for_job(self, user_id: str, job_id: int) -> SyncConfig | None:
        with self._lock:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM sync_configs WHERE user_id = ? AND original_job_id = ?",
                    (user_id, job_id)
                ).fetchone()
                return SyncConfig.from_row(row) if row else None

    def get_user_sync_configs(self, user_id: str) -> list[SyncConfig]:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "SELECT * FROM sync_configs WHERE user_id = ? ORDER BY created_at, id",
                    (user_id,)
                )
                return [SyncConfig.from_row(row) for row in cursor.fetchall()]

    def get_due_sync_configs(self, before: datetime) -> list[SyncConfig]:
        """Get active configs whose next scheduled sync is at or before `before`."""
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    SELECT * FROM sync_configs
                    WHERE is_active = 1
                    AND next_scheduled_sync IS NOT NULL
                    AND next_scheduled_sync <= ?
                    ORDER BY next_scheduled_sync, id
                """, (format_timestamp(before),))
                return [SyncConfig.from_row(row) for row in cursor.fetchall()]

    def set_sync_config_active(
        self,
        config_id: int,
        is_active: bool,
        next_scheduled_sync: datetime | None = None
    ) -> SyncConfig:
        """Activate or deactivate a config, replacing its next scheduled sync."""
        with self._lock:
            with self._get_connection() as conn:
                conn.execute("""
                    UPDATE sync_configs
                    SET is_active = ?, next_scheduled_sync = ?, updated_at = ?
                    WHERE id = ?
                """, (
                    1 if is_active else 0, format_timestamp(next_scheduled_sync),
                    self._now_iso(), config_id
                ))
                conn.commit()
                return self._require_sync_config(conn, config_id)

    def update_sync_frequency(
        self,
        config_id: int,
        frequency: SyncFrequency,
        next_scheduled_sync: datetime | None
    ) -> SyncConfig:
        with self._lock:
            with self._get_connection() as conn:
                conn.execute("""
                    UPDATE sync_configs
                    SET sync_frequency = ?, next_scheduled_sync = ?, updated_at = ?
                    WHERE id = ?
                """, (
                    SyncFrequency(frequency).value, format_timestamp(next_scheduled_sync),
                    self._now_iso(), config_id
                ))
                conn.commit()
                return self._require_sync_config(conn, config_id)

    def update_last_sync(
        self,
        config_id: int,
        synced_at: datetime,
        status: SyncStatus,
        error: str | None,
        next_scheduled_sync: datetime | None,
        sync_stats: dict[str, Any] | None = None
    ) -> SyncConfig:
        """Record the outcome of a sync run on its config."""
        with self._lock:
            with self._get_connection() as conn:
                conn.execute("""
                    UPDATE sync_configs
                    SET last_synced_at = ?, last_sync_status = ?, last_sync_error = ?,
                        next_scheduled_sync = ?, sync_stats = COALESCE(?, sync_stats),
                        updated_at = ?
                    WHERE id = ?
                """, (
                    format_timestamp(synced_at), SyncStatus(status).value, error,
                    format_timestamp(next_scheduled_sync),
                    json.dumps(sync_stats) if sync_stats is not None else None,
                    self._now_iso(), config_id
                ))
                conn.commit()
                return self._require_sync_config(conn, config_id)

    # =========================================================================
    # Sync History
    # =========================================================================

    def create_sync_history(self, config_id: int, started_at: datetime) -> SyncHistory:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    INSERT INTO sync_history (sync_config_id, started_at, status, created_at)
                    VALUES (?, ?, ?, ?)
                """, (
                    config_id, format_timestamp(started_at),
                    SyncStatus.RUNNING.value, self._now_iso()
                ))
                conn.commit()
                row = conn.execute(
                    "SELECT * FROM sync_history WHERE id = ?", (cursor.lastrowid,)
                ).fetchone()
                return SyncHistory.from_row(row)

    def _finalize_sync_history(
        self,
        history_id: int,
        status: SyncStatus,
        completed_at: datetime,
        tracks_added: int,
        tracks_removed: int,
        tracks_unchanged: int,
        execution_time_ms: int,
        error_message: str | None
    ) -> None:
        with self._lock:
            with self._get_connection() as conn:
                # Only running rows are finalized; history is immutable afterwards
                cursor = conn.execute("""
                    UPDATE sync_history
                    SET status = ?, completed_at = ?, tracks_added = ?, tracks_removed = ?,
                        tracks_unchanged = ?, execution_time_ms = ?, error_message = ?
                    WHERE id = ? AND status = ?
                """, (
                    status.value, format_timestamp(completed_at), tracks_added,
                    tracks_removed, tracks_unchanged, execution_time_ms, error_message,
                    history_id, SyncStatus.RUNNING.value
                ))
                if cursor.rowcount == 0:
                    conn.rollback()
                    raise DatabaseError(
                        f"Sync history {history_id} not found or already finalized",
                        details={"sync_history_id": history_id}
                    )
                conn.commit()

    def complete_sync_history(
        self,
        history_id: int,
        completed_at: datetime,
        tracks_added: int,
        tracks_removed: int,
        tracks_unchanged: int,
        execution_time_ms: int
    ) -> None:
        self._finalize_sync_history(
            history_id, SyncStatus.COMPLETED, completed_at, tracks_added,
            tracks_removed, tracks_unchanged, execution_time_ms, None
        )

    def fail_sync_history(
        self,
        history_id: int,
        completed_at: datetime,
        error_message: str,
        tracks_added: int = 0,
        tracks_removed: int = 0,
        tracks_unchanged: int = 0,
        execution_time_ms: int = 0
    ) -> None:
        self._finalize_sync_history(
            history_id, SyncStatus.FAILED, completed_at, tracks_added,
            tracks_removed, tracks_unchanged, execution_time_ms, error_message
        )

    def get_sync_history(self, config_id: int, limit: int = 20) -> list[SyncHistory]:
        """Get the most recent sync attempts of a config, newest first."""
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    SELECT * FROM sync_history WHERE sync_config_id = ?
                    ORDER BY started_at DESC, id DESC
                    LIMIT ?
                """, (config_id, limit))
                return [SyncHistory.from_row(row) for row in cursor.fetchall()]

    def get_sync_summary(self, config_id: int) -> SyncHistorySummary:
        """Totals over the completed and failed runs of a config."""
        with self._lock:
            with self._get_connection() as conn:
                row = conn.execute("""
                    SELECT
                        COUNT(*) AS runs,
                        SUM(CASE WHEN status = ? THEN 1 ELSE 0 END) AS completed,
                        SUM(CASE WHEN status = ? THEN 1 ELSE 0 END) AS failed,
                        SUM(tracks_added) AS tracks_added,
                        SUM(tracks_removed) AS tracks_removed,
                        AVG(execution_time_ms) AS average_execution_time_ms
                    FROM sync_history
                    WHERE sync_config_id = ? AND status IN (?, ?)
                """, (
                    SyncStatus.COMPLETED.value, SyncStatus.FAILED.value, config_id,
                    SyncStatus.COMPLETED.value, SyncStatus.FAILED.value
                )).fetchone()
                return SyncHistorySummary.from_row(row)
