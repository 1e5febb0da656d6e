"""
Batch job pipeline: copy a playlist into its clean version.

A job goes through a small state machine:

    Pending -> Processing -> {Completed, Failed}

process_job() claims a Pending job, walks the source playlist in source
order, resolves every track with the TrackMatcher, writes one
TrackMapping per track and reports progress through a ProgressSink. After
the last track it creates the clean playlist and fills it with every track
that has a clean match, in source order.

Workflow:
    1. Claim the job (Processing, counters reset, old mappings dropped)
    2. Fetch the source tracks (paged), keeping the first of any duplicates
    3. Resolve tracks in windows: lookups run in parallel, results are
       applied strictly in source order
    4. Broadcast snapshots when the ProgressTracker says report; write
       mappings + counters + batch label in one transaction when it says
       persist
    5. Create the target playlist (if the job has none) and add the tracks
    6. Mark the job Completed

Failure Handling:
    Any exception from steps 2-6 flushes the mappings already resolved,
    marks the job Failed with the error message, and is re-raised. Mappings
    are never rolled back. A job that fails before step 5 has no target
    playlist. A Failed job can be reset with retry_job() and restarts from
    the first track.

Usage:
    pipeline = JobPipeline(database, SpotifyClient(), matcher, LoggingProgressSink())

    job = pipeline.create_job(user_id, playlist_id)
    job = pipeline.process_job(job.id)
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Sequence

from playlist_cleaner.core.config import JobsConfig
from playlist_cleaner.core.database import Database
from playlist_cleaner.core.exceptions import JobError
from playlist_cleaner.core.logger import get_logger
from playlist_cleaner.core.models import Job, JobStatus, TrackMapping
from playlist_cleaner.jobs.sinks import NullProgressSink, ProgressSink
from playlist_cleaner.jobs.tracker import ProgressTracker, ProgressUpdate
from playlist_cleaner.matching.matcher import TrackMatcher
from playlist_cleaner.spotify.models import Track
from playlist_cleaner.utils.cancellation import CancellationToken


logger = get_logger(__name__)


TARGET_NAME_PREFIX = "Clean - "
TARGET_DESCRIPTION = "Clean version of {name} created by playlist-cleaner"


def default_target_name(source_name: str) -> str:
    return f"{TARGET_NAME_PREFIX}{source_name}"


def completion_message(processed: int, matched: int) -> str:
    return f"Processed {processed} tracks, matched {matched} clean versions"


def dedupe_tracks(tracks: Sequence[Track]) -> list[Track]:
    """Drop repeated track ids, keeping the first occurrence."""
    seen: set[str] = set()
    unique: list[Track] = []
    for track in tracks:
        if track.spotify_id in seen:
            continue
        seen.add(track.spotify_id)
        unique.append(track)
    return unique


@dataclass
class _JobRunState:
    """Counters and buffered mappings of one process_job() run."""
    processed: int = 0
    matched: int = 0
    current_batch: str | None = "Starting"
    pending: list[TrackMapping] = field(default_factory=list)
    resolved: list[TrackMapping] = field(default_factory=list)

    def add(self, mapping: TrackMapping) -> None:
        self.pending.append(mapping)
        self.resolved.append(mapping)
        self.processed += 1
        if mapping.has_clean_match:
            self.matched += 1


class JobPipeline:
    """
    Runs clean-copy jobs.

    Attributes:
        _database: Store for jobs and mappings.
        _client: Music-platform client (playlist reads and mutations).
        _matcher: Resolves each source track.
        _progress_sink: Receives progress snapshots (best-effort).
        _jobs_config: Progress thresholds and job timeout.

    Concurrency:
        At most one process_job() may run per job id. Lookups inside a run
        are parallel; everything else happens on the calling thread.
    """

    def __init__(
        self,
        database: Database,
        client,
        matcher: TrackMatcher,
        progress_sink: ProgressSink | None = None,
        jobs_config: JobsConfig | None = None,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._database = database
        self._client = client
        self._matcher = matcher
        self._progress_sink = progress_sink or NullProgressSink()
        self._jobs_config = jobs_config or JobsConfig()
        self._clock = clock

    # =========================================================================
    # Job Lifecycle
    # =========================================================================

    def create_job(
        self,
        user_id: str,
        source_playlist_id: str,
        target_playlist_name: str | None = None
    ) -> Job:
        """
        Create a Pending job for a source playlist.

        Args:
            user_id: Owning user.
            source_playlist_id: Spotify id of the playlist to clean.
            target_playlist_name: Name of the clean copy. Defaults to
                                  "Clean - <source name>".

        Raises:
            SpotifyError: If the playlist cannot be read.
        """
        playlist = self._client.playlist(source_playlist_id)
        job = self._database.create_job(
            user_id=user_id,
            source_playlist_id=playlist.spotify_id,
            source_playlist_name=playlist.name,
            target_playlist_name=target_playlist_name or default_target_name(playlist.name),
            total_tracks=playlist.total_tracks,
        )
        logger.info(f"Created job {job.id} for playlist '{playlist.name}' ({playlist.total_tracks} items)")
        return job

    def retry_job(self, job_id: int) -> Job:
        """
        Move a Failed job back to Pending. Processing restarts from the first track.

        Raises:
            JobError: If the job does not exist or is not Failed.
        """
        job = self._require_job(job_id)
        if job.status != JobStatus.FAILED:
            raise JobError(
                f"Only failed jobs can be retried; job {job_id} is {job.status.value}",
                details={"job_id": job_id, "status": job.status.value}
            )
        reset = self._database.reset_job(job_id)
        if reset is None:
            raise JobError(
                f"Job {job_id} changed state while being reset",
                details={"job_id": job_id}
            )
        logger.info(f"Job {job_id} reset to Pending")
        return reset

    def get_job_progress(self, job_id: int) -> ProgressUpdate | None:
        """
        Snapshot of a job built from its persisted counters, for status polling.

        Returns:
            None if the job does not exist.
        """
        job = self._database.get_job(job_id)
        if job is None:
            return None

        if job.total_tracks > 0:
            percent = min(100, job.processed_tracks * 100 // job.total_tracks)
        else:
            percent = 100 if job.status == JobStatus.COMPLETED else 0

        if job.status == JobStatus.PENDING:
            message = "Waiting to start"
        elif job.status == JobStatus.PROCESSING:
            message = f"Processing {job.processed_tracks} of {job.total_tracks} tracks"
        elif job.status == JobStatus.COMPLETED:
            message = completion_message(job.processed_tracks, job.matched_tracks)
        else:
            message = job.error_message or "Failed"

        return ProgressUpdate(
            percent=percent,
            processed=job.processed_tracks,
            total=job.total_tracks,
            current_batch=job.current_batch or "",
            message=message,
            timestamp=job.updated_at,
        )

    # =========================================================================
    # Processing
    # =========================================================================

    def process_job(self, job_id: int, cancel_token: CancellationToken | None = None) -> Job:
        """
        Process a Pending (or stale Processing) job to completion.

        Args:
            job_id: Job to process.
            cancel_token: Cancellation signal; defaults to a token with the
                          configured jobs.timeout_seconds deadline.

        Returns:
            The Completed job.

        Raises:
            JobError: If the job does not exist or is Completed/Failed. The
                      job is left untouched.
            Exception: Whatever failed the run (SpotifyError,
                       OperationCancelledError, DatabaseError, ...), after
                       the job was marked Failed.
        """
        job = self._require_job(job_id)
        if job.status not in (JobStatus.PENDING, JobStatus.PROCESSING):
            raise JobError(
                f"Job {job_id} cannot be processed in status {job.status.value}",
                details={"job_id": job_id, "status": job.status.value}
            )

        if cancel_token is None:
            cancel_token = CancellationToken(self._jobs_config.timeout_seconds, clock=self._clock)

        claimed = self._database.claim_job(job_id)
        if claimed is None:
            raise JobError(
                f"Job {job_id} could not be claimed",
                details={"job_id": job_id}
            )

        logger.info(f"Processing job {job_id}: '{claimed.source_playlist_name}'")
        state = _JobRunState()
        try:
            return self._run(claimed, state, cancel_token)
        except Exception as e:
            self._handle_failure(claimed, state, e)
            raise

    def _run(self, job: Job, state: _JobRunState, cancel_token: CancellationToken) -> Job:
        operation = f"Job {job.id}"
        cancel_token.check(operation)

        tracks = dedupe_tracks(self._client.list_playlist_tracks(job.source_playlist_id))
        total = len(tracks)
        self._database.update_job_total(job.id, total)
        logger.debug(f"Job {job.id}: {total} unique tracks")

        if total > 0:
            self._resolve_all(job, tracks, state, cancel_token)

        cancel_token.check(operation)
        return self._finish(job, state)

    def _resolve_all(
        self,
        job: Job,
        tracks: list[Track],
        state: _JobRunState,
        cancel_token: CancellationToken
    ) -> None:
        total = len(tracks)
        tracker = ProgressTracker(
            total,
            report_threshold_percent=self._jobs_config.report_threshold_percent,
            persist_threshold_percent=self._jobs_config.persist_threshold_percent,
            clock=self._clock
        )

        start_update = tracker.create_update(0)
        state.current_batch = start_update.current_batch
        self._broadcast(job.id, start_update)
        self._flush(job.id, state)
        tracker.mark_persisted(0)

        window = self._matcher.window_size
        context = f"job {job.id}"

        for start in range(0, total, window):
            cancel_token.check(f"Job {job.id}")
            batch = tracks[start:start + window]
            results = self._matcher.resolve_tracks(
                batch,
                positions=range(start, start + len(batch)),
                context=context
            )

            # Applied strictly in source order; the first failure stops the run
            for offset, (track, result) in enumerate(results):
                if isinstance(result, Exception):
                    raise result
                state.add(result)

                index = start + offset + 1
                if tracker.should_report_progress(index):
                    update = tracker.create_update(index, track.name)
                    state.current_batch = update.current_batch
                    self._broadcast(job.id, update)
                if tracker.should_persist_progress(index):
                    self._flush(job.id, state)
                    tracker.mark_persisted(index)

    def _finish(self, job: Job, state: _JobRunState) -> Job:
        self._flush(job.id, state)

        target_id = job.target_playlist_id
        existing: set[str] = set()
        if target_id is None:
            target_id = self._client.create_playlist(
                job.target_playlist_name,
                description=TARGET_DESCRIPTION.format(name=job.source_playlist_name),
                public=False
            )
            # Recorded before adding tracks so a failed add never orphans the playlist
            self._database.set_job_target_playlist(job.id, target_id)
            logger.info(f"Created playlist '{job.target_playlist_name}' ({target_id})")
        else:
            existing = {t.spotify_id for t in self._client.list_playlist_tracks(target_id)}

        track_ids: list[str] = []
        for mapping in state.resolved:
            if not mapping.has_clean_match or not mapping.target_track_id:
                continue
            if mapping.target_track_id in existing:
                continue
            existing.add(mapping.target_track_id)
            track_ids.append(mapping.target_track_id)

        if track_ids:
            self._client.add_tracks(target_id, track_ids)

        completed = self._database.complete_job(job.id, target_id, state.processed, state.matched)
        message = completion_message(state.processed, state.matched)
        logger.info(f"Job {job.id} completed: {message}")
        self._broadcast_completed(job.id, target_id, message)
        return completed

    def _handle_failure(self, job: Job, state: _JobRunState, error: Exception) -> None:
        logger.error(f"Job {job.id} failed: {error}")
        try:
            self._flush(job.id, state)
        except Exception as flush_error:
            logger.error(f"Job {job.id}: could not save partial progress: {flush_error}")
        try:
            self._database.fail_job(job.id, str(error) or error.__class__.__name__)
        except Exception as db_error:
            logger.error(f"Job {job.id}: could not record failure: {db_error}")
        self._broadcast_failed(job.id, str(error))

    def _flush(self, job_id: int, state: _JobRunState) -> None:
        """Persist buffered mappings, counters and batch label in one transaction."""
        self._database.save_job_progress(
            job_id,
            state.pending,
            processed_tracks=state.processed,
            matched_tracks=state.matched,
            current_batch=state.current_batch
        )
        state.pending = []

    def _require_job(self, job_id: int) -> Job:
        job = self._database.get_job(job_id)
        if job is None:
            raise JobError(f"Job not found: {job_id}", details={"job_id": job_id})
        return job

    # =========================================================================
    # Broadcasting (best-effort)
    # =========================================================================

    def _broadcast(self, job_id: int, update: ProgressUpdate) -> None:
        try:
            self._progress_sink.broadcast(job_id, update)
        except Exception as e:
            logger.warning(f"Progress broadcast for job {job_id} failed: {e}")

    def _broadcast_completed(self, job_id: int, target_playlist_id: str, message: str) -> None:
        try:
            self._progress_sink.broadcast_completed(job_id, target_playlist_id, message)
        except Exception as e:
            logger.warning(f"Completion broadcast for job {job_id} failed: {e}")

    def _broadcast_failed(self, job_id: int, error: str) -> None:
        try:
            self._progress_sink.broadcast_failed(job_id, error)
        except Exception as e:
            logger.warning(f"Failure broadcast for job {job_id} failed: {e}")
