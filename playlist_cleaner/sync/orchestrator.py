"""
Recurring synchronization of a clean copy with its source playlist.

A SyncConfig links a completed job's source playlist to the clean copy it
produced. Each sync run re-diffs both playlists and applies the changes:

    1. Open a running SyncHistory row
    2. Check the user is still entitled to sync
    3. Fetch source and target tracks, load the job's mappings
    4. Compute the delta; resolve source tracks that have no mapping yet
       and store their mappings under the original job
    5. Recompute the delta, insert new clean tracks at the position that
       keeps source order, then remove tracks gone from the source
    6. Finalize the history row and update the config (status, error,
       next scheduled sync, counts and phase timings)

The cancel token is checked before every matching window and every
mutation request, and once more before the run is recorded as completed.

A run that fails partway keeps the playlist mutations already sent and
records the counts actually applied. Nothing is rolled back: the next run
diffs again and converges. run_sync() never raises; the outcome is in the
returned SyncResult.

Manual and scheduled syncs go through the same run_sync() path.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from playlist_cleaner.core.config import SchedulerConfig
from playlist_cleaner.core.database import Database
from playlist_cleaner.core.exceptions import SyncError
from playlist_cleaner.core.logger import format_sync_summary, get_logger
from playlist_cleaner.core.models import (
    JobStatus,
    SyncConfig,
    SyncFrequency,
    SyncHistory,
    SyncHistorySummary,
    SyncStatus,
    TrackMapping,
)
from playlist_cleaner.matching.matcher import TrackMatcher
from playlist_cleaner.spotify.models import Track
from playlist_cleaner.sync.delta import PlaylistDelta, compute_delta
from playlist_cleaner.sync.metrics import PhaseTimer, SyncMetrics
from playlist_cleaner.sync.schedule import next_run_time, parse_frequency
from playlist_cleaner.utils import chunked
from playlist_cleaner.utils.cancellation import CancellationToken


logger = get_logger(__name__)


# Maximum tracks per playlist mutation request
MUTATION_CHUNK_SIZE = 100

# Returns whether a user may use recurring sync
EntitlementChecker = Callable[[str], bool]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SyncResult:
    """
    Outcome of one sync run.

    Attributes:
        config_id: The synced config.
        success: True if the run completed.
        history_id: SyncHistory row of the run (None if it could not be created).
        tracks_added: Tracks actually added to the target.
        tracks_removed: Tracks actually removed from the target.
        tracks_unchanged: Target tracks left in place.
        new_tracks_matched: Source tracks resolved during this run.
        execution_time_ms: Wall time of the run.
        error_message: Why the run failed, for failed runs.
        next_scheduled_sync: When the config runs next (None for manual).
        phase_timings_ms: Milliseconds spent fetching, matching, adding
            and removing.
    """
    config_id: int
    success: bool
    history_id: int | None = None
    tracks_added: int = 0
    tracks_removed: int = 0
    tracks_unchanged: int = 0
    new_tracks_matched: int = 0
    execution_time_ms: int = 0
    error_message: str | None = None
    next_scheduled_sync: datetime | None = None
    phase_timings_ms: dict[str, int] = field(default_factory=dict)

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "tracks_added": self.tracks_added,
            "tracks_removed": self.tracks_removed,
            "tracks_unchanged": self.tracks_unchanged,
            "new_tracks_matched": self.new_tracks_matched,
            "execution_time_ms": self.execution_time_ms,
            "phase_timings_ms": dict(self.phase_timings_ms),
        }


@dataclass
class _SyncRunState:
    added: int = 0
    removed: int = 0
    unchanged: int = 0
    matched: int = 0
    entitlement_lost: bool = False
    timer: PhaseTimer = field(default_factory=PhaseTimer)


def plan_insertions(
    target_track_ids: Sequence[str],
    delta: PlaylistDelta
) -> list[tuple[int, list[str]]]:
    """
    Plan where each added track goes so the target follows desired_order.

    Every new track is inserted right after the closest preceding desired
    track already in the target (or at the top). Applying the returned
    groups in order, each position counting the groups inserted before it,
    yields the planned playlist.

    Returns:
        (position, track_ids) groups of consecutive insertions.
    """
    to_add = set(delta.tracks_to_add)
    target_index: dict[str, int] = {}
    for index, track_id in enumerate(target_track_ids):
        target_index.setdefault(track_id, index)

    groups: list[tuple[int, list[str]]] = []
    anchor = 0
    inserted = 0

    for track_id in delta.desired_order:
        if track_id not in to_add:
            index = target_index.get(track_id)
            if index is not None:
                # Exact when every insertion so far precedes this track; otherwise
                # the anchor is already past it
                anchor = max(anchor, index + inserted + 1)
            continue

        if groups and groups[-1][0] + len(groups[-1][1]) == anchor:
            groups[-1][1].append(track_id)
        else:
            groups.append((anchor, [track_id]))
        anchor += 1
        inserted += 1

    return groups


class SyncOrchestrator:
    """
    Runs and manages sync configs.

    Attributes:
        _database: Store for configs, history and mappings.
        _client: Music-platform client.
        _matcher: Resolves source tracks added since the last run.
        _entitlement_checker: Optional per-user entitlement check.
        _scheduler_config: Default frequency and run timeout.
        metrics: Counters over every run of this orchestrator.
    """

    def __init__(
        self,
        database: Database,
        client,
        matcher: TrackMatcher,
        entitlement_checker: EntitlementChecker | None = None,
        scheduler_config: SchedulerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = _utc_now,
        metrics: SyncMetrics | None = None
    ) -> None:
        self._database = database
        self._client = client
        self._matcher = matcher
        self._entitlement_checker = entitlement_checker
        self._scheduler_config = scheduler_config or SchedulerConfig()
        self._clock = clock
        self._now = now
        self.metrics = metrics or SyncMetrics()

    # =========================================================================
    # Sync Run
    # =========================================================================

    def run_sync(self, config: SyncConfig, cancel_token: CancellationToken | None = None) -> SyncResult:
        """
        Run one sync of a config.

        Args:
            config: The config to sync.
            cancel_token: Cancellation signal; defaults to a token with the
                          configured scheduler.sync_timeout_seconds deadline.

        Returns:
            SyncResult with success=False and the error message if anything
            failed. Failures are recorded on the history row and the config.
        """
        if cancel_token is None:
            cancel_token = CancellationToken(self._scheduler_config.sync_timeout_seconds, clock=self._clock)

        started = self._clock()
        state = _SyncRunState(timer=PhaseTimer(self._clock))
        history: SyncHistory | None = None
        self.metrics.record_started()

        try:
            history = self._database.create_sync_history(config.id, self._now())
            logger.info(f"Syncing '{config.source_playlist_name}' -> '{config.target_playlist_name}'")
            self._run(config, state, cancel_token)
        except Exception as e:
            return self._record_failure(config, history, state, started, e)

        return self._record_success(config, history, state, started)

    def _run(self, config: SyncConfig, state: _SyncRunState, cancel_token: CancellationToken) -> None:
        operation = f"Sync {config.id}"
        timer = state.timer

        entitled = self.is_entitled(config.user_id)
        self.metrics.record_entitlement_check(entitled)
        if not entitled:
            state.entitlement_lost = True
            self._database.set_sync_config_active(config.id, False, None)
            raise SyncError(
                "Recurring sync is no longer available for this account",
                details={"user_id": config.user_id, "sync_config_id": config.id}
            )

        cancel_token.check(operation)
        with timer.phase("fetch"):
            source_tracks = self._client.list_playlist_tracks(config.source_playlist_id)
            target_ids = [t.spotify_id for t in self._client.list_playlist_tracks(config.target_playlist_id)]
            mappings = self._database.get_track_mappings(config.original_job_id)

        delta = compute_delta(source_tracks, target_ids, mappings)
        logger.debug(
            f"Sync {config.id}: {len(delta.new_tracks_needing_match)} new, "
            f"{len(delta.tracks_to_add)} to add, {len(delta.tracks_to_remove)} to remove"
        )

        if delta.new_tracks_needing_match:
            with timer.phase("match"):
                new_mappings = self._resolve_new_tracks(
                    config, source_tracks, delta.new_tracks_needing_match, state, cancel_token
                )
            mappings = mappings + new_mappings
            delta = compute_delta(source_tracks, target_ids, mappings)

        # Additions first: a failure before removals leaves extra tracks, never missing ones
        with timer.phase("add"):
            for position, track_ids in plan_insertions(target_ids, delta):
                for offset, chunk in enumerate(chunked(track_ids, MUTATION_CHUNK_SIZE)):
                    cancel_token.check(operation)
                    self._client.add_tracks(
                        config.target_playlist_id,
                        chunk,
                        position=position + offset * MUTATION_CHUNK_SIZE
                    )
                    state.added += len(chunk)

        with timer.phase("remove"):
            for chunk in chunked(list(delta.tracks_to_remove), MUTATION_CHUNK_SIZE):
                cancel_token.check(operation)
                self._client.remove_tracks(config.target_playlist_id, chunk)
                state.removed += len(chunk)

        state.unchanged = len(target_ids) - state.removed

        # A run that overran its deadline is not reported as completed
        cancel_token.check(operation)

    def _resolve_new_tracks(
        self,
        config: SyncConfig,
        source_tracks: Sequence[Track],
        new_tracks: Sequence[Track],
        state: _SyncRunState,
        cancel_token: CancellationToken
    ) -> list[TrackMapping]:
        """
        Resolve tracks added to the source since the last run, one window
        at a time. Mappings of each finished window are stored before the
        next window starts, so a cancelled or failed run keeps them.
        """
        positions: dict[str, int] = {}
        for index, track in enumerate(source_tracks):
            positions.setdefault(track.spotify_id, index)

        operation = f"Sync {config.id}"
        context = f"sync {config.id}"
        window = self._matcher.window_size
        new_mappings: list[TrackMapping] = []

        for start in range(0, len(new_tracks), window):
            cancel_token.check(operation)
            batch = new_tracks[start:start + window]
            results = self._matcher.resolve_tracks(
                batch,
                positions=[positions[t.spotify_id] for t in batch],
                context=context
            )

            resolved: list[TrackMapping] = []
            failure: Exception | None = None
            for _, result in results:
                if isinstance(result, Exception):
                    failure = result
                    break
                resolved.append(result)

            if resolved:
                self._database.add_track_mappings(config.original_job_id, resolved)
                new_mappings.extend(resolved)
                state.matched += len(resolved)
                self.metrics.record_tracks_processed(len(resolved))
            if failure is not None:
                raise failure

        return new_mappings

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int((self._clock() - started) * 1000))

    def _result(
        self,
        config: SyncConfig,
        history: SyncHistory | None,
        state: _SyncRunState,
        elapsed: int,
        next_sync: datetime | None,
        error_message: str | None = None
    ) -> SyncResult:
        return SyncResult(
            config_id=config.id,
            success=error_message is None,
            history_id=history.id if history is not None else None,
            tracks_added=state.added,
            tracks_removed=state.removed,
            tracks_unchanged=state.unchanged,
            new_tracks_matched=state.matched,
            execution_time_ms=elapsed,
            error_message=error_message,
            next_scheduled_sync=next_sync,
            phase_timings_ms=dict(state.timer.timings_ms),
        )

    def _record_success(
        self,
        config: SyncConfig,
        history: SyncHistory,
        state: _SyncRunState,
        started: float
    ) -> SyncResult:
        elapsed = self._elapsed_ms(started)
        finished_at = self._now()
        next_sync = next_run_time(config.sync_frequency, finished_at)
        result = self._result(config, history, state, elapsed, next_sync)

        try:
            self._database.complete_sync_history(
                history.id, finished_at, state.added, state.removed, state.unchanged, elapsed
            )
            self._database.update_last_sync(
                config.id, finished_at, SyncStatus.COMPLETED, None, next_sync, result.stats
            )
        except Exception as e:
            # Playlist changes were applied; only the bookkeeping failed
            logger.error(f"Sync {config.id}: could not record completed run: {e}")
            self.metrics.record_failed(elapsed, e.__class__.__name__, state.added, state.removed)
            return self._result(config, history, state, elapsed, next_sync, str(e) or e.__class__.__name__)

        self.metrics.record_completed(elapsed, state.added, state.removed)
        logger.info(
            f"{format_sync_summary(config.target_playlist_name, state.added, state.removed, state.unchanged)} "
            f"in {elapsed}ms ({state.timer.summary()})",
            extra={"sync_config_id": config.id, "sync_stats": result.stats}
        )
        return result

    def _record_failure(
        self,
        config: SyncConfig,
        history: SyncHistory | None,
        state: _SyncRunState,
        started: float,
        error: Exception
    ) -> SyncResult:
        message = str(error) or error.__class__.__name__
        elapsed = self._elapsed_ms(started)
        finished_at = self._now()
        next_sync = None if state.entitlement_lost else next_run_time(config.sync_frequency, finished_at)
        self.metrics.record_failed(elapsed, error.__class__.__name__, state.added, state.removed)
        logger.error(
            f"Sync {config.id} failed after {elapsed}ms ({state.timer.summary()}): {message}",
            extra={"sync_config_id": config.id}
        )

        if history is not None:
            try:
                self._database.fail_sync_history(
                    history.id, finished_at, message,
                    tracks_added=state.added,
                    tracks_removed=state.removed,
                    tracks_unchanged=state.unchanged,
                    execution_time_ms=elapsed
                )
            except Exception as e:
                logger.error(f"Sync {config.id}: could not record failed run: {e}")
        try:
            self._database.update_last_sync(
                config.id, finished_at, SyncStatus.FAILED, message, next_sync
            )
        except Exception as e:
            logger.error(f"Sync {config.id}: could not update config: {e}")

        return self._result(config, history, state, elapsed, next_sync, message)

    # =========================================================================
    # Management
    # =========================================================================

    def is_entitled(self, user_id: str) -> bool:
        if self._entitlement_checker is None:
            return True
        return bool(self._entitlement_checker(user_id))

    def enable_sync_for_job(
        self,
        job_id: int,
        user_id: str,
        frequency: SyncFrequency | str | None = None
    ) -> SyncConfig:
        """
        Enable recurring sync for a completed job.

        An existing config for the job is reused: it is reactivated if
        disabled, and switched to `frequency` when one is given. Without
        one, it keeps its own frequency; new configs get the configured
        default.

        Raises:
            SyncError: If the user is not entitled, or the job is missing,
                       not theirs, not Completed, or has no target playlist.
            ConfigError: For an unknown frequency.
        """
        if not self.is_entitled(user_id):
            raise SyncError(
                "Recurring sync is not available for this account",
                details={"user_id": user_id}
            )

        requested = parse_frequency(frequency) if frequency is not None else None

        existing = self._database.get_sync_config_for_job(user_id, job_id)
        if existing is not None:
            if existing.is_active:
                if requested is None or requested == existing.sync_frequency:
                    return existing
                return self.update_sync_frequency(existing.id, user_id, requested)

            frequency = requested or existing.sync_frequency
            if frequency != existing.sync_frequency:
                self._database.update_sync_frequency(existing.id, frequency, None)
            logger.info(f"Reactivating sync config {existing.id} ({frequency.value})")
            return self._database.set_sync_config_active(
                existing.id, True, next_run_time(frequency, now=self._now())
            )

        frequency = requested or parse_frequency(self._scheduler_config.default_frequency)

        job = self._database.get_job(job_id)
        if job is None or job.user_id != user_id:
            raise SyncError(f"Job not found: {job_id}", details={"job_id": job_id})
        if job.status != JobStatus.COMPLETED:
            raise SyncError(
                f"Sync can only be enabled for completed jobs; job {job_id} is {job.status.value}",
                details={"job_id": job_id, "status": job.status.value}
            )
        if not job.target_playlist_id:
            raise SyncError(
                f"Job {job_id} has no clean playlist to sync",
                details={"job_id": job_id}
            )

        config = self._database.create_sync_config(
            user_id, job, frequency, next_run_time(frequency, now=self._now())
        )
        logger.info(f"Enabled {frequency.value} sync for '{job.source_playlist_name}' (config {config.id})")
        return config

    def disable_sync(self, config_id: int, user_id: str) -> SyncConfig:
        config = self._require_owned_config(config_id, user_id)
        logger.info(f"Disabling sync config {config_id}")
        return self._database.set_sync_config_active(config.id, False, None)

    def update_sync_frequency(
        self,
        config_id: int,
        user_id: str,
        frequency: SyncFrequency | str
    ) -> SyncConfig:
        """
        Change how often a config runs. The next run is recomputed from the
        last run, or from now if it never ran.

        Raises:
            SyncError: If the config is missing or not the user's.
            ConfigError: For an unknown frequency.
        """
        frequency = parse_frequency(frequency)
        config = self._require_owned_config(config_id, user_id)
        next_sync = next_run_time(frequency, config.last_synced_at, now=self._now())
        if not config.is_active:
            next_sync = None
        return self._database.update_sync_frequency(config.id, frequency, next_sync)

    def manual_sync(
        self,
        config_id: int,
        user_id: str,
        cancel_token: CancellationToken | None = None
    ) -> SyncResult:
        """
        Run a sync now.

        Raises:
            SyncError: If the config is missing, not the user's, or inactive.
        """
        config = self._require_owned_config(config_id, user_id)
        if not config.is_active:
            raise SyncError(
                f"Sync config {config_id} is disabled",
                details={"sync_config_id": config_id}
            )
        return self.run_sync(config, cancel_token)

    def get_user_sync_configs(self, user_id: str) -> list[SyncConfig]:
        return self._database.get_user_sync_configs(user_id)

    def get_sync_history(self, config_id: int, user_id: str, limit: int = 20) -> list[SyncHistory]:
        """Most recent runs of a config, newest first."""
        config = self._require_owned_config(config_id, user_id)
        return self._database.get_sync_history(config.id, limit)

    def get_sync_summary(self, config_id: int, user_id: str) -> SyncHistorySummary:
        """Run counts and track totals over the whole history of a config."""
        config = self._require_owned_config(config_id, user_id)
        return self._database.get_sync_summary(config.id)

    def _require_owned_config(self, config_id: int, user_id: str) -> SyncConfig:
        config = self._database.get_sync_config(config_id)
        if config is None or config.user_id != user_id:
            raise SyncError(
                f"Sync config not found: {config_id}",
                details={"sync_config_id": config_id}
            )
        return config
