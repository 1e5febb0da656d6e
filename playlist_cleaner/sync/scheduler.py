"""
In-process scheduler for recurring syncs.

Polls the database for active configs whose next scheduled sync is due
and runs them one after the other through SyncOrchestrator.run_sync().
Running sequentially in a single loop guarantees at most one run per
config at a time within this process; running several scheduler
processes against one database is not supported.

Usage:
    scheduler = SyncScheduler(database, orchestrator)

    # one pass (cron-style)
    scheduler.process_scheduled_syncs()

    # long-running
    stop = threading.Event()
    scheduler.run_forever(poll_interval_seconds=300, stop_event=stop)
"""

import threading
from datetime import datetime, timezone
from typing import Callable

from playlist_cleaner.core.database import Database
from playlist_cleaner.core.logger import get_logger
from playlist_cleaner.sync.orchestrator import EntitlementChecker, SyncOrchestrator, SyncResult


logger = get_logger(__name__)


DEFAULT_POLL_INTERVAL_SECONDS = 300.0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SyncScheduler:
    """Runs due sync configs."""

    def __init__(
        self,
        database: Database,
        orchestrator: SyncOrchestrator,
        entitlement_checker: EntitlementChecker | None = None,
        clock: Callable[[], datetime] = _utc_now
    ) -> None:
        self._database = database
        self._orchestrator = orchestrator
        self._entitlement_checker = entitlement_checker
        self._clock = clock

    def process_scheduled_syncs(self, now: datetime | None = None) -> list[SyncResult]:
        """
        Run every active config due at `now`.

        Configs whose user lost the sync entitlement are deactivated and
        skipped. An error on one config is logged and the loop continues.

        Returns:
            Results of the runs that were started, in due order.
        """
        now = now or self._clock()
        due = self._database.get_due_sync_configs(now)
        if not due:
            logger.debug("No syncs due")
            return []

        logger.info(f"{len(due)} sync(s) due")
        results: list[SyncResult] = []

        for config in due:
            try:
                if self._entitlement_checker is not None and not self._entitlement_checker(config.user_id):
                    logger.warning(
                        f"User {config.user_id} lost sync entitlement; disabling config {config.id}"
                    )
                    self._database.set_sync_config_active(config.id, False, None)
                    continue

                results.append(self._orchestrator.run_sync(config))
            except Exception as e:
                logger.error(f"Scheduled sync {config.id} failed: {e}")

        succeeded = sum(1 for r in results if r.success)
        logger.info(f"Scheduled syncs finished: {succeeded}/{len(results)} succeeded")
        return results

    def run_forever(
        self,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        stop_event: threading.Event | None = None
    ) -> None:
        """
        Poll for due syncs until stop_event is set.

        Args:
            poll_interval_seconds: Delay between polls.
            stop_event: Set from another thread (or a signal handler) to stop.
        """
        if poll_interval_seconds <= 0:
            raise ValueError(f"poll_interval_seconds must be positive, got {poll_interval_seconds}")
        stop_event = stop_event or threading.Event()

        logger.info(f"Scheduler started (polling every {poll_interval_seconds:g}s)")
        while not stop_event.is_set():
            try:
                self.process_scheduled_syncs()
            except Exception as e:
                logger.error(f"Scheduler poll failed: {e}")
            stop_event.wait(poll_interval_seconds)
        logger.info("Scheduler stopped")
