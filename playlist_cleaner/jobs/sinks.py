"""
Progress sinks: where job progress snapshots are delivered.

Broadcasting is best-effort. The pipeline wraps every sink call, so an
exception raised by a sink is logged as a warning and never fails a job.

Implementations:
    - LoggingProgressSink: logs snapshots at INFO (scheduler, headless runs)
    - ProgressBarSink: drives a rich JobProgressBar (interactive CLI)
    - NullProgressSink: drops everything
"""

from abc import ABC, abstractmethod

from playlist_cleaner.core.logger import get_logger
from playlist_cleaner.core.progress import JobProgressBar
from playlist_cleaner.jobs.tracker import ProgressUpdate


logger = get_logger(__name__)


class ProgressSink(ABC):
    """Receives progress snapshots of running jobs."""

    @abstractmethod
    def broadcast(self, job_id: int, update: ProgressUpdate) -> None:
        pass

    def broadcast_completed(self, job_id: int, target_playlist_id: str, message: str) -> None:
        """Called once when a job completes."""
        pass

    def broadcast_failed(self, job_id: int, error: str) -> None:
        """Called once when a job fails."""
        pass


class NullProgressSink(ProgressSink):

    def broadcast(self, job_id: int, update: ProgressUpdate) -> None:
        pass


class LoggingProgressSink(ProgressSink):

    def broadcast(self, job_id: int, update: ProgressUpdate) -> None:
        logger.info(
            f"Job {job_id}: {update.percent}% ({update.processed}/{update.total}) "
            f"{update.current_batch} - {update.message}"
        )

    def broadcast_completed(self, job_id: int, target_playlist_id: str, message: str) -> None:
        logger.info(f"Job {job_id} completed: {message} (playlist {target_playlist_id})")

    def broadcast_failed(self, job_id: int, error: str) -> None:
        logger.error(f"Job {job_id} failed: {error}")


class ProgressBarSink(ProgressSink):
    """
    Shows the progress of one job on a rich progress bar.

    The bar must be started by the caller (usually as a context manager);
    the sink only moves it.
    """

    def __init__(self, progress_bar: JobProgressBar) -> None:
        self.progress_bar = progress_bar

    def broadcast(self, job_id: int, update: ProgressUpdate) -> None:
        if self.progress_bar.total != update.total:
            self.progress_bar.set_total(update.total)
        self.progress_bar.update(update.processed, update.current_batch)

    def broadcast_completed(self, job_id: int, target_playlist_id: str, message: str) -> None:
        self.progress_bar.finish(message)

    def broadcast_failed(self, job_id: int, error: str) -> None:
        self.progress_bar.fail(error)
