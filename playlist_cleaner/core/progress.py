"""
Progress bar for processing a job in the CLI, built on Rich.

The bar is driven by the snapshots the job pipeline broadcasts (see
jobs/sinks.py), so it moves in batch-sized steps rather than per track.
Between snapshots the status column shows the current batch label.

Usage:
    from playlist_cleaner.core.progress import JobProgressBar

    with JobProgressBar(total=0, description="Road Trip") as progress:
        progress.set_total(120)
        progress.update(processed=20, status="Processing tracks 1-20")
        progress.finish("Processed 120 tracks, matched 117 clean versions")
"""

from rich import get_console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TaskID,
    TextColumn,
)
from rich.table import Column
from rich.theme import Theme


PROGRESS_THEME = Theme({
    "bar.back": "grey23",
    "bar.complete": "rgb(30,215,96)",  # Spotify green
    "bar.finished": "green",
    "bar.pulse": "rgb(30,215,96)",
    "progress.percentage": "white",
    "progress.download": "grey62",
})

DESCRIPTION_WIDTH = 20
STATUS_WIDTH = 38


def _fixed_column(width: int) -> Column:
    """Table column that truncates instead of wrapping, so the bar never shifts."""
    return Column(width=width, min_width=width, max_width=width, no_wrap=True, overflow="ellipsis")


class JobProgressBar:
    """
    Progress bar for one job.

    Displays:
    - Description (the source playlist name)
    - Status: the current batch label, or the final outcome
    - Bar, processed/total and percentage

    Example:
        Road Trip           Processing tracks 41-60    ━━━━━━━━━━━━━  57/120  47%

    The total may be 0 until the playlist has been fetched; the bar pulses
    until set_total() is called with a positive value.
    """

    def __init__(self, total: int, description: str = "Cleaning") -> None:
        self.total = total
        self.description = description
        self.completed = 0
        self.status = "Starting"
        self.finished = False
        self.failed = False

        self.console = get_console()
        self.progress = Progress(
            TextColumn("[white]{task.description}", table_column=_fixed_column(DESCRIPTION_WIDTH)),
            TextColumn("{task.fields[status]}", table_column=_fixed_column(STATUS_WIDTH)),
            BarColumn(bar_width=40),
            MofNCompleteColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            console=self.console,
            transient=False,
            refresh_per_second=10,
        )
        self.task_id: TaskID | None = None

    def __enter__(self) -> "JobProgressBar":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def start(self) -> None:
        if self.task_id is not None:
            return
        self.console.push_theme(PROGRESS_THEME)
        self.progress.start()
        self.task_id = self.progress.add_task(
            self.description,
            total=self.total or None,
            status=self._status_markup(),
        )

    def stop(self) -> None:
        if self.task_id is None:
            return
        self.progress.stop()
        self.console.pop_theme()
        self.task_id = None

    def set_total(self, total: int) -> None:
        """Set the total once it is known (after the playlist is fetched)."""
        self.total = total
        if self.task_id is not None:
            self.progress.update(self.task_id, total=total or None)

    def update(self, processed: int, status: str | None = None) -> None:
        """
        Move the bar to an absolute position.

        Args:
            processed: Tracks processed so far.
            status: New batch label; unchanged if None or empty.
        """
        self.completed = processed
        if status:
            self.status = status
        self._refresh()

    def finish(self, message: str) -> None:
        """Fill the bar and show the completion message."""
        self.finished = True
        self.status = message
        self.completed = self.total
        self._refresh()

    def fail(self, message: str) -> None:
        """Leave the bar where it stopped and show the failure."""
        self.failed = True
        self.status = message
        self._refresh()

    def _status_markup(self) -> str:
        if self.failed:
            return f"[red]✗ {self.status}[/red]"
        if self.finished:
            return f"[green]✓ {self.status}[/green]"
        return self.status

    def _refresh(self) -> None:
        if self.task_id is not None:
            self.progress.update(
                self.task_id,
                completed=self.completed,
                status=self._status_markup(),
            )


__all__ = [
    "PROGRESS_THEME",
    "JobProgressBar",
]
