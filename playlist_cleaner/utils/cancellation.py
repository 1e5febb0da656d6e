"""
Cooperative cancellation for long-running jobs and sync runs.

A CancellationToken combines an explicit cancel signal (set from another
thread, e.g. on Ctrl-C or scheduler shutdown) with an optional deadline.
Work checks the token between units of work, so a cancelled run stops at
a point where everything already committed stays consistent.

Usage:
    token = CancellationToken(timeout_seconds=3600)

    for window in windows:
        token.check("processing job 3")
        ...

    # from another thread
    token.cancel()
"""

import threading
import time
from typing import Callable

from playlist_cleaner.core.exceptions import OperationCancelledError


class CancellationToken:
    """
    Cancel signal plus optional monotonic deadline.

    Attributes:
        timeout_seconds: Seconds from creation until the deadline, or None.
    """

    def __init__(
        self,
        timeout_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._event = threading.Event()
        self._deadline = clock() + timeout_seconds if timeout_seconds is not None else None

    def cancel(self) -> None:
        """Request cancellation. Safe to call from any thread, more than once."""
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def deadline_exceeded(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline

    def check(self, operation: str = "operation") -> None:
        """
        Raise if the work should stop.

        Raises:
            OperationCancelledError: If cancel() was called or the deadline passed.
        """
        if self.is_cancelled:
            raise OperationCancelledError(f"{operation} was cancelled")
        if self.deadline_exceeded:
            raise OperationCancelledError(
                f"{operation} timed out after {self.timeout_seconds:g}s",
                details={"timeout_seconds": self.timeout_seconds}
            )
