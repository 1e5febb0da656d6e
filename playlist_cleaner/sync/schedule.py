"""
Next-run computation for sync configs.

Frequencies:
    daily   -> last run + 24 hours
    weekly  -> last run + 7 days
    manual  -> never scheduled (None)
"""

from datetime import datetime, timedelta, timezone

from playlist_cleaner.core.exceptions import ConfigError
from playlist_cleaner.core.models import SyncFrequency


SYNC_INTERVALS: dict[SyncFrequency, timedelta] = {
    SyncFrequency.DAILY: timedelta(hours=24),
    SyncFrequency.WEEKLY: timedelta(days=7),
}


def parse_frequency(frequency: SyncFrequency | str) -> SyncFrequency:
    """
    Raises:
        ConfigError: If frequency is not daily, weekly or manual.
    """
    if isinstance(frequency, SyncFrequency):
        return frequency
    try:
        return SyncFrequency(str(frequency).strip().lower())
    except ValueError:
        valid = ", ".join(f.value for f in SyncFrequency)
        raise ConfigError(
            f"Invalid sync frequency: '{frequency}' (valid: {valid})",
            details={"frequency": frequency}
        ) from None


def next_run_time(
    frequency: SyncFrequency | str,
    last_run: datetime | None = None,
    now: datetime | None = None
) -> datetime | None:
    """
    Compute when a config with the given frequency should run next.

    Args:
        frequency: SyncFrequency or its string value.
        last_run: End of the most recent run. When None, `now` is the base.
        now: Current time; defaults to the current UTC time.

    Returns:
        Timezone-aware UTC datetime, or None for manual configs.

    Raises:
        ConfigError: For an unknown frequency.
    """
    frequency = parse_frequency(frequency)
    if frequency == SyncFrequency.MANUAL:
        return None

    base = last_run or now or datetime.now(timezone.utc)
    if base.tzinfo is None:
        base = base.replace(tzinfo=timezone.utc)
    return base.astimezone(timezone.utc) + SYNC_INTERVALS[frequency]
