"""
Logging configuration for playlist-cleaner.

setup_logging() attaches four handlers to the root logger:

    console                  colored level + message, printed through
                             tqdm.write() so progress bars stay intact
    log_full_<ts>.log        every record, DEBUG and above
    log_errors_<ts>.log      ERROR and CRITICAL only
    unmatched_tracks_<ts>.log  explicit tracks left out of a clean copy,
                             with their Spotify URL, for manual review

All files live in <output directory>/logs; the timestamp in the name
keeps runs from overwriting each other.

Usage:
    from playlist_cleaner.core.logger import setup_logging, get_logger

    setup_logging(output_dir)  # once, at startup
    logger = get_logger(__name__)

    logger.info("Processing job 3")
    log_unmatched_track(logger, "Song", "Artist", "spotify_id", context="job 3")
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Iterable, TextIO

from tqdm import tqdm


LOGS_DIRNAME = "logs"

FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

SPOTIFY_TRACK_URL = "https://open.spotify.com/track/{}"

# Loggers of libraries that flood DEBUG output
QUIET_LOGGERS = ("spotipy", "urllib3")

RESET = "\033[0m"
BOLD = "\033[1m"
RED = "\033[31m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
BLUE = "\033[34m"
CYAN = "\033[36m"

LEVEL_COLORS = {
    logging.DEBUG: BLUE,
    logging.INFO: GREEN,
    logging.WARNING: YELLOW,
    logging.ERROR: RED,
    logging.CRITICAL: BOLD + RED,
}

# Attribute set (via `extra`) on records that describe an unmatched track
UNMATCHED_MARKER = "unmatched_track_name"


def _paint(text: str, color: str) -> str:
    return f"{color}{text}{RESET}"


class ConsoleFormatter(logging.Formatter):
    """Compact "LEVEL: message" with the level name colored."""

    def format(self, record: logging.LogRecord) -> str:
        level = _paint(record.levelname, LEVEL_COLORS.get(record.levelno, RESET))
        message = f"{level}: {record.getMessage()}"
        if record.exc_info and record.levelno >= logging.ERROR:
            message += "\n" + self.formatException(record.exc_info)
        return message


class TqdmLoggingHandler(logging.Handler):
    """
    Console handler that prints above active progress bars.

    A plain stream write in the middle of a redrawn bar leaves fragments
    on screen; tqdm.write() moves the bar out of the way first.
    """

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            tqdm.write(self.format(record), file=self.stream)
        except Exception:
            self.handleError(record)


class ErrorOnlyFilter(logging.Filter):
    """Pass ERROR and CRITICAL records only."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


class UnmatchedTrackFilter(logging.Filter):
    """Pass only records logged through log_unmatched_track()."""

    def filter(self, record: logging.LogRecord) -> bool:
        return hasattr(record, UNMATCHED_MARKER)


class UnmatchedTrackFormatter(logging.Formatter):
    """
    Two-line, human-readable entry per unmatched track:

        [job 3] #12 Song Title - Artist Name
        https://open.spotify.com/track/xxxxx

    Context and position are optional; position is printed 1-based.
    """

    def format(self, record: logging.LogRecord) -> str:
        context = getattr(record, "unmatched_track_context", None)
        position = getattr(record, "unmatched_track_position", None)

        prefix = f"[{context}] " if context else ""
        if position is not None:
            prefix += f"#{position + 1} "

        name = getattr(record, UNMATCHED_MARKER, "Unknown")
        artist = getattr(record, "unmatched_track_artist", "Unknown")
        url = SPOTIFY_TRACK_URL.format(getattr(record, "unmatched_track_id", ""))
        return f"{prefix}{name} - {artist}\n{url}\n"


def _file_handler(
    path: Path,
    formatter: logging.Formatter,
    filters: Iterable[logging.Filter] = ()
) -> logging.FileHandler:
    # FileHandler serializes emit() with its own lock; matcher threads log concurrently
    handler = logging.FileHandler(path, mode="w", encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    for log_filter in filters:
        handler.addFilter(log_filter)
    return handler


def setup_logging(output_dir: Path, console_level: int = logging.INFO) -> Path:
    """
    Configure the root logger for the application.

    Call once from the main thread, after the configuration is loaded and
    before any worker thread starts. Existing root handlers are closed and
    replaced.

    Args:
        output_dir: Output directory; files go to output_dir/logs.
        console_level: Minimum level printed on the console.

    Returns:
        The logs directory.
    """
    logs_dir = output_dir / LOGS_DIRNAME
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    console_handler = TqdmLoggingHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(ConsoleFormatter())

    file_formatter = logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT)
    handlers = [
        console_handler,
        _file_handler(logs_dir / f"log_full_{timestamp}.log", file_formatter),
        _file_handler(logs_dir / f"log_errors_{timestamp}.log", file_formatter, [ErrorOnlyFilter()]),
        _file_handler(
            logs_dir / f"unmatched_tracks_{timestamp}.log",
            UnmatchedTrackFormatter(),
            [UnmatchedTrackFilter()]
        ),
    ]
    for handler in handlers:
        root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logs_dir


def get_logger(name: str) -> logging.Logger:
    """
    Logger for a module, usually get_logger(__name__).

    Records propagate to the root logger, so loggers created at import
    time pick up the handlers installed later by setup_logging().
    """
    return logging.getLogger(name)


def shutdown_logging() -> None:
    """Flush, close and detach every root handler. Safe to call twice."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        try:
            handler.flush()
            handler.close()
        except (OSError, ValueError):
            pass
        root_logger.removeHandler(handler)


# =============================================================================
# Message helpers
# =============================================================================

def format_clean_match_message(artist: str, name: str, clean_name: str) -> str:
    return f"{_paint('Clean version', GREEN)}: {artist} - {name} -> {_paint(clean_name, CYAN)}"


def format_no_match_message(artist: str, name: str, reason: str) -> str:
    return f"{_paint('No clean match', RED)}: {artist} - {name} ({reason})"


def format_sync_summary(playlist_name: str, added: int, removed: int, unchanged: int) -> str:
    """One-line sync outcome, e.g. "Synced Clean - Road Trip: +3 / -1 (40 unchanged)"."""
    return (
        f"Synced {_paint(playlist_name, BOLD)}: "
        f"{_paint(f'+{added}', GREEN)} / {_paint(f'-{removed}', RED)} "
        f"({unchanged} unchanged)"
    )


def log_unmatched_track(
    logger: logging.Logger,
    track_name: str,
    artist: str,
    track_id: str,
    reason: str = "no clean version found",
    context: str | None = None,
    position: int | None = None
) -> None:
    """
    Log an explicit track that will not appear in the clean copy.

    Emits a WARNING whose extra fields feed the unmatched tracks report.

    Args:
        logger: Logger of the calling module.
        track_name: Title of the explicit track.
        artist: Artist string of the track.
        track_id: Spotify track id.
        reason: Why no clean alternative was used.
        context: Where it happened, e.g. "job 3" or "sync 1".
        position: 0-based position in the source playlist.
    """
    logger.warning(
        format_no_match_message(artist, track_name, reason),
        extra={
            UNMATCHED_MARKER: track_name,
            "unmatched_track_artist": artist,
            "unmatched_track_id": track_id,
            "unmatched_track_context": context,
            "unmatched_track_position": position,
        }
    )
