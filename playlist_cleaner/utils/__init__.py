"""
Utility functions for playlist-cleaner.

This module provides common helpers used across the application:
    - Spotify URL / URI / id parsing
    - Chunking for the 100-item limit of playlist mutation endpoints
    - Threading utilities for parallel lookups
    - Path helpers

Usage:
    from playlist_cleaner.utils import (
        chunked,
        extract_playlist_id,
        run_in_parallel,
        ensure_directory
    )
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Iterator, Sequence, TypeVar

from playlist_cleaner.core.logger import get_logger

logger = get_logger(__name__)


# Type variables for generic parallel processing
T = TypeVar("T")
R = TypeVar("R")


def ensure_directory(path: Path) -> Path:
    """
    Ensure a directory exists, creating it and its parents if necessary.

    Returns:
        The same path (for chaining).

    Raises:
        OSError: If the directory cannot be created (permissions, etc.)
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """
    Split a sequence into consecutive lists of at most `size` items.

    Example:
        list(chunked([1, 2, 3, 4, 5], 2))  # [[1, 2], [3, 4], [5]]
    """
    if size < 1:
        raise ValueError(f"Chunk size must be >= 1, got {size}")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def run_in_parallel(
    func: Callable[[T], R],
    items: Sequence[T],
    num_threads: int = 4
) -> list[tuple[T, R | Exception]]:
    """
    Run a function on multiple items in parallel.

    Args:
        func: Function to call for each item. Takes one argument.
        items: Items to process.
        num_threads: Number of worker threads.

    Returns:
        List of (item, result) tuples IN INPUT ORDER, where result is
        either the return value or the Exception raised for that item.

    Error Handling:
        Exceptions are caught and returned in the result tuple, so one
        failing item never stops the others. The caller decides what a
        failure means.

    Example:
        results = run_in_parallel(matcher.resolve_track, tracks, num_threads=4)

        for track, result in results:
            if isinstance(result, Exception):
                print(f"Failed: {track.name} - {result}")
    """
    items_list = list(items)
    results_map: dict[int, R | Exception] = {}

    if not items_list:
        return []

    with ThreadPoolExecutor(max_workers=max(1, num_threads)) as executor:
        future_to_index = {
            executor.submit(func, item): index
            for index, item in enumerate(items_list)
        }

        for future in as_completed(future_to_index):
            index = future_to_index[future]
            try:
                results_map[index] = future.result()
            except Exception as e:
                results_map[index] = e

    # Completion order is arbitrary; restore input order
    return [(item, results_map[index]) for index, item in enumerate(items_list)]


def extract_spotify_id(url_or_id: str) -> str:
    """
    Extract a Spotify id from a URL or URI, or return the id as-is.

    Handles:
        - https://open.spotify.com/playlist/ID
        - https://open.spotify.com/playlist/ID?si=xxx
        - https://open.spotify.com/intl-it/track/ID
        - spotify:playlist:ID
        - Just the ID

    Examples:
        extract_spotify_id("https://open.spotify.com/track/abc123?si=xyz")  # "abc123"
        extract_spotify_id("spotify:track:abc123")                          # "abc123"
        extract_spotify_id("abc123")                                        # "abc123"
    """
    url_or_id = url_or_id.strip()

    if url_or_id.startswith("spotify:"):
        return url_or_id.split(":")[-1]

    if "spotify.com" in url_or_id:
        url_or_id = url_or_id.split("?")[0].split("#")[0]
        return url_or_id.rstrip("/").split("/")[-1]

    return url_or_id


def extract_playlist_id(url_or_id: str) -> str:
    """
    Extract a playlist id from a Spotify playlist URL, URI or bare id.

    Raises:
        ValueError: If the input is a Spotify URL/URI of something other
                    than a playlist, or is empty.

    Examples:
        extract_playlist_id("https://open.spotify.com/playlist/37i9dQZF1DXcBWIGoYBM5M")
        # Returns: "37i9dQZF1DXcBWIGoYBM5M"
    """
    value = url_or_id.strip()
    is_link = value.startswith("spotify:") or "spotify.com" in value
    if is_link and "playlist" not in value:
        raise ValueError(f"Not a playlist URL: {url_or_id}")

    playlist_id = extract_spotify_id(value)
    if not playlist_id:
        raise ValueError(f"Not a playlist URL: {url_or_id}")
    return playlist_id


def format_duration_ms(milliseconds: int) -> str:
    """
    Format an execution time for display.

    Examples:
        format_duration_ms(850)     # "850ms"
        format_duration_ms(12_400)  # "12.4s"
        format_duration_ms(95_000)  # "1:35"
    """
    if milliseconds < 1000:
        return f"{milliseconds}ms"
    seconds = milliseconds / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"
    total = int(seconds)
    return f"{total // 60}:{total % 60:02d}"
