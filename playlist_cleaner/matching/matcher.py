"""
Clean-version matching for playlist-cleaner.

This module decides, for each source track, what ends up in the clean
copy of a playlist:

    - A track that is not explicit is kept as-is (mapped to itself).
    - An explicit track is replaced by a clean alternative from the
      catalog when one is found.
    - An explicit track without a clean alternative is dropped
      (mapping with has_clean_match=False).

Matching Algorithm (SpotifyTrackMatcher):
    1. Search the catalog with track:"<title>" artist:"<primary artist>",
       the title stripped of bracketed version suffixes
    2. Keep candidates that are not explicit, are a different track, have
       the same primary artist and a title similarity >= MIN_TITLE_SIMILARITY
    3. Prefer a candidate from the same album, then the most popular one,
       then the one whose title is closest (Levenshtein distance)

Failure Handling:
    - Transient search failures are retried with backoff (utils/retry.py);
      once retries are exhausted the track maps to "no clean match"
    - Auth failures propagate: without a valid token nothing else can work
    - Any other search failure maps the track to "no clean match"

Dependencies:
    - rapidfuzz: Fuzzy string matching and Levenshtein distance

Usage:
    matcher = SpotifyTrackMatcher(SpotifyClient(), search_limit=5)

    mapping = matcher.resolve_track(track, position=0)
    results = matcher.resolve_tracks(tracks, positions=range(len(tracks)))
"""

import random
import re
import time
from abc import ABC, abstractmethod
from typing import Callable, Protocol, Sequence

from rapidfuzz import fuzz
from rapidfuzz.distance import Levenshtein

from playlist_cleaner.core.exceptions import SpotifyError
from playlist_cleaner.core.logger import (
    format_clean_match_message,
    get_logger,
    log_unmatched_track,
)
from playlist_cleaner.core.models import TrackMapping
from playlist_cleaner.spotify.models import Track
from playlist_cleaner.utils import run_in_parallel
from playlist_cleaner.utils.retry import RetryPolicy, call_with_retry


logger = get_logger(__name__)


# =============================================================================
# MATCHING THRESHOLDS
# =============================================================================

# Minimum title similarity (0-100, rapidfuzz fuzz.ratio on normalized titles)
# for a candidate to count as the same song
MIN_TITLE_SIMILARITY = 85

DEFAULT_SEARCH_LIMIT = 5
DEFAULT_MAX_WORKERS = 4

# Tracks handed to resolve_tracks() at once, per lookup thread. Callers
# check for cancellation between windows.
LOOKUP_WINDOW_FACTOR = 4


class TrackSearchClient(Protocol):
    """The part of the music-platform client the matcher needs."""

    def search_tracks(self, query: str, limit: int = 5) -> list[Track]:
        ...


def _normalize_text(text: str) -> str:
    """
    Normalize a title for comparison.

    Removes bracketed parts (often version info like "(Clean)" or
    "[Radio Edit]"), punctuation and extra whitespace, and lowercases.
    Falls back to the lowercased input if nothing would be left.
    """
    normalized = re.sub(r'\s*[\(\[\{].*?[\)\]\}]\s*', ' ', text)
    normalized = re.sub(r'[^\w\s]', '', normalized)
    normalized = ' '.join(normalized.split()).lower().strip()
    return normalized or text.lower().strip()


def _normalize_artist(name: str) -> str:
    """Casefold an artist name and drop punctuation and extra whitespace."""
    normalized = re.sub(r'[^\w\s]', '', name.casefold())
    return ' '.join(normalized.split())


def _query_title(title: str) -> str:
    """Strip bracketed suffixes and quotes so the title fits a field filter."""
    cleaned = re.sub(r'\s*[\(\[\{].*?[\)\]\}]\s*', ' ', title)
    cleaned = ' '.join(cleaned.replace('"', ' ').split())
    return cleaned or title.replace('"', ' ').strip()


def build_search_query(track: Track) -> str:
    """
    Build the catalog query for a track's clean version.

    Example:
        Track(name="HUMBLE. (Explicit)", artist="Kendrick Lamar")
        # track:"HUMBLE." artist:"Kendrick Lamar"
    """
    artist = track.artist.replace('"', ' ').strip()
    return f'track:"{_query_title(track.name)}" artist:"{artist}"'


def is_clean_candidate(source: Track, candidate: Track) -> bool:
    """
    Check whether a search result can replace an explicit source track.

    A candidate qualifies when it is not explicit, is not the source track
    itself, has the same primary artist (after normalization) and a title
    similar enough to count as the same song.
    """
    if candidate.explicit:
        return False
    if candidate.spotify_id == source.spotify_id:
        return False
    if _normalize_artist(candidate.artist) != _normalize_artist(source.artist):
        return False
    similarity = fuzz.ratio(_normalize_text(candidate.name), _normalize_text(source.name))
    return similarity >= MIN_TITLE_SIMILARITY


def select_best_candidate(source: Track, candidates: Sequence[Track]) -> Track | None:
    """
    Pick the best clean replacement among search results.

    Eligible candidates (see is_clean_candidate) are ranked by:
        1. same album as the source
        2. higher popularity
        3. smaller Levenshtein distance between normalized titles

    Returns:
        The best candidate, or None if no candidate is eligible.
        Ties keep search-result order.
    """
    eligible = [c for c in candidates if is_clean_candidate(source, c)]
    if not eligible:
        return None

    source_title = _normalize_text(source.name)

    def rank(candidate: Track) -> tuple[int, int, int]:
        same_album = source.album_id is not None and candidate.album_id == source.album_id
        distance = Levenshtein.distance(_normalize_text(candidate.name), source_title)
        return (0 if same_album else 1, -candidate.popularity, distance)

    return min(eligible, key=rank)


def mirror_mapping(track: Track, position: int | None = None) -> TrackMapping:
    """Mapping of a track that is kept as-is in the clean copy."""
    return TrackMapping(
        source_track_id=track.spotify_id,
        source_track_name=track.name,
        source_artist=track.artist_string,
        is_explicit=track.explicit,
        has_clean_match=True,
        target_track_id=track.spotify_id,
        target_track_name=track.name,
        target_artist=track.artist_string,
        position=position,
    )


def replacement_mapping(track: Track, clean: Track, position: int | None = None) -> TrackMapping:
    """Mapping of an explicit track replaced by a clean version."""
    return TrackMapping(
        source_track_id=track.spotify_id,
        source_track_name=track.name,
        source_artist=track.artist_string,
        is_explicit=True,
        has_clean_match=True,
        target_track_id=clean.spotify_id,
        target_track_name=clean.name,
        target_artist=clean.artist_string,
        position=position,
    )


def unmatched_mapping(track: Track, position: int | None = None) -> TrackMapping:
    """Mapping of an explicit track that is dropped from the clean copy."""
    return TrackMapping(
        source_track_id=track.spotify_id,
        source_track_name=track.name,
        source_artist=track.artist_string,
        is_explicit=True,
        has_clean_match=False,
        position=position,
    )


class TrackMatcher(ABC):
    """
    Resolves source tracks to their mapping in the clean copy.

    Subclasses implement resolve_track() for one platform; resolve_tracks()
    fans single lookups out over a thread pool.

    Attributes:
        max_workers: Default number of parallel lookups in resolve_tracks().
    """

    def __init__(self, max_workers: int = DEFAULT_MAX_WORKERS) -> None:
        self.max_workers = max_workers

    @property
    def window_size(self) -> int:
        """Tracks to resolve between two cancellation checks."""
        return max(1, self.max_workers * LOOKUP_WINDOW_FACTOR)

    @abstractmethod
    def resolve_track(
        self,
        track: Track,
        position: int | None = None,
        context: str | None = None
    ) -> TrackMapping:
        """
        Resolve one source track.

        Args:
            track: The source track.
            position: Its 0-based position in the source playlist.
            context: Label for reports, e.g. "job 3" or "sync 1".

        Returns:
            Exactly one TrackMapping for the track.

        Raises:
            SpotifyError: Only for failures that must stop the whole run
                          (auth errors). Per-track failures map to
                          "no clean match" instead.
        """
        pass

    def resolve_tracks(
        self,
        tracks: Sequence[Track],
        positions: Sequence[int] | None = None,
        max_workers: int | None = None,
        context: str | None = None
    ) -> list[tuple[Track, TrackMapping | Exception]]:
        """
        Resolve several tracks with bounded parallelism.

        Args:
            tracks: Source tracks.
            positions: Source position of each track (defaults to 0..n-1).
            max_workers: Parallel lookups; defaults to self.max_workers.
            context: Label for reports.

        Returns:
            (track, mapping or exception) pairs IN INPUT ORDER. Exceptions
            are returned, not raised, so the caller decides where a failure
            cuts the run.
        """
        if positions is None:
            positions = range(len(tracks))
        if len(positions) != len(tracks):
            raise ValueError("positions must have one entry per track")

        results = run_in_parallel(
            lambda pair: self.resolve_track(pair[1], position=pair[0], context=context),
            list(zip(positions, tracks)),
            num_threads=max_workers or self.max_workers,
        )
        return [(track, result) for (_, track), result in results]


class SpotifyTrackMatcher(TrackMatcher):
    """
    Finds clean versions of explicit tracks in the Spotify catalog.

    Attributes:
        _client: Client used for catalog searches.
        _search_limit: Maximum search results inspected per track.
        _retry_policy: Backoff for transient search failures.

    Thread Safety:
        resolve_track() keeps no per-call state on the instance and can be
        called from several threads.
    """

    def __init__(
        self,
        client: TrackSearchClient,
        search_limit: int = DEFAULT_SEARCH_LIMIT,
        retry_policy: RetryPolicy | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
        sleep: Callable[[float], None] = time.sleep,
        rng: Callable[[], float] = random.random
    ) -> None:
        super().__init__(max_workers=max_workers)
        self._client = client
        self._search_limit = search_limit
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng

    def find_clean_version(self, track: Track) -> Track | None:
        """
        Search the catalog for a clean version of an explicit track.

        Raises:
            SpotifyError: If the search fails (after retries for transient
                          errors).
        """
        query = build_search_query(track)
        logger.debug(f"Searching clean version: {query}")

        candidates = call_with_retry(
            lambda: self._client.search_tracks(query, limit=self._search_limit),
            self._retry_policy,
            description=f"Search for {track.artist} - {track.name}",
            sleep=self._sleep,
            rng=self._rng
        )
        return select_best_candidate(track, candidates)

    def resolve_track(
        self,
        track: Track,
        position: int | None = None,
        context: str | None = None
    ) -> TrackMapping:
        if not track.explicit:
            return mirror_mapping(track, position)

        try:
            clean = self.find_clean_version(track)
        except SpotifyError as e:
            if e.is_auth_error:
                raise
            reason = "search failed after retries" if e.is_transient else f"search failed: {e}"
            logger.warning(f"Search error for {track.artist} - {track.name}: {e}")
            self._report_unmatched(track, reason, position, context)
            return unmatched_mapping(track, position)
        except Exception as e:
            logger.error(f"Error matching {track.artist} - {track.name}: {e}")
            self._report_unmatched(track, f"search failed: {e}", position, context)
            return unmatched_mapping(track, position)

        if clean is None:
            self._report_unmatched(track, "no clean version found", position, context)
            return unmatched_mapping(track, position)

        logger.debug(format_clean_match_message(track.artist, track.name, clean.name))
        return replacement_mapping(track, clean, position)

    def _report_unmatched(
        self,
        track: Track,
        reason: str,
        position: int | None,
        context: str | None
    ) -> None:
        log_unmatched_track(
            logger,
            track_name=track.name,
            artist=track.artist_string,
            track_id=track.spotify_id,
            reason=reason,
            context=context,
            position=position
        )
