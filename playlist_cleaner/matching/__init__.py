"""
Track matching: deciding what replaces each source track in the clean copy.

    - matcher: TrackMatcher contract and the Spotify catalog implementation
    - factory: platform-keyed construction from the matching config
"""

from playlist_cleaner.matching.factory import create_track_matcher
from playlist_cleaner.matching.matcher import (
    MIN_TITLE_SIMILARITY,
    SpotifyTrackMatcher,
    TrackMatcher,
    build_search_query,
    select_best_candidate,
)

__all__ = [
    "MIN_TITLE_SIMILARITY",
    "SpotifyTrackMatcher",
    "TrackMatcher",
    "build_search_query",
    "create_track_matcher",
    "select_best_candidate",
]
