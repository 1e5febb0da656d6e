"""
Platform-keyed construction of track matchers.

The job pipeline and the sync orchestrator only depend on the TrackMatcher
contract; which implementation they get is decided here from
config.matching.platform.

Usage:
    matcher = create_track_matcher(config.matching.platform, client, config.matching)
"""

from typing import Any, Callable

from playlist_cleaner.core.config import MatchingConfig
from playlist_cleaner.core.exceptions import ConfigError
from playlist_cleaner.matching.matcher import SpotifyTrackMatcher, TrackMatcher
from playlist_cleaner.utils.retry import RetryPolicy


def _create_spotify_matcher(client: Any, matching_config: MatchingConfig) -> TrackMatcher:
    return SpotifyTrackMatcher(
        client,
        search_limit=matching_config.search_limit,
        retry_policy=RetryPolicy(max_attempts=matching_config.max_retries),
        max_workers=matching_config.threads,
    )


MATCHER_FACTORIES: dict[str, Callable[[Any, MatchingConfig], TrackMatcher]] = {
    "spotify": _create_spotify_matcher,
}


def create_track_matcher(
    platform: str,
    client: Any,
    matching_config: MatchingConfig | None = None
) -> TrackMatcher:
    """
    Build the matcher for a music platform.

    Args:
        platform: Platform key, case-insensitive (e.g. "spotify").
        client: Music-platform client used for catalog searches.
        matching_config: Threads, retries and search limit. Defaults apply
                         when None.

    Returns:
        A TrackMatcher for the platform.

    Raises:
        ConfigError: If no matcher exists for the platform.
    """
    key = (platform or "").strip().lower()
    factory = MATCHER_FACTORIES.get(key)
    if factory is None:
        raise ConfigError(
            f"No track matcher for platform '{platform}'. "
            f"Supported: {', '.join(sorted(MATCHER_FACTORIES))}",
            details={"platform": platform}
        )
    return factory(client, matching_config or MatchingConfig())
