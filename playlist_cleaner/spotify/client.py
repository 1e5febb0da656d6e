"""
Spotify API client singleton for playlist-cleaner.

This module provides a singleton wrapper around the spotipy library, so
only one authenticated Spotify client exists for the application
lifetime. It is the "music-platform client" the job pipeline, the track
matcher and the sync orchestrator talk to.

Lifecycle:
    SpotifyClient.init(...) logs in and stores the one instance; plain
    SpotifyClient() hands it back. A second init() is an error until
    reset() clears the slot.

Authentication:
    User OAuth (SpotifyOAuth) with playlist read/modify scopes. spotipy
    caches the token and refreshes it, so the browser only opens on the
    first run.

Errors:
    Every spotipy.SpotifyException is translated to SpotifyError:
        429        -> is_rate_limit (transient)
        401 / 403  -> is_auth_error
        404        -> not found
        5xx        -> is_transient
    requests timeouts and connection errors become transient SpotifyErrors.
    Page reads and playlist mutations are retried on transient errors
    with call_with_retry(); searches are retried by the matcher.

Usage:
    SpotifyClient.init(
        client_id=config.spotify.client_id,
        client_secret=config.spotify.client_secret,
        redirect_uri=config.spotify.redirect_uri,
    )

    client = SpotifyClient()
    tracks = client.list_playlist_tracks(playlist_id)
"""

from pathlib import Path
from typing import Any, Callable, TypeVar

import requests
import spotipy
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError

from playlist_cleaner.core.exceptions import SpotifyError
from playlist_cleaner.core.logger import get_logger
from playlist_cleaner.spotify.models import Playlist, Track
from playlist_cleaner.utils import chunked
from playlist_cleaner.utils.retry import RetryPolicy, call_with_retry


logger = get_logger(__name__)

T = TypeVar("T")

SPOTIFY_SCOPES = (
    "playlist-read-private",
    "playlist-read-collaborative",
    "playlist-modify-private",
    "playlist-modify-public",
)

# Maximum items per playlist page and per add/remove request
PLAYLIST_PAGE_SIZE = 100
PLAYLIST_MUTATION_CHUNK = 100

PLAYLIST_FIELDS = "id,name,description,owner(id),public,tracks(total)"


def translate_spotify_exception(
    error: spotipy.SpotifyException,
    action: str,
    details: dict | None = None
) -> SpotifyError:
    """
    Map a spotipy exception to a SpotifyError with the right flags.

    Args:
        error: The exception raised by spotipy.
        action: What was being done, e.g. "fetch playlist".
        details: Context to attach (ids, counts).
    """
    details = dict(details or {})
    details["http_status"] = error.http_status
    details["original_error"] = str(error)
    status = error.http_status or 0

    if status == 429:
        return SpotifyError(
            f"Rate limited while trying to {action}",
            details=details,
            is_rate_limit=True
        )
    if status in (401, 403):
        return SpotifyError(
            f"Not authorized to {action}: {error.msg}",
            details=details,
            is_auth_error=True
        )
    if status == 404:
        return SpotifyError(f"Not found while trying to {action}", details=details)
    if status >= 500:
        return SpotifyError(
            f"Spotify server error while trying to {action}: {error.msg}",
            details=details,
            is_transient=True
        )
    return SpotifyError(f"Failed to {action}: {error.msg}", details=details)


class SpotifyClientMeta(type):
    """Holds the single SpotifyClient; calling the class returns it once init() ran."""

    _instance: "SpotifyClient | None" = None
    _initialized: bool = False

    def __call__(cls) -> "SpotifyClient":
        if cls._instance is None:
            raise SpotifyError(
                "No Spotify login yet: SpotifyClient.init() must run before SpotifyClient()",
                is_auth_error=True
            )
        return cls._instance

    def init(
        cls,
        client_id: str,
        client_secret: str,
        redirect_uri: str = "http://127.0.0.1:8888/callback",
        requests_timeout: float = 10.0,
        cache_path: Path | None = None,
        open_browser: bool = True,
        retry_policy: RetryPolicy | None = None
    ) -> "SpotifyClient":
        """
        Log in to Spotify and store the shared client.

        Args:
            client_id: Spotify application client ID from the Developer Dashboard.
            client_secret: Spotify application client secret.
            redirect_uri: Redirect URI registered for the application.
            requests_timeout: Per-request timeout in seconds.
            cache_path: Where spotipy stores the OAuth token. Defaults to
                        spotipy's ".cache" in the working directory.
            open_browser: Whether to open the browser for the first login.
            retry_policy: Backoff for page reads and playlist mutations.

        Raises:
            SpotifyError: On a second init() or a failed login.

        Behavior:
            1. Build a SpotifyOAuth manager with the playlist scopes
            2. Create the spotipy.Spotify instance
            3. Verify the login by fetching the current user
            4. Store the instance as the singleton
        """
        if cls._initialized:
            raise SpotifyError(
                "Spotify client already initialized; call SpotifyClient.reset() first",
                is_auth_error=True
            )

        try:
            auth_manager = SpotifyOAuth(
                client_id=client_id,
                client_secret=client_secret,
                redirect_uri=redirect_uri,
                scope=" ".join(SPOTIFY_SCOPES),
                cache_path=str(cache_path) if cache_path else None,
                open_browser=open_browser
            )
            spotify_instance = spotipy.Spotify(
                auth_manager=auth_manager,
                requests_timeout=requests_timeout
            )
            user = spotify_instance.current_user()
        except spotipy.SpotifyException as e:
            raise SpotifyError(
                f"Spotify login failed: {e}",
                details={"original_error": str(e)},
                is_auth_error=True
            ) from e
        except (SpotifyOauthError, requests.RequestException) as e:
            raise SpotifyError(
                f"Could not set up the Spotify client: {e}",
                details={"original_error": str(e)},
                is_auth_error=True
            ) from e

        instance = super().__call__(spotify_instance, user["id"], retry_policy)
        cls._instance = instance
        cls._initialized = True
        logger.debug(f"Spotify client initialized for user {user['id']}")
        return instance

    def is_initialized(cls) -> bool:
        return cls._initialized

    def reset(cls) -> None:
        """
        Reset the singleton state.

        Clears the instance so init() can be called again. Used by tests.
        """
        cls._instance = None
        cls._initialized = False


class SpotifyClient(metaclass=SpotifyClientMeta):
    """
    The music-platform client used by jobs, matching and sync.

    Wraps spotipy.Spotify with the handful of operations the engine needs,
    translating errors to SpotifyError and returning the models of
    spotify/models.py.

    Attributes:
        _spotify: The underlying spotipy.Spotify instance.
        _user_id: Id of the authenticated user.
        _retry_policy: Backoff for page reads and playlist mutations.

    Thread Safety:
        spotipy uses a requests session per client; the matcher calls
        search_tracks() from several threads, which requests tolerates
        for simple GETs.
    """

    def __init__(
        self,
        spotify_instance: spotipy.Spotify,
        user_id: str,
        retry_policy: RetryPolicy | None = None
    ) -> None:
        """
        Called by the metaclass init(). Do not call directly.
        """
        self._spotify = spotify_instance
        self._user_id = user_id
        self._retry_policy = retry_policy or RetryPolicy()

    def _call(self, func: Callable[[], T], action: str, details: dict | None = None) -> T:
        """Run one spotipy call, translating its errors."""
        try:
            return func()
        except spotipy.SpotifyException as e:
            raise translate_spotify_exception(e, action, details) from e
        except (requests.Timeout, requests.ConnectionError) as e:
            raise SpotifyError(
                f"Network error while trying to {action}: {e}",
                details={**(details or {}), "original_error": str(e)},
                is_transient=True
            ) from e

    def _call_with_retry(self, func: Callable[[], T], action: str, details: dict | None = None) -> T:
        return call_with_retry(
            lambda: self._call(func, action, details),
            self._retry_policy,
            description=action
        )

    # =========================================================================
    # User
    # =========================================================================

    def current_user_id(self) -> str:
        """Id of the authenticated Spotify user (owner of created playlists)."""
        return self._user_id

    # =========================================================================
    # Playlist Reads
    # =========================================================================

    def playlist(self, playlist_id: str) -> Playlist:
        """
        Get playlist metadata (without tracks).

        Raises:
            SpotifyError: If the playlist does not exist, is not accessible,
                          or the request fails.
        """
        result = self._call_with_retry(
            lambda: self._spotify.playlist(playlist_id, fields=PLAYLIST_FIELDS),
            "fetch playlist",
            {"playlist_id": playlist_id}
        )
        if result is None:
            raise SpotifyError(
                f"Playlist not found: {playlist_id}",
                details={"playlist_id": playlist_id}
            )
        return Playlist.from_spotify_api(result)

    def playlist_items(
        self,
        playlist_id: str,
        limit: int = PLAYLIST_PAGE_SIZE,
        offset: int = 0
    ) -> dict[str, Any]:
        """
        Get one raw page of playlist items.

        Returns:
            The Spotify paging object: 'items', 'total', 'next', ...
        """
        result = self._call_with_retry(
            lambda: self._spotify.playlist_items(
                playlist_id,
                limit=min(limit, PLAYLIST_PAGE_SIZE),
                offset=offset,
                additional_types=["track"]
            ),
            "fetch playlist items",
            {"playlist_id": playlist_id, "offset": offset}
        )
        if result is None:
            raise SpotifyError(
                f"Failed to fetch playlist items: {playlist_id}",
                details={"playlist_id": playlist_id, "offset": offset}
            )
        return result

    def list_playlist_tracks(self, playlist_id: str) -> list[Track]:
        """
        Get ALL tracks of a playlist, handling pagination.

        Returns:
            Tracks in playlist order, duplicates included. Local files,
            podcast episodes and unavailable items (no id) are skipped.

        Pagination:
            Requests 100 items per page and advances the offset by 100
            until Spotify reports no next page.
        """
        tracks: list[Track] = []
        skipped = 0
        offset = 0

        while True:
            response = self.playlist_items(playlist_id, limit=PLAYLIST_PAGE_SIZE, offset=offset)
            for item in response.get("items") or []:
                track_data = (item or {}).get("track")
                if (
                    not track_data
                    or not track_data.get("id")
                    or track_data.get("is_local")
                    or track_data.get("type", "track") != "track"
                ):
                    skipped += 1
                    continue
                tracks.append(Track.from_spotify_api(track_data))

            if response.get("next") is None:
                break
            offset += PLAYLIST_PAGE_SIZE

        if skipped:
            logger.debug(f"Skipped {skipped} local or unavailable items in playlist {playlist_id}")
        return tracks

    # =========================================================================
    # Playlist Mutations
    # =========================================================================

    def create_playlist(self, name: str, description: str = "", public: bool = False) -> str:
        """
        Create a playlist owned by the authenticated user.

        Returns:
            The new playlist's id.
        """
        result = self._call_with_retry(
            lambda: self._spotify.user_playlist_create(
                self._user_id,
                name,
                public=public,
                description=description
            ),
            "create playlist",
            {"name": name}
        )
        logger.debug(f"Created playlist {result['id']} ({name})")
        return result["id"]

    def add_tracks(
        self,
        playlist_id: str,
        track_ids: list[str],
        position: int | None = None
    ) -> None:
        """
        Add tracks to a playlist in chunks of 100.

        Args:
            playlist_id: Target playlist.
            track_ids: Track ids in the order they should appear.
            position: Insert position of the first track, or None to append.
                      Successive chunks advance the position so the ids
                      stay contiguous.

        Raises:
            SpotifyError: If a chunk still fails after retries. Chunks
                          before it stay applied.
        """
        for chunk in chunked(track_ids, PLAYLIST_MUTATION_CHUNK):
            chunk_position = position
            self._call_with_retry(
                lambda: self._spotify.playlist_add_items(playlist_id, chunk, position=chunk_position),
                "add tracks to playlist",
                {"playlist_id": playlist_id, "count": len(chunk), "position": chunk_position}
            )
            if position is not None:
                position += len(chunk)

    def remove_tracks(self, playlist_id: str, track_ids: list[str]) -> None:
        """
        Remove every occurrence of the given tracks, in chunks of 100.

        Raises:
            SpotifyError: If a chunk still fails after retries.
        """
        for chunk in chunked(track_ids, PLAYLIST_MUTATION_CHUNK):
            self._call_with_retry(
                lambda: self._spotify.playlist_remove_all_occurrences_of_items(playlist_id, chunk),
                "remove tracks from playlist",
                {"playlist_id": playlist_id, "count": len(chunk)}
            )

    # =========================================================================
    # Search
    # =========================================================================

    def search_tracks(self, query: str, limit: int = 5) -> list[Track]:
        """
        Search the catalog for tracks.

        Not retried here: the matcher wraps this call in its own retry
        loop so it can tell exhausted transient failures apart.

        Raises:
            SpotifyError: With is_rate_limit / is_transient / is_auth_error
                          set according to the failure.
        """
        result = self._call(
            lambda: self._spotify.search(q=query, type="track", limit=limit),
            "search tracks",
            {"query": query}
        )
        items = ((result or {}).get("tracks") or {}).get("items") or []
        return [Track.from_spotify_api(item) for item in items if item and item.get("id")]
