"""
Data models for Spotify entities.

This module defines immutable dataclasses for the Spotify objects the
engine reads: tracks (playlist items and search results) and playlists.

Design Decisions:
    - All dataclasses are frozen (immutable) to prevent accidental modification
    - Fields keep the Spotify API naming where possible
    - Models are independent of the database format (see core/models.py
      for the persisted TrackMapping)

Usage:
    from playlist_cleaner.spotify.models import Track, Playlist

    track = Track.from_spotify_api(item["track"])
    if track.explicit:
        ...
"""

from dataclasses import dataclass
from typing import Any


SPOTIFY_TRACK_URL = "https://open.spotify.com/track/{}"
UNKNOWN_ARTIST = "Unknown"


@dataclass(frozen=True)
class Track:
    """
    Immutable representation of a Spotify track.

    Attributes:
        spotify_id: Unique Spotify track ID (22-character base62 string).
                    Example: "4cOdK2wGLETKBW3PvgPWqT"

        name: Track title as it appears on Spotify.
              Example: "HUMBLE."

        artist: Primary artist name (first artist in the list), or
                "Unknown" when Spotify returns no artists.

        artists: All artist names, in Spotify order.
                 Example: ("Calvin Harris", "Dua Lipa")

        album: Album name. Empty if unknown.

        album_id: Spotify album ID, used to prefer clean versions from
                  the same release. None if unknown.

        explicit: Whether Spotify flags the track as explicit.

        popularity: Spotify popularity score (0-100).

        duration_ms: Track length in milliseconds.
    """
    spotify_id: str
    name: str
    artist: str = UNKNOWN_ARTIST
    artists: tuple[str, ...] = ()
    album: str = ""
    album_id: str | None = None
    explicit: bool = False
    popularity: int = 0
    duration_ms: int = 0

    @classmethod
    def from_spotify_api(cls, track_data: dict[str, Any]) -> "Track":
        """
        Create a Track from a Spotify track object.

        Args:
            track_data: The track object, i.e. a search result item or the
                        'track' field of a playlist_items entry.

        Raises:
            KeyError: If the object has no 'id' or 'name'. Callers filter
                      out local and unavailable items (id None) first.
        """
        artists_list = [
            a["name"] for a in track_data.get("artists") or [] if a and a.get("name")
        ]
        album_info = track_data.get("album") or {}

        return cls(
            spotify_id=track_data["id"],
            name=track_data["name"],
            artist=artists_list[0] if artists_list else UNKNOWN_ARTIST,
            artists=tuple(artists_list),
            album=album_info.get("name") or "",
            album_id=album_info.get("id"),
            explicit=bool(track_data.get("explicit", False)),
            popularity=track_data.get("popularity") or 0,
            duration_ms=track_data.get("duration_ms") or 0,
        )

    @property
    def artist_string(self) -> str:
        """All artist names joined with ", ", or "Unknown" if there are none."""
        return ", ".join(self.artists) if self.artists else UNKNOWN_ARTIST

    @property
    def spotify_url(self) -> str:
        return SPOTIFY_TRACK_URL.format(self.spotify_id)


@dataclass(frozen=True)
class Playlist:
    """
    Playlist metadata (without the track list).

    Tracks are fetched separately and paged, see
    SpotifyClient.list_playlist_tracks().

    Attributes:
        spotify_id: Spotify playlist ID.
        name: Playlist name.
        owner_id: Spotify user id of the owner.
        description: Playlist description (may be empty).
        total_tracks: Item count reported by Spotify, including local
                      and unavailable items.
        public: Whether the playlist is public, None if Spotify omits it.
    """
    spotify_id: str
    name: str
    owner_id: str = ""
    description: str = ""
    total_tracks: int = 0
    public: bool | None = None

    @classmethod
    def from_spotify_api(cls, playlist_data: dict[str, Any]) -> "Playlist":
        owner = playlist_data.get("owner") or {}
        tracks_info = playlist_data.get("tracks") or {}
        return cls(
            spotify_id=playlist_data["id"],
            name=playlist_data.get("name") or "",
            owner_id=owner.get("id") or "",
            description=playlist_data.get("description") or "",
            total_tracks=tracks_info.get("total") or 0,
            public=playlist_data.get("public"),
        )
