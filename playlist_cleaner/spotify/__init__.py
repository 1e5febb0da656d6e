"""
Spotify integration for playlist-cleaner.

    - client: SpotifyClient singleton wrapping spotipy
    - models: Track and Playlist dataclasses
"""

from playlist_cleaner.spotify.client import SpotifyClient
from playlist_cleaner.spotify.models import Playlist, Track

__all__ = [
    "SpotifyClient",
    "Playlist",
    "Track",
]
