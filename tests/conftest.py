"""Test configuration and fixtures"""

import itertools
from pathlib import Path

import pytest

from playlist_cleaner.core.database import Database
from playlist_cleaner.core.exceptions import SpotifyError
from playlist_cleaner.matching.matcher import SpotifyTrackMatcher, build_search_query
from playlist_cleaner.spotify.client import SpotifyClient
from playlist_cleaner.spotify.models import Playlist, Track
from playlist_cleaner.utils.retry import RetryPolicy


USER_ID = "user_1"


def make_track(track_id, name=None, artist="Test Artist", explicit=False,
               album_id="album_1", popularity=50):
    """Build a Track with sensible defaults."""
    return Track(
        spotify_id=track_id,
        name=name or f"Song {track_id}",
        artist=artist,
        artists=(artist,),
        album="Test Album",
        album_id=album_id,
        explicit=explicit,
        popularity=popularity,
        duration_ms=180000,
    )


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeSpotifyClient:
    """
    In-memory music platform.

    Playlists are plain lists of track ids; tracks added to a playlist must
    be known to the catalog (register them with add_tracks_to_catalog).
    Failures are injected per method through `errors` (exception raised on
    every call) or `error_after` (number of successful calls before raising).
    """

    def __init__(self, user_id=USER_ID):
        self.user_id = user_id
        self.catalog = {}
        self.playlists = {}
        self.names = {}
        self.search_results = {}
        self.search_errors = {}
        self.errors = {}
        self.error_after = {}
        self.calls = []
        self._ids = itertools.count(1)

    # Setup helpers

    def add_tracks_to_catalog(self, *tracks):
        for track in tracks:
            self.catalog[track.spotify_id] = track

    def add_playlist(self, playlist_id, tracks, name="Road Trip"):
        self.add_tracks_to_catalog(*tracks)
        self.playlists[playlist_id] = [t.spotify_id for t in tracks]
        self.names[playlist_id] = name

    def set_clean_version(self, explicit_track, *candidates):
        self.add_tracks_to_catalog(*candidates)
        self.search_results[build_search_query(explicit_track)] = list(candidates)

    def set_search_error(self, explicit_track, error):
        self.search_errors[build_search_query(explicit_track)] = error

    def _record(self, method, *args):
        self.calls.append((method, args))
        if method in self.errors:
            raise self.errors[method]
        if method in self.error_after:
            if self.error_after[method] <= 0:
                raise SpotifyError(f"{method} failed", is_auth_error=True)
            self.error_after[method] -= 1

    def calls_to(self, method):
        return [args for name, args in self.calls if name == method]

    # Client interface

    def current_user_id(self):
        return self.user_id

    def playlist(self, playlist_id):
        self._record("playlist", playlist_id)
        if playlist_id not in self.playlists:
            raise SpotifyError("Not found while trying to get playlist")
        return Playlist(
            spotify_id=playlist_id,
            name=self.names[playlist_id],
            owner_id=self.user_id,
            total_tracks=len(self.playlists[playlist_id]),
        )

    def list_playlist_tracks(self, playlist_id):
        self._record("list_playlist_tracks", playlist_id)
        if playlist_id not in self.playlists:
            raise SpotifyError("Not found while trying to get playlist items")
        return [self.catalog[track_id] for track_id in self.playlists[playlist_id]]

    def create_playlist(self, name, description="", public=False):
        self._record("create_playlist", name, description, public)
        playlist_id = f"clean_{next(self._ids)}"
        self.playlists[playlist_id] = []
        self.names[playlist_id] = name
        return playlist_id

    def add_tracks(self, playlist_id, track_ids, position=None):
        self._record("add_tracks", playlist_id, list(track_ids), position)
        items = self.playlists[playlist_id]
        if position is None:
            items.extend(track_ids)
        else:
            items[position:position] = list(track_ids)

    def remove_tracks(self, playlist_id, track_ids):
        self._record("remove_tracks", playlist_id, list(track_ids))
        removed = set(track_ids)
        self.playlists[playlist_id] = [t for t in self.playlists[playlist_id] if t not in removed]

    def search_tracks(self, query, limit=5):
        self._record("search_tracks", query)
        if query in self.search_errors:
            raise self.search_errors[query]
        return self.search_results.get(query, [])[:limit]


@pytest.fixture
def database(tmp_path: Path):
    """Fresh database in a temporary directory"""
    db = Database(tmp_path / "database.db")
    yield db
    db.close()


@pytest.fixture
def fake_client():
    return FakeSpotifyClient()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def matcher(fake_client):
    """Real matcher on the fake client, without backoff sleeps"""
    return SpotifyTrackMatcher(
        fake_client,
        retry_policy=RetryPolicy(max_attempts=2),
        max_workers=2,
        sleep=lambda seconds: None,
        rng=lambda: 0.5
    )


@pytest.fixture
def reset_spotify_client():
    """Make sure every test starts and ends without a SpotifyClient singleton"""
    SpotifyClient.reset()
    yield
    SpotifyClient.reset()
