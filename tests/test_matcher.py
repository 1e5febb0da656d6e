# tests/test_matcher.py
"""Test clean-version matching"""

import pytest

from playlist_cleaner.core.config import MatchingConfig
from playlist_cleaner.core.exceptions import ConfigError, SpotifyError
from playlist_cleaner.matching import (
    SpotifyTrackMatcher,
    build_search_query,
    create_track_matcher,
    select_best_candidate,
)

from conftest import make_track


EXPLICIT = make_track("src", name="Loud Song (Explicit)", explicit=True, album_id="album_1")


class TestSearchQuery:
    """Test query construction"""

    def test_strips_version_suffix(self):
        assert build_search_query(EXPLICIT) == 'track:"Loud Song" artist:"Test Artist"'

    def test_strips_quotes(self):
        track = make_track("q", name='Say "Hi"', artist='DJ "Q"')
        assert build_search_query(track) == 'track:"Say Hi" artist:"DJ Q"'


class TestSelectBestCandidate:
    """Test candidate filtering and ranking"""

    def test_explicit_and_self_are_rejected(self):
        candidates = [
            make_track("src", name="Loud Song", explicit=True),
            make_track("other", name="Loud Song", explicit=True),
        ]
        assert select_best_candidate(EXPLICIT, candidates) is None

    def test_different_artist_is_rejected(self):
        candidates = [make_track("c", name="Loud Song", artist="Someone Else")]
        assert select_best_candidate(EXPLICIT, candidates) is None

    def test_different_title_is_rejected(self):
        candidates = [make_track("c", name="Quiet Ballad")]
        assert select_best_candidate(EXPLICIT, candidates) is None

    def test_artist_comparison_ignores_case(self):
        candidates = [make_track("c", name="Loud Song", artist="test artist")]
        assert select_best_candidate(EXPLICIT, candidates).spotify_id == "c"

    def test_same_album_preferred(self):
        """Same album wins over popularity"""
        candidates = [
            make_track("popular", name="Loud Song", album_id="compilation", popularity=90),
            make_track("album", name="Loud Song (Clean)", album_id="album_1", popularity=10),
        ]
        assert select_best_candidate(EXPLICIT, candidates).spotify_id == "album"

    def test_popularity_then_title_distance(self):
        candidates = [
            make_track("less", name="Loud Song", album_id="x", popularity=20),
            make_track("more", name="Loud Songs", album_id="y", popularity=60),
            make_track("exact", name="Loud Song", album_id="z", popularity=60),
        ]
        assert select_best_candidate(EXPLICIT, candidates).spotify_id == "exact"


class TestResolveTrack:
    """Test per-track resolution"""

    def test_clean_track_is_mirrored(self, matcher, fake_client):
        track = make_track("a", name="Sunrise")
        mapping = matcher.resolve_track(track, position=4)

        assert mapping.has_clean_match
        assert mapping.target_track_id == "a"
        assert mapping.position == 4
        assert not mapping.is_explicit
        assert fake_client.calls_to("search_tracks") == []

    def test_explicit_track_replaced(self, matcher, fake_client):
        clean = make_track("clean", name="Loud Song")
        fake_client.set_clean_version(EXPLICIT, clean)

        mapping = matcher.resolve_track(EXPLICIT, position=0)

        assert mapping.was_replaced
        assert mapping.target_track_id == "clean"
        assert mapping.target_track_name == "Loud Song"

    def test_explicit_track_without_clean_version(self, matcher):
        mapping = matcher.resolve_track(EXPLICIT)

        assert not mapping.has_clean_match
        assert mapping.target_track_id is None
        assert mapping.is_explicit

    def test_transient_errors_exhausted(self, matcher, fake_client):
        """Exhausted retries map to no clean match"""
        fake_client.set_search_error(EXPLICIT, SpotifyError("Server error", is_transient=True))

        mapping = matcher.resolve_track(EXPLICIT)

        assert not mapping.has_clean_match
        assert len(fake_client.calls_to("search_tracks")) == 2

    def test_other_search_error(self, matcher, fake_client):
        fake_client.set_search_error(EXPLICIT, SpotifyError("Bad request"))

        assert not matcher.resolve_track(EXPLICIT).has_clean_match
        assert len(fake_client.calls_to("search_tracks")) == 1

    def test_auth_error_propagates(self, matcher, fake_client):
        fake_client.set_search_error(EXPLICIT, SpotifyError("Token revoked", is_auth_error=True))

        with pytest.raises(SpotifyError):
            matcher.resolve_track(EXPLICIT)


class TestResolveTracks:
    """Test parallel resolution"""

    def test_results_in_input_order(self, matcher, fake_client):
        tracks = [make_track(f"t{i}") for i in range(6)]
        results = matcher.resolve_tracks(tracks, positions=range(10, 16))

        assert [track.spotify_id for track, _ in results] == [t.spotify_id for t in tracks]
        assert [mapping.position for _, mapping in results] == list(range(10, 16))

    def test_exceptions_returned(self, matcher, fake_client):
        fake_client.set_search_error(EXPLICIT, SpotifyError("Token revoked", is_auth_error=True))

        results = matcher.resolve_tracks([make_track("a"), EXPLICIT])

        assert results[0][1].target_track_id == "a"
        assert isinstance(results[1][1], SpotifyError)

    def test_positions_length_mismatch(self, matcher):
        with pytest.raises(ValueError):
            matcher.resolve_tracks([make_track("a")], positions=[0, 1])

    def test_window_size_scales_with_workers(self, matcher):
        assert matcher.window_size == 8


class TestFactory:
    """Test matcher construction"""

    def test_spotify(self, fake_client):
        matcher = create_track_matcher(" Spotify ", fake_client, MatchingConfig(threads=8))

        assert isinstance(matcher, SpotifyTrackMatcher)
        assert matcher.max_workers == 8

    def test_unknown_platform(self, fake_client):
        with pytest.raises(ConfigError) as exc_info:
            create_track_matcher("tidal", fake_client)
        assert exc_info.value.details["platform"] == "tidal"
