"""Test Spotify data models"""

import pytest

from playlist_cleaner.spotify.models import Playlist, Track


class TestTrack:
    """Test Track parsing"""

    def test_from_spotify_api(self):
        """Test Track creation from a full track object"""
        data = {
            'id': 'track1',
            'name': 'Test Track',
            'artists': [{'id': 'a1', 'name': 'Calvin Harris'}, {'id': 'a2', 'name': 'Dua Lipa'}],
            'album': {'id': 'album1', 'name': 'Test Album'},
            'duration_ms': 180000,
            'explicit': True,
            'popularity': 80,
        }
        track = Track.from_spotify_api(data)

        assert track.spotify_id == 'track1'
        assert track.artist == 'Calvin Harris'
        assert track.artists == ('Calvin Harris', 'Dua Lipa')
        assert track.artist_string == 'Calvin Harris, Dua Lipa'
        assert track.album_id == 'album1'
        assert track.explicit is True
        assert track.popularity == 80
        assert track.spotify_url == 'https://open.spotify.com/track/track1'

    def test_missing_optional_fields(self):
        """Test defaults when Spotify omits fields"""
        track = Track.from_spotify_api({'id': 'track1', 'name': 'Bare', 'album': None, 'popularity': None})

        assert track.artist == 'Unknown'
        assert track.artist_string == 'Unknown'
        assert track.album == ''
        assert track.album_id is None
        assert track.explicit is False
        assert track.popularity == 0

    def test_missing_id(self):
        with pytest.raises(KeyError):
            Track.from_spotify_api({'name': 'Local file'})

    def test_immutable(self):
        track = Track(spotify_id='track1', name='Test')
        with pytest.raises(AttributeError):
            track.name = 'Other'


class TestPlaylist:
    """Test Playlist parsing"""

    def test_from_spotify_api(self):
        data = {
            'id': 'pl1',
            'name': 'Road Trip',
            'owner': {'id': 'user_1'},
            'description': None,
            'public': False,
            'tracks': {'total': 42},
        }
        playlist = Playlist.from_spotify_api(data)

        assert playlist.spotify_id == 'pl1'
        assert playlist.owner_id == 'user_1'
        assert playlist.description == ''
        assert playlist.total_tracks == 42
        assert playlist.public is False
