# tests/test_utils.py
"""Test utilities and helpers"""

import threading
import time

import pytest

from playlist_cleaner.core.exceptions import OperationCancelledError
from playlist_cleaner.utils import (
    chunked,
    ensure_directory,
    extract_playlist_id,
    extract_spotify_id,
    format_duration_ms,
    run_in_parallel,
)
from playlist_cleaner.utils.cancellation import CancellationToken

from conftest import FakeClock


class TestHelpers:
    """Test helper functions"""

    def test_chunked(self):
        """Test splitting into mutation-sized chunks"""
        assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]
        assert list(chunked([], 100)) == []
        assert [len(c) for c in chunked(list(range(250)), 100)] == [100, 100, 50]

    def test_chunked_invalid_size(self):
        with pytest.raises(ValueError):
            list(chunked([1], 0))

    def test_extract_spotify_id(self):
        """Test id extraction from URLs and URIs"""
        assert extract_spotify_id("https://open.spotify.com/track/abc123?si=xyz") == "abc123"
        assert extract_spotify_id("https://open.spotify.com/intl-it/track/abc123/") == "abc123"
        assert extract_spotify_id("spotify:track:abc123") == "abc123"
        assert extract_spotify_id("  abc123 ") == "abc123"

    def test_extract_playlist_id(self):
        assert extract_playlist_id("https://open.spotify.com/playlist/37i9dQZF1DXcBWIGoYBM5M") == "37i9dQZF1DXcBWIGoYBM5M"
        assert extract_playlist_id("spotify:playlist:pl1") == "pl1"
        assert extract_playlist_id("pl1") == "pl1"

    @pytest.mark.parametrize("value", [
        "https://open.spotify.com/track/abc123",
        "spotify:album:abc",
        "   ",
    ])
    def test_extract_playlist_id_rejects(self, value):
        with pytest.raises(ValueError):
            extract_playlist_id(value)

    def test_format_duration_ms(self):
        """Test execution time formatting"""
        assert format_duration_ms(850) == "850ms"
        assert format_duration_ms(12_400) == "12.4s"
        assert format_duration_ms(95_000) == "1:35"

    def test_ensure_directory(self, tmp_path):
        target = tmp_path / "a" / "b"
        assert ensure_directory(target) == target
        assert target.is_dir()


class TestRunInParallel:
    """Test parallel execution helper"""

    def test_results_in_input_order(self):
        """Slow early items still come first"""
        def work(n):
            time.sleep(0.01 * (5 - n))
            return n * 10

        results = run_in_parallel(work, [0, 1, 2, 3, 4], num_threads=5)
        assert results == [(0, 0), (1, 10), (2, 20), (3, 30), (4, 40)]

    def test_exceptions_are_returned(self):
        def work(n):
            if n == 2:
                raise RuntimeError("boom")
            return n

        results = run_in_parallel(work, [1, 2, 3], num_threads=2)

        assert results[0] == (1, 1)
        assert isinstance(results[1][1], RuntimeError)
        assert results[2] == (3, 3)

    def test_empty(self):
        assert run_in_parallel(lambda n: n, []) == []


class TestCancellationToken:
    """Test cooperative cancellation"""

    def test_no_deadline(self):
        token = CancellationToken()
        token.check()
        assert not token.deadline_exceeded

    def test_cancel(self):
        token = CancellationToken()
        canceller = threading.Thread(target=token.cancel)
        canceller.start()
        canceller.join()

        assert token.is_cancelled
        with pytest.raises(OperationCancelledError) as exc_info:
            token.check("processing job 3")
        assert "processing job 3 was cancelled" in str(exc_info.value)

    def test_deadline(self):
        clock = FakeClock()
        token = CancellationToken(timeout_seconds=10, clock=clock)

        clock.advance(4)
        token.check()
        assert not token.deadline_exceeded

        clock.advance(6)
        assert token.deadline_exceeded
        with pytest.raises(OperationCancelledError) as exc_info:
            token.check("sync 1")
        assert exc_info.value.details["timeout_seconds"] == 10
