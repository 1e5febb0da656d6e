# tests/test_logger.py
"""Test logging setup and the unmatched tracks report"""

import logging

import pytest

from playlist_cleaner.core.logger import (
    get_logger,
    log_unmatched_track,
    setup_logging,
    shutdown_logging,
)


@pytest.fixture
def logs_dir(tmp_path):
    """Logging configured into tmp_path, restored afterwards"""
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level

    yield setup_logging(tmp_path)

    shutdown_logging()
    root.setLevel(saved_level)
    for handler in saved_handlers:
        root.addHandler(handler)


def read_log(logs_dir, prefix):
    (path,) = logs_dir.glob(f"{prefix}_*.log")
    return path.read_text(encoding="utf-8")


class TestSetupLogging:
    """Test the log files written under <output>/logs"""

    def test_creates_log_files(self, logs_dir, tmp_path):
        assert logs_dir == tmp_path / "logs"
        for prefix in ("log_full", "log_errors", "unmatched_tracks"):
            assert len(list(logs_dir.glob(f"{prefix}_*.log"))) == 1

    def test_error_log_only_has_errors(self, logs_dir):
        logger = get_logger("playlist_cleaner.test")
        logger.info("job started")
        logger.error("job failed")
        shutdown_logging()

        assert "job started" in read_log(logs_dir, "log_full")
        errors = read_log(logs_dir, "log_errors")
        assert "job failed" in errors
        assert "job started" not in errors

    def test_unmatched_track_report(self, logs_dir):
        logger = get_logger("playlist_cleaner.test")
        log_unmatched_track(
            logger,
            track_name="Loud Song",
            artist="Test Artist",
            track_id="abc123",
            context="job 3",
            position=11
        )
        logger.warning("ordinary warning")
        shutdown_logging()

        report = read_log(logs_dir, "unmatched_tracks")
        assert "[job 3] #12 Loud Song - Test Artist" in report
        assert "https://open.spotify.com/track/abc123" in report
        assert "ordinary warning" not in report
