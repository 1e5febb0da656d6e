# tests/test_cli.py
"""Test the command-line interface with the platform faked out"""

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from playlist_cleaner.cli import cli
from playlist_cleaner.core.database import Database
from playlist_cleaner.core.exceptions import SpotifyError

from conftest import make_track


CONFIG_YAML = """
spotify:
  client_id: "abc"
  client_secret: "def"
output:
  directory: "{directory}"
matching:
  threads: 2
  max_retries: 1
"""


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Directory holding config.yaml, used as the working directory"""
    (tmp_path / "config.yaml").write_text(CONFIG_YAML.format(directory=tmp_path / "out"))
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def invoke(workspace, fake_client):
    """Run a CLI command against the fake client, leaving logging untouched"""
    runner = CliRunner()

    def run(*args, client=fake_client):
        with patch("playlist_cleaner.cli._initialize_spotify", return_value=client), \
                patch("playlist_cleaner.cli.setup_logging"), \
                patch("playlist_cleaner.cli.shutdown_logging"):
            return runner.invoke(cli, list(args))

    return run


@pytest.fixture
def road_trip(fake_client):
    explicit = make_track("B", name="Loud Song", explicit=True)
    clean = make_track("C", name="Loud Song")
    fake_client.add_playlist("pl1", [make_track("A", name="Sunrise"), explicit])
    fake_client.set_clean_version(explicit, clean)
    return fake_client


class TestJobCommands:
    """Test clean / status / jobs"""

    def test_clean(self, invoke, road_trip, workspace):
        result = invoke("clean", "https://open.spotify.com/playlist/pl1?si=abc")

        assert result.exit_code == 0, result.output
        assert "Created job 1 for 'Road Trip'" in result.output
        assert "Completed" in result.output
        assert road_trip.playlists["clean_1"] == ["A", "C"]

        db = Database(workspace / "out" / "database.db")
        assert db.get_job(1).matched_tracks == 2
        db.close()

    def test_clean_with_name(self, invoke, road_trip):
        result = invoke("clean", "pl1", "--name", "Family Road Trip")

        assert result.exit_code == 0, result.output
        assert road_trip.names["clean_1"] == "Family Road Trip"

    def test_clean_rejects_track_url(self, invoke):
        result = invoke("clean", "https://open.spotify.com/track/abc")
        assert result.exit_code == 2

    def test_status_and_jobs(self, invoke, road_trip):
        invoke("clean", "pl1")

        status = invoke("status", "1")
        assert status.exit_code == 0, status.output
        assert "Processed 2 tracks, matched 2 clean versions" in status.output

        listing = invoke("jobs")
        assert "Road Trip" in listing.output

    def test_status_of_unknown_job(self, invoke):
        result = invoke("status", "42")
        assert result.exit_code == 4
        assert "Job not found: 42" in result.output

    def test_no_jobs(self, invoke):
        result = invoke("jobs")
        assert result.exit_code == 0
        assert "No jobs yet" in result.output


class TestSyncCommands:
    """Test enable-sync / sync / history"""

    def test_enable_and_sync(self, invoke, road_trip):
        invoke("clean", "pl1")
        road_trip.add_playlist("pl1", [make_track("N", name="New Song")])

        enabled = invoke("enable-sync", "1", "--frequency", "weekly")
        assert enabled.exit_code == 0, enabled.output
        assert "Frequency:  weekly" in enabled.output

        synced = invoke("sync", "1")
        assert synced.exit_code == 0, synced.output
        assert "+1 / -2" in synced.output
        assert road_trip.playlists["clean_1"] == ["N"]

        history = invoke("history", "1")
        assert "completed" in history.output

    def test_history_prints_totals(self, invoke, road_trip):
        """history ends with run counts and track totals over every run"""
        invoke("clean", "pl1")
        invoke("enable-sync", "1")
        road_trip.add_playlist("pl1", [make_track("N", name="New Song")])
        invoke("sync", "1")
        road_trip.errors["remove_tracks"] = SpotifyError("Server error", is_transient=True)
        road_trip.add_playlist("pl1", [make_track("M", name="Other Song")])
        invoke("sync", "1")

        history = invoke("history", "1")

        assert history.exit_code == 0, history.output
        assert "Server error" in history.output
        assert "2 runs: 1 completed, 1 failed; +2 / -2 tracks" in history.output

    def test_enable_sync_for_unknown_job(self, invoke):
        result = invoke("enable-sync", "7")
        assert result.exit_code == 4

    def test_run_due_with_nothing_due(self, invoke):
        result = invoke("run-due")
        assert result.exit_code == 0
        assert "No syncs due" in result.output


class TestExitCodes:
    """Test error to exit code mapping"""

    def test_missing_config(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with patch("playlist_cleaner.cli.shutdown_logging"):
            result = CliRunner().invoke(cli, ["jobs"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_spotify_auth_error(self, workspace):
        error = SpotifyError("Spotify authentication failed", is_auth_error=True)
        with patch("playlist_cleaner.cli._initialize_spotify", side_effect=error), \
                patch("playlist_cleaner.cli.setup_logging"), \
                patch("playlist_cleaner.cli.shutdown_logging"):
            result = CliRunner().invoke(cli, ["jobs"])

        assert result.exit_code == 3
        assert "client_id" in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output
