# tests/test_config.py
"""Test configuration loading and validation"""

from pathlib import Path

import pytest

from playlist_cleaner.core.config import load_config, parse_config
from playlist_cleaner.core.exceptions import ConfigError
from playlist_cleaner.core.models import SyncFrequency


MINIMAL_CONFIG = """
spotify:
  client_id: "abc"
  client_secret: "def"
output:
  directory: "{directory}"
"""


def minimal(**sections):
    raw = {
        "spotify": {"client_id": "abc", "client_secret": "def"},
        "output": {"directory": "/tmp/playlist-cleaner"},
    }
    raw.update(sections)
    return raw


class TestLoadConfig:
    """Test reading config.yaml"""

    def test_minimal_file_uses_defaults(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(MINIMAL_CONFIG.format(directory=tmp_path / "out"))

        config = load_config(config_file)

        assert config.spotify.client_id == "abc"
        assert config.spotify.redirect_uri == "http://127.0.0.1:8888/callback"
        assert config.output.database_path == tmp_path / "out" / "database.db"
        assert config.matching.threads == 4
        assert config.matching.max_retries == 3
        assert config.jobs.report_threshold_percent == 5
        assert config.jobs.timeout_seconds == 3600.0
        assert config.scheduler.default_frequency == SyncFrequency.DAILY

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path / "config.yaml")
        assert "not found" in str(exc_info.value)

    def test_invalid_yaml(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("spotify: [unclosed")

        with pytest.raises(ConfigError):
            load_config(config_file)

    def test_not_a_dictionary(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- just\n- a list\n")

        with pytest.raises(ConfigError):
            load_config(config_file)

    def test_cwd_default(self, tmp_path, monkeypatch):
        (tmp_path / "config.yaml").write_text(MINIMAL_CONFIG.format(directory=tmp_path))
        monkeypatch.chdir(tmp_path)

        assert load_config().spotify.client_secret == "def"


class TestParseConfig:
    """Test section validation"""

    @pytest.mark.parametrize("section", ["spotify", "output"])
    def test_missing_required_section(self, section):
        raw = minimal()
        del raw[section]

        with pytest.raises(ConfigError) as exc_info:
            parse_config(raw)
        assert exc_info.value.details["missing_section"] == section

    def test_empty_credentials(self):
        with pytest.raises(ConfigError):
            parse_config(minimal(spotify={"client_id": " ", "client_secret": "def"}))

    def test_output_directory_is_expanded(self):
        config = parse_config(minimal(output={"directory": "~/cleaner"}))
        assert config.output.directory == (Path.home() / "cleaner").resolve()

    def test_matching_section(self):
        config = parse_config(minimal(matching={"platform": "Spotify", "threads": 8, "search_limit": 10}))

        assert config.matching.platform == "spotify"
        assert config.matching.threads == 8
        assert config.matching.search_limit == 10

    @pytest.mark.parametrize("matching", [
        {"platform": "tidal"},
        {"threads": 0},
        {"threads": 17},
        {"threads": True},
        {"max_retries": 0},
        {"search_limit": "five"},
    ])
    def test_invalid_matching(self, matching):
        with pytest.raises(ConfigError):
            parse_config(minimal(matching=matching))

    def test_persist_must_not_be_finer_than_report(self):
        with pytest.raises(ConfigError):
            parse_config(minimal(jobs={"report_threshold_percent": 10, "persist_threshold_percent": 5}))

    def test_null_timeout_disables_deadline(self):
        config = parse_config(minimal(jobs={"timeout_seconds": None}, scheduler={"sync_timeout_seconds": None}))

        assert config.jobs.timeout_seconds is None
        assert config.scheduler.sync_timeout_seconds is None

    def test_scheduler_section(self):
        config = parse_config(minimal(scheduler={"default_frequency": "weekly", "poll_interval_seconds": 60}))

        assert config.scheduler.default_frequency == SyncFrequency.WEEKLY
        assert config.scheduler.poll_interval_seconds == 60.0

    def test_unknown_default_frequency(self):
        with pytest.raises(ConfigError):
            parse_config(minimal(scheduler={"default_frequency": "hourly"}))

    def test_optional_section_must_be_dictionary(self):
        with pytest.raises(ConfigError):
            parse_config(minimal(jobs=["not", "a", "dict"]))
