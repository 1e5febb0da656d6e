"""
Loading and validation of config.yaml.

Only the spotify and output sections are mandatory; matching, jobs and
scheduler fall back to defaults when absent. The file is looked up in
the working directory unless a path is passed in.

    spotify:
      client_id: "<from the Spotify developer dashboard>"
      client_secret: "<from the Spotify developer dashboard>"
      redirect_uri: "http://127.0.0.1:8888/callback"
      requests_timeout: 10

    output:
      directory: "~/.playlist-cleaner"   # database.db and logs/ live here

    matching:
      platform: spotify
      threads: 4
      max_retries: 3
      search_limit: 5

    jobs:
      report_threshold_percent: 5
      persist_threshold_percent: 10
      timeout_seconds: 3600             # null disables the deadline

    scheduler:
      default_frequency: daily
      sync_timeout_seconds: 900
      poll_interval_seconds: 300
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from playlist_cleaner.core.exceptions import ConfigError
from playlist_cleaner.core.models import SyncFrequency


CONFIG_FILENAME = "config.yaml"

DEFAULT_REDIRECT_URI = "http://127.0.0.1:8888/callback"
SUPPORTED_PLATFORMS = ("spotify",)
MAX_MATCHING_THREADS = 16
MAX_SEARCH_LIMIT = 50


@dataclass(frozen=True)
class SpotifyConfig:
    """
    Credentials of the Spotify application plus HTTP settings.

    The redirect URI must match one registered for the app; creating
    playlists needs a user token, so the client-credentials flow is not
    enough.
    """
    client_id: str
    client_secret: str
    redirect_uri: str = DEFAULT_REDIRECT_URI
    requests_timeout: float = 10.0


@dataclass(frozen=True)
class OutputConfig:
    """Where state lives: an absolute, user-expanded directory."""
    directory: Path

    @property
    def database_path(self) -> Path:
        return self.directory / "database.db"


@dataclass(frozen=True)
class MatchingConfig:
    """
    Settings for finding clean versions.

    Attributes:
        platform: Name the matcher factory dispatches on.
        threads: Upper bound on concurrent search calls within one run.
        max_retries: Search attempts per track before it counts as unmatched.
        search_limit: Candidates requested from each search.
    """
    platform: str = "spotify"
    threads: int = 4
    max_retries: int = 3
    search_limit: int = 5


@dataclass(frozen=True)
class JobsConfig:
    """
    Settings for batch cleaning jobs.

    Attributes:
        report_threshold_percent: Minimum progress step between broadcasts.
        persist_threshold_percent: Minimum progress step between database
            writes; never smaller than the report step.
        timeout_seconds: Deadline for a whole job, None for unlimited.
    """
    report_threshold_percent: int = 5
    persist_threshold_percent: int = 10
    timeout_seconds: float | None = 3600.0


@dataclass(frozen=True)
class SchedulerConfig:
    default_frequency: SyncFrequency = SyncFrequency.DAILY
    sync_timeout_seconds: float | None = 900.0
    poll_interval_seconds: float = 300.0


@dataclass(frozen=True)
class Config:
    """
    Immutable root of the configuration tree, as returned by load_config().

    Example:
        config = load_config()
        db = Database(config.output.database_path)
    """
    spotify: SpotifyConfig
    output: OutputConfig
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    jobs: JobsConfig = field(default_factory=JobsConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)


def load_config(config_path: Path | None = None) -> Config:
    """
    Read config.yaml and turn it into a Config.

    Args:
        config_path: File to read; defaults to config.yaml in the
                     working directory.

    Raises:
        ConfigError: When the file is absent or unreadable, is not a YAML
                     mapping, or fails validation.
    """
    path = config_path if config_path is not None else Path.cwd() / CONFIG_FILENAME
    file_details = {"file_path": str(path)}

    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}", details=file_details)

    try:
        raw_config = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(
            f"Could not read {path}: {e}",
            details={**file_details, "original_error": str(e)}
        ) from e
    except yaml.YAMLError as e:
        raise ConfigError(
            f"{path} is not valid YAML: {e}",
            details={**file_details, "original_error": str(e)}
        ) from e

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details=file_details
        )

    return parse_config(raw_config)


def parse_config(raw_config: dict[str, Any]) -> Config:
    """
    Build a Config from a mapping that was already parsed.

    Used by load_config() and by callers that hold configuration in
    memory, tests in particular.

    Raises:
        ConfigError: If validation fails.
    """
    return Config(
        spotify=_parse_spotify_config(_section(raw_config, "spotify", required=True)),
        output=_parse_output_config(_section(raw_config, "output", required=True)),
        matching=_parse_matching_config(_section(raw_config, "matching")),
        jobs=_parse_jobs_config(_section(raw_config, "jobs")),
        scheduler=_parse_scheduler_config(_section(raw_config, "scheduler")),
    )


def _section(raw_config: dict[str, Any], name: str, required: bool = False) -> dict[str, Any]:
    """Return a top-level section, {} for an absent optional one."""
    section = raw_config.get(name)
    if section is None:
        if required:
            raise ConfigError(
                f"Missing required section: '{name}'",
                details={"missing_section": name}
            )
        return {}
    if not isinstance(section, dict):
        raise ConfigError(
            f"Section '{name}' must be a dictionary",
            details={"section": name}
        )
    return section


def _non_empty_string(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(
            f"'{field_name}' must be a non-empty string",
            details={"field": field_name}
        )
    return value.strip()


def _parse_spotify_config(section: dict[str, Any]) -> SpotifyConfig:
    return SpotifyConfig(
        client_id=_non_empty_string(section.get("client_id"), "spotify.client_id"),
        client_secret=_non_empty_string(section.get("client_secret"), "spotify.client_secret"),
        redirect_uri=_non_empty_string(
            section.get("redirect_uri", DEFAULT_REDIRECT_URI), "spotify.redirect_uri"
        ),
        requests_timeout=_positive_number(
            section.get("requests_timeout", 10), "spotify.requests_timeout"
        ),
    )


def _parse_output_config(section: dict[str, Any]) -> OutputConfig:
    # The directory itself is created by the CLI, not here
    directory = _non_empty_string(section.get("directory"), "output.directory")
    return OutputConfig(directory=Path(directory).expanduser().resolve())


def _parse_matching_config(section: dict[str, Any]) -> MatchingConfig:
    """
    Parse the matching section, applying defaults.

    Raises:
        ConfigError: On unsupported platform or out-of-range integers.
    """
    platform = section.get("platform", "spotify")
    if not isinstance(platform, str) or platform.strip().lower() not in SUPPORTED_PLATFORMS:
        raise ConfigError(
            f"'matching.platform' must be one of {', '.join(SUPPORTED_PLATFORMS)}",
            details={"field": "matching.platform", "value": platform}
        )

    return MatchingConfig(
        platform=platform.strip().lower(),
        threads=_bounded_int(section.get("threads", 4), "matching.threads", 1, MAX_MATCHING_THREADS),
        max_retries=_bounded_int(section.get("max_retries", 3), "matching.max_retries", 1, None),
        search_limit=_bounded_int(
            section.get("search_limit", 5), "matching.search_limit", 1, MAX_SEARCH_LIMIT
        ),
    )


def _parse_jobs_config(section: dict[str, Any]) -> JobsConfig:
    """
    Parse the jobs section, applying defaults.

    Raises:
        ConfigError: If thresholds are outside 1-100 or the persistence
                     threshold is finer than the report threshold.
    """
    report = _bounded_int(
        section.get("report_threshold_percent", 5), "jobs.report_threshold_percent", 1, 100
    )
    persist = _bounded_int(
        section.get("persist_threshold_percent", 10), "jobs.persist_threshold_percent", 1, 100
    )
    if persist < report:
        raise ConfigError(
            "'jobs.persist_threshold_percent' must be >= 'jobs.report_threshold_percent'",
            details={"report_threshold_percent": report, "persist_threshold_percent": persist}
        )

    return JobsConfig(
        report_threshold_percent=report,
        persist_threshold_percent=persist,
        timeout_seconds=_optional_timeout(section, "timeout_seconds", 3600.0, "jobs"),
    )


def _parse_scheduler_config(section: dict[str, Any]) -> SchedulerConfig:
    """
    Parse the scheduler section, applying defaults.

    Raises:
        ConfigError: On unknown frequency or non-positive intervals.
    """
    raw_frequency = section.get("default_frequency", SyncFrequency.DAILY.value)
    try:
        frequency = SyncFrequency(raw_frequency)
    except ValueError as e:
        raise ConfigError(
            f"'scheduler.default_frequency' must be one of "
            f"{', '.join(f.value for f in SyncFrequency)}",
            details={"field": "scheduler.default_frequency", "value": raw_frequency}
        ) from e

    return SchedulerConfig(
        default_frequency=frequency,
        sync_timeout_seconds=_optional_timeout(section, "sync_timeout_seconds", 900.0, "scheduler"),
        poll_interval_seconds=_positive_number(
            section.get("poll_interval_seconds", 300), "scheduler.poll_interval_seconds"
        ),
    )


def _bounded_int(value: Any, field_name: str, minimum: int, maximum: int | None) -> int:
    # bool is a subclass of int; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum or (
        maximum is not None and value > maximum
    ):
        bounds = f">= {minimum}" if maximum is None else f"between {minimum} and {maximum}"
        raise ConfigError(
            f"'{field_name}' must be an integer {bounds}",
            details={"field": field_name, "value": value}
        )
    return value


def _positive_number(value: Any, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(
            f"'{field_name}' must be a positive number",
            details={"field": field_name, "value": value}
        )
    return float(value)


def _optional_timeout(
    section: dict[str, Any],
    key: str,
    default: float,
    section_name: str
) -> float | None:
    """A missing key gives the default; an explicit null disables the timeout."""
    if key not in section:
        return default
    if section[key] is None:
        return None
    return _positive_number(section[key], f"{section_name}.{key}")
