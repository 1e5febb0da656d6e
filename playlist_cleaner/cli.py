"""
Command-line interface for playlist-cleaner.

This module implements the CLI using Click, providing commands to create
clean copies of Spotify playlists and to keep them in sync with their
source. rich-click is used for the output colors.

Commands:
    cleansync clean <playlist-url>          Create a job and process it
    cleansync process <job-id>              Process a pending job
    cleansync retry <job-id>                Reset a failed job and process it
    cleansync status <job-id>               Show the progress of a job
    cleansync jobs                          List your jobs
    cleansync enable-sync <job-id>          Keep a clean copy in sync
    cleansync disable-sync <config-id>      Stop syncing
    cleansync frequency <config-id> <F>     Change the sync frequency
    cleansync sync <config-id>              Sync now
    cleansync syncs                         List your sync configs
    cleansync history <config-id>           Show recent sync runs and totals
    cleansync run-due                       Run every due sync once
    cleansync scheduler                     Run due syncs until interrupted

Usage:
    # Create "Clean - Road Trip" from a playlist
    cleansync clean "https://open.spotify.com/playlist/..."

    # Keep it updated every week
    cleansync enable-sync 1 --frequency weekly

Configuration:
    The CLI requires a config.yaml file in the current directory (or the
    path given with --config) with:
    - Spotify API credentials (client_id, client_secret, redirect_uri)
    - Output directory path (database and logs)
    - Optional matching, jobs and scheduler settings

Exit codes:
    0    Success
    1    Configuration or unexpected error
    2    Database error
    3    Spotify error
    4    Other error (job or sync state)
    130  Interrupted
"""

import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import rich_click as click

# Configure rich-click for better help formatting
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = ""
click.rich_click.MAX_WIDTH = 100
click.rich_click.COMMAND_GROUPS = {
    "cleansync": [
        {
            "name": "Clean Copies",
            "commands": ["clean", "process", "retry", "status", "jobs"],
        },
        {
            "name": "Recurring Sync",
            "commands": ["enable-sync", "disable-sync", "frequency", "sync", "syncs", "history"],
        },
        {
            "name": "Scheduling",
            "commands": ["run-due", "scheduler"],
        },
    ],
}

from playlist_cleaner import __version__
from playlist_cleaner.core import (
    Config,
    ConfigError,
    Database,
    DatabaseError,
    Job,
    JobError,
    PlaylistCleanerError,
    SpotifyError,
    SyncConfig,
    SyncHistorySummary,
    get_logger,
    load_config,
    setup_logging,
    shutdown_logging,
)
from playlist_cleaner.core.models import format_timestamp
from playlist_cleaner.core.progress import JobProgressBar
from playlist_cleaner.jobs import JobPipeline, LoggingProgressSink, ProgressBarSink
from playlist_cleaner.matching import TrackMatcher, create_track_matcher
from playlist_cleaner.spotify import SpotifyClient
from playlist_cleaner.sync import SyncOrchestrator, SyncResult, SyncScheduler
from playlist_cleaner.utils import ensure_directory, extract_playlist_id, format_duration_ms
from playlist_cleaner.utils.retry import RetryPolicy

logger = get_logger(__name__)


TOKEN_CACHE_FILENAME = ".spotify_token_cache"
FREQUENCY_CHOICES = ["daily", "weekly", "manual"]


@dataclass
class _Services:
    """Everything a command needs, built once per invocation."""
    config: Config
    database: Database
    client: SpotifyClient
    matcher: TrackMatcher
    pipeline: JobPipeline
    orchestrator: SyncOrchestrator

    @property
    def user_id(self) -> str:
        return self.client.current_user_id()


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "--version", prog_name="playlist-cleaner")
@click.option(
    "--config", "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    metavar="<config.yaml>",
    help="Configuration file (default: ./config.yaml)"
)
@click.option(
    "--no-browser",
    is_flag=True,
    help="Do not open a browser for the Spotify login"
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], no_browser: bool) -> None:
    """
    playlist-cleaner: clean copies of Spotify playlists.

    Replaces every explicit track of a playlist with its clean version
    (skipping tracks that have none) and can keep the clean copy in sync
    with the source playlist.

    \b
    BASIC USAGE:
        cleansync clean "https://open.spotify.com/playlist/..."
        cleansync enable-sync 1 --frequency daily
        cleansync scheduler
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["open_browser"] = not no_browser


# =============================================================================
# Command runner
# =============================================================================

def _run(ctx: click.Context, action: Callable[[_Services], None]) -> None:
    """
    Build the services and run a command, mapping errors to exit codes.

    This is the shared orchestration for every command:
    1. Loads configuration
    2. Sets up logging
    3. Initializes database, Spotify client and matcher
    4. Runs the action

    Raises:
        SystemExit: On fatal errors (with appropriate exit code).
    """
    database: Database | None = None

    try:
        config = _load_configuration(ctx.obj["config_path"])

        ensure_directory(config.output.directory)
        setup_logging(config.output.directory)
        logger.debug("playlist-cleaner starting")

        database = _initialize_database(config)
        client = _initialize_spotify(config, ctx.obj["open_browser"])
        services = _build_services(config, database, client)

        action(services)

    except ConfigError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        sys.exit(1)

    except DatabaseError as e:
        click.echo(f"Database error: {e.message}", err=True)
        logger.error(f"Database error: {e.message}", exc_info=True)
        sys.exit(2)

    except SpotifyError as e:
        click.echo(f"Spotify error: {e.message}", err=True)
        if e.is_auth_error:
            click.echo("Check your client_id, client_secret and redirect_uri in config.yaml", err=True)
        logger.error(f"Spotify error: {e.message}", exc_info=True)
        sys.exit(3)

    except PlaylistCleanerError as e:
        click.echo(f"Error: {e.message}", err=True)
        logger.error(f"Error: {e.message}")
        sys.exit(4)

    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        logger.info("Interrupted by user")
        sys.exit(130)

    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        logger.exception("Unexpected error")
        sys.exit(1)

    finally:
        if database is not None:
            database.close()
        shutdown_logging()


def _load_configuration(config_path: Path | None) -> Config:
    return load_config(config_path)


def _initialize_database(config: Config) -> Database:
    return Database(config.output.database_path)


def _initialize_spotify(config: Config, open_browser: bool) -> SpotifyClient:
    """
    Initialize the Spotify client singleton.

    Raises:
        SpotifyError: If authentication fails.
    """
    if SpotifyClient.is_initialized():
        return SpotifyClient()
    return SpotifyClient.init(
        client_id=config.spotify.client_id,
        client_secret=config.spotify.client_secret,
        redirect_uri=config.spotify.redirect_uri,
        requests_timeout=config.spotify.requests_timeout,
        cache_path=config.output.directory / TOKEN_CACHE_FILENAME,
        open_browser=open_browser,
        retry_policy=RetryPolicy(max_attempts=config.matching.max_retries)
    )


def _build_services(config: Config, database: Database, client: SpotifyClient) -> _Services:
    matcher = create_track_matcher(config.matching.platform, client, config.matching)
    pipeline = JobPipeline(
        database,
        client,
        matcher,
        progress_sink=LoggingProgressSink(),
        jobs_config=config.jobs
    )
    orchestrator = SyncOrchestrator(
        database,
        client,
        matcher,
        scheduler_config=config.scheduler
    )
    return _Services(config, database, client, matcher, pipeline, orchestrator)


def _require_user_job(services: _Services, job_id: int) -> Job:
    job = services.database.get_job(job_id)
    if job is None or job.user_id != services.user_id:
        raise JobError(f"Job not found: {job_id}", details={"job_id": job_id})
    return job


def _process_with_progress(services: _Services, job: Job) -> None:
    """Process a job on a rich progress bar and print the outcome."""
    with JobProgressBar(total=job.total_tracks or 1, description="Cleaning") as progress_bar:
        pipeline = JobPipeline(
            services.database,
            services.client,
            services.matcher,
            progress_sink=ProgressBarSink(progress_bar),
            jobs_config=services.config.jobs
        )
        completed = pipeline.process_job(job.id)

    _print_job(completed)


# =============================================================================
# Output
# =============================================================================

def _print_job(job: Job) -> None:
    click.echo(f"Job {job.id}: {job.source_playlist_name} -> {job.target_playlist_name}")
    click.echo(f"  Status:     {job.status.value}")
    click.echo(f"  Tracks:     {job.processed_tracks}/{job.total_tracks} processed, {job.matched_tracks} in clean copy")
    if job.target_playlist_id:
        click.echo(f"  Playlist:   https://open.spotify.com/playlist/{job.target_playlist_id}")
    if job.error_message:
        click.echo(f"  Error:      {job.error_message}")


def _print_sync_config(config: SyncConfig) -> None:
    state = "active" if config.is_active else "disabled"
    click.echo(f"Sync {config.id}: {config.source_playlist_name} -> {config.target_playlist_name} ({state})")
    click.echo(f"  Frequency:  {config.sync_frequency.value}")
    if config.last_synced_at:
        status = config.last_sync_status.value if config.last_sync_status else "-"
        click.echo(f"  Last sync:  {format_timestamp(config.last_synced_at)} ({status})")
    if config.last_sync_error:
        click.echo(f"  Error:      {config.last_sync_error}")
    if config.next_scheduled_sync:
        click.echo(f"  Next sync:  {format_timestamp(config.next_scheduled_sync)}")


def _print_sync_result(result: SyncResult) -> None:
    if result.success:
        click.echo(
            f"Sync {result.config_id} completed in {format_duration_ms(result.execution_time_ms)}: "
            f"+{result.tracks_added} / -{result.tracks_removed} ({result.tracks_unchanged} unchanged)"
        )
        if result.phase_timings_ms:
            timings = ", ".join(
                f"{name} {format_duration_ms(ms)}" for name, ms in result.phase_timings_ms.items()
            )
            click.echo(f"  Phases:     {timings}")
    else:
        click.echo(f"Sync {result.config_id} failed: {result.error_message}", err=True)


def _print_sync_summary(summary: SyncHistorySummary) -> None:
    click.echo(
        f"{summary.runs} runs: {summary.completed} completed, {summary.failed} failed; "
        f"+{summary.tracks_added} / -{summary.tracks_removed} tracks; "
        f"average {format_duration_ms(summary.average_execution_time_ms)}"
    )


# =============================================================================
# Job commands
# =============================================================================

@cli.command()
@click.argument("playlist_url", metavar="<playlist-url>")
@click.option("--name", type=str, default=None, help="Name of the clean playlist")
@click.pass_context
def clean(ctx: click.Context, playlist_url: str, name: Optional[str]) -> None:
    """Create a clean copy of a playlist."""
    try:
        playlist_id = extract_playlist_id(playlist_url)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="PLAYLIST_URL")

    def action(services: _Services) -> None:
        job = services.pipeline.create_job(services.user_id, playlist_id, name)
        click.echo(f"Created job {job.id} for '{job.source_playlist_name}'")
        _process_with_progress(services, job)

    _run(ctx, action)


@cli.command()
@click.argument("job_id", type=int)
@click.pass_context
def process(ctx: click.Context, job_id: int) -> None:
    """Process a pending job."""
    def action(services: _Services) -> None:
        _process_with_progress(services, _require_user_job(services, job_id))

    _run(ctx, action)


@cli.command()
@click.argument("job_id", type=int)
@click.pass_context
def retry(ctx: click.Context, job_id: int) -> None:
    """Reset a failed job and process it again from the first track."""
    def action(services: _Services) -> None:
        _require_user_job(services, job_id)
        job = services.pipeline.retry_job(job_id)
        _process_with_progress(services, job)

    _run(ctx, action)


@cli.command()
@click.argument("job_id", type=int)
@click.pass_context
def status(ctx: click.Context, job_id: int) -> None:
    """Show the progress of a job."""
    def action(services: _Services) -> None:
        job = _require_user_job(services, job_id)
        _print_job(job)
        update = services.pipeline.get_job_progress(job_id)
        if update is not None:
            click.echo(f"  Progress:   {update.percent}% - {update.message}")

    _run(ctx, action)


@cli.command()
@click.pass_context
def jobs(ctx: click.Context) -> None:
    """List your jobs, newest first."""
    def action(services: _Services) -> None:
        user_jobs = services.database.get_user_jobs(services.user_id)
        if not user_jobs:
            click.echo("No jobs yet")
            return
        for job in user_jobs:
            click.echo(
                f"{job.id:>5}  {job.status.value:<11} {job.matched_tracks:>5}/{job.total_tracks:<5} "
                f"{job.source_playlist_name}"
            )

    _run(ctx, action)


# =============================================================================
# Sync commands
# =============================================================================

@cli.command("enable-sync")
@click.argument("job_id", type=int)
@click.option(
    "--frequency",
    type=click.Choice(FREQUENCY_CHOICES, case_sensitive=False),
    default=None,
    help="How often to sync (default from config.yaml)"
)
@click.pass_context
def enable_sync(ctx: click.Context, job_id: int, frequency: Optional[str]) -> None:
    """Keep the clean copy of a completed job in sync with its source."""
    def action(services: _Services) -> None:
        config = services.orchestrator.enable_sync_for_job(job_id, services.user_id, frequency)
        _print_sync_config(config)

    _run(ctx, action)


@cli.command("disable-sync")
@click.argument("config_id", type=int)
@click.pass_context
def disable_sync(ctx: click.Context, config_id: int) -> None:
    """Stop syncing a clean copy."""
    def action(services: _Services) -> None:
        _print_sync_config(services.orchestrator.disable_sync(config_id, services.user_id))

    _run(ctx, action)


@cli.command()
@click.argument("config_id", type=int)
@click.argument("new_frequency", metavar="<frequency>", type=click.Choice(FREQUENCY_CHOICES, case_sensitive=False))
@click.pass_context
def frequency(ctx: click.Context, config_id: int, new_frequency: str) -> None:
    """Change how often a clean copy is synced."""
    def action(services: _Services) -> None:
        config = services.orchestrator.update_sync_frequency(config_id, services.user_id, new_frequency)
        _print_sync_config(config)

    _run(ctx, action)


@cli.command()
@click.argument("config_id", type=int)
@click.pass_context
def sync(ctx: click.Context, config_id: int) -> None:
    """Sync a clean copy now."""
    def action(services: _Services) -> None:
        result = services.orchestrator.manual_sync(config_id, services.user_id)
        _print_sync_result(result)
        if not result.success:
            sys.exit(4)

    _run(ctx, action)


@cli.command()
@click.pass_context
def syncs(ctx: click.Context) -> None:
    """List your sync configs."""
    def action(services: _Services) -> None:
        configs = services.orchestrator.get_user_sync_configs(services.user_id)
        if not configs:
            click.echo("No sync configs yet")
            return
        for config in configs:
            _print_sync_config(config)

    _run(ctx, action)


@cli.command()
@click.argument("config_id", type=int)
@click.option("--limit", type=click.IntRange(min=1), default=20, show_default=True, help="Number of runs")
@click.pass_context
def history(ctx: click.Context, config_id: int, limit: int) -> None:
    """Show the most recent runs of a sync config."""
    def action(services: _Services) -> None:
        runs = services.orchestrator.get_sync_history(config_id, services.user_id, limit)
        if not runs:
            click.echo("No sync runs yet")
            return
        for run in runs:
            line = (
                f"{format_timestamp(run.started_at)}  {run.status.value:<9} "
                f"+{run.tracks_added} / -{run.tracks_removed} ({run.tracks_unchanged} unchanged) "
                f"{format_duration_ms(run.execution_time_ms)}"
            )
            if run.error_message:
                line += f"  {run.error_message}"
            click.echo(line)
        _print_sync_summary(services.orchestrator.get_sync_summary(config_id, services.user_id))

    _run(ctx, action)


# =============================================================================
# Scheduling commands
# =============================================================================

@cli.command("run-due")
@click.pass_context
def run_due(ctx: click.Context) -> None:
    """Run every sync that is due, once."""
    def action(services: _Services) -> None:
        scheduler = SyncScheduler(services.database, services.orchestrator)
        results = scheduler.process_scheduled_syncs()
        if not results:
            click.echo("No syncs due")
        for result in results:
            _print_sync_result(result)
        if results:
            click.echo(services.orchestrator.metrics.summary())

    _run(ctx, action)


@cli.command()
@click.option(
    "--interval",
    type=click.FloatRange(min=1.0),
    default=None,
    metavar="<seconds>",
    help="Seconds between polls (default from config.yaml)"
)
@click.pass_context
def scheduler(ctx: click.Context, interval: Optional[float]) -> None:
    """Run due syncs until interrupted (Ctrl-C)."""
    def action(services: _Services) -> None:
        sync_scheduler = SyncScheduler(services.database, services.orchestrator)
        stop_event = threading.Event()
        try:
            sync_scheduler.run_forever(
                interval or services.config.scheduler.poll_interval_seconds,
                stop_event
            )
        finally:
            stop_event.set()
            logger.info(f"Scheduler stopped: {services.orchestrator.metrics.summary()}")

    _run(ctx, action)


def main() -> None:
    """
    Entry point for the CLI.

    This function is called when running `cleansync` from the command line.
    It invokes the Click CLI group.
    """
    cli()


if __name__ == "__main__":
    main()
