"""
Exception classes for playlist-cleaner.

Every error raised on purpose by the package derives from
PlaylistCleanerError. Each carries a human-readable message plus an optional details
dictionary, so callers can log context without parsing strings.

Hierarchy:
    PlaylistCleanerError (base)
        ConfigError - Configuration file issues, unknown sync frequency
        DatabaseError - SQLite store issues
        SpotifyError - Spotify API issues (auth, rate limit, transient)
        JobError - Job missing or in the wrong state for the operation
        SyncError - Sync config missing, not owned, inactive, or not entitled
        OperationCancelledError - Job or sync cancelled or past its deadline

Error Classes:
    The engine distinguishes four failure modes:
        (a) per-track resolution failure: absorbed by the matcher and
            recorded as "no clean match"
        (b) transient API failure: retried with backoff, then degraded
            to (a) for searches or raised as (c) for playlist mutations
        (c) unrecoverable failure: recorded on the job or sync history
            status and surfaced to the caller
        (d) precondition violation: raised immediately, never retried
"""


class PlaylistCleanerError(Exception):
    """
    Root of the package errors; catching it covers every failure the
    engine raises deliberately.

    Attributes:
        message: Human-readable error description.
        details: Extra context such as job_id, playlist_id or original_error.

    Example:
        try:
            pipeline.process_job(job_id)
        except PlaylistCleanerError as e:
            logger.error(f"Job failed: {e.message}", extra={"details": e.details})
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ConfigError(PlaylistCleanerError):
    """
    Invalid or missing configuration; the CLI exits with status 1.

    Typical triggers:
        - config.yaml not found or has invalid YAML syntax
        - Required fields missing (client_id, client_secret, output directory)
        - Invalid field values (e.g., persistence threshold below report threshold)
        - Unknown sync frequency or unsupported matching platform

    Example:
        raise ConfigError(
            "Unknown sync frequency: 'hourly'",
            details={'frequency': 'hourly'}
        )
    """
    pass


class DatabaseError(PlaylistCleanerError):
    """
    SQLite store failure: unreadable file, schema version mismatch, or an
    update that hit no row.
    """
    pass


class SpotifyError(PlaylistCleanerError):
    """
    Failure reported by (or on the way to) the Spotify Web API.

    An auth error ends the whole job or sync run; a failed search only
    costs one track its clean match.

    Attributes:
        is_auth_error: True if this is an authentication/authorization error.
                       Auth errors fail the whole job or sync run.
        is_rate_limit: True if this is a rate limit error (HTTP 429).
        is_transient: True if the failure is temporary (timeouts, connection
                      errors, 5xx). Rate limits are always transient.

    Example:
        raise SpotifyError(
            "Failed to fetch playlist: playlist not found",
            details={'playlist_id': playlist_id, 'http_status': 404}
        )
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        is_auth_error: bool = False,
        is_rate_limit: bool = False,
        is_transient: bool = False
    ) -> None:
        super().__init__(message, details)
        self.is_auth_error = is_auth_error
        self.is_rate_limit = is_rate_limit
        self.is_transient = is_transient or is_rate_limit


class JobError(PlaylistCleanerError):
    """
    Raised when a job operation is not allowed.

    This is a precondition error: the job does not exist, or is not in a
    state the operation accepts (e.g., processing a Completed job).
    It is raised before the job is touched, so the job's status is
    left unchanged.

    Example:
        raise JobError(
            "Job 7 cannot be processed in status Completed",
            details={'job_id': 7, 'status': 'Completed'}
        )
    """
    pass


class SyncError(PlaylistCleanerError):
    """
    Raised when a sync operation is not allowed or a sync run cannot start.

    Common causes:
        - Sync config not found or owned by another user
        - Sync config is inactive (manual sync)
        - Originating job not Completed or has no target playlist
        - User lost the entitlement required for sync
    """
    pass


class OperationCancelledError(PlaylistCleanerError):
    """
    Raised when a job or sync run is cancelled or exceeds its deadline.

    Checked between units of work, so already-committed mappings and
    history rows stay intact. The job or sync run is recorded as failed.
    """
    pass
