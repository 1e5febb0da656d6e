"""
Retry with exponential backoff for transient Spotify failures.

Every remote call that may hit rate limits or flaky networking goes
through call_with_retry(): track searches in the matcher and playlist
mutations in the client.

Retry Strategy:
    - Exponential backoff: 2s -> 4s -> 8s -> 16s -> 30s (capped)
    - Jitter: +/-30% so parallel workers do not retry in lockstep
    - Rate limit detection: 2x delay multiplier for 429 errors
    - Non-transient errors (auth, not found, bad request) are raised
      on the first attempt

Usage:
    from playlist_cleaner.utils.retry import RetryPolicy, call_with_retry

    tracks = call_with_retry(
        lambda: client.search_tracks(query, limit=5),
        RetryPolicy(max_attempts=3),
        description=f"search {query!r}",
    )
"""

import random
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

import requests

from playlist_cleaner.core.exceptions import PlaylistCleanerError, SpotifyError
from playlist_cleaner.core.logger import get_logger


logger = get_logger(__name__)

T = TypeVar("T")


# Substrings (lowercase) of error messages that indicate a temporary
# API or network problem rather than a real failure of the request.
TRANSIENT_ERROR_PATTERNS = (
    # Empty or malformed response
    "expecting value",
    "decode",

    # Rate limiting
    "429",
    "rate limit",
    "too many",
    "throttl",

    # Connection errors
    "connection",
    "timeout",
    "timed out",
    "reset by peer",
    "refused",

    # Server errors
    "500",
    "502",
    "503",
    "504",
    "temporarily",
    "server error",
    "internal error",

    # Network errors
    "network",
    "unreachable",
    "name resolution",
)

RATE_LIMIT_PATTERNS = ("429", "rate limit", "too many")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Backoff parameters for call_with_retry().

    Attributes:
        max_attempts: Total attempts including the first one (>= 1).
        base_delay: Delay before the second attempt, in seconds.
        max_delay: Cap on any single delay, in seconds.
        jitter_factor: Relative jitter applied to each delay (0.3 = +/-30%).
        rate_limit_multiplier: Extra factor when the error is a rate limit.
        min_delay: Floor applied after jitter.
    """
    max_attempts: int = 3
    base_delay: float = 2.0
    max_delay: float = 30.0
    jitter_factor: float = 0.3
    rate_limit_multiplier: float = 2.0
    min_delay: float = 0.5

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    def compute_delay(
        self,
        attempt: int,
        rate_limited: bool = False,
        rng: Callable[[], float] = random.random
    ) -> float:
        """
        Delay to wait after the given failed attempt (0-based).

        Args:
            attempt: Index of the attempt that just failed.
            rate_limited: Whether that attempt hit a rate limit.
            rng: Source of uniform floats in [0, 1).
        """
        base = min(self.base_delay * (2 ** attempt), self.max_delay)
        if rate_limited:
            base = min(base * self.rate_limit_multiplier, self.max_delay)
        jitter = base * self.jitter_factor * (2 * rng() - 1)
        return max(self.min_delay, base + jitter)


def is_rate_limit_error(error: BaseException) -> bool:
    if isinstance(error, SpotifyError):
        return error.is_rate_limit
    message = str(error).lower()
    return any(pattern in message for pattern in RATE_LIMIT_PATTERNS)


def is_transient_error(error: BaseException) -> bool:
    """
    Check whether an error is temporary and worth retrying.

    SpotifyError carries explicit flags, so its message is not inspected;
    an auth error is never transient. requests timeouts and connection
    errors are transient. Other project errors never are. Anything else
    falls back to matching TRANSIENT_ERROR_PATTERNS against the message.
    """
    if isinstance(error, SpotifyError):
        return error.is_transient and not error.is_auth_error
    if isinstance(error, PlaylistCleanerError):
        return False
    if isinstance(error, (requests.Timeout, requests.ConnectionError)):
        return True
    message = str(error).lower()
    return any(pattern in message for pattern in TRANSIENT_ERROR_PATTERNS)


def call_with_retry(
    func: Callable[[], T],
    policy: RetryPolicy | None = None,
    description: str = "request",
    is_retryable: Callable[[BaseException], bool] = is_transient_error,
    sleep: Callable[[float], None] = time.sleep,
    rng: Callable[[], float] = random.random
) -> T:
    """
    Call func() until it succeeds, retrying transient failures.

    Args:
        func: Zero-argument callable performing the remote call.
        policy: Backoff parameters. Defaults to RetryPolicy().
        description: Short text used in log messages.
        is_retryable: Decides whether an exception is worth retrying.
        sleep: Called with each delay (injectable for tests).
        rng: Source of uniform floats for jitter (injectable for tests).

    Returns:
        Whatever func() returns.

    Raises:
        The exception of the last attempt once retries are exhausted, or
        the first non-retryable exception unchanged. Callers decide what
        an exhausted transient failure means for them.
    """
    policy = policy or RetryPolicy()

    for attempt in range(policy.max_attempts):
        try:
            return func()
        except Exception as e:
            if not is_retryable(e):
                raise

            if attempt == policy.max_attempts - 1:
                logger.warning(
                    f"{description} failed after {policy.max_attempts} attempts (transient): {e}"
                )
                raise

            rate_limited = is_rate_limit_error(e)
            delay = policy.compute_delay(attempt, rate_limited, rng)

            log_msg = (
                f"{description} attempt {attempt + 1}/{policy.max_attempts} failed: {e}. "
                f"Retrying in {delay:.1f}s"
            )
            if rate_limited:
                logger.warning(log_msg + " (rate limit detected)")
            else:
                logger.debug(log_msg)

            sleep(delay)

    # max_attempts >= 1, so the loop always returns or raises
    raise AssertionError("unreachable")
