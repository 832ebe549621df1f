"""
Rate limiting for Spotify API calls.

Honours Retry-After on 429 responses with capped exponential backoff. Any
other Spotify error is raised to the caller unchanged.
"""

from __future__ import annotations

import random
import time
from typing import Any, Callable, TypeVar

from spotipy.exceptions import SpotifyException

from .logger import get_logger

# Configuration
RATE_LIMIT_BACKOFF_BASE = 3  # Exponential backoff multiplier
MAX_RETRIES = 5  # Maximum attempts on 429
MAX_WAIT_TIME = 300  # Cap wait time at 5 minutes

T = TypeVar("T")

logger = get_logger(__name__)


class RateLimitError(Exception):
    """Raised when max retries exceeded for rate-limited API call."""
    pass


def rate_limited_call(
    func: Callable[..., T],
    *args: Any,
    max_retries: int = MAX_RETRIES,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> T:
    """
    Execute a Spotify call, waiting and retrying only on 429 responses.

    Args:
        func: The function to call
        *args: Positional arguments to pass to func
        max_retries: Maximum number of attempts
        sleep: Sleep function (injectable for tests)
        **kwargs: Keyword arguments to pass to func

    Returns:
        The result of func(*args, **kwargs)

    Raises:
        RateLimitError: If max retries exceeded
        SpotifyException: If a non-429 Spotify error occurs
    """
    for attempt in range(max_retries):
        try:
            return func(*args, **kwargs)
        except SpotifyException as e:
            if e.http_status != 429:
                raise
            wait_time = _calculate_wait_time(e, attempt)
            logger.warning(
                "Rate limited. Waiting %.0fs before retry (%d/%d)...",
                wait_time, attempt + 1, max_retries,
            )
            sleep(wait_time)

    raise RateLimitError(f"Max retries ({max_retries}) exceeded for API call")


def _calculate_wait_time(error: SpotifyException, attempt: int) -> float:
    """Calculate wait time based on Retry-After header or exponential backoff."""
    retry_after = 0
    if getattr(error, "headers", None):
        try:
            retry_after = int(error.headers.get("Retry-After", 0))
        except (TypeError, ValueError):
            retry_after = 0

    if retry_after > 0:
        wait_time = retry_after + random.uniform(0, 1)
    else:
        wait_time = (RATE_LIMIT_BACKOFF_BASE ** attempt) + random.uniform(0, 1)

    return min(wait_time, MAX_WAIT_TIME)
