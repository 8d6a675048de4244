"""Retry logic with exponential backoff for Drive API calls."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from .exceptions import DriveAPIError
from .utils import DEFAULT_INITIAL_BACKOFF, DEFAULT_MAX_TRIES

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Status codes that will not succeed no matter how often they are retried
PERMANENT_STATUS_CODES = frozenset({400, 401, 404, 501})

# 403 reasons that mean "slow down" rather than "not allowed"
RATE_LIMIT_REASONS = frozenset({"rateLimitExceeded", "userRateLimitExceeded"})


def should_retry(exception: BaseException) -> bool:
    """Determine if a failed operation should be retried.

    Args:
        exception: The exception that occurred

    Returns:
        False for permanent API errors (bad request, unauthorized, not found,
        not implemented, forbidden for reasons other than rate limiting),
        True for everything else
    """
    if not isinstance(exception, DriveAPIError):
        # network failures and anything unclassified
        return True

    if exception.status_code in PERMANENT_STATUS_CODES:
        return False

    if exception.status_code == 403:
        return any(reason in RATE_LIMIT_REASONS for reason in exception.reasons)

    return True


def retry(
    func: Callable[[], T],
    initial_delay: float = DEFAULT_INITIAL_BACKOFF,
    max_tries: int = DEFAULT_MAX_TRIES,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``func`` until it succeeds, backing off exponentially.

    The delay starts at ``initial_delay`` and doubles after every failed
    attempt. Set ``max_tries`` to 1 to disable retries, or to 0 or less to
    retry forever.

    Args:
        func: Operation to run
        initial_delay: First backoff delay in seconds
        max_tries: Total number of attempts
        sleep: Sleep function (injectable for tests)

    Returns:
        Result of ``func``

    Raises:
        The exception of the last attempt, or the first permanent one
    """
    delay = initial_delay
    tries = 0
    while True:
        try:
            return func()
        except Exception as e:
            tries += 1
            if tries == max_tries:
                logger.debug("Giving up after %d attempt(s): %s", tries, e)
                raise
            if not should_retry(e):
                raise

            logger.warning(
                "Attempt %d%s failed: %s. Retrying in %.1fs...",
                tries,
                f"/{max_tries}" if max_tries > 0 else "",
                e,
                delay,
            )
            sleep(delay)
            delay *= 2
