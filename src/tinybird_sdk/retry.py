"""
Bounded retry with backoff for a single logical request.

Per attempt the loop either returns the parsed body, waits and tries again, or
raises a typed error:

  transport failure, attempts left          → wait, retry
  transport failure, last attempt           → RequestTimeoutError
  2xx                                       → parsed body
  429/500/502/503/504, attempts left        → wait, retry
  anything else (or last attempt)           → error from create_exception

Wait schedule: ``delay`` starts at ``RetryPolicy.delay_ms``; before each retry
it becomes either the response's ``Retry-After`` (seconds → ms) or
``delay × backoff_multiplier``.  With the defaults (2000 ms, ×2) a run of 5xx
responses waits 4 s, then 8 s.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from .config import (
    DEFAULT_RETRY_BACKOFF_MULTIPLIER,
    DEFAULT_RETRY_DELAY_MS,
    DEFAULT_RETRY_MAX_RETRIES,
    RETRY_AFTER_HEADER,
    RETRYABLE_STATUS_CODES,
    ClientOptions,
)
from .errors import ApiError, RequestTimeoutError, TransportError
from .parser import create_exception, is_success, parse_body
from .transport import Response

logger = logging.getLogger(__name__)

MS_PER_SECOND = 1000


@dataclass(frozen=True)
class RetryPolicy:
    """Retry settings for one coordinator; immutable for its lifetime."""

    max_retries: int = DEFAULT_RETRY_MAX_RETRIES
    delay_ms: int = DEFAULT_RETRY_DELAY_MS
    backoff_multiplier: int = DEFAULT_RETRY_BACKOFF_MULTIPLIER

    @classmethod
    def from_options(cls, options: ClientOptions) -> RetryPolicy:
        return cls(
            max_retries=options.retry_max_retries,
            delay_ms=options.retry_delay_ms,
            backoff_multiplier=options.retry_backoff_multiplier,
        )


# ---------------------------------------------------------------------------
# Retry decisions
# ---------------------------------------------------------------------------

def can_retry(attempt: int, max_retries: int) -> bool:
    """
    Whether another attempt remains after ``attempt``.

    Args:
        attempt: 0-based index of the attempt that just failed.
        max_retries: Total attempts allowed.
    """
    return attempt < max_retries - 1


def should_retry(status_code: int, attempt: int, max_retries: int) -> bool:
    """
    Decide whether a failed HTTP response should be retried.

    Statuses outside :data:`~tinybird_sdk.config.RETRYABLE_STATUS_CODES`
    (e.g. 400, 401, 404) are never retried, regardless of attempts left.
    """
    return can_retry(attempt, max_retries) and status_code in RETRYABLE_STATUS_CODES


# ---------------------------------------------------------------------------
# Backoff helpers
# ---------------------------------------------------------------------------

def get_retry_after_ms(response: Response) -> int:
    """
    Read a ``Retry-After`` header given in whole seconds.

    Returns:
        The delay in milliseconds, or ``0`` when the header is absent, not an
        integer, or not positive.  HTTP-date values are not supported.
    """
    value = response.header(RETRY_AFTER_HEADER)
    if value is None:
        return 0
    try:
        seconds = int(value.strip())
    except ValueError:
        return 0
    return seconds * MS_PER_SECOND if seconds > 0 else 0


def next_delay(
    current_delay_ms: int,
    backoff_multiplier: int,
    response: Response | None = None,
) -> int:
    """
    Compute the wait before the next attempt.

    Args:
        current_delay_ms: The delay in effect so far.
        backoff_multiplier: Growth factor applied when no hint is given.
        response: The failed response, if there was one.

    Returns:
        Milliseconds to wait; ``Retry-After`` wins over the multiplier.
    """
    if response is not None:
        retry_after = get_retry_after_ms(response)
        if retry_after > 0:
            return retry_after
    return current_delay_ms * backoff_multiplier


def wait_ms(delay_ms: int, sleep: Callable[[float], None] = time.sleep) -> None:
    sleep(delay_ms / MS_PER_SECOND)


# ---------------------------------------------------------------------------
# Main retry loop
# ---------------------------------------------------------------------------

def execute_with_retry(
    http_call: Callable[[], Response],
    policy: RetryPolicy | None = None,
    token: str = "",
    sleep: Callable[[float], None] = time.sleep,
) -> dict:
    """
    Run ``http_call`` until it succeeds, fails permanently, or runs out of
    attempts.

    Args:
        http_call: Performs one HTTP attempt; raises
            :class:`~tinybird_sdk.errors.TransportError` when no response
            could be obtained.
        policy: Attempt bound and backoff settings.
        token: Auth token, forwarded to error construction for masking.
        sleep: Blocking wait in seconds; injectable for tests.

    Returns:
        The decoded JSON body of the first success response.

    Raises:
        RequestTimeoutError: Transport failures on every attempt.
        ApiError: (or a subclass) for non-retryable statuses, or the last
            retryable status once attempts are exhausted.
        ParseError: A success response with a malformed body (not retried).
    """
    policy = policy or RetryPolicy()
    delay = policy.delay_ms

    for attempt in range(policy.max_retries):
        try:
            response = http_call()
        except TransportError as exc:
            if can_retry(attempt, policy.max_retries):
                delay = next_delay(delay, policy.backoff_multiplier)
                logger.warning(
                    "Attempt %d/%d failed at transport level (%s); retrying in %d ms",
                    attempt + 1, policy.max_retries, exc, delay,
                )
                wait_ms(delay, sleep)
                continue
            raise RequestTimeoutError(str(exc)) from exc

        if is_success(response):
            return parse_body(response)

        if should_retry(response.status_code, attempt, policy.max_retries):
            delay = next_delay(delay, policy.backoff_multiplier, response)
            logger.warning(
                "Attempt %d/%d got HTTP %d; retrying in %d ms",
                attempt + 1, policy.max_retries, response.status_code, delay,
            )
            wait_ms(delay, sleep)
            continue

        raise create_exception(response, token)

    raise ApiError(0, {}, {}, "Max retries exceeded")
