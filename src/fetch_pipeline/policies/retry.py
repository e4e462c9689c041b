"""
Retry policy: decides whether a failed attempt is retried and how long to
wait before the next one.
"""
import logging
import math
import random
import time
from email.utils import parsedate_to_datetime
from typing import Optional

from ..config import RetryConfig
from ..errors import (
    NON_RETRYABLE_ERRORS,
    FetchError,
    HTTPError,
    ReadError,
    RequestError,
    TimeoutError,
)
from ..types import RetryFunction

logger = logging.getLogger("fetch_pipeline.retry")


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """
    Parse Retry-After header value.

    The Retry-After header can contain either:
    - A number of seconds to wait
    - An HTTP-date indicating when to retry

    Args:
        value: Retry-After header value

    Returns:
        Wait time in seconds, or None if absent or unparseable
    """
    if not value:
        return None

    # Try parsing as seconds
    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        return max(0.0, seconds) if math.isfinite(seconds) else None

    # Try parsing as HTTP-date
    try:
        dt = parsedate_to_datetime(value)
        return max(0.0, dt.timestamp() - time.time())
    except (ValueError, TypeError):
        pass

    return None


def exponential_backoff(
    retries: int = 2,
    base_delay_seconds: float = 1.0,
    max_delay_seconds: float = 30.0,
    jitter_factor: float = 0.5,
) -> RetryFunction:
    """
    Build a ``retries`` callable with exponential backoff and jitter.

    delay = base * 2^(attempt - 1), jittered by ``jitter_factor`` and capped
    at ``max_delay_seconds``. Returns 0 (stop) once ``retries`` is exceeded.
    """

    def compute(attempt: int, error: Exception) -> float:
        if attempt > retries:
            return 0
        base_delay = min(max_delay_seconds, base_delay_seconds * (2 ** (attempt - 1)))
        jitter_amount = random.random() * jitter_factor * base_delay
        delay = base_delay * (1 - jitter_factor / 2) + jitter_amount
        return min(delay, max_delay_seconds)

    return compute


def is_retryable_method(method: str, config: RetryConfig) -> bool:
    return method.upper() in config.methods


def is_retryable_status(status: int, config: RetryConfig) -> bool:
    return status in config.status_codes


def is_retryable_error(error: Exception, config: RetryConfig) -> bool:
    """
    Check if an error kind may trigger a retry.

    Transport, read and timeout failures are retryable; an HTTPError only
    when its status is in ``status_codes``.
    """
    if isinstance(error, NON_RETRYABLE_ERRORS):
        return False
    if isinstance(error, HTTPError):
        return error.status_code is not None and is_retryable_status(error.status_code, config)
    if isinstance(error, FetchError) and error.code == "EHOOK":
        return False
    return isinstance(error, (RequestError, ReadError, TimeoutError))


class RetryPolicy:
    """
    Retry decisions for one hop of a logical request.

    Args:
        config: Retry configuration of the resolved options
        method: HTTP method of the hop
        replayable: Whether the request body can be sent again
    """

    def __init__(self, config: RetryConfig, method: str, replayable: bool = True) -> None:
        self.config = config
        self.method = method
        self.replayable = replayable

    def compute_delay(self, retry_count: int, error: Exception) -> Optional[float]:
        """
        Delay in seconds before the next attempt, or None to give up.

        Args:
            retry_count: Retries already performed on this hop
            error: Classified failure of the last attempt
        """
        config = self.config
        attempt = retry_count + 1

        if not is_retryable_error(error, config):
            logger.debug(f"RetryPolicy: {type(error).__name__} is not retryable")
            return None
        if not is_retryable_method(self.method, config):
            logger.debug(f"RetryPolicy: method {self.method} not in retry methods")
            return None
        if not self.replayable:
            logger.debug("RetryPolicy: request body cannot be replayed")
            return None

        if callable(config.retries):
            try:
                computed = config.retries(attempt, error)
            except Exception as e:
                logger.debug(f"RetryPolicy: retry function raised {type(e).__name__}")
                raise RequestError(f"retry function failed: {e}", code="ERETRYFN") from e
            if not computed or computed <= 0:
                logger.debug(f"RetryPolicy: retry function declined attempt {attempt}")
                return None
            delay = float(computed)
        else:
            if retry_count >= config.retries:
                logger.debug(f"RetryPolicy: retries exhausted ({retry_count}/{config.retries})")
                return None
            delay = 0.0

        response = getattr(error, "response", None)
        headers = getattr(response, "headers", None)
        retry_after = parse_retry_after(headers.get("retry-after") if headers is not None else None)
        if retry_after is not None:
            if config.max_retry_after is not None and retry_after > config.max_retry_after:
                logger.debug(
                    f"RetryPolicy: Retry-After {retry_after}s capped at max_retry_after {config.max_retry_after}s"
                )
                retry_after = config.max_retry_after
            delay = retry_after

        logger.debug(f"RetryPolicy: retrying attempt {attempt} in {delay}s after {type(error).__name__}")
        return delay
