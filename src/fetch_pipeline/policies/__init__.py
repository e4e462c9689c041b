"""
Retry and redirect policies.
"""
from .redirect import REDIRECT_STATUSES, RedirectHandler, should_follow_redirect
from .retry import (
    RetryPolicy,
    exponential_backoff,
    is_retryable_error,
    is_retryable_method,
    is_retryable_status,
    parse_retry_after,
)

__all__ = [
    "REDIRECT_STATUSES",
    "RedirectHandler",
    "should_follow_redirect",
    "RetryPolicy",
    "exponential_backoff",
    "is_retryable_error",
    "is_retryable_method",
    "is_retryable_status",
    "parse_retry_after",
]
