"""Resilience layer: retry with capped exponential backoff and jitter.

Example:
    >>> from reactloop.runtime.retry import RetryPolicy, with_retry
    >>> policy = RetryPolicy(max_attempts=5, base_delay=0.5, max_delay=8.0, jitter_fraction=0.1)
    >>> result = await with_retry(call_backend, policy, name="backend")
"""

from .backoff import Backoff, ExponentialBackoff
from .policy import RetryCallback, RetryPolicy, is_retryable, with_retry, with_retry_sync

__all__ = [
    "Backoff",
    "ExponentialBackoff",
    "RetryCallback",
    "RetryPolicy",
    "is_retryable",
    "with_retry",
    "with_retry_sync",
]
