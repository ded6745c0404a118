"""Retry policy and the ``with_retry`` combinator.

``with_retry`` knows nothing about what it retries. It asks the failure itself whether
another attempt could help, backs off, and finally hands back a ``Result``: the value,
or the last exception. The Backend Invoker uses it for model calls; tool handlers can
use it (or ``with_retry_sync``) for their own remote calls.

Example:
    >>> policy = RetryPolicy(max_attempts=3, base_delay=0.1, max_delay=1.0, jitter_fraction=0.0)
    >>> result = await with_retry(lambda: client.fetch(url), policy, name="fetch")
    >>> result.unwrap_or(None)
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Annotated, Callable, Self, TypeVar

from pydantic import BaseModel, ConfigDict, Field, PositiveFloat, model_validator

from reactloop.foundation.errors import TRANSIENT_CODES, Err, Ok, Result, classify_exception
from reactloop.runtime.observability import get_logger

from .backoff import ExponentialBackoff

if TYPE_CHECKING:
    from collections.abc import Awaitable

T = TypeVar("T")

# (attempt that failed, the exception, delay before the next attempt)
RetryCallback = Callable[[int, Exception, float], None]
Classifier = Callable[[Exception], bool]

log = get_logger("reactloop.retry")


class RetryPolicy(BaseModel):
    """Retry configuration. Every field is required; there are no baked-in defaults.

    Attributes:
        max_attempts: Total tries including the first (>= 1)
        base_delay: Delay after the first failure, seconds (> 0)
        max_delay: Cap on the un-jittered delay, seconds (>= base_delay)
        jitter_fraction: Uniform perturbation as a fraction of the delay, in [0, 1]
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        json_schema_extra={
            "title": "Retry Policy",
            "examples": [{"max_attempts": 3, "base_delay": 0.1, "max_delay": 1.0, "jitter_fraction": 0.2}],
        },
    )

    max_attempts: Annotated[int, Field(ge=1)]
    base_delay: PositiveFloat
    max_delay: PositiveFloat
    jitter_fraction: Annotated[float, Field(ge=0.0, le=1.0)]

    @model_validator(mode="after")
    def _check_delays(self) -> Self:
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        return self

    @property
    def backoff(self) -> ExponentialBackoff:
        return ExponentialBackoff(self.base_delay, self.max_delay, self.jitter_fraction)

    def delay(self, attempt: int) -> float:
        """Delay after failed ``attempt`` (1-indexed)."""
        return self.backoff.delay(attempt)


def is_retryable(exc: Exception) -> bool:
    """Default classification: the exception's own ``retryable`` flag, else its error code."""
    flag = getattr(exc, "retryable", None)
    if isinstance(flag, bool):
        return flag
    return classify_exception(exc) in TRANSIENT_CODES


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    is_retryable: Classifier = is_retryable,
    on_retry: RetryCallback | None = None,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    name: str = "operation",
) -> Result[T, Exception]:
    """Run ``operation`` until it succeeds, fails fatally, or attempts run out.

    Cancellation is never caught: ``CancelledError`` raised during an attempt or the
    backoff wait propagates immediately.

    Args:
        operation: Zero-argument async callable, called once per attempt
        policy: Attempt budget and delay shape
        is_retryable: Decides whether a failure is transient
        on_retry: Called before each backoff wait
        sleep: Suspension used for backoff (injectable for tests)
        name: Label for log entries

    Returns:
        Ok(value) on success, Err(last exception) when fatal or exhausted
    """
    backoff = policy.backoff
    attempt = 1
    while True:
        try:
            return Ok(await operation())
        except Exception as exc:
            if not is_retryable(exc):
                log.warning("fatal failure, not retrying", operation=name, attempt=attempt, error=str(exc))
                return Err(exc)
            if attempt >= policy.max_attempts:
                log.warning("retries exhausted", operation=name, attempts=attempt, error=str(exc))
                return Err(exc)
            delay = backoff.delay(attempt)
            log.info("retrying after transient failure", operation=name, attempt=attempt,
                     max_attempts=policy.max_attempts, delay=round(delay, 3), error=str(exc))
            if on_retry is not None:
                on_retry(attempt, exc, delay)
        await sleep(delay)
        attempt += 1


def with_retry_sync(
    operation: Callable[[], T],
    policy: RetryPolicy,
    *,
    is_retryable: Classifier = is_retryable,
    on_retry: RetryCallback | None = None,
    sleep: Callable[[float], object] = time.sleep,
    name: str = "operation",
) -> Result[T, Exception]:
    """Blocking twin of ``with_retry`` for sync tool handlers."""
    backoff = policy.backoff
    attempt = 1
    while True:
        try:
            return Ok(operation())
        except Exception as exc:
            if not is_retryable(exc) or attempt >= policy.max_attempts:
                log.warning("giving up", operation=name, attempts=attempt, error=str(exc))
                return Err(exc)
            delay = backoff.delay(attempt)
            log.info("retrying after transient failure", operation=name, attempt=attempt, delay=round(delay, 3))
            if on_retry is not None:
                on_retry(attempt, exc, delay)
        sleep(delay)
        attempt += 1
