"""Bounded two-tier retry around provider calls.

Rate-limited failures wait a long fixed backoff, every other failure waits a
short one. After ``max_retries`` retries the last error propagates unchanged.
Format errors are never retried here: the provider answered, so asking
again is the caller's decision.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from engineering_partner.core.errors import (
    GenerationFormatError,
    RateLimitedError,
    WorkflowCancelledError,
)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]

_RATE_LIMIT_MARKERS = ("429", "rate limit", "rate_limit", "resource exhausted", "resource_exhausted")


class RetryPolicy(BaseModel):
    """Retry bound and the two fixed backoffs."""

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=0)
    retry_delay_seconds: float = Field(default=2.0, ge=0)
    rate_limit_delay_seconds: float = Field(default=30.0, ge=0)

    def delay_for(self, error: BaseException) -> float:
        """Backoff to wait after ``error``."""
        if is_rate_limited(error):
            return self.rate_limit_delay_seconds
        return self.retry_delay_seconds


def is_rate_limited(error: BaseException) -> bool:
    """Check an error for a rate-limit signature.

    Matches RateLimitedError, an HTTP 429 ``status_code`` attribute, or a
    textual marker such as "resource exhausted" in the message.
    """
    if isinstance(error, RateLimitedError):
        return True
    if getattr(error, "status_code", None) == 429:
        return True
    text = str(error).lower()
    return any(marker in text for marker in _RATE_LIMIT_MARKERS)


def _is_retryable(error: BaseException) -> bool:
    return not isinstance(error, (GenerationFormatError, WorkflowCancelledError))


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    sleep: SleepFunc = asyncio.sleep,
    label: str = "model call",
) -> T:
    """Run ``operation`` with bounded retries.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        policy: Retry policy (defaults to 3 retries, 2s / 30s backoff).
        sleep: Awaitable sleep used for backoff; injectable for tests.
        label: Name used in log messages.

    Returns:
        The first successful result.

    Raises:
        Exception: The final error once retries are exhausted, or any
            non-retryable error immediately.
    """
    policy = policy or RetryPolicy()
    attempt = 0

    while True:
        try:
            return await operation()
        except Exception as e:
            if not _is_retryable(e) or attempt >= policy.max_retries:
                if attempt:
                    logger.error(f"{label} failed after {attempt + 1} attempts: {e}")
                raise

            attempt += 1
            delay = policy.delay_for(e)
            if is_rate_limited(e):
                logger.warning(
                    f"{label} rate limited, retrying in {delay}s "
                    f"(attempt {attempt}/{policy.max_retries})"
                )
            else:
                logger.warning(
                    f"{label} failed: {e}; retrying in {delay}s "
                    f"(attempt {attempt}/{policy.max_retries})"
                )
            await sleep(delay)
