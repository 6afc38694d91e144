"""
Retry policy shared by listing fetches and snapshot writes.

One combinator replaces the per-call-site retry loops: a policy knows how many
attempts to make, how long to back off, and which exceptions are worth
another attempt.
"""

import asyncio
import random
import logging
from typing import Any, Awaitable, Callable, Optional

from core.exceptions import RateLimitError, RetryableError

logger = logging.getLogger(__name__)


def is_retryable(exc: BaseException) -> bool:
    """Default predicate: only errors marked retryable get another attempt"""
    return isinstance(exc, RetryableError)


class RetryPolicy:
    """
    Jittered exponential backoff.

    Attributes:
        max_attempts: Total attempts including the first call
        base_delay: Delay before the second attempt in seconds
        max_delay: Upper bound for a single backoff
        jitter: Uniform random seconds added to each backoff
        retryable: Predicate deciding whether an exception is retried
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 20.0,
        jitter: float = 0.3,
        retryable: Callable[[BaseException], bool] = is_retryable,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.retryable = retryable
        self._sleep = sleep

    def backoff(self, attempt: int, exc: Optional[BaseException] = None) -> float:
        """Delay after the given failed attempt (1-based)"""
        if isinstance(exc, RateLimitError) and exc.retry_after:
            delay = float(exc.retry_after)
        else:
            delay = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        if self.jitter > 0:
            delay += random.uniform(0, self.jitter)
        return delay

    async def call(
        self,
        fn: Callable[..., Awaitable[Any]],
        *args: Any,
        description: str = "operation",
        **kwargs: Any
    ) -> Any:
        """
        Await ``fn(*args, **kwargs)`` until it succeeds, raises a
        non-retryable error, or the attempts are used up. The last
        exception is re-raised unchanged.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await fn(*args, **kwargs)
            except Exception as e:
                if not self.retryable(e) or attempt >= self.max_attempts:
                    raise
                delay = self.backoff(attempt, e)
                logger.warning(
                    f"{description} failed (attempt {attempt}/{self.max_attempts}): "
                    f"{type(e).__name__}. Retrying in {delay:.2f}s"
                )
                await self._sleep(delay)
