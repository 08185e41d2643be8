"""Retry Handler Utility

Implements exponential backoff with jitter for retrying transient provider
failures, on top of tenacity.

Features:
- Explicit policy value (RetryConfig): attempts, base delay, multiplier,
  cap, jitter flag
- Honors retry-after hints carried by rate-limit errors
- Non-retryable error classes surface immediately
- Injectable sleep and random source for deterministic tests
"""

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from reference_discovery.models.resilience import RetryConfig
from reference_discovery.utils.exceptions import SearchError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def is_retryable(error: BaseException) -> bool:
    """Only SearchErrors flagged retryable are retried."""
    return isinstance(error, SearchError) and error.retryable


class RetryHandler:
    """Runs an async provider call until it succeeds or attempts run out.

    Waits grow as base * multiplier^(attempt-1), get a random stretch of up
    to jitter_factor and never exceed max_delay_seconds. A retry_after hint
    from a rate-limit error replaces the computed base.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.config = config or RetryConfig()
        self._sleep = sleep
        self._rng = rng

    def calculate_delay(
        self, attempt: int, retry_after: Optional[float] = None
    ) -> float:
        """Calculate the delay after a failed attempt.

        Args:
            attempt: Number of the attempt that just failed (1-based)
            retry_after: Optional retry-after value from the error

        Returns:
            Delay in seconds to wait before the next attempt
        """
        if retry_after is not None and retry_after > 0:
            base_delay = retry_after
        else:
            base_delay = self.config.base_delay_seconds * (
                self.config.multiplier ** max(0, attempt - 1)
            )

        if self.config.jitter:
            base_delay *= 1 + self._rng() * self.config.jitter_factor

        return min(base_delay, self.config.max_delay_seconds)

    def _wait(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        retry_after = getattr(error, "retry_after", None)
        return self.calculate_delay(retry_state.attempt_number, retry_after)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else None
        logger.warning(
            "retry_attempt",
            attempt=retry_state.attempt_number,
            max_attempts=self.config.max_attempts,
            error_type=type(error).__name__,
            error_message=str(error),
            delay_seconds=delay,
        )

    async def execute(
        self,
        func: Callable[[], Awaitable[T]],
        retry_on: Callable[[BaseException], bool] = is_retryable,
    ) -> T:
        """Await func, retrying failures that retry_on accepts.

        Attempts run sequentially; the last error is re-raised once
        attempts are exhausted or a non-retryable error occurs.

        Args:
            func: Zero-argument coroutine factory
            retry_on: Predicate deciding whether an error is retried

        Returns:
            Result of the first successful call
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_attempts),
            wait=self._wait,
            retry=retry_if_exception(retry_on),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )

        # tenacity only awaits callables it recognizes as coroutine functions
        async def attempt() -> T:
            return await func()

        return await retrying(attempt)
