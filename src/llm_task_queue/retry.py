"""Retry policy: bounded attempts with classified backoff."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from .base import RetryState
from .core import RateLimitConfig, RetryConfig
from .strategies import (
    BackoffStrategy,
    DefaultErrorClassifier,
    ErrorClassifier,
    ErrorInfo,
    ExponentialBackoffStrategy,
    QueueInternalError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]
RetryHook = Callable[[int, ErrorInfo, float], Awaitable[None]]


class RetryPolicy:
    """
    Runs one unit of work to success or to a terminal failure.

    Fatal failures are re-raised at once. Rate-limited and transient failures
    are retried after a backoff wait until the attempt budget is spent, then
    the last error is re-raised. The policy does no concurrency control of its
    own; the scheduler calls it once per dispatched task.
    """

    def __init__(
        self,
        retry: RetryConfig | None = None,
        rate_limit: RateLimitConfig | None = None,
        error_classifier: ErrorClassifier | None = None,
        backoff_strategy: BackoffStrategy | None = None,
        sleep: SleepFunc | None = None,
        rng: random.Random | None = None,
    ):
        """
        Initialize the retry policy.

        Args:
            retry: Attempt budget and base delay (default: RetryConfig())
            rate_limit: Wait window after rate-limited failures
            error_classifier: Strategy for classifying errors (default: DefaultErrorClassifier)
            backoff_strategy: Wait schedule (default: ExponentialBackoffStrategy built
                from ``retry`` and ``rate_limit``)
            sleep: Coroutine used to wait (default: asyncio.sleep); tests inject a
                recording fake
            rng: Random source for jittered waits
        """
        self.retry = retry or RetryConfig()
        self.retry.validate()
        rate_limit = rate_limit or RateLimitConfig()
        rate_limit.validate()

        self.error_classifier = error_classifier or DefaultErrorClassifier()
        self.backoff_strategy = backoff_strategy or ExponentialBackoffStrategy(
            rate_limit_min_wait=rate_limit.min_wait,
            rate_limit_max_wait=rate_limit.max_wait,
            multiplier=self.retry.backoff_multiplier,
        )
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()

    async def execute(
        self,
        work: Callable[[], Awaitable[T]],
        max_attempts: int | None = None,
        base_delay: float | None = None,
        *,
        state: RetryState | None = None,
        on_retry: RetryHook | None = None,
        label: str = "work",
    ) -> T:
        """
        Invoke ``work`` until it succeeds, fails fatally, or attempts run out.

        Args:
            work: Zero-argument coroutine function performing one attempt
            max_attempts: Total attempts including the first (default from config)
            base_delay: Initial transient backoff in seconds (default from config)
            state: Failure history to fill in (a fresh one is used if omitted)
            on_retry: Awaited as ``on_retry(attempt, error_info, wait)`` before each wait
            label: Name used in log messages

        Returns:
            Whatever ``work`` returned on the successful attempt

        Raises:
            The last exception raised by ``work``
        """
        attempts_allowed = self.retry.max_attempts if max_attempts is None else max_attempts
        delay = self.retry.base_delay if base_delay is None else base_delay
        if attempts_allowed < 1:
            raise ValueError(f"max_attempts must be >= 1 (got {attempts_allowed})")
        if state is None:
            state = RetryState()

        for attempt in range(1, attempts_allowed + 1):
            try:
                return await work()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error_info = self.error_classifier.classify(e)
                state.record_failure(attempt, error_info, e)
                error_snippet = str(e)[:150]
                error_type = type(e).__name__

                if not error_info.is_retryable:
                    logger.error(
                        f"[FAIL]{label} failed with non-retryable {error_info.error_category} "
                        f"error on attempt {attempt}: {error_type} - {error_snippet}"
                    )
                    raise
                if attempt >= attempts_allowed:
                    logger.error(
                        f"[FAIL]ALL {attempts_allowed} ATTEMPTS EXHAUSTED for {label}:\n"
                        f"  Final error kind: {error_info.kind.value}\n"
                        f"  Final error type: {error_type}\n"
                        f"  Final error message: {str(e)[:500]}"
                    )
                    raise

                wait_time = self.backoff_strategy.compute_wait(error_info.kind, delay, self._rng)
                delay = self.backoff_strategy.next_base_delay(delay)
                state.record_wait(wait_time)

                remaining = attempts_allowed - attempt
                if error_info.is_rate_limit:
                    logger.warning(
                        f"[RATE-LIMIT]Quota exceeded for {label} (attempt {attempt}/{attempts_allowed}). "
                        f"Waiting {wait_time:.1f}s before retry... Attempts left: {remaining}"
                    )
                else:
                    logger.warning(
                        f"[WARN]Attempt {attempt}/{attempts_allowed} failed for {label}: "
                        f"{error_type} - {error_snippet}. Retrying in {wait_time:.1f}s... "
                        f"Attempts left: {remaining}"
                    )

                if on_retry is not None:
                    await on_retry(attempt, error_info, wait_time)
                if wait_time > 0:
                    await self._sleep(wait_time)

        # Unreachable - all paths raise or return
        raise QueueInternalError(f"Unexpected: retry loop for {label} ended without a result")
