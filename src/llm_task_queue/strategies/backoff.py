"""Backoff strategies deciding how long to wait between attempts."""

import random
from abc import ABC, abstractmethod

from .errors import ErrorKind


class BackoffStrategy(ABC):
    """Abstract base class for retry backoff schedules."""

    @abstractmethod
    def compute_wait(
        self, kind: ErrorKind, base_delay: float, rng: random.Random | None = None
    ) -> float:
        """
        Return how long to wait after a retryable failure.

        Args:
            kind: Classification of the failure (never FATAL)
            base_delay: Current base delay in seconds
            rng: Random source for jittered waits

        Returns:
            Wait time in seconds
        """
        pass

    def next_base_delay(self, base_delay: float) -> float:
        """Base delay to use after a wait. Default: unchanged."""
        return base_delay


class ExponentialBackoffStrategy(BackoffStrategy):
    """
    Exponential backoff for transient errors, jittered window for rate limits.

    - Rate limited: uniform wait in [rate_limit_min_wait, rate_limit_max_wait]
    - Transient: wait exactly the current base delay
    - After every wait the base delay is multiplied by ``multiplier``, including
      rate-limit waits, which do not use it themselves
    """

    def __init__(
        self,
        rate_limit_min_wait: float = 5.0,
        rate_limit_max_wait: float = 8.0,
        multiplier: float = 2.0,
    ):
        if rate_limit_min_wait < 0 or rate_limit_max_wait < rate_limit_min_wait:
            raise ValueError(
                f"Invalid rate limit window [{rate_limit_min_wait}, {rate_limit_max_wait}]"
            )
        if multiplier < 1.0:
            raise ValueError(f"multiplier must be >= 1.0 (got {multiplier})")
        self.rate_limit_min_wait = rate_limit_min_wait
        self.rate_limit_max_wait = rate_limit_max_wait
        self.multiplier = multiplier

    def compute_wait(
        self, kind: ErrorKind, base_delay: float, rng: random.Random | None = None
    ) -> float:
        if kind is ErrorKind.RATE_LIMITED:
            source = rng or random
            return source.uniform(self.rate_limit_min_wait, self.rate_limit_max_wait)
        if kind is ErrorKind.TRANSIENT:
            return base_delay
        raise ValueError(f"No backoff for non-retryable error kind {kind.value!r}")

    def next_base_delay(self, base_delay: float) -> float:
        return base_delay * self.multiplier


class FixedDelayStrategy(BackoffStrategy):
    """Same wait after every retryable failure (useful for tests and demos)."""

    def __init__(self, delay: float = 1.0):
        if delay < 0:
            raise ValueError(f"delay must be non-negative (got {delay})")
        self.delay = delay

    def compute_wait(
        self, kind: ErrorKind, base_delay: float, rng: random.Random | None = None
    ) -> float:
        return self.delay
