"""Configuration objects for the task scheduler."""

from dataclasses import dataclass, field


@dataclass
class RetryConfig:
    """
    Attempt budget and exponential backoff for transient failures.

    Attributes:
        max_attempts: Total attempts per task, including the first (default: 3,
            i.e. two retries)
        base_delay: Initial wait in seconds after a transient failure
        backoff_multiplier: Factor applied to the base delay after every wait
    """

    max_attempts: int = 3
    base_delay: float = 2.0
    backoff_multiplier: float = 2.0

    def validate(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1 (got {self.max_attempts})")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be non-negative (got {self.base_delay})")
        if self.backoff_multiplier < 1.0:
            raise ValueError(
                f"backoff_multiplier must be >= 1.0 (got {self.backoff_multiplier})"
            )


@dataclass
class RateLimitConfig:
    """
    Wait window applied after a rate-limited failure (seconds).

    The wait is drawn uniformly from [min_wait, max_wait] and does not depend
    on the retry base delay.
    """

    min_wait: float = 5.0
    max_wait: float = 8.0

    def validate(self) -> None:
        if self.min_wait < 0:
            raise ValueError(f"min_wait must be non-negative (got {self.min_wait})")
        if self.max_wait < self.min_wait:
            raise ValueError(
                f"max_wait ({self.max_wait}) must be >= min_wait ({self.min_wait})"
            )


@dataclass
class SchedulerConfig:
    """
    Top-level scheduler configuration.

    Attributes:
        max_concurrency: Maximum number of tasks running at once. 1 serializes
            every call, which is what free-tier Gemini quotas tolerate.
        retry: Retry configuration
        rate_limit: Rate-limit wait window
        max_requests_per_minute: Optional proactive throttle applied before
            every attempt (None disables it)
        observer_timeout: Seconds an observer may take to handle one event
    """

    max_concurrency: int = 1
    retry: RetryConfig = field(default_factory=RetryConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    max_requests_per_minute: float | None = None
    observer_timeout: float = 5.0

    def validate(self) -> None:
        """Validate the configuration, raising ValueError on bad values."""
        if self.max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1 (got {self.max_concurrency})")
        if self.max_requests_per_minute is not None and self.max_requests_per_minute <= 0:
            raise ValueError(
                "max_requests_per_minute must be positive or None "
                f"(got {self.max_requests_per_minute})"
            )
        if self.observer_timeout <= 0:
            raise ValueError(f"observer_timeout must be positive (got {self.observer_timeout})")
        self.retry.validate()
        self.rate_limit.validate()
