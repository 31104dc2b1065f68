"""Tests for configuration validation."""

import pytest

from llm_task_queue import RateLimitConfig, RetryConfig, SchedulerConfig


def test_defaults():
    config = SchedulerConfig()
    config.validate()

    assert config.max_concurrency == 1
    assert config.retry.max_attempts == 3
    assert config.retry.base_delay == 2.0
    assert config.retry.backoff_multiplier == 2.0
    assert (config.rate_limit.min_wait, config.rate_limit.max_wait) == (5.0, 8.0)
    assert config.max_requests_per_minute is None


@pytest.mark.parametrize(
    "config",
    [
        SchedulerConfig(max_concurrency=0),
        SchedulerConfig(max_requests_per_minute=0),
        SchedulerConfig(observer_timeout=0),
        SchedulerConfig(retry=RetryConfig(max_attempts=0)),
        SchedulerConfig(retry=RetryConfig(base_delay=-1.0)),
        SchedulerConfig(retry=RetryConfig(backoff_multiplier=0.5)),
        SchedulerConfig(rate_limit=RateLimitConfig(min_wait=-1.0)),
        SchedulerConfig(rate_limit=RateLimitConfig(min_wait=8.0, max_wait=5.0)),
    ],
)
def test_invalid_values_rejected(config):
    with pytest.raises(ValueError):
        config.validate()


def test_zero_base_delay_allowed():
    RetryConfig(base_delay=0.0).validate()
