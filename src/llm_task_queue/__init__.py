"""Priority task queue for rate-limited LLM calls.

This module provides a single shared scheduler that serializes calls against
a rate-limited completion service (Google Gemini), lets interactive work jump
ahead of background work, and retries transient failures with backoff while
failing fast on permanent ones.

Key features:
- Hard concurrency ceiling (default: one call at a time)
- Two priority classes: high (interactive) before normal (bulk), FIFO within each
- Error classification into rate-limited / transient / fatal
- Jittered waits after rate limits, exponential backoff after transient errors
- Result handles that can be awaited, blocked on, or given callbacks
- Observer pattern for monitoring

Example:
    >>> from llm_task_queue import SchedulerConfig, TaskScheduler
    >>>
    >>> scheduler = TaskScheduler(SchedulerConfig(max_concurrency=1))
    >>>
    >>> async def call_model():
    ...     return await client.complete(request)
    >>>
    >>> handle = scheduler.submit(call_model, priority=True)
    >>> result = await handle
"""

# Core classes
from .base import (
    AttemptRecord,
    Priority,
    RetryState,
    SchedulerStats,
    Task,
    TaskHandle,
    TaskState,
    WorkFunc,
)

# Completion clients
from .completion import (
    CompletionClient,
    CompletionRequest,
    GeminiCompletionClient,
    parse_json_lenient,
)

# Configuration
from .core import RateLimitConfig, RetryConfig, SchedulerConfig

# Observers
from .observers import BaseObserver, MetricsObserver, SchedulerEvent, SchedulerObserver

# Retry policy and scheduler
from .retry import RetryPolicy
from .scheduler import TaskScheduler

# Error classification and backoff strategies
from .strategies import (
    BackoffStrategy,
    DefaultErrorClassifier,
    ErrorClassifier,
    ErrorInfo,
    ErrorKind,
    ExponentialBackoffStrategy,
    FixedDelayStrategy,
    MalformedResponseError,
    QueueInternalError,
    TaskFailedError,
    classify_error,
)

__all__ = [
    # Core
    "AttemptRecord",
    "Priority",
    "RetryState",
    "SchedulerStats",
    "Task",
    "TaskHandle",
    "TaskState",
    "WorkFunc",
    # Configuration
    "SchedulerConfig",
    "RateLimitConfig",
    "RetryConfig",
    # Completion clients
    "CompletionClient",
    "CompletionRequest",
    "GeminiCompletionClient",
    "parse_json_lenient",
    # Error classification and backoff
    "ErrorClassifier",
    "ErrorInfo",
    "ErrorKind",
    "DefaultErrorClassifier",
    "MalformedResponseError",
    "QueueInternalError",
    "TaskFailedError",
    "classify_error",
    "BackoffStrategy",
    "ExponentialBackoffStrategy",
    "FixedDelayStrategy",
    # Observers
    "SchedulerObserver",
    "BaseObserver",
    "MetricsObserver",
    "SchedulerEvent",
    # Scheduling
    "RetryPolicy",
    "TaskScheduler",
]

# Version is read from package metadata (single source of truth in pyproject.toml)
try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("llm-task-queue")
except PackageNotFoundError:
    # Package not installed (e.g., running from source in development)
    __version__ = "0.0.0+dev"
