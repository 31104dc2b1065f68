"""Error classification and backoff strategies."""

from .backoff import BackoffStrategy, ExponentialBackoffStrategy, FixedDelayStrategy
from .errors import (
    DefaultErrorClassifier,
    ErrorClassifier,
    ErrorInfo,
    ErrorKind,
    MalformedResponseError,
    QueueInternalError,
    TaskFailedError,
    classify_error,
)

__all__ = [
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
]
