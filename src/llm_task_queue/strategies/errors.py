"""Error classification for calls against the completion service."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

# Common error pattern constants
RATE_LIMIT_PATTERNS = ("429", "quota", "exhausted")
RATE_LIMIT_STATUS_TOKENS = ("resource_exhausted",)
NETWORK_PATTERNS = ("xhr", "fetch", "network")
RPC_ERROR_MARKER = "error code: 6"
SERVER_ERROR_CODES = (500, 503)
SERVER_STATUS_TOKENS = ("internal", "unavailable")


class ErrorKind(str, Enum):
    """Closed set of failure classes that decide retry eligibility."""

    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    FATAL = "fatal"

    @property
    def is_retryable(self) -> bool:
        return self is not ErrorKind.FATAL


class MalformedResponseError(Exception):
    """
    The completion service answered, but the payload could not be parsed.

    Always classified as fatal: asking again for the same thing is unlikely to
    produce a different shape.

    Attributes:
        raw_text: Beginning of the offending response text (may be empty)
    """

    def __init__(self, message: str, *, raw_text: str | None = None):
        super().__init__(message)
        self.raw_text = (raw_text or "")[:500]


class QueueInternalError(RuntimeError):
    """Scheduler invariant violated. Indicates a bug, never a user-facing failure."""


class TaskFailedError(Exception):
    """
    Raised through a task handle once its task has settled as failed.

    The last observed error is chained as ``__cause__`` and kept on ``error``,
    so callers can decide on user-facing messaging from both the
    classification and the original message.

    Attributes:
        task_id: ID of the failed task
        kind: Classification of the last error
        attempts: Number of attempts made (1 for fatal failures)
        error: The last exception raised by the task's work
    """

    def __init__(self, task_id: int, kind: ErrorKind, attempts: int, error: BaseException):
        self.task_id = task_id
        self.kind = kind
        self.attempts = attempts
        self.error = error
        super().__init__(
            f"Task {task_id} failed after {attempts} attempt(s) [{kind.value}]: "
            f"{type(error).__name__}: {str(error)[:200]}"
        )


@dataclass
class ErrorInfo:
    """Structured information about an error."""

    kind: ErrorKind
    error_category: str
    status_code: int | None = None

    @property
    def is_retryable(self) -> bool:
        return self.kind.is_retryable

    @property
    def is_rate_limit(self) -> bool:
        return self.kind is ErrorKind.RATE_LIMITED


def _numeric_statuses(exception: BaseException) -> list[int]:
    """Every integer-like status on the exception, in attribute order."""
    statuses = []
    for attr in ("code", "status_code", "status"):
        value: Any = getattr(exception, attr, None)
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            statuses.append(value)
        elif isinstance(value, str) and value.strip().isdigit():
            statuses.append(int(value.strip()))
    return statuses


def _primary_status(statuses: list[int]) -> int | None:
    """Pick the status worth reporting: an HTTP-range code if there is one."""
    for status in statuses:
        if 100 <= status < 600:
            return status
    return statuses[0] if statuses else None


def _status_token(exception: BaseException) -> str:
    """Return a lowercase textual status (e.g. ``resource_exhausted``) or ''."""
    value = getattr(exception, "status", None)
    if isinstance(value, str) and not value.strip().isdigit():
        return value.strip().lower()
    return ""


def _error_text(exception: BaseException) -> str:
    parts = [str(exception)]
    message = getattr(exception, "message", None)
    if isinstance(message, str) and message not in parts[0]:
        parts.append(message)
    return " ".join(parts).lower()


def classify_error(exception: BaseException) -> ErrorKind:
    """
    Map a failure from the external call to an ErrorKind.

    Inspects status codes (``code``, ``status_code``, ``status`` attributes)
    and the message text, case-insensitively.

    Args:
        exception: The exception raised by the work

    Returns:
        RATE_LIMITED, TRANSIENT or FATAL
    """
    if isinstance(exception, MalformedResponseError):
        return ErrorKind.FATAL

    statuses = _numeric_statuses(exception)
    token = _status_token(exception)
    text = _error_text(exception)

    if (
        429 in statuses
        or token in RATE_LIMIT_STATUS_TOKENS
        or any(pattern in text for pattern in RATE_LIMIT_PATTERNS)
    ):
        return ErrorKind.RATE_LIMITED

    if (
        any(status in SERVER_ERROR_CODES for status in statuses)
        or token in SERVER_STATUS_TOKENS
        or any(pattern in text for pattern in NETWORK_PATTERNS)
        or RPC_ERROR_MARKER in text
        or isinstance(exception, (ConnectionError, TimeoutError))
    ):
        return ErrorKind.TRANSIENT

    return ErrorKind.FATAL


class ErrorClassifier(ABC):
    """Abstract base class for classifying completion service errors."""

    @abstractmethod
    def classify(self, exception: BaseException) -> ErrorInfo:
        """
        Classify an exception and determine handling strategy.

        Args:
            exception: The exception to classify

        Returns:
            ErrorInfo with classification details
        """
        pass


class DefaultErrorClassifier(ErrorClassifier):
    """Default classifier built on :func:`classify_error`."""

    def classify(self, exception: BaseException) -> ErrorInfo:
        kind = classify_error(exception)
        status = _primary_status(_numeric_statuses(exception))

        if kind is ErrorKind.RATE_LIMITED:
            return ErrorInfo(kind=kind, error_category="rate_limit", status_code=status)

        if kind is ErrorKind.TRANSIENT:
            if isinstance(exception, TimeoutError):
                category = "timeout"
            elif status is not None and status >= 500:
                category = "server_error"
            else:
                category = "connection_error"
            return ErrorInfo(kind=kind, error_category=category, status_code=status)

        if isinstance(exception, MalformedResponseError):
            category = "malformed_response"
        elif status in (401, 403):
            category = "authentication"
        elif status is not None and 400 <= status < 500:
            category = "invalid_request"
        else:
            category = "unknown"
        return ErrorInfo(kind=kind, error_category=category, status_code=status)
