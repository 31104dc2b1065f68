"""Core data types: tasks, their retry history and result handles."""

import asyncio
import concurrent.futures
import logging
import threading
import time
from collections.abc import Awaitable, Callable, Generator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from .strategies.errors import ErrorInfo, ErrorKind, QueueInternalError

T = TypeVar("T")  # Result type of a task's work

# Zero-argument unit of work: a coroutine function, or a plain callable that
# is run in a worker thread (and may itself return an awaitable).
WorkFunc = Callable[[], Awaitable[T] | T]

# Module-level logger
logger = logging.getLogger(__name__)


class TaskState(str, Enum):
    """Lifecycle states of a task."""

    PENDING = "pending"
    RUNNING = "running"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskState.SUCCEEDED, TaskState.FAILED)


class Priority(str, Enum):
    """Dispatch class. HIGH jumps ahead of queued NORMAL work, never preempts."""

    HIGH = "high"
    NORMAL = "normal"

    @classmethod
    def coerce(cls, value: "bool | Priority") -> "Priority":
        """Accept the boolean priority flag as well as the enum."""
        if isinstance(value, Priority):
            return value
        return cls.HIGH if value else cls.NORMAL


@dataclass
class AttemptRecord:
    """One failed attempt and the wait that followed it (0.0 if none)."""

    attempt: int
    kind: ErrorKind
    error_type: str
    message: str
    wait: float = 0.0


@dataclass
class RetryState:
    """
    Attempt history for a single task, kept across its retry attempts.

    Filled in by the retry policy; lets callers and tests inspect how many
    attempts failed, how they were classified and how long was spent backing
    off.
    """

    failures: list[AttemptRecord] = field(default_factory=list)
    total_backoff: float = 0.0

    def record_failure(self, attempt: int, info: ErrorInfo, exception: BaseException) -> None:
        self.failures.append(
            AttemptRecord(
                attempt=attempt,
                kind=info.kind,
                error_type=type(exception).__name__,
                message=str(exception)[:500],
            )
        )

    def record_wait(self, wait: float) -> None:
        if self.failures:
            self.failures[-1].wait = wait
        self.total_backoff += wait

    @property
    def waits(self) -> list[float]:
        """Backoff waits actually scheduled, in order."""
        return [record.wait for record in self.failures if record.wait > 0]

    @property
    def last_kind(self) -> ErrorKind | None:
        return self.failures[-1].kind if self.failures else None

    def __repr__(self) -> str:
        return f"RetryState(failures={len(self.failures)}, total_backoff={self.total_backoff:.2f})"


class TaskHandle(Generic[T]):
    """
    Result channel for one submitted task.

    Settled exactly once, with the work's result or with a
    :class:`~llm_task_queue.strategies.errors.TaskFailedError`. Supports three
    access patterns:

    - ``await handle`` from a coroutine
    - ``handle.result(timeout)`` blocking wait from a thread other than the
      scheduler's event loop thread (calling it on the loop thread deadlocks)
    - ``handle.add_done_callback(fn)``, ``fn(handle)`` runs when settled
    """

    def __init__(self, task_id: int, priority: Priority, name: str | None = None):
        self.task_id = task_id
        self.priority = priority
        self.name = name
        self._future: concurrent.futures.Future[T] = concurrent.futures.Future()
        self._settle_lock = threading.Lock()
        self._settled = False
        self._task: "Task[T] | None" = None

    @property
    def state(self) -> TaskState:
        """Current lifecycle state of the task."""
        return self._task.state if self._task is not None else TaskState.PENDING

    @property
    def state_history(self) -> tuple[TaskState, ...]:
        """Every state the task has been in, oldest first."""
        return tuple(self._task.history) if self._task is not None else (TaskState.PENDING,)

    @property
    def attempts(self) -> int:
        return self._task.attempts if self._task is not None else 0

    @property
    def retry_state(self) -> RetryState:
        """Failure history of the task (classified failures and backoff waits)."""
        return self._task.retry_state if self._task is not None else RetryState()

    def __repr__(self) -> str:
        if not self._future.done():
            status = "pending"
        elif self._future.exception() is None:
            status = "succeeded"
        else:
            status = "failed"
        return f"TaskHandle(task_id={self.task_id}, priority={self.priority.value}, {status})"

    def __await__(self) -> Generator[Any, None, T]:
        return asyncio.wrap_future(self._future).__await__()

    def done(self) -> bool:
        return self._future.done()

    def succeeded(self) -> bool:
        return self._future.done() and self._future.exception() is None

    def failed(self) -> bool:
        return self._future.done() and self._future.exception() is not None

    def result(self, timeout: float | None = None) -> T:
        """
        Block until the task settles and return its result.

        Raises:
            TaskFailedError: If the task failed
            TimeoutError: If ``timeout`` elapsed first
        """
        return self._future.result(timeout=timeout)

    def exception(self, timeout: float | None = None) -> BaseException | None:
        return self._future.exception(timeout=timeout)

    def add_done_callback(self, fn: Callable[["TaskHandle[T]"], Any]) -> None:
        """Register ``fn(handle)``; runs immediately if already settled."""
        self._future.add_done_callback(lambda _future: fn(self))

    def _claim(self) -> None:
        with self._settle_lock:
            if self._settled:
                raise QueueInternalError(f"Task {self.task_id} handle settled twice")
            self._settled = True

    def _resolve(self, value: T) -> None:
        self._claim()
        self._future.set_result(value)

    def _reject(self, error: BaseException) -> None:
        self._claim()
        self._future.set_exception(error)


@dataclass(eq=False)
class Task(Generic[T]):
    """
    A single unit of scheduled work.

    Attributes:
        task_id: Unique (per scheduler) identifier, never reused
        work: Zero-argument callable performing the external call
        priority: Dispatch class, fixed at submission
        handle: Result channel visible to the submitter
        name: Optional label used in logs and events
        max_attempts: Per-task override of the attempt budget
        base_delay: Per-task override of the initial transient backoff
        state: Current lifecycle state (change it with ``set_state``)
        history: Every state the task has been in, oldest first
        attempts: Number of attempts started so far
        retry_state: Failure history filled in by the retry policy
        submitted_at: Monotonic time of submission
        started_at: Monotonic time of dispatch
    """

    task_id: int
    work: WorkFunc[T]
    priority: Priority
    handle: TaskHandle[T]
    name: str | None = None
    max_attempts: int | None = None
    base_delay: float | None = None
    state: TaskState = TaskState.PENDING
    history: list[TaskState] = field(default_factory=lambda: [TaskState.PENDING])
    attempts: int = 0
    retry_state: RetryState = field(default_factory=RetryState)
    submitted_at: float = field(default_factory=time.monotonic)
    started_at: float | None = None

    def __post_init__(self):
        """Validate task fields."""
        if not callable(self.work):
            raise TypeError(
                f"work must be a zero-argument callable (got {type(self.work).__name__})"
            )
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1 (got {self.max_attempts})")
        if self.base_delay is not None and self.base_delay < 0:
            raise ValueError(f"base_delay must be non-negative (got {self.base_delay})")
        self.handle._task = self

    def set_state(self, state: TaskState) -> None:
        """Move to ``state``, recording it unless it is the current one."""
        if self.state.is_terminal:
            raise QueueInternalError(
                f"{self.label} is already {self.state.value}, cannot become {state.value}"
            )
        if state is not self.state:
            self.state = state
            self.history.append(state)

    @property
    def label(self) -> str:
        return f"task_{self.task_id}" if self.name is None else f"task_{self.task_id}:{self.name}"


@dataclass
class SchedulerStats:
    """Counters for one scheduler instance."""

    submitted: int = 0
    succeeded: int = 0
    failed: int = 0
    retries: int = 0
    rate_limit_count: int = 0
    total_backoff: float = 0.0
    error_counts: dict[str, int] = field(default_factory=dict)

    def copy(self) -> dict[str, Any]:
        """Return a dictionary snapshot of the stats."""
        return {
            "submitted": self.submitted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "retries": self.retries,
            "rate_limit_count": self.rate_limit_count,
            "total_backoff": self.total_backoff,
            "error_counts": self.error_counts.copy(),
        }
