"""Priority task scheduler with a concurrency gate"""

import asyncio
import inspect
import itertools
import logging
import time
from typing import Any, TypeVar

from aiolimiter import AsyncLimiter

from .base import (
    Priority,
    SchedulerStats,
    Task,
    TaskHandle,
    TaskState,
    WorkFunc,
)
from .core import SchedulerConfig
from .observers import SchedulerEvent, SchedulerObserver
from .retry import RetryPolicy
from .strategies import (
    ErrorClassifier,
    ErrorInfo,
    QueueInternalError,
    TaskFailedError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TaskScheduler:
    """
    Shared queue that serializes and retries calls against a rate-limited service.

    - At most ``config.max_concurrency`` tasks run at once
    - HIGH priority tasks are dispatched before every queued NORMAL task, but
      never preempt a running one; each class is FIFO
    - Every task runs through a :class:`RetryPolicy` and its handle is settled
      exactly once

    All queue and counter mutations happen on the event loop thread the
    scheduler is bound to (the loop running during the first ``submit``).
    ``submit`` may be called from other threads; the insertion is handed to
    the loop with ``call_soon_threadsafe``.
    """

    def __init__(
        self,
        config: SchedulerConfig | None = None,
        *,
        retry_policy: RetryPolicy | None = None,
        error_classifier: ErrorClassifier | None = None,
        observers: list[SchedulerObserver] | None = None,
    ):
        """
        Initialize the scheduler.

        Args:
            config: Scheduler configuration (default: SchedulerConfig(), i.e. one task at a time)
            retry_policy: Policy running each task's attempt loop (default: built from config)
            error_classifier: Classifier for the default retry policy; ignored
                when ``retry_policy`` is given
            observers: Observers notified of task events
        """
        config = config or SchedulerConfig()
        config.validate()
        self.config = config
        self.max_concurrency = config.max_concurrency

        self.retry_policy = retry_policy or RetryPolicy(
            retry=config.retry,
            rate_limit=config.rate_limit,
            error_classifier=error_classifier,
        )
        self.error_classifier = self.retry_policy.error_classifier
        self.observers = observers or []

        self._queue: list[Task[Any]] = []
        self._running = 0
        self._ids = itertools.count(1)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._runners: set[asyncio.Task[None]] = set()
        self._stats = SchedulerStats()
        self._idle = asyncio.Event()
        self._idle.set()

        # Proactive rate limiting (keeps bursts under the provider's RPM quota)
        if config.max_requests_per_minute:
            self._limiter: AsyncLimiter | None = AsyncLimiter(
                max_rate=config.max_requests_per_minute,
                time_period=60,
            )
        else:
            self._limiter = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Wait for all submitted work to settle (unless leaving on an error)."""
        if exc_type is None:
            await self.join()
        return False  # Don't suppress exceptions

    @property
    def running(self) -> int:
        """Number of tasks currently holding a concurrency slot."""
        return self._running

    @property
    def pending(self) -> int:
        """Number of tasks waiting in the queue."""
        return len(self._queue)

    def pending_tasks(self) -> list[int]:
        """IDs of queued tasks, in the order they will be dispatched."""
        return [task.task_id for task in self._queue]

    def get_stats(self) -> dict[str, Any]:
        """
        Get scheduler statistics.

        Returns:
            Dictionary with submitted, succeeded, failed, retries,
            rate_limit_count, total_backoff, error_counts, running and pending
        """
        stats = self._stats.copy()
        stats["running"] = self._running
        stats["pending"] = len(self._queue)
        return stats

    async def join(self) -> None:
        """Wait until the queue is empty and no task is running."""
        await self._idle.wait()

    def submit(
        self,
        work: WorkFunc[T],
        priority: bool | Priority = False,
        *,
        name: str | None = None,
        max_attempts: int | None = None,
        base_delay: float | None = None,
    ) -> TaskHandle[T]:
        """
        Queue a unit of work and return its handle immediately.

        Args:
            work: Zero-argument callable performing the external call.
                Coroutine functions are awaited; plain callables run in a
                worker thread.
            priority: True / Priority.HIGH for interactive work that should
                jump ahead of queued background work
            name: Optional label for logs and events
            max_attempts: Override the configured attempt budget for this task
            base_delay: Override the configured initial transient backoff

        Returns:
            TaskHandle settled with the work's result or a TaskFailedError

        Raises:
            RuntimeError: If no event loop is bound or running
        """
        loop, on_loop_thread = self._resolve_loop()
        task_id = next(self._ids)
        task_priority = Priority.coerce(priority)
        handle: TaskHandle[T] = TaskHandle(task_id, task_priority, name)
        task = Task(
            task_id=task_id,
            work=work,
            priority=task_priority,
            handle=handle,
            name=name,
            max_attempts=max_attempts,
            base_delay=base_delay,
        )

        if on_loop_thread:
            self._enqueue(task)
        else:
            loop.call_soon_threadsafe(self._enqueue, task)
        return handle

    def _resolve_loop(self) -> tuple[asyncio.AbstractEventLoop, bool]:
        """Return the bound loop and whether the caller is running on it."""
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None

        if self._loop is None or (self._loop.is_closed() and current is not None):
            if current is None:
                raise RuntimeError(
                    "TaskScheduler.submit() must first be called from a running event loop"
                )
            self._loop = current
            logger.debug(f"Scheduler bound to event loop {id(current):#x}")
        elif current is not None and current is not self._loop:
            raise RuntimeError("TaskScheduler is bound to a different event loop")

        return self._loop, current is self._loop

    def _insertion_index(self, priority: Priority) -> int:
        """HIGH goes before the first queued NORMAL task; NORMAL goes to the tail."""
        if priority is Priority.HIGH:
            for index, queued in enumerate(self._queue):
                if queued.priority is Priority.NORMAL:
                    return index
        return len(self._queue)

    def _enqueue(self, task: Task[Any]) -> None:
        index = self._insertion_index(task.priority)
        self._queue.insert(index, task)
        self._stats.submitted += 1
        self._idle.clear()
        logger.debug(
            f"[INFO]Queued {task.label} ({task.priority.value}) at position {index}, "
            f"{len(self._queue)} pending, {self._running}/{self.max_concurrency} running"
        )
        self._dispatch()

    def _dispatch(self) -> None:
        """Fill free concurrency slots from the head of the queue."""
        while self._running < self.max_concurrency and self._queue:
            task = self._queue.pop(0)
            task.set_state(TaskState.RUNNING)
            self._running += 1
            if self._running > self.max_concurrency:
                raise QueueInternalError(
                    f"running={self._running} exceeds max_concurrency={self.max_concurrency}"
                )
            runner = self._loop.create_task(self._run(task), name=f"llm-task-queue:{task.label}")
            self._runners.add(runner)
            runner.add_done_callback(self._runners.discard)
            logger.debug(f"[INFO]Dispatched {task.label} ({task.priority.value})")

        if self._running == 0 and not self._queue:
            self._idle.set()

    async def _run(self, task: Task[Any]) -> None:
        """Run one task through the retry policy and settle its handle."""
        result: Any = None
        error: BaseException | None = None
        cancelled = False

        async def on_retry(attempt: int, error_info: ErrorInfo, wait: float) -> None:
            await self._on_retry(task, attempt, error_info, wait)

        try:
            task.started_at = time.monotonic()
            await self._emit_event(
                SchedulerEvent.TASK_STARTED,
                {**self._event_data(task), "queue_wait": task.started_at - task.submitted_at},
            )
            try:
                result = await self.retry_policy.execute(
                    lambda: self._attempt(task),
                    task.max_attempts,
                    task.base_delay,
                    state=task.retry_state,
                    on_retry=on_retry,
                    label=task.label,
                )
            except Exception as e:
                kind = task.retry_state.last_kind or self.error_classifier.classify(e).kind
                error = TaskFailedError(task.task_id, kind, max(task.attempts, 1), e)
                error.__cause__ = e
                task.set_state(TaskState.FAILED)
                self._stats.failed += 1
                self._stats.error_counts[kind.value] = (
                    self._stats.error_counts.get(kind.value, 0) + 1
                )
                await self._emit_event(
                    SchedulerEvent.TASK_FAILED,
                    {
                        **self._event_data(task),
                        "error_kind": kind.value,
                        "error": f"{type(e).__name__}: {str(e)[:200]}",
                    },
                )
            else:
                task.set_state(TaskState.SUCCEEDED)
                self._stats.succeeded += 1
                logger.info(f"[OK]{task.label} succeeded after {task.attempts} attempt(s)")
                await self._emit_event(SchedulerEvent.TASK_SUCCEEDED, self._event_data(task))
        except asyncio.CancelledError:
            cancelled = True
            raise
        finally:
            if not task.state.is_terminal:
                # Interrupted before reaching an outcome
                task.set_state(TaskState.FAILED)
                error = asyncio.CancelledError(f"{task.label} cancelled")
            self._settle(task, result=result, error=error)
            if not cancelled:
                self._dispatch()
            elif self._running == 0:
                # Loop shutdown: start nothing new, but release join() waiters
                logger.warning(
                    f"[WARN]Scheduler stopped with {len(self._queue)} task(s) still queued"
                )
                self._idle.set()

    def _settle(
        self, task: Task[Any], *, result: Any = None, error: BaseException | None = None
    ) -> None:
        """Release the task's slot, then settle its handle."""
        self._running -= 1
        if self._running < 0:
            raise QueueInternalError(f"running counter went negative after {task.label}")
        if error is None:
            task.handle._resolve(result)
        else:
            task.handle._reject(error)

    async def _attempt(self, task: Task[T]) -> T:
        """One invocation of the task's work."""
        task.attempts += 1
        task.set_state(TaskState.RUNNING)
        if self._limiter is not None:
            await self._limiter.acquire()

        work = task.work
        if inspect.iscoroutinefunction(work) or inspect.iscoroutinefunction(
            getattr(work, "__call__", None)
        ):
            return await work()

        # Plain callable: keep blocking SDK calls off the event loop
        result = await asyncio.to_thread(work)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _on_retry(
        self, task: Task[Any], attempt: int, error_info: ErrorInfo, wait: float
    ) -> None:
        task.set_state(TaskState.RETRYING)
        self._stats.retries += 1
        self._stats.total_backoff += wait
        data = {
            **self._event_data(task),
            "attempt": attempt,
            "error_kind": error_info.kind.value,
            "error_category": error_info.error_category,
            "wait": wait,
        }
        if error_info.is_rate_limit:
            self._stats.rate_limit_count += 1
            await self._emit_event(SchedulerEvent.RATE_LIMIT_HIT, data)
        await self._emit_event(SchedulerEvent.TASK_RETRYING, data)

    def _event_data(self, task: Task[Any]) -> dict[str, Any]:
        data: dict[str, Any] = {
            "task_id": task.task_id,
            "name": task.name,
            "priority": task.priority.value,
            "attempts": task.attempts,
        }
        if task.state.is_terminal and task.started_at is not None:
            data["duration"] = time.monotonic() - task.started_at
        return data

    async def _emit_event(self, event: SchedulerEvent, data: dict | None = None) -> None:
        """Emit event to all observers."""
        if not self.observers:
            return

        event_data = data or {}
        for observer in self.observers:
            try:
                await asyncio.wait_for(
                    observer.on_event(event, event_data),
                    timeout=self.config.observer_timeout,
                )
            except asyncio.CancelledError:
                raise
            except TimeoutError:
                logger.warning(
                    f"[WARN]Observer callback timed out after {self.config.observer_timeout}s "
                    f"for event {event.name}"
                )
            except Exception as e:
                logger.warning(f"[WARN]Observer error: {e}")
