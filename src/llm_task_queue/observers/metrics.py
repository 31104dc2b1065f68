"""Metrics collection observer."""

import asyncio
import json
from typing import Any

from .base import BaseObserver, SchedulerEvent


def _empty_metrics() -> dict[str, Any]:
    return {
        "tasks_started": 0,
        "tasks_succeeded": 0,
        "tasks_failed": 0,
        "retries": 0,
        "rate_limits_hit": 0,
        "total_backoff_time": 0.0,
        "error_counts": {},
        "processing_times_count": 0,
        "processing_times_sum": 0.0,
    }


class MetricsObserver(BaseObserver):
    """Collect metrics for monitoring (thread-safe)."""

    def __init__(self, *, max_processing_samples: int = 100):
        """Initialize metrics collector."""
        if max_processing_samples <= 0:
            raise ValueError("max_processing_samples must be positive")
        self.metrics: dict[str, Any] = _empty_metrics()
        self._processing_times: list[float] = []
        self._max_processing_samples = max_processing_samples
        self._lock = asyncio.Lock()

    async def on_event(
        self,
        event: SchedulerEvent,
        data: dict[str, Any],
    ) -> None:
        """Collect metrics from events (thread-safe)."""
        async with self._lock:
            if event == SchedulerEvent.TASK_STARTED:
                self.metrics["tasks_started"] += 1

            elif event == SchedulerEvent.TASK_SUCCEEDED:
                self.metrics["tasks_succeeded"] += 1
                self._record_duration(data)

            elif event == SchedulerEvent.TASK_FAILED:
                self.metrics["tasks_failed"] += 1
                self._record_duration(data)
                if "error_kind" in data:
                    error_kind = data["error_kind"]
                    self.metrics["error_counts"][error_kind] = (
                        self.metrics["error_counts"].get(error_kind, 0) + 1
                    )

            elif event == SchedulerEvent.TASK_RETRYING:
                self.metrics["retries"] += 1
                self.metrics["total_backoff_time"] += float(data.get("wait", 0.0))

            elif event == SchedulerEvent.RATE_LIMIT_HIT:
                self.metrics["rate_limits_hit"] += 1

    def _record_duration(self, data: dict[str, Any]) -> None:
        if "duration" not in data:
            return
        duration = float(data["duration"])
        self.metrics["processing_times_sum"] += duration
        self.metrics["processing_times_count"] += 1
        self._processing_times.append(duration)
        if len(self._processing_times) > self._max_processing_samples:
            self._processing_times.pop(0)

    async def get_metrics(self) -> dict[str, Any]:
        """Get collected metrics with computed statistics (thread-safe)."""
        async with self._lock:
            settled = self.metrics["tasks_succeeded"] + self.metrics["tasks_failed"]
            return {
                **self.metrics,
                "error_counts": dict(self.metrics["error_counts"]),
                "processing_times": list(self._processing_times),
                "avg_processing_time": (
                    self.metrics["processing_times_sum"] / self.metrics["processing_times_count"]
                    if self.metrics["processing_times_count"] > 0
                    else 0
                ),
                "success_rate": (
                    self.metrics["tasks_succeeded"] / settled if settled > 0 else 0
                ),
            }

    def reset(self) -> None:
        """Reset all metrics."""
        self.metrics = _empty_metrics()
        self._processing_times = []

    async def export_json(self) -> str:
        """Export metrics as JSON string.

        Returns:
            JSON string containing all metrics and computed statistics
        """
        metrics = await self.get_metrics()
        # Raw samples are left out; the count and average are enough for export
        export_data = {k: v for k, v in metrics.items() if k != "processing_times"}
        return json.dumps(export_data, indent=2)

    async def export_prometheus(self) -> str:
        """Export metrics in Prometheus text format.

        Returns:
            Prometheus-formatted metrics string

        Example:
            >>> observer = MetricsObserver()
            >>> # ... run tasks ...
            >>> prom_text = await observer.export_prometheus()
            >>> print(prom_text)
            # HELP llm_task_queue_tasks_started Total tasks dispatched
            # TYPE llm_task_queue_tasks_started counter
            llm_task_queue_tasks_started 12
            ...
        """
        metrics = await self.get_metrics()

        lines = []

        counters = [
            ("tasks_started", "Total tasks dispatched"),
            ("tasks_succeeded", "Total tasks succeeded"),
            ("tasks_failed", "Total tasks failed"),
            ("retries", "Total retry attempts scheduled"),
            ("rate_limits_hit", "Total rate limits encountered"),
        ]

        for metric_name, help_text in counters:
            lines.append(f"# HELP llm_task_queue_{metric_name} {help_text}")
            lines.append(f"# TYPE llm_task_queue_{metric_name} counter")
            lines.append(f"llm_task_queue_{metric_name} {metrics.get(metric_name, 0)}")
            lines.append("")

        gauges = [
            ("avg_processing_time", "Average task time in seconds, retries included"),
            ("success_rate", "Success rate (0.0 to 1.0)"),
            ("total_backoff_time", "Total time spent waiting between attempts (seconds)"),
            ("processing_times_count", "Number of recorded processing time samples"),
        ]

        for metric_name, help_text in gauges:
            lines.append(f"# HELP llm_task_queue_{metric_name} {help_text}")
            lines.append(f"# TYPE llm_task_queue_{metric_name} gauge")
            lines.append(f"llm_task_queue_{metric_name} {metrics.get(metric_name, 0)}")
            lines.append("")

        error_counts = metrics.get("error_counts", {})
        if error_counts:
            lines.append("# HELP llm_task_queue_errors_total Failed tasks by error kind")
            lines.append("# TYPE llm_task_queue_errors_total counter")
            for error_kind, count in error_counts.items():
                safe_kind = error_kind.replace('"', '\\"')
                lines.append(f'llm_task_queue_errors_total{{error_kind="{safe_kind}"}} {count}')
            lines.append("")

        return "\n".join(lines)

    async def export_dict(self) -> dict[str, Any]:
        """Export metrics as a dictionary."""
        return await self.get_metrics()
