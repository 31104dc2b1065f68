"""Observers for monitoring the scheduler."""

from .base import BaseObserver, SchedulerEvent, SchedulerObserver
from .metrics import MetricsObserver

__all__ = ["BaseObserver", "MetricsObserver", "SchedulerEvent", "SchedulerObserver"]
