"""Testing utilities for llm_task_queue."""

from .mocks import FakeAPIError, MockCompletionClient, RecordingSleep, ScriptedWork

__all__ = ["FakeAPIError", "MockCompletionClient", "RecordingSleep", "ScriptedWork"]
