"""Tests for the retry policy."""

import asyncio
import random

import pytest

from llm_task_queue import RetryConfig, RetryPolicy, RetryState
from llm_task_queue.strategies.errors import ErrorKind, MalformedResponseError
from llm_task_queue.testing import FakeAPIError, RecordingSleep, ScriptedWork


def make_policy(**retry_kwargs) -> tuple[RetryPolicy, RecordingSleep]:
    sleep = RecordingSleep()
    policy = RetryPolicy(
        retry=RetryConfig(**retry_kwargs),
        sleep=sleep,
        rng=random.Random(42),
    )
    return policy, sleep


@pytest.mark.asyncio
async def test_success_first_try_no_wait():
    policy, sleep = make_policy()
    work = ScriptedWork(["ok"])

    assert await policy.execute(work) == "ok"
    assert work.calls == 1
    assert sleep.waits == []


@pytest.mark.asyncio
async def test_rate_limited_twice_then_success():
    """Two 429s then success: two waits in the 5-8s window."""
    policy, sleep = make_policy()
    rate_limited = FakeAPIError(429, "RESOURCE_EXHAUSTED", "Quota exceeded")
    work = ScriptedWork([rate_limited, rate_limited, {"questions": []}])
    state = RetryState()

    result = await policy.execute(work, state=state)

    assert result == {"questions": []}
    assert work.calls == 3
    assert len(sleep.waits) == 2
    for wait in sleep.waits:
        assert 5.0 <= wait <= 8.0
    assert [f.kind for f in state.failures] == [ErrorKind.RATE_LIMITED] * 2
    assert state.waits == sleep.waits
    assert state.total_backoff == pytest.approx(sum(sleep.waits))


@pytest.mark.asyncio
async def test_transient_exhausts_budget_with_exponential_waits():
    """Always 500: three invocations, 2s then 4s, then the last error surfaces."""
    policy, sleep = make_policy()
    error = FakeAPIError(500, "INTERNAL", "backend error")
    work = ScriptedWork([error])

    with pytest.raises(FakeAPIError) as exc_info:
        await policy.execute(work)

    assert exc_info.value is error
    assert work.calls == 3
    assert sleep.waits == [2.0, 4.0]


@pytest.mark.asyncio
async def test_fatal_fails_fast():
    policy, sleep = make_policy()
    work = ScriptedWork([FakeAPIError(400, "INVALID_ARGUMENT", "Invalid response schema")])
    state = RetryState()

    with pytest.raises(FakeAPIError):
        await policy.execute(work, state=state)

    assert work.calls == 1
    assert sleep.waits == []
    assert state.last_kind is ErrorKind.FATAL
    assert state.total_backoff == 0.0


@pytest.mark.asyncio
async def test_malformed_response_not_retried():
    policy, sleep = make_policy()
    work = ScriptedWork([MalformedResponseError("Response is not valid JSON")])

    with pytest.raises(MalformedResponseError):
        await policy.execute(work)

    assert work.calls == 1
    assert sleep.waits == []


@pytest.mark.asyncio
async def test_explicit_attempts_and_base_delay():
    policy, sleep = make_policy()
    work = ScriptedWork([ConnectionError("network down")])

    with pytest.raises(ConnectionError):
        await policy.execute(work, max_attempts=5, base_delay=3.0)

    assert work.calls == 5
    assert sleep.waits == [3.0, 6.0, 12.0, 24.0]


@pytest.mark.asyncio
async def test_single_attempt_budget_never_waits():
    policy, sleep = make_policy(max_attempts=1)
    work = ScriptedWork([FakeAPIError(503, "UNAVAILABLE", "overloaded")])

    with pytest.raises(FakeAPIError):
        await policy.execute(work)

    assert work.calls == 1
    assert sleep.waits == []


@pytest.mark.asyncio
async def test_rate_limit_wait_still_doubles_base_delay():
    """After a rate-limit wait, the next transient wait uses the doubled base delay."""
    policy, sleep = make_policy()
    work = ScriptedWork(
        [
            FakeAPIError(429, None, "Too many requests"),
            FakeAPIError(503, None, "unavailable"),
            "done",
        ]
    )

    assert await policy.execute(work) == "done"
    assert 5.0 <= sleep.waits[0] <= 8.0
    assert sleep.waits[1] == 4.0


@pytest.mark.asyncio
async def test_on_retry_hook_called_before_each_wait():
    policy, sleep = make_policy()
    work = ScriptedWork([FakeAPIError(500, None, "a"), FakeAPIError(500, None, "b"), "ok"])
    seen = []

    async def on_retry(attempt, info, wait):
        seen.append((attempt, info.kind, wait, len(sleep.waits)))

    await policy.execute(work, on_retry=on_retry)

    assert seen == [
        (1, ErrorKind.TRANSIENT, 2.0, 0),
        (2, ErrorKind.TRANSIENT, 4.0, 1),
    ]


@pytest.mark.asyncio
async def test_cancellation_is_not_retried():
    policy, sleep = make_policy()
    calls = 0

    async def work():
        nonlocal calls
        calls += 1
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await policy.execute(work)

    assert calls == 1
    assert sleep.waits == []


@pytest.mark.asyncio
async def test_invalid_max_attempts():
    policy, _ = make_policy()
    with pytest.raises(ValueError):
        await policy.execute(ScriptedWork(["ok"]), max_attempts=0)


def test_invalid_retry_config():
    with pytest.raises(ValueError):
        RetryPolicy(retry=RetryConfig(max_attempts=0))
