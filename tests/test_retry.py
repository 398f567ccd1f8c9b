"""Tests for the shared retry policy."""

import asyncio

import pytest

from conftest import SleepRecorder
from retry import RetryExhausted, RetryPolicy, execute_with_policy, fallback_chain


class Flaky:
    """Operation that fails a set number of times before succeeding."""

    def __init__(self, failures: int, result="ok", error: Exception | None = None):
        self.failures = failures
        self.result = result
        self.error = error or ConnectionError("upstream down")
        self.candidates = []

    async def __call__(self, candidate):
        self.candidates.append(candidate)
        if len(self.candidates) <= self.failures:
            raise self.error
        return self.result


class TestExecuteWithPolicy:
    @pytest.mark.asyncio
    async def test_first_attempt_no_sleep(self):
        sleep = SleepRecorder()
        op = Flaky(0)

        assert await execute_with_policy(op, RetryPolicy(delays=(5.0,)), sleep=sleep) == "ok"
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_candidates_advance_with_delays(self):
        sleep = SleepRecorder()
        op = Flaky(2)
        policy = RetryPolicy(max_attempts=3, delays=(1.0, 2.0), candidates=("a", "b", "c"))

        assert await execute_with_policy(op, policy, sleep=sleep) == "ok"
        assert op.candidates == ["a", "b", "c"]
        assert sleep.calls == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_last_candidate_and_delay_reused(self):
        sleep = SleepRecorder()
        op = Flaky(5)
        policy = RetryPolicy(max_attempts=4, delays=(3.0,), candidates=("only",))

        with pytest.raises(RetryExhausted) as info:
            await execute_with_policy(op, policy, sleep=sleep)

        assert info.value.attempts == 4
        assert isinstance(info.value.last_error, ConnectionError)
        assert op.candidates == ["only"] * 4
        # No wait after the final attempt
        assert sleep.calls == [3.0, 3.0, 3.0]

    @pytest.mark.asyncio
    async def test_non_retryable_error_stops(self):
        sleep = SleepRecorder()
        op = Flaky(3, error=PermissionError("denied"))
        policy = RetryPolicy(max_attempts=3, delays=(1.0,), retry_on=lambda e: not isinstance(e, PermissionError))

        with pytest.raises(RetryExhausted) as info:
            await execute_with_policy(op, policy, sleep=sleep)

        assert info.value.attempts == 1
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_rejected_result_is_retried(self):
        replies = iter([[], [], ["topic"]])

        async def op(_):
            return next(replies)

        result = await execute_with_policy(op, RetryPolicy(max_attempts=3), accept=bool, sleep=SleepRecorder())

        assert result == ["topic"]

    @pytest.mark.asyncio
    async def test_rejected_result_retried_even_when_errors_are_not(self):
        replies = iter(["", "text"])

        async def op(_):
            return next(replies)

        policy = RetryPolicy(max_attempts=2, retry_on=lambda e: False)

        assert await execute_with_policy(op, policy, accept=bool, sleep=SleepRecorder()) == "text"

    @pytest.mark.asyncio
    async def test_all_rejected_raises(self):
        async def op(_):
            return ""

        with pytest.raises(RetryExhausted) as info:
            await execute_with_policy(op, RetryPolicy(max_attempts=2), accept=bool, sleep=SleepRecorder())

        assert info.value.attempts == 2

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        op = Flaky(1, error=asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await execute_with_policy(op, RetryPolicy(max_attempts=3), sleep=SleepRecorder())

        assert len(op.candidates) == 1


class TestRetryPolicy:
    def test_no_candidates_means_none(self):
        assert RetryPolicy().candidate_for(2) is None

    def test_empty_delays(self):
        assert RetryPolicy(delays=()).delay_after(1) == 0.0

    def test_fallback_chain_dedupes(self):
        assert fallback_chain("a", ["b", "a", "c", "b"]) == ("a", "b", "c")
