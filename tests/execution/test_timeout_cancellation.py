"""Tests for deadlines, async timeouts and cancellation tokens."""

import asyncio
import time

import pytest

from stepflow.core.errors import TimeoutError
from stepflow.execution import (
    CancellationToken,
    CancelledError,
    DeadlineContext,
    run_with_timeout_async,
    with_deadline_async,
)


class TestDeadlineContext:
    def test_remaining_and_expiry(self):
        ctx = DeadlineContext.start(10, operation="lint")

        assert 9 < ctx.remaining() <= 10
        assert not ctx.is_expired()
        ctx.check()

    def test_check_raises_after_deadline(self):
        ctx = DeadlineContext.start(0.01, operation="lint")
        time.sleep(0.02)

        with pytest.raises(TimeoutError) as exc_info:
            ctx.check()
        assert exc_info.value.operation == "lint"


class TestRunWithTimeout:
    @pytest.mark.asyncio
    async def test_returns_value(self):
        async def quick():
            return 42

        assert await run_with_timeout_async(quick(), 1.0) == 42

    @pytest.mark.asyncio
    async def test_raises_stepflow_timeout(self):
        with pytest.raises(TimeoutError) as exc_info:
            await run_with_timeout_async(asyncio.sleep(10), 0.05, operation="hang")

        assert exc_info.value.retryable is True
        assert exc_info.value.timeout == 0.05
        assert exc_info.value.elapsed >= 0.04

    @pytest.mark.asyncio
    async def test_inner_errors_propagate(self):
        async def broken():
            raise KeyError("x")

        with pytest.raises(KeyError):
            await run_with_timeout_async(broken(), 1.0)

    @pytest.mark.asyncio
    async def test_non_positive_timeout(self):
        coro = asyncio.sleep(0)
        with pytest.raises(ValueError):
            await run_with_timeout_async(coro, 0)
        coro.close()


class TestWithDeadline:
    @pytest.mark.asyncio
    async def test_block_within_deadline(self):
        async with with_deadline_async(1.0, "fast") as ctx:
            await asyncio.sleep(0)

        assert ctx.operation == "fast"

    @pytest.mark.asyncio
    async def test_block_exceeding_deadline(self):
        with pytest.raises(TimeoutError):
            async with with_deadline_async(0.05, "slow"):
                await asyncio.sleep(10)


class TestCancellationToken:
    def test_first_reason_wins(self):
        token = CancellationToken()

        assert token.cancel("user abort") is True
        assert token.cancel("second") is False
        assert token.cancelled
        assert token.reason == "user abort"

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel("stop")

        with pytest.raises(CancelledError) as exc_info:
            token.raise_if_cancelled()
        assert exc_info.value.reason == "stop"

    def test_deadline_expiry(self):
        token = CancellationToken(timeout=0.01)
        time.sleep(0.02)

        assert token.expired
        assert token.cancelled
        assert token.reason == "deadline expired"
        assert token.remaining() < 0

    def test_no_deadline(self):
        token = CancellationToken()

        assert token.remaining() is None
        assert token.wait(0.01) is False
