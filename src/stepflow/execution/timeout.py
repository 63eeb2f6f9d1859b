"""Timeout enforcement for step attempts.

Every parallel attempt races against its own deadline.  Exceeding it is a
logical failure reported to the caller; the attempt's coroutine is
cancelled through asyncio and its ``CancellationToken`` is tripped so
thread-run executors can stop cooperatively.

Architecture:
    ::

        run_with_timeout_async(awaitable, 0.1, "lint")
            │
            ▼
        asyncio.wait_for  ── on expiry cancels the awaitable
            │
            ▼
        stepflow.core.errors.TimeoutError(timeout, elapsed, operation)

        async with with_deadline_async(5.0, "batch") as deadline:
            deadline.remaining()    # seconds left

Examples:
    >>> record = await run_with_timeout_async(
    ...     registry.execute_step("lint", ctx), 0.1, operation="lint"
    ... )

Tags:
    timeout, deadline, resilience, execution, stepflow

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TypeVar

from stepflow.core import errors

T = TypeVar("T")


@dataclass
class DeadlineContext:
    """Deadline state for one timed block.

    Attributes:
        deadline: Absolute deadline (monotonic clock)
        timeout_seconds: Original timeout in seconds
        operation: Name used in error messages
        start_time: When the block started (monotonic clock)
    """

    deadline: float
    timeout_seconds: float
    operation: str = "operation"
    start_time: float = field(default_factory=time.monotonic)

    @classmethod
    def start(cls, seconds: float, operation: str = "operation") -> DeadlineContext:
        now = time.monotonic()
        return cls(deadline=now + seconds, timeout_seconds=seconds, operation=operation, start_time=now)

    def remaining(self) -> float:
        """Seconds until the deadline; negative once expired."""
        return self.deadline - time.monotonic()

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.start_time

    def is_expired(self) -> bool:
        return time.monotonic() >= self.deadline

    def check(self) -> None:
        """Raise ``TimeoutError`` if the deadline has passed."""
        if self.is_expired():
            raise errors.TimeoutError(
                timeout=self.timeout_seconds,
                elapsed=self.elapsed,
                operation=self.operation,
            )


def _validate_timeout(seconds: float) -> None:
    if seconds <= 0:
        raise ValueError(f"Timeout must be positive, got {seconds}")


@asynccontextmanager
async def with_deadline_async(
    seconds: float, operation: str = "operation"
) -> AsyncIterator[DeadlineContext]:
    """Async block that must finish within *seconds*.

    Raises:
        stepflow.core.errors.TimeoutError: The block ran too long.
        ValueError: If *seconds* is not positive.
    """
    _validate_timeout(seconds)
    ctx = DeadlineContext.start(seconds, operation)
    try:
        async with asyncio.timeout(seconds):
            yield ctx
    except TimeoutError:
        raise errors.TimeoutError(
            timeout=seconds,
            elapsed=ctx.elapsed,
            operation=operation,
        ) from None


async def run_with_timeout_async(
    awaitable: Awaitable[T],
    timeout_seconds: float,
    operation: str = "operation",
) -> T:
    """Await *awaitable* for at most *timeout_seconds*.

    On expiry the awaitable is cancelled and ``TimeoutError`` (the
    stepflow one, retryable) is raised.  Exceptions from the awaitable
    propagate unchanged.

    Raises:
        stepflow.core.errors.TimeoutError: The awaitable ran too long.
        ValueError: If *timeout_seconds* is not positive.
    """
    _validate_timeout(timeout_seconds)
    start = time.monotonic()
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except TimeoutError:
        raise errors.TimeoutError(
            timeout=timeout_seconds,
            elapsed=time.monotonic() - start,
            operation=operation,
        ) from None


__all__ = ["DeadlineContext", "with_deadline_async", "run_with_timeout_async"]