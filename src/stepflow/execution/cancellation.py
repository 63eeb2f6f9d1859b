"""Cancellation tokens propagated into step executors.

A timed-out attempt is not merely abandoned: the engine trips the
attempt's ``CancellationToken`` and cancels its coroutine.  Coroutine
executors see ``asyncio.CancelledError`` at their next await; executors
running in a worker thread cannot be interrupted and must poll the token.

The token reaches executors as ``options["cancellation"]``::

    def export_rows(context, options):
        token = options.get("cancellation")
        for batch in batches():
            if token is not None:
                token.raise_if_cancelled()
            write(batch)

Tags:
    cancellation, deadline, cooperative, execution, stepflow
"""

from __future__ import annotations

import threading
import time

from stepflow.core.errors import ErrorCategory, StepflowError


class CancelledError(StepflowError):
    """Raised by ``CancellationToken.raise_if_cancelled``."""

    default_category = ErrorCategory.EXECUTION
    default_retryable = False

    def __init__(self, reason: str | None = None):
        self.reason = reason
        super().__init__(f"Operation cancelled: {reason or 'no reason given'}")


class CancellationToken:
    """Thread-safe, one-way cancellation flag with an optional deadline.

    Once cancelled a token stays cancelled; the first reason wins.  A token
    whose deadline has passed reports itself cancelled.

    Args:
        timeout: Seconds until the token expires on its own.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: str | None = None
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self, reason: str | None = None) -> bool:
        """Trip the token; returns False if it was already cancelled."""
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
            return True

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.expired

    @property
    def reason(self) -> str | None:
        if self._reason is None and not self._event.is_set() and self.expired:
            return "deadline expired"
        return self._reason

    def remaining(self) -> float | None:
        """Seconds until the deadline, ``None`` without one."""
        if self._deadline is None:
            return None
        return self._deadline - time.monotonic()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise CancelledError(self.reason)

    def wait(self, timeout: float | None = None) -> bool:
        """Block the calling thread until cancelled or *timeout* elapses."""
        if timeout is None:
            remaining = self.remaining()
            timeout = max(remaining, 0.0) if remaining is not None else None
        return self._event.wait(timeout) or self.expired

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled}, reason={self.reason!r})"


__all__ = ["CancellationToken", "CancelledError"]
