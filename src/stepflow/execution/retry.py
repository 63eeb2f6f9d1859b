"""Retry strategies with constant or exponential backoff.

The parallel engine asks its strategy two questions after every failed
attempt: ``should_retry(attempt, error)`` and ``next_delay(attempt)``.
``attempt`` is the number of retries already made (0 after the first
failure), so ``ConstantBackoff(max_retries=1)`` allows two attempts total.

Example:
    >>> strategy = ExponentialBackoff(max_retries=5, base_delay=1.0, max_delay=60.0)
    >>> for attempt in range(5):
    ...     delay = strategy.next_delay(attempt)
    ...     print(f"Retry {attempt}: wait {delay:.2f}s")
"""

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass


class RetryStrategy(ABC):
    """Abstract base for retry strategies."""

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Delay in seconds before retry number *attempt* (zero-based)."""
        ...

    @abstractmethod
    def should_retry(self, attempt: int, error: BaseException | None = None) -> bool:
        """Whether retry number *attempt* (zero-based) may run.

        Args:
            attempt: Retries already made
            error: Exception behind the failure, ``None`` for a failed
                result that raised nothing
        """
        ...

    @property
    def max_attempts(self) -> int:
        """Total attempts this strategy allows, first attempt included."""
        return getattr(self, "max_retries", 0) + 1


@dataclass
class ExponentialBackoff(RetryStrategy):
    """Exponential backoff with optional jitter.

    Delay = min(base_delay * (multiplier ** attempt), max_delay) ± jitter

    Attributes:
        max_retries: Maximum number of retries after the first attempt
        base_delay: Initial delay in seconds
        max_delay: Delay cap in seconds
        multiplier: Exponential multiplier
        jitter: Add randomness to avoid synchronized retries
        jitter_range: Jitter as a fraction of the delay (0.0-1.0)
        retryable_errors: Exception types worth retrying (None = all)
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    multiplier: float = 2.0
    jitter: bool = True
    jitter_range: float = 0.25
    retryable_errors: tuple[type[BaseException], ...] | None = None

    def next_delay(self, attempt: int) -> float:
        delay = min(self.base_delay * (self.multiplier ** attempt), self.max_delay)
        if self.jitter:
            jitter_amount = delay * self.jitter_range
            delay = max(0.0, delay + random.uniform(-jitter_amount, jitter_amount))
        return delay

    def should_retry(self, attempt: int, error: BaseException | None = None) -> bool:
        if attempt >= self.max_retries:
            return False
        if error is not None and self.retryable_errors is not None:
            return isinstance(error, self.retryable_errors)
        return True


@dataclass
class ConstantBackoff(RetryStrategy):
    """Constant delay between retries."""

    max_retries: int = 3
    delay: float = 1.0

    def next_delay(self, attempt: int) -> float:
        return self.delay

    def should_retry(self, attempt: int, error: BaseException | None = None) -> bool:
        return attempt < self.max_retries


@dataclass
class NoRetry(RetryStrategy):
    """No retry - fail after the first attempt."""

    def next_delay(self, attempt: int) -> float:
        return 0.0

    def should_retry(self, attempt: int, error: BaseException | None = None) -> bool:
        return False


def strategy_for(retry_attempts: int, retry_delay: float) -> RetryStrategy:
    """Strategy matching a policy's ``retry_attempts``/``retry_delay`` pair."""
    if retry_attempts < 0:
        raise ValueError(f"retry_attempts must be >= 0, got {retry_attempts}")
    if retry_attempts == 0:
        return NoRetry()
    return ConstantBackoff(max_retries=retry_attempts, delay=retry_delay)


__all__ = [
    "RetryStrategy",
    "ExponentialBackoff",
    "ConstantBackoff",
    "NoRetry",
    "strategy_for",
]
