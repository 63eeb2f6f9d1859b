"""
Stepflow Execution - concurrent dispatch with deadlines, retries and cancellation.

Architecture::

    parallel.py      ParallelExecutionEngine + ParallelExecutionPolicy + ParallelStats
    timeout.py       run_with_timeout_async / with_deadline_async
    retry.py         RetryStrategy (ConstantBackoff, ExponentialBackoff, NoRetry)
    cancellation.py  CancellationToken passed to executors as options["cancellation"]
"""

from stepflow.execution.cancellation import CancellationToken, CancelledError
from stepflow.execution.parallel import (
    ParallelExecutionEngine,
    ParallelExecutionPolicy,
    ParallelStats,
)
from stepflow.execution.retry import (
    ConstantBackoff,
    ExponentialBackoff,
    NoRetry,
    RetryStrategy,
    strategy_for,
)
from stepflow.execution.timeout import (
    DeadlineContext,
    run_with_timeout_async,
    with_deadline_async,
)

__all__ = [
    # Parallel
    "ParallelExecutionEngine",
    "ParallelExecutionPolicy",
    "ParallelStats",
    # Cancellation
    "CancellationToken",
    "CancelledError",
    # Retry
    "RetryStrategy",
    "ConstantBackoff",
    "ExponentialBackoff",
    "NoRetry",
    "strategy_for",
    # Timeout
    "DeadlineContext",
    "run_with_timeout_async",
    "with_deadline_async",
]
