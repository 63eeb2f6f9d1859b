"""Parallel Execution Engine: bounded fan-out over registered steps.

WHY
───
Independent steps (lint, type-check, docs build) do not need to wait for
each other.  The engine launches one task per requested name, bounds how
many run at once, races every attempt against its own deadline and
retries failures deliberately.  A step that raises, fails or stalls
never prevents the rest of the batch from being collected.

ARCHITECTURE
────────────
::

    ParallelExecutionEngine(registry, policy)
      └── await .execute_steps_parallel(names, context, options)
            │
            ├── asyncio.Semaphore(max_concurrency)
            ├── asyncio.gather(..., return_exceptions=True)   ─ settle-all
            │
            └── per step, per attempt
                  ├── fresh CancellationToken → options["cancellation"]
                  ├── run_with_timeout_async(registry.execute_step(...), timeout)
                  │       timeout → token.cancel(), record.is_timeout = True
                  └── RetryStrategy.should_retry / next_delay

    Result list is index-aligned with ``names``, not completion order.

    vs StepRegistry.execute_steps (sequential)
    ─────────────────────────────────────────
    one step at a time, optional stop_on_error
    here: all at once, never stops early

Worst-case wall time per step is ``timeout × attempts`` plus the retry
delays: the deadline applies to each attempt, not to the retry loop.

Parallel steps share whatever context the caller passes.  Nothing guards
concurrent mutation of it; pass a mapping or isolated contexts when
steps write to the context.

Example::

    engine = ParallelExecutionEngine(registry, ParallelExecutionPolicy(timeout=5.0))
    records = await engine.execute_steps_parallel(["lint", "typecheck", "docs"], ctx)
    [r.success for r in records]     # index-aligned with the names
    engine.get_stats().timeout_count
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from stepflow.core.errors import (
    ConfigurationError,
    InactiveError,
    NotFoundError,
    TimeoutError,
    describe_error,
)
from stepflow.core.logging import get_logger
from stepflow.core.settings import StepflowSettings, get_settings
from stepflow.execution.cancellation import CancellationToken
from stepflow.execution.retry import RetryStrategy, strategy_for
from stepflow.execution.timeout import run_with_timeout_async
from stepflow.orchestration.context import WorkflowContext
from stepflow.orchestration.steps import ExecutionRecord

if TYPE_CHECKING:
    from stepflow.orchestration.step_registry import StepRegistry

logger = get_logger(__name__)

POLICY_OVERRIDE_KEYS = ("timeout", "retry_attempts", "retry_delay", "max_concurrency")

class ParallelExecutionPolicy(BaseModel):
    """Concurrency, timeout and retry limits for one engine.

    Attributes:
        max_concurrency: Steps allowed to run at the same time
        timeout: Deadline per attempt, in seconds
        retry_attempts: Extra attempts after the first failure
        retry_delay: Seconds to wait between attempts

    Raises:
        ConfigurationError: On construction, for any out-of-range or
            unknown field.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_concurrency: int = Field(default=10, ge=1)
    timeout: float = Field(default=30.0, gt=0)
    retry_attempts: int = Field(default=0, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except PydanticValidationError as exc:
            raise ConfigurationError.from_pydantic(exc, "parallel policy") from exc

    @classmethod
    def from_settings(cls, settings: StepflowSettings | None = None) -> ParallelExecutionPolicy:
        settings = settings or get_settings()
        return cls(
            max_concurrency=settings.parallel_max_concurrency,
            timeout=settings.parallel_timeout_seconds,
            retry_attempts=settings.parallel_retry_attempts,
            retry_delay=settings.parallel_retry_delay_seconds,
        )

    def with_overrides(self, options: Mapping[str, Any] | None) -> ParallelExecutionPolicy:
        """Copy of this policy with any per-call overrides from *options*, re-validated."""
        if not options:
            return self
        overrides = {key: options[key] for key in POLICY_OVERRIDE_KEYS if key in options}
        return type(self)(**{**self.model_dump(), **overrides}) if overrides else self

    def retry_strategy(self) -> RetryStrategy:
        return strategy_for(self.retry_attempts, self.retry_delay)


@dataclass(frozen=True)
class ParallelStats:
    """Cumulative counters across every batch the engine ran."""

    total_executions: int = 0
    success_count: int = 0
    failure_count: int = 0
    timeout_count: int = 0
    average_duration: float = 0.0
    batches: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_executions": self.total_executions,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "timeout_count": self.timeout_count,
            "average_duration": self.average_duration,
            "batches": self.batches,
        }


class ParallelExecutionEngine:
    """Runs a batch of registered steps concurrently.

    Args:
        registry: Registry used to dispatch each attempt.
        policy: Limits; defaults to ``ParallelExecutionPolicy.from_settings()``.
    """

    def __init__(
        self,
        registry: StepRegistry,
        policy: ParallelExecutionPolicy | None = None,
    ) -> None:
        self._registry = registry
        self._policy = policy or ParallelExecutionPolicy.from_settings()
        self._stats = ParallelStats()

    @property
    def policy(self) -> ParallelExecutionPolicy:
        return self._policy

    async def execute_steps_parallel(
        self,
        names: Iterable[str],
        context: Any = None,
        options: Mapping[str, Any] | None = None,
    ) -> list[ExecutionRecord]:
        """Execute *names* concurrently and return one record per name.

        Records are index-aligned with *names*.  Executor errors, timeouts
        and unknown or inactive steps all become failure records.
        """
        names = list(names)
        options = dict(options or {})
        policy = self._policy.with_overrides(options)
        step_options = {k: v for k, v in options.items() if k not in POLICY_OVERRIDE_KEYS}
        if context is None:
            context = WorkflowContext()

        semaphore = asyncio.Semaphore(policy.max_concurrency)
        started = time.perf_counter()

        logger.info(
            "parallel.batch.start",
            steps=len(names),
            max_concurrency=policy.max_concurrency,
            timeout=policy.timeout,
            retry_attempts=policy.retry_attempts,
        )

        async def _run_one(name: str) -> ExecutionRecord:
            async with semaphore:
                return await self._execute_with_retry(name, context, step_options, policy)

        outcomes = await asyncio.gather(
            *[_run_one(name) for name in names],
            return_exceptions=True,
        )

        records: list[ExecutionRecord] = []
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, ExecutionRecord):
                records.append(outcome)
                continue
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            logger.error("parallel.step.crashed", step=name, error=describe_error(outcome))
            records.append(
                ExecutionRecord(
                    step=name,
                    success=False,
                    error=describe_error(outcome),
                    metadata={"mode": "parallel", "error_type": type(outcome).__name__},
                )
            )

        self._update_stats(records)
        logger.info(
            "parallel.batch.complete",
            steps=len(records),
            succeeded=sum(1 for r in records if r.success),
            failed=sum(1 for r in records if not r.success),
            timeouts=sum(1 for r in records if r.is_timeout),
            duration=time.perf_counter() - started,
        )
        return records

    async def _execute_with_retry(
        self,
        name: str,
        context: Any,
        options: dict[str, Any],
        policy: ParallelExecutionPolicy,
    ) -> ExecutionRecord:
        strategy = policy.retry_strategy()
        started = time.perf_counter()
        timestamp = datetime.now(UTC)
        attempt = 0

        while True:
            attempt += 1
            record, error = await self._attempt(name, context, options, policy.timeout)
            if record.success:
                break
            if isinstance(error, (NotFoundError, InactiveError)):
                break
            if not strategy.should_retry(attempt - 1, error):
                break
            delay = strategy.next_delay(attempt - 1)
            logger.info(
                "parallel.step.retry",
                step=name,
                attempt=attempt,
                delay=delay,
                error=record.error,
            )
            if delay > 0:
                await asyncio.sleep(delay)

        record = replace(
            record,
            duration=time.perf_counter() - started,
            timestamp=timestamp,
            attempts=attempt,
            retried=attempt > 1,
            metadata={**record.metadata, "mode": "parallel"},
        )
        if record.success and attempt > 1:
            logger.info("parallel.step.recovered", step=name, attempts=attempt)
        return record

    async def _attempt(
        self,
        name: str,
        context: Any,
        options: dict[str, Any],
        timeout: float,
    ) -> tuple[ExecutionRecord, BaseException | None]:
        """One attempt under its own deadline and cancellation token."""
        token = CancellationToken(timeout=timeout)
        attempt_options = {**options, "cancellation": token}
        try:
            record = await run_with_timeout_async(
                self._registry.execute_step(name, context, attempt_options, mode="parallel"),
                timeout,
                operation=name,
            )
        except TimeoutError as exc:
            token.cancel(f"step '{name}' exceeded {timeout}s")
            logger.warning("parallel.step.timeout", step=name, timeout=timeout)
            record = ExecutionRecord(
                step=name,
                success=False,
                error=exc.message,
                duration=exc.elapsed if exc.elapsed is not None else timeout,
                is_timeout=True,
                metadata={"mode": "parallel", "timeout": timeout},
            )
            if isinstance(context, WorkflowContext):
                context.record_execution(record)
            return record, exc
        except (NotFoundError, InactiveError) as exc:
            logger.warning("parallel.step.rejected", step=name, error=exc.message)
            record = ExecutionRecord(
                step=name,
                success=False,
                error=exc.message,
                metadata={"error_type": type(exc).__name__, "error_category": exc.category.value},
            )
            return record, exc
        return record, None

    def _update_stats(self, records: list[ExecutionRecord]) -> None:
        stats = self._stats
        total = stats.total_executions + len(records)
        batch_duration = sum(r.duration for r in records)
        average = (
            (stats.average_duration * stats.total_executions + batch_duration) / total
            if total
            else 0.0
        )
        self._stats = ParallelStats(
            total_executions=total,
            success_count=stats.success_count + sum(1 for r in records if r.success),
            failure_count=stats.failure_count + sum(1 for r in records if not r.success),
            timeout_count=stats.timeout_count + sum(1 for r in records if r.is_timeout),
            average_duration=average,
            batches=stats.batches + 1,
        )

    def get_stats(self) -> ParallelStats:
        return self._stats

    def reset_stats(self) -> None:
        self._stats = ParallelStats()
        logger.info("parallel.stats.reset")


__all__ = ["ParallelExecutionEngine", "ParallelExecutionPolicy", "ParallelStats"]
