"""Step Registry: catalog of named steps with single and batch dispatch.

Manifesto:
    Registration (at startup) is decoupled from dispatch (at run time).
    The registry owns step definitions, their active/inactive status and
    their statistics; callers dispatch by name and always get an
    ``ExecutionRecord`` back.  An executor that raises never takes the
    caller down with it.

    There is no global registry.  Build one in the composition root
    (``stepflow.create_engine()``) or directly in tests.

ARCHITECTURE
────────────
::

    StepRegistry  (composes Registry[StepDefinition])
      ├── .register(name, config, category, executor)
      ├── @registry.step(name, config, category)     ─ decorator form
      ├── .get_step(name | "category/name")
      ├── .has_step / .remove_step / .update_step
      ├── .activate / .deactivate / .set_step_status
      ├── await .execute_step(name, context, options) → ExecutionRecord
      ├── await .execute_steps(names, ...)            → BatchExecution (sequential)
      ├── await .execute_hybrid(names, ..., engine)   → BatchExecution
      │          settings["sequential"] steps one at a time, rest in parallel
      ├── .get_stats()                                → RegistryStats
      ├── .get_execution_statistics() / .reset_execution_statistics()
      └── .export()                                   → JSON-friendly snapshot

    Dispatch errors (unknown / inactive step) raise from ``execute_step``.
    Executor errors never raise; they become failure records.

Example::

    registry = StepRegistry()

    @registry.step("lint", {"name": "lint", "description": "Run ruff", "type": "analysis"},
                   category="analysis")
    async def lint(context, options):
        return {"issues": 0}

    record = await registry.execute_step("analysis/lint", WorkflowContext())
    record.success                             # True
    registry.get_stats().total_executions      # 1

Tags:
    stepflow, orchestration, step-registry, dispatch, statistics

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from stepflow.core.errors import (
    ConfigurationError,
    ExecutionError,
    InactiveError,
    NotFoundError,
    StepflowError,
    categorize_error,
    describe_error,
)
from stepflow.core.logging import get_logger
from stepflow.core.registry import DEFAULT_CATEGORY, Registry
from stepflow.orchestration.context import WorkflowContext
from stepflow.orchestration.steps import (
    DEFAULT_STEP_VERSION,
    BatchExecution,
    ExecutionRecord,
    RegistryStats,
    StepConfig,
    StepDefinition,
    StepExecutor,
    StepStatus,
    invoke_executor,
    normalize_outcome,
)

if TYPE_CHECKING:
    from stepflow.execution.parallel import ParallelExecutionEngine

logger = get_logger(__name__)

EXECUTION_MODES = ("sequential", "parallel")


@dataclass
class ExecutionStatistics:
    """Cumulative dispatch counters for one registry."""

    total_executions: int = 0
    sequential_executions: int = 0
    parallel_executions: int = 0
    total_execution_time: float = 0.0

    @property
    def average_execution_time(self) -> float:
        if self.total_executions == 0:
            return 0.0
        return self.total_execution_time / self.total_executions

    def record(self, mode: str, duration: float) -> None:
        self.total_executions += 1
        if mode == "parallel":
            self.parallel_executions += 1
        else:
            self.sequential_executions += 1
        self.total_execution_time += duration

    def to_dict(self) -> dict[str, Any]:
        total = self.total_executions
        return {
            "total_executions": total,
            "sequential_executions": self.sequential_executions,
            "parallel_executions": self.parallel_executions,
            "total_execution_time": self.total_execution_time,
            "average_execution_time": self.average_execution_time,
            "parallelization_ratio": self.parallel_executions / total if total else 0.0,
            "sequential_ratio": self.sequential_executions / total if total else 0.0,
        }


class StepRegistry:
    """Injectable step catalog.

    Args:
        default_version: Version assigned to configs that omit one.
    """

    def __init__(self, default_version: str = DEFAULT_STEP_VERSION) -> None:
        self._steps: Registry[StepDefinition] = Registry(kind="step")
        self._default_version = default_version
        self._stats = ExecutionStatistics()

    # =========================================================================
    # Registration
    # =========================================================================

    def register(
        self,
        name: str,
        config: Mapping[str, Any] | StepConfig,
        category: str | None = DEFAULT_CATEGORY,
        executor: StepExecutor | None = None,
    ) -> StepDefinition:
        """Register (or overwrite) a step.

        Raises:
            ConfigurationError: If *name* is empty, *config* lacks
                name/description/type, or *executor* is not callable.
        """
        if not name or not isinstance(name, str):
            raise ConfigurationError("Step name must be a non-empty string", key="name")
        if "/" in name:
            raise ConfigurationError(f"Step name may not contain '/': {name}", key="name")
        if executor is not None and not callable(executor):
            raise ConfigurationError(f"Executor for step '{name}' is not callable", key="executor")

        step_config = StepConfig.from_mapping(config, default_version=self._default_version)
        category = category or DEFAULT_CATEGORY
        replaced = self._steps.has(name)

        definition = StepDefinition(
            name=name,
            category=category,
            config=step_config,
            executor=executor,
        )
        self._steps.register(name, definition, category=category)

        logger.info(
            "step_registry.register",
            step=name,
            category=category,
            type=step_config.type,
            replaced=replaced,
        )
        return definition

    def step(
        self,
        name: str,
        config: Mapping[str, Any] | StepConfig,
        category: str | None = DEFAULT_CATEGORY,
    ) -> Callable[[StepExecutor], StepExecutor]:
        """Decorator form of ``register``; returns the function unchanged."""

        def decorator(fn: StepExecutor) -> StepExecutor:
            self.register(name, config, category=category, executor=fn)
            return fn

        return decorator

    def _resolve(self, name: str) -> str:
        if self._steps.has(name):
            return name
        if "/" in name:
            category, _, bare = name.rpartition("/")
            if self._steps.has(bare) and (
                not category or self._steps.category_of(bare) == category
            ):
                return bare
        return name

    def get_step(self, name: str) -> StepDefinition:
        """Look up a step by name or ``"category/name"``.

        Raises:
            NotFoundError: If no such step is registered.
        """
        return self._steps.get(self._resolve(name))

    def has_step(self, name: str) -> bool:
        return self._steps.has(self._resolve(name))

    def remove_step(self, name: str) -> StepDefinition:
        definition = self._steps.remove(self._resolve(name))
        logger.info("step_registry.remove", step=definition.name)
        return definition

    def update_step(self, name: str, config_updates: Mapping[str, Any]) -> StepDefinition:
        """Merge *config_updates* into a step's config and re-validate.

        Raises:
            NotFoundError: Unknown step.
            ConfigurationError: Updated config is invalid or renames the step.
        """
        definition = self.get_step(name)
        new_name = config_updates.get("name", definition.config.name)
        if new_name != definition.config.name:
            raise ConfigurationError(
                f"Cannot rename step '{definition.name}' via update", key="name"
            )
        definition.config = definition.config.merged(config_updates)
        definition.updated_at = datetime.now(UTC)
        logger.info("step_registry.update", step=definition.name, keys=sorted(config_updates))
        return definition

    # =========================================================================
    # Status
    # =========================================================================

    def set_step_status(self, name: str, status: StepStatus | str) -> StepDefinition:
        try:
            status = StepStatus(status)
        except ValueError:
            raise ConfigurationError(f"Invalid step status: {status}", key="status") from None
        definition = self.get_step(name)
        definition.status = status
        definition.updated_at = datetime.now(UTC)
        logger.info("step_registry.status", step=definition.name, status=status.value)
        return definition

    def get_step_status(self, name: str) -> StepStatus:
        return self.get_step(name).status

    def activate(self, name: str) -> StepDefinition:
        return self.set_step_status(name, StepStatus.ACTIVE)

    def deactivate(self, name: str) -> StepDefinition:
        return self.set_step_status(name, StepStatus.INACTIVE)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_steps_by_category(self, category: str) -> list[StepDefinition]:
        return self._steps.by_category(category)

    def get_categories(self) -> list[str]:
        return self._steps.categories()

    def list_steps(self, category: str | None = None) -> list[StepDefinition]:
        """Definitions ordered by ``config.order`` then name."""
        steps = self._steps.by_category(category) if category else self._steps.values()
        return sorted(steps, key=lambda d: (d.config.order, d.name))

    def __len__(self) -> int:
        return len(self._steps)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has_step(name)

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def execute_step(
        self,
        name: str,
        context: Any = None,
        options: Mapping[str, Any] | None = None,
        *,
        mode: str = "sequential",
    ) -> ExecutionRecord:
        """Execute one step and return its record.

        A ``WorkflowContext`` receives the record in its execution history.

        Raises:
            NotFoundError: Unknown step.
            InactiveError: Step status is not active.
        """
        if mode not in EXECUTION_MODES:
            raise ValueError(f"Unknown execution mode: {mode}")
        definition = self.get_step(name)
        if not definition.is_active:
            raise InactiveError(definition.name, definition.status.value)

        if context is None:
            context = WorkflowContext()
        options = dict(options or {})
        step = definition.name
        timestamp = datetime.now(UTC)
        start = time.perf_counter()
        metadata: dict[str, Any] = {"category": definition.category, "mode": mode}

        logger.debug("step_registry.execute.start", step=step, mode=mode)

        try:
            if definition.executor is None:
                raise ExecutionError(f"Step '{step}' has no executor", step=step)
            value = await invoke_executor(definition.executor, context, options)
            success, result, error = normalize_outcome(step, value)
        except asyncio.CancelledError:
            duration = time.perf_counter() - start
            definition.record_run(duration, "cancelled")
            self._stats.record(mode, duration)
            logger.warning("step_registry.execute.cancelled", step=step, duration=duration)
            raise
        except Exception as exc:
            success, result, error = False, None, describe_error(exc)
            wrapped = exc if isinstance(exc, StepflowError) else ExecutionError(
                error, step=step, cause=exc
            )
            metadata["error_type"] = type(exc).__name__
            metadata["error_category"] = categorize_error(exc).value
            metadata["error_detail"] = wrapped.to_dict()

        duration = time.perf_counter() - start
        definition.record_run(duration, error)
        self._stats.record(mode, duration)

        record = ExecutionRecord(
            step=step,
            success=success,
            result=result,
            error=error,
            duration=duration,
            timestamp=timestamp,
            metadata=metadata,
        )
        if isinstance(context, WorkflowContext):
            context.record_execution(record)

        if success:
            logger.info("step_registry.execute.complete", step=step, duration=duration, mode=mode)
        else:
            logger.warning(
                "step_registry.execute.failed", step=step, duration=duration, mode=mode, error=error
            )
        return record

    async def _execute_or_record(
        self,
        name: str,
        context: Any,
        options: Mapping[str, Any] | None,
    ) -> ExecutionRecord:
        try:
            return await self.execute_step(name, context, options)
        except (NotFoundError, InactiveError) as exc:
            logger.warning("step_registry.dispatch.rejected", step=name, error=exc.message)
            return ExecutionRecord(
                step=name,
                success=False,
                error=exc.message,
                metadata={"error_type": type(exc).__name__, "error_category": exc.category.value},
            )

    async def execute_steps(
        self,
        names: Iterable[str],
        context: Any = None,
        options: Mapping[str, Any] | None = None,
        *,
        stop_on_error: bool | None = None,
    ) -> BatchExecution:
        """Execute steps one at a time in the given order.

        Unknown or inactive steps yield failure records instead of raising.
        With ``stop_on_error`` (argument or ``options["stop_on_error"]``) the
        batch stops after the first failure and returns the partial records.
        """
        names = list(names)
        options = dict(options or {})
        batch_flag = options.pop("stop_on_error", False)
        if stop_on_error is None:
            stop_on_error = bool(batch_flag)
        if context is None:
            context = WorkflowContext()

        batch = BatchExecution()
        for name in names:
            record = await self._execute_or_record(name, context, options)
            batch.records.append(record)
            batch.sequential.append(record)
            if not record.success and stop_on_error:
                batch.stopped_early = len(batch.records) < len(names)
                logger.warning("step_registry.batch.stopped", step=name, executed=len(batch.records))
                break

        batch.summary = {
            "total": len(names),
            "executed": len(batch.records),
            "successful": len(batch.succeeded),
            "failed": len(batch.failed),
        }
        return batch

    def classify(self, names: Iterable[str]) -> tuple[list[str], list[str]]:
        """Split names into (sequential, parallel) by ``settings["sequential"]``.

        Unknown names land in the parallel bucket, where they produce
        failure records.
        """
        sequential: list[str] = []
        parallel: list[str] = []
        for name in names:
            if self.has_step(name) and self.get_step(name).config.settings.get("sequential"):
                sequential.append(name)
            else:
                parallel.append(name)
        return sequential, parallel

    async def execute_hybrid(
        self,
        names: Iterable[str],
        context: Any = None,
        options: Mapping[str, Any] | None = None,
        engine: ParallelExecutionEngine | None = None,
    ) -> BatchExecution:
        """Run sequential-flagged steps first, then the rest in parallel.

        ``records`` is index-aligned with *names*.
        """
        names = list(names)
        if context is None:
            context = WorkflowContext()
        if engine is None:
            from stepflow.execution.parallel import ParallelExecutionEngine

            engine = ParallelExecutionEngine(self)

        sequential, parallel = self.classify(names)
        logger.info(
            "step_registry.hybrid.start",
            total=len(names),
            sequential=len(sequential),
            parallel=len(parallel),
        )

        batch = BatchExecution()
        by_name: dict[str, list[ExecutionRecord]] = {}
        for name in sequential:
            record = await self._execute_or_record(name, context, options)
            batch.sequential.append(record)
            by_name.setdefault(name, []).append(record)

        if parallel:
            records = await engine.execute_steps_parallel(parallel, context, options)
            batch.parallel.extend(records)
            for name, record in zip(parallel, records):
                by_name.setdefault(name, []).append(record)

        batch.records = [by_name[name].pop(0) for name in names]
        batch.summary = {
            "total": len(names),
            "sequential": len(sequential),
            "parallel": len(parallel),
            "sequential_successful": sum(1 for r in batch.sequential if r.success),
            "parallel_successful": sum(1 for r in batch.parallel if r.success),
            "parallelization_ratio": len(parallel) / len(names) if names else 0.0,
        }
        logger.info("step_registry.hybrid.complete", **batch.summary)
        return batch

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_step_stats(self, name: str) -> dict[str, Any]:
        return self.get_step(name).stats()

    def get_stats(self) -> RegistryStats:
        steps = self._steps.values()
        active = sum(1 for d in steps if d.is_active)
        return RegistryStats(
            total_steps=len(steps),
            active_steps=active,
            inactive_steps=len(steps) - active,
            categories=self._steps.stats()["categories"],
            total_executions=self._stats.total_executions,
        )

    def get_execution_statistics(self) -> dict[str, Any]:
        return self._stats.to_dict()

    def reset_execution_statistics(self) -> None:
        self._stats = ExecutionStatistics()
        logger.info("step_registry.stats.reset")

    def export(self) -> dict[str, Any]:
        """JSON-friendly snapshot of definitions and statistics."""
        return {
            "exported_at": datetime.now(UTC).isoformat(),
            "steps": [d.to_dict() for d in self.list_steps()],
            "categories": self._steps.stats()["categories"],
            "stats": self.get_stats().to_dict(),
            "execution_statistics": self.get_execution_statistics(),
        }

    def __repr__(self) -> str:
        return f"StepRegistry(steps={len(self._steps)}, categories={len(self._steps.categories())})"


__all__ = ["StepRegistry", "ExecutionStatistics", "EXECUTION_MODES"]
