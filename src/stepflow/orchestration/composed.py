"""Composed Workflow: ordered sequential execution over one context.

Manifesto:
    The simplest useful workflow is a list of steps run one after another
    over a shared context: validate everything first, run in declared
    order, stop at the first failure, compensate, and report.  Callers
    branch on ``result.success``; a failing step never surfaces as an
    exception from ``execute``.

ARCHITECTURE
────────────
::

    ComposedWorkflow(steps, name, rules, rollback, order_by_dependencies)
      │  construction: protocol check · optional dependency ordering
      │                (CycleDetectedError / DependencyError)
      ├── validate(context)  → ValidationResult
      │     each step.validate (prior steps count as completed)
      │     + attached rules against context.data
      └── await execute(context) → WorkflowRunResult
            PENDING ─start─► EXECUTING
            for each step:  EXECUTING ─(current_step, total_steps)─► EXECUTING
                            record = await step.execute(context)
                            failure → stop loop
            failure:  rollback(context, failed_step_index, results) → FAILED
            success:  COMPLETED

Concurrency:
    Steps run strictly one at a time; the step holding control is the only
    writer of the context.

Example::

    workflow = ComposedWorkflow(
        [builder.build("checkout"), builder.build("lint"), builder.build("test")],
        name="ci",
        rollback=CompensatingRollback().register("checkout", restore_branch),
    )
    run = await workflow.execute(WorkflowContext(workflow_type="ci"))
    if not run.success:
        print(run.failed_step_index, run.error)

Tags:
    stepflow, orchestration, composed-workflow, sequential, rollback

Doc-Types:
    api-reference
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from stepflow.core.errors import (
    ConfigurationError,
    RollbackError,
    StateError,
    describe_error,
)
from stepflow.core.logging import LogContext, get_logger
from stepflow.orchestration.context import ContextState, WorkflowContext
from stepflow.orchestration.planner import order_steps
from stepflow.orchestration.step_builder import completed_steps_of, data_of
from stepflow.orchestration.steps import ExecutionRecord, normalize_outcome
from stepflow.validation.result import ValidationResult
from stepflow.validation.rules import RuleSet, ValidationRule

if TYPE_CHECKING:
    from stepflow.execution.cancellation import CancellationToken
    from stepflow.orchestration.rollback import RollbackStrategy

logger = get_logger(__name__)


@runtime_checkable
class WorkflowStep(Protocol):
    """Anything with a name, a sync ``validate`` and an async ``execute``."""

    name: str

    def validate(self, context: Any) -> ValidationResult: ...

    async def execute(self, context: Any) -> Any: ...


class PlannedContext:
    """Read view of a context that also counts planned steps as completed.

    Used during pre-run validation so a step depending on an earlier step
    of the same workflow validates cleanly.
    """

    def __init__(self, context: Any, planned: Iterable[str]) -> None:
        self._context = context
        self._planned = list(planned)

    @property
    def completed_steps(self) -> list[str]:
        done = completed_steps_of(self._context)
        return done + [name for name in self._planned if name not in done]

    @property
    def data(self) -> Any:
        return data_of(self._context)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._context, name)


@dataclass
class WorkflowRunResult:
    """
    Outcome of ``ComposedWorkflow.execute``.

    Attributes:
        success: All steps succeeded
        results: One record per executed step, in order
        duration: Wall-clock seconds, entry to exit
        execution_history: Snapshot of the context's history at exit
        metadata: Workflow name, id, step counts, rollback details
        error: First failure message (validation, step or cancellation)
        failed_step_index: Index of the failing step, if any
        rollback_result: Whatever the rollback strategy returned
    """

    success: bool
    results: list[ExecutionRecord] = field(default_factory=list)
    duration: float = 0.0
    execution_history: list[ExecutionRecord] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    failed_step_index: int | None = None
    rollback_result: Any = None

    def to_dict(self) -> dict[str, Any]:
        rollback = self.rollback_result
        if hasattr(rollback, "to_dict"):
            rollback = rollback.to_dict()
        return {
            "success": self.success,
            "results": [r.to_dict() for r in self.results],
            "duration": self.duration,
            "execution_history": [r.to_dict() for r in self.execution_history],
            "metadata": dict(self.metadata),
            "error": self.error,
            "failed_step_index": self.failed_step_index,
            "rollback_result": rollback,
        }


class ComposedWorkflow:
    """Runs steps one at a time in declared (or dependency) order.

    Raises:
        ConfigurationError: *steps* is not a sequence, a step does not
            implement ``WorkflowStep``, or *rollback* has no ``rollback``.
        CycleDetectedError: Dependency ordering found a cycle.
        DependencyError: A step depends on a step not in the workflow.
    """

    def __init__(
        self,
        steps: Sequence[WorkflowStep],
        *,
        name: str = "composed",
        rules: Iterable[ValidationRule] = (),
        rollback: RollbackStrategy | None = None,
        order_by_dependencies: bool = False,
    ) -> None:
        if steps is None or isinstance(steps, (str, bytes)) or not isinstance(steps, Iterable):
            raise ConfigurationError("ComposedWorkflow requires a sequence of steps", key="steps")
        steps = list(steps)
        for index, step in enumerate(steps):
            self._check_step(index, step)
        if rollback is not None and not callable(getattr(rollback, "rollback", None)):
            raise ConfigurationError("Rollback strategy must define rollback()", key="rollback")

        if order_by_dependencies:
            steps = order_steps(
                steps,
                key=lambda s: s.name,
                dependencies=lambda s: getattr(s, "dependencies", ()) or (),
            )

        self.name = name
        self.steps: list[WorkflowStep] = steps
        self.rules = RuleSet(rules)
        self.rollback = rollback

    @staticmethod
    def _check_step(index: int, step: Any) -> None:
        missing = [
            attr
            for attr in ("validate", "execute")
            if not callable(getattr(step, attr, None))
        ]
        if not isinstance(getattr(step, "name", None), str):
            missing.insert(0, "name")
        if missing:
            raise ConfigurationError(
                f"Step at index {index} does not implement WorkflowStep "
                f"(missing: {', '.join(missing)})",
                key=f"steps[{index}]",
            )

    @property
    def step_names(self) -> list[str]:
        return [step.name for step in self.steps]

    def __len__(self) -> int:
        return len(self.steps)

    # =========================================================================
    # Validation
    # =========================================================================

    def validate(self, context: Any) -> ValidationResult:
        """Merge every step's validation and the attached rules."""
        result = ValidationResult(metadata={"workflow": self.name})
        for index, step in enumerate(self.steps):
            view = PlannedContext(context, self.step_names[:index])
            try:
                step_result = step.validate(view)
            except Exception as exc:
                result.add_error(
                    f"steps[{index}]",
                    f"Validation of step '{step.name}' raised: {describe_error(exc)}",
                    code="VALIDATOR_EXCEPTION",
                )
                continue
            if isinstance(step_result, ValidationResult):
                result.merge(step_result, prefix=f"steps[{index}]")
        if self.rules:
            result.merge(self.rules.validate(data_of(context)))
        return result

    # =========================================================================
    # Execution
    # =========================================================================

    async def execute(
        self,
        context: WorkflowContext,
        cancellation: CancellationToken | None = None,
    ) -> WorkflowRunResult:
        """Validate, then run every step in order over *context*.

        Raises:
            StateError: *context* already finished (completed, failed or
                cancelled) before this run started.
        """
        if context.is_terminal:
            raise StateError(
                context.state.value,
                ContextState.EXECUTING.value,
                f"Context {context.workflow_id} already finished ({context.state.value})",
            )

        start = time.perf_counter()
        total = len(self.steps)
        metadata: dict[str, Any] = {
            "workflow": self.name,
            "workflow_id": context.workflow_id,
            "total_steps": total,
        }

        async with LogContext(workflow_id=context.workflow_id, workflow=self.name):
            logger.info("workflow.start", total_steps=total)

            validation = self.validate(context)
            if not validation.is_valid:
                error = "Validation failed: " + "; ".join(validation.error_messages())
                metadata["validation"] = validation.to_dict()
                context.fail(error)
                logger.warning("workflow.validation_failed", errors=len(validation.errors))
                return self._finish(False, [], start, context, metadata, error=error)

            if context.state == ContextState.PENDING:
                context.start(total_steps=total)

            results: list[ExecutionRecord] = []
            for index, step in enumerate(self.steps):
                if cancellation is not None and cancellation.cancelled:
                    error = f"Workflow cancelled: {cancellation.reason or 'no reason given'}"
                    metadata["cancelled"] = True
                    return await self._fail(index, error, results, start, context, metadata, cancel=True)

                context.transition_to(
                    ContextState.EXECUTING,
                    current_step=step.name,
                    step_index=index,
                    total_steps=total,
                )
                logger.debug("workflow.step.start", step=step.name, index=index)

                record = await self._run_step(step, context)
                results.append(record)
                context.increment_metric("steps_executed")

                if not record.success:
                    context.increment_metric("steps_failed")
                    error = record.error or f"Step '{step.name}' failed"
                    if context.is_terminal:
                        metadata["terminated_by"] = step.name
                    return await self._fail(index, error, results, start, context, metadata)

                if context.is_terminal:
                    error = context.error or (
                        f"Step '{step.name}' ended the workflow ({context.state.value})"
                    )
                    metadata["terminated_by"] = step.name
                    return await self._fail(index, error, results, start, context, metadata)

            context.complete(result={r.step: r.result for r in results})
            logger.info("workflow.complete", total_steps=total)
            return self._finish(True, results, start, context, metadata)

    async def _run_step(self, step: WorkflowStep, context: WorkflowContext) -> ExecutionRecord:
        step_start = time.perf_counter()
        try:
            value = await step.execute(context)
        except Exception as exc:
            logger.warning("workflow.step.raised", step=step.name, error=describe_error(exc))
            record = ExecutionRecord(
                step=step.name,
                success=False,
                error=describe_error(exc),
                duration=time.perf_counter() - step_start,
                metadata={"error_type": type(exc).__name__},
            )
        else:
            if isinstance(value, ExecutionRecord):
                record = value
            else:
                success, result, error = normalize_outcome(step.name, value)
                record = ExecutionRecord(
                    step=step.name,
                    success=success,
                    result=result,
                    error=error,
                    duration=time.perf_counter() - step_start,
                )

        if not any(existing is record for existing in context.execution_history):
            context.record_execution(record)
        return record

    async def _fail(
        self,
        index: int,
        error: str,
        results: list[ExecutionRecord],
        start: float,
        context: WorkflowContext,
        metadata: dict[str, Any],
        cancel: bool = False,
    ) -> WorkflowRunResult:
        logger.warning("workflow.failed", failed_step_index=index, error=error)
        rollback_result = None
        if self.rollback is not None:
            logger.info("workflow.rollback.start", failed_step_index=index)
            try:
                rollback_result = await self.rollback.rollback(context, index, list(results))
            except Exception as exc:
                rollback_error = exc if isinstance(exc, RollbackError) else RollbackError(
                    f"Rollback failed: {describe_error(exc)}",
                    failed_step_index=index,
                    original_error=error,
                    cause=exc,
                )
                if rollback_error.original_error is None:
                    rollback_error.original_error = error
                metadata["rollback_error"] = rollback_error.to_dict()
                logger.error("workflow.rollback.failed", error=rollback_error.message)
            else:
                logger.info("workflow.rollback.complete", failed_step_index=index)

        if context.state == ContextState.CANCELLED:
            metadata["cancelled"] = True
        if context.is_terminal:
            logger.info("workflow.context.already_finished", state=context.state.value)
        elif cancel:
            context.cancel(error)
        else:
            context.fail(error)
        return self._finish(
            False,
            results,
            start,
            context,
            metadata,
            error=error,
            failed_step_index=index,
            rollback_result=rollback_result,
        )

    def _finish(
        self,
        success: bool,
        results: list[ExecutionRecord],
        start: float,
        context: WorkflowContext,
        metadata: dict[str, Any],
        *,
        error: str | None = None,
        failed_step_index: int | None = None,
        rollback_result: Any = None,
    ) -> WorkflowRunResult:
        metadata["executed_steps"] = len(results)
        return WorkflowRunResult(
            success=success,
            results=list(results),
            duration=time.perf_counter() - start,
            execution_history=list(context.execution_history),
            metadata=metadata,
            error=error,
            failed_step_index=failed_step_index,
            rollback_result=rollback_result,
        )

    def __repr__(self) -> str:
        return f"ComposedWorkflow({self.name!r}, steps={self.step_names})"


__all__ = ["ComposedWorkflow", "WorkflowRunResult", "WorkflowStep", "PlannedContext"]
