"""Rollback strategies: compensation after a failed composed run.

Manifesto:
    Rollback is *best-effort compensation*, not a transaction.  The
    strategy receives the failed step's index and the records of the steps
    that ran; it cannot see a structured diff of what those steps changed.
    Each completed step may register a compensator that undoes its own
    side effects.  Whatever a step did without a compensator stays done.

ARCHITECTURE
────────────
::

    RollbackStrategy (Protocol)
      └── async rollback(context, failed_step_index, results_so_far) → Any

    NoopRollback          records that nothing was undone
    CallbackRollback      wraps a plain (sync or async) function
    CompensatingRollback  per-step compensators, reverse order
                          failures collected; strict=True raises RollbackError

Example::

    rollback = CompensatingRollback()
    rollback.register("create-branch", delete_branch)

    workflow = ComposedWorkflow(steps, rollback=rollback)
    run = await workflow.execute(ctx)
    run.rollback_result.compensated     # ["create-branch"]

Tags:
    stepflow, orchestration, rollback, compensation
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from stepflow.core.errors import RollbackError, describe_error
from stepflow.core.logging import get_logger
from stepflow.orchestration.steps import ExecutionRecord, call_maybe_async

logger = get_logger(__name__)

Compensator = Callable[[Any, ExecutionRecord], Any]


@runtime_checkable
class RollbackStrategy(Protocol):
    """Pluggable compensation invoked once after a failed run."""

    async def rollback(
        self,
        context: Any,
        failed_step_index: int,
        results_so_far: Sequence[ExecutionRecord],
    ) -> Any: ...


@dataclass
class RollbackReport:
    """Outcome of a compensating rollback."""

    failed_step_index: int
    compensated: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "failed_step_index": self.failed_step_index,
            "compensated": list(self.compensated),
            "skipped": list(self.skipped),
            "failures": dict(self.failures),
        }


class NoopRollback:
    """Accepts the failure and undoes nothing."""

    async def rollback(
        self,
        context: Any,
        failed_step_index: int,
        results_so_far: Sequence[ExecutionRecord],
    ) -> RollbackReport:
        return RollbackReport(
            failed_step_index=failed_step_index,
            skipped=[r.step for r in results_so_far if r.success],
        )


class CallbackRollback:
    """Adapts a plain function ``fn(context, failed_step_index, results_so_far)``."""

    def __init__(self, fn: Callable[[Any, int, Sequence[ExecutionRecord]], Any]) -> None:
        if not callable(fn):
            raise TypeError("CallbackRollback requires a callable")
        self._fn = fn

    async def rollback(
        self,
        context: Any,
        failed_step_index: int,
        results_so_far: Sequence[ExecutionRecord],
    ) -> Any:
        return await call_maybe_async(self._fn, context, failed_step_index, list(results_so_far))


class CompensatingRollback:
    """Undo completed steps in reverse order using registered compensators.

    Only records with ``success=True`` are compensated; the failed step is
    assumed to have cleaned up after itself.  Steps without a compensator
    are reported as skipped.

    Args:
        strict: Raise ``RollbackError`` when any compensator fails instead of
            only reporting it.
    """

    def __init__(self, strict: bool = False) -> None:
        self.strict = strict
        self._compensators: dict[str, Compensator] = {}

    def register(self, step: str, compensator: Compensator) -> CompensatingRollback:
        self._compensators[step] = compensator
        return self

    def compensator(self, step: str) -> Callable[[Compensator], Compensator]:
        """Decorator form of ``register``."""

        def decorator(fn: Compensator) -> Compensator:
            self.register(step, fn)
            return fn

        return decorator

    async def rollback(
        self,
        context: Any,
        failed_step_index: int,
        results_so_far: Sequence[ExecutionRecord],
    ) -> RollbackReport:
        report = RollbackReport(failed_step_index=failed_step_index)
        for record in reversed(list(results_so_far)):
            if not record.success:
                continue
            fn = self._compensators.get(record.step)
            if fn is None:
                report.skipped.append(record.step)
                continue
            try:
                await call_maybe_async(fn, context, record)
            except Exception as exc:
                report.failures[record.step] = describe_error(exc)
                logger.error(
                    "workflow.rollback.compensator_failed",
                    step=record.step,
                    error=describe_error(exc),
                )
            else:
                report.compensated.append(record.step)

        if report.failures and self.strict:
            raise RollbackError(
                f"Compensation failed for: {', '.join(report.failures)}",
                failed_step_index=failed_step_index,
            )
        return report


__all__ = [
    "RollbackStrategy",
    "RollbackReport",
    "NoopRollback",
    "CallbackRollback",
    "CompensatingRollback",
    "Compensator",
]
