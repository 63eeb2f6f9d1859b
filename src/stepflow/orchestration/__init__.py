"""
Stepflow Orchestration - steps, contexts and sequential composition.

Architecture::

    context.py        WorkflowContext + ContextState machine
    steps.py          StepConfig, StepDefinition, ExecutionRecord, executor contract
    step_registry.py  StepRegistry (catalog, dispatch, statistics)
    step_builder.py   StepBuilder / StepInstance (merged settings, cache)
    composed.py       ComposedWorkflow (validate, run in order, rollback)
    rollback.py       RollbackStrategy protocol + shipped strategies
    planner.py        Dependency ordering (cycle detection, topological sort)

Quick start::

    from stepflow.orchestration import (
        ComposedWorkflow, StepBuilder, StepRegistry, WorkflowContext,
    )

    registry = StepRegistry()
    registry.register("lint", {"name": "lint", "description": "Lint", "type": "analysis"},
                      executor=run_lint)
    builder = StepBuilder(registry)
    run = await ComposedWorkflow([builder.build("lint")]).execute(WorkflowContext())
"""

from stepflow.orchestration.context import (
    CONTEXT_VALID_TRANSITIONS,
    ContextState,
    LogEntry,
    StateTransition,
    WorkflowContext,
)
from stepflow.orchestration.steps import (
    BatchExecution,
    ExecutionRecord,
    RegistryStats,
    StepConfig,
    StepDefinition,
    StepExecutor,
    StepOutcome,
    StepStatus,
)
from stepflow.orchestration.step_registry import ExecutionStatistics, StepRegistry
from stepflow.orchestration.step_builder import StepBuilder, StepInstance
from stepflow.orchestration.rollback import (
    CallbackRollback,
    CompensatingRollback,
    NoopRollback,
    RollbackReport,
    RollbackStrategy,
)
from stepflow.orchestration.composed import (
    ComposedWorkflow,
    PlannedContext,
    WorkflowRunResult,
    WorkflowStep,
)
from stepflow.orchestration.planner import order_steps

__all__ = [
    # Context
    "ContextState",
    "CONTEXT_VALID_TRANSITIONS",
    "StateTransition",
    "LogEntry",
    "WorkflowContext",
    # Steps
    "StepConfig",
    "StepDefinition",
    "StepExecutor",
    "StepOutcome",
    "StepStatus",
    "ExecutionRecord",
    "BatchExecution",
    "RegistryStats",
    # Registry / builder
    "StepRegistry",
    "ExecutionStatistics",
    "StepBuilder",
    "StepInstance",
    # Composition
    "ComposedWorkflow",
    "WorkflowRunResult",
    "WorkflowStep",
    "PlannedContext",
    # Rollback
    "RollbackStrategy",
    "RollbackReport",
    "NoopRollback",
    "CallbackRollback",
    "CompensatingRollback",
    # Planning
    "order_steps",
]
