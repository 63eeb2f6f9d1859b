"""
Stepflow - step orchestration engine.

Catalog executable steps, compose them into sequential workflows or run
independent batches in parallel, validate preconditions, and roll back
on failure.

Subpackages:
- stepflow.core: errors, logging, settings, generic registry
- stepflow.validation: ValidationRule, ValidationResult, WorkflowValidator
- stepflow.orchestration: StepRegistry, StepBuilder, WorkflowContext, ComposedWorkflow
- stepflow.execution: ParallelExecutionEngine, timeouts, retries, cancellation
- stepflow.git: git-delivery workflow on the same primitives

``create_engine()`` is the composition root: it configures logging and
wires one registry, builder and parallel engine from settings.  Nothing
is global; every call returns a fresh set.
"""

from __future__ import annotations

from dataclasses import dataclass

__version__ = "0.1.0"

from stepflow.core import (
    StepflowError,
    StepflowSettings,
    configure_logging,
    get_logger,
    get_settings,
)
from stepflow.execution import (
    CancellationToken,
    ParallelExecutionEngine,
    ParallelExecutionPolicy,
)
from stepflow.orchestration import (
    ComposedWorkflow,
    StepBuilder,
    StepRegistry,
    WorkflowContext,
)
from stepflow.validation import ValidationResult, ValidationRule, WorkflowValidator

logger = get_logger(__name__)


@dataclass
class Engine:
    """Wired collaborators returned by ``create_engine``."""

    settings: StepflowSettings
    registry: StepRegistry
    builder: StepBuilder
    parallel: ParallelExecutionEngine


def create_engine(
    settings: StepflowSettings | None = None,
    *,
    configure_logs: bool = True,
) -> Engine:
    """Build a registry, builder and parallel engine from *settings*.

    Example:
        >>> engine = create_engine()
        >>> engine.registry.register("lint", {"name": "lint", "description": "Lint",
        ...                                   "type": "analysis"}, executor=run_lint)
        >>> record = await engine.registry.execute_step("lint")
    """
    settings = settings or get_settings()
    if configure_logs:
        configure_logging(
            level=settings.log_level,
            json_format=settings.json_logs,
            service=settings.service_name,
        )
    registry = StepRegistry(default_version=settings.default_step_version)
    builder = StepBuilder(registry, cache_size=settings.step_cache_size)
    parallel = ParallelExecutionEngine(registry, ParallelExecutionPolicy.from_settings(settings))
    logger.debug(
        "stepflow.engine.created",
        max_concurrency=parallel.policy.max_concurrency,
        timeout=parallel.policy.timeout,
    )
    return Engine(settings=settings, registry=registry, builder=builder, parallel=parallel)


__all__ = [
    "__version__",
    "Engine",
    "create_engine",
    "StepflowError",
    "StepflowSettings",
    "StepRegistry",
    "StepBuilder",
    "WorkflowContext",
    "ComposedWorkflow",
    "ParallelExecutionEngine",
    "ParallelExecutionPolicy",
    "CancellationToken",
    "ValidationRule",
    "ValidationResult",
    "WorkflowValidator",
]
