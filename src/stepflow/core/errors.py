"""
Structured error types for the stepflow engine.

One typed hierarchy for every failure the engine can surface:
configuration mistakes, unknown or inactive steps, illegal context
transitions, validation failures, timeouts, executor failures and
rollback failures.

A ``StepflowError`` records its category (configuration, state,
execution, ...), whether a retry may help, the workflow and step it
happened in, and the exception that caused it, if any.

Manifesto:
    Construction mistakes raise; step failures do not.  Callers branch on
    the exception type when building registries and workflows, and on
    ``ExecutionRecord.success`` when running them.  Only ``TimeoutError``
    is retryable by default, which is what the parallel engine's retry
    loop keys on.

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       StepflowError                              │
        │  (category, retryable, retry_after, context, cause)             │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ConfigurationError   NotFoundError       StateError            │
        │  (CONFIG)             (NOT_FOUND)         (STATE)               │
        │       │                    │                                     │
        │  CycleDetectedError   InactiveError       ValidationError       │
        │  DependencyError      (STATE)             (VALIDATION)          │
        │                                                                  │
        │  TimeoutError         ExecutionError      RollbackError         │
        │  (TIMEOUT, retry)     (EXECUTION)         (ROLLBACK)            │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = ExecutionError("lint exploded", step="lint", attempts=2)
    >>> error.to_dict()["category"]
    'EXECUTION'

    >>> error = ConfigurationError("missing type").with_context(step="lint")
    >>> error.context.step
    'lint'

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context,
    stepflow, observability
"""

from __future__ import annotations

import builtins
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from stepflow.validation.result import ValidationResult


class ErrorCategory(str, Enum):
    """
    What went wrong, coarsely; drives the default retry decision.

    Retry behaviour per category:
    - **Never retryable:** CONFIG, NOT_FOUND, STATE, VALIDATION
    - **Usually retryable:** TIMEOUT
    - **Depends on the executor:** EXECUTION
    - **Compensation:** ROLLBACK
    """

    CONFIG = "CONFIG"             # Missing/invalid step or workflow configuration
    NOT_FOUND = "NOT_FOUND"       # Unknown step, category or key
    STATE = "STATE"               # Illegal lifecycle transition / inactive step
    VALIDATION = "VALIDATION"     # Precondition checks failed
    TIMEOUT = "TIMEOUT"           # Attempt exceeded its deadline
    EXECUTION = "EXECUTION"       # Executor raised or returned failure
    ROLLBACK = "ROLLBACK"         # Compensation after failure went wrong
    INTERNAL = "INTERNAL"         # Engine bug
    UNKNOWN = "UNKNOWN"           # Foreign exception with no mapping


@dataclass
class ErrorContext:
    """
    Where an error happened, for structured logs.

    Only non-None fields are serialized by ``to_dict()``; anything not covered
    by a typed field goes into ``metadata``.

    Attributes:
        workflow: ComposedWorkflow name
        workflow_id: Id of the WorkflowContext the error happened in
        step: Name of the step
        run_id: Run identifier
        metadata: Anything else passed to ``with_context``
    """

    workflow: str | None = None
    workflow_id: str | None = None
    step: str | None = None
    run_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Non-None fields merged with ``metadata``."""
        result = {}
        for key in ["workflow", "workflow_id", "step", "run_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class StepflowError(Exception):
    """
    Base exception for all stepflow errors.

    Subclasses set ``default_category`` and ``default_retryable`` class
    attributes to provide sensible defaults for their domain.

    Examples:
        >>> error = StepflowError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: float | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> StepflowError:
        """
        Attach workflow or step details and return ``self``.

        Usage:
            raise NotFoundError("step", "lint").with_context(workflow="ci")
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly view used by log events and run results."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS (construction time, never retryable)
# =============================================================================


class ConfigurationError(StepflowError):
    """Step or workflow configuration is missing or invalid."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False

    def __init__(self, message: str, *, key: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.key = key

    @classmethod
    def from_pydantic(cls, error: Any, subject: str) -> ConfigurationError:
        """Wrap a ``pydantic.ValidationError``; ``key`` is the first failing field path."""
        problems = error.errors()
        paths = [".".join(str(part) for part in problem["loc"]) for problem in problems]
        detail = "; ".join(
            f"{path or subject}: {problem['msg']}" for path, problem in zip(paths, problems)
        )
        return cls(f"Invalid {subject}: {detail}", key=paths[0] if paths else None, cause=error)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.key:
            result["key"] = self.key
        return result


class CycleDetectedError(ConfigurationError):
    """Raised when step dependencies contain a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        cycle_str = " -> ".join(cycle)
        super().__init__(f"Cycle detected in step dependencies: {cycle_str}")


class DependencyError(ConfigurationError):
    """Raised when a step depends on a step that is not part of the workflow."""

    def __init__(self, step_name: str, missing_deps: list[str]):
        self.step_name = step_name
        self.missing_deps = missing_deps
        deps_str = ", ".join(missing_deps)
        super().__init__(f"Step '{step_name}' depends on unknown steps: {deps_str}")


# =============================================================================
# LOOKUP / STATE ERRORS
# =============================================================================


class NotFoundError(StepflowError):
    """A named item is not registered."""

    default_category = ErrorCategory.NOT_FOUND
    default_retryable = False

    def __init__(
        self,
        kind: str,
        name: str,
        available: list[str] | None = None,
        **kwargs: Any,
    ):
        self.kind = kind
        self.name = name
        self.available = available
        message = f"{kind.capitalize()} not found: {name}"
        if available is not None:
            message += f". Available: {', '.join(sorted(available)) or '(none)'}"
        super().__init__(message, **kwargs)


class StateError(StepflowError):
    """Illegal lifecycle transition on a WorkflowContext."""

    default_category = ErrorCategory.STATE
    default_retryable = False

    def __init__(self, current: str, target: str, message: str | None = None, **kwargs: Any):
        self.current = current
        self.target = target
        super().__init__(
            message or f"Invalid context transition: {current} → {target}",
            **kwargs,
        )


class InactiveError(StepflowError):
    """Step exists but its status refuses execution."""

    default_category = ErrorCategory.STATE
    default_retryable = False

    def __init__(self, name: str, status: str, **kwargs: Any):
        self.name = name
        self.status = status
        super().__init__(f"Step '{name}' is not active (status: {status})", **kwargs)


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(StepflowError):
    """
    Precondition validation failed.

    Carries the full ``ValidationResult`` so callers can inspect every
    error and warning instead of only the first message.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        result: ValidationResult | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.result = result

    @property
    def errors(self) -> list[Any]:
        return list(self.result.errors) if self.result is not None else []

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.result is not None:
            result["validation"] = self.result.to_dict()
        return result


# =============================================================================
# EXECUTION ERRORS
# =============================================================================


class TimeoutError(StepflowError):
    """An attempt exceeded its deadline.

    Shadows the builtin inside this module; the builtin is reached through
    ``builtins.TimeoutError``.
    """

    default_category = ErrorCategory.TIMEOUT
    default_retryable = True

    def __init__(
        self,
        timeout: float,
        elapsed: float | None = None,
        operation: str = "operation",
        **kwargs: Any,
    ):
        self.timeout = timeout
        self.elapsed = elapsed
        self.operation = operation

        msg = f"Operation '{operation}' timed out after {timeout}s"
        if elapsed is not None:
            msg += f" (ran for {elapsed:.2f}s)"

        super().__init__(msg, **kwargs)


class ExecutionError(StepflowError):
    """A step executor raised or returned a failed result."""

    default_category = ErrorCategory.EXECUTION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        step: str | None = None,
        attempts: int = 1,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.step = step
        self.attempts = attempts
        if step is not None and self.context.step is None:
            self.context.step = step

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["attempts"] = self.attempts
        return result


class RollbackError(StepflowError):
    """Compensation after a failed workflow run failed itself."""

    default_category = ErrorCategory.ROLLBACK
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        failed_step_index: int | None = None,
        original_error: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.failed_step_index = failed_step_index
        self.original_error = original_error

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.failed_step_index is not None:
            result["failed_step_index"] = self.failed_step_index
        if self.original_error is not None:
            result["original_error"] = self.original_error
        return result


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """``retryable`` for stepflow errors; timeouts and I/O errors otherwise."""
    if isinstance(error, StepflowError):
        return error.retryable
    retryable_types = (
        builtins.TimeoutError,
        ConnectionError,
        OSError,
    )
    return isinstance(error, retryable_types)


def categorize_error(error: BaseException) -> ErrorCategory:
    """Map any exception onto an ``ErrorCategory``."""
    if isinstance(error, StepflowError):
        return error.category
    if isinstance(error, builtins.TimeoutError):
        return ErrorCategory.TIMEOUT
    if isinstance(error, (KeyError, LookupError)):
        return ErrorCategory.NOT_FOUND
    if isinstance(error, (TypeError, ValueError)):
        return ErrorCategory.VALIDATION
    return ErrorCategory.EXECUTION


def describe_error(error: BaseException) -> str:
    """Human-readable message for an exception, falling back to its type name."""
    if isinstance(error, StepflowError):
        return error.message
    text = str(error)
    return text or error.__class__.__name__


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "StepflowError",
    # Configuration
    "ConfigurationError",
    "CycleDetectedError",
    "DependencyError",
    # Lookup / state
    "NotFoundError",
    "StateError",
    "InactiveError",
    # Validation
    "ValidationError",
    # Execution
    "TimeoutError",
    "ExecutionError",
    "RollbackError",
    # Utilities
    "is_retryable",
    "categorize_error",
    "describe_error",
]
