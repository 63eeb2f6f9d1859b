"""Step types: configuration, definitions and execution records.

Manifesto:
    A step is a named unit of work with a declared configuration and an
executor.  Every execution, however it ends, produces one
``ExecutionRecord`` so the registry, the composed runner and the parallel
engine all speak the same envelope.

ARCHITECTURE
────────────
::

    StepConfig        name · description · type · version · order
                      required · dependencies · settings
    StepDefinition    config + executor + status + per-step stats
    StepOutcome       .ok(result) / .fail(error)  (optional executor return)
    ExecutionRecord   frozen: step · success · result · error · duration
                      timestamp · attempts · is_timeout · retried
    BatchExecution    records of a multi-step dispatch
    RegistryStats     frozen snapshot of a registry

    normalize_outcome(step, value)  → (success, result, error)
    invoke_executor(fn, ctx, opts)  → awaits coroutine executors,
                                      runs plain callables in a thread

Executor contract::

    async def lint(context, options) -> Any: ...
    def lint(context, options) -> Any: ...     # runs via asyncio.to_thread

Return values are normalised: a mapping with a ``success`` key is
honoured, a ``StepOutcome`` is honoured, anything else is a success whose
result is the value itself.  Raised exceptions become failure records.

Tags:
    stepflow, orchestration, step, execution-record, envelope

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from stepflow.core.errors import ConfigurationError

StepExecutor = Callable[[Any, Mapping[str, Any]], "Any | Awaitable[Any]"]

DEFAULT_STEP_VERSION = "1.0.0"


class StepStatus(str, Enum):
    """Whether a registered step accepts executions."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class StepConfig(BaseModel):
    """
    Declared configuration of a step.

    ``name``, ``description`` and ``type`` are required and must be
    non-blank; everything else has a default.  Unknown keys are ignored.
    """

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    name: str = Field(..., min_length=1, description="Unique step name")
    description: str = Field(..., min_length=1, description="What the step does")
    type: str = Field(..., min_length=1, description="Step kind (analysis, build, ...)")
    version: str = Field(default=DEFAULT_STEP_VERSION, min_length=1)
    order: int = Field(default=0, description="Listing order within the registry")
    required: bool = True
    dependencies: list[str] = Field(default_factory=list, description="Steps that must complete first")
    settings: dict[str, Any] = Field(default_factory=dict, description="Executor settings")

    @field_validator("name", "description", "type")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("version", mode="before")
    @classmethod
    def _version_text(cls, value: Any) -> Any:
        return str(value) if isinstance(value, (int, float)) else value

    @field_validator("dependencies", mode="before")
    @classmethod
    def _no_dependencies(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("settings", mode="before")
    @classmethod
    def _no_settings(cls, value: Any) -> Any:
        return {} if value is None else value

    @classmethod
    def from_mapping(
        cls,
        mapping: Mapping[str, Any] | StepConfig,
        *,
        default_version: str = DEFAULT_STEP_VERSION,
    ) -> StepConfig:
        """
        Build a config from a plain mapping.

        Raises:
            ConfigurationError: If *mapping* is not a mapping, or any field
                fails validation (``key`` names the field).
        """
        if isinstance(mapping, StepConfig):
            return mapping.model_copy(deep=True)
        if not isinstance(mapping, Mapping):
            raise ConfigurationError(
                f"Step config must be a mapping, got {type(mapping).__name__}"
            )

        data = dict(mapping)
        if not data.get("version"):
            data["version"] = default_version
        try:
            return cls.model_validate(data)
        except PydanticValidationError as exc:
            raise ConfigurationError.from_pydantic(exc, "step config") from exc

    def merged(self, updates: Mapping[str, Any]) -> StepConfig:
        """Return a new config with *updates* applied and re-validated.

        ``settings`` updates are merged key by key rather than replaced.
        """
        data = self.to_dict()
        for key, value in updates.items():
            if key == "settings" and isinstance(value, Mapping):
                data["settings"] = {**data["settings"], **value}
            else:
                data[key] = value
        return StepConfig.from_mapping(data, default_version=self.version)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()


@dataclass
class StepDefinition:
    """A registered step: config, executor, status and per-step statistics."""

    name: str
    category: str
    config: StepConfig
    executor: StepExecutor | None
    status: StepStatus = StepStatus.ACTIVE
    registered_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    execution_count: int = 0
    last_executed: datetime | None = None
    last_duration: float | None = None
    last_error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status == StepStatus.ACTIVE

    def record_run(self, duration: float, error: str | None) -> None:
        now = datetime.now(UTC)
        self.execution_count += 1
        self.last_executed = now
        self.last_duration = duration
        self.last_error = error

    def stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category,
            "status": self.status.value,
            "execution_count": self.execution_count,
            "last_executed": self.last_executed.isoformat() if self.last_executed else None,
            "last_duration": self.last_duration,
            "last_error": self.last_error,
        }

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly view; the executor is listed by name only."""
        executor_name = None
        if self.executor is not None:
            executor_name = getattr(self.executor, "__qualname__", None) or type(self.executor).__name__
        return {
            **self.stats(),
            "config": self.config.to_dict(),
            "executor": executor_name,
            "registered_at": self.registered_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "metadata": dict(self.metadata),
        }


@dataclass
class StepOutcome:
    """Explicit executor return value.

    Executors may return anything; return a ``StepOutcome`` to report a
    failure without raising.
    """

    success: bool
    result: Any = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, result: Any = None, **metadata: Any) -> StepOutcome:
        return cls(success=True, result=result, metadata=metadata)

    @classmethod
    def fail(cls, error: str, result: Any = None, **metadata: Any) -> StepOutcome:
        return cls(success=False, result=result, error=error, metadata=metadata)


@dataclass(frozen=True)
class ExecutionRecord:
    """
    Outcome of one step execution (after all attempts).

    Attributes:
        step: Step name
        success: Whether the step succeeded
        result: Executor result (may be set on failure too)
        error: Error message when ``success`` is False
        duration: Wall-clock seconds, entry to exit, across attempts
        timestamp: When the execution started
        attempts: Number of executor invocations
        is_timeout: The last attempt exceeded its deadline
        retried: More than one attempt was made
        metadata: Free-form details (category, mode, error type)
    """

    step: str
    success: bool
    result: Any = None
    error: str | None = None
    duration: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    attempts: int = 1
    is_timeout: bool = False
    retried: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "step": self.step,
            "success": self.success,
            "duration": self.duration,
            "timestamp": self.timestamp.isoformat(),
            "attempts": self.attempts,
            "is_timeout": self.is_timeout,
            "retried": self.retried,
        }
        if self.success or self.result is not None:
            data["result"] = self.result
        if self.error is not None:
            data["error"] = self.error
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data


@dataclass
class BatchExecution:
    """Records of a multi-step dispatch, in dispatch order."""

    records: list[ExecutionRecord] = field(default_factory=list)
    stopped_early: bool = False
    sequential: list[ExecutionRecord] = field(default_factory=list)
    parallel: list[ExecutionRecord] = field(default_factory=list)
    summary: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.stopped_early and all(r.success for r in self.records)

    @property
    def succeeded(self) -> list[ExecutionRecord]:
        return [r for r in self.records if r.success]

    @property
    def failed(self) -> list[ExecutionRecord]:
        return [r for r in self.records if not r.success]

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "stopped_early": self.stopped_early,
            "records": [r.to_dict() for r in self.records],
            "summary": dict(self.summary),
        }


@dataclass(frozen=True)
class RegistryStats:
    """Read-only snapshot of a step registry."""

    total_steps: int
    active_steps: int
    inactive_steps: int
    categories: dict[str, int]
    total_executions: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_steps": self.total_steps,
            "active_steps": self.active_steps,
            "inactive_steps": self.inactive_steps,
            "categories": dict(self.categories),
            "total_executions": self.total_executions,
        }


def normalize_outcome(step: str, value: Any) -> tuple[bool, Any, str | None]:
    """Map an executor return value to ``(success, result, error)``."""
    if isinstance(value, StepOutcome):
        success, result, error = value.success, value.result, value.error
    elif isinstance(value, Mapping) and "success" in value:
        success = bool(value["success"])
        result = value.get("result", dict(value))
        error = value.get("error")
        if error is not None and not isinstance(error, str):
            error = str(error)
    else:
        return True, value, None

    if not success and not error:
        error = f"Step '{step}' reported failure"
    return success, result, (None if success else error)


def _is_async_callable(fn: Any) -> bool:
    return inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(
        getattr(fn, "__call__", None)
    )


async def call_maybe_async(fn: Callable[..., Any], *args: Any) -> Any:
    """Await coroutine functions; run plain callables in a worker thread."""
    if _is_async_callable(fn):
        return await fn(*args)
    value = await asyncio.to_thread(fn, *args)
    if inspect.isawaitable(value):
        value = await value
    return value


async def invoke_executor(
    executor: StepExecutor, context: Any, options: Mapping[str, Any]
) -> Any:
    """Call *executor* without blocking the event loop."""
    return await call_maybe_async(executor, context, options)


__all__ = [
    "StepExecutor",
    "StepStatus",
    "StepConfig",
    "StepDefinition",
    "StepOutcome",
    "ExecutionRecord",
    "BatchExecution",
    "RegistryStats",
    "normalize_outcome",
    "invoke_executor",
    "call_maybe_async",
    "DEFAULT_STEP_VERSION",
]
