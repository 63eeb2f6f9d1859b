"""Workflow Context - per-run mutable state with an explicit lifecycle.

One ``WorkflowContext`` exists per workflow run.  Steps read and write its
data bag, append logs, bump metrics, and the runner appends one
``ExecutionRecord`` per executed step.  The lifecycle is a small state
machine enforced via ``CONTEXT_VALID_TRANSITIONS``.

Manifesto:
    A run must be auditable after the fact.  Every transition is
    timestamped and kept, the execution history only grows, and every
    mutation refreshes ``updated_at`` so staleness checks work without a
    separate heartbeat.

Valid transition graph::

    PENDING    → EXECUTING | FAILED | CANCELLED
    EXECUTING  → EXECUTING (progress) | COMPLETED | FAILED | CANCELLED
    COMPLETED  → (terminal)
    FAILED     → (terminal)
    CANCELLED  → (terminal)

Concurrency:
    The sequential runner hands control to one step at a time, so the
    context needs no lock there.  The parallel engine does not guard
    concurrent mutation; pass one context per parallel step or accept
    interleaved writes.

Example::

    ctx = WorkflowContext(workflow_type="ci")
    ctx.start(total_steps=2)
    ctx.set("branch", "feature/T-1-lint")
    ctx.increment_metric("files_changed", 3)
    ctx.log("info", "lint passed", step="lint")
    ctx.complete({"ok": True})

Tags:
    stepflow, orchestration, context, state-machine, audit

Doc-Types:
    api-reference
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

from stepflow.core.errors import StateError, describe_error
from stepflow.core.logging import get_logger

if TYPE_CHECKING:
    from stepflow.orchestration.steps import ExecutionRecord

logger = get_logger(__name__)

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ContextState(str, Enum):
    """Lifecycle state of a workflow run."""

    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


CONTEXT_VALID_TRANSITIONS: dict[ContextState, frozenset[ContextState]] = {
    ContextState.PENDING: frozenset({
        ContextState.EXECUTING,
        ContextState.FAILED,     # abort before start
        ContextState.CANCELLED,  # abort before start
    }),
    ContextState.EXECUTING: frozenset({
        ContextState.EXECUTING,  # progress update between steps
        ContextState.COMPLETED,
        ContextState.FAILED,
        ContextState.CANCELLED,
    }),
    ContextState.COMPLETED: frozenset(),  # terminal
    ContextState.FAILED: frozenset(),  # terminal
    ContextState.CANCELLED: frozenset(),  # terminal
}

TERMINAL_STATES = frozenset(
    state for state, exits in CONTEXT_VALID_TRANSITIONS.items() if not exits
)


def validate_context_transition(current: ContextState, target: ContextState) -> None:
    """Raise ``StateError`` if *current → target* is illegal."""
    allowed = CONTEXT_VALID_TRANSITIONS.get(current, frozenset())
    if target not in allowed:
        raise StateError(current.value, target.value)


@dataclass(frozen=True)
class StateTransition:
    """One entry in a context's state history."""

    from_state: ContextState
    to_state: ContextState
    timestamp: datetime
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.from_state.value,
            "to": self.to_state.value,
            "timestamp": self.timestamp.isoformat(),
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class LogEntry:
    """One run-scoped log line."""

    level: str
    message: str
    timestamp: datetime
    fields: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "fields": dict(self.fields),
        }


class WorkflowContext:
    """
    Mutable state container threaded through one workflow run.

    Attributes:
        workflow_id: Unique id for this run (uuid4 by default)
        workflow_type: Kind of workflow ("ci", "git", ...)
        version: Workflow definition version
        data: Arbitrary key/value bag shared by steps
        dependencies: Names this run depends on (informational)
        metrics: Numeric counters and gauges
        result: Final result once completed
        error: Final error message once failed or cancelled
    """

    def __init__(
        self,
        workflow_id: str | None = None,
        workflow_type: str = "generic",
        version: str = "1.0.0",
        data: Mapping[str, Any] | None = None,
        dependencies: Iterable[str] = (),
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        now = _utcnow()
        self.workflow_id = workflow_id or str(uuid.uuid4())
        self.workflow_type = workflow_type
        self.version = version
        self.data: dict[str, Any] = dict(data or {})
        self.dependencies: list[str] = list(dependencies)
        self.metadata: dict[str, Any] = dict(metadata or {})
        self.metrics: dict[str, float] = {}
        self.logs: list[LogEntry] = []
        self.state_history: list[StateTransition] = []
        self.result: Any = None
        self.error: str | None = None
        self.created_at = now
        self.updated_at = now
        self._state = ContextState.PENDING
        self._execution_history: list[ExecutionRecord] = []

    def _touch(self) -> None:
        self.updated_at = _utcnow()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def state(self) -> ContextState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    def transition_to(self, state: ContextState | str, **metadata: Any) -> StateTransition:
        """Move to *state*, recording a timestamped transition.

        Raises:
            StateError: If the transition is not in ``CONTEXT_VALID_TRANSITIONS``.
        """
        target = ContextState(state)
        validate_context_transition(self._state, target)
        transition = StateTransition(self._state, target, _utcnow(), dict(metadata))
        self.state_history.append(transition)
        previous, self._state = self._state, target
        self.updated_at = transition.timestamp
        if previous != target:
            logger.debug(
                "context.transition",
                workflow_id=self.workflow_id,
                from_state=previous.value,
                to_state=target.value,
            )
        return transition

    def start(self, **metadata: Any) -> StateTransition:
        return self.transition_to(ContextState.EXECUTING, **metadata)

    def complete(self, result: Any = None) -> StateTransition:
        transition = self.transition_to(ContextState.COMPLETED)
        self.result = result
        return transition

    def fail(self, error: BaseException | str) -> StateTransition:
        message = error if isinstance(error, str) else describe_error(error)
        transition = self.transition_to(ContextState.FAILED, error=message)
        self.error = message
        return transition

    def cancel(self, reason: str | None = None) -> StateTransition:
        transition = self.transition_to(ContextState.CANCELLED, reason=reason)
        self.error = reason or "cancelled"
        return transition

    # =========================================================================
    # Data bag
    # =========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set(self, key: str, value: Any) -> WorkflowContext:
        self.data[key] = value
        self._touch()
        return self

    def has(self, key: str) -> bool:
        return key in self.data

    def remove(self, key: str) -> Any:
        """Remove *key* and return its value (``None`` if absent)."""
        value = self.data.pop(key, None)
        self._touch()
        return value

    def update(self, values: Mapping[str, Any]) -> WorkflowContext:
        self.data.update(values)
        self._touch()
        return self

    # =========================================================================
    # Logs & metrics
    # =========================================================================

    def log(self, level: str, message: str, **fields: Any) -> LogEntry:
        level = level.lower()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {level}")
        entry = LogEntry(level, message, _utcnow(), dict(fields))
        self.logs.append(entry)
        self.updated_at = entry.timestamp
        return entry

    def get_logs(
        self,
        level: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[LogEntry]:
        """Logs filtered by exact level and an inclusive time range."""
        entries = self.logs
        if level is not None:
            entries = [e for e in entries if e.level == level.lower()]
        if since is not None:
            entries = [e for e in entries if e.timestamp >= since]
        if until is not None:
            entries = [e for e in entries if e.timestamp <= until]
        return list(entries)

    def increment_metric(self, name: str, amount: float = 1) -> float:
        self.metrics[name] = self.metrics.get(name, 0) + amount
        self._touch()
        return self.metrics[name]

    def set_metric(self, name: str, value: float) -> None:
        self.metrics[name] = value
        self._touch()

    def get_metric(self, name: str, default: float = 0) -> float:
        return self.metrics.get(name, default)

    # =========================================================================
    # Execution history
    # =========================================================================

    @property
    def execution_history(self) -> tuple[ExecutionRecord, ...]:
        return tuple(self._execution_history)

    def record_execution(self, record: ExecutionRecord) -> None:
        self._execution_history.append(record)
        self._touch()

    @property
    def completed_steps(self) -> list[str]:
        """Names of steps with a successful execution record, in order."""
        seen: list[str] = []
        for record in self._execution_history:
            if record.success and record.step not in seen:
                seen.append(record.step)
        return seen

    # =========================================================================
    # Audit
    # =========================================================================

    def is_stale(self, max_age: timedelta | float) -> bool:
        """True if nothing changed for longer than *max_age* (seconds or timedelta)."""
        if not isinstance(max_age, timedelta):
            max_age = timedelta(seconds=max_age)
        return _utcnow() - self.updated_at > max_age

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "workflow_type": self.workflow_type,
            "version": self.version,
            "state": self._state.value,
            "state_history": [t.to_dict() for t in self.state_history],
            "data": dict(self.data),
            "dependencies": list(self.dependencies),
            "metadata": dict(self.metadata),
            "metrics": dict(self.metrics),
            "logs": [entry.to_dict() for entry in self.logs],
            "execution_history": [r.to_dict() for r in self._execution_history],
            "result": self.result,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    def __repr__(self) -> str:
        return (
            f"WorkflowContext(workflow_id={self.workflow_id!r}, "
            f"type={self.workflow_type!r}, state={self._state.value})"
        )


__all__ = [
    "ContextState",
    "CONTEXT_VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "validate_context_transition",
    "StateTransition",
    "LogEntry",
    "WorkflowContext",
]
