"""Git workflow result, assembled one phase at a time.

The manager records every phase it reaches.  Whether the run succeeded
is derived: no error and no recorded phase reporting failure.  Phases the
run never reached are simply absent.

Example::

    result = GitWorkflowResult(task_id="42")
    result.record_phase("branch", PhaseResult.ok(branch_name="feature/42-login"))
    result.record_phase("pull_request", PhaseResult.skip("full_auto_mode"))
    result.completed_phases      # ["branch"]
    result.skipped_phases        # ["pull_request"]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

PHASES = ("branch", "steps", "pull_request", "review", "merge")


@dataclass
class PhaseResult:
    """Outcome of one phase.

    Attributes:
        success: The phase did what it set out to do (skips count as success)
        skipped: The phase was deliberately not run
        reason: Why it was skipped
        error: Failure message
        duration: Seconds spent in the phase
        data: Phase specific details (branch name, PR id, merge commit, ...)
    """

    success: bool = True
    skipped: bool = False
    reason: str | None = None
    error: str | None = None
    duration: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, duration: float = 0.0, **data: Any) -> PhaseResult:
        return cls(success=True, duration=duration, data=data)

    @classmethod
    def skip(cls, reason: str) -> PhaseResult:
        return cls(success=True, skipped=True, reason=reason)

    @classmethod
    def fail(cls, error: str, duration: float = 0.0, **data: Any) -> PhaseResult:
        return cls(success=False, error=error, duration=duration, data=data)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": self.success,
            "skipped": self.skipped,
            "duration": self.duration,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.reason is not None:
            result["reason"] = self.reason
        if self.error is not None:
            result["error"] = self.error
        if self.data:
            result["data"] = dict(self.data)
        return result


@dataclass
class GitWorkflowResult:
    """Aggregate of every phase a git workflow run reached."""

    task_id: str
    phases: dict[str, PhaseResult] = field(default_factory=dict)
    error: str | None = None
    error_code: str | None = None
    duration: float = 0.0
    context: dict[str, Any] = field(default_factory=dict)

    def record_phase(self, phase: str, result: PhaseResult) -> PhaseResult:
        if phase not in PHASES:
            raise ValueError(f"Unknown git workflow phase: {phase}. Expected one of {PHASES}")
        self.phases[phase] = result
        return result

    def set_error(self, error: str, error_code: str | None = None) -> None:
        self.error = error
        self.error_code = error_code

    def phase(self, name: str) -> PhaseResult | None:
        return self.phases.get(name)

    @property
    def success(self) -> bool:
        return self.error is None and all(p.success for p in self.phases.values())

    @property
    def completed_phases(self) -> list[str]:
        return [n for n in PHASES if n in self.phases and self.phases[n].success and not self.phases[n].skipped]

    @property
    def skipped_phases(self) -> list[str]:
        return [n for n in PHASES if n in self.phases and self.phases[n].skipped]

    @property
    def failed_phases(self) -> list[str]:
        return [n for n in PHASES if n in self.phases and not self.phases[n].success]

    def summary(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "success": self.success,
            "completed": self.completed_phases,
            "skipped": self.skipped_phases,
            "failed": self.failed_phases,
            "error": self.error,
            "error_code": self.error_code,
            "duration": self.duration,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.summary(),
            "phases": {name: result.to_dict() for name, result in self.phases.items()},
            "context": dict(self.context),
        }


__all__ = ["GitWorkflowResult", "PhaseResult", "PHASES"]
