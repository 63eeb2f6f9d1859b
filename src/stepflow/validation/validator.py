"""Workflow Validator: stateful collector for pre-flight checks.

Manifesto:
    Before a workflow mutates anything (creates a branch, writes files,
    calls a service) it should prove it *can* run: the task is well formed,
    the context carries the keys the steps read, collaborators expose the
    methods the engine calls, the repository exists and the caller holds
    the right permissions.  ``WorkflowValidator`` collects every violation
    of those checks into one ``ValidationResult`` with stable codes.

ARCHITECTURE
────────────
::

    WorkflowValidator
      ├── recorders   required · type_mismatch · length · pattern · range
      │               enum · uniqueness · reference · dependency
      │               permission · timeout · warning
      ├── checks      validate_task · validate_context · validate_service
      │               validate_repository · validate_permissions
      ├── validate_readiness(...)   → merged ValidationResult (fresh)
      └── result / reset()

Recorders are fluent and accumulate into ``validator.result``; the
``validate_*`` checks return a standalone result *and* fold it into the
collector so the instance can be used either way.

Example::

    validator = WorkflowValidator()
    result = validator.validate_readiness(
        task={"id": "T-1", "title": "Add lint"},
        context={"project_path": "/repo"},
        required_keys=["project_path"],
        granted={"read", "write"},
        required_permissions={"write"},
    )
    result.is_valid

Tags:
    stepflow, validation, pre-flight, readiness
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from stepflow.core.logging import get_logger
from stepflow.validation.result import ValidationResult
from stepflow.validation.rules import MISSING, resolve_field

logger = get_logger(__name__)


class Codes:
    """Issue codes produced by ``WorkflowValidator``."""

    REQUIRED = "REQUIRED"
    TYPE_MISMATCH = "TYPE_MISMATCH"
    INVALID_LENGTH = "INVALID_LENGTH"
    PATTERN_MISMATCH = "PATTERN_MISMATCH"
    OUT_OF_RANGE = "OUT_OF_RANGE"
    INVALID_ENUM = "INVALID_ENUM"
    DUPLICATE = "DUPLICATE"
    INVALID_REFERENCE = "INVALID_REFERENCE"
    MISSING_DEPENDENCY = "MISSING_DEPENDENCY"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    TIMEOUT = "TIMEOUT"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    REPOSITORY_INVALID = "REPOSITORY_INVALID"


class WorkflowValidator:
    """Accumulates validation issues across recorders and pre-flight checks."""

    task_required_fields: tuple[str, ...] = ("id", "title")

    def __init__(self) -> None:
        self._result = ValidationResult()

    @property
    def result(self) -> ValidationResult:
        return self._result

    @property
    def is_valid(self) -> bool:
        return self._result.is_valid

    def reset(self) -> WorkflowValidator:
        self._result = ValidationResult()
        return self

    # =========================================================================
    # Recorders
    # =========================================================================

    def required(self, field: str, message: str | None = None) -> WorkflowValidator:
        self._result.add_error(field, message or f"{field} is required", code=Codes.REQUIRED)
        return self

    def type_mismatch(self, field: str, expected: str, actual: Any = None) -> WorkflowValidator:
        actual_name = type(actual).__name__ if actual is not None else "None"
        self._result.add_error(
            field,
            f"{field} must be of type {expected}, got {actual_name}",
            code=Codes.TYPE_MISMATCH,
            value=actual,
            expected=expected,
        )
        return self

    def length(
        self,
        field: str,
        actual: int,
        min_length: int | None = None,
        max_length: int | None = None,
    ) -> WorkflowValidator:
        if min_length is not None and max_length is not None:
            bounds = f"between {min_length} and {max_length}"
        elif min_length is not None:
            bounds = f"at least {min_length}"
        else:
            bounds = f"at most {max_length}"
        self._result.add_error(
            field,
            f"{field} length must be {bounds} (got {actual})",
            code=Codes.INVALID_LENGTH,
            value=actual,
        )
        return self

    def pattern(self, field: str, pattern: str, value: Any = None) -> WorkflowValidator:
        self._result.add_error(
            field,
            f"{field} does not match pattern {pattern}",
            code=Codes.PATTERN_MISMATCH,
            value=value,
            pattern=pattern,
        )
        return self

    def range(
        self,
        field: str,
        value: Any,
        minimum: Any = None,
        maximum: Any = None,
    ) -> WorkflowValidator:
        self._result.add_error(
            field,
            f"{field} must be within [{minimum}, {maximum}] (got {value})",
            code=Codes.OUT_OF_RANGE,
            value=value,
        )
        return self

    def enum(self, field: str, value: Any, allowed: Iterable[Any]) -> WorkflowValidator:
        allowed = list(allowed)
        self._result.add_error(
            field,
            f"{field} must be one of: {', '.join(str(a) for a in allowed)}",
            code=Codes.INVALID_ENUM,
            value=value,
            allowed=allowed,
        )
        return self

    def uniqueness(self, field: str, value: Any) -> WorkflowValidator:
        self._result.add_error(
            field, f"{field} must be unique, '{value}' already exists", code=Codes.DUPLICATE, value=value
        )
        return self

    def reference(self, field: str, value: Any, target: str) -> WorkflowValidator:
        self._result.add_error(
            field,
            f"{field} references unknown {target} '{value}'",
            code=Codes.INVALID_REFERENCE,
            value=value,
        )
        return self

    def dependency(self, field: str, missing: Iterable[str]) -> WorkflowValidator:
        missing = list(missing)
        self._result.add_error(
            field,
            f"{field} has unmet dependencies: {', '.join(missing)}",
            code=Codes.MISSING_DEPENDENCY,
            missing=missing,
        )
        return self

    def permission(self, field: str, permission: str) -> WorkflowValidator:
        self._result.add_error(
            field,
            f"Permission '{permission}' is required",
            code=Codes.PERMISSION_DENIED,
            permission=permission,
        )
        return self

    def timeout(self, field: str, timeout: float, elapsed: float | None = None) -> WorkflowValidator:
        message = f"{field} exceeded timeout of {timeout}s"
        if elapsed is not None:
            message += f" (ran for {elapsed:.2f}s)"
        self._result.add_error(field, message, code=Codes.TIMEOUT, timeout=timeout)
        return self

    def warning(self, field: str, message: str, code: str = "VALIDATION_WARNING") -> WorkflowValidator:
        self._result.add_warning(field, message, code=code)
        return self

    # =========================================================================
    # Pre-flight checks
    # =========================================================================

    def _collect(self, result: ValidationResult) -> ValidationResult:
        self._result.merge(result)
        return result

    def validate_task(self, task: Any) -> ValidationResult:
        """Task exists and carries the fields in ``task_required_fields``."""
        result = ValidationResult()
        if task is None:
            result.add_error("task", "Task is required", code=Codes.REQUIRED)
            return self._collect(result)
        for name in self.task_required_fields:
            value = resolve_field(task, name)
            if value is MISSING or value is None or (isinstance(value, str) and not value.strip()):
                result.add_error(f"task.{name}", f"Task {name} is required", code=Codes.REQUIRED)
        return self._collect(result)

    def validate_context(
        self, context: Any, required_keys: Iterable[str] = ()
    ) -> ValidationResult:
        """Context exists and every required key resolves to a value.

        Accepts a plain mapping or a ``WorkflowContext`` (its ``data`` bag
        is checked).
        """
        result = ValidationResult()
        if context is None:
            result.add_error("context", "Context is required", code=Codes.REQUIRED)
            return self._collect(result)
        data = getattr(context, "data", context)
        for key in required_keys:
            value = resolve_field(data, key)
            if value is MISSING or value is None:
                result.add_error(f"context.{key}", f"Context key '{key}' is required", code=Codes.REQUIRED)
        return self._collect(result)

    def validate_service(
        self, name: str, service: Any, required_methods: Iterable[str] = ()
    ) -> ValidationResult:
        """Collaborator is present and exposes each required method."""
        result = ValidationResult()
        if service is None:
            result.add_error(name, f"Service '{name}' is not available", code=Codes.SERVICE_UNAVAILABLE)
            return self._collect(result)
        for method in required_methods:
            if not callable(getattr(service, method, None)):
                result.add_error(
                    f"{name}.{method}",
                    f"Service '{name}' does not implement '{method}'",
                    code=Codes.SERVICE_UNAVAILABLE,
                )
        return self._collect(result)

    def validate_repository(self, path: str | Path | None) -> ValidationResult:
        """Repository path exists and is a directory.

        A directory without ``.git`` is only a warning: worktrees and
        submodules keep it elsewhere.
        """
        result = ValidationResult()
        if path is None or not str(path).strip():
            result.add_error("repository", "Repository path is required", code=Codes.REQUIRED)
            return self._collect(result)
        repo = Path(path)
        if not repo.exists():
            result.add_error(
                "repository", f"Repository path does not exist: {repo}", code=Codes.REPOSITORY_INVALID
            )
        elif not repo.is_dir():
            result.add_error(
                "repository", f"Repository path is not a directory: {repo}", code=Codes.REPOSITORY_INVALID
            )
        elif not (repo / ".git").exists():
            result.add_warning("repository", f"No .git entry found in {repo}", code="NOT_A_GIT_ROOT")
        return self._collect(result)

    def validate_permissions(
        self, granted: Iterable[str], required: Iterable[str]
    ) -> ValidationResult:
        result = ValidationResult()
        granted_set = set(granted)
        for permission in sorted(set(required) - granted_set):
            result.add_error(
                "permissions",
                f"Permission '{permission}' is required",
                code=Codes.PERMISSION_DENIED,
                permission=permission,
            )
        return self._collect(result)

    def validate_readiness(
        self,
        *,
        task: Any = None,
        context: Any = None,
        required_keys: Iterable[str] = (),
        services: Mapping[str, tuple[Any, Iterable[str]]] | None = None,
        repository: str | Path | None = None,
        granted: Iterable[str] | None = None,
        required_permissions: Iterable[str] = (),
    ) -> ValidationResult:
        """Run every applicable check and return the merged result.

        The collector is reset first, so the returned result and
        ``self.result`` describe exactly this readiness pass.  A check runs
        only when its inputs were supplied.
        """
        self.reset()
        if task is not None:
            self.validate_task(task)
        if context is not None or required_keys:
            self.validate_context(context, required_keys)
        for name, (service, methods) in (services or {}).items():
            self.validate_service(name, service, methods)
        if repository is not None:
            self.validate_repository(repository)
        required_permissions = list(required_permissions)
        if required_permissions:
            self.validate_permissions(granted or (), required_permissions)

        logger.debug(
            "validator.readiness",
            valid=self._result.is_valid,
            errors=len(self._result.errors),
            warnings=len(self._result.warnings),
        )
        return self._result


__all__ = ["Codes", "WorkflowValidator"]
