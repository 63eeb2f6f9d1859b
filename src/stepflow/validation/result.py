"""Validation Result: structured outcome of precondition checks.

Manifesto:
    A validation pass never stops at the first problem.  Every rule and
    every step contributes issues to one ``ValidationResult`` so the caller
    sees the full picture before deciding whether to run.

    ``is_valid`` is derived from ``errors``; there is no way to set it
    independently, so a result can never claim to be valid while carrying
    errors.

ARCHITECTURE
────────────
::

    ValidationIssue (frozen)
      field · message · code · level · value · metadata

    ValidationResult
      ├── .add_error(field, message, code)   → error issue
      ├── .add_warning(field, message, code) → warning issue
      ├── .merge(other, prefix)              → fold nested results
      ├── .errors_for(field) / .errors_with_code(code)
      ├── .clear()
      └── .raise_if_invalid()                → ValidationError

Example::

    result = ValidationResult()
    result.add_error("name", "Name is required", code="REQUIRED")
    result.is_valid          # False
    step_result = ValidationResult.failure("type", "Unknown type")
    result.merge(step_result, prefix="steps[1]")
    [i.field for i in result.errors]   # ["name", "steps[1].type"]

Tags:
    stepflow, validation, result, issues, merge
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from stepflow.core.errors import ValidationError

IssueLevel = Literal["error", "warning"]

DEFAULT_ERROR_CODE = "VALIDATION_ERROR"
DEFAULT_WARNING_CODE = "VALIDATION_WARNING"


@dataclass(frozen=True)
class ValidationIssue:
    """One error or warning produced by a check."""

    field: str
    message: str
    code: str = DEFAULT_ERROR_CODE
    level: IssueLevel = "error"
    value: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def with_prefix(self, prefix: str | None) -> ValidationIssue:
        if not prefix:
            return self
        name = f"{prefix}.{self.field}" if self.field else prefix
        return ValidationIssue(
            field=name,
            message=self.message,
            code=self.code,
            level=self.level,
            value=self.value,
            metadata=dict(self.metadata),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "field": self.field,
            "message": self.message,
            "code": self.code,
            "level": self.level,
        }
        if self.value is not None:
            data["value"] = self.value
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data


class ValidationResult:
    """Accumulates errors and warnings from one or more checks.

    Starts valid.  Only ``add_error``, ``add_warning``, ``merge`` and
    ``clear`` change it.
    """

    def __init__(self, metadata: dict[str, Any] | None = None) -> None:
        self._errors: list[ValidationIssue] = []
        self._warnings: list[ValidationIssue] = []
        self.metadata: dict[str, Any] = dict(metadata or {})

    # =========================================================================
    # Factories
    # =========================================================================

    @classmethod
    def success(cls, **metadata: Any) -> ValidationResult:
        return cls(metadata=metadata)

    @classmethod
    def failure(
        cls,
        field: str,
        message: str,
        code: str = DEFAULT_ERROR_CODE,
        value: Any = None,
    ) -> ValidationResult:
        result = cls()
        result.add_error(field, message, code=code, value=value)
        return result

    # =========================================================================
    # State
    # =========================================================================

    @property
    def is_valid(self) -> bool:
        return not self._errors

    @property
    def errors(self) -> tuple[ValidationIssue, ...]:
        return tuple(self._errors)

    @property
    def warnings(self) -> tuple[ValidationIssue, ...]:
        return tuple(self._warnings)

    def add_error(
        self,
        field: str,
        message: str,
        code: str = DEFAULT_ERROR_CODE,
        value: Any = None,
        **metadata: Any,
    ) -> ValidationResult:
        self._errors.append(
            ValidationIssue(field, message, code, "error", value, metadata)
        )
        return self

    def add_warning(
        self,
        field: str,
        message: str,
        code: str = DEFAULT_WARNING_CODE,
        value: Any = None,
        **metadata: Any,
    ) -> ValidationResult:
        self._warnings.append(
            ValidationIssue(field, message, code, "warning", value, metadata)
        )
        return self

    def add_issue(self, issue: ValidationIssue) -> ValidationResult:
        if issue.level == "warning":
            self._warnings.append(issue)
        else:
            self._errors.append(issue)
        return self

    def clear(self) -> ValidationResult:
        self._errors.clear()
        self._warnings.clear()
        return self

    def merge(self, other: ValidationResult, prefix: str | None = None) -> ValidationResult:
        """Fold *other* into this result.

        With *prefix*, merged field names are namespaced, so a step's
        ``name`` error becomes ``steps[1].name``.  Metadata keys already
        present here win.
        """
        for issue in other._errors:
            self._errors.append(issue.with_prefix(prefix))
        for issue in other._warnings:
            self._warnings.append(issue.with_prefix(prefix))
        for key, value in other.metadata.items():
            self.metadata.setdefault(key, value)
        return self

    # =========================================================================
    # Queries
    # =========================================================================

    def issues(self, level: IssueLevel | None = None) -> list[ValidationIssue]:
        if level == "error":
            return list(self._errors)
        if level == "warning":
            return list(self._warnings)
        return [*self._errors, *self._warnings]

    def errors_for(self, field: str) -> list[ValidationIssue]:
        return [issue for issue in self._errors if issue.field == field]

    def warnings_for(self, field: str) -> list[ValidationIssue]:
        return [issue for issue in self._warnings if issue.field == field]

    def has_errors_for(self, field: str) -> bool:
        return any(issue.field == field for issue in self._errors)

    def errors_with_code(self, code: str) -> list[ValidationIssue]:
        return [issue for issue in self._errors if issue.code == code]

    def error_messages(self) -> list[str]:
        return [issue.message for issue in self._errors]

    def raise_if_invalid(self, message: str = "Validation failed") -> None:
        """Raise ``ValidationError`` carrying this result when invalid."""
        if not self.is_valid:
            details = "; ".join(self.error_messages())
            raise ValidationError(f"{message}: {details}", result=self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": [issue.to_dict() for issue in self._errors],
            "warnings": [issue.to_dict() for issue in self._warnings],
            "metadata": dict(self.metadata),
        }

    def __repr__(self) -> str:
        return (
            f"ValidationResult(is_valid={self.is_valid}, "
            f"errors={len(self._errors)}, warnings={len(self._warnings)})"
        )


__all__ = [
    "IssueLevel",
    "ValidationIssue",
    "ValidationResult",
    "DEFAULT_ERROR_CODE",
    "DEFAULT_WARNING_CODE",
]
