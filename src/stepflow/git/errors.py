"""Git workflow errors.

Each failure has a stable ``error_code`` so the workflow result can say
which phase broke without callers matching on messages.

Example:
    >>> err = GitWorkflowError.merge_failed("feature/42-login", "main", "conflict")
    >>> err.error_code
    'MERGE_FAILED'
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from stepflow.core.errors import ErrorCategory, StepflowError

if TYPE_CHECKING:
    from stepflow.validation.result import ValidationResult


class GitWorkflowError(StepflowError):
    """Failure anywhere in a git workflow run."""

    default_category = ErrorCategory.EXECUTION

    VALIDATION_FAILED = "VALIDATION_FAILED"
    BRANCH_CREATION_FAILED = "BRANCH_CREATION_FAILED"
    WORKFLOW_EXECUTION_FAILED = "WORKFLOW_EXECUTION_FAILED"
    PULL_REQUEST_CREATION_FAILED = "PULL_REQUEST_CREATION_FAILED"
    MERGE_FAILED = "MERGE_FAILED"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        error_code: str,
        validation_result: ValidationResult | None = None,
        details: dict[str, Any] | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.error_code = error_code
        self.validation_result = validation_result
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["error_code"] = self.error_code
        if self.details:
            result["details"] = dict(self.details)
        if self.validation_result is not None:
            result["validation"] = self.validation_result.to_dict()
        return result

    @classmethod
    def validation_failed(
        cls, message: str, validation_result: ValidationResult | None = None
    ) -> GitWorkflowError:
        return cls(
            message,
            error_code=cls.VALIDATION_FAILED,
            validation_result=validation_result,
            category=ErrorCategory.VALIDATION,
        )

    @classmethod
    def branch_creation_failed(cls, branch: str, reason: str) -> GitWorkflowError:
        return cls(
            f"Failed to create branch '{branch}': {reason}",
            error_code=cls.BRANCH_CREATION_FAILED,
            details={"branch": branch, "reason": reason},
        )

    @classmethod
    def workflow_execution_failed(cls, phase: str, reason: str) -> GitWorkflowError:
        return cls(
            f"Workflow phase '{phase}' failed: {reason}",
            error_code=cls.WORKFLOW_EXECUTION_FAILED,
            details={"phase": phase, "reason": reason},
        )

    @classmethod
    def pull_request_creation_failed(cls, title: str, reason: str) -> GitWorkflowError:
        return cls(
            f"Failed to create pull request '{title}': {reason}",
            error_code=cls.PULL_REQUEST_CREATION_FAILED,
            details={"title": title, "reason": reason},
        )

    @classmethod
    def merge_failed(cls, source: str, target: str, reason: str) -> GitWorkflowError:
        return cls(
            f"Failed to merge '{source}' into '{target}': {reason}",
            error_code=cls.MERGE_FAILED,
            details={"source": source, "target": target, "reason": reason},
        )

    @classmethod
    def configuration_error(cls, message: str) -> GitWorkflowError:
        return cls(
            message,
            error_code=cls.CONFIGURATION_ERROR,
            category=ErrorCategory.CONFIG,
        )


__all__ = ["GitWorkflowError"]
