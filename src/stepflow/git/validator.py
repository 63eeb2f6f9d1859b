"""Pre-flight checks for a git workflow run."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from stepflow.core.logging import get_logger
from stepflow.git.context import AutomationLevel, GitTask, GitWorkflowContext
from stepflow.git.protocols import GIT_SERVICE_METHODS
from stepflow.git.strategies import SEMVER, BranchStrategyKind
from stepflow.validation.result import ValidationResult
from stepflow.validation.validator import Codes, WorkflowValidator

logger = get_logger(__name__)


class GitWorkflowValidator(WorkflowValidator):
    """Readiness for a git workflow: task, context, git service, repository, permissions.

    Args:
        check_repository: Inspect ``project_path`` on disk.
        required_permissions: Permissions every run needs.
    """

    required_context_keys: tuple[str, ...] = ("project_path",)

    def __init__(
        self,
        *,
        check_repository: bool = True,
        required_permissions: Iterable[str] = (),
    ) -> None:
        super().__init__()
        self.check_repository = check_repository
        self.required_permissions = tuple(required_permissions)

    def validate(
        self,
        task: GitTask | None,
        context: GitWorkflowContext,
        git_service: Any,
        granted: Iterable[str] | None = None,
    ) -> ValidationResult:
        result = self.validate_readiness(
            task=task,
            context=context,
            required_keys=self.required_context_keys,
            services={"git_service": (git_service, GIT_SERVICE_METHODS)},
            repository=context.project_path if self.check_repository else None,
            granted=granted,
            required_permissions=self.required_permissions,
        )
        if task is not None:
            self.validate_release_version(task)
        self.validate_automation_level(context)

        logger.debug(
            "git.validator.complete",
            task_id=getattr(task, "id", None),
            valid=result.is_valid,
            errors=len(result.errors),
        )
        return self._result

    def validate_release_version(self, task: GitTask) -> ValidationResult:
        result = ValidationResult()
        if BranchStrategyKind.for_task(task) is BranchStrategyKind.RELEASE:
            if not task.version:
                result.add_error("task.version", "Release tasks need a version", code=Codes.REQUIRED)
            elif not SEMVER.match(task.version):
                result.add_error(
                    "task.version",
                    "Release version must be semantic (X.Y.Z)",
                    code=Codes.PATTERN_MISMATCH,
                    value=task.version,
                )
        return self._collect(result)

    def validate_automation_level(self, context: GitWorkflowContext) -> ValidationResult:
        result = ValidationResult()
        raw = context.get("automation_level")
        try:
            AutomationLevel.parse(raw)
        except ValueError:
            result.add_error(
                "context.automation_level",
                f"Unknown automation level: {raw}",
                code=Codes.INVALID_ENUM,
                value=raw,
                allowed=[level.value for level in AutomationLevel],
            )
        return self._collect(result)


__all__ = ["GitWorkflowValidator"]
