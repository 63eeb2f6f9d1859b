"""Branch naming and merge method strategies.

Both strategies are closed sets resolved when they are constructed: a
task maps to exactly one ``BranchStrategyKind`` and one ``MergeMethod``.
There is no string lookup at run time that can fail with "unknown
strategy".

ARCHITECTURE
────────────
::

    BranchStrategyKind.for_task(task)        task type → priority → FEATURE
    BranchStrategy.for_task(task)
      ├── .generate(task)   feature/<id>-<slug> | hotfix/<id>-<slug> | release/<semver>
      └── .validate(name)   → ValidationResult

    MergeStrategy(default_method=SQUASH)
      ├── .method_for(task, context)        explicit → task type → default
      ├── .can_automate(level, context)     level allows + no blockers
      └── .merge_options(method)            options passed to GitService.merge_branch

Example::

    strategy = BranchStrategy.for_task(GitTask(id="42", title="Add login", type="feature"))
    strategy.generate(task)          # "feature/42-add-login"
    strategy.validate("feature/42-add-login").is_valid   # True
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from enum import Enum
from typing import Any

from stepflow.core.logging import get_logger
from stepflow.git.context import AutomationLevel, GitTask, GitWorkflowContext
from stepflow.git.errors import GitWorkflowError
from stepflow.validation.result import ValidationResult

logger = get_logger(__name__)

MAX_BRANCH_LENGTH = 50
ALLOWED_BRANCH_CHARS = re.compile(r"^[A-Za-z0-9\-_/.]+$")
SEMVER = re.compile(r"^\d+\.\d+\.\d+(-[A-Za-z0-9.-]+)?(\+[A-Za-z0-9.-]+)?$")


def slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


class BranchStrategyKind(str, Enum):
    FEATURE = "feature"
    HOTFIX = "hotfix"
    RELEASE = "release"

    @classmethod
    def for_task(cls, task: GitTask) -> BranchStrategyKind:
        """Task type wins; otherwise an urgent priority means hotfix."""
        kind = _TASK_TYPE_BRANCHES.get(task.type.lower())
        if kind is not None:
            return kind
        if task.priority and task.priority.lower() in _URGENT_PRIORITIES:
            return cls.HOTFIX
        return cls.FEATURE


_TASK_TYPE_BRANCHES = {
    **dict.fromkeys(
        ("feature", "enhancement", "improvement", "story", "epic", "task",
         "refactor", "analysis", "testing", "documentation"),
        BranchStrategyKind.FEATURE,
    ),
    **dict.fromkeys(
        ("bug", "hotfix", "fix", "security", "patch", "emergency"),
        BranchStrategyKind.HOTFIX,
    ),
    **dict.fromkeys(
        ("release", "version", "deployment", "milestone"),
        BranchStrategyKind.RELEASE,
    ),
}

_URGENT_PRIORITIES = frozenset({"critical", "high", "urgent", "emergency"})


class BranchStrategy:
    """Generates and validates branch names for one ``BranchStrategyKind``.

    Args:
        kind: Which naming scheme to apply.
        separator: Between prefix and the rest of the name.
        max_length: Longest name ``generate`` produces and ``validate`` accepts.
    """

    def __init__(
        self,
        kind: BranchStrategyKind = BranchStrategyKind.FEATURE,
        *,
        separator: str = "/",
        max_length: int = MAX_BRANCH_LENGTH,
    ) -> None:
        self.kind = BranchStrategyKind(kind)
        self.separator = separator
        self.max_length = max_length

    @classmethod
    def for_task(cls, task: GitTask, **kwargs: Any) -> BranchStrategy:
        return cls(BranchStrategyKind.for_task(task), **kwargs)

    @property
    def prefix(self) -> str:
        return f"{self.kind.value}{self.separator}"

    def generate(self, task: GitTask) -> str:
        """Branch name for *task*.

        Raises:
            GitWorkflowError: A release task without a semantic version.
        """
        if self.kind is BranchStrategyKind.RELEASE:
            if not task.version or not SEMVER.match(task.version):
                raise GitWorkflowError.configuration_error(
                    f"Release branches need a semantic version (X.Y.Z), got {task.version!r}"
                )
            return f"{self.prefix}{task.version}"

        name = f"{self.prefix}{slugify(task.id)}"
        slug = slugify(task.title)
        if slug:
            name = f"{name}-{slug}"
        if len(name) > self.max_length:
            name = name[: self.max_length].rstrip("-")
        return name

    def validate(self, name: str) -> ValidationResult:
        result = ValidationResult(metadata={"strategy": self.kind.value})
        if not name:
            result.add_error("branch", "Branch name is required", code="REQUIRED")
            return result
        if not ALLOWED_BRANCH_CHARS.match(name):
            result.add_error(
                "branch", "Branch name contains invalid characters",
                code="PATTERN_MISMATCH", value=name,
            )
        if ".." in name or name.endswith(("/", ".")):
            result.add_error(
                "branch", "Branch name is not a valid git ref",
                code="PATTERN_MISMATCH", value=name,
            )
        if len(name) > self.max_length:
            result.add_error(
                "branch", f"Branch name exceeds {self.max_length} characters",
                code="INVALID_LENGTH", value=name, max_length=self.max_length,
            )
        if not name.startswith(self.prefix):
            result.add_error(
                "branch", f"Branch name must start with '{self.prefix}'",
                code="PATTERN_MISMATCH", value=name,
            )
        elif self.kind is BranchStrategyKind.RELEASE and not SEMVER.match(name[len(self.prefix):]):
            result.add_error(
                "branch", "Release branch must carry a semantic version",
                code="PATTERN_MISMATCH", value=name,
            )
        return result

    def configuration(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "prefix": self.prefix,
            "max_length": self.max_length,
        }

    def __repr__(self) -> str:
        return f"BranchStrategy(kind={self.kind.value!r})"


class MergeMethod(str, Enum):
    MERGE = "merge"
    SQUASH = "squash"
    REBASE = "rebase"


_TASK_TYPE_MERGES = {
    **dict.fromkeys(
        ("feature", "enhancement", "improvement", "refactor", "testing",
         "documentation", "analysis"),
        MergeMethod.SQUASH,
    ),
    **dict.fromkeys(("bug", "hotfix", "fix", "release"), MergeMethod.MERGE),
}

# Levels at which merging may happen without a human pressing the button.
_AUTO_MERGE_LEVELS = frozenset(
    {AutomationLevel.SEMI_AUTO, AutomationLevel.FULL_AUTO, AutomationLevel.ADAPTIVE}
)

MERGE_BLOCKERS = ("has_conflicts", "has_failing_tests", "requires_manual_review")


class MergeStrategy:
    """Chooses how a task branch is merged and whether that may be automated."""

    def __init__(
        self,
        default_method: MergeMethod | str = MergeMethod.SQUASH,
        *,
        delete_source_branch: bool = True,
        require_status_checks: bool = True,
    ) -> None:
        self.default_method = MergeMethod(default_method)
        self.delete_source_branch = delete_source_branch
        self.require_status_checks = require_status_checks

    def method_for(self, task: GitTask, context: GitWorkflowContext | None = None) -> MergeMethod:
        explicit = context.get("merge_method") if context is not None else None
        if explicit:
            return MergeMethod(explicit)
        return _TASK_TYPE_MERGES.get(task.type.lower(), self.default_method)

    def can_automate(
        self,
        level: AutomationLevel | str,
        context: GitWorkflowContext | Mapping[str, Any] | None = None,
    ) -> bool:
        """Whether a merge may run unattended at *level*.

        Any truthy blocker in *context* (conflicts, failing tests, manual
        review requested) vetoes automation.
        """
        if AutomationLevel.parse(level) not in _AUTO_MERGE_LEVELS:
            return False
        if context is None:
            return True
        data = context.data if isinstance(context, GitWorkflowContext) else context
        blockers = [key for key in MERGE_BLOCKERS if data.get(key)]
        if blockers:
            logger.info("git.merge.blocked", blockers=blockers)
            return False
        return True

    def merge_options(self, method: MergeMethod | str) -> dict[str, Any]:
        method = MergeMethod(method)
        options: dict[str, Any] = {
            "method": method.value,
            "delete_source_branch": self.delete_source_branch,
            "require_status_checks": self.require_status_checks,
            "force": method is MergeMethod.REBASE,
        }
        if method is MergeMethod.SQUASH:
            options["squash"] = True
        elif method is MergeMethod.MERGE:
            options["no_ff"] = True
        else:
            options["rebase"] = True
        return options

    def configuration(self) -> dict[str, Any]:
        return {
            "default_method": self.default_method.value,
            "delete_source_branch": self.delete_source_branch,
            "require_status_checks": self.require_status_checks,
        }


__all__ = [
    "BranchStrategy",
    "BranchStrategyKind",
    "MergeMethod",
    "MergeStrategy",
    "MAX_BRANCH_LENGTH",
    "slugify",
]
