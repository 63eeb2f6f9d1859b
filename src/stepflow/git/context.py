"""Git workflow task, automation level and run context."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from stepflow.orchestration.context import WorkflowContext

DEFAULT_BASE_BRANCH = "main"


class AutomationLevel(str, Enum):
    """How much of the workflow runs without a human."""

    MANUAL = "manual"
    ASSISTED = "assisted"
    SEMI_AUTO = "semi_auto"
    FULL_AUTO = "full_auto"
    ADAPTIVE = "adaptive"

    @property
    def review_depth(self) -> str:
        return _REVIEW_DEPTH[self]

    @classmethod
    def parse(cls, value: AutomationLevel | str | None) -> AutomationLevel:
        """Coerce *value*; ``None`` means ``SEMI_AUTO``."""
        if value is None:
            return cls.SEMI_AUTO
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower().replace("-", "_"))
        except ValueError:
            raise ValueError(
                f"Unknown automation level: {value}. "
                f"Expected one of {[level.value for level in cls]}"
            ) from None


_REVIEW_DEPTH = {
    AutomationLevel.MANUAL: "none",
    AutomationLevel.ASSISTED: "basic",
    AutomationLevel.SEMI_AUTO: "standard",
    AutomationLevel.FULL_AUTO: "comprehensive",
    AutomationLevel.ADAPTIVE: "standard",
}


@dataclass(frozen=True)
class GitTask:
    """The unit of work a git workflow run delivers.

    Attributes:
        id: Task identifier, used in branch names and commit messages
        title: Short human title
        type: Task type (feature, bug, hotfix, release, refactor, ...)
        description: Longer description
        priority: Optional priority (low, medium, high, critical)
        tags: Free-form tags, become ``tag-*`` labels
        version: Release version, required for release branches
    """

    id: str
    title: str
    type: str = "task"
    description: str = ""
    priority: str | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)
    version: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> GitTask:
        tags: Iterable[str] = data.get("tags") or ()
        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            type=str(data.get("type") or "task"),
            description=str(data.get("description") or ""),
            priority=data.get("priority"),
            tags=tuple(tags),
            version=data.get("version"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "type": self.type,
            "description": self.description,
            "priority": self.priority,
            "tags": list(self.tags),
            "version": self.version,
        }


class GitWorkflowContext(WorkflowContext):
    """``WorkflowContext`` that also tracks branch, pull request, review and merge.

    Well-known data keys: ``project_path``, ``base_branch``,
    ``automation_level``, ``reviewers``, ``merge_method`` and the merge
    blockers ``has_conflicts``, ``has_failing_tests``,
    ``requires_manual_review``.
    """

    def __init__(
        self,
        task: GitTask,
        data: Mapping[str, Any] | None = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("workflow_type", "git")
        super().__init__(data=data, **kwargs)
        self.task = task
        self.branch: dict[str, Any] = {}
        self.pull_request: dict[str, Any] = {}
        self.review: dict[str, Any] = {}
        self.merge: dict[str, Any] = {}
        self.set("task_id", task.id)

    @property
    def project_path(self) -> str | None:
        return self.get("project_path")

    @property
    def base_branch(self) -> str:
        return self.get("base_branch") or DEFAULT_BASE_BRANCH

    @property
    def branch_name(self) -> str | None:
        return self.get("branch_name")

    @property
    def automation_level(self) -> AutomationLevel:
        return AutomationLevel.parse(self.get("automation_level"))

    def set_branch_info(self, branch: str, base_branch: str, **metadata: Any) -> None:
        self.branch = {"name": branch, "base": base_branch, **metadata}
        self.set("branch_name", branch)

    def set_pull_request_info(
        self, pull_request_id: Any, title: str, url: str | None, **metadata: Any
    ) -> None:
        self.pull_request = {"id": pull_request_id, "title": title, "url": url, **metadata}
        self.set("pull_request_id", pull_request_id)

    def set_review_info(self, review_id: Any, status: str, **metadata: Any) -> None:
        self.review = {"id": review_id, "status": status, **metadata}
        self.set("review_status", status)

    def set_merge_info(self, source: str, target: str, method: str, **metadata: Any) -> None:
        self.merge = {"source": source, "target": target, "method": method, **metadata}
        self.set("merge_method_used", method)

    def summary(self) -> dict[str, Any]:
        raw_level = self.get("automation_level")
        try:
            level = AutomationLevel.parse(raw_level).value
        except ValueError:
            level = str(raw_level)
        return {
            "workflow_id": self.workflow_id,
            "task": self.task.to_dict(),
            "state": self.state.value,
            "project_path": self.project_path,
            "automation_level": level,
            "branch": dict(self.branch),
            "pull_request": dict(self.pull_request),
            "review": dict(self.review),
            "merge": dict(self.merge),
        }


__all__ = ["AutomationLevel", "GitTask", "GitWorkflowContext", "DEFAULT_BASE_BRANCH"]
