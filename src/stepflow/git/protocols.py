"""Collaborator protocols for the git workflow.

The manager never talks to git or a hosting service itself; it calls
these narrow interfaces.  Methods may be plain functions or coroutines.

ARCHITECTURE
────────────
::

    GitService
      ├── .create_branch(project_path, branch, *, start_point, checkout)
      ├── .checkout_branch(project_path, branch)
      ├── .add_files(project_path)
      ├── .commit_changes(project_path, message)
      └── .merge_branch(project_path, branch, options) → {"merge_commit": ...}

    PullRequestManager
      └── .create_pull_request(project_path, data) → {"id": ..., "url": ...}

    ReviewService
      └── .review_pull_request(project_path, pull_request_id, options)
              → {"review_id", "status", "score", "recommendations", "success"}

Tags:
    stepflow, git, protocol, collaborator-interface
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

GIT_SERVICE_METHODS = (
    "create_branch",
    "checkout_branch",
    "add_files",
    "commit_changes",
    "merge_branch",
)


@runtime_checkable
class GitService(Protocol):
    """Local repository operations."""

    def create_branch(
        self,
        project_path: str,
        branch: str,
        *,
        start_point: str | None = None,
        checkout: bool = True,
    ) -> Any: ...

    def checkout_branch(self, project_path: str, branch: str) -> Any: ...

    def add_files(self, project_path: str) -> Any: ...

    def commit_changes(self, project_path: str, message: str) -> Any: ...

    def merge_branch(
        self, project_path: str, branch: str, options: Mapping[str, Any]
    ) -> Mapping[str, Any] | None: ...


@runtime_checkable
class PullRequestManager(Protocol):
    """Opens pull requests on whatever hosting service is in use."""

    def create_pull_request(
        self, project_path: str, data: Mapping[str, Any]
    ) -> Mapping[str, Any]: ...


@runtime_checkable
class ReviewService(Protocol):
    """Automated review of an open pull request."""

    def review_pull_request(
        self, project_path: str, pull_request_id: Any, options: Mapping[str, Any]
    ) -> Mapping[str, Any]: ...


__all__ = ["GitService", "PullRequestManager", "ReviewService", "GIT_SERVICE_METHODS"]
