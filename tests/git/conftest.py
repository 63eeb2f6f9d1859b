"""Fakes for the git workflow collaborators."""

from typing import Any

import pytest


class FakeGitService:
    """Records every call; ``fail_on`` names methods that raise."""

    def __init__(self, fail_on: tuple[str, ...] = ()) -> None:
        self.fail_on = set(fail_on)
        self.calls: list[tuple[str, tuple, dict]] = []

    def _record(self, method: str, *args: Any, **kwargs: Any) -> None:
        self.calls.append((method, args, kwargs))
        if method in self.fail_on:
            raise RuntimeError(f"{method} failed")

    def create_branch(self, project_path, branch, *, start_point=None, checkout=True):
        self._record("create_branch", project_path, branch, start_point=start_point, checkout=checkout)
        return {"branch": branch}

    def checkout_branch(self, project_path, branch):
        self._record("checkout_branch", project_path, branch)

    def add_files(self, project_path):
        self._record("add_files", project_path)

    def commit_changes(self, project_path, message):
        self._record("commit_changes", project_path, message)
        return {"commit": "abc123"}

    def merge_branch(self, project_path, branch, options):
        self._record("merge_branch", project_path, branch, options=options)
        return {"merge_commit": "def456"}

    def called(self, method: str) -> list[tuple[tuple, dict]]:
        return [(args, kwargs) for name, args, kwargs in self.calls if name == method]


class FakePullRequestManager:
    def __init__(self, fail: bool = False, response: Any = None) -> None:
        self.fail = fail
        self.response = response if response is not None else {"id": 17, "url": "https://example.test/pr/17"}
        self.requests: list[dict] = []

    async def create_pull_request(self, project_path, data):
        self.requests.append(data)
        if self.fail:
            raise RuntimeError("GitHub API down")
        return self.response


class FakeReviewService:
    def __init__(self, response: dict | None = None, fail: bool = False) -> None:
        self.response = response if response is not None else {"success": True, "score": 92}
        self.fail = fail
        self.reviews: list[tuple] = []

    async def review_pull_request(self, project_path, pull_request_id, options):
        self.reviews.append((pull_request_id, options))
        if self.fail:
            raise RuntimeError("reviewer crashed")
        return self.response


@pytest.fixture
def repo(tmp_path):
    (tmp_path / ".git").mkdir()
    return tmp_path


@pytest.fixture
def git_service() -> FakeGitService:
    return FakeGitService()


@pytest.fixture
def pr_manager() -> FakePullRequestManager:
    return FakePullRequestManager()


@pytest.fixture
def review_service() -> FakeReviewService:
    return FakeReviewService()


@pytest.fixture
def feature_task() -> dict[str, Any]:
    return {
        "id": "T-42",
        "title": "Add login page",
        "type": "feature",
        "priority": "medium",
        "tags": ["ui"],
        "description": "Login form with SSO",
    }


@pytest.fixture
def make_git() -> type[FakeGitService]:
    return FakeGitService


@pytest.fixture
def make_pr_manager() -> type[FakePullRequestManager]:
    return FakePullRequestManager


@pytest.fixture
def make_review_service() -> type[FakeReviewService]:
    return FakeReviewService
