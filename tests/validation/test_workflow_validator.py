"""Tests for WorkflowValidator recorders and pre-flight checks."""

from stepflow.orchestration import WorkflowContext
from stepflow.validation import WorkflowValidator
from stepflow.validation.validator import Codes


class _Service:
    def create_branch(self):
        pass


class TestRecorders:
    def test_recorders_chain_and_accumulate(self):
        validator = (
            WorkflowValidator()
            .required("title")
            .pattern("branch", r"^feature/", value="main")
            .enum("priority", "urgent!", ["low", "high"])
        )

        codes = [issue.code for issue in validator.result.errors]
        assert codes == [Codes.REQUIRED, Codes.PATTERN_MISMATCH, Codes.INVALID_ENUM]
        assert validator.is_valid is False

    def test_length_message(self):
        validator = WorkflowValidator().length("branch", 60, max_length=50)

        assert validator.result.errors[0].message == "branch length must be at most 50 (got 60)"

    def test_warning_keeps_valid(self):
        validator = WorkflowValidator().warning("repository", "shallow clone")

        assert validator.is_valid

    def test_reset(self):
        validator = WorkflowValidator().required("x")
        validator.reset()

        assert validator.is_valid


class TestPreflightChecks:
    def test_validate_task_none(self):
        result = WorkflowValidator().validate_task(None)

        assert result.errors[0].field == "task"

    def test_validate_task_missing_fields(self):
        result = WorkflowValidator().validate_task({"id": "T-1", "title": " "})

        assert [issue.field for issue in result.errors] == ["task.title"]

    def test_validate_context_accepts_workflow_context(self):
        context = WorkflowContext(data={"project_path": "/repo"})
        validator = WorkflowValidator()

        assert validator.validate_context(context, ["project_path"]).is_valid
        assert not validator.validate_context(context, ["base_branch"]).is_valid

    def test_validate_service(self):
        validator = WorkflowValidator()

        assert validator.validate_service("git", _Service(), ["create_branch"]).is_valid
        missing = validator.validate_service("git", _Service(), ["merge_branch"])
        assert missing.errors[0].field == "git.merge_branch"
        unavailable = validator.validate_service("git", None)
        assert unavailable.errors[0].code == Codes.SERVICE_UNAVAILABLE

    def test_validate_repository(self, tmp_path):
        validator = WorkflowValidator()

        no_git = validator.validate_repository(tmp_path)
        assert no_git.is_valid
        assert no_git.warnings[0].code == "NOT_A_GIT_ROOT"

        (tmp_path / ".git").mkdir()
        assert validator.validate_repository(tmp_path).warnings == ()

        missing = validator.validate_repository(tmp_path / "nope")
        assert missing.errors[0].code == Codes.REPOSITORY_INVALID

    def test_validate_permissions(self):
        result = WorkflowValidator().validate_permissions(["read"], ["write", "read", "admin"])

        assert [issue.metadata["permission"] for issue in result.errors] == ["admin", "write"]


class TestReadiness:
    def test_readiness_merges_checks_and_resets(self, tmp_path):
        validator = WorkflowValidator().required("stale")

        result = validator.validate_readiness(
            task={"id": "T-1", "title": "Add login"},
            context={"project_path": str(tmp_path)},
            required_keys=["project_path"],
            services={"git": (None, ())},
            repository=tmp_path,
            granted=["read"],
            required_permissions=["write"],
        )

        assert result is validator.result
        fields = [issue.field for issue in result.errors]
        assert "stale" not in fields
        assert fields == ["git", "permissions"]

    def test_readiness_skips_unsupplied_checks(self):
        assert WorkflowValidator().validate_readiness().is_valid
