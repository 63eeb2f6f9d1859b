"""Git Workflow Manager: deliver a task as branch, commits, PR, review and merge.

Manifesto:
    The git workflow is the same engine with a fixed phase list.  The
    manager owns no git or hosting logic; it drives narrow collaborators
    (``GitService``, ``PullRequestManager``, ``ReviewService``) and lets a
    ``ComposedWorkflow`` do the actual work between branching and the
    pull request.  A run never raises: every failure ends up in the
    returned ``GitWorkflowResult`` with an ``error_code``.

ARCHITECTURE
────────────
::

    GitWorkflowManager.execute(task, context_data, workflow)
      │
      ├── GitWorkflowValidator.validate      ─ VALIDATION_FAILED
      ├── branch        BranchStrategy.generate/validate → GitService.create_branch
      ├── steps         ComposedWorkflow on a child context
      │                 (default: checkout → add → commit)
      ├── pull_request  skipped: full_auto, no manager
      ├── review        skipped: manual, PR skipped, no service
      └── merge         skipped: manual, review failed, automation blocked

Example::

    manager = GitWorkflowManager(git, pull_request_manager=prs, review_service=reviews)
    result = await manager.execute(
        GitTask(id="42", title="Add login", type="feature"),
        {"project_path": "/repo", "automation_level": "semi_auto"},
    )
    result.success, result.completed_phases

Tags:
    stepflow, git, workflow, branch, pull-request, merge

Doc-Types:
    api-reference
"""

from __future__ import annotations

import functools
import time
from collections.abc import Iterable, Mapping
from typing import Any

from stepflow.core.errors import describe_error
from stepflow.core.logging import LogContext, get_logger
from stepflow.git.context import AutomationLevel, GitTask, GitWorkflowContext
from stepflow.git.errors import GitWorkflowError
from stepflow.git.result import GitWorkflowResult, PhaseResult
from stepflow.git.strategies import BranchStrategy, MergeStrategy
from stepflow.git.validator import GitWorkflowValidator
from stepflow.orchestration.composed import ComposedWorkflow
from stepflow.orchestration.context import WorkflowContext
from stepflow.orchestration.steps import call_maybe_async

logger = get_logger(__name__)


def commit_message(task: GitTask) -> str:
    title = task.title or task.description or "Workflow execution"
    lines = [f"{task.type}: {title}", "", f"Task ID: {task.id}"]
    if task.description:
        lines += ["", task.description]
    return "\n".join(lines)


def pull_request_title(task: GitTask) -> str:
    return f"[{task.type.upper()}] {task.title or task.description or 'Workflow changes'}"


def pull_request_labels(task: GitTask) -> list[str]:
    labels = [f"type-{task.type}", "automated"]
    if task.priority:
        labels.append(f"priority-{task.priority}")
    labels.extend(f"tag-{tag}" for tag in task.tags)
    return labels


def pull_request_description(task: GitTask, steps: PhaseResult) -> str:
    return "\n".join(
        [
            f"## Task: {task.title}",
            f"**Type:** {task.type}",
            f"**Task ID:** {task.id}",
            "",
            "## Execution",
            f"- Status: {'succeeded' if steps.success else 'failed'}",
            f"- Steps: {len(steps.data.get('steps', []))}",
            f"- Duration: {steps.duration:.3f}s",
        ]
    )


class GitWorkflowManager:
    """Runs the git workflow phases for one task at a time.

    Args:
        git_service: Local repository operations (required).
        pull_request_manager: Opens pull requests; without one the phase is skipped.
        review_service: Automated review; without one the phase is skipped.
        validator: Pre-flight checks; defaults to ``GitWorkflowValidator()``.
        branch_strategy: Fixed strategy; by default resolved per task.
        merge_strategy: Merge method and automation gate.
    """

    def __init__(
        self,
        git_service: Any,
        *,
        pull_request_manager: Any = None,
        review_service: Any = None,
        validator: GitWorkflowValidator | None = None,
        branch_strategy: BranchStrategy | None = None,
        merge_strategy: MergeStrategy | None = None,
    ) -> None:
        if git_service is None:
            raise GitWorkflowError.configuration_error("git_service is required")
        self.git_service = git_service
        self.pull_request_manager = pull_request_manager
        self.review_service = review_service
        self.validator = validator or GitWorkflowValidator()
        self.branch_strategy = branch_strategy
        self.merge_strategy = merge_strategy or MergeStrategy()

    async def execute(
        self,
        task: GitTask | Mapping[str, Any],
        context_data: Mapping[str, Any] | None = None,
        workflow: ComposedWorkflow | None = None,
        *,
        granted: Iterable[str] | None = None,
    ) -> GitWorkflowResult:
        """Run every phase for *task* and report what happened."""
        start = time.perf_counter()
        try:
            task = self._coerce_task(task)
        except GitWorkflowError as exc:
            result = GitWorkflowResult(task_id=str(_task_id(task)))
            result.set_error(exc.message, exc.error_code)
            logger.error("git.workflow.failed", error_code=exc.error_code, error=exc.message)
            return result

        context = GitWorkflowContext(task, context_data)
        result = GitWorkflowResult(task_id=task.id)

        async with LogContext(workflow_id=context.workflow_id, task_id=task.id):
            logger.info(
                "git.workflow.start",
                task_type=task.type,
                project_path=context.project_path,
                automation_level=context.get("automation_level"),
            )
            try:
                validation = self.validator.validate(task, context, self.git_service, granted)
                if not validation.is_valid:
                    raise GitWorkflowError.validation_failed(
                        "Git workflow validation failed: " + "; ".join(validation.error_messages()),
                        validation,
                    )
                context.start(task_id=task.id)

                await self._create_branch(task, context, result)
                steps = await self._run_steps(task, context, workflow, result)
                pull_request = await self._create_pull_request(task, context, steps, result)
                review = await self._review(task, context, pull_request, result)
                await self._merge(task, context, review, result)
            except GitWorkflowError as exc:
                result.set_error(exc.message, exc.error_code)
                if exc.validation_result is not None:
                    result.context["validation"] = exc.validation_result.to_dict()
                if not context.is_terminal:
                    context.fail(exc)
                logger.error("git.workflow.failed", error_code=exc.error_code, error=exc.message)
            else:
                if result.success:
                    context.complete(result.summary())
                    logger.info("git.workflow.complete", phases=result.completed_phases)
                else:
                    context.fail(f"Phases failed: {', '.join(result.failed_phases)}")
                    logger.warning("git.workflow.incomplete", failed=result.failed_phases)

        result.duration = time.perf_counter() - start
        result.context.update(context.summary())
        return result

    def _coerce_task(self, task: GitTask | Mapping[str, Any]) -> GitTask:
        if isinstance(task, GitTask):
            return task
        if not isinstance(task, Mapping):
            raise GitWorkflowError.validation_failed(f"Unsupported task type: {type(task).__name__}")
        check = self.validator.validate_task(task)
        if not check.is_valid:
            raise GitWorkflowError.validation_failed(
                "Invalid task: " + "; ".join(check.error_messages()), check
            )
        return GitTask.from_mapping(task)

    # =========================================================================
    # Phases
    # =========================================================================

    async def _create_branch(
        self, task: GitTask, context: GitWorkflowContext, result: GitWorkflowResult
    ) -> PhaseResult:
        phase_start = time.perf_counter()
        strategy = self.branch_strategy or BranchStrategy.for_task(task)
        try:
            branch = strategy.generate(task)
        except GitWorkflowError as exc:
            result.record_phase("branch", PhaseResult.fail(exc.message))
            raise GitWorkflowError.branch_creation_failed("<unnamed>", exc.message) from exc

        validation = strategy.validate(branch)
        if not validation.is_valid:
            reason = "; ".join(validation.error_messages())
            result.record_phase("branch", PhaseResult.fail(reason, branch_name=branch))
            raise GitWorkflowError.branch_creation_failed(branch, reason)

        base = context.base_branch
        logger.info("git.branch.create", branch=branch, base=base, strategy=strategy.kind.value)
        try:
            await call_maybe_async(
                functools.partial(
                    self.git_service.create_branch,
                    context.project_path,
                    branch,
                    start_point=base,
                    checkout=True,
                )
            )
        except Exception as exc:
            result.record_phase("branch", PhaseResult.fail(describe_error(exc), branch_name=branch))
            raise GitWorkflowError.branch_creation_failed(branch, describe_error(exc)) from exc

        context.set_branch_info(branch, base, strategy=strategy.kind.value)
        return result.record_phase(
            "branch",
            PhaseResult.ok(
                time.perf_counter() - phase_start,
                branch_name=branch,
                base_branch=base,
                strategy=strategy.kind.value,
            ),
        )

    async def _run_steps(
        self,
        task: GitTask,
        context: GitWorkflowContext,
        workflow: ComposedWorkflow | None,
        result: GitWorkflowResult,
    ) -> PhaseResult:
        phase_start = time.perf_counter()
        if workflow is None:
            try:
                phase = await self._default_steps(task, context, phase_start)
            except GitWorkflowError as exc:
                result.record_phase("steps", PhaseResult.fail(exc.message, workflow="default"))
                raise
            return result.record_phase("steps", phase)

        child = WorkflowContext(
            workflow_type="git.steps",
            data=context.data,
            metadata={"parent_workflow_id": context.workflow_id},
        )
        run = await workflow.execute(child)
        context.update(child.data)
        for record in child.execution_history:
            context.record_execution(record)

        steps = [r.to_dict() for r in run.results]
        if not run.success:
            reason = run.error or "workflow failed"
            result.record_phase(
                "steps",
                PhaseResult.fail(
                    reason,
                    time.perf_counter() - phase_start,
                    workflow=workflow.name,
                    steps=steps,
                    failed_step_index=run.failed_step_index,
                ),
            )
            raise GitWorkflowError.workflow_execution_failed("steps", reason)

        return result.record_phase(
            "steps",
            PhaseResult.ok(time.perf_counter() - phase_start, workflow=workflow.name, steps=steps),
        )

    async def _default_steps(
        self, task: GitTask, context: GitWorkflowContext, phase_start: float
    ) -> PhaseResult:
        """Checkout the task branch, stage everything, commit.

        Nothing to add or commit is not a failure; those steps are marked
        skipped.
        """
        path, branch = context.project_path, context.branch_name
        steps: list[dict[str, Any]] = []
        try:
            await call_maybe_async(self.git_service.checkout_branch, path, branch)
        except Exception as exc:
            raise GitWorkflowError.workflow_execution_failed(
                "checkout_branch", describe_error(exc)
            ) from exc
        steps.append({"name": "checkout_branch", "success": True})

        for name, call in (
            ("add_files", functools.partial(self.git_service.add_files, path)),
            ("commit_changes", functools.partial(self.git_service.commit_changes, path, commit_message(task))),
        ):
            try:
                await call_maybe_async(call)
            except Exception as exc:
                logger.info("git.steps.skipped", step=name, reason=describe_error(exc))
                steps.append({"name": name, "success": True, "skipped": True, "reason": describe_error(exc)})
            else:
                steps.append({"name": name, "success": True})

        return PhaseResult.ok(
            time.perf_counter() - phase_start,
            workflow="default",
            steps=steps,
        )

    async def _create_pull_request(
        self,
        task: GitTask,
        context: GitWorkflowContext,
        steps: PhaseResult,
        result: GitWorkflowResult,
    ) -> PhaseResult:
        if context.automation_level is AutomationLevel.FULL_AUTO:
            return result.record_phase("pull_request", PhaseResult.skip("full_auto_mode"))
        if self.pull_request_manager is None:
            return result.record_phase("pull_request", PhaseResult.skip("no_pull_request_manager"))

        phase_start = time.perf_counter()
        data = {
            "title": pull_request_title(task),
            "description": pull_request_description(task, steps),
            "source_branch": context.branch_name,
            "target_branch": context.base_branch,
            "labels": pull_request_labels(task),
            "reviewers": list(context.get("reviewers") or []),
        }
        logger.info("git.pull_request.create", title=data["title"], source=data["source_branch"])
        try:
            response = dict(
                await call_maybe_async(
                    self.pull_request_manager.create_pull_request, context.project_path, data
                )
                or {}
            )
        except Exception as exc:
            result.record_phase("pull_request", PhaseResult.fail(describe_error(exc)))
            raise GitWorkflowError.pull_request_creation_failed(
                data["title"], describe_error(exc)
            ) from exc

        context.set_pull_request_info(
            response.get("id"), data["title"], response.get("url"), labels=data["labels"]
        )
        return result.record_phase(
            "pull_request",
            PhaseResult.ok(
                time.perf_counter() - phase_start,
                pull_request_id=response.get("id"),
                pull_request_url=response.get("url"),
                **data,
            ),
        )

    async def _review(
        self,
        task: GitTask,
        context: GitWorkflowContext,
        pull_request: PhaseResult,
        result: GitWorkflowResult,
    ) -> PhaseResult:
        level = context.automation_level
        if level is AutomationLevel.MANUAL:
            return result.record_phase("review", PhaseResult.skip("manual_mode"))
        if pull_request.skipped:
            return result.record_phase("review", PhaseResult.skip("pr_skipped"))
        if self.review_service is None:
            return result.record_phase("review", PhaseResult.skip("no_review_service"))

        phase_start = time.perf_counter()
        pr_id = pull_request.data.get("pull_request_id")
        options = {"task_type": task.type, "automation_level": level.value, "review_depth": level.review_depth}
        try:
            response = dict(
                await call_maybe_async(
                    self.review_service.review_pull_request, context.project_path, pr_id, options
                )
                or {}
            )
        except Exception as exc:
            logger.warning("git.review.failed", pull_request_id=pr_id, error=describe_error(exc))
            context.set_review_info("auto-review", "failed")
            return result.record_phase(
                "review", PhaseResult.fail(describe_error(exc), time.perf_counter() - phase_start)
            )

        review_id = response.get("review_id") or "auto-review"
        status = response.get("status") or "completed"
        context.set_review_info(review_id, status, score=response.get("score"))
        phase = PhaseResult(
            success=response.get("success", True) is not False,
            duration=time.perf_counter() - phase_start,
            error=None if response.get("success", True) is not False else f"Review {status}",
            data={
                "review_id": review_id,
                "status": status,
                "score": response.get("score", 0),
                "recommendations": list(response.get("recommendations") or []),
                "review_depth": level.review_depth,
            },
        )
        return result.record_phase("review", phase)

    async def _merge(
        self,
        task: GitTask,
        context: GitWorkflowContext,
        review: PhaseResult,
        result: GitWorkflowResult,
    ) -> PhaseResult:
        level = context.automation_level
        if level is AutomationLevel.MANUAL:
            return result.record_phase("merge", PhaseResult.skip("manual_mode"))
        if not review.success:
            return result.record_phase("merge", PhaseResult.skip("review_failed"))
        if not self.merge_strategy.can_automate(level, context):
            return result.record_phase("merge", PhaseResult.skip("merge_automation_blocked"))

        phase_start = time.perf_counter()
        method = self.merge_strategy.method_for(task, context)
        options = self.merge_strategy.merge_options(method)
        source, target = context.branch_name, context.base_branch
        options["target_branch"] = target
        logger.info("git.merge.start", source=source, target=target, method=method.value)
        try:
            response = dict(
                await call_maybe_async(
                    self.git_service.merge_branch, context.project_path, source, options
                )
                or {}
            )
        except Exception as exc:
            result.record_phase("merge", PhaseResult.fail(describe_error(exc)))
            raise GitWorkflowError.merge_failed(source, target, describe_error(exc)) from exc

        context.set_merge_info(source, target, method.value, merge_commit=response.get("merge_commit"))
        return result.record_phase(
            "merge",
            PhaseResult.ok(
                time.perf_counter() - phase_start,
                source_branch=source,
                target_branch=target,
                method=method.value,
                merge_commit=response.get("merge_commit"),
            ),
        )

    def configuration(self) -> dict[str, Any]:
        return {
            "has_pull_request_manager": self.pull_request_manager is not None,
            "has_review_service": self.review_service is not None,
            "branch_strategy": self.branch_strategy.configuration() if self.branch_strategy else "per-task",
            "merge_strategy": self.merge_strategy.configuration(),
        }


def _task_id(task: Any) -> Any:
    if isinstance(task, Mapping):
        return task.get("id", "")
    return getattr(task, "id", "")


__all__ = [
    "GitWorkflowManager",
    "commit_message",
    "pull_request_title",
    "pull_request_labels",
]
