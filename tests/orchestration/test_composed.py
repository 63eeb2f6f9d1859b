"""Tests for ComposedWorkflow validation, execution, cancellation and rollback."""

import pytest

from stepflow.core.errors import ConfigurationError, CycleDetectedError, DependencyError, StateError
from stepflow.execution import CancellationToken
from stepflow.orchestration import (
    CallbackRollback,
    ComposedWorkflow,
    ContextState,
    WorkflowContext,
)
from stepflow.validation import ValidationResult, ValidationRule


class PlainStep:
    """A WorkflowStep that does not come from the registry."""

    def __init__(self, name, value="done", fail=False, dependencies=()):
        self.name = name
        self.value = value
        self.fail = fail
        self.dependencies = list(dependencies)
        self.executed = 0

    def validate(self, context):
        return ValidationResult()

    async def execute(self, context):
        self.executed += 1
        if self.fail:
            raise RuntimeError(f"{self.name} exploded")
        return self.value


class RecordingRollback:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    async def rollback(self, context, failed_step_index, results_so_far):
        self.calls.append((failed_step_index, [r.step for r in results_so_far]))
        if self.fail:
            raise RuntimeError("cannot undo")
        return "rolled back"


class TestConstruction:
    def test_rejects_non_step(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ComposedWorkflow([PlainStep("a"), object()])

        assert exc_info.value.key == "steps[1]"

    def test_rejects_string(self):
        with pytest.raises(ConfigurationError):
            ComposedWorkflow("lint")

    def test_rejects_rollback_without_method(self):
        with pytest.raises(ConfigurationError):
            ComposedWorkflow([PlainStep("a")], rollback=object())

    def test_order_by_dependencies(self):
        steps = [
            PlainStep("test", dependencies=["build"]),
            PlainStep("build", dependencies=["checkout"]),
            PlainStep("checkout"),
        ]

        workflow = ComposedWorkflow(steps, order_by_dependencies=True)

        assert workflow.step_names == ["checkout", "build", "test"]

    def test_cycle_detected(self):
        steps = [PlainStep("a", dependencies=["b"]), PlainStep("b", dependencies=["a"])]

        with pytest.raises(CycleDetectedError):
            ComposedWorkflow(steps, order_by_dependencies=True)

    def test_unknown_dependency(self):
        with pytest.raises(DependencyError):
            ComposedWorkflow([PlainStep("a", dependencies=["ghost"])], order_by_dependencies=True)


class TestValidation:
    def test_earlier_steps_satisfy_dependencies(self, builder, add_step):
        add_step("lint")
        add_step("test", dependencies=["lint"])
        workflow = ComposedWorkflow([builder.build("lint"), builder.build("test")])

        assert workflow.validate(WorkflowContext()).is_valid

    def test_wrong_order_reported_with_prefix(self, builder, add_step):
        add_step("lint")
        add_step("test", dependencies=["lint"])
        workflow = ComposedWorkflow([builder.build("test"), builder.build("lint")])

        result = workflow.validate(WorkflowContext())

        assert result.errors[0].field == "steps[0].dependencies"

    def test_rules_checked_against_data(self):
        workflow = ComposedWorkflow(
            [PlainStep("a")],
            rules=[ValidationRule("branch", "branch", "required")],
        )

        assert not workflow.validate(WorkflowContext()).is_valid
        assert workflow.validate(WorkflowContext(data={"branch": "main"})).is_valid

    def test_validator_exception_captured(self):
        class Broken(PlainStep):
            def validate(self, context):
                raise RuntimeError("bad validator")

        result = ComposedWorkflow([Broken("a")]).validate(WorkflowContext())

        assert result.errors[0].code == "VALIDATOR_EXCEPTION"


class TestExecution:
    @pytest.mark.asyncio
    async def test_success(self, builder, add_step):
        add_step("lint")
        add_step("test", dependencies=["lint"])
        context = WorkflowContext()
        workflow = ComposedWorkflow([builder.build("lint"), builder.build("test")], name="ci")

        run = await workflow.execute(context)

        assert run.success is True
        assert [r.step for r in run.results] == ["lint", "test"]
        assert run.duration >= 0
        assert context.state == ContextState.COMPLETED
        assert context.result == {"lint": {"step": "lint"}, "test": {"step": "test"}}
        assert context.get_metric("steps_executed") == 2
        assert len(run.execution_history) == 2

    @pytest.mark.asyncio
    async def test_failure_stops_and_rolls_back_once(self):
        a, b, c = PlainStep("a"), PlainStep("b", fail=True), PlainStep("c")
        rollback = RecordingRollback()
        context = WorkflowContext()

        run = await ComposedWorkflow([a, b, c], rollback=rollback).execute(context)

        assert run.success is False
        assert run.failed_step_index == 1
        assert run.error == "b exploded"
        assert rollback.calls == [(1, ["a", "b"])]
        assert run.rollback_result == "rolled back"
        assert c.executed == 0
        assert context.state == ContextState.FAILED

    @pytest.mark.asyncio
    async def test_callback_rollback(self):
        seen = []
        rollback = CallbackRollback(lambda ctx, index, results: seen.append(index))

        await ComposedWorkflow([PlainStep("a", fail=True)], rollback=rollback).execute(WorkflowContext())

        assert seen == [0]

    @pytest.mark.asyncio
    async def test_rollback_failure_is_reported(self):
        rollback = RecordingRollback(fail=True)

        run = await ComposedWorkflow(
            [PlainStep("a"), PlainStep("b", fail=True)], rollback=rollback
        ).execute(WorkflowContext())

        assert run.success is False
        assert run.error == "b exploded"
        assert run.metadata["rollback_error"]["original_error"] == "b exploded"

    @pytest.mark.asyncio
    async def test_failed_outcome_value(self, builder, add_step):
        async def failing(context, options):
            return {"success": False, "error": "tests red"}

        add_step("test", failing)

        run = await ComposedWorkflow([builder.build("test")]).execute(WorkflowContext())

        assert run.error == "tests red"
        assert run.failed_step_index == 0

    @pytest.mark.asyncio
    async def test_validation_failure_runs_nothing(self):
        step = PlainStep("a")
        workflow = ComposedWorkflow([step], rules=[ValidationRule("b", "branch", "required")])
        context = WorkflowContext()

        run = await workflow.execute(context)

        assert run.success is False
        assert run.error.startswith("Validation failed")
        assert step.executed == 0
        assert context.state == ContextState.FAILED
        assert run.failed_step_index is None

    @pytest.mark.asyncio
    async def test_empty_workflow_succeeds(self):
        context = WorkflowContext()

        run = await ComposedWorkflow([]).execute(context)

        assert run.success is True
        assert run.results == []
        assert context.state == ContextState.COMPLETED

    @pytest.mark.asyncio
    async def test_terminal_context_rejected(self):
        context = WorkflowContext()
        context.cancel("stop")

        with pytest.raises(StateError):
            await ComposedWorkflow([PlainStep("a")]).execute(context)

    @pytest.mark.asyncio
    async def test_already_executing_context(self):
        context = WorkflowContext()
        context.start()

        run = await ComposedWorkflow([PlainStep("a")]).execute(context)

        assert run.success is True


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_before_first_step(self):
        step = PlainStep("a")
        token = CancellationToken()
        token.cancel("user abort")
        rollback = RecordingRollback()
        context = WorkflowContext()

        run = await ComposedWorkflow([step], rollback=rollback).execute(context, cancellation=token)

        assert run.success is False
        assert run.metadata["cancelled"] is True
        assert "user abort" in run.error
        assert step.executed == 0
        assert rollback.calls == [(0, [])]
        assert context.state == ContextState.CANCELLED

    @pytest.mark.asyncio
    async def test_cancelled_between_steps(self):
        token = CancellationToken()

        class Cancelling(PlainStep):
            async def execute(self, context):
                token.cancel("enough")
                return await super().execute(context)

        first, second = Cancelling("a"), PlainStep("b")

        run = await ComposedWorkflow([first, second]).execute(WorkflowContext(), cancellation=token)

        assert first.executed == 1
        assert second.executed == 0
        assert run.failed_step_index == 1
        assert [r.step for r in run.results] == ["a"]


class ContextEndingStep(PlainStep):
    """Moves the shared context to a terminal state from inside the step."""

    def __init__(self, name, end, value="done"):
        super().__init__(name, value=value)
        self.end = end

    async def execute(self, context):
        self.end(context)
        return await super().execute(context)


class TestStepEndsContext:
    @pytest.mark.asyncio
    async def test_step_cancels_and_reports_failure(self):
        step = ContextEndingStep("a", lambda ctx: ctx.cancel("user abort"), value={"success": False})
        rollback = RecordingRollback()
        context = WorkflowContext()

        run = await ComposedWorkflow([step], rollback=rollback).execute(context)

        assert run.success is False
        assert run.failed_step_index == 0
        assert run.rollback_result == "rolled back"
        assert run.metadata["cancelled"] is True
        assert run.metadata["terminated_by"] == "a"
        assert context.state == ContextState.CANCELLED

    @pytest.mark.asyncio
    async def test_step_fails_context_but_returns_success(self):
        first = ContextEndingStep("a", lambda ctx: ctx.fail("disk full"))
        second = PlainStep("b")
        context = WorkflowContext()

        run = await ComposedWorkflow([first, second]).execute(context)

        assert run.success is False
        assert run.error == "disk full"
        assert run.failed_step_index == 0
        assert second.executed == 0
        assert context.state == ContextState.FAILED

    @pytest.mark.asyncio
    async def test_step_completes_context_early(self):
        first = ContextEndingStep("a", lambda ctx: ctx.complete())
        second = PlainStep("b")

        run = await ComposedWorkflow([first, second]).execute(WorkflowContext())

        assert run.success is False
        assert "ended the workflow (completed)" in run.error
        assert second.executed == 0
