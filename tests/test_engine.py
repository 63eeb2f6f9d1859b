"""Tests for the create_engine composition root."""

import pytest

from stepflow import StepflowSettings, WorkflowContext, create_engine


class TestCreateEngine:
    def test_wires_collaborators_from_settings(self):
        settings = StepflowSettings(
            parallel_max_concurrency=3,
            parallel_timeout_seconds=5,
            step_cache_size=8,
            default_step_version="2.0.0",
        )

        engine = create_engine(settings, configure_logs=False)

        assert engine.settings is settings
        assert engine.parallel.policy.max_concurrency == 3
        assert engine.parallel.policy.timeout == 5
        assert engine.builder.registry is engine.registry
        assert engine.builder.cache_info()["max_size"] == 8

        definition = engine.registry.register(
            "lint", {"name": "lint", "description": "Lint", "type": "analysis"}
        )
        assert definition.config.version == "2.0.0"

    def test_every_call_is_independent(self):
        first = create_engine(configure_logs=False)
        second = create_engine(configure_logs=False)

        first.registry.register("lint", {"name": "lint", "description": "Lint", "type": "analysis"})

        assert second.registry.has_step("lint") is False

    @pytest.mark.asyncio
    async def test_executes_registered_step(self):
        engine = create_engine(configure_logs=False)

        async def run_lint(context, options):
            return {"warnings": 0}

        engine.registry.register(
            "lint",
            {"name": "lint", "description": "Lint", "type": "analysis"},
            executor=run_lint,
        )
        context = WorkflowContext()

        record = await engine.registry.execute_step("lint", context)

        assert record.success
        assert record.result == {"warnings": 0}
        assert record.duration >= 0
        assert engine.registry.get_execution_statistics()["total_executions"] == 1
        assert context.completed_steps == ["lint"]
