"""Tests for StepBuilder instance caching and StepInstance behaviour."""

import pytest

from stepflow.core.errors import ConfigurationError, NotFoundError
from stepflow.orchestration import StepBuilder, WorkflowContext
from stepflow.orchestration.step_builder import completed_steps_of, data_of
from stepflow.validation import ValidationRule


class TestBuild:
    def test_merged_settings_superset_of_config(self, builder, add_step):
        add_step("lint", settings={"strict": True, "max_line": 100})

        instance = builder.build("lint", settings={"max_line": 120, "fix": True})

        assert instance.settings == {"strict": True, "max_line": 120, "fix": True}
        config_settings = instance.config.settings
        assert all(key in instance.settings for key in config_settings)

    def test_unknown_step(self, builder):
        with pytest.raises(NotFoundError):
            builder.build("missing")

    def test_negative_cache_size(self, registry):
        with pytest.raises(ConfigurationError):
            StepBuilder(registry, cache_size=-1)


class TestCache:
    def test_same_options_hit_cache(self, builder, add_step):
        add_step("lint")

        first = builder.build("lint", options={"path": "src"})
        second = builder.build("lint", options={"path": "src"})
        other = builder.build("lint", options={"path": "tests"})

        assert first is second
        assert other is not first
        assert builder.cache_info()["hits"] == 1
        assert builder.cache_info()["misses"] == 2

    def test_update_invalidates(self, registry, builder, add_step):
        add_step("lint", settings={"strict": True})
        stale = builder.build("lint")

        registry.update_step("lint", {"settings": {"strict": False}})
        fresh = builder.build("lint")

        assert fresh is not stale
        assert fresh.settings["strict"] is False

    def test_reregister_invalidates(self, builder, add_step):
        add_step("lint")
        stale = builder.build("lint")
        add_step("lint", order=9)

        assert builder.build("lint") is not stale

    def test_cached_instance_is_read_only(self, builder, add_step):
        add_step("lint", settings={"strict": True})
        instance = builder.build("lint", options={"path": "src"})

        with pytest.raises(TypeError):
            instance.options["path"] = "tests"
        with pytest.raises(TypeError):
            instance.settings["strict"] = False

        again = builder.build("lint", options={"path": "src"})
        assert again is instance
        assert again.options == {"path": "src"}
        assert again.settings == {"strict": True}

    @pytest.mark.asyncio
    async def test_executor_cannot_leak_into_cache(self, builder, add_step):
        async def mutating(context, options):
            options["path"] = "elsewhere"
            options["settings"]["strict"] = False
            return "ok"

        add_step("lint", mutating, settings={"strict": True})
        instance = builder.build("lint", options={"path": "src"})

        await instance.execute(WorkflowContext())

        cached = builder.build("lint", options={"path": "src"})
        assert cached.options == {"path": "src"}
        assert cached.settings == {"strict": True}

    def test_lru_eviction(self, registry, add_step):
        builder = StepBuilder(registry, cache_size=2)
        add_step("lint")
        for path in ("a", "b", "c"):
            builder.build("lint", options={"path": path})

        assert builder.cache_info()["size"] == 2

    def test_cache_disabled(self, registry, add_step):
        builder = StepBuilder(registry, cache_size=0)
        add_step("lint")

        assert builder.build("lint") is not builder.build("lint")

    def test_invalidate(self, builder, add_step):
        add_step("lint")
        add_step("test")
        builder.build("lint")
        builder.build("test")

        assert builder.invalidate("lint") == 1
        assert builder.invalidate() == 1


class TestStepInstance:
    def test_validate_missing_dependency(self, builder, add_step):
        add_step("test", dependencies=["lint"])
        instance = builder.build("test")

        result = instance.validate(WorkflowContext())

        assert result.errors[0].code == "MISSING_DEPENDENCY"
        assert result.errors[0].metadata["missing"] == ["lint"]

    def test_validate_dependency_satisfied_by_mapping(self, builder, add_step):
        add_step("test", dependencies=["lint"])

        assert builder.build("test").validate({"completed_steps": ["lint"]}).is_valid

    def test_validate_inactive_and_removed(self, registry, builder, add_step):
        add_step("lint")
        instance = builder.build("lint")

        registry.deactivate("lint")
        assert instance.validate({}).errors[0].code == "INACTIVE"

        registry.remove_step("lint")
        assert instance.validate({}).errors[0].code == "INVALID_REFERENCE"

    def test_with_rules_validates_context_data(self, builder, add_step):
        add_step("deploy")
        instance = builder.build("deploy").with_rules(
            ValidationRule("env-required", "environment", "required")
        )

        assert not instance.validate(WorkflowContext()).is_valid
        assert instance.validate(WorkflowContext(data={"environment": "prod"})).is_valid
        assert builder.build("deploy").rules == ()

    @pytest.mark.asyncio
    async def test_execute_passes_settings(self, builder, add_step):
        seen = {}

        async def capture(context, options):
            seen.update(options)
            return "ok"

        add_step("lint", capture, settings={"strict": True})
        instance = builder.build("lint", options={"path": "src"}, settings={"fix": True})

        record = await instance.execute(WorkflowContext())

        assert record.success
        assert seen == {"path": "src", "settings": {"strict": True, "fix": True}}


class TestHelpers:
    def test_completed_steps_of(self):
        assert completed_steps_of({"completed_steps": ["a"]}) == ["a"]
        assert completed_steps_of(object()) == []

    def test_data_of(self):
        context = WorkflowContext(data={"a": 1})

        assert data_of(context) == {"a": 1}
        assert data_of({"b": 2}) == {"b": 2}
