"""
Shared pytest fixtures and configuration for stepflow tests.

This module provides:
- Settings cache reset for test isolation
- A fresh registry / builder / context per test (there is no global registry)
- Factories for step configs, registrations and flaky executors

Usage:
    Fixtures are auto-discovered by pytest.

    async def test_something(registry, add_step, context):
        add_step("lint")
        record = await registry.execute_step("lint", context)
"""

import os
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from stepflow.core.settings import reset_settings
from stepflow.orchestration import StepBuilder, StepDefinition, StepRegistry, WorkflowContext


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)
        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def clean_settings_fixture(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Drop cached settings and STEPFLOW_ env vars around each test."""
    for key in list(os.environ):
        if key.startswith("STEPFLOW_"):
            monkeypatch.delenv(key)
    reset_settings()
    yield
    reset_settings()


# =============================================================================
# Factories
# =============================================================================


class FlakyExecutor:
    """Fails the first ``failures`` calls, then succeeds."""

    def __init__(self, failures: int = 1, result: Any = "ok") -> None:
        self.failures = failures
        self.result = result
        self.calls = 0

    async def __call__(self, context, options):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError(f"attempt {self.calls} failed")
        return self.result


@pytest.fixture
def step_config() -> Callable[..., dict[str, Any]]:
    """Minimal valid step config: ``step_config("lint", order=2)``."""

    def _make(name: str, **overrides: Any) -> dict[str, Any]:
        config: dict[str, Any] = {
            "name": name,
            "description": f"{name} step",
            "type": "analysis",
        }
        config.update(overrides)
        return config

    return _make


@pytest.fixture
def add_step(registry, step_config) -> Callable[..., StepDefinition]:
    """Register a step on the test registry; no-op executor by default."""

    def _add(name: str, executor: Any = None, *, category: str = "general", **config: Any):
        async def _noop(context, options):
            return {"step": name}

        return registry.register(
            name,
            step_config(name, **config),
            category=category,
            executor=executor or _noop,
        )

    return _add


@pytest.fixture
def flaky() -> Callable[..., FlakyExecutor]:
    return FlakyExecutor


# =============================================================================
# Core objects
# =============================================================================


@pytest.fixture
def registry() -> StepRegistry:
    return StepRegistry()


@pytest.fixture
def builder(registry: StepRegistry) -> StepBuilder:
    return StepBuilder(registry)


@pytest.fixture
def context() -> WorkflowContext:
    return WorkflowContext(workflow_id="wf-test", data={"project_path": "/repo"})
