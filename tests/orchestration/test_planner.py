"""Tests for dependency ordering."""

import pytest

from stepflow.core.errors import ConfigurationError, CycleDetectedError, DependencyError
from stepflow.orchestration.planner import (
    find_cycle,
    order_steps,
    topological_order,
    validate_dependencies,
)


def _order(graph):
    items = list(graph.items())
    return [name for name, _ in order_steps(items, key=lambda i: i[0], dependencies=lambda i: i[1])]


class TestFindCycle:
    def test_dag_has_no_cycle(self):
        assert find_cycle({"a": [], "b": ["a"], "c": ["a", "b"]}) is None

    def test_cycle_path(self):
        cycle = find_cycle({"a": ["b"], "b": ["c"], "c": ["a"]})

        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"a", "b", "c"}

    def test_self_loop(self):
        assert find_cycle({"a": ["a"]}) == ["a", "a"]


class TestTopologicalOrder:
    def test_declared_order_kept_when_unconstrained(self):
        assert topological_order({"lint": [], "format": [], "audit": []}) == ["lint", "format", "audit"]

    def test_dependencies_first(self):
        assert topological_order({"test": ["build"], "build": []}) == ["build", "test"]

    def test_cycle_raises(self):
        with pytest.raises(CycleDetectedError):
            topological_order({"a": ["b"], "b": ["a"]})


class TestOrderSteps:
    def test_orders_items(self):
        assert _order({"deploy": ["test"], "test": ["build"], "build": []}) == ["build", "test", "deploy"]

    def test_unknown_dependency(self):
        with pytest.raises(DependencyError) as exc_info:
            _order({"test": ["build"]})

        assert exc_info.value.missing_deps == ["build"]

    def test_duplicate_names(self):
        with pytest.raises(ConfigurationError):
            order_steps(["a", "a"], key=lambda s: s, dependencies=lambda s: ())

    def test_validate_dependencies_ok(self):
        validate_dependencies({"a": [], "b": ["a"]})
