"""
Step Planner - orders steps by their declared dependencies.

Used by ``ComposedWorkflow(order_by_dependencies=True)`` at construction
time:
1. Validate every dependency names a step in the same workflow
2. Validate the dependency graph is a DAG (no cycles)
3. Topologically sort, keeping declared order among independent steps

Design Principles:
- Pure functions (deterministic, no registry or context access)
- Construction-time errors only; nothing here runs during a workflow
- Clear error messages naming the offending steps or cycle
"""

from collections import defaultdict, deque
from collections.abc import Callable, Iterable, Sequence
from typing import TypeVar

from stepflow.core.errors import ConfigurationError, CycleDetectedError, DependencyError
from stepflow.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def validate_dependencies(graph: dict[str, list[str]]) -> None:
    """Raise ``DependencyError`` for the first step naming an unknown dependency."""
    for name, deps in graph.items():
        missing = [dep for dep in deps if dep not in graph]
        if missing:
            raise DependencyError(name, missing)


def find_cycle(graph: dict[str, list[str]]) -> list[str] | None:
    """
    Return a dependency cycle as a path, or None when the graph is a DAG.

    Uses depth-first search with three-color marking:
    - WHITE (0): Unvisited
    - GRAY (1): Currently visiting (on current path)
    - BLACK (2): Finished visiting

    Reaching a GRAY node closes a cycle.
    """
    WHITE, GRAY, BLACK = 0, 1, 2

    color = {name: WHITE for name in graph}
    path: list[str] = []

    def dfs(node: str) -> list[str] | None:
        color[node] = GRAY
        path.append(node)

        for neighbor in graph.get(node, []):
            if color.get(neighbor) == GRAY:
                cycle_start = path.index(neighbor)
                return path[cycle_start:] + [neighbor]
            if color.get(neighbor) == WHITE:
                found = dfs(neighbor)
                if found:
                    return found

        color[node] = BLACK
        path.pop()
        return None

    for name in graph:
        if color[name] == WHITE:
            cycle = dfs(name)
            if cycle:
                return cycle
    return None


def topological_order(graph: dict[str, list[str]]) -> list[str]:
    """
    Kahn's algorithm, stable with respect to the graph's insertion order.

    Steps with no ordering constraint between them keep the order in which
    they were declared.

    Raises:
        CycleDetectedError: If the sort cannot place every step.
    """
    dependents: dict[str, list[str]] = defaultdict(list)
    in_degree = {name: 0 for name in graph}

    for name, deps in graph.items():
        for dep in deps:
            dependents[dep].append(name)
            in_degree[name] += 1

    queue = deque(name for name in graph if in_degree[name] == 0)
    ordered: list[str] = []

    while queue:
        node = queue.popleft()
        ordered.append(node)
        for neighbor in dependents[node]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                queue.append(neighbor)

    if len(ordered) != len(graph):
        remaining = [name for name in graph if name not in set(ordered)]
        raise CycleDetectedError(remaining)
    return ordered


def order_steps(
    items: Sequence[T],
    key: Callable[[T], str],
    dependencies: Callable[[T], Iterable[str]],
) -> list[T]:
    """
    Return *items* ordered so every item follows its dependencies.

    Args:
        items: Steps in declared order
        key: Extracts the unique step name
        dependencies: Extracts the names the step depends on

    Raises:
        DependencyError: If a dependency names an item not in *items*
        CycleDetectedError: If dependencies contain a cycle
    """
    graph: dict[str, list[str]] = {}
    by_name: dict[str, T] = {}
    for item in items:
        name = key(item)
        if name in by_name:
            raise ConfigurationError(f"Duplicate step name: {name}", key=name)
        by_name[name] = item
        graph[name] = list(dependencies(item))

    validate_dependencies(graph)
    cycle = find_cycle(graph)
    if cycle:
        raise CycleDetectedError(cycle)

    ordered = topological_order(graph)
    logger.debug("planner.ordered", steps=ordered)
    return [by_name[name] for name in ordered]


__all__ = ["order_steps", "find_cycle", "topological_order", "validate_dependencies"]
