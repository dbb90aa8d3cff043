from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from roady.errors import CycleError, DuplicateTaskError

if TYPE_CHECKING:
    from roady.planning.models import Task

_WHITE, _GRAY, _BLACK = 0, 1, 2


def validate_dag(tasks: Sequence[Task]) -> None:
    """Raise ``CycleError`` on the first dependency cycle, self-references included.

    Task IDs must be unique (``DuplicateTaskError``). Edges to IDs that are not
    part of ``tasks`` are not followed.
    """
    graph: dict[str, tuple[str, ...]] = {}
    for task in tasks:
        if task.id in graph:
            raise DuplicateTaskError(task.id)
        graph[task.id] = task.depends_on
    color = dict.fromkeys(graph, _WHITE)

    for root in graph:
        if color[root] != _WHITE:
            continue
        color[root] = _GRAY
        stack = [(root, iter(graph[root]))]
        while stack:
            node, deps = stack[-1]
            advanced = False
            for dep in deps:
                if dep not in graph:
                    continue
                if color[dep] == _GRAY:
                    raise CycleError(dep)
                if color[dep] == _WHITE:
                    color[dep] = _GRAY
                    stack.append((dep, iter(graph[dep])))
                    advanced = True
                    break
            if not advanced:
                color[node] = _BLACK
                stack.pop()


def topological_order(tasks: Sequence[Task]) -> list[str]:
    """Task IDs with every dependency listed before its dependents; ties keep plan order."""
    validate_dag(tasks)
    graph = {task.id: task.depends_on for task in tasks}
    ordered: list[str] = []
    seen: set[str] = set()

    def visit(task_id: str) -> None:
        if task_id in seen or task_id not in graph:
            return
        seen.add(task_id)
        for dep in graph[task_id]:
            visit(dep)
        ordered.append(task_id)

    for task in tasks:
        visit(task.id)
    return ordered
