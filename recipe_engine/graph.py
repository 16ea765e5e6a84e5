"""Dependency graph construction for a step list."""

import logging
from collections.abc import Iterable
from collections.abc import Mapping
from dataclasses import dataclass
from dataclasses import field

from .errors import DependencyGraphError
from .models import Step

logger = logging.getLogger(__name__)

_WHITE, _GRAY, _BLACK = 0, 1, 2


@dataclass
class StepGraph:
    """Adjacency over step names.

    ``dependencies[name]`` lists what must finish before ``name``;
    ``dependents[name]`` is the reverse edge set.
    """

    order: list[str] = field(default_factory=list)
    dependencies: dict[str, list[str]] = field(default_factory=dict)
    dependents: dict[str, set[str]] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.order)

    def __contains__(self, name: object) -> bool:
        return name in self.dependencies

    def roots(self) -> list[str]:
        return [name for name in self.order if not self.dependencies[name]]


def build_step_graph(
    steps: list[Step],
    satisfied: Iterable[str] = (),
    extra: Mapping[str, Iterable[str]] | None = None,
) -> StepGraph:
    """Build and validate the dependency graph for ``steps``.

    Args:
        steps: Steps in declaration order.
        satisfied: Names of steps outside this list that a nested list may
            depend on. Dependencies on them are accepted and carry no edge.
        extra: Additional dependencies per step name, on top of ``dependsOn``
            (a meta-step inherits those of its nested steps).

    Returns:
        The validated StepGraph.

    Raises:
        DependencyGraphError: DUPLICATE_STEP, SELF_DEPENDENCY,
            MISSING_DEPENDENCY or DEPENDENCY_CYCLE.
    """
    satisfied = set(satisfied)
    extra = extra or {}
    names = [step.name for step in steps]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise DependencyGraphError(
            f"Duplicate step names found: {duplicates}",
            code="DUPLICATE_STEP",
            steps=duplicates,
        )

    name_set = set(names)
    graph = StepGraph(order=names)
    graph.dependencies = {n: [] for n in names}
    graph.dependents = {n: set() for n in names}

    missing: list[str] = []
    for step in steps:
        for dep in [*step.depends_on, *extra.get(step.name, ())]:
            if dep == step.name:
                raise DependencyGraphError(
                    f"Step '{step.name}' depends on itself",
                    code="SELF_DEPENDENCY",
                    steps=[step.name],
                )
            if dep in name_set:
                if dep not in graph.dependencies[step.name]:
                    graph.dependencies[step.name].append(dep)
                    graph.dependents[dep].add(step.name)
            elif dep not in satisfied:
                missing.append(f"'{step.name}' -> '{dep}'")

    if missing:
        raise DependencyGraphError(
            f"Steps depend on unknown steps: {', '.join(missing)}. Known steps: {sorted(name_set)}",
            code="MISSING_DEPENDENCY",
            steps=sorted({m.split(" -> ")[0].strip("'") for m in missing}),
        )

    cycle = find_cycle(graph)
    if cycle:
        raise DependencyGraphError(
            f"Dependency cycle detected: {' -> '.join(cycle)}",
            code="DEPENDENCY_CYCLE",
            steps=sorted(set(cycle)),
            cycle=cycle,
        )

    logger.debug("Built step graph with %d steps", len(graph))
    return graph


def find_cycle(graph: StepGraph) -> list[str] | None:
    """Return one cycle as a closed path (first == last), or None.

    Iterative DFS with white/gray/black colouring; a back edge to a gray
    node closes a cycle.
    """
    color = {name: _WHITE for name in graph.order}

    for start in graph.order:
        if color[start] != _WHITE:
            continue
        path = [start]
        stack = [iter(graph.dependencies[start])]
        color[start] = _GRAY

        while stack:
            dep = next(stack[-1], None)
            if dep is None:
                color[path.pop()] = _BLACK
                stack.pop()
                continue
            if color[dep] == _GRAY:
                return path[path.index(dep) :] + [dep]
            if color[dep] == _WHITE:
                color[dep] = _GRAY
                path.append(dep)
                stack.append(iter(graph.dependencies[dep]))

    return None
