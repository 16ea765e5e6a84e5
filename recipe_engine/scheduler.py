"""Topological batching of a step graph."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from dataclasses import field

from .errors import DependencyGraphError
from .graph import StepGraph
from .graph import build_step_graph
from .models import Step
from .models import nested_step_lists

logger = logging.getLogger(__name__)


def compute_batches(graph: StepGraph) -> list[list[str]]:
    """Group steps into batches that may run concurrently.

    Batch k holds every unassigned step whose dependencies all sit in batches
    0..k-1. Within a batch, steps keep declaration order.
    """
    batch_of: dict[str, int] = {}
    batches: list[list[str]] = []

    while len(batch_of) < len(graph):
        batch = [
            name
            for name in graph.order
            if name not in batch_of and all(dep in batch_of for dep in graph.dependencies[name])
        ]
        if not batch:
            stuck = [name for name in graph.order if name not in batch_of]
            raise DependencyGraphError(
                f"Unable to schedule steps (cycle or unresolved dependencies): {stuck}",
                code="DEPENDENCY_CYCLE",
                steps=stuck,
            )
        for name in batch:
            batch_of[name] = len(batches)
        batches.append(batch)

    return batches


@dataclass
class ExecutionPlan:
    """Steps, their graph and the batch order they run in."""

    steps: list[Step]
    graph: StepGraph
    batches: list[list[str]] = field(default_factory=list)
    lifted: dict[str, list[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self._by_name = {step.name: step for step in self.steps}
        self._batch_of = {name: index for index, batch in enumerate(self.batches) for name in batch}

    def step(self, name: str) -> Step:
        return self._by_name[name]

    def batch_steps(self, index: int) -> list[Step]:
        return [self._by_name[name] for name in self.batches[index]]

    def batch_index(self, name: str) -> int:
        """Index of the batch holding ``name``."""
        return self._batch_of[name]


def _check_export_conflicts(plan: ExecutionPlan) -> None:
    for index, batch in enumerate(plan.batches):
        owners: dict[str, str] = {}
        for name in batch:
            for key in plan.step(name).exports:
                if key in owners:
                    raise DependencyGraphError(
                        f"Steps '{owners[key]}' and '{name}' both export '{key}' in batch {index + 1}",
                        code="EXPORT_CONFLICT",
                        steps=[owners[key], name],
                    )
                owners[key] = name


def _plan_nested(steps: list[Step], outer: set[str]) -> dict[str, list[str]]:
    """Plan every nested step list below ``steps``.

    Nested steps may depend on siblings or on any step of an enclosing list.
    The latter become dependencies of the meta-step that holds them, so the
    outer target always lands in an earlier batch than the nested step.

    Returns:
        Per meta-step name, the dependencies lifted from its nested steps.

    Raises:
        DependencyGraphError: On a defect in any nested list, or a nested step
            depending on the meta-step that encloses it.
    """
    visible = outer | {step.name for step in steps}
    lifted: dict[str, list[str]] = {}
    for step in steps:
        try:
            lists = nested_step_lists(step)
        except ValueError:
            # Malformed nested lists are reported by recipe and tool validation
            continue
        for _, children in lists:
            child_plan = plan_execution(children, satisfied=visible)
            names = set(child_plan.graph.order)
            for child in children:
                for dep in [*child.depends_on, *child_plan.lifted.get(child.name, [])]:
                    if dep in names:
                        continue
                    if dep == step.name:
                        raise DependencyGraphError(
                            f"Nested step '{child.name}' depends on its enclosing step '{step.name}'",
                            code="SELF_DEPENDENCY",
                            steps=[step.name, child.name],
                        )
                    if dep not in lifted.setdefault(step.name, []):
                        lifted[step.name].append(dep)
    return lifted


def plan_execution(steps: list[Step], satisfied: Iterable[str] = ()) -> ExecutionPlan:
    """Build the graph, batch it and check concurrent export keys.

    Nested step lists of meta-steps are planned too, so every graph defect in
    the tree surfaces before anything runs.

    Raises:
        DependencyGraphError: On any graph defect or EXPORT_CONFLICT.
    """
    satisfied = set(satisfied)
    lifted = _plan_nested(steps, satisfied)
    graph = build_step_graph(steps, satisfied, extra=lifted)
    plan = ExecutionPlan(steps=list(steps), graph=graph, batches=compute_batches(graph), lifted=lifted)
    _check_export_conflicts(plan)
    logger.debug("Planned %d steps into %d batches: %s", len(steps), len(plan.batches), plan.batches)
    return plan
