"""Execution lifecycle events and per-run metrics.

A listener passed to ``RecipeEngine`` receives an ``ExecutionEvent`` for every
lifecycle change of a run and of its steps. Sub-recipes report through the
same listener with their own ``execution_id`` and a higher ``depth``.
"""

import inspect
import logging
from collections.abc import Callable
from collections.abc import Iterable
from dataclasses import dataclass
from dataclasses import field
from typing import Any

from .results import ExecutionMetrics
from .results import StepResult

logger = logging.getLogger(__name__)

EXECUTION_STARTED = "execution:started"
PLAN_CREATED = "execution:plan-created"
EXECUTION_COMPLETED = "execution:completed"
EXECUTION_FAILED = "execution:failed"
EXECUTION_CANCELLED = "execution:cancelled"
BATCH_STARTED = "batch:started"
BATCH_COMPLETED = "batch:completed"
STEP_STARTED = "step:started"
STEP_SKIPPED = "step:skipped"
STEP_COMPLETED = "step:completed"
STEP_RETRY = "step:retry"
STEP_FAILED = "step:failed"


@dataclass
class ExecutionEvent:
    """One lifecycle notification."""

    kind: str
    execution_id: str
    recipe_name: str
    step_name: str | None = None
    depth: int = 0
    data: dict[str, Any] = field(default_factory=dict)


# Sync or async callable; a returned awaitable is awaited
EventListener = Callable[[ExecutionEvent], Any]


async def emit_event(listener: EventListener | None, event: ExecutionEvent) -> None:
    """Deliver ``event`` to ``listener``.

    A failing listener is logged and never interrupts the run.
    """
    if listener is None:
        return
    logger.debug("Event %s (%s) step=%s", event.kind, event.recipe_name, event.step_name)
    try:
        outcome = listener(event)
        if inspect.isawaitable(outcome):
            await outcome
    except Exception:
        logger.error("Event listener failed on '%s'", event.kind, exc_info=True)


class MetricsTracker:
    """Collects ExecutionMetrics while one recipe runs."""

    def __init__(self) -> None:
        self.metrics = ExecutionMetrics()
        self.running = 0
        self.planned: set[str] = set()
        self.finished: set[str] = set()

    def plan(self, step_names: Iterable[str], batches: int) -> None:
        self.planned = set(step_names)
        self.metrics.batches = batches

    def step_started(self) -> None:
        self.running += 1
        self.metrics.max_concurrent_steps = max(self.metrics.max_concurrent_steps, self.running)

    def step_stopped(self) -> None:
        self.running -= 1

    def step_finished(self, result: StepResult) -> None:
        self.finished.add(result.step_name)
        self.metrics.step_durations[result.step_name] = result.duration
        if self.planned:
            self.metrics.progress = round(100 * len(self.finished & self.planned) / len(self.planned))

    def retried(self) -> None:
        self.metrics.total_retries += 1
