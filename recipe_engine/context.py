"""Shared state threaded through every step of one run."""

import asyncio
import datetime
import logging
from dataclasses import dataclass
from dataclasses import field
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING
from typing import Any

from .collaborators import Collaborators
from .config import EngineConfig
from .events import MetricsTracker
from .expression_evaluator import evaluate_condition
from .results import StepResult
from .variables import resolve
from .variables import resolve_text

if TYPE_CHECKING:
    from .engine import RecipeEngine
    from .executor import StepExecutor
    from .tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass
class StepContext:
    """Run-wide state visible to tools and conditions.

    ``variables``, ``step_data`` and ``step_results`` only ever grow during a
    run. Use ``merge_exports`` and ``record_result`` rather than mutating them
    directly.
    """

    project_root: Path
    recipe_variables: dict[str, Any] = field(default_factory=dict)
    variables: dict[str, Any] = field(default_factory=dict)
    step_data: dict[str, dict[str, Any]] = field(default_factory=dict)
    step_results: dict[str, StepResult] = field(default_factory=dict)
    dry_run: bool = False
    recipe_id: str = ""
    recipe_name: str = ""
    recipe_source: Path | None = None
    start_time: datetime.datetime = field(default_factory=datetime.datetime.now)
    trusted: bool = True
    depth: int = 0
    recipe_stack: list[str] = field(default_factory=list)
    config: EngineConfig = field(default_factory=EngineConfig)
    collaborators: Collaborators = field(default_factory=Collaborators)
    registry: "ToolRegistry | None" = None
    executor: "StepExecutor | None" = None
    engine: "RecipeEngine | None" = None
    cancel_event: asyncio.Event | None = None
    metrics: MetricsTracker = field(default_factory=MetricsTracker)

    def scope(self, extra: dict[str, Any] | None = None) -> dict[str, Any]:
        """Build the lookup scope for placeholders and conditions.

        Variables sit at the top level; step exports are also reachable as
        ``steps.<step>.<export>``.
        """
        scope: dict[str, Any] = dict(self.variables)
        scope.update(
            {
                "variables": self.variables,
                "steps": self.step_data,
                "projectRoot": str(self.project_root),
                "dryRun": self.dry_run,
                "recipe": {"id": self.recipe_id, "name": self.recipe_name},
            }
        )
        if extra:
            scope.update(extra)
        return scope

    def resolve(self, value: Any, extra: dict[str, Any] | None = None) -> Any:
        return resolve(value, self.scope(extra))

    def resolve_text(self, value: Any, extra: dict[str, Any] | None = None) -> str:
        return resolve_text(value, self.scope(extra))

    def resolve_path(self, value: Any) -> Path:
        """Resolve a placeholder-bearing path relative to the project root."""
        path = Path(self.resolve_text(value))
        return path if path.is_absolute() else self.project_root / path

    def relative(self, path: Path) -> str:
        """Render a path relative to the project root when it lies inside it."""
        try:
            return str(path.relative_to(self.project_root))
        except ValueError:
            return str(path)

    def condition_functions(self) -> dict[str, Any]:
        return {
            "fileExists": lambda p: self.resolve_path(str(p)).is_file(),
            "dirExists": lambda p: self.resolve_path(str(p)).is_dir(),
        }

    def evaluate_condition(self, expression: str, extra: dict[str, Any] | None = None) -> bool:
        return evaluate_condition(expression, self.scope(extra), self.condition_functions())

    def show_message(self, message: str, level: str = "info") -> None:
        """Send a user-facing message to the engine's display, else to the log."""
        display = self.engine.display if self.engine is not None else None
        if display is not None:
            display.show_message(message=message, level=level, source="recipe")
        else:
            logger.log(logging.WARNING if level == "warning" else logging.INFO, message)

    def merge_exports(self, step_name: str, exports: dict[str, Any]) -> None:
        """Publish a step's exports to later steps."""
        if not exports:
            return
        self.step_data.setdefault(step_name, {}).update(exports)
        self.variables.update(exports)

    def record_result(self, result: StepResult) -> None:
        self.step_results[result.step_name] = result

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def for_sub_recipe(self, recipe_name: str, variables: dict[str, Any], source: Path | None) -> "StepContext":
        """Fresh state for a nested recipe sharing this run's services."""
        return replace(
            self,
            recipe_variables=dict(variables),
            variables=dict(variables),
            step_data={},
            step_results={},
            recipe_name=recipe_name,
            recipe_source=source,
            start_time=datetime.datetime.now(),
            depth=self.depth + 1,
            recipe_stack=[*self.recipe_stack, recipe_name],
            metrics=MetricsTracker(),
        )
