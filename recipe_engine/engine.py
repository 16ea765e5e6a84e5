"""Recipe orchestration: validate, plan, run batches, aggregate."""

import asyncio
import datetime
import logging
import uuid
from pathlib import Path
from typing import Any

import yaml

from . import events
from .collaborators import Collaborators
from .config import EngineConfig
from .context import StepContext
from .errors import DependencyGraphError
from .errors import RecipeValidationError
from .executor import CANCELLED
from .executor import StepExecutor
from .models import Recipe
from .results import RecipeResult
from .results import RecipeStatus
from .results import StepResult
from .results import StepStatus
from .results import ValidationResult
from .scheduler import ExecutionPlan
from .scheduler import plan_execution
from .tools.registry import ToolRegistry
from .tools.registry import create_default_registry
from .variables import resolve_inputs
from .variables import resolve_text

logger = logging.getLogger(__name__)

_FINAL_EVENTS = {
    RecipeStatus.COMPLETED: events.EXECUTION_COMPLETED,
    RecipeStatus.PARTIALLY_COMPLETED: events.EXECUTION_COMPLETED,
    RecipeStatus.CANCELLED: events.EXECUTION_CANCELLED,
}


class RecipeEngine:
    """Runs recipes with a per-instance tool registry and configuration."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        registry: ToolRegistry | None = None,
        collaborators: Collaborators | None = None,
        display: Any = None,
        listener: events.EventListener | None = None,
    ):
        """
        Initialize engine.

        Args:
            config: Execution settings (defaults to EngineConfig())
            registry: Tool registry (defaults to a fresh registry of built-in tools)
            collaborators: Host-provided renderer, AI backend, prompter, trust gate, etc.
            display: Optional object with show_message(message, level, source)
            listener: Optional callable (sync or async) receiving every ExecutionEvent

        Raises:
            ValueError: If the configuration is invalid
        """
        self.config = config or EngineConfig()
        errors = self.config.validate()
        if errors:
            raise ValueError("Invalid engine config: " + "; ".join(errors))
        self.registry = registry or create_default_registry()
        self.collaborators = collaborators or Collaborators()
        self.display = display
        self.listener = listener
        self.executor = StepExecutor(self.registry, self.config, display, listener)
        # Top-level runs in flight; tools are cleaned up when the last one ends
        self._active_runs = 0

    def _show_progress(self, message: str, level: str = "info") -> None:
        if self.display is not None:
            self.display.show_message(message=message, level=level, source="recipe")

    def load_recipe(self, path: str | Path) -> Recipe:
        """Load and structurally validate a recipe file.

        Raises:
            FileNotFoundError: If the file does not exist
            RecipeValidationError: If the YAML is malformed or the recipe invalid
        """
        try:
            recipe = Recipe.from_yaml(Path(path))
        except (ValueError, yaml.YAMLError) as e:
            raise RecipeValidationError(f"Failed to load recipe {path}: {e}") from e
        self._check_recipe(recipe)
        return recipe

    def _check_recipe(self, recipe: Recipe) -> None:
        errors = recipe.validate()
        if errors:
            raise RecipeValidationError(f"Recipe '{recipe.name or recipe.source}' is invalid", errors)

    def plan(self, recipe: Recipe) -> ExecutionPlan:
        """Validate a recipe and compute its batches without running anything."""
        self._check_recipe(recipe)
        return plan_execution(recipe.steps)

    async def validate_recipe(
        self,
        recipe: Recipe | str | Path,
        project_root: str | Path | None = None,
    ) -> ValidationResult:
        """Check structure, graph and every step's tool-level validation.

        Nothing is executed; tool validation is pure.
        """
        try:
            if not isinstance(recipe, Recipe):
                recipe = self.load_recipe(recipe)
            plan = self.plan(recipe)
        except (RecipeValidationError, DependencyGraphError) as e:
            return ValidationResult.from_errors(getattr(e, "errors", None) or [str(e)])

        context = self._new_context(recipe, project_root, dry_run=True)
        errors: list[str] = []
        warnings: list[str] = []
        estimated = 0
        for step in plan.steps:
            if not self.registry.is_registered(step.tool):
                errors.append(f"Step '{step.name}': no tool registered for type '{step.tool}'")
                continue
            tool = await self.registry.resolve(step.tool)
            validation = tool.validate(step, context)
            errors.extend(f"Step '{step.name}': {error}" for error in validation.errors)
            warnings.extend(f"Step '{step.name}': {warning}" for warning in validation.warnings)
            estimated += validation.estimated_execution_time
        return ValidationResult.from_errors(errors, warnings, estimated_execution_time=estimated)

    def _new_context(
        self,
        recipe: Recipe,
        project_root: str | Path | None,
        dry_run: bool = False,
        cancel_event: asyncio.Event | None = None,
        trusted: bool = True,
    ) -> StepContext:
        return StepContext(
            project_root=Path(project_root or Path.cwd()).resolve(),
            dry_run=dry_run,
            recipe_id=str(uuid.uuid4()),
            recipe_name=recipe.name,
            recipe_source=recipe.source,
            trusted=trusted,
            recipe_stack=[recipe.name],
            config=self.config,
            collaborators=self.collaborators,
            registry=self.registry,
            executor=self.executor,
            engine=self,
            cancel_event=cancel_event,
        )

    async def execute_recipe(
        self,
        recipe: Recipe | str | Path,
        variables: dict[str, Any] | None = None,
        project_root: str | Path | None = None,
        dry_run: bool = False,
        cancel_event: asyncio.Event | None = None,
        trusted: bool = True,
    ) -> RecipeResult:
        """
        Execute a recipe.

        Args:
            recipe: Recipe object or path to a recipe YAML file
            variables: Caller-provided values for the recipe's variables
            project_root: Directory all relative paths resolve against (default: cwd)
            dry_run: Report what would happen without changing anything
            cancel_event: When set, no further batch starts
            trusted: False when the recipe comes from an untrusted source; every
                step then needs trust gate approval

        Returns:
            Aggregated RecipeResult

        Raises:
            RecipeValidationError: Invalid recipe or variables (nothing executed)
            DependencyGraphError: Cycle, missing dependency, export conflict (nothing executed)
        """
        if not isinstance(recipe, Recipe):
            recipe = self.load_recipe(recipe)

        context = self._new_context(recipe, project_root, dry_run, cancel_event, trusted)
        self._active_runs += 1
        try:
            return await self._run(recipe, variables, context)
        finally:
            self._active_runs -= 1
            if self._active_runs == 0:
                await self.registry.cleanup()

    async def execute_sub_recipe(
        self,
        recipe: Recipe,
        variables: dict[str, Any],
        parent: StepContext,
        dry_run: bool = False,
    ) -> RecipeResult:
        """Run a nested recipe on behalf of a recipe step."""
        context = parent.for_sub_recipe(recipe.name, {}, recipe.source)
        context.recipe_id = str(uuid.uuid4())
        context.dry_run = parent.dry_run or dry_run
        return await self._run(recipe, variables, context)

    async def _run(self, recipe: Recipe, variables: dict[str, Any] | None, context: StepContext) -> RecipeResult:
        # Everything that can reject the recipe happens before any tool runs
        self._check_recipe(recipe)
        inputs = resolve_inputs(recipe.variables, variables)
        plan = plan_execution(recipe.steps)

        context.recipe_variables = dict(inputs)
        context.variables.update(inputs)

        indent = "  " * context.depth
        mode = " (dry run)" if context.dry_run else ""
        self._show_progress(f"{indent}📋 Starting recipe: {recipe.name} ({len(recipe.steps)} steps){mode}")
        logger.info(
            "Executing recipe '%s' [%s]: %d steps in %d batches%s",
            recipe.name,
            context.recipe_id,
            len(recipe.steps),
            len(plan.batches),
            mode,
        )

        context.metrics.plan((step.name for step in plan.steps), len(plan.batches))
        await self.executor.emit(
            context,
            events.EXECUTION_STARTED,
            steps=len(recipe.steps),
            dryRun=context.dry_run,
            source=str(recipe.source) if recipe.source else None,
        )
        await self.executor.emit(context, events.PLAN_CREATED, batches=[list(batch) for batch in plan.batches])

        step_results = await self.executor.run_plan(plan, context)
        result = self._aggregate(recipe, plan, context, step_results)
        result.metrics = context.metrics.metrics

        self._fire_hooks(recipe, result, context)
        await self.executor.emit(
            context,
            _FINAL_EVENTS.get(result.status, events.EXECUTION_FAILED),
            status=result.status.value,
            duration=result.duration,
            errors=list(result.errors),
        )
        if result.status == RecipeStatus.COMPLETED:
            self._show_progress(f"{indent}✅ Recipe completed: {recipe.name}")
        elif result.status == RecipeStatus.PARTIALLY_COMPLETED:
            self._show_progress(f"{indent}⚠ Recipe partially completed: {recipe.name}", level="warning")
        else:
            self._show_progress(f"{indent}❌ Recipe {result.status.value}: {recipe.name}", level="error")
        logger.info("Recipe '%s' finished: %s in %.0fms", recipe.name, result.status.value, result.duration)
        return result

    def _aggregate(
        self,
        recipe: Recipe,
        plan: ExecutionPlan,
        context: StepContext,
        step_results: list[StepResult],
    ) -> RecipeResult:
        end_time = datetime.datetime.now()
        failed = [r for r in step_results if r.status == StepStatus.FAILED]
        cancelled = any(r.skip_reason == CANCELLED for r in step_results)
        downgraded = [r for r in step_results if r.downgraded]

        if failed:
            status = RecipeStatus.FAILED
        elif cancelled:
            status = RecipeStatus.CANCELLED
        elif downgraded:
            status = RecipeStatus.PARTIALLY_COMPLETED
        else:
            status = RecipeStatus.COMPLETED

        files_created: list[str] = []
        files_modified: list[str] = []
        warnings: list[str] = []
        for r in step_results:
            files_created.extend(f for f in r.files_created if f not in files_created)
            files_modified.extend(f for f in r.files_modified if f not in files_modified)
            warnings.extend(r.warnings)

        errors = [f"{r.step_name}: [{r.error.code}] {r.error.message}" for r in failed if r.error]
        if cancelled:
            not_started = sum(1 for r in step_results if r.skip_reason == CANCELLED)
            errors.append(f"Execution cancelled; {not_started} step(s) not started")

        return RecipeResult(
            execution_id=context.recipe_id,
            recipe_name=recipe.name,
            status=status,
            step_results=step_results,
            batches=[list(batch) for batch in plan.batches],
            files_created=files_created,
            files_modified=files_modified,
            errors=errors,
            warnings=warnings,
            variables=dict(context.variables),
            start_time=context.start_time,
            end_time=end_time,
            duration=(end_time - context.start_time).total_seconds() * 1000,
        )

    def _fire_hooks(self, recipe: Recipe, result: RecipeResult, context: StepContext) -> None:
        """Render and show the recipe's onSuccess / onError message."""
        template = recipe.on_success if result.success else recipe.on_error
        if not template:
            return
        scope = context.scope(
            {
                "recipe": {
                    "id": result.execution_id,
                    "name": recipe.name,
                    "description": recipe.description,
                    "version": recipe.version,
                },
                "result": {
                    "status": result.status.value,
                    "errors": result.errors,
                    "warnings": result.warnings,
                    "filesCreated": result.files_created,
                    "filesModified": result.files_modified,
                    "duration": result.duration,
                },
            }
        )
        message = resolve_text(template, scope)
        level = "info" if result.success else "error"
        if self.display is not None:
            self._show_progress(message, level=level)
        else:
            logger.log(logging.INFO if result.success else logging.ERROR, message)
