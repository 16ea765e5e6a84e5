"""recipe: run another recipe as a single step."""

from pathlib import Path

import yaml

from ..context import StepContext
from ..errors import RecipeError
from ..models import Recipe
from ..models import Step
from ..results import StepResult
from ..results import ValidationResult
from .base import Tool


class RecipeTool(Tool):
    """Compose recipes.

    The sub-recipe runs on the same engine with a fresh step namespace.
    Parent variables are inherited unless ``inheritVariables`` is false;
    ``variableOverrides`` (or ``variables``) take precedence.
    """

    tool_type = "recipe"
    error_code = "RECIPE_STEP_FAILED"
    estimated_execution_time = 500

    def validate(self, step: Step, context: StepContext) -> ValidationResult:
        errors = []
        warnings = []
        if not step.get("recipe") or not isinstance(step.get("recipe"), str):
            errors.append("Recipe identifier or path is required")
        for key in ("variableOverrides", "variables"):
            if step.get(key) is not None and not isinstance(step.get(key), dict):
                errors.append(f"{key} must be a mapping")
        if step.get("inheritVariables") is False and not (step.get("variableOverrides") or step.get("variables")):
            warnings.append("Consider providing variable overrides when disabling variable inheritance")
        return self.validation(errors, warnings)

    def locate(self, identifier: str, context: StepContext) -> Path:
        """Find the sub-recipe file via discovery, else relative to the parent recipe."""
        discovery = context.collaborators.discovery
        if discovery is not None:
            found = discovery.resolve_recipe(identifier)
            if found is not None:
                return Path(found)

        base_dir = context.recipe_source.parent if context.recipe_source else context.project_root
        path = Path(identifier)
        if not path.is_absolute():
            path = base_dir / path
        if not path.exists():
            raise self.fail(f"Sub-recipe not found: {path}")
        return path

    async def execute(self, step: Step, context: StepContext, dry_run: bool = False) -> StepResult:
        if context.engine is None:
            raise self.fail("Recipe steps require an engine")

        identifier = context.resolve_text(step.get("recipe"))
        if context.depth + 1 > context.config.max_recipe_depth:
            raise self.fail(
                f"Recipe recursion depth {context.depth + 1} exceeds limit {context.config.max_recipe_depth}. "
                f"Stack: {' -> '.join([*context.recipe_stack, identifier])}"
            )

        path = self.locate(identifier, context)
        try:
            sub_recipe = Recipe.from_yaml(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise self.fail(f"Failed to load sub-recipe '{identifier}': {e}", cause=e) from e

        variables = dict(context.variables) if step.get("inheritVariables", True) is not False else {}
        variables.update(context.resolve(step.get("variables") or {}))
        variables.update(context.resolve(step.get("variableOverrides") or {}))

        try:
            sub_result = await context.engine.execute_sub_recipe(sub_recipe, variables, context, dry_run=dry_run)
        except RecipeError as e:
            raise self.fail(f"Sub-recipe '{sub_recipe.name}' could not run: {e}", cause=e) from e

        if not sub_result.success:
            raise self.fail(
                f"Sub-recipe '{sub_recipe.name}' {sub_result.status.value}: {'; '.join(sub_result.errors)}",
                recipe_result=sub_result,
            )

        return self.result(
            step,
            output={
                "recipe": sub_recipe.name,
                "status": sub_result.status.value,
                "variables": sub_result.variables,
            },
            tool_result=sub_result,
            files_created=sub_result.files_created,
            files_modified=sub_result.files_modified,
            warnings=sub_result.warnings,
        )
