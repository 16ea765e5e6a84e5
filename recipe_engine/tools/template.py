"""template: render a template through the host renderer and write its files."""

import fnmatch
from pathlib import Path

from ..context import StepContext
from ..models import Step
from ..results import ResourceRequirements
from ..results import StepResult
from ..results import ValidationResult
from .base import Tool


class TemplateTool(Tool):
    """Render ``template`` and write the produced files under ``outputDir``.

    Existing files are left alone unless ``overwrite`` is set. ``exclude``
    holds glob patterns matched against each rendered destination.
    """

    tool_type = "template"
    error_code = "TEMPLATE_FAILED"
    estimated_execution_time = 500
    resource_requirements = ResourceRequirements(memory=10 * 1024 * 1024, disk=1024 * 1024)

    def validate(self, step: Step, context: StepContext) -> ValidationResult:
        errors = []
        warnings = []
        if not step.get("template") or not isinstance(step.get("template"), str):
            errors.append("Template identifier is required")
        if step.get("variables") is not None and not isinstance(step.get("variables"), dict):
            errors.append("variables must be a mapping")
        exclude = step.get("exclude")
        if exclude is not None and not isinstance(exclude, list):
            errors.append("exclude must be a list of glob patterns")
        if context.collaborators.renderer is None:
            warnings.append("No template renderer is configured")
        return self.validation(errors, warnings)

    def _template_path(self, identifier: str, context: StepContext) -> Path | None:
        discovery = context.collaborators.discovery
        if discovery is not None:
            found = discovery.resolve_template(identifier)
            if found is not None:
                return Path(found)
        base_dir = context.recipe_source.parent if context.recipe_source else context.project_root
        candidate = base_dir / identifier
        return candidate if candidate.exists() else None

    async def execute(self, step: Step, context: StepContext, dry_run: bool = False) -> StepResult:
        renderer = context.collaborators.renderer
        if renderer is None:
            raise self.fail("No template renderer configured")

        identifier = context.resolve_text(step.get("template"))
        variables = {**context.variables, **context.resolve(step.get("variables") or {})}
        output_dir = context.resolve_path(step.get("outputDir") or ".")
        overwrite = bool(step.get("overwrite", False))
        exclude = [str(p) for p in step.get("exclude") or []]

        template_path = self._template_path(identifier, context)
        try:
            rendered = await renderer.render(identifier, variables, template_path=template_path)
        except Exception as e:
            raise self.fail(f"Failed to render template '{identifier}': {e}", cause=e) from e

        files_created: list[str] = []
        files_modified: list[str] = []
        skipped: list[str] = []
        # Destinations this call wrote (or would write in a dry run)
        written: set[Path] = set()
        for file in rendered:
            if any(fnmatch.fnmatch(file.path, pattern) for pattern in exclude):
                continue
            destination = output_dir / file.path
            relative = context.relative(destination)
            exists = destination.exists() or destination in written
            if exists and not overwrite:
                skipped.append(relative)
                continue
            if not dry_run:
                try:
                    destination.parent.mkdir(parents=True, exist_ok=True)
                    destination.write_text(file.content, encoding="utf-8")
                except OSError as e:
                    raise self.fail(f"Failed to write '{relative}': {e}", cause=e) from e
            written.add(destination)
            (files_modified if exists else files_created).append(relative)

        warnings = [f"Skipped existing file: {path}" for path in skipped]
        return self.result(
            step,
            output={"template": identifier, "filesWritten": len(files_created) + len(files_modified)},
            tool_result={"template": identifier, "skipped": skipped},
            files_created=files_created,
            files_modified=files_modified,
            warnings=warnings,
        )
