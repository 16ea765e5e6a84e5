"""ensure-dirs: mkdir -p for a list of paths."""

from pathlib import Path

from ..context import StepContext
from ..models import Step
from ..results import ResourceRequirements
from ..results import StepResult
from ..results import ValidationResult
from .base import Tool


class EnsureDirsTool(Tool):
    """Create directories, reporting which were created and which already existed.

    Anything already at a requested path (including a plain file) counts as
    existing. A requested path nested beneath a file fails the step.
    """

    tool_type = "ensure-dirs"
    error_code = "ENSURE_DIRS_FAILED"
    estimated_execution_time = 50
    resource_requirements = ResourceRequirements(memory=1024 * 1024, disk=4096)

    def validate(self, step: Step, context: StepContext) -> ValidationResult:
        errors = []
        paths = step.get("paths")
        if not isinstance(paths, list) or not paths:
            errors.append("At least one directory path is required")
        else:
            for index, path in enumerate(paths):
                if not isinstance(path, str) or not path.strip():
                    errors.append(f"Path at index {index} must be a non-empty string")
        return self.validation(errors)

    async def execute(self, step: Step, context: StepContext, dry_run: bool = False) -> StepResult:
        created: list[str] = []
        already_existed: list[str] = []
        # Directories this call made (or would make in a dry run)
        made: set[Path] = set()

        for raw in step.get("paths", []):
            resolved = context.resolve_text(raw)
            full_path = context.resolve_path(resolved)

            if full_path.exists() or full_path in made:
                already_existed.append(resolved)
                self.logger.debug("Directory already exists: %s", resolved)
                continue

            blocker = self._file_ancestor(full_path, made)
            if blocker is not None:
                raise self.fail(f"Cannot create '{resolved}': '{context.relative(blocker)}' is a file")

            if not dry_run:
                try:
                    full_path.mkdir(parents=True, exist_ok=True)
                except OSError as e:
                    raise self.fail(f"Failed to create directory '{resolved}': {e}", cause=e) from e

            made.add(full_path)
            made.update(full_path.parents)
            created.append(resolved)
            self.logger.debug("%s directory: %s", "Would create" if dry_run else "Created", resolved)

        return self.result(
            step,
            output={"created": created, "alreadyExisted": already_existed},
            tool_result={"paths": list(step.get("paths", [])), "created": created, "alreadyExisted": already_existed},
        )

    @staticmethod
    def _file_ancestor(path: Path, made: set[Path]) -> Path | None:
        for parent in path.parents:
            if parent in made:
                return None
            if parent.exists():
                return None if parent.is_dir() else parent
        return None
