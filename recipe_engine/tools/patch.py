"""patch: deep-merge structured data into a JSON, YAML or TOML file."""

from ..context import StepContext
from ..models import Step
from ..results import ResourceRequirements
from ..results import StepResult
from ..results import ValidationResult
from .base import Tool
from .data_formats import WRITE_FORMATS
from .data_formats import deep_merge
from .data_formats import detect_format
from .data_formats import dump_data
from .data_formats import read_file


class PatchTool(Tool):
    tool_type = "patch"
    error_code = "PATCH_FAILED"
    estimated_execution_time = 200
    resource_requirements = ResourceRequirements(memory=5 * 1024 * 1024, disk=1024)

    def validate(self, step: Step, context: StepContext) -> ValidationResult:
        errors = []
        file = step.get("file")
        merge = step.get("merge")

        if not file or not isinstance(file, str):
            errors.append("File path is required")
        if not isinstance(merge, dict):
            errors.append('"merge" must be a mapping')

        fmt = detect_format(file, step.get("format")) if isinstance(file, str) else None
        if isinstance(file, str) and file and not fmt:
            errors.append(f'Cannot detect format for "{file}". Specify "format" explicitly.')
        if fmt and fmt not in WRITE_FORMATS:
            errors.append(f"Unsupported format: {fmt}. Must be one of: {', '.join(WRITE_FORMATS)}")

        indent = step.get("indent", 2)
        if isinstance(indent, bool) or not isinstance(indent, int) or indent < 0:
            errors.append("indent must be a non-negative integer")

        return self.validation(errors)

    async def execute(self, step: Step, context: StepContext, dry_run: bool = False) -> StepResult:
        file = context.resolve_text(step.get("file"))
        file_path = context.resolve_path(file)
        fmt = detect_format(file, step.get("format"))
        indent = step.get("indent", 2)
        create_if_missing = step.get("createIfMissing", True)

        if file_path.is_dir():
            raise self.fail(f"Cannot patch '{file}': path is a directory")

        existing = {}
        created = not file_path.exists()
        if not created:
            try:
                existing = read_file(file_path, fmt)
            except (OSError, ValueError) as e:
                raise self.fail(f"Failed to read '{file}': {e}", cause=e) from e
            if not isinstance(existing, dict):
                raise self.fail(
                    f"Cannot patch '{file}': existing content is not an object (got {type(existing).__name__})"
                )
        elif not create_if_missing:
            raise self.fail(f"File not found: {file} (createIfMissing is false)")

        patch = context.resolve(step.get("merge") or {})
        merged = deep_merge(existing, patch)

        if not dry_run:
            try:
                content = dump_data(merged, fmt, indent)
                file_path.parent.mkdir(parents=True, exist_ok=True)
                file_path.write_text(content, encoding="utf-8")
            except (OSError, ValueError, TypeError) as e:
                raise self.fail(f"Failed to write '{file}': {e}", cause=e) from e

        self.logger.debug("%s %s (%s)", "Created" if created else "Patched", file, fmt)
        relative = context.relative(file_path)
        return self.result(
            step,
            output={"file": file, "created": created, "format": fmt},
            tool_result={"file": file, "format": fmt, "created": created, "merged": patch},
            files_created=[relative] if created else [],
            files_modified=[] if created else [relative],
        )
