"""Shared plumbing for tools whose payload is a nested step list."""

from typing import Any

from ..context import StepContext
from ..errors import DependencyGraphError
from ..models import Step
from ..models import parse_steps
from ..models import validate_step_list
from ..results import StepResult
from ..results import StepStatus
from .base import Tool


class NestedStepsTool(Tool):
    """Base for sequence, parallel and conditional."""

    def children(self, step: Step, key: str = "steps") -> list[Step]:
        return parse_steps(step.get(key), owner=f"Step '{step.name}'")

    def validate_children(self, step: Step, key: str = "steps", required: bool = True) -> list[str]:
        raw = step.get(key)
        if raw is None and not required:
            return []
        if not isinstance(raw, list) or (required and not raw):
            return [f'"{key}" must be a non-empty list of steps']
        try:
            children = self.children(step, key)
        except ValueError as e:
            return [str(e)]
        return [f"{key}: {error}" for error in validate_step_list(children)]

    async def run_children(
        self,
        step: Step,
        children: list[Step],
        context: StepContext,
        dry_run: bool,
        sequential: bool = False,
        limit: int | None = None,
    ) -> list[StepResult]:
        if context.executor is None:
            raise self.fail(f"{self.tool_type} steps require an executor")
        try:
            return await context.executor.execute_steps(
                children, context, dry_run=dry_run, sequential=sequential, limit=limit
            )
        except DependencyGraphError as e:
            raise self.fail(f"Nested steps of '{step.name}' are invalid: {e}", cause=e) from e

    def summarize(self, step: Step, results: list[StepResult], **extra: Any) -> StepResult:
        """Fail on any hard child failure, else roll child results up into one."""
        failed = [r for r in results if r.status == StepStatus.FAILED]
        if failed:
            first = failed[0]
            raise self.fail(
                f"{self.tool_type.capitalize()} '{step.name}' failed: "
                f"{', '.join(r.step_name for r in failed)} ({first.error.message if first.error else 'unknown error'})",
                failed_steps=[r.step_name for r in failed],
            )

        files_created: list[str] = []
        files_modified: list[str] = []
        warnings: list[str] = []
        for r in results:
            files_created.extend(r.files_created)
            files_modified.extend(r.files_modified)
            warnings.extend(r.warnings)

        output = {
            "totalSteps": len(results),
            "completed": sum(1 for r in results if r.status == StepStatus.COMPLETED),
            "skipped": sum(1 for r in results if r.status == StepStatus.SKIPPED),
            **extra,
        }
        return self.result(
            step,
            output=output,
            tool_result={"steps": [r.to_dict() for r in results]},
            files_created=files_created,
            files_modified=files_modified,
            warnings=warnings,
        )
