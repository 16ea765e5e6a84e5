"""parallel: fan nested steps out under a concurrency limit."""

from ..context import StepContext
from ..models import Step
from ..results import StepResult
from ..results import ValidationResult
from .meta import NestedStepsTool


class ParallelTool(NestedStepsTool):
    """Run nested steps concurrently, at most ``limit`` at a time.

    Nested ``dependsOn`` edges still apply; without them every child lands
    in the same batch.
    """

    tool_type = "parallel"
    error_code = "PARALLEL_FAILED"

    def validate(self, step: Step, context: StepContext) -> ValidationResult:
        errors = self.validate_children(step)
        limit = step.get("limit")
        if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 1):
            errors.append("limit must be a positive integer")
        return self.validation(errors)

    async def execute(self, step: Step, context: StepContext, dry_run: bool = False) -> StepResult:
        limit = step.get("limit") or context.config.max_concurrency
        results = await self.run_children(step, self.children(step), context, dry_run, limit=limit)
        return self.summarize(step, results, limit=limit)
