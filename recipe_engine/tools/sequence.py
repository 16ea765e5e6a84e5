"""sequence: run nested steps one after another."""

from ..context import StepContext
from ..models import Step
from ..results import StepResult
from ..results import ValidationResult
from .meta import NestedStepsTool


class SequenceTool(NestedStepsTool):
    tool_type = "sequence"
    error_code = "SEQUENCE_FAILED"

    def validate(self, step: Step, context: StepContext) -> ValidationResult:
        validation = self.validation(self.validate_children(step))
        validation.estimated_execution_time = len(step.get("steps") or []) * 1000
        return validation

    async def execute(self, step: Step, context: StepContext, dry_run: bool = False) -> StepResult:
        results = await self.run_children(step, self.children(step), context, dry_run, sequential=True)
        return self.summarize(step, results)
