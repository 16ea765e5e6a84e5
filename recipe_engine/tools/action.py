"""action: invoke a named action provided by the host."""

from ..context import StepContext
from ..models import Step
from ..results import StepResult
from ..results import ValidationResult
from .base import Tool


class ActionTool(Tool):
    tool_type = "action"
    error_code = "ACTION_FAILED"

    def validate(self, step: Step, context: StepContext) -> ValidationResult:
        errors = []
        warnings = []
        if not step.get("action") or not isinstance(step.get("action"), str):
            errors.append("Action name is required")
        if step.get("parameters") is not None and not isinstance(step.get("parameters"), dict):
            errors.append("parameters must be a mapping")
        if context.collaborators.actions is None:
            warnings.append("No action runner is configured")
        return self.validation(errors, warnings)

    async def execute(self, step: Step, context: StepContext, dry_run: bool = False) -> StepResult:
        runner = context.collaborators.actions
        if runner is None:
            raise self.fail("No action runner configured")

        action = context.resolve_text(step.get("action"))
        parameters = context.resolve(step.get("parameters") or {})
        try:
            outcome = await runner.run(action, parameters, context.project_root, dry_run=dry_run)
        except Exception as e:
            raise self.fail(f"Action '{action}' failed: {e}", cause=e) from e

        return self.result(
            step,
            output=outcome.output,
            tool_result={"action": action, "parameters": parameters, "dryRun": dry_run},
            files_created=outcome.files_created,
            files_modified=outcome.files_modified,
        )
