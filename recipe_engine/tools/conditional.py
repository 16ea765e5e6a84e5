"""conditional: evaluate a predicate once and run one of two branches."""

from ..context import StepContext
from ..expression_evaluator import ExpressionError
from ..expression_evaluator import parse_expression
from ..models import Step
from ..results import StepResult
from ..results import ValidationResult
from .meta import NestedStepsTool


class ConditionalTool(NestedStepsTool):
    tool_type = "conditional"
    error_code = "CONDITIONAL_FAILED"

    def validate(self, step: Step, context: StepContext) -> ValidationResult:
        errors = []
        condition = step.get("condition")
        if condition is None or condition == "":
            errors.append("condition is required")
        elif not isinstance(condition, bool):
            try:
                parse_expression(str(condition))
            except ExpressionError as e:
                errors.append(f"Invalid condition: {e}")
        errors.extend(self.validate_children(step, "then"))
        errors.extend(self.validate_children(step, "else", required=False))
        return self.validation(errors)

    async def execute(self, step: Step, context: StepContext, dry_run: bool = False) -> StepResult:
        try:
            matched = context.evaluate_condition(step.get("condition"))
        except ExpressionError as e:
            raise self.fail(f"Condition of '{step.name}' could not be evaluated: {e}", cause=e) from e

        branch = "then" if matched else "else"
        children = self.children(step, branch)
        self.logger.debug("Conditional %s took the '%s' branch", step.name, branch)
        results = await self.run_children(step, children, context, dry_run, sequential=True) if children else []
        return self.summarize(step, results, condition=matched, branch=branch)
