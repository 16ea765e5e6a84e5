"""prompt: ask the user for a value and publish it as a variable."""

import re
from typing import Any

from ..context import StepContext
from ..models import Step
from ..results import StepResult
from ..results import ValidationResult
from .base import Tool

PROMPT_TYPES = ("input", "select", "multiselect", "confirm")


def _option_values(options: list[Any] | None) -> list[Any] | None:
    if not options:
        return None
    return [o.get("value") if isinstance(o, dict) else o for o in options]


class PromptTool(Tool):
    """Interactive input through the host's Prompter.

    A value already present for ``variable`` is reused without asking. Dry
    runs and hosts without a prompter fall back to ``default``.
    """

    tool_type = "prompt"
    error_code = "PROMPT_FAILED"

    def validate(self, step: Step, context: StepContext) -> ValidationResult:
        errors = []
        if not step.get("variable"):
            errors.append("Target variable name is required")

        prompt_type = step.get("promptType", "input")
        if prompt_type not in PROMPT_TYPES:
            errors.append(f"promptType must be one of {', '.join(PROMPT_TYPES)}, got '{prompt_type}'")
        if prompt_type in ("select", "multiselect") and not step.get("options"):
            errors.append(f"Options are required for {prompt_type} prompt")

        pattern = step.get("validate")
        if pattern:
            try:
                re.compile(str(pattern).strip("/"))
            except re.error as e:
                errors.append(f"Invalid validate pattern: {e}")
        return self.validation(errors)

    async def execute(self, step: Step, context: StepContext, dry_run: bool = False) -> StepResult:
        variable = step.get("variable")
        default = context.resolve(step.get("default"))
        existing = context.variables.get(variable)
        prompter = context.collaborators.prompter

        if existing is not None:
            value, source = existing, "provided"
        elif dry_run or prompter is None:
            if default is None and not dry_run:
                raise self.fail(f"No value for '{variable}' and no prompter available to ask for it")
            value, source = default, "default"
        else:
            message = context.resolve_text(step.get("message") or f"Enter value for {variable}")
            try:
                value = await prompter.ask(
                    message,
                    prompt_type=step.get("promptType", "input"),
                    choices=_option_values(step.get("options")),
                    default=default,
                )
            except Exception as e:
                raise self.fail(f"Prompt for '{variable}' failed: {e}", cause=e) from e
            source = "prompt"

        pattern = step.get("validate")
        if pattern and value is not None and not re.fullmatch(str(pattern).strip("/"), str(value)):
            raise self.fail(f"Value for '{variable}' does not match {pattern}")

        self.logger.debug("Prompt %s resolved from %s", variable, source)
        return self.result(
            step,
            output={"variable": variable, "value": value},
            tool_result={"variable": variable, "value": value, "source": source},
            exported_variables={variable: value},
        )
