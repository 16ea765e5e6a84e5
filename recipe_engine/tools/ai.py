"""ai: generate text through the host's AI backend."""

from ..context import StepContext
from ..models import Step
from ..results import ResourceRequirements
from ..results import StepResult
from ..results import ValidationResult
from .base import Tool

OUTPUT_TYPES = ("variable", "file", "stdout")
_BACKEND_OPTIONS = ("system", "model", "provider", "temperature", "maxTokens")


class AITool(Tool):
    tool_type = "ai"
    error_code = "AI_GENERATION_FAILED"
    estimated_execution_time = 5000
    resource_requirements = ResourceRequirements(memory=50 * 1024 * 1024, network=True)

    def validate(self, step: Step, context: StepContext) -> ValidationResult:
        errors = []
        warnings = []
        prompt = step.get("prompt")
        if not isinstance(prompt, str) or not prompt.strip():
            errors.append('AI step requires a non-empty "prompt" field')

        output = step.get("output")
        if not isinstance(output, dict):
            errors.append('AI step requires an "output" configuration')
        else:
            output_type = output.get("type")
            if output_type not in OUTPUT_TYPES:
                errors.append(f'Invalid output type "{output_type}". Must be one of: {", ".join(OUTPUT_TYPES)}')
            if output_type == "variable" and not output.get("variable"):
                errors.append('Output type "variable" requires a "variable" name')
            if output_type == "file" and not output.get("to"):
                errors.append('Output type "file" requires a "to" path')

        temperature = step.get("temperature")
        if temperature is not None and (not isinstance(temperature, (int, float)) or not 0 <= temperature <= 2):
            errors.append("Temperature must be between 0 and 2")
        max_tokens = step.get("maxTokens")
        if max_tokens is not None and (not isinstance(max_tokens, int) or max_tokens <= 0):
            errors.append("maxTokens must be a positive number")

        if context.collaborators.ai is None:
            warnings.append("No AI generator is configured; execution will fail unless running dry")
        return self.validation(errors, warnings)

    async def execute(self, step: Step, context: StepContext, dry_run: bool = False) -> StepResult:
        prompt = context.resolve_text(step.get("prompt"))
        output = step.get("output")
        output_type = output["type"]
        target = context.resolve_path(output["to"]) if output_type == "file" else None

        files_created: list[str] = []
        files_modified: list[str] = []
        if target is not None:
            (files_modified if target.exists() else files_created).append(context.relative(target))

        if dry_run:
            text = None
        else:
            generator = context.collaborators.ai
            if generator is None:
                raise self.fail("No AI generator configured")
            options = {key: context.resolve(step.get(key)) for key in _BACKEND_OPTIONS if step.get(key) is not None}
            try:
                text = await generator.generate(prompt, **options)
            except Exception as e:
                raise self.fail(f"AI generation failed: {e}", cause=e) from e

            if target is not None:
                try:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    target.write_text(text, encoding="utf-8")
                except OSError as e:
                    raise self.fail(f"Failed to write '{output['to']}': {e}", cause=e) from e
            elif output_type == "stdout":
                context.show_message(text)

        exported = {output["variable"]: text} if output_type == "variable" else {}
        return self.result(
            step,
            output={"text": text, "dryRun": dry_run},
            tool_result={"prompt": prompt, "output": text, "outputType": output_type},
            files_created=files_created,
            files_modified=files_modified,
            exported_variables=exported,
        )
