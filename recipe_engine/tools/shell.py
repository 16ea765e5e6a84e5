"""shell: run a command in the project."""

import shlex

from ..context import StepContext
from ..models import Step
from ..results import ResourceRequirements
from ..results import StepResult
from ..results import ValidationResult
from . import process
from .base import Tool


class ShellTool(Tool):
    tool_type = "shell"
    error_code = "SHELL_EXECUTION_ERROR"
    estimated_execution_time = 1000
    resource_requirements = ResourceRequirements(memory=10 * 1024 * 1024, network=True, processes=1)

    def validate(self, step: Step, context: StepContext) -> ValidationResult:
        errors = []
        if not step.get("command") or not isinstance(step.get("command"), str):
            errors.append("Shell command is required")
        if step.get("args") is not None and not isinstance(step.get("args"), list):
            errors.append("args must be a list")
        if step.get("cwd") is not None and not isinstance(step.get("cwd"), str):
            errors.append("Working directory (cwd) must be a string")
        if step.get("env") is not None and not isinstance(step.get("env"), dict):
            errors.append("env must be a mapping")
        return self.validation(errors)

    def build_command(self, step: Step, context: StepContext) -> str:
        """Resolved command line; extra ``args`` are shell-quoted."""
        command = context.resolve_text(step.get("command"))
        args = [context.resolve_text(arg) for arg in step.get("args") or []]
        if args:
            command = f"{command} {shlex.join(args)}"
        return command

    async def execute(self, step: Step, context: StepContext, dry_run: bool = False) -> StepResult:
        command = self.build_command(step, context)

        if step.get("cwd"):
            cwd = context.resolve_path(step.get("cwd"))
            if not cwd.is_dir():
                raise self.fail(f"Step '{step.name}': cwd is not a directory: {cwd}")
        else:
            cwd = context.project_root

        env = {str(k): context.resolve_text(v) for k, v in (step.get("env") or {}).items()}

        if dry_run:
            return self.result(
                step,
                output={"command": command, "dryRun": True},
                tool_result={"command": command, "cwd": str(cwd), "dryRun": True},
            )

        self.logger.debug("Running: %s (cwd=%s)", command, cwd)
        try:
            completed = await process.run_process(command, cwd=cwd, env=env)
        except OSError as e:
            raise self.fail(f"Step '{step.name}': failed to execute command: {e}", cause=e) from e

        tool_result = {
            "command": command,
            "exitCode": completed.exit_code,
            "stdout": completed.stdout,
            "stderr": completed.stderr,
        }
        if completed.exit_code != 0:
            message = f"Step '{step.name}': command failed with exit code {completed.exit_code}"
            if completed.stderr.strip():
                message += f"\nstderr: {completed.stderr.strip()}"
            raise self.fail(message, **tool_result)

        return self.result(step, output={"stdout": completed.stdout}, tool_result=tool_result)
