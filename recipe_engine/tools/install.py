"""install: add packages with the project's package manager."""

import shlex
from pathlib import Path

from ..context import StepContext
from ..models import Step
from ..results import ResourceRequirements
from ..results import StepResult
from ..results import ValidationResult
from . import process
from .base import Tool

# Checked in order; first lockfile found wins
LOCKFILES = (
    ("bun.lockb", "bun"),
    ("bun.lock", "bun"),
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("package-lock.json", "npm"),
)

PACKAGE_MANAGERS = ("bun", "pnpm", "yarn", "npm")

_ADD_COMMANDS = {
    "bun": (["bun", "add"], "--dev"),
    "pnpm": (["pnpm", "add"], "--save-dev"),
    "yarn": (["yarn", "add"], "--dev"),
    "npm": (["npm", "install"], "--save-dev"),
}


def detect_package_manager(project_root: Path) -> str:
    """Package manager implied by the lockfile in ``project_root`` (default npm)."""
    for lockfile, manager in LOCKFILES:
        if (project_root / lockfile).exists():
            return manager
    return "npm"


def build_install_command(manager: str, packages: list[str], dev: bool = False) -> list[str]:
    base, dev_flag = _ADD_COMMANDS[manager]
    return [*base, *([dev_flag] if dev else []), *packages]


class InstallTool(Tool):
    tool_type = "install"
    error_code = "INSTALL_FAILED"
    estimated_execution_time = 10000
    resource_requirements = ResourceRequirements(
        memory=50 * 1024 * 1024, disk=100 * 1024 * 1024, network=True, processes=1
    )

    def validate(self, step: Step, context: StepContext) -> ValidationResult:
        errors = []
        packages = step.get("packages")
        if not isinstance(packages, list) or not packages:
            errors.append("At least one package is required")
        else:
            for package in packages:
                if not isinstance(package, str) or not package.strip():
                    errors.append(f"Invalid package name: {package!r}")

        manager = step.get("packageManager")
        if manager is not None and manager not in PACKAGE_MANAGERS:
            errors.append(f"packageManager must be one of {', '.join(PACKAGE_MANAGERS)}, got '{manager}'")
        return self.validation(errors)

    async def execute(self, step: Step, context: StepContext, dry_run: bool = False) -> StepResult:
        packages = [context.resolve_text(p) for p in step.get("packages", [])]
        manager = step.get("packageManager") or detect_package_manager(context.project_root)
        dev = bool(step.get("dev", False))
        argv = build_install_command(manager, packages, dev)
        command = shlex.join(argv)
        tool_result = {"packageManager": manager, "packages": packages, "dev": dev, "command": command}

        self.logger.debug("Using %s: %s", manager, command)

        if dry_run:
            return self.result(
                step,
                output={"command": command, "dryRun": True},
                tool_result={**tool_result, "dryRun": True},
            )

        try:
            completed = await process.run_process(argv, cwd=context.project_root)
        except OSError as e:
            error = self.fail(f"Failed to run {command}: {e}", cause=e)
        else:
            if completed.exit_code == 0:
                return self.result(
                    step,
                    output={"stdout": completed.stdout},
                    tool_result={**tool_result, "exitCode": 0, "stdout": completed.stdout, "stderr": completed.stderr},
                )
            message = f"{command} exited with code {completed.exit_code}"
            if completed.stderr.strip():
                message += f"\nstderr: {completed.stderr.strip()}"
            error = self.fail(message, exit_code=completed.exit_code)

        if not step.optional:
            raise error

        warning = f"Install failed (optional): {error}"
        self.logger.warning(warning)
        return self.result(
            step,
            output={"warning": str(error)},
            tool_result={**tool_result, "optional": True, "warning": warning},
            warnings=[warning],
        )
