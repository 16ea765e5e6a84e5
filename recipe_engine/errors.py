"""Exception taxonomy for recipe execution."""

from typing import Any


class RecipeError(Exception):
    """Base class for all recipe engine errors."""

    code = "RECIPE_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class RecipeValidationError(RecipeError):
    """Structural misconfiguration found before execution. Never retried."""

    code = "RECIPE_VALIDATION_ERROR"

    def __init__(self, message: str, errors: list[str] | None = None, code: str | None = None):
        super().__init__(message, code)
        self.errors = errors or [message]

    def __str__(self) -> str:
        if self.errors == [self.message]:
            return self.message
        return f"{self.message}:\n" + "\n".join(f"  - {err}" for err in self.errors)


class DependencyGraphError(RecipeError):
    """Cycle, missing dependency or other graph defect. Fatal before any step runs."""

    code = "DEPENDENCY_GRAPH_ERROR"

    def __init__(
        self,
        message: str,
        code: str,
        steps: list[str] | None = None,
        cycle: list[str] | None = None,
    ):
        super().__init__(message, code)
        self.steps = steps or []
        self.cycle = cycle or []


class ToolExecutionError(RecipeError):
    """Runtime failure inside a tool's execute()."""

    code = "STEP_EXECUTION_ERROR"

    def __init__(self, message: str, code: str | None = None, cause: BaseException | None = None, **details: Any):
        super().__init__(message, code)
        self.cause = cause
        self.details = details


class StepTimeoutError(ToolExecutionError):
    """Step exceeded its configured timeout."""

    code = "STEP_TIMEOUT"

    def __init__(self, step_name: str, timeout: float):
        super().__init__(f"Step '{step_name}' timed out after {timeout}s", "STEP_TIMEOUT")
        self.step_name = step_name
        self.timeout = timeout

