"""Tool contract shared by every step type."""

import logging
from abc import ABC
from abc import abstractmethod
from typing import Any
from typing import ClassVar

from ..context import StepContext
from ..errors import ToolExecutionError
from ..models import Step
from ..results import ResourceRequirements
from ..results import StepResult
from ..results import StepStatus
from ..results import ValidationResult


class Tool(ABC):
    """Executor for one step type.

    Subclasses set ``tool_type`` and ``error_code`` and implement
    ``validate`` (pure, no side effects) and ``execute`` (the effect, which
    must honor ``dry_run`` by reporting the same result shape without
    touching anything).
    """

    tool_type: ClassVar[str] = ""
    error_code: ClassVar[str] = "STEP_EXECUTION_ERROR"
    estimated_execution_time: ClassVar[int] = 0  # milliseconds
    resource_requirements: ClassVar[ResourceRequirements] = ResourceRequirements()

    def __init__(self) -> None:
        self.initialized = False
        self.logger = logging.getLogger(f"{__name__}.{self.tool_type or type(self).__name__}")

    def get_tool_type(self) -> str:
        return self.tool_type

    @property
    def validation_code(self) -> str:
        return f"{self.tool_type.upper().replace('-', '_')}_VALIDATION_FAILED"

    async def initialize(self) -> None:
        """Prepare the tool. Safe to call more than once."""
        if self.initialized:
            return
        await self.on_initialize()
        self.initialized = True

    async def cleanup(self) -> None:
        """Release resources. Safe to call more than once."""
        if not self.initialized:
            return
        await self.on_cleanup()
        self.initialized = False

    async def on_initialize(self) -> None:
        pass

    async def on_cleanup(self) -> None:
        pass

    @abstractmethod
    def validate(self, step: Step, context: StepContext) -> ValidationResult: ...

    @abstractmethod
    async def execute(self, step: Step, context: StepContext, dry_run: bool = False) -> StepResult: ...

    def validation(self, errors: list[str], warnings: list[str] | None = None) -> ValidationResult:
        return ValidationResult.from_errors(
            errors,
            warnings,
            estimated_execution_time=self.estimated_execution_time,
            resource_requirements=self.resource_requirements,
        )

    def result(
        self,
        step: Step,
        output: Any = None,
        tool_result: Any = None,
        files_created: list[str] | None = None,
        files_modified: list[str] | None = None,
        warnings: list[str] | None = None,
        exported_variables: dict[str, Any] | None = None,
    ) -> StepResult:
        """Build the successful result a tool hands back to the executor."""
        return StepResult(
            step_name=step.name,
            tool_type=self.tool_type,
            status=StepStatus.COMPLETED,
            output=output,
            tool_result=tool_result,
            files_created=list(files_created or []),
            files_modified=list(files_modified or []),
            warnings=list(warnings or []),
            exported_variables=dict(exported_variables or {}),
        )

    def fail(self, message: str, cause: BaseException | None = None, **details: Any) -> ToolExecutionError:
        """Build this tool's runtime error; callers ``raise self.fail(...)``."""
        return ToolExecutionError(message, code=self.error_code, cause=cause, **details)
