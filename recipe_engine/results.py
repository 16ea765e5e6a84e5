"""Step and recipe result types."""

import datetime
from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from typing import Any


class StepStatus(str, Enum):
    """Lifecycle of a single step."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.SKIPPED)


_ALLOWED_TRANSITIONS = {
    StepStatus.PENDING: {StepStatus.RUNNING, StepStatus.SKIPPED},
    StepStatus.RUNNING: {StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.SKIPPED},
}


class RecipeStatus(str, Enum):
    """Overall outcome of a recipe run."""

    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class StepError:
    """Error attached to a failed (or downgraded) step."""

    code: str
    message: str
    cause: BaseException | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


@dataclass
class ResourceRequirements:
    memory: int = 0
    disk: int = 0
    network: bool = False
    processes: int = 0


@dataclass
class ValidationResult:
    """Outcome of Tool.validate()."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    estimated_execution_time: int = 0  # milliseconds
    resource_requirements: ResourceRequirements = field(default_factory=ResourceRequirements)

    @classmethod
    def from_errors(
        cls,
        errors: list[str],
        warnings: list[str] | None = None,
        estimated_execution_time: int = 0,
        resource_requirements: ResourceRequirements | None = None,
    ) -> "ValidationResult":
        return cls(
            is_valid=not errors,
            errors=errors,
            warnings=warnings or [],
            estimated_execution_time=estimated_execution_time,
            resource_requirements=resource_requirements or ResourceRequirements(),
        )


@dataclass
class StepResult:
    """Result of one step; status only ever moves forward."""

    step_name: str
    tool_type: str
    status: StepStatus = StepStatus.PENDING
    start_time: datetime.datetime | None = None
    end_time: datetime.datetime | None = None
    duration: float = 0.0  # milliseconds
    output: Any = None
    tool_result: Any = None
    error: StepError | None = None
    files_created: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    retry_count: int = 0
    dependencies_satisfied: bool = True
    warnings: list[str] = field(default_factory=list)
    skip_reason: str | None = None
    exported_variables: dict[str, Any] = field(default_factory=dict)

    def transition(self, status: StepStatus) -> None:
        """Move to `status`, rejecting backward or repeated transitions."""
        if status not in _ALLOWED_TRANSITIONS.get(self.status, set()):
            raise RuntimeError(
                f"Step '{self.step_name}': illegal status transition {self.status.value} -> {status.value}"
            )
        self.status = status
        now = datetime.datetime.now()
        if status == StepStatus.RUNNING:
            self.start_time = now
        elif status.is_terminal:
            if self.start_time is None:
                self.start_time = now
            self.end_time = now
            self.duration = (self.end_time - self.start_time).total_seconds() * 1000

    @property
    def succeeded(self) -> bool:
        return self.status == StepStatus.COMPLETED and self.error is None

    @property
    def downgraded(self) -> bool:
        """Completed only because continueOnError/optional absorbed a failure."""
        return self.status == StepStatus.COMPLETED and self.error is not None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": self.status.value,
            "toolType": self.tool_type,
            "stepName": self.step_name,
            "startTime": self.start_time.isoformat() if self.start_time else None,
            "endTime": self.end_time.isoformat() if self.end_time else None,
            "duration": self.duration,
            "output": self.output,
            "retryCount": self.retry_count,
            "dependenciesSatisfied": self.dependencies_satisfied,
        }
        if self.error is not None:
            data["error"] = self.error.to_dict()
        if self.files_created:
            data["filesCreated"] = list(self.files_created)
        if self.files_modified:
            data["filesModified"] = list(self.files_modified)
        if self.warnings:
            data["warnings"] = list(self.warnings)
        if self.skip_reason:
            data["skipReason"] = self.skip_reason
        return data


@dataclass
class ExecutionMetrics:
    """Counters for one recipe run."""

    total_retries: int = 0
    max_concurrent_steps: int = 0
    batches: int = 0
    step_durations: dict[str, float] = field(default_factory=dict)  # milliseconds
    progress: int = 0  # percent of planned steps finished

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalRetries": self.total_retries,
            "maxConcurrentSteps": self.max_concurrent_steps,
            "batches": self.batches,
            "stepDurations": dict(self.step_durations),
            "progress": self.progress,
        }


@dataclass
class RecipeResult:
    """Aggregated result of one recipe run."""

    execution_id: str
    recipe_name: str
    status: RecipeStatus
    step_results: list[StepResult] = field(default_factory=list)
    batches: list[list[str]] = field(default_factory=list)
    files_created: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    variables: dict[str, Any] = field(default_factory=dict)
    start_time: datetime.datetime | None = None
    end_time: datetime.datetime | None = None
    duration: float = 0.0
    metrics: ExecutionMetrics = field(default_factory=ExecutionMetrics)

    @property
    def success(self) -> bool:
        return self.status in (RecipeStatus.COMPLETED, RecipeStatus.PARTIALLY_COMPLETED)

    def get_step(self, name: str) -> StepResult | None:
        for result in self.step_results:
            if result.step_name == name:
                return result
        return None

    def count(self, status: StepStatus) -> int:
        return sum(1 for r in self.step_results if r.status == status)
