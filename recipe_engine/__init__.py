"""Recipe engine - run declarative, multi-step code generation workflows."""

import json
import logging
from typing import Any

from .collaborators import ActionOutcome
from .collaborators import Collaborators
from .collaborators import RenderedFile
from .config import EngineConfig
from .context import StepContext
from .engine import RecipeEngine
from .errors import DependencyGraphError
from .errors import RecipeError
from .errors import RecipeValidationError
from .errors import StepTimeoutError
from .errors import ToolExecutionError
from .events import EventListener
from .events import ExecutionEvent
from .models import Recipe
from .models import Step
from .results import ExecutionMetrics
from .results import RecipeResult
from .results import RecipeStatus
from .results import StepResult
from .results import StepStatus
from .results import ValidationResult
from .tools import Tool
from .tools import ToolRegistry
from .tools import create_default_registry

logger = logging.getLogger(__name__)

# Maximum size (in bytes) for output values included in a result summary
MAX_OUTPUT_SIZE_BYTES = 10_000

__all__ = [
    "ActionOutcome",
    "Collaborators",
    "DependencyGraphError",
    "EngineConfig",
    "EventListener",
    "ExecutionEvent",
    "ExecutionMetrics",
    "Recipe",
    "RecipeEngine",
    "RecipeError",
    "RecipeResult",
    "RecipeStatus",
    "RecipeValidationError",
    "RenderedFile",
    "Step",
    "StepContext",
    "StepResult",
    "StepStatus",
    "StepTimeoutError",
    "Tool",
    "ToolExecutionError",
    "ToolRegistry",
    "ValidationResult",
    "create_default_registry",
    "summarize_result",
]


def _truncate_value(value: Any, max_bytes: int = MAX_OUTPUT_SIZE_BYTES) -> Any:
    """
    Truncate large values so summaries stay small.

    Handles strings, dicts, and lists differently:
    - Strings: Truncate with message
    - Dicts/Lists: Return truncation marker with preview

    Args:
        value: Value to potentially truncate
        max_bytes: Maximum size in bytes

    Returns:
        Original value if small enough, truncated version otherwise
    """
    if isinstance(value, str):
        if len(value) > max_bytes:
            return value[:max_bytes] + "\n\n[... truncated]"
        return value

    if isinstance(value, (dict, list)):
        try:
            serialized = json.dumps(value)
        except (TypeError, ValueError):
            return value
        if len(serialized) > max_bytes:
            return {
                "_truncated": True,
                "_type": type(value).__name__,
                "_full_size_bytes": len(serialized),
                "_preview": serialized[:500] + "..." if len(serialized) > 500 else serialized,
            }
        return value

    return value


def summarize_result(result: RecipeResult) -> dict[str, Any]:
    """
    Compact, JSON-friendly summary of a recipe run.

    Step outputs are truncated; a calling surface can use ``status`` to pick an
    exit code and print the rest.

    Args:
        result: Result returned by RecipeEngine.execute_recipe

    Returns:
        Summary dict with status, per-step outcomes, files and messages
    """
    summary: dict[str, Any] = {
        "execution_id": result.execution_id,
        "recipe": result.recipe_name,
        "status": result.status.value,
        "duration_ms": round(result.duration),
        "batches": result.batches,
        "metrics": result.metrics.to_dict(),
        "steps": {},
    }

    for step_result in result.step_results:
        entry: dict[str, Any] = {"status": step_result.status.value, "tool": step_result.tool_type}
        if step_result.output is not None:
            entry["output"] = _truncate_value(step_result.output)
        if step_result.error is not None:
            entry["error"] = step_result.error.to_dict()
        if step_result.skip_reason:
            entry["skip_reason"] = step_result.skip_reason
        if step_result.retry_count:
            entry["retries"] = step_result.retry_count
        summary["steps"][step_result.step_name] = entry

    if result.files_created:
        summary["files_created"] = result.files_created
    if result.files_modified:
        summary["files_modified"] = result.files_modified
    if result.errors:
        summary["errors"] = result.errors
    if result.warnings:
        summary["warnings"] = result.warnings

    return summary
