"""query: read a structured data file and export values from it."""

from ..context import StepContext
from ..expression_evaluator import ExpressionError
from ..expression_evaluator import evaluate_expression
from ..expression_evaluator import parse_expression
from ..models import Step
from ..results import ResourceRequirements
from ..results import StepResult
from ..results import ValidationResult
from ..variables import MISSING
from ..variables import lookup_path
from .base import Tool
from .data_formats import READ_FORMATS
from .data_formats import detect_format
from .data_formats import read_file


class QueryTool(Tool):
    """Evaluate ``checks`` (dot paths) and an optional ``expression`` over a file.

    Each check may ``export`` the value found at its path and/or
    ``exportExists`` a truthiness flag. The expression sees the parsed file
    as ``data``.
    """

    tool_type = "query"
    error_code = "QUERY_FAILED"
    estimated_execution_time = 100
    resource_requirements = ResourceRequirements(memory=5 * 1024 * 1024)

    def validate(self, step: Step, context: StepContext) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []
        file = step.get("file")
        checks = step.get("checks")
        expression = step.get("expression")

        if not file or not isinstance(file, str):
            errors.append("File path is required")
        if not checks and not expression:
            errors.append('Either "checks" or "expression" must be specified')
        if checks and expression:
            warnings.append('Both "checks" and "expression" are specified; both will be evaluated')

        if checks is not None:
            if not isinstance(checks, list):
                errors.append('"checks" must be a list')
            else:
                for index, check in enumerate(checks):
                    if not isinstance(check, dict) or not check.get("path"):
                        errors.append(f'Check at index {index} must have a "path"')
                    elif not check.get("export") and not check.get("exportExists"):
                        warnings.append(
                            f'Check at index {index} has no "export" or "exportExists"; result will be discarded'
                        )

        if expression:
            try:
                parse_expression(str(expression))
            except ExpressionError as e:
                errors.append(f"Invalid expression: {e}")

        fmt = step.get("format")
        if fmt and fmt not in READ_FORMATS:
            errors.append(f"Unsupported format: {fmt}. Must be one of: {', '.join(READ_FORMATS)}")

        return self.validation(errors, warnings)

    async def execute(self, step: Step, context: StepContext, dry_run: bool = False) -> StepResult:
        file = context.resolve_text(step.get("file"))
        file_path = context.resolve_path(file)
        fmt = detect_format(file, step.get("format"))
        if not fmt:
            raise self.fail(f'Cannot detect format for "{file}". Specify "format" explicitly.')
        if not file_path.is_file():
            raise self.fail(f"File not found: {file}")

        try:
            data = read_file(file_path, fmt)
        except (OSError, ValueError) as e:
            raise self.fail(f"Failed to read '{file}': {e}", cause=e) from e

        query_result: dict = {"file": file, "format": fmt}
        exported: dict = {}

        checks = step.get("checks") or []
        if checks:
            query_result["checks"] = []
        for check in checks:
            path = context.resolve_text(check["path"])
            value = lookup_path(data, path)
            exists = value is not MISSING
            value = None if value is MISSING else value
            query_result["checks"].append({"path": path, "exists": exists, "value": value})
            if check.get("export"):
                exported[check["export"]] = value
            if check.get("exportExists"):
                exported[check["exportExists"]] = exists and value is not None and value is not False

        expression = step.get("expression")
        if expression:
            try:
                query_result["value"] = evaluate_expression(str(expression), {"data": data})
            except ExpressionError as e:
                raise self.fail(f"Expression evaluation failed: {e}", cause=e) from e
            query_result["expression"] = expression

        if exported:
            output = exported
        elif "value" in query_result:
            output = {"value": query_result["value"]}
        else:
            output = None

        return self.result(step, output=output, tool_result=query_result, exported_variables=exported)
