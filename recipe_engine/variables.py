"""Placeholder resolution over recipe variables and step exports.

Only dotted-path lookups are performed here. Anything richer (comparisons,
connectives) belongs to the condition evaluator.
"""

import json
import re
from collections.abc import Mapping
from typing import Any

from .errors import RecipeValidationError
from .models import VARIABLE_TYPES

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")
_INDEX_PATTERN = re.compile(r"\[(\d+)\]")


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def split_path(path: str) -> list[str]:
    """Split `a.b[0].c` into ['a', 'b', '0', 'c']."""
    normalized = _INDEX_PATTERN.sub(r".\1", path.strip())
    return [part for part in normalized.split(".") if part]


def lookup_path(scope: Any, path: str) -> Any:
    """Walk a dotted path through mappings, sequences and attributes.

    Returns MISSING when any segment is absent.
    """
    parts = split_path(path)
    if not parts:
        return MISSING

    value = scope
    for part in parts:
        if isinstance(value, Mapping):
            if part not in value:
                return MISSING
            value = value[part]
        elif isinstance(value, (list, tuple)):
            if not part.lstrip("-").isdigit():
                return MISSING
            index = int(part)
            if not -len(value) <= index < len(value):
                return MISSING
            value = value[index]
        elif value is not None and not part.startswith("_") and hasattr(value, part):
            value = getattr(value, part)
        else:
            return MISSING
    return value


def _stringify(value: Any) -> str:
    # json.dumps for dict/list to produce valid JSON, not Python repr
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def substitute_variables(template: str, scope: Mapping[str, Any]) -> Any:
    """Replace {{ path }} references with values from scope.

    A template consisting of exactly one placeholder returns the raw value so
    lists and dicts keep their type. Unresolved placeholders are left verbatim.
    """
    full = PLACEHOLDER_PATTERN.fullmatch(template.strip())
    if full:
        value = lookup_path(scope, full.group(1))
        return template if value is MISSING else value

    def replace(match: re.Match) -> str:
        value = lookup_path(scope, match.group(1))
        if value is MISSING:
            return match.group(0)
        return _stringify(value)

    return PLACEHOLDER_PATTERN.sub(replace, template)


def resolve(value: Any, scope: Mapping[str, Any]) -> Any:
    """Recursively substitute placeholders in strings, dicts and lists.

    Numbers, booleans, None etc. pass through unchanged.
    """
    if isinstance(value, str):
        if "{{" not in value:
            return value
        return substitute_variables(value, scope)
    if isinstance(value, dict):
        return {k: resolve(v, scope) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve(item, scope) for item in value]
    return value


def resolve_text(value: Any, scope: Mapping[str, Any]) -> str:
    """Resolve and always return a string (for paths and commands)."""
    resolved = resolve(value, scope)
    return resolved if isinstance(resolved, str) else _stringify(resolved)


def _check_type(name: str, value: Any, definition: dict[str, Any]) -> str | None:
    var_type = definition.get("type", "string")
    if var_type in ("string", "file", "directory"):
        if not isinstance(value, str):
            return f"Variable '{name}' must be a string, got {type(value).__name__}"
    elif var_type == "number":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return f"Variable '{name}' must be a number, got {type(value).__name__}"
    elif var_type == "boolean":
        if not isinstance(value, bool):
            return f"Variable '{name}' must be a boolean, got {type(value).__name__}"
    elif var_type == "enum":
        allowed = definition.get("values") or []
        if value not in allowed:
            return f"Variable '{name}' must be one of {allowed}, got {value!r}"
    elif var_type == "array":
        if not isinstance(value, list):
            return f"Variable '{name}' must be an array, got {type(value).__name__}"
    elif var_type == "object":
        if not isinstance(value, dict):
            return f"Variable '{name}' must be an object, got {type(value).__name__}"
    elif var_type not in VARIABLE_TYPES:
        return f"Variable '{name}' has invalid type: {var_type}"

    pattern = definition.get("pattern")
    if pattern and isinstance(value, str) and not re.fullmatch(pattern, value):
        return f"Variable '{name}' does not match pattern {pattern!r}"
    return None


def resolve_inputs(schema: Mapping[str, Any], provided: Mapping[str, Any] | None) -> dict[str, Any]:
    """Apply a recipe's variable schema to caller-provided values.

    Defaults fill gaps, required variables must be present, values are type
    checked. Provided variables the schema does not mention pass through.
    """
    provided = dict(provided or {})
    resolved: dict[str, Any] = {}
    errors: list[str] = []

    for name, definition in schema.items():
        definition = definition or {}
        value = provided.get(name, MISSING)
        if value is MISSING:
            value = definition.get("default", MISSING)

        if value is MISSING or value is None or value == "":
            if definition.get("required"):
                errors.append(f"Missing required variable: {name}")
                continue
            if value is MISSING:
                continue

        error = _check_type(name, value, definition) if value is not None else None
        if error:
            errors.append(error)
            continue
        resolved[name] = value

    if errors:
        raise RecipeValidationError("Recipe variables are invalid", errors, code="INVALID_VARIABLES")

    for name, value in provided.items():
        if name not in schema:
            resolved[name] = value

    return resolved
