"""Recipe data models and YAML parsing."""

from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Any

import yaml

TOOL_TYPES = (
    "template",
    "action",
    "recipe",
    "shell",
    "prompt",
    "ai",
    "install",
    "query",
    "patch",
    "ensure-dirs",
    "sequence",
    "parallel",
    "conditional",
)

# Meta-step tool -> config keys that hold nested step lists
NESTED_STEP_KEYS = {
    "sequence": ("steps",),
    "parallel": ("steps",),
    "conditional": ("then", "else"),
}

VARIABLE_TYPES = ("string", "number", "boolean", "enum", "array", "object", "file", "directory")

# YAML key -> Step attribute. Everything else is tool-specific config.
_STEP_FIELD_ALIASES = {
    "name": "name",
    "tool": "tool",
    "description": "description",
    "dependsOn": "depends_on",
    "depends_on": "depends_on",
    "when": "when",
    "skip_if": "skip_if",
    "skipIf": "skip_if",
    "exports": "exports",
    "continueOnError": "continue_on_error",
    "continue_on_error": "continue_on_error",
    "optional": "optional",
    "retries": "retries",
    "timeout": "timeout",
}


@dataclass
class Step:
    """A single unit of work, dispatched to exactly one tool.

    Tool-specific fields (``template``, ``command``, ``paths``, ``merge`` ...)
    live in ``config`` untouched; the core never interprets them.
    """

    name: str
    tool: str
    config: dict[str, Any] = field(default_factory=dict)
    description: str | None = None
    depends_on: list[str] = field(default_factory=list)
    when: str | None = None
    skip_if: str | None = None
    exports: dict[str, str] = field(default_factory=dict)
    continue_on_error: bool = False
    optional: bool = False
    retries: int | None = None  # None = engine default
    timeout: float | None = None  # seconds, None = engine default

    def get(self, key: str, default: Any = None) -> Any:
        """Read a tool-specific field."""
        return self.config.get(key, default)

    def validate(self) -> list[str]:
        """Validate step structure (not tool-specific fields)."""
        errors = []
        label = self.name or "<unnamed>"

        if not self.name or not isinstance(self.name, str):
            errors.append("Step missing required field: name")
        if not self.tool:
            errors.append(f"Step '{label}': missing required field: tool")
        elif self.tool not in TOOL_TYPES:
            errors.append(f"Step '{label}': tool must be one of {', '.join(TOOL_TYPES)}, got '{self.tool}'")

        if not isinstance(self.depends_on, list) or not all(isinstance(d, str) for d in self.depends_on):
            errors.append(f"Step '{label}': dependsOn must be a list of step names")

        if not isinstance(self.exports, dict):
            errors.append(f"Step '{label}': exports must be a mapping of name to expression")
        else:
            for key, expression in self.exports.items():
                if not str(key).replace("_", "").replace("-", "").isalnum():
                    errors.append(f"Step '{label}': export name must be alphanumeric with underscores, got '{key}'")
                if not isinstance(expression, str):
                    errors.append(f"Step '{label}': export '{key}' must be a string expression")

        if self.retries is not None and (not isinstance(self.retries, int) or self.retries < 0):
            errors.append(f"Step '{label}': retries must be a non-negative integer")

        if self.timeout is not None and (not isinstance(self.timeout, (int, float)) or self.timeout <= 0):
            errors.append(f"Step '{label}': timeout must be positive")

        return errors

    @classmethod
    def from_dict(cls, step_data: dict[str, Any]) -> "Step":
        """Parse a single step from YAML data."""
        if not isinstance(step_data, dict):
            raise ValueError("Each step must be a dictionary")

        kwargs: dict[str, Any] = {}
        config: dict[str, Any] = {}
        for key, value in step_data.items():
            attr = _STEP_FIELD_ALIASES.get(key)
            if attr is None:
                config[key] = value
            else:
                kwargs[attr] = value

        # A bare string dependency is a common YAML slip
        if isinstance(kwargs.get("depends_on"), str):
            kwargs["depends_on"] = [kwargs["depends_on"]]

        return cls(
            name=kwargs.get("name", ""),
            tool=kwargs.get("tool", ""),
            config=config,
            description=kwargs.get("description"),
            depends_on=list(kwargs.get("depends_on") or []),
            when=kwargs.get("when"),
            skip_if=kwargs.get("skip_if"),
            exports=dict(kwargs.get("exports") or {}),
            continue_on_error=bool(kwargs.get("continue_on_error", False)),
            optional=bool(kwargs.get("optional", False)),
            retries=kwargs.get("retries"),
            timeout=kwargs.get("timeout"),
        )


def parse_steps(steps_data: Any, owner: str = "recipe") -> list[Step]:
    """Parse a list of step dicts (top-level or nested in a meta-tool)."""
    if steps_data is None:
        return []
    if not isinstance(steps_data, list):
        raise ValueError(f"{owner}: 'steps' must be a list")
    return [item if isinstance(item, Step) else Step.from_dict(item) for item in steps_data]


def nested_step_lists(step: Step) -> list[tuple[str, list[Step]]]:
    """Nested step lists of a meta-step as ``(key, steps)`` pairs.

    Keys whose value is not a list are left to the tool's own validation.

    Raises:
        ValueError: If a nested list holds something other than step mappings.
    """
    lists = []
    for key in NESTED_STEP_KEYS.get(step.tool, ()):
        raw = step.get(key)
        if isinstance(raw, list):
            lists.append((key, parse_steps(raw, owner=f"Step '{step.name}'")))
    return lists


def validate_nested_steps(steps: list[Step]) -> list[str]:
    """Validate every nested step list below ``steps``.

    Nested steps share the run's step namespace, so a name may appear only
    once across the whole tree.
    """
    errors: list[str] = []
    seen = {step.name for step in steps if step.name}

    def visit(parents: list[Step]) -> None:
        for parent in parents:
            try:
                lists = nested_step_lists(parent)
            except ValueError as e:
                errors.append(str(e))
                continue
            for key, children in lists:
                label = f"Step '{parent.name}' {key}"
                errors.extend(f"{label}: {error}" for error in validate_step_list(children))
                for name in sorted({child.name for child in children if child.name and child.name in seen}):
                    errors.append(f"{label}: step name '{name}' is already used in this recipe")
                seen.update(child.name for child in children if child.name)
                visit(children)

    visit(steps)
    return errors


def validate_step_list(steps: list[Step]) -> list[str]:
    """Validate each step and the uniqueness of names within one list."""
    errors = []
    for step in steps:
        errors.extend(step.validate())

    names = [step.name for step in steps if step.name]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        errors.append(f"Duplicate step names: {', '.join(duplicates)}")
    return errors


@dataclass
class Recipe:
    """A named, declarative multi-step workflow."""

    name: str
    description: str = ""
    version: str = ""
    steps: list[Step] = field(default_factory=list)
    variables: dict[str, dict[str, Any]] = field(default_factory=dict)
    on_success: str | None = None
    on_error: str | None = None
    source: Path | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], source: Path | None = None) -> "Recipe":
        """Build a recipe from parsed YAML data."""
        if not isinstance(data, dict):
            raise ValueError("Recipe YAML must be a dictionary")

        variables = data.get("variables") or {}
        if not isinstance(variables, dict):
            raise ValueError("'variables' must be a mapping")

        return cls(
            name=data.get("name", ""),
            description=data.get("description", ""),
            version=str(data.get("version", "")),
            steps=parse_steps(data.get("steps")),
            variables=variables,
            on_success=data.get("onSuccess", data.get("on_success")),
            on_error=data.get("onError", data.get("on_error")),
            source=source,
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "Recipe":
        """Load recipe from YAML file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Recipe file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data, source=path)

    def validate(self) -> list[str]:
        """Validate recipe structure. Graph checks happen in graph.py."""
        errors = []

        if not self.name:
            errors.append("Recipe missing required field: name")
        if not self.steps:
            errors.append("Recipe must have at least one step")

        for var_name, definition in self.variables.items():
            if definition is None:
                continue
            if not isinstance(definition, dict):
                errors.append(f"Variable '{var_name}' must be a mapping")
                continue
            var_type = definition.get("type", "string")
            if var_type not in VARIABLE_TYPES:
                errors.append(f"Variable '{var_name}' has invalid type: {var_type}")
            if var_type == "enum" and not definition.get("values"):
                errors.append(f"Variable '{var_name}': enum variables require 'values'")

        errors.extend(validate_step_list(self.steps))
        errors.extend(validate_nested_steps(self.steps))
        return errors

    def get_step(self, name: str) -> Step | None:
        for step in self.steps:
            if step.name == name:
                return step
        return None
