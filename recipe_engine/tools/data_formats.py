"""Reading, writing and merging structured data files (JSON, YAML, TOML, .env)."""

import copy
import json
import tomllib
from pathlib import Path
from typing import Any

import tomli_w
import yaml

READ_FORMATS = ("json", "yaml", "toml", "env")
WRITE_FORMATS = ("json", "yaml", "toml")

_EXTENSIONS = {
    ".json": "json",
    ".yml": "yaml",
    ".yaml": "yaml",
    ".toml": "toml",
    ".env": "env",
}


def detect_format(path: str | Path, override: str | None = None) -> str | None:
    """Format from an explicit override, else from the file extension."""
    if override:
        return override.lower()
    path = Path(path)
    if path.name == ".env" or path.name.startswith(".env."):
        return "env"
    return _EXTENSIONS.get(path.suffix.lower())


def parse_env(content: str) -> dict[str, str]:
    """Parse KEY=VALUE lines, skipping blanks and comments."""
    result: dict[str, str] = {}
    for line in content.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, _, value = stripped.partition("=")
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        result[key.strip()] = value
    return result


def parse_data(content: str, fmt: str) -> Any:
    """Parse text in the given format.

    Raises:
        ValueError: On unsupported formats or malformed content.
    """
    try:
        if fmt == "json":
            return json.loads(content) if content.strip() else {}
        if fmt == "yaml":
            data = yaml.safe_load(content)
            return {} if data is None else data
        if fmt == "toml":
            return tomllib.loads(content)
        if fmt == "env":
            return parse_env(content)
    except (json.JSONDecodeError, yaml.YAMLError, tomllib.TOMLDecodeError) as e:
        raise ValueError(f"Invalid {fmt.upper()} content: {e}") from e
    raise ValueError(f"Unsupported format: {fmt}. Must be one of: {', '.join(READ_FORMATS)}")


def dump_data(data: Any, fmt: str, indent: int = 2) -> str:
    """Serialize data in the given format (json, yaml or toml)."""
    if fmt == "json":
        return json.dumps(data, indent=indent, ensure_ascii=False) + "\n"
    if fmt == "yaml":
        return yaml.safe_dump(data, indent=indent, sort_keys=False, default_flow_style=False, allow_unicode=True)
    if fmt == "toml":
        return tomli_w.dumps(data)
    raise ValueError(f"Cannot write format: {fmt}. Must be one of: {', '.join(WRITE_FORMATS)}")


def read_file(path: Path, fmt: str) -> Any:
    with open(path, encoding="utf-8") as f:
        return parse_data(f.read(), fmt)


def deep_merge(base: Any, patch: Any) -> Any:
    """Merge ``patch`` into ``base`` without mutating either.

    Dicts merge recursively per key; lists and scalars in ``patch`` replace
    whatever ``base`` held.
    """
    if not isinstance(base, dict) or not isinstance(patch, dict):
        return copy.deepcopy(patch)
    merged = copy.deepcopy(base)
    for key, value in patch.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged
