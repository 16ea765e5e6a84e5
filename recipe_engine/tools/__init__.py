"""Built-in step tools and the registry that dispatches to them."""

from .base import Tool
from .registry import ToolFactory
from .registry import ToolRegistry
from .registry import create_default_registry

__all__ = ["Tool", "ToolFactory", "ToolRegistry", "create_default_registry"]
