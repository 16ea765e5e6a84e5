"""Tool type -> factory registry, one per engine instance."""

import logging
from collections.abc import Callable

from ..errors import ToolExecutionError
from .base import Tool

logger = logging.getLogger(__name__)

ToolFactory = Callable[[], Tool]


class ToolRegistry:
    """Maps tool types to factories and caches one initialized instance per type."""

    def __init__(self) -> None:
        self._factories: dict[str, ToolFactory] = {}
        self._instances: dict[str, Tool] = {}

    def register(self, tool_type: str, factory: ToolFactory, replace: bool = False) -> None:
        """Register a factory for ``tool_type``.

        Raises:
            ValueError: If the type is already registered and ``replace`` is False.
        """
        if tool_type in self._factories and not replace:
            raise ValueError(f"Tool type already registered: {tool_type}")
        self._factories[tool_type] = factory
        self._instances.pop(tool_type, None)

    def is_registered(self, tool_type: str) -> bool:
        return tool_type in self._factories

    def tool_types(self) -> list[str]:
        return sorted(self._factories)

    async def resolve(self, tool_type: str) -> Tool:
        """Return the initialized tool for ``tool_type``, creating it on first use."""
        tool = self._instances.get(tool_type)
        if tool is not None:
            return tool

        factory = self._factories.get(tool_type)
        if factory is None:
            raise ToolExecutionError(
                f"No tool registered for type '{tool_type}'. Known types: {', '.join(self.tool_types())}",
                code="TOOL_NOT_FOUND",
            )

        tool = factory()
        await tool.initialize()
        # Another task may have resolved the same type while we awaited
        existing = self._instances.setdefault(tool_type, tool)
        if existing is not tool:
            await tool.cleanup()
        return existing

    async def cleanup(self) -> None:
        """Clean up every cached tool instance. Idempotent."""
        instances = list(self._instances.items())
        self._instances.clear()
        for tool_type, tool in instances:
            try:
                await tool.cleanup()
            except Exception:
                logger.error("Cleanup failed for tool '%s'", tool_type, exc_info=True)


def create_default_registry() -> ToolRegistry:
    """Fresh registry holding the built-in tools."""
    from .action import ActionTool
    from .ai import AITool
    from .conditional import ConditionalTool
    from .ensure_dirs import EnsureDirsTool
    from .install import InstallTool
    from .parallel import ParallelTool
    from .patch import PatchTool
    from .prompt import PromptTool
    from .query import QueryTool
    from .recipe import RecipeTool
    from .sequence import SequenceTool
    from .shell import ShellTool
    from .template import TemplateTool

    registry = ToolRegistry()
    for tool_class in (
        TemplateTool,
        ActionTool,
        RecipeTool,
        ShellTool,
        PromptTool,
        AITool,
        InstallTool,
        QueryTool,
        PatchTool,
        EnsureDirsTool,
        SequenceTool,
        ParallelTool,
        ConditionalTool,
    ):
        registry.register(tool_class.tool_type, tool_class)
    return registry
