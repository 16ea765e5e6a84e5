"""Shared fixtures for recipe engine tests."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock
from unittest.mock import MagicMock

import pytest

from recipe_engine.collaborators import Collaborators
from recipe_engine.config import EngineConfig
from recipe_engine.context import StepContext
from recipe_engine.engine import RecipeEngine
from recipe_engine.tools import Tool
from recipe_engine.tools import create_default_registry


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Project root for a test run."""
    return tmp_path


@pytest.fixture
def fast_config() -> EngineConfig:
    """Config with retry delays short enough for tests."""
    return EngineConfig(retry_initial_delay=0.0, retry_max_delay=0.0)


@pytest.fixture
def mock_display():
    """Display that records show_message calls."""
    display = MagicMock()
    display.show_message = MagicMock()
    return display


@pytest.fixture
def collaborators() -> Collaborators:
    """Collaborators with async mocks for every host service."""
    return Collaborators(
        renderer=MagicMock(render=AsyncMock(return_value=[])),
        ai=MagicMock(generate=AsyncMock(return_value="generated")),
        prompter=MagicMock(ask=AsyncMock(return_value="answer")),
        trust_gate=MagicMock(approve=AsyncMock(return_value=True)),
        discovery=None,
        actions=MagicMock(run=AsyncMock()),
    )


@pytest.fixture
def engine(fast_config: EngineConfig, collaborators: Collaborators) -> RecipeEngine:
    return RecipeEngine(config=fast_config, collaborators=collaborators)


@pytest.fixture
def context(temp_dir: Path, engine: RecipeEngine) -> StepContext:
    """Context wired to a real engine, as the engine itself would build it."""
    return StepContext(
        project_root=temp_dir,
        recipe_name="test-recipe",
        config=engine.config,
        collaborators=engine.collaborators,
        registry=engine.registry,
        executor=engine.executor,
        engine=engine,
    )


class FakeTool(Tool):
    """Configurable tool driven by its step's fields.

    ``output`` is returned, ``fail_times`` fails the first N calls,
    ``crash`` raises an unexpected exception, ``delay`` sleeps first,
    ``invalid`` / ``warn`` feed validation.
    """

    tool_type = "fake"
    error_code = "FAKE_FAILED"

    def __init__(self):
        super().__init__()
        self.calls: dict[str, int] = {}
        self.order: list[str] = []
        self.running = 0
        self.max_running = 0

    def validate(self, step, context):
        return self.validation(list(step.get("invalid", [])), list(step.get("warn", [])))

    async def execute(self, step, context, dry_run=False):
        self.calls[step.name] = self.calls.get(step.name, 0) + 1
        self.order.append(step.name)
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            await asyncio.sleep(step.get("delay", 0))
        finally:
            self.running -= 1

        if step.get("crash"):
            raise RuntimeError(step.get("crash"))
        if self.calls[step.name] <= step.get("fail_times", 0):
            raise self.fail(f"{step.name} failed on call {self.calls[step.name]}")
        return self.result(
            step,
            output=context.resolve(step.get("output")),
            files_created=step.get("files", []),
            warnings=step.get("tool_warnings", []),
        )


@pytest.fixture
def fake_tool() -> FakeTool:
    return FakeTool()


@pytest.fixture
def fake_engine(fast_config: EngineConfig, collaborators: Collaborators, fake_tool: FakeTool) -> RecipeEngine:
    """Engine whose shell steps run on FakeTool instead of spawning processes."""
    registry = create_default_registry()
    registry.register("shell", lambda: fake_tool, replace=True)
    registry.register("fake", lambda: fake_tool)
    return RecipeEngine(config=fast_config, registry=registry, collaborators=collaborators)


@pytest.fixture
def fake_context(temp_dir: Path, fake_engine: RecipeEngine) -> StepContext:
    return StepContext(
        project_root=temp_dir,
        recipe_name="test-recipe",
        config=fake_engine.config,
        collaborators=fake_engine.collaborators,
        registry=fake_engine.registry,
        executor=fake_engine.executor,
        engine=fake_engine,
    )
