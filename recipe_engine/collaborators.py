"""Interfaces of external services the engine consumes but never implements.

Template rendering, AI generation, interactive prompting, trust decisions,
recipe/template discovery and named actions are all supplied by the host
application. Tools reach them through ``context.collaborators``.
"""

from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Any
from typing import Protocol

from .models import Step


@dataclass
class RenderedFile:
    """One file produced by a template render."""

    path: str  # Destination, relative to the output directory
    content: str


class TemplateRenderer(Protocol):
    async def render(
        self,
        template: str,
        variables: dict[str, Any],
        template_path: Path | None = None,
    ) -> list[RenderedFile]: ...


class AIGenerator(Protocol):
    async def generate(self, prompt: str, **options: Any) -> str: ...


class Prompter(Protocol):
    async def ask(
        self,
        message: str,
        prompt_type: str = "input",
        choices: list[Any] | None = None,
        default: Any = None,
    ) -> Any: ...


class TrustGate(Protocol):
    async def approve(self, step: Step, source: str | None) -> bool: ...


class RecipeDiscovery(Protocol):
    def resolve_recipe(self, identifier: str) -> Path | None: ...

    def resolve_template(self, identifier: str) -> Path | None: ...


@dataclass
class ActionOutcome:
    """What an action reports back; mirrors the file lists of a StepResult."""

    output: Any = None
    files_created: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)


class ActionRunner(Protocol):
    async def run(
        self,
        action: str,
        parameters: dict[str, Any],
        project_root: Path,
        dry_run: bool = False,
    ) -> ActionOutcome: ...


@dataclass
class Collaborators:
    """Bundle of optional collaborator implementations handed to the engine."""

    renderer: TemplateRenderer | None = None
    ai: AIGenerator | None = None
    prompter: Prompter | None = None
    trust_gate: TrustGate | None = None
    discovery: RecipeDiscovery | None = None
    actions: ActionRunner | None = None
