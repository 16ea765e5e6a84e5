"""Tests for tools backed by host collaborators: prompt, ai, template and action."""

import logging

import pytest

from recipe_engine.collaborators import ActionOutcome
from recipe_engine.collaborators import RenderedFile
from recipe_engine.errors import ToolExecutionError
from recipe_engine.models import Step
from recipe_engine.tools.action import ActionTool
from recipe_engine.tools.ai import AITool
from recipe_engine.tools.prompt import PromptTool
from recipe_engine.tools.template import TemplateTool


class TestPrompt:
    """Tests for the prompt tool."""

    def step(self, **config) -> Step:
        return Step.from_dict({"name": "ask", "tool": "prompt", "variable": "projectName", **config})

    @pytest.mark.asyncio
    async def test_asks_prompter(self, context):
        prompter = context.collaborators.prompter
        prompter.ask.return_value = "my-app"

        result = await PromptTool().execute(
            self.step(message="Name?", promptType="select", options=[{"value": "my-app"}, "other"]), context
        )

        prompter.ask.assert_awaited_once_with("Name?", prompt_type="select", choices=["my-app", "other"], default=None)
        assert result.exported_variables == {"projectName": "my-app"}

    @pytest.mark.asyncio
    async def test_existing_value_reused(self, context):
        context.variables["projectName"] = "given"
        result = await PromptTool().execute(self.step(), context)

        context.collaborators.prompter.ask.assert_not_called()
        assert result.tool_result["source"] == "provided"

    @pytest.mark.asyncio
    async def test_dry_run_uses_default(self, context):
        result = await PromptTool().execute(self.step(default="fallback"), context, dry_run=True)

        context.collaborators.prompter.ask.assert_not_called()
        assert result.output == {"variable": "projectName", "value": "fallback"}

    @pytest.mark.asyncio
    async def test_no_prompter_and_no_default(self, context):
        context.collaborators.prompter = None
        with pytest.raises(ToolExecutionError) as exc_info:
            await PromptTool().execute(self.step(), context)
        assert exc_info.value.code == "PROMPT_FAILED"

    @pytest.mark.asyncio
    async def test_validate_pattern(self, context):
        context.collaborators.prompter.ask.return_value = "Bad Name"
        with pytest.raises(ToolExecutionError):
            await PromptTool().execute(self.step(validate="/^[a-z-]+$/"), context)

    def test_validate(self, context):
        tool = PromptTool()
        assert tool.validate(self.step(), context).is_valid
        assert not tool.validate(self.step(promptType="select"), context).is_valid
        assert not tool.validate(self.step(promptType="slider"), context).is_valid
        assert not tool.validate(Step(name="p", tool="prompt"), context).is_valid


class TestAI:
    """Tests for the ai tool."""

    def step(self, output, **config) -> Step:
        fields = {"name": "gen", "tool": "ai", "prompt": "Describe {{ name }}", "output": output}
        return Step.from_dict({**fields, **config})

    @pytest.mark.asyncio
    async def test_variable_output(self, context):
        context.variables["name"] = "widget"
        generator = context.collaborators.ai
        generator.generate.return_value = "A widget."

        result = await AITool().execute(
            self.step({"type": "variable", "variable": "summary"}, model="m1", temperature=0.2), context
        )

        generator.generate.assert_awaited_once_with("Describe widget", model="m1", temperature=0.2)
        assert result.exported_variables == {"summary": "A widget."}

    @pytest.mark.asyncio
    async def test_file_output(self, context, temp_dir):
        result = await AITool().execute(self.step({"type": "file", "to": "docs/README.md"}), context)

        assert (temp_dir / "docs" / "README.md").read_text() == "generated"
        assert result.files_created == ["docs/README.md"]

    @pytest.mark.asyncio
    async def test_dry_run_skips_backend(self, context, temp_dir):
        result = await AITool().execute(self.step({"type": "file", "to": "out.md"}), context, dry_run=True)

        context.collaborators.ai.generate.assert_not_called()
        assert not (temp_dir / "out.md").exists()
        assert result.files_created == ["out.md"]

    @pytest.mark.asyncio
    async def test_stdout_goes_to_display(self, context, mock_display):
        context.engine.display = mock_display
        result = await AITool().execute(self.step({"type": "stdout"}), context)

        mock_display.show_message.assert_called_once_with(message="generated", level="info", source="recipe")
        assert result.output["text"] == "generated"

    @pytest.mark.asyncio
    async def test_stdout_without_display_is_logged(self, context, caplog):
        with caplog.at_level(logging.INFO, logger="recipe_engine.context"):
            await AITool().execute(self.step({"type": "stdout"}), context)

        assert "generated" in caplog.messages

    @pytest.mark.asyncio
    async def test_backend_error(self, context):
        context.collaborators.ai.generate.side_effect = RuntimeError("rate limited")
        with pytest.raises(ToolExecutionError) as exc_info:
            await AITool().execute(self.step({"type": "stdout"}), context)
        assert exc_info.value.code == "AI_GENERATION_FAILED"

    def test_validate(self, context):
        tool = AITool()
        assert tool.validate(self.step({"type": "stdout"}), context).is_valid
        assert not tool.validate(self.step({"type": "variable"}), context).is_valid
        assert not tool.validate(self.step({"type": "stdout"}, temperature=3), context).is_valid
        assert not tool.validate(self.step("stdout"), context).is_valid


class TestTemplate:
    """Tests for the template tool."""

    def step(self, **config) -> Step:
        return Step.from_dict({"name": "render", "tool": "template", "template": "component", **config})

    @pytest.mark.asyncio
    async def test_writes_rendered_files(self, context, temp_dir):
        context.variables["name"] = "Button"
        renderer = context.collaborators.renderer
        renderer.render.return_value = [
            RenderedFile("Button.tsx", "export const Button = () => null;"),
            RenderedFile("Button.test.tsx", "test"),
        ]

        result = await TemplateTool().execute(
            self.step(outputDir="src/components", variables={"style": "css"}, exclude=["*.test.tsx"]), context
        )

        args, kwargs = renderer.render.call_args
        assert args[0] == "component"
        assert args[1]["name"] == "Button" and args[1]["style"] == "css"
        assert (temp_dir / "src" / "components" / "Button.tsx").exists()
        assert not (temp_dir / "src" / "components" / "Button.test.tsx").exists()
        assert result.files_created == ["src/components/Button.tsx"]

    @pytest.mark.asyncio
    async def test_existing_files_kept_unless_overwrite(self, context, temp_dir):
        (temp_dir / "index.ts").write_text("original")
        context.collaborators.renderer.render.return_value = [RenderedFile("index.ts", "rendered")]

        kept = await TemplateTool().execute(self.step(), context)
        assert (temp_dir / "index.ts").read_text() == "original"
        assert kept.warnings == ["Skipped existing file: index.ts"]

        replaced = await TemplateTool().execute(self.step(overwrite=True), context)
        assert (temp_dir / "index.ts").read_text() == "rendered"
        assert replaced.files_modified == ["index.ts"]

    @pytest.mark.asyncio
    async def test_dry_run(self, context, temp_dir):
        context.collaborators.renderer.render.return_value = [RenderedFile("a.txt", "a")]
        result = await TemplateTool().execute(self.step(), context, dry_run=True)

        assert not (temp_dir / "a.txt").exists()
        assert result.files_created == ["a.txt"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overwrite", [True, False])
    async def test_repeated_destination_reports_match_dry_run(self, context, temp_dir, overwrite):
        """A destination rendered twice is reported the same way with and without dry run."""
        context.collaborators.renderer.render.return_value = [
            RenderedFile("index.ts", "first"),
            RenderedFile("index.ts", "second"),
        ]
        step = self.step(overwrite=overwrite)

        planned = await TemplateTool().execute(step, context, dry_run=True)
        actual = await TemplateTool().execute(step, context)

        assert (planned.files_created, planned.files_modified) == (actual.files_created, actual.files_modified)
        assert planned.warnings == actual.warnings
        assert actual.files_created == ["index.ts"]
        assert (temp_dir / "index.ts").read_text() == ("second" if overwrite else "first")

    @pytest.mark.asyncio
    async def test_no_renderer(self, context):
        context.collaborators.renderer = None
        with pytest.raises(ToolExecutionError) as exc_info:
            await TemplateTool().execute(self.step(), context)
        assert exc_info.value.code == "TEMPLATE_FAILED"


class TestAction:
    """Tests for the action tool."""

    @pytest.mark.asyncio
    async def test_runs_action(self, context, temp_dir):
        context.variables["name"] = "auth"
        runner = context.collaborators.actions
        runner.run.return_value = ActionOutcome(output="ok", files_created=["src/auth.ts"])
        step = Step.from_dict(
            {"name": "act", "tool": "action", "action": "add-module", "parameters": {"n": "{{ name }}"}}
        )

        result = await ActionTool().execute(step, context, dry_run=True)

        runner.run.assert_awaited_once_with("add-module", {"n": "auth"}, temp_dir, dry_run=True)
        assert result.output == "ok"
        assert result.files_created == ["src/auth.ts"]

    @pytest.mark.asyncio
    async def test_action_error(self, context):
        context.collaborators.actions.run.side_effect = KeyError("add-module")
        step = Step.from_dict({"name": "act", "tool": "action", "action": "add-module"})

        with pytest.raises(ToolExecutionError) as exc_info:
            await ActionTool().execute(step, context)
        assert exc_info.value.code == "ACTION_FAILED"
