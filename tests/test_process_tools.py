"""Tests for the tools that spawn processes: install and shell."""

import asyncio
import time
from unittest.mock import AsyncMock
from unittest.mock import patch

import pytest

from recipe_engine.errors import ToolExecutionError
from recipe_engine.models import Step
from recipe_engine.results import StepStatus
from recipe_engine.tools.install import InstallTool
from recipe_engine.tools.install import build_install_command
from recipe_engine.tools.install import detect_package_manager
from recipe_engine.tools.process import ProcessResult
from recipe_engine.tools.process import run_process
from recipe_engine.tools.shell import ShellTool


class TestPackageManagerDetection:
    """Tests for lockfile-based detection."""

    @pytest.mark.parametrize(
        ("lockfile", "expected"),
        [
            ("bun.lockb", "bun"),
            ("pnpm-lock.yaml", "pnpm"),
            ("yarn.lock", "yarn"),
            ("package-lock.json", "npm"),
        ],
    )
    def test_lockfile(self, temp_dir, lockfile, expected):
        (temp_dir / lockfile).write_text("")
        assert detect_package_manager(temp_dir) == expected

    def test_defaults_to_npm(self, temp_dir):
        assert detect_package_manager(temp_dir) == "npm"

    def test_first_lockfile_wins(self, temp_dir):
        (temp_dir / "yarn.lock").write_text("")
        (temp_dir / "pnpm-lock.yaml").write_text("")
        assert detect_package_manager(temp_dir) == "pnpm"

    def test_commands(self):
        assert build_install_command("npm", ["react"]) == ["npm", "install", "react"]
        assert build_install_command("npm", ["jest"], dev=True) == ["npm", "install", "--save-dev", "jest"]
        assert build_install_command("yarn", ["a", "b"], dev=True) == ["yarn", "add", "--dev", "a", "b"]
        assert build_install_command("pnpm", ["a"]) == ["pnpm", "add", "a"]


class TestInstall:
    """Tests for the install tool."""

    def step(self, **config) -> Step:
        return Step.from_dict({"name": "install", "tool": "install", "packages": ["react", "react-dom"], **config})

    @pytest.mark.asyncio
    async def test_dry_run_returns_command(self, context):
        with patch("recipe_engine.tools.process.run_process", new_callable=AsyncMock) as run:
            result = await InstallTool().execute(self.step(dev=True), context, dry_run=True)

        run.assert_not_called()
        assert result.output == {"command": "npm install --save-dev react react-dom", "dryRun": True}

    @pytest.mark.asyncio
    async def test_runs_detected_manager(self, context, temp_dir):
        (temp_dir / "yarn.lock").write_text("")
        with patch("recipe_engine.tools.process.run_process", new_callable=AsyncMock) as run:
            run.return_value = ProcessResult(stdout="done", stderr="", exit_code=0)
            result = await InstallTool().execute(self.step(), context)

        run.assert_awaited_once_with(["yarn", "add", "react", "react-dom"], cwd=temp_dir)
        assert result.tool_result["packageManager"] == "yarn"
        assert result.tool_result["exitCode"] == 0

    @pytest.mark.asyncio
    async def test_failure_raises(self, context):
        with patch("recipe_engine.tools.process.run_process", new_callable=AsyncMock) as run:
            run.return_value = ProcessResult(stdout="", stderr="E404 not found", exit_code=1)
            with pytest.raises(ToolExecutionError) as exc_info:
                await InstallTool().execute(self.step(), context)

        assert exc_info.value.code == "INSTALL_FAILED"
        assert "E404" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_optional_failure_completes_with_warning(self, context):
        with patch("recipe_engine.tools.process.run_process", new_callable=AsyncMock) as run:
            run.side_effect = FileNotFoundError("npm")
            result = await InstallTool().execute(self.step(optional=True), context)

        assert result.error is None
        assert result.warnings and "optional" in result.warnings[0]

    def test_validate(self, context):
        tool = InstallTool()
        assert tool.validate(self.step(), context).is_valid
        assert not tool.validate(self.step(packages=[]), context).is_valid
        assert not tool.validate(self.step(packageManager="pip"), context).is_valid


class TestShell:
    """Tests for the shell tool."""

    def step(self, command, **config) -> Step:
        return Step(name="sh", tool="shell", config={"command": command, **config})

    @pytest.mark.asyncio
    async def test_runs_command(self, context):
        result = await ShellTool().execute(self.step("echo hello"), context)

        assert result.output == {"stdout": "hello\n"}
        assert result.tool_result["exitCode"] == 0

    @pytest.mark.asyncio
    async def test_env_and_placeholders(self, context):
        context.variables["name"] = "world"
        result = await ShellTool().execute(self.step("echo $GREETING", env={"GREETING": "hi {{ name }}"}), context)
        assert result.output["stdout"].strip() == "hi world"

    @pytest.mark.asyncio
    async def test_cwd(self, context, temp_dir):
        (temp_dir / "sub").mkdir()
        result = await ShellTool().execute(self.step("pwd", cwd="sub"), context)
        assert result.output["stdout"].strip().endswith("sub")

    @pytest.mark.asyncio
    async def test_non_zero_exit(self, context):
        with pytest.raises(ToolExecutionError) as exc_info:
            await ShellTool().execute(self.step("echo oops >&2; exit 3"), context)

        assert exc_info.value.code == "SHELL_EXECUTION_ERROR"
        assert "exit code 3" in exc_info.value.message
        assert exc_info.value.details["stderr"].strip() == "oops"

    @pytest.mark.asyncio
    async def test_dry_run_does_not_execute(self, context, temp_dir):
        result = await ShellTool().execute(self.step("touch marker"), context, dry_run=True)

        assert not (temp_dir / "marker").exists()
        assert result.output == {"command": "touch marker", "dryRun": True}

    @pytest.mark.asyncio
    async def test_missing_cwd(self, context):
        with pytest.raises(ToolExecutionError):
            await ShellTool().execute(self.step("ls", cwd="nowhere"), context)

    def test_args_are_quoted(self, context):
        command = ShellTool().build_command(self.step("echo", args=["a b", "c"]), context)
        assert command == "echo 'a b' c"


class TestProcessTermination:
    """A timed-out or cancelled command is killed together with its children."""

    @pytest.mark.asyncio
    async def test_step_timeout_kills_compound_command(self, engine, context, temp_dir):
        step = Step(name="sh", tool="shell", config={"command": "sleep 5; echo done"}, timeout=0.3)

        started = time.monotonic()
        result = await engine.executor.execute_step(step, context)

        assert time.monotonic() - started < 3
        assert result.status == StepStatus.FAILED
        assert result.error.code == "STEP_TIMEOUT"

    @pytest.mark.asyncio
    async def test_grandchild_does_not_outlive_timeout(self, temp_dir):
        with pytest.raises(asyncio.TimeoutError):
            await run_process("sleep 1 && touch marker", cwd=temp_dir, timeout=0.2)

        await asyncio.sleep(1.5)
        assert not (temp_dir / "marker").exists()
