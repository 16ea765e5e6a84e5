"""Subprocess helper for tools that spawn child processes."""

import asyncio
import os
import signal
from dataclasses import dataclass
from pathlib import Path


@dataclass
class ProcessResult:
    """Result of a finished child process."""

    stdout: str
    stderr: str
    exit_code: int


async def _terminate(process: asyncio.subprocess.Process) -> None:
    """Kill the child's whole process group, then reap the child.

    Commands run through ``/bin/sh`` leave grandchildren that hold the output
    pipes open, so killing only the direct child is not enough.
    """
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


async def run_process(
    command: str | list[str],
    cwd: Path,
    env: dict[str, str] | None = None,
    timeout: float | None = None,
) -> ProcessResult:
    """Run a command and capture its output.

    A string runs through the shell; a list is executed directly. The child
    starts in its own session, and its process group is killed when the
    timeout expires or the awaiting task is cancelled. The original exception
    propagates.

    Raises:
        asyncio.TimeoutError: If ``timeout`` elapses.
        OSError: If the command cannot be started.
    """
    full_env = os.environ.copy()
    if env:
        full_env.update(env)

    if isinstance(command, str):
        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd),
            env=full_env,
            start_new_session=True,
        )
    else:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd),
            env=full_env,
            start_new_session=True,
        )

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except (asyncio.TimeoutError, asyncio.CancelledError):
        await _terminate(process)
        raise

    return ProcessResult(
        stdout=stdout_bytes.decode("utf-8", errors="replace"),
        stderr=stderr_bytes.decode("utf-8", errors="replace"),
        exit_code=process.returncode or 0,
    )
