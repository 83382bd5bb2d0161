"""
Async utility functions for non-blocking subprocess and file operations.

Every external process the engine starts goes through ``run_command_async``
so the time bound is enforced by the caller: on expiry the process is
killed and ``asyncio.TimeoutError`` is raised.
"""

import asyncio
import platform
import subprocess  # nosec B404 # Required for CalledProcessError / CREATE_NO_WINDOW
from dataclasses import dataclass
from typing import Dict, List, Optional

import aiofiles
import aiofiles.os


@dataclass
class AsyncProcessResult:
    """Result from async subprocess execution, mimics subprocess.CompletedProcess."""

    returncode: int
    stdout: str
    stderr: str


def _creation_flags() -> int:
    """Hide console windows for child processes on Windows."""
    if platform.system() == "Windows":
        return getattr(subprocess, "CREATE_NO_WINDOW", 0)
    return 0


async def run_command_async(
    cmd: List[str],
    timeout: Optional[float] = 30.0,
    check: bool = False,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
) -> AsyncProcessResult:
    """
    Run a command asynchronously without blocking the event loop.

    Arguments are always passed as an argument vector, never through a shell.
    Output pipes are read to completion, so multi-megabyte output is not
    truncated.

    Args:
        cmd: Command to run as list of strings
        timeout: Timeout in seconds (default 30), None for no bound
        check: If True, raise CalledProcessError on non-zero return code
        cwd: Working directory for the command
        env: Environment variables for the command

    Returns:
        AsyncProcessResult with returncode, stdout, stderr

    Raises:
        asyncio.TimeoutError: If command times out (the process is killed)
        subprocess.CalledProcessError: If check=True and command fails
        OSError: If the executable cannot be started
    """
    process = await _create_async_process(cmd, cwd=cwd, env=env)
    try:
        return await _collect_process_output(process, cmd, timeout=timeout, check=check)
    except asyncio.TimeoutError:
        await _kill_process(process)
        raise


async def _create_async_process(
    cmd: List[str],
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
) -> asyncio.subprocess.Process:
    """Create an async subprocess in exec mode."""
    kwargs = {}
    flags = _creation_flags()
    if flags:
        kwargs["creationflags"] = flags
    return await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=cwd,
        env=env,
        **kwargs,
    )


async def _kill_process(process: asyncio.subprocess.Process) -> None:
    """Forcibly terminate a timed-out process and reap it."""
    try:
        process.kill()
        await process.wait()
    except ProcessLookupError:
        # Already exited between the timeout and the kill
        pass


async def _collect_process_output(
    process: asyncio.subprocess.Process,
    cmd: List[str],
    timeout: Optional[float] = None,
    check: bool = False,
) -> AsyncProcessResult:
    """Collect stdout/stderr from an async subprocess and optionally check return code."""
    if timeout is not None:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(), timeout=timeout
        )
    else:
        stdout_bytes, stderr_bytes = await process.communicate()

    stdout = stdout_bytes.decode("utf-8", errors="replace") if stdout_bytes else ""
    stderr = stderr_bytes.decode("utf-8", errors="replace") if stderr_bytes else ""

    result = AsyncProcessResult(
        returncode=process.returncode,
        stdout=stdout,
        stderr=stderr,
    )

    if check and process.returncode != 0:
        raise subprocess.CalledProcessError(
            process.returncode,
            cmd,
            output=stdout,
            stderr=stderr,
        )

    return result


async def write_file_async(
    filepath: str, content: str, encoding: str = "utf-8", mode: str = "w"
) -> None:
    """Write to a file asynchronously without blocking the event loop."""
    async with aiofiles.open(filepath, mode=mode, encoding=encoding) as file_handle:
        await file_handle.write(content)


async def remove_file_async(filepath: str) -> None:
    """Remove a file asynchronously."""
    await aiofiles.os.remove(filepath)


def powershell_command(script: str) -> List[str]:
    """Build the argument vector for an inline PowerShell script."""
    return [
        "powershell",
        "-NoProfile",
        "-NonInteractive",
        "-ExecutionPolicy",
        "Bypass",
        "-Command",
        script,
    ]


def powershell_file_command(script_path: str) -> List[str]:
    """Build the argument vector for a PowerShell script file."""
    return [
        "powershell",
        "-NoProfile",
        "-NonInteractive",
        "-ExecutionPolicy",
        "Bypass",
        "-File",
        script_path,
    ]
