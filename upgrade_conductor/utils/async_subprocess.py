"""Async subprocess utilities.

Provides non-blocking subprocess execution for the workflow engine. Every
command the engine runs goes through one of these helpers so the event loop
stays free to serve the suspension gate and marker polling.

This module offers four functions:
    - run_command: Execute commands with list arguments (no shell)
    - run_shell_command: Execute shell command strings (pipes, redirects, ...)
    - spawn_shell_command: Start a shell command that writes straight to the
      user's terminal and return without waiting for it
    - terminate_process: Stop a started process, escalating to SIGKILL

Example:
    >>> from upgrade_conductor.utils.async_subprocess import run_command
    >>> stdout, stderr, code = await run_command("git", "status", cwd="/repo")
    >>> if code == 0:
    ...     print(stdout)

Thread Safety:
    These functions are safe to call concurrently from multiple async tasks.
    Each call creates an independent subprocess with no shared state.
"""

import asyncio
import subprocess
from collections.abc import Sequence
from pathlib import Path


async def _communicate(
    process: asyncio.subprocess.Process,
    command: str | Sequence[str],
    check: bool,
    timeout: float | None,
) -> tuple[str, str, int]:
    """Wait for a process, decode its output and apply the check policy.

    Raises:
        subprocess.CalledProcessError: If check=True and the exit code is non-zero.
        TimeoutError: If timeout is exceeded. The process is killed first.
    """
    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(),
            timeout=timeout,
        )
    except TimeoutError:
        process.kill()
        await process.wait()
        raise

    stdout = (stdout_bytes or b"").decode("utf-8", errors="replace")
    stderr = (stderr_bytes or b"").decode("utf-8", errors="replace")

    if check and process.returncode != 0:
        raise subprocess.CalledProcessError(
            process.returncode,
            command,
            stdout,
            stderr,
        )

    return stdout, stderr, process.returncode or 0


async def run_command(
    *args: str,
    cwd: Path | str | None = None,
    check: bool = True,
    timeout: float | None = None,
    capture_output: bool = True,
) -> tuple[str, str, int]:
    """Run a command asynchronously without shell interpolation.

    This is the safer option when arguments come from user input (branch
    names, commit messages), as nothing is parsed by a shell.

    Args:
        *args: Command and arguments as separate strings.
            Example: "git", "commit", "-m", "message"
        cwd: Working directory for command execution.
        check: If True (default), raise CalledProcessError when the command
            returns a non-zero exit code.
        timeout: Maximum seconds to wait for completion. None waits forever.
        capture_output: If True (default), capture stdout and stderr.

    Returns:
        Tuple of (stdout, stderr, return_code).

    Raises:
        subprocess.CalledProcessError: If check=True and command returns non-zero.
        TimeoutError: If timeout is exceeded.
        FileNotFoundError: If the executable is not found.
    """
    process = await asyncio.create_subprocess_exec(
        *args,
        cwd=cwd,
        stdout=asyncio.subprocess.PIPE if capture_output else None,
        stderr=asyncio.subprocess.PIPE if capture_output else None,
    )
    return await _communicate(process, args, check, timeout)


async def run_shell_command(
    command: str,
    *,
    cwd: Path | str | None = None,
    check: bool = True,
    timeout: float | None = None,
    capture_output: bool = True,
) -> tuple[str, str, int]:
    """Run a shell command asynchronously.

    Similar to run_command but the string is handed to /bin/sh, so pipes,
    redirects and command chaining work.

    Args:
        command: Complete shell command string to execute.
        cwd: Working directory for command execution.
        check: If True (default), raise CalledProcessError on non-zero exit.
        timeout: Maximum seconds to wait. None waits forever.
        capture_output: If True (default), capture stdout/stderr as strings.

    Returns:
        Tuple of (stdout, stderr, return_code).

    Raises:
        subprocess.CalledProcessError: If check=True and command returns non-zero.
        TimeoutError: If timeout is exceeded.

    Warning:
        Be careful with user-provided input in shell commands. Prefer
        run_command when the arguments are not trusted.
    """
    process = await asyncio.create_subprocess_shell(
        command,
        cwd=cwd,
        stdout=asyncio.subprocess.PIPE if capture_output else None,
        stderr=asyncio.subprocess.PIPE if capture_output else None,
    )
    return await _communicate(process, command, check, timeout)


async def spawn_shell_command(
    command: str,
    *,
    cwd: Path | str | None = None,
) -> asyncio.subprocess.Process:
    """Start a shell command attached to the parent's terminal.

    Output is not captured, so colorized tools render exactly as they would
    when typed by hand. The caller decides how (and whether) to observe
    completion; this function returns as soon as the process has started.

    Args:
        command: Complete shell command string to execute.
        cwd: Working directory for command execution.

    Returns:
        The started process handle.
    """
    return await asyncio.create_subprocess_shell(
        command,
        cwd=cwd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=None,
        stderr=None,
    )


async def terminate_process(process: asyncio.subprocess.Process, grace: float = 5.0) -> int:
    """Stop a process started by one of the helpers above.

    Sends SIGTERM, then SIGKILL if the process is still alive after ``grace``
    seconds. A process that already exited is only reaped.

    Returns:
        The process return code.
    """
    if process.returncode is not None:
        return process.returncode

    try:
        process.terminate()
    except ProcessLookupError:
        return await process.wait()

    try:
        return await asyncio.wait_for(process.wait(), timeout=grace)
    except TimeoutError:
        process.kill()
        return await process.wait()
