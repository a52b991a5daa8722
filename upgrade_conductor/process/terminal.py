"""Launchers for commands the user watches live.

A launcher starts a composite shell command somewhere the user can see it and
returns immediately. It never reports completion: the process belongs to the
terminal session, and completion is signalled through marker files (see
``upgrade_conductor.process.markers``).

When the orchestrator gives up on a command (timeout or cancellation) it calls
``stop()``, so an abandoned command can no longer touch its marker file.
"""

import asyncio
import shutil
from pathlib import Path
from typing import Protocol

import structlog

from upgrade_conductor.enums import TerminalBackend
from upgrade_conductor.exceptions import ConfigurationError
from upgrade_conductor.utils.async_subprocess import run_command, spawn_shell_command, terminate_process

log = structlog.get_logger(__name__)


class TerminalLauncher(Protocol):
    """Starts a command in a user-visible terminal session."""

    async def launch(self, name: str, command: str, cwd: Path) -> None:
        """Start ``command`` in ``cwd`` in a session named ``name``."""
        ...

    async def stop(self) -> None:
        """Stop every launched command that is still running."""
        ...


class InheritedTerminal:
    """Runs the command in the orchestrator's own terminal.

    Output goes straight to the user's stdout/stderr, so colored build and
    test output is preserved. Process handles are kept until the process
    exits so ``stop()`` can terminate a command the workflow gave up on.
    """

    def __init__(self, grace: float = 5.0) -> None:
        self.grace = grace
        self._processes: list[asyncio.subprocess.Process] = []

    async def launch(self, name: str, command: str, cwd: Path) -> None:
        log.info("terminal_launch", backend="inherit", name=name, cwd=str(cwd))
        process = await spawn_shell_command(command, cwd=cwd)
        self._processes = [p for p in self._processes if p.returncode is None]
        self._processes.append(process)

    async def stop(self) -> None:
        processes, self._processes = self._processes, []
        for process in processes:
            if process.returncode is not None:
                continue
            log.warning("terminal_command_stopping", backend="inherit", pid=process.pid)
            returncode = await terminate_process(process, grace=self.grace)
            log.info("terminal_command_stopped", pid=process.pid, returncode=returncode)


class TmuxTerminal:
    """Opens a detached, named tmux window for the command.

    The user can attach to the session to follow the output. Requires a tmux
    server reachable from the current environment.
    """

    def __init__(self, executable: str = "tmux") -> None:
        self.executable = executable
        self._windows: list[str] = []

    async def launch(self, name: str, command: str, cwd: Path) -> None:
        log.info("terminal_launch", backend="tmux", name=name, cwd=str(cwd))
        stdout, _, _ = await run_command(
            self.executable,
            "new-window",
            "-d",
            "-P",
            "-F",
            "#{window_id}",
            "-n",
            name,
            "-c",
            str(cwd),
            command,
        )
        window_id = stdout.strip()
        if window_id:
            self._windows.append(window_id)

    async def stop(self) -> None:
        """Kill the windows opened so far; a window that already closed is skipped."""
        windows, self._windows = self._windows, []
        for window_id in windows:
            log.warning("terminal_command_stopping", backend="tmux", window=window_id)
            _, stderr, code = await run_command(self.executable, "kill-window", "-t", window_id, check=False)
            if code != 0:
                log.info("tmux_window_already_closed", window=window_id, stderr=stderr.strip())


def create_terminal_launcher(backend: TerminalBackend | str) -> TerminalLauncher:
    """Build the launcher configured by ``terminal.backend``.

    Raises:
        ConfigurationError: If the backend is unknown or tmux is not installed
    """
    try:
        backend = TerminalBackend(backend)
    except ValueError as e:
        raise ConfigurationError(f"Unknown terminal backend: {backend}") from e

    if backend == TerminalBackend.INHERIT:
        return InheritedTerminal()
    if shutil.which("tmux") is None:
        raise ConfigurationError("terminal.backend is 'tmux' but tmux was not found on PATH")
    return TmuxTerminal()
