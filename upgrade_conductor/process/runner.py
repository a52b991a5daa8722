"""Command execution for workflow steps.

ProcessRunner is the only component that starts external processes on behalf
of the workflow. It has two modes:

- ``run_sync``: run a command to completion with captured output. Output is
  logged before any error is raised, so diagnostics survive failures.
- ``run_in_terminal_and_wait``: start a command in a user-visible terminal
  and detect completion through a pair of marker files, because the terminal
  session (not the orchestrator) owns the process.

Marker Protocol:
    1. Generate a unique marker pair for the invocation
    2. Remove stale markers with that name
    3. Launch ``<command>; if [ $? -eq 0 ]; then touch <ok>; else touch <fail>; fi``
    4. Poll for either marker, logging a heartbeat periodically
    5. Success marker -> return; failure marker -> CommandError
    6. Neither within the timeout -> CommandTimeoutError

    On timeout or cancellation the terminal is stopped first. Both markers
    are removed on every exit path.

Example:
    >>> runner = ProcessRunner(InheritedTerminal())
    >>> outcome = await runner.run_sync("git status --porcelain", repo)
    >>> await runner.run_in_terminal_and_wait("yarn test", repo, "unit tests")
"""

import asyncio
import shlex
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import structlog

from upgrade_conductor.exceptions import CommandError, CommandTimeoutError
from upgrade_conductor.process.markers import DEFAULT_MARKER_PREFIX, MarkerPair
from upgrade_conductor.process.terminal import TerminalLauncher
from upgrade_conductor.utils.async_subprocess import run_command, run_shell_command

log = structlog.get_logger(__name__)

DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_HEARTBEAT_INTERVAL = 10.0
DEFAULT_TERMINAL_TIMEOUT = 30 * 60.0


@dataclass(frozen=True)
class ProcessOutcome:
    """Result of a command run with captured output."""

    command: str
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def format_duration(seconds: float) -> str:
    """Format a duration as ``"2m 5s"`` or ``"42s"``."""
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s" if minutes else f"{secs}s"


class ProcessRunner:
    """Runs workflow commands against a working directory.

    Attributes:
        terminal: Launcher used for terminal-hosted commands.
        poll_interval: Seconds between marker checks.
        heartbeat_interval: Seconds between "still waiting" log lines.
        timeout: Default seconds to wait for a terminal-hosted command.
        marker_prefix: File name prefix of marker files.
    """

    def __init__(
        self,
        terminal: TerminalLauncher,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
        timeout: float = DEFAULT_TERMINAL_TIMEOUT,
        marker_prefix: str = DEFAULT_MARKER_PREFIX,
    ) -> None:
        self.terminal = terminal
        self.poll_interval = poll_interval
        self.heartbeat_interval = heartbeat_interval
        self.timeout = timeout
        self.marker_prefix = marker_prefix

    async def run_sync(self, command: str | Sequence[str], cwd: Path | str) -> ProcessOutcome:
        """Run a command to completion and capture its output.

        Args:
            command: A shell string, or an argument list executed without a shell.
            cwd: Working directory.

        Returns:
            The process outcome (always successful when returned).

        Raises:
            CommandError: If the command exits non-zero or cannot be started.
        """
        display = command if isinstance(command, str) else shlex.join(command)
        log.info("command_started", command=display, cwd=str(cwd))

        try:
            if isinstance(command, str):
                stdout, stderr, code = await run_shell_command(command, cwd=cwd, check=False)
            else:
                stdout, stderr, code = await run_command(*command, cwd=cwd, check=False)
        except OSError as e:
            log.error("command_start_failed", command=display, error=str(e))
            raise CommandError(f"Could not start command: {display}: {e}", command=display) from e

        if stdout.strip():
            log.info("command_stdout", command=display, output=stdout.strip())
        if stderr.strip():
            log.info("command_stderr", command=display, output=stderr.strip())

        outcome = ProcessOutcome(command=display, returncode=code, stdout=stdout, stderr=stderr)
        if not outcome.ok:
            log.error("command_failed", command=display, returncode=code)
            raise CommandError(
                f"Command failed with exit code {code}: {display}",
                command=display,
                returncode=code,
                stdout=stdout,
                stderr=stderr,
            )
        return outcome

    async def run_in_terminal_and_wait(
        self,
        command: str,
        cwd: Path | str,
        label: str,
        timeout: float | None = None,
    ) -> None:
        """Run a command in a visible terminal and wait for its marker file.

        Args:
            command: Shell command to run.
            cwd: Working directory; markers are written here.
            label: Human label, also used to name the terminal session.
            timeout: Seconds to wait; defaults to the runner's timeout.

        Raises:
            CommandError: If the failure marker appears.
            CommandTimeoutError: If no marker appears within the timeout.
        """
        cwd = Path(cwd)
        timeout = self.timeout if timeout is None else timeout
        markers = MarkerPair.create(cwd, self.marker_prefix)
        markers.remove()

        loop = asyncio.get_running_loop()
        started = loop.time()
        log.info(
            "terminal_command_started",
            command=command,
            label=label,
            cwd=str(cwd),
            success_marker=markers.success_name,
            failure_marker=markers.failure_name,
        )

        settled = False
        try:
            await self.terminal.launch(f"Upgrade: {label}", markers.wrap(command), cwd)
            try:
                async with asyncio.timeout(timeout):
                    succeeded = await self._wait_for_marker(markers, label, started)
            except TimeoutError as e:
                elapsed = loop.time() - started
                log.error("terminal_command_timeout", label=label, elapsed=format_duration(elapsed))
                raise CommandTimeoutError(
                    f"'{label}' did not signal completion within {format_duration(timeout)}",
                    command=command,
                    elapsed=elapsed,
                    timeout=timeout,
                ) from e
            settled = True
        finally:
            try:
                # Stop first so no marker reappears after removal
                if not settled:
                    await self.terminal.stop()
            finally:
                markers.remove()

        duration = format_duration(loop.time() - started)
        if not succeeded:
            log.error("terminal_command_failed", label=label, duration=duration)
            raise CommandError(f"'{label}' failed after {duration}", command=command)

        log.info("terminal_command_completed", label=label, duration=duration)

    async def _wait_for_marker(self, markers: MarkerPair, label: str, started: float) -> bool:
        """Poll until a marker exists. Returns True for success, False for failure."""
        loop = asyncio.get_running_loop()
        polls_per_heartbeat = max(1, round(self.heartbeat_interval / self.poll_interval))
        polls = 0

        while True:
            if markers.success_path.exists():
                return True
            if markers.failure_path.exists():
                return False

            await asyncio.sleep(self.poll_interval)
            polls += 1
            if polls % polls_per_heartbeat == 0:
                log.info(
                    "terminal_command_waiting",
                    label=label,
                    elapsed=format_duration(loop.time() - started),
                    marker=markers.success_name,
                )
