"""Pytest configuration and shared fixtures."""

import asyncio
import subprocess
from collections.abc import Sequence
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from upgrade_conductor.engine.gate import SuspensionGate
from upgrade_conductor.engine.recovery import RetryLoop
from upgrade_conductor.git.conflicts import ConflictInspector
from upgrade_conductor.process.runner import ProcessOutcome, ProcessRunner
from upgrade_conductor.utils.async_subprocess import terminate_process


class FakePrompter:
    """Scripted Prompter.

    Answers are consumed in order from the lists given at construction. Every
    call is recorded in ``calls`` as ``(method, message)``. Running out of
    scripted answers raises AssertionError, which surfaces as a failed step.
    """

    def __init__(
        self,
        continues: Sequence[bool] = (),
        choices: Sequence[object] = (),
        texts: Sequence[str | None] = (),
        confirms: Sequence[bool] = (),
    ) -> None:
        self.continues = list(continues)
        self.choices = list(choices)
        self.texts = list(texts)
        self.confirms = list(confirms)
        self.calls: list[tuple[str, str]] = []

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    async def ask_continue(self, title, detail=None):
        self.calls.append(("ask_continue", title))
        if not self.continues:
            raise AssertionError(f"Unexpected pause prompt: {title}")
        return self.continues.pop(0)

    async def choose(self, message, options, default=None):
        self.calls.append(("choose", message))
        if not self.choices:
            raise AssertionError(f"Unexpected choice prompt: {message}")
        answer = self.choices.pop(0)
        assert answer in options
        return answer

    async def ask_text(self, prompt, default=None):
        self.calls.append(("ask_text", prompt))
        if not self.texts:
            raise AssertionError(f"Unexpected text prompt: {prompt}")
        return self.texts.pop(0)

    async def confirm(self, message, default=False):
        self.calls.append(("confirm", message))
        if not self.confirms:
            raise AssertionError(f"Unexpected confirmation: {message}")
        return self.confirms.pop(0)


class FakeIndicator:
    """Records show/dispose calls."""

    def __init__(self) -> None:
        self.shown: list[str] = []
        self.disposed = 0

    @property
    def visible(self) -> bool:
        return bool(self.shown) and self.disposed == 0

    def show(self, title: str) -> None:
        self.shown.append(title)

    def dispose(self) -> None:
        self.disposed += 1


class RecordingTerminal:
    """Terminal launcher that records launches without running anything."""

    def __init__(self) -> None:
        self.launches: list[tuple[str, str, Path]] = []
        self.stops = 0

    async def launch(self, name: str, command: str, cwd: Path) -> None:
        self.launches.append((name, command, cwd))

    async def stop(self) -> None:
        self.stops += 1


class ShellTerminal:
    """Terminal launcher that runs the composite command in the background."""

    def __init__(self) -> None:
        self.launches: list[tuple[str, str, Path]] = []
        self.processes: list[asyncio.subprocess.Process] = []
        self.stops = 0

    async def launch(self, name: str, command: str, cwd: Path) -> None:
        self.launches.append((name, command, cwd))
        process = await asyncio.create_subprocess_shell(
            command,
            cwd=cwd,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        self.processes.append(process)

    async def stop(self) -> None:
        self.stops += 1
        for process in self.processes:
            await terminate_process(process, grace=1.0)


async def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> None:
    """Poll ``predicate`` until it is true, failing the test after ``timeout``."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(interval)


def outcome(command: str = "cmd", stdout: str = "", stderr: str = "", returncode: int = 0) -> ProcessOutcome:
    return ProcessOutcome(command=command, returncode=returncode, stdout=stdout, stderr=stderr)


def git(cwd: Path, *args: str) -> str:
    """Run git synchronously and return stdout."""
    completed = subprocess.run(("git", *args), cwd=cwd, check=True, capture_output=True, text=True)
    return completed.stdout


def commit_file(repo: Path, name: str, content: str, message: str) -> None:
    (repo / name).write_text(content)
    git(repo, "add", name)
    git(repo, "commit", "-m", message)


def marker_files(path: Path) -> list[str]:
    """Names of marker files left in ``path``."""
    return sorted(p.name for p in path.iterdir() if p.name.startswith(".upgrade-marker"))


@pytest.fixture
def prompter() -> FakePrompter:
    """Prompter with no scripted answers."""
    return FakePrompter()


@pytest.fixture
def indicators() -> list[FakeIndicator]:
    """Every indicator created by ``indicator_factory``."""
    return []


@pytest.fixture
def indicator_factory(indicators: list[FakeIndicator]):
    def factory() -> FakeIndicator:
        indicator = FakeIndicator()
        indicators.append(indicator)
        return indicator

    return factory


@pytest.fixture
def mock_runner() -> MagicMock:
    """ProcessRunner double with async methods."""
    runner = MagicMock(spec=ProcessRunner)
    runner.run_sync = AsyncMock(return_value=outcome())
    runner.run_in_terminal_and_wait = AsyncMock(return_value=None)
    return runner


@pytest.fixture
def mock_inspector() -> MagicMock:
    """ConflictInspector double reporting a clean tree by default."""
    inspector = MagicMock(spec=ConflictInspector)
    inspector.list_conflicts = AsyncMock(return_value=[])
    inspector.has_conflicts = AsyncMock(return_value=False)
    return inspector


@pytest.fixture
def gate(indicator_factory) -> SuspensionGate:
    """Gate settled only by explicit resolve/reject calls."""
    return SuspensionGate(indicator_factory=indicator_factory)


@pytest.fixture
def retry_loop(mock_runner, mock_inspector, gate, prompter) -> RetryLoop:
    return RetryLoop(mock_runner, mock_inspector, gate, prompter)
