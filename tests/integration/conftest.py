"""Pytest fixtures for integration tests.

These fixtures build real Git repositories under ``tmp_path``: a bare
``origin``, a ``seed`` clone used to publish upstream changes, and a ``work``
clone the workflows run in. Tests are skipped when git is not installed.

Global and user git configuration are isolated from the host, so the tests
behave the same on a developer machine and in CI.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path

import pytest
from conftest import commit_file, git

from upgrade_conductor.process.runner import ProcessRunner


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: runs real git commands against temporary repositories")


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if shutil.which("git") is not None:
        return
    skip = pytest.mark.skip(reason="git is not installed")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip)


@dataclass
class Remote:
    """A bare origin with a publishing clone and a working clone."""

    origin: Path
    seed: Path
    work: Path

    def publish(self, branch: str, name: str, content: str, message: str = "upstream change") -> None:
        """Commit a file on ``branch`` in the seed clone and push it to origin."""
        git(self.seed, "checkout", branch)
        commit_file(self.seed, name, content, message)
        git(self.seed, "push", "origin", branch)

    def origin_show(self, ref: str, path: str) -> str:
        return git(self.origin, "show", f"{ref}:{path}")


@pytest.fixture
def git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolate git from the host configuration."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Upgrade Bot")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "upgrade@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Upgrade Bot")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "upgrade@example.com")
    monkeypatch.setenv("GIT_MERGE_AUTOEDIT", "no")
    monkeypatch.setenv("GIT_EDITOR", "true")
    git(home, "config", "--global", "init.defaultBranch", "main")
    git(home, "config", "--global", "pull.rebase", "false")


@pytest.fixture
def remote(tmp_path: Path, git_env: None) -> Remote:
    """Origin with branches ``main`` and ``b``, each holding ``file.ts``."""
    origin = tmp_path / "origin.git"
    git(tmp_path, "init", "--bare", str(origin))

    seed = tmp_path / "seed"
    git(tmp_path, "clone", str(origin), str(seed))
    commit_file(seed, "file.ts", "export const version = 1;\n", "initial")
    git(seed, "push", "origin", "main")
    git(seed, "checkout", "-b", "b")
    git(seed, "push", "origin", "b")

    work = tmp_path / "work"
    git(tmp_path, "clone", str(origin), str(work))
    git(work, "checkout", "b")
    git(work, "checkout", "main")
    return Remote(origin=origin, seed=seed, work=work)


@pytest.fixture
def runner_factory():
    """Build a ProcessRunner with fast polling."""

    def factory(terminal, timeout: float = 10.0) -> ProcessRunner:
        return ProcessRunner(terminal, poll_interval=0.01, heartbeat_interval=0.1, timeout=timeout)

    return factory
