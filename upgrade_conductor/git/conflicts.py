"""Merge-conflict inspection.

ConflictInspector answers one question: does the working tree currently have
unmerged paths? It re-runs ``git diff --name-only --diff-filter=U`` on every
call and never caches, because the user edits the tree while the workflow is
paused.

The structural check is authoritative. Text matching on command output
(``looks_like_conflict``) only decides whether the check is worth running;
git may localize or reword its messages.
"""

import re
from pathlib import Path

import structlog

from upgrade_conductor.exceptions import CommandError
from upgrade_conductor.process.runner import ProcessRunner

log = structlog.get_logger(__name__)

UNMERGED_PATHS_COMMAND = ("git", "diff", "--name-only", "--diff-filter=U")

_CONFLICT_OUTPUT = re.compile(r"CONFLICT|Automatic merge failed", re.IGNORECASE)
_MERGE_OR_PULL = re.compile(r"\bgit\s+(pull|merge)\b", re.IGNORECASE)


def looks_like_conflict(output: str) -> bool:
    """Check whether command output mentions a merge conflict."""
    return bool(_CONFLICT_OUTPUT.search(output))


def is_merge_or_pull(command: str) -> bool:
    """Check whether a shell command is a ``git merge`` or ``git pull``."""
    return bool(_MERGE_OR_PULL.search(command))


class ConflictInspector:
    """Side-effect-free queries over the unmerged paths of a working tree."""

    def __init__(self, runner: ProcessRunner) -> None:
        self.runner = runner

    async def list_conflicts(self, cwd: Path | str) -> list[str]:
        """List unmerged paths in the order git reports them.

        Returns an empty list when git cannot be queried; the failure is
        logged as a warning.
        """
        try:
            outcome = await self.runner.run_sync(UNMERGED_PATHS_COMMAND, cwd)
        except CommandError as e:
            log.warning("conflict_inspection_failed", cwd=str(cwd), error=e.message)
            return []
        return [line.strip() for line in outcome.stdout.splitlines() if line.strip()]

    async def has_conflicts(self, cwd: Path | str) -> bool:
        """Check whether any path is in the unmerged state."""
        return bool(await self.list_conflicts(cwd))
