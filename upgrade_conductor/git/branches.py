"""Branch and remote housekeeping built on ProcessRunner."""

from pathlib import Path

import structlog

from upgrade_conductor.exceptions import CommandError
from upgrade_conductor.git.exceptions import RemoteNotConfiguredError
from upgrade_conductor.process.runner import ProcessRunner

log = structlog.get_logger(__name__)


class BranchOps:
    """Idempotent branch operations.

    Branch names are passed as separate arguments, never through a shell.
    """

    def __init__(self, runner: ProcessRunner) -> None:
        self.runner = runner

    async def branch_exists(self, branch: str, cwd: Path | str) -> bool:
        try:
            await self.runner.run_sync(("git", "rev-parse", "--verify", "--quiet", branch), cwd)
        except CommandError:
            return False
        return True

    async def checkout_or_create(self, branch: str, base_branch: str, cwd: Path | str) -> None:
        """Check out ``branch``, creating it from ``base_branch`` if it is missing.

        Repeated calls converge to having ``branch`` checked out.

        Raises:
            CommandError: If the checkout or creation fails.
        """
        if await self.branch_exists(branch, cwd):
            log.info("branch_exists", branch=branch)
            await self.runner.run_sync(("git", "checkout", branch), cwd)
            return

        log.info("branch_creating", branch=branch, base=base_branch)
        await self.runner.run_sync(("git", "checkout", "-b", branch, base_branch), cwd)

    async def delete_local(self, branch: str, cwd: Path | str) -> bool:
        """Force-delete a local branch.

        Cleanup is best-effort: a failure is logged as a warning and reported
        through the return value, never raised.
        """
        try:
            await self.runner.run_sync(("git", "branch", "-D", branch), cwd)
        except CommandError as e:
            log.warning(
                "branch_delete_failed",
                branch=branch,
                error=e.message,
                hint=f"Delete it later with: git branch -D {branch}",
            )
            return False
        log.info("branch_deleted", branch=branch)
        return True

    async def remote_url(self, name: str, cwd: Path | str) -> str | None:
        """URL of remote ``name``, or None when it is not configured."""
        try:
            outcome = await self.runner.run_sync(("git", "remote", "get-url", name), cwd)
        except CommandError:
            return None
        return outcome.stdout.strip() or None

    async def ensure_remote(self, name: str, url: str | None, cwd: Path | str) -> str:
        """Make sure remote ``name`` exists, adding it with ``url`` if needed.

        Returns:
            The remote's URL.

        Raises:
            RemoteNotConfiguredError: If the remote is missing and no URL is given.
        """
        existing = await self.remote_url(name, cwd)
        if existing:
            return existing
        if not url:
            raise RemoteNotConfiguredError(name)

        log.info("remote_adding", remote=name, url=url)
        await self.runner.run_sync(("git", "remote", "add", name, url), cwd)
        return url

    async def remote_branch_exists(self, remote: str, branch: str, cwd: Path | str) -> bool:
        """Check that ``branch`` exists on ``remote`` (``git ls-remote --exit-code``)."""
        try:
            await self.runner.run_sync(("git", "ls-remote", "--exit-code", "--heads", remote, branch), cwd)
        except CommandError:
            return False
        return True
