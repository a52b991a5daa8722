"""Composite actions used by the workflow builders.

Each action is an async function over a ``WorkflowRun``. Builders bind the
arguments with ``functools.partial`` and hand the result to
``Step.command`` or to a pause's ``on_continue``.
"""

from pathlib import Path

import structlog

from upgrade_conductor.engine.session import WorkflowRun
from upgrade_conductor.enums import StepOutcome
from upgrade_conductor.exceptions import CommandError
from upgrade_conductor.git.exceptions import GitTreeError

log = structlog.get_logger(__name__)


async def commit_changes(run: WorkflowRun, cwd: Path, default_message: str) -> bool:
    """Stage everything and commit with a user-supplied message.

    Does nothing on a clean tree. A failed ``git commit`` is only a warning:
    the changes may already have been committed by the upgrade script.

    Returns:
        True if a commit was created.

    Raises:
        UserCancelledError: If the user gives no message and skips or aborts.
    """
    status = await run.runner.run_sync(("git", "status", "--porcelain"), cwd)
    if not status.stdout.strip():
        log.info("nothing_to_commit", cwd=str(cwd))
        return False

    await run.runner.run_sync(("git", "add", "."), cwd)
    message = await run.recovery.require_input(
        "Commit message", default=default_message, field="commit message"
    )

    try:
        await run.runner.run_sync(("git", "commit", "-m", message, "--no-verify"), cwd)
    except CommandError as e:
        log.warning(
            "commit_failed",
            error=e.message,
            hint="nothing left to commit, or the changes were already committed",
        )
        return False

    log.info("changes_committed", message=message)
    return True


async def run_optional_tests(run: WorkflowRun, cwd: Path, command: str, label: str = "Unit tests") -> StepOutcome:
    """Offer to run the test command; failures go through the verification loop."""
    wanted = await run.prompter.confirm(
        f"Run {label.lower()} ({command}) now? This usually takes a few minutes.",
        default=True,
    )
    if not wanted:
        log.info("tests_skipped", label=label)
        return StepOutcome.SUCCEEDED
    return await run.recovery.run_verification(command, cwd, label)


async def ensure_remote(run: WorkflowRun, name: str, url: str | None, cwd: Path) -> None:
    resolved = await run.branches.ensure_remote(name, url, cwd)
    log.info("remote_ready", remote=name, url=resolved)


async def merge_previous_branch(run: WorkflowRun, remote: str, branch: str | None, cwd: Path) -> None:
    """Fetch and merge an earlier upgrade branch; no-op when none was given."""
    if not branch:
        log.info("previous_branch_skipped")
        return
    await run.runner.run_sync(("git", "fetch", remote, branch), cwd)
    await run.recovery.run_with_conflict_recovery(f"git merge {remote}/{branch} --no-verify", cwd)


async def verify_remote_branch(run: WorkflowRun, remote: str, branch: str, cwd: Path) -> None:
    """Check that a pushed branch is visible on the remote.

    Raises:
        GitTreeError: If ``git ls-remote`` does not list the branch.
    """
    if not await run.branches.remote_branch_exists(remote, branch, cwd):
        raise GitTreeError(
            f"Branch '{branch}' was not found on remote '{remote}'",
            hint=f"Check the push output, then retry: git push {remote} <local>:{branch}",
        )
    log.info("remote_branch_verified", remote=remote, branch=branch)


async def delete_feature_branch(run: WorkflowRun, branch: str, cwd: Path) -> None:
    await run.branches.delete_local(branch, cwd)


async def checkout_feature_branch(run: WorkflowRun, branch: str, base_branch: str, cwd: Path) -> None:
    await run.branches.checkout_or_create(branch, base_branch, cwd)
