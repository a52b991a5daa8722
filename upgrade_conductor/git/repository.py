"""Working-tree preflight checks.

Uses GitPython to validate the workflow directory before any step runs. The
steps themselves talk to git through ProcessRunner so every command and its
output lands in the workflow log; GitPython is only used for read-only
inspection here.

Dependencies:
    Requires GitPython (gitpython) package for repository access.
"""

from pathlib import Path

import git
import structlog
from git.exc import InvalidGitRepositoryError, NoSuchPathError

from upgrade_conductor.exceptions import UserCancelledError
from upgrade_conductor.git.exceptions import NotGitRepositoryError
from upgrade_conductor.utils.interactive import Prompter

log = structlog.get_logger(__name__)


class WorkingTree:
    """Read-only view of a local Git working tree.

    The repository object is opened lazily, so constructing a WorkingTree
    never fails; validation happens on first access.

    Attributes:
        path: Resolved absolute path to the working tree.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).resolve()
        self._repo: git.Repo | None = None

    def _get_repo(self) -> git.Repo:
        if self._repo is None:
            try:
                self._repo = git.Repo(self.path)
            except (InvalidGitRepositoryError, NoSuchPathError) as e:
                raise NotGitRepositoryError(str(self.path)) from e
        return self._repo

    def validate(self) -> None:
        """Ensure the path is a Git repository.

        Raises:
            NotGitRepositoryError: If it is not.
        """
        self._get_repo()

    def is_dirty(self) -> bool:
        """Check for uncommitted changes, including untracked files."""
        return self._get_repo().is_dirty(untracked_files=True)

    def active_branch(self) -> str | None:
        """Name of the checked-out branch, or None when HEAD is detached."""
        repo = self._get_repo()
        if repo.head.is_detached:
            return None
        return repo.active_branch.name


async def preflight(tree: WorkingTree, prompter: Prompter) -> None:
    """Check the working tree before a workflow starts.

    Args:
        tree: Working tree the workflow will run against.
        prompter: Used to confirm running on a dirty tree.

    Raises:
        NotGitRepositoryError: If the directory is not a Git repository.
        UserCancelledError: If the tree is dirty and the user declines.
    """
    log.info("preflight_started", path=str(tree.path))
    tree.validate()

    if tree.is_dirty():
        log.warning("working_tree_dirty", path=str(tree.path))
        proceed = await prompter.confirm(
            "The working tree has uncommitted changes. Continue anyway?",
            default=False,
        )
        if not proceed:
            raise UserCancelledError("Cancelled: the working tree has uncommitted changes")

    log.info("preflight_passed", path=str(tree.path), branch=tree.active_branch())
