"""Git working-tree operations.

This package wraps the git commands the workflows depend on: preflight checks
of the working tree, merge-conflict inspection and branch/remote housekeeping.
All commands go through ProcessRunner so their output is logged.

Example:
    >>> from upgrade_conductor.git import BranchOps, ConflictInspector
    >>> inspector = ConflictInspector(runner)
    >>> await inspector.list_conflicts(repo)
    ['src/app.ts']

Error Handling:
    All exceptions inherit from GitTreeError and include a hint for resolution.

    >>> from upgrade_conductor.git import NotGitRepositoryError, WorkingTree
    >>> try:
    ...     WorkingTree("/tmp").validate()
    ... except NotGitRepositoryError as e:
    ...     print(e)
    Not a Git repository: /tmp

    Hint: Run 'git init' or navigate to a Git repository directory.
"""

from upgrade_conductor.git.branches import BranchOps
from upgrade_conductor.git.conflicts import ConflictInspector, is_merge_or_pull, looks_like_conflict
from upgrade_conductor.git.exceptions import GitTreeError, NotGitRepositoryError, RemoteNotConfiguredError
from upgrade_conductor.git.repository import WorkingTree, preflight

__all__ = [
    # Operations
    "BranchOps",
    "ConflictInspector",
    "WorkingTree",
    "preflight",
    # Helpers
    "is_merge_or_pull",
    "looks_like_conflict",
    # Exceptions
    "GitTreeError",
    "NotGitRepositoryError",
    "RemoteNotConfiguredError",
]
