"""Git working-tree exceptions.

All exceptions inherit from GitTreeError and carry an optional hint telling
the user how to get unstuck.

Example:
    >>> from upgrade_conductor.git.exceptions import NotGitRepositoryError
    >>> raise NotGitRepositoryError("/tmp/not-a-repo")
    Traceback (most recent call last):
        ...
    NotGitRepositoryError: Not a Git repository: /tmp/not-a-repo

    Hint: Run 'git init' or navigate to a Git repository directory.
"""

from upgrade_conductor.exceptions import GitOperationError


class GitTreeError(GitOperationError):
    """Base exception for working-tree errors.

    Attributes:
        message: Error message
        hint: Optional hint for resolution
    """

    def __init__(self, message: str, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message}\n\nHint: {self.hint}"
        return self.message


class NotGitRepositoryError(GitTreeError):
    """Raised when the workflow directory is not a Git repository.

    Attributes:
        path: Path to the directory that is not a Git repository
    """

    def __init__(self, path: str) -> None:
        super().__init__(
            message=f"Not a Git repository: {path}",
            hint="Run 'git init' or navigate to a Git repository directory.",
        )
        self.path = path


class RemoteNotConfiguredError(GitTreeError):
    """Raised when a remote is needed but neither configured nor supplied."""

    def __init__(self, name: str) -> None:
        super().__init__(
            message=f"Remote '{name}' is not configured and no URL was provided",
            hint=f"Add it with: git remote add {name} <url>, or set remotes.mirror_url in the config.",
        )
        self.name = name
