"""Custom exception hierarchy for upgrade-conductor.

This module defines a structured exception hierarchy that lets the CLI tell
apart real failures (a command exited non-zero, a terminal-hosted script never
finished) from intentional stops (the user cancelled a pause or aborted a
retry loop).

Exception Hierarchy:
    UpgradeConductorError (base)
    ├── ConfigurationError
    ├── GitOperationError
    │   ├── NotGitRepositoryError (see upgrade_conductor.git.exceptions)
    │   └── CommandError
    │       └── CommandTimeoutError
    ├── WorkflowError
    │   └── WorkflowAlreadyRunningError
    ├── UserCancelledError
    └── EmptyInputError

Example Usage:
    >>> from upgrade_conductor.exceptions import CommandError
    >>> try:
    ...     await runner.run_sync("git pull origin main", cwd)
    ... except CommandError as e:
    ...     print(e.stderr)
"""


class UpgradeConductorError(Exception):
    """Base exception for all upgrade-conductor errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(UpgradeConductorError):
    """Configuration-related errors.

    Examples:
        - Configuration file not found or unreadable
        - Invalid YAML syntax
        - Invalid configuration values
        - Unset environment variable referenced by the config
    """

    pass


class GitOperationError(UpgradeConductorError):
    """Errors raised while operating on the working tree."""

    pass


class CommandError(GitOperationError):
    """An external command exited with a non-zero status.

    The captured output is kept on the exception so callers can inspect it
    (for example to look for conflict indicators) and so it can be shown to
    the user even when the command was already logged.

    Attributes:
        command: The command that was run (shell string or argument list)
        returncode: Exit status, or None when unknown (terminal-hosted runs)
        stdout: Captured standard output
        stderr: Captured standard error
    """

    def __init__(
        self,
        message: str,
        command: str | None = None,
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            command: Command that failed
            returncode: Exit status of the command
            stdout: Captured standard output
            stderr: Captured standard error
        """
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(message)

    @property
    def output(self) -> str:
        """Combined stdout, stderr and message, skipping empty parts."""
        parts = [self.stdout.strip(), self.stderr.strip(), self.message]
        return "\n".join(part for part in parts if part)


class CommandTimeoutError(CommandError, TimeoutError):
    """A terminal-hosted command did not signal completion in time.

    Attributes:
        elapsed: Seconds waited before giving up
        timeout: Configured timeout in seconds
    """

    def __init__(
        self,
        message: str,
        command: str | None = None,
        elapsed: float = 0.0,
        timeout: float | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            command: Command that timed out
            elapsed: Seconds waited before giving up
            timeout: Configured timeout in seconds
        """
        self.elapsed = elapsed
        self.timeout = timeout
        if "timed out" not in message.lower():
            message = f"{message} (timed out after {elapsed:.0f}s)"
        super().__init__(message, command=command)


class WorkflowError(UpgradeConductorError):
    """Workflow execution errors.

    Examples:
        - A second suspension was requested while one is pending
        - A step definition is invalid
    """

    pass


class WorkflowAlreadyRunningError(WorkflowError):
    """A workflow run was requested while another run is still active."""

    pass


class UserCancelledError(UpgradeConductorError):
    """The user cancelled the workflow or aborted a recovery loop.

    Kept separate from other failures so callers can skip noisy error
    reporting for intentional stops.

    Attributes:
        reason: Why the workflow stopped
    """

    def __init__(self, reason: str = "Cancelled by user") -> None:
        """Initialize exception.

        Args:
            reason: Why the workflow stopped
        """
        self.reason = reason
        super().__init__(reason)


class EmptyInputError(UpgradeConductorError):
    """A required interactive input was not supplied.

    Attributes:
        field: Name of the missing input (e.g., "commit message")
    """

    def __init__(self, field: str) -> None:
        """Initialize exception.

        Args:
            field: Name of the missing input
        """
        self.field = field
        super().__init__(f"No {field} was provided")
