"""Enumerations shared by the workflow engine and the CLI."""

from enum import Enum


class StepKind(str, Enum):
    """Kinds of workflow steps."""

    COMMAND = "command"
    PAUSE = "pause"
    INFO = "info"

    def __str__(self) -> str:
        return self.value


class StepPolicy(str, Enum):
    """How the sequencer wraps a command step.

    - plain: run once, any failure stops the workflow
    - conflict-aware: merge/pull failures go through conflict recovery
    - verify: failures go through the interactive re-run/skip/abort loop
    """

    PLAIN = "plain"
    CONFLICT_AWARE = "conflict-aware"
    VERIFY = "verify"

    def __str__(self) -> str:
        return self.value


class WorkflowStatus(str, Enum):
    """Lifecycle states of a single workflow run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        """Check if the run has finished."""
        return self in (
            WorkflowStatus.COMPLETED,
            WorkflowStatus.ABORTED,
            WorkflowStatus.FAILED,
        )


class StepOutcome(str, Enum):
    """Per-step result recorded in the run history."""

    SUCCEEDED = "succeeded"
    RECOVERED = "recovered"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


class ConflictChoice(str, Enum):
    """Choices offered when conflicts remain after a resume."""

    RECHECK = "recheck"
    FORCE_CONTINUE = "force-continue"
    ABORT = "abort"

    def __str__(self) -> str:
        return self.value


class VerificationChoice(str, Enum):
    """Choices offered after a failed verification command."""

    RERUN = "rerun"
    SKIP = "skip"
    ABORT = "abort"

    def __str__(self) -> str:
        return self.value


class InputChoice(str, Enum):
    """Choices offered when a required input was left empty."""

    RETRY = "retry"
    SKIP_REMAINING = "skip-remaining"
    ABORT = "abort"

    def __str__(self) -> str:
        return self.value


class TerminalBackend(str, Enum):
    """Where terminal-hosted commands are launched."""

    INHERIT = "inherit"
    TMUX = "tmux"

    def __str__(self) -> str:
        return self.value
