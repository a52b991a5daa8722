"""Step and workflow definitions.

A workflow is an ordered, immutable tuple of steps bound to one working
directory. Steps come in three kinds:

- info: pure reporting
- pause: suspend until a human continues or cancels
- command: run a shell command or an async action

A command's action is a tagged variant, ``ShellAction | CallableAction``,
dispatched explicitly by the sequencer.

Example:
    >>> workflow = Workflow(
    ...     title="Refresh branch",
    ...     cwd=Path("/repo"),
    ...     steps=(
    ...         Step.command("Check out b", ShellAction("git checkout b")),
    ...         Step.command(
    ...             "Pull origin/b",
    ...             ShellAction("git pull origin b"),
    ...             policy=StepPolicy.CONFLICT_AWARE,
    ...         ),
    ...         Step.pause("Confirm", detail="Review the result, then continue."),
    ...     ),
    ... )
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path

from upgrade_conductor.enums import StepKind, StepPolicy
from upgrade_conductor.exceptions import WorkflowError

AsyncAction = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class ShellAction:
    """A literal shell command.

    Attributes:
        command: Command string run through the shell in the workflow cwd.
        terminal: Run in a user-visible terminal and wait for its marker
            instead of capturing output.
    """

    command: str
    terminal: bool = False


@dataclass(frozen=True)
class CallableAction:
    """A parameterless async action."""

    func: AsyncAction


Action = ShellAction | CallableAction


@dataclass(frozen=True)
class Step:
    """One unit of orchestrated work.

    Attributes:
        title: Human label, reported as progress.
        kind: command, pause or info.
        detail: Multi-line explanation shown on pause (and logged for info).
        action: What a command step runs. None for pause and info steps.
        policy: How a command step is wrapped (plain, conflict-aware, verify).
        on_continue: Async hook run right after a pause is continued.
    """

    title: str
    kind: StepKind
    detail: str | None = None
    action: Action | None = None
    policy: StepPolicy = StepPolicy.PLAIN
    on_continue: AsyncAction | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.kind == StepKind.COMMAND and self.action is None:
            raise WorkflowError(f"Command step '{self.title}' has no action")
        if self.kind != StepKind.COMMAND and self.action is not None:
            raise WorkflowError(f"{self.kind.value.capitalize()} step '{self.title}' cannot carry an action")
        if self.on_continue is not None and self.kind != StepKind.PAUSE:
            raise WorkflowError(f"Only pause steps take on_continue (step '{self.title}')")
        if self.policy != StepPolicy.PLAIN and not isinstance(self.action, ShellAction):
            raise WorkflowError(f"Policy '{self.policy}' needs a shell command (step '{self.title}')")

    @classmethod
    def info(cls, title: str, detail: str | None = None) -> "Step":
        return cls(title=title, kind=StepKind.INFO, detail=detail)

    @classmethod
    def pause(
        cls,
        title: str,
        detail: str | None = None,
        on_continue: AsyncAction | None = None,
    ) -> "Step":
        return cls(title=title, kind=StepKind.PAUSE, detail=detail, on_continue=on_continue)

    @classmethod
    def command(
        cls,
        title: str,
        action: Action | AsyncAction,
        policy: StepPolicy = StepPolicy.PLAIN,
    ) -> "Step":
        """Build a command step; a bare coroutine function is wrapped in CallableAction."""
        if not isinstance(action, ShellAction | CallableAction):
            action = CallableAction(action)
        return cls(title=title, kind=StepKind.COMMAND, action=action, policy=policy)

    @property
    def message(self) -> str:
        """Title and detail joined for display."""
        return f"{self.title}\n{self.detail}" if self.detail else self.title


@dataclass(frozen=True)
class Workflow:
    """An ordered sequence of steps run against one working directory."""

    title: str
    cwd: Path
    steps: tuple[Step, ...]

    def __len__(self) -> int:
        return len(self.steps)
