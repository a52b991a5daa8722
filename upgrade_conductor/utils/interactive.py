"""Human-interaction primitives for paused workflows.

The workflow engine never talks to the console directly. It asks a
``Prompter`` for decisions and shows a ``StatusIndicator`` while it is
suspended, so the same engine can be driven by the click console
implementation below or by scripted fakes in tests.

Interaction primitives:
    - ask_continue: the "continue" / "cancel" decision for a pause
    - choose: a three-way choice for retry loops (e.g. rerun / skip / abort)
    - ask_text: free-text input such as a commit message
    - confirm: yes-no questions before optional steps

Key Exports:
    Prompter: Protocol implemented by every interaction backend.
    ClickPrompter: Console implementation built on click.
    ConsoleStatusIndicator: Persistent "paused" banner for the console.

Thread Safety:
    click prompts block on stdin, so ClickPrompter runs each prompt in a
    daemon thread and bridges the answer back to the event loop. A prompt
    whose awaiting task was cancelled never keeps the interpreter alive, and
    ClickPrompter never has two threads reading stdin at once.
"""

import asyncio
import threading
from collections.abc import Callable, Sequence
from enum import Enum
from typing import Any, Protocol, TypeVar

import click
import structlog

log = structlog.get_logger(__name__)

E = TypeVar("E", bound=Enum)
T = TypeVar("T")


class Prompter(Protocol):
    """Decisions the engine needs from a human."""

    async def ask_continue(self, title: str, detail: str | None = None) -> bool:
        """Ask whether a paused workflow should continue (True) or cancel (False)."""
        ...

    async def choose(self, message: str, options: Sequence[E], default: E | None = None) -> E:
        """Ask the user to pick one of ``options``."""
        ...

    async def ask_text(self, prompt: str, default: str | None = None) -> str | None:
        """Ask for free text. Returns None or "" when nothing was entered."""
        ...

    async def confirm(self, message: str, default: bool = False) -> bool:
        """Ask a yes/no question."""
        ...


class StatusIndicator(Protocol):
    """A persistent low-priority marker shown while a workflow is paused."""

    def show(self, title: str) -> None:
        """Display the indicator for the paused step ``title``."""
        ...

    def dispose(self) -> None:
        """Remove the indicator. Safe to call more than once."""
        ...


def start_daemon_thread(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> tuple[threading.Thread, asyncio.Future[T]]:
    """Start ``func`` in a daemon thread; returns the thread and a future for its result.

    Must be called from a running event loop.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[T] = loop.create_future()

    def _set_result(value: T) -> None:
        if not future.done():
            future.set_result(value)

    def _set_exception(exc: BaseException) -> None:
        if not future.done():
            future.set_exception(exc)

    def _worker() -> None:
        try:
            result = func(*args, **kwargs)
        except BaseException as e:  # noqa: BLE001 - forwarded to the awaiting task
            if not loop.is_closed():
                loop.call_soon_threadsafe(_set_exception, e)
            return
        if not loop.is_closed():
            loop.call_soon_threadsafe(_set_result, result)

    thread = threading.Thread(target=_worker, name="prompt", daemon=True)
    thread.start()
    return thread, future


async def run_in_daemon_thread(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking callable in a daemon thread and await its result.

    Unlike ``asyncio.to_thread`` the worker is a daemon thread outside the
    default executor, so a prompt still waiting on stdin when the workflow
    ends does not block interpreter shutdown.
    """
    _, future = start_daemon_thread(func, *args, **kwargs)
    return await future


class ClickPrompter:
    """Console prompter built on click.

    Only one thread reads stdin at a time. A prompt whose awaiting task was
    cancelled (for example a pause resumed from elsewhere) keeps its reader
    blocked on stdin; the next prompt waits for that reader to take one line
    of input before it starts its own.

    Example:
        >>> prompter = ClickPrompter()
        >>> choice = await prompter.choose(
        ...     "Verification failed", list(VerificationChoice)
        ... )
    """

    def __init__(self) -> None:
        self._reader: threading.Thread | None = None

    async def _read(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        stale = self._reader
        if stale is not None and stale.is_alive():
            log.warning("stale_prompt_pending", hint="the previous prompt was answered elsewhere")
            click.echo("(press Enter to dismiss the previous prompt)", err=True)
            await run_in_daemon_thread(stale.join)

        self._reader, future = start_daemon_thread(func, *args, **kwargs)
        return await future

    async def ask_continue(self, title: str, detail: str | None = None) -> bool:
        click.echo("")
        click.echo(click.style(f"⏸  {title}", bold=True, fg="yellow"))
        if detail:
            click.echo(detail)
        answer = await self._read(
            click.prompt,
            "Type 'continue' when ready or 'cancel' to stop",
            type=click.Choice(["continue", "cancel"]),
            default="continue",
            show_choices=True,
        )
        return answer == "continue"

    async def choose(self, message: str, options: Sequence[E], default: E | None = None) -> E:
        by_value = {option.value: option for option in options}
        answer = await self._read(
            click.prompt,
            message,
            type=click.Choice(list(by_value)),
            default=default.value if default is not None else None,
            show_choices=True,
        )
        return by_value[answer]

    async def ask_text(self, prompt: str, default: str | None = None) -> str | None:
        answer = await self._read(
            click.prompt,
            prompt,
            default=default or "",
            show_default=bool(default),
        )
        return answer.strip() if answer else None

    async def confirm(self, message: str, default: bool = False) -> bool:
        return await self._read(click.confirm, message, default=default)


class ConsoleStatusIndicator:
    """Prints a banner when a workflow pauses and clears its state on dispose."""

    def __init__(self) -> None:
        self.visible = False
        self.title: str | None = None

    def show(self, title: str) -> None:
        self.visible = True
        self.title = title
        click.echo(click.style(f"[paused] {title}", fg="black", bg="yellow"), err=True)

    def dispose(self) -> None:
        if not self.visible:
            return
        log.debug("status_indicator_disposed", title=self.title)
        self.visible = False
        self.title = None
