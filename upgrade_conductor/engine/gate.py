"""Single-slot suspension gate.

The gate is the only place a running workflow hands control to a human. It
holds at most one ``Suspension``: a paused step plus a future the sequencer
awaits. An external actor (the console prompt, a signal handler, a test)
settles it with ``resolve_pending`` or ``reject_pending``.

Guarantees:
    - At most one suspension is pending; requesting a second one is a
      programming error (WorkflowError).
    - The slot is cleared before the future is completed, so a settled
      suspension can never be settled twice.
    - Settling with nothing pending is a logged no-op, never an error.
    - A step's ``on_continue`` hook runs after the resume, before control
      returns to the sequencer.

Example:
    >>> gate = SuspensionGate(prompter=ClickPrompter())
    >>> await gate.wait_for_continue(Step.pause("Check the diff"))
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from upgrade_conductor.engine.steps import Step
from upgrade_conductor.exceptions import UserCancelledError, WorkflowError
from upgrade_conductor.utils.interactive import Prompter, StatusIndicator

log = structlog.get_logger(__name__)


@dataclass
class Suspension:
    """The one outstanding pause: the step and the future its waiter awaits."""

    step: Step
    future: asyncio.Future[None]


class SuspensionGate:
    """Rendezvous between a paused workflow and the human who resumes it.

    Attributes:
        prompter: Asked for a continue/cancel decision on every pause. When
            None, only explicit resolve/reject calls settle a suspension.
        indicator_factory: Builds the status indicator shown while paused.
    """

    def __init__(
        self,
        prompter: Prompter | None = None,
        indicator_factory: Callable[[], StatusIndicator] | None = None,
    ) -> None:
        self.prompter = prompter
        self.indicator_factory = indicator_factory
        self._pending: Suspension | None = None
        self._indicator: StatusIndicator | None = None
        self._notifier: asyncio.Task[None] | None = None

    @property
    def pending(self) -> Suspension | None:
        """The current suspension, if any."""
        return self._pending

    async def wait_for_continue(self, step: Step) -> None:
        """Suspend until the pause for ``step`` is resolved or rejected.

        Raises:
            WorkflowError: If another suspension is already pending.
            UserCancelledError: (or the given reason) if the pause is rejected.
        """
        if self._pending is not None:
            raise WorkflowError(
                f"Cannot pause at '{step.title}': '{self._pending.step.title}' is still pending"
            )

        suspension = Suspension(step=step, future=asyncio.get_running_loop().create_future())
        self._pending = suspension
        log.info("workflow_paused", title=step.title, detail=step.detail)
        self._show_indicator(step)
        if self.prompter is not None:
            self._notifier = asyncio.create_task(self._ask(suspension))

        try:
            await suspension.future
        finally:
            self._stop_notifier()
            if self._pending is suspension:
                self._clear()

        if step.on_continue is not None:
            log.info("on_continue_started", title=step.title)
            await step.on_continue()

    def resolve_pending(self) -> bool:
        """Continue the pending suspension.

        Returns:
            True if a suspension was resumed, False if nothing was pending.
        """
        suspension = self._pending
        if suspension is None:
            log.warning("nothing_pending", action="resolve")
            return False

        self._clear()
        log.info("workflow_resumed", title=suspension.step.title)
        if not suspension.future.done():
            suspension.future.set_result(None)
        return True

    def reject_pending(self, reason: BaseException | str | None = None) -> bool:
        """Fail the pending suspension with ``reason``.

        A string (or nothing) is wrapped in UserCancelledError.

        Returns:
            True if a suspension was rejected, False if nothing was pending.
        """
        suspension = self._pending
        if suspension is None:
            log.warning("nothing_pending", action="reject")
            return False

        if isinstance(reason, BaseException):
            error = reason
        else:
            error = UserCancelledError(reason or "Cancelled by user")

        self._clear()
        log.warning("workflow_pause_rejected", title=suspension.step.title, reason=str(error))
        if not suspension.future.done():
            suspension.future.set_exception(error)
        return True

    def dispose(self) -> None:
        """Remove any live indicator. Called when a workflow run ends."""
        if self._indicator is not None:
            self._indicator.dispose()
            self._indicator = None

    def _show_indicator(self, step: Step) -> None:
        self.dispose()
        if self.indicator_factory is not None:
            self._indicator = self.indicator_factory()
            self._indicator.show(step.title)

    def _clear(self) -> None:
        self._pending = None
        self.dispose()

    def _stop_notifier(self) -> None:
        notifier, self._notifier = self._notifier, None
        if notifier is not None and not notifier.done():
            notifier.cancel()

    async def _ask(self, suspension: Suspension) -> None:
        """Relay the prompter's continue/cancel answer to the gate."""
        step = suspension.step
        try:
            proceed = await self.prompter.ask_continue(step.title, step.detail)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error("pause_prompt_failed", title=step.title, error=str(e))
            if self._pending is suspension:
                self.reject_pending(UserCancelledError(f"Pause prompt failed: {e}"))
            return

        if self._pending is not suspension:
            return
        if proceed:
            self.resolve_pending()
        else:
            self.reject_pending(UserCancelledError(f"Cancelled at '{step.title}'"))
