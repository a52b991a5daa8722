"""Step sequencer: runs one workflow, one step at a time.

State machine::

    IDLE -> RUNNING -> COMPLETED | ABORTED | FAILED

Loop, for each step in order:
    1. If cancellation was requested, stop (ABORTED) before starting the step
    2. Report progress (index, total, title)
    3. Dispatch by kind:
       - info: log title and detail
       - pause: suspend on the gate; a rejection fails the run
       - command: run through ProcessRunner, wrapped by conflict recovery or
         verification retry according to the step's policy

Any step failure stops the loop; no step is ever skipped silently. The gate's
status indicator is disposed on every exit path.

A sequencer runs exactly one workflow. Rejecting a second concurrent run is
the caller's job (see ``WorkflowSession``).
"""

from dataclasses import dataclass, field
from typing import Protocol

import structlog

from upgrade_conductor.engine.gate import SuspensionGate
from upgrade_conductor.engine.recovery import RetryLoop
from upgrade_conductor.engine.steps import CallableAction, ShellAction, Step, Workflow
from upgrade_conductor.enums import StepKind, StepOutcome, StepPolicy, WorkflowStatus
from upgrade_conductor.exceptions import CommandError, UpgradeConductorError, UserCancelledError, WorkflowError
from upgrade_conductor.process.runner import ProcessRunner

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StepRecord:
    """History entry for one executed step."""

    index: int
    title: str
    kind: StepKind
    outcome: StepOutcome
    error: str | None = None


@dataclass
class WorkflowResult:
    """Final state of a workflow run.

    Attributes:
        title: Workflow title.
        status: Terminal status of the run.
        records: One entry per step that started, in order.
        error: The exception that stopped the run, if any.
        recovered_errors: Command failures recovered from during the run.
    """

    title: str
    status: WorkflowStatus
    records: list[StepRecord] = field(default_factory=list)
    error: BaseException | None = None
    recovered_errors: list[CommandError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == WorkflowStatus.COMPLETED

    @property
    def cancelled(self) -> bool:
        """True when the run stopped because of a user decision."""
        return isinstance(self.error, UserCancelledError)


class ProgressObserver(Protocol):
    """Receives per-step progress and the final result."""

    def on_step(self, index: int, total: int, step: Step) -> None: ...

    def on_finished(self, result: WorkflowResult) -> None: ...


class StepSequencer:
    """Executes a workflow's steps strictly in order.

    Attributes:
        runner: Runs plain shell commands.
        gate: The single suspension gate of this run.
        recovery: Conflict/verification loops bound to the same gate.
        observer: Optional progress observer.
    """

    def __init__(
        self,
        runner: ProcessRunner,
        gate: SuspensionGate,
        recovery: RetryLoop,
        observer: ProgressObserver | None = None,
    ) -> None:
        self.runner = runner
        self.gate = gate
        self.recovery = recovery
        self.observer = observer
        self._status = WorkflowStatus.IDLE
        self._cancel_reason: str | None = None

    @property
    def status(self) -> WorkflowStatus:
        return self._status

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_reason is not None

    def cancel(self, reason: str = "Cancelled by user") -> None:
        """Request cancellation.

        The step in flight runs to completion; the next step never starts. A
        pending pause is rejected immediately.
        """
        if self._status.is_terminal:
            return
        self._cancel_reason = reason
        log.warning("workflow_cancel_requested", reason=reason)
        if self.gate.pending is not None:
            self.gate.reject_pending(UserCancelledError(reason))

    async def run(self, workflow: Workflow) -> WorkflowResult:
        """Run every step of ``workflow``.

        Step failures do not propagate: they end the run in FAILED (or
        ABORTED when caused by cancellation) and are stored on the result.

        Raises:
            WorkflowError: If this sequencer has already been used.
        """
        if self._status != WorkflowStatus.IDLE:
            raise WorkflowError(f"Sequencer already used (status: {self._status})")

        self._status = WorkflowStatus.RUNNING
        result = WorkflowResult(title=workflow.title, status=WorkflowStatus.RUNNING)
        total = len(workflow)
        log.info("workflow_started", workflow=workflow.title, cwd=str(workflow.cwd), steps=total)

        try:
            for index, step in enumerate(workflow.steps):
                if self.cancel_requested:
                    log.warning("workflow_aborted", workflow=workflow.title, next_step=step.title)
                    result.error = UserCancelledError(self._cancel_reason)
                    self._status = WorkflowStatus.ABORTED
                    break

                log.info("step_started", index=index + 1, total=total, title=step.title, kind=str(step.kind))
                if self.observer is not None:
                    self.observer.on_step(index, total, step)

                try:
                    outcome = await self._dispatch(step, workflow)
                except Exception as e:
                    self._log_failure(step, e)
                    result.records.append(
                        StepRecord(index, step.title, step.kind, StepOutcome.FAILED, error=str(e))
                    )
                    result.error = e
                    if isinstance(e, UserCancelledError) and self.cancel_requested:
                        self._status = WorkflowStatus.ABORTED
                    else:
                        self._status = WorkflowStatus.FAILED
                    break

                result.records.append(StepRecord(index, step.title, step.kind, outcome))
            else:
                self._status = WorkflowStatus.COMPLETED
        finally:
            self.gate.dispose()
            if not self._status.is_terminal:
                self._status = WorkflowStatus.ABORTED

        result.status = self._status
        result.recovered_errors = list(self.recovery.recovered_errors)
        log.info(
            "workflow_finished",
            workflow=workflow.title,
            status=str(self._status),
            steps_run=len(result.records),
            error=str(result.error) if result.error else None,
        )
        if self.observer is not None:
            self.observer.on_finished(result)
        return result

    async def _dispatch(self, step: Step, workflow: Workflow) -> StepOutcome:
        if step.kind == StepKind.INFO:
            log.info("step_info", title=step.title, detail=step.detail)
            return StepOutcome.SUCCEEDED

        if step.kind == StepKind.PAUSE:
            await self.gate.wait_for_continue(step)
            return StepOutcome.SUCCEEDED

        return await self._run_command(step, workflow)

    async def _run_command(self, step: Step, workflow: Workflow) -> StepOutcome:
        action = step.action
        if isinstance(action, CallableAction):
            await action.func()
            return StepOutcome.SUCCEEDED

        if not isinstance(action, ShellAction):
            raise WorkflowError(f"Step '{step.title}' has an unsupported action: {action!r}")

        if step.policy == StepPolicy.CONFLICT_AWARE:
            return await self.recovery.run_with_conflict_recovery(action.command, workflow.cwd)
        if step.policy == StepPolicy.VERIFY:
            return await self.recovery.run_verification(action.command, workflow.cwd, step.title)

        if action.terminal:
            await self.runner.run_in_terminal_and_wait(action.command, workflow.cwd, step.title)
        else:
            await self.runner.run_sync(action.command, workflow.cwd)
        return StepOutcome.SUCCEEDED

    def _log_failure(self, step: Step, error: Exception) -> None:
        if isinstance(error, UserCancelledError):
            log.warning("step_cancelled", title=step.title, reason=error.reason)
        elif isinstance(error, UpgradeConductorError):
            log.error(
                "step_failed",
                title=step.title,
                error=error.message,
                stderr=getattr(error, "stderr", None) or None,
            )
        else:
            log.error("step_failed_unexpected", title=step.title, error=str(error), exc_info=True)
