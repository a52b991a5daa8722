"""One-run-at-a-time workflow session.

A session owns the long-lived collaborators (process runner, conflict
inspector, branch operations, prompter) and creates a fresh gate, retry loop
and sequencer for every run. Only one run may be active; ``resume`` and
``cancel`` act on that run and do nothing when the session is idle.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass

import structlog

from upgrade_conductor.engine.gate import SuspensionGate
from upgrade_conductor.engine.recovery import DEFAULT_CONFLICT_GUIDANCE, RetryLoop
from upgrade_conductor.engine.sequencer import ProgressObserver, StepSequencer, WorkflowResult
from upgrade_conductor.engine.steps import Workflow
from upgrade_conductor.exceptions import WorkflowAlreadyRunningError
from upgrade_conductor.git.branches import BranchOps
from upgrade_conductor.git.conflicts import ConflictInspector
from upgrade_conductor.process.runner import ProcessRunner
from upgrade_conductor.utils.interactive import Prompter, StatusIndicator

log = structlog.get_logger(__name__)


@dataclass
class WorkflowRun:
    """Collaborators bound to a single run.

    Workflow builders receive this so their async actions pause on the same
    gate the sequencer cancels.
    """

    runner: ProcessRunner
    inspector: ConflictInspector
    branches: BranchOps
    prompter: Prompter
    gate: SuspensionGate
    recovery: RetryLoop
    sequencer: StepSequencer


WorkflowFactory = Callable[[WorkflowRun], Workflow]


class WorkflowSession:
    """Runs workflows one at a time.

    Attributes:
        runner: Shared process runner.
        prompter: Asked for every decision during a run.
        indicator_factory: Builds the "paused" indicator for each pause.
        prompt_on_pause: Ask the prompter on every pause. When False only
            ``resume``/``cancel`` settle a pause.
        conflict_guidance: Resolution rules shown on conflict pauses.
        observer: Receives progress of every run.
    """

    def __init__(
        self,
        runner: ProcessRunner,
        prompter: Prompter,
        indicator_factory: Callable[[], StatusIndicator] | None = None,
        prompt_on_pause: bool = True,
        conflict_guidance: Sequence[str] = DEFAULT_CONFLICT_GUIDANCE,
        observer: ProgressObserver | None = None,
    ) -> None:
        self.runner = runner
        self.prompter = prompter
        self.indicator_factory = indicator_factory
        self.prompt_on_pause = prompt_on_pause
        self.conflict_guidance = tuple(conflict_guidance)
        self.observer = observer
        self.inspector = ConflictInspector(runner)
        self.branches = BranchOps(runner)
        self._active: WorkflowRun | None = None

    @property
    def active(self) -> WorkflowRun | None:
        return self._active

    def new_run(self) -> WorkflowRun:
        """Create the per-run gate, retry loop and sequencer."""
        gate = SuspensionGate(
            prompter=self.prompter if self.prompt_on_pause else None,
            indicator_factory=self.indicator_factory,
        )
        recovery = RetryLoop(self.runner, self.inspector, gate, self.prompter, self.conflict_guidance)
        sequencer = StepSequencer(self.runner, gate, recovery, self.observer)
        return WorkflowRun(
            runner=self.runner,
            inspector=self.inspector,
            branches=self.branches,
            prompter=self.prompter,
            gate=gate,
            recovery=recovery,
            sequencer=sequencer,
        )

    async def run(self, workflow: Workflow | WorkflowFactory) -> WorkflowResult:
        """Run a workflow, or build one for a fresh run and run it.

        Raises:
            WorkflowAlreadyRunningError: If another run is still active.
        """
        if self._active is not None:
            raise WorkflowAlreadyRunningError(
                f"A workflow is already running (status: {self._active.sequencer.status})"
            )

        run = self.new_run()
        self._active = run
        try:
            if not isinstance(workflow, Workflow):
                workflow = workflow(run)
            return await run.sequencer.run(workflow)
        finally:
            self._active = None

    def resume(self) -> bool:
        """Continue the active run's pending pause, if any."""
        if self._active is None:
            log.warning("resume_ignored", reason="no active workflow")
            return False
        return self._active.gate.resolve_pending()

    def cancel(self, reason: str = "Cancelled by user") -> bool:
        """Cancel the active run, if any."""
        if self._active is None:
            log.warning("cancel_ignored", reason="no active workflow")
            return False
        self._active.sequencer.cancel(reason)
        return True
