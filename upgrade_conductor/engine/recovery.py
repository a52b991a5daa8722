"""Human-in-the-loop recovery loops.

RetryLoop wraps fallible steps so that recoverable conditions pause the
workflow instead of failing it:

Conflict recovery:
    A merge/pull that fails, or reports conflicts in its output, triggers a
    structural check of the working tree. No unmerged paths means the failure
    was not a conflict ("already up to date" style exits): warn and carry on.
    Otherwise list the paths, pause with the resolution-order guidance, and
    after the resume re-check. Conflicts still present offer
    recheck / force-continue / abort.

Verification retry:
    Run a verification command in a visible terminal. On failure, pause with
    repair guidance, then offer rerun / skip / abort. There is no automatic
    attempt limit; every retry is an explicit user decision.

Required input:
    Ask for a value (e.g. a commit message). An empty answer offers
    retry / skip remaining steps / abort and never proceeds with an empty
    value.

All three loops iterate; none recurses.
"""

from collections.abc import Sequence
from pathlib import Path

import structlog

from upgrade_conductor.engine.gate import SuspensionGate
from upgrade_conductor.engine.steps import Step
from upgrade_conductor.enums import ConflictChoice, InputChoice, StepOutcome, VerificationChoice
from upgrade_conductor.exceptions import CommandError, EmptyInputError, UserCancelledError
from upgrade_conductor.git.conflicts import ConflictInspector, is_merge_or_pull, looks_like_conflict
from upgrade_conductor.process.runner import ProcessRunner
from upgrade_conductor.utils.interactive import Prompter

log = structlog.get_logger(__name__)

DEFAULT_CONFLICT_GUIDANCE = (
    "voucherconfig conflicts: keep the current branch version first and overwrite it afterwards",
    "bizSchemaManager / bizApplication conflicts: prefer the current branch",
    "import/reference conflicts: compare both sides and take the new branch where needed",
    "stage the resolved files (git add), then continue",
)

VERIFICATION_GUIDANCE = (
    "1. Read the failure output in the terminal\n"
    "2. Fix the code or the tests\n"
    "3. Continue, then choose 'rerun' to verify again\n"
    "4. Choose 'skip' only if the failure is a known, accepted risk"
)


class RetryLoop:
    """Recovery loops shared by the steps of one workflow run.

    Attributes:
        runner: Runs the wrapped commands.
        inspector: Answers "are there unmerged paths?".
        gate: The run's suspension gate, used for every pause.
        prompter: Asked for the three-way decisions.
        conflict_guidance: Resolution-order rules shown on conflict pauses.
        recovered_errors: Every command failure a loop recovered from, in order.
    """

    def __init__(
        self,
        runner: ProcessRunner,
        inspector: ConflictInspector,
        gate: SuspensionGate,
        prompter: Prompter,
        conflict_guidance: Sequence[str] = DEFAULT_CONFLICT_GUIDANCE,
    ) -> None:
        self.runner = runner
        self.inspector = inspector
        self.gate = gate
        self.prompter = prompter
        self.conflict_guidance = tuple(conflict_guidance)
        self.recovered_errors: list[CommandError] = []

    async def run_with_conflict_recovery(self, command: str, cwd: Path | str) -> StepOutcome:
        """Run a merge/pull command, recovering from conflicts.

        Returns:
            SUCCEEDED for a clean run, RECOVERED if a failure or conflict was handled.

        Raises:
            CommandError: For failures that are neither merges/pulls nor conflicts.
            UserCancelledError: If the user aborts conflict resolution.
        """
        try:
            outcome = await self.runner.run_sync(command, cwd)
        except CommandError as e:
            if not (looks_like_conflict(e.output) or is_merge_or_pull(command)):
                raise
            log.warning("merge_command_failed", command=command, output=e.output)
            self.recovered_errors.append(e)
            if not await self.ensure_conflicts_resolved(cwd):
                log.warning(
                    "merge_failed_without_conflicts",
                    command=command,
                    hint="no unmerged paths found, treating the step as complete",
                )
            return StepOutcome.RECOVERED

        if looks_like_conflict(f"{outcome.stdout}\n{outcome.stderr}"):
            if await self.ensure_conflicts_resolved(cwd):
                return StepOutcome.RECOVERED
        return StepOutcome.SUCCEEDED

    async def ensure_conflicts_resolved(self, cwd: Path | str) -> bool:
        """Pause until the working tree has no unmerged paths (or the user forces on).

        Returns:
            True if conflicts were found (and handled), False if there were none.

        Raises:
            UserCancelledError: If the user aborts.
        """
        paths = await self.inspector.list_conflicts(cwd)
        if not paths:
            return False

        log.warning("merge_conflicts_detected", count=len(paths), paths=paths)
        await self.gate.wait_for_continue(
            Step.pause("Resolve merge conflicts", detail=self.conflict_detail(paths))
        )

        while True:
            remaining = await self.inspector.list_conflicts(cwd)
            if not remaining:
                log.info("merge_conflicts_resolved")
                return True

            log.warning("merge_conflicts_remaining", count=len(remaining), paths=remaining)
            choice = await self.prompter.choose(
                f"{len(remaining)} path(s) still have unresolved conflicts",
                list(ConflictChoice),
                default=ConflictChoice.RECHECK,
            )
            if choice == ConflictChoice.RECHECK:
                continue
            if choice == ConflictChoice.FORCE_CONTINUE:
                log.warning("merge_conflicts_forced", paths=remaining)
                return True
            raise UserCancelledError("Aborted: unresolved merge conflicts remain")

    def conflict_detail(self, paths: Sequence[str]) -> str:
        """Guidance text listing the conflicted paths and the resolution rules."""
        lines = ["Conflicted files:"]
        lines.extend(f"  - {path}" for path in paths)
        lines.append("")
        lines.append("Resolution order:")
        lines.extend(f"  ({number}) {rule}" for number, rule in enumerate(self.conflict_guidance, 1))
        return "\n".join(lines)

    async def run_verification(self, command: str, cwd: Path | str, label: str) -> StepOutcome:
        """Run a verification command until it passes or the user skips/aborts.

        Returns:
            SUCCEEDED on a first-try pass, RECOVERED after retries or a skip.

        Raises:
            UserCancelledError: If the user aborts.
        """
        failures = 0
        while True:
            log.info("verification_started", label=label, attempt=failures + 1)
            try:
                await self.runner.run_in_terminal_and_wait(command, cwd, label)
            except CommandError as e:
                failures += 1
                self.recovered_errors.append(e)
                log.warning("verification_failed", label=label, failures=failures, error=e.message)
                await self.gate.wait_for_continue(
                    Step.pause(f"{label} failed, repair needed", detail=VERIFICATION_GUIDANCE)
                )

                log.info("verification_retry_prompt", label=label, failures=failures)
                choice = await self.prompter.choose(
                    f"{label} failed. What next?",
                    list(VerificationChoice),
                    default=VerificationChoice.RERUN,
                )
                if choice == VerificationChoice.RERUN:
                    continue
                if choice == VerificationChoice.SKIP:
                    log.warning("verification_skipped", label=label, failures=failures)
                    return StepOutcome.RECOVERED
                raise UserCancelledError(f"Aborted after {label} failed") from e

            log.info("verification_passed", label=label, failures=failures)
            return StepOutcome.SUCCEEDED if failures == 0 else StepOutcome.RECOVERED

    async def require_input(self, prompt: str, default: str | None = None, field: str = "value") -> str:
        """Ask for a non-empty value.

        Args:
            prompt: Prompt text.
            default: Pre-filled answer.
            field: Name of the value, used in messages ("commit message").

        Raises:
            UserCancelledError: If the user skips the remaining steps or aborts.
        """
        while True:
            answer = await self.prompter.ask_text(prompt, default)
            if answer and answer.strip():
                return answer.strip()

            error = EmptyInputError(field)
            log.warning("required_input_missing", field=field)
            choice = await self.prompter.choose(
                f"{error.message}. Skipping ends the workflow here; remaining steps must be done by hand.",
                list(InputChoice),
                default=InputChoice.RETRY,
            )
            if choice == InputChoice.RETRY:
                continue
            if choice == InputChoice.SKIP_REMAINING:
                raise UserCancelledError(f"Remaining steps skipped: no {field}") from error
            raise UserCancelledError(f"Aborted: no {field}") from error
