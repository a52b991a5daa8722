"""Tests for upgrade_conductor.engine.sequencer.StepSequencer."""

import asyncio
from pathlib import Path

import pytest
from conftest import FakePrompter, wait_until

from upgrade_conductor.engine.recovery import RetryLoop
from upgrade_conductor.engine.sequencer import StepSequencer, WorkflowResult
from upgrade_conductor.engine.steps import ShellAction, Step, Workflow
from upgrade_conductor.enums import StepKind, StepOutcome, StepPolicy, VerificationChoice, WorkflowStatus
from upgrade_conductor.exceptions import CommandError, UserCancelledError, WorkflowError


class RecordingObserver:
    def __init__(self) -> None:
        self.steps: list[tuple[int, int, str]] = []
        self.results: list[WorkflowResult] = []

    def on_step(self, index, total, step):
        self.steps.append((index, total, step.title))

    def on_finished(self, result):
        self.results.append(result)


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def sequencer(mock_runner, gate, retry_loop, observer) -> StepSequencer:
    return StepSequencer(mock_runner, gate, retry_loop, observer)


def _workflow(*steps: Step) -> Workflow:
    return Workflow(title="Test workflow", cwd=Path("/repo"), steps=steps)


class TestOrderedExecution:
    """Test strictly ordered, fully reported execution."""

    @pytest.mark.asyncio
    async def test_runs_every_step_in_order(self, sequencer, mock_runner, observer):
        calls = []

        async def action():
            calls.append("action")

        workflow = _workflow(
            Step.info("Start", detail="Working tree: /repo"),
            Step.command("Checkout", ShellAction("git checkout b")),
            Step.command("Action", action),
            Step.command("Upgrade", ShellAction("yarn upgrade", terminal=True)),
        )

        result = await sequencer.run(workflow)

        assert result.ok
        assert sequencer.status == WorkflowStatus.COMPLETED
        assert [r.outcome for r in result.records] == [StepOutcome.SUCCEEDED] * 4
        assert [r.kind for r in result.records] == [
            StepKind.INFO,
            StepKind.COMMAND,
            StepKind.COMMAND,
            StepKind.COMMAND,
        ]
        mock_runner.run_sync.assert_awaited_once_with("git checkout b", Path("/repo"))
        mock_runner.run_in_terminal_and_wait.assert_awaited_once_with("yarn upgrade", Path("/repo"), "Upgrade")
        assert calls == ["action"]
        assert observer.steps == [(0, 4, "Start"), (1, 4, "Checkout"), (2, 4, "Action"), (3, 4, "Upgrade")]
        assert observer.results == [result]

    @pytest.mark.asyncio
    async def test_empty_workflow_completes(self, sequencer):
        result = await sequencer.run(_workflow())

        assert result.status == WorkflowStatus.COMPLETED
        assert result.records == []

    @pytest.mark.asyncio
    async def test_pause_waits_for_resume(self, sequencer, mock_runner, gate):
        workflow = _workflow(
            Step.pause("Review"),
            Step.command("Push", ShellAction("git push origin b")),
        )

        task = asyncio.create_task(sequencer.run(workflow))
        await wait_until(lambda: gate.pending is not None)
        mock_runner.run_sync.assert_not_awaited()

        gate.resolve_pending()
        result = await task

        assert result.ok
        mock_runner.run_sync.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_sequencer_runs_once(self, sequencer):
        await sequencer.run(_workflow())

        with pytest.raises(WorkflowError, match="already used"):
            await sequencer.run(_workflow())


class TestFailures:
    """Test that a failure stops the run and is recorded."""

    @pytest.mark.asyncio
    async def test_command_failure_stops_run(self, sequencer, mock_runner):
        error = CommandError("Command failed with exit code 1: git push origin b", returncode=1)
        mock_runner.run_sync.side_effect = error

        result = await sequencer.run(
            _workflow(
                Step.command("Push", ShellAction("git push origin b")),
                Step.info("Never reached"),
            )
        )

        assert result.status == WorkflowStatus.FAILED
        assert result.error is error
        assert not result.cancelled
        assert len(result.records) == 1
        assert result.records[0].outcome == StepOutcome.FAILED
        assert result.records[0].error == error.message

    @pytest.mark.asyncio
    async def test_unexpected_exception_fails_run(self, sequencer):
        async def broken():
            raise KeyError("missing")

        result = await sequencer.run(_workflow(Step.command("Broken", broken)))

        assert result.status == WorkflowStatus.FAILED
        assert isinstance(result.error, KeyError)

    @pytest.mark.asyncio
    async def test_rejected_pause_fails_run(self, sequencer, gate, indicators):
        task = asyncio.create_task(sequencer.run(_workflow(Step.pause("Review"), Step.info("After"))))
        await wait_until(lambda: gate.pending is not None)

        gate.reject_pending("Cancelled at 'Review'")
        result = await task

        assert result.status == WorkflowStatus.FAILED
        assert result.cancelled
        assert [r.title for r in result.records] == ["Review"]
        assert not any(i.visible for i in indicators)


class TestPolicies:
    """Test command steps are wrapped according to their policy."""

    @pytest.mark.asyncio
    async def test_conflict_aware_recovers(self, sequencer, mock_runner, mock_inspector):
        error = CommandError("exit code 1", command="git pull origin b", returncode=1)
        mock_runner.run_sync.side_effect = error

        result = await sequencer.run(
            _workflow(Step.command("Pull", ShellAction("git pull origin b"), policy=StepPolicy.CONFLICT_AWARE))
        )

        assert result.ok
        assert result.records[0].outcome == StepOutcome.RECOVERED
        assert result.recovered_errors == [error]

    @pytest.mark.asyncio
    async def test_verify_uses_retry_loop(self, mock_runner, mock_inspector, gate):
        mock_runner.run_in_terminal_and_wait.side_effect = [CommandError("failed"), None]
        recovery = RetryLoop(mock_runner, mock_inspector, gate, FakePrompter(choices=[VerificationChoice.RERUN]))
        sequencer = StepSequencer(mock_runner, gate, recovery)

        task = asyncio.create_task(
            sequencer.run(_workflow(Step.command("Unit tests", ShellAction("yarn test"), policy=StepPolicy.VERIFY)))
        )
        await wait_until(lambda: gate.pending is not None)
        gate.resolve_pending()
        result = await task

        assert result.ok
        assert result.records[0].outcome == StepOutcome.RECOVERED
        mock_runner.run_in_terminal_and_wait.assert_awaited_with("yarn test", Path("/repo"), "Unit tests")


class TestCancellation:
    """Test cancellation between and during steps."""

    @pytest.mark.asyncio
    async def test_cancel_while_paused_aborts(self, sequencer, gate, mock_runner):
        task = asyncio.create_task(
            sequencer.run(_workflow(Step.pause("Review"), Step.command("Push", ShellAction("git push"))))
        )
        await wait_until(lambda: gate.pending is not None)

        sequencer.cancel("Stopped by SIGINT")
        result = await task

        assert result.status == WorkflowStatus.ABORTED
        assert result.cancelled
        assert str(result.error) == "Stopped by SIGINT"
        mock_runner.run_sync.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_step_in_flight_finishes_then_stops(self, sequencer, mock_runner):
        """Test cancellation during a command lets it finish, then starts nothing else."""
        started = asyncio.Event()
        release = asyncio.Event()
        finished = []

        async def slow():
            started.set()
            await release.wait()
            finished.append(True)

        task = asyncio.create_task(
            sequencer.run(
                _workflow(
                    Step.command("Slow", slow),
                    Step.command("Next", ShellAction("git push")),
                )
            )
        )
        await started.wait()
        sequencer.cancel()
        release.set()
        result = await task

        assert finished == [True]
        assert result.status == WorkflowStatus.ABORTED
        assert [r.outcome for r in result.records] == [StepOutcome.SUCCEEDED]
        mock_runner.run_sync.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_after_finish_is_ignored(self, sequencer):
        await sequencer.run(_workflow())

        sequencer.cancel()

        assert sequencer.status == WorkflowStatus.COMPLETED
        assert not sequencer.cancel_requested

    @pytest.mark.asyncio
    async def test_user_cancel_without_request_is_failure(self, sequencer):
        """Test a user abort inside a step fails the run unless cancel() was called."""

        async def abort():
            raise UserCancelledError("Aborted after Unit tests failed")

        result = await sequencer.run(_workflow(Step.command("Tests", abort)))

        assert result.status == WorkflowStatus.FAILED
        assert result.cancelled
