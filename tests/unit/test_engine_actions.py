"""Tests for upgrade_conductor.engine.actions."""

import asyncio

import pytest
from conftest import FakePrompter, outcome, wait_until

from upgrade_conductor.engine import actions
from upgrade_conductor.engine.session import WorkflowSession
from upgrade_conductor.enums import InputChoice, StepOutcome, VerificationChoice
from upgrade_conductor.exceptions import CommandError, UserCancelledError
from upgrade_conductor.git.exceptions import GitTreeError


def _run(mock_runner, prompter):
    return WorkflowSession(mock_runner, prompter, prompt_on_pause=False).new_run()


def _commands(mock_runner):
    return [call.args[0] for call in mock_runner.run_sync.await_args_list]


class TestCommitChanges:
    """Test staging and committing upgrade output."""

    @pytest.mark.asyncio
    async def test_clean_tree_skips_commit(self, mock_runner, tmp_path):
        prompter = FakePrompter()

        committed = await actions.commit_changes(_run(mock_runner, prompter), tmp_path, "upgrade: msg")

        assert committed is False
        assert _commands(mock_runner) == [("git", "status", "--porcelain")]
        assert prompter.calls == []

    @pytest.mark.asyncio
    async def test_commits_with_entered_message(self, mock_runner, tmp_path):
        mock_runner.run_sync.side_effect = [outcome(stdout=" M package.json\n"), outcome(), outcome()]
        prompter = FakePrompter(texts=["upgrade: bizcore 2.3"])

        committed = await actions.commit_changes(_run(mock_runner, prompter), tmp_path, "upgrade: default")

        assert committed is True
        assert _commands(mock_runner) == [
            ("git", "status", "--porcelain"),
            ("git", "add", "."),
            ("git", "commit", "-m", "upgrade: bizcore 2.3", "--no-verify"),
        ]

    @pytest.mark.asyncio
    async def test_commit_failure_is_a_warning(self, mock_runner, tmp_path):
        mock_runner.run_sync.side_effect = [
            outcome(stdout="?? new.ts\n"),
            outcome(),
            CommandError("nothing to commit, working tree clean", returncode=1),
        ]
        prompter = FakePrompter(texts=["msg"])

        assert await actions.commit_changes(_run(mock_runner, prompter), tmp_path, "default") is False

    @pytest.mark.asyncio
    async def test_empty_message_skip_remaining(self, mock_runner, tmp_path):
        """Test an empty message never commits."""
        mock_runner.run_sync.side_effect = [outcome(stdout=" M a.ts\n"), outcome()]
        prompter = FakePrompter(texts=[""], choices=[InputChoice.SKIP_REMAINING])

        with pytest.raises(UserCancelledError, match="no commit message"):
            await actions.commit_changes(_run(mock_runner, prompter), tmp_path, "default")

        assert all(command[1] != "commit" for command in _commands(mock_runner))


class TestRunOptionalTests:
    @pytest.mark.asyncio
    async def test_declined(self, mock_runner, tmp_path):
        prompter = FakePrompter(confirms=[False])

        result = await actions.run_optional_tests(_run(mock_runner, prompter), tmp_path, "yarn test")

        assert result == StepOutcome.SUCCEEDED
        mock_runner.run_in_terminal_and_wait.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_accepted_runs_verification(self, mock_runner, tmp_path):
        prompter = FakePrompter(confirms=[True])

        result = await actions.run_optional_tests(_run(mock_runner, prompter), tmp_path, "yarn test")

        assert result == StepOutcome.SUCCEEDED
        mock_runner.run_in_terminal_and_wait.assert_awaited_once_with("yarn test", tmp_path, "Unit tests")

    @pytest.mark.asyncio
    async def test_failure_skipped(self, mock_runner, tmp_path):
        mock_runner.run_in_terminal_and_wait.side_effect = CommandError("failed")
        prompter = FakePrompter(confirms=[True], choices=[VerificationChoice.SKIP])
        run = _run(mock_runner, prompter)

        task = asyncio.create_task(actions.run_optional_tests(run, tmp_path, "yarn test"))
        await wait_until(lambda: run.gate.pending is not None)
        run.gate.resolve_pending()

        assert await task == StepOutcome.RECOVERED


class TestRemoteActions:
    """Test remote setup and verification."""

    @pytest.mark.asyncio
    async def test_ensure_remote_adds_missing(self, mock_runner, tmp_path):
        mock_runner.run_sync.side_effect = [CommandError("No such remote"), outcome()]

        await actions.ensure_remote(_run(mock_runner, FakePrompter()), "plus", "git@example.com:plus.git", tmp_path)

        assert _commands(mock_runner)[-1] == ("git", "remote", "add", "plus", "git@example.com:plus.git")

    @pytest.mark.asyncio
    async def test_verify_remote_branch_present(self, mock_runner, tmp_path):
        await actions.verify_remote_branch(_run(mock_runner, FakePrompter()), "plus", "feat-test-250918", tmp_path)

    @pytest.mark.asyncio
    async def test_verify_remote_branch_missing(self, mock_runner, tmp_path):
        mock_runner.run_sync.side_effect = CommandError("exit code 2", returncode=2)

        with pytest.raises(GitTreeError, match="'feat-test-250918' was not found on remote 'plus'"):
            await actions.verify_remote_branch(
                _run(mock_runner, FakePrompter()), "plus", "feat-test-250918", tmp_path
            )


class TestMergePreviousBranch:
    @pytest.mark.asyncio
    async def test_no_previous_branch(self, mock_runner, tmp_path):
        await actions.merge_previous_branch(_run(mock_runner, FakePrompter()), "origin", None, tmp_path)

        mock_runner.run_sync.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fetch_then_merge(self, mock_runner, tmp_path):
        await actions.merge_previous_branch(
            _run(mock_runner, FakePrompter()), "origin", "feature/upgrade-test-250101", tmp_path
        )

        assert _commands(mock_runner) == [
            ("git", "fetch", "origin", "feature/upgrade-test-250101"),
            "git merge origin/feature/upgrade-test-250101 --no-verify",
        ]


class TestBranchActions:
    @pytest.mark.asyncio
    async def test_checkout_feature_branch(self, mock_runner, tmp_path):
        await actions.checkout_feature_branch(_run(mock_runner, FakePrompter()), "upgrade/test-1", "test", tmp_path)

        assert _commands(mock_runner)[-1] == ("git", "checkout", "upgrade/test-1")

    @pytest.mark.asyncio
    async def test_delete_feature_branch_failure_is_tolerated(self, mock_runner, tmp_path):
        mock_runner.run_sync.side_effect = CommandError("not found")

        await actions.delete_feature_branch(_run(mock_runner, FakePrompter()), "upgrade/test-1", tmp_path)
