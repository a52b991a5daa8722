"""Tests for upgrade_conductor.git.conflicts."""

import pytest
from conftest import outcome

from upgrade_conductor.exceptions import CommandError
from upgrade_conductor.git.conflicts import (
    UNMERGED_PATHS_COMMAND,
    ConflictInspector,
    is_merge_or_pull,
    looks_like_conflict,
)


class TestTextHeuristics:
    """Test the output/command matchers that trigger the structural check."""

    @pytest.mark.parametrize(
        "output",
        [
            "CONFLICT (content): Merge conflict in src/app.ts",
            "Automatic merge failed; fix conflicts and then commit the result.",
            "conflict (modify/delete): voucherconfig.json deleted in HEAD",
        ],
    )
    def test_conflict_output(self, output):
        assert looks_like_conflict(output)

    @pytest.mark.parametrize("output", ["", "Already up to date.", "Fast-forward\n 1 file changed"])
    def test_clean_output(self, output):
        assert not looks_like_conflict(output)

    @pytest.mark.parametrize(
        "command,expected",
        [
            ("git pull origin test-220915", True),
            ("git merge origin/plus-upgrade-test --no-verify", True),
            ("git  MERGE feature", True),
            ("git push origin test", False),
            ("git checkout merge-helpers", False),
            ("yarn test", False),
        ],
    )
    def test_is_merge_or_pull(self, command, expected):
        assert is_merge_or_pull(command) is expected


class TestConflictInspector:
    """Test unmerged-path queries."""

    @pytest.mark.asyncio
    async def test_lists_paths_in_git_order(self, mock_runner, tmp_path):
        mock_runner.run_sync.return_value = outcome(stdout="src/b.ts\nsrc/a.ts\n\n")

        paths = await ConflictInspector(mock_runner).list_conflicts(tmp_path)

        assert paths == ["src/b.ts", "src/a.ts"]
        mock_runner.run_sync.assert_awaited_once_with(UNMERGED_PATHS_COMMAND, tmp_path)

    @pytest.mark.asyncio
    async def test_clean_tree(self, mock_runner, tmp_path):
        inspector = ConflictInspector(mock_runner)

        assert await inspector.list_conflicts(tmp_path) == []
        assert await inspector.has_conflicts(tmp_path) is False

    @pytest.mark.asyncio
    async def test_has_conflicts(self, mock_runner, tmp_path):
        mock_runner.run_sync.return_value = outcome(stdout="package.json\n")

        assert await ConflictInspector(mock_runner).has_conflicts(tmp_path) is True

    @pytest.mark.asyncio
    async def test_query_failure_counts_as_clean(self, mock_runner, tmp_path):
        """Test a failing git query is logged and reported as no conflicts."""
        mock_runner.run_sync.side_effect = CommandError("not a git repository", returncode=128)

        assert await ConflictInspector(mock_runner).list_conflicts(tmp_path) == []

    @pytest.mark.asyncio
    async def test_never_caches(self, mock_runner, tmp_path):
        mock_runner.run_sync.side_effect = [outcome(stdout="a.ts\n"), outcome(stdout="")]
        inspector = ConflictInspector(mock_runner)

        assert await inspector.list_conflicts(tmp_path) == ["a.ts"]
        assert await inspector.list_conflicts(tmp_path) == []
        assert mock_runner.run_sync.await_count == 2
