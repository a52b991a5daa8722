"""Integration tests for upgrade-conductor.

These tests drive real git repositories created under ``tmp_path`` and are
skipped when the ``git`` executable is not installed.

Run with: pytest tests/integration/ -v -m integration
"""
