"""Workflow orchestration engine.

This package runs ordered, human-in-the-loop workflows against a single git
working tree.

Key Components:
    - Step / Workflow: Immutable workflow definitions
    - SuspensionGate: Single-slot pause/resume rendezvous
    - RetryLoop: Conflict recovery, verification retry and required input
    - StepSequencer: Runs one workflow step by step
    - WorkflowSession: Allows one run at a time and routes resume/cancel

Workflows:
    - Quick upgrade: Merge an environment's upgrade branch via a feature branch
    - Standard sync: Refresh a feature branch from upstream and merge back
    - Rebuild sync: Rebuild the upgrade on a fresh branch
    - Source push: Push a base branch to the mirror remote

Example:
    >>> from upgrade_conductor.engine.session import WorkflowSession
    >>> session = WorkflowSession(runner, ClickPrompter())
    >>> result = await session.run(lambda run: build_quick_upgrade(run, cwd, params, settings))
"""
