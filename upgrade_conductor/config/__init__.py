"""Configuration system for upgrade-conductor.

This package provides type-safe configuration management using Pydantic,
covering upgrade environments, project commands, terminal handling, conflict
guidance, remotes, branch naming and commit messages.

Key Components:
    - UpgradeSettings: Main configuration container with YAML loading support
    - EnvironmentConfig: Target and source branch of an upgrade environment
    - TerminalConfig: Launcher backend, marker polling and timeout

Example:
    >>> from upgrade_conductor.config.settings import load_settings
    >>> settings = load_settings(".upgrade-conductor.yaml")
    >>> settings.environment("test").target_branch
    'test-220915'
"""
