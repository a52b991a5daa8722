"""
Configuration system using Pydantic for type-safe settings management.

Settings cover the upgrade environments, the commands the workflows run, how
terminal-hosted commands are launched and waited for, conflict guidance,
remotes and branch naming. Every section has working defaults, so the tool
runs without a configuration file.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from upgrade_conductor.engine.recovery import DEFAULT_CONFLICT_GUIDANCE
from upgrade_conductor.enums import TerminalBackend
from upgrade_conductor.exceptions import ConfigurationError
from upgrade_conductor.process.markers import DEFAULT_MARKER_PREFIX
from upgrade_conductor.process.runner import (
    DEFAULT_HEARTBEAT_INTERVAL,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_TERMINAL_TIMEOUT,
)

DEFAULT_CONFIG_PATH = ".upgrade-conductor.yaml"


class EnvironmentConfig(BaseModel):
    """An upgrade environment: where upgrades land and where they come from."""

    target_branch: str = Field(..., description="Long-lived branch the upgrade is merged into")
    source_branch: str = Field(..., description="Branch carrying the upgraded framework code")
    deploy_hint: str = Field(default="", description="Environment to deploy once the upgrade is merged")


def _default_environments() -> dict[str, EnvironmentConfig]:
    return {
        "test": EnvironmentConfig(
            target_branch="test-220915",
            source_branch="plus-upgrade-test",
            deploy_hint="pre-test",
        ),
        "inte": EnvironmentConfig(
            target_branch="sprint-251225",
            source_branch="plus-upgrade-sprint",
            deploy_hint="pre-inte",
        ),
    }


class CommandsConfig(BaseModel):
    """Project commands run by the workflows."""

    upgrade_script: str = Field(default="node ./scripts/upgrade-bizcore.js", description="Quick upgrade script")
    test: str = Field(default="yarn test", description="Unit test command")
    standard_upgrade: str = Field(default="yarn upgrade", description="Upgrade command for the standard sync")
    rebuild_upgrade: str = Field(default="yarn upgrade --commit", description="Upgrade command for the rebuild sync")


class TerminalConfig(BaseModel):
    """How terminal-hosted commands are launched and awaited."""

    backend: TerminalBackend = Field(default=TerminalBackend.INHERIT, description="inherit or tmux")
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0, description="Seconds between marker checks")
    heartbeat_interval: float = Field(
        default=DEFAULT_HEARTBEAT_INTERVAL, gt=0, description="Seconds between progress log lines"
    )
    timeout: float = Field(default=DEFAULT_TERMINAL_TIMEOUT, gt=0, description="Seconds before giving up")
    marker_prefix: str = Field(default=DEFAULT_MARKER_PREFIX, description="File name prefix of marker files")

    @field_validator("marker_prefix")
    @classmethod
    def validate_marker_prefix(cls, value: str) -> str:
        if not value or "/" in value or any(ch.isspace() for ch in value):
            raise ValueError("marker_prefix must be a plain file name without '/' or whitespace")
        return value


class ConflictsConfig(BaseModel):
    """Merge-conflict guidance shown while the workflow is paused."""

    guidance: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CONFLICT_GUIDANCE),
        description="Resolution rules, shown in order",
    )


class RemotesConfig(BaseModel):
    """Remote names and the mirror repository."""

    origin: str = Field(default="origin", description="Remote the working branches live on")
    mirror_name: str = Field(default="plus", description="Remote that receives the synced code")
    mirror_url: str | None = Field(default=None, description="URL used when the mirror remote is missing")


class BranchesConfig(BaseModel):
    """Branch naming defaults."""

    feature_prefix: str = Field(default="upgrade", description="Prefix of quick upgrade feature branches")
    sync_feature_prefix: str = Field(
        default="feature/upgrade-test", description="Prefix of sync feature branches (date appended)"
    )
    default_base: str = Field(default="test-220915", description="Default base branch for sync workflows")
    default_source_target: str = Field(
        default="feat-test-250918", description="Mirror branch that receives the source push"
    )


class CommitConfig(BaseModel):
    """Commit message defaults."""

    message_template: str = Field(
        default="upgrade: {timestamp} {source_branch} branch upgrade",
        description="Default commit message; {timestamp} and {source_branch} are filled in",
    )

    def render(self, timestamp: str, source_branch: str) -> str:
        try:
            return self.message_template.format(timestamp=timestamp, source_branch=source_branch)
        except (KeyError, IndexError, ValueError) as e:
            raise ConfigurationError(f"Invalid commit.message_template: {e}") from e


class UpgradeSettings(BaseSettings):
    """Main settings.

    Combines all configuration sections and provides loading from YAML files
    with environment variable interpolation. Values can also be overridden
    with ``UPGRADE_CONDUCTOR_<SECTION>__<FIELD>`` environment variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="UPGRADE_CONDUCTOR_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    environments: dict[str, EnvironmentConfig] = Field(default_factory=_default_environments)
    commands: CommandsConfig = Field(default_factory=CommandsConfig)
    terminal: TerminalConfig = Field(default_factory=TerminalConfig)
    conflicts: ConflictsConfig = Field(default_factory=ConflictsConfig)
    remotes: RemotesConfig = Field(default_factory=RemotesConfig)
    branches: BranchesConfig = Field(default_factory=BranchesConfig)
    commit: CommitConfig = Field(default_factory=CommitConfig)

    @field_validator("environments")
    @classmethod
    def validate_environments(cls, value: dict[str, EnvironmentConfig]) -> dict[str, EnvironmentConfig]:
        if not value:
            raise ValueError("at least one environment must be configured")
        return value

    def environment(self, name: str) -> EnvironmentConfig:
        """Look up an environment by name.

        Raises:
            ConfigurationError: If it is not configured.
        """
        try:
            return self.environments[name]
        except KeyError:
            known = ", ".join(sorted(self.environments))
            raise ConfigurationError(f"Unknown environment '{name}' (configured: {known})") from None

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> UpgradeSettings:
        """Load settings from YAML file with environment variable interpolation.

        Supports ${VAR_NAME} syntax for environment variable substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            UpgradeSettings instance

        Raises:
            ConfigurationError: If config file is invalid or has invalid fields
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            yaml_content = config_file.read_text()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        # An empty file means "all defaults"
        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except Exception as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        Supports two syntaxes:
        - ${VAR_NAME} - Required environment variable (raises if not set)
        - ${VAR_NAME:-default} - Optional with default value

        YAML comment lines (starting with #) are left unchanged.

        Raises:
            ValueError: If a required environment variable is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))


def load_settings(config_path: str | Path | None = None) -> UpgradeSettings:
    """Load settings from ``config_path``, falling back to defaults.

    A missing file is not an error: the defaults (plus any
    ``UPGRADE_CONDUCTOR_*`` environment overrides) are used instead.

    Raises:
        ConfigurationError: If the file exists but is invalid.
    """
    path = Path(config_path or DEFAULT_CONFIG_PATH)
    if not path.exists():
        try:
            return UpgradeSettings()
        except Exception as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e
    return UpgradeSettings.from_yaml(path)
