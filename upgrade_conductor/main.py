"""CLI entry point for upgrade-conductor."""

import asyncio
import signal
import sys
from collections.abc import Callable
from pathlib import Path

import click
import structlog
from click.core import ParameterSource

from upgrade_conductor.config.settings import DEFAULT_CONFIG_PATH, UpgradeSettings, load_settings
from upgrade_conductor.engine.sequencer import WorkflowResult
from upgrade_conductor.engine.session import WorkflowFactory, WorkflowRun, WorkflowSession
from upgrade_conductor.engine.steps import Step, Workflow
from upgrade_conductor.engine.workflows import (
    QuickUpgradeParams,
    RebuildSyncParams,
    SourcePushParams,
    StandardSyncParams,
    build_quick_upgrade,
    build_rebuild_sync,
    build_source_push,
    build_standard_sync,
    date_tag,
    feature_branch_name,
)
from upgrade_conductor.enums import StepKind, WorkflowStatus
from upgrade_conductor.exceptions import ConfigurationError, UpgradeConductorError, UserCancelledError
from upgrade_conductor.git.repository import WorkingTree, preflight
from upgrade_conductor.process.runner import ProcessRunner
from upgrade_conductor.process.terminal import create_terminal_launcher
from upgrade_conductor.utils.interactive import ClickPrompter, ConsoleStatusIndicator, Prompter
from upgrade_conductor.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)

EXIT_CANCELLED = 130


class ConsoleProgressObserver:
    """Prints ``[i/n] title`` for every step and a one-line summary at the end."""

    def on_step(self, index: int, total: int, step: Step) -> None:
        text = step.message if step.kind == StepKind.INFO else step.title
        click.echo(click.style(f"[{index + 1}/{total}] ", fg="cyan") + text)

    def on_finished(self, result: WorkflowResult) -> None:
        if result.status == WorkflowStatus.COMPLETED:
            click.echo(click.style(f"✅ {result.title} completed", bold=True, fg="green"))
        elif result.status == WorkflowStatus.ABORTED:
            click.echo(click.style(f"⏹  {result.title} aborted", bold=True, fg="yellow"), err=True)
        else:
            click.echo(click.style(f"❌ {result.title} failed", bold=True, fg="red"), err=True)


def create_runner(settings: UpgradeSettings) -> ProcessRunner:
    """Build the process runner described by the ``terminal`` settings."""
    terminal = settings.terminal
    return ProcessRunner(
        create_terminal_launcher(terminal.backend),
        poll_interval=terminal.poll_interval,
        heartbeat_interval=terminal.heartbeat_interval,
        timeout=terminal.timeout,
        marker_prefix=terminal.marker_prefix,
    )


def _install_signal_handlers(loop: asyncio.AbstractEventLoop, session: WorkflowSession) -> list[signal.Signals]:
    """Route SIGINT/SIGTERM to ``session.cancel``.

    Each handler fires once and then removes itself, so a second Ctrl-C
    interrupts immediately.
    """
    installed: list[signal.Signals] = []

    def _handle(sig: signal.Signals) -> None:
        loop.remove_signal_handler(sig)
        log.warning("signal_received", signal=sig.name)
        session.cancel(f"Interrupted by {sig.name}")

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _handle, sig)
        except (NotImplementedError, RuntimeError):
            continue
        installed.append(sig)
    return installed


async def _run_workflow(
    settings: UpgradeSettings,
    cwd: Path,
    build: WorkflowFactory,
    prompter: Prompter | None = None,
) -> WorkflowResult:
    """Preflight the tree, then run one workflow in a fresh session."""
    prompter = prompter or ClickPrompter()
    await preflight(WorkingTree(cwd), prompter)

    session = WorkflowSession(
        create_runner(settings),
        prompter,
        indicator_factory=ConsoleStatusIndicator,
        conflict_guidance=settings.conflicts.guidance,
        observer=ConsoleProgressObserver(),
    )
    loop = asyncio.get_running_loop()
    installed = _install_signal_handlers(loop, session)
    try:
        return await session.run(build)
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def _execute(settings: UpgradeSettings, cwd: Path, build: WorkflowFactory, name: str) -> None:
    """Run a workflow and map its outcome to an exit code."""
    try:
        result = asyncio.run(_run_workflow(settings, cwd, build))
    except UserCancelledError as e:
        click.echo(f"Stopped: {e.reason}", err=True)
        sys.exit(EXIT_CANCELLED)
    except UpgradeConductorError as e:
        click.echo(f"Error: {e}", err=True)
        log.debug(f"{name}_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(EXIT_CANCELLED)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        log.error(f"{name}_unexpected", exc_info=True)
        sys.exit(1)

    if result.ok:
        return
    if result.cancelled:
        click.echo(f"Stopped: {result.error}", err=True)
        sys.exit(EXIT_CANCELLED)
    click.echo(f"Error: {result.error}", err=True)
    sys.exit(1)


def _ask(value: str | None, label: str, default: str | None = None) -> str:
    """Return ``value``, prompting for it when it was not given."""
    if value is not None:
        return value
    return click.prompt(label, default=default)


def _builder(
    builder: Callable[..., Workflow], cwd: Path, params: object, settings: UpgradeSettings
) -> WorkflowFactory:
    def build(run: WorkflowRun) -> Workflow:
        return builder(run, cwd, params, settings)

    return build


cwd_option = click.option(
    "--cwd",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Git working tree to run in (default: current directory)",
)


@click.group()
@click.option(
    "--config",
    default=DEFAULT_CONFIG_PATH,
    help="Path to configuration file",
)
@click.option("--log-level", default="INFO", help="Logging level")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.pass_context
def cli(ctx: click.Context, config: str, log_level: str, json_logs: bool) -> None:
    """upgrade-conductor: orchestrate framework upgrades across git branches."""
    try:
        configure_logging(log_level, json_logs=json_logs)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    # Only an explicitly requested config file has to exist
    if ctx.get_parameter_source("config") != ParameterSource.DEFAULT and not Path(config).exists():
        click.echo(f"Error: Configuration file not found: {config}", err=True)
        sys.exit(1)

    try:
        settings = load_settings(config)
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)

    ctx.obj = {"settings": settings}


@cli.command("quick-upgrade")
@cwd_option
@click.option("--env", help="Upgrade environment (e.g. test, inte)")
@click.option("--suffix", help="Feature branch suffix (default: today as YYMMDD)")
@click.option("--target", help="Target branch (default: the environment's target branch)")
@click.option("--source", help="Source branch (default: the environment's source branch)")
@click.pass_context
def quick_upgrade(
    ctx: click.Context,
    cwd: Path,
    env: str | None,
    suffix: str | None,
    target: str | None,
    source: str | None,
) -> None:
    """Merge an environment's upgrade branch into its target branch."""
    settings: UpgradeSettings = ctx.obj["settings"]

    env = env or click.prompt(
        "Upgrade environment",
        type=click.Choice(sorted(settings.environments)),
        default="test" if "test" in settings.environments else None,
    )
    try:
        env_config = settings.environment(env)
    except ConfigurationError as e:
        raise click.BadParameter(e.message, param_hint="--env") from e

    suffix = _ask(suffix, f"Feature branch suffix ({settings.branches.feature_prefix}/{env}-...)", date_tag())
    try:
        feature_branch = feature_branch_name(settings.branches.feature_prefix, env, suffix)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--suffix") from e

    params = QuickUpgradeParams(
        env=env,
        target_branch=_ask(target, "Target branch", env_config.target_branch),
        source_branch=source or env_config.source_branch,
        feature_branch=feature_branch,
        origin=settings.remotes.origin,
    )
    _execute(settings, cwd.resolve(), _builder(build_quick_upgrade, cwd.resolve(), params, settings), "quick_upgrade")


@cli.group()
def sync() -> None:
    """Synchronize upgrade branches between the source and mirror repositories."""


@sync.command("standard")
@cwd_option
@click.option("--base", help="Base branch the feature branch starts from")
@click.option("--upstream", help="Upstream branch pushed from the source repository")
@click.option("--feature", help="Feature branch for the upgrade")
@click.option("--mirror", help="Also push the base branch to this remote")
@click.pass_context
def sync_standard(
    ctx: click.Context,
    cwd: Path,
    base: str | None,
    upstream: str | None,
    feature: str | None,
    mirror: str | None,
) -> None:
    """Routine sync: no script changes, everyday development."""
    settings: UpgradeSettings = ctx.obj["settings"]
    branches = settings.branches

    params = StandardSyncParams(
        base_branch=_ask(base, "Base branch", branches.default_base),
        upstream_branch=_ask(upstream, "Upstream branch", branches.default_source_target),
        feature_branch=_ask(feature, "Feature branch", f"{branches.sync_feature_prefix}-{date_tag()}"),
        origin=settings.remotes.origin,
        mirror_remote=mirror,
    )
    _execute(settings, cwd.resolve(), _builder(build_standard_sync, cwd.resolve(), params, settings), "sync_standard")


@sync.command("rebuild")
@cwd_option
@click.option("--base", help="Base branch the new upgrade branch starts from")
@click.option("--new-branch", help="New upgrade branch")
@click.option("--previous", help="Previous upgrade branch to merge in (empty for none)")
@click.option("--final", help="Branch the upgrade is finally merged into")
@click.option("--mirror", help="Also push the final branch to this remote")
@click.pass_context
def sync_rebuild(
    ctx: click.Context,
    cwd: Path,
    base: str | None,
    new_branch: str | None,
    previous: str | None,
    final: str | None,
    mirror: str | None,
) -> None:
    """Rebuild the upgrade branch: script changes or large structural changes."""
    settings: UpgradeSettings = ctx.obj["settings"]
    branches = settings.branches

    base = _ask(base, "Base branch", branches.default_source_target)
    new_branch = _ask(new_branch, "New upgrade branch", f"{branches.sync_feature_prefix}-{date_tag()}")
    if previous is None:
        previous = click.prompt("Previous upgrade branch (empty for none)", default="", show_default=False)

    params = RebuildSyncParams(
        base_branch=base,
        new_branch=new_branch,
        final_base_branch=_ask(final, "Final branch", branches.default_base),
        previous_branch=previous.strip() or None,
        origin=settings.remotes.origin,
        mirror_remote=mirror,
    )
    _execute(settings, cwd.resolve(), _builder(build_rebuild_sync, cwd.resolve(), params, settings), "sync_rebuild")


@sync.command("source-push")
@cwd_option
@click.option("--remote", help="Mirror remote name")
@click.option("--remote-url", help="Mirror remote URL, used when the remote is missing")
@click.option("--base", help="Source branch to push")
@click.option("--target", help="Branch on the mirror that receives the push")
@click.pass_context
def sync_source_push(
    ctx: click.Context,
    cwd: Path,
    remote: str | None,
    remote_url: str | None,
    base: str | None,
    target: str | None,
) -> None:
    """Push a source repository branch to the mirror remote."""
    settings: UpgradeSettings = ctx.obj["settings"]
    branches = settings.branches

    params = SourcePushParams(
        base_branch=_ask(base, "Branch to push", branches.default_base),
        target_branch=_ask(target, "Mirror branch", branches.default_source_target),
        mirror_remote=_ask(remote, "Mirror remote", settings.remotes.mirror_name),
        mirror_url=remote_url or settings.remotes.mirror_url,
        origin=settings.remotes.origin,
    )
    _execute(
        settings, cwd.resolve(), _builder(build_source_push, cwd.resolve(), params, settings), "sync_source_push"
    )


if __name__ == "__main__":
    cli()
