"""Workflow builders.

Each builder turns validated parameters into an immutable ``Workflow`` for
one run. Builders never touch git themselves; every side effect happens in a
step when the sequencer reaches it.

Workflows:
    quick upgrade: merge an environment's upgrade source branch into its
        target branch through a temporary feature branch.
    standard sync: refresh a feature branch from the synced upstream branch,
        run the upgrade, merge back and push to both remotes.
    rebuild sync: rebuild the upgrade on a fresh branch, carry over the
        previous upgrade branch, merge into the final base.
    source push: push a base branch of the source repository to the mirror
        remote, where the sync workflows pick it up.
"""

import shlex
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from pathlib import Path

from upgrade_conductor.config.settings import UpgradeSettings
from upgrade_conductor.engine import actions
from upgrade_conductor.engine.session import WorkflowRun
from upgrade_conductor.engine.steps import ShellAction, Step, Workflow
from upgrade_conductor.enums import StepPolicy


def date_tag(now: datetime | None = None) -> str:
    """Date tag in ``YYMMDD`` form."""
    return (now or datetime.now()).strftime("%y%m%d")


def timestamp_tag(now: datetime | None = None) -> str:
    return (now or datetime.now()).strftime("%y%m%d %H:%M:%S")


def feature_branch_name(prefix: str, env: str, suffix: str) -> str:
    """Build ``<prefix>/<env>-<suffix>``.

    Raises:
        ValueError: If the suffix is empty or contains '/' or whitespace.
    """
    suffix = suffix.strip()
    if not suffix:
        raise ValueError("Branch suffix must not be empty")
    if "/" in suffix or any(ch.isspace() for ch in suffix):
        raise ValueError(f"Branch suffix must not contain '/' or whitespace: {suffix!r}")
    return f"{prefix}/{env}-{suffix}"


def _git(*args: str) -> ShellAction:
    return ShellAction(shlex.join(("git", *args)))


@dataclass(frozen=True)
class QuickUpgradeParams:
    env: str
    target_branch: str
    source_branch: str
    feature_branch: str
    origin: str = "origin"


@dataclass(frozen=True)
class StandardSyncParams:
    base_branch: str
    upstream_branch: str
    feature_branch: str
    origin: str = "origin"
    mirror_remote: str | None = None


@dataclass(frozen=True)
class RebuildSyncParams:
    base_branch: str
    new_branch: str
    final_base_branch: str
    previous_branch: str | None = None
    origin: str = "origin"
    mirror_remote: str | None = None


@dataclass(frozen=True)
class SourcePushParams:
    base_branch: str
    target_branch: str
    mirror_remote: str
    mirror_url: str | None = None
    origin: str = "origin"


def _merge_confirmation(feature_branch: str, target_branch: str) -> str:
    return (
        f"Please confirm:\n"
        f"  - feature branch {feature_branch} contains the finished upgrade\n"
        f"  - tests passed, or the failures are a known risk\n"
        f"\n"
        f"The next steps check out {target_branch} and merge into it.\n"
        f"Continue only when everything above is true."
    )


def build_quick_upgrade(
    run: WorkflowRun, cwd: Path, params: QuickUpgradeParams, settings: UpgradeSettings
) -> Workflow:
    origin, target, source, feature = params.origin, params.target_branch, params.source_branch, params.feature_branch
    deploy_hint = settings.environments[params.env].deploy_hint if params.env in settings.environments else ""
    commit_message = settings.commit.render(timestamp_tag(), source)

    steps = (
        Step.info(f"Working tree: {cwd}"),
        Step.info(
            f"Upgrade environment: {params.env.upper()}",
            detail=f"target branch: {target}\nsource branch: {source}\nfeature branch: {feature}",
        ),
        Step.command(f"Check out target branch {target}", _git("checkout", target)),
        Step.command(f"Update {origin}/{target}", _git("pull", origin, target)),
        Step.command(
            f"Check out or create feature branch {feature}",
            partial(actions.checkout_feature_branch, run, feature, target, cwd),
        ),
        Step.command(
            f"Merge source branch {origin}/{source}",
            _git("pull", origin, source),
            policy=StepPolicy.CONFLICT_AWARE,
        ),
        Step.command("Run upgrade script", ShellAction(settings.commands.upgrade_script, terminal=True)),
        Step.command("Commit upgrade changes", partial(actions.commit_changes, run, cwd, commit_message)),
        Step.pause(f"About to merge into {target}", detail=_merge_confirmation(feature, target)),
        Step.command(f"Check out target branch {target}", _git("checkout", target)),
        Step.command(f"Update {origin}/{target}", _git("pull", origin, target)),
        Step.command(f"Merge {feature} into {target}", _git("merge", feature), policy=StepPolicy.CONFLICT_AWARE),
        Step.command(
            f"Run tests on {target}",
            partial(actions.run_optional_tests, run, cwd, settings.commands.test),
        ),
        Step.command(f"Push {target} to {origin}", _git("push", origin, target)),
        Step.command(
            f"Delete feature branch {feature}",
            partial(actions.delete_feature_branch, run, feature, cwd),
        ),
        Step.info(
            "Quick upgrade complete",
            detail=(
                f"Next:\n"
                f"  1. Deploy {deploy_hint or 'the ' + params.env + ' environment'}\n"
                f"  2. Verify the affected features\n"
                f"  3. Watch the logs\n"
                f"  4. Roll back to the previous {target} commit if something breaks"
            ),
        ),
    )
    return Workflow(title=f"Quick upgrade ({params.env})", cwd=cwd, steps=steps)


def _conflict_pause(run: WorkflowRun, cwd: Path) -> Step:
    return Step.pause(
        "Resolve conflicts",
        detail="\n".join(
            ["Resolve any remaining conflicts before continuing:"]
            + [f"  ({number}) {rule}" for number, rule in enumerate(run.recovery.conflict_guidance, 1)]
        ),
        on_continue=partial(run.recovery.ensure_conflicts_resolved, cwd),
    )


def _mirror_push(branch: str, origin: str, mirror_remote: str | None) -> tuple[Step, ...]:
    if not mirror_remote or mirror_remote == origin:
        return ()
    return (Step.command(f"Push {branch} to {mirror_remote}", _git("push", mirror_remote, f"{branch}:{branch}")),)


def build_standard_sync(
    run: WorkflowRun, cwd: Path, params: StandardSyncParams, settings: UpgradeSettings
) -> Workflow:
    origin, base, upstream, feature = params.origin, params.base_branch, params.upstream_branch, params.feature_branch

    steps = (
        Step.info(f"Working tree: {cwd}"),
        Step.command(f"Check out base branch {base}", _git("checkout", base)),
        Step.command(f"Update {origin}/{base}", _git("pull", origin, base)),
        Step.command(
            f"Check out or create feature branch {feature}",
            partial(actions.checkout_feature_branch, run, feature, base, cwd),
        ),
        Step.command(
            f"Merge upstream branch {origin}/{upstream}",
            _git("pull", origin, upstream),
            policy=StepPolicy.CONFLICT_AWARE,
        ),
        _conflict_pause(run, cwd),
        Step.command("Run upgrade", ShellAction(settings.commands.standard_upgrade, terminal=True)),
        Step.command("Run tests", partial(actions.run_optional_tests, run, cwd, settings.commands.test)),
        Step.command(f"Push {feature} to {origin}", _git("push", origin, feature)),
        Step.command(f"Check out base branch {base}", _git("checkout", base)),
        Step.command(f"Merge {feature} into {base}", _git("merge", feature), policy=StepPolicy.CONFLICT_AWARE),
        Step.command(f"Push {base} to {origin}", _git("push", origin, base)),
        *_mirror_push(base, origin, params.mirror_remote),
        Step.pause("Sync complete", detail="Deploy the pre-test environment or continue with manual checks."),
    )
    return Workflow(title="Upgrade sync (standard)", cwd=cwd, steps=steps)


def build_rebuild_sync(
    run: WorkflowRun, cwd: Path, params: RebuildSyncParams, settings: UpgradeSettings
) -> Workflow:
    origin, base, new, final = params.origin, params.base_branch, params.new_branch, params.final_base_branch

    steps = (
        Step.info(f"Working tree: {cwd}"),
        Step.command(f"Check out base branch {base}", _git("checkout", base)),
        Step.command(f"Update {origin}/{base}", _git("pull", origin, base)),
        Step.command(
            f"Check out or create upgrade branch {new}",
            partial(actions.checkout_feature_branch, run, new, base, cwd),
        ),
        Step.command("Run upgrade with commit", ShellAction(settings.commands.rebuild_upgrade, terminal=True)),
        Step.command(
            f"Merge previous upgrade branch {params.previous_branch or '(none)'}",
            partial(actions.merge_previous_branch, run, origin, params.previous_branch, cwd),
        ),
        _conflict_pause(run, cwd),
        Step.command("Run tests", partial(actions.run_optional_tests, run, cwd, settings.commands.test)),
        Step.command(f"Push {new} to {origin}", _git("push", origin, new)),
        Step.command(f"Check out final branch {final}", _git("checkout", final)),
        Step.command(f"Update {origin}/{final}", _git("pull", origin, final)),
        Step.command(f"Merge {new} into {final}", _git("merge", new), policy=StepPolicy.CONFLICT_AWARE),
        Step.command(f"Push {final} to {origin}", _git("push", origin, final)),
        *_mirror_push(final, origin, params.mirror_remote),
        Step.pause("Sync complete", detail="Deploy the pre-test environment and run regression checks as needed."),
    )
    return Workflow(title="Upgrade sync (rebuild)", cwd=cwd, steps=steps)


def build_source_push(
    run: WorkflowRun, cwd: Path, params: SourcePushParams, settings: UpgradeSettings
) -> Workflow:
    origin, base, target, mirror = params.origin, params.base_branch, params.target_branch, params.mirror_remote

    steps = (
        Step.info(f"Working tree: {cwd}"),
        Step.command(
            f"Ensure remote {mirror} exists",
            partial(actions.ensure_remote, run, mirror, params.mirror_url, cwd),
        ),
        Step.command(f"Fetch {origin}", _git("fetch", origin)),
        Step.command(f"Check out base branch {base}", _git("checkout", base)),
        Step.command(f"Update {origin}/{base}", _git("pull", origin, base)),
        Step.command(f"Push {base} to {mirror}/{target}", _git("push", mirror, f"{base}:{target}")),
        Step.pause(
            "Source push complete",
            detail=(
                f"{base} was pushed to {mirror}/{target}.\n"
                f"Continue to verify the branch on {mirror}, then run "
                f"'upgrade-conductor sync standard' or 'sync rebuild' in the target repository."
            ),
            on_continue=partial(actions.verify_remote_branch, run, mirror, target, cwd),
        ),
    )
    return Workflow(title="Upgrade sync (source push)", cwd=cwd, steps=steps)
