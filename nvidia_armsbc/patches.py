"""Patch selection and application.

The armsbc fork keeps one patch branch per driver major version
("armsbc-580", "armsbc-590", ...) plus an unversioned "armsbc" branch used
when no versioned branch exists yet. The patches are the commits between
the branch and its merge base with the fork's main branch.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path

from .config import BuildConfig
from .errors import (
    NoMergeBase,
    PatchBranchNotFound,
    SourceFetchFailed,
    UpstreamMainUnavailable,
)
from .models import (
    ApplyReport,
    DriverVersion,
    PatchBranch,
    PatchOutcome,
    PatchResult,
    PatchSeries,
)
from .shell import step, warn
from .toolchain import Toolchain

FORK_DIRNAME = "fork.git"
PATCHES_DIRNAME = "patches"
MAIN_BRANCH = "main"

BranchRule = tuple[Callable[[DriverVersion], bool], str]

# Tried in order; the first rule whose branch can be fetched wins.
BRANCH_RULES: tuple[BranchRule, ...] = (
    (lambda version: True, "{base}-{major}"),
    (lambda version: True, "{base}"),
)


def candidate_branches(
    base: str,
    version: DriverVersion,
    rules: Sequence[BranchRule] = BRANCH_RULES,
) -> list[PatchBranch]:
    """List the patch branches to try for version, in preference order.

    Pure function: no repository access.

    Example:
        candidate_branches("armsbc", 590.x) → [armsbc-590, armsbc]
    """
    branches: list[PatchBranch] = []
    seen: set[str] = set()
    for applies, template in rules:
        if not applies(version):
            continue
        name = template.format(base=base, major=version.major)
        if name in seen:
            continue
        seen.add(name)
        branches.append(PatchBranch(name=name, versioned="{major}" in template))
    return branches


def ensure_fork_clone(toolchain: Toolchain, config: BuildConfig, build_dir: Path) -> Path:
    """Bare-clone the patch fork once; later builds reuse the clone."""
    fork_dir = build_dir / FORK_DIRNAME
    if fork_dir.exists():
        return fork_dir

    build_dir.mkdir(parents=True, exist_ok=True)
    if not toolchain.clone(config.fork_repo, fork_dir, "--bare"):
        raise SourceFetchFailed(f"Could not clone {config.fork_repo}")
    return fork_dir


def resolve_patch_branch(
    toolchain: Toolchain,
    fork_dir: Path,
    config: BuildConfig,
    version: DriverVersion,
) -> PatchBranch:
    """Fetch the first candidate branch that exists in the fork.

    Raises:
        PatchBranchNotFound: If no candidate branch can be fetched.
    """
    candidates = candidate_branches(config.fork_branch_base, version)
    for candidate in candidates:
        if not toolchain.fetch_branch(fork_dir, candidate.name):
            continue
        branch = candidate.model_copy(update={"exists": True})
        if branch.versioned:
            print(f"  Using versioned branch: {branch.name}")
        else:
            print(
                f"  Versioned branch {candidates[0].name} not found, "
                f"using fallback branch: {branch.name}"
            )
        return branch

    names = " or ".join(c.name for c in candidates)
    raise PatchBranchNotFound(f"Could not find branch {names} in {config.fork_repo}")


def select_patches(
    toolchain: Toolchain,
    config: BuildConfig,
    version: DriverVersion,
    build_dir: Path,
) -> PatchSeries:
    """Generate the armsbc patch series for a driver version.

    Steps:
    1. Bare-clone the fork (reused across runs)
    2. Pick the versioned branch, falling back to the base branch
    3. Fetch main and compute the merge base with the chosen branch
    4. format-patch merge_base..branch into <build_dir>/patches

    Patches left over from a previous run are deleted first so the series
    only ever contains the current branch's commits.

    Raises:
        PatchBranchNotFound: No usable patch branch.
        UpstreamMainUnavailable: The fork's main branch cannot be fetched.
        NoMergeBase: The branch and main share no history.
    """
    step(f"Resolving patch branch for NVIDIA {version.major}")

    fork_dir = ensure_fork_clone(toolchain, config, build_dir)
    branch = resolve_patch_branch(toolchain, fork_dir, config, version)

    step(f"Generating patches from {branch.name}")

    if not toolchain.fetch_branch(fork_dir, MAIN_BRANCH):
        raise UpstreamMainUnavailable(
            f"Could not fetch {MAIN_BRANCH} branch from {config.fork_repo}"
        )

    merge_base = toolchain.merge_base(fork_dir, branch.name, MAIN_BRANCH)
    if not merge_base:
        raise NoMergeBase(
            f"Could not find merge base between {branch.name} and {MAIN_BRANCH}"
        )

    patches_dir = build_dir / PATCHES_DIRNAME
    patches_dir.mkdir(parents=True, exist_ok=True)
    for stale in patches_dir.glob("*.patch"):
        stale.unlink()

    patches = toolchain.format_patch_series(
        fork_dir, f"{merge_base}..{branch.name}", patches_dir
    )
    print(f"  Generated {len(patches)} patches (merge base {merge_base[:12]})")

    return PatchSeries(branch=branch.name, merge_base=merge_base, patches=patches)


def apply_patches(
    toolchain: Toolchain, source_dir: Path, series: PatchSeries
) -> ApplyReport:
    """Apply a patch series in order, best effort.

    A patch that fails is reported and skipped over; the remaining patches
    are still attempted. The source tree is modified in place.
    """
    step(f"Applying {len(series.patches)} patches from {series.branch}")

    report = ApplyReport()
    for patch in series.patches:
        print(f"  Applying {patch.name}...")
        checked = toolchain.apply_patch(source_dir, patch, check_only=True)
        if not checked:
            # The real apply is still attempted after a failed dry run.
            warn(f"dry-run check failed for {patch.name}, applying anyway")

        if not toolchain.apply_patch(source_dir, patch):
            outcome = PatchOutcome.FAILED
            warn(f"patch may have partially applied: {patch.name}")
        elif checked:
            outcome = PatchOutcome.SUCCESS
        else:
            outcome = PatchOutcome.PARTIAL
        report.results.append(PatchResult(name=patch.name, outcome=outcome))

    if report.failed:
        warn(f"{len(report.failed)} of {len(series.patches)} patches failed to apply")
    else:
        print(f"  All {len(series.patches)} patches applied")
    return report
