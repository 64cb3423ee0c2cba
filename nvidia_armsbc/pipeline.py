"""Package pipeline: detect → resolve → fetch → select → apply → assemble.

This module orchestrates a single package build on the current host:
1. Detect the distribution and its package family (deb or rpm)
2. Resolve the NVIDIA driver version (explicit or from the repositories)
3. Clone the NVIDIA open kernel module source at that version's tag
4. Generate the armsbc patch series from the fork
5. Apply the patches, best effort
6. Assemble the .deb or .rpm into the output directory

Every stage except patch application is fatal on failure. Stages raise a
BuildError; the CLI turns it into an error message and exit code 1.
"""

from __future__ import annotations

from pathlib import Path

from .assemble import assemble_package
from .config import BuildConfig
from .distro import OS_RELEASE, probe_distro
from .models import ApplyReport, PackageArtifact
from .patches import apply_patches, select_patches
from .resolver import resolve_version
from .shell import step
from .source import existing_source, fetch_source
from .toolchain import HostToolchain, Toolchain


def list_outputs(output_dir: Path, patterns: tuple[str, ...] = ("*.deb", "*.rpm")) -> None:
    """Print the package files in the output directory."""
    files = sorted(f for pattern in patterns for f in output_dir.glob(pattern))
    if not files:
        print("  No packages built")
        return
    for f in files:
        print(f"  {f.name} ({f.stat().st_size} bytes)")


def run_build(
    config: BuildConfig,
    *,
    build_dir: Path,
    output_dir: Path,
    nvidia_version: str | None = None,
    skip_download: bool = False,
    toolchain: Toolchain | None = None,
    os_release: Path = OS_RELEASE,
) -> list[PackageArtifact]:
    """Execute the full package build.

    Args:
        config: Fork, upstream and package naming settings.
        build_dir: Working directory; clones and patches are kept here
                   between runs.
        output_dir: Where the finished packages are written.
        nvidia_version: Driver version to build. Queried from the
                        distribution's repositories if not provided.
        skip_download: Reuse the source already in build_dir without
                       cloning or patching.
        toolchain: git/packaging backend; the host tools by default.
        os_release: os-release file used for distro detection.

    Returns:
        The package files written to output_dir.
    """
    toolchain = toolchain or HostToolchain()
    build_dir = build_dir.resolve()
    output_dir = output_dir.resolve()

    step("NVIDIA Open Kernel Modules Builder (armsbc patched)")

    distro = probe_distro(os_release)
    version = resolve_version(distro, nvidia_version)

    if skip_download:
        step("Skipping download, using existing source")
        source_dir = existing_source(build_dir)
    else:
        source_dir = fetch_source(toolchain, config, version, build_dir)
        series = select_patches(toolchain, config, version, build_dir)
        report: ApplyReport = apply_patches(toolchain, source_dir, series)
        if report.failed:
            print(f"  Continuing without: {', '.join(report.failed)}")

    artifacts = assemble_package(
        toolchain, config, distro, version, source_dir, build_dir, output_dir
    )

    step("Build complete!")
    list_outputs(output_dir)
    return artifacts
