"""CLI entry point for nvidia-armsbc."""

from __future__ import annotations

from pathlib import Path

import click

from nvidia_armsbc.config import load_config
from nvidia_armsbc.errors import BuildError
from nvidia_armsbc.orchestrator import (
    DEFAULT_FEDORA_VERSION,
    DEFAULT_UBUNTU_VERSION,
    TARGETS,
    run_targets,
    unknown_targets,
)
from nvidia_armsbc.pipeline import run_build
from nvidia_armsbc.shell import fatal, set_verbose


@click.group()
@click.version_option(package_name="nvidia-armsbc")
def cli() -> None:
    """NVIDIA open kernel module packages for ARM single-board computers."""


@cli.command()
@click.argument("targets", nargs=-1)
@click.option(
    "--ubuntu-version",
    default=DEFAULT_UBUNTU_VERSION,
    show_default=True,
    help="Ubuntu release to build for.",
)
@click.option(
    "--fedora-version",
    default=DEFAULT_FEDORA_VERSION,
    show_default=True,
    help="Fedora release to build for.",
)
@click.option(
    "--nvidia-version",
    default=None,
    help="NVIDIA driver version (default: auto-detect).",
)
@click.option("--no-cache", is_flag=True, help="Pull fresh base images.")
@click.pass_context
def build(
    ctx: click.Context,
    targets: tuple[str, ...],
    ubuntu_version: str,
    fedora_version: str,
    nvidia_version: str | None,
    no_cache: bool,
) -> None:
    """Build packages in containers.

    TARGETS is one or more of: ubuntu, fedora, all, clean.
    """
    if not targets:
        click.echo(ctx.get_help())
        ctx.exit(1)

    unknown = unknown_targets(list(targets))
    if unknown:
        raise click.ClickException(
            f"Unknown target: {', '.join(unknown)} (choose from {', '.join(TARGETS)})"
        )

    root = Path.cwd()

    # Sanity check: containers install the project from this directory
    if set(targets) != {"clean"} and not (root / "pyproject.toml").exists():
        raise click.ClickException(
            "No pyproject.toml found in current directory. "
            "Run from the nvidia-armsbc checkout."
        )

    try:
        run_targets(
            list(targets),
            source_dir=root,
            output_dir=root / "output",
            ubuntu_version=ubuntu_version,
            fedora_version=fedora_version,
            nvidia_version=nvidia_version,
            no_cache=no_cache,
        )
    except BuildError as exc:
        fatal(str(exc))


@cli.command()
@click.option(
    "--nvidia-version",
    envvar="NVIDIA_VERSION",
    default=None,
    help="NVIDIA driver version (default: auto-detect).",
)
@click.option(
    "--output-dir",
    envvar="OUTPUT_DIR",
    type=click.Path(file_okay=False, path_type=Path),
    default="output",
    show_default=True,
    help="Output directory for packages.",
)
@click.option(
    "--build-dir",
    envvar="BUILD_DIR",
    type=click.Path(file_okay=False, path_type=Path),
    default="/tmp/nvidia-build",
    show_default=True,
    help="Build directory; clones are reused between runs.",
)
@click.option(
    "--skip-download",
    is_flag=True,
    help="Skip downloading source (use existing).",
)
@click.option("--verbose", is_flag=True, help="Echo every command before running it.")
@click.option(
    "--config",
    "config_path",
    envvar="NVIDIA_ARMSBC_CONFIG",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="TOML file overriding fork, upstream and package settings.",
)
def package(
    nvidia_version: str | None,
    output_dir: Path,
    build_dir: Path,
    skip_download: bool,
    verbose: bool,
    config_path: Path | None,
) -> None:
    """Build a package for the host distribution (runs inside a container)."""
    set_verbose(verbose)
    try:
        config = load_config(config_path)
        run_build(
            config,
            build_dir=build_dir.resolve(),
            output_dir=output_dir.resolve(),
            nvidia_version=nvidia_version,
            skip_download=skip_download,
        )
    except BuildError as exc:
        fatal(str(exc))
