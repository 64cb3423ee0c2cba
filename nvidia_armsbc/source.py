"""Fetching the NVIDIA open kernel module source."""

from __future__ import annotations

from pathlib import Path

from .config import BuildConfig
from .errors import SourceFetchFailed, SourceMissing
from .models import DriverVersion
from .shell import step
from .toolchain import Toolchain

SOURCE_DIRNAME = "nvidia-source"


def fetch_source(
    toolchain: Toolchain,
    config: BuildConfig,
    version: DriverVersion,
    build_dir: Path,
) -> Path:
    """Shallow-clone the NVIDIA repo at the tag matching version.

    An existing checkout in the build directory is reused as-is, whatever
    tag it was cloned at.

    Returns:
        Path to the source tree.

    Raises:
        SourceFetchFailed: If the clone fails (e.g. no such tag upstream).
    """
    step(f"Downloading NVIDIA open kernel modules v{version}")

    build_dir.mkdir(parents=True, exist_ok=True)
    dest = build_dir / SOURCE_DIRNAME
    if dest.exists():
        print(f"  Reusing existing source at {dest}")
        return dest

    if not toolchain.clone(
        config.nvidia_repo, dest, "--depth", "1", "--branch", version.value
    ):
        raise SourceFetchFailed(
            f"Could not clone {config.nvidia_repo} at tag {version}"
        )
    return dest


def existing_source(build_dir: Path) -> Path:
    """Return the previously downloaded source tree for --skip-download.

    Raises:
        SourceMissing: If no source tree exists in the build directory.
    """
    dest = build_dir / SOURCE_DIRNAME
    if not dest.is_dir():
        raise SourceMissing(
            f"Source not found at {dest} (--skip-download requires existing source)"
        )
    print(f"  Using existing source at {dest}")
    return dest
