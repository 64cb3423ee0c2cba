"""Container orchestration for local builds.

Runs ``nvidia-armsbc package`` inside arm64 Ubuntu and Fedora containers.
The project checkout is mounted read-only at /src and installed into a
virtualenv in the container; packages land in ./output on the host.
Each target is an independent container with its own build directory.
"""

from __future__ import annotations

import shlex
import shutil
from pathlib import Path

from pydantic import BaseModel

from .errors import BuildError
from .pipeline import list_outputs
from .shell import run, step

DEFAULT_UBUNTU_VERSION = "24.04"
DEFAULT_FEDORA_VERSION = "43"
TARGETS = ("ubuntu", "fedora", "all", "clean")

VENV = "/opt/nvidia-armsbc"


class ContainerTarget(BaseModel):
    """How to build packages for one distribution in a container.

    Attributes:
        label: Human-readable distro name for log output.
        image: Docker image name without tag.
        setup: Shell lines installing build dependencies and Python.
    """

    label: str
    image: str
    setup: list[str]


CONTAINER_TARGETS: dict[str, ContainerTarget] = {
    "ubuntu": ContainerTarget(
        label="Ubuntu",
        image="ubuntu",
        setup=[
            "apt-get update -qq",
            "apt-get install -y -qq git curl wget ca-certificates build-essential"
            " debhelper dpkg-dev fakeroot dkms python3 python3-venv >/dev/null",
        ],
    ),
    "fedora": ContainerTarget(
        label="Fedora",
        image="fedora",
        setup=[
            "dnf install -y -q git curl wget ca-certificates rpm-build rpmdevtools"
            " gcc gcc-c++ make elfutils-libelf-devel akmods python3",
        ],
    ),
}


def unknown_targets(targets: list[str]) -> list[str]:
    return [t for t in targets if t not in TARGETS]


def container_script(target: ContainerTarget, nvidia_version: str | None) -> str:
    """Shell script run inside the container: deps, install, build."""
    command = [f"{VENV}/bin/nvidia-armsbc", "package", "--output-dir", "/output"]
    if nvidia_version:
        command += ["--nvidia-version", nvidia_version]
    lines = [
        "set -e",
        *target.setup,
        f"python3 -m venv {VENV}",
        f"{VENV}/bin/pip install -q /src",
        shlex.join(command),
    ]
    return "\n".join(lines)


def docker_run_args(
    target: ContainerTarget,
    version: str,
    *,
    source_dir: Path,
    output_dir: Path,
    nvidia_version: str | None = None,
    no_cache: bool = False,
) -> list[str]:
    """Build the ``docker run`` command line for one target."""
    args = ["docker", "run", "--rm", "--platform", "linux/arm64"]
    if no_cache:
        args += ["--pull", "always"]
    args += [
        "-v",
        f"{source_dir}:/src:ro",
        "-v",
        f"{output_dir}:/output",
        "-e",
        "OUTPUT_DIR=/output",
        f"{target.image}:{version}",
        "bash",
        "-c",
        container_script(target, nvidia_version),
    ]
    return args


def build_in_container(
    name: str,
    version: str,
    *,
    source_dir: Path,
    output_dir: Path,
    nvidia_version: str | None = None,
    no_cache: bool = False,
) -> None:
    """Build packages for one distribution in a fresh container.

    Raises:
        BuildError: If the container exits non-zero.
    """
    target = CONTAINER_TARGETS[name]
    step(f"Building {target.label} {version} packages")

    result = run(
        *docker_run_args(
            target,
            version,
            source_dir=source_dir,
            output_dir=output_dir,
            nvidia_version=nvidia_version,
            no_cache=no_cache,
        ),
        check=False,
    )
    if result.returncode != 0:
        raise BuildError(
            f"{target.label} {version} build failed (exit code {result.returncode})"
        )
    print(f"  {target.label} {version} build complete")


def clean_build(output_dir: Path) -> None:
    """Delete the whole output tree. A missing directory is not an error."""
    step("Cleaning build artifacts")
    if output_dir.exists():
        shutil.rmtree(output_dir)
    print("  Clean complete")


def run_targets(
    targets: list[str],
    *,
    source_dir: Path,
    output_dir: Path,
    ubuntu_version: str = DEFAULT_UBUNTU_VERSION,
    fedora_version: str = DEFAULT_FEDORA_VERSION,
    nvidia_version: str | None = None,
    no_cache: bool = False,
) -> None:
    """Process build targets in the order given.

    "all" builds Ubuntu then Fedora. The first failing target stops
    processing of the rest.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    versions = {"ubuntu": ubuntu_version, "fedora": fedora_version}

    for target in targets:
        if target == "clean":
            clean_build(output_dir)
            continue
        names = ["ubuntu", "fedora"] if target == "all" else [target]
        for name in names:
            build_in_container(
                name,
                versions[name],
                source_dir=source_dir,
                output_dir=output_dir,
                nvidia_version=nvidia_version,
                no_cache=no_cache,
            )

    step("Build complete")
    if output_dir.is_dir():
        list_outputs(output_dir)
