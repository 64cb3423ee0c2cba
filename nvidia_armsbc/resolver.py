"""NVIDIA driver version resolution.

The target version is either given explicitly or discovered from the
host distribution's package repositories:

- Ubuntu: the newest nvidia-dkms-<N>-open package from apt
- Fedora and friends: akmod-nvidia-open or akmod-nvidia from dnf
  (RPM Fusion is enabled first on Fedora if it is missing)

Index refreshes and repository enablement are best-effort. They return a
StepResult which is logged, and the query runs regardless.
"""

from __future__ import annotations

import re

from .errors import CommandNotFound, VersionNotFound
from .models import DistroIdentity, DriverVersion, PackageFamily, StepResult
from .shell import capture, run, step, warn
from .versions import debian_upstream_version, highest_version

APT_DKMS_PATTERN = re.compile(r"^(nvidia-dkms-(\d+)-open)\s")
DNF_CANDIDATES = ("akmod-nvidia-open", "akmod-nvidia")
DNF_VERSION_PATTERN = re.compile(r"^Version\s*:\s*(\S+)")

RPMFUSION_URLS = (
    "https://download1.rpmfusion.org/free/fedora/"
    "rpmfusion-free-release-{version}.noarch.rpm",
    "https://download1.rpmfusion.org/nonfree/fedora/"
    "rpmfusion-nonfree-release-{version}.noarch.rpm",
)


def best_effort(name: str, *args: str) -> StepResult:
    """Run a command whose failure must not stop the build."""
    try:
        result = run(*args, check=False, quiet=True)
    except CommandNotFound as exc:
        return StepResult(name=name, ok=False, detail=str(exc))
    if result.returncode != 0:
        return StepResult(name=name, ok=False, detail=f"exit code {result.returncode}")
    return StepResult(name=name, ok=True)


def report(result: StepResult) -> None:
    """Log the outcome of a best-effort step."""
    if result.ok:
        detail = f" ({result.detail})" if result.detail else ""
        print(f"  {result.name}: ok{detail}")
    else:
        warn(f"{result.name} failed ({result.detail}), continuing anyway")


def latest_dkms_package(search_output: str) -> str | None:
    """Pick the nvidia-dkms-<N>-open package with the highest N.

    Args:
        search_output: Output of ``apt-cache search nvidia-dkms``, one
                       "name - description" line per package.
    """
    best: str | None = None
    best_major = -1
    for line in search_output.splitlines():
        match = APT_DKMS_PATTERN.match(line)
        if match and int(match.group(2)) > best_major:
            best, best_major = match.group(1), int(match.group(2))
    return best


def apt_upstream_versions(show_output: str) -> list[str]:
    """Extract upstream versions from ``apt-cache show`` output.

    A package can be listed once per available version (e.g. release and
    updates pockets), so every Version field is collected.
    """
    return [
        debian_upstream_version(line.split(":", 1)[1])
        for line in show_output.splitlines()
        if line.startswith("Version:")
    ]


def query_apt_version() -> tuple[str, str]:
    """Find the newest open DKMS driver in the apt repositories.

    Returns:
        (version, package name) tuple.

    Raises:
        VersionNotFound: If no package or no version is found.
    """
    report(best_effort("refresh apt package index", "apt-get", "update", "-qq"))

    pkg = latest_dkms_package(capture("apt-cache", "search", "nvidia-dkms"))
    if not pkg:
        raise VersionNotFound("Could not find nvidia-dkms package in Ubuntu repos")

    version = highest_version(apt_upstream_versions(capture("apt-cache", "show", pkg)))
    if not version:
        raise VersionNotFound(f"Could not determine NVIDIA version from {pkg}")
    return version, pkg


def enable_rpmfusion(distro: DistroIdentity) -> StepResult:
    """Enable the RPM Fusion free and nonfree repositories if missing."""
    name = "enable RPM Fusion repositories"
    try:
        repos = capture("dnf", "repolist")
    except CommandNotFound as exc:
        return StepResult(name=name, ok=False, detail=str(exc))
    if "rpmfusion" in repos:
        return StepResult(name=name, ok=True, detail="already enabled")

    print("  Enabling RPM Fusion repositories")
    urls = [url.format(version=distro.version) for url in RPMFUSION_URLS]
    return best_effort(name, "dnf", "install", "-y", *urls)


def dnf_package_versions(info_output: str) -> list[str]:
    """Extract Version fields from ``dnf info`` output."""
    versions: list[str] = []
    for line in info_output.splitlines():
        match = DNF_VERSION_PATTERN.match(line)
        if match:
            versions.append(match.group(1))
    return versions


def query_dnf_version(distro: DistroIdentity) -> tuple[str, str]:
    """Find the NVIDIA akmod version in the dnf repositories.

    Candidates are probed in DNF_CANDIDATES order and the first package
    that reports a version wins.

    Returns:
        (version, package name) tuple.

    Raises:
        VersionNotFound: If none of the candidates is available.
    """
    if distro.id == "fedora":
        report(enable_rpmfusion(distro))
    report(best_effort("refresh dnf metadata", "dnf", "makecache", "-q"))

    for pkg in DNF_CANDIDATES:
        version = highest_version(dnf_package_versions(capture("dnf", "info", pkg)))
        if version:
            return version, pkg

    raise VersionNotFound(
        "Could not find NVIDIA driver in Fedora/RPM Fusion repos. "
        "Please specify --nvidia-version"
    )


def resolve_version(
    distro: DistroIdentity, override: str | None = None
) -> DriverVersion:
    """Determine the NVIDIA driver version to build.

    Args:
        distro: Host distribution; selects apt or dnf.
        override: Explicit version. Used verbatim when non-empty, without
                  checking that the upstream tag exists.

    Raises:
        VersionNotFound: If no override is given and the repositories
                         have no matching driver package.
    """
    if override and override.strip():
        step(f"Using specified NVIDIA version: {override}")
        return DriverVersion(value=override)

    step("Querying NVIDIA driver version")
    if distro.family == PackageFamily.DEB:
        version, pkg = query_apt_version()
    else:
        version, pkg = query_dnf_version(distro)

    print(f"  Found NVIDIA version: {version} (from {pkg})")
    return DriverVersion(value=version)
