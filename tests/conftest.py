"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from nvidia_armsbc.config import BuildConfig
from nvidia_armsbc.models import DistroIdentity, DriverVersion, PackageFamily

UBUNTU_OS_RELEASE = """\
PRETTY_NAME="Ubuntu 24.04.1 LTS"
NAME="Ubuntu"
VERSION_ID="24.04"
VERSION="24.04.1 LTS (Noble Numbat)"
VERSION_CODENAME=noble
ID=ubuntu
ID_LIKE=debian
"""

FEDORA_OS_RELEASE = """\
NAME="Fedora Linux"
VERSION="43 (Container Image)"
ID=fedora
VERSION_ID=43
PRETTY_NAME="Fedora Linux 43 (Container Image)"
"""

MERGE_BASE = "3f2a9c1e5b7d8f0a1b2c3d4e5f60718293a4b5c6"


class FakeToolchain:
    """In-memory stand-in for git, dpkg-deb and rpmbuild.

    Args:
        branches: Fork branches mapped to their commit subjects (oldest
                  first) on top of the merge base.
        main_available: Whether fetching the fork's main branch succeeds.
        merge_base: Common ancestor returned for every branch; None for
                    unrelated histories.
        failing_checks: Patch file names whose dry run fails.
        failing_applies: Patch file names whose real apply fails.
        package_ok: Whether dpkg-deb / rpmbuild succeed.
        clone_ok: Whether git clone succeeds.
    """

    def __init__(
        self,
        branches: dict[str, list[str]] | None = None,
        *,
        main_available: bool = True,
        merge_base: str | None = MERGE_BASE,
        failing_checks: tuple[str, ...] = (),
        failing_applies: tuple[str, ...] = (),
        package_ok: bool = True,
        clone_ok: bool = True,
    ) -> None:
        self.branches = branches or {}
        self.main_available = main_available
        self._merge_base = merge_base
        self.failing_checks = failing_checks
        self.failing_applies = failing_applies
        self.package_ok = package_ok
        self.clone_ok = clone_ok
        self.clones: list[tuple[str, Path, tuple[str, ...]]] = []
        self.fetched: list[str] = []
        self.applied: list[tuple[str, bool]] = []
        self.packaged: list[tuple[str, ...]] = []

    def clone(self, repo: str, dest: Path, *options: str) -> bool:
        self.clones.append((repo, dest, options))
        if self.clone_ok:
            dest.mkdir(parents=True)
            (dest / "README.md").write_text("NVIDIA Linux Open GPU Kernel Module Source\n")
        return self.clone_ok

    def fetch_branch(self, repo_dir: Path, branch: str) -> bool:
        self.fetched.append(branch)
        if branch == "main":
            return self.main_available
        return branch in self.branches

    def merge_base(self, repo_dir: Path, left: str, right: str) -> str | None:
        return self._merge_base

    def format_patch_series(
        self, repo_dir: Path, revision_range: str, out_dir: Path
    ) -> list[Path]:
        branch = revision_range.split("..", 1)[1]
        patches: list[Path] = []
        for i, subject in enumerate(self.branches[branch], 1):
            patch = out_dir / f"{i:04d}-{subject}.patch"
            patch.write_text(f"Subject: [PATCH {i}] {subject}\n")
            patches.append(patch)
        return patches

    def apply_patch(
        self, source_dir: Path, patch: Path, *, check_only: bool = False
    ) -> bool:
        self.applied.append((patch.name, check_only))
        failing = self.failing_checks if check_only else self.failing_applies
        return patch.name not in failing

    def build_native_package(self, *args: str, cwd: Path | None = None) -> bool:
        self.packaged.append(args)
        if not self.package_ok:
            return False
        if args[0] == "dpkg-deb":
            Path(args[-1]).write_bytes(b"!<arch>\n")
        elif args[0] == "rpmbuild":
            topdir = Path(args[args.index("--define") + 1].split(" ", 1)[1])
            arch_dir = topdir / "RPMS" / "aarch64"
            arch_dir.mkdir(parents=True, exist_ok=True)
            (arch_dir / "akmod-nvidia-armsbc-580.95.05-2.fc43.aarch64.rpm").write_bytes(b"rpm")
            (topdir / "SRPMS" / "akmod-nvidia-armsbc-580.95.05-2.fc43.src.rpm").write_bytes(b"srpm")
        return True


@pytest.fixture
def make_toolchain() -> type[FakeToolchain]:
    """The FakeToolchain class, for tests that build their own fork history."""
    return FakeToolchain


@pytest.fixture
def config() -> BuildConfig:
    return BuildConfig()


@pytest.fixture
def version() -> DriverVersion:
    return DriverVersion(value="580.95.05")


@pytest.fixture
def ubuntu() -> DistroIdentity:
    return DistroIdentity(
        id="ubuntu", version="24.04", codename="noble", family=PackageFamily.DEB
    )


@pytest.fixture
def fedora() -> DistroIdentity:
    return DistroIdentity(
        id="fedora", version="43", codename="43", family=PackageFamily.RPM
    )


@pytest.fixture
def ubuntu_os_release(tmp_path: Path) -> Path:
    path = tmp_path / "os-release"
    path.write_text(UBUNTU_OS_RELEASE)
    return path


@pytest.fixture
def fedora_os_release(tmp_path: Path) -> Path:
    path = tmp_path / "os-release"
    path.write_text(FEDORA_OS_RELEASE)
    return path


@pytest.fixture
def source_tree(tmp_path: Path) -> Path:
    """A tiny stand-in for the NVIDIA source checkout."""
    src = tmp_path / "build" / "nvidia-source"
    (src / "kernel-open").mkdir(parents=True)
    (src / ".git").mkdir()
    (src / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    (src / "COPYING").write_text("license\n")
    (src / "README.md").write_text("readme\n")
    (src / "kernel-open" / "Makefile").write_text("all:\n")
    return src
