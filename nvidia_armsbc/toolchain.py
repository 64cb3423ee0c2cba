"""Narrow interface to git and the native packaging tools.

Version and patch selection only talk to a Toolchain, so tests can run
them against an in-memory fake instead of real repositories.
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Protocol

from .errors import BuildError
from .shell import git, run


class Toolchain(Protocol):
    def clone(self, repo: str, dest: Path, *options: str) -> bool:
        """Clone repo into dest. Returns False on failure."""
        ...

    def fetch_branch(self, repo_dir: Path, branch: str) -> bool:
        """Fetch branch from origin into a local branch of the same name."""
        ...

    def merge_base(self, repo_dir: Path, left: str, right: str) -> str | None:
        """Return the common ancestor commit, or None if there is none."""
        ...

    def format_patch_series(
        self, repo_dir: Path, revision_range: str, out_dir: Path
    ) -> list[Path]:
        """Write one patch per commit in revision_range, oldest first."""
        ...

    def apply_patch(
        self, source_dir: Path, patch: Path, *, check_only: bool = False
    ) -> bool:
        """Apply (or with check_only, dry-run) a patch. True on success."""
        ...

    def build_native_package(self, *args: str, cwd: Path | None = None) -> bool:
        """Run dpkg-deb or rpmbuild. True on success."""
        ...


class HostToolchain:
    """Toolchain backed by the git, dpkg-deb and rpmbuild on this host."""

    def clone(self, repo: str, dest: Path, *options: str) -> bool:
        return run("git", "clone", *options, repo, str(dest), check=False).returncode == 0

    def fetch_branch(self, repo_dir: Path, branch: str) -> bool:
        # --update-head-ok: in a bare clone, main is also HEAD
        result = run(
            "git",
            "fetch",
            "--update-head-ok",
            "origin",
            f"+refs/heads/{branch}:refs/heads/{branch}",
            cwd=repo_dir,
            check=False,
            quiet=True,
        )
        return result.returncode == 0

    def merge_base(self, repo_dir: Path, left: str, right: str) -> str | None:
        return git("merge-base", left, right, cwd=repo_dir, check=False) or None

    def format_patch_series(
        self, repo_dir: Path, revision_range: str, out_dir: Path
    ) -> list[Path]:
        # git runs inside repo_dir, so -o must not be relative
        out_dir = out_dir.resolve()
        try:
            output = git(
                "format-patch", "-o", str(out_dir), revision_range, cwd=repo_dir
            )
        except subprocess.CalledProcessError as exc:
            raise BuildError(
                f"git format-patch {revision_range} failed: {exc.stderr.strip()}"
            ) from exc
        return [Path(line) for line in output.splitlines() if line]

    def apply_patch(
        self, source_dir: Path, patch: Path, *, check_only: bool = False
    ) -> bool:
        if check_only:
            result = run(
                "git", "apply", "--check", str(patch),
                cwd=source_dir, check=False, quiet=True,
            )
        else:
            result = run("git", "apply", str(patch), cwd=source_dir, check=False)
        return result.returncode == 0

    def build_native_package(self, *args: str, cwd: Path | None = None) -> bool:
        return run(*args, cwd=cwd, check=False).returncode == 0
