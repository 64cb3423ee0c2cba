"""Shell and git utilities.

Provides simple wrappers around subprocess calls for running shell commands
and git operations, plus output formatting helpers.
"""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path

from .errors import CommandNotFound

_verbose = False


def set_verbose(enabled: bool) -> None:
    """Echo every command to stderr before running it (like ``set -x``)."""
    global _verbose
    _verbose = enabled


def _trace(args: tuple[str, ...]) -> None:
    if _verbose:
        print(f"+ {' '.join(args)}", file=sys.stderr)


def _exec(
    args: tuple[str, ...], cwd: Path | None, **kwargs
) -> subprocess.CompletedProcess:
    _trace(args)
    try:
        return subprocess.run(args, cwd=cwd, **kwargs)
    except FileNotFoundError as exc:
        raise CommandNotFound(f"Command not found: {args[0]}") from exc


def git(*args: str, cwd: Path | None = None, check: bool = True) -> str:
    """Run a git command and return stdout.

    Args:
        *args: Arguments to pass to git (e.g., "fetch", "origin", "main").
        cwd: Repository to run in. Defaults to the current directory.
        check: If True (default), raise on non-zero exit. Set to False
               for commands that may legitimately fail (e.g., branch lookup).

    Returns:
        Stripped stdout from the git command.
    """
    result = _exec(
        ("git", *args), cwd, capture_output=True, text=True, check=check
    )
    return result.stdout.strip()


def run(
    *args: str, cwd: Path | None = None, check: bool = True, quiet: bool = False
) -> subprocess.CompletedProcess[bytes]:
    """Run an arbitrary shell command.

    Unlike git(), this doesn't capture output - it streams directly to
    the terminal so users can see clone and build progress.

    Args:
        *args: Command and arguments (e.g., "dpkg-deb", "--build", "pkg/").
        cwd: Working directory for the command.
        check: If True (default), raise on non-zero exit.
        quiet: Discard stdout and stderr instead of streaming them.

    Returns:
        CompletedProcess with returncode for checking success.
    """
    if quiet:
        return _exec(
            args,
            cwd,
            check=check,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    return _exec(args, cwd, check=check)


def capture(*args: str, check: bool = False) -> str:
    """Run a query command and return its stdout, ignoring stderr.

    Package manager queries exit non-zero when nothing matches, so by
    default the exit code is ignored and an empty string comes back.
    """
    result = _exec(
        args,
        None,
        capture_output=True,
        text=True,
        check=check,
    )
    return result.stdout.strip()


def step(msg: str) -> None:
    """Print a visually distinct step header.

    Used to separate the stages of the build pipeline in terminal output.
    """
    print(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")


def warn(msg: str) -> None:
    """Print a non-fatal warning. The pipeline carries on."""
    print(f"  Warning: {msg}")


def fatal(msg: str) -> None:
    """Print an error message and exit with code 1.

    Use for unrecoverable errors that should halt the pipeline.
    """
    print(f"ERROR: {msg}", file=sys.stderr)
    sys.exit(1)
