"""Exceptions raised by the build pipeline.

Every fatal condition derives from BuildError. Stages raise; the CLI turns
a BuildError into an error message on stderr and exit code 1.
"""

from __future__ import annotations


class BuildError(Exception):
    """Base class for errors that abort the build."""


class UnsupportedDistro(BuildError):
    """The host distribution is unknown or cannot be detected."""


class VersionNotFound(BuildError):
    """No NVIDIA driver version could be found in the package repositories."""


class SourceFetchFailed(BuildError):
    """The NVIDIA source tree could not be cloned."""


class SourceMissing(BuildError):
    """--skip-download was requested but no source tree exists."""


class PatchBranchNotFound(BuildError):
    """Neither the versioned nor the base patch branch exists in the fork."""


class UpstreamMainUnavailable(BuildError):
    """The fork's main branch could not be fetched."""


class NoMergeBase(BuildError):
    """The patch branch and main share no common ancestor."""


class PackagingFailed(BuildError):
    """dpkg-deb or rpmbuild failed, or produced nothing."""


class CommandNotFound(BuildError):
    """A required executable is not installed."""


class ConfigError(BuildError):
    """The configuration file is unreadable or invalid."""
