"""Build configuration.

Defaults match the upstream armsbc fork. An optional TOML file can point the
build at a different fork or change package naming; it is read with tomlkit
so a config file kept next to the project stays diff-friendly.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomlkit
from pydantic import BaseModel, ConfigDict, ValidationError
from tomlkit.exceptions import TOMLKitError

from .errors import ConfigError
from .models import PackageFamily

NVIDIA_REPO = "https://github.com/NVIDIA/open-gpu-kernel-modules.git"
FORK_REPO = "https://github.com/scottjg/open-gpu-kernel-modules.git"

# Which [section] key maps to which BuildConfig field
_FIELDS: dict[str, dict[str, str]] = {
    "fork": {"repo": "fork_repo", "branch_base": "fork_branch_base"},
    "nvidia": {"repo": "nvidia_repo"},
    "package": {
        "release": "package_release",
        "suffix": "package_suffix",
        "maintainer": "maintainer",
    },
}


class BuildConfig(BaseModel):
    """Settings shared by every stage of a build.

    Attributes:
        fork_repo: Git URL of the fork carrying the armsbc patch branches.
        fork_branch_base: Unversioned patch branch name; versioned branches
                          are "<base>-<major>".
        nvidia_repo: Git URL of NVIDIA's open kernel module source.
        package_release: Package release/revision appended to the version.
        package_suffix: Suffix distinguishing these packages from the
                        distribution's own NVIDIA packages.
        maintainer: Maintainer field for the .deb control file. The RPM
                    changelog uses a fixed author instead.
    """

    model_config = ConfigDict(extra="forbid")

    fork_repo: str = FORK_REPO
    fork_branch_base: str = "armsbc"
    nvidia_repo: str = NVIDIA_REPO
    package_release: str = "2"
    package_suffix: str = "armsbc"
    maintainer: str = "Scott J. Goldman <scottjg@umich.edu>"

    @property
    def patches_url(self) -> str:
        """Browsable URL of the patch fork, for package descriptions."""
        return self.fork_repo.removesuffix(".git")

    @property
    def homepage(self) -> str:
        return self.nvidia_repo.removesuffix(".git")

    def architecture(self, family: PackageFamily) -> str:
        """Target architecture in the naming of each package format."""
        return "arm64" if family == PackageFamily.DEB else "aarch64"


def load_config_doc(path: Path) -> tomlkit.TOMLDocument:
    """Load and parse a TOML config file.

    Raises:
        ConfigError: If the file is missing or is not valid TOML.
    """
    try:
        return tomlkit.parse(path.read_text())
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    except TOMLKitError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc


def config_from_doc(doc: tomlkit.TOMLDocument) -> BuildConfig:
    """Build a BuildConfig from a parsed document.

    Sections and keys not listed in _FIELDS are rejected so that typos
    don't silently fall back to defaults.
    """
    values: dict[str, Any] = {}
    for section, table in doc.items():
        keys = _FIELDS.get(section)
        if keys is None or not isinstance(table, dict):
            raise ConfigError(f"Unknown config section: [{section}]")
        for key, value in table.items():
            if key not in keys:
                raise ConfigError(f"Unknown config key: {section}.{key}")
            # tomlkit items wrap plain values; unwrap() yields str/int
            if hasattr(value, "unwrap"):
                value = value.unwrap()
            values[keys[key]] = str(value)
    try:
        return BuildConfig(**values)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def load_config(path: Path | None) -> BuildConfig:
    """Return the defaults, overridden by the config file if one is given."""
    if path is None:
        return BuildConfig()
    return config_from_doc(load_config_doc(path))
