"""Version parsing utilities for NVIDIA driver versions.

Driver versions are dotted numbers such as "580.95.05". They are compared
numerically (so "580.95.05" is newer than "580.9.10"), with special
handling for incomplete version strings (e.g., "580" → "580.0.0").
"""

from __future__ import annotations

from collections.abc import Iterable

import semver


def parse_version(version_str: str) -> semver.Version:
    """Parse a driver version string into a semver.Version object.

    Handles incomplete versions by padding with zeros and drops leading
    zeros from each component:
    - "580" → "580.0.0"
    - "580.95" → "580.95.0"
    - "580.95.05" → "580.95.5"

    Only the first 3 components are used (major.minor.patch).

    Raises:
        ValueError: If a component is not a number.
    """
    parts = version_str.strip().split(".")
    # Pad with zeros to ensure we have at least 3 parts
    while len(parts) < 3:
        parts.append("0")
    major, minor, patch = (int(p) for p in parts[:3])
    return semver.Version(major, minor, patch)


def major_version(version_str: str) -> str:
    """Return the substring before the first dot.

    Examples:
        "580.95.05" → "580"
        "590" → "590"
    """
    return version_str.split(".", 1)[0]


def debian_upstream_version(deb_version: str) -> str:
    """Strip the epoch and Debian revision from a package version.

    Examples:
        "580.95.05-1" → "580.95.05"
        "1:580.95.05-0ubuntu0.24.04.2" → "580.95.05"
    """
    _, _, without_epoch = deb_version.strip().rpartition(":")
    return without_epoch.split("-", 1)[0]


def highest_version(versions: Iterable[str]) -> str | None:
    """Return the numerically highest version string, or None.

    Strings that do not parse as versions are ignored. Among versions that
    compare equal the first one wins, so "580.95.05" is kept verbatim
    rather than normalized.
    """
    best: str | None = None
    best_parsed: semver.Version | None = None
    for candidate in versions:
        try:
            parsed = parse_version(candidate)
        except ValueError:
            continue
        if best_parsed is None or parsed > best_parsed:
            best, best_parsed = candidate, parsed
    return best
