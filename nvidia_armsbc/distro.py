"""Host distribution detection."""

from __future__ import annotations

import shlex
from pathlib import Path

from .errors import UnsupportedDistro
from .models import DistroIdentity, PackageFamily
from .shell import step

OS_RELEASE = Path("/etc/os-release")

DISTRO_FAMILIES: dict[str, PackageFamily] = {
    "ubuntu": PackageFamily.DEB,
    "fedora": PackageFamily.RPM,
    "rhel": PackageFamily.RPM,
    "centos": PackageFamily.RPM,
    "rocky": PackageFamily.RPM,
    "almalinux": PackageFamily.RPM,
}


def parse_os_release(text: str) -> dict[str, str]:
    """Parse the KEY=value lines of an os-release file.

    Values may be shell-quoted; comments and blank lines are skipped.
    """
    fields: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, raw = line.partition("=")
        try:
            words = shlex.split(raw)
        except ValueError:
            # Unbalanced quotes: take the value as written
            words = [raw.strip("\"'")]
        fields[key.strip()] = words[0] if words else ""
    return fields


def family_for(distro_id: str) -> PackageFamily:
    """Map a distribution id to its package family.

    Raises:
        UnsupportedDistro: If the id is not a known distribution.
    """
    try:
        return DISTRO_FAMILIES[distro_id]
    except KeyError:
        raise UnsupportedDistro(f"Unsupported distribution: {distro_id}") from None


def probe_distro(os_release: Path = OS_RELEASE) -> DistroIdentity:
    """Read the host OS identity.

    Raises:
        UnsupportedDistro: If os-release is missing or names an unknown distro.
    """
    if not os_release.is_file():
        raise UnsupportedDistro("Cannot detect distribution")

    fields = parse_os_release(os_release.read_text())
    distro_id = fields.get("ID", "")
    version = fields.get("VERSION_ID", "")
    distro = DistroIdentity(
        id=distro_id,
        version=version,
        codename=fields.get("VERSION_CODENAME") or version,
        family=family_for(distro_id),
    )

    step(
        f"Detected: {distro.id} {distro.version} ({distro.codename})"
        f" - building {distro.family.value}"
    )
    return distro
