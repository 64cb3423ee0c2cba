"""Package assembly: DKMS .deb or akmod .rpm.

Both variants stage the patched source together with metadata rendered
from the files in templates/, then hand the result to the native tool
(dpkg-deb or rpmbuild). Install-time hooks in the generated packages
ignore their own failures; a failing packaging tool here is fatal.
"""

from __future__ import annotations

import shutil
import tarfile
from collections.abc import Callable
from datetime import date
from pathlib import Path

from .config import BuildConfig
from .errors import PackagingFailed
from .models import DistroIdentity, DriverVersion, PackageArtifact, PackageFamily
from .shell import step
from .toolchain import Toolchain

TEMPLATES_DIR = Path(__file__).parent / "templates"

KERNEL_MODULES = (
    "nvidia",
    "nvidia-modeset",
    "nvidia-drm",
    "nvidia-uvm",
    "nvidia-peermem",
)
MODULE_BUILD_LOCATION = "kernel-open"
MODULE_DEST_LOCATION = "/updates/dkms"
RPM_CHANGELOG_AUTHOR = "Package Builder <builder@example.com>"


def render_template(name: str, **values: str) -> str:
    """Fill a template from templates/.

    Each keyword replaces the matching __KEYWORD__ placeholder, e.g.
    nvidia_version="580.95.05" replaces __NVIDIA_VERSION__.
    """
    text = (TEMPLATES_DIR / name).read_text()
    for key, value in values.items():
        text = text.replace(f"__{key.upper()}__", value)
    return text


def dkms_name(config: BuildConfig) -> str:
    return f"nvidia-open-{config.package_suffix}"


def deb_package_name(config: BuildConfig, version: DriverVersion) -> str:
    return f"nvidia-dkms-{version.major}-open-{config.package_suffix}"


def deb_filename(config: BuildConfig, version: DriverVersion) -> str:
    """Debian file name: <package>_<version>-<release>_<arch>.deb."""
    arch = config.architecture(PackageFamily.DEB)
    return (
        f"{deb_package_name(config, version)}_{version}-{config.package_release}"
        f"_{arch}.deb"
    )


def kmod_name(config: BuildConfig) -> str:
    return f"nvidia-{config.package_suffix}"


def rpm_package_name(config: BuildConfig) -> str:
    return f"akmod-{kmod_name(config)}"


def rpm_dist_tag(distro: DistroIdentity) -> str:
    """Value for rpmbuild's %{dist}: ".fc43" on Fedora, ".el9" elsewhere."""
    if distro.id == "fedora":
        return f".fc{distro.version}"
    return f".el{distro.version.split('.', 1)[0]}"


def dkms_modules_block() -> str:
    """BUILT_MODULE_* entries for every kernel module, one block each."""
    blocks = [
        f'BUILT_MODULE_NAME[{i}]="{module}"\n'
        f'BUILT_MODULE_LOCATION[{i}]="{MODULE_BUILD_LOCATION}"\n'
        f'DEST_MODULE_LOCATION[{i}]="{MODULE_DEST_LOCATION}"'
        for i, module in enumerate(KERNEL_MODULES)
    ]
    return "\n\n".join(blocks)


def render_dkms_conf(config: BuildConfig, version: DriverVersion) -> str:
    return render_template(
        "dkms.conf",
        dkms_name=dkms_name(config),
        nvidia_version=version.value,
        built_modules=dkms_modules_block(),
    )


def render_deb_control(config: BuildConfig, version: DriverVersion) -> str:
    return render_template(
        "control",
        package_name=deb_package_name(config, version),
        nvidia_version=version.value,
        release=config.package_release,
        major=version.major,
        arch=config.architecture(PackageFamily.DEB),
        maintainer=config.maintainer,
        homepage=config.homepage,
        patches_url=config.patches_url,
    )


def render_rpm_spec(
    config: BuildConfig, version: DriverVersion, changelog_date: date
) -> str:
    return render_template(
        "akmod.spec",
        kmod_name=kmod_name(config),
        nvidia_version=version.value,
        release=config.package_release,
        arch=config.architecture(PackageFamily.RPM),
        homepage=config.homepage,
        patches_url=config.patches_url,
        blacklist=render_template("blacklist.conf"),
        changelog_author=RPM_CHANGELOG_AUTHOR,
        changelog_date=changelog_date.strftime("%a %b %d %Y"),
    )


def _skip_top_level_dotfiles(root: Path) -> Callable[[str, list[str]], list[str]]:
    """copytree ignore hook that drops .git and friends from root only."""

    def ignore(directory: str, names: list[str]) -> list[str]:
        if Path(directory) != root:
            return []
        return [n for n in names if n.startswith(".")]

    return ignore


def _without_git(info: tarfile.TarInfo) -> tarfile.TarInfo | None:
    return None if ".git" in Path(info.name).parts else info


def build_deb_package(
    toolchain: Toolchain,
    config: BuildConfig,
    version: DriverVersion,
    source_dir: Path,
    build_dir: Path,
    output_dir: Path,
) -> list[PackageArtifact]:
    """Stage a DKMS source package and build it with dpkg-deb.

    Layout of the staging tree:
        usr/src/<dkms-name>-<version>/   patched source + dkms.conf
        etc/modprobe.d/                  nouveau blacklist
        DEBIAN/                          control, postinst, prerm

    Raises:
        PackagingFailed: If dpkg-deb fails.
    """
    step("Building Ubuntu package")

    pkg_dir = build_dir / "package"
    dkms_src = pkg_dir / "usr" / "src" / f"{dkms_name(config)}-{version}"
    debian_dir = pkg_dir / "DEBIAN"
    modprobe_dir = pkg_dir / "etc" / "modprobe.d"

    # Start from an empty staging tree
    if pkg_dir.exists():
        shutil.rmtree(pkg_dir)
    shutil.copytree(
        source_dir,
        dkms_src,
        symlinks=True,
        ignore=_skip_top_level_dotfiles(source_dir),
    )
    debian_dir.mkdir(parents=True)
    modprobe_dir.mkdir(parents=True)

    (dkms_src / "dkms.conf").write_text(render_dkms_conf(config, version))
    (modprobe_dir / f"nvidia-{config.package_suffix}-blacklist.conf").write_text(
        render_template("blacklist.conf")
    )
    (debian_dir / "control").write_text(render_deb_control(config, version))
    for hook in ("postinst", "prerm"):
        script = debian_dir / hook
        script.write_text(
            render_template(
                hook, dkms_name=dkms_name(config), nvidia_version=version.value
            )
        )
        script.chmod(0o755)

    output_dir.mkdir(parents=True, exist_ok=True)
    deb_path = output_dir / deb_filename(config, version)
    if not toolchain.build_native_package(
        "dpkg-deb", "--build", "--root-owner-group", str(pkg_dir), str(deb_path)
    ):
        raise PackagingFailed(f"dpkg-deb failed to build {deb_path.name}")

    print(f"  Built: {deb_path.name}")
    return [PackageArtifact(family=PackageFamily.DEB, path=deb_path)]


def build_rpm_package(
    toolchain: Toolchain,
    config: BuildConfig,
    distro: DistroIdentity,
    version: DriverVersion,
    source_dir: Path,
    build_dir: Path,
    output_dir: Path,
    today: date | None = None,
) -> list[PackageArtifact]:
    """Build binary and source akmod RPMs with rpmbuild.

    Raises:
        PackagingFailed: If rpmbuild fails or produces no RPM files.
    """
    step("Building Fedora RPM package")

    rpm_build = build_dir / "rpmbuild"
    if rpm_build.exists():
        shutil.rmtree(rpm_build)
    for sub in ("BUILD", "RPMS", "SOURCES", "SPECS", "SRPMS"):
        (rpm_build / sub).mkdir(parents=True)

    tarball_name = f"{kmod_name(config)}-{version}"
    with tarfile.open(rpm_build / "SOURCES" / f"{tarball_name}.tar.gz", "w:gz") as tar:
        tar.add(source_dir, arcname=tarball_name, filter=_without_git)

    spec_path = rpm_build / "SPECS" / f"{rpm_package_name(config)}.spec"
    spec_path.write_text(render_rpm_spec(config, version, today or date.today()))

    if not toolchain.build_native_package(
        "rpmbuild",
        "--define",
        f"_topdir {rpm_build}",
        "--define",
        f"dist {rpm_dist_tag(distro)}",
        "-ba",
        str(spec_path),
    ):
        raise PackagingFailed(f"rpmbuild failed for {spec_path.name}")

    built = sorted(rpm_build.glob("RPMS/*/*.rpm")) + sorted(
        rpm_build.glob("SRPMS/*.rpm")
    )
    if not built:
        raise PackagingFailed(f"rpmbuild produced no packages in {rpm_build}")

    output_dir.mkdir(parents=True, exist_ok=True)
    artifacts: list[PackageArtifact] = []
    for rpm in built:
        dest = output_dir / rpm.name
        shutil.copy2(rpm, dest)
        print(f"  Built: {rpm.name}")
        artifacts.append(PackageArtifact(family=PackageFamily.RPM, path=dest))
    return artifacts


def assemble_package(
    toolchain: Toolchain,
    config: BuildConfig,
    distro: DistroIdentity,
    version: DriverVersion,
    source_dir: Path,
    build_dir: Path,
    output_dir: Path,
) -> list[PackageArtifact]:
    """Build the package format matching the host distribution."""
    if distro.family == PackageFamily.DEB:
        return build_deb_package(
            toolchain, config, version, source_dir, build_dir, output_dir
        )
    return build_rpm_package(
        toolchain, config, distro, version, source_dir, build_dir, output_dir
    )
