"""Tests for nvidia_armsbc.assemble."""

from __future__ import annotations

import re
import stat
import tarfile
from datetime import date
from pathlib import Path

import pytest

from nvidia_armsbc.assemble import (
    KERNEL_MODULES,
    TEMPLATES_DIR,
    assemble_package,
    build_deb_package,
    build_rpm_package,
    deb_filename,
    render_deb_control,
    render_dkms_conf,
    render_rpm_spec,
    render_template,
    rpm_dist_tag,
)
from nvidia_armsbc.config import BuildConfig
from nvidia_armsbc.errors import PackagingFailed
from nvidia_armsbc.models import DistroIdentity, DriverVersion, PackageFamily

PLACEHOLDER = re.compile(r"__[A-Z_]+__")


class TestNaming:
    def test_deb_filename(self, config: BuildConfig, version: DriverVersion) -> None:
        assert (
            deb_filename(config, version)
            == "nvidia-dkms-580-open-armsbc_580.95.05-2_arm64.deb"
        )

    def test_fedora_dist_tag(self, fedora: DistroIdentity) -> None:
        assert rpm_dist_tag(fedora) == ".fc43"

    def test_enterprise_dist_tag(self) -> None:
        rocky = DistroIdentity(
            id="rocky", version="9.4", codename="9.4", family=PackageFamily.RPM
        )
        assert rpm_dist_tag(rocky) == ".el9"


class TestTemplates:
    @pytest.mark.parametrize(
        "name", sorted(p.name for p in TEMPLATES_DIR.iterdir() if p.is_file())
    )
    def test_templates_exist_and_are_text(self, name: str) -> None:
        assert render_template(name)

    def test_dkms_conf(self, config: BuildConfig, version: DriverVersion) -> None:
        text = render_dkms_conf(config, version)

        assert 'PACKAGE_NAME="nvidia-open-armsbc"' in text
        assert 'PACKAGE_VERSION="580.95.05"' in text
        assert 'AUTOINSTALL="yes"' in text
        for i, module in enumerate(KERNEL_MODULES):
            assert f'BUILT_MODULE_NAME[{i}]="{module}"' in text
            assert f'BUILT_MODULE_LOCATION[{i}]="kernel-open"' in text
            assert f'DEST_MODULE_LOCATION[{i}]="/updates/dkms"' in text
        assert len(KERNEL_MODULES) == 5
        assert not PLACEHOLDER.search(text)

    def test_deb_control(self, config: BuildConfig, version: DriverVersion) -> None:
        text = render_deb_control(config, version)

        assert "Package: nvidia-dkms-580-open-armsbc\n" in text
        assert "Version: 580.95.05-2\n" in text
        assert "Architecture: arm64\n" in text
        assert "nvidia-kernel-common-580 (>= 580.95.05)" in text
        assert "Provides: nvidia-dkms-kernel, nvidia-dkms-580-open (= 580.95.05-2)" in text
        assert "Conflicts: nvidia-dkms-kernel, nvidia-dkms-580-open" in text
        assert "Maintainer: Scott J. Goldman <scottjg@umich.edu>\n" in text
        assert config.patches_url in text
        assert not PLACEHOLDER.search(text)

    def test_rpm_spec(self, config: BuildConfig, version: DriverVersion) -> None:
        text = render_rpm_spec(config, version, date(2026, 1, 5))

        assert "%global kmod_name nvidia-armsbc" in text
        assert "%global nvidia_version 580.95.05" in text
        assert "%global package_release 2" in text
        assert "ExclusiveArch:  aarch64" in text
        assert "blacklist nouveau" in text
        assert "* Mon Jan 05 2026 Package Builder <builder@example.com> - " in text
        assert config.maintainer not in text
        assert not PLACEHOLDER.search(text)


class TestBuildDebPackage:
    def test_layout(
        self,
        make_toolchain,
        config: BuildConfig,
        version: DriverVersion,
        source_tree: Path,
        tmp_path: Path,
    ) -> None:
        build_dir = source_tree.parent
        output_dir = tmp_path / "output"
        toolchain = make_toolchain()

        artifacts = build_deb_package(
            toolchain, config, version, source_tree, build_dir, output_dir
        )

        pkg = build_dir / "package"
        dkms_src = pkg / "usr" / "src" / "nvidia-open-armsbc-580.95.05"
        assert (dkms_src / "kernel-open" / "Makefile").exists()
        assert (dkms_src / "COPYING").exists()
        assert (dkms_src / "dkms.conf").exists()
        assert not (dkms_src / ".git").exists()
        assert (pkg / "etc" / "modprobe.d" / "nvidia-armsbc-blacklist.conf").exists()
        assert (pkg / "DEBIAN" / "control").exists()
        for hook in ("postinst", "prerm"):
            mode = (pkg / "DEBIAN" / hook).stat().st_mode
            assert stat.S_IMODE(mode) == 0o755

        deb = output_dir / "nvidia-dkms-580-open-armsbc_580.95.05-2_arm64.deb"
        assert [a.path for a in artifacts] == [deb]
        assert artifacts[0].family == PackageFamily.DEB
        assert deb.exists()
        assert toolchain.packaged == [
            ("dpkg-deb", "--build", "--root-owner-group", str(pkg), str(deb))
        ]

    def test_hooks_tolerate_dkms_failures(
        self,
        make_toolchain,
        config: BuildConfig,
        version: DriverVersion,
        source_tree: Path,
        tmp_path: Path,
    ) -> None:
        build_deb_package(
            make_toolchain(), config, version, source_tree, source_tree.parent, tmp_path / "out"
        )

        debian = source_tree.parent / "package" / "DEBIAN"
        postinst = (debian / "postinst").read_text()
        assert 'dkms install -m "$DKMS_NAME" -v "$DKMS_VERSION" || true' in postinst
        assert 'DKMS_NAME="nvidia-open-armsbc"' in postinst
        assert "|| true" in (debian / "prerm").read_text()

    def test_stale_staging_tree_replaced(
        self,
        make_toolchain,
        config: BuildConfig,
        version: DriverVersion,
        source_tree: Path,
        tmp_path: Path,
    ) -> None:
        leftover = source_tree.parent / "package" / "usr" / "src" / "old" / "file"
        leftover.parent.mkdir(parents=True)
        leftover.write_text("old\n")

        build_deb_package(
            make_toolchain(), config, version, source_tree, source_tree.parent, tmp_path / "out"
        )

        assert not leftover.exists()

    def test_dpkg_failure(
        self,
        make_toolchain,
        config: BuildConfig,
        version: DriverVersion,
        source_tree: Path,
        tmp_path: Path,
    ) -> None:
        with pytest.raises(PackagingFailed, match="dpkg-deb"):
            build_deb_package(
                make_toolchain(package_ok=False),
                config,
                version,
                source_tree,
                source_tree.parent,
                tmp_path / "out",
            )


class TestBuildRpmPackage:
    def test_build(
        self,
        make_toolchain,
        config: BuildConfig,
        fedora: DistroIdentity,
        version: DriverVersion,
        source_tree: Path,
        tmp_path: Path,
    ) -> None:
        build_dir = source_tree.parent
        output_dir = tmp_path / "output"
        toolchain = make_toolchain()

        artifacts = build_rpm_package(
            toolchain,
            config,
            fedora,
            version,
            source_tree,
            build_dir,
            output_dir,
            today=date(2026, 1, 5),
        )

        assert sorted(a.filename for a in artifacts) == [
            "akmod-nvidia-armsbc-580.95.05-2.fc43.aarch64.rpm",
            "akmod-nvidia-armsbc-580.95.05-2.fc43.src.rpm",
        ]
        assert all(a.path.parent == output_dir and a.path.exists() for a in artifacts)

        rpm_build = build_dir / "rpmbuild"
        spec = rpm_build / "SPECS" / "akmod-nvidia-armsbc.spec"
        assert toolchain.packaged == [
            (
                "rpmbuild",
                "--define",
                f"_topdir {rpm_build}",
                "--define",
                "dist .fc43",
                "-ba",
                str(spec),
            )
        ]
        assert "Mon Jan 05 2026" in spec.read_text()

    def test_tarball_excludes_git(
        self,
        make_toolchain,
        config: BuildConfig,
        fedora: DistroIdentity,
        version: DriverVersion,
        source_tree: Path,
        tmp_path: Path,
    ) -> None:
        build_rpm_package(
            make_toolchain(), config, fedora, version, source_tree, source_tree.parent, tmp_path / "out"
        )

        tarball = source_tree.parent / "rpmbuild" / "SOURCES" / "nvidia-armsbc-580.95.05.tar.gz"
        with tarfile.open(tarball) as tar:
            names = tar.getnames()
        assert "nvidia-armsbc-580.95.05/kernel-open/Makefile" in names
        assert "nvidia-armsbc-580.95.05/COPYING" in names
        assert not any(".git" in Path(n).parts for n in names)

    def test_rpmbuild_failure(
        self,
        make_toolchain,
        config: BuildConfig,
        fedora: DistroIdentity,
        version: DriverVersion,
        source_tree: Path,
        tmp_path: Path,
    ) -> None:
        with pytest.raises(PackagingFailed, match="rpmbuild failed"):
            build_rpm_package(
                make_toolchain(package_ok=False),
                config,
                fedora,
                version,
                source_tree,
                source_tree.parent,
                tmp_path / "out",
            )

    def test_no_rpms_produced(
        self,
        config: BuildConfig,
        fedora: DistroIdentity,
        version: DriverVersion,
        source_tree: Path,
        tmp_path: Path,
    ) -> None:
        class SilentToolchain:
            def build_native_package(self, *args: str, cwd: Path | None = None) -> bool:
                return True

        with pytest.raises(PackagingFailed, match="no packages"):
            build_rpm_package(
                SilentToolchain(),
                config,
                fedora,
                version,
                source_tree,
                source_tree.parent,
                tmp_path / "out",
            )


class TestAssemblePackage:
    def test_dispatches_on_family(
        self,
        make_toolchain,
        config: BuildConfig,
        ubuntu: DistroIdentity,
        fedora: DistroIdentity,
        version: DriverVersion,
        source_tree: Path,
        tmp_path: Path,
    ) -> None:
        toolchain = make_toolchain()
        build_dir = source_tree.parent

        deb = assemble_package(
            toolchain, config, ubuntu, version, source_tree, build_dir, tmp_path / "out"
        )
        rpm = assemble_package(
            toolchain, config, fedora, version, source_tree, build_dir, tmp_path / "out"
        )

        assert {a.family for a in deb} == {PackageFamily.DEB}
        assert {a.family for a in rpm} == {PackageFamily.RPM}
