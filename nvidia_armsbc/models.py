"""Data models for nvidia-armsbc.

These Pydantic models represent the values handed from one pipeline stage
to the next. None of them is persisted; they live for a single build.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .versions import major_version


class PackageFamily(str, Enum):
    """Native package format for a distribution."""

    DEB = "deb"
    RPM = "rpm"


class DistroIdentity(BaseModel):
    """Identity of the host OS, read once from os-release.

    Attributes:
        id: Distribution id, e.g. "ubuntu" or "fedora".
        version: VERSION_ID, e.g. "24.04" or "43".
        codename: VERSION_CODENAME, or the version when there is none.
        family: Which package format this distribution builds.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    version: str
    codename: str
    family: PackageFamily


class DriverVersion(BaseModel):
    """An NVIDIA driver version such as "580.95.05".

    The version doubles as the upstream git tag, so it is kept verbatim.
    """

    model_config = ConfigDict(frozen=True)

    value: str

    @field_validator("value")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("driver version must not be empty")
        return v

    @property
    def major(self) -> str:
        return major_version(self.value)

    def __str__(self) -> str:
        return self.value


class PatchBranch(BaseModel):
    """A candidate branch of the patch fork.

    Attributes:
        name: Branch name, e.g. "armsbc-580" or "armsbc".
        exists: Whether fetching the branch from the fork succeeded.
        versioned: True for the "<base>-<major>" form, False for the fallback.
    """

    name: str
    exists: bool = False
    versioned: bool = True


class PatchSeries(BaseModel):
    """Ordered patch files generated from merge_base..branch.

    Order is commit order, oldest first. Later patches may depend on
    earlier ones, so the order must never change.
    """

    branch: str
    merge_base: str
    patches: list[Path] = Field(default_factory=list)


class PatchOutcome(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class PatchResult(BaseModel):
    name: str
    outcome: PatchOutcome


class ApplyReport(BaseModel):
    """Per-patch outcomes from applying a series, in series order."""

    results: list[PatchResult] = Field(default_factory=list)

    @property
    def failed(self) -> list[str]:
        return [r.name for r in self.results if r.outcome == PatchOutcome.FAILED]

    @property
    def clean(self) -> bool:
        """True when every patch passed both the dry run and the apply."""
        return all(r.outcome == PatchOutcome.SUCCESS for r in self.results)


class StepResult(BaseModel):
    """Outcome of a best-effort step.

    Best-effort steps never raise. The caller logs the result and moves on.

    Attributes:
        name: Short description of the step, e.g. "enable RPM Fusion".
        ok: Whether the step succeeded.
        detail: Extra context for the log line (e.g. the exit code).
    """

    name: str
    ok: bool
    detail: str = ""


class PackageArtifact(BaseModel):
    """A package file written to the output directory."""

    family: PackageFamily
    path: Path

    @property
    def filename(self) -> str:
        return self.path.name
