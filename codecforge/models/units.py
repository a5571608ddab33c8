"""Unit models — the buildable libraries and the final aggregate artifact."""

from __future__ import annotations

from enum import Enum
from pathlib import PurePosixPath

from pydantic import BaseModel, ConfigDict, Field, field_validator

UNIT_ID_PATTERN = r"^[a-z0-9][a-z0-9._+-]*$"


class LicenseClass(str, Enum):
    """Closed set of license classifications a unit can carry."""

    PERMISSIVE = "permissive"  # BSD, ISC, FTL
    WEAK_COPYLEFT = "weak-copyleft"  # LGPL
    COPYLEFT = "copyleft"  # GPL
    NONFREE = "nonfree"  # not redistributable alongside GPL code


class ArtifactKind(str, Enum):
    STATIC_LIBRARY = "static_library"
    EXECUTABLE = "executable"


class UnitState(str, Enum):
    """Per-run execution state of a unit."""

    PENDING = "pending"
    CACHED = "cached"
    RUNNING = "running"
    VERIFIED = "verified"
    FAILED = "failed"
    BLOCKED = "blocked"


# States in which a unit's stamp is committed for the current fingerprint.
SATISFIED_STATES: frozenset[UnitState] = frozenset(
    {UnitState.CACHED, UnitState.VERIFIED}
)


class ArtifactDescriptor(BaseModel):
    """Where a unit's output lives inside its own tree under the prefix.

    ``artifact`` is relative to the unit tree (``lib/libvpx.a``);
    ``pkg_config`` is the linkage descriptor name consumers resolve
    (``vpx`` -> ``lib/pkgconfig/vpx.pc``).
    """

    model_config = ConfigDict(frozen=True)

    artifact: str
    pkg_config: str
    kind: ArtifactKind = ArtifactKind.STATIC_LIBRARY

    @field_validator("artifact")
    @classmethod
    def _relative_artifact(cls, value: str) -> str:
        path = PurePosixPath(value)
        if path.is_absolute() or ".." in path.parts:
            raise ValueError(f"artifact must be relative to the unit tree: {value!r}")
        return value


class Unit(BaseModel):
    """A buildable library or the aggregate artifact.

    Declared once in the static catalog and never mutated. The dependency
    set is explicit data; the registry validates it at load time.
    """

    model_config = ConfigDict(frozen=True)

    unit_id: str = Field(pattern=UNIT_ID_PATTERN)
    display_name: str
    license_class: LicenseClass
    artifact: ArtifactDescriptor
    dependencies: frozenset[str] = frozenset()
    version_key: str = ""
    is_aggregate: bool = False
