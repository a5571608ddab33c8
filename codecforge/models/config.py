"""Build configuration models.

A ``BuildConfiguration`` is assembled once per target platform before any
unit runs and is passed to every unit invocation. It is frozen: a different
configuration is a different object with a different fingerprint.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Annotated, Any

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)

from codecforge.core.errors import ConfigurationError
from codecforge.models.platforms import normalize_arch
from codecforge.models.reports import Diagnostic, FailureCategory
from codecforge.models.units import ArtifactKind, Unit

# Tools that receive the cross-compilation prefix. pkg-config is absent on
# purpose: cross builds run the host pkg-config against the target prefix.
_CROSS_PREFIXED_TOOLS = ("cc", "cxx", "ar", "ranlib", "strip")


def _read_only(value: Mapping[str, str]) -> Mapping[str, str]:
    return MappingProxyType(dict(value))


# A str-to-str mapping that rejects item assignment once validated; frozen
# models only guard attribute assignment.
FrozenStrMap = Annotated[
    Mapping[str, str],
    AfterValidator(_read_only),
    PlainSerializer(lambda value: dict(value), return_type=dict[str, str]),
]


class ToolchainSpec(BaseModel):
    """Tool binaries for one target, pinned to exact names."""

    model_config = ConfigDict(frozen=True)

    cc: str = "gcc"
    cxx: str = "g++"
    ar: str = "ar"
    ranlib: str = "ranlib"
    strip: str = "strip"
    pkg_config: str = "pkg-config"
    cross_prefix: str = ""
    search_dirs: tuple[Path, ...] = ()

    def pinned_tools(self) -> dict[str, str]:
        """Return the exact binary name for every tool.

        The cross prefix is applied here, explicitly, so that no external
        tool has to guess a prefixed name on our behalf.
        """
        tools: dict[str, str] = {}
        for role in ("cc", "cxx", "ar", "ranlib", "strip", "pkg_config"):
            name: str = getattr(self, role)
            if (
                role in _CROSS_PREFIXED_TOOLS
                and self.cross_prefix
                and "/" not in name
                and not name.startswith(self.cross_prefix)
            ):
                name = f"{self.cross_prefix}{name}"
            tools[role] = name
        return tools


class BuildConfiguration(BaseModel):
    """Everything needed to build a unit for one target.

    ``target_arch`` and ``prefix`` are mandatory; their absence is a
    configuration error at construction time.
    """

    model_config = ConfigDict(frozen=True)

    platform: str = "custom"
    target_os: str = "linux"
    target_arch: str
    prefix: Path
    toolchain: ToolchainSpec = ToolchainSpec()
    cflags: tuple[str, ...] = ()
    cxxflags: tuple[str, ...] = ()
    ldflags: tuple[str, ...] = ()
    host_triplet: str = ""
    libc: str = ""
    executable_suffix: str = ""
    parallelism: int = Field(default=1, ge=1)
    unit_timeout: float | None = None
    versions: FrozenStrMap = Field(default_factory=dict, validate_default=True)
    excluded_units: frozenset[str] = frozenset()

    @model_validator(mode="before")
    @classmethod
    def _require_target_and_prefix(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        missing = [
            key for key in ("target_arch", "prefix")
            if data.get(key) in (None, "")
        ]
        if missing:
            raise ConfigurationError(
                f"Build configuration is missing required field(s): {', '.join(missing)}",
                diagnostics=[
                    Diagnostic(
                        category=FailureCategory.MISSING_CONFIGURATION,
                        expected=f"{key} to be set",
                        actual="not provided",
                    )
                    for key in missing
                ],
            )
        return data

    @field_validator("target_arch")
    @classmethod
    def _canonical_arch(cls, value: str) -> str:
        return normalize_arch(value)

    @field_validator("prefix")
    @classmethod
    def _absolute_prefix(cls, value: Path) -> Path:
        if not value.is_absolute():
            raise ConfigurationError(
                f"Installation prefix must be an absolute path, got {str(value)!r}"
            )
        return value

    # ------------------------------------------------------------------
    # Layout helpers
    # ------------------------------------------------------------------

    def unit_root(self, unit_id: str) -> Path:
        """The artifact tree a unit owns under the prefix."""
        return self.prefix / "units" / unit_id

    def artifact_path(self, unit: Unit) -> Path:
        """Absolute path of a unit's primary artifact."""
        path = self.unit_root(unit.unit_id) / unit.artifact.artifact
        if unit.artifact.kind == ArtifactKind.EXECUTABLE and self.executable_suffix:
            path = path.with_name(path.name + self.executable_suffix)
        return path

    def descriptor_dir(self, unit_id: str) -> Path:
        return self.unit_root(unit_id) / "lib" / "pkgconfig"


class BuildLayout(BaseModel):
    """On-disk layout for one platform: ``<build_root>/<platform>/...``."""

    model_config = ConfigDict(frozen=True)

    root: Path

    @classmethod
    def for_platform(cls, build_root: Path, platform: str) -> BuildLayout:
        return cls(root=build_root.resolve() / platform)

    @property
    def prefix(self) -> Path:
        return self.root / "prefix"

    @property
    def stamps_dir(self) -> Path:
        return self.root / "stamps"

    @property
    def logs_dir(self) -> Path:
        return self.root / "logs"

    @property
    def summary_path(self) -> Path:
        return self.root / "summary.json"
