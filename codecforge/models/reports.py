"""Gate and run report models: verification records, diagnostics, outcomes."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from codecforge.models.units import SATISFIED_STATES, UnitState


class FailureCategory(str, Enum):
    """Machine-checkable reason codes attached to every diagnostic."""

    ARCH_MISMATCH = "arch_mismatch"
    MISSING_ARTIFACT = "missing_artifact"
    EMPTY_ARTIFACT = "empty_artifact"
    UNRESOLVABLE_DESCRIPTOR = "unresolvable_descriptor"
    ISOLATION_LEAK = "isolation_leak"
    TOOL_NOT_FOUND = "tool_not_found"
    TOOLCHAIN_FAILURE = "toolchain_failure"
    ACTION_FAILED = "action_failed"
    ACTION_TIMEOUT = "action_timeout"
    DYNAMIC_LINKAGE = "dynamic_linkage"
    UPSTREAM_FAILED = "upstream_failed"
    MISSING_CONFIGURATION = "missing_configuration"
    INVALID_CONFIGURATION = "invalid_configuration"


REMEDIATION_HINTS: dict[FailureCategory, str] = {
    FailureCategory.ARCH_MISMATCH: (
        "Check the cross prefix and architecture flags of the toolchain; "
        "clean the unit and rebuild with the correct compiler."
    ),
    FailureCategory.MISSING_ARTIFACT: (
        "The recipe exited 0 without installing its artifact. Inspect the unit "
        "log and make sure the recipe installs into CODECFORGE_OUTPUT."
    ),
    FailureCategory.EMPTY_ARTIFACT: (
        "The artifact exists but is empty. Inspect the unit log for an "
        "interrupted archive or link step."
    ),
    FailureCategory.UNRESOLVABLE_DESCRIPTOR: (
        "Build the missing units first, or make sure the recipe installs its "
        ".pc file under lib/pkgconfig of its own tree."
    ),
    FailureCategory.ISOLATION_LEAK: (
        "A search path points outside the build prefix. Remove host paths from "
        "the descriptor and from the toolchain search directories."
    ),
    FailureCategory.TOOL_NOT_FOUND: (
        "Install the missing tool or add its directory to "
        "CODECFORGE_TOOLCHAIN_DIRS."
    ),
    FailureCategory.TOOLCHAIN_FAILURE: (
        "The compiler could not build a trivial program. Verify the toolchain "
        "installation and its sysroot."
    ),
    FailureCategory.ACTION_FAILED: "Inspect the unit log, fix the recipe, and rerun the build.",
    FailureCategory.ACTION_TIMEOUT: (
        "The recipe exceeded the configured timeout. Raise or unset "
        "CODECFORGE_UNIT_TIMEOUT_SECONDS."
    ),
    FailureCategory.DYNAMIC_LINKAGE: (
        "The aggregate must be fully static on musl targets. Link with -static "
        "and make sure no dependency was built as a shared library."
    ),
    FailureCategory.UPSTREAM_FAILED: "Fix the failed dependency; this unit was not attempted.",
    FailureCategory.MISSING_CONFIGURATION: "Provide the missing configuration value.",
    FailureCategory.INVALID_CONFIGURATION: "Correct the configuration value and rerun.",
}


class Checkpoint(str, Enum):
    PREFLIGHT = "preflight"
    POST_UNIT = "post_unit"
    PRE_AGGREGATE = "pre_aggregate"


class Diagnostic(BaseModel):
    """Structured failure description: expected vs. actual plus a hint.

    ``remediation`` defaults to the hint registered for ``category``.
    """

    model_config = ConfigDict(frozen=True)

    category: FailureCategory
    unit_id: str | None = None
    expected: str = ""
    actual: str = ""
    remediation: str = ""

    @model_validator(mode="before")
    @classmethod
    def _default_remediation(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("remediation"):
            category = data.get("category")
            if category is not None:
                data = {**data, "remediation": REMEDIATION_HINTS.get(
                    FailureCategory(category), ""
                )}
        return data


class UnitCheck(BaseModel):
    """One per-unit mark in a pre-aggregate listing."""

    model_config = ConfigDict(frozen=True)

    unit_id: str
    descriptor: str
    passed: bool
    reason: FailureCategory | None = None


class VerificationRecord(BaseModel):
    """Result of a single gate check, consumed immediately by the caller."""

    model_config = ConfigDict(frozen=True)

    checkpoint: Checkpoint
    subject: str
    passed: bool
    reason: FailureCategory | None = None
    message: str = ""
    diagnostics: tuple[Diagnostic, ...] = ()
    checks: tuple[UnitCheck, ...] = ()
    warnings: tuple[str, ...] = ()
    available_descriptors: tuple[str, ...] = ()


class UnitOutcome(BaseModel):
    """Final state of one unit within a build run."""

    model_config = ConfigDict(frozen=True)

    unit_id: str
    state: UnitState
    diagnostics: tuple[Diagnostic, ...] = ()
    warnings: tuple[str, ...] = ()
    duration_seconds: float = 0.0


class BuildReport(BaseModel):
    """Everything a build invocation did, in a shape the CLI can render."""

    model_config = ConfigDict(frozen=True)

    requested_tier: str
    tier: str
    platform: str
    fingerprint: str
    aggregate_id: str
    outcomes: dict[str, UnitOutcome]
    invoked: tuple[str, ...] = ()
    pre_aggregate: VerificationRecord | None = None
    summary_path: Path | None = None

    @property
    def failures(self) -> list[UnitOutcome]:
        return [o for o in self.outcomes.values() if o.state == UnitState.FAILED]

    @property
    def blocked(self) -> list[UnitOutcome]:
        return [o for o in self.outcomes.values() if o.state == UnitState.BLOCKED]

    @property
    def stamped(self) -> list[str]:
        return [
            uid for uid, o in self.outcomes.items() if o.state in SATISFIED_STATES
        ]

    @property
    def exit_code(self) -> int:
        """0 only when the aggregate unit passed verification."""
        aggregate = self.outcomes.get(self.aggregate_id)
        if aggregate is not None and aggregate.state in SATISFIED_STATES:
            return 0
        return 1


class StampStatus(str, Enum):
    COMPLETE = "complete"
    STALE = "stale"  # stamp present, recorded under another fingerprint
    MISSING = "missing"


class UnitStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    unit_id: str
    display_name: str
    license_class: str
    status: StampStatus
    stamped_fingerprint: str | None = None


class InfoReport(BaseModel):
    """Per-unit stamp validity for a resolved tier. No building involved."""

    model_config = ConfigDict(frozen=True)

    requested_tier: str
    tier: str
    platform: str
    fingerprint: str
    units: tuple[UnitStatus, ...]

    @property
    def complete(self) -> bool:
        return all(u.status == StampStatus.COMPLETE for u in self.units)


class BuildSummary(BaseModel):
    """Machine-readable record written once at the end of a successful build."""

    model_config = ConfigDict(frozen=True)

    tier: str
    license: str
    platform: str
    target_arch: str
    fingerprint: str
    units: tuple[str, ...]
    versions: dict[str, str]
    aggregate: str
    aggregate_sha256: str
    generated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
