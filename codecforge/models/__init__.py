"""codecforge data models — all Pydantic v2, all frozen (immutable)."""

from codecforge.models.units import (
    SATISFIED_STATES,
    ArtifactDescriptor,
    ArtifactKind,
    LicenseClass,
    Unit,
    UnitState,
)
from codecforge.models.reports import (
    REMEDIATION_HINTS,
    BuildReport,
    BuildSummary,
    Checkpoint,
    Diagnostic,
    FailureCategory,
    InfoReport,
    StampStatus,
    UnitCheck,
    UnitOutcome,
    UnitStatus,
    VerificationRecord,
)
from codecforge.models.tiers import ResolvedTier, TierDefinition
from codecforge.models.stamps import Stamp
from codecforge.models.platforms import (
    DEFAULT_PLATFORMS,
    PlatformDescriptor,
    get_platform,
    normalize_arch,
)
from codecforge.models.config import BuildConfiguration, BuildLayout, ToolchainSpec

__all__ = [
    # units
    "LicenseClass",
    "ArtifactKind",
    "ArtifactDescriptor",
    "Unit",
    "UnitState",
    "SATISFIED_STATES",
    # reports
    "FailureCategory",
    "REMEDIATION_HINTS",
    "Checkpoint",
    "Diagnostic",
    "UnitCheck",
    "VerificationRecord",
    "UnitOutcome",
    "BuildReport",
    "StampStatus",
    "UnitStatus",
    "InfoReport",
    "BuildSummary",
    # tiers
    "TierDefinition",
    "ResolvedTier",
    # stamps
    "Stamp",
    # platforms
    "PlatformDescriptor",
    "DEFAULT_PLATFORMS",
    "get_platform",
    "normalize_arch",
    # config
    "ToolchainSpec",
    "BuildConfiguration",
    "BuildLayout",
]
