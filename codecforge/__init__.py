"""codecforge: incremental, verified prebuilds of static codec libraries and FFmpeg.

  - Static unit registry with explicit, validated dependencies
  - Cumulative license tiers (free, non-free) with deprecated aliases
  - Fingerprint-keyed stamps, committed only after verification
  - Isolated search paths and pinned tool names per unit
  - Preflight, post-unit and pre-aggregate verification gates
  - Bounded parallel execution with per-branch failure isolation
"""

__version__ = "0.1.0"
__description__ = "Build orchestration and verification for static multimedia prebuilds"

from codecforge.core.orchestrator import BuildOrchestrator
from codecforge.core.registry import UnitRegistry

__all__ = ["BuildOrchestrator", "UnitRegistry", "__version__"]
