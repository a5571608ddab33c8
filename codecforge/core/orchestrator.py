"""Build orchestrator — the central coordinator for codecforge runs.

The orchestrator wires together the UnitRegistry, TierResolver, StampCache,
EnvironmentIsolation, VerificationGate and TaskExecutor into one build
pipeline: resolve the tier, verify the toolchain, plan from stamps, run
what is missing, and gate the aggregate.
"""

from __future__ import annotations

import logging
import shutil
import threading
from collections.abc import Mapping
from pathlib import Path

from codecforge.core.actions import UnitAction
from codecforge.core.catalog import DEFAULT_ALIASES
from codecforge.core.errors import (
    ConfigurationError,
    ToolchainError,
    UnitBuildError,
    UnitFailure,
    VerificationError,
)
from codecforge.core.executor import TaskExecutor
from codecforge.core.hasher import configuration_fingerprint, content_address, file_sha256
from codecforge.core.isolation import EnvironmentDescriptor, EnvironmentIsolation
from codecforge.core.registry import UnitRegistry
from codecforge.core.stamp_cache import StampCache
from codecforge.core.tiers import TierResolver
from codecforge.core.unit_graph import UnitGraph
from codecforge.core.verification import CompilerProbe, ToolchainProbe, VerificationGate
from codecforge.core.version_pins import validate_versions
from codecforge.models.config import BuildConfiguration, BuildLayout
from codecforge.models.reports import (
    BuildReport,
    BuildSummary,
    Diagnostic,
    FailureCategory,
    InfoReport,
    StampStatus,
    UnitStatus,
    VerificationRecord,
)
from codecforge.models.tiers import ResolvedTier
from codecforge.models.units import Unit, UnitState

logger = logging.getLogger(__name__)


class BuildOrchestrator:
    """Runs build, info, clean and verify for one build configuration.

    Parameters
    ----------
    config:
        The frozen build configuration for the target platform.
    layout:
        Where stamps, logs and the summary live.
    registry:
        Unit and tier declarations. Uses the default catalog if not provided.
    action:
        Builds one unit. Receives only the environment, the configuration
        and the unit's output directory.
    toolchain_probe:
        Reports the toolchain's real target architecture during preflight.
        Defaults to compiling a trivial program with the pinned CC.
    """

    def __init__(
        self,
        config: BuildConfiguration,
        *,
        layout: BuildLayout,
        action: UnitAction,
        registry: UnitRegistry | None = None,
        toolchain_probe: ToolchainProbe | None = None,
        aliases: Mapping[str, str] = DEFAULT_ALIASES,
    ) -> None:
        self.config = config
        self.layout = layout
        self.registry = registry or UnitRegistry()
        self.action = action
        self.fingerprint = configuration_fingerprint(config)

        # Core subsystems
        self.stamps = StampCache(layout.stamps_dir)
        self.isolation = EnvironmentIsolation(self.registry)
        self.resolver = TierResolver(self.registry, aliases)
        self.gate = VerificationGate(self.isolation, toolchain_probe or CompilerProbe())

        self._invoked: list[str] = []
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Tier resolution
    # ------------------------------------------------------------------

    def resolve_tier(self, tier: str) -> ResolvedTier:
        """Resolve ``tier`` and subtract units the platform cannot build.

        Raises ``ConfigurationError`` if an excluded unit is required by a
        unit that remains active.
        """
        resolved = self.resolver.resolve(tier)
        self.resolver.emit_deprecation(resolved)

        excluded = set(self.config.excluded_units) & set(resolved.unit_ids)
        if not excluded:
            return resolved
        if resolved.aggregate_id in excluded:
            raise ConfigurationError(
                f"Platform {self.config.platform} excludes the aggregate '{resolved.aggregate_id}'"
            )
        remaining = tuple(uid for uid in resolved.unit_ids if uid not in excluded)
        for uid in remaining:
            needed = self.registry.get_unit(uid).dependencies & excluded
            if needed:
                raise ConfigurationError(
                    f"Unit '{uid}' requires {', '.join(sorted(needed))}, "
                    f"which platform {self.config.platform} excludes",
                    diagnostics=[
                        Diagnostic(
                            category=FailureCategory.INVALID_CONFIGURATION,
                            unit_id=uid,
                            expected=f"dependencies buildable on {self.config.platform}",
                            actual=f"excluded: {', '.join(sorted(needed))}",
                        )
                    ],
                )
        logger.info(
            "Platform %s excludes: %s", self.config.platform, ", ".join(sorted(excluded))
        )
        return resolved.model_copy(update={"unit_ids": remaining})

    def _environment_for(self, unit_id: str, active: tuple[str, ...]) -> EnvironmentDescriptor:
        return self.isolation.build_environment(
            self.config, self.isolation.scope_for(unit_id, active)
        )

    def _stamp_fingerprint(self, unit: Unit, active: tuple[str, ...]) -> str:
        """Fingerprint a unit's stamp is keyed on.

        The aggregate's output also depends on which units were linked into
        it, so its key covers the active set as well as the configuration.
        """
        if not unit.is_aggregate:
            return self.fingerprint
        return content_address(
            {"configuration": self.fingerprint, "linked": sorted(active)}
        )

    # ------------------------------------------------------------------
    # build
    # ------------------------------------------------------------------

    def build(self, tier: str) -> BuildReport:
        """Build every unit of ``tier`` that lacks a valid stamp.

        Raises
        ------
        ConfigurationError
            Unknown tier, bad version pins, inconsistent platform exclusions.
        ToolchainError
            Preflight failed. No unit action has been invoked.
        """
        resolved = self.resolve_tier(tier)
        units = self.registry.list_units(resolved)
        validate_versions(self.config.versions, units)

        active = resolved.unit_ids
        record = self.gate.preflight(
            self.config, self.isolation.build_environment(self.config, active)
        )
        if not record.passed:
            raise ToolchainError(
                record.message or "Preflight failed",
                diagnostics=record.diagnostics,
                record=record,
            )

        graph = self.registry.graph_for(active)
        states = self._plan(graph, active)
        cached = [uid for uid, s in states.items() if s == UnitState.CACHED]
        logger.info(
            "Tier %s: %d units, %d cached, %d to build",
            resolved.canonical,
            len(active),
            len(cached),
            len(active) - len(cached),
        )

        self._invoked = []
        pre_aggregate: list[VerificationRecord] = []

        def before_launch(unit: Unit) -> None:
            if not unit.is_aggregate:
                return
            gate_record = self.gate.pre_aggregate(
                units, self.config, self._environment_for(unit.unit_id, active)
            )
            pre_aggregate.append(gate_record)
            if not gate_record.passed:
                raise VerificationError(unit.unit_id, gate_record)

        executor = TaskExecutor(
            graph,
            {u.unit_id: u for u in units},
            max_workers=self.config.parallelism,
        )
        outcomes = executor.execute(
            lambda unit: self._run_unit(unit, active),
            states,
            before_launch=before_launch,
        )

        report = BuildReport(
            requested_tier=resolved.requested,
            tier=resolved.canonical,
            platform=self.config.platform,
            fingerprint=self.fingerprint,
            aggregate_id=resolved.aggregate_id,
            outcomes=outcomes,
            invoked=tuple(self._invoked),
            pre_aggregate=pre_aggregate[0] if pre_aggregate else None,
        )
        if report.exit_code == 0:
            summary_path = self._write_summary(resolved, units)
            report = report.model_copy(update={"summary_path": summary_path})
            logger.info("Build complete: %s", summary_path)
        else:
            logger.error(
                "Build incomplete: %d failed, %d blocked",
                len(report.failures),
                len(report.blocked),
            )
        return report

    def _plan(self, graph: UnitGraph, active: tuple[str, ...]) -> dict[str, UnitState]:
        """Mark units CACHED when their stamp, dependencies and artifact agree.

        Stamps that no longer hold are removed so stamps never outlive
        their artifacts.
        """
        states: dict[str, UnitState] = {}
        for uid in graph.topological_order():
            unit = self.registry.get_unit(uid)
            deps_cached = all(
                states.get(dep) == UnitState.CACHED for dep in graph.get_dependencies(uid)
            )
            if deps_cached and self.stamps.is_complete(
                uid, self._stamp_fingerprint(unit, active)
            ):
                record = self.gate.post_unit(
                    unit, self.config, self._environment_for(uid, active)
                )
                if record.passed:
                    states[uid] = UnitState.CACHED
                    logger.debug("Cache hit: %s", uid)
                    continue
                logger.warning("Stamp for %s no longer verifies: %s", uid, record.message)
            if self.stamps.invalidate(uid):
                logger.info("Stamp for %s is stale, rebuilding", uid)
            states[uid] = UnitState.PENDING
        return states

    def _run_unit(self, unit: Unit, active: tuple[str, ...]) -> tuple[str, ...]:
        """Job body: action, post-unit gate, then commit."""
        uid = unit.unit_id
        # Dependents built against the old artifact are no longer valid.
        for dependent in (uid, *self.registry.graph.get_dependents(uid)):
            self.stamps.invalidate(dependent)

        output_dir = self.config.unit_root(uid)
        try:
            if output_dir.exists():
                shutil.rmtree(output_dir)
            output_dir.mkdir(parents=True)
        except OSError as exc:
            raise UnitFailure(
                uid,
                f"Could not prepare output tree for '{uid}': {exc}",
                diagnostics=[
                    Diagnostic(
                        category=FailureCategory.ACTION_FAILED,
                        unit_id=uid,
                        expected=f"empty output tree at {output_dir}",
                        actual=str(exc),
                    )
                ],
            ) from exc

        environment = self._environment_for(uid, active)
        with self._lock:
            self._invoked.append(uid)
        exit_code = self.action.run(unit, self.config, environment, output_dir)
        if exit_code != 0:
            raise UnitBuildError(
                uid,
                exit_code,
                diagnostics=[
                    Diagnostic(
                        category=FailureCategory.ACTION_FAILED,
                        unit_id=uid,
                        expected="exit status 0",
                        actual=f"exit status {exit_code}",
                    )
                ],
            )

        record = self.gate.post_unit(unit, self.config, environment)
        if not record.passed:
            raise VerificationError(uid, record)

        self.stamps.commit(
            uid,
            self._stamp_fingerprint(unit, active),
            artifact=str(self.config.artifact_path(unit)),
            pkg_config=unit.artifact.pkg_config,
        )
        return record.warnings

    def _write_summary(self, resolved: ResolvedTier, units: tuple[Unit, ...]) -> Path:
        aggregate = self.registry.get_unit(resolved.aggregate_id)
        aggregate_path = self.config.artifact_path(aggregate)
        summary = BuildSummary(
            tier=resolved.canonical,
            license=resolved.license_label,
            platform=self.config.platform,
            target_arch=self.config.target_arch,
            fingerprint=self.fingerprint,
            units=resolved.library_ids,
            versions={
                u.version_key: self.config.versions[u.version_key]
                for u in units
                if u.version_key in self.config.versions
            },
            aggregate=str(aggregate_path),
            aggregate_sha256=file_sha256(aggregate_path),
        )
        path = self.layout.summary_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(summary.model_dump_json(indent=2), encoding="utf-8")
        return path

    # ------------------------------------------------------------------
    # info / clean / verify
    # ------------------------------------------------------------------

    def info(self, tier: str) -> InfoReport:
        """Report stamp validity for every unit of ``tier``. Builds nothing."""
        resolved = self.resolve_tier(tier)
        statuses: list[UnitStatus] = []
        for unit in self.registry.list_units(resolved):
            stamp = self.stamps.read(unit.unit_id)
            if stamp is None:
                status = StampStatus.MISSING
            elif stamp.fingerprint == self._stamp_fingerprint(unit, resolved.unit_ids):
                status = StampStatus.COMPLETE
            else:
                status = StampStatus.STALE
            statuses.append(
                UnitStatus(
                    unit_id=unit.unit_id,
                    display_name=unit.display_name,
                    license_class=unit.license_class.value,
                    status=status,
                    stamped_fingerprint=stamp.fingerprint if stamp else None,
                )
            )
        return InfoReport(
            requested_tier=resolved.requested,
            tier=resolved.canonical,
            platform=self.config.platform,
            fingerprint=self.fingerprint,
            units=tuple(statuses),
        )

    def clean(self, scope: str = "all") -> list[str]:
        """Invalidate stamps for ``all`` or for one unit and its dependents.

        Returns the unit ids whose stamps were removed.
        """
        if scope == "all":
            removed = self.stamps.invalidate_all()
        else:
            self.registry.get_unit(scope)
            targets = [scope, *self.registry.graph.get_dependents(scope)]
            removed = [uid for uid in targets if self.stamps.invalidate(uid)]
        self.layout.summary_path.unlink(missing_ok=True)
        logger.info("Cleaned %s: %d stamp(s) removed", scope, len(removed))
        return removed

    def verify(self, tier: str) -> VerificationRecord:
        """Run the pre-aggregate check for ``tier`` without building."""
        resolved = self.resolve_tier(tier)
        units = self.registry.list_units(resolved)
        environment = self._environment_for(resolved.aggregate_id, resolved.unit_ids)
        return self.gate.pre_aggregate(units, self.config, environment)
