"""Verification gate — preflight, post-unit, and pre-aggregate checkpoints.

Each checkpoint returns a ``VerificationRecord``; callers decide what to
do with it (abort the run, skip the stamp commit, refuse the aggregate).
A stamp is only ever committed on a passing post-unit record.
"""

from __future__ import annotations

import logging
import subprocess
import tempfile
import warnings
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

from codecforge.core.binaries import (
    DynamicLinkage,
    inspect_architectures,
    inspect_linkage,
    matches_arch,
)
from codecforge.core.errors import IsolationLeakWarning, ToolchainError
from codecforge.core.isolation import EnvironmentDescriptor, EnvironmentIsolation
from codecforge.core.pkgconfig import DescriptorResolver
from codecforge.models.config import BuildConfiguration
from codecforge.models.platforms import normalize_arch
from codecforge.models.reports import (
    Checkpoint,
    Diagnostic,
    FailureCategory,
    UnitCheck,
    VerificationRecord,
)
from codecforge.models.units import Unit

logger = logging.getLogger(__name__)

PROBE_SOURCE = "int main(void) { return 0; }\n"

# sonames provided by the C runtime itself on glibc targets.
_C_RUNTIME_LIBRARIES = ("libc.so", "libm.so", "libpthread.so", "libdl.so", "librt.so", "ld-linux")


@runtime_checkable
class ToolchainProbe(Protocol):
    """Reports the architecture the active toolchain actually produces."""

    def probe(self, config: BuildConfiguration, environment: EnvironmentDescriptor) -> str:
        """Return the architecture name of a trivially compiled program.

        Raises ``ToolchainError`` if nothing could be compiled.
        """
        ...


class CompilerProbe:
    """Compiles a trivial C program with the pinned CC and inspects it.

    Parameters
    ----------
    timeout:
        Seconds allowed for the probe compile.
    """

    def __init__(self, timeout: float = 120.0) -> None:
        self.timeout = timeout

    def probe(self, config: BuildConfiguration, environment: EnvironmentDescriptor) -> str:
        with tempfile.TemporaryDirectory(prefix="codecforge-probe-") as tmp:
            source = Path(tmp) / "probe.c"
            output = Path(tmp) / f"probe{config.executable_suffix}"
            source.write_text(PROBE_SOURCE, encoding="utf-8")
            cmd = [
                environment.tools["cc"],
                *config.cflags,
                str(source),
                "-o",
                str(output),
                *config.ldflags,
            ]
            try:
                result = subprocess.run(
                    cmd,
                    env=environment.as_env(),
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                )
            except (subprocess.SubprocessError, OSError) as exc:
                raise ToolchainError(
                    f"Could not run {cmd[0]}: {exc}",
                    diagnostics=[
                        Diagnostic(
                            category=FailureCategory.TOOLCHAIN_FAILURE,
                            expected=f"{cmd[0]} to compile a trivial program",
                            actual=str(exc),
                        )
                    ],
                ) from exc
            if result.returncode != 0 or not output.is_file():
                tail = (result.stderr or result.stdout).strip().splitlines()[-5:]
                raise ToolchainError(
                    f"{cmd[0]} failed to compile a trivial program",
                    diagnostics=[
                        Diagnostic(
                            category=FailureCategory.TOOLCHAIN_FAILURE,
                            expected="exit status 0",
                            actual=f"exit status {result.returncode}: {' | '.join(tail)}",
                        )
                    ],
                )
            archs = inspect_architectures(output)
        if not archs:
            return "unknown"
        return "+".join(sorted(archs))


def _describe(linkage: DynamicLinkage) -> str:
    parts = []
    if linkage.interpreter:
        parts.append(f"interpreter {linkage.interpreter}")
    if linkage.needed:
        parts.append(f"needs {', '.join(linkage.needed)}")
    return "dynamically linked: " + "; ".join(parts)


def _fail(
    checkpoint: Checkpoint,
    subject: str,
    reason: FailureCategory,
    message: str,
    diagnostics: Sequence[Diagnostic],
    **extra: object,
) -> VerificationRecord:
    logger.error("%s check failed for %s: %s", checkpoint.value, subject, message)
    return VerificationRecord(
        checkpoint=checkpoint,
        subject=subject,
        passed=False,
        reason=reason,
        message=message,
        diagnostics=tuple(diagnostics),
        **extra,
    )


class VerificationGate:
    """The three ordered checkpoints.

    Parameters
    ----------
    isolation:
        Provides the tool capability probe and the isolation check.
    probe:
        Reports the architecture of a trivially compiled program.
    """

    def __init__(self, isolation: EnvironmentIsolation, probe: ToolchainProbe) -> None:
        self._isolation = isolation
        self._probe = probe

    # ------------------------------------------------------------------
    # Preflight
    # ------------------------------------------------------------------

    def preflight(
        self, config: BuildConfiguration, environment: EnvironmentDescriptor
    ) -> VerificationRecord:
        """Tool capability, isolation and toolchain architecture checks."""
        subject = config.platform
        try:
            self._isolation.probe_tools(config, environment)
        except ToolchainError as exc:
            return _fail(
                Checkpoint.PREFLIGHT, subject, FailureCategory.TOOL_NOT_FOUND,
                str(exc), exc.diagnostics,
            )

        leaks = self._isolation.check_isolation(config, environment)
        if leaks:
            return _fail(
                Checkpoint.PREFLIGHT, subject, FailureCategory.ISOLATION_LEAK,
                f"{len(leaks)} search path(s) escape the build prefix", leaks,
            )

        try:
            reported = self._probe.probe(config, environment)
        except ToolchainError as exc:
            return _fail(
                Checkpoint.PREFLIGHT, subject, FailureCategory.TOOLCHAIN_FAILURE,
                str(exc), exc.diagnostics,
            )

        if normalize_arch(reported) != config.target_arch:
            return _fail(
                Checkpoint.PREFLIGHT,
                subject,
                FailureCategory.ARCH_MISMATCH,
                f"Toolchain produces {reported}, target is {config.target_arch}",
                [
                    Diagnostic(
                        category=FailureCategory.ARCH_MISMATCH,
                        expected=config.target_arch,
                        actual=reported,
                    )
                ],
            )
        logger.info("Preflight passed: toolchain targets %s", config.target_arch)
        return VerificationRecord(
            checkpoint=Checkpoint.PREFLIGHT,
            subject=subject,
            passed=True,
            message=f"toolchain targets {config.target_arch}",
        )

    # ------------------------------------------------------------------
    # Post-unit
    # ------------------------------------------------------------------

    def post_unit(
        self,
        unit: Unit,
        config: BuildConfiguration,
        environment: EnvironmentDescriptor,
    ) -> VerificationRecord:
        """Artifact exists, is non-empty, targets the right arch, and resolves.

        The aggregate is also checked for run-time linkage: on musl targets
        it must be fully static, elsewhere every needed library outside the
        C runtime is recorded as a warning.
        """
        uid = unit.unit_id
        path = config.artifact_path(unit)

        def fail(reason: FailureCategory, expected: str, actual: str) -> VerificationRecord:
            return _fail(
                Checkpoint.POST_UNIT, uid, reason, f"{uid}: {actual}",
                [Diagnostic(category=reason, unit_id=uid, expected=expected, actual=actual)],
            )

        if not path.is_file():
            return fail(FailureCategory.MISSING_ARTIFACT, f"artifact at {path}", "artifact does not exist")
        try:
            empty = path.stat().st_size == 0
            archs = inspect_architectures(path)
            linkage = inspect_linkage(path) if unit.is_aggregate else DynamicLinkage()
        except OSError as exc:
            return fail(FailureCategory.MISSING_ARTIFACT, f"readable artifact at {path}", str(exc))
        if empty:
            return fail(FailureCategory.EMPTY_ARTIFACT, f"non-empty artifact at {path}", "artifact is empty")

        if not matches_arch(archs, config.target_arch):
            found = ", ".join(sorted(archs)) or "unrecognised format"
            return fail(FailureCategory.ARCH_MISMATCH, config.target_arch, found)

        resolver = DescriptorResolver(environment.descriptor_roots, allowed_root=config.prefix)
        resolution = resolver.resolve(unit.artifact.pkg_config)
        if not resolution.resolved:
            return fail(
                FailureCategory.UNRESOLVABLE_DESCRIPTOR,
                f"'{unit.artifact.pkg_config}' resolvable through PKG_CONFIG_LIBDIR",
                resolution.error,
            )

        if linkage.is_dynamic and config.libc == "musl":
            return fail(FailureCategory.DYNAMIC_LINKAGE, "fully static executable", _describe(linkage))
        external = [lib for lib in linkage.needed if not lib.startswith(_C_RUNTIME_LIBRARIES)]
        for lib in external:
            logger.warning("%s links dynamically against %s", uid, lib)

        for leak in resolution.leaks:
            logger.warning("Isolation leak in %s: %s", uid, leak)
            warnings.warn(f"Isolation leak in {uid}: {leak}", IsolationLeakWarning, stacklevel=2)
        return VerificationRecord(
            checkpoint=Checkpoint.POST_UNIT,
            subject=uid,
            passed=True,
            message=f"{uid}: {path.name} ({', '.join(sorted(archs))}), {unit.artifact.pkg_config} {resolution.version}",
            warnings=(
                *resolution.leaks,
                *(f"{uid}: links dynamically against {lib}" for lib in external),
            ),
        )

    # ------------------------------------------------------------------
    # Pre-aggregate
    # ------------------------------------------------------------------

    def pre_aggregate(
        self,
        units: Sequence[Unit],
        config: BuildConfiguration,
        environment: EnvironmentDescriptor,
    ) -> VerificationRecord:
        """Check every unit's descriptor and report all of them before failing."""
        resolver = DescriptorResolver(environment.descriptor_roots, allowed_root=config.prefix)
        checks: list[UnitCheck] = []
        diagnostics: list[Diagnostic] = []
        for unit in units:
            if unit.is_aggregate:
                continue
            resolution = resolver.resolve(unit.artifact.pkg_config)
            if resolution.resolved:
                checks.append(UnitCheck(
                    unit_id=unit.unit_id, descriptor=unit.artifact.pkg_config, passed=True,
                ))
                continue
            checks.append(UnitCheck(
                unit_id=unit.unit_id,
                descriptor=unit.artifact.pkg_config,
                passed=False,
                reason=FailureCategory.UNRESOLVABLE_DESCRIPTOR,
            ))
            diagnostics.append(
                Diagnostic(
                    category=FailureCategory.UNRESOLVABLE_DESCRIPTOR,
                    unit_id=unit.unit_id,
                    expected=f"{unit.artifact.pkg_config}.pc resolvable",
                    actual=resolution.error,
                )
            )

        available = tuple(resolver.available())
        for check in checks:
            logger.info("  [%s] %s", "OK" if check.passed else "FAIL", check.unit_id)

        if diagnostics:
            missing = ", ".join(d.unit_id or "?" for d in diagnostics)
            return _fail(
                Checkpoint.PRE_AGGREGATE,
                config.platform,
                FailureCategory.UNRESOLVABLE_DESCRIPTOR,
                f"{len(diagnostics)} of {len(checks)} units unresolvable: {missing}",
                diagnostics,
                checks=tuple(checks),
                available_descriptors=available,
            )
        return VerificationRecord(
            checkpoint=Checkpoint.PRE_AGGREGATE,
            subject=config.platform,
            passed=True,
            message=f"all {len(checks)} units resolvable",
            checks=tuple(checks),
            available_descriptors=available,
        )
