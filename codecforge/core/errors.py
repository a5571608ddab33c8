"""Error taxonomy for build orchestration.

Configuration and toolchain errors abort a run before any unit starts.
Unit failures are recovered at branch granularity by the executor and
collected into the build report. Nothing here is ever retried.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from codecforge.models.reports import Diagnostic, VerificationRecord


class ForgeError(RuntimeError):
    """Base class for every error raised by codecforge.

    Parameters
    ----------
    message:
        Human-readable summary.
    diagnostics:
        Structured diagnostics (category, expected, actual, remediation)
        for the CLI to render.
    """

    def __init__(self, message: str, *, diagnostics: Iterable[Diagnostic] = ()) -> None:
        super().__init__(message)
        self.diagnostics: tuple[Diagnostic, ...] = tuple(diagnostics)


class ConfigurationError(ForgeError):
    """Invalid tier, missing configuration field, or an inconsistent registry."""


class UnknownTierError(ConfigurationError):
    """Raised when a tier name is neither canonical nor a known alias."""


class UnknownUnitError(ConfigurationError):
    """Raised when a unit id is not declared in the registry."""


class CyclicDependencyError(ConfigurationError):
    """Raised when the unit dependency graph contains a cycle."""


class ToolchainError(ForgeError):
    """Preflight failure. Raised before any unit action is invoked."""

    def __init__(
        self,
        message: str,
        *,
        diagnostics: Iterable[Diagnostic] = (),
        record: VerificationRecord | None = None,
    ) -> None:
        super().__init__(message, diagnostics=diagnostics)
        self.record = record


class UnitFailure(ForgeError):
    """Base for failures scoped to a single unit and its dependents."""

    def __init__(
        self,
        unit_id: str,
        message: str,
        *,
        diagnostics: Iterable[Diagnostic] = (),
    ) -> None:
        super().__init__(message, diagnostics=diagnostics)
        self.unit_id = unit_id


class UnitBuildError(UnitFailure):
    """The unit's external action exited non-zero (or timed out)."""

    def __init__(
        self,
        unit_id: str,
        exit_code: int,
        *,
        diagnostics: Iterable[Diagnostic] = (),
        message: str | None = None,
    ) -> None:
        super().__init__(
            unit_id,
            message or f"Action for '{unit_id}' exited with status {exit_code}",
            diagnostics=diagnostics,
        )
        self.exit_code = exit_code


class VerificationError(UnitFailure):
    """The action exited 0 but its artifact or descriptor failed verification."""

    def __init__(self, unit_id: str, record: VerificationRecord) -> None:
        super().__init__(
            unit_id,
            record.message or f"Verification failed for '{unit_id}'",
            diagnostics=record.diagnostics,
        )
        self.record = record


class IsolationLeakWarning(UserWarning):
    """A descriptor resolved to a path outside the build prefix."""
