"""``codecforge verify [TIER]`` — run the pre-aggregate check on its own.

Lists every unit of the tier with an OK/FAIL mark and, on failure, the
descriptors that are currently available.
"""

from __future__ import annotations

import typer

from codecforge.cli.context import (
    EXIT_FAILED,
    console,
    current_settings,
    open_orchestrator,
    report_error,
)
from codecforge.cli.render import ReportRenderer
from codecforge.core.errors import ConfigurationError


def verify_cmd(
    tier: str = typer.Argument(None, help="Tier to verify."),
    platform: str = typer.Option(None, "--platform", "-p", help="Target platform."),
) -> None:
    """Check that every unit's descriptor of the tier is resolvable."""
    settings = current_settings()
    try:
        orchestrator = open_orchestrator(platform, settings)
        record = orchestrator.verify(tier or settings.default_tier)
    except ConfigurationError as exc:
        raise typer.Exit(code=report_error(exc)) from None

    ReportRenderer(console).print_verification(record)
    if not record.passed:
        raise typer.Exit(code=EXIT_FAILED)
